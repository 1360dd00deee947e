"""Prometheus exporter for Varnish request logs."""

from varnish_request_exporter.core.decoder import build_field_schema, decode
from varnish_request_exporter.core.exceptions import (
    ConfigError,
    DecodeError,
    ExporterError,
    ObservationError,
    RegistrationError,
)
from varnish_request_exporter.core.ingest import IngestLoop
from varnish_request_exporter.core.models import (
    FieldSpec,
    MetricIdentity,
    Observation,
    RewriteRule,
)
from varnish_request_exporter.core.observations import ObservationBuilder
from varnish_request_exporter.core.registry import MetricRegistry
from varnish_request_exporter.core.rewriter import PathRewriter, load_rules, parse_rules

__version__ = "0.1.0"

__all__ = [
    "ConfigError",
    "DecodeError",
    "ExporterError",
    "FieldSpec",
    "IngestLoop",
    "MetricIdentity",
    "MetricRegistry",
    "Observation",
    "ObservationBuilder",
    "ObservationError",
    "PathRewriter",
    "RegistrationError",
    "RewriteRule",
    "build_field_schema",
    "decode",
    "load_rules",
    "parse_rules",
]
