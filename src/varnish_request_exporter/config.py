"""Exporter configuration."""

from dataclasses import dataclass

from varnish_request_exporter.adapters.varnishncsa import (
    build_args,
    build_format,
    build_vsl_query,
)
from varnish_request_exporter.core.decoder import build_field_schema
from varnish_request_exporter.core.exceptions import ConfigError
from varnish_request_exporter.core.models import FieldSpec

DEFAULT_LISTEN_ADDRESS = ":9151"
DEFAULT_METRICS_PATH = "/metrics"


def parse_listen_address(address: str) -> tuple[str, int]:
    """Split a ``host:port`` listen address.

    An empty host (``:9151``) listens on all interfaces. IPv6 hosts must be
    bracketed (``[::1]:9151``).

    Raises:
        ConfigError: If the address has no valid port.
    """
    host, sep, port = address.rpartition(":")
    if not sep or not port.isdigit() or not 0 < int(port) < 65536:
        raise ConfigError(f"invalid listen address {address!r}: expected host:port")
    host = host.strip("[]") or "0.0.0.0"
    return host, int(port)


@dataclass(frozen=True)
class ExporterConfig:
    """Startup settings, fixed for the life of the process.

    Attributes:
        listen_address: host:port the HTTP server binds to.
        metrics_path: Path of the metrics endpoint.
        http_host: Virtual host to restrict logging to. When set, the host
            label is dropped from every metric.
        path_mappings: File with path rewrite rules; empty for none.
        instance: varnishd instance name passed to varnishncsa.
        firstbyte: Also export backend time to first byte.
        sizes: Also export response sizes.
        query: Additional VSL query.
        input_path: Read log lines from this file ("-" for stdin) instead of
            running varnishncsa.
        log_level: Logging level name.
    """

    listen_address: str = DEFAULT_LISTEN_ADDRESS
    metrics_path: str = DEFAULT_METRICS_PATH
    http_host: str = ""
    path_mappings: str = ""
    instance: str = ""
    firstbyte: bool = False
    sizes: bool = False
    query: str = ""
    input_path: str = ""
    log_level: str = "info"

    def __post_init__(self) -> None:
        if not self.metrics_path.startswith("/"):
            raise ConfigError(f"metrics path must start with '/': {self.metrics_path!r}")
        parse_listen_address(self.listen_address)

    @property
    def host_label(self) -> bool:
        return not self.http_host

    @property
    def bind(self) -> tuple[str, int]:
        return parse_listen_address(self.listen_address)

    @property
    def field_schema(self) -> tuple[FieldSpec, ...]:
        return build_field_schema(firstbyte=self.firstbyte, sizes=self.sizes)

    def varnishncsa_args(self) -> list[str]:
        """Arguments for varnishncsa producing lines in field_schema layout."""
        return build_args(
            build_vsl_query(self.http_host, self.query),
            self.instance,
            build_format(self.field_schema),
        )
