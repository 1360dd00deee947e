"""Builds metric observations from decoded log fields."""

import math
from collections.abc import Mapping

from varnish_request_exporter.core.exceptions import ObservationError
from varnish_request_exporter.core.models import DecodedFields, Observation
from varnish_request_exporter.core.rewriter import PathRewriter

REQUEST_TIME = "varnish_request_time_seconds"
FIRSTBYTE_TIME = "varnish_request_time_firstbyte_seconds"
RESPONSE_SIZE = "varnish_request_respsize_bytes"

_REQUIRED_FIELDS = ("method", "status", "path", "time")


def _number(fields: Mapping[str, str], name: str, scale: float = 1.0) -> float:
    """Convert a decoded field to a non-negative float divided by scale."""
    try:
        value = float(fields[name]) / scale
    except ValueError as e:
        raise ObservationError(f"field {name!r} is not a number: {fields[name]!r}") from e
    if math.isnan(value) or math.isinf(value) or value < 0:
        raise ObservationError(f"field {name!r} out of range: {fields[name]!r}")
    return value


class ObservationBuilder:
    """Turns decoded log fields into 1 to 3 observations.

    Every line yields a request duration observation. Lines carrying a
    first-byte time or a response size also yield observations for those.
    Times are logged in milliseconds and observed in seconds.

    The label schema is fixed at construction: method, status, path and
    cache, plus host unless host labelling is disabled because the exporter
    is pinned to a single virtual host.
    """

    def __init__(self, rewriter: PathRewriter | None = None, host_label: bool = True) -> None:
        """Initialize the builder.

        Args:
            rewriter: Rewriter used to normalize the path label. Defaults to
                a rewriter without rules.
            host_label: Whether observations carry a host label.
        """
        self.rewriter = rewriter or PathRewriter()
        self.host_label = host_label

    @property
    def label_names(self) -> tuple[str, ...]:
        names = ("method", "status", "path", "cache")
        return (*names, "host") if self.host_label else names

    def labels(self, fields: Mapping[str, str]) -> dict[str, str]:
        labels = {
            "method": fields["method"],
            "status": fields["status"],
            "path": self.rewriter.normalize(fields["path"]),
            "cache": fields.get("cache", ""),
        }
        if self.host_label:
            labels["host"] = fields.get("host", "")
        return labels

    def build(self, fields: DecodedFields) -> list[Observation]:
        """Build the observations for one decoded line.

        Args:
            fields: Output of decode() for the line.

        Returns:
            List of observations, request duration first.

        Raises:
            ObservationError: If a required field is missing or a numeric
                field cannot be converted. No observations are returned.
        """
        missing = [name for name in _REQUIRED_FIELDS if name not in fields]
        if missing:
            raise ObservationError(f"missing required fields: {', '.join(missing)}")

        labels = self.labels(fields)
        observations = [Observation(REQUEST_TIME, _number(fields, "time", 1000.0), labels)]
        if "time_firstbyte" in fields:
            value = _number(fields, "time_firstbyte", 1000.0)
            observations.append(Observation(FIRSTBYTE_TIME, value, dict(labels)))
        if "respsize" in fields:
            value = _number(fields, "respsize")
            observations.append(Observation(RESPONSE_SIZE, value, dict(labels)))
        return observations
