"""Exception hierarchy for the exporter.

Only ``ConfigError`` is fatal; it is raised while loading configuration and
stops the exporter before the ingest loop starts. The other errors are
raised per log line and recovered by the ingest loop.
"""


class ExporterError(Exception):
    """Base class for all exporter errors."""


class ConfigError(ExporterError):
    """A rewrite rule or other startup setting is invalid."""


class DecodeError(ExporterError):
    """A log line does not match the expected field layout.

    Attributes:
        line: The raw line that failed to decode.
    """

    def __init__(self, message: str, line: str = "") -> None:
        super().__init__(message)
        self.line = line


class ObservationError(ExporterError):
    """Decoded fields could not be turned into observations."""


class RegistrationError(ExporterError):
    """The metric registry could not create a collector for an observation.

    Attributes:
        metric: Name of the metric whose collector could not be created.
    """

    def __init__(self, message: str, metric: str = "") -> None:
        super().__init__(message)
        self.metric = metric
