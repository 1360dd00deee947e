"""Logging helpers shared by the exporter's modules."""

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_logger = logging.getLogger("varnish_request_exporter")


def configure_logging(level: str | int = "INFO") -> None:
    """Configure root logging for the exporter process.

    Args:
        level: Level name (e.g. "debug", "INFO") or numeric level.

    Raises:
        ValueError: If level is not a known level name.
    """
    if isinstance(level, str):
        name = level.upper()
        if name == "WARN":
            name = "WARNING"
        numeric = logging.getLevelName(name)
        if not isinstance(numeric, int):
            raise ValueError(f"unknown log level: {level!r}")
        level = numeric
    logging.basicConfig(format=LOG_FORMAT)
    logging.getLogger().setLevel(level)


def log_exception(message: str, logger: logging.Logger | None = None) -> None:
    """Log message at ERROR level with the active exception's traceback.

    Must be called from inside an ``except`` block.
    """
    (logger or _logger).exception(message)
