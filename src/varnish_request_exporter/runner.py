"""Wires the ingest loop, the log source and the metrics HTTP server."""

import logging
import sys
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TextIO

import uvicorn

from varnish_request_exporter.adapters.frameworks.asgi import create_asgi_app
from varnish_request_exporter.adapters.varnishncsa import VarnishncsaProcess
from varnish_request_exporter.config import ExporterConfig
from varnish_request_exporter.core.exceptions import ConfigError
from varnish_request_exporter.core.ingest import IngestLoop
from varnish_request_exporter.core.logs import log_exception
from varnish_request_exporter.core.observations import ObservationBuilder
from varnish_request_exporter.core.registry import MetricRegistry
from varnish_request_exporter.core.rewriter import PathRewriter, load_rules

logger = logging.getLogger(__name__)


def build_ingest_loop(config: ExporterConfig, registry: MetricRegistry) -> IngestLoop:
    """Create the ingest loop described by config.

    Raises:
        ConfigError: If the path mappings file is unreadable or invalid.
    """
    rewriter = PathRewriter(load_rules(config.path_mappings))
    logger.info("Loaded %d path mappings", len(rewriter))
    builder = ObservationBuilder(rewriter, host_label=config.host_label)
    return IngestLoop(registry, config.field_schema, builder)


@contextmanager
def open_input(path: str) -> Iterator[TextIO]:
    """Open a log file for reading, "-" meaning stdin.

    Raises:
        ConfigError: If the file cannot be opened.
    """
    if path == "-":
        yield sys.stdin
        return
    try:
        f = open(path, encoding="utf-8", errors="replace")
    except OSError as e:
        raise ConfigError(f"cannot open input {path!r}: {e}") from e
    with f:
        yield f


def _uvicorn_level(level: str) -> str:
    level = level.lower()
    return "warning" if level == "warn" else level


class Exporter:
    """A configured exporter: one ingest worker plus the metrics server."""

    def __init__(self, config: ExporterConfig, registry: MetricRegistry | None = None) -> None:
        """Build every component; nothing runs yet.

        Raises:
            ConfigError: If the configuration is invalid.
        """
        self.config = config
        self.registry = registry if registry is not None else MetricRegistry()
        self.loop = build_ingest_loop(config, self.registry)
        self.app = create_asgi_app(self.registry, config.metrics_path)
        self._process: VarnishncsaProcess | None = None

    def ingest(self) -> int:
        """Feed the log source through the ingest loop until it ends.

        Returns:
            Exit status of the log source (0 for files and stdin).
        """
        if self.config.input_path:
            with open_input(self.config.input_path) as f:
                self.loop.run(f)
            return 0
        self._process = VarnishncsaProcess(self.config.varnishncsa_args())
        with self._process as proc:
            self.loop.run(proc)
            status = proc.wait()
        if status != 0:
            logger.error("varnishncsa exited with status %d", status)
        return status

    def stop(self) -> None:
        if self._process is not None:
            self._process.terminate()

    def serve(self) -> int:
        """Run the metrics server until the log source ends or a signal arrives.

        Returns:
            Process exit status.
        """
        host, port = self.config.bind
        server = uvicorn.Server(
            uvicorn.Config(
                self.app,
                host=host,
                port=port,
                log_level=_uvicorn_level(self.config.log_level),
                lifespan="off",
            )
        )
        result = {"status": 0}

        def worker() -> None:
            try:
                result["status"] = self.ingest()
            except ConfigError as e:
                logger.error("%s", e)
                result["status"] = 2
            except Exception:
                log_exception("ingest worker failed", logger)
                result["status"] = 1
            finally:
                server.should_exit = True

        thread = threading.Thread(target=worker, name="ingest", daemon=True)
        thread.start()
        logger.info("Starting Server: %s", self.config.listen_address)
        try:
            server.run()
        finally:
            self.stop()
            logger.info("Messages received: %d", self.loop.lines)
        return result["status"]
