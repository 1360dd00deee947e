"""varnishncsa adapter: command line construction and log line source.

The ``-F`` format is generated from the same field schema the decoder uses,
so the producer's layout and the decoder's expectations cannot drift apart.
"""

import logging
import subprocess
from collections.abc import Iterator, Sequence
from types import TracebackType

from varnish_request_exporter.core.exceptions import ConfigError
from varnish_request_exporter.core.models import FieldSpec

logger = logging.getLogger(__name__)

VARNISHNCSA = "varnishncsa"

# varnishncsa format directive emitting each field's value
FORMAT_DIRECTIVES = {
    "method": "%m",
    "status": "%s",
    "path": "%U",
    "cache": "%{Varnish:hitmiss}x",
    "host": "%{host}i",
    "time": "%D",
    "time_firstbyte": "%{Varnish:time_firstbyte}x",
    "respsize": "%b",
}


def build_vsl_query(http_host: str = "", user_query: str = "") -> str:
    """Build the VSL query selecting the requests to log.

    Args:
        http_host: Virtual host to restrict logging to. Empty means all hosts.
        user_query: Additional VSL query supplied by the operator.

    Returns:
        Combined query, or an empty string when nothing is filtered.
    """
    query = user_query
    if http_host:
        if query:
            query += " and "
        query += f'ReqHeader:host eq "{http_host}"'
    return query


def build_format(schema: Sequence[FieldSpec]) -> str:
    """Build the ``-F`` format string producing lines in schema layout."""
    tokens = []
    for spec in schema:
        try:
            directive = FORMAT_DIRECTIVES[spec.name]
        except KeyError:
            raise ConfigError(f"no varnishncsa directive for field {spec.name!r}") from None
        value = f'"{directive}"' if spec.quoted else directive
        tokens.append(f"{spec.prefix}{value}")
    return " ".join(tokens)


def build_args(vsl_query: str, instance: str, log_format: str) -> list[str]:
    """Build the varnishncsa argument list (without the command itself)."""
    args = ["-F", log_format]
    if vsl_query:
        args += ["-q", vsl_query]
    if instance:
        args += ["-n", instance]
    return args


class VarnishncsaProcess:
    """Runs varnishncsa and yields the lines it writes to stdout.

    Example:
        ```python
        with VarnishncsaProcess(args) as proc:
            loop.run(proc)
        status = proc.returncode
        ```
    """

    def __init__(self, args: Sequence[str], command: str = VARNISHNCSA) -> None:
        self.command = [command, *args]
        self._proc: subprocess.Popen[str] | None = None

    @property
    def returncode(self) -> int | None:
        return self._proc.returncode if self._proc is not None else None

    def start(self) -> None:
        """Start the subprocess.

        Raises:
            ConfigError: If the command cannot be executed.
        """
        logger.info("Running command: %s", " ".join(self.command))
        try:
            self._proc = subprocess.Popen(
                self.command,
                stdout=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
            )
        except OSError as e:
            raise ConfigError(f"cannot run {self.command[0]}: {e}") from e

    def __iter__(self) -> Iterator[str]:
        if self._proc is None or self._proc.stdout is None:
            raise RuntimeError("process not started")
        yield from self._proc.stdout

    def wait(self) -> int:
        """Wait for the subprocess to exit and return its exit status."""
        if self._proc is None:
            raise RuntimeError("process not started")
        status = self._proc.wait()
        logger.info("%s command exited with status %d", self.command[0], status)
        return status

    def terminate(self, timeout: float = 5.0) -> None:
        """Stop the subprocess if it is still running."""
        if self._proc is None or self._proc.poll() is not None:
            return
        self._proc.terminate()
        try:
            self._proc.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            self._proc.kill()
            self._proc.wait()

    def __enter__(self) -> "VarnishncsaProcess":
        self.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.terminate()
        if self._proc is not None and self._proc.stdout is not None:
            self._proc.stdout.close()
