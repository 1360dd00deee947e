"""Integration tests for the wired exporter and its command line."""

import logging
import sys
import time
from pathlib import Path

import pytest
from typer.testing import CliRunner

from varnish_request_exporter import runner
from varnish_request_exporter.cli import app
from varnish_request_exporter.config import ExporterConfig
from varnish_request_exporter.core.exceptions import ConfigError
from varnish_request_exporter.core.observations import (
    FIRSTBYTE_TIME,
    REQUEST_TIME,
    RESPONSE_SIZE,
)
from varnish_request_exporter.runner import Exporter

LABELS = {"method": "GET", "status": "200", "path": "/users/ID", "cache": "hit"}


@pytest.fixture
def mappings(tmp_path: Path) -> Path:
    path = tmp_path / "mappings.txt"
    path.write_text("# ids\n/\\d+/ /ID/\n/$\n", encoding="utf-8")
    return path


@pytest.fixture
def log_file(tmp_path: Path, make_line) -> Path:
    path = tmp_path / "varnish.log"
    lines = [
        make_line(path="/users/1/", time_firstbyte="5", respsize="100"),
        make_line(path="/users/2/", host="other.example", time_firstbyte="-", respsize="-"),
        make_line(status=None),
    ]
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


class TestExporterIngest:
    """Tests for Exporter.ingest() with file input."""

    @pytest.mark.tier(2)
    def test_ingest_from_file(self, mappings: Path, log_file: Path) -> None:
        """Every line of the file is processed with path mappings applied."""
        config = ExporterConfig(
            path_mappings=str(mappings),
            firstbyte=True,
            sizes=True,
            input_path=str(log_file),
        )
        exporter = Exporter(config)

        assert exporter.ingest() == 0

        registry = exporter.registry
        first = {**LABELS, "host": "example.com"}
        second = {**LABELS, "host": "other.example"}
        assert registry.sample_value(f"{REQUEST_TIME}_count", first) == 1.0
        assert registry.sample_value(f"{REQUEST_TIME}_count", second) == 1.0
        assert registry.sample_value(f"{FIRSTBYTE_TIME}_count", first) == 1.0
        assert registry.sample_value(f"{FIRSTBYTE_TIME}_count", second) is None
        assert registry.sample_value(f"{RESPONSE_SIZE}_sum", second) == 0.0
        assert exporter.loop.lines == 3
        assert registry.sample_value("varnish_request_exporter_log_parse_failure_total") == 1.0

    @pytest.mark.tier(2)
    def test_virtual_host_drops_host_label(self, log_file: Path) -> None:
        """With a virtual host configured the host label disappears."""
        config = ExporterConfig(http_host="example.com", input_path=str(log_file))
        exporter = Exporter(config)

        exporter.ingest()

        labels = {"method": "GET", "status": "200", "cache": "hit"}
        assert exporter.registry.sample_value(
            f"{REQUEST_TIME}_count", {**labels, "path": "/users/1/"}
        ) == 1.0

    @pytest.mark.tier(2)
    def test_ingest_from_varnishncsa(
        self, monkeypatch: pytest.MonkeyPatch, example_line: str
    ) -> None:
        """Without input file the varnishncsa subprocess is the source."""
        monkeypatch.setattr(runner, "VarnishncsaProcess", _fake_process(example_line, 0))
        exporter = Exporter(ExporterConfig())

        assert exporter.ingest() == 0
        assert exporter.loop.lines == 1

    @pytest.mark.tier(2)
    def test_failing_varnishncsa_status_is_returned(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(runner, "VarnishncsaProcess", _fake_process("", 1))
        exporter = Exporter(ExporterConfig())

        assert exporter.ingest() == 1

    @pytest.mark.tier(2)
    def test_missing_input_file_raises(self, tmp_path: Path) -> None:
        exporter = Exporter(ExporterConfig(input_path=str(tmp_path / "missing.log")))
        with pytest.raises(ConfigError, match="cannot open input"):
            exporter.ingest()

    @pytest.mark.tier(2)
    def test_invalid_mappings_fail_at_startup(self, tmp_path: Path) -> None:
        """A bad rule stops the exporter before anything is ingested."""
        bad = tmp_path / "bad.txt"
        bad.write_text("(oops\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="line 1"):
            Exporter(ExporterConfig(path_mappings=str(bad)))


def _fake_process(output: str, status: int):
    """Return a VarnishncsaProcess replacement running a Python one-liner."""
    real = runner.VarnishncsaProcess
    script = f"import sys; sys.stdout.write({output!r}); raise SystemExit({status})"

    def create(args):
        return real(["-c", script], command=sys.executable)

    return create


class StubServer:
    """uvicorn.Server stand-in that runs until asked to exit."""

    def __init__(self, config) -> None:
        self.config = config
        self.should_exit = False

    def run(self) -> None:
        deadline = time.monotonic() + 5
        while not self.should_exit and time.monotonic() < deadline:
            time.sleep(0.01)


class TestExporterServe:
    """Tests for the exit status of Exporter.serve()."""

    @pytest.fixture(autouse=True)
    def stub_server(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(runner.uvicorn, "Server", StubServer)

    @pytest.mark.tier(2)
    def test_exhausted_input_exits_cleanly(self, log_file: Path) -> None:
        exporter = Exporter(ExporterConfig(input_path=str(log_file)))
        assert exporter.serve() == 0
        assert exporter.loop.lines == 3

    @pytest.mark.tier(2)
    def test_config_error_in_worker_exits_with_2(self, tmp_path: Path) -> None:
        exporter = Exporter(ExporterConfig(input_path=str(tmp_path / "missing.log")))
        assert exporter.serve() == 2

    @pytest.mark.tier(2)
    def test_crashed_worker_exits_nonzero(
        self, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
    ) -> None:
        """An unexpected ingest error stops the server with a failure status."""

        def broken_ingest(self) -> int:
            raise OSError("stdin closed")

        monkeypatch.setattr(Exporter, "ingest", broken_ingest)
        exporter = Exporter(ExporterConfig())

        with caplog.at_level(logging.ERROR, logger="varnish_request_exporter"):
            assert exporter.serve() == 1

        assert "ingest worker failed" in caplog.text
        assert "stdin closed" in caplog.text


class TestCli:
    """Tests for the command line entry point."""

    @pytest.mark.tier(2)
    def test_help_lists_flags(self) -> None:
        result = CliRunner().invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "--varnish.path-mappings" in result.output
        assert "--http.port" in result.output

    @pytest.mark.tier(2)
    def test_invalid_mappings_exit_code(self, tmp_path: Path) -> None:
        """Startup configuration errors exit with status 2."""
        bad = tmp_path / "bad.txt"
        bad.write_text("[bad\n", encoding="utf-8")

        result = CliRunner().invoke(app, ["--varnish.path-mappings", str(bad)])

        assert result.exit_code == 2

    @pytest.mark.tier(2)
    def test_invalid_log_level_exit_code(self) -> None:
        result = CliRunner().invoke(app, ["--log.level", "chatty"])
        assert result.exit_code == 2

    @pytest.mark.tier(2)
    def test_invalid_listen_address_exit_code(self) -> None:
        result = CliRunner().invoke(app, ["--http.port", "nowhere"])
        assert result.exit_code == 2

    @pytest.mark.tier(2)
    def test_serve_exit_code_is_propagated(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """The process exits with the status serve() returns."""
        monkeypatch.setattr(runner.Exporter, "serve", lambda self: 3)

        result = CliRunner().invoke(app, [])

        assert result.exit_code == 3
