"""Command line entry point."""

import typer

from varnish_request_exporter.config import (
    DEFAULT_LISTEN_ADDRESS,
    DEFAULT_METRICS_PATH,
    ExporterConfig,
)
from varnish_request_exporter.core.exceptions import ConfigError
from varnish_request_exporter.core.logs import configure_logging
from varnish_request_exporter.runner import Exporter

app = typer.Typer(
    help="Export Varnish request log timings and sizes as Prometheus histograms.",
    add_completion=False,
)

_ENV = "VARNISH_EXPORTER_"


@app.command()
def serve(
    listen_address: str = typer.Option(
        DEFAULT_LISTEN_ADDRESS,
        "--http.port",
        envvar=f"{_ENV}LISTEN_ADDRESS",
        help="Host/port for HTTP server",
    ),
    metrics_path: str = typer.Option(
        DEFAULT_METRICS_PATH,
        "--http.metricsurl",
        envvar=f"{_ENV}METRICS_PATH",
        help="Prometheus metrics path",
    ),
    http_host: str = typer.Option(
        "",
        "--varnish.host",
        envvar=f"{_ENV}HOST",
        help="Virtual host to look for in Varnish logs (defaults to all hosts)",
    ),
    path_mappings: str = typer.Option(
        "",
        "--varnish.path-mappings",
        envvar=f"{_ENV}PATH_MAPPINGS",
        help="Name of file with path mappings",
    ),
    instance: str = typer.Option(
        "",
        "--varnish.instance",
        envvar=f"{_ENV}INSTANCE",
        help="Name of Varnish instance",
    ),
    firstbyte: bool = typer.Option(
        False,
        "--varnish.firstbyte",
        envvar=f"{_ENV}FIRSTBYTE",
        help="Also export metrics for backend time to first byte",
    ),
    query: str = typer.Option(
        "",
        "--varnish.query",
        envvar=f"{_ENV}QUERY",
        help="Additional VSL query restricting the logged requests",
    ),
    sizes: bool = typer.Option(
        False,
        "--varnish.sizes",
        envvar=f"{_ENV}SIZES",
        help="Also export metrics for response size",
    ),
    input_path: str = typer.Option(
        "",
        "--input",
        envvar=f"{_ENV}INPUT",
        help="Read log lines from this file ('-' for stdin) instead of running varnishncsa",
    ),
    log_level: str = typer.Option(
        "info",
        "--log.level",
        envvar=f"{_ENV}LOG_LEVEL",
        help="Only log messages with the given severity or above",
    ),
) -> None:
    """Run the exporter until the log source ends."""
    try:
        configure_logging(log_level)
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=2)
    try:
        config = ExporterConfig(
            listen_address=listen_address,
            metrics_path=metrics_path,
            http_host=http_host,
            path_mappings=path_mappings,
            instance=instance,
            firstbyte=firstbyte,
            sizes=sizes,
            query=query,
            input_path=input_path,
            log_level=log_level,
        )
        exporter = Exporter(config)
    except ConfigError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=2)
    raise typer.Exit(code=exporter.serve())


def main() -> None:
    app()
