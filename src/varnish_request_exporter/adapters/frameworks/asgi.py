"""ASGI adapter serving the exporter's metrics endpoint.

The app is framework-agnostic and runs under any ASGI server (uvicorn,
hypercorn, daphne). It only reads the metric registry; scraping races freely
with the ingest worker's writes.
"""

import json
from collections.abc import Callable, Coroutine
from typing import Any

from prometheus_client import CONTENT_TYPE_LATEST

from varnish_request_exporter.core.logs import log_exception
from varnish_request_exporter.core.registry import MetricRegistry

# ASGI type aliases
Scope = dict[str, Any]
Receive = Callable[[], Coroutine[Any, Any, dict[str, Any]]]
Send = Callable[[dict[str, Any]], Coroutine[Any, Any, None]]
ASGIApp = Callable[[Scope, Receive, Send], Coroutine[Any, Any, None]]

LANDING_PAGE = """<html>
<head><title>Varnish Request Exporter</title></head>
<body>
<h1>Varnish Request Exporter</h1>
<p><a href='{metrics_path}'>Metrics</a></p>
</body>
</html>
"""


async def _send_response(
    send: Send, status: int, content_type: str, body: str | bytes
) -> None:
    """Send an HTTP response with headers and body.

    Args:
        send: ASGI send callable for writing response.
        status: HTTP status code.
        content_type: Content-Type header value.
        body: Response body; strings are encoded as UTF-8.
    """
    if isinstance(body, str):
        body = body.encode()
    headers = [(b"content-type", content_type.encode())]
    await send({"type": "http.response.start", "status": status, "headers": headers})
    await send({"type": "http.response.body", "body": body})


def _without_body(send: Send) -> Send:
    """Wrap send so response bodies are dropped, as HEAD requires."""

    async def send_headers_only(message: dict[str, Any]) -> None:
        if message["type"] == "http.response.body":
            message = {**message, "body": b""}
        await send(message)

    return send_headers_only


async def _handle_endpoint(
    send: Send,
    endpoint_func: Callable[[], bytes],
    content_type: str,
    log_message: str,
) -> None:
    """Execute an endpoint function with error handling and send response.

    Args:
        send: ASGI send callable for writing response.
        endpoint_func: Function that returns the response body.
        content_type: Content-Type header for success response.
        log_message: Message to log on error.
    """
    try:
        body = endpoint_func()
    except Exception:
        log_exception(log_message)
        error_body = json.dumps({"error": "Internal Server Error"})
        await _send_response(send, 500, "application/json", error_body)
        return
    await _send_response(send, 200, content_type, body)


def create_asgi_app(registry: MetricRegistry, metrics_path: str = "/metrics") -> ASGIApp:
    """Create an ASGI app exposing the registry.

    Routes:
        ``metrics_path``: Prometheus text exposition of every collector.
        ``/``: HTML landing page linking to the metrics.
        anything else: 404.

    Args:
        registry: Registry whose collectors are served.
        metrics_path: Path of the metrics endpoint (default: "/metrics").

    Returns:
        ASGI application callable.
    """
    landing = LANDING_PAGE.format(metrics_path=metrics_path)

    async def app(scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            return

        path = scope["path"]
        if scope["method"] == "HEAD":
            send = _without_body(send)
        if scope["method"] not in ("GET", "HEAD"):
            await _send_response(send, 405, "text/plain", "Method Not Allowed")
        elif path == metrics_path:
            await _handle_endpoint(
                send,
                registry.expose,
                CONTENT_TYPE_LATEST,
                "Error encoding metrics endpoint",
            )
        elif path == "/":
            await _send_response(send, 200, "text/html; charset=utf-8", landing)
        else:
            await _send_response(send, 404, "text/plain", "Not Found")

    return app
