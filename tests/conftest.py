"""Shared test fixtures for all test modules."""

import pytest

from varnish_request_exporter.core.decoder import build_field_schema
from varnish_request_exporter.core.models import FieldSpec
from varnish_request_exporter.core.registry import MetricRegistry

try:
    import httpx
except ImportError:
    httpx = None

EXAMPLE_LINE = (
    'method="GET" status=200 path="/users/42/" cache="hit" '
    'host="example.com" time:123.4'
)


@pytest.fixture
def registry() -> MetricRegistry:
    """Provide an empty registry backed by a private CollectorRegistry."""
    return MetricRegistry()


@pytest.fixture
def schema() -> tuple[FieldSpec, ...]:
    """Field schema with first-byte time and response size enabled."""
    return build_field_schema(firstbyte=True, sizes=True)


@pytest.fixture
def example_line() -> str:
    return EXAMPLE_LINE


@pytest.fixture
def make_line():
    """Factory fixture building varnishncsa lines in the default layout.

    Pass None for a field to leave its token out of the line.
    """

    def _line(
        method: str | None = "GET",
        status: str | None = "200",
        path: str | None = "/users/42/",
        cache: str | None = "hit",
        host: str | None = "example.com",
        time: str | None = "123.4",
        time_firstbyte: str | None = None,
        respsize: str | None = None,
    ) -> str:
        tokens = []
        if method is not None:
            tokens.append(f'method="{method}"')
        if status is not None:
            tokens.append(f"status={status}")
        if path is not None:
            tokens.append(f'path="{path}"')
        if cache is not None:
            tokens.append(f'cache="{cache}"')
        if host is not None:
            tokens.append(f'host="{host}"')
        if time is not None:
            tokens.append(f"time:{time}")
        if time_firstbyte is not None:
            tokens.append(f"time_firstbyte:{time_firstbyte}")
        if respsize is not None:
            tokens.append(f"respsize:{respsize}")
        return " ".join(tokens)

    return _line


@pytest.fixture
def asgi_test_client():
    """Factory fixture that creates an httpx.AsyncClient for ASGI testing.

    Usage:
        async def test_something(asgi_test_client):
            app = create_asgi_app(registry)
            async with asgi_test_client(app) as client:
                response = await client.get("/metrics")
    """
    if httpx is None:
        pytest.skip("httpx not installed")

    def _get_client(app):
        """Return an AsyncClient context manager for the given app."""
        return httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app), base_url="http://test"
        )

    return _get_client
