"""BDD step definitions for log line ingestion."""

from dataclasses import dataclass, field

import pytest
from pytest_bdd import given, parsers, then, when

from varnish_request_exporter.core.decoder import build_field_schema
from varnish_request_exporter.core.ingest import IngestLoop
from varnish_request_exporter.core.models import RewriteRule
from varnish_request_exporter.core.observations import ObservationBuilder
from varnish_request_exporter.core.registry import MetricRegistry
from varnish_request_exporter.core.rewriter import PathRewriter, compile_rule


@dataclass
class IngestScenarioContext:
    """State shared between the steps of one scenario."""

    rules: list[RewriteRule] = field(default_factory=list)
    host_label: bool = True
    firstbyte: bool = False
    sizes: bool = False
    registry: MetricRegistry = field(default_factory=MetricRegistry)
    _loop: IngestLoop | None = None

    @property
    def loop(self) -> IngestLoop:
        """Ingest loop for the configured options, built on first use."""
        if self._loop is None:
            builder = ObservationBuilder(PathRewriter(self.rules), host_label=self.host_label)
            schema = build_field_schema(firstbyte=self.firstbyte, sizes=self.sizes)
            self._loop = IngestLoop(self.registry, schema, builder)
        return self._loop


def _samples(ctx: IngestScenarioContext, sample_name: str, path: str) -> list[float]:
    return [
        sample.value
        for family in ctx.registry.collector_registry.collect()
        for sample in family.samples
        if sample.name == sample_name and sample.labels.get("path") == path
    ]


@pytest.fixture
def ctx() -> IngestScenarioContext:
    """Fresh scenario context for each test."""
    return IngestScenarioContext()


# === Given ===
@given(parsers.parse('an exporter with path mapping "{pattern}" to "{replacement}"'))
def given_path_mapping(ctx: IngestScenarioContext, pattern: str, replacement: str) -> None:
    ctx.rules.append(compile_rule(pattern, replacement))


@given("host labelling is disabled")
def given_host_label_disabled(ctx: IngestScenarioContext) -> None:
    ctx.host_label = False


@given("first byte times and response sizes are exported")
def given_optional_metrics(ctx: IngestScenarioContext) -> None:
    ctx.firstbyte = True
    ctx.sizes = True


# === When ===
@when(parsers.parse("the log line is ingested: {line}"))
def when_line_ingested(ctx: IngestScenarioContext, line: str) -> None:
    ctx.loop.process_line(line)


# === Then ===
@then(
    parsers.re(
        r'the histogram "(?P<name>[^"]+)" has (?P<count>\d+) samples? '
        r'for path "(?P<path>[^"]*)"'
    ),
    converters={"count": int},
)
def then_sample_count(ctx: IngestScenarioContext, name: str, count: int, path: str) -> None:
    assert sum(_samples(ctx, f"{name}_count", path)) == count


@then(parsers.parse('the histogram "{name}" has a sum of {total:g} for path "{path}"'))
def then_sample_sum(ctx: IngestScenarioContext, name: str, total: float, path: str) -> None:
    assert sum(_samples(ctx, f"{name}_sum", path)) == pytest.approx(total)


@then(parsers.parse('the histogram "{name}" has {count:d} series'))
def then_series_count(ctx: IngestScenarioContext, name: str, count: int) -> None:
    series = [
        sample
        for family in ctx.registry.collector_registry.collect()
        for sample in family.samples
        if sample.name == f"{name}_count"
    ]
    assert len(series) == count


@then("no histogram has been created")
def then_no_histogram(ctx: IngestScenarioContext) -> None:
    assert len(ctx.registry) == 0


@then(parsers.parse('the counter "{name}" is {value:d}'))
def then_counter_value(ctx: IngestScenarioContext, name: str, value: int) -> None:
    assert ctx.registry.sample_value(f"{name}_total") == value
