"""Registry mapping metric identities to live collectors.

Each (metric name, label names) identity gets exactly one collector, created
on its first observation. Creation is serialized by a lock so concurrent
first observations cannot register the same metric twice; recording into an
existing collector happens outside the lock.
"""

import logging
import threading
import time
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

from varnish_request_exporter.core.exceptions import RegistrationError
from varnish_request_exporter.core.models import MetricIdentity, Observation
from varnish_request_exporter.core.observations import RESPONSE_SIZE
from varnish_request_exporter.core.ports import ObservationRecorder, RecorderFactory

logger = logging.getLogger(__name__)

DEFAULT_HISTOGRAM_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10)
SIZE_HISTOGRAM_BUCKETS = (
    256,
    1024,
    4096,
    16384,
    65536,
    262144,
    1048576,
    4194304,
    16777216,
    67108864,
)


class HistogramRecorder:
    """ObservationRecorder backed by a labelled prometheus_client Histogram."""

    def __init__(
        self,
        identity: MetricIdentity,
        registry: CollectorRegistry,
        buckets: Sequence[float] = DEFAULT_HISTOGRAM_BUCKETS,
        documentation: str | None = None,
    ) -> None:
        self.identity = identity
        self.histogram = Histogram(
            identity.name,
            documentation or f"Varnish request log value for {identity.name}",
            labelnames=identity.label_names,
            buckets=buckets,
            registry=registry,
        )

    def record(self, labels: Mapping[str, str], value: float) -> None:
        if self.identity.label_names:
            self.histogram.labels(**labels).observe(value)
        else:
            self.histogram.observe(value)


def histogram_factory(
    buckets: Mapping[str, Sequence[float]] | None = None,
) -> RecorderFactory:
    """Return a factory creating HistogramRecorders.

    Args:
        buckets: Bucket boundaries per metric name. Metrics not listed use
            DEFAULT_HISTOGRAM_BUCKETS. Defaults to byte sized buckets for the
            response size metric.
    """
    per_metric = dict(buckets) if buckets is not None else {RESPONSE_SIZE: SIZE_HISTOGRAM_BUCKETS}

    def create(identity: MetricIdentity, registry: CollectorRegistry) -> ObservationRecorder:
        return HistogramRecorder(
            identity,
            registry,
            buckets=per_metric.get(identity.name, DEFAULT_HISTOGRAM_BUCKETS),
        )

    return create


@dataclass(frozen=True)
class RegistryEntry:
    """A collector owned by the registry.

    Attributes:
        identity: Identity the collector was created for.
        recorder: The live collector.
        created: Unix timestamp of creation.
    """

    identity: MetricIdentity
    recorder: ObservationRecorder
    created: float = field(default_factory=time.time)


class MetricRegistry:
    """Owns every collector the exporter creates.

    Entries are never replaced or removed; there is no reset. The underlying
    CollectorRegistry is what the metrics endpoint serializes.
    """

    def __init__(
        self,
        collector_registry: CollectorRegistry | None = None,
        recorder_factory: RecorderFactory | None = None,
    ) -> None:
        """Initialize the registry.

        Args:
            collector_registry: prometheus_client registry collectors are
                registered with. Defaults to a new private registry.
            recorder_factory: Creates the collector for a new identity.
                Defaults to histogram_factory().
        """
        self.collector_registry = (
            collector_registry if collector_registry is not None else CollectorRegistry()
        )
        self._factory = recorder_factory or histogram_factory()
        self._entries: dict[MetricIdentity, RegistryEntry] = {}
        self._counters: dict[str, Counter] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, identity: object) -> bool:
        return identity in self._entries

    def identities(self) -> Iterator[MetricIdentity]:
        with self._lock:
            return iter(list(self._entries))

    def get_or_create(self, identity: MetricIdentity) -> ObservationRecorder:
        """Return the recorder for identity, creating it on first use.

        Args:
            identity: Metric name and label names.

        Returns:
            The one recorder registered for identity.

        Raises:
            RegistrationError: If the collector cannot be created, e.g. the
                metric name is already registered with other label names.
        """
        entry = self._entries.get(identity)
        if entry is not None:
            return entry.recorder
        with self._lock:
            entry = self._entries.get(identity)
            if entry is None:
                try:
                    recorder = self._factory(identity, self.collector_registry)
                except ValueError as e:
                    raise RegistrationError(
                        f"cannot register {identity.name} with labels "
                        f"{list(identity.label_names)}: {e}",
                        metric=identity.name,
                    ) from e
                entry = RegistryEntry(identity=identity, recorder=recorder)
                self._entries[identity] = entry
                logger.debug(
                    "registered %s with labels %s", identity.name, identity.label_names
                )
        return entry.recorder

    def record_observation(self, observation: Observation) -> None:
        """Record an observation into its collector.

        Raises:
            RegistrationError: If the collector cannot be created. Nothing is
                recorded in that case.
        """
        recorder = self.get_or_create(observation.identity)
        recorder.record(observation.labels, observation.value)

    def counter(self, name: str, documentation: str) -> Counter:
        """Return the bookkeeping counter called name, creating it once."""
        with self._lock:
            counter = self._counters.get(name)
            if counter is None:
                counter = Counter(name, documentation, registry=self.collector_registry)
                self._counters[name] = counter
            return counter

    def sample_value(self, name: str, labels: Mapping[str, str] | None = None) -> float | None:
        """Return the current value of a sample, or None if it does not exist.

        Args:
            name: Sample name, e.g. ``varnish_request_time_seconds_count``.
            labels: Label values of the sample.
        """
        return self.collector_registry.get_sample_value(name, dict(labels or {}))

    def expose(self) -> bytes:
        """Serialize all collectors in the Prometheus text format."""
        return generate_latest(self.collector_registry)
