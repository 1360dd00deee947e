"""Port interfaces for metric collectors.

These protocols define the contracts that collector adapters must implement.
The registry depends only on these interfaces, not on a concrete collector.
"""

from collections.abc import Mapping
from typing import Protocol, runtime_checkable

from prometheus_client import CollectorRegistry

from varnish_request_exporter.core.models import MetricIdentity


@runtime_checkable
class ObservationRecorder(Protocol):
    """Port for anything that records a numeric value under a label set.

    Implementations must tolerate concurrent calls to ``record`` from the
    ingest worker while the exporter reads their state.
    Examples: HistogramRecorder.
    """

    def record(self, labels: Mapping[str, str], value: float) -> None:
        """Record one observed value under the given label values."""
        ...


class RecorderFactory(Protocol):
    """Port for creating a recorder for a metric identity.

    A factory registers whatever collectors it creates with the given
    CollectorRegistry and must raise ValueError when the registry rejects
    them.
    """

    def __call__(
        self, identity: MetricIdentity, registry: CollectorRegistry
    ) -> ObservationRecorder:
        """Create and register a recorder for identity."""
        ...
