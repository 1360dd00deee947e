"""Ingest loop: decode, build and record for each incoming log line."""

import logging
from collections.abc import Iterable, Sequence

from varnish_request_exporter.core.decoder import decode
from varnish_request_exporter.core.exceptions import (
    DecodeError,
    ObservationError,
    RegistrationError,
)
from varnish_request_exporter.core.models import FieldSpec
from varnish_request_exporter.core.observations import ObservationBuilder
from varnish_request_exporter.core.registry import MetricRegistry

logger = logging.getLogger(__name__)

MESSAGES_COUNTER = "varnish_request_exporter_log_messages"
PARSE_FAILURES_COUNTER = "varnish_request_exporter_log_parse_failure"
REGISTRATION_FAILURES_COUNTER = "varnish_request_exporter_registration_failures"


class IngestLoop:
    """Processes log lines one at a time, in arrival order.

    Per-line errors never escape: undecodable lines and lines whose fields
    cannot be turned into observations are counted as parse failures and
    dropped before touching any histogram. An observation whose collector
    cannot be created is counted as a registration failure and dropped,
    while the line's other observations are still recorded.
    """

    def __init__(
        self,
        registry: MetricRegistry,
        schema: Sequence[FieldSpec],
        builder: ObservationBuilder,
    ) -> None:
        self.registry = registry
        self.schema = tuple(schema)
        self.builder = builder
        self.lines = 0
        self.messages = registry.counter(
            MESSAGES_COUNTER, "Current total log messages received."
        )
        self.parse_failures = registry.counter(
            PARSE_FAILURES_COUNTER, "Number of errors while parsing log messages."
        )
        self.registration_failures = registry.counter(
            REGISTRATION_FAILURES_COUNTER,
            "Number of observations dropped because their collector could not be created.",
        )

    def process_line(self, line: str) -> int:
        """Decode one line and record its observations.

        Args:
            line: Raw log line.

        Returns:
            Number of observations recorded.
        """
        self.lines += 1
        self.messages.inc()
        try:
            observations = self.builder.build(decode(line, self.schema))
        except (DecodeError, ObservationError) as e:
            self.parse_failures.inc()
            logger.warning("dropping log line: %s", e)
            logger.debug("dropped line: %r", line)
            return 0

        recorded = 0
        for observation in observations:
            try:
                self.registry.record_observation(observation)
            except RegistrationError as e:
                self.registration_failures.inc()
                logger.error("dropping observation: %s", e)
                continue
            recorded += 1
        return recorded

    def run(self, lines: Iterable[str]) -> int:
        """Process lines until the source is exhausted.

        Args:
            lines: Sequential source of log lines; iteration may block.

        Returns:
            Number of lines processed.
        """
        count = 0
        for line in lines:
            self.process_line(line)
            count += 1
        logger.info("log source exhausted after %d messages", count)
        return count
