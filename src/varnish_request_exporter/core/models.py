"""Core domain models for log decoding and metric aggregation."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

# Field name -> raw string value for one decoded log line.
DecodedFields = dict[str, str]


class ValueKind(Enum):
    """Type a field's raw value must parse as."""

    STRING = "string"
    INTEGER = "integer"
    DECIMAL = "decimal"


@dataclass(frozen=True)
class FieldSpec:
    """One token of the configured log line layout.

    Attributes:
        name: Field name used as key in DecodedFields (e.g. "status").
        delimiter: Separator between name and value, "=" or ":".
        quoted: True if the value is wrapped in double quotes.
        kind: Type the raw value must parse as.
        required: Whether a line without this field is malformed.
        dash_value: Value stored when an optional numeric field is logged
            as "-". None drops the field instead.
    """

    name: str
    delimiter: str = "="
    quoted: bool = False
    kind: ValueKind = ValueKind.STRING
    required: bool = False
    dash_value: str | None = None

    @property
    def prefix(self) -> str:
        """Literal token prefix, e.g. ``method=`` or ``time:``."""
        return f"{self.name}{self.delimiter}"


@dataclass(frozen=True)
class RewriteRule:
    """A compiled path rewrite rule.

    Attributes:
        pattern: Compiled RE2 expression searched anywhere in the path.
        replacement: Substitution template as written; empty deletes every
            match.
        template: Parsed replacement: literal strings and group numbers.
        source: Rule text as it appeared in the rules file.
    """

    pattern: Any
    replacement: str = ""
    template: tuple[str | int, ...] = ()
    source: str = ""

    def apply(self, path: str) -> str:
        """Replace every non-overlapping match of the pattern in path."""
        return self.pattern.sub(self._expand, path)

    def _expand(self, match: Any) -> str:
        # groups that did not participate expand to ""
        return "".join(
            piece if isinstance(piece, str) else match.group(piece) or ""
            for piece in self.template
        )


@dataclass(frozen=True)
class Observation:
    """A single value derived from one log line.

    Attributes:
        name: Metric name (e.g. varnish_request_time_seconds).
        value: Observed magnitude in seconds or bytes, never negative.
        labels: Ordered label name to label value mapping.
    """

    name: str
    value: float
    labels: dict[str, str] = field(default_factory=dict)

    @property
    def identity(self) -> "MetricIdentity":
        return MetricIdentity(name=self.name, label_names=tuple(sorted(self.labels)))


@dataclass(frozen=True)
class MetricIdentity:
    """Key of a registry entry: metric name plus sorted label names."""

    name: str
    label_names: tuple[str, ...] = ()
