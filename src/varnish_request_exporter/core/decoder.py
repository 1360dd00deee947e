"""Decoder for varnishncsa log lines.

A line is a sequence of space separated ``name="value"``, ``name=value`` or
``name:value`` tokens in the order configured for varnishncsa. Each token is
recognized by its literal prefix from the field schema and its value is read
using that field's quoting style, so quoted values may contain spaces.
"""

import re
from collections.abc import Sequence

from varnish_request_exporter.core.exceptions import DecodeError
from varnish_request_exporter.core.models import DecodedFields, FieldSpec, ValueKind

METHOD = FieldSpec("method", "=", quoted=True, required=True)
STATUS = FieldSpec("status", "=", kind=ValueKind.INTEGER, required=True)
PATH = FieldSpec("path", "=", quoted=True, required=True)
CACHE = FieldSpec("cache", "=", quoted=True)
HOST = FieldSpec("host", "=", quoted=True)
TIME = FieldSpec("time", ":", kind=ValueKind.DECIMAL, required=True)
TIME_FIRSTBYTE = FieldSpec("time_firstbyte", ":", kind=ValueKind.DECIMAL)
# %b logs "-" instead of 0 when no body was sent
RESPSIZE = FieldSpec("respsize", ":", kind=ValueKind.INTEGER, dash_value="0")

_INTEGER_RE = re.compile(r"[0-9]+")
_DECIMAL_RE = re.compile(r"[0-9]+(?:\.[0-9]*)?|\.[0-9]+")


def build_field_schema(
    firstbyte: bool = False, sizes: bool = False
) -> tuple[FieldSpec, ...]:
    """Return the field layout emitted by varnishncsa for the given options.

    Args:
        firstbyte: Include the backend time-to-first-byte field.
        sizes: Include the response size field.

    Returns:
        Ordered tuple of FieldSpec objects.
    """
    schema = [METHOD, STATUS, PATH, CACHE, HOST, TIME]
    if firstbyte:
        schema.append(TIME_FIRSTBYTE)
    if sizes:
        schema.append(RESPSIZE)
    return tuple(schema)


def _match_prefix(line: str, pos: int, specs: Sequence[FieldSpec]) -> FieldSpec | None:
    """Return the spec with the longest prefix starting at pos, if any."""
    best: FieldSpec | None = None
    for spec in specs:
        if line.startswith(spec.prefix, pos) and (
            best is None or len(spec.prefix) > len(best.prefix)
        ):
            best = spec
    return best


def _read_quoted(line: str, start: int, name: str) -> tuple[str, int]:
    """Read a double-quoted value starting at start.

    Returns:
        Tuple of (unescaped value, position after the closing quote).
    """
    if start >= len(line) or line[start] != '"':
        raise DecodeError(f"expected quoted value for field {name!r}", line)
    chars: list[str] = []
    i = start + 1
    while i < len(line):
        ch = line[i]
        if ch == "\\" and i + 1 < len(line) and line[i + 1] in ('"', "\\"):
            chars.append(line[i + 1])
            i += 2
            continue
        if ch == '"':
            return "".join(chars), i + 1
        chars.append(ch)
        i += 1
    raise DecodeError(f"unterminated quoted value for field {name!r}", line)


def _read_bare(line: str, start: int) -> tuple[str, int]:
    end = line.find(" ", start)
    if end == -1:
        end = len(line)
    return line[start:end], end


def _skip_token(line: str, pos: int) -> int:
    """Skip a token that is not part of the schema, honouring quotes."""
    quoted = False
    i = pos
    while i < len(line):
        ch = line[i]
        if quoted:
            if ch == "\\":
                i += 2
                continue
            if ch == '"':
                quoted = False
        elif ch == '"':
            quoted = True
        elif ch == " ":
            break
        i += 1
    return i


def _check_value(spec: FieldSpec, value: str, line: str) -> str | None:
    """Validate a raw value against its declared kind.

    Returns:
        The value to store, or None if the field should be treated as absent.
    """
    if spec.kind is ValueKind.STRING:
        if spec.required and not value:
            raise DecodeError(f"empty value for field {spec.name!r}", line)
        return value
    if value == "-" and not spec.required:
        return spec.dash_value
    pattern = _INTEGER_RE if spec.kind is ValueKind.INTEGER else _DECIMAL_RE
    if not pattern.fullmatch(value):
        raise DecodeError(
            f"invalid {spec.kind.value} value {value!r} for field {spec.name!r}",
            line,
        )
    return value


def decode(line: str, schema: Sequence[FieldSpec]) -> DecodedFields:
    """Decode one log line into a field name to raw value mapping.

    Tokens whose prefix is not part of the schema are skipped. When a field
    occurs more than once, the first occurrence wins.

    Args:
        line: Raw log line, with or without its trailing newline.
        schema: Field layout the producer was configured with.

    Returns:
        Mapping of field name to raw string value. Optional fields missing
        from the line are absent from the mapping.

    Raises:
        DecodeError: If a required field is missing or any field value does
            not parse as its declared kind.
    """
    line = line.rstrip("\r\n")
    raw: DecodedFields = {}
    pos = 0
    while pos < len(line):
        if line[pos] == " ":
            pos += 1
            continue
        spec = _match_prefix(line, pos, schema)
        if spec is None:
            pos = _skip_token(line, pos)
            continue
        start = pos + len(spec.prefix)
        if spec.quoted:
            value, pos = _read_quoted(line, start, spec.name)
        else:
            value, pos = _read_bare(line, start)
        raw.setdefault(spec.name, value)

    fields: DecodedFields = {}
    for spec in schema:
        if spec.name not in raw:
            if spec.required:
                raise DecodeError(f"missing required field {spec.name!r}", line)
            continue
        value = _check_value(spec, raw[spec.name], line)
        if value is not None:
            fields[spec.name] = value
    return fields
