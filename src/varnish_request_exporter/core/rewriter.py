"""Path normalization through ordered regular-expression rewrite rules.

Every rule is applied in turn to the output of the previous one and replaces
all non-overlapping matches, so a path may be changed by several rules.
"""

import logging
import re
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import re2

from varnish_request_exporter.core.exceptions import ConfigError
from varnish_request_exporter.core.models import RewriteRule

logger = logging.getLogger(__name__)

_COMMENT_RE = re.compile(r"#.*")
_SPLIT_RE = re.compile(r"\s+")
# $$, ${name} or $name; a name is a group number or a group name
_TEMPLATE_REF_RE = re.compile(r"\$(?:(\$)|\{([A-Za-z0-9_]+)\}|([A-Za-z0-9_]+))")


class PathRewriter:
    """Applies an ordered, immutable sequence of rewrite rules to paths."""

    def __init__(self, rules: Iterable[RewriteRule] = ()) -> None:
        self._rules: tuple[RewriteRule, ...] = tuple(rules)

    @property
    def rules(self) -> tuple[RewriteRule, ...]:
        return self._rules

    def __len__(self) -> int:
        return len(self._rules)

    def normalize(self, path: str) -> str:
        """Rewrite path through every rule in order.

        Args:
            path: Raw request path.

        Returns:
            The normalized path; unchanged when there are no rules.
        """
        for rule in self._rules:
            path = rule.apply(path)
        return path


def _group_number(pattern: Any, name: str) -> int:
    """Resolve a template reference to a group number of pattern."""
    # leading zeros make a name, not a number
    if name.isdigit() and (name == "0" or not name.startswith("0")):
        number = int(name)
        if number > pattern.groups:
            raise ValueError(f"invalid group reference {name}")
        return number
    try:
        return pattern.groupindex[name]
    except KeyError:
        raise ValueError(f"unknown group name {name!r}") from None


def parse_template(pattern: Any, replacement: str) -> tuple[str | int, ...]:
    """Parse a replacement template into literal text and group numbers.

    ``$1``, ``${1}``, ``$name`` and ``${name}`` refer to groups of pattern,
    ``$$`` is a literal ``$``. An unbraced name extends as far as possible.
    Any other ``$`` and every backslash are literal.

    Raises:
        ValueError: If a reference names a group pattern does not define.
    """
    pieces: list[str | int] = []
    literal = ""
    pos = 0
    for match in _TEMPLATE_REF_RE.finditer(replacement):
        literal += replacement[pos : match.start()]
        pos = match.end()
        dollar, braced, bare = match.groups()
        if dollar:
            literal += "$"
            continue
        if literal:
            pieces.append(literal)
            literal = ""
        pieces.append(_group_number(pattern, braced or bare))
    literal += replacement[pos:]
    if literal:
        pieces.append(literal)
    return tuple(pieces)


def compile_rule(pattern: str, replacement: str = "") -> RewriteRule:
    """Compile a single rewrite rule.

    Patterns use RE2 syntax and match in time linear in the path length.

    Args:
        pattern: Regular expression searched anywhere in the path.
        replacement: Substitution template, may use ``$1``/``${name}``
            back-references.

    Returns:
        The compiled RewriteRule.

    Raises:
        ConfigError: If the pattern does not compile or the replacement
            references a group the pattern does not define.
    """
    source = f"{pattern} {replacement}".rstrip()
    try:
        compiled = re2.compile(pattern)
        template = parse_template(compiled, replacement)
    except (re2.error, ValueError) as e:
        raise ConfigError(f"invalid rewrite rule {source!r}: {e}") from e
    return RewriteRule(
        pattern=compiled, replacement=replacement, template=template, source=source
    )


def parse_rules(text: str) -> list[RewriteRule]:
    """Parse rewrite rules from text, one rule per line.

    Comments start with ``#`` and run to the end of the line. Each remaining
    non-blank line holds a pattern, optionally followed by whitespace and a
    replacement. A pattern without a replacement deletes its matches.

    Args:
        text: Contents of a path mappings file.

    Returns:
        Rules in file order.

    Raises:
        ConfigError: If any rule is invalid. The message names the line.
    """
    rules: list[RewriteRule] = []
    for line_no, raw in enumerate(text.splitlines(), start=1):
        line = _COMMENT_RE.sub("", raw).strip()
        if not line:
            continue
        parts = _SPLIT_RE.split(line, maxsplit=1)
        try:
            rule = compile_rule(*parts)
        except ConfigError as e:
            raise ConfigError(f"line {line_no}: {e}") from e
        if len(parts) == 1:
            logger.debug("mapping strip: %s", parts[0])
        else:
            logger.debug("mapping replace: %s => %s", parts[0], parts[1])
        rules.append(rule)
    return rules


def load_rules(path: str | Path | None) -> list[RewriteRule]:
    """Load rewrite rules from a file.

    Args:
        path: Path of the mappings file. None or empty means no rules.

    Returns:
        Rules in file order.

    Raises:
        ConfigError: If the file cannot be read or holds an invalid rule.
    """
    if not path:
        return []
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"cannot read path mappings file {str(path)!r}: {e}") from e
    try:
        return parse_rules(text)
    except ConfigError as e:
        raise ConfigError(f"{path}: {e}") from e
