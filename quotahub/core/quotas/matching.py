"""
Pattern rules used to assign raw quotas to aggregation groups.

A configured pattern is compiled once into one of the rule variants below:

- ``GlobRule``: the pattern contains ``*`` or ``?``
- ``RegexRule``: the pattern contains regex metacharacters
- ``TokenRule``: anything else; an exact token match on non-alphanumeric
  boundaries, falling back to substring containment

All matching is case-insensitive. A regex that fails to compile becomes a
``NeverRule`` so group resolution never raises.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Protocol

logger = logging.getLogger(__name__)

_REGEX_HINT = re.compile(r"\.\*|\.\+|[+^${}()|\[\]\\]")
_TOKEN_SPLIT = re.compile(r"[^a-z0-9]+")


class MatchRule(Protocol):
    pattern: str

    def matches(self, target: str) -> bool: ...


@dataclass(frozen=True, slots=True)
class GlobRule:
    pattern: str
    compiled: re.Pattern[str]

    def matches(self, target: str) -> bool:
        return self.compiled.search(target) is not None


@dataclass(frozen=True, slots=True)
class RegexRule:
    pattern: str
    compiled: re.Pattern[str]

    def matches(self, target: str) -> bool:
        return self.compiled.search(target) is not None


@dataclass(frozen=True, slots=True)
class TokenRule:
    pattern: str
    word: str

    def matches(self, target: str) -> bool:
        lowered = target.lower()
        if self.word in tokenize(lowered):
            return True
        return self.word in lowered


@dataclass(frozen=True, slots=True)
class NeverRule:
    pattern: str

    def matches(self, target: str) -> bool:
        return False


def tokenize(text: str) -> list[str]:
    return [token for token in _TOKEN_SPLIT.split(text.lower()) if token]


def glob_to_regex(pattern: str) -> str:
    parts: list[str] = []
    for char in pattern:
        if char == "*":
            parts.append(".*")
        elif char == "?":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return "".join(parts)


def compile_rule(pattern: str) -> MatchRule:
    stripped = pattern.strip()
    if "*" in stripped or "?" in stripped:
        return GlobRule(pattern=stripped, compiled=re.compile(glob_to_regex(stripped), re.IGNORECASE))
    if _REGEX_HINT.search(stripped):
        try:
            return RegexRule(pattern=stripped, compiled=re.compile(stripped, re.IGNORECASE))
        except re.error as exc:
            logger.debug("Ignoring invalid group pattern pattern=%r error=%s", stripped, exc)
            return NeverRule(pattern=stripped)
    return TokenRule(pattern=stripped, word=stripped.lower())


def compile_rules(patterns: tuple[str, ...] | list[str]) -> tuple[MatchRule, ...]:
    return tuple(compile_rule(pattern) for pattern in patterns if pattern.strip())
