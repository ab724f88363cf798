"""
Predicates — the expected side of an attribute comparison.

Each variant decides whether an actual attribute value satisfies it:

  Equals(value)            actual == value
  InRange(low, high)       low <= actual <= high (both ends inclusive)
  MatchesPattern(pattern)  regex search against the text form of actual
  Satisfies(fn)            truthiness of fn(actual)

as_predicate() turns the plain values callers write in match options into
one of these variants, based only on the kind of the expected value:

  re.Pattern           -> MatchesPattern
  range (step 1)       -> InRange(start, stop - 1)
  range (other step)   -> Satisfies(membership)
  callable             -> Satisfies
  anything else        -> Equals
"""

from __future__ import annotations

import dataclasses
import re
from collections.abc import Callable
from typing import Any


def _text(value: object) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


@dataclasses.dataclass(frozen=True)
class Equals:
    value: Any

    def evaluate(self, actual: object) -> bool:
        # Job bodies are bytes; let callers compare them against str.
        if isinstance(actual, bytes) and isinstance(self.value, str):
            return _text(actual) == self.value
        return bool(actual == self.value)


@dataclasses.dataclass(frozen=True)
class InRange:
    low: Any
    high: Any

    def evaluate(self, actual: object) -> bool:
        try:
            return bool(self.low <= actual <= self.high)
        except TypeError:
            return False


@dataclasses.dataclass(frozen=True)
class MatchesPattern:
    pattern: re.Pattern[str]

    def __init__(self, pattern: str | re.Pattern[str]) -> None:
        compiled = pattern if isinstance(pattern, re.Pattern) else re.compile(pattern)
        object.__setattr__(self, "pattern", compiled)

    def evaluate(self, actual: object) -> bool:
        if actual is None:
            return False
        return self.pattern.search(_text(actual)) is not None


@dataclasses.dataclass(frozen=True)
class Satisfies:
    fn: Callable[[Any], object]

    def evaluate(self, actual: object) -> bool:
        return bool(self.fn(actual))


Predicate = Equals | InRange | MatchesPattern | Satisfies


def as_predicate(expected: object) -> Predicate:
    """Coerce an expected value from match options into a Predicate."""
    match expected:
        case Equals() | InRange() | MatchesPattern() | Satisfies():
            return expected
        case re.Pattern():
            return MatchesPattern(expected)
        case range(step=1):
            return InRange(expected.start, expected.stop - 1)
        case range():
            return Satisfies(expected.__contains__)
        case _ if callable(expected):
            return Satisfies(expected)
        case _:
            return Equals(expected)
