"""
Matcher — evaluate a set of attribute predicates against one entity.

    matches(job, {"state": "buried", "buries": range(6, 101)}, MATCHABLE_JOB_ATTRIBUTES)

Every key is resolved against the allowed catalog before anything is
evaluated, so an unknown key raises InvalidMatchKeyError no matter where it
appears in the options. Values are coerced with as_predicate() and the
overall result is the AND of every predicate, stopping at the first miss.
"""

from __future__ import annotations

from collections.abc import Collection, Mapping
from typing import Any, Protocol

from bean_counter.domain.attributes import canonical_attribute
from bean_counter.domain.predicates import Predicate, as_predicate

CompiledOptions = list[tuple[str, Predicate]]


class _HasAttributes(Protocol):
    """Structural Protocol — any object exposing attribute(name)."""

    def attribute(self, name: str) -> Any: ...


def compile_options(
    options: Mapping[str, object], allowed: Collection[str]
) -> CompiledOptions:
    """Resolve every key and coerce every value. Raises InvalidMatchKeyError."""
    return [
        (canonical_attribute(key, allowed), as_predicate(expected))
        for key, expected in options.items()
    ]


def evaluate(entity: _HasAttributes, compiled: CompiledOptions) -> bool:
    return all(
        predicate.evaluate(entity.attribute(name)) for name, predicate in compiled
    )


def matches(
    entity: _HasAttributes,
    options: Mapping[str, object],
    allowed: Collection[str],
) -> bool:
    """True if every predicate in `options` holds for `entity`."""
    if not options:
        return True
    return evaluate(entity, compile_options(options, allowed))
