"""
Matchable attribute catalog.

Names follow the beanstalkd protocol vocabulary exactly (hyphenated
multi-word names such as ``current-jobs-ready``). Callers may also spell a
name as a Python identifier (``current_jobs_ready``) and in any case; both
forms resolve to the same canonical name.
"""

from __future__ import annotations

from collections.abc import Collection

from bean_counter.domain.errors import InvalidMatchKeyError

MATCHABLE_JOB_ATTRIBUTES: frozenset[str] = frozenset(
    {
        "age",
        "body",
        "buries",
        "connection",
        "delay",
        "id",
        "kicks",
        "pri",
        "releases",
        "reserves",
        "state",
        "time-left",
        "timeouts",
        "ttr",
        "tube",
    }
)

MATCHABLE_TUBE_ATTRIBUTES: frozenset[str] = frozenset(
    {
        "cmd-delete",
        "cmd-pause-tube",
        "current-jobs-buried",
        "current-jobs-delayed",
        "current-jobs-ready",
        "current-jobs-reserved",
        "current-jobs-urgent",
        "current-using",
        "current-waiting",
        "current-watching",
        "name",
        "pause",
        "pause-time-left",
        "total-jobs",
    }
)


def canonical_attribute(key: object, catalog: Collection[str]) -> str:
    """
    Resolve `key` to its canonical name in `catalog`.

    Raises InvalidMatchKeyError when `key` is not a string or names no
    attribute in `catalog`.
    """
    if not isinstance(key, str):
        raise InvalidMatchKeyError(key, catalog)
    name = key.strip().lower().replace("_", "-")
    if name not in catalog:
        raise InvalidMatchKeyError(key, catalog)
    return name


def python_name(attribute: str) -> str:
    """``current-jobs-ready`` -> ``current_jobs_ready``."""
    return attribute.replace("-", "_")
