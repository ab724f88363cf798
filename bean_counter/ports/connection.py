"""
QueueConnectionPort — the single port in bean_counter.

One object satisfying this structural Protocol represents one member of a
pool of beanstalkd-style queue servers. Strategies coordinate a sequence of
them; no base class or registration is required.

Failure contract
----------------
Absence and failure are distinct:
  - a tube the server does not know      → tube_stats() returns None
  - a job that no longer exists          → delete_job() returns ALREADY_GONE
  - any connection-level failure         → raises PoolMemberUnreachableError

Adapters must never report a transport failure as absence.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from enum import Enum
from typing import Protocol, runtime_checkable

StatValue = str | int

# Stats whose values are names, never counters, even when they look numeric.
TEXT_STATS = frozenset({"name", "tube", "state"})


def normalize_stats(stats: Mapping[str, object]) -> dict[str, StatValue]:
    """
    Integers stay integers; digit strings become integers; the rest are str.

    Servers speak text, so adapters may report counters as ``"3"``. Values of
    TEXT_STATS are always kept as text.
    """
    normalized: dict[str, StatValue] = {}
    for key, value in stats.items():
        if key in TEXT_STATS:
            normalized[key] = str(value)
        elif isinstance(value, int) and not isinstance(value, bool):
            normalized[key] = value
        elif isinstance(value, str) and value.strip().lstrip("-").isdigit():
            normalized[key] = int(value)
        else:
            normalized[key] = str(value)
    return normalized


class DeleteOutcome(str, Enum):
    """Result of asking one pool member to delete a job."""

    DELETED = "deleted"
    ALREADY_GONE = "already_gone"
    REFUSED = "refused"


@dataclasses.dataclass(frozen=True)
class RawJob:
    """
    A job as reported by a single server.

    stats — the server's ``stats-job`` mapping (protocol key names)
    body  — the job body exactly as stored
    """

    stats: Mapping[str, StatValue]
    body: bytes = b""


@runtime_checkable
class QueueConnectionPort(Protocol):
    """
    Minimal interface required by bean_counter core.

    Implementing adapters (built-in):
      - InMemoryConnection    — in-process beanstalkd model, for testing
      - GreenstalkConnection  — real beanstalkd server via greenstalk
    """

    @property
    def address(self) -> str:
        """Stable, human-readable identifier of the server (e.g. "host:11300")."""
        ...

    async def list_tube_names(self) -> list[str]:
        """Names of every tube the server currently knows about."""
        ...

    async def tube_stats(self, name: str) -> dict[str, StatValue] | None:
        """
        Stats of tube `name` on this server.

        Returns None if the server does not know the tube.
        """
        ...

    async def list_jobs(self) -> list[RawJob]:
        """Every job currently held by the server, in id order."""
        ...

    async def delete_job(self, job_id: int) -> DeleteOutcome:
        """
        Delete job `job_id`.

        Returns DELETED on success, ALREADY_GONE if the job does not exist,
        REFUSED if the server declined (e.g. the job is reserved by another
        client).
        """
        ...
