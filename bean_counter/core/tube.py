"""
Tube — one named queue as seen across every member of a pool.

A Tube holds only its name and the pool it belongs to. Stats are fetched
from every member on each call and merged into a single pool-wide view;
nothing is cached, so consecutive calls may observe different state.

Merge policy (merge_stats)
--------------------------
  - members that do not know the tube contribute nothing
  - a key whose every value is numeric is summed across members
    (current-jobs-ready, total-jobs, ... are per-server shards); digit
    strings such as "3" count as numeric, except for name-like stats
  - any other key keeps the value of the first reporting member, in pool order
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from bean_counter.core.fanout import gather_members
from bean_counter.domain.models import TubeStats
from bean_counter.ports.connection import TEXT_STATS, QueueConnectionPort, StatValue

logger = logging.getLogger(__name__)


def _as_number(key: str, value: object) -> int | float | None:
    """The numeric reading of a stat value, or None if it is not a counter."""
    if key in TEXT_STATS or isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value)
    return None


def merge_stats(per_member: Iterable[Mapping[str, StatValue] | None]) -> dict[str, Any]:
    """Merge per-member stats mappings; see the module docstring for the policy."""
    observed: dict[str, list[StatValue]] = {}
    for stats in per_member:
        if not stats:
            continue
        for key, value in stats.items():
            observed.setdefault(key, []).append(value)

    merged: dict[str, Any] = {}
    for key, values in observed.items():
        numbers = [_as_number(key, v) for v in values]
        if all(n is not None for n in numbers):
            merged[key] = sum(numbers)  # type: ignore[arg-type]
        else:
            merged[key] = values[0]
    return merged


@dataclasses.dataclass(frozen=True)
class Tube:
    """
    Pool-wide view of tube `name`.

    Parameters
    ----------
    name : tube name
    pool : the members to query, in a fixed order

    Per-attribute accessors live on the merged snapshot returned by
    stats(), e.g. `(await tube.stats()).current_jobs_ready`.
    """

    name: str
    pool: Sequence[QueueConnectionPort] = dataclasses.field(repr=False, compare=False)

    async def to_hash(self) -> dict[str, Any]:
        """
        Merged stats across the pool. Empty if no member knows the tube.

        Raises PoolMemberUnreachableError if any member fails, once every
        member has responded or failed; partial results are never returned.
        """
        per_member = await gather_members(
            *(member.tube_stats(self.name) for member in self.pool)
        )
        merged = merge_stats(per_member)
        logger.debug(
            "tube %s reported by %d of %d members",
            self.name,
            sum(1 for stats in per_member if stats),
            len(self.pool),
        )
        return merged

    async def exists(self) -> bool:
        """True if at least one member reports the tube."""
        return bool(await self.to_hash())

    async def stats(self) -> TubeStats:
        """Freshly merged stats with one typed accessor per tube attribute."""
        return TubeStats.model_validate(await self.to_hash())

    async def attribute(self, name: str) -> Any:
        """Freshly merged value of one matchable tube attribute."""
        return (await self.stats()).attribute(name)
