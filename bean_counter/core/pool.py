"""
PoolStrategy — a Strategy over a fixed pool of queue connections.

Every enumeration fans out one request per pool member concurrently and
waits for all of them before yielding anything; a PoolMemberUnreachableError
from any member aborts the whole operation once every other member has
responded or failed.

Jobs live on exactly one member, so they are never merged: a job is
identified pool-wide by (connection address, id). Tubes span the pool and
are merged as described in core/tube.py.

Usage
-----
    from bean_counter import InMemoryConnection, PoolStrategy

    a, b = InMemoryConnection("a:11300"), InMemoryConnection("b:11300")
    strategy = PoolStrategy([a, b])

    new_jobs = await strategy.collect_new_jobs(lambda: a.put(b"payload", tube="email"))
    assert strategy.job_matches(new_jobs[0], tube="email", state="ready")
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import AsyncIterator, Mapping, Sequence

from bean_counter.core.fanout import gather_members
from bean_counter.core.matcher import compile_options, evaluate, matches
from bean_counter.core.registry import register_strategy
from bean_counter.core.strategy import NewJobsBlock, Strategy, match_options
from bean_counter.core.tube import Tube
from bean_counter.domain.attributes import (
    MATCHABLE_JOB_ATTRIBUTES,
    MATCHABLE_TUBE_ATTRIBUTES,
)
from bean_counter.domain.models import Job, TubeStats
from bean_counter.ports.connection import DeleteOutcome, QueueConnectionPort

logger = logging.getLogger(__name__)


def _render(value: object) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


@register_strategy("pool")
class PoolStrategy(Strategy):
    """
    Pool-backed strategy.

    Parameters
    ----------
    pool : the queue connections to coordinate, in a fixed order. The order
           decides which member wins when non-numeric tube stats disagree.
    """

    def __init__(self, pool: Sequence[QueueConnectionPort]) -> None:
        self.pool: tuple[QueueConnectionPort, ...] = tuple(pool)

    def __repr__(self) -> str:
        return f"PoolStrategy(pool={[m.address for m in self.pool]!r})"

    # ------------------------------------------------------------------ #
    # Enumeration                                                          #
    # ------------------------------------------------------------------ #

    async def jobs(self) -> AsyncIterator[Job]:
        for job in await self._snapshot_jobs():
            yield job

    async def tubes(self) -> AsyncIterator[Tube]:
        per_member = await gather_members(
            *(member.list_tube_names() for member in self.pool)
        )
        names = list(dict.fromkeys(name for names in per_member for name in names))
        logger.debug("enumerated %d tubes across %d members", len(names), len(self.pool))
        for name in names:
            yield self.tube(name)

    def tube(self, name: str) -> Tube:
        """The pool-wide Tube called `name`, whether or not it exists yet."""
        return Tube(name, self.pool)

    # ------------------------------------------------------------------ #
    # Matching                                                             #
    # ------------------------------------------------------------------ #

    def job_matches(
        self, job: Job, options: Mapping[str, object] | None = None, **kwargs: object
    ) -> bool:
        return matches(job, match_options(options, kwargs), MATCHABLE_JOB_ATTRIBUTES)

    async def tube_matches(
        self, tube: Tube, options: Mapping[str, object] | None = None, **kwargs: object
    ) -> bool:
        compiled = compile_options(
            match_options(options, kwargs), MATCHABLE_TUBE_ATTRIBUTES
        )
        merged = await tube.to_hash()
        if not merged:
            return False
        return evaluate(TubeStats.model_validate(merged), compiled)

    # ------------------------------------------------------------------ #
    # Mutation                                                             #
    # ------------------------------------------------------------------ #

    async def delete_job(self, job: Job) -> bool:
        member = self._member(job.connection)
        if member is None:
            logger.warning(
                "job %s belongs to %s, which is not in the pool; treating it as gone",
                job.id,
                job.connection,
            )
            return True
        outcome = await member.delete_job(job.id)
        logger.debug("delete job %s on %s: %s", job.id, member.address, outcome.value)
        return outcome is not DeleteOutcome.REFUSED

    async def collect_new_jobs(self, block: NewJobsBlock) -> list[Job]:
        frontier = {job.key for job in await self._snapshot_jobs()}
        result = block()
        if inspect.isawaitable(result):
            await result
        new_jobs = [job for job in await self._snapshot_jobs() if job.key not in frontier]
        logger.debug("collected %d new jobs", len(new_jobs))
        return new_jobs

    # ------------------------------------------------------------------ #
    # Diagnostics                                                          #
    # ------------------------------------------------------------------ #

    def pretty_print_job(self, job: Job) -> str:
        return "\n".join(
            f"{key}: {_render(value)}" for key, value in job.to_hash().items()
        )

    async def pretty_print_tube(self, tube: Tube) -> str:
        merged = await tube.to_hash()
        if not merged:
            return f"name: {tube.name} (not present in pool)"
        return "\n".join(f"{key}: {_render(value)}" for key, value in merged.items())

    # ------------------------------------------------------------------ #
    # Internal                                                             #
    # ------------------------------------------------------------------ #

    async def _snapshot_jobs(self) -> list[Job]:
        per_member = await gather_members(*(member.list_jobs() for member in self.pool))
        jobs = [
            Job.from_raw(raw, member.address)
            for member, raws in zip(self.pool, per_member)
            for raw in raws
        ]
        logger.debug("enumerated %d jobs across %d members", len(jobs), len(self.pool))
        return jobs

    def _member(self, address: str) -> QueueConnectionPort | None:
        return next((m for m in self.pool if m.address == address), None)
