"""
Strategy — the capability set every way of inspecting a queue pool offers.

The base class only documents the contract: each capability raises
StrategyNotImplementedError when called on it. Concrete strategies override
all of them and register themselves with register_strategy() (see
core/registry.py).

Capabilities
------------
  jobs()                      async iterator over every job in the pool
  tubes()                     async iterator over every tube in the pool
  job_matches(job, options)   all predicates hold for job
  tube_matches(tube, options) tube exists and all predicates hold for it
  delete_job(job)             delete a job wherever it lives
  collect_new_jobs(block)     jobs created while block ran
  pretty_print_job(job)       diagnostic rendering of a job
  pretty_print_tube(tube)     diagnostic rendering of a tube

Match options map attribute names (protocol or Python spelling, any case)
to expected values: plain values compare for equality, ranges test
inclusive membership, compiled regexes search the text form, callables are
invoked with the actual value. See domain/predicates.py.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable, Mapping
from typing import TYPE_CHECKING

from bean_counter.domain.errors import StrategyNotImplementedError
from bean_counter.domain.models import Job

if TYPE_CHECKING:
    from bean_counter.core.tube import Tube

NewJobsBlock = Callable[[], object]


def match_options(
    options: Mapping[str, object] | None, extra: Mapping[str, object]
) -> dict[str, object]:
    """Combine an options mapping with keyword options (keywords win)."""
    return {**(options or {}), **extra}


class Strategy:
    """Abstract contract for enumerating, matching and deleting pool entities."""

    def jobs(self) -> AsyncIterator[Job]:
        """
        Every job visible across the pool at the moment of iteration.

        Each iteration re-queries the pool.
        """
        raise StrategyNotImplementedError("jobs")

    def tubes(self) -> AsyncIterator[Tube]:
        """One Tube per distinct tube name known to any pool member."""
        raise StrategyNotImplementedError("tubes")

    def job_matches(
        self, job: Job, options: Mapping[str, object] | None = None, **kwargs: object
    ) -> bool:
        """
        True if every option holds for `job`.

        Keys must name attributes in MATCHABLE_JOB_ATTRIBUTES; no options
        matches any job.

            strategy.job_matches(job, state="reserved")
            strategy.job_matches(job, body=lambda body: len(body) > 50)
            strategy.job_matches(job, {"buries": range(6, 101)})
        """
        raise StrategyNotImplementedError("job_matches")

    async def tube_matches(
        self, tube: Tube, options: Mapping[str, object] | None = None, **kwargs: object
    ) -> bool:
        """
        True if `tube` exists and every option holds for its merged stats.

        Keys must name attributes in MATCHABLE_TUBE_ATTRIBUTES.

            await strategy.tube_matches(tube, name=re.compile("test"))
            await strategy.tube_matches(tube, {"current-jobs-ready": range(50, 101)})
        """
        raise StrategyNotImplementedError("tube_matches")

    async def delete_job(self, job: Job) -> bool:
        """
        Delete `job` from whichever pool member holds it.

        True if deleted or already gone, False if deletion was refused.
        """
        raise StrategyNotImplementedError("delete_job")

    async def collect_new_jobs(self, block: NewJobsBlock) -> list[Job]:
        """
        Run `block` and return the jobs that appeared in the pool meanwhile.

        `block` may be a plain callable or return an awaitable. Jobs created
        and removed entirely within `block` are not observed.
        """
        raise StrategyNotImplementedError("collect_new_jobs")

    def pretty_print_job(self, job: Job) -> str:
        """Human-readable rendering of `job` for failure diagnostics."""
        raise StrategyNotImplementedError("pretty_print_job")

    async def pretty_print_tube(self, tube: Tube) -> str:
        """Human-readable rendering of `tube` for failure diagnostics."""
        raise StrategyNotImplementedError("pretty_print_tube")

    async def reset(self, tube_name: str | None = None) -> bool:
        """
        Delete every job in the pool, or only those in `tube_name`.

        Returns True if every delete succeeded.
        """
        success = True
        async for job in self.jobs():
            if tube_name is not None and job.tube != tube_name:
                continue
            success = await self.delete_job(job) and success
        return success
