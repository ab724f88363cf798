"""
bean_counter — inspect and assert against a pool of beanstalkd servers.

Test code enqueues and processes jobs against a pool of independent queue
servers. bean_counter answers "does job/tube X exist and satisfy P across
this pool?" without the caller knowing how many servers there are or which
one holds the answer.

Quick start
-----------
    import asyncio
    import re
    from bean_counter import InMemoryConnection, PoolStrategy

    async def main():
        a, b = InMemoryConnection("a:11300"), InMemoryConnection("b:11300")
        strategy = PoolStrategy([a, b])

        new_jobs = await strategy.collect_new_jobs(
            lambda: a.put(b'{"to": "user@example.com"}', tube="email")
        )
        assert strategy.job_matches(new_jobs[0], tube="email", state="ready")

        async for tube in strategy.tubes():
            if await strategy.tube_matches(tube, name=re.compile("mail")):
                print(await strategy.pretty_print_tube(tube))

    asyncio.run(main())

Match options
-------------
Keys are attribute names in protocol (``current-jobs-ready``) or Python
(``current_jobs_ready``) spelling. Values may be plain values (equality),
``range`` objects (inclusive membership), compiled regexes (search), or
callables (predicate). Unknown keys raise InvalidMatchKeyError.

Connection adapters
-------------------
  - InMemoryConnection    — in-process beanstalkd model (no extra deps)
  - GreenstalkConnection  — real beanstalkd (pip install "bean_counter[greenstalk]")

Custom adapters only need to implement QueueConnectionPort.

Architecture
------------
Follows the Ports & Adapters pattern:
  domain/   — attribute catalog, predicates, Job/TubeStats models, errors
  ports/    — Protocol interfaces (QueueConnectionPort)
  core/     — Matcher, Tube merge, Strategy contract, registry, PoolStrategy
  adapters/ — concrete connection implementations
"""
from __future__ import annotations

from bean_counter.adapters.connection.memory import InMemoryConnection
from bean_counter.config import PoolSettings, build_strategy
from bean_counter.core.matcher import matches
from bean_counter.core.pool import PoolStrategy
from bean_counter.core.registry import (
    StrategyRegistry,
    known_strategy,
    materialize_strategy,
    register_strategy,
    registry,
    strategies,
)
from bean_counter.core.strategy import Strategy
from bean_counter.core.tube import Tube, merge_stats
from bean_counter.domain.attributes import (
    MATCHABLE_JOB_ATTRIBUTES,
    MATCHABLE_TUBE_ATTRIBUTES,
)
from bean_counter.domain.errors import (
    BeanCounterError,
    InvalidMatchKeyError,
    PoolMemberUnreachableError,
    StrategyNotImplementedError,
    UnknownStrategyError,
)
from bean_counter.domain.models import Job, TubeStats
from bean_counter.domain.predicates import (
    Equals,
    InRange,
    MatchesPattern,
    Predicate,
    Satisfies,
)
from bean_counter.ports.connection import DeleteOutcome, QueueConnectionPort, RawJob

__all__ = [
    # Domain
    "Job",
    "TubeStats",
    "MATCHABLE_JOB_ATTRIBUTES",
    "MATCHABLE_TUBE_ATTRIBUTES",
    # Predicates
    "Predicate",
    "Equals",
    "InRange",
    "MatchesPattern",
    "Satisfies",
    # Errors
    "BeanCounterError",
    "InvalidMatchKeyError",
    "PoolMemberUnreachableError",
    "StrategyNotImplementedError",
    "UnknownStrategyError",
    # Port (for typing custom adapters)
    "QueueConnectionPort",
    "RawJob",
    "DeleteOutcome",
    # Core
    "Strategy",
    "PoolStrategy",
    "Tube",
    "matches",
    "merge_stats",
    # Registry
    "StrategyRegistry",
    "registry",
    "register_strategy",
    "known_strategy",
    "materialize_strategy",
    "strategies",
    # Configuration
    "PoolSettings",
    "build_strategy",
    # Built-in adapters
    "InMemoryConnection",
]
