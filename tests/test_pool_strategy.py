import asyncio
import re

import pytest

from bean_counter.adapters.connection.memory import InMemoryConnection
from bean_counter.core.pool import PoolStrategy
from bean_counter.core.tube import Tube
from bean_counter.domain.errors import InvalidMatchKeyError, PoolMemberUnreachableError
from bean_counter.domain.models import Job

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def server_a() -> InMemoryConnection:
    return InMemoryConnection("a:11300")


@pytest.fixture
def server_b() -> InMemoryConnection:
    return InMemoryConnection("b:11300")


@pytest.fixture
def strategy(server_a: InMemoryConnection, server_b: InMemoryConnection) -> PoolStrategy:
    return PoolStrategy([server_a, server_b])


async def _all_jobs(strategy: PoolStrategy) -> list[Job]:
    return [job async for job in strategy.jobs()]


async def _all_tubes(strategy: PoolStrategy) -> list[Tube]:
    return [tube async for tube in strategy.tubes()]


# ---------------------------------------------------------------------------
# jobs
# ---------------------------------------------------------------------------


async def test_jobs_empty_pool(strategy: PoolStrategy) -> None:
    assert await _all_jobs(strategy) == []


async def test_jobs_spans_every_member(strategy, server_a, server_b) -> None:
    await server_a.put(b"a1")
    await server_b.put(b"b1")
    await server_b.put(b"b2")
    jobs = await _all_jobs(strategy)
    assert [(j.connection, j.id, j.body) for j in jobs] == [
        ("a:11300", 1, b"a1"),
        ("b:11300", 1, b"b1"),
        ("b:11300", 2, b"b2"),
    ]


async def test_jobs_reflect_protocol_stats(strategy, server_a) -> None:
    await server_a.put(b"payload", tube="email", pri=10, ttr=30)
    [job] = await _all_jobs(strategy)
    assert job.tube == "email"
    assert job.state == "ready"
    assert job.pri == 10
    assert job.ttr == 30


async def test_jobs_reenumerates_on_each_iteration(strategy, server_a) -> None:
    await server_a.put(b"one")
    assert len(await _all_jobs(strategy)) == 1
    await server_a.put(b"two")
    assert len(await _all_jobs(strategy)) == 2


async def test_jobs_unreachable_member_raises(strategy, server_b) -> None:
    server_b.disconnect()
    with pytest.raises(PoolMemberUnreachableError) as exc_info:
        await _all_jobs(strategy)
    assert exc_info.value.address == "b:11300"


# ---------------------------------------------------------------------------
# tubes
# ---------------------------------------------------------------------------


async def test_tubes_deduplicates_names(strategy, server_a, server_b) -> None:
    await server_a.put(b"x", tube="email")
    await server_b.put(b"x", tube="email")
    await server_b.put(b"x", tube="sms")
    names = [tube.name for tube in await _all_tubes(strategy)]
    assert names == ["default", "email", "sms"]


async def test_tubes_merge_stats_across_pool(strategy, server_a, server_b) -> None:
    for _ in range(3):
        await server_a.put(b"x", tube="x")
    for _ in range(4):
        await server_b.put(b"x", tube="x")
    [tube] = [t for t in await _all_tubes(strategy) if t.name == "x"]
    stats = await tube.stats()
    assert stats.current_jobs_ready == 7


async def test_tubes_unreachable_member_raises(strategy, server_a) -> None:
    server_a.disconnect()
    with pytest.raises(PoolMemberUnreachableError):
        await _all_tubes(strategy)


async def test_tube_lookup_by_name(strategy, server_b) -> None:
    await server_b.watch("watched")
    assert await strategy.tube("watched").exists()
    assert not await strategy.tube("nope").exists()


# ---------------------------------------------------------------------------
# job_matches
# ---------------------------------------------------------------------------


async def test_job_matches(strategy, server_a) -> None:
    await server_a.put(b"x" * 60, tube="email")
    job_id = await server_a.reserve()
    assert job_id is None  # "email" is not watched
    await server_a.watch("email")
    await server_a.reserve()
    await server_a.bury(1)
    [job] = await _all_jobs(strategy)

    assert strategy.job_matches(job)
    assert strategy.job_matches(job, state="buried", tube="email")
    assert strategy.job_matches(job, {"buries": range(1, 2), "reserves": 1})
    assert strategy.job_matches(job, body=lambda body: len(body) > 50)
    assert not strategy.job_matches(job, state="ready")
    assert not strategy.job_matches(job, {"buries": range(6, 101)})


async def test_job_matches_keyword_overrides_mapping(strategy, server_a) -> None:
    await server_a.put(b"x")
    [job] = await _all_jobs(strategy)
    assert strategy.job_matches(job, {"state": "buried"}, state="ready")


async def test_job_matches_unknown_key_raises(strategy, server_a) -> None:
    await server_a.put(b"x")
    [job] = await _all_jobs(strategy)
    with pytest.raises(InvalidMatchKeyError):
        strategy.job_matches(job, colour="red")


# ---------------------------------------------------------------------------
# tube_matches
# ---------------------------------------------------------------------------


async def test_tube_matches_empty_options_for_existing_tube(strategy) -> None:
    assert await strategy.tube_matches(strategy.tube("default"))


async def test_tube_matches_missing_tube_never_matches(strategy) -> None:
    assert not await strategy.tube_matches(strategy.tube("missing"))
    assert not await strategy.tube_matches(strategy.tube("missing"), name="missing")


async def test_tube_matches_pattern(strategy, server_a) -> None:
    await server_a.put(b"x", tube="my-test-tube")
    await server_a.put(b"x", tube="production")
    assert await strategy.tube_matches(strategy.tube("my-test-tube"), name=re.compile("test"))
    assert not await strategy.tube_matches(strategy.tube("production"), name=re.compile("test"))


async def test_tube_matches_counters(strategy, server_a, server_b) -> None:
    await server_a.put(b"x", tube="backlog")
    await server_b.put(b"x", tube="backlog")
    tube = strategy.tube("backlog")
    assert await strategy.tube_matches(tube, {"current-jobs-ready": 2, "total_jobs": range(1, 3)})
    assert not await strategy.tube_matches(tube, current_jobs_ready=range(50, 101))


async def test_tube_matches_unknown_key_raises_even_for_missing_tube(strategy) -> None:
    with pytest.raises(InvalidMatchKeyError):
        await strategy.tube_matches(strategy.tube("missing"), state="ready")


async def test_tube_matches_unreachable_member_raises(strategy, server_b) -> None:
    server_b.disconnect()
    with pytest.raises(PoolMemberUnreachableError):
        await strategy.tube_matches(strategy.tube("default"))


# ---------------------------------------------------------------------------
# delete_job
# ---------------------------------------------------------------------------


async def test_delete_job_on_owning_member(strategy, server_a, server_b) -> None:
    await server_a.put(b"a")
    await server_b.put(b"b")
    jobs = await _all_jobs(strategy)
    on_b = next(j for j in jobs if j.connection == "b:11300")
    assert await strategy.delete_job(on_b)
    remaining = await _all_jobs(strategy)
    assert [(j.connection, j.id) for j in remaining] == [("a:11300", 1)]


async def test_delete_job_already_gone_is_true(strategy, server_a) -> None:
    await server_a.put(b"a")
    [job] = await _all_jobs(strategy)
    assert await strategy.delete_job(job)
    assert await strategy.delete_job(job)


async def test_delete_job_refused_is_false(strategy, server_a) -> None:
    await server_a.put(b"a")
    await server_a.reserve()
    [job] = await _all_jobs(strategy)
    assert not await strategy.delete_job(job)
    assert len(await _all_jobs(strategy)) == 1


async def test_delete_job_unknown_member_is_true(strategy) -> None:
    assert await strategy.delete_job(Job(id=1, connection="elsewhere:11300"))


async def test_delete_job_unreachable_member_raises(strategy, server_a) -> None:
    await server_a.put(b"a")
    [job] = await _all_jobs(strategy)
    server_a.disconnect()
    with pytest.raises(PoolMemberUnreachableError):
        await strategy.delete_job(job)


# ---------------------------------------------------------------------------
# collect_new_jobs
# ---------------------------------------------------------------------------


async def test_collect_new_jobs_returns_only_new(strategy, server_a, server_b) -> None:
    await server_a.put(b"old-a")
    await server_b.put(b"old-b", tube="other")

    async def block() -> None:
        await server_a.put(b"A", tube="email")
        await server_b.put(b"B", tube="sms")

    new_jobs = await strategy.collect_new_jobs(block)
    assert sorted(j.body for j in new_jobs) == [b"A", b"B"]


async def test_collect_new_jobs_same_id_on_other_member_is_new(strategy, server_a, server_b) -> None:
    # id 1 already exists on a; id 1 on b is a different job.
    await server_a.put(b"existing")
    new_jobs = await strategy.collect_new_jobs(lambda: server_b.put(b"fresh"))
    assert [(j.connection, j.id, j.body) for j in new_jobs] == [("b:11300", 1, b"fresh")]


async def test_collect_new_jobs_accepts_sync_block(strategy, server_a) -> None:
    calls: list[int] = []
    new_jobs = await strategy.collect_new_jobs(lambda: calls.append(1))
    assert calls == [1]
    assert new_jobs == []


async def test_collect_new_jobs_misses_jobs_removed_in_block(strategy, server_a) -> None:
    async def block() -> None:
        job_id = await server_a.put(b"short-lived")
        await server_a.delete_job(job_id)
        await server_a.put(b"kept")

    new_jobs = await strategy.collect_new_jobs(block)
    assert [j.body for j in new_jobs] == [b"kept"]


async def test_collect_new_jobs_excludes_jobs_from_outside_block(strategy, server_a) -> None:
    first = await strategy.collect_new_jobs(lambda: server_a.put(b"first"))
    second = await strategy.collect_new_jobs(lambda: server_a.put(b"second"))
    assert [j.body for j in first] == [b"first"]
    assert [j.body for j in second] == [b"second"]


# ---------------------------------------------------------------------------
# pretty printing
# ---------------------------------------------------------------------------


async def test_pretty_print_job(strategy, server_a) -> None:
    await server_a.put(b"hello", tube="email")
    [job] = await _all_jobs(strategy)
    text = strategy.pretty_print_job(job)
    assert "tube: email" in text
    assert "body: hello" in text
    assert "time-left: 0" in text
    assert "connection: a:11300" in text


async def test_pretty_print_tube(strategy, server_a, server_b) -> None:
    await server_a.put(b"x", tube="email")
    await server_b.put(b"x", tube="email")
    text = await strategy.pretty_print_tube(strategy.tube("email"))
    assert "name: email" in text
    assert "current-jobs-ready: 2" in text


async def test_pretty_print_missing_tube(strategy) -> None:
    text = await strategy.pretty_print_tube(strategy.tube("ghost"))
    assert "ghost" in text
    assert "not present" in text


# ---------------------------------------------------------------------------
# reset
# ---------------------------------------------------------------------------


async def test_reset_clears_pool(strategy, server_a, server_b) -> None:
    await server_a.put(b"a", tube="email")
    await server_b.put(b"b", tube="sms")
    assert await strategy.reset()
    assert await _all_jobs(strategy) == []


async def test_reset_single_tube(strategy, server_a, server_b) -> None:
    await server_a.put(b"a", tube="email")
    await server_b.put(b"b", tube="sms")
    assert await strategy.reset("email")
    assert [j.tube for j in await _all_jobs(strategy)] == ["sms"]


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------


async def test_concurrent_enumerations_are_independent(strategy, server_a, server_b) -> None:
    await server_a.put(b"a")
    await server_b.put(b"b")
    results = await asyncio.gather(_all_jobs(strategy), _all_jobs(strategy), _all_jobs(strategy))
    for jobs in results:
        assert len(jobs) == 2


def test_repr_lists_addresses(strategy) -> None:
    assert "a:11300" in repr(strategy)
    assert "b:11300" in repr(strategy)


# ---------------------------------------------------------------------------
# Adapters reporting raw protocol text
# ---------------------------------------------------------------------------


class _TextStatsConnection(InMemoryConnection):
    """Reports every tube stat as text, the way the wire protocol does."""

    async def tube_stats(self, name: str) -> dict[str, str] | None:
        stats = await super().tube_stats(name)
        return None if stats is None else {k: str(v) for k, v in stats.items()}


async def test_tube_matches_sums_text_counters() -> None:
    a, b = _TextStatsConnection("a:11300"), _TextStatsConnection("b:11300")
    for _ in range(3):
        await a.put(b"x", tube="x")
    for _ in range(4):
        await b.put(b"x", tube="x")
    strategy = PoolStrategy([a, b])
    assert await strategy.tube_matches(strategy.tube("x"), current_jobs_ready=7)
    assert (await strategy.tube("x").stats()).name == "x"


# ---------------------------------------------------------------------------
# Failing members
# ---------------------------------------------------------------------------


class _SlowConnection(InMemoryConnection):
    """Answers list_jobs() only after a short pause."""

    async def list_jobs(self):
        await asyncio.sleep(0.05)
        self.finished = True
        return await super().list_jobs()


async def test_jobs_failure_waits_for_slow_member(server_b) -> None:
    slow = _SlowConnection("slow:11300")
    slow.finished = False
    server_b.disconnect()
    with pytest.raises(PoolMemberUnreachableError):
        await _all_jobs(PoolStrategy([slow, server_b]))
    assert slow.finished
