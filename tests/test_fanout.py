import asyncio

import pytest

from bean_counter.core.fanout import gather_members
from bean_counter.domain.errors import PoolMemberUnreachableError

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _answer(value: int, delay: float = 0.0) -> int:
    await asyncio.sleep(delay)
    return value


async def _fail(address: str, delay: float = 0.0) -> int:
    await asyncio.sleep(delay)
    raise PoolMemberUnreachableError(address, ConnectionRefusedError("down"))


# ---------------------------------------------------------------------------
# gather_members
# ---------------------------------------------------------------------------


async def test_results_in_pool_order():
    assert await gather_members(_answer(1, 0.02), _answer(2), _answer(3, 0.01)) == [1, 2, 3]


async def test_no_requests():
    assert await gather_members() == []


async def test_failure_waits_for_every_member():
    finished: list[str] = []

    async def slow() -> int:
        await asyncio.sleep(0.05)
        finished.append("slow")
        return 1

    with pytest.raises(PoolMemberUnreachableError):
        await gather_members(slow(), _fail("b"))
    assert finished == ["slow"]


async def test_first_failure_in_pool_order_wins():
    with pytest.raises(PoolMemberUnreachableError) as exc_info:
        await gather_members(_fail("a", delay=0.02), _answer(1), _fail("c"))
    assert exc_info.value.address == "a"
