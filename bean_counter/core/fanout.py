"""
Pool fan-out: run one request per pool member and wait for all of them.

A failing member never leaves its siblings running in the background: every
request settles (returns or raises) before gather_members() returns or
re-raises. When several members fail, the first failure in pool order is
raised.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

T = TypeVar("T")


async def gather_members(*requests: Awaitable[T]) -> list[T]:
    """Await every request concurrently; results are in pool order."""
    outcomes = await asyncio.gather(*requests, return_exceptions=True)
    for outcome in outcomes:
        if isinstance(outcome, BaseException):
            raise outcome
    return list(outcomes)  # type: ignore[arg-type]
