"""
GreenstalkConnection — a real beanstalkd server via greenstalk.

Install extras: pip install "bean_counter[greenstalk]"

greenstalk is a blocking client, so every command runs in a thread-pool
worker (asyncio.to_thread) while holding a per-connection lock: one socket,
one command at a time.

Enumerating jobs
----------------
beanstalkd has no "list jobs" command. list_jobs() climbs the id space
instead: it puts a probe job into a private tube and deletes it right away,
which reveals the highest id the server has handed out, then peeks every
id below it. Ids that are gone by the time they are peeked are skipped.

Failure mapping
---------------
  NOT_FOUND from the server         → absence (None / ALREADY_GONE / skipped)
  socket errors, other server errors → PoolMemberUnreachableError
The socket is dropped after a failure and reopened on the next command.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import threading
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, TypeVar

from bean_counter.domain.errors import PoolMemberUnreachableError
from bean_counter.ports.connection import (
    DeleteOutcome,
    RawJob,
    StatValue,
    normalize_stats,
)

if TYPE_CHECKING:
    from types import ModuleType

    from greenstalk import Client

logger = logging.getLogger(__name__)

DEFAULT_PORT = 11300
PROBE_TUBE = "bean_counter.probe"

T = TypeVar("T")


def _import_greenstalk() -> ModuleType:
    try:
        import greenstalk
    except ImportError as exc:
        raise ImportError(
            "GreenstalkConnection requires greenstalk. "
            "Install with: pip install 'bean_counter[greenstalk]'"
        ) from exc
    return greenstalk


@dataclasses.dataclass
class GreenstalkConnection:
    """
    One beanstalkd server.

    Parameters
    ----------
    host : server host name
    port : server port (default 11300)
    """

    host: str = "localhost"
    port: int = DEFAULT_PORT

    _client: Client | None = dataclasses.field(default=None, init=False, repr=False)
    _lock: threading.Lock = dataclasses.field(
        default_factory=threading.Lock, init=False, repr=False
    )

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    # ------------------------------------------------------------------ #
    # QueueConnectionPort                                                  #
    # ------------------------------------------------------------------ #

    async def list_tube_names(self) -> list[str]:
        return await asyncio.to_thread(self._call, self._sync_list_tube_names)

    async def tube_stats(self, name: str) -> dict[str, StatValue] | None:
        return await asyncio.to_thread(self._call, self._sync_tube_stats, name)

    async def list_jobs(self) -> list[RawJob]:
        return await asyncio.to_thread(self._call, self._sync_list_jobs)

    async def delete_job(self, job_id: int) -> DeleteOutcome:
        return await asyncio.to_thread(self._call, self._sync_delete_job, job_id)

    async def close(self) -> None:
        await asyncio.to_thread(self._sync_close)

    # ------------------------------------------------------------------ #
    # Synchronous implementations (executed in a thread-pool worker)      #
    # ------------------------------------------------------------------ #

    def _call(self, fn: Callable[..., T], *args: Any) -> T:
        gs = _import_greenstalk()
        with self._lock:
            try:
                if self._client is None:
                    self._client = gs.Client((self.host, self.port), encoding=None)
                return fn(self._client, gs, *args)
            except (OSError, gs.Error) as exc:
                logger.debug("beanstalkd %s failed: %r", self.address, exc)
                self._drop_client()
                raise PoolMemberUnreachableError(self.address, exc) from exc

    def _sync_list_tube_names(self, client: Client, gs: ModuleType) -> list[str]:
        return [str(name) for name in client.tubes()]

    def _sync_tube_stats(
        self, client: Client, gs: ModuleType, name: str
    ) -> dict[str, StatValue] | None:
        try:
            return normalize_stats(client.stats_tube(name))
        except gs.NotFoundError:
            return None

    def _sync_list_jobs(self, client: Client, gs: ModuleType) -> list[RawJob]:
        client.use(PROBE_TUBE)
        try:
            max_id = client.put(b"bean_counter probe")
            client.delete(max_id)
        finally:
            client.use("default")

        jobs: list[RawJob] = []
        for job_id in range(1, max_id):
            try:
                peeked = client.peek(job_id)
                stats = client.stats_job(job_id)
            except gs.NotFoundError:
                continue
            jobs.append(RawJob(stats=normalize_stats(stats), body=peeked.body))
        logger.debug("%s: climbed %d ids, found %d jobs", self.address, max_id - 1, len(jobs))
        return jobs

    def _sync_delete_job(
        self, client: Client, gs: ModuleType, job_id: int
    ) -> DeleteOutcome:
        try:
            client.delete(job_id)
            return DeleteOutcome.DELETED
        except gs.NotFoundError:
            pass
        # NOT_FOUND also covers jobs reserved by another client.
        try:
            client.peek(job_id)
        except gs.NotFoundError:
            return DeleteOutcome.ALREADY_GONE
        return DeleteOutcome.REFUSED

    def _sync_close(self) -> None:
        with self._lock:
            self._drop_client()

    def _drop_client(self) -> None:
        if self._client is None:
            return
        client, self._client = self._client, None
        try:
            client.close()
        except OSError:
            logger.debug("error closing connection to %s", self.address, exc_info=True)
