"""
InMemoryConnection — an in-process model of one beanstalkd server.

Implements QueueConnectionPort plus the producer/worker commands tests need
to put a server into a known state (put, reserve, release, bury, kick, use,
watch, ignore, pause_tube). Uses an asyncio.Lock to serialize commands, the
way a single server processes one command at a time.

Server model
------------
  - job ids are sequential per server, starting at 1
  - the connection acts as one client session: it uses "default" and
    watches "default" until told otherwise
  - a tube exists while it holds jobs or is used or watched; "default"
    always exists
  - delayed jobs become ready, and reserved jobs time out, lazily on the
    next command (time comes from `clock`)
  - delete_job() refuses reserved jobs

disconnect() makes every later port call raise PoolMemberUnreachableError
until reconnect(), to exercise pool failure handling.

Zero external dependencies. Safe for multiple concurrent coroutines in a
single event loop. NOT safe across processes or threads.
"""

from __future__ import annotations

import asyncio
import dataclasses
import time
from collections.abc import Callable

from bean_counter.domain.errors import PoolMemberUnreachableError
from bean_counter.ports.connection import DeleteOutcome, RawJob, StatValue

DEFAULT_TUBE = "default"
DEFAULT_PRIORITY = 2**16
DEFAULT_TTR = 60
URGENT_PRIORITY = 1024


@dataclasses.dataclass
class _StoredJob:
    id: int
    tube: str
    body: bytes
    pri: int
    delay: int
    ttr: int
    created_at: float
    state: str = "ready"
    deadline: float | None = None
    reserves: int = 0
    timeouts: int = 0
    releases: int = 0
    buries: int = 0
    kicks: int = 0


@dataclasses.dataclass
class _TubeCounters:
    total_jobs: int = 0
    cmd_delete: int = 0
    cmd_pause_tube: int = 0
    pause: int = 0
    paused_until: float | None = None


@dataclasses.dataclass
class InMemoryConnection:
    """
    In-process beanstalkd server.

    Parameters
    ----------
    address : identifier reported as the job's connection (e.g. "localhost:11300")
    clock   : seconds source, injectable for deterministic tests
    """

    address: str = "memory:11300"
    clock: Callable[[], float] = time.monotonic

    def __post_init__(self) -> None:
        self._jobs: dict[int, _StoredJob] = {}
        self._tubes: dict[str, _TubeCounters] = {DEFAULT_TUBE: _TubeCounters()}
        self._using: str = DEFAULT_TUBE
        self._watching: list[str] = [DEFAULT_TUBE]
        self._next_id: int = 1
        self._failure: Exception | None = None
        self._lock: asyncio.Lock = asyncio.Lock()

    # ------------------------------------------------------------------ #
    # Failure simulation                                                   #
    # ------------------------------------------------------------------ #

    def disconnect(self, cause: Exception | None = None) -> None:
        """Make every port call fail until reconnect()."""
        self._failure = cause or ConnectionRefusedError(f"{self.address} refused connection")

    def reconnect(self) -> None:
        self._failure = None

    # ------------------------------------------------------------------ #
    # QueueConnectionPort                                                  #
    # ------------------------------------------------------------------ #

    async def list_tube_names(self) -> list[str]:
        async with self._lock:
            self._check_reachable()
            return [name for name in self._tubes if self._exists(name)]

    async def tube_stats(self, name: str) -> dict[str, StatValue] | None:
        async with self._lock:
            self._check_reachable()
            self._tick()
            if not self._exists(name):
                return None
            return self._tube_stats(name)

    async def list_jobs(self) -> list[RawJob]:
        async with self._lock:
            self._check_reachable()
            self._tick()
            return [
                RawJob(stats=self._job_stats(job), body=job.body)
                for job in sorted(self._jobs.values(), key=lambda j: j.id)
            ]

    async def delete_job(self, job_id: int) -> DeleteOutcome:
        async with self._lock:
            self._check_reachable()
            self._tick()
            job = self._jobs.get(job_id)
            if job is None:
                return DeleteOutcome.ALREADY_GONE
            if job.state == "reserved":
                return DeleteOutcome.REFUSED
            del self._jobs[job_id]
            self._tubes[job.tube].cmd_delete += 1
            self._prune()
            return DeleteOutcome.DELETED

    # ------------------------------------------------------------------ #
    # Producer / worker commands                                           #
    # ------------------------------------------------------------------ #

    async def put(
        self,
        body: bytes | str,
        *,
        tube: str | None = None,
        pri: int = DEFAULT_PRIORITY,
        delay: int = 0,
        ttr: int = DEFAULT_TTR,
    ) -> int:
        """Put a job into `tube` (default: the used tube). Returns its id."""
        async with self._lock:
            self._tick()
            name = tube or self._using
            counters = self._tubes.setdefault(name, _TubeCounters())
            now = self.clock()
            job = _StoredJob(
                id=self._next_id,
                tube=name,
                body=body.encode("utf-8") if isinstance(body, str) else body,
                pri=pri,
                delay=delay,
                ttr=max(ttr, 1),
                created_at=now,
            )
            if delay > 0:
                job.state = "delayed"
                job.deadline = now + delay
            self._next_id += 1
            self._jobs[job.id] = job
            counters.total_jobs += 1
            return job.id

    async def reserve(self) -> int | None:
        """Reserve the most urgent ready job in a watched tube, or None."""
        async with self._lock:
            self._tick()
            ready = [
                j
                for j in self._jobs.values()
                if j.state == "ready"
                and j.tube in self._watching
                and not self._paused(j.tube)
            ]
            if not ready:
                return None
            job = min(ready, key=lambda j: (j.pri, j.id))
            job.state = "reserved"
            job.reserves += 1
            job.deadline = self.clock() + job.ttr
            return job.id

    async def release(self, job_id: int, *, pri: int | None = None, delay: int = 0) -> None:
        async with self._lock:
            job = self._reserved(job_id)
            job.releases += 1
            if pri is not None:
                job.pri = pri
            job.delay = delay
            if delay > 0:
                job.state = "delayed"
                job.deadline = self.clock() + delay
            else:
                job.state = "ready"
                job.deadline = None

    async def bury(self, job_id: int, *, pri: int | None = None) -> None:
        async with self._lock:
            job = self._reserved(job_id)
            job.buries += 1
            if pri is not None:
                job.pri = pri
            job.state = "buried"
            job.deadline = None

    async def kick(self, bound: int, *, tube: str | None = None) -> int:
        """Kick up to `bound` buried jobs (or delayed jobs if none are buried)."""
        async with self._lock:
            self._tick()
            name = tube or self._using
            in_tube = sorted(
                (j for j in self._jobs.values() if j.tube == name), key=lambda j: j.id
            )
            candidates = [j for j in in_tube if j.state == "buried"] or [
                j for j in in_tube if j.state == "delayed"
            ]
            for job in candidates[:bound]:
                job.state = "ready"
                job.deadline = None
                job.kicks += 1
            return len(candidates[:bound])

    async def use(self, tube: str) -> None:
        async with self._lock:
            self._tubes.setdefault(tube, _TubeCounters())
            self._using = tube
            self._prune()

    async def watch(self, tube: str) -> int:
        """Add `tube` to the watch list. Returns the number of watched tubes."""
        async with self._lock:
            self._tubes.setdefault(tube, _TubeCounters())
            if tube not in self._watching:
                self._watching.append(tube)
            return len(self._watching)

    async def ignore(self, tube: str) -> bool:
        """Stop watching `tube`. The last watched tube cannot be ignored."""
        async with self._lock:
            if tube not in self._watching:
                return True
            if len(self._watching) == 1:
                return False
            self._watching.remove(tube)
            self._prune()
            return True

    async def pause_tube(self, tube: str, delay: int) -> None:
        async with self._lock:
            counters = self._tubes.setdefault(tube, _TubeCounters())
            counters.cmd_pause_tube += 1
            counters.pause = delay
            counters.paused_until = self.clock() + delay if delay > 0 else None

    # ------------------------------------------------------------------ #
    # Internal                                                             #
    # ------------------------------------------------------------------ #

    def _check_reachable(self) -> None:
        if self._failure is not None:
            raise PoolMemberUnreachableError(self.address, self._failure)

    def _reserved(self, job_id: int) -> _StoredJob:
        job = self._jobs.get(job_id)
        if job is None or job.state != "reserved":
            raise KeyError(f"job {job_id} is not reserved on {self.address}")
        return job

    def _tick(self) -> None:
        """Promote due delayed jobs and time out expired reservations."""
        now = self.clock()
        for job in self._jobs.values():
            if job.deadline is None or job.deadline > now:
                continue
            if job.state == "reserved":
                job.timeouts += 1
            job.state = "ready"
            job.deadline = None

    def _exists(self, name: str) -> bool:
        return (
            name == DEFAULT_TUBE
            or name == self._using
            or name in self._watching
            or any(j.tube == name for j in self._jobs.values())
        )

    def _prune(self) -> None:
        for name in [n for n in self._tubes if not self._exists(n)]:
            del self._tubes[name]

    def _paused(self, name: str) -> bool:
        until = self._tubes[name].paused_until
        return until is not None and until > self.clock()

    def _tube_stats(self, name: str) -> dict[str, StatValue]:
        counters = self._tubes.setdefault(name, _TubeCounters())
        jobs = [j for j in self._jobs.values() if j.tube == name]

        def count(state: str) -> int:
            return sum(1 for j in jobs if j.state == state)

        pause_left = 0
        if counters.paused_until is not None:
            pause_left = max(0, int(counters.paused_until - self.clock()))
        return {
            "name": name,
            "current-jobs-urgent": sum(
                1 for j in jobs if j.state == "ready" and j.pri < URGENT_PRIORITY
            ),
            "current-jobs-ready": count("ready"),
            "current-jobs-reserved": count("reserved"),
            "current-jobs-delayed": count("delayed"),
            "current-jobs-buried": count("buried"),
            "total-jobs": counters.total_jobs,
            "current-using": int(self._using == name),
            "current-watching": int(name in self._watching),
            "current-waiting": 0,
            "cmd-delete": counters.cmd_delete,
            "cmd-pause-tube": counters.cmd_pause_tube,
            "pause": counters.pause,
            "pause-time-left": pause_left,
        }

    def _job_stats(self, job: _StoredJob) -> dict[str, StatValue]:
        now = self.clock()
        time_left = 0 if job.deadline is None else max(0, int(job.deadline - now))
        return {
            "id": job.id,
            "tube": job.tube,
            "state": job.state,
            "pri": job.pri,
            "age": int(now - job.created_at),
            "delay": job.delay,
            "ttr": job.ttr,
            "time-left": time_left,
            "file": 0,
            "reserves": job.reserves,
            "timeouts": job.timeouts,
            "releases": job.releases,
            "buries": job.buries,
            "kicks": job.kicks,
        }
