"""
Domain models for bean_counter — backed by Pydantic v2.

Field names are the Python spelling of the beanstalkd stats vocabulary;
every multi-word field carries the hyphenated protocol name as its alias so
models validate straight from raw stats mappings and dump back to them.

All models are frozen (immutable). A Job or TubeStats is a snapshot taken at
enumeration time; re-enumerate to observe newer state.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from bean_counter.domain.attributes import (
    MATCHABLE_JOB_ATTRIBUTES,
    MATCHABLE_TUBE_ATTRIBUTES,
    canonical_attribute,
    python_name,
)
from bean_counter.ports.connection import RawJob


class Job(BaseModel):
    """
    A single job as reported by the pool member currently holding it.

    id          — job id, unique only within its pool member
    tube        — name of the tube the job belongs to
    state       — ready | delayed | reserved | buried
    pri         — priority, lower value = more urgent
    age         — seconds since the job was put
    delay       — delay in seconds the job was put with
    ttr         — time-to-run in seconds
    time_left   — seconds until a reserved/delayed job changes state
    reserves, timeouts, releases, buries, kicks — lifetime counters
    body        — raw job body
    connection  — address of the pool member holding the job
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: int
    tube: str = "default"
    state: str = "ready"
    pri: int = 0
    age: int = 0
    delay: int = 0
    ttr: int = 0
    time_left: int = Field(default=0, alias="time-left")
    reserves: int = 0
    timeouts: int = 0
    releases: int = 0
    buries: int = 0
    kicks: int = 0
    body: bytes = b""
    connection: str = ""

    @classmethod
    def from_raw(cls, raw: RawJob, connection: str) -> "Job":
        """Build a Job from raw protocol stats reported by `connection`."""
        return cls.model_validate(
            {**raw.stats, "body": raw.body, "connection": connection}
        )

    @property
    def key(self) -> tuple[str, int]:
        """Pool-wide identity: ids are only unique per pool member."""
        return (self.connection, self.id)

    def attribute(self, name: str) -> Any:
        """Value of a matchable attribute, by protocol or Python name."""
        return getattr(self, python_name(canonical_attribute(name, MATCHABLE_JOB_ATTRIBUTES)))

    def to_hash(self) -> dict[str, Any]:
        """Attributes keyed by their protocol names."""
        return self.model_dump(by_alias=True)


class TubeStats(BaseModel):
    """
    Merged statistics of one tube across the whole pool.

    Counters are sums over every pool member reporting the tube. Fields are
    None when no member reported the corresponding stat.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str | None = None
    cmd_delete: int | None = Field(default=None, alias="cmd-delete")
    cmd_pause_tube: int | None = Field(default=None, alias="cmd-pause-tube")
    current_jobs_buried: int | None = Field(default=None, alias="current-jobs-buried")
    current_jobs_delayed: int | None = Field(default=None, alias="current-jobs-delayed")
    current_jobs_ready: int | None = Field(default=None, alias="current-jobs-ready")
    current_jobs_reserved: int | None = Field(default=None, alias="current-jobs-reserved")
    current_jobs_urgent: int | None = Field(default=None, alias="current-jobs-urgent")
    current_using: int | None = Field(default=None, alias="current-using")
    current_waiting: int | None = Field(default=None, alias="current-waiting")
    current_watching: int | None = Field(default=None, alias="current-watching")
    pause: int | None = None
    pause_time_left: int | None = Field(default=None, alias="pause-time-left")
    total_jobs: int | None = Field(default=None, alias="total-jobs")

    def attribute(self, name: str) -> Any:
        """Value of a matchable attribute, by protocol or Python name."""
        return getattr(self, python_name(canonical_attribute(name, MATCHABLE_TUBE_ATTRIBUTES)))
