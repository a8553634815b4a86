"""
Load jobs and the run outcome.

A load job pairs one entity with one backend and moves through

    pending -> acquiring -> ready_to_load -> loading -> verifying -> succeeded

with ``failed`` and ``skipped`` reachable from any non-terminal state. The
run outcome collects every job; it is written only by the orchestrator and
frozen once the run ends.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Iterator
from dataclasses import dataclass, replace
from enum import Enum

from nwlab.datasets.base import BackendKind
from nwlab.errors import InvalidTransition, ProvisionError


class JobStatus(Enum):
    """Status of a load job."""

    PENDING = "pending"
    ACQUIRING = "acquiring"
    READY_TO_LOAD = "ready_to_load"
    LOADING = "loading"
    VERIFYING = "verifying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def terminal(self) -> bool:
        return self in (JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.SKIPPED)


_NEXT = {
    JobStatus.PENDING: JobStatus.ACQUIRING,
    JobStatus.ACQUIRING: JobStatus.READY_TO_LOAD,
    JobStatus.READY_TO_LOAD: JobStatus.LOADING,
    JobStatus.LOADING: JobStatus.VERIFYING,
    JobStatus.VERIFYING: JobStatus.SUCCEEDED,
}


@dataclass
class LoadJob:
    """One entity on one backend."""

    backend: BackendKind
    entity: str
    status: JobStatus = JobStatus.PENDING
    stage: str | None = None  # stage at which the job failed or was skipped
    reason: str | None = None
    expected: int | None = None
    observed: int | None = None
    loaded: int | None = None  # as reported by the loader
    started_at: float | None = None
    duration: float | None = None

    @property
    def key(self) -> tuple[BackendKind, str]:
        return (self.backend, self.entity)

    def advance(self, status: JobStatus) -> None:
        """Move to the next state; only the single forward edge is legal."""
        if _NEXT.get(self.status) is not status:
            raise InvalidTransition(
                f"cannot move from {self.status.value} to {status.value}",
                backend=self.backend.value,
                entity=self.entity,
            )
        if self.started_at is None:
            self.started_at = time.monotonic()
        self.status = status
        if status.terminal:
            self._stop_clock()

    def end(self, status: JobStatus, stage: str, reason: str) -> None:
        """Terminate the job as failed or skipped."""
        if status not in (JobStatus.FAILED, JobStatus.SKIPPED) or self.status.terminal:
            raise InvalidTransition(
                f"cannot move from {self.status.value} to {status.value}",
                backend=self.backend.value,
                entity=self.entity,
            )
        self.status = status
        self.stage = stage
        self.reason = reason
        self._stop_clock()

    def _stop_clock(self) -> None:
        if self.started_at is not None:
            self.duration = time.monotonic() - self.started_at


class RunOutcome:
    """All load jobs of one orchestration pass."""

    def __init__(self):
        self._jobs: dict[tuple[BackendKind, str], LoadJob] = {}
        self._lock = threading.RLock()
        self._final = False
        self.aborted: ProvisionError | None = None

    # Writes (orchestrator only)

    def _check_open(self) -> None:
        if self._final:
            raise InvalidTransition("run outcome is finalized")

    def add(self, backend: BackendKind, entity: str) -> LoadJob:
        with self._lock:
            self._check_open()
            job = LoadJob(backend, entity)
            self._jobs[job.key] = job
            return job

    def advance(self, backend: BackendKind, entity: str, status: JobStatus) -> None:
        with self._lock:
            self._check_open()
            self._jobs[(backend, entity)].advance(status)

    def fail(self, backend: BackendKind, entity: str, stage: str, reason: str) -> None:
        with self._lock:
            self._check_open()
            self._jobs[(backend, entity)].end(JobStatus.FAILED, stage, reason)

    def skip(self, backend: BackendKind, entity: str, stage: str, reason: str) -> None:
        with self._lock:
            self._check_open()
            self._jobs[(backend, entity)].end(JobStatus.SKIPPED, stage, reason)

    def record(self, backend: BackendKind, entity: str, **counts: int | None) -> None:
        """Set ``expected``, ``observed`` and/or ``loaded`` on a job."""
        with self._lock:
            self._check_open()
            job = self._jobs[(backend, entity)]
            for name, value in counts.items():
                if name not in ("expected", "observed", "loaded"):
                    raise TypeError(f"unknown count {name!r}")
                setattr(job, name, value)

    def end_open(self, backend: BackendKind | None, status: JobStatus, stage: str, reason: str) -> list[str]:
        """Fail or skip every non-terminal job (of one backend, or all)."""
        ended = []
        with self._lock:
            self._check_open()
            for job in self._jobs.values():
                if (backend is None or job.backend is backend) and not job.status.terminal:
                    job.end(status, stage, reason)
                    ended.append(job.entity)
        return ended

    def finalize(self) -> RunOutcome:
        with self._lock:
            self._final = True
        return self

    # Reads

    @property
    def finalized(self) -> bool:
        return self._final

    # Reads hand out snapshots; jobs change only through the write methods.

    def job(self, backend: BackendKind, entity: str) -> LoadJob | None:
        with self._lock:
            job = self._jobs.get((backend, entity))
            return replace(job) if job is not None else None

    def jobs(self, backend: BackendKind | None = None) -> list[LoadJob]:
        with self._lock:
            return [replace(j) for j in self._jobs.values() if backend is None or j.backend is backend]

    def __iter__(self) -> Iterator[LoadJob]:
        return iter(self.jobs())

    def __len__(self) -> int:
        return len(self._jobs)

    @property
    def succeeded(self) -> bool:
        return bool(self._jobs) and all(j.status is JobStatus.SUCCEEDED for j in self._jobs.values())

    @property
    def exit_code(self) -> int:
        return 0 if self.succeeded else 1

    def counts(self) -> dict[JobStatus, int]:
        totals = dict.fromkeys(JobStatus, 0)
        for job in self.jobs():
            totals[job.status] += 1
        return totals
