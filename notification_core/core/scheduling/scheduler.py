"""Per-process job registry on top of APScheduler.

Responsibilities:
- Keep the named job set (cadence, kind, lifecycle state, run counters).
- Drive APScheduler jobs: created jobs are added paused, ``start`` resumes,
  ``stop`` pauses, ``remove`` deletes.
- Wrap every invocation so a failing task body is logged as a
  `SchedulerTaskError` and never reaches the scheduler loop.
- Remove one-time and bulk jobs after their single invocation.

Lifecycle per job: ``created -> running <-> stopped -> removed``.
"""

from __future__ import annotations

import enum
import inspect
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from notification_core.core.config import settings
from notification_core.core.exceptions import (
    JobNotFoundError,
    SchedulerTaskError,
    ValidationError,
)
from notification_core.core.logging_config import bind_job_context, reset_job_context

from .cadence import Cadence

logger = logging.getLogger("notification_core.scheduler")

JobFunc = Callable[[], Union[Awaitable[Any], Any]]


class JobKind(str, enum.Enum):
    RECURRING = "recurring"
    ONE_TIME = "one_time"
    BULK = "bulk"


class JobState(str, enum.Enum):
    CREATED = "created"
    RUNNING = "running"
    STOPPED = "stopped"
    REMOVED = "removed"


@dataclass
class ScheduledJob:
    name: str
    func: JobFunc
    cadence: Cadence
    kind: JobKind
    state: JobState
    created_at: datetime
    last_run_at: Optional[datetime] = None
    last_duration_seconds: Optional[float] = None
    last_error: Optional[str] = None
    run_count: int = 0
    failure_count: int = 0
    active_runs: int = 0


@dataclass(frozen=True)
class JobStatus:
    name: str
    cadence: str
    kind: str
    state: str
    running: bool
    executing: bool
    last_run_at: Optional[datetime]
    next_run_at: Optional[datetime]
    run_count: int
    failure_count: int
    last_error: Optional[str]

    def as_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "cadence": self.cadence,
            "kind": self.kind,
            "state": self.state,
            "running": self.running,
            "executing": self.executing,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "next_run_at": self.next_run_at.isoformat() if self.next_run_at else None,
            "run_count": self.run_count,
            "failure_count": self.failure_count,
            "last_error": self.last_error,
        }


@dataclass(frozen=True)
class JobRunResult:
    name: str
    success: bool
    started_at: datetime
    duration_seconds: float
    error: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "success": self.success,
            "started_at": self.started_at.isoformat(),
            "duration_seconds": self.duration_seconds,
            "error": self.error,
        }


class JobScheduler:
    """Explicit job registry; construct one per process (or per test)."""

    def __init__(
        self,
        *,
        timezone_name: Optional[str] = None,
        scheduler: Optional[AsyncIOScheduler] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.timezone = timezone_name or settings.scheduler_timezone
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._scheduler = scheduler or AsyncIOScheduler(
            timezone=self.timezone,
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
                "misfire_grace_time": settings.job_misfire_grace_seconds,
            },
        )
        self._jobs: Dict[str, ScheduledJob] = {}

    # ------------------------------------------------------------ registration
    def register(
        self,
        name: str,
        func: JobFunc,
        cadence: Cadence,
        *,
        kind: JobKind = JobKind.RECURRING,
        start: bool = False,
    ) -> ScheduledJob:
        if not name or not name.strip():
            raise ValidationError("Job name must not be empty", field="name")
        if name in self._jobs:
            raise ValidationError(f"Job '{name}' is already registered", field="name")
        if not callable(func):
            raise ValidationError(f"Job '{name}' needs a callable body", field="func")
        if not isinstance(cadence, Cadence):
            raise ValidationError(f"Job '{name}' needs a Cadence", field="cadence")
        kind = JobKind(kind)
        if kind is JobKind.RECURRING and not cadence.recurring:
            raise ValidationError(
                f"Recurring job '{name}' cannot use a one-time cadence", field="cadence"
            )

        # Added paused; start() computes the first fire time.
        self._scheduler.add_job(
            self._fire,
            trigger=cadence.to_trigger(self.timezone),
            args=[name],
            id=name,
            name=name,
            replace_existing=True,
            next_run_time=None,
        )
        job = ScheduledJob(
            name=name,
            func=func,
            cadence=cadence,
            kind=kind,
            state=JobState.CREATED,
            created_at=self._clock(),
        )
        self._jobs[name] = job
        logger.info("Registered %s job '%s' (%s)", kind.value, name, cadence.describe())
        if start:
            self.start(name)
        return job

    def get(self, name: str) -> ScheduledJob:
        job = self._jobs.get(name)
        if job is None:
            raise JobNotFoundError(name)
        return job

    def __contains__(self, name: str) -> bool:
        return name in self._jobs

    @property
    def running(self) -> bool:
        return self._scheduler.running

    # --------------------------------------------------------------- lifecycle
    def start(self, name: str) -> ScheduledJob:
        job = self.get(name)
        if job.state is JobState.RUNNING:
            return job
        if self._upcoming(job) is None:
            logger.warning("Job '%s' has no future fire time; removing it", name)
            self.remove(name)
            return job
        self._scheduler.resume_job(name)
        job.state = JobState.RUNNING
        logger.info("Started job '%s'", name)
        return job

    def stop(self, name: str) -> ScheduledJob:
        """Prevent future firings; an execution already in flight completes."""
        job = self.get(name)
        if job.state is JobState.STOPPED:
            return job
        self._scheduler.pause_job(name)
        job.state = JobState.STOPPED
        logger.info("Stopped job '%s'", name)
        return job

    def remove(self, name: str) -> bool:
        job = self._jobs.pop(name, None)
        if job is None:
            raise JobNotFoundError(name)
        try:
            self._scheduler.remove_job(name)
        except JobLookupError:
            # APScheduler drops date-triggered jobs on its own after firing.
            pass
        job.state = JobState.REMOVED
        logger.info("Removed job '%s'", name)
        return True

    def start_all(self) -> None:
        for name, job in list(self._jobs.items()):
            if job.state is not JobState.RUNNING:
                self.start(name)
        if not self._scheduler.running:
            self._scheduler.start()
        logger.info("Scheduler started with %s jobs", len(self._jobs))

    def stop_all(self) -> None:
        for name, job in list(self._jobs.items()):
            if job.state is JobState.RUNNING:
                self.stop(name)

    def shutdown(self) -> None:
        self.stop_all()
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        logger.info("Scheduler shut down")

    # -------------------------------------------------------------- execution
    async def _fire(self, name: str) -> None:
        job = self._jobs.get(name)
        if job is None:
            logger.warning("Fired job '%s' is no longer registered", name)
            return
        await self._invoke(job)

    async def run_now(self, name: str) -> JobRunResult:
        """Invoke the body immediately, outside its cadence."""
        job = self.get(name)
        logger.info("Manually running job '%s'", name)
        return await self._invoke(job)

    async def _invoke(self, job: ScheduledJob) -> JobRunResult:
        run_id = uuid.uuid4().hex[:12]
        tokens = bind_job_context(job_name=job.name, run_id=run_id)
        started_at = self._clock()
        job.active_runs += 1
        error: Optional[str] = None
        try:
            outcome = job.func()
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as exc:
            failure = SchedulerTaskError(job.name, exc)
            error = str(exc)
            job.failure_count += 1
            logger.error("%s", failure.message, exc_info=True)
        finally:
            finished_at = self._clock()
            job.active_runs -= 1
            job.run_count += 1
            job.last_run_at = started_at
            job.last_duration_seconds = (finished_at - started_at).total_seconds()
            job.last_error = error
            reset_job_context(tokens)
            if job.kind is not JobKind.RECURRING and job.name in self._jobs:
                self.remove(job.name)

        if error is None:
            logger.info(
                "Job '%s' completed in %.3fs", job.name, job.last_duration_seconds
            )
        return JobRunResult(
            name=job.name,
            success=error is None,
            started_at=started_at,
            duration_seconds=job.last_duration_seconds,
            error=error,
        )

    # ------------------------------------------------------------------ views
    def _upcoming(self, job: ScheduledJob) -> Optional[datetime]:
        times = job.cadence.next_fire_times(1, now=self._clock(), tz=self.timezone)
        return times[0] if times else None

    def _next_run_at(self, job: ScheduledJob) -> Optional[datetime]:
        if job.state is not JobState.RUNNING:
            return None
        scheduled = self._scheduler.get_job(job.name)
        next_run = getattr(scheduled, "next_run_time", None) if scheduled else None
        return next_run or self._upcoming(job)

    def status(self) -> List[JobStatus]:
        return [
            JobStatus(
                name=job.name,
                cadence=job.cadence.describe(),
                kind=job.kind.value,
                state=job.state.value,
                running=job.state is JobState.RUNNING,
                executing=job.active_runs > 0,
                last_run_at=job.last_run_at,
                next_run_at=self._next_run_at(job),
                run_count=job.run_count,
                failure_count=job.failure_count,
                last_error=job.last_error,
            )
            for job in self._jobs.values()
        ]

    def next_execution_times(self, name: str, count: int = 5) -> List[datetime]:
        job = self.get(name)
        return job.cadence.next_fire_times(count, now=self._clock(), tz=self.timezone)

    def performance_metrics(self) -> Dict[str, Any]:
        jobs = list(self._jobs.values())
        by_kind = {kind.value: 0 for kind in JobKind}
        by_state = {state.value: 0 for state in JobState if state is not JobState.REMOVED}
        for job in jobs:
            by_kind[job.kind.value] += 1
            by_state[job.state.value] += 1
        runs = sum(job.run_count for job in jobs)
        failures = sum(job.failure_count for job in jobs)
        return {
            "total_jobs": len(jobs),
            "running_jobs": by_state[JobState.RUNNING.value],
            "stopped_jobs": len(jobs) - by_state[JobState.RUNNING.value],
            "by_kind": by_kind,
            "by_state": by_state,
            "total_runs": runs,
            "total_failures": failures,
            "success_rate": round((runs - failures) * 100.0 / runs, 2) if runs else 100.0,
            "scheduler_running": self._scheduler.running,
        }


__all__ = [
    "JobKind",
    "JobRunResult",
    "JobScheduler",
    "JobState",
    "JobStatus",
    "ScheduledJob",
]
