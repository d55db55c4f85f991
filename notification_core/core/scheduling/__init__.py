from .cadence import Cadence, CadenceKind
from .scheduler import JobKind, JobRunResult, JobScheduler, JobState, JobStatus, ScheduledJob

__all__ = [
    "Cadence",
    "CadenceKind",
    "JobKind",
    "JobRunResult",
    "JobScheduler",
    "JobState",
    "JobStatus",
    "ScheduledJob",
]
