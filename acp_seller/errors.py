"""
Scheduler Error Taxonomy

Exceptions raised by the ACP seller scheduling core. Transaction failures
are not exceptions here: they travel as AttemptOutcome values so that one
job's fault never propagates into the tick for other jobs.
"""


class SchedulerError(Exception):
    """Base exception for scheduling core errors."""
    pass


class ConfigurationError(SchedulerError):
    """Raised at startup when settings are missing or out of range."""
    pass


class JobValidationError(SchedulerError):
    """Raised when a job payload is malformed and cannot enter the store."""
    pass


class InvalidPhaseTransitionError(JobValidationError):
    """Raised when attempting a phase change that is not a forward edge."""

    def __init__(self, job_id: str, current: str, requested: str) -> None:
        self.job_id = job_id
        self.current = current
        self.requested = requested
        super().__init__(
            f"Job {job_id}: cannot move from phase {current} to {requested}"
        )
