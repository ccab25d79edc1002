"""
Scheduler Event Models

Structured events emitted by the scheduler on every phase transition,
dispatch, retry decision and terminal outcome. Consumed by external
logging/monitoring collaborators through the EventHook.
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import Field

from acp_seller.models.base import SellerModel, utc_now
from acp_seller.models.phase import JobPhase


class SchedulerEventType(str, Enum):
    """Types of scheduler events."""

    # Ingestion
    JOB_REGISTERED = "job.registered"
    JOB_IGNORED = "job.ignored"

    # Lifecycle
    PHASE_CHANGED = "job.phase_changed"
    JOB_COMPLETED = "job.completed"
    JOB_REJECTED = "job.rejected"
    JOB_EXPIRED = "job.expired"
    JOB_EVICTED = "job.evicted"

    # Transactions
    ATTEMPT_DISPATCHED = "attempt.dispatched"
    ATTEMPT_SUCCEEDED = "attempt.succeeded"
    RETRY_SCHEDULED = "attempt.retry_scheduled"
    RETRIES_EXHAUSTED = "attempt.retries_exhausted"
    STALE_OUTCOME = "attempt.stale_outcome"


class SchedulerEvent(SellerModel):
    """One structured scheduler event."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    type: SchedulerEventType
    job_id: str
    wallet_key: str | None = None
    phase: JobPhase | None = Field(default=None, description="Phase after the event")
    previous_phase: JobPhase | None = None
    attempt: int | None = None
    reason: str | None = None
    timestamp: datetime = Field(default_factory=utc_now)
    details: dict[str, Any] = Field(default_factory=dict)

    def to_log_context(self) -> dict[str, Any]:
        """Flatten into key/value pairs for structured logging."""
        context: dict[str, Any] = {"event_type": self.type.value, "job_id": self.job_id}
        if self.wallet_key is not None:
            context["wallet_key"] = self.wallet_key
        if self.phase is not None:
            context["phase"] = self.phase.value
        if self.previous_phase is not None:
            context["previous_phase"] = self.previous_phase.value
        if self.attempt is not None:
            context["attempt"] = self.attempt
        if self.reason is not None:
            context["reason"] = self.reason
        context.update(self.details)
        return context
