"""
ACP Seller Models

Pydantic models for jobs, attempt outcomes and scheduler events.
"""

from acp_seller.models.base import SellerModel, ensure_utc, utc_now
from acp_seller.models.events import SchedulerEvent, SchedulerEventType
from acp_seller.models.job import Job, JobCreate
from acp_seller.models.outcome import AttemptOutcome, OutcomeKind
from acp_seller.models.phase import (
    CANCELLED_PHASES,
    PHASE_PRIORITIES,
    TERMINAL_PHASES,
    JobPhase,
    can_transition,
    is_processable,
    next_phase,
    parse_phase,
    priority,
)

__all__ = [
    # Base
    "SellerModel",
    "ensure_utc",
    "utc_now",
    # Phases
    "JobPhase",
    "TERMINAL_PHASES",
    "CANCELLED_PHASES",
    "PHASE_PRIORITIES",
    "parse_phase",
    "priority",
    "is_processable",
    "next_phase",
    "can_transition",
    # Jobs
    "Job",
    "JobCreate",
    # Outcomes
    "AttemptOutcome",
    "OutcomeKind",
    # Events
    "SchedulerEvent",
    "SchedulerEventType",
]
