"""
Job Phase Model

The Agent Commerce Protocol moves every job through a fixed sequence of
phases. This module enumerates them together with the scheduling rules
attached to each phase: priority, eligibility and forward successors.

Later phases carry higher priority because they are closer to completion and
hold more invested work (gas already spent, negotiation already done).
Early-stage jobs may starve under load; that trade-off is accepted.
"""

from enum import Enum
from typing import Any

import structlog

logger = structlog.get_logger(__name__)


class JobPhase(str, Enum):
    """
    Lifecycle phases of an ACP job.

    Forward path: REQUEST -> NEGOTIATION -> TRANSACTION -> EVALUATION -> COMPLETED.
    Any non-terminal phase may also move to REJECTED or EXPIRED.
    """

    REQUEST = "request"  # Buyer initiated the job
    NEGOTIATION = "negotiation"  # Terms being agreed
    TRANSACTION = "transaction"  # Payment escrowed, work on-chain
    EVALUATION = "evaluation"  # Deliverable under evaluation
    COMPLETED = "completed"  # Funds released
    REJECTED = "rejected"  # Rejected or failed permanently
    EXPIRED = "expired"  # SLA window elapsed
    UNKNOWN = "unknown"  # Unrecognised input, never scheduled

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_PHASES


TERMINAL_PHASES = frozenset({JobPhase.COMPLETED, JobPhase.REJECTED, JobPhase.EXPIRED})
CANCELLED_PHASES = frozenset({JobPhase.REJECTED, JobPhase.EXPIRED})

PHASE_PRIORITIES: dict[JobPhase, int] = {
    JobPhase.EVALUATION: 20,
    JobPhase.TRANSACTION: 15,
    JobPhase.NEGOTIATION: 10,
    JobPhase.REQUEST: 5,
    JobPhase.COMPLETED: 0,
    JobPhase.REJECTED: 0,
    JobPhase.EXPIRED: 0,
    JobPhase.UNKNOWN: 0,
}

# Numeric phase codes used by the ACP node SDK
SDK_PHASE_CODES: dict[int, JobPhase] = {
    0: JobPhase.REQUEST,
    1: JobPhase.NEGOTIATION,
    2: JobPhase.TRANSACTION,
    3: JobPhase.EVALUATION,
    4: JobPhase.COMPLETED,
    5: JobPhase.REJECTED,
    6: JobPhase.EXPIRED,
}

_FORWARD: dict[JobPhase, JobPhase] = {
    JobPhase.REQUEST: JobPhase.NEGOTIATION,
    JobPhase.NEGOTIATION: JobPhase.TRANSACTION,
    JobPhase.TRANSACTION: JobPhase.EVALUATION,
    JobPhase.EVALUATION: JobPhase.COMPLETED,
}


def parse_phase(value: Any) -> JobPhase:
    """
    Coerce raw phase input into a JobPhase.

    Accepts a JobPhase, a phase name in any case ("TRANSACTION",
    "transaction") or an SDK numeric code. Anything else maps to
    JobPhase.UNKNOWN and is reported as a data-quality warning.
    """
    if isinstance(value, JobPhase):
        return value

    # bool is an int subclass; treat it as garbage rather than phase 0/1
    if isinstance(value, int) and not isinstance(value, bool):
        phase = SDK_PHASE_CODES.get(value)
        if phase is None:
            logger.warning("phase_unrecognized", raw_phase=value, raw_type="int")
            return JobPhase.UNKNOWN
        return phase

    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized.isdigit():
            return parse_phase(int(normalized))
        try:
            return JobPhase(normalized)
        except ValueError:
            logger.warning("phase_unrecognized", raw_phase=value, raw_type="str")
            return JobPhase.UNKNOWN

    logger.warning("phase_unrecognized", raw_phase=repr(value), raw_type=type(value).__name__)
    return JobPhase.UNKNOWN


def priority(phase: JobPhase) -> int:
    """Get the scheduling priority for a phase (higher runs first)."""
    return PHASE_PRIORITIES[phase]


def is_processable(phase: JobPhase) -> bool:
    """Check whether jobs in this phase should be scheduled."""
    return priority(phase) > 0


def next_phase(phase: JobPhase, skip_evaluation: bool = False) -> JobPhase:
    """
    Get the phase a job advances to after a successful attempt.

    Args:
        phase: Current (processable) phase
        skip_evaluation: Treat TRANSACTION as the final on-chain step

    Raises:
        ValueError: If the phase has no forward successor
    """
    if skip_evaluation and phase == JobPhase.TRANSACTION:
        return JobPhase.COMPLETED
    try:
        return _FORWARD[phase]
    except KeyError:
        raise ValueError(f"Phase {phase.value} has no forward successor") from None


def can_transition(current: JobPhase, target: JobPhase) -> bool:
    """
    Check whether current -> target is a forward edge of the protocol.

    Skipping ahead along the forward path is allowed (external observers may
    miss intermediate phases); moving backwards or leaving a terminal phase
    is not.
    """
    if current.is_terminal or current == target:
        return False
    if target in CANCELLED_PHASES:
        return True
    if current == JobPhase.UNKNOWN or target == JobPhase.UNKNOWN:
        return False

    step = _FORWARD.get(current)
    while step is not None:
        if step == target:
            return True
        step = _FORWARD.get(step)
    return False
