"""
Transaction Error Monitor

Keeps a bounded history of transaction failures for debugging stuck jobs
and reports summaries for the scheduler status view.
"""

import re
from collections import Counter, deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import structlog

from acp_seller.models.base import utc_now

logger = structlog.get_logger(__name__)

MAX_TRACKED_ERRORS = 100

_NONCE_PATTERN = re.compile(r"nonce[:\s]+(\w+)", re.IGNORECASE)

_REPLACEMENT_UNDERPRICED_ADVICE = [
    "Wait for the pending transaction to confirm",
    "Restart the agent to resynchronise the wallet nonce",
    "Check for network congestion on the chain",
]


@dataclass
class TransactionError:
    """One recorded transaction failure."""

    job_id: str
    error: str
    details: str | None = None
    nonce: str | None = None
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "error": self.error,
            "details": self.details,
            "nonce": self.nonce,
            "timestamp": self.timestamp.isoformat(),
        }


class TransactionMonitor:
    """Bounded log of recent transaction failures."""

    def __init__(self, max_errors: int = MAX_TRACKED_ERRORS) -> None:
        self._errors: deque[TransactionError] = deque(maxlen=max_errors)

    def record_error(
        self,
        job_id: str,
        error: BaseException | str,
        details: str | None = None,
    ) -> TransactionError:
        """
        Record a failed transaction.

        Exceptions from chain clients often carry a `details` or
        `short_message` attribute; it is captured when no details are given.
        """
        message = str(error) or type(error).__name__
        if details is None and isinstance(error, BaseException):
            details = getattr(error, "details", None) or getattr(error, "short_message", None)

        entry = TransactionError(job_id=job_id, error=message, details=details)
        if "nonce" in message.lower():
            match = _NONCE_PATTERN.search(message)
            if match:
                entry.nonce = match.group(1)

        self._errors.append(entry)
        logger.error(
            "transaction_error",
            job_id=job_id,
            error=entry.error,
            details=entry.details,
            nonce=entry.nonce,
        )

        if "replacement underpriced" in message.lower():
            logger.warning(
                "transaction_stuck_gas_price",
                job_id=job_id,
                advice=_REPLACEMENT_UNDERPRICED_ADVICE,
            )
        return entry

    def get_recent_errors(self, count: int = 10) -> list[TransactionError]:
        if count <= 0:
            return []
        return list(self._errors)[-count:]

    def get_error_summary(self) -> dict[str, Any]:
        counts = Counter(e.error for e in self._errors)
        most_common = counts.most_common(1)
        return {
            "total": len(self._errors),
            "unique_jobs": len({e.job_id for e in self._errors}),
            "common_error": most_common[0][0] if most_common else None,
        }

    def clear(self) -> None:
        self._errors.clear()

    def __len__(self) -> int:
        return len(self._errors)
