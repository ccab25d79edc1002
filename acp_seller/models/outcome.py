"""
Attempt Outcome Models

The result of one transaction submission. Outcomes are ephemeral: they only
inform the next state transition and are never persisted.
"""

from enum import Enum

from pydantic import Field

from acp_seller.models.base import SellerModel


class OutcomeKind(str, Enum):
    """Classification of a transaction attempt result."""

    SUCCESS = "success"
    RETRYABLE_FAILURE = "retryable_failure"  # Transient, eligible for backoff-and-retry
    FATAL_FAILURE = "fatal_failure"  # Unrecoverable, job is rejected


class AttemptOutcome(SellerModel):
    """Outcome of one executor invocation."""

    kind: OutcomeKind
    reason: str | None = Field(default=None, description="Failure reason for observability")
    tx_hash: str | None = Field(default=None, description="Confirmed transaction hash")

    @classmethod
    def success(cls, tx_hash: str | None = None) -> "AttemptOutcome":
        return cls(kind=OutcomeKind.SUCCESS, tx_hash=tx_hash)

    @classmethod
    def retryable(cls, reason: str) -> "AttemptOutcome":
        return cls(kind=OutcomeKind.RETRYABLE_FAILURE, reason=reason)

    @classmethod
    def fatal(cls, reason: str) -> "AttemptOutcome":
        return cls(kind=OutcomeKind.FATAL_FAILURE, reason=reason)

    @property
    def is_success(self) -> bool:
        return self.kind == OutcomeKind.SUCCESS

    @property
    def is_retryable(self) -> bool:
        return self.kind == OutcomeKind.RETRYABLE_FAILURE
