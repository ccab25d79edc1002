"""
Job Models

A Job is one unit of protocol work tracked by the scheduler: an ACP job the
seller agent has observed, the phase it is in, and the bookkeeping needed to
pace and retry its transactions.
"""

from datetime import datetime
from typing import Any

from pydantic import AliasChoices, Field, field_validator

from acp_seller.errors import InvalidPhaseTransitionError
from acp_seller.models.base import SellerModel, ensure_utc, utc_now
from acp_seller.models.phase import JobPhase, can_transition, parse_phase


def _coerce_identifier(v: Any) -> Any:
    # The ACP SDK hands out numeric job ids
    if isinstance(v, int) and not isinstance(v, bool):
        return str(v)
    return v


class Job(SellerModel):
    """
    A job known to the scheduler.

    `attempt` counts transaction attempts made in the current phase. It is
    reset whenever the job moves to a non-terminal phase other than
    TRANSACTION, and by the scheduler after every successful advance.
    """

    id: str = Field(min_length=1, description="Upstream job identifier")
    phase: JobPhase = Field(default=JobPhase.REQUEST)
    wallet_key: str = Field(
        min_length=1,
        validation_alias=AliasChoices("wallet_key", "walletKey"),
        description="Wallet the job's transactions are sent from",
    )
    attempt: int = Field(default=0, ge=0)

    created_at: datetime = Field(
        default_factory=utc_now,
        validation_alias=AliasChoices("created_at", "createdAt"),
    )
    updated_at: datetime = Field(default_factory=utc_now)
    last_attempt_at: datetime | None = None
    next_attempt_at: datetime | None = Field(
        default=None, description="Earliest time the job may be dispatched again"
    )
    terminal_at: datetime | None = Field(
        default=None, description="When the job entered a terminal phase"
    )

    last_error: str | None = None
    params: dict[str, Any] = Field(default_factory=dict)

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> Any:
        return _coerce_identifier(v)

    @field_validator("phase", mode="before")
    @classmethod
    def coerce_phase(cls, v: Any) -> JobPhase:
        return parse_phase(v)

    @field_validator("wallet_key")
    @classmethod
    def normalize_wallet(cls, v: str) -> str:
        return v.lower()

    @field_validator(
        "created_at", "updated_at", "last_attempt_at", "next_attempt_at", "terminal_at",
        mode="before",
    )
    @classmethod
    def convert_datetime(cls, v: Any) -> Any:
        return ensure_utc(v)

    @property
    def is_terminal(self) -> bool:
        return self.phase.is_terminal

    def is_ready(self, now: datetime) -> bool:
        """Check whether any retry backoff has elapsed."""
        return self.next_attempt_at is None or self.next_attempt_at <= now

    def transition_to(self, target: JobPhase, now: datetime | None = None) -> None:
        """
        Move the job to a new phase along a forward edge.

        Raises:
            InvalidPhaseTransitionError: If target is not reachable forward
        """
        if not can_transition(self.phase, target):
            raise InvalidPhaseTransitionError(self.id, self.phase.value, target.value)

        now = now or utc_now()
        self.phase = target
        self.next_attempt_at = None
        if target.is_terminal:
            self.terminal_at = now
        elif target != JobPhase.TRANSACTION:
            self.attempt = 0
        self.updated_at = now


class JobCreate(SellerModel):
    """
    Ingestion payload pushed by the request-handling collaborator.

    `params` is carried through untouched; the scheduler never interprets
    business payloads.
    """

    id: str = Field(min_length=1)
    phase: JobPhase = Field(default=JobPhase.REQUEST)
    wallet_key: str = Field(
        min_length=1, validation_alias=AliasChoices("wallet_key", "walletKey")
    )
    created_at: datetime | None = Field(
        default=None, validation_alias=AliasChoices("created_at", "createdAt")
    )
    params: dict[str, Any] = Field(default_factory=dict)

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> Any:
        return _coerce_identifier(v)

    @field_validator("phase", mode="before")
    @classmethod
    def coerce_phase(cls, v: Any) -> JobPhase:
        return parse_phase(v)

    @field_validator("created_at", mode="before")
    @classmethod
    def convert_datetime(cls, v: Any) -> Any:
        return ensure_utc(v)

    def to_job(self, now: datetime | None = None) -> Job:
        now = now or utc_now()
        return Job(
            id=self.id,
            phase=self.phase,
            wallet_key=self.wallet_key,
            created_at=self.created_at or now,
            updated_at=now,
            terminal_at=now if self.phase.is_terminal else None,
            params=dict(self.params),
        )
