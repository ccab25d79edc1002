"""
Retry Planner

Computes the backoff delay and fee escalation for a transaction attempt.

Delays grow exponentially from 1s and cap at 30s, with +/-20% uniform jitter
so that retries across jobs sharing a wallet do not arrive together. Fee
offers grow geometrically with the configured gas price multiplier; callers
clamp the escalated fee to the absolute ceiling with `clamp_fee`.
"""

import random
from dataclasses import dataclass
from datetime import timedelta

from acp_seller.config import SchedulerSettings

BASE_DELAY_SECONDS = 1.0
MAX_DELAY_SECONDS = 30.0
JITTER_RATIO = 0.2

# Transient chain errors worth another attempt (matched case-insensitively)
RETRYABLE_ERRORS: tuple[str, ...] = (
    "replacement underpriced",
    "nonce too low",
    "transaction underpriced",
    "insufficient funds for gas",
    "timeout",
    "timed out",
)


@dataclass(frozen=True)
class RetryPlan:
    """Delay and fee multiplier for one attempt."""

    attempt_number: int
    delay: timedelta
    fee_multiplier: float


def base_delay(attempt_number: int) -> float:
    """Unjittered backoff delay in seconds for an attempt number."""
    if attempt_number < 1:
        raise ValueError(f"attempt_number must be >= 1, got {attempt_number}")
    # Cap the exponent so huge attempt numbers cannot overflow the float
    exponent = min(attempt_number - 1, 32)
    return min(BASE_DELAY_SECONDS * (2 ** exponent), MAX_DELAY_SECONDS)


def is_retryable_error(message: str) -> bool:
    """Check whether an error message names a transient chain error."""
    lowered = message.lower()
    return any(pattern in lowered for pattern in RETRYABLE_ERRORS)


class RetryPlanner:
    """
    Plans delays and fee escalation for transaction retries.

    Deterministic given the injected random source; pass a seeded
    `random.Random` in tests.
    """

    def __init__(
        self,
        settings: SchedulerSettings,
        rng: random.Random | None = None,
    ) -> None:
        self._multiplier = settings.gas_price_multiplier
        self._max_gas_price = settings.max_gas_price
        self._rng = rng or random.Random()

    @property
    def max_gas_price(self) -> int:
        return self._max_gas_price

    def plan(self, attempt_number: int) -> RetryPlan:
        """
        Plan the given attempt.

        Args:
            attempt_number: 1-based attempt number

        Raises:
            ValueError: If attempt_number is not positive
        """
        unjittered = base_delay(attempt_number)
        jitter = self._rng.uniform(-JITTER_RATIO, JITTER_RATIO) * unjittered
        return RetryPlan(
            attempt_number=attempt_number,
            delay=timedelta(seconds=unjittered + jitter),
            fee_multiplier=self.fee_multiplier(attempt_number),
        )

    def fee_multiplier(self, attempt_number: int) -> float:
        if attempt_number < 1:
            raise ValueError(f"attempt_number must be >= 1, got {attempt_number}")
        return self._multiplier ** (attempt_number - 1)

    def clamp_fee(self, base_fee: float, fee_multiplier: float) -> float:
        """Escalate a fee and cap it at the configured ceiling."""
        if base_fee < 0:
            raise ValueError(f"base_fee must be non-negative, got {base_fee}")
        return min(base_fee * fee_multiplier, float(self._max_gas_price))
