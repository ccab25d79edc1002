"""
Transaction Executor Port

The scheduler submits and confirms transactions through this interface; the
concrete implementation (wallet signing, RPC, contract calls) lives outside
the scheduling core. Using a Protocol keeps the core free of chain client
imports and lets tests pass any object with a matching `submit`.
"""

from typing import Protocol, runtime_checkable

from acp_seller.models.job import Job
from acp_seller.models.outcome import AttemptOutcome


@runtime_checkable
class TransactionExecutor(Protocol):
    """Submits one transaction attempt for a job and waits for confirmation."""

    async def submit(
        self,
        job: Job,
        attempt_number: int,
        fee_multiplier: float,
    ) -> AttemptOutcome:
        """
        Submit and confirm the transaction advancing `job` out of its phase.

        Args:
            job: Copy of the job being advanced
            attempt_number: 1-based attempt number within the current phase
            fee_multiplier: Fee escalation factor for this attempt

        Returns:
            Success, RetryableFailure(reason) or FatalFailure(reason)

        Implementations compute the fee themselves and must cap it with
        `RetryPlanner.clamp_fee(base_fee, fee_multiplier)` (available as
        `JobScheduler.planner`), which enforces the configured
        `max_gas_price` ceiling.

        Implementations should convert their own timeouts into a retryable
        outcome. The scheduler additionally bounds every call with the
        configured confirmation timeout.
        """
        ...
