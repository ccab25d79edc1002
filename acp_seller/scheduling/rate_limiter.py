"""
Wallet Rate Limiter

Per-wallet pacing for transaction submission. A wallet may submit when it has
fewer than `max_pending_tx` unconfirmed transactions and at least
`min_time_between_tx` has passed since its last submission.

With the default `max_pending_tx=1` every wallet is strictly serialized,
which is what keeps concurrent jobs from colliding on the same nonce.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

import structlog

from acp_seller.config import SchedulerSettings

logger = structlog.get_logger(__name__)


@dataclass
class WalletPacingState:
    """Pacing bookkeeping for one wallet."""

    last_submitted_at: datetime | None = None
    pending_count: int = 0


class WalletRateLimiter:
    """
    Enforces submission spacing and a pending-transaction cap per wallet.

    Only the scheduler loop calls into the limiter, so no locking is done
    here. Wallet keys are compared case-insensitively.
    """

    def __init__(self, settings: SchedulerSettings) -> None:
        self._max_pending = settings.max_pending_tx
        self._min_spacing: timedelta = settings.min_tx_spacing
        self._wallets: dict[str, WalletPacingState] = {}

    @staticmethod
    def _key(wallet_key: str) -> str:
        return wallet_key.lower()

    def can_submit(self, wallet_key: str, now: datetime) -> bool:
        """Check whether the wallet may submit another transaction at `now`."""
        state = self._wallets.get(self._key(wallet_key))
        if state is None:
            return True
        if state.pending_count >= self._max_pending:
            return False
        if state.last_submitted_at is not None:
            return now - state.last_submitted_at >= self._min_spacing
        return True

    def record_submission(self, wallet_key: str, now: datetime) -> None:
        """Take a pending slot for the wallet."""
        key = self._key(wallet_key)
        state = self._wallets.setdefault(key, WalletPacingState())
        state.pending_count += 1
        state.last_submitted_at = now
        logger.debug(
            "wallet_submission_recorded",
            wallet_key=key,
            pending_count=state.pending_count,
        )

    def record_completion(self, wallet_key: str) -> None:
        """Release a pending slot for the wallet; never drops below zero."""
        key = self._key(wallet_key)
        state = self._wallets.get(key)
        if state is None or state.pending_count == 0:
            logger.warning("wallet_completion_without_submission", wallet_key=key)
            return
        state.pending_count -= 1

    def pending_count(self, wallet_key: str) -> int:
        state = self._wallets.get(self._key(wallet_key))
        return state.pending_count if state else 0

    def pending_total(self) -> int:
        return sum(state.pending_count for state in self._wallets.values())

    def prune_idle(self, now: datetime) -> int:
        """
        Drop state for wallets with nothing pending whose spacing has elapsed.

        Such wallets behave exactly like unseen ones, so forgetting them is
        safe and keeps the map bounded.
        """
        idle = [
            key
            for key, state in self._wallets.items()
            if state.pending_count == 0
            and (
                state.last_submitted_at is None
                or now - state.last_submitted_at >= self._min_spacing
            )
        ]
        for key in idle:
            del self._wallets[key]
        return len(idle)

    def snapshot(self) -> dict[str, dict[str, Any]]:
        """Get a serializable view of the pacing state."""
        return {
            key: {
                "pending_count": state.pending_count,
                "last_submitted_at": (
                    state.last_submitted_at.isoformat() if state.last_submitted_at else None
                ),
            }
            for key, state in self._wallets.items()
        }

    def reset(self) -> None:
        self._wallets.clear()
