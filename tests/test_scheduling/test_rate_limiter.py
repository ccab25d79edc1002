"""
Tests for the Wallet Rate Limiter.
"""

from datetime import timedelta

import pytest

from acp_seller.scheduling.rate_limiter import WalletRateLimiter
from conftest import START, WALLET_A, WALLET_B, make_settings


@pytest.fixture
def limiter():
    return WalletRateLimiter(make_settings(min_time_between_tx=2000, max_pending_tx=1))


class TestCanSubmit:
    """Tests for submission gating."""

    def test_unseen_wallet_may_submit(self, limiter):
        assert limiter.can_submit(WALLET_A, START)

    def test_pending_slot_blocks_until_completion(self, limiter):
        limiter.record_submission(WALLET_A, START)
        later = START + timedelta(minutes=5)

        assert not limiter.can_submit(WALLET_A, later)

        limiter.record_completion(WALLET_A)
        assert limiter.can_submit(WALLET_A, later)

    def test_spacing_enforced_after_completion(self, limiter):
        limiter.record_submission(WALLET_A, START)
        limiter.record_completion(WALLET_A)

        assert not limiter.can_submit(WALLET_A, START + timedelta(milliseconds=1999))
        assert limiter.can_submit(WALLET_A, START + timedelta(milliseconds=2000))

    def test_wallets_are_independent(self, limiter):
        limiter.record_submission(WALLET_A, START)
        assert limiter.can_submit(WALLET_B, START)

    def test_wallet_keys_case_insensitive(self, limiter):
        limiter.record_submission(WALLET_A.upper(), START)
        assert not limiter.can_submit(WALLET_A.lower(), START + timedelta(minutes=1))

    def test_last_free_slot_then_blocked(self):
        """After taking the last slot, the wallet is blocked until a completion."""
        limiter = WalletRateLimiter(make_settings(min_time_between_tx=500, max_pending_tx=3))
        t = START
        for _ in range(2):
            limiter.record_submission(WALLET_A, t)
            t += timedelta(seconds=1)

        assert limiter.can_submit(WALLET_A, t)
        limiter.record_submission(WALLET_A, t)
        assert not limiter.can_submit(WALLET_A, t + timedelta(minutes=1))

        limiter.record_completion(WALLET_A)
        assert limiter.can_submit(WALLET_A, t + timedelta(minutes=1))


class TestBookkeeping:
    """Tests for pending counts and state management."""

    def test_completion_never_goes_negative(self, limiter):
        limiter.record_completion(WALLET_A)
        limiter.record_submission(WALLET_A, START)
        limiter.record_completion(WALLET_A)
        limiter.record_completion(WALLET_A)

        assert limiter.pending_count(WALLET_A) == 0

    def test_pending_total(self, limiter):
        limiter.record_submission(WALLET_A, START)
        limiter.record_submission(WALLET_B, START)

        assert limiter.pending_total() == 2

    def test_prune_idle(self, limiter):
        limiter.record_submission(WALLET_A, START)
        limiter.record_submission(WALLET_B, START)
        limiter.record_completion(WALLET_B)

        assert limiter.prune_idle(START + timedelta(seconds=1)) == 0
        assert limiter.prune_idle(START + timedelta(seconds=3)) == 1
        assert set(limiter.snapshot()) == {WALLET_A.lower()}

    def test_snapshot(self, limiter):
        limiter.record_submission(WALLET_A, START)
        snapshot = limiter.snapshot()

        assert snapshot[WALLET_A.lower()] == {
            "pending_count": 1,
            "last_submitted_at": START.isoformat(),
        }

    def test_reset(self, limiter):
        limiter.record_submission(WALLET_A, START)
        limiter.reset()

        assert limiter.pending_total() == 0
        assert limiter.can_submit(WALLET_A, START)
