"""
ACP Seller Scheduler - Test Fixtures

Shared pytest fixtures for all test modules.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from acp_seller.config import SchedulerSettings
from acp_seller.models.job import Job
from acp_seller.models.outcome import AttemptOutcome
from acp_seller.models.phase import JobPhase
from acp_seller.monitoring.metrics import MetricsRegistry, SchedulerMetrics
from acp_seller.scheduling.events import EventHook
from acp_seller.scheduling.scheduler import JobScheduler

START = datetime(2025, 1, 15, 12, 0, 0, tzinfo=UTC)

WALLET_A = "0xAaAaAaAaAaAaAaAaAaAaAaAaAaAaAaAaAaAaAaAa"
WALLET_B = "0xBbBbBbBbBbBbBbBbBbBbBbBbBbBbBbBbBbBbBbBb"


# =============================================================================
# Settings
# =============================================================================


def make_settings(**overrides: Any) -> SchedulerSettings:
    """Build settings isolated from any .env file on the machine."""
    values: dict[str, Any] = {
        "acp_processing_delay": 1000,
        "min_time_between_tx": 500,
        "tx_confirmation_timeout": 5000,
        "shutdown_grace_period": 1.0,
        "enable_tx_monitoring": True,
    }
    values.update(overrides)
    return SchedulerSettings(_env_file=None, **values)


@pytest.fixture
def settings() -> SchedulerSettings:
    return make_settings()


# =============================================================================
# Clock
# =============================================================================


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime = START) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float = 0, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds, **kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# =============================================================================
# Executor
# =============================================================================


class FakeExecutor:
    """
    Scripted TransactionExecutor.

    Outcomes are consumed in order; once the script runs out every call
    succeeds. A script entry may be an AttemptOutcome, an exception to
    raise, or a callable returning either. Setting `gate` holds every call
    until the event is set.
    """

    def __init__(self, script: list[Any] | None = None) -> None:
        self.script = list(script or [])
        self.calls: list[tuple[str, JobPhase, int, float]] = []
        self.gate: asyncio.Event | None = None
        self.active = 0
        self.max_active_per_wallet: dict[str, int] = {}
        self._active_per_wallet: dict[str, int] = {}

    async def submit(self, job: Job, attempt_number: int, fee_multiplier: float) -> AttemptOutcome:
        self.calls.append((job.id, job.phase, attempt_number, fee_multiplier))
        self.active += 1
        wallet = job.wallet_key
        self._active_per_wallet[wallet] = self._active_per_wallet.get(wallet, 0) + 1
        self.max_active_per_wallet[wallet] = max(
            self.max_active_per_wallet.get(wallet, 0), self._active_per_wallet[wallet]
        )
        try:
            if self.gate is not None:
                await self.gate.wait()
            step: Any = self.script.pop(0) if self.script else AttemptOutcome.success()
            if callable(step) and not isinstance(step, AttemptOutcome):
                step = step()
            if isinstance(step, BaseException):
                raise step
            return step
        finally:
            self.active -= 1
            self._active_per_wallet[wallet] -= 1

    def job_ids(self) -> list[str]:
        return [call[0] for call in self.calls]


@pytest.fixture
def executor() -> FakeExecutor:
    return FakeExecutor()


# =============================================================================
# Scheduler
# =============================================================================


@pytest.fixture
def make_scheduler(clock: FakeClock) -> Callable[..., JobScheduler]:
    """Factory for schedulers wired to the fake clock and a private metrics registry."""

    def _make(executor: Any, settings: SchedulerSettings | None = None, **kwargs: Any) -> JobScheduler:
        kwargs.setdefault("clock", clock)
        kwargs.setdefault("rng", random.Random(42))
        kwargs.setdefault("hook", EventHook())
        kwargs.setdefault("metrics", SchedulerMetrics(MetricsRegistry(prefix="test")))
        return JobScheduler(settings or make_settings(), executor, **kwargs)

    return _make


# =============================================================================
# Test Data Generators
# =============================================================================


@pytest.fixture
def job_factory() -> Callable[..., Job]:
    """Factory for creating test jobs."""
    counter = iter(range(1, 10_000))

    def _create_job(
        job_id: str | None = None,
        phase: JobPhase | str = JobPhase.REQUEST,
        wallet_key: str = WALLET_A,
        created_at: datetime | None = None,
        attempt: int = 0,
        **fields: Any,
    ) -> Job:
        return Job(
            id=job_id or f"job-{next(counter)}",
            phase=phase,
            wallet_key=wallet_key,
            created_at=created_at or START,
            updated_at=created_at or START,
            attempt=attempt,
            **fields,
        )

    return _create_job


async def settle(scheduler: JobScheduler, timeout: float = 2.0) -> None:
    """Wait for every in-flight attempt to report back."""
    await scheduler.drain(timeout)
