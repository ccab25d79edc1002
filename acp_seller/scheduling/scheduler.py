"""
Job Scheduler Service

Drives ACP jobs through their lifecycle:
- Picks the highest-priority eligible job each tick
- Paces submissions per wallet through the rate limiter
- Runs each transaction attempt as its own task
- Retries transient failures with backoff and fee escalation
- Expires jobs past their SLA window and prunes terminal history

The tick loop is the single writer of job state. Executor calls run as
fire-and-forget tasks that report back through `_apply_outcome`, so one
wallet's slow confirmation never stalls other wallets.
"""

import asyncio
import random
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import structlog
from pydantic import ValidationError

from acp_seller.config import SchedulerSettings, get_settings
from acp_seller.errors import JobValidationError, SchedulerError
from acp_seller.models.base import utc_now
from acp_seller.models.events import SchedulerEvent, SchedulerEventType
from acp_seller.models.job import Job, JobCreate
from acp_seller.models.outcome import AttemptOutcome
from acp_seller.models.phase import JobPhase, next_phase
from acp_seller.monitoring.logging import job_context, log_duration
from acp_seller.monitoring.metrics import SchedulerMetrics
from acp_seller.monitoring.tx_monitor import TransactionMonitor
from acp_seller.scheduling.events import EventHook
from acp_seller.scheduling.executor import TransactionExecutor
from acp_seller.scheduling.job_store import JobStore
from acp_seller.scheduling.rate_limiter import WalletRateLimiter
from acp_seller.scheduling.retry import RetryPlanner, is_retryable_error
from acp_seller.scheduling.snapshot import load_snapshot, save_snapshot

logger = structlog.get_logger(__name__)

Clock = Callable[[], datetime]

_CANCELLED_REASON = "Attempt cancelled during shutdown"

_TERMINAL_EVENTS = {
    JobPhase.COMPLETED: SchedulerEventType.JOB_COMPLETED,
    JobPhase.REJECTED: SchedulerEventType.JOB_REJECTED,
    JobPhase.EXPIRED: SchedulerEventType.JOB_EXPIRED,
}


@dataclass
class SchedulerStats:
    """Statistics for the scheduler."""

    started_at: datetime | None = None
    is_running: bool = False
    ticks: int = 0
    tick_errors: int = 0
    jobs_registered: int = 0
    attempts_dispatched: int = 0
    stale_outcomes: int = 0


class JobScheduler:
    """
    Asyncio tick loop over the job store.

    Every collaborator is injectable; by default they are built from the
    settings so each scheduler owns an isolated store and pacing state.
    """

    def __init__(
        self,
        settings: SchedulerSettings,
        executor: TransactionExecutor,
        store: JobStore | None = None,
        rate_limiter: WalletRateLimiter | None = None,
        planner: RetryPlanner | None = None,
        hook: EventHook | None = None,
        monitor: TransactionMonitor | None = None,
        metrics: SchedulerMetrics | None = None,
        clock: Clock | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._settings = settings
        self._executor = executor
        self._hook = hook or EventHook()
        self._store = store or JobStore(settings, hook=self._hook)
        self._limiter = rate_limiter or WalletRateLimiter(settings)
        self._planner = planner or RetryPlanner(settings, rng=rng)
        if monitor is None and settings.enable_tx_monitoring:
            monitor = TransactionMonitor()
        self._monitor = monitor
        self._metrics = metrics or SchedulerMetrics()
        self._clock: Clock = clock or utc_now

        self._in_flight: dict[str, asyncio.Task[None]] = {}
        self._loop_task: asyncio.Task[None] | None = None
        self._shutdown_event = asyncio.Event()
        self._stats = SchedulerStats()
        self._logger = logger.bind(service="acp_scheduler")

        self._hook.subscribe(
            lambda _event: self._metrics.jobs_evicted.inc(),
            {SchedulerEventType.JOB_EVICTED},
        )

    # =========================================================================
    # Accessors
    # =========================================================================

    @property
    def store(self) -> JobStore:
        return self._store

    @property
    def hook(self) -> EventHook:
        return self._hook

    @property
    def rate_limiter(self) -> WalletRateLimiter:
        return self._limiter

    @property
    def planner(self) -> RetryPlanner:
        return self._planner

    @property
    def monitor(self) -> TransactionMonitor | None:
        return self._monitor

    @property
    def is_running(self) -> bool:
        return self._stats.is_running

    @property
    def in_flight(self) -> frozenset[str]:
        """Ids of jobs with an executor call outstanding."""
        return frozenset(self._in_flight)

    # =========================================================================
    # Ingestion
    # =========================================================================

    def register(self, payload: JobCreate | Job | Mapping[str, Any]) -> Job | None:
        """
        Register a job observed upstream, or push a forward phase update.

        Safe to call from request handlers while a tick is running.

        Returns:
            Copy of the stored job, or None if the job id is ignored

        Raises:
            JobValidationError: If the payload is malformed
        """
        if isinstance(payload, Job):
            job = payload
        else:
            try:
                create = (
                    payload if isinstance(payload, JobCreate) else JobCreate.model_validate(payload)
                )
            except ValidationError as e:
                raise JobValidationError(f"Invalid job payload: {e}") from e
            job = create.to_job(self._clock())

        previous = self._store.get(job.id)
        stored = self._store.upsert(job)
        if stored is None:
            self._emit(SchedulerEventType.JOB_IGNORED, job)
            return None

        if previous is None:
            self._stats.jobs_registered += 1
            self._emit(SchedulerEventType.JOB_REGISTERED, stored)
            if stored.phase == JobPhase.UNKNOWN:
                self._logger.warning("job_registered_with_unknown_phase", job_id=stored.id)
        elif previous.phase != stored.phase:
            self._emit_transition(stored, previous.phase)
        return stored

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Restore any queue snapshot and start the tick loop."""
        if self._stats.is_running:
            self._logger.warning("scheduler_already_running")
            return

        if self._settings.queue_snapshot_path:
            self._store.restore(load_snapshot(self._settings.queue_snapshot_path))

        self._stats.is_running = True
        self._stats.started_at = utc_now()
        self._shutdown_event.clear()

        self._logger.info(
            "scheduler_starting",
            tick_ms=self._settings.acp_processing_delay,
            jobs=len(self._store),
            dispatch_per_wallet=self._settings.dispatch_per_wallet,
        )
        self._loop_task = asyncio.create_task(self._run_loop(), name="acp_scheduler_loop")

    async def stop(self) -> None:
        """
        Stop the scheduler gracefully.

        Stops the tick loop, waits up to the shutdown grace period for
        in-flight attempts, cancels the rest and writes the queue snapshot.
        """
        if not self._stats.is_running:
            return

        self._logger.info("scheduler_stopping", in_flight=len(self._in_flight))
        self._shutdown_event.set()

        if self._loop_task is not None:
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None

        await self.drain(self._settings.shutdown_grace_period)

        try:
            if self._settings.queue_snapshot_path:
                path = self._settings.queue_snapshot_path
                with log_duration(self._logger, "snapshot_write", path=path):
                    save_snapshot(self._store, path)
        finally:
            self._stats.is_running = False
            self._logger.info("scheduler_stopped")

    async def drain(self, timeout: float) -> None:
        """Wait for in-flight attempts, cancelling any still running after `timeout` seconds."""
        tasks = list(self._in_flight.values())
        if tasks:
            _done, pending = await asyncio.wait(tasks, timeout=timeout)
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
                self._logger.warning("in_flight_attempts_cancelled", count=len(pending))

        leaked = self._limiter.pending_total()
        if leaked:
            self._logger.error("wallet_slots_leaked_on_drain", pending=leaked)
            self._limiter.reset()

    async def _run_loop(self) -> None:
        while not self._shutdown_event.is_set():
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception as e:  # Intentional broad catch: a failed tick must not stop scheduling
                self._stats.tick_errors += 1
                self._logger.error("tick_error", error=str(e), tick_errors=self._stats.tick_errors)

            try:
                await asyncio.wait_for(
                    self._shutdown_event.wait(),
                    timeout=self._settings.tick_interval.total_seconds(),
                )
                break
            except TimeoutError:
                pass

    # =========================================================================
    # Tick
    # =========================================================================

    async def tick(self) -> int:
        """
        Run one scheduling pass.

        Returns:
            Number of attempts dispatched
        """
        now = self._clock()
        self._stats.ticks += 1

        self._store.apply_retention()
        if self._settings.enable_job_expiration:
            expired = self._store.expire_stale(
                now, self._settings.expiration_window, exclude=self.in_flight
            )
            for job, previous_phase in expired:
                self._emit_transition(job, previous_phase)
        self._limiter.prune_idle(now)

        candidates = self._store.select_candidates(now)
        if not candidates:
            return 0

        dispatched = 0
        wallets_used: set[str] = set()
        for job in candidates:
            if job.id in self._in_flight or job.wallet_key in wallets_used:
                continue
            if not self._limiter.can_submit(job.wallet_key, now):
                continue
            if not self._dispatch(job, now):
                continue
            dispatched += 1
            wallets_used.add(job.wallet_key)
            if not self._settings.dispatch_per_wallet:
                break

        if dispatched == 0:
            self._logger.debug("no_dispatchable_candidates", candidates=len(candidates))
        return dispatched

    def _dispatch(self, job: Job, now: datetime) -> bool:
        attempt_number = job.attempt + 1
        fee_multiplier = self._planner.fee_multiplier(attempt_number)

        job.last_attempt_at = now
        if not self._store.save(job, job.phase):
            # Phase moved on between selection and dispatch
            return False

        self._limiter.record_submission(job.wallet_key, now)
        self._in_flight[job.id] = asyncio.create_task(
            self._run_attempt(job, attempt_number, fee_multiplier),
            name=f"acp_attempt_{job.id}",
        )
        self._stats.attempts_dispatched += 1
        self._metrics.attempts_dispatched.inc(phase=job.phase.value)
        self._emit(
            SchedulerEventType.ATTEMPT_DISPATCHED,
            job,
            attempt=attempt_number,
            details={"fee_multiplier": fee_multiplier},
        )
        return True

    # =========================================================================
    # Attempts
    # =========================================================================

    async def _run_attempt(self, job: Job, attempt_number: int, fee_multiplier: float) -> None:
        try:
            with job_context(job.id, job.wallet_key, attempt=attempt_number):
                with self._metrics.track_attempt(job.phase.value):
                    outcome = await self._submit(job, attempt_number, fee_multiplier)
        except asyncio.CancelledError:
            self._requeue_cancelled(job, attempt_number)
            raise
        else:
            self._apply_outcome(job, attempt_number, outcome)
        finally:
            self._limiter.record_completion(job.wallet_key)
            self._in_flight.pop(job.id, None)

    async def _submit(self, job: Job, attempt_number: int, fee_multiplier: float) -> AttemptOutcome:
        """Call the executor, converting timeouts and raised errors into outcomes."""
        timeout = self._settings.confirmation_timeout.total_seconds()
        try:
            outcome = await asyncio.wait_for(
                self._executor.submit(job.model_copy(deep=True), attempt_number, fee_multiplier),
                timeout=timeout,
            )
        except TimeoutError:
            reason = f"Transaction confirmation timed out after {self._settings.tx_confirmation_timeout}ms"
            self._record_error(job, reason)
            return AttemptOutcome.retryable(reason)
        except Exception as e:  # Intentional broad catch: executor faults become outcomes
            reason = str(e) or type(e).__name__
            self._record_error(job, e)
            if is_retryable_error(reason):
                return AttemptOutcome.retryable(reason)
            return AttemptOutcome.fatal(reason)

        if not isinstance(outcome, AttemptOutcome):
            reason = f"Executor returned {type(outcome).__name__} instead of an AttemptOutcome"
            self._record_error(job, reason)
            return AttemptOutcome.fatal(reason)
        if not outcome.is_success:
            self._record_error(job, outcome.reason or outcome.kind.value)
        return outcome

    def _record_error(self, job: Job, error: BaseException | str) -> None:
        if self._monitor is not None:
            self._monitor.record_error(job.id, error)

    def _apply_outcome(self, job: Job, attempt_number: int, outcome: AttemptOutcome) -> None:
        """Commit an attempt's outcome unless the job moved on while it was in flight."""
        expected_phase = job.phase
        current = self._store.get(job.id)
        if current is None or current.phase != expected_phase:
            self._discard_stale(job, attempt_number, outcome)
            return

        now = self._clock()
        self._metrics.attempt_outcomes.inc(phase=expected_phase.value, outcome=outcome.kind.value)

        events: list[tuple[SchedulerEventType, dict[str, Any]]] = []
        if outcome.is_success:
            current.transition_to(next_phase(expected_phase, self._settings.skip_evaluation), now)
            current.attempt = 0
            current.last_error = None
            events.append((
                SchedulerEventType.ATTEMPT_SUCCEEDED,
                {"attempt": attempt_number, "details": {"tx_hash": outcome.tx_hash}},
            ))
        elif outcome.is_retryable:
            current.last_error = outcome.reason
            retries_used = current.attempt
            current.attempt = attempt_number
            if retries_used >= self._settings.acp_max_retries:
                current.transition_to(JobPhase.REJECTED, now)
                events.append((
                    SchedulerEventType.RETRIES_EXHAUSTED,
                    {"attempt": attempt_number, "reason": outcome.reason},
                ))
            else:
                plan = self._planner.plan(attempt_number)
                current.next_attempt_at = now + plan.delay
                current.updated_at = now
                events.append((
                    SchedulerEventType.RETRY_SCHEDULED,
                    {
                        "attempt": attempt_number,
                        "reason": outcome.reason,
                        "details": {
                            "delay_seconds": round(plan.delay.total_seconds(), 3),
                            "next_fee_multiplier": self._planner.fee_multiplier(attempt_number + 1),
                        },
                    },
                ))
        else:
            current.last_error = outcome.reason
            current.attempt = attempt_number
            current.transition_to(JobPhase.REJECTED, now)

        if not self._store.save(current, expected_phase):
            self._discard_stale(job, attempt_number, outcome)
            return

        for event_type, fields in events:
            self._emit(event_type, current, **fields)
        if current.phase != expected_phase:
            self._emit_transition(current, expected_phase)

    def _requeue_cancelled(self, job: Job, attempt_number: int) -> None:
        """
        Put back an attempt cut short by shutdown.

        Phase and attempt counter are left as they were, so cancellation
        never consumes a retry; the job only waits out the backoff.
        """
        current = self._store.get(job.id)
        if current is None or current.phase != job.phase:
            self._discard_stale(job, attempt_number, AttemptOutcome.retryable(_CANCELLED_REASON))
            return

        now = self._clock()
        current.last_error = _CANCELLED_REASON
        current.next_attempt_at = now + self._planner.plan(attempt_number).delay
        current.updated_at = now
        if not self._store.save(current, job.phase):
            self._discard_stale(job, attempt_number, AttemptOutcome.retryable(_CANCELLED_REASON))
            return
        self._logger.info(
            "attempt_requeued_after_cancel",
            job_id=job.id,
            attempt=current.attempt,
            next_attempt_at=current.next_attempt_at.isoformat(),
        )

    def _discard_stale(self, job: Job, attempt_number: int, outcome: AttemptOutcome) -> None:
        self._stats.stale_outcomes += 1
        self._emit(
            SchedulerEventType.STALE_OUTCOME,
            job,
            attempt=attempt_number,
            reason=outcome.reason,
            details={"outcome": outcome.kind.value},
        )

    # =========================================================================
    # Events
    # =========================================================================

    def _emit(self, event_type: SchedulerEventType, job: Job, **fields: Any) -> None:
        self._hook.emit(
            SchedulerEvent(
                type=event_type,
                job_id=job.id,
                wallet_key=job.wallet_key,
                phase=job.phase,
                **fields,
            )
        )

    def _emit_transition(self, job: Job, previous: JobPhase) -> None:
        self._emit(
            SchedulerEventType.PHASE_CHANGED,
            job,
            previous_phase=previous,
            attempt=job.attempt,
        )
        terminal_event = _TERMINAL_EVENTS.get(job.phase)
        if terminal_event is not None:
            self._metrics.terminal_transitions.inc(phase=job.phase.value)
            self._emit(terminal_event, job, reason=job.last_error)

    # =========================================================================
    # Status
    # =========================================================================

    def get_status(self, job_id: str) -> dict[str, Any] | None:
        """Answer a status query for one job (None if unknown or evicted)."""
        job = self._store.get(job_id)
        if job is None:
            return None
        status = job.model_dump(mode="json")
        status["in_flight"] = job_id in self._in_flight
        return status

    def get_stats(self) -> dict[str, Any]:
        """Get scheduler statistics."""
        now = self._clock()
        window = self._settings.expiration_window if self._settings.enable_job_expiration else None
        return {
            "is_running": self._stats.is_running,
            "started_at": self._stats.started_at.isoformat() if self._stats.started_at else None,
            "ticks": self._stats.ticks,
            "tick_errors": self._stats.tick_errors,
            "jobs_registered": self._stats.jobs_registered,
            "attempts_dispatched": self._stats.attempts_dispatched,
            "stale_outcomes": self._stats.stale_outcomes,
            "in_flight": sorted(self._in_flight),
            "wallets": self._limiter.snapshot(),
            "jobs_by_phase": self._store.counts_by_phase(),
            "sla": self._store.get_statistics(now, window),
            "transaction_errors": (
                self._monitor.get_error_summary() if self._monitor is not None else None
            ),
            "hook": self._hook.get_metrics(),
        }


# Global scheduler instance
_scheduler: JobScheduler | None = None


def get_scheduler() -> JobScheduler:
    """Get the global scheduler instance."""
    if _scheduler is None:
        raise SchedulerError("Scheduler not initialised; call setup_scheduler() first")
    return _scheduler


async def setup_scheduler(
    executor: TransactionExecutor,
    settings: SchedulerSettings | None = None,
) -> JobScheduler:
    """Create the global scheduler around `executor` and start it."""
    global _scheduler
    if _scheduler is not None and _scheduler.is_running:
        logger.warning("scheduler_already_setup")
        return _scheduler

    _scheduler = JobScheduler(settings or get_settings(), executor)
    await _scheduler.start()
    return _scheduler


async def shutdown_scheduler() -> None:
    """Stop and discard the global scheduler."""
    global _scheduler
    if _scheduler is not None:
        await _scheduler.stop()
        _scheduler = None
