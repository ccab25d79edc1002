"""
Job Store

In-memory registry of known jobs keyed by identifier.

The scheduler loop is the only writer of job state and goes through
`save`, a compare-and-set on the phase the loop last observed. External
producers may call `upsert` concurrently with a tick; it only inserts new
jobs or pushes forward-only phase updates. All access is serialized by a
re-entrant lock, and every read returns a copy so callers can never mutate
stored state behind the lock.

Terminal jobs are kept only long enough to answer status queries: at most
`keep_completed_jobs` COMPLETED and `keep_cancelled_jobs` REJECTED/EXPIRED
jobs survive, oldest-terminal evicted first.
"""

import threading
from collections.abc import Collection, Iterable
from datetime import datetime, timedelta
from typing import Any, NamedTuple

import structlog

from acp_seller.config import SchedulerSettings
from acp_seller.errors import JobValidationError
from acp_seller.models.base import utc_now
from acp_seller.models.events import SchedulerEvent, SchedulerEventType
from acp_seller.models.job import Job
from acp_seller.models.phase import (
    CANCELLED_PHASES,
    JobPhase,
    can_transition,
    is_processable,
    priority,
)
from acp_seller.scheduling.events import EventHook

logger = structlog.get_logger(__name__)

# Jobs closer than this to their SLA deadline count as nearing expiration
NEARING_EXPIRATION_WINDOW = timedelta(hours=2)


class ExpiredJob(NamedTuple):
    job: Job
    previous_phase: JobPhase


class JobStore:
    """Thread-safe job registry with bounded retention of terminal jobs."""

    def __init__(
        self,
        settings: SchedulerSettings,
        hook: EventHook | None = None,
    ) -> None:
        self._keep_completed = settings.keep_completed_jobs
        self._keep_cancelled = settings.keep_cancelled_jobs
        self._ignored = settings.ignored_job_id_set
        self._hook = hook
        self._jobs: dict[str, Job] = {}
        self._lock = threading.RLock()

    # =========================================================================
    # Reads
    # =========================================================================

    def get(self, job_id: str) -> Job | None:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.model_copy(deep=True) if job else None

    def __contains__(self, job_id: object) -> bool:
        with self._lock:
            return job_id in self._jobs

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def select_candidates(self, now: datetime | None = None) -> list[Job]:
        """
        Get processable jobs in scheduling order.

        Jobs are ordered by descending phase priority, oldest `created_at`
        first within a priority. When `now` is given, jobs still waiting out
        a retry backoff are left out.
        """
        with self._lock:
            candidates = [
                job.model_copy(deep=True)
                for job in self._jobs.values()
                if is_processable(job.phase) and (now is None or job.is_ready(now))
            ]
        candidates.sort(key=lambda job: (-priority(job.phase), job.created_at))
        return candidates

    def counts_by_phase(self) -> dict[str, int]:
        with self._lock:
            counts = {phase.value: 0 for phase in JobPhase}
            for job in self._jobs.values():
                counts[job.phase.value] += 1
            return counts

    def snapshot(self) -> list[Job]:
        """Copy of every stored job, for persistence."""
        with self._lock:
            return [job.model_copy(deep=True) for job in self._jobs.values()]

    def get_statistics(self, now: datetime | None = None, window: timedelta | None = None) -> dict[str, Any]:
        """
        SLA statistics over active (non-terminal) jobs.

        Average age is reported in whole minutes.
        """
        now = now or utc_now()
        with self._lock:
            active = [job for job in self._jobs.values() if not job.is_terminal]

        nearing = 0
        if window is not None:
            nearing = sum(
                1 for job in active
                if job.created_at + window - now < NEARING_EXPIRATION_WINDOW
            )
        total_age = sum(((now - job.created_at) for job in active), timedelta())
        average_minutes = (
            round(total_age.total_seconds() / len(active) / 60) if active else 0
        )
        return {
            "active_jobs": len(active),
            "average_job_age_minutes": average_minutes,
            "jobs_nearing_expiration": nearing,
        }

    # =========================================================================
    # Writes
    # =========================================================================

    def upsert(self, job: Job) -> Job | None:
        """
        Insert a new job or push a forward phase update for a known one.

        Updates that would move a known job backwards (or leave a terminal
        phase) are ignored. Ignored job ids are dropped.

        Returns:
            Copy of the stored job, or None if the id is ignored

        Raises:
            JobValidationError: If the payload is not a Job
        """
        if not isinstance(job, Job):
            raise JobValidationError(f"Expected a Job, got {type(job).__name__}")

        if job.id in self._ignored:
            logger.info("job_ignored", job_id=job.id)
            return None

        with self._lock:
            existing = self._jobs.get(job.id)
            if existing is None:
                stored = job.model_copy(deep=True)
                self._jobs[job.id] = stored
                logger.debug("job_inserted", job_id=job.id, phase=job.phase.value)
            elif can_transition(existing.phase, job.phase):
                existing.transition_to(job.phase, utc_now())
                if job.params:
                    existing.params = dict(job.params)
                stored = existing
                logger.info(
                    "job_phase_pushed",
                    job_id=job.id,
                    phase=job.phase.value,
                )
            else:
                if existing.phase != job.phase:
                    logger.debug(
                        "job_upsert_not_forward",
                        job_id=job.id,
                        current=existing.phase.value,
                        requested=job.phase.value,
                    )
                stored = existing

            result = stored.model_copy(deep=True)
            evicted = self._enforce_retention() if stored.is_terminal else []

        self._emit_evictions(evicted)
        return result

    def save(self, job: Job, expected_phase: JobPhase) -> bool:
        """
        Replace a stored job if it is still in `expected_phase`.

        Used by the scheduler loop to commit the result of an attempt. A
        phase mismatch means an external forward update landed while the
        attempt was in flight; the caller's view is stale and not applied.
        """
        with self._lock:
            existing = self._jobs.get(job.id)
            if existing is None or existing.phase != expected_phase:
                return False
            self._jobs[job.id] = job.model_copy(deep=True)
            evicted = self._enforce_retention() if job.is_terminal else []

        self._emit_evictions(evicted)
        return True

    def remove(self, job_id: str) -> bool:
        with self._lock:
            return self._jobs.pop(job_id, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._jobs.clear()

    def restore(self, jobs: Iterable[Job]) -> int:
        """Load jobs recovered from a snapshot; known ids are left untouched."""
        restored = 0
        with self._lock:
            for job in jobs:
                if job.id in self._ignored or job.id in self._jobs:
                    continue
                self._jobs[job.id] = job.model_copy(deep=True)
                restored += 1
            evicted = self._enforce_retention()

        self._emit_evictions(evicted)
        logger.info("job_store_restored", restored=restored)
        return restored

    def apply_retention(self) -> list[Job]:
        """Evict terminal jobs beyond the retention bounds; returns the evicted jobs."""
        with self._lock:
            evicted = self._enforce_retention()
        self._emit_evictions(evicted)
        return evicted

    def expire_stale(
        self,
        now: datetime,
        window: timedelta,
        exclude: Collection[str] = (),
    ) -> list[ExpiredJob]:
        """
        Move non-terminal jobs older than `window` to EXPIRED.

        Jobs listed in `exclude` (in-flight attempts) are left alone; they
        are picked up on a later tick once their attempt has settled.

        Returns:
            Copies of the newly expired jobs with the phase each left
        """
        expired: list[ExpiredJob] = []
        with self._lock:
            for job in self._jobs.values():
                if job.is_terminal or job.id in exclude:
                    continue
                if now - job.created_at <= window:
                    continue
                previous = job.phase
                job.last_error = "SLA expiration window elapsed"
                job.transition_to(JobPhase.EXPIRED, now)
                expired.append(ExpiredJob(job.model_copy(deep=True), previous))
            evicted = self._enforce_retention() if expired else []

        self._emit_evictions(evicted)
        return expired

    # =========================================================================
    # Internals
    # =========================================================================

    def _enforce_retention(self) -> list[Job]:
        """Evict oldest-terminal jobs beyond the bounds. Caller holds the lock."""
        evicted = self._evict_over(
            [j for j in self._jobs.values() if j.phase == JobPhase.COMPLETED],
            self._keep_completed,
        )
        evicted += self._evict_over(
            [j for j in self._jobs.values() if j.phase in CANCELLED_PHASES],
            self._keep_cancelled,
        )
        return evicted

    def _evict_over(self, jobs: list[Job], keep: int) -> list[Job]:
        excess = len(jobs) - keep
        if excess <= 0:
            return []
        jobs.sort(key=lambda j: (j.terminal_at or j.updated_at, j.created_at))
        evicted = jobs[:excess]
        for job in evicted:
            del self._jobs[job.id]
        return evicted

    def _emit_evictions(self, evicted: list[Job]) -> None:
        for job in evicted:
            logger.debug("job_evicted", job_id=job.id, phase=job.phase.value)
            if self._hook is not None:
                self._hook.emit(
                    SchedulerEvent(
                        type=SchedulerEventType.JOB_EVICTED,
                        job_id=job.id,
                        wallet_key=job.wallet_key,
                        phase=job.phase,
                    )
                )
