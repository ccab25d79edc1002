"""
ACP Seller Scheduling Core

Job store, wallet pacing, retry planning and the scheduler loop.
"""

from acp_seller.scheduling.events import EventHook
from acp_seller.scheduling.executor import TransactionExecutor
from acp_seller.scheduling.job_store import ExpiredJob, JobStore
from acp_seller.scheduling.rate_limiter import WalletPacingState, WalletRateLimiter
from acp_seller.scheduling.retry import (
    RETRYABLE_ERRORS,
    RetryPlan,
    RetryPlanner,
    is_retryable_error,
)
from acp_seller.scheduling.scheduler import (
    JobScheduler,
    SchedulerStats,
    get_scheduler,
    setup_scheduler,
    shutdown_scheduler,
)
from acp_seller.scheduling.snapshot import load_snapshot, save_snapshot

__all__ = [
    # Loop
    "JobScheduler",
    "SchedulerStats",
    "get_scheduler",
    "setup_scheduler",
    "shutdown_scheduler",
    # Collaborators
    "JobStore",
    "ExpiredJob",
    "WalletRateLimiter",
    "WalletPacingState",
    "RetryPlanner",
    "RetryPlan",
    "RETRYABLE_ERRORS",
    "is_retryable_error",
    "EventHook",
    "TransactionExecutor",
    # Persistence
    "save_snapshot",
    "load_snapshot",
]
