"""
ACP Seller Scheduler Configuration

Centralized configuration using Pydantic Settings for type-safe environment
variable loading with validation. Variable names follow the seller agent's
.env conventions (ACP_PROCESSING_DELAY, GAS_PRICE_MULTIPLIER, ...).

Settings are constructed once at startup and passed explicitly into the
scheduler, retry planner and rate limiter, so tests can build isolated
configurations side by side.
"""

from datetime import timedelta
from functools import lru_cache
from typing import Any, Literal

import structlog
from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from acp_seller.errors import ConfigurationError

logger = structlog.get_logger(__name__)


class SchedulerSettings(BaseSettings):
    """Scheduler settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ═══════════════════════════════════════════════════════════════
    # JOB QUEUE
    # ═══════════════════════════════════════════════════════════════
    acp_processing_delay: int = Field(
        default=3000, ge=1000, description="Scheduler tick interval in milliseconds"
    )
    acp_max_retries: int = Field(
        default=3, ge=1, le=10, description="Retries allowed after the first failed attempt"
    )
    dispatch_per_wallet: bool = Field(
        default=False,
        description="Dispatch one job per distinct wallet per tick instead of one per tick",
    )
    skip_evaluation: bool = Field(
        default=False,
        description="Treat TRANSACTION as the final on-chain step (success goes to COMPLETED)",
    )
    ignored_job_ids: str = Field(
        default="", description="Comma-separated job ids the scheduler never registers"
    )

    # ═══════════════════════════════════════════════════════════════
    # TRANSACTIONS
    # ═══════════════════════════════════════════════════════════════
    gas_price_multiplier: float = Field(
        default=1.1, ge=1.0, le=2.0, description="Fee escalation base applied per retry"
    )
    max_gas_price: int = Field(
        default=100, ge=10, le=1000, description="Absolute fee ceiling (gwei)"
    )
    tx_confirmation_timeout: int = Field(
        default=60000, ge=1, description="Executor confirmation timeout in milliseconds"
    )

    # ═══════════════════════════════════════════════════════════════
    # RATE LIMITING
    # ═══════════════════════════════════════════════════════════════
    min_time_between_tx: int = Field(
        default=2000, ge=500, description="Minimum spacing between wallet transactions (ms)"
    )
    max_pending_tx: int = Field(
        default=1, ge=1, le=5, description="Concurrent pending transactions per wallet"
    )

    # ═══════════════════════════════════════════════════════════════
    # STATE RETENTION & SLA
    # ═══════════════════════════════════════════════════════════════
    keep_completed_jobs: int = Field(default=5, ge=0, description="Completed jobs to retain")
    keep_cancelled_jobs: int = Field(
        default=5, ge=0, description="Rejected/expired jobs to retain"
    )
    job_expiration_hours: float = Field(
        default=24, gt=0, description="SLA window after which idle jobs expire"
    )
    enable_job_expiration: bool = Field(default=True, description="Enable SLA expiration")
    queue_snapshot_path: str | None = Field(
        default=None, description="File used to recover the queue across restarts"
    )
    shutdown_grace_period: float = Field(
        default=30.0, ge=0, description="Seconds to wait for in-flight attempts on shutdown"
    )

    # ═══════════════════════════════════════════════════════════════
    # MONITORING
    # ═══════════════════════════════════════════════════════════════
    enable_tx_monitoring: bool = Field(default=True, description="Track transaction errors")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    log_json: bool = Field(default=False, description="Render logs as JSON")

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.upper()
        return v

    @field_validator("queue_snapshot_path")
    @classmethod
    def empty_path_is_none(cls, v: str | None) -> str | None:
        if v is not None and not v.strip():
            return None
        return v

    @property
    def ignored_job_id_set(self) -> frozenset[str]:
        """Parse ignored job ids into a set."""
        return frozenset(
            job_id.strip() for job_id in self.ignored_job_ids.split(",") if job_id.strip()
        )

    @property
    def tick_interval(self) -> timedelta:
        return timedelta(milliseconds=self.acp_processing_delay)

    @property
    def min_tx_spacing(self) -> timedelta:
        return timedelta(milliseconds=self.min_time_between_tx)

    @property
    def confirmation_timeout(self) -> timedelta:
        return timedelta(milliseconds=self.tx_confirmation_timeout)

    @property
    def expiration_window(self) -> timedelta:
        return timedelta(hours=self.job_expiration_hours)


def load_settings(**overrides: Any) -> SchedulerSettings:
    """
    Build and validate scheduler settings.

    Environment variables are read first; keyword overrides win. Any value
    out of range aborts startup with a ConfigurationError naming every
    offending field.

    Raises:
        ConfigurationError: If validation fails
    """
    try:
        settings = SchedulerSettings(**overrides)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']).upper()}: {err['msg']}"
            for err in e.errors()
        )
        logger.error("scheduler_config_invalid", errors=problems)
        raise ConfigurationError(f"Invalid scheduler configuration: {problems}") from e

    logger.info(
        "scheduler_config_loaded",
        tick_ms=settings.acp_processing_delay,
        max_retries=settings.acp_max_retries,
        max_pending_tx=settings.max_pending_tx,
        expiration_enabled=settings.enable_job_expiration,
    )
    return settings


@lru_cache
def get_settings() -> SchedulerSettings:
    """Get cached settings for process bootstrap."""
    return load_settings()
