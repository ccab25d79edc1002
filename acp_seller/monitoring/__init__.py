"""
ACP Seller Scheduler - Monitoring Module

Monitoring components:
- Structured logging
- Scheduler metrics
- Transaction error history
"""

from .logging import configure_from_settings, configure_logging, get_logger, job_context, log_duration
from .metrics import (
    Counter,
    Gauge,
    Histogram,
    MetricsRegistry,
    SchedulerMetrics,
    get_metrics_registry,
    metrics,
    reset_metrics,
)
from .tx_monitor import TransactionError, TransactionMonitor

__all__ = [
    # Registry and types
    "MetricsRegistry",
    "Counter",
    "Gauge",
    "Histogram",
    "SchedulerMetrics",
    # Global instance and factory
    "metrics",
    "get_metrics_registry",
    "reset_metrics",
    # Logging
    "configure_logging",
    "configure_from_settings",
    "get_logger",
    "job_context",
    "log_duration",
    # Transaction errors
    "TransactionError",
    "TransactionMonitor",
]
