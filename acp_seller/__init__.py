"""
ACP Seller Scheduler

Job scheduling and transaction-retry engine for a seller agent on the
Agent Commerce Protocol.
"""

__version__ = "1.0.0"

from acp_seller.config import SchedulerSettings, load_settings

__all__ = ["SchedulerSettings", "load_settings", "__version__"]
