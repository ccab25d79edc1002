"""
Scheduler Observability Hook

Synchronous pub/sub for SchedulerEvents. Every emitted event is logged; the
hook then fans it out to subscribers filtered by event type. A failing
subscriber is logged and skipped so it can never stall the scheduler.
"""

from collections import defaultdict
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any
from uuid import uuid4

import structlog

from acp_seller.models.events import SchedulerEvent, SchedulerEventType

logger = structlog.get_logger(__name__)

EventHandler = Callable[[SchedulerEvent], None]

_WARNING_EVENTS = frozenset({
    SchedulerEventType.RETRIES_EXHAUSTED,
    SchedulerEventType.JOB_REJECTED,
    SchedulerEventType.JOB_EXPIRED,
})


@dataclass
class Subscription:
    """Represents a hook subscription."""

    id: str
    handler: EventHandler
    event_types: frozenset[SchedulerEventType]


class EventHook:
    """Fan-out of scheduler events to logging and subscribers."""

    def __init__(self) -> None:
        self._subscriptions: dict[str, Subscription] = {}
        self._type_index: dict[SchedulerEventType, set[str]] = defaultdict(set)
        self._emitted = 0
        self._handler_errors = 0

    def subscribe(
        self,
        handler: EventHandler,
        event_types: Iterable[SchedulerEventType] | None = None,
    ) -> str:
        """
        Subscribe to scheduler events.

        Args:
            handler: Callable invoked with each matching event
            event_types: Event types to receive (None = all)

        Returns:
            Subscription ID for unsubscribing
        """
        sub_id = str(uuid4())
        types = frozenset(event_types) if event_types is not None else frozenset(SchedulerEventType)
        self._subscriptions[sub_id] = Subscription(id=sub_id, handler=handler, event_types=types)
        for event_type in types:
            self._type_index[event_type].add(sub_id)

        logger.debug(
            "hook_subscription_created",
            subscription_id=sub_id,
            event_types=sorted(et.value for et in types),
        )
        return sub_id

    def unsubscribe(self, subscription_id: str) -> bool:
        subscription = self._subscriptions.pop(subscription_id, None)
        if subscription is None:
            return False
        for event_type in subscription.event_types:
            self._type_index[event_type].discard(subscription_id)
        return True

    def emit(self, event: SchedulerEvent) -> None:
        """Log an event and deliver it to matching subscribers."""
        self._emitted += 1
        context = event.to_log_context()
        if event.type in _WARNING_EVENTS:
            logger.warning("scheduler_event", **context)
        else:
            logger.info("scheduler_event", **context)

        for sub_id in list(self._type_index.get(event.type, ())):
            subscription = self._subscriptions.get(sub_id)
            if subscription is None:
                continue
            try:
                subscription.handler(event)
            except Exception as e:  # Intentional broad catch: subscribers must not break the loop
                self._handler_errors += 1
                logger.error(
                    "hook_handler_error",
                    subscription_id=sub_id,
                    event_type=event.type.value,
                    job_id=event.job_id,
                    error=str(e),
                )

    def get_metrics(self) -> dict[str, Any]:
        return {
            "events_emitted": self._emitted,
            "handler_errors": self._handler_errors,
            "subscriptions": len(self._subscriptions),
        }
