"""
Tests for the scheduler observability hook.
"""

from unittest.mock import MagicMock

from acp_seller.models.events import SchedulerEvent, SchedulerEventType
from acp_seller.scheduling.events import EventHook


def _event(event_type: SchedulerEventType = SchedulerEventType.JOB_REGISTERED) -> SchedulerEvent:
    return SchedulerEvent(type=event_type, job_id="1", wallet_key="0xabc")


class TestEventHook:
    """Tests for EventHook subscription and delivery."""

    def test_subscribe_all_by_default(self):
        hook = EventHook()
        handler = MagicMock()
        hook.subscribe(handler)

        for event_type in SchedulerEventType:
            hook.emit(_event(event_type))

        assert handler.call_count == len(SchedulerEventType)

    def test_filtered_subscription(self):
        hook = EventHook()
        handler = MagicMock()
        hook.subscribe(handler, {SchedulerEventType.JOB_REJECTED})

        hook.emit(_event(SchedulerEventType.JOB_REGISTERED))
        rejected = _event(SchedulerEventType.JOB_REJECTED)
        hook.emit(rejected)

        handler.assert_called_once_with(rejected)

    def test_unsubscribe(self):
        hook = EventHook()
        handler = MagicMock()
        sub_id = hook.subscribe(handler)

        assert hook.unsubscribe(sub_id)
        assert not hook.unsubscribe(sub_id)
        hook.emit(_event())
        handler.assert_not_called()

    def test_failing_handler_isolated(self):
        """A raising subscriber never stops delivery to the others."""
        hook = EventHook()
        received = []
        hook.subscribe(MagicMock(side_effect=RuntimeError("boom")))
        hook.subscribe(received.append)

        hook.emit(_event())

        assert len(received) == 1
        assert hook.get_metrics()["handler_errors"] == 1

    def test_metrics(self):
        hook = EventHook()
        hook.subscribe(MagicMock())
        hook.emit(_event())
        hook.emit(_event())

        assert hook.get_metrics() == {
            "events_emitted": 2,
            "handler_errors": 0,
            "subscriptions": 1,
        }
