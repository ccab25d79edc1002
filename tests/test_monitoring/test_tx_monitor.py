"""
Tests for the transaction error monitor.
"""

from acp_seller.monitoring.tx_monitor import TransactionMonitor


class ChainError(Exception):
    def __init__(self, message: str, short_message: str) -> None:
        super().__init__(message)
        self.short_message = short_message


class TestTransactionMonitor:
    """Tests for TransactionMonitor."""

    def test_record_string_error(self):
        monitor = TransactionMonitor()

        entry = monitor.record_error("42", "execution reverted")

        assert entry.job_id == "42"
        assert entry.error == "execution reverted"
        assert entry.details is None
        assert len(monitor) == 1

    def test_record_exception_captures_details(self):
        monitor = TransactionMonitor()

        entry = monitor.record_error("42", ChainError("call failed", "gas estimation failed"))

        assert entry.error == "call failed"
        assert entry.details == "gas estimation failed"

    def test_nonce_extracted(self):
        monitor = TransactionMonitor()

        entry = monitor.record_error("42", "invalid nonce: 17 already used")

        assert entry.nonce == "17"

    def test_bounded_history(self):
        monitor = TransactionMonitor(max_errors=3)
        for i in range(5):
            monitor.record_error(str(i), f"error {i}")

        recent = monitor.get_recent_errors(count=10)
        assert [e.job_id for e in recent] == ["2", "3", "4"]
        assert monitor.get_recent_errors(count=0) == []

    def test_error_summary(self):
        monitor = TransactionMonitor()
        monitor.record_error("1", "replacement underpriced")
        monitor.record_error("1", "replacement underpriced")
        monitor.record_error("2", "nonce too low")

        assert monitor.get_error_summary() == {
            "total": 3,
            "unique_jobs": 2,
            "common_error": "replacement underpriced",
        }

    def test_empty_summary_and_clear(self):
        monitor = TransactionMonitor()
        assert monitor.get_error_summary()["common_error"] is None

        monitor.record_error("1", "boom")
        monitor.clear()
        assert len(monitor) == 0

    def test_to_dict(self):
        entry = TransactionMonitor().record_error("7", "timeout")
        data = entry.to_dict()

        assert data["job_id"] == "7"
        assert data["error"] == "timeout"
        assert data["timestamp"] == entry.timestamp.isoformat()
