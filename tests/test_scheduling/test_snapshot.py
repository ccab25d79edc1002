"""
Tests for queue snapshots.
"""

import pytest

from acp_seller.errors import JobValidationError
from acp_seller.models.phase import JobPhase
from acp_seller.scheduling.job_store import JobStore
from acp_seller.scheduling.snapshot import load_snapshot, save_snapshot
from conftest import START, make_settings


class TestSnapshot:
    """Tests for save_snapshot / load_snapshot."""

    def test_save_and_load(self, tmp_path, job_factory):
        store = JobStore(make_settings())
        store.upsert(job_factory("a", JobPhase.TRANSACTION, attempt=2, params={"price": 3}))
        store.upsert(job_factory("b", JobPhase.COMPLETED, terminal_at=START))
        path = tmp_path / "queue" / "jobs.json"

        assert save_snapshot(store, path) == 2

        jobs = {job.id: job for job in load_snapshot(path)}
        assert jobs["a"].phase == JobPhase.TRANSACTION
        assert jobs["a"].attempt == 2
        assert jobs["a"].params == {"price": 3}
        assert jobs["a"].created_at == START
        assert jobs["b"].terminal_at == START

    def test_no_temp_file_left_behind(self, tmp_path, job_factory):
        store = JobStore(make_settings())
        store.upsert(job_factory("a"))
        path = tmp_path / "jobs.json"

        save_snapshot(store, path)

        assert [p.name for p in tmp_path.iterdir()] == ["jobs.json"]

    def test_missing_file_is_empty(self, tmp_path):
        assert load_snapshot(tmp_path / "absent.json") == []

    def test_corrupt_file_raises(self, tmp_path):
        path = tmp_path / "jobs.json"
        path.write_text('[{"id": ""}]')

        with pytest.raises(JobValidationError):
            load_snapshot(path)
