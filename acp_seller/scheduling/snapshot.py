"""
Queue Snapshot

Persists the job set as JSON so the in-memory queue survives a restart.
Only jobs are written; wallet pacing state is empty after a graceful drain
and is rebuilt from scratch.
"""

import os
from pathlib import Path

import structlog
from pydantic import TypeAdapter, ValidationError

from acp_seller.errors import JobValidationError
from acp_seller.models.job import Job
from acp_seller.scheduling.job_store import JobStore

logger = structlog.get_logger(__name__)

_JOBS_ADAPTER = TypeAdapter(list[Job])


def save_snapshot(store: JobStore, path: str | os.PathLike[str]) -> int:
    """
    Write every stored job to `path`.

    The file is replaced atomically so a crash mid-write never leaves a
    truncated snapshot behind.

    Returns:
        Number of jobs written
    """
    target = Path(path)
    jobs = store.snapshot()
    target.parent.mkdir(parents=True, exist_ok=True)

    tmp = target.with_suffix(target.suffix + ".tmp")
    tmp.write_bytes(_JOBS_ADAPTER.dump_json(jobs, indent=2))
    os.replace(tmp, target)

    logger.info("queue_snapshot_saved", path=str(target), jobs=len(jobs))
    return len(jobs)


def load_snapshot(path: str | os.PathLike[str]) -> list[Job]:
    """
    Read jobs from a snapshot file.

    A missing file yields an empty list.

    Raises:
        JobValidationError: If the file does not hold a valid job list
    """
    source = Path(path)
    if not source.exists():
        logger.debug("queue_snapshot_missing", path=str(source))
        return []

    try:
        jobs = _JOBS_ADAPTER.validate_json(source.read_bytes())
    except ValidationError as e:
        logger.error("queue_snapshot_invalid", path=str(source), errors=e.error_count())
        raise JobValidationError(f"Invalid queue snapshot at {source}: {e}") from e

    logger.info("queue_snapshot_loaded", path=str(source), jobs=len(jobs))
    return jobs
