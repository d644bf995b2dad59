"""In-memory analysis job store with TTL cleanup.

WHY: Analyzing a whole class takes one model call per window, which can
run for minutes. The HTTP API returns a job ID immediately and runs the
batch in the background; clients poll the job for per-window progress.
An in-memory store is sufficient for a single-team tool with no
persistence requirements.

HOW: JobStatus names the lifecycle states, Job carries one analysis (its
windows, config, progress and final BatchResult) and JobStore keeps jobs
in a dict keyed by ID behind a single lock.

RULES:
- Every read and write of the job dict happens under the store lock
- get_job() hands out a copy taken under the lock, so request handlers
  never read a Job the batch runner is still updating
- Finished jobs (completed or failed) expire after the TTL, one hour by
  default
- Job IDs are UUID4 hex strings
"""

from __future__ import annotations

import enum
import logging
import threading
import time
import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

from lesson_review.core.batch import BatchResult
from lesson_review.core.windows import Window

logger = logging.getLogger(__name__)

# Seconds a finished job stays readable
DEFAULT_TTL_SECONDS = 3600


class JobStatus(str, enum.Enum):
    """Valid states for an analysis job.

    RULES:
    - pending: job created, batch not started
    - analyzing: windows are being sent to the analyzer
    - completed: every window finished (some may have failed individually)
    - failed: the batch itself could not run (e.g. missing API key)
    """

    PENDING = "pending"
    ANALYZING = "analyzing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class Job:
    """Metadata and state for a single analysis job.

    RULES:
    - id: UUID4 hex string, unique and immutable after creation
    - windows: the windows being analyzed, fixed at creation
    - config: source_name, objectives, window_minutes
    - progress: {"total", "done", "failed"} snapshot
    - window_jobs: one {"index", "window_index", "status"[, "error_code"]}
      snapshot per window
    - result: BatchResult once the job is COMPLETED
    - error: message when the job is FAILED
    """

    id: str
    status: JobStatus
    windows: List[Window]
    created_at: float
    updated_at: float
    config: Dict[str, Any] = field(default_factory=dict)
    completed_at: Optional[float] = None
    error: Optional[str] = None
    progress: Dict[str, int] = field(default_factory=dict)
    window_jobs: List[Dict[str, Any]] = field(default_factory=list)
    result: Optional[BatchResult] = None


class JobStore:
    """Thread-safe in-memory store for analysis jobs.

    WHY: Request handlers read job state while a background thread runs
    the batch and writes progress. A centralized store with locking
    prevents race conditions.

    RULES:
    - Mutating methods hold self._lock for their whole update
    - get_job() returns a snapshot; create_job() and update_job() return
      the stored Job and are meant for the writer only
    - Unknown IDs give None (get/update) or False (delete), never an error
    - create_job() raises ValueError when max_jobs are already stored
    """

    def __init__(
        self,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        max_jobs: int = 100,
    ) -> None:
        self._jobs: Dict[str, Job] = {}
        self._lock = threading.Lock()
        self._ttl_seconds = ttl_seconds
        self.max_jobs = max_jobs

    def create_job(
        self,
        windows: List[Window],
        config: Optional[Dict[str, Any]] = None,
    ) -> Job:
        """Create a new job in PENDING state with one pending entry per window."""
        with self._lock:
            if len(self._jobs) >= self.max_jobs:
                raise ValueError(
                    "Maximum number of concurrent jobs ({}) reached".format(
                        self.max_jobs
                    )
                )

            job_id = uuid.uuid4().hex
            now = time.time()

            job = Job(
                id=job_id,
                status=JobStatus.PENDING,
                windows=list(windows),
                created_at=now,
                updated_at=now,
                config=config or {},
                progress={"total": len(windows), "done": 0, "failed": 0},
                window_jobs=[
                    {"index": i, "window_index": w.index, "status": "pending"}
                    for i, w in enumerate(windows)
                ],
            )

            self._jobs[job_id] = job

        logger.info("job_created id=%s windows=%d", job_id, len(windows))
        return job

    def get_job(self, job_id: str) -> Optional[Job]:
        """Return a snapshot of a job, or None if the ID is unknown.

        Containers are copied. The BatchResult is shared; it is attached once,
        at completion, and never changed afterwards.
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None
            return replace(
                job,
                windows=list(job.windows),
                config=dict(job.config),
                progress=dict(job.progress),
                window_jobs=[dict(entry) for entry in job.window_jobs],
            )

    def update_job(
        self,
        job_id: str,
        status: Optional[JobStatus] = None,
        error: Optional[str] = None,
        progress: Optional[Dict[str, int]] = None,
        window_job: Optional[Dict[str, Any]] = None,
        result: Optional[BatchResult] = None,
    ) -> Optional[Job]:
        """Apply the given changes to a job and return it (None if unknown).

        RULES:
        - Arguments left as None are not touched
        - window_job replaces the entry at window_job["index"]
        - result also replaces progress and window_jobs with its own
        - updated_at moves on every call; completed_at is stamped once the
          status is terminal
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None

            now = time.time()

            if status is not None:
                job.status = status
            if error is not None:
                job.error = error
            if progress is not None:
                job.progress = dict(progress)
            if window_job is not None:
                position = window_job["index"]
                if 0 <= position < len(job.window_jobs):
                    job.window_jobs[position] = dict(window_job)
            if result is not None:
                job.result = result
                job.progress = result.progress.to_dict()
                job.window_jobs = [j.to_dict() for j in result.jobs]

            job.updated_at = now

            if job.status in (JobStatus.COMPLETED, JobStatus.FAILED):
                job.completed_at = now

            return job

    def delete_job(self, job_id: str) -> bool:
        """Delete a job. Returns True if it existed."""
        with self._lock:
            job = self._jobs.pop(job_id, None)

        if job is None:
            return False

        logger.info("job_deleted id=%s", job_id)
        return True

    def cleanup_expired(self) -> int:
        """Drop finished jobs older than the TTL and return how many went.

        Age counts from completed_at; pending and analyzing jobs are never
        removed.
        """
        now = time.time()
        expired_jobs: List[Job] = []

        with self._lock:
            for job_id, job in list(self._jobs.items()):
                if job.status not in (JobStatus.COMPLETED, JobStatus.FAILED):
                    continue
                if job.completed_at is None:
                    continue
                if now - job.completed_at > self._ttl_seconds:
                    expired_jobs.append(self._jobs.pop(job_id))

        for job in expired_jobs:
            logger.info("job_expired id=%s age_s=%.0f", job.id, now - job.completed_at)

        return len(expired_jobs)
