"""
In-memory store of PDF analysis jobs.

A job moves pending -> processing -> completed | failed and never changes
again once it reaches a terminal status. Readers always receive copies, so
only the worker (through the transition methods) mutates a record.
"""
import copy
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from threading import Lock
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


@dataclass
class AnalysisJob:
    """One asynchronous PDF analysis."""
    id: str
    status: JobStatus = JobStatus.PENDING
    input_ref: Dict[str, Any] = field(default_factory=dict)
    results: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the camelCase wire format."""
        return {
            'id': self.id,
            'status': self.status.value,
            'inputRef': dict(self.input_ref),
            'results': self.results,
            'error': self.error,
            'createdAt': self.created_at.isoformat(),
            'startedAt': self.started_at.isoformat() if self.started_at else None,
            'completedAt': self.completed_at.isoformat() if self.completed_at else None,
        }


class InMemoryJobRepository:
    """Thread-safe job store keyed by job id."""

    def __init__(self):
        self._jobs: Dict[str, AnalysisJob] = {}
        self._lock = Lock()

    def create(self, input_ref: Dict[str, Any]) -> AnalysisJob:
        job = AnalysisJob(id=str(uuid.uuid4()), input_ref=dict(input_ref))
        with self._lock:
            self._jobs[job.id] = job
        logger.info(f"Created analysis job {job.id}")
        return copy.deepcopy(job)

    def get(self, job_id: str) -> Optional[AnalysisJob]:
        with self._lock:
            job = self._jobs.get(job_id)
            return copy.deepcopy(job) if job else None

    def _transition(self, job_id: str, status: JobStatus, **changes) -> bool:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                logger.warning(f"Cannot move unknown job {job_id} to {status.value}")
                return False
            if job.is_terminal:
                logger.warning(f"Job {job_id} is already {job.status.value}; ignoring {status.value}")
                return False
            job.status = status
            for name, value in changes.items():
                setattr(job, name, value)
        logger.info(f"Job {job_id} -> {status.value}")
        return True

    def mark_processing(self, job_id: str) -> bool:
        return self._transition(job_id, JobStatus.PROCESSING, started_at=datetime.now())

    def complete(self, job_id: str, results: Dict[str, Any]) -> bool:
        return self._transition(job_id, JobStatus.COMPLETED, results=results, completed_at=datetime.now())

    def fail(self, job_id: str, error: str) -> bool:
        return self._transition(job_id, JobStatus.FAILED, error=error, completed_at=datetime.now())

    def list_active(self) -> List[AnalysisJob]:
        """Jobs that are still pending or processing, oldest first."""
        with self._lock:
            active = [copy.deepcopy(j) for j in self._jobs.values() if not j.is_terminal]
        return sorted(active, key=lambda j: j.created_at)

    def cleanup(self, max_age: timedelta) -> int:
        """
        Remove terminal jobs that finished more than ``max_age`` ago.

        Returns:
            Number of removed jobs
        """
        cutoff = datetime.now() - max_age
        with self._lock:
            stale = [
                job_id for job_id, job in self._jobs.items()
                if job.is_terminal and (job.completed_at or job.created_at) < cutoff
            ]
            for job_id in stale:
                del self._jobs[job_id]
        if stale:
            logger.info(f"Removed {len(stale)} finished jobs older than {max_age}")
        return len(stale)
