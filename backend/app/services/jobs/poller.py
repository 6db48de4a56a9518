"""
Client-side polling of an analysis job.

The poller re-reads a job on a fixed interval until it reaches a terminal
status or the attempt bound is exceeded, in which case it reports a
synthesized ``AnalysisTimeout`` failure. Waiting uses an event so that
``cancel()`` wakes the poller immediately.
"""
import copy
import logging
import threading
from datetime import datetime
from typing import Callable, Optional

from app.config import Config
from app.services.errors import AnalysisTimeout

from .repository import AnalysisJob, JobStatus

logger = logging.getLogger(__name__)


class JobPoller:
    """
    Polls ``fetch(job_id)`` until the job finishes.

    Args:
        fetch: Returns the current job snapshot (raises JobNotFound for unknown ids)
        interval: Seconds between attempts
        max_attempts: Number of reads before giving up
    """

    def __init__(
        self,
        fetch: Callable[[str], AnalysisJob],
        interval: Optional[float] = None,
        max_attempts: Optional[int] = None,
    ):
        self.fetch = fetch
        self.interval = Config.JOB_POLL_INTERVAL if interval is None else interval
        self.max_attempts = Config.JOB_MAX_ATTEMPTS if max_attempts is None else max_attempts
        self.attempts = 0
        self._cancelled = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self):
        """Stop polling. The job itself keeps running in the worker."""
        self._cancelled.set()

    def wait(self, job_id: str) -> Optional[AnalysisJob]:
        """
        Block until the job is terminal.

        Returns:
            The completed or failed job, a synthesized failed job on timeout,
            or the last snapshot (None if never read) when cancelled
        """
        job: Optional[AnalysisJob] = None
        self.attempts = 0
        while self.attempts < self.max_attempts:
            if self._cancelled.is_set():
                logger.info(f"Polling for job {job_id} cancelled")
                return job

            self.attempts += 1
            job = self.fetch(job_id)
            if job.status.is_terminal:
                logger.info(f"Job {job_id} finished as {job.status.value} after {self.attempts} attempt(s)")
                return job

            if self.attempts < self.max_attempts and self._cancelled.wait(self.interval):
                logger.info(f"Polling for job {job_id} cancelled")
                return job

        timeout = AnalysisTimeout(job_id, self.attempts)
        logger.warning(str(timeout))
        failed = copy.deepcopy(job) if job is not None else AnalysisJob(id=job_id)
        failed.status = JobStatus.FAILED
        failed.error = str(timeout)
        failed.completed_at = datetime.now()
        return failed
