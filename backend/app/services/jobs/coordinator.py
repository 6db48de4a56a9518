"""
Asynchronous analysis coordinator.

``submit`` stores the PDF, records a pending job and hands it to the
worker; it never waits for the analysis. ``poll`` returns a snapshot of
the job record.
"""
import logging
import time
from datetime import timedelta
from pathlib import PurePath
from typing import Any, Callable, Optional

from app.config import Config
from app.services.errors import JobNotFound

from .repository import AnalysisJob, InMemoryJobRepository
from .worker import AnalysisWorker

logger = logging.getLogger(__name__)

UPLOAD_PREFIX = 'form-templates'


class AnalysisJobCoordinator:
    """
    Owns the job store and the worker for background PDF analysis.

    Args:
        storage: Object storage for the uploaded PDFs
        pipeline_factory: Callable returning the import pipeline
        repository: Job store (a fresh in-memory store by default)
    """

    def __init__(
        self,
        storage: Any,
        pipeline_factory: Callable[[], Any],
        repository: Optional[InMemoryJobRepository] = None,
    ):
        self.storage = storage
        self.repository = repository or InMemoryJobRepository()
        self.worker = AnalysisWorker(self.repository, storage, pipeline_factory)

    def start(self):
        self.worker.start()

    def stop(self):
        self.worker.stop()

    def submit(self, pdf_bytes: bytes, filename: str) -> str:
        """
        Store the PDF and queue its analysis.

        Args:
            pdf_bytes: Uploaded PDF
            filename: Original filename

        Returns:
            Job id of the pending job
        """
        safe_name = PurePath(filename or 'upload.pdf').name
        path = f"{UPLOAD_PREFIX}/{int(time.time() * 1000)}_{safe_name}"
        stored_path = self.storage.put(path, pdf_bytes, content_type='application/pdf')

        job = self.repository.create({'pdfPath': stored_path, 'fileName': safe_name})
        self.worker.enqueue(job.id)
        logger.info(f"Queued analysis job {job.id} for {safe_name}")
        return job.id

    def poll(self, job_id: str) -> AnalysisJob:
        """
        Read-only snapshot of a job.

        Raises:
            JobNotFound: for unknown ids
        """
        job = self.repository.get(job_id)
        if job is None:
            raise JobNotFound(job_id)
        return job

    def cleanup(self, max_age: Optional[timedelta] = None) -> int:
        return self.repository.cleanup(max_age or timedelta(hours=Config.JOB_RETENTION_HOURS))

    def list_active(self):
        return self.repository.list_active()
