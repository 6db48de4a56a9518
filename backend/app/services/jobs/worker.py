"""
Background worker that runs queued PDF analyses.

The worker is the only writer of job status. It reads the stored PDF,
runs the import pipeline and records either the results or the error.
"""
import logging
import queue
import threading
from typing import Any, Callable, Optional

from app.services.errors import FormEngineError

from .repository import InMemoryJobRepository

logger = logging.getLogger(__name__)

_STOP = object()


class AnalysisWorker:
    """
    Single-thread consumer of the analysis queue.

    Args:
        repository: Job store
        storage: Object storage holding the uploaded PDFs
        pipeline_factory: Callable returning an object with ``analyze(pdf_bytes, filename)``
    """

    def __init__(self, repository: InMemoryJobRepository, storage: Any, pipeline_factory: Callable[[], Any]):
        self.repository = repository
        self.storage = storage
        self.pipeline_factory = pipeline_factory
        self._queue: "queue.Queue[Any]" = queue.Queue()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def enqueue(self, job_id: str):
        self._queue.put(job_id)

    def start(self):
        if self.is_running:
            return
        self._thread = threading.Thread(target=self._run, name="analysis-worker", daemon=True)
        self._thread.start()
        logger.info("Analysis worker started")

    def stop(self, timeout: float = 5.0):
        """Stop after the job in progress; queued jobs stay pending."""
        if not self.is_running:
            return
        self._queue.put(_STOP)
        self._thread.join(timeout)
        self._thread = None
        logger.info("Analysis worker stopped")

    def _run(self):
        while True:
            job_id = self._queue.get()
            try:
                if job_id is _STOP:
                    return
                self.process_job(job_id)
            finally:
                self._queue.task_done()

    def process_job(self, job_id: str):
        """Run one job to a terminal status."""
        job = self.repository.get(job_id)
        if job is None or not self.repository.mark_processing(job_id):
            logger.warning(f"Skipping job {job_id}: not found or already finished")
            return

        pdf_path = job.input_ref.get('pdfPath')
        filename = job.input_ref.get('fileName')
        try:
            pdf_bytes = self.storage.get(pdf_path)
            result = self.pipeline_factory().analyze(pdf_bytes, filename)
            self.repository.complete(job_id, result.to_dict())
        except FormEngineError as e:
            logger.warning(f"Analysis job {job_id} failed: {e}")
            self.repository.fail(job_id, str(e))
        except Exception as e:
            # the worker thread must survive any single job
            logger.error(f"Unexpected error in analysis job {job_id}: {e}", exc_info=True)
            self.repository.fail(job_id, f"Analysis failed: {e}")
