"""
Asynchronous PDF analysis jobs: job store, worker thread, coordinator and poller.
"""

from .repository import AnalysisJob, InMemoryJobRepository, JobStatus
from .worker import AnalysisWorker
from .coordinator import AnalysisJobCoordinator
from .poller import JobPoller

__all__ = [
    'AnalysisJob',
    'InMemoryJobRepository',
    'JobStatus',
    'AnalysisWorker',
    'AnalysisJobCoordinator',
    'JobPoller',
]
