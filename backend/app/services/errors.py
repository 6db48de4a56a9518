"""
Domain exceptions shared by the form import pipeline, AI providers and job coordinator.
"""
from typing import Optional


class FormEngineError(Exception):
    """Base class for form engine errors."""


class ExtractionError(FormEngineError):
    """The uploaded bytes are not a parseable PDF."""


class VisionUnavailable(FormEngineError):
    """Page rasterization failed, so the vision model cannot be consulted."""


class ProviderError(FormEngineError):
    """A single AI provider failed, timed out or was refused by the rate limiter."""

    def __init__(self, provider: str, message: str):
        self.provider = provider
        super().__init__(f"{provider}: {message}")


class NoFieldsFound(FormEngineError):
    """Neither extraction nor vision produced any field."""

    def __init__(self, message: Optional[str] = None):
        super().__init__(
            message or "No form fields found in PDF. Use the visual form builder to create the form manually."
        )


class AnalysisTimeout(FormEngineError):
    """A polled analysis job did not reach a terminal status within the attempt bound."""

    def __init__(self, job_id: str, attempts: int):
        self.job_id = job_id
        self.attempts = attempts
        super().__init__(f"Analysis job {job_id} did not finish after {attempts} polling attempts")


class JobNotFound(FormEngineError):
    """No analysis job exists for the requested identifier."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Analysis job not found: {job_id}")


class StorageError(FormEngineError):
    """An object could not be written to or read from storage."""
