"""
Pydantic models for API request/response schemas shared by the application routes.
"""
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field
from datetime import datetime


class RateLimitStatus(BaseModel):
    """Rate limit status response model."""
    total_calls: int
    max_calls: int
    remaining_calls: int
    calls_by_service: Dict[str, int]


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str
    timestamp: datetime
    ai_provider: Optional[str] = Field(None, description="Selected AI provider: gemini, openai or mock")
    active_jobs: int = 0


class ProviderStatusResponse(BaseModel):
    """Availability of the configured AI providers."""
    selected: str
    fallback_enabled: bool
    providers: Dict[str, Dict[str, Any]]
