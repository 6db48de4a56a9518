"""
Form Import API Routes
======================

REST API endpoints for turning uploaded PDFs into editable form structures.

Endpoints:
- POST /api/v1/form-import/analyze - Analyze a PDF synchronously
- POST /api/v1/form-import/jobs - Queue a PDF for background analysis
- GET /api/v1/form-import/jobs/{job_id} - Poll a background analysis
- POST /api/v1/form-import/mappings - Mapping suggestions for field names
- GET /api/v1/form-import/schema - Target application schema
- GET /api/v1/form-import/providers - AI provider availability
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from pydantic import BaseModel, ConfigDict, Field

from app.config import Config
from app.models import ProviderStatusResponse
from app.services.errors import ExtractionError, JobNotFound, NoFieldsFound, StorageError
from app.services.form_import import (
    ExtractedField,
    FormImportPipeline,
    MappingSuggestionEngine,
    ProviderChain,
    create_provider_chain,
    get_application_fields_schema,
    get_provider_status,
)
from app.services.jobs import AnalysisJobCoordinator
from app.services.storage import create_storage
from app.utils.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/form-import", tags=["Form Import"])


# ============================================================================
# Request/Response Models
# ============================================================================

class AnalyzeResponse(BaseModel):
    """Result of a synchronous PDF analysis."""
    success: bool
    form_title: Optional[str] = None
    form_structure: Optional[Dict[str, Any]] = None
    metadata: Dict[str, Any] = {}
    extracted_fields: List[Dict[str, Any]] = []
    mapping_suggestions: List[Dict[str, Any]] = []
    used_vision: bool = False


class JobSubmitResponse(BaseModel):
    """Acknowledgement of a queued analysis."""
    model_config = ConfigDict(populate_by_name=True)

    job_id: str = Field(..., alias="jobId")
    status: str = Field("pending", description="Always 'pending' on submission")
    message: str = "PDF analysis started. Poll the job for results."


class JobStatusResponse(BaseModel):
    """Snapshot of a background analysis."""
    model_config = ConfigDict(populate_by_name=True)

    job_id: str = Field(..., alias="jobId")
    status: str = Field(..., description="pending | processing | completed | failed")
    results: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    created_at: datetime = Field(..., alias="createdAt")
    started_at: Optional[datetime] = Field(None, alias="startedAt")
    completed_at: Optional[datetime] = Field(None, alias="completedAt")


class MappingFieldInput(BaseModel):
    """A PDF field to map."""
    name: str
    type: str = "text"
    id: Optional[str] = None


class MappingRequest(BaseModel):
    """Field names (and optionally a custom schema) to map."""
    model_config = ConfigDict(populate_by_name=True)

    fields: List[MappingFieldInput] = Field(..., min_length=1)
    target_schema: Optional[Dict[str, Dict[str, Any]]] = Field(None, alias="schema")
    use_ai: bool = Field(True, alias="useAi")


class MappingResponse(BaseModel):
    """Mapping suggestions sorted by descending confidence."""
    success: bool
    count: int
    needs_review: int
    suggestions: List[Dict[str, Any]]


# ============================================================================
# Service Instances (Singletons)
# ============================================================================

_rate_limiter_instance: Optional[RateLimiter] = None
_provider_instance: Optional[ProviderChain] = None
_pipeline_instance: Optional[FormImportPipeline] = None
_coordinator_instance: Optional[AnalysisJobCoordinator] = None


def get_rate_limiter() -> RateLimiter:
    """Get or create the shared AI call budget."""
    global _rate_limiter_instance

    if _rate_limiter_instance is None:
        _rate_limiter_instance = RateLimiter(max_total_calls=Config.MAX_TOTAL_CALLS)
    return _rate_limiter_instance


def get_provider() -> ProviderChain:
    """Get or create the AI provider chain."""
    global _provider_instance

    if _provider_instance is None:
        _provider_instance = create_provider_chain(rate_limiter=get_rate_limiter())
    return _provider_instance


def get_pipeline() -> FormImportPipeline:
    """Get or create the import pipeline instance."""
    global _pipeline_instance

    if _pipeline_instance is None:
        _pipeline_instance = FormImportPipeline(provider=get_provider())
        logger.info("Initialized FormImportPipeline singleton")
    return _pipeline_instance


def get_mapping_engine() -> MappingSuggestionEngine:
    return MappingSuggestionEngine(provider=get_provider())


def get_coordinator() -> AnalysisJobCoordinator:
    """Get or create the background analysis coordinator."""
    global _coordinator_instance

    if _coordinator_instance is None:
        _coordinator_instance = AnalysisJobCoordinator(
            storage=create_storage(),
            pipeline_factory=get_pipeline,
        )
        logger.info("Initialized AnalysisJobCoordinator singleton")
    return _coordinator_instance


def shutdown_coordinator():
    """Stop the background worker if it was started."""
    if _coordinator_instance is not None:
        _coordinator_instance.stop()


# ============================================================================
# Helpers
# ============================================================================

async def read_pdf_upload(file: UploadFile) -> bytes:
    """
    Read and validate an uploaded PDF.

    Raises:
        HTTPException: 400 for non-PDF or empty uploads, 413 when too large
    """
    if not file.filename or not file.filename.lower().endswith('.pdf'):
        raise HTTPException(
            status_code=400,
            detail="Invalid file type. Only PDF files are allowed."
        )

    pdf_bytes = await file.read()

    if len(pdf_bytes) == 0:
        raise HTTPException(
            status_code=400,
            detail="Empty file uploaded"
        )

    if len(pdf_bytes) > Config.MAX_UPLOAD_BYTES:
        raise HTTPException(
            status_code=413,
            detail=f"File too large. Maximum size is {Config.MAX_UPLOAD_BYTES // (1024 * 1024)}MB"
        )

    # Validate PDF magic bytes
    if not pdf_bytes.startswith(b'%PDF'):
        raise HTTPException(
            status_code=400,
            detail="Invalid PDF format"
        )

    return pdf_bytes


# ============================================================================
# API Endpoints
# ============================================================================

@router.post("/analyze", response_model=AnalyzeResponse)
async def analyze_pdf(
    file: UploadFile = File(..., description="PDF file to analyze"),
    pipeline: FormImportPipeline = Depends(get_pipeline),
) -> AnalyzeResponse:
    """
    Analyze a PDF and return an editable form structure.

    The PDF goes through:
    1. AcroForm field extraction
    2. Vision analysis when fields are missing or generically named
    3. Mapping suggestions against the application schema
    4. Conversion to a single-section form
    """
    try:
        pdf_bytes = await read_pdf_upload(file)
        logger.info(f"Analyzing PDF: {file.filename} ({len(pdf_bytes)} bytes)")

        result = pipeline.analyze(pdf_bytes, file.filename)
        data = result.to_dict()

        return AnalyzeResponse(
            success=True,
            form_title=data['formTitle'],
            form_structure=data['formStructure'],
            metadata=data['metadata'],
            extracted_fields=data['extractedFields'],
            mapping_suggestions=data['mappingSuggestions'],
            used_vision=data['usedVision'],
        )

    except HTTPException:
        raise
    except (ExtractionError, NoFieldsFound) as e:
        logger.warning(f"PDF analysis rejected for {file.filename}: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error analyzing PDF: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to analyze PDF: {e}")


@router.post("/jobs", response_model=JobSubmitResponse, status_code=202)
async def submit_analysis_job(
    file: UploadFile = File(..., description="PDF file to analyze"),
    coordinator: AnalysisJobCoordinator = Depends(get_coordinator),
) -> JobSubmitResponse:
    """Store the PDF and queue it for background analysis."""
    try:
        pdf_bytes = await read_pdf_upload(file)
        job_id = coordinator.submit(pdf_bytes, file.filename)
        return JobSubmitResponse(job_id=job_id, status="pending")

    except HTTPException:
        raise
    except StorageError as e:
        logger.error(f"Error uploading PDF to storage: {e}")
        raise HTTPException(status_code=500, detail="Failed to upload PDF")


@router.get("/jobs/{job_id}", response_model=JobStatusResponse)
async def get_analysis_job(
    job_id: str,
    coordinator: AnalysisJobCoordinator = Depends(get_coordinator),
) -> JobStatusResponse:
    """Current status of a background analysis."""
    try:
        job = coordinator.poll(job_id)
    except JobNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))

    return JobStatusResponse(
        job_id=job.id,
        status=job.status.value,
        results=job.results,
        error=job.error,
        created_at=job.created_at,
        started_at=job.started_at,
        completed_at=job.completed_at,
    )


@router.post("/mappings", response_model=MappingResponse)
async def suggest_mappings(
    request: MappingRequest,
    engine: MappingSuggestionEngine = Depends(get_mapping_engine),
) -> MappingResponse:
    """
    Suggest schema mappings for PDF field names.

    Suggestions below 0.5 confidence are returned with a review warning.
    """
    fields = [
        ExtractedField(id=f.id or f"field-{i + 1}", name=f.name, type=f.type)
        for i, f in enumerate(request.fields)
    ]
    suggestions = engine.suggest(fields, schema=request.target_schema, use_ai=request.use_ai)

    return MappingResponse(
        success=True,
        count=len(suggestions),
        needs_review=sum(1 for s in suggestions if s.needs_review),
        suggestions=[s.to_dict() for s in suggestions],
    )


@router.get("/schema")
async def get_target_schema() -> Dict[str, Dict[str, Any]]:
    """Application attributes that PDF fields can be mapped onto."""
    return get_application_fields_schema()


@router.get("/providers", response_model=ProviderStatusResponse)
async def get_providers() -> ProviderStatusResponse:
    """Which AI providers are configured and which one is selected."""
    status = get_provider_status()
    return ProviderStatusResponse(
        selected=status.pop('selected'),
        fallback_enabled=status.pop('fallbackEnabled'),
        providers=status,
    )
