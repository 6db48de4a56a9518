"""
Form Builder API Routes
=======================

REST API endpoints for editing form structures and rendering them.

Endpoints:
- POST /api/v1/form-builder/sessions - Open a builder session
- GET /api/v1/form-builder/sessions/{session_id} - Current editor state
- POST /api/v1/form-builder/sessions/{session_id}/operations - Apply one edit
- POST /api/v1/form-builder/sessions/{session_id}/template - Export a template record
- DELETE /api/v1/form-builder/sessions/{session_id} - Close a session
- POST /api/v1/form-builder/render/interactive - Interactive view of a form
- POST /api/v1/form-builder/render/document - Filled form as PDF
- POST /api/v1/form-builder/render/template - Imported PDF with its fields filled
"""

import logging
import uuid
from typing import Any, Callable, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from pydantic import BaseModel, ConfigDict, Field

from app.services.errors import ExtractionError, StorageError
from app.services.form_structure import PREVIEW_SAMPLE_DATA, BuilderController, FormStructure, validate_structure
from app.services.rendering import SignatureMode, fill_pdf_template, render_document_pdf, render_interactive
from app.services.storage import ObjectStorage, create_storage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/form-builder", tags=["Form Builder"])


# ============================================================================
# Request/Response Models
# ============================================================================

OperationName = Literal[
    "add_section",
    "update_section",
    "delete_section",
    "add_field",
    "update_field",
    "delete_field",
    "reorder_field",
    "move_field",
    "select_field",
    "set_active_section",
]


class SessionCreateRequest(BaseModel):
    """Optional initial structure for a new builder session."""
    structure: Optional[Dict[str, Any]] = None


class SessionResponse(BaseModel):
    """Editor state of a builder session."""
    session_id: str
    viewport: str
    structure: Dict[str, Any]
    active_section_id: Optional[str] = None
    selected_field_id: Optional[str] = None
    problems: List[str] = []


class OperationRequest(BaseModel):
    """One builder operation with its parameters."""
    operation: OperationName
    params: Dict[str, Any] = {}


class OperationResponse(BaseModel):
    """Outcome of a builder operation; rejected edits leave the structure unchanged."""
    applied: bool
    result: Optional[Dict[str, Any]] = None
    state: SessionResponse


class TemplateRequest(BaseModel):
    name: str
    description: str = ""
    application_types: List[str] = []
    task_number: Optional[int] = None


class RenderRequest(BaseModel):
    """A form (inline or from a session) plus the data to render it with."""
    model_config = ConfigDict(populate_by_name=True)

    structure: Optional[Dict[str, Any]] = None
    session_id: Optional[str] = Field(None, alias="sessionId")
    data_bag: Optional[Dict[str, Any]] = Field(None, alias="dataBag")
    values: Dict[str, Any] = {}
    signature_modes: Dict[str, SignatureMode] = Field(default_factory=dict, alias="signatureModes")
    title: Optional[str] = None
    use_sample_data: bool = Field(False, alias="useSampleData")
    template_path: Optional[str] = Field(None, alias="templatePath")
    field_mappings: Optional[Dict[str, Any]] = Field(None, alias="pdfFieldMappings")


# ============================================================================
# Session Store
# ============================================================================

_sessions: Dict[str, BuilderController] = {}


def get_sessions() -> Dict[str, BuilderController]:
    """Builder sessions keyed by session id (in-memory)."""
    return _sessions


_storage_instance: Optional[ObjectStorage] = None


def get_storage() -> ObjectStorage:
    """Get or create the object storage holding imported PDF templates."""
    global _storage_instance

    if _storage_instance is None:
        _storage_instance = create_storage()
    return _storage_instance


def _get_controller(sessions: Dict[str, BuilderController], session_id: str) -> BuilderController:
    controller = sessions.get(session_id)
    if controller is None:
        raise HTTPException(status_code=404, detail=f"Builder session not found: {session_id}")
    return controller


def _session_response(session_id: str, controller: BuilderController, viewport: str = 'desktop') -> SessionResponse:
    try:
        state = controller.view_state(viewport)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return SessionResponse(
        session_id=session_id,
        viewport=state['viewport'],
        structure=state['structure'],
        active_section_id=state['activeSectionId'],
        selected_field_id=state['selectedFieldId'],
    )


def _require(params: Dict[str, Any], *names: str):
    missing = [n for n in names if n not in params]
    if missing:
        raise HTTPException(status_code=400, detail=f"Missing parameter(s): {', '.join(missing)}")
    return [params[n] for n in names]


def _as_int(value: Any, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail=f"Parameter '{name}' must be an integer")


def _apply_operation(controller: BuilderController, operation: str, params: Dict[str, Any]):
    """Run one operation; returns (applied, result dict or None)."""
    if operation == "add_section":
        section = controller.add_section(params.get("title"))
        return True, section.to_dict()

    if operation == "add_field":
        (field_type,) = _require(params, "type")
        new_field = controller.add_field(field_type, params.get("sectionId"))
        return new_field is not None, new_field.to_dict() if new_field else None

    handlers: Dict[str, Callable[[], bool]] = {
        "update_section": lambda: controller.update_section(*_require(params, "sectionId", "patch")),
        "delete_section": lambda: controller.delete_section(*_require(params, "sectionId")),
        "update_field": lambda: controller.update_field(*_require(params, "fieldId", "patch")),
        "delete_field": lambda: controller.delete_field(*_require(params, "fieldId")),
        "reorder_field": lambda: controller.reorder_field(
            _require(params, "sectionId")[0],
            _as_int(_require(params, "fromIndex")[0], "fromIndex"),
            _as_int(_require(params, "toIndex")[0], "toIndex"),
        ),
        "move_field": lambda: controller.move_field(
            _require(params, "fieldId")[0],
            _require(params, "toSectionId")[0],
            _as_int(_require(params, "toIndex")[0], "toIndex"),
        ),
        "select_field": lambda: controller.select_field(params.get("fieldId")),
        "set_active_section": lambda: controller.set_active_section(*_require(params, "sectionId")),
    }
    return handlers[operation](), None


def _resolve_structure(request: RenderRequest, sessions: Dict[str, BuilderController]) -> FormStructure:
    if request.session_id:
        return _get_controller(sessions, request.session_id).snapshot()
    if request.structure is None:
        raise HTTPException(status_code=400, detail="Provide either a structure or a sessionId")
    return FormStructure.from_dict(request.structure)


def _data_bag(request: RenderRequest) -> Optional[Dict[str, Any]]:
    if request.data_bag is None and request.use_sample_data:
        return PREVIEW_SAMPLE_DATA
    return request.data_bag


# ============================================================================
# API Endpoints
# ============================================================================

@router.post("/sessions", response_model=SessionResponse, status_code=201)
async def create_session(
    request: SessionCreateRequest,
    sessions: Dict[str, BuilderController] = Depends(get_sessions),
) -> SessionResponse:
    """Open a builder session, optionally seeded with an existing structure."""
    structure = FormStructure.from_dict(request.structure) if request.structure else None
    controller = BuilderController(structure)
    session_id = str(uuid.uuid4())
    sessions[session_id] = controller
    logger.info(f"Opened builder session {session_id}")

    response = _session_response(session_id, controller)
    if structure is not None:
        response.problems = validate_structure(controller.snapshot())
    return response


@router.get("/sessions/{session_id}", response_model=SessionResponse)
async def get_session(
    session_id: str,
    viewport: str = Query("desktop", description="desktop | mobile"),
    sessions: Dict[str, BuilderController] = Depends(get_sessions),
) -> SessionResponse:
    """Editor state for a viewport (the same state for desktop and mobile)."""
    return _session_response(session_id, _get_controller(sessions, session_id), viewport)


@router.delete("/sessions/{session_id}", status_code=204)
async def close_session(
    session_id: str,
    sessions: Dict[str, BuilderController] = Depends(get_sessions),
):
    _get_controller(sessions, session_id)
    del sessions[session_id]
    logger.info(f"Closed builder session {session_id}")
    return Response(status_code=204)


@router.post("/sessions/{session_id}/operations", response_model=OperationResponse)
async def apply_operation(
    session_id: str,
    request: OperationRequest,
    sessions: Dict[str, BuilderController] = Depends(get_sessions),
) -> OperationResponse:
    """
    Apply one builder operation.

    Operations that do not apply (unknown ids, out-of-range indices,
    cross-section moves) return ``applied: false`` and change nothing.
    """
    controller = _get_controller(sessions, session_id)
    applied, result = _apply_operation(controller, request.operation, request.params)
    if not applied:
        logger.info(f"Builder operation {request.operation} not applied in session {session_id}")

    return OperationResponse(
        applied=applied,
        result=result,
        state=_session_response(session_id, controller),
    )


@router.post("/sessions/{session_id}/template")
async def export_template(
    session_id: str,
    request: TemplateRequest,
    sessions: Dict[str, BuilderController] = Depends(get_sessions),
) -> Dict[str, Any]:
    """Template record for the session's form, ready to persist."""
    controller = _get_controller(sessions, session_id)
    try:
        return controller.export_template(
            request.name,
            description=request.description,
            application_types=request.application_types,
            task_number=request.task_number,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/render/interactive")
async def render_interactive_view(
    request: RenderRequest,
    sessions: Dict[str, BuilderController] = Depends(get_sessions),
) -> Dict[str, Any]:
    """Widget view of the visible sections and fields."""
    structure = _resolve_structure(request, sessions)
    view = render_interactive(structure, _data_bag(request), request.values, request.signature_modes)
    return view.to_dict()


@router.post("/render/document")
async def render_document(
    request: RenderRequest,
    sessions: Dict[str, BuilderController] = Depends(get_sessions),
) -> Response:
    """Filled form as a downloadable PDF."""
    structure = _resolve_structure(request, sessions)
    try:
        pdf_bytes = render_document_pdf(structure, _data_bag(request), request.values, title=request.title)
    except Exception as e:
        logger.error(f"Error rendering form PDF: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to render PDF: {e}")

    filename = (request.title or structure.form_title or "form").strip().replace(" ", "_")
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}.pdf"'},
    )


@router.post("/render/template")
async def render_template(
    request: RenderRequest,
    sessions: Dict[str, BuilderController] = Depends(get_sessions),
    storage: ObjectStorage = Depends(get_storage),
) -> Response:
    """
    Fill the imported PDF template with the form's values.

    Fields are written by their PDF mapping; ``pdfFieldMappings`` overrides
    it per field id or key, optionally with a transform.
    """
    if not request.template_path:
        raise HTTPException(status_code=400, detail="templatePath is required")
    structure = _resolve_structure(request, sessions)

    try:
        template_bytes = storage.get(request.template_path)
    except StorageError as e:
        raise HTTPException(status_code=404, detail=str(e))

    try:
        result = fill_pdf_template(
            template_bytes, structure, _data_bag(request), request.values, request.field_mappings,
        )
    except ExtractionError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if result.missing:
        logger.warning(f"Template {request.template_path} lacks mapped fields: {', '.join(result.missing)}")
    filename = (request.title or structure.form_title or "form").strip().replace(" ", "_")
    return Response(
        content=result.pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}.pdf"'},
    )
