"""
api.py

REST API layer for the Construction Site Operations Dashboard.

Framework : FastAPI
Auth      : none; every endpoint is open.  Put the service behind an
            authenticating gateway before exposing it.

Structure
---------
  Routers (all prefixed under /api/v1)
  ├── /projects                          — project CRUD
  │   ├── /{project_id}/tasks            — task CRUD (progress write-back)
  │   ├── /{project_id}/tasks/export     — flat task rows
  │   ├── /{project_id}/documents        — project document records
  │   └── /{project_id}/risk-analysis    — AI risk report
  ├── /projects/export                   — flat project rows
  ├── /materials                         — fire-safety (PCCC) inventory
  │   ├── /{material_id}/adjust          — bounded +/- stock adjustment
  │   ├── /import/preview, /import       — bulk import
  │   ├── /stats                         — warehouse counters
  │   └── /analysis                      — AI stock report
  ├── /acceptance-tasks                  — QA/QC checklist
  │   ├── /{task_id}/status, /evidence
  │   ├── /grouped, /readiness
  │   └── /analysis                      — AI readiness review
  ├── /calendar                          — month / day index, notes
  ├── /notifications                     — derived alert feed
  ├── /dashboard                         — portfolio rollups
  └── /assistant                         — chat and task suggestions

Error handling
--------------
  NotFoundError      → 404
  ApplicationError   → 422
  ValueError         → 422
  Unhandled          → 500 (FastAPI default)

Response envelope
-----------------
  Success  : { "data": <payload> }
  Error    : { "detail": "<message>" }

Running
-------
  uvicorn main:app --reload
"""

from __future__ import annotations

import dataclasses
import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Path, Query, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi_mcp import FastApiMCP
from pydantic import BaseModel, Field, field_validator

from application import (
    # Exceptions
    ApplicationError,
    NotFoundError,
    # Interfaces
    AbstractCompletionClient,
    AbstractUnitOfWork,
    # Use-case commands
    AddNoteCommand,
    AddTaskCommand,
    AdjustStockCommand,
    CalendarMonthQuery,
    CreateProjectCommand,
    MaterialCommand,
    MaterialImportCommand,
    UpdateProjectCommand,
    UpdateTaskCommand,
    # Use-case classes
    CreateProjectUseCase,
    UpdateProjectUseCase,
)
from config import get_settings
from infrastructure import GeminiCompletionClient, InMemoryUnitOfWork, NullCompletionClient
from model import (
    AcceptanceCategory,
    AcceptanceStatus,
    DocumentStatus,
    DocumentType,
    EvidenceType,
    PCCCCategory,
    ProjectStatus,
    TaskLocation,
    TaskType,
)
from service import ALL_PROJECTS

logger = logging.getLogger(__name__)

settings = get_settings()


# ---------------------------------------------------------------------------
# App bootstrap
# ---------------------------------------------------------------------------

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.VERSION,
    description=(
        "REST API for construction site operations: projects and tasks with "
        "progress roll-up, fire-safety (PCCC) inventory, QA/QC acceptance "
        "checklists, a task/note calendar, derived notifications, portfolio "
        "dashboard metrics, and an AI assistant."
    ),
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def seed_demo_portfolio():
    """Load the demo portfolio into an empty in-memory store."""
    if not settings.SEED_DEMO_DATA:
        return
    from infrastructure import seed_demo_data
    if seed_demo_data(InMemoryUnitOfWork()):
        logger.info("[startup] Demo portfolio seeded")


# ---------------------------------------------------------------------------
# Global exception handlers
# ---------------------------------------------------------------------------

@app.exception_handler(NotFoundError)
async def not_found_handler(request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(ApplicationError)
async def application_error_handler(request, exc: ApplicationError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(ValueError)
async def value_error_handler(request, exc: ValueError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

def get_uow() -> AbstractUnitOfWork:
    """Returns the in-memory Unit of Work (no database required)."""
    return InMemoryUnitOfWork()


def get_completion_client() -> AbstractCompletionClient:
    """Gemini client when an API key is configured, otherwise a null client."""
    if not settings.GEMINI_API_KEY:
        return NullCompletionClient()
    return GeminiCompletionClient(
        api_key=settings.GEMINI_API_KEY,
        model=settings.GEMINI_MODEL,
        base_url=settings.GEMINI_BASE_URL,
        timeout=settings.COMPLETION_TIMEOUT,
    )


# ---------------------------------------------------------------------------
# Envelope helper
# ---------------------------------------------------------------------------

def _ok(data: Any) -> Dict:
    """Wrap a DTO or list of DTOs in the standard success envelope."""
    if dataclasses.is_dataclass(data):
        return {"data": dataclasses.asdict(data)}
    if isinstance(data, list):
        return {
            "data": [
                dataclasses.asdict(item) if dataclasses.is_dataclass(item) else item
                for item in data
            ]
        }
    return {"data": data}


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _check_choice(value: Optional[str], enum_cls, field_name: str) -> Optional[str]:
    if value is None:
        return value
    valid = {e.value for e in enum_cls}
    if value not in valid:
        raise ValueError(f"{field_name} must be one of: {sorted(valid)}")
    return value


# ===========================================================================
# REQUEST BODY SCHEMAS  (Pydantic v2)
# ===========================================================================

# ---------------------------------------------------------------------------
# Project schemas
# ---------------------------------------------------------------------------

class CreateProjectRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=200)
    location: str = Field(default="")
    manager: str = Field(default="")
    start_date: date
    end_date: date
    budget: float = Field(..., ge=0)
    spent: float = Field(default=0.0, ge=0)
    status: str = Field(default=ProjectStatus.PLANNING.value)
    description: str = Field(default="")

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: str) -> str:
        return _check_choice(v, ProjectStatus, "status")


class UpdateProjectRequest(BaseModel):
    code: Optional[str] = Field(default=None, min_length=1, max_length=50)
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    location: Optional[str] = None
    manager: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    budget: Optional[float] = Field(default=None, ge=0)
    spent: Optional[float] = Field(default=None, ge=0)
    status: Optional[str] = None
    description: Optional[str] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: Optional[str]) -> Optional[str]:
        return _check_choice(v, ProjectStatus, "status")


# ---------------------------------------------------------------------------
# Task schemas
# ---------------------------------------------------------------------------

class TaskLocationRequest(BaseModel):
    lat: Optional[float] = None
    lng: Optional[float] = None
    address: str = Field(default="")
    map_link: Optional[str] = None

    def to_domain(self) -> TaskLocation:
        return TaskLocation(lat=self.lat, lng=self.lng, address=self.address, map_link=self.map_link)


class AddTaskRequest(BaseModel):
    name: str = Field(default="New task", min_length=1, max_length=200)
    type: str = Field(default=TaskType.GENERAL.value)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    progress: int = Field(default=0, ge=0, le=100)
    status: str = Field(default=ProjectStatus.PLANNING.value)
    dependencies: List[str] = Field(default_factory=list)
    location: Optional[TaskLocationRequest] = None

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: str) -> str:
        return _check_choice(v, TaskType, "type")

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: str) -> str:
        return _check_choice(v, ProjectStatus, "status")


class UpdateTaskRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    type: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    progress: Optional[int] = Field(default=None, ge=0, le=100)
    status: Optional[str] = None
    dependencies: Optional[List[str]] = None
    location: Optional[TaskLocationRequest] = None
    images: Optional[List[str]] = None

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: Optional[str]) -> Optional[str]:
        return _check_choice(v, TaskType, "type")

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: Optional[str]) -> Optional[str]:
        return _check_choice(v, ProjectStatus, "status")


# ---------------------------------------------------------------------------
# Document schemas
# ---------------------------------------------------------------------------

class AddDocumentRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=300)
    type: str = Field(default=DocumentType.CONTRACT.value)
    status: str = Field(default=DocumentStatus.DRAFT.value)
    url: Optional[str] = None
    uploaded_by: str = Field(default="Admin")
    version: Optional[str] = None
    notes: Optional[str] = None
    file_size: Optional[str] = None

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: str) -> str:
        return _check_choice(v, DocumentType, "type")

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: str) -> str:
        return _check_choice(v, DocumentStatus, "status")


class UpdateDocumentRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=300)
    type: Optional[str] = None
    status: Optional[str] = None
    url: Optional[str] = None
    version: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: Optional[str]) -> Optional[str]:
        return _check_choice(v, DocumentType, "type")

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: Optional[str]) -> Optional[str]:
        return _check_choice(v, DocumentStatus, "status")


# ---------------------------------------------------------------------------
# Inventory schemas
# ---------------------------------------------------------------------------

class MaterialRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    category: str = Field(..., description="One of: pipe, sprinkler, valve, cabinet, alarm, extinguisher")
    spec: str = Field(default="")
    unit: str = Field(default="pcs")
    total_quantity: int = Field(..., ge=0)
    available_quantity: int = Field(..., ge=0)
    min_stock_level: int = Field(default=0, ge=0)
    inspection_expiry: Optional[date] = None

    @field_validator("category")
    @classmethod
    def validate_category(cls, v: str) -> str:
        return _check_choice(v, PCCCCategory, "category")


class AdjustStockRequest(BaseModel):
    delta: int = Field(..., description="Signed change to the available quantity.")


class MaterialImportRequest(BaseModel):
    csv_text: Optional[str] = Field(
        default=None, description="Delimited text whose first line is a header row."
    )
    rows: Optional[List[List[str]]] = Field(
        default=None, description="Already-split data rows (no header)."
    )


# ---------------------------------------------------------------------------
# Acceptance schemas
# ---------------------------------------------------------------------------

class CreateAcceptanceTaskRequest(BaseModel):
    project_id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1, max_length=300)
    category: str
    standard_ref: str = Field(default="")
    inspector: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("category")
    @classmethod
    def validate_category(cls, v: str) -> str:
        return _check_choice(v, AcceptanceCategory, "category")


class UpdateAcceptanceTaskRequest(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=300)
    standard_ref: Optional[str] = None
    inspector: Optional[str] = None
    notes: Optional[str] = None
    images: Optional[List[str]] = None


class SetAcceptanceStatusRequest(BaseModel):
    status: str = Field(..., description="One of: Pending, In Progress, Approved, Rejected")

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: str) -> str:
        return _check_choice(v, AcceptanceStatus, "status")


class AddEvidenceRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=300)
    type: str = Field(..., description="One of: pdf, image, excel")
    url: Optional[str] = None

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: str) -> str:
        return _check_choice(v, EvidenceType, "type")


# ---------------------------------------------------------------------------
# Calendar schemas
# ---------------------------------------------------------------------------

class AddNoteRequest(BaseModel):
    note_date: date = Field(..., alias="date")
    content: str = Field(..., min_length=1, max_length=2000)
    reminder_time: Optional[str] = Field(
        default=None, pattern=r"^\d{2}:\d{2}$", description="Wall-clock time HH:MM."
    )


class SetNoteCompletedRequest(BaseModel):
    is_completed: bool


# ---------------------------------------------------------------------------
# Assistant schemas
# ---------------------------------------------------------------------------

class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=4000)
    project_id: Optional[str] = None


class SuggestTasksRequest(BaseModel):
    description: str = Field(..., min_length=1, max_length=4000)


# ===========================================================================
# ROUTERS
# ===========================================================================

api_v1 = APIRouter(prefix="/api/v1")


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------

project_router = APIRouter(prefix="/projects", tags=["Projects"])


@project_router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Create a new construction project",
)
def create_project(
    body: CreateProjectRequest,
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    cmd = CreateProjectCommand(
        code=body.code,
        name=body.name,
        location=body.location,
        manager=body.manager,
        start_date=body.start_date.isoformat(),
        end_date=body.end_date.isoformat(),
        budget=body.budget,
        spent=body.spent,
        status=ProjectStatus(body.status),
        description=body.description,
    )
    result = CreateProjectUseCase().execute(cmd, uow)
    return _ok(result)


@project_router.get(
    "",
    summary="List all projects",
)
def list_projects(
    status_filter: Optional[ProjectStatus] = Query(
        default=None, alias="status", description="Filter by project status"
    ),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    from application import ListProjectsUseCase
    result = ListProjectsUseCase().execute(uow, status=status_filter)
    return _ok(result)


@project_router.get(
    "/export",
    summary="Flat project rows for spreadsheet export",
)
def export_projects(
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    from application import ExportProjectsUseCase
    return _ok(ExportProjectsUseCase().execute(uow))


@project_router.get(
    "/{project_id}",
    summary="Get a project by ID",
)
def get_project(
    project_id: str = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    from application import GetProjectUseCase
    result = GetProjectUseCase().execute(project_id, uow)
    return _ok(result)


@project_router.patch(
    "/{project_id}",
    summary="Update project metadata, budget, or status",
)
def update_project(
    body: UpdateProjectRequest,
    project_id: str = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    cmd = UpdateProjectCommand(
        project_id=project_id,
        code=body.code,
        name=body.name,
        location=body.location,
        manager=body.manager,
        start_date=_iso(body.start_date),
        end_date=_iso(body.end_date),
        budget=body.budget,
        spent=body.spent,
        status=ProjectStatus(body.status) if body.status else None,
        description=body.description,
    )
    result = UpdateProjectUseCase().execute(cmd, uow)
    return _ok(result)


@project_router.delete(
    "/{project_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a project and its tasks",
)
def delete_project(
    project_id: str = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    from application import DeleteProjectUseCase
    DeleteProjectUseCase().execute(project_id, uow)


@project_router.post(
    "/{project_id}/tasks",
    status_code=status.HTTP_201_CREATED,
    summary="Add a task; project progress is recomputed",
)
def add_task(
    body: AddTaskRequest,
    project_id: str = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    """Start and end dates default to today when omitted."""
    from application import AddTaskUseCase
    cmd = AddTaskCommand(
        project_id=project_id,
        name=body.name,
        type=TaskType(body.type),
        start_date=_iso(body.start_date),
        end_date=_iso(body.end_date),
        progress=body.progress,
        status=ProjectStatus(body.status),
        dependencies=body.dependencies,
        location=body.location.to_domain() if body.location else None,
    )
    result = AddTaskUseCase().execute(cmd, uow)
    return _ok(result)


@project_router.patch(
    "/{project_id}/tasks/{task_id}",
    summary="Update a task; project progress is recomputed",
)
def update_task(
    body: UpdateTaskRequest,
    project_id: str = Path(...),
    task_id: str = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    from application import UpdateTaskUseCase
    cmd = UpdateTaskCommand(
        project_id=project_id,
        task_id=task_id,
        name=body.name,
        type=TaskType(body.type) if body.type else None,
        start_date=_iso(body.start_date),
        end_date=_iso(body.end_date),
        progress=body.progress,
        status=ProjectStatus(body.status) if body.status else None,
        dependencies=body.dependencies,
        location=body.location.to_domain() if body.location else None,
        images=body.images,
    )
    result = UpdateTaskUseCase().execute(cmd, uow)
    return _ok(result)


@project_router.delete(
    "/{project_id}/tasks/{task_id}",
    summary="Remove a task; returns the updated project",
)
def remove_task(
    project_id: str = Path(...),
    task_id: str = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    from application import RemoveTaskUseCase
    result = RemoveTaskUseCase().execute(project_id, task_id, uow)
    return _ok(result)


@project_router.post(
    "/{project_id}/documents",
    status_code=status.HTTP_201_CREATED,
    summary="Attach a document record to a project",
)
def add_document(
    body: AddDocumentRequest,
    project_id: str = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    """The upload date is set to today."""
    from application import AddDocumentUseCase, AddDocumentCommand
    cmd = AddDocumentCommand(
        project_id=project_id,
        name=body.name,
        type=DocumentType(body.type),
        status=DocumentStatus(body.status),
        url=body.url,
        uploaded_by=body.uploaded_by,
        version=body.version,
        notes=body.notes,
        file_size=body.file_size,
    )
    result = AddDocumentUseCase().execute(cmd, uow)
    return _ok(result)


@project_router.patch(
    "/{project_id}/documents/{document_id}",
    summary="Edit a document record or move it through Draft / Approved / Completed",
)
def update_document(
    body: UpdateDocumentRequest,
    project_id: str = Path(...),
    document_id: str = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    from application import UpdateDocumentUseCase, UpdateDocumentCommand
    cmd = UpdateDocumentCommand(
        project_id=project_id,
        document_id=document_id,
        name=body.name,
        type=DocumentType(body.type) if body.type else None,
        status=DocumentStatus(body.status) if body.status else None,
        url=body.url,
        version=body.version,
        notes=body.notes,
    )
    result = UpdateDocumentUseCase().execute(cmd, uow)
    return _ok(result)


@project_router.get(
    "/{project_id}/tasks/export",
    summary="Flat task rows for spreadsheet export",
)
def export_project_tasks(
    project_id: str = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    from application import ExportProjectTasksUseCase
    return _ok(ExportProjectTasksUseCase().execute(project_id, uow))


@project_router.post(
    "/{project_id}/risk-analysis",
    summary="AI risk report for a project",
)
def analyze_project_risk(
    project_id: str = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
    client: AbstractCompletionClient = Depends(get_completion_client),
):
    from application import AnalyzeProjectRiskUseCase
    result = AnalyzeProjectRiskUseCase().execute(project_id, uow, client)
    return _ok(result)


# ---------------------------------------------------------------------------
# Fire-safety inventory
# ---------------------------------------------------------------------------

material_router = APIRouter(prefix="/materials", tags=["Fire-Safety Inventory"])


def _material_command(body: MaterialRequest, material_id: Optional[str] = None) -> MaterialCommand:
    return MaterialCommand(
        name=body.name,
        category=PCCCCategory(body.category),
        spec=body.spec,
        unit=body.unit,
        total_quantity=body.total_quantity,
        available_quantity=body.available_quantity,
        min_stock_level=body.min_stock_level,
        inspection_expiry=_iso(body.inspection_expiry),
        material_id=material_id,
    )


@material_router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Create an inventory record",
)
def create_material(
    body: MaterialRequest,
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    from application import CreateMaterialUseCase
    result = CreateMaterialUseCase().execute(_material_command(body), uow)
    return _ok(result)


@material_router.get(
    "",
    summary="List inventory records",
)
def list_materials(
    category: Optional[PCCCCategory] = Query(default=None, description="Filter by category"),
    q: str = Query(default="", description="Search name and spec"),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    from application import ListMaterialsUseCase
    result = ListMaterialsUseCase().execute(uow, category=category, query=q)
    return _ok(result)


@material_router.get(
    "/stats",
    summary="Warehouse counters: records, low stock, expired, total items",
)
def inventory_stats(
    as_of: Optional[date] = Query(default=None, description="Evaluate expiry against this day"),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    from application import GetInventoryStatsUseCase
    result = GetInventoryStatsUseCase().execute(uow, today=as_of)
    return _ok(result)


@material_router.post(
    "/import/preview",
    summary="Parse an import without saving it",
)
def preview_material_import(body: MaterialImportRequest):
    """
    Columns: name, category, spec, unit, total_quantity, available_quantity,
    min_stock_level, inspection_expiry.  Rows with fewer than four populated
    fields or an unknown category are reported in ``errors``.
    """
    from application import PreviewMaterialImportUseCase
    cmd = MaterialImportCommand(csv_text=body.csv_text, rows=body.rows)
    result = PreviewMaterialImportUseCase().execute(cmd)
    return _ok(result)


@material_router.post(
    "/import",
    status_code=status.HTTP_201_CREATED,
    summary="Import and save every valid row",
)
def confirm_material_import(
    body: MaterialImportRequest,
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    from application import ConfirmMaterialImportUseCase
    cmd = MaterialImportCommand(csv_text=body.csv_text, rows=body.rows)
    result = ConfirmMaterialImportUseCase().execute(cmd, uow)
    return _ok(result)


@material_router.post(
    "/analysis",
    summary="AI stock and inspection report",
)
def analyze_stock(
    uow: AbstractUnitOfWork = Depends(get_uow),
    client: AbstractCompletionClient = Depends(get_completion_client),
):
    from application import AnalyzeStockUseCase
    result = AnalyzeStockUseCase().execute(uow, client)
    return _ok(result)


@material_router.get(
    "/{material_id}",
    summary="Get an inventory record",
)
def get_material(
    material_id: str = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    from application import GetMaterialUseCase
    result = GetMaterialUseCase().execute(material_id, uow)
    return _ok(result)


@material_router.put(
    "/{material_id}",
    summary="Replace an inventory record's fields",
)
def update_material(
    body: MaterialRequest,
    material_id: str = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    from application import UpdateMaterialUseCase
    result = UpdateMaterialUseCase().execute(_material_command(body, material_id), uow)
    return _ok(result)


@material_router.delete(
    "/{material_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an inventory record",
)
def delete_material(
    material_id: str = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    from application import DeleteMaterialUseCase
    DeleteMaterialUseCase().execute(material_id, uow)


@material_router.post(
    "/{material_id}/adjust",
    summary="Adjust available stock, clamped to [0, total]",
)
def adjust_stock(
    body: AdjustStockRequest,
    material_id: str = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    """``changed`` is false when the stock was already at the bound."""
    from application import AdjustStockUseCase
    cmd = AdjustStockCommand(material_id=material_id, delta=body.delta)
    result = AdjustStockUseCase().execute(cmd, uow)
    return _ok(result)


# ---------------------------------------------------------------------------
# QA/QC acceptance
# ---------------------------------------------------------------------------

acceptance_router = APIRouter(prefix="/acceptance-tasks", tags=["QA/QC Acceptance"])


@acceptance_router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Create a Pending acceptance checklist item",
)
def create_acceptance_task(
    body: CreateAcceptanceTaskRequest,
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    from application import CreateAcceptanceTaskUseCase, CreateAcceptanceTaskCommand
    cmd = CreateAcceptanceTaskCommand(
        project_id=body.project_id,
        title=body.title,
        category=AcceptanceCategory(body.category),
        standard_ref=body.standard_ref,
        inspector=body.inspector,
        notes=body.notes,
    )
    result = CreateAcceptanceTaskUseCase().execute(cmd, uow)
    return _ok(result)


@acceptance_router.get(
    "",
    summary="List acceptance items",
)
def list_acceptance_tasks(
    status_filter: Optional[AcceptanceStatus] = Query(default=None, alias="status"),
    project_id: Optional[str] = Query(default=None, description="Project id or ALL"),
    q: str = Query(default="", description="Search title and project name"),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    from application import ListAcceptanceTasksUseCase
    result = ListAcceptanceTasksUseCase().execute(
        uow, status=status_filter, project_id=project_id, query=q
    )
    return _ok(result)


@acceptance_router.get(
    "/grouped",
    summary="Acceptance items grouped by fire-safety system",
)
def group_acceptance_tasks(
    status_filter: Optional[AcceptanceStatus] = Query(default=None, alias="status"),
    project_id: Optional[str] = Query(default=None),
    q: str = Query(default=""),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    from application import GroupAcceptanceTasksUseCase
    result = GroupAcceptanceTasksUseCase().execute(
        uow, status=status_filter, project_id=project_id, query=q
    )
    return _ok(result)


@acceptance_router.get(
    "/readiness",
    summary="Counts per status and items missing evidence",
)
def acceptance_readiness(
    project_id: Optional[str] = Query(default=None),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    from application import GetReadinessUseCase
    result = GetReadinessUseCase().execute(uow, project_id=project_id)
    return _ok(result)


@acceptance_router.post(
    "/analysis",
    summary="AI review of the acceptance file",
)
def analyze_acceptance(
    project_id: Optional[str] = Query(default=None),
    uow: AbstractUnitOfWork = Depends(get_uow),
    client: AbstractCompletionClient = Depends(get_completion_client),
):
    from application import AnalyzeAcceptanceUseCase
    result = AnalyzeAcceptanceUseCase().execute(uow, client, project_id=project_id)
    return _ok(result)


@acceptance_router.patch(
    "/{task_id}",
    summary="Update an acceptance item's details",
)
def update_acceptance_task(
    body: UpdateAcceptanceTaskRequest,
    task_id: str = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    from application import UpdateAcceptanceTaskUseCase, UpdateAcceptanceTaskCommand
    cmd = UpdateAcceptanceTaskCommand(
        task_id=task_id,
        title=body.title,
        standard_ref=body.standard_ref,
        inspector=body.inspector,
        notes=body.notes,
        images=body.images,
    )
    result = UpdateAcceptanceTaskUseCase().execute(cmd, uow)
    return _ok(result)


@acceptance_router.put(
    "/{task_id}/status",
    summary="Set the sign-off status (any status may be set directly)",
)
def set_acceptance_status(
    body: SetAcceptanceStatusRequest,
    task_id: str = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    from application import SetAcceptanceStatusUseCase
    result = SetAcceptanceStatusUseCase().execute(task_id, AcceptanceStatus(body.status), uow)
    return _ok(result)


@acceptance_router.post(
    "/{task_id}/evidence",
    status_code=status.HTTP_201_CREATED,
    summary="Attach an evidence document reference",
)
def add_evidence(
    body: AddEvidenceRequest,
    task_id: str = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    from application import AddEvidenceUseCase, AddEvidenceCommand
    cmd = AddEvidenceCommand(
        task_id=task_id, name=body.name, type=EvidenceType(body.type), url=body.url
    )
    result = AddEvidenceUseCase().execute(cmd, uow)
    return _ok(result)


@acceptance_router.delete(
    "/{task_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an acceptance item",
)
def delete_acceptance_task(
    task_id: str = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    from application import DeleteAcceptanceTaskUseCase
    DeleteAcceptanceTaskUseCase().execute(task_id, uow)


# ---------------------------------------------------------------------------
# Calendar
# ---------------------------------------------------------------------------

calendar_router = APIRouter(prefix="/calendar", tags=["Calendar"])


@calendar_router.get(
    "/months/{year}/{month}",
    summary="Per-day index of active tasks and notes for a month",
)
def calendar_month(
    year: int = Path(..., ge=1, le=9999),
    month: int = Path(..., ge=1, le=12),
    project_id: str = Query(default=ALL_PROJECTS, description="Project id or ALL"),
    as_of: Optional[date] = Query(default=None, description="Day to mark as today"),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    from application import GetCalendarMonthUseCase
    query = CalendarMonthQuery(year=year, month=month, project_id=project_id, today=as_of)
    result = GetCalendarMonthUseCase().execute(query, uow)
    return _ok(result)


@calendar_router.get(
    "/days/{day}",
    summary="Active tasks and notes on one day",
)
def calendar_day(
    day: date = Path(...),
    project_id: str = Query(default=ALL_PROJECTS),
    as_of: Optional[date] = Query(default=None),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    from application import GetCalendarDayUseCase
    result = GetCalendarDayUseCase().execute(
        day.isoformat(), uow, project_id=project_id, today=as_of
    )
    return _ok(result)


@calendar_router.get(
    "/notes",
    summary="List calendar notes",
)
def list_notes(
    day: Optional[date] = Query(default=None),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    from application import ListNotesUseCase
    result = ListNotesUseCase().execute(uow, day=_iso(day))
    return _ok(result)


@calendar_router.post(
    "/notes",
    status_code=status.HTTP_201_CREATED,
    summary="Pin a note (optionally with a reminder) to a day",
)
def add_note(
    body: AddNoteRequest,
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    from application import AddNoteUseCase
    cmd = AddNoteCommand(
        date=body.note_date.isoformat(), content=body.content, reminder_clock=body.reminder_time
    )
    result = AddNoteUseCase().execute(cmd, uow)
    return _ok(result)


@calendar_router.patch(
    "/notes/{note_id}",
    summary="Mark a note done or open",
)
def set_note_completed(
    body: SetNoteCompletedRequest,
    note_id: str = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    from application import SetNoteCompletedUseCase
    result = SetNoteCompletedUseCase().execute(note_id, body.is_completed, uow)
    return _ok(result)


@calendar_router.delete(
    "/notes/{note_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a note",
)
def delete_note(
    note_id: str = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    from application import DeleteNoteUseCase
    DeleteNoteUseCase().execute(note_id, uow)


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------

notification_router = APIRouter(prefix="/notifications", tags=["Notifications"])


@notification_router.get(
    "",
    summary="Derived alert feed, critical first",
)
def list_notifications(
    as_of: Optional[datetime] = Query(default=None, description="Evaluate deadlines at this moment"),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    """Regenerated on every call; nothing is stored, so there is nothing to dismiss."""
    from application import GetNotificationsUseCase
    result = GetNotificationsUseCase().execute(uow, now=as_of)
    return _ok(result)


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------

dashboard_router = APIRouter(prefix="/dashboard", tags=["Dashboard"])


@dashboard_router.get(
    "",
    summary="Portfolio totals, status distribution, cash flow, progress trend",
)
def dashboard(
    as_of: Optional[date] = Query(default=None, description="Last month of the trend window"),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    from application import GetDashboardUseCase
    result = GetDashboardUseCase().execute(uow, today=as_of)
    return _ok(result)


# ---------------------------------------------------------------------------
# Assistant
# ---------------------------------------------------------------------------

assistant_router = APIRouter(prefix="/assistant", tags=["Assistant"])


@assistant_router.post(
    "/chat",
    summary="Ask the assistant, optionally about one project",
)
def chat(
    body: ChatRequest,
    uow: AbstractUnitOfWork = Depends(get_uow),
    client: AbstractCompletionClient = Depends(get_completion_client),
):
    from application import ChatUseCase, ChatCommand
    result = ChatUseCase().execute(
        ChatCommand(message=body.message, project_id=body.project_id), uow, client
    )
    return _ok(result)


@assistant_router.post(
    "/task-suggestions",
    summary="Suggest the main work items for a project description",
)
def suggest_tasks(
    body: SuggestTasksRequest,
    client: AbstractCompletionClient = Depends(get_completion_client),
):
    from application import SuggestTasksUseCase
    result = SuggestTasksUseCase().execute(body.description, client)
    return _ok(result)


# ---------------------------------------------------------------------------
# Register all routers
# ---------------------------------------------------------------------------

api_v1.include_router(project_router)
api_v1.include_router(material_router)
api_v1.include_router(acceptance_router)
api_v1.include_router(calendar_router)
api_v1.include_router(notification_router)
api_v1.include_router(dashboard_router)
api_v1.include_router(assistant_router)

app.include_router(api_v1)


# ===========================================================================
# HEALTH CHECK
# ===========================================================================

@app.get("/health", tags=["Health"], summary="Service health check")
def health():
    return {"status": "ok", "version": settings.VERSION}


# ---------------------------------------------------------------------------
# MCP Server — exposes all API routes as MCP tools
# Accessible at: http://localhost:8000/mcp
# ---------------------------------------------------------------------------
mcp = FastApiMCP(app)
mcp.mount()


# ===========================================================================
# OPENAPI CUSTOMISATION — tag order and descriptions
# ===========================================================================

tags_metadata = [
    {
        "name": "Health",
        "description": "Liveness probe.",
    },
    {
        "name": "Projects",
        "description": (
            "Construction projects and their tasks.  A project's progress is the "
            "rounded mean of its tasks' progress and is recomputed on every task change."
        ),
    },
    {
        "name": "Fire-Safety Inventory",
        "description": (
            "PCCC warehouse records.  Status is derived: Expired beats Low Stock beats "
            "Good.  Stock adjustments are clamped to [0, total] and never rejected."
        ),
    },
    {
        "name": "QA/QC Acceptance",
        "description": (
            "Checklist items per fire-safety system awaiting formal sign-off, with "
            "evidence documents.  Status moves outside Pending → In Progress → "
            "Approved | Rejected are allowed and logged as overrides."
        ),
    },
    {
        "name": "Calendar",
        "description": "Tasks active on each day of a month, plus free-text notes with reminders.",
    },
    {
        "name": "Notifications",
        "description": (
            "Alerts derived from delayed projects, overdue or due-soon tasks, and note "
            "reminders.  Critical first, then newest first."
        ),
    },
    {
        "name": "Dashboard",
        "description": "Status distribution, cash flow per project, and a six-month progress trend.",
    },
    {
        "name": "Assistant",
        "description": (
            "Free-text answers from the completion service.  Without GEMINI_API_KEY "
            "these endpoints return a fixed 'not configured' text."
        ),
    },
]

app.openapi_tags = tags_metadata
