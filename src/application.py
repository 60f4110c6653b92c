"""
application.py

Application layer for the Construction Site Operations Dashboard.

Overview
--------
The application layer sits between the presentation layer (API / UI) and the
domain / service layer.  It is responsible for:

  1. Defining clean output DTOs (dataclasses) that carry only the data the
     presentation layer needs.  Raw domain objects never leave this layer.
  2. Declaring abstract Repository interfaces, one per persisted collection
     (projects, PCCC materials, acceptance tasks, calendar notes), each with
     get / list_all / save (upsert by id) / delete.
  3. Declaring the UnitOfWork abstraction that groups those repositories.
  4. Declaring the completion-client interface used for free-text analyses
     and chat replies.
  5. Implementing Use Case handlers, one class per user-facing operation,
     that fetch a snapshot, call the pure services, and persist the results.

Structure
---------
DTOs
    ProjectDTO, TaskDTO, WorkerDTO, MaterialDTO, PaymentStageDTO, DocumentDTO
    PCCCMaterialDTO, StockAdjustmentDTO, ImportPreviewDTO, InventoryStatsDTO
    AcceptanceTaskDTO, AcceptanceGroupDTO, ReadinessDTO
    CalendarNoteDTO, CalendarTaskDTO, CalendarDayDTO, CalendarMonthDTO
    NotificationDTO, DashboardDTO, AnalysisDTO

Use Cases
    --- Projects & tasks ---
    CreateProjectUseCase, UpdateProjectUseCase, GetProjectUseCase,
    ListProjectsUseCase, DeleteProjectUseCase,
    AddTaskUseCase, UpdateTaskUseCase, RemoveTaskUseCase,
    ExportProjectsUseCase, ExportProjectTasksUseCase

    --- Fire-safety inventory ---
    CreateMaterialUseCase, UpdateMaterialUseCase, GetMaterialUseCase,
    ListMaterialsUseCase, DeleteMaterialUseCase, AdjustStockUseCase,
    PreviewMaterialImportUseCase, ConfirmMaterialImportUseCase,
    GetInventoryStatsUseCase

    --- QA/QC acceptance ---
    CreateAcceptanceTaskUseCase, UpdateAcceptanceTaskUseCase,
    SetAcceptanceStatusUseCase, AddEvidenceUseCase, ListAcceptanceTasksUseCase,
    GroupAcceptanceTasksUseCase, GetReadinessUseCase, DeleteAcceptanceTaskUseCase

    --- Calendar & notifications ---
    GetCalendarMonthUseCase, GetCalendarDayUseCase, ListNotesUseCase,
    AddNoteUseCase, SetNoteCompletedUseCase, DeleteNoteUseCase,
    GetNotificationsUseCase

    --- Dashboard & assistant ---
    GetDashboardUseCase, AnalyzeProjectRiskUseCase, AnalyzeStockUseCase,
    AnalyzeAcceptanceUseCase, SuggestTasksUseCase, ChatUseCase

Design notes
------------
- Use cases return DTOs only; no domain objects cross the application boundary.
- Each use case accepts a UnitOfWork as its persistence dependency.
- ``Project.progress`` is a cache: every task mutation path goes through
  ProjectService, which recomputes it before the project is saved.
- Commands carry an optional ``now``/``today``; None means the local clock.
- Errors bubble up as ApplicationError (business) or ValueError (validation).
  Completion failures never bubble up: they are logged and replaced by a
  fixed fallback text.
"""

from __future__ import annotations

import abc
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from model import (
    AcceptanceCategory,
    AcceptanceStatus,
    AcceptanceTask,
    CalendarNote,
    DocumentStatus,
    DocumentType,
    EvidenceType,
    Notification,
    PCCCCategory,
    PCCCMaterial,
    Project,
    ProjectDocument,
    ProjectStatus,
    Task,
    TaskLocation,
    TaskType,
)
from service import (
    ALL_PROJECTS,
    AcceptanceService,
    AggregationService,
    CalendarService,
    CalendarTaskEntry,
    DashboardService,
    DayBucket,
    ExportService,
    InventoryService,
    NotificationService,
    ProjectService,
    PromptBuilder,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class ApplicationError(Exception):
    """Raised when a use case cannot complete due to a business rule violation."""


class NotFoundError(ApplicationError):
    """Raised when a requested entity does not exist."""


class CompletionError(ApplicationError):
    """Raised by a completion client when the remote service fails."""


# ===========================================================================
# DTO DEFINITIONS
# ===========================================================================

# ---------------------------------------------------------------------------
# Project DTOs
# ---------------------------------------------------------------------------

@dataclass
class TaskLocationDTO:
    lat: Optional[float]
    lng: Optional[float]
    address: str
    map_link: Optional[str]


@dataclass
class TaskDTO:
    id: str
    name: str
    type: str
    start_date: str
    end_date: str
    progress: int
    status: str
    assignee_id: Optional[str]
    dependencies: List[str]
    location: Optional[TaskLocationDTO]
    images: List[str]


@dataclass
class WorkerDTO:
    id: str
    name: str
    role: str
    status: str
    avatar: str


@dataclass
class MaterialDTO:
    id: str
    name: str
    quantity: int
    unit: str
    status: str
    last_updated: str


@dataclass
class PaymentStageDTO:
    id: str
    name: str
    amount: float
    due_date: str
    status: str
    paid_date: Optional[str]
    description: str


@dataclass
class DocumentDTO:
    id: str
    name: str
    type: str
    upload_date: str
    status: str
    url: Optional[str]
    uploaded_by: str
    version: Optional[str]
    notes: Optional[str]
    file_size: Optional[str]


@dataclass
class ProjectDTO:
    id: str
    code: str
    name: str
    location: str
    manager: str
    start_date: str
    end_date: str
    budget: float
    spent: float
    status: str
    progress: int
    description: str
    tasks: List[TaskDTO]
    workers: List[WorkerDTO]
    materials: List[MaterialDTO]
    financials: List[PaymentStageDTO]
    documents: List[DocumentDTO]


# ---------------------------------------------------------------------------
# Inventory DTOs
# ---------------------------------------------------------------------------

@dataclass
class AllocationDTO:
    project_id: str
    project_name: str
    quantity: int
    status: str
    install_date: Optional[str]


@dataclass
class PCCCMaterialDTO:
    id: str
    name: str
    category: str
    spec: str
    total_quantity: int
    available_quantity: int
    min_stock_level: int
    unit: str
    inspection_expiry: Optional[str]
    status: str
    allocated_to: List[AllocationDTO]


@dataclass
class StockAdjustmentDTO:
    """``changed`` is False when the adjustment hit a bound and nothing was written."""
    material: PCCCMaterialDTO
    changed: bool


@dataclass
class ImportErrorDTO:
    row: int
    reason: str


@dataclass
class ImportPreviewDTO:
    records: List[PCCCMaterialDTO]
    errors: List[ImportErrorDTO]


@dataclass
class InventoryStatsDTO:
    material_count: int
    low_stock_count: int
    expired_count: int
    total_items: int


# ---------------------------------------------------------------------------
# Acceptance DTOs
# ---------------------------------------------------------------------------

@dataclass
class EvidenceDTO:
    name: str
    type: str
    url: Optional[str]
    date: str


@dataclass
class AcceptanceTaskDTO:
    id: str
    project_id: str
    project_name: str
    category: str
    title: str
    standard_ref: str
    status: str
    documents: List[EvidenceDTO]
    images: List[str]
    inspector: Optional[str]
    notes: Optional[str]
    check_date: Optional[str]


@dataclass
class AcceptanceGroupDTO:
    category: str
    tasks: List[AcceptanceTaskDTO]


@dataclass
class ReadinessDTO:
    total: int
    by_status: Dict[str, int]
    evidence_documents: int
    missing_evidence: List[str]


# ---------------------------------------------------------------------------
# Calendar & notification DTOs
# ---------------------------------------------------------------------------

@dataclass
class CalendarNoteDTO:
    id: str
    date: str
    content: str
    reminder_time: Optional[str]
    is_completed: bool


@dataclass
class CalendarTaskDTO:
    task_id: str
    name: str
    project_id: str
    project_code: str
    project_name: str
    start_date: str
    end_date: str
    status: str
    progress: int
    is_start: bool
    is_end: bool


@dataclass
class CalendarDayDTO:
    date: str
    is_today: bool
    tasks: List[CalendarTaskDTO]
    notes: List[CalendarNoteDTO]


@dataclass
class CalendarMonthDTO:
    year: int
    month: int
    first_weekday_offset: int
    days: List[CalendarDayDTO]


@dataclass
class NotificationDTO:
    id: str
    title: str
    message: str
    severity: str
    timestamp: str
    project_id: Optional[str]


# ---------------------------------------------------------------------------
# Dashboard & assistant DTOs
# ---------------------------------------------------------------------------

@dataclass
class CashFlowDTO:
    project_id: str
    code: str
    name: str
    paid: float
    pending: float
    remaining: float
    total: float


@dataclass
class TrendPointDTO:
    month: str
    label: str
    progress: int


@dataclass
class DashboardDTO:
    project_count: int
    worker_count: int
    total_budget: float
    total_spent: float
    delayed_count: int
    status_distribution: Dict[str, int]
    cash_flow: List[CashFlowDTO]
    progress_trend: List[TrendPointDTO]


@dataclass
class AnalysisDTO:
    """Free text from the completion service; ``generated`` is False for fallback text."""
    text: str
    generated: bool


# ===========================================================================
# DTO ASSEMBLERS
# ===========================================================================

class _Assembler:
    """Converts domain model instances into DTOs."""

    @staticmethod
    def document(d: ProjectDocument) -> DocumentDTO:
        return DocumentDTO(
            d.id, d.name, d.type.value, d.upload_date, d.status.value,
            d.url, d.uploaded_by, d.version, d.notes, d.file_size,
        )

    @staticmethod
    def task(t: Task) -> TaskDTO:
        loc = t.location
        return TaskDTO(
            id=t.id,
            name=t.name,
            type=t.type.value,
            start_date=t.start_date,
            end_date=t.end_date,
            progress=t.progress,
            status=t.status.value,
            assignee_id=t.assignee_id,
            dependencies=list(t.dependencies),
            location=TaskLocationDTO(loc.lat, loc.lng, loc.address, loc.map_link) if loc else None,
            images=list(t.images),
        )

    @staticmethod
    def project(p: Project) -> ProjectDTO:
        return ProjectDTO(
            id=p.id,
            code=p.code,
            name=p.name,
            location=p.location,
            manager=p.manager,
            start_date=p.start_date,
            end_date=p.end_date,
            budget=p.budget,
            spent=p.spent,
            status=p.status.value,
            progress=p.progress,
            description=p.description,
            tasks=[_Assembler.task(t) for t in p.tasks],
            workers=[
                WorkerDTO(w.id, w.name, w.role, w.status.value, w.avatar) for w in p.workers
            ],
            materials=[
                MaterialDTO(m.id, m.name, m.quantity, m.unit, m.status.value, m.last_updated)
                for m in p.materials
            ],
            financials=[
                PaymentStageDTO(
                    f.id, f.name, f.amount, f.due_date, f.status.value, f.paid_date, f.description
                )
                for f in p.financials
            ],
            documents=[_Assembler.document(d) for d in p.documents],
        )

    @staticmethod
    def pccc_material(m: PCCCMaterial) -> PCCCMaterialDTO:
        return PCCCMaterialDTO(
            id=m.id,
            name=m.name,
            category=m.category.value,
            spec=m.spec,
            total_quantity=m.total_quantity,
            available_quantity=m.available_quantity,
            min_stock_level=m.min_stock_level,
            unit=m.unit,
            inspection_expiry=m.inspection_expiry,
            status=m.status.value,
            allocated_to=[
                AllocationDTO(a.project_id, a.project_name, a.quantity, a.status.value, a.install_date)
                for a in m.allocated_to
            ],
        )

    @staticmethod
    def acceptance_task(t: AcceptanceTask) -> AcceptanceTaskDTO:
        return AcceptanceTaskDTO(
            id=t.id,
            project_id=t.project_id,
            project_name=t.project_name,
            category=t.category.value,
            title=t.title,
            standard_ref=t.standard_ref,
            status=t.status.value,
            documents=[EvidenceDTO(d.name, d.type.value, d.url, d.date) for d in t.documents],
            images=list(t.images),
            inspector=t.inspector,
            notes=t.notes,
            check_date=t.check_date,
        )

    @staticmethod
    def note(n: CalendarNote) -> CalendarNoteDTO:
        return CalendarNoteDTO(
            id=n.id,
            date=n.date,
            content=n.content,
            reminder_time=n.reminder_time,
            is_completed=n.is_completed,
        )

    @staticmethod
    def calendar_task(e: CalendarTaskEntry, day: str) -> CalendarTaskDTO:
        return CalendarTaskDTO(
            task_id=e.task.id,
            name=e.task.name,
            project_id=e.project_id,
            project_code=e.project_code,
            project_name=e.project_name,
            start_date=e.task.start_date,
            end_date=e.task.end_date,
            status=e.task.status.value,
            progress=e.task.progress,
            is_start=e.task.start_date == day,
            is_end=e.task.end_date == day,
        )

    @staticmethod
    def calendar_day(b: DayBucket) -> CalendarDayDTO:
        return CalendarDayDTO(
            date=b.date,
            is_today=b.is_today,
            tasks=[_Assembler.calendar_task(e, b.date) for e in b.tasks],
            notes=[_Assembler.note(n) for n in b.notes],
        )

    @staticmethod
    def notification(n: Notification) -> NotificationDTO:
        return NotificationDTO(
            id=n.id,
            title=n.title,
            message=n.message,
            severity=n.severity.value,
            timestamp=n.timestamp.isoformat(),
            project_id=n.project_id,
        )


# ===========================================================================
# REPOSITORY INTERFACES
# ===========================================================================

class AbstractProjectRepository(abc.ABC):
    @abc.abstractmethod
    def get(self, project_id: str) -> Optional[Project]: ...
    @abc.abstractmethod
    def list_all(self) -> List[Project]: ...
    @abc.abstractmethod
    def save(self, project: Project) -> None: ...
    @abc.abstractmethod
    def delete(self, project_id: str) -> None: ...


class AbstractPCCCMaterialRepository(abc.ABC):
    @abc.abstractmethod
    def get(self, material_id: str) -> Optional[PCCCMaterial]: ...
    @abc.abstractmethod
    def list_all(self) -> List[PCCCMaterial]: ...
    @abc.abstractmethod
    def save(self, material: PCCCMaterial) -> None: ...
    @abc.abstractmethod
    def delete(self, material_id: str) -> None: ...


class AbstractAcceptanceTaskRepository(abc.ABC):
    @abc.abstractmethod
    def get(self, task_id: str) -> Optional[AcceptanceTask]: ...
    @abc.abstractmethod
    def list_all(self) -> List[AcceptanceTask]: ...
    @abc.abstractmethod
    def save(self, task: AcceptanceTask) -> None: ...
    @abc.abstractmethod
    def delete(self, task_id: str) -> None: ...


class AbstractCalendarNoteRepository(abc.ABC):
    @abc.abstractmethod
    def get(self, note_id: str) -> Optional[CalendarNote]: ...
    @abc.abstractmethod
    def list_all(self) -> List[CalendarNote]: ...
    @abc.abstractmethod
    def save(self, note: CalendarNote) -> None: ...
    @abc.abstractmethod
    def delete(self, note_id: str) -> None: ...


# ===========================================================================
# UNIT OF WORK
# ===========================================================================

class AbstractUnitOfWork(abc.ABC):
    """
    Groups all repositories under a single transactional boundary.
    Use as a context manager:

        with uow:
            uow.projects.save(project)
            uow.commit()
    """
    projects: AbstractProjectRepository
    materials: AbstractPCCCMaterialRepository
    acceptance_tasks: AbstractAcceptanceTaskRepository
    calendar_notes: AbstractCalendarNoteRepository

    def __enter__(self) -> "AbstractUnitOfWork":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if exc_type:
            self.rollback()
        else:
            self.commit()

    @abc.abstractmethod
    def commit(self) -> None: ...

    @abc.abstractmethod
    def rollback(self) -> None: ...


# ===========================================================================
# COMPLETION CLIENT INTERFACE
# ===========================================================================

class AbstractCompletionClient(abc.ABC):
    """
    Text-completion collaborator: prompt in, generated text out.
    Implementations raise CompletionError on failure.
    """

    @property
    def is_configured(self) -> bool:
        return True

    @abc.abstractmethod
    def complete(self, prompt: str) -> str: ...


NOT_CONFIGURED_TEXT = "The AI assistant is not configured. Set GEMINI_API_KEY to enable it."


# ===========================================================================
# SERVICE SINGLETONS (shared across use cases)
# ===========================================================================

_aggregation_svc = AggregationService()
_inventory_svc = InventoryService()
_calendar_svc = CalendarService()
_notification_svc = NotificationService()
_dashboard_svc = DashboardService()
_project_svc = ProjectService()
_acceptance_svc = AcceptanceService()
_export_svc = ExportService()
_prompts = PromptBuilder()


# ===========================================================================
# USE CASE HELPERS
# ===========================================================================

def _get_project_or_raise(uow: AbstractUnitOfWork, project_id: str) -> Project:
    project = uow.projects.get(project_id)
    if project is None:
        raise NotFoundError(f"Project {project_id} not found.")
    return project


def _get_task_or_raise(project: Project, task_id: str) -> Task:
    task = _project_svc.find_task(project, task_id)
    if task is None:
        raise NotFoundError(f"Task {task_id} not found in project {project.id}.")
    return task


def _get_document_or_raise(project: Project, document_id: str) -> ProjectDocument:
    document = _project_svc.find_document(project, document_id)
    if document is None:
        raise NotFoundError(f"Document {document_id} not found in project {project.id}.")
    return document


def _get_material_or_raise(uow: AbstractUnitOfWork, material_id: str) -> PCCCMaterial:
    material = uow.materials.get(material_id)
    if material is None:
        raise NotFoundError(f"Material {material_id} not found.")
    return material


def _get_acceptance_task_or_raise(uow: AbstractUnitOfWork, task_id: str) -> AcceptanceTask:
    task = uow.acceptance_tasks.get(task_id)
    if task is None:
        raise NotFoundError(f"Acceptance task {task_id} not found.")
    return task


def _get_note_or_raise(uow: AbstractUnitOfWork, note_id: str) -> CalendarNote:
    note = uow.calendar_notes.get(note_id)
    if note is None:
        raise NotFoundError(f"Calendar note {note_id} not found.")
    return note


def _complete_or_fallback(
    client: AbstractCompletionClient, prompt: str, fallback: str
) -> AnalysisDTO:
    """Call the completion service, turning every failure into fallback text."""
    if not client.is_configured:
        return AnalysisDTO(text=NOT_CONFIGURED_TEXT, generated=False)
    try:
        text = client.complete(prompt)
    except CompletionError:
        logger.exception("Completion request failed")
        return AnalysisDTO(text=fallback, generated=False)
    if not text or not text.strip():
        return AnalysisDTO(text=fallback, generated=False)
    return AnalysisDTO(text=text, generated=True)


# ===========================================================================
# USE CASES — PROJECTS & TASKS
# ===========================================================================

@dataclass
class CreateProjectCommand:
    code: str
    name: str
    location: str
    manager: str
    start_date: str
    end_date: str
    budget: float
    status: ProjectStatus = ProjectStatus.PLANNING
    description: str = ""
    spent: float = 0.0


class CreateProjectUseCase:
    def execute(self, cmd: CreateProjectCommand, uow: AbstractUnitOfWork) -> ProjectDTO:
        with uow:
            project = _project_svc.create_project(
                code=cmd.code,
                name=cmd.name,
                location=cmd.location,
                manager=cmd.manager,
                start_date=cmd.start_date,
                end_date=cmd.end_date,
                budget=cmd.budget,
                status=cmd.status,
                description=cmd.description,
                spent=cmd.spent,
            )
            uow.projects.save(project)
            uow.commit()
            logger.info("Project %s (%s) created", project.id, project.code)
            return _Assembler.project(project)


@dataclass
class UpdateProjectCommand:
    project_id: str
    code: Optional[str] = None
    name: Optional[str] = None
    location: Optional[str] = None
    manager: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    budget: Optional[float] = None
    spent: Optional[float] = None
    status: Optional[ProjectStatus] = None
    description: Optional[str] = None


class UpdateProjectUseCase:
    def execute(self, cmd: UpdateProjectCommand, uow: AbstractUnitOfWork) -> ProjectDTO:
        with uow:
            project = _get_project_or_raise(uow, cmd.project_id)
            project = _project_svc.update_project(
                project,
                code=cmd.code,
                name=cmd.name,
                location=cmd.location,
                manager=cmd.manager,
                start_date=cmd.start_date,
                end_date=cmd.end_date,
                budget=cmd.budget,
                spent=cmd.spent,
                status=cmd.status,
                description=cmd.description,
            )
            uow.projects.save(project)
            uow.commit()
            return _Assembler.project(project)


class GetProjectUseCase:
    def execute(self, project_id: str, uow: AbstractUnitOfWork) -> ProjectDTO:
        with uow:
            return _Assembler.project(_get_project_or_raise(uow, project_id))


class ListProjectsUseCase:
    def execute(
        self, uow: AbstractUnitOfWork, status: Optional[ProjectStatus] = None
    ) -> List[ProjectDTO]:
        with uow:
            projects = uow.projects.list_all()
            return [
                _Assembler.project(p) for p in projects
                if status is None or p.status == status
            ]


class DeleteProjectUseCase:
    def execute(self, project_id: str, uow: AbstractUnitOfWork) -> None:
        with uow:
            _get_project_or_raise(uow, project_id)
            uow.projects.delete(project_id)
            uow.commit()
            logger.info("Project %s deleted", project_id)


@dataclass
class AddTaskCommand:
    project_id: str
    name: str = "New task"
    type: TaskType = TaskType.GENERAL
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    progress: int = 0
    status: ProjectStatus = ProjectStatus.PLANNING
    dependencies: List[str] = field(default_factory=list)
    location: Optional[TaskLocation] = None
    today: Optional[date] = None


class AddTaskUseCase:
    """Add a task and write the recomputed progress back onto the project."""

    def execute(self, cmd: AddTaskCommand, uow: AbstractUnitOfWork) -> TaskDTO:
        with uow:
            project = _get_project_or_raise(uow, cmd.project_id)
            project, task = _project_svc.add_task(
                project,
                name=cmd.name,
                type=cmd.type,
                start_date=cmd.start_date,
                end_date=cmd.end_date,
                progress=cmd.progress,
                status=cmd.status,
                dependencies=cmd.dependencies,
                location=cmd.location,
                today=cmd.today,
            )
            uow.projects.save(project)
            uow.commit()
            logger.info(
                "Task %s added to project %s (progress now %d%%)",
                task.id, project.id, project.progress,
            )
            return _Assembler.task(task)


@dataclass
class UpdateTaskCommand:
    project_id: str
    task_id: str
    name: Optional[str] = None
    type: Optional[TaskType] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    progress: Optional[int] = None
    status: Optional[ProjectStatus] = None
    dependencies: Optional[List[str]] = None
    location: Optional[TaskLocation] = None
    images: Optional[List[str]] = None


class UpdateTaskUseCase:
    def execute(self, cmd: UpdateTaskCommand, uow: AbstractUnitOfWork) -> TaskDTO:
        with uow:
            project = _get_project_or_raise(uow, cmd.project_id)
            task = _get_task_or_raise(project, cmd.task_id)
            project = _project_svc.update_task(
                project,
                task,
                name=cmd.name,
                type=cmd.type,
                start_date=cmd.start_date,
                end_date=cmd.end_date,
                progress=cmd.progress,
                status=cmd.status,
                dependencies=cmd.dependencies,
                location=cmd.location,
                images=cmd.images,
            )
            uow.projects.save(project)
            uow.commit()
            return _Assembler.task(task)


class RemoveTaskUseCase:
    def execute(self, project_id: str, task_id: str, uow: AbstractUnitOfWork) -> ProjectDTO:
        with uow:
            project = _get_project_or_raise(uow, project_id)
            _get_task_or_raise(project, task_id)
            project = _project_svc.remove_task(project, task_id)
            uow.projects.save(project)
            uow.commit()
            logger.info("Task %s removed from project %s", task_id, project_id)
            return _Assembler.project(project)


@dataclass
class AddDocumentCommand:
    project_id: str
    name: str
    type: DocumentType = DocumentType.CONTRACT
    status: DocumentStatus = DocumentStatus.DRAFT
    url: Optional[str] = None
    uploaded_by: str = "Admin"
    version: Optional[str] = None
    notes: Optional[str] = None
    file_size: Optional[str] = None
    today: Optional[date] = None


class AddDocumentUseCase:
    def execute(self, cmd: AddDocumentCommand, uow: AbstractUnitOfWork) -> DocumentDTO:
        with uow:
            project = _get_project_or_raise(uow, cmd.project_id)
            project, document = _project_svc.add_document(
                project,
                name=cmd.name,
                type=cmd.type,
                status=cmd.status,
                url=cmd.url,
                uploaded_by=cmd.uploaded_by,
                version=cmd.version,
                notes=cmd.notes,
                file_size=cmd.file_size,
                today=cmd.today,
            )
            uow.projects.save(project)
            uow.commit()
            logger.info("Document %s added to project %s", document.id, project.id)
            return _Assembler.document(document)


@dataclass
class UpdateDocumentCommand:
    project_id: str
    document_id: str
    name: Optional[str] = None
    type: Optional[DocumentType] = None
    status: Optional[DocumentStatus] = None
    url: Optional[str] = None
    version: Optional[str] = None
    notes: Optional[str] = None


class UpdateDocumentUseCase:
    def execute(self, cmd: UpdateDocumentCommand, uow: AbstractUnitOfWork) -> DocumentDTO:
        with uow:
            project = _get_project_or_raise(uow, cmd.project_id)
            document = _get_document_or_raise(project, cmd.document_id)
            project = _project_svc.update_document(
                project,
                document,
                name=cmd.name,
                type=cmd.type,
                status=cmd.status,
                url=cmd.url,
                version=cmd.version,
                notes=cmd.notes,
            )
            uow.projects.save(project)
            uow.commit()
            return _Assembler.document(document)


class ExportProjectsUseCase:
    def execute(self, uow: AbstractUnitOfWork) -> List[Dict]:
        with uow:
            return _export_svc.project_export_rows(uow.projects.list_all())


class ExportProjectTasksUseCase:
    def execute(self, project_id: str, uow: AbstractUnitOfWork) -> List[Dict]:
        with uow:
            return _export_svc.task_export_rows(_get_project_or_raise(uow, project_id))


# ===========================================================================
# USE CASES — FIRE-SAFETY INVENTORY
# ===========================================================================

@dataclass
class MaterialCommand:
    name: str
    category: PCCCCategory
    spec: str
    unit: str
    total_quantity: int
    available_quantity: int
    min_stock_level: int
    inspection_expiry: Optional[str] = None
    material_id: Optional[str] = None
    today: Optional[date] = None


class CreateMaterialUseCase:
    def execute(self, cmd: MaterialCommand, uow: AbstractUnitOfWork) -> PCCCMaterialDTO:
        with uow:
            material = PCCCMaterial(
                name=cmd.name,
                category=cmd.category,
                spec=cmd.spec,
                unit=cmd.unit,
                total_quantity=cmd.total_quantity,
                available_quantity=cmd.available_quantity,
                min_stock_level=cmd.min_stock_level,
                inspection_expiry=cmd.inspection_expiry,
            )
            material = _inventory_svc.prepare_material(material, cmd.today)
            uow.materials.save(material)
            uow.commit()
            logger.info("Material %s created with status %s", material.id, material.status.value)
            return _Assembler.pccc_material(material)


class UpdateMaterialUseCase:
    def execute(self, cmd: MaterialCommand, uow: AbstractUnitOfWork) -> PCCCMaterialDTO:
        with uow:
            if cmd.material_id is None:
                raise ApplicationError("material_id is required for an update.")
            existing = _get_material_or_raise(uow, cmd.material_id)
            material = PCCCMaterial(
                id=existing.id,
                name=cmd.name,
                category=cmd.category,
                spec=cmd.spec,
                unit=cmd.unit,
                total_quantity=cmd.total_quantity,
                available_quantity=cmd.available_quantity,
                min_stock_level=cmd.min_stock_level,
                inspection_expiry=cmd.inspection_expiry,
                allocated_to=list(existing.allocated_to),
            )
            material = _inventory_svc.prepare_material(material, cmd.today)
            uow.materials.save(material)
            uow.commit()
            return _Assembler.pccc_material(material)


class GetMaterialUseCase:
    def execute(self, material_id: str, uow: AbstractUnitOfWork) -> PCCCMaterialDTO:
        with uow:
            return _Assembler.pccc_material(_get_material_or_raise(uow, material_id))


class ListMaterialsUseCase:
    def execute(
        self,
        uow: AbstractUnitOfWork,
        category: Optional[PCCCCategory] = None,
        query: str = "",
    ) -> List[PCCCMaterialDTO]:
        with uow:
            materials = _inventory_svc.filter_materials(uow.materials.list_all(), category, query)
            return [_Assembler.pccc_material(m) for m in materials]


class DeleteMaterialUseCase:
    def execute(self, material_id: str, uow: AbstractUnitOfWork) -> None:
        with uow:
            _get_material_or_raise(uow, material_id)
            uow.materials.delete(material_id)
            uow.commit()
            logger.info("Material %s deleted", material_id)


@dataclass
class AdjustStockCommand:
    material_id: str
    delta: int
    today: Optional[date] = None


class AdjustStockUseCase:
    """
    Apply a bounded quantity adjustment.  A clamped no-op writes nothing and
    reports ``changed=False``.
    """

    def execute(self, cmd: AdjustStockCommand, uow: AbstractUnitOfWork) -> StockAdjustmentDTO:
        with uow:
            material = _get_material_or_raise(uow, cmd.material_id)
            updated = _inventory_svc.adjust_available(material, cmd.delta, cmd.today)
            if updated is None:
                logger.info(
                    "Stock adjustment of %+d on material %s skipped (already at bound)",
                    cmd.delta, material.id,
                )
                return StockAdjustmentDTO(material=_Assembler.pccc_material(material), changed=False)
            uow.materials.save(updated)
            uow.commit()
            return StockAdjustmentDTO(material=_Assembler.pccc_material(updated), changed=True)


@dataclass
class MaterialImportCommand:
    csv_text: Optional[str] = None
    rows: Optional[List[List[str]]] = None
    today: Optional[date] = None


def _parse_import(cmd: MaterialImportCommand):
    if cmd.rows is not None:
        rows = cmd.rows
    elif cmd.csv_text is not None:
        rows = _inventory_svc.read_import_csv(cmd.csv_text)
    else:
        raise ApplicationError("Either csv_text or rows must be provided.")
    return _inventory_svc.parse_import_batch(rows, cmd.today)


def _preview(batch) -> ImportPreviewDTO:
    return ImportPreviewDTO(
        records=[_Assembler.pccc_material(m) for m in batch.records],
        errors=[ImportErrorDTO(e.row, e.reason) for e in batch.errors],
    )


class PreviewMaterialImportUseCase:
    """Parse an import without touching the store."""

    def execute(self, cmd: MaterialImportCommand) -> ImportPreviewDTO:
        return _preview(_parse_import(cmd))


class ConfirmMaterialImportUseCase:
    """
    Parse and save every valid record in one unit of work.  An import with no
    valid rows is refused as a whole.
    """

    def execute(self, cmd: MaterialImportCommand, uow: AbstractUnitOfWork) -> ImportPreviewDTO:
        batch = _parse_import(cmd)
        if not batch.records:
            raise ApplicationError("No valid rows found in the import; use the template columns.")
        with uow:
            for material in batch.records:
                uow.materials.save(material)
            uow.commit()
        logger.info(
            "Imported %d materials (%d rows skipped)", len(batch.records), len(batch.errors)
        )
        return _preview(batch)


class GetInventoryStatsUseCase:
    def execute(self, uow: AbstractUnitOfWork, today: Optional[date] = None) -> InventoryStatsDTO:
        with uow:
            stats = _inventory_svc.inventory_stats(uow.materials.list_all(), today)
            return InventoryStatsDTO(
                material_count=stats.material_count,
                low_stock_count=stats.low_stock_count,
                expired_count=stats.expired_count,
                total_items=stats.total_items,
            )


# ===========================================================================
# USE CASES — QA/QC ACCEPTANCE
# ===========================================================================

@dataclass
class CreateAcceptanceTaskCommand:
    project_id: str
    title: str
    category: AcceptanceCategory
    standard_ref: str = ""
    inspector: Optional[str] = None
    notes: Optional[str] = None
    today: Optional[date] = None


class CreateAcceptanceTaskUseCase:
    def execute(
        self, cmd: CreateAcceptanceTaskCommand, uow: AbstractUnitOfWork
    ) -> AcceptanceTaskDTO:
        with uow:
            project = _get_project_or_raise(uow, cmd.project_id)
            task = _acceptance_svc.create_task(
                project,
                title=cmd.title,
                category=cmd.category,
                standard_ref=cmd.standard_ref,
                inspector=cmd.inspector,
                notes=cmd.notes,
                today=cmd.today,
            )
            uow.acceptance_tasks.save(task)
            uow.commit()
            logger.info("Acceptance task %s created for project %s", task.id, project.id)
            return _Assembler.acceptance_task(task)


@dataclass
class UpdateAcceptanceTaskCommand:
    task_id: str
    title: Optional[str] = None
    standard_ref: Optional[str] = None
    inspector: Optional[str] = None
    notes: Optional[str] = None
    images: Optional[List[str]] = None


class UpdateAcceptanceTaskUseCase:
    def execute(
        self, cmd: UpdateAcceptanceTaskCommand, uow: AbstractUnitOfWork
    ) -> AcceptanceTaskDTO:
        with uow:
            task = _get_acceptance_task_or_raise(uow, cmd.task_id)
            if cmd.title is not None:
                if not cmd.title.strip():
                    raise ValueError("Acceptance item title must not be empty.")
                task.title = cmd.title.strip()
            if cmd.standard_ref is not None:
                task.standard_ref = cmd.standard_ref
            if cmd.inspector is not None:
                task.inspector = cmd.inspector
            if cmd.notes is not None:
                task.notes = cmd.notes
            if cmd.images is not None:
                task.images = list(cmd.images)
            uow.acceptance_tasks.save(task)
            uow.commit()
            return _Assembler.acceptance_task(task)


class SetAcceptanceStatusUseCase:
    """
    Any status may be set directly.  Moves outside the usual sign-off flow are
    accepted and logged as overrides.
    """

    def execute(
        self, task_id: str, status: AcceptanceStatus, uow: AbstractUnitOfWork
    ) -> AcceptanceTaskDTO:
        with uow:
            task = _get_acceptance_task_or_raise(uow, task_id)
            previous = task.status
            task, is_override = _acceptance_svc.set_status(task, status)
            if is_override:
                logger.warning(
                    "Acceptance task %s moved %s -> %s outside the standard workflow",
                    task.id, previous.value, status.value,
                )
            uow.acceptance_tasks.save(task)
            uow.commit()
            return _Assembler.acceptance_task(task)


@dataclass
class AddEvidenceCommand:
    task_id: str
    name: str
    type: EvidenceType
    url: Optional[str] = None
    today: Optional[date] = None


class AddEvidenceUseCase:
    def execute(self, cmd: AddEvidenceCommand, uow: AbstractUnitOfWork) -> AcceptanceTaskDTO:
        with uow:
            task = _get_acceptance_task_or_raise(uow, cmd.task_id)
            task = _acceptance_svc.add_evidence(task, cmd.name, cmd.type, cmd.url, cmd.today)
            uow.acceptance_tasks.save(task)
            uow.commit()
            return _Assembler.acceptance_task(task)


class ListAcceptanceTasksUseCase:
    def execute(
        self,
        uow: AbstractUnitOfWork,
        status: Optional[AcceptanceStatus] = None,
        project_id: Optional[str] = None,
        query: str = "",
    ) -> List[AcceptanceTaskDTO]:
        with uow:
            tasks = _acceptance_svc.filter_tasks(
                uow.acceptance_tasks.list_all(), status, project_id, query
            )
            return [_Assembler.acceptance_task(t) for t in tasks]


class GroupAcceptanceTasksUseCase:
    def execute(
        self,
        uow: AbstractUnitOfWork,
        status: Optional[AcceptanceStatus] = None,
        project_id: Optional[str] = None,
        query: str = "",
    ) -> List[AcceptanceGroupDTO]:
        with uow:
            tasks = _acceptance_svc.filter_tasks(
                uow.acceptance_tasks.list_all(), status, project_id, query
            )
            groups = _acceptance_svc.group_by_category(tasks)
            return [
                AcceptanceGroupDTO(
                    category=category.value,
                    tasks=[_Assembler.acceptance_task(t) for t in items],
                )
                for category, items in groups.items()
            ]


class GetReadinessUseCase:
    def execute(self, uow: AbstractUnitOfWork, project_id: Optional[str] = None) -> ReadinessDTO:
        with uow:
            tasks = _acceptance_svc.filter_tasks(
                uow.acceptance_tasks.list_all(), project_id=project_id
            )
            summary = _aggregation_svc.acceptance_readiness(tasks)
            return ReadinessDTO(
                total=summary.total,
                by_status={s.value: n for s, n in summary.by_status.items()},
                evidence_documents=summary.evidence_documents,
                missing_evidence=summary.missing_evidence,
            )


class DeleteAcceptanceTaskUseCase:
    def execute(self, task_id: str, uow: AbstractUnitOfWork) -> None:
        with uow:
            _get_acceptance_task_or_raise(uow, task_id)
            uow.acceptance_tasks.delete(task_id)
            uow.commit()
            logger.info("Acceptance task %s deleted", task_id)


# ===========================================================================
# USE CASES — CALENDAR & NOTIFICATIONS
# ===========================================================================

@dataclass
class CalendarMonthQuery:
    year: int
    month: int
    project_id: str = ALL_PROJECTS
    today: Optional[date] = None


class GetCalendarMonthUseCase:
    def execute(self, query: CalendarMonthQuery, uow: AbstractUnitOfWork) -> CalendarMonthDTO:
        with uow:
            index = _calendar_svc.build_month(
                query.year,
                query.month,
                uow.projects.list_all(),
                uow.calendar_notes.list_all(),
                project_id=query.project_id,
                today=query.today,
            )
            return CalendarMonthDTO(
                year=index.year,
                month=index.month,
                first_weekday_offset=index.first_weekday_offset,
                days=[_Assembler.calendar_day(b) for b in index.days],
            )


class GetCalendarDayUseCase:
    def execute(
        self,
        day: str,
        uow: AbstractUnitOfWork,
        project_id: str = ALL_PROJECTS,
        today: Optional[date] = None,
    ) -> CalendarDayDTO:
        with uow:
            bucket = _calendar_svc.day_detail(
                day,
                uow.projects.list_all(),
                uow.calendar_notes.list_all(),
                project_id=project_id,
                today=today,
            )
            return _Assembler.calendar_day(bucket)


class ListNotesUseCase:
    def execute(self, uow: AbstractUnitOfWork, day: Optional[str] = None) -> List[CalendarNoteDTO]:
        with uow:
            notes = uow.calendar_notes.list_all()
            if day is not None:
                notes = _calendar_svc.notes_on_day(day, notes)
            return [_Assembler.note(n) for n in notes]


@dataclass
class AddNoteCommand:
    date: str
    content: str
    reminder_clock: Optional[str] = None    # HH:MM


class AddNoteUseCase:
    def execute(self, cmd: AddNoteCommand, uow: AbstractUnitOfWork) -> CalendarNoteDTO:
        with uow:
            note = _calendar_svc.create_note(cmd.date, cmd.content, cmd.reminder_clock)
            uow.calendar_notes.save(note)
            uow.commit()
            return _Assembler.note(note)


class SetNoteCompletedUseCase:
    def execute(self, note_id: str, is_completed: bool, uow: AbstractUnitOfWork) -> CalendarNoteDTO:
        with uow:
            note = _get_note_or_raise(uow, note_id)
            note.is_completed = is_completed
            uow.calendar_notes.save(note)
            uow.commit()
            return _Assembler.note(note)


class DeleteNoteUseCase:
    def execute(self, note_id: str, uow: AbstractUnitOfWork) -> None:
        with uow:
            _get_note_or_raise(uow, note_id)
            uow.calendar_notes.delete(note_id)
            uow.commit()


class GetNotificationsUseCase:
    """Regenerate the alert feed from the current snapshot; nothing is stored."""

    def execute(
        self, uow: AbstractUnitOfWork, now: Optional[datetime] = None
    ) -> List[NotificationDTO]:
        with uow:
            notifications = _notification_svc.generate_notifications(
                uow.projects.list_all(), uow.calendar_notes.list_all(), now
            )
            return [_Assembler.notification(n) for n in notifications]


# ===========================================================================
# USE CASES — DASHBOARD & ASSISTANT
# ===========================================================================

class GetDashboardUseCase:
    def execute(self, uow: AbstractUnitOfWork, today: Optional[date] = None) -> DashboardDTO:
        with uow:
            projects = uow.projects.list_all()
            totals = _dashboard_svc.totals(projects)
            return DashboardDTO(
                project_count=totals.project_count,
                worker_count=totals.worker_count,
                total_budget=totals.total_budget,
                total_spent=totals.total_spent,
                delayed_count=totals.delayed_count,
                status_distribution={
                    s.value: n for s, n in _dashboard_svc.status_distribution(projects).items()
                },
                cash_flow=[
                    CashFlowDTO(r.project_id, r.code, r.name, r.paid, r.pending, r.remaining, r.total)
                    for r in _dashboard_svc.cash_flow(projects)
                ],
                progress_trend=[
                    TrendPointDTO(p.month, p.label, p.progress)
                    for p in _dashboard_svc.progress_trend(projects, today)
                ],
            )


class AnalyzeProjectRiskUseCase:
    def execute(
        self, project_id: str, uow: AbstractUnitOfWork, client: AbstractCompletionClient
    ) -> AnalysisDTO:
        with uow:
            project = _get_project_or_raise(uow, project_id)
        return _complete_or_fallback(
            client,
            _prompts.risk_analysis_prompt(project),
            "Could not produce a risk analysis right now. Please try again later.",
        )


class AnalyzeStockUseCase:
    def execute(
        self,
        uow: AbstractUnitOfWork,
        client: AbstractCompletionClient,
        today: Optional[date] = None,
    ) -> AnalysisDTO:
        with uow:
            materials = uow.materials.list_all()
        return _complete_or_fallback(
            client,
            _prompts.stock_analysis_prompt(materials, today),
            "Could not analyse the fire-safety stock right now.",
        )


class AnalyzeAcceptanceUseCase:
    def execute(
        self,
        uow: AbstractUnitOfWork,
        client: AbstractCompletionClient,
        project_id: Optional[str] = None,
    ) -> AnalysisDTO:
        with uow:
            tasks = _acceptance_svc.filter_tasks(
                uow.acceptance_tasks.list_all(), project_id=project_id
            )
        return _complete_or_fallback(
            client,
            _prompts.acceptance_review_prompt(tasks),
            "Could not review the QA/QC checklist right now.",
        )


class SuggestTasksUseCase:
    def execute(self, description: str, client: AbstractCompletionClient) -> AnalysisDTO:
        if not description.strip():
            raise ValueError("A project description is required for suggestions.")
        return _complete_or_fallback(
            client,
            _prompts.task_suggestion_prompt(description),
            "No suggestions available.",
        )


@dataclass
class ChatCommand:
    message: str
    project_id: Optional[str] = None


class ChatUseCase:
    """
    Answer a user message.  The context is the selected project's summary, or
    the list of all projects when none is selected.
    """

    def execute(
        self, cmd: ChatCommand, uow: AbstractUnitOfWork, client: AbstractCompletionClient
    ) -> AnalysisDTO:
        if not cmd.message.strip():
            raise ValueError("Message must not be empty.")
        with uow:
            if cmd.project_id:
                context = _prompts.project_context(_get_project_or_raise(uow, cmd.project_id))
            else:
                context = _prompts.portfolio_context(uow.projects.list_all())
        return _complete_or_fallback(
            client,
            _prompts.chat_prompt(cmd.message, context),
            "The assistant is having connection trouble. Please try again.",
        )
