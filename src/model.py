"""
model.py

Domain models for the Construction Site Operations Dashboard.

Entities
--------
- Project
- Task
- Worker
- Material
- PaymentStage
- ProjectDocument
- CalendarNote
- PCCCMaterial
- MaterialAllocation
- AcceptanceTask
- EvidenceFile
- Notification

All models use Python dataclasses for clean, framework-agnostic definitions.
Identifiers are opaque strings (uuid4 text unless the caller supplies one).
Calendar dates are ISO ``YYYY-MM-DD`` strings and reminder timestamps are ISO
date-time strings, exactly as they arrive from the persistence layer.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional


def _new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class ProjectStatus(str, Enum):
    """Lifecycle status shared by projects and their tasks."""
    PLANNING = "planning"
    IN_PROGRESS = "in_progress"
    DELAYED = "delayed"
    COMPLETED = "completed"
    ON_HOLD = "on_hold"


class TaskType(str, Enum):
    """Trade or discipline a site task belongs to."""
    CONSTRUCTION = "construction"
    ELECTRICAL = "electrical"
    PLUMBING = "plumbing"
    FINISHING = "finishing"
    INSPECTION = "inspection"
    GENERAL = "general"


class StockStatus(str, Enum):
    """
    Derived classification of a fire-safety inventory record.

    EXPIRED    – inspection expiry date is in the past (wins over stock level).
    LOW_STOCK  – available quantity at or below the minimum stock level.
    GOOD       – neither of the above.
    """
    GOOD = "Good"
    LOW_STOCK = "Low Stock"
    EXPIRED = "Expired"


class PCCCCategory(str, Enum):
    """Kinds of fire-prevention-and-fighting (PCCC) material held in stock."""
    PIPE = "pipe"
    SPRINKLER = "sprinkler"
    VALVE = "valve"
    CABINET = "cabinet"
    ALARM = "alarm"
    EXTINGUISHER = "extinguisher"


class AllocationStatus(str, Enum):
    """Whether stock handed to a project has only been issued or is installed."""
    ISSUED = "issued"
    INSTALLED = "installed"


class AcceptanceCategory(str, Enum):
    """Fire-safety systems that go through formal acceptance inspection."""
    FIRE_ALARM = "fire_alarm"
    WALL_HYDRANT = "wall_hydrant"
    SPRINKLER = "sprinkler"
    FIRE_CURTAIN = "fire_curtain"
    PRESSURIZATION_SMOKE_EXTRACTION = "pressurization_smoke_extraction"
    LIGHTNING_PROTECTION = "lightning_protection"
    EMERGENCY_LIGHTING_EXIT = "emergency_lighting_exit"


class AcceptanceStatus(str, Enum):
    """
    QA/QC sign-off status of an acceptance checklist item.

    The usual flow is Pending → In Progress → Approved | Rejected, but any
    status may be set directly (manual override is allowed).
    """
    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    APPROVED = "Approved"
    REJECTED = "Rejected"


class EvidenceType(str, Enum):
    PDF = "pdf"
    IMAGE = "image"
    EXCEL = "excel"


class NotificationSeverity(str, Enum):
    """
    CRITICAL – requires immediate attention (delayed project, overdue task).
    WARNING  – approaching deadline.
    INFO     – general reminder.
    """
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


class PaymentStatus(str, Enum):
    PAID = "paid"
    PENDING = "pending"
    OVERDUE = "overdue"


class DocumentType(str, Enum):
    LEGAL = "legal"
    DESIGN = "design"
    CONTRACT = "contract"
    HANDOVER = "handover"
    INVOICE = "invoice"


class DocumentStatus(str, Enum):
    DRAFT = "draft"
    APPROVED = "approved"
    COMPLETED = "completed"


class WorkerStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class MaterialStatus(str, Enum):
    """Status of a generic (non fire-safety) site material."""
    AVAILABLE = "available"
    LOW_STOCK = "low_stock"
    OUT_OF_STOCK = "out_of_stock"


# ---------------------------------------------------------------------------
# Project sub-records
# ---------------------------------------------------------------------------


@dataclass
class TaskLocation:
    lat: Optional[float] = None
    lng: Optional[float] = None
    address: str = ""
    map_link: Optional[str] = None


@dataclass
class Task:
    """
    A scheduled unit of site work owned by exactly one project.

    ``start_date <= end_date`` is expected but not enforced.  Dependencies are
    ids of sibling tasks and are informational only (never scheduled or
    validated).
    """
    id: str = field(default_factory=_new_id)
    name: str = ""
    type: TaskType = TaskType.GENERAL
    start_date: str = ""            # YYYY-MM-DD
    end_date: str = ""              # YYYY-MM-DD
    progress: int = 0               # 0 – 100
    status: ProjectStatus = ProjectStatus.PLANNING
    assignee_id: Optional[str] = None
    dependencies: List[str] = field(default_factory=list)
    location: Optional[TaskLocation] = None
    images: List[str] = field(default_factory=list)


@dataclass
class Worker:
    id: str = field(default_factory=_new_id)
    name: str = ""
    role: str = ""
    status: WorkerStatus = WorkerStatus.ACTIVE
    avatar: str = ""


@dataclass
class Material:
    """Generic site material tracked per project (cement, steel, ...)."""
    id: str = field(default_factory=_new_id)
    name: str = ""
    quantity: int = 0
    unit: str = ""
    status: MaterialStatus = MaterialStatus.AVAILABLE
    last_updated: str = ""


@dataclass
class PaymentStage:
    id: str = field(default_factory=_new_id)
    name: str = ""
    amount: float = 0.0
    due_date: str = ""
    status: PaymentStatus = PaymentStatus.PENDING
    paid_date: Optional[str] = None
    description: str = ""


@dataclass
class ProjectDocument:
    id: str = field(default_factory=_new_id)
    name: str = ""
    type: DocumentType = DocumentType.LEGAL
    upload_date: str = ""
    status: DocumentStatus = DocumentStatus.DRAFT
    url: Optional[str] = None
    uploaded_by: str = ""
    version: Optional[str] = None
    notes: Optional[str] = None
    file_size: Optional[str] = None


# ---------------------------------------------------------------------------
# Project
# ---------------------------------------------------------------------------


@dataclass
class Project:
    """
    Top-level container for a construction project.

    ``progress`` is a cache of the rounded mean of its tasks' progress.  It is
    rewritten by the Aggregation Engine on every task mutation path and goes
    stale if tasks are mutated directly.
    """
    id: str = field(default_factory=_new_id)
    code: str = ""
    name: str = ""
    location: str = ""
    manager: str = ""
    start_date: str = ""
    end_date: str = ""
    budget: float = 0.0
    spent: float = 0.0
    status: ProjectStatus = ProjectStatus.PLANNING
    progress: int = 0               # 0 – 100, derived
    description: str = ""

    tasks: List[Task] = field(default_factory=list)
    workers: List[Worker] = field(default_factory=list)
    materials: List[Material] = field(default_factory=list)
    financials: List[PaymentStage] = field(default_factory=list)
    documents: List[ProjectDocument] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Calendar
# ---------------------------------------------------------------------------


@dataclass
class CalendarNote:
    """A free-text annotation pinned to one calendar day, independent of projects."""
    id: str = field(default_factory=_new_id)
    date: str = ""                          # YYYY-MM-DD
    content: str = ""
    reminder_time: Optional[str] = None     # ISO date-time
    is_completed: bool = False


# ---------------------------------------------------------------------------
# Fire-safety (PCCC) inventory
# ---------------------------------------------------------------------------


@dataclass
class MaterialAllocation:
    project_id: str = ""
    project_name: str = ""
    quantity: int = 0
    status: AllocationStatus = AllocationStatus.ISSUED
    install_date: Optional[str] = None


@dataclass
class PCCCMaterial:
    """
    Warehouse record for fire-safety material or equipment.

    Invariant: ``0 <= available_quantity <= total_quantity``.
    ``status`` is derived (see AggregationService.compute_material_status) and
    must be recomputed on every create, update, and quantity adjustment.
    """
    id: str = field(default_factory=_new_id)
    name: str = ""
    category: PCCCCategory = PCCCCategory.PIPE
    spec: str = ""
    total_quantity: int = 0
    available_quantity: int = 0
    min_stock_level: int = 0
    unit: str = ""
    inspection_expiry: Optional[str] = None     # YYYY-MM-DD
    status: StockStatus = StockStatus.GOOD
    allocated_to: List[MaterialAllocation] = field(default_factory=list)


# ---------------------------------------------------------------------------
# QA/QC acceptance
# ---------------------------------------------------------------------------


@dataclass
class EvidenceFile:
    name: str = ""
    type: EvidenceType = EvidenceType.PDF
    url: Optional[str] = None
    date: str = ""


@dataclass
class AcceptanceTask:
    """
    A checklist item for one fire-safety system awaiting formal sign-off
    against a named technical standard.

    The project is referenced by id; ``project_name`` is a display cache
    captured at creation time.
    """
    id: str = field(default_factory=_new_id)
    project_id: str = ""
    project_name: str = ""
    category: AcceptanceCategory = AcceptanceCategory.FIRE_ALARM
    title: str = ""
    standard_ref: str = ""
    status: AcceptanceStatus = AcceptanceStatus.PENDING
    documents: List[EvidenceFile] = field(default_factory=list)
    images: List[str] = field(default_factory=list)
    inspector: Optional[str] = None
    notes: Optional[str] = None
    check_date: Optional[str] = None


# ---------------------------------------------------------------------------
# Notifications (derived, never persisted)
# ---------------------------------------------------------------------------


@dataclass
class Notification:
    """
    An alert derived from current project, task, and note state.

    The id is deterministic from the source entity (``task-overdue-<taskId>``
    and so on); no other identity survives a regeneration.
    """
    id: str
    title: str
    message: str
    severity: NotificationSeverity
    timestamp: datetime
    project_id: Optional[str] = None
