"""
service.py

Service layer for the Construction Site Operations Dashboard.

Responsibilities
----------------
Each service class encapsulates the business logic for its domain.
Services receive and return domain model instances (from model.py) or small
result dataclasses defined here.
No persistence is handled here.  Callers fetch a snapshot through a
repository / unit of work, run a service, and persist the result.

Services
--------
- AggregationService   – project progress, material stock status, summaries
- InventoryService     – bounded stock adjustment and bulk import parsing
- CalendarService      – per-day buckets of active tasks and notes
- NotificationService  – derived, ranked alert feed
- DashboardService     – status distribution, cash flow, progress trend
- ProjectService       – project / task mutation with progress write-back
- AcceptanceService    – QA/QC checklist items and evidence
- ExportService        – flat rows for spreadsheet export
- PromptBuilder        – prompt and context text for the completion service

Design notes
------------
- Every function is a transformation over the snapshot it is given.  The
  only implicit input is the clock, and every method that needs it takes an
  explicit ``today`` / ``now`` argument defaulting to local time.
- Calendar dates are ISO ``YYYY-MM-DD`` strings.  Day arithmetic is done on
  ``date`` objects (midnight-normalised), never on raw timestamps.
- Business rule violations raise a ValueError with a descriptive message.
- The calendar and notification services never raise on missing optional
  fields or malformed dates: the offending record is skipped.
"""

from __future__ import annotations

import calendar
import csv
import dataclasses
import io
import json
import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from model import (
    AcceptanceCategory,
    AcceptanceStatus,
    AcceptanceTask,
    CalendarNote,
    DocumentStatus,
    DocumentType,
    EvidenceFile,
    EvidenceType,
    Notification,
    NotificationSeverity,
    PaymentStatus,
    PCCCCategory,
    PCCCMaterial,
    Project,
    ProjectDocument,
    ProjectStatus,
    StockStatus,
    Task,
    TaskLocation,
    TaskType,
)


ALL_PROJECTS = "ALL"
DUE_SOON_DAYS = 3


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _local_today() -> date:
    return date.today()


def _local_now() -> datetime:
    return datetime.now()


def _parse_day(value: Optional[str]) -> Optional[date]:
    """Parse the calendar-date part of an ISO string; None when absent or malformed."""
    if not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO date-time into a naive local datetime; None when malformed."""
    if not value:
        return None
    try:
        ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if ts.tzinfo is not None:
        ts = ts.astimezone().replace(tzinfo=None)
    return ts


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _plural(n: int, word: str) -> str:
    return f"{n} {word}" if n == 1 else f"{n} {word}s"


# ---------------------------------------------------------------------------
# AggregationService
# ---------------------------------------------------------------------------

@dataclass
class DocumentSummary:
    total: int
    by_status: Dict[DocumentStatus, int]
    approved_count: int             # approved + completed
    draft_names: List[str]
    paid_stages: int
    overdue_stages: int


@dataclass
class ReadinessSummary:
    total: int
    by_status: Dict[AcceptanceStatus, int]
    evidence_documents: int
    missing_evidence: List[str]     # titles of approved / in-progress items with no documents


class AggregationService:
    """
    Keeps derived numeric and status fields consistent with the detail lists
    they are computed from.
    """

    def compute_project_progress(self, tasks: Sequence[Task]) -> int:
        """
        Rounded (half-up) mean of task progress; 0 for a project without tasks.
        """
        if not tasks:
            return 0
        return _round_half_up(sum(t.progress for t in tasks) / len(tasks))

    def compute_material_status(
        self, material: PCCCMaterial, today: Optional[date] = None
    ) -> StockStatus:
        """
        Expired (inspection expiry strictly before today) beats Low Stock
        (available <= minimum), which beats Good.
        """
        today = today or _local_today()
        expiry = _parse_day(material.inspection_expiry)
        if expiry is not None and expiry < today:
            return StockStatus.EXPIRED
        if material.available_quantity <= material.min_stock_level:
            return StockStatus.LOW_STOCK
        return StockStatus.GOOD

    def refresh_project_progress(self, project: Project) -> Project:
        """Write the computed task progress back onto the project's cache field."""
        project.progress = self.compute_project_progress(project.tasks)
        return project

    def document_summary(self, project: Project) -> DocumentSummary:
        by_status = {s: 0 for s in DocumentStatus}
        for doc in project.documents:
            by_status[doc.status] += 1
        return DocumentSummary(
            total=len(project.documents),
            by_status=by_status,
            approved_count=by_status[DocumentStatus.APPROVED] + by_status[DocumentStatus.COMPLETED],
            draft_names=[d.name for d in project.documents if d.status == DocumentStatus.DRAFT],
            paid_stages=sum(1 for f in project.financials if f.status == PaymentStatus.PAID),
            overdue_stages=sum(1 for f in project.financials if f.status == PaymentStatus.OVERDUE),
        )

    def acceptance_readiness(self, tasks: Sequence[AcceptanceTask]) -> ReadinessSummary:
        """
        Summarise how ready a set of acceptance items is for inspection.
        Approved or in-progress items without any evidence document are
        listed as missing evidence.
        """
        by_status = {s: 0 for s in AcceptanceStatus}
        for t in tasks:
            by_status[t.status] += 1
        missing = [
            t.title
            for t in tasks
            if t.status in (AcceptanceStatus.APPROVED, AcceptanceStatus.IN_PROGRESS)
            and not t.documents
        ]
        return ReadinessSummary(
            total=len(tasks),
            by_status=by_status,
            evidence_documents=sum(len(t.documents) for t in tasks),
            missing_evidence=missing,
        )


_aggregation = AggregationService()


# ---------------------------------------------------------------------------
# InventoryService
# ---------------------------------------------------------------------------

IMPORT_COLUMNS = (
    "name",
    "category",
    "spec",
    "unit",
    "total_quantity",
    "available_quantity",
    "min_stock_level",
    "inspection_expiry",
)
MIN_POPULATED_FIELDS = 4


@dataclass
class ImportRowError:
    row: int            # 1-based position within the data rows
    reason: str


@dataclass
class ImportBatch:
    records: List[PCCCMaterial] = field(default_factory=list)
    errors: List[ImportRowError] = field(default_factory=list)


@dataclass
class InventoryStats:
    material_count: int
    low_stock_count: int
    expired_count: int
    total_items: int


_LEADING_INT = re.compile(r"\s*[+-]?\d+")


def _parse_quantity(value: str) -> int:
    """
    Leading integer of the text, clamped at 0 ("1000.0" -> 1000,
    "12 pcs" -> 12).  Text without a leading integer gives 0.
    """
    match = _LEADING_INT.match(value)
    if match is None:
        return 0
    return max(0, int(match.group()))


class InventoryService:
    """
    Bounded stock mutation and bulk import reconciliation for fire-safety
    inventory records.
    """

    def adjust_available(
        self,
        material: PCCCMaterial,
        delta: int,
        today: Optional[date] = None,
    ) -> Optional[PCCCMaterial]:
        """
        Shift available quantity by ``delta``, clamped to [0, total_quantity].

        Returns None when the clamped value equals the current one (already at
        a bound, or delta == 0) so the caller emits no write.  Otherwise
        returns an updated copy with status recomputed.
        """
        new_qty = max(0, min(material.total_quantity, material.available_quantity + delta))
        if new_qty == material.available_quantity:
            return None
        updated = dataclasses.replace(
            material,
            available_quantity=new_qty,
            allocated_to=list(material.allocated_to),
        )
        updated.status = _aggregation.compute_material_status(updated, today)
        return updated

    def read_import_csv(self, text: str) -> List[List[str]]:
        """
        Split delimited import text into data rows.  The first line is the
        header and is dropped, as are blank lines.
        """
        text = text.lstrip("\ufeff")
        rows = list(csv.reader(io.StringIO(text)))
        data_rows: List[List[str]] = []
        for raw in rows[1:]:
            values = [v.strip().strip('"') for v in raw]
            if not any(values):
                continue
            data_rows.append(values)
        return data_rows

    def parse_import_batch(
        self,
        rows: Iterable[Sequence[str]],
        today: Optional[date] = None,
    ) -> ImportBatch:
        """
        Map positional import rows to PCCCMaterial records.

        Per-row tolerant: a row with fewer than four populated fields, or an
        unrecognised category, is dropped and reported in ``errors``; malformed
        quantities become 0.  Every record's status is computed here from its
        own inspection expiry.
        """
        today = today or _local_today()
        batch = ImportBatch()
        for index, raw in enumerate(rows, start=1):
            values = [str(v).strip() for v in raw]
            values += [""] * (len(IMPORT_COLUMNS) - len(values))

            if sum(1 for v in values if v) < MIN_POPULATED_FIELDS:
                batch.errors.append(
                    ImportRowError(index, f"fewer than {MIN_POPULATED_FIELDS} populated fields")
                )
                continue

            category_text = values[1].lower()
            if not category_text:
                category = PCCCCategory.PIPE
            else:
                try:
                    category = PCCCCategory(category_text)
                except ValueError:
                    batch.errors.append(ImportRowError(index, f"unknown category '{values[1]}'"))
                    continue

            total = _parse_quantity(values[4])
            available = min(_parse_quantity(values[5]), total)
            expiry = values[7] if _parse_day(values[7]) else None

            material = PCCCMaterial(
                name=values[0] or "Unnamed material",
                category=category,
                spec=values[2],
                unit=values[3] or "pcs",
                total_quantity=total,
                available_quantity=available,
                min_stock_level=_parse_quantity(values[6]),
                inspection_expiry=expiry,
            )
            material.status = _aggregation.compute_material_status(material, today)
            batch.records.append(material)
        return batch

    def prepare_material(
        self, material: PCCCMaterial, today: Optional[date] = None
    ) -> PCCCMaterial:
        """Validate a material for create/update and recompute its status."""
        if not material.name.strip():
            raise ValueError("Material name must not be empty.")
        if material.total_quantity < 0 or material.min_stock_level < 0:
            raise ValueError("Quantities must not be negative.")
        if not (0 <= material.available_quantity <= material.total_quantity):
            raise ValueError("available_quantity must be between 0 and total_quantity.")
        if material.inspection_expiry and _parse_day(material.inspection_expiry) is None:
            raise ValueError("inspection_expiry must be an ISO date (YYYY-MM-DD).")
        material.status = _aggregation.compute_material_status(material, today)
        return material

    def inventory_stats(
        self, materials: Sequence[PCCCMaterial], today: Optional[date] = None
    ) -> InventoryStats:
        today = today or _local_today()
        expired = 0
        for m in materials:
            expiry = _parse_day(m.inspection_expiry)
            if expiry is not None and expiry < today:
                expired += 1
        return InventoryStats(
            material_count=len(materials),
            low_stock_count=sum(1 for m in materials if m.available_quantity <= m.min_stock_level),
            expired_count=expired,
            total_items=sum(m.total_quantity for m in materials),
        )

    def filter_materials(
        self,
        materials: Sequence[PCCCMaterial],
        category: Optional[PCCCCategory] = None,
        query: str = "",
    ) -> List[PCCCMaterial]:
        """Category filter plus case-insensitive search over name and spec."""
        needle = query.strip().lower()
        return [
            m for m in materials
            if (category is None or m.category == category)
            and (not needle or needle in m.name.lower() or needle in m.spec.lower())
        ]


# ---------------------------------------------------------------------------
# CalendarService
# ---------------------------------------------------------------------------

@dataclass
class CalendarTaskEntry:
    """A task together with the project it belongs to, as shown on the calendar."""
    task: Task
    project_id: str
    project_code: str
    project_name: str

    @property
    def start_date(self) -> str:
        return self.task.start_date

    @property
    def end_date(self) -> str:
        return self.task.end_date


@dataclass
class DayBucket:
    date: str
    is_today: bool
    tasks: List[CalendarTaskEntry]
    notes: List[CalendarNote]


@dataclass
class MonthIndex:
    year: int
    month: int
    first_weekday_offset: int       # 0 = Monday
    days: List[DayBucket]


class CalendarService:
    """
    Read-side index of active tasks and notes per calendar day.
    Rebuilt from scratch on every request; nothing is cached.
    """

    def tasks_on_day(
        self, day: str, tasks: Sequence[CalendarTaskEntry]
    ) -> List[CalendarTaskEntry]:
        """
        Tasks active on ``day`` (start_date <= day <= end_date, compared as ISO
        strings).  Tasks starting on ``day`` come first; order is otherwise
        preserved.
        """
        active = [
            t for t in tasks
            if (t.start_date or "") <= day <= (t.end_date or "")
        ]
        return sorted(active, key=lambda t: t.start_date != day)

    def notes_on_day(self, day: str, notes: Sequence[CalendarNote]) -> List[CalendarNote]:
        return [n for n in notes if n.date == day]

    def flatten_tasks(
        self, projects: Sequence[Project], project_id: str = ALL_PROJECTS
    ) -> List[CalendarTaskEntry]:
        """Collect tasks across projects, narrowed to one project unless ``ALL``."""
        return [
            CalendarTaskEntry(task=t, project_id=p.id, project_code=p.code, project_name=p.name)
            for p in projects
            if project_id == ALL_PROJECTS or p.id == project_id
            for t in p.tasks
        ]

    def build_month(
        self,
        year: int,
        month: int,
        projects: Sequence[Project],
        notes: Sequence[CalendarNote],
        project_id: str = ALL_PROJECTS,
        today: Optional[date] = None,
    ) -> MonthIndex:
        if not 1 <= month <= 12:
            raise ValueError("month must be between 1 and 12.")
        today_key = (today or _local_today()).isoformat()
        entries = self.flatten_tasks(projects, project_id)
        first_weekday, days_in_month = calendar.monthrange(year, month)

        days: List[DayBucket] = []
        for day_number in range(1, days_in_month + 1):
            key = date(year, month, day_number).isoformat()
            days.append(
                DayBucket(
                    date=key,
                    is_today=key == today_key,
                    tasks=self.tasks_on_day(key, entries),
                    notes=self.notes_on_day(key, notes),
                )
            )
        return MonthIndex(year=year, month=month, first_weekday_offset=first_weekday, days=days)

    def day_detail(
        self,
        day: str,
        projects: Sequence[Project],
        notes: Sequence[CalendarNote],
        project_id: str = ALL_PROJECTS,
        today: Optional[date] = None,
    ) -> DayBucket:
        if _parse_day(day) is None:
            raise ValueError(f"'{day}' is not an ISO date (YYYY-MM-DD).")
        entries = self.flatten_tasks(projects, project_id)
        return DayBucket(
            date=day,
            is_today=day == (today or _local_today()).isoformat(),
            tasks=self.tasks_on_day(day, entries),
            notes=self.notes_on_day(day, notes),
        )

    def create_note(
        self, day: str, content: str, reminder_clock: Optional[str] = None
    ) -> CalendarNote:
        """
        Create a note for ``day``.  ``reminder_clock`` is a wall-clock time
        (HH:MM) on the same day.
        """
        if _parse_day(day) is None:
            raise ValueError(f"'{day}' is not an ISO date (YYYY-MM-DD).")
        if not content.strip():
            raise ValueError("Note content must not be empty.")
        reminder_time = None
        if reminder_clock:
            try:
                clock = datetime.strptime(reminder_clock, "%H:%M")
            except ValueError:
                raise ValueError("reminder time must be HH:MM.") from None
            reminder_time = f"{day}T{clock:%H:%M}:00"
        return CalendarNote(date=day, content=content.strip(), reminder_time=reminder_time)


# ---------------------------------------------------------------------------
# NotificationService
# ---------------------------------------------------------------------------

class NotificationService:
    """
    Derives a prioritised alert feed from project, task, and note state.
    Nothing is stored: the feed is regenerated from scratch on every call.
    """

    def generate_notifications(
        self,
        projects: Sequence[Project],
        notes: Sequence[CalendarNote] = (),
        now: Optional[datetime] = None,
    ) -> List[Notification]:
        """
        Rules
        -----
        1. Delayed project                      → critical  proj-delayed-<id>
        2. Unfinished task past its end date    → critical  task-overdue-<id>
           Unfinished task due in 0..3 days     → warning   task-soon-<id>
        3. Open note whose reminder is today or
           already past                         → info      note-reminder-<id>

        Critical entries come first, then everything by timestamp, newest
        first.  Identical inputs and ``now`` yield an identical list.
        """
        now = now or _local_now()
        if now.tzinfo is not None:
            now = now.astimezone().replace(tzinfo=None)
        today = now.date()
        notifications: List[Notification] = []

        for project in projects:
            if project.status == ProjectStatus.DELAYED:
                notifications.append(
                    Notification(
                        id=f"proj-delayed-{project.id}",
                        title="Project delayed",
                        message=f'Project "{project.name}" is behind schedule.',
                        severity=NotificationSeverity.CRITICAL,
                        timestamp=now,
                        project_id=project.id,
                    )
                )
            for task in project.tasks:
                notification = self._task_deadline(project, task, today, now)
                if notification is not None:
                    notifications.append(notification)

        for note in notes:
            notification = self._note_reminder(note, today, now)
            if notification is not None:
                notifications.append(notification)

        # Two stable passes: newest first, then critical ahead of the rest.
        notifications.sort(key=lambda n: n.timestamp, reverse=True)
        notifications.sort(key=lambda n: n.severity != NotificationSeverity.CRITICAL)
        return notifications

    def _task_deadline(
        self, project: Project, task: Task, today: date, now: datetime
    ) -> Optional[Notification]:
        if task.status == ProjectStatus.COMPLETED:
            return None
        end = _parse_day(task.end_date)
        if end is None:
            return None

        diff_days = (end - today).days
        if diff_days < 0:
            return Notification(
                id=f"task-overdue-{task.id}",
                title="Task overdue",
                message=(
                    f'Task "{task.name}" (project: {project.name}) is '
                    f"{_plural(abs(diff_days), 'day')} overdue."
                ),
                severity=NotificationSeverity.CRITICAL,
                timestamp=now,
                project_id=project.id,
            )
        if diff_days <= DUE_SOON_DAYS:
            when = "today" if diff_days == 0 else f"in {_plural(diff_days, 'day')}"
            return Notification(
                id=f"task-soon-{task.id}",
                title="Task due soon",
                message=f'Task "{task.name}" (project: {project.name}) is due {when}.',
                severity=NotificationSeverity.WARNING,
                timestamp=now,
                project_id=project.id,
            )
        return None

    def _note_reminder(
        self, note: CalendarNote, today: date, now: datetime
    ) -> Optional[Notification]:
        if note.is_completed:
            return None
        reminder = _parse_timestamp(note.reminder_time)
        if reminder is None:
            return None
        # Overdue reminders stay surfaced until the note is completed.
        if reminder.date() != today and reminder >= now:
            return None
        return Notification(
            id=f"note-reminder-{note.id}",
            title="Note reminder",
            message=f'Reminder: "{note.content}" at {reminder:%H:%M}.',
            severity=NotificationSeverity.INFO,
            timestamp=reminder,
        )


# ---------------------------------------------------------------------------
# DashboardService
# ---------------------------------------------------------------------------

@dataclass
class CashFlowRow:
    project_id: str
    code: str
    name: str
    paid: float
    pending: float
    remaining: float
    total: float


@dataclass
class TrendPoint:
    month: str          # YYYY-MM
    label: str
    progress: int


@dataclass
class DashboardTotals:
    project_count: int
    worker_count: int
    total_budget: float
    total_spent: float
    delayed_count: int


class DashboardService:
    """Presentation rollups; nothing else in the system depends on them."""

    def status_distribution(self, projects: Sequence[Project]) -> Dict[ProjectStatus, int]:
        """Project count per status, in enum order, omitting empty buckets."""
        counts = {s: 0 for s in ProjectStatus}
        for p in projects:
            counts[p.status] += 1
        return {s: n for s, n in counts.items() if n > 0}

    def cash_flow(self, projects: Sequence[Project]) -> List[CashFlowRow]:
        rows: List[CashFlowRow] = []
        for p in projects:
            pending = sum(
                f.amount
                for f in p.financials
                if f.status in (PaymentStatus.PENDING, PaymentStatus.OVERDUE)
            )
            rows.append(
                CashFlowRow(
                    project_id=p.id,
                    code=p.code,
                    name=p.name,
                    paid=p.spent,
                    pending=pending,
                    remaining=max(0.0, p.budget - p.spent - pending),
                    total=p.budget,
                )
            )
        return rows

    def progress_trend(
        self,
        projects: Sequence[Project],
        today: Optional[date] = None,
        months: int = 6,
    ) -> List[TrendPoint]:
        """
        Mean progress of every task whose end date falls on or before each
        month's last day, for the ``months`` months ending with the current one
        (oldest first).  Cumulative: a task keeps counting in every later month.
        """
        today = today or _local_today()
        ends: List[Tuple[date, int]] = []
        for p in projects:
            for t in p.tasks:
                end = _parse_day(t.end_date)
                if end is not None:
                    ends.append((end, t.progress))

        points: List[TrendPoint] = []
        for offset in range(months - 1, -1, -1):
            year, month = divmod(today.year * 12 + today.month - 1 - offset, 12)
            month += 1
            month_end = date(year, month, calendar.monthrange(year, month)[1])
            relevant = [progress for end, progress in ends if end <= month_end]
            points.append(
                TrendPoint(
                    month=f"{year}-{month:02d}",
                    label=f"{calendar.month_abbr[month]} {year}",
                    progress=_round_half_up(sum(relevant) / len(relevant)) if relevant else 0,
                )
            )
        return points

    def totals(self, projects: Sequence[Project]) -> DashboardTotals:
        return DashboardTotals(
            project_count=len(projects),
            worker_count=sum(len(p.workers) for p in projects),
            total_budget=sum(p.budget for p in projects),
            total_spent=sum(p.spent for p in projects),
            delayed_count=sum(1 for p in projects if p.status == ProjectStatus.DELAYED),
        )


# ---------------------------------------------------------------------------
# ProjectService
# ---------------------------------------------------------------------------

def _check_progress(progress: int) -> None:
    if not 0 <= progress <= 100:
        raise ValueError("progress must be between 0 and 100.")


class ProjectService:
    """
    Project and task mutation.  Every task mutation returns the project with
    its progress cache recomputed, so callers can persist it as-is.
    """

    def create_project(
        self,
        code: str,
        name: str,
        location: str,
        manager: str,
        start_date: str,
        end_date: str,
        budget: float,
        status: ProjectStatus = ProjectStatus.PLANNING,
        description: str = "",
        spent: float = 0.0,
    ) -> Project:
        """Create and return a new Project instance (unsaved)."""
        if not name.strip():
            raise ValueError("Project name must not be empty.")
        if budget < 0 or spent < 0:
            raise ValueError("budget and spent must not be negative.")
        if start_date and end_date and end_date < start_date:
            raise ValueError("end_date must not be before start_date.")
        return Project(
            code=code,
            name=name,
            location=location,
            manager=manager,
            start_date=start_date,
            end_date=end_date,
            budget=budget,
            spent=spent,
            status=status,
            description=description,
        )

    def update_project(
        self,
        project: Project,
        code: Optional[str] = None,
        name: Optional[str] = None,
        location: Optional[str] = None,
        manager: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        budget: Optional[float] = None,
        spent: Optional[float] = None,
        status: Optional[ProjectStatus] = None,
        description: Optional[str] = None,
    ) -> Project:
        """
        Apply field-level updates to a project.  The merged values are
        checked first, so a rejected update leaves the project untouched.
        """
        if name is not None and not name.strip():
            raise ValueError("Project name must not be empty.")
        new_budget = budget if budget is not None else project.budget
        new_spent = spent if spent is not None else project.spent
        if new_budget < 0 or new_spent < 0:
            raise ValueError("budget and spent must not be negative.")
        new_start = start_date if start_date is not None else project.start_date
        new_end = end_date if end_date is not None else project.end_date
        if new_start and new_end and new_end < new_start:
            raise ValueError("end_date must not be before start_date.")

        if name is not None:
            project.name = name
        if code is not None:
            project.code = code
        if location is not None:
            project.location = location
        if manager is not None:
            project.manager = manager
        if start_date is not None:
            project.start_date = start_date
        if end_date is not None:
            project.end_date = end_date
        if budget is not None:
            project.budget = budget
        if spent is not None:
            project.spent = spent
        if status is not None:
            project.status = status
        if description is not None:
            project.description = description
        return _aggregation.refresh_project_progress(project)

    def add_task(
        self,
        project: Project,
        name: str = "New task",
        type: TaskType = TaskType.GENERAL,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        progress: int = 0,
        status: ProjectStatus = ProjectStatus.PLANNING,
        dependencies: Optional[List[str]] = None,
        location: Optional[TaskLocation] = None,
        today: Optional[date] = None,
    ) -> Tuple[Project, Task]:
        """Append a task (dates default to today) and refresh project progress."""
        _check_progress(progress)
        today_key = (today or _local_today()).isoformat()
        task = Task(
            name=name,
            type=type,
            start_date=start_date or today_key,
            end_date=end_date or today_key,
            progress=progress,
            status=status,
            dependencies=list(dependencies or []),
            location=location,
        )
        project.tasks.append(task)
        return _aggregation.refresh_project_progress(project), task

    def update_task(
        self,
        project: Project,
        task: Task,
        name: Optional[str] = None,
        type: Optional[TaskType] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        progress: Optional[int] = None,
        status: Optional[ProjectStatus] = None,
        dependencies: Optional[List[str]] = None,
        location: Optional[TaskLocation] = None,
        images: Optional[List[str]] = None,
    ) -> Project:
        """Apply field-level updates to one of the project's tasks."""
        if progress is not None:
            _check_progress(progress)
            task.progress = progress
        if name is not None:
            task.name = name
        if type is not None:
            task.type = type
        if start_date is not None:
            task.start_date = start_date
        if end_date is not None:
            task.end_date = end_date
        if status is not None:
            task.status = status
        if dependencies is not None:
            task.dependencies = list(dependencies)
        if location is not None:
            task.location = location
        if images is not None:
            task.images = list(images)
        return _aggregation.refresh_project_progress(project)

    def remove_task(self, project: Project, task_id: str) -> Project:
        project.tasks = [t for t in project.tasks if t.id != task_id]
        return _aggregation.refresh_project_progress(project)

    def find_task(self, project: Project, task_id: str) -> Optional[Task]:
        return next((t for t in project.tasks if t.id == task_id), None)

    def add_document(
        self,
        project: Project,
        name: str,
        type: DocumentType = DocumentType.CONTRACT,
        status: DocumentStatus = DocumentStatus.DRAFT,
        url: Optional[str] = None,
        uploaded_by: str = "Admin",
        version: Optional[str] = None,
        notes: Optional[str] = None,
        file_size: Optional[str] = None,
        today: Optional[date] = None,
    ) -> Tuple[Project, ProjectDocument]:
        """Attach a document record; the upload date is today."""
        if not name.strip():
            raise ValueError("Document name must not be empty.")
        document = ProjectDocument(
            name=name.strip(),
            type=type,
            upload_date=(today or _local_today()).isoformat(),
            status=status,
            url=url,
            uploaded_by=uploaded_by,
            version=version,
            notes=notes,
            file_size=file_size,
        )
        project.documents.append(document)
        return project, document

    def update_document(
        self,
        project: Project,
        document: ProjectDocument,
        name: Optional[str] = None,
        type: Optional[DocumentType] = None,
        status: Optional[DocumentStatus] = None,
        url: Optional[str] = None,
        version: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Project:
        if name is not None:
            if not name.strip():
                raise ValueError("Document name must not be empty.")
            document.name = name.strip()
        if type is not None:
            document.type = type
        if status is not None:
            document.status = status
        if url is not None:
            document.url = url
        if version is not None:
            document.version = version
        if notes is not None:
            document.notes = notes
        return project

    def find_document(self, project: Project, document_id: str) -> Optional[ProjectDocument]:
        return next((d for d in project.documents if d.id == document_id), None)


# ---------------------------------------------------------------------------
# AcceptanceService
# ---------------------------------------------------------------------------

# The usual sign-off workflow.  It is advisory: any status may be set directly.
STANDARD_TRANSITIONS: Dict[AcceptanceStatus, Tuple[AcceptanceStatus, ...]] = {
    AcceptanceStatus.PENDING: (AcceptanceStatus.IN_PROGRESS, AcceptanceStatus.REJECTED),
    AcceptanceStatus.IN_PROGRESS: (AcceptanceStatus.APPROVED, AcceptanceStatus.REJECTED),
    AcceptanceStatus.APPROVED: (),
    AcceptanceStatus.REJECTED: (),
}


class AcceptanceService:
    """
    Manages QA/QC acceptance checklist items.
    """

    def create_task(
        self,
        project: Project,
        title: str,
        category: AcceptanceCategory,
        standard_ref: str = "",
        inspector: Optional[str] = None,
        notes: Optional[str] = None,
        today: Optional[date] = None,
    ) -> AcceptanceTask:
        """Create and return a new Pending acceptance item (unsaved)."""
        if not title.strip():
            raise ValueError("Acceptance item title must not be empty.")
        return AcceptanceTask(
            project_id=project.id,
            project_name=project.name,
            category=category,
            title=title.strip(),
            standard_ref=standard_ref.strip() or "TCVN",
            status=AcceptanceStatus.PENDING,
            inspector=inspector or "Unassigned",
            notes=notes,
            check_date=(today or _local_today()).isoformat(),
        )

    def set_status(
        self, task: AcceptanceTask, new_status: AcceptanceStatus
    ) -> Tuple[AcceptanceTask, bool]:
        """
        Set the status directly.  Returns the task and whether the move is an
        override, i.e. outside STANDARD_TRANSITIONS (re-setting the current
        status is not an override).
        """
        is_override = (
            new_status != task.status
            and new_status not in STANDARD_TRANSITIONS[task.status]
        )
        task.status = new_status
        return task, is_override

    def add_evidence(
        self,
        task: AcceptanceTask,
        name: str,
        type: EvidenceType,
        url: Optional[str] = None,
        today: Optional[date] = None,
    ) -> AcceptanceTask:
        if not name.strip():
            raise ValueError("Evidence name must not be empty.")
        task.documents.append(
            EvidenceFile(name=name.strip(), type=type, url=url, date=(today or _local_today()).isoformat())
        )
        return task

    def filter_tasks(
        self,
        tasks: Sequence[AcceptanceTask],
        status: Optional[AcceptanceStatus] = None,
        project_id: Optional[str] = None,
        query: str = "",
    ) -> List[AcceptanceTask]:
        needle = query.strip().lower()
        return [
            t for t in tasks
            if (status is None or t.status == status)
            and (project_id in (None, ALL_PROJECTS) or t.project_id == project_id)
            and (not needle or needle in t.title.lower() or needle in t.project_name.lower())
        ]

    def group_by_category(
        self, tasks: Sequence[AcceptanceTask]
    ) -> Dict[AcceptanceCategory, List[AcceptanceTask]]:
        """Group items by system, in enum order, omitting empty groups."""
        groups: Dict[AcceptanceCategory, List[AcceptanceTask]] = {c: [] for c in AcceptanceCategory}
        for t in tasks:
            groups[t.category].append(t)
        return {c: items for c, items in groups.items() if items}


# ---------------------------------------------------------------------------
# ExportService
# ---------------------------------------------------------------------------

class ExportService:
    """
    Flat rows for spreadsheet export.  Column order is fixed; turning the rows
    into CSV bytes is left to the export collaborator.
    """

    def project_export_rows(self, projects: Sequence[Project]) -> List[Dict]:
        return [
            {
                "code": p.code,
                "name": p.name,
                "manager": p.manager,
                "location": p.location,
                "start_date": p.start_date,
                "end_date": p.end_date,
                "status": p.status.value,
                "progress": p.progress,
                "budget": p.budget,
                "spent": p.spent,
                "task_count": len(p.tasks),
                "worker_count": len(p.workers),
                "material_count": len(p.materials),
                "approved_documents": _aggregation.document_summary(p).approved_count,
                "description": p.description,
            }
            for p in projects
        ]

    def task_export_rows(self, project: Project) -> List[Dict]:
        return [
            {
                "id": t.id,
                "name": t.name,
                "type": t.type.value,
                "start_date": t.start_date,
                "end_date": t.end_date,
                "progress": t.progress,
                "status": t.status.value,
                "address": t.location.address if t.location else "",
            }
            for t in project.tasks
        ]


# ---------------------------------------------------------------------------
# PromptBuilder
# ---------------------------------------------------------------------------

class PromptBuilder:
    """
    Builds prompt text for the completion service.  No output parsing happens
    anywhere: replies are shown to the user verbatim.
    """

    def project_context(self, project: Project) -> str:
        return "\n".join(
            [
                f"Project name: {project.name}",
                f"Status: {project.status.value}",
                f"Progress: {project.progress}%",
                f"Budget: {project.budget:,.0f}",
                f"Spent: {project.spent:,.0f}",
                f"Manager: {project.manager}",
                f"Description: {project.description}",
                f"Tasks: {len(project.tasks)}",
                f"Workers: {len(project.workers)}",
            ]
        )

    def portfolio_context(self, projects: Sequence[Project]) -> str:
        names = ", ".join(p.name for p in projects)
        return f"Projects in the system: {len(projects)}. They are: {names}."

    def chat_prompt(self, message: str, context: Optional[str] = None) -> str:
        parts = []
        if context:
            parts.append(f"[Context for the project the user is looking at:\n{context}]")
        parts.append(
            "You are an assistant specialised in construction and project management. "
            "Answer concisely and professionally. Use the context above, if any, "
            "to make the answer specific."
        )
        parts.append(f'User: "{message}"')
        return "\n\n".join(parts)

    def risk_analysis_prompt(self, project: Project) -> str:
        summary = _aggregation.document_summary(project)
        materials = json.dumps(
            [{"name": m.name, "status": m.status.value} for m in project.materials],
            ensure_ascii=False,
        )
        return "\n".join(
            [
                "You are a construction project management expert. Analyse the project "
                "below and write a short report (under 300 words).",
                "",
                f"- Name: {project.name}",
                f"- Status: {project.status.value}",
                f"- Progress: {project.progress}%",
                f"- Finance: {summary.paid_stages} payment stages paid, "
                f"{summary.overdue_stages} overdue. Total budget: {project.budget:,.0f}.",
                f"- Documents: {summary.total} on file. Still in draft: "
                f"{', '.join(summary.draft_names) or 'none'}.",
                f"- Tasks: {len(project.tasks)}",
                f"- Materials: {materials}",
                "",
                "1. Assess the overall situation, including cash flow and paperwork.",
                "2. Point out the main risks (finance, schedule, documents, materials).",
                "3. Recommend 2-3 concrete actions for the manager.",
            ]
        )

    def stock_analysis_prompt(
        self, materials: Sequence[PCCCMaterial], today: Optional[date] = None
    ) -> str:
        data = json.dumps(
            [
                {
                    "name": m.name,
                    "available": m.available_quantity,
                    "min_stock": m.min_stock_level,
                    "expiry": m.inspection_expiry,
                    "allocated_to": ", ".join(
                        f"{a.quantity} to {a.project_name} ({a.status.value})" for a in m.allocated_to
                    ),
                }
                for m in materials
            ],
            ensure_ascii=False,
        )
        return "\n".join(
            [
                "You manage a fire-safety (PCCC) equipment warehouse. Analyse the stock "
                "below and raise warnings.",
                "",
                f"Stock: {data}",
                "",
                "1. Shortages: compare available quantity with the minimum stock level.",
                f"2. Inspection: flag items whose expiry is before {(today or _local_today()).isoformat()}.",
                "3. Allocation: comment on stock issued to projects but not yet installed.",
                "4. Suggest what to order now.",
                "Answer briefly, as bullet points.",
            ]
        )

    def acceptance_review_prompt(self, tasks: Sequence[AcceptanceTask]) -> str:
        checklist = json.dumps(
            [
                {
                    "title": t.title,
                    "standard": t.standard_ref,
                    "status": t.status.value,
                    "doc_count": len(t.documents),
                    "documents": ", ".join(d.name for d in t.documents),
                    "notes": t.notes,
                }
                for t in tasks
            ],
            ensure_ascii=False,
        )
        return "\n".join(
            [
                "You are a QA/QC and fire-safety approval specialist reviewing the "
                "acceptance file before the fire authority's inspection.",
                "",
                f"Checklist: {checklist}",
                "",
                "1. Missing evidence: items Approved or In Progress with no supporting documents.",
                "2. Standards: technical requirements commonly missed for each item.",
                "3. Hot spots: items inspectors usually examine most closely.",
                "4. Overall readiness (Low / Medium / High).",
            ]
        )

    def task_suggestion_prompt(self, description: str) -> str:
        return (
            f'Based on this construction project description: "{description}", '
            "list the 5 most important work items in chronological order as short bullet points."
        )
