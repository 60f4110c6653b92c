"""
infrastructure.py

In-memory implementation of all repository interfaces and the Unit of Work,
plus the concrete completion clients.

The store is a self-contained backend that keeps everything in plain Python
dicts keyed by id, so local runs and integration tests need no database.

To swap in a real database later, implement the same Abstract* interfaces
from application.py and override get_uow() in api.py:

    app.dependency_overrides[get_uow] = lambda: SqlUnitOfWork(session)

Nothing in service.py, application.py, or api.py needs to change.

Completion clients
------------------
  NullCompletionClient     — used when no API key is configured
  GeminiCompletionClient   — Generative Language ``generateContent`` over httpx
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from application import (
    AbstractAcceptanceTaskRepository,
    AbstractCalendarNoteRepository,
    AbstractCompletionClient,
    AbstractPCCCMaterialRepository,
    AbstractProjectRepository,
    AbstractUnitOfWork,
    CompletionError,
)
from model import (
    AcceptanceCategory,
    AcceptanceStatus,
    AcceptanceTask,
    AllocationStatus,
    CalendarNote,
    DocumentStatus,
    DocumentType,
    EvidenceFile,
    EvidenceType,
    Material,
    MaterialAllocation,
    MaterialStatus,
    PaymentStage,
    PaymentStatus,
    PCCCCategory,
    PCCCMaterial,
    Project,
    ProjectDocument,
    ProjectStatus,
    Task,
    TaskLocation,
    TaskType,
    Worker,
)
from service import AggregationService

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Generic in-memory store
# ---------------------------------------------------------------------------

class _Store(dict):
    """A plain dict with typed get/save/delete helpers."""

    def fetch(self, key: str):
        return self.get(key)

    def put(self, obj) -> None:
        self[obj.id] = obj

    def remove(self, key: str) -> None:
        self.pop(key, None)

    def all(self) -> list:
        return list(self.values())


# ---------------------------------------------------------------------------
# Shared in-memory database (module-level singleton)
# Persists for the lifetime of the process; restarting uvicorn resets it.
# ---------------------------------------------------------------------------

class InMemoryDatabase:
    def __init__(self):
        self.projects:         _Store = _Store()
        self.materials:        _Store = _Store()
        self.acceptance_tasks: _Store = _Store()
        self.calendar_notes:   _Store = _Store()


# Module-level singleton shared across all requests
_db = InMemoryDatabase()


# ---------------------------------------------------------------------------
# Repository implementations
# ---------------------------------------------------------------------------

class InMemoryProjectRepository(AbstractProjectRepository):
    def __init__(self, store: _Store): self._s = store
    def get(self, project_id):        return self._s.fetch(project_id)
    def list_all(self):               return self._s.all()
    def save(self, project):          self._s.put(project)
    def delete(self, project_id):     self._s.remove(project_id)


class InMemoryPCCCMaterialRepository(AbstractPCCCMaterialRepository):
    def __init__(self, store: _Store): self._s = store
    def get(self, material_id):       return self._s.fetch(material_id)
    def list_all(self):               return self._s.all()
    def save(self, material):         self._s.put(material)
    def delete(self, material_id):    self._s.remove(material_id)


class InMemoryAcceptanceTaskRepository(AbstractAcceptanceTaskRepository):
    def __init__(self, store: _Store): self._s = store
    def get(self, task_id):           return self._s.fetch(task_id)
    def list_all(self):               return self._s.all()
    def save(self, task):             self._s.put(task)
    def delete(self, task_id):        self._s.remove(task_id)


class InMemoryCalendarNoteRepository(AbstractCalendarNoteRepository):
    def __init__(self, store: _Store): self._s = store
    def get(self, note_id):           return self._s.fetch(note_id)
    def list_all(self):               return self._s.all()
    def save(self, note):             self._s.put(note)
    def delete(self, note_id):        self._s.remove(note_id)


# ---------------------------------------------------------------------------
# Unit of Work
# ---------------------------------------------------------------------------

class InMemoryUnitOfWork(AbstractUnitOfWork):
    """
    Wraps all in-memory repositories.  commit() and rollback() are no-ops
    because dict mutations are immediate.
    In a real SQL implementation, commit() would call session.commit().
    """

    def __init__(self, db: InMemoryDatabase = _db):
        self.projects         = InMemoryProjectRepository(db.projects)
        self.materials        = InMemoryPCCCMaterialRepository(db.materials)
        self.acceptance_tasks = InMemoryAcceptanceTaskRepository(db.acceptance_tasks)
        self.calendar_notes   = InMemoryCalendarNoteRepository(db.calendar_notes)

    def commit(self)   -> None: pass   # no-op for in-memory
    def rollback(self) -> None: pass   # no-op for in-memory


# ---------------------------------------------------------------------------
# Demo data
# ---------------------------------------------------------------------------

def _demo_tasks(project_id: str):
    return [
        Task(
            id=f"{project_id}-t1", name="Site preparation", type=TaskType.GENERAL,
            start_date="2023-11-01", end_date="2023-11-05", progress=100,
            status=ProjectStatus.COMPLETED,
            location=TaskLocation(address="Main site gate, zone A"),
        ),
        Task(
            id=f"{project_id}-t2", name="Foundation works", type=TaskType.CONSTRUCTION,
            start_date="2023-11-06", end_date="2023-11-20", progress=85,
            status=ProjectStatus.IN_PROGRESS,
            location=TaskLocation(address="Pile caps T1-T4"),
        ),
        Task(
            id=f"{project_id}-t3", name="Ground floor slab pour", type=TaskType.CONSTRUCTION,
            start_date="2023-11-21", end_date="2023-11-25",
            dependencies=[f"{project_id}-t2"],
        ),
        Task(
            id=f"{project_id}-t4", name="Perimeter walls", type=TaskType.CONSTRUCTION,
            start_date="2023-11-26", end_date="2023-12-10",
        ),
        Task(
            id=f"{project_id}-t5", name="Electrical and plumbing rough-in", type=TaskType.ELECTRICAL,
            start_date="2023-12-05", end_date="2023-12-20",
        ),
    ]


def _demo_financials(project_id: str, budget: float):
    return [
        PaymentStage(id=f"{project_id}-pay1", name="Contract advance (20%)", amount=budget * 0.2,
                     due_date="2023-11-01", status=PaymentStatus.PAID, paid_date="2023-11-02"),
        PaymentStage(id=f"{project_id}-pay2", name="Stage 1: foundations complete", amount=budget * 0.3,
                     due_date="2023-12-15"),
        PaymentStage(id=f"{project_id}-pay3", name="Stage 2: structure complete", amount=budget * 0.3,
                     due_date="2024-03-01"),
        PaymentStage(id=f"{project_id}-pay4", name="Final account and handover (20%)", amount=budget * 0.2,
                     due_date="2024-06-30"),
    ]


def _demo_project(pid, code, name, location, manager, start, end, budget, spent, status,
                  description, crew):
    project = Project(
        id=pid, code=code, name=name, location=location, manager=manager,
        start_date=start, end_date=end, budget=budget, spent=spent, status=status,
        description=description,
        tasks=_demo_tasks(pid),
        workers=[
            Worker(id=f"{pid}-w{i}", name=f"Worker {i}",
                   role=("Site engineer", "Mason", "Electrician")[i % 3])
            for i in range(1, crew + 1)
        ],
        materials=[
            Material(id=f"{pid}-m1", name="Cement PCB40", quantity=500, unit="bag",
                     last_updated="2023-10-25"),
            Material(id=f"{pid}-m2", name="Rebar", quantity=2000, unit="kg",
                     status=MaterialStatus.LOW_STOCK, last_updated="2023-10-24"),
            Material(id=f"{pid}-m3", name="Wall paint", quantity=0, unit="drum",
                     status=MaterialStatus.OUT_OF_STOCK, last_updated="2023-10-27"),
        ],
        financials=_demo_financials(pid, budget),
        documents=[
            ProjectDocument(id=f"{pid}-d1", name="Construction contract", type=DocumentType.CONTRACT,
                            upload_date="2023-10-25", status=DocumentStatus.APPROVED),
            ProjectDocument(id=f"{pid}-d2", name="Building permit", type=DocumentType.LEGAL,
                            upload_date="2023-10-20", status=DocumentStatus.APPROVED),
            ProjectDocument(id=f"{pid}-d3", name="Foundation handover record",
                            type=DocumentType.HANDOVER, upload_date="2023-12-10"),
        ],
    )
    return AggregationService().refresh_project_progress(project)


def seed_demo_data(uow: AbstractUnitOfWork) -> bool:
    """
    Fill an empty store with a small demo portfolio.  Returns False and
    writes nothing when any collection already holds data.
    """
    aggregation = AggregationService()
    with uow:
        if (uow.projects.list_all() or uow.materials.list_all()
                or uow.acceptance_tasks.list_all() or uow.calendar_notes.list_all()):
            return False

        projects = [
            _demo_project("p-1", "KDT-001", "Green City - Block A", "District 9, HCMC",
                          "Nguyen Van A", "2023-11-01", "2024-06-30", 5_000_000_000,
                          1_000_000_000, ProjectStatus.IN_PROGRESS,
                          "20-storey residential tower.", 15),
            _demo_project("p-2", "BT-052", "Riverside Villa", "Da Nang", "Tran Thi B",
                          "2023-10-15", "2024-02-15", 2_000_000_000, 400_000_000,
                          ProjectStatus.DELAYED, "High-end holiday villa.", 8),
            _demo_project("p-3", "NM-103", "Packaging Plant", "Binh Duong", "Le Van C",
                          "2023-09-01", "2024-03-01", 15_000_000_000, 3_000_000_000,
                          ProjectStatus.IN_PROGRESS, "Pre-engineered steel factory.", 30),
        ]
        for project in projects:
            uow.projects.save(project)

        materials = [
            PCCCMaterial(
                id="pccc-1", name="Pendent sprinkler head", category=PCCCCategory.SPRINKLER,
                spec="68C, K=5.6", total_quantity=1000, available_quantity=800,
                min_stock_level=200, unit="pcs",
                allocated_to=[MaterialAllocation("p-1", "Green City - Block A", 200)],
            ),
            PCCCMaterial(
                id="pccc-2", name="Fire alarm control panel", category=PCCCCategory.ALARM,
                spec="10 loop, addressable", total_quantity=5, available_quantity=1,
                min_stock_level=2, unit="set", inspection_expiry="2023-12-01",
                allocated_to=[
                    MaterialAllocation("p-3", "Packaging Plant", 2, AllocationStatus.INSTALLED,
                                       "2023-10-15"),
                    MaterialAllocation("p-1", "Green City - Block A", 2),
                ],
            ),
            PCCCMaterial(
                id="pccc-3", name="ABC powder extinguisher", category=PCCCCategory.EXTINGUISHER,
                spec="MFZ4 4kg", total_quantity=200, available_quantity=30,
                min_stock_level=50, unit="unit", inspection_expiry="2024-05-20",
                allocated_to=[
                    MaterialAllocation("p-2", "Riverside Villa", 20, AllocationStatus.INSTALLED),
                    MaterialAllocation("p-3", "Packaging Plant", 150, AllocationStatus.INSTALLED),
                ],
            ),
            PCCCMaterial(
                id="pccc-4", name="Seamless steel fire main", category=PCCCCategory.PIPE,
                spec="DN100 Sch40", total_quantity=500, available_quantity=450,
                min_stock_level=100, unit="length (6m)",
            ),
            PCCCMaterial(
                id="pccc-5", name="Supervised gate valve", category=PCCCCategory.VALVE,
                spec="OS&Y DN100", total_quantity=20, available_quantity=20,
                min_stock_level=5, unit="pcs",
            ),
        ]
        for material in materials:
            material.status = aggregation.compute_material_status(material)
            uow.materials.save(material)

        acceptance = [
            AcceptanceTask(
                id="qa-1", project_id="p-1", project_name="Green City - Block A",
                category=AcceptanceCategory.WALL_HYDRANT,
                title="Pressure test of hydrant mains, floors 1-5",
                standard_ref="TCVN 7336:2021", status=AcceptanceStatus.APPROVED,
                documents=[
                    EvidenceFile("pressure_test_F1-F5.pdf", EvidenceType.PDF, None, "2023-11-20"),
                    EvidenceFile("pressure_chart.xlsx", EvidenceType.EXCEL, None, "2023-11-20"),
                ],
                inspector="Nguyen Van Kiem", check_date="2023-11-20",
            ),
            AcceptanceTask(
                id="qa-2", project_id="p-1", project_name="Green City - Block A",
                category=AcceptanceCategory.SPRINKLER,
                title="Sprinkler head installation sign-off",
                standard_ref="TCVN 7336:2021", inspector="Unassigned",
            ),
            AcceptanceTask(
                id="qa-3", project_id="p-3", project_name="Packaging Plant",
                category=AcceptanceCategory.FIRE_ALARM,
                title="Fire alarm interlock test", standard_ref="TCVN 5738:2021",
                status=AcceptanceStatus.IN_PROGRESS,
                documents=[EvidenceFile("drill_scenario.pdf", EvidenceType.PDF, None, "2023-12-01")],
                notes="Waiting on jockey pump connection.",
            ),
            AcceptanceTask(
                id="qa-4", project_id="p-2", project_name="Riverside Villa",
                category=AcceptanceCategory.LIGHTNING_PROTECTION,
                title="Earthing resistance measurement", standard_ref="TCVN 9385:2012",
                status=AcceptanceStatus.REJECTED,
                documents=[EvidenceFile("measurement_round1.pdf", EvidenceType.PDF, None, "2023-11-15")],
                notes="Measured 12 Ohm, limit is 10 Ohm. Drive additional rods.",
                inspector="Tran Ky Thuat",
            ),
        ]
        for task in acceptance:
            uow.acceptance_tasks.save(task)

        uow.calendar_notes.save(
            CalendarNote(id="note-1", date="2023-11-20", content="Site walk with the fire authority",
                         reminder_time="2023-11-20T08:30:00")
        )
        uow.commit()

    logger.info(
        "Seeded demo data: %d projects, %d materials, %d acceptance items",
        len(projects), len(materials), len(acceptance),
    )
    return True


# ---------------------------------------------------------------------------
# Completion clients
# ---------------------------------------------------------------------------

class NullCompletionClient(AbstractCompletionClient):
    """Stand-in used when no API key is configured; never makes a call."""

    @property
    def is_configured(self) -> bool:
        return False

    def complete(self, prompt: str) -> str:
        raise CompletionError("Completion service is not configured.")


class GeminiCompletionClient(AbstractCompletionClient):
    """
    Calls the Generative Language ``models/{model}:generateContent`` endpoint.
    Transport and HTTP failures, and replies without text, raise CompletionError.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self._api_key = api_key
        self._model = model
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    def complete(self, prompt: str) -> str:
        url = f"{self._base_url}/models/{self._model}:generateContent"
        body = {"contents": [{"parts": [{"text": prompt}]}]}
        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                response = client.post(url, params={"key": self._api_key}, json=body)
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPError as exc:
            raise CompletionError(f"Completion request failed: {exc}") from exc
        except ValueError as exc:
            raise CompletionError("Completion service returned invalid JSON.") from exc

        try:
            parts = payload["candidates"][0]["content"]["parts"]
        except (KeyError, IndexError, TypeError) as exc:
            raise CompletionError("Completion reply contained no candidates.") from exc
        return "".join(p.get("text", "") for p in parts if isinstance(p, dict))
