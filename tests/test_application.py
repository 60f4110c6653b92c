# tests/test_application.py
import logging
from datetime import date, datetime

import httpx
import pytest
from pydantic import ValidationError

from application import (
    AddDocumentCommand,
    AddDocumentUseCase,
    AddNoteCommand,
    AddNoteUseCase,
    AddTaskCommand,
    AddTaskUseCase,
    AdjustStockCommand,
    AdjustStockUseCase,
    AnalyzeProjectRiskUseCase,
    AnalyzeStockUseCase,
    ApplicationError,
    CalendarMonthQuery,
    ChatCommand,
    ChatUseCase,
    CompletionError,
    ConfirmMaterialImportUseCase,
    CreateAcceptanceTaskCommand,
    CreateAcceptanceTaskUseCase,
    CreateMaterialUseCase,
    CreateProjectCommand,
    CreateProjectUseCase,
    ExportProjectsUseCase,
    GetCalendarMonthUseCase,
    GetDashboardUseCase,
    GetNotificationsUseCase,
    GetReadinessUseCase,
    MaterialCommand,
    MaterialImportCommand,
    NOT_CONFIGURED_TEXT,
    NotFoundError,
    PreviewMaterialImportUseCase,
    RemoveTaskUseCase,
    SetAcceptanceStatusUseCase,
    SuggestTasksUseCase,
    UpdateDocumentCommand,
    UpdateDocumentUseCase,
    UpdateMaterialUseCase,
    UpdateProjectCommand,
    UpdateProjectUseCase,
    UpdateTaskCommand,
    UpdateTaskUseCase,
)
from config import Settings
from infrastructure import (
    GeminiCompletionClient,
    InMemoryUnitOfWork,
    NullCompletionClient,
    seed_demo_data,
)
from model import (
    AcceptanceCategory,
    AcceptanceStatus,
    DocumentStatus,
    DocumentType,
    PCCCCategory,
    ProjectStatus,
)


def _create_project(uow, **overrides):
    fields = dict(
        code="KDT-001", name="Green City", location="District 9", manager="A",
        start_date="2024-01-01", end_date="2024-12-31", budget=1000.0,
    )
    fields.update(overrides)
    return CreateProjectUseCase().execute(CreateProjectCommand(**fields), uow)


def _material_cmd(**overrides):
    fields = dict(
        name="Sprinkler head", category=PCCCCategory.SPRINKLER, spec="K=5.6", unit="pcs",
        total_quantity=1000, available_quantity=800, min_stock_level=200,
        today=date(2024, 3, 11),
    )
    fields.update(overrides)
    return MaterialCommand(**fields)


# ---------------------------------------------------------------------------
# Projects & tasks
# ---------------------------------------------------------------------------

def test_task_mutations_write_progress_back(uow):
    project = _create_project(uow)
    first = AddTaskUseCase().execute(
        AddTaskCommand(project_id=project.id, name="Foundations", progress=100), uow
    )
    AddTaskUseCase().execute(AddTaskCommand(project_id=project.id, name="Walls", progress=0), uow)
    assert uow.projects.get(project.id).progress == 50

    UpdateTaskUseCase().execute(
        UpdateTaskCommand(project_id=project.id, task_id=first.id, progress=50), uow
    )
    assert uow.projects.get(project.id).progress == 25

    result = RemoveTaskUseCase().execute(project.id, first.id, uow)
    assert result.progress == 0
    assert len(result.tasks) == 1


def test_unknown_project_raises_not_found(uow):
    with pytest.raises(NotFoundError):
        AddTaskUseCase().execute(AddTaskCommand(project_id="missing"), uow)


def test_unknown_task_raises_not_found(uow):
    project = _create_project(uow)
    with pytest.raises(NotFoundError):
        RemoveTaskUseCase().execute(project.id, "missing", uow)


@pytest.mark.parametrize(
    "changes",
    [
        dict(end_date="2023-01-01", name="Renamed"),
        dict(start_date="2025-06-01", code="NEW-1"),
        dict(spent=-1.0, manager="B"),
    ],
)
def test_rejected_project_update_leaves_store_unchanged(uow, changes):
    project = _create_project(uow)
    with pytest.raises(ValueError):
        UpdateProjectUseCase().execute(UpdateProjectCommand(project_id=project.id, **changes), uow)
    stored = uow.projects.get(project.id)
    assert (stored.name, stored.code, stored.manager) == ("Green City", "KDT-001", "A")
    assert (stored.start_date, stored.end_date, stored.spent) == ("2024-01-01", "2024-12-31", 0.0)


def test_project_update_checks_merged_dates(uow):
    project = _create_project(uow)
    result = UpdateProjectUseCase().execute(
        UpdateProjectCommand(project_id=project.id, start_date="2025-01-01", end_date="2025-12-31"),
        uow,
    )
    assert (result.start_date, result.end_date) == ("2025-01-01", "2025-12-31")


def test_document_records_feed_the_summary(uow):
    project = _create_project(uow)
    doc = AddDocumentUseCase().execute(
        AddDocumentCommand(project_id=project.id, name="Fire permit", type=DocumentType.LEGAL,
                           today=date(2024, 3, 11)),
        uow,
    )
    assert (doc.status, doc.type, doc.upload_date, doc.uploaded_by) == (
        "draft", "legal", "2024-03-11", "Admin",
    )
    assert ExportProjectsUseCase().execute(uow)[0]["approved_documents"] == 0

    UpdateDocumentUseCase().execute(
        UpdateDocumentCommand(project_id=project.id, document_id=doc.id,
                              status=DocumentStatus.APPROVED, version="v2"),
        uow,
    )
    stored = uow.projects.get(project.id).documents[0]
    assert (stored.status, stored.version) == (DocumentStatus.APPROVED, "v2")
    assert ExportProjectsUseCase().execute(uow)[0]["approved_documents"] == 1


def test_unknown_document_raises_not_found(uow):
    project = _create_project(uow)
    with pytest.raises(NotFoundError):
        UpdateDocumentUseCase().execute(
            UpdateDocumentCommand(project_id=project.id, document_id="missing", name="x"), uow
        )


# ---------------------------------------------------------------------------
# Inventory
# ---------------------------------------------------------------------------

def test_material_status_computed_on_create_and_update(uow):
    created = CreateMaterialUseCase().execute(_material_cmd(), uow)
    assert created.status == "Good"

    updated = UpdateMaterialUseCase().execute(
        _material_cmd(material_id=created.id, inspection_expiry="2023-12-01"), uow
    )
    assert updated.status == "Expired"
    assert uow.materials.get(created.id).status.value == "Expired"


def test_update_material_requires_id(uow):
    with pytest.raises(ApplicationError):
        UpdateMaterialUseCase().execute(_material_cmd(), uow)


def test_adjust_stock_scenario(uow):
    created = CreateMaterialUseCase().execute(_material_cmd(), uow)
    result = AdjustStockUseCase().execute(
        AdjustStockCommand(material_id=created.id, delta=-650, today=date(2024, 3, 11)), uow
    )
    assert result.changed is True
    assert result.material.available_quantity == 150
    assert result.material.status == "Low Stock"
    assert uow.materials.get(created.id).available_quantity == 150


def test_adjust_stock_at_bound_writes_nothing(uow):
    created = CreateMaterialUseCase().execute(_material_cmd(available_quantity=1000), uow)
    stored = uow.materials.get(created.id)
    result = AdjustStockUseCase().execute(AdjustStockCommand(created.id, 5), uow)
    assert result.changed is False
    assert uow.materials.get(created.id) is stored
    assert stored.available_quantity == 1000


def test_import_preview_does_not_save(uow):
    text = "name,category,spec,unit,total,available,min,expiry\nValve,valve,DN100,pcs,10,8,2,\n"
    preview = PreviewMaterialImportUseCase().execute(MaterialImportCommand(csv_text=text))
    assert [m.name for m in preview.records] == ["Valve"]
    assert uow.materials.list_all() == []


def test_import_confirm_saves_valid_rows_and_reports_errors(uow):
    rows = [
        ["Valve", "valve", "DN100", "pcs", "10", "8", "2"],
        ["Mystery", "foam", "x", "l", "1", "1", "1"],
        ["Short", "pipe"],
    ]
    result = ConfirmMaterialImportUseCase().execute(MaterialImportCommand(rows=rows), uow)
    assert len(result.records) == 1
    assert [e.row for e in result.errors] == [2, 3]
    assert [m.name for m in uow.materials.list_all()] == ["Valve"]


def test_import_without_valid_rows_is_refused(uow):
    with pytest.raises(ApplicationError):
        ConfirmMaterialImportUseCase().execute(MaterialImportCommand(rows=[["a", "b"]]), uow)
    assert uow.materials.list_all() == []


def test_import_requires_input():
    with pytest.raises(ApplicationError):
        PreviewMaterialImportUseCase().execute(MaterialImportCommand())


# ---------------------------------------------------------------------------
# Acceptance
# ---------------------------------------------------------------------------

def test_status_override_is_logged(uow, caplog):
    project = _create_project(uow)
    task = CreateAcceptanceTaskUseCase().execute(
        CreateAcceptanceTaskCommand(
            project_id=project.id, title="Alarm test", category=AcceptanceCategory.FIRE_ALARM
        ),
        uow,
    )
    with caplog.at_level(logging.WARNING, logger="application"):
        result = SetAcceptanceStatusUseCase().execute(task.id, AcceptanceStatus.APPROVED, uow)
    assert result.status == "Approved"
    assert "outside the standard workflow" in caplog.text


def test_readiness_for_one_project(uow):
    project = _create_project(uow)
    other = _create_project(uow, code="B", name="Beta")
    for pid, title in ((project.id, "Alarm"), (other.id, "Hydrant")):
        CreateAcceptanceTaskUseCase().execute(
            CreateAcceptanceTaskCommand(pid, title, AcceptanceCategory.FIRE_ALARM), uow
        )
    readiness = GetReadinessUseCase().execute(uow, project_id=project.id)
    assert readiness.total == 1
    assert readiness.by_status["Pending"] == 1


def test_acceptance_task_for_unknown_project(uow):
    with pytest.raises(NotFoundError):
        CreateAcceptanceTaskUseCase().execute(
            CreateAcceptanceTaskCommand("missing", "Alarm", AcceptanceCategory.FIRE_ALARM), uow
        )


# ---------------------------------------------------------------------------
# Calendar, notifications, dashboard
# ---------------------------------------------------------------------------

def test_calendar_month_includes_tasks_and_notes(uow):
    project = _create_project(uow)
    AddTaskUseCase().execute(
        AddTaskCommand(project_id=project.id, name="Span", start_date="2024-03-10",
                       end_date="2024-03-12"),
        uow,
    )
    AddNoteUseCase().execute(AddNoteCommand(date="2024-03-11", content="Inspection"), uow)

    month = GetCalendarMonthUseCase().execute(
        CalendarMonthQuery(year=2024, month=3, today=date(2024, 3, 11)), uow
    )
    by_day = {d.date: d for d in month.days}
    assert [t.name for t in by_day["2024-03-10"].tasks] == ["Span"]
    assert by_day["2024-03-10"].tasks[0].is_start
    assert by_day["2024-03-12"].tasks[0].is_end
    assert by_day["2024-03-13"].tasks == []
    assert [n.content for n in by_day["2024-03-11"].notes] == ["Inspection"]
    assert by_day["2024-03-11"].is_today


def test_notifications_regenerated_from_store(uow):
    project = _create_project(uow, status=ProjectStatus.DELAYED)
    AddTaskUseCase().execute(
        AddTaskCommand(project_id=project.id, name="Slab", start_date="2024-03-01",
                       end_date="2024-03-11"),
        uow,
    )
    feed = GetNotificationsUseCase().execute(uow, now=datetime(2024, 3, 11, 9, 0))
    assert [n.severity for n in feed] == ["critical", "warning"]
    assert feed[0].id == f"proj-delayed-{project.id}"
    assert feed[0].timestamp == "2024-03-11T09:00:00"


def test_dashboard(uow):
    _create_project(uow, status=ProjectStatus.DELAYED, spent=100.0)
    _create_project(uow, code="B", name="Beta")
    dashboard = GetDashboardUseCase().execute(uow, today=date(2024, 3, 11))
    assert dashboard.project_count == 2
    assert dashboard.delayed_count == 1
    assert dashboard.status_distribution == {"planning": 1, "delayed": 1}
    assert len(dashboard.progress_trend) == 6
    assert dashboard.cash_flow[0].remaining == 900.0


# ---------------------------------------------------------------------------
# Assistant
# ---------------------------------------------------------------------------

def test_risk_analysis_uses_completion(uow, fake_client):
    project = _create_project(uow)
    result = AnalyzeProjectRiskUseCase().execute(project.id, uow, fake_client)
    assert result.generated is True
    assert result.text == "Generated answer."
    assert "Green City" in fake_client.prompts[0]


def test_completion_failure_falls_back(uow, failing_client):
    result = AnalyzeStockUseCase().execute(uow, failing_client)
    assert result.generated is False
    assert result.text == "Could not analyse the fire-safety stock right now."


def test_unconfigured_client_is_not_called(uow):
    result = SuggestTasksUseCase().execute("A 20-storey tower", NullCompletionClient())
    assert result.text == NOT_CONFIGURED_TEXT
    assert result.generated is False


def test_chat_context_is_portfolio_without_project(uow, fake_client):
    _create_project(uow)
    ChatUseCase().execute(ChatCommand(message="How are we doing?"), uow, fake_client)
    assert "Projects in the system: 1. They are: Green City." in fake_client.prompts[0]


def test_chat_rejects_empty_message(uow, fake_client):
    with pytest.raises(ValueError):
        ChatUseCase().execute(ChatCommand(message="  "), uow, fake_client)


# ---------------------------------------------------------------------------
# Infrastructure and configuration
# ---------------------------------------------------------------------------

def test_seed_only_fills_an_empty_store(uow):
    assert seed_demo_data(uow) is True
    assert len(uow.projects.list_all()) == 3
    assert uow.materials.get("pccc-2").status.value == "Expired"
    assert uow.projects.get("p-1").progress == 37
    assert seed_demo_data(uow) is False


def test_seed_leaves_populated_store_alone(uow):
    _create_project(uow)
    assert seed_demo_data(uow) is False
    assert len(uow.projects.list_all()) == 1


def test_separate_databases_are_isolated(db):
    other = InMemoryUnitOfWork(type(db)())
    _create_project(InMemoryUnitOfWork(db))
    assert other.projects.list_all() == []


def _gemini(handler):
    return GeminiCompletionClient(
        api_key="secret", model="test-model", base_url="https://example.test/v1beta/",
        transport=httpx.MockTransport(handler),
    )


def test_gemini_client_posts_prompt_and_reads_text():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["body"] = request.read()
        return httpx.Response(
            200, json={"candidates": [{"content": {"parts": [{"text": "Looks fine."}]}}]}
        )

    assert _gemini(handler).complete("Check this") == "Looks fine."
    assert seen["url"] == "https://example.test/v1beta/models/test-model:generateContent?key=secret"
    assert b"Check this" in seen["body"]


def test_gemini_client_wraps_http_errors():
    client = _gemini(lambda request: httpx.Response(500, json={"error": "boom"}))
    with pytest.raises(CompletionError):
        client.complete("x")


def test_gemini_client_rejects_reply_without_candidates():
    client = _gemini(lambda request: httpx.Response(200, json={"candidates": []}))
    with pytest.raises(CompletionError):
        client.complete("x")


def test_settings_reject_invalid_port():
    with pytest.raises(ValidationError):
        Settings(PORT=70000)


def test_settings_normalise_log_level():
    assert Settings(LOG_LEVEL="debug").LOG_LEVEL == "DEBUG"
