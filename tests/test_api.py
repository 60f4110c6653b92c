# tests/test_api.py
from application import NOT_CONFIGURED_TEXT

PROJECT = {
    "code": "KDT-001",
    "name": "Green City",
    "location": "District 9",
    "manager": "Nguyen Van A",
    "start_date": "2024-01-01",
    "end_date": "2024-12-31",
    "budget": 1000,
}

MATERIAL = {
    "name": "Pendent sprinkler head",
    "category": "sprinkler",
    "spec": "K=5.6",
    "unit": "pcs",
    "total_quantity": 1000,
    "available_quantity": 800,
    "min_stock_level": 200,
}


def _create_project(client, **overrides):
    response = client.post("/api/v1/projects", json={**PROJECT, **overrides})
    assert response.status_code == 201
    return response.json()["data"]


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------

def test_project_lifecycle(client):
    project = _create_project(client)
    assert project["status"] == "planning"
    assert project["progress"] == 0

    listed = client.get("/api/v1/projects").json()["data"]
    assert [p["id"] for p in listed] == [project["id"]]

    patched = client.patch(f"/api/v1/projects/{project['id']}", json={"status": "delayed"})
    assert patched.json()["data"]["status"] == "delayed"
    assert client.get("/api/v1/projects", params={"status": "delayed"}).json()["data"]

    assert client.delete(f"/api/v1/projects/{project['id']}").status_code == 204
    assert client.get(f"/api/v1/projects/{project['id']}").status_code == 404


def test_task_routes_recompute_progress(client):
    project = _create_project(client)
    base = f"/api/v1/projects/{project['id']}/tasks"
    for progress in (100, 85, 0, 0, 0):
        response = client.post(base, json={
            "name": f"Task {progress}", "start_date": "2024-03-01",
            "end_date": "2024-03-31", "progress": progress,
        })
        assert response.status_code == 201
    fetched = client.get(f"/api/v1/projects/{project['id']}").json()["data"]
    assert fetched["progress"] == 37

    task_id = fetched["tasks"][1]["id"]
    client.patch(f"{base}/{task_id}", json={"progress": 100})
    assert client.get(f"/api/v1/projects/{project['id']}").json()["data"]["progress"] == 40

    removed = client.delete(f"{base}/{task_id}").json()["data"]
    assert removed["progress"] == 25

    rows = client.get(f"{base}/export").json()["data"]
    assert len(rows) == 4


def test_project_export_rows(client):
    _create_project(client)
    rows = client.get("/api/v1/projects/export").json()["data"]
    assert rows[0]["code"] == "KDT-001"


def test_unknown_enum_value_is_rejected(client):
    response = client.post("/api/v1/projects", json={**PROJECT, "status": "paused"})
    assert response.status_code == 422


def test_inverted_dates_are_rejected(client):
    response = client.post(
        "/api/v1/projects", json={**PROJECT, "start_date": "2024-06-01", "end_date": "2024-01-01"}
    )
    assert response.status_code == 422
    assert "end_date" in response.json()["detail"]


def test_rejected_patch_keeps_project(client):
    project = _create_project(client)
    response = client.patch(
        f"/api/v1/projects/{project['id']}", json={"end_date": "2023-01-01", "name": "Renamed"}
    )
    assert response.status_code == 422
    stored = client.get(f"/api/v1/projects/{project['id']}").json()["data"]
    assert (stored["name"], stored["end_date"]) == ("Green City", "2024-12-31")


def test_project_documents(client):
    project = _create_project(client)
    base = f"/api/v1/projects/{project['id']}/documents"
    created = client.post(base, json={"name": "Fire permit", "type": "legal"})
    assert created.status_code == 201
    doc = created.json()["data"]
    assert (doc["status"], doc["uploaded_by"]) == ("draft", "Admin")

    patched = client.patch(f"{base}/{doc['id']}", json={"status": "approved"})
    assert patched.json()["data"]["status"] == "approved"

    row = client.get("/api/v1/projects/export").json()["data"][0]
    assert row["approved_documents"] == 1
    fetched = client.get(f"/api/v1/projects/{project['id']}").json()["data"]
    assert [d["name"] for d in fetched["documents"]] == ["Fire permit"]


def test_document_enum_values_are_checked(client):
    project = _create_project(client)
    base = f"/api/v1/projects/{project['id']}/documents"
    assert client.post(base, json={"name": "x", "type": "memo"}).status_code == 422
    assert client.post(base, json={"name": "x", "status": "signed"}).status_code == 422
    assert client.patch(f"{base}/missing", json={"status": "approved"}).status_code == 404


def test_missing_project_is_404(client):
    response = client.post("/api/v1/projects/missing/tasks", json={"name": "x"})
    assert response.status_code == 404
    assert "missing" in response.json()["detail"]


# ---------------------------------------------------------------------------
# Inventory
# ---------------------------------------------------------------------------

def test_material_adjust_clamps(client):
    material = client.post("/api/v1/materials", json=MATERIAL).json()["data"]
    assert material["status"] == "Good"

    url = f"/api/v1/materials/{material['id']}/adjust"
    result = client.post(url, json={"delta": -650}).json()["data"]
    assert result["changed"] is True
    assert result["material"]["available_quantity"] == 150
    assert result["material"]["status"] == "Low Stock"

    result = client.post(url, json={"delta": -10_000}).json()["data"]
    assert result["material"]["available_quantity"] == 0

    result = client.post(url, json={"delta": -1}).json()["data"]
    assert result["changed"] is False


def test_material_with_available_above_total_is_rejected(client):
    response = client.post("/api/v1/materials", json={**MATERIAL, "available_quantity": 1001})
    assert response.status_code == 422


def test_material_list_filters_and_stats(client):
    client.post("/api/v1/materials", json=MATERIAL)
    client.post("/api/v1/materials", json={
        **MATERIAL, "name": "Alarm panel", "category": "alarm", "total_quantity": 5,
        "available_quantity": 1, "min_stock_level": 0, "inspection_expiry": "2023-12-01",
    })
    alarms = client.get("/api/v1/materials", params={"category": "alarm"}).json()["data"]
    assert [m["name"] for m in alarms] == ["Alarm panel"]
    assert alarms[0]["status"] == "Expired"

    stats = client.get("/api/v1/materials/stats", params={"as_of": "2024-03-11"}).json()["data"]
    assert stats == {"material_count": 2, "low_stock_count": 0, "expired_count": 1, "total_items": 1005}


def test_import_preview_then_confirm(client):
    body = {
        "csv_text": (
            "name,category,spec,unit,total,available,min,expiry\n"
            "Gate valve,valve,DN100,pcs,20,20,5,\n"
            "Foam,foam,AFFF,l,10,10,1,\n"
        )
    }
    preview = client.post("/api/v1/materials/import/preview", json=body).json()["data"]
    assert [m["name"] for m in preview["records"]] == ["Gate valve"]
    assert preview["errors"][0]["row"] == 2
    assert client.get("/api/v1/materials").json()["data"] == []

    confirmed = client.post("/api/v1/materials/import", json=body)
    assert confirmed.status_code == 201
    assert [m["name"] for m in client.get("/api/v1/materials").json()["data"]] == ["Gate valve"]


def test_import_with_no_valid_rows_is_422(client):
    response = client.post("/api/v1/materials/import", json={"rows": [["only", "two"]]})
    assert response.status_code == 422


# ---------------------------------------------------------------------------
# Acceptance
# ---------------------------------------------------------------------------

def test_acceptance_workflow(client):
    project = _create_project(client)
    created = client.post("/api/v1/acceptance-tasks", json={
        "project_id": project["id"], "title": "Alarm interlock test", "category": "fire_alarm",
    })
    assert created.status_code == 201
    task = created.json()["data"]
    assert task["status"] == "Pending"
    assert task["project_name"] == "Green City"

    approved = client.put(f"/api/v1/acceptance-tasks/{task['id']}/status", json={"status": "Approved"})
    assert approved.json()["data"]["status"] == "Approved"

    readiness = client.get("/api/v1/acceptance-tasks/readiness").json()["data"]
    assert readiness["missing_evidence"] == ["Alarm interlock test"]

    client.post(f"/api/v1/acceptance-tasks/{task['id']}/evidence",
                json={"name": "interlock.pdf", "type": "pdf"})
    readiness = client.get("/api/v1/acceptance-tasks/readiness").json()["data"]
    assert readiness["missing_evidence"] == []

    grouped = client.get("/api/v1/acceptance-tasks/grouped").json()["data"]
    assert [g["category"] for g in grouped] == ["fire_alarm"]


def test_acceptance_bad_status_is_422(client):
    response = client.put("/api/v1/acceptance-tasks/x/status", json={"status": "Done"})
    assert response.status_code == 422


# ---------------------------------------------------------------------------
# Calendar, notifications, dashboard, assistant
# ---------------------------------------------------------------------------

def test_calendar_month_and_notes(client):
    project = _create_project(client)
    client.post(f"/api/v1/projects/{project['id']}/tasks", json={
        "name": "Span", "start_date": "2024-03-10", "end_date": "2024-03-12",
    })
    note = client.post("/api/v1/calendar/notes", json={
        "date": "2024-03-11", "content": "Fire authority visit", "reminder_time": "08:30",
    }).json()["data"]
    assert note["reminder_time"] == "2024-03-11T08:30:00"

    month = client.get("/api/v1/calendar/months/2024/3", params={"as_of": "2024-03-11"}).json()["data"]
    active = [d["date"] for d in month["days"] if d["tasks"]]
    assert active == ["2024-03-10", "2024-03-11", "2024-03-12"]

    day = client.get("/api/v1/calendar/days/2024-03-11").json()["data"]
    assert [n["content"] for n in day["notes"]] == ["Fire authority visit"]

    done = client.patch(f"/api/v1/calendar/notes/{note['id']}", json={"is_completed": True})
    assert done.json()["data"]["is_completed"] is True
    assert client.delete(f"/api/v1/calendar/notes/{note['id']}").status_code == 204


def test_bad_reminder_format_is_422(client):
    response = client.post("/api/v1/calendar/notes", json={
        "date": "2024-03-11", "content": "x", "reminder_time": "8.30am",
    })
    assert response.status_code == 422


def test_notifications_feed(client):
    project = _create_project(client, status="delayed")
    client.post(f"/api/v1/projects/{project['id']}/tasks", json={
        "name": "Slab", "start_date": "2024-03-01", "end_date": "2024-03-11",
    })
    feed = client.get("/api/v1/notifications", params={"as_of": "2024-03-11T09:00:00"}).json()["data"]
    assert [n["severity"] for n in feed] == ["critical", "warning"]
    assert "today" in feed[1]["message"]


def test_dashboard(client):
    _create_project(client, status="in_progress")
    data = client.get("/api/v1/dashboard", params={"as_of": "2024-03-11"}).json()["data"]
    assert data["project_count"] == 1
    assert data["status_distribution"] == {"in_progress": 1}
    assert [p["month"] for p in data["progress_trend"]][-1] == "2024-03"


def test_assistant_without_api_key(client):
    response = client.post("/api/v1/assistant/chat", json={"message": "Hello"})
    assert response.status_code == 200
    assert response.json()["data"] == {"text": NOT_CONFIGURED_TEXT, "generated": False}
