# tests/test_notifications.py
from datetime import datetime

from model import CalendarNote, NotificationSeverity, Project, ProjectStatus, Task
from service import NotificationService

svc = NotificationService()
NOW = datetime(2024, 3, 11, 9, 0)


def _project(pid, status=ProjectStatus.IN_PROGRESS, tasks=()):
    return Project(id=pid, name=f"Project {pid}", status=status, tasks=list(tasks))


def test_task_due_today_is_a_warning():
    project = _project("p-1", tasks=[Task(id="t-1", name="Slab", end_date="2024-03-11")])
    (n,) = svc.generate_notifications([project], [], NOW)
    assert n.id == "task-soon-t-1"
    assert n.severity == NotificationSeverity.WARNING
    assert "today" in n.message


def test_due_soon_window_is_three_days():
    project = _project("p-1", tasks=[
        Task(id="t-3", name="In three", end_date="2024-03-14"),
        Task(id="t-4", name="In four", end_date="2024-03-15"),
    ])
    notifications = svc.generate_notifications([project], [], NOW)
    assert [n.id for n in notifications] == ["task-soon-t-3"]
    assert notifications[0].message.endswith("is due in 3 days.")


def test_overdue_task_is_critical_with_day_count():
    project = _project("p-1", tasks=[Task(id="t-1", name="Walls", end_date="2024-03-09")])
    (n,) = svc.generate_notifications([project], [], NOW)
    assert n.id == "task-overdue-t-1"
    assert n.severity == NotificationSeverity.CRITICAL
    assert n.message == 'Task "Walls" (project: Project p-1) is 2 days overdue.'


def test_completed_and_undated_tasks_are_ignored():
    project = _project("p-1", tasks=[
        Task(id="t-1", end_date="2024-03-01", status=ProjectStatus.COMPLETED),
        Task(id="t-2", end_date=""),
        Task(id="t-3", end_date="31/12/2024"),
    ])
    assert svc.generate_notifications([project], [], NOW) == []


def test_critical_first_regardless_of_input_order():
    notes = [CalendarNote(id="n-1", date="2024-03-11", content="Meeting",
                          reminder_time="2024-03-11T08:00:00")]
    p2 = _project("p-2", tasks=[
        Task(id="t-soon", end_date="2024-03-12"),
        Task(id="t-late", end_date="2024-03-01"),
    ])
    p1 = _project("p-1", status=ProjectStatus.DELAYED)

    for projects in ([p2, p1], [p1, p2]):
        notifications = svc.generate_notifications(projects, notes, NOW)
        severities = [n.severity for n in notifications]
        critical_ids = {n.id for n in notifications if n.severity == NotificationSeverity.CRITICAL}
        assert critical_ids == {"proj-delayed-p-1", "task-overdue-t-late"}
        assert severities[:2] == [NotificationSeverity.CRITICAL] * 2
        assert NotificationSeverity.CRITICAL not in severities[2:]


def test_generation_is_idempotent():
    projects = [
        _project("p-1", status=ProjectStatus.DELAYED, tasks=[Task(id="t-1", end_date="2024-03-12")]),
        _project("p-2", tasks=[Task(id="t-2", end_date="2024-03-01")]),
    ]
    notes = [CalendarNote(id="n-1", date="2024-03-10", content="Order pipes",
                          reminder_time="2024-03-10T16:00:00")]
    first = svc.generate_notifications(projects, notes, NOW)
    second = svc.generate_notifications(projects, notes, NOW)
    assert first == second
    assert [n.id for n in first] == [n.id for n in second]


def test_note_reminder_today_and_overdue_are_surfaced():
    notes = [
        CalendarNote(id="today-later", content="Later today", reminder_time="2024-03-11T17:00:00"),
        CalendarNote(id="yesterday", content="Missed", reminder_time="2024-03-10T10:00:00"),
        CalendarNote(id="tomorrow", content="Future", reminder_time="2024-03-12T10:00:00"),
        CalendarNote(id="done", content="Done", reminder_time="2024-03-11T08:00:00", is_completed=True),
        CalendarNote(id="none", content="No reminder"),
    ]
    notifications = svc.generate_notifications([], notes, NOW)
    assert [n.id for n in notifications] == ["note-reminder-today-later", "note-reminder-yesterday"]
    assert all(n.severity == NotificationSeverity.INFO for n in notifications)
    assert notifications[0].message == 'Reminder: "Later today" at 17:00.'


def test_delayed_project_message():
    (n,) = svc.generate_notifications([_project("p-9", status=ProjectStatus.DELAYED)], [], NOW)
    assert n.id == "proj-delayed-p-9"
    assert n.message == 'Project "Project p-9" is behind schedule.'
    assert n.project_id == "p-9"
