# tests/conftest.py
from datetime import date, datetime

import pytest
from fastapi.testclient import TestClient

from api import app, get_completion_client, get_uow
from application import AbstractCompletionClient, CompletionError
from infrastructure import InMemoryDatabase, InMemoryUnitOfWork, NullCompletionClient
from model import PCCCCategory, PCCCMaterial, Project, ProjectStatus, Task


class FakeCompletionClient(AbstractCompletionClient):
    """Records prompts and replies with canned text, or fails on demand."""

    def __init__(self, reply="Generated answer.", fail=False):
        self.reply = reply
        self.fail = fail
        self.prompts = []

    def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.fail:
            raise CompletionError("upstream unavailable")
        return self.reply


@pytest.fixture
def today():
    return date(2024, 3, 11)


@pytest.fixture
def now():
    return datetime(2024, 3, 11, 9, 0)


@pytest.fixture
def db():
    return InMemoryDatabase()


@pytest.fixture
def uow(db):
    return InMemoryUnitOfWork(db)


@pytest.fixture
def fake_client():
    return FakeCompletionClient()


@pytest.fixture
def failing_client():
    return FakeCompletionClient(fail=True)


@pytest.fixture
def project():
    return Project(
        id="p-1",
        code="KDT-001",
        name="Green City",
        manager="Nguyen Van A",
        start_date="2024-01-01",
        end_date="2024-12-31",
        budget=1000.0,
        spent=200.0,
        status=ProjectStatus.IN_PROGRESS,
        tasks=[
            Task(id="t-1", name="Foundations", start_date="2024-03-10", end_date="2024-03-12", progress=50),
            Task(id="t-2", name="Walls", start_date="2024-03-11", end_date="2024-03-20", progress=0),
        ],
    )


@pytest.fixture
def material():
    return PCCCMaterial(
        id="m-1",
        name="Pendent sprinkler head",
        category=PCCCCategory.SPRINKLER,
        spec="K=5.6",
        total_quantity=1000,
        available_quantity=800,
        min_stock_level=200,
        unit="pcs",
    )


@pytest.fixture
def client(db):
    app.dependency_overrides[get_uow] = lambda: InMemoryUnitOfWork(db)
    app.dependency_overrides[get_completion_client] = lambda: NullCompletionClient()
    yield TestClient(app)
    app.dependency_overrides.clear()
