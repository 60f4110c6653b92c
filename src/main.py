"""
main.py

Entry point for the Construction Site Operations Dashboard API.

Configures logging, wires the in-memory infrastructure into the FastAPI app,
and starts uvicorn.

Usage
-----
    # Option 1: run directly (host/port from settings / .env)
    python main.py

    # Option 2: run via the uvicorn CLI
    uvicorn main:app --reload --port 8000

Once running, open your browser at:
    http://localhost:8000/docs      ← Swagger UI  (try every endpoint interactively)
    http://localhost:8000/redoc     ← ReDoc
    http://localhost:8000/health    ← liveness check
    http://localhost:8000/mcp       ← MCP endpoint exposing the API as tools

Quick-start walkthrough (use Swagger UI or curl)
-------------------------------------------------
The demo portfolio is loaded at startup unless SEED_DEMO_DATA=false.

1.  GET   /api/v1/dashboard                      — totals, cash flow, 6-month trend
2.  GET   /api/v1/notifications                  — delayed projects, overdue tasks
3.  POST  /api/v1/projects/{id}/tasks            — add a task; watch project progress move
4.  GET   /api/v1/calendar/months/2023/11        — tasks and notes per day
5.  POST  /api/v1/materials/{id}/adjust          — {"delta": -650}; stock clamps at 0
6.  POST  /api/v1/materials/import/preview       — paste CSV text, review parsed rows
7.  PUT   /api/v1/acceptance-tasks/{id}/status   — sign off a QA/QC item
8.  POST  /api/v1/assistant/chat                 — needs GEMINI_API_KEY

Configuration
-------------
See config.py.  Every setting can come from the environment or a .env file
at the repository root.
"""

import uvicorn

from api import app, get_uow
from config import get_settings, setup_logging
from infrastructure import InMemoryUnitOfWork

settings = get_settings()
setup_logging(settings)


# ---------------------------------------------------------------------------
# Wire the concrete Unit of Work into the FastAPI dependency system.
# To swap databases, replace InMemoryUnitOfWork with your SQL implementation.
# ---------------------------------------------------------------------------

app.dependency_overrides[get_uow] = lambda: InMemoryUnitOfWork()


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )
