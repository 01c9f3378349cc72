"""Shared fixtures for the AgentGate test suite.

Environment variables MUST be set before any agentgate imports because:
- agentgate.config.Settings() evaluates at import time
- agentgate.auth._hashed is computed at import time
"""
import os

# Set env vars before any agentgate module is imported
os.environ.setdefault("AI_AGENTGATE_ADMIN_USERNAME", "testadmin")
os.environ.setdefault("AI_AGENTGATE_ADMIN_PASSWORD", "testpassword123")
os.environ.setdefault("AI_AGENTGATE_BUILD", "test-build")
os.environ.setdefault("AI_AGENTGATE_BUCKET_STORE", "sqlite")

import pytest
import pytest_asyncio
from starlette.requests import Request

from agentgate import database as db
from agentgate.config import settings
from agentgate.tokens import ACTIVE_TOKENS_ENV, DISABLED_TOKENS_ENV


@pytest_asyncio.fixture
async def test_db(tmp_path):
    """Create a temp DB file, run Alembic migrations, open the async connection, yield, clean up.

    This uses a real on-disk SQLite file (not :memory:) to match production
    behavior with WAL mode. Rate buckets live in this file too, so every test
    starts with empty buckets.
    """
    db_file = tmp_path / "test.db"
    original_path = settings.db_path

    settings.db_path = str(db_file)

    # Run real Alembic migrations; verifies migrations work on every test
    db.run_migrations()

    conn = await db.get_db()
    yield conn

    await db.close_db()
    settings.db_path = original_path


@pytest.fixture(autouse=True)
def _isolate_token_env(monkeypatch):
    """Keep tokens from the developer's shell out of the tests."""
    monkeypatch.delenv(ACTIVE_TOKENS_ENV, raising=False)
    monkeypatch.delenv(DISABLED_TOKENS_ENV, raising=False)


@pytest.fixture
def active_tokens(monkeypatch):
    """Set the environment token lists; returns a setter for custom values."""
    def _set(active: str = "tok-A", disabled: str = "") -> None:
        monkeypatch.setenv(ACTIVE_TOKENS_ENV, active)
        monkeypatch.setenv(DISABLED_TOKENS_ENV, disabled)

    _set()
    return _set


@pytest.fixture
def make_request():
    """Build a bare Starlette Request from raw headers (and an optional CGI environ)."""
    def _make(headers: dict[str, str] | None = None, environ: dict | None = None) -> Request:
        scope = {
            "type": "http",
            "method": "GET",
            "scheme": "http",
            "server": ("testserver", 80),
            "path": "/ai/v1/schema",
            "raw_path": b"/ai/v1/schema",
            "root_path": "",
            "query_string": b"",
            "headers": [
                (name.lower().encode(), value.encode())
                for name, value in (headers or {}).items()
            ],
        }
        if environ is not None:
            scope["environ"] = environ
        return Request(scope)

    return _make


@pytest_asyncio.fixture
async def client(test_db):
    """httpx.AsyncClient using ASGITransport, bypassing the lifespan.

    test_db handles DB init, so the startup migrations and the cleanup loop
    are not needed here.
    """
    import httpx
    from main import app

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c


@pytest_asyncio.fixture
async def admin_session(test_db):
    """Create an admin session in the real DB and return a cookie dict."""
    from agentgate.auth import SESSION_COOKIE

    session_id = await db.create_admin_session(ttl_seconds=86400)
    return {SESSION_COOKIE: session_id}
