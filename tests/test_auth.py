"""Tests for bearer authentication and admin session access control."""
import time

import pytest

from agentgate import database as db
from agentgate.auth import (
    AuthenticatedContext,
    SESSION_COOKIE,
    authenticate,
    consume_authenticated_context,
    verify_password,
)
from agentgate.errors import (
    InvalidTokenError,
    MissingTokenError,
    TokenDisabledError,
    TokenForbiddenError,
)
from agentgate.rate_limiter import identity_key
from agentgate.tokens import TokenSource


def _source(active: str = "tok-A", disabled: str = "") -> TokenSource:
    env = {"AI_AGENTGATE_ACTIVE_TOKENS": active, "AI_AGENTGATE_DISABLED_TOKENS": disabled}

    async def no_options(name):
        return None

    return TokenSource(getenv=env.get, get_option_list=no_options)


# ---------------------------------------------------------------------------
# authenticate() state machine
# ---------------------------------------------------------------------------

async def test_missing_header_is_missing_token(make_request):
    request = make_request()
    with pytest.raises(MissingTokenError) as exc_info:
        await authenticate(request, _source())
    assert exc_info.value.status_code == 401
    assert exc_info.value.code == "missing_token"


@pytest.mark.parametrize("header", ["Bearer", "Bearer   ", "Basic dXNlcjpwYXNz", "tok-A"])
async def test_unparseable_header_is_invalid_token(make_request, header):
    request = make_request(headers={"Authorization": header})
    with pytest.raises(InvalidTokenError) as exc_info:
        await authenticate(request, _source())
    assert exc_info.value.status_code == 401
    assert exc_info.value.code == "invalid_token"


async def test_disabled_check_precedes_active_check(make_request):
    """A token in both sets is rejected as disabled."""
    request = make_request(headers={"Authorization": "Bearer tok-A"})
    with pytest.raises(TokenDisabledError) as exc_info:
        await authenticate(request, _source(active="tok-A", disabled="tok-A"))
    assert exc_info.value.status_code == 403


async def test_unknown_token_is_forbidden(make_request):
    request = make_request(headers={"Authorization": "Bearer tok-Z"})
    with pytest.raises(TokenForbiddenError) as exc_info:
        await authenticate(request, _source(active="tok-A"))
    assert exc_info.value.status_code == 403
    assert exc_info.value.code == "token_forbidden"


async def test_empty_active_set_forbids_everything(make_request):
    request = make_request(headers={"Authorization": "Bearer tok-A"})
    with pytest.raises(TokenForbiddenError):
        await authenticate(request, _source(active=""))


async def test_allow_records_context(make_request):
    request = make_request(headers={"Authorization": "bearer  tok-A "})
    token = await authenticate(request, _source())
    assert token == "tok-A"
    ctx = consume_authenticated_context(request)
    assert ctx == AuthenticatedContext(token="tok-A", identity=identity_key("tok-A"))


async def test_deny_records_no_context(make_request):
    request = make_request(headers={"Authorization": "Bearer tok-Z"})
    with pytest.raises(TokenForbiddenError):
        await authenticate(request, _source())
    assert consume_authenticated_context(request) is None


async def test_context_is_consumed_once(make_request):
    request = make_request(headers={"Authorization": "Bearer tok-A"})
    await authenticate(request, _source())
    assert consume_authenticated_context(request) is not None
    assert consume_authenticated_context(request) is None


async def test_context_does_not_leak_between_requests(make_request):
    first = make_request(headers={"Authorization": "Bearer tok-A"})
    second = make_request()
    await authenticate(first, _source())
    assert consume_authenticated_context(second) is None


async def test_fallback_header_authenticates(make_request):
    request = make_request(headers={"X-Forwarded-Authorization": "Bearer tok-A"})
    assert await authenticate(request, _source()) == "tok-A"


async def test_proxy_basic_auth_does_not_mask_forwarded_bearer(make_request):
    request = make_request(headers={
        "Authorization": "Basic cHJveHk6cHc=",
        "X-Forwarded-Authorization": "Bearer tok-A",
    })
    assert await authenticate(request, _source()) == "tok-A"
    assert consume_authenticated_context(request).token == "tok-A"


async def test_malformed_in_every_header_is_invalid_token(make_request):
    request = make_request(headers={
        "Authorization": "Basic cHJveHk6cHc=",
        "X-Forwarded-Authorization": "Bearer",
    })
    with pytest.raises(InvalidTokenError):
        await authenticate(request, _source())


async def test_environ_header_authenticates(make_request):
    request = make_request(environ={"HTTP_AUTHORIZATION": "Bearer tok-A"})
    assert await authenticate(request, _source()) == "tok-A"


# ---------------------------------------------------------------------------
# Password verification (real bcrypt, no mocks)
# ---------------------------------------------------------------------------

async def test_verify_correct_password():
    assert await verify_password("testpassword123") is True


async def test_verify_wrong_password():
    assert await verify_password("wrongpassword") is False


async def test_verify_empty_password():
    assert await verify_password("") is False


# ---------------------------------------------------------------------------
# Session-based access control (real DB, real routing)
# ---------------------------------------------------------------------------

async def test_require_admin_no_cookie_returns_401(client):
    resp = await client.get("/admin/tokens")
    assert resp.status_code == 401
    assert "Not authenticated" in resp.json()["detail"]


async def test_require_admin_invalid_cookie_returns_401(client):
    resp = await client.get("/admin/tokens", cookies={SESSION_COOKIE: "nonexistent-session-id"})
    assert resp.status_code == 401
    assert "Session expired" in resp.json()["detail"]


async def test_require_admin_valid_session_grants_access(client, admin_session):
    resp = await client.get("/admin/tokens", cookies=admin_session)
    assert resp.status_code == 200


async def test_require_admin_expired_session_returns_401(client, test_db):
    conn = await db.get_db()
    now = int(time.time())
    await conn.execute(
        "INSERT INTO admin_sessions (id, created_at, expires_at) VALUES (?, ?, ?)",
        ("expired-sess", now - 100, now - 1),
    )
    await conn.commit()

    resp = await client.get("/admin/tokens", cookies={SESSION_COOKIE: "expired-sess"})
    assert resp.status_code == 401
