"""Admin API router: session login and the persisted token lists."""
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from agentgate import database as db
from agentgate.auth import SESSION_COOKIE, require_admin, verify_password
from agentgate.config import settings
from agentgate.models import AdminLoginRequest, TokenListsResponse, TokenListUpdate
from agentgate.tokens import ACTIVE_TOKENS_OPTION, DISABLED_TOKENS_OPTION

router = APIRouter(prefix="/admin")

# Admin session lifetime: 24 hours.
ADMIN_SESSION_TTL = 86400

_OPTIONS = {
    "active": ACTIVE_TOKENS_OPTION,
    "disabled": DISABLED_TOKENS_OPTION,
}

# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------

@router.post("/login")
async def login(body: AdminLoginRequest, request: Request, response: Response) -> dict:
    if not settings.admin_username or not settings.admin_password:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Admin API disabled")

    if body.username != settings.admin_username or not await verify_password(body.password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    forwarded_proto = (request.headers.get("x-forwarded-proto") or "").split(",")[0].strip()
    is_https = request.url.scheme == "https" or forwarded_proto == "https"
    session_id = await db.create_admin_session(ttl_seconds=ADMIN_SESSION_TTL)
    response.set_cookie(
        SESSION_COOKIE,
        session_id,
        httponly=True,
        samesite="strict",
        secure=is_https,
        max_age=ADMIN_SESSION_TTL,
    )
    return {"ok": True}


@router.post("/logout")
async def logout(response: Response, session_id: str = Depends(require_admin)) -> dict:
    await db.delete_admin_session(session_id)
    response.delete_cookie(SESSION_COOKIE)
    return {"ok": True}


# ---------------------------------------------------------------------------
# Token lists
# ---------------------------------------------------------------------------

async def _stored_list(option_name: str) -> list[str]:
    return await db.get_option_list(option_name) or []


@router.get("/tokens", response_model=TokenListsResponse)
async def get_token_lists(_: str = Depends(require_admin)) -> dict:
    """Stored lists only; tokens from the environment are not shown."""
    return {
        "active": await _stored_list(ACTIVE_TOKENS_OPTION),
        "disabled": await _stored_list(DISABLED_TOKENS_OPTION),
    }


@router.put("/tokens/{kind}")
async def replace_token_list(
    kind: Literal["active", "disabled"],
    body: TokenListUpdate,
    _: str = Depends(require_admin),
) -> dict:
    await db.set_option(_OPTIONS[kind], body.tokens)
    return {"ok": True, kind: body.tokens}


@router.delete("/tokens/{kind}")
async def clear_token_list(
    kind: Literal["active", "disabled"],
    _: str = Depends(require_admin),
) -> dict:
    """Drop the stored list; tokens from the environment still apply."""
    removed = await db.delete_option(_OPTIONS[kind])
    return {"ok": True, "cleared": removed}
