"""Request authentication.

Bearer tokens guard the API: the token must be in the active set and not in
the disabled set. The admin API uses a bcrypt password and a session cookie.
"""
import asyncio
import logging
from dataclasses import dataclass

import bcrypt
from fastapi import HTTPException, Request, status

from agentgate import database as db
from agentgate.config import settings
from agentgate.errors import (
    InvalidTokenError,
    MissingTokenError,
    TokenDisabledError,
    TokenForbiddenError,
)
from agentgate.rate_limiter import identity_key
from agentgate.tokens import TokenSource, parse_bearer_token, resolve_authorization_header, token_source

logger = logging.getLogger(__name__)

# Attribute on request.state holding the AuthenticatedContext
CONTEXT_ATTR = "agentgate_auth"


@dataclass(frozen=True)
class AuthenticatedContext:
    token: str
    identity: str


def set_authenticated_context(request: Request, token: str) -> AuthenticatedContext:
    ctx = AuthenticatedContext(token=token, identity=identity_key(token))
    setattr(request.state, CONTEXT_ATTR, ctx)
    return ctx


def consume_authenticated_context(request: Request) -> AuthenticatedContext | None:
    """Read and clear the context; a second call for the same request returns None."""
    ctx = getattr(request.state, CONTEXT_ATTR, None)
    if ctx is not None:
        delattr(request.state, CONTEXT_ATTR)
    return ctx


async def authenticate(request: Request, source: TokenSource = token_source) -> str:
    """Return the request's bearer token, or raise the matching AuthError."""
    header = resolve_authorization_header(request)
    if header is None:
        logger.info("Denied %s: missing_token", request.url.path)
        raise MissingTokenError()

    token = parse_bearer_token(header)
    if token is None:
        logger.info("Denied %s: invalid_token", request.url.path)
        raise InvalidTokenError()

    # Disabled wins over active when a token is in both sets
    if token in await source.disabled_tokens(request):
        logger.info("Denied %s: token_disabled", request.url.path)
        raise TokenDisabledError()

    active = await source.active_tokens(request)
    if not active or token not in active:
        logger.info("Denied %s: token_forbidden", request.url.path)
        raise TokenForbiddenError()

    set_authenticated_context(request, token)
    return token


async def require_token(request: Request) -> str:
    """FastAPI dependency: raises an AuthError unless the bearer token is active."""
    return await authenticate(request)


# ---------------------------------------------------------------------------
# Admin sessions
# ---------------------------------------------------------------------------

# Hash the configured password once at import time so comparisons are fast.
_hashed: bytes | None = (
    bcrypt.hashpw(settings.admin_password.encode(), bcrypt.gensalt())
    if settings.admin_password
    else None
)

SESSION_COOKIE = "agentgate_admin_session"


async def verify_password(plain: str) -> bool:
    if _hashed is None:
        return False
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, bcrypt.checkpw, plain.encode(), _hashed)


async def require_admin(request: Request) -> str:
    """FastAPI dependency: raises 401 if no valid session cookie."""
    session_id = request.cookies.get(SESSION_COOKIE)
    if not session_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    row = await db.get_admin_session(session_id)
    if not row:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Session expired")
    return session_id
