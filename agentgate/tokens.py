"""Bearer token extraction and the active/disabled token registry."""
import logging
import os
import re
from typing import Any, Awaitable, Callable, Iterable

import aiosqlite
from fastapi import Request

from agentgate import database as db
from agentgate.errors import StoreUnavailableError

logger = logging.getLogger(__name__)

ACTIVE_TOKENS_ENV = "AI_AGENTGATE_ACTIVE_TOKENS"
DISABLED_TOKENS_ENV = "AI_AGENTGATE_DISABLED_TOKENS"
ACTIVE_TOKENS_OPTION = "agentgate_active_tokens"
DISABLED_TOKENS_OPTION = "agentgate_disabled_tokens"

# Checked in order after the primary Authorization header. Some proxies and
# WSGI bridges strip Authorization and pass it along under another name.
FORWARDED_AUTH_HEADER = "X-Forwarded-Authorization"
REDIRECT_AUTH_HEADER = "X-Original-Authorization"

_BEARER_RE = re.compile(r"^\s*bearer(?:\s+(.*))?$", re.IGNORECASE | re.DOTALL)
_SPLIT_RE = re.compile(r"[\s,]+")

TokenFilter = Callable[[set[str], Request | None], set[str]]
EnvSource = Callable[[str], str | None]
OptionSource = Callable[[str], Awaitable[list[str] | None]]


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------

def parse_bearer_token(header: str | None) -> str | None:
    """Return the token from a ``Bearer <token>`` value, or None if it doesn't match."""
    if not isinstance(header, str):
        return None
    match = _BEARER_RE.match(header)
    if not match or match.group(1) is None:
        return None
    token = match.group(1).strip()
    return token or None


def _environ_authorization(request: Request) -> str | None:
    environ = request.scope.get("environ")
    if isinstance(environ, dict):
        return environ.get("HTTP_AUTHORIZATION")
    return None


def _authorization_values(request: Request) -> list[str]:
    """Non-empty Authorization values: the header itself, then the fallbacks in order."""
    values = (
        request.headers.get("Authorization"),
        _environ_authorization(request),
        request.headers.get(FORWARDED_AUTH_HEADER),
        request.headers.get(REDIRECT_AUTH_HEADER),
    )
    return [v for v in values if isinstance(v, str) and v.strip()]


def resolve_authorization_header(request: Request) -> str | None:
    """Return the first Authorization value that holds a bearer token.

    A proxy may put its own credentials in Authorization and forward the
    client's under another name, so a value that doesn't parse moves on to
    the next one. When values exist but none parses, the first is returned
    so callers can tell a malformed header from a missing one.
    """
    values = _authorization_values(request)
    for value in values:
        if parse_bearer_token(value) is not None:
            return value
    return values[0] if values else None


def extract_bearer_token(request: Request) -> str | None:
    return parse_bearer_token(resolve_authorization_header(request))


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

def collect_tokens(*sources: Any) -> set[str]:
    """Merge token sources into a set.

    Strings are split on runs of whitespace or commas; lists contribute their
    trimmed items. Empty or unsupported sources contribute nothing.
    """
    tokens: set[str] = set()
    for source in sources:
        if not source:
            continue
        if isinstance(source, str):
            parts: Iterable[Any] = _SPLIT_RE.split(source)
        elif isinstance(source, (list, tuple, set)):
            parts = source
        else:
            continue
        for part in parts:
            part = str(part).strip()
            if part:
                tokens.add(part)
    return tokens


def _unfiltered(tokens: set[str], request: Request | None) -> set[str]:
    return tokens


class TokenSource:
    """Resolves the active and disabled token sets on every call.

    Each set merges an environment string with a persisted option list, then
    passes through an injectable filter.
    """

    def __init__(
        self,
        getenv: EnvSource = os.environ.get,
        get_option_list: OptionSource = db.get_option_list,
        active_filter: TokenFilter = _unfiltered,
        disabled_filter: TokenFilter = _unfiltered,
    ) -> None:
        self._getenv = getenv
        self._get_option_list = get_option_list
        self.active_filter = active_filter
        self.disabled_filter = disabled_filter

    async def _load(self, env_name: str, option_name: str) -> set[str]:
        try:
            stored = await self._get_option_list(option_name)
        except aiosqlite.Error as exc:
            logger.error("Option store failed reading %s: %s", option_name, exc)
            raise StoreUnavailableError() from exc
        # Each stored entry may itself be a delimited string
        return collect_tokens(self._getenv(env_name), *(stored or ()))

    async def active_tokens(self, request: Request | None = None) -> set[str]:
        tokens = await self._load(ACTIVE_TOKENS_ENV, ACTIVE_TOKENS_OPTION)
        return set(self.active_filter(tokens, request))

    async def disabled_tokens(self, request: Request | None = None) -> set[str]:
        tokens = await self._load(DISABLED_TOKENS_ENV, DISABLED_TOKENS_OPTION)
        return set(self.disabled_filter(tokens, request))


token_source = TokenSource()
