"""Response decoration: one rate-limit touch and the standard headers per request."""
import logging

from fastapi import Request, Response

from agentgate.auth import consume_authenticated_context
from agentgate.config import settings
from agentgate.errors import AgentGateError, StoreUnavailableError
from agentgate.rate_limiter import ANONYMOUS_KEY, RateLimiter, rate_limiter

logger = logging.getLogger(__name__)

BUILD_HEADER = "X-AgentGate-Build"
LIMIT_HEADER = "X-RateLimit-Limit"
REMAINING_HEADER = "X-RateLimit-Remaining"
RESET_HEADER = "X-RateLimit-Reset"

# Set on request.state once the response has been decorated
_DECORATED_ATTR = "agentgate_decorated"


async def decorate_response(
    request: Request,
    response: Response,
    limiter: RateLimiter = rate_limiter,
) -> Response:
    """Touch the caller's bucket and stamp the headers. Later passes are no-ops."""
    if getattr(request.state, _DECORATED_ATTR, False):
        return response
    setattr(request.state, _DECORATED_ATTR, True)

    ctx = consume_authenticated_context(request)
    key = ctx.identity if ctx is not None else ANONYMOUS_KEY

    try:
        bucket = await limiter.touch(key, request)
    except StoreUnavailableError as exc:
        response = exc.to_json_response()
        response.headers[BUILD_HEADER] = settings.build
        return response

    # Assignment replaces any existing value, so each header appears once
    response.headers[BUILD_HEADER] = settings.build
    response.headers[LIMIT_HEADER] = str(bucket.limit)
    response.headers[REMAINING_HEADER] = str(bucket.remaining)
    response.headers[RESET_HEADER] = str(bucket.reset)
    return response


async def rate_limit_headers(request: Request, call_next) -> Response:
    """HTTP middleware: run the handler, then decorate whatever came back."""
    try:
        response = await call_next(request)
    except Exception:
        logger.exception("Unhandled error while serving %s", request.url.path)
        response = AgentGateError().to_json_response()
    return await decorate_response(request, response)
