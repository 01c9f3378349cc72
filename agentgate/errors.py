"""Error taxonomy for the gate and its JSON rendering."""
from fastapi import Request, status
from fastapi.responses import JSONResponse

from agentgate.models import ErrorResponse


class AgentGateError(Exception):
    """Base exception: carries the error kind, a human message and an HTTP status."""

    code = "internal_error"
    message = "Internal server error."
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(code=self.code, message=self.message, status=self.status_code)

    def to_json_response(self) -> JSONResponse:
        return JSONResponse(status_code=self.status_code, content=self.to_response().model_dump())


class AuthError(AgentGateError):
    """Authentication failure. Terminal for the request; the handler never runs."""


class MissingTokenError(AuthError):
    code = "missing_token"
    message = "Authorization header missing."
    status_code = status.HTTP_401_UNAUTHORIZED


class InvalidTokenError(AuthError):
    code = "invalid_token"
    message = "Invalid Authorization header."
    status_code = status.HTTP_401_UNAUTHORIZED


class TokenDisabledError(AuthError):
    code = "token_disabled"
    message = "The supplied token is disabled."
    status_code = status.HTTP_403_FORBIDDEN


class TokenForbiddenError(AuthError):
    code = "token_forbidden"
    message = "The supplied token is not authorized."
    status_code = status.HTTP_403_FORBIDDEN


class StoreUnavailableError(AgentGateError):
    """The option store or the bucket store failed. Never retried, never read as DENY."""

    code = "store_unavailable"
    message = "Backing store unavailable."
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


async def agentgate_error_handler(request: Request, exc: AgentGateError) -> JSONResponse:
    return exc.to_json_response()
