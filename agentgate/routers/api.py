"""Token-guarded API router."""
from typing import Any, Callable

from fastapi import APIRouter, Depends, Request

from agentgate.auth import require_token
from agentgate.config import settings

router = APIRouter(prefix="/ai/v1", dependencies=[Depends(require_token)])

SCHEMA_ROUTE = "/ai/v1/schema"

# (payload, request) -> payload
PayloadFilter = Callable[[dict[str, Any], Request], dict[str, Any]]


def _unfiltered(payload: dict[str, Any], request: Request) -> dict[str, Any]:
    return payload


# Replace to extend or reshape the schema document; looked up per request.
schema_payload_filter: PayloadFilter = _unfiltered


@router.get("/schema")
async def schema(request: Request) -> dict:
    payload = {
        "name": "ai-agentgate",
        "version": settings.version,
        "build": settings.build,
        "routes": {"schema": SCHEMA_ROUTE},
    }
    return schema_payload_filter(payload, request)
