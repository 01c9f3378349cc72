"""AgentGate: FastAPI entry point."""
import asyncio
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from agentgate import database as db
from agentgate.config import settings
from agentgate.errors import AgentGateError, agentgate_error_handler
from agentgate.headers import rate_limit_headers
from agentgate.rate_limiter import rate_limiter
from agentgate.routers import admin, api

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        db_dir = os.path.dirname(settings.db_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)
        db.run_migrations()
        await db.get_db()
        logger.info("Database ready at %s", settings.db_path)
    except Exception as exc:
        logger.critical("Failed to initialize database at %s: %s", settings.db_path, exc)
        raise RuntimeError(f"Database initialization failed: {exc}") from exc

    logger.info(
        "AgentGate %s: %d requests per %ds window, %s bucket store",
        settings.build, settings.rate_limit, settings.rate_window, settings.bucket_store,
    )

    async def _cleanup_loop():
        while True:
            await asyncio.sleep(settings.transient_cleanup_interval)
            try:
                await rate_limiter.store.cleanup()
                await db.cleanup_expired_sessions()
            except Exception:
                logger.exception("Cleanup loop iteration failed")

    cleanup_task = asyncio.create_task(_cleanup_loop())
    cleanup_task.add_done_callback(lambda t: logger.error("Cleanup task terminated: %s", t.exception()) if not t.cancelled() and t.exception() else None)

    yield

    cleanup_task.cancel()
    try:
        await db.close_db()
    except Exception:
        logger.exception("Error closing database")


app = FastAPI(
    title="AgentGate",
    version=settings.version,
    lifespan=lifespan,
    docs_url=None,
    redoc_url=None,
    openapi_url=None,
)
app.add_exception_handler(AgentGateError, agentgate_error_handler)
app.middleware("http")(rate_limit_headers)
app.include_router(api.router)
app.include_router(admin.router)


@app.get("/health")
async def health():
    try:
        await db.get_db()
        db_ok = True
    except Exception:
        db_ok = False
    if db_ok:
        return {"status": "ok", "db": "accessible"}
    return JSONResponse(status_code=503, content={"status": "degraded", "db": "unavailable"})
