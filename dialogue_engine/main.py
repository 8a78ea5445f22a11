"""
FastAPI application entry point.

Run with: uvicorn dialogue_engine.main:app --reload
"""

from contextlib import asynccontextmanager
import uuid

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from dialogue_engine import __version__
from dialogue_engine.core.config import engine_config, settings
from dialogue_engine.core.logging import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
)
from dialogue_engine.persistence.database import init_database
from dialogue_engine.api.routes import fields, health, quality, turns
from dialogue_engine.api.exception_handlers import setup_exception_handlers

# Configure logging before anything else
configure_logging()
log = get_logger(__name__)


# =============================================================================
# Correlation ID Middleware
# =============================================================================


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """
    Middleware that adds a unique correlation ID to each request.

    - Generates a UUID4 request_id for each incoming request
    - Binds it to structlog context for all logs in that request
    - Adds X-Request-ID header to responses
    """

    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid.uuid4())
        bind_context(request_id=request_id)

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            clear_context()


# =============================================================================
# Startup checks
# =============================================================================


def validate_routing() -> None:
    """
    Check that every routed task has at least one usable model.

    A chain entry is usable when its provider has an API key configured.

    Raises:
        RuntimeError: If any task would have no model to call
    """
    errors = []
    for task, chain in engine_config.routing.items():
        usable = [d for d in chain if settings.api_key_for(d.provider)]
        if not usable:
            providers = ", ".join(sorted({d.provider for d in chain}))
            errors.append(
                f"No API key for any model routed to '{task}' (providers: {providers})"
            )

    if errors:
        error_msg = "LLM Routing Validation Failed:\n" + "\n".join(f"  - {e}" for e in errors)
        raise RuntimeError(error_msg)

    log.info("llm_routing_validated", tasks=sorted(engine_config.routing))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    log.info(
        "application_starting",
        debug=settings.debug,
        database_path=str(settings.database_path),
    )

    # Fail fast if no model can serve a task
    validate_routing()

    await init_database()

    log.info("application_started")

    yield

    log.info("application_shutting_down")


app = FastAPI(
    title="Interview Dialogue Engine",
    description="Phase-aware dialogue engine for AI-conducted interviews",
    version=__version__,
    lifespan=lifespan,
    debug=settings.debug,
)

# CORS middleware for development
if settings.debug:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.add_middleware(CorrelationIDMiddleware)

setup_exception_handlers(app)

app.include_router(health.router, tags=["system"])
app.include_router(turns.router)
app.include_router(fields.router)
app.include_router(quality.router)


@app.get("/")
async def root():
    """Root endpoint with basic info."""
    return {"name": "Interview Dialogue Engine", "version": __version__, "status": "running"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "dialogue_engine.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
