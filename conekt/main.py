# conekt/main.py
"""
FastAPI application for the Conekt messaging core.

Run with:
    uvicorn conekt.main:app
"""

from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse

from . import __version__
from .core.broadcast import connect_broadcast, disconnect_broadcast
from .core.config import is_running_tests, settings
from .core.exceptions import DomainException
from .routes import conversations as conversations_v1, messages as messages_v1

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup/shutdown."""
    logger.info("Conekt messaging API starting up...")
    logger.info(f"Environment: {settings.environment}")
    if is_running_tests():
        logger.info("Running under pytest (test mode active)")

    # Live updates are best effort; the API still works without them
    try:
        await connect_broadcast()
    except Exception as e:
        logger.error(f"[BROADCAST] Failed to initialize broadcaster: {e}")

    yield

    logger.info("Conekt messaging API shutting down...")
    try:
        await disconnect_broadcast()
    except Exception as e:
        logger.error(f"[BROADCAST] Error disconnecting broadcaster: {e}")


async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
    """Render domain errors with their HTTP status and structured detail."""
    http_exc = exc.to_http_exception()
    if http_exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code}: {exc.message}")
    headers = {"WWW-Authenticate": "Bearer"} if http_exc.status_code == 401 else None
    return JSONResponse(
        status_code=http_exc.status_code, content={"detail": http_exc.detail}, headers=headers
    )


def create_app() -> FastAPI:
    app = FastAPI(
        title="Conekt Messaging API",
        version=__version__,
        lifespan=app_lifespan,
    )
    app.add_exception_handler(DomainException, domain_exception_handler)

    api_v1 = APIRouter(prefix="/api/v1")
    api_v1.include_router(conversations_v1.router, prefix="/conversations")
    api_v1.include_router(messages_v1.router, prefix="/messages")
    app.include_router(api_v1)

    @app.get("/health", tags=["health"])
    def health() -> dict:
        return {"status": "ok", "version": __version__}

    return app


app = create_app()
