"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from passwordless_auth.api.router import get_session_manager
from passwordless_auth.api.router import router as auth_router
from passwordless_auth.config import settings

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle hook."""
    logger.info("Starting %s …", settings.app_name)
    yield
    logger.info("Shutting down %s …", settings.app_name)
    manager = get_session_manager()
    manager.close_all()
    await manager.event_sink.aclose()


app = FastAPI(
    title=settings.app_name,
    description="Passwordless email sign-in with short-lived one-time codes",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(auth_router)


@app.get("/health")
async def health_check():
    """Simple health check."""
    return {"status": "healthy", "app": settings.app_name}
