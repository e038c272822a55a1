"""
Application factory for the subscription service
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from streamsub import __version__
from streamsub.api.v1.router import api_router
from streamsub.core.config import settings
from streamsub.core.exceptions import register_exception_handlers
from streamsub.core.logging import setup_logging
from streamsub.db.session import dispose_engine
from streamsub.schedulers.scheduler import shutdown_scheduler, start_scheduler
from streamsub.services.limits import close_client as close_limits_client


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {settings.PROJECT_NAME} ({settings.ENV})")
    start_scheduler()
    try:
        yield
    finally:
        shutdown_scheduler()
        await close_limits_client()
        await dispose_engine()
        logger.info("Shutdown complete")


def create_application() -> FastAPI:
    """
    Build the FastAPI application with routers and error handlers
    """
    setup_logging()
    application = FastAPI(
        title=settings.PROJECT_NAME,
        version=__version__,
        debug=settings.DEBUG,
        lifespan=lifespan,
    )
    register_exception_handlers(application)
    application.include_router(api_router, prefix=f"{settings.API_PREFIX}/v1")

    @application.get("/health", tags=["health"])
    async def health():
        return {"status": "ok"}

    return application


app = create_application()
