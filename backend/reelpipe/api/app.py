"""FastAPI application factory with lifespan and exception handlers."""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from reelpipe import __version__, validate_dependencies
from reelpipe.api.routes import router
from reelpipe.bootstrap import ReelServices, build_services
from reelpipe.config import Settings, load_settings
from reelpipe.workers.scheduler import run_schedule

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    services: Optional[ReelServices] = None,
) -> FastAPI:
    """Build the API application.

    Passing ``services`` skips dependency validation and service
    construction; the caller keeps ownership and closes them.
    """
    if settings is None:
        settings = services.settings if services is not None else load_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager.

        Startup:
            - Validate system dependencies (ffmpeg, ffprobe)
            - Build services and initialize database schema
            - Start the scheduler when enabled

        Shutdown:
            - Stop the scheduler
            - Close HTTP clients and database connections
        """
        logger.info("Starting Reel Pipeline API...")
        owned = services is None
        if owned:
            validate_dependencies(settings.media.ffmpeg_path, settings.media.ffprobe_path)
            app.state.services = build_services(settings)
        else:
            app.state.services = services
        await app.state.services.init()

        stop_event = asyncio.Event()
        scheduler_task = None
        if settings.schedule.enabled:
            scheduler_task = asyncio.create_task(
                run_schedule(app.state.services, settings.schedule, stop_event)
            )
        logger.info("API startup complete")

        yield

        logger.info("Shutting down Reel Pipeline API...")
        stop_event.set()
        if scheduler_task is not None:
            await scheduler_task
        if owned:
            await app.state.services.aclose()
        logger.info("API shutdown complete")

    app = FastAPI(
        title="Reel Pipeline API",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.server.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """Catch-all exception handler to prevent stack traces in API responses."""
        logger.error(f"Unhandled exception in {request.method} {request.url.path}: {type(exc).__name__}: {str(exc)}")
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "detail": str(exc),
            }
        )

    return app
