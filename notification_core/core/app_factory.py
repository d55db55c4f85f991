"""Application factory that wires the scheduler, operations and router."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from notification_core.core.config import settings
from notification_core.core.error_handlers import register_exception_handlers
from notification_core.core.logging_config import setup_logging
from notification_core.core.scheduling.scheduler import JobScheduler
from notification_core.core.scheduling.tasks import NotificationJobs, register_default_jobs
from notification_core.firebase_config import initialize_firebase
from notification_core.modules.notifications.channels import PushChannel
from notification_core.routers.operations import router as operations_router
from notification_core.services.operations import NotificationOperations

logger = logging.getLogger(__name__)


def _lifespan_factory(scheduler: JobScheduler, jobs: NotificationJobs):
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        if initialize_firebase():
            jobs.verifier = jobs.verifier or PushChannel()
        else:
            logger.warning(
                "Firebase initialization failed - push delivery and token verification are disabled"
            )

        if settings.enable_scheduler:
            scheduler.start_all()
        else:
            logger.info("Scheduler disabled by configuration; jobs stay registered but idle")

        yield

        # Shutdown
        scheduler.shutdown()

    return lifespan


def create_app(
    *,
    scheduler: Optional[JobScheduler] = None,
    jobs: Optional[NotificationJobs] = None,
    register_defaults: bool = True,
) -> FastAPI:
    """Build the FastAPI app with one `JobScheduler` per process."""
    setup_logging(
        log_level=settings.log_level,
        log_dir=settings.log_dir,
        app_name=settings.app_name,
        max_bytes=10 * 1024 * 1024,  # 10 MB
        backup_count=5,
        use_json=settings.log_json,
        use_colors=True,
    )

    scheduler = scheduler or JobScheduler()
    jobs = jobs or NotificationJobs()
    if register_defaults:
        register_default_jobs(scheduler, jobs)

    app = FastAPI(
        title="Notification Core",
        description="Notification orchestration for the learning platform",
        version="1.0.0",
        lifespan=_lifespan_factory(scheduler, jobs),
    )
    app.state.scheduler = scheduler
    app.state.jobs = jobs
    app.state.operations = NotificationOperations(scheduler, jobs)
    app.state.environment = settings.environment

    @app.get("/livez", tags=["Health"])
    async def livez():
        return {"status": "ok"}

    app.include_router(operations_router)
    register_exception_handlers(app)

    logger.info("Application startup complete")
    return app


__all__ = ["create_app"]
