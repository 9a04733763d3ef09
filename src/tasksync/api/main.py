"""FastAPI application factory."""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from sqlmodel import SQLModel

from tasksync.config import get_settings
from tasksync.db.engine import get_engine
from tasksync.api.routes import sync as sync_routes, tasks
from tasksync.scheduler.jobs import build_scheduler
from tasksync.sync.engine import SyncEngine

logger = logging.getLogger(__name__)


def create_app(
    engine=None,
    sync_engine: Optional[SyncEngine] = None,
    start_scheduler: Optional[bool] = None,
) -> FastAPI:
    """Build and return the FastAPI app.

    Args:
        engine: SQLAlchemy engine. Defaults to get_engine().
        sync_engine: SyncEngine to expose. Defaults to one built from settings.
        start_scheduler: Run the interval sync job during the app lifespan.
            Defaults to True when SYNC_INTERVAL_SECONDS > 0.
    """
    settings = get_settings()
    engine = engine if engine is not None else get_engine()
    sync_engine = sync_engine or SyncEngine.from_settings(engine, settings)
    if start_scheduler is None:
        start_scheduler = settings.sync_interval_seconds > 0

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Create tables on startup (idempotent)
        SQLModel.metadata.create_all(engine)
        scheduler = None
        if start_scheduler:
            scheduler = build_scheduler(sync_engine)
            scheduler.start()
            logger.info(
                "Scheduler started (outbox sync every %ds)",
                settings.sync_interval_seconds,
            )
        try:
            yield
        finally:
            if scheduler is not None:
                scheduler.shutdown(wait=False)

    app = FastAPI(
        title="tasksync API",
        description="Task tracking backend with outbox sync to a remote authority",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.sync_engine = sync_engine

    app.include_router(tasks.router, prefix="/tasks", tags=["tasks"])
    app.include_router(sync_routes.router, prefix="/sync", tags=["sync"])

    @app.get("/health")
    def health():
        return {"ok": True}

    return app


# Module-level app instance for uvicorn
app = create_app()
