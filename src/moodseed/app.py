"""FastAPI application factory."""

# Import timezone enforcement (sets TZ=UTC)
import asyncio
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Response, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from moodseed.api.routes import credits, executions
from moodseed.core import timezone  # noqa: F401
from moodseed.core.config import Settings, configure_logging
from moodseed.core.database import create_tables, setup_db_session
from moodseed.services.execution.controller import create_execution_controller
from moodseed.uow import create_uow_factory
from moodseed.workers import recover_orphaned_executions, run_orphan_sweep_worker

logger = structlog.get_logger()


def create_resilient_worker(
    coro_func, controller, settings, worker_name: str, shutdown_event: asyncio.Event
):
    """Create a worker with automatic restart on failure.

    Args:
        coro_func: Worker coroutine function (e.g., run_orphan_sweep_worker)
        controller: Execution controller the worker operates on
        settings: Application settings
        worker_name: Human-readable worker name for logging
        shutdown_event: Event to signal graceful shutdown

    Returns:
        Initial task handle (will be auto-recreated on crash)
    """
    RESTART_DELAY = 1  # Fixed 1 second delay between restarts

    def on_worker_done(task: asyncio.Task):
        if shutdown_event.is_set():
            logger.info("worker.shutdown_complete", worker=worker_name)
            return

        if task.cancelled():
            logger.info("worker.cancelled", worker=worker_name)
            return

        exc = task.exception()
        if exc:
            logger.error(
                "worker.crashed",
                worker=worker_name,
                error=str(exc),
                error_type=type(exc).__name__,
                retry_in_seconds=RESTART_DELAY,
                exc_info=exc,
            )
        else:
            # Sweep workers loop forever
            logger.warning(
                "worker.stopped_unexpectedly",
                worker=worker_name,
                retry_in_seconds=RESTART_DELAY,
            )

        async def restart_worker():
            await asyncio.sleep(RESTART_DELAY)

            # Check again if shutdown was requested during sleep
            if shutdown_event.is_set():
                return

            logger.info("worker.restarting", worker=worker_name)
            new_task = asyncio.create_task(coro_func(controller, settings))
            new_task.add_done_callback(on_worker_done)

        asyncio.create_task(restart_worker())

    task = asyncio.create_task(coro_func(controller, settings))
    task.add_done_callback(on_worker_done)
    return task


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan context manager.

    Handles startup and shutdown tasks:
    - Startup: Initialize database session factory and services, reconcile
      executions orphaned by a previous process, start the sweep worker
    - Shutdown: Stop live executions at their next unit boundary, stop workers
    """
    settings = Settings()  # type: ignore[call-arg]

    configure_logging(settings)

    session_factory = setup_db_session(settings.database_url, settings.db_pool_size)
    if settings.database_url.startswith("sqlite"):
        # Local development database; PostgreSQL runs Alembic migrations
        await create_tables(session_factory)

    uow_factory = create_uow_factory(session_factory)
    controller = create_execution_controller(settings, uow_factory)

    # Store in app.state for access in routes
    app.state.settings = settings
    app.state.session_factory = session_factory
    app.state.uow_factory = uow_factory
    app.state.controller = controller
    app.state.ledger = controller.ledger
    app.state.streamer = controller.streamer

    # Refund deductions left behind by a crashed process before accepting work
    await recover_orphaned_executions(controller)

    shutdown_event = asyncio.Event()

    sweep_worker_task = create_resilient_worker(
        run_orphan_sweep_worker, controller, settings, "orphan_sweep", shutdown_event
    )

    logger.info("application.startup", db_url=settings.database_url.split("@")[-1])

    yield

    logger.info("application.shutdown")
    shutdown_event.set()

    await controller.shutdown()

    sweep_worker_task.cancel()
    await asyncio.gather(sweep_worker_task, return_exceptions=True)


def create_app() -> FastAPI:
    """Create and configure FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    settings = Settings()  # type: ignore[call-arg]

    app = FastAPI(
        title="Moodseed Backend API",
        description="Bulk style generation with credit metering",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers carry their own "/api/..." prefixes
    app.include_router(executions.router)
    app.include_router(credits.router)

    @app.get("/health")
    async def health_check(response: Response):
        """Health check endpoint with database connectivity test.

        Returns:
            200: {"status": "healthy"} if database connection succeeds
            503: {"status": "unhealthy", "error": {...}} if database connection fails
        """
        try:
            async with app.state.session_factory() as session:
                result = await session.execute(text("SELECT 1"))
                result.scalar()

            logger.debug("health_check.success")
            return {"status": "healthy"}

        except Exception as e:
            logger.error(
                "health_check.failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
            return {
                "status": "unhealthy",
                "error": {
                    "type": type(e).__name__,
                    "message": str(e),
                },
            }

    return app


# Create app instance for uvicorn
app = create_app()
