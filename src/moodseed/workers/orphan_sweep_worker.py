"""Periodic sweep of executions orphaned by a dead process.

Runs the controller's reconciliation on a fixed interval: executions left
pending or running without a live task, and untouched for longer than the
grace period, get their in-flight deduction refunded once and are marked
failed so they can be resumed.
"""

import asyncio

import structlog

from moodseed.core.config import Settings
from moodseed.services.execution.controller import ExecutionController, ReconcileResult

logger = structlog.get_logger()


async def recover_orphaned_executions(controller: ExecutionController) -> ReconcileResult | None:
    """Run one sweep at startup.

    Failures are logged and do not prevent startup; the periodic worker
    retries on its next interval.
    """
    try:
        result = await controller.reconcile_orphans()
    except Exception as e:
        logger.error(
            "startup.orphan_sweep_failed",
            error=str(e),
            error_type=type(e).__name__,
        )
        return None

    if result.interrupted:
        logger.warning(
            "startup.orphans_recovered",
            interrupted=result.interrupted,
            refunded=result.refunded,
        )
    else:
        logger.debug("startup.no_orphans", scanned=result.scanned)
    return result


async def run_orphan_sweep_worker(controller: ExecutionController, settings: Settings) -> None:
    """Sweep forever at the configured interval.

    Args:
        controller: Execution controller performing the reconciliation
        settings: Application settings (interval and grace period)
    """
    logger.info(
        "orphan_sweep_worker.started",
        interval_seconds=settings.orphan_sweep_interval_seconds,
        grace_seconds=settings.orphan_grace_seconds,
    )

    while True:
        await asyncio.sleep(settings.orphan_sweep_interval_seconds)
        result = await controller.reconcile_orphans()
        if result.interrupted or result.errors:
            logger.warning(
                "orphan_sweep_worker.reconciled",
                interrupted=result.interrupted,
                refunded=result.refunded,
                errors=len(result.errors),
            )
