"""Background workers for async processing tasks."""

from moodseed.workers.orphan_sweep_worker import (
    recover_orphaned_executions,
    run_orphan_sweep_worker,
)

__all__ = [
    "recover_orphaned_executions",
    "run_orphan_sweep_worker",
]
