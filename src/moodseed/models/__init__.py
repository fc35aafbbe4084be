"""SQLModel database entities.

All models are imported here to ensure they're registered with SQLModel metadata
for Alembic autogenerate support.
"""

from moodseed.models.catalog import Style, SubCategory
from moodseed.models.credit import GRANT_TYPES, CreditTransaction, CreditTransactionType
from moodseed.models.execution import (
    DEFAULT_ROOM_TYPES,
    Execution,
    ExecutionConfig,
    ExecutionStats,
    ExecutionStatus,
    GeneratedUnit,
    InvalidStateTransition,
    PriceLevel,
    WorkUnit,
)

__all__ = [
    "Execution",
    "ExecutionStatus",
    "ExecutionConfig",
    "ExecutionStats",
    "GeneratedUnit",
    "WorkUnit",
    "PriceLevel",
    "DEFAULT_ROOM_TYPES",
    "InvalidStateTransition",
    "CreditTransaction",
    "CreditTransactionType",
    "GRANT_TYPES",
    "SubCategory",
    "Style",
]
