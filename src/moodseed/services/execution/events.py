"""Progress event vocabulary and server-sent-events framing.

A phase of an execution emits `start` once, then any number of `progress`,
`unit-completed` and `metrics` events, then exactly one terminal `complete`
or `error` event.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from moodseed.core.timezone import utcnow
from moodseed.models.execution import Execution


class EventType(str, Enum):
    START = "start"
    PROGRESS = "progress"
    UNIT_COMPLETED = "unit-completed"
    METRICS = "metrics"
    COMPLETE = "complete"
    ERROR = "error"


TERMINAL_EVENTS = frozenset({EventType.COMPLETE, EventType.ERROR})


class ProgressEvent(BaseModel):
    """One event of an execution's progress stream."""

    type: EventType
    execution_id: UUID
    data: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.type in TERMINAL_EVENTS

    def payload(self) -> dict[str, Any]:
        return {
            "execution_id": str(self.execution_id),
            "timestamp": self.timestamp.isoformat(),
            **self.data,
        }

    def to_sse(self) -> str:
        """Frame the event as `event: <type>` plus one `data:` JSON line."""
        return f"event: {self.type.value}\ndata: {json.dumps(self.payload(), default=str)}\n\n"


def execution_summary(execution: Execution) -> dict[str, Any]:
    """Final summary carried by `complete` events and returned by the API."""
    stats = execution.execution_stats
    return {
        "status": execution.status.value,
        "total_candidates": stats.total_candidates,
        "already_done": stats.already_done,
        "created": stats.created,
        "updated": stats.updated,
        "skipped": stats.skipped,
        "errors_count": stats.errors_count,
        "generated_units": len(execution.generated_units),
        "estimated_cost": execution.estimated_cost,
        "actual_cost": execution.actual_cost,
        "duration_ms": execution.duration_ms,
        "attempt": execution.attempt,
        "error": execution.error,
    }
