"""Execution entity - One bulk generation run with lifecycle status tracking."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field as PydanticField, model_validator
from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from moodseed.core.timezone import utcnow


class ExecutionStatus(str, Enum):
    """Execution lifecycle status."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    STOPPED = "stopped"


TERMINAL_STATUSES = frozenset(
    {ExecutionStatus.COMPLETED, ExecutionStatus.FAILED, ExecutionStatus.STOPPED}
)
RESUMABLE_STATUSES = frozenset({ExecutionStatus.STOPPED, ExecutionStatus.FAILED})

PROGRESS_FIELDS = ("status", "stats", "generated_units", "unit_errors", "in_flight", "error")


class PriceLevel(str, Enum):
    """Price tier used when writing content and picking materials."""

    REGULAR = "REGULAR"
    LUXURY = "LUXURY"
    RANDOM = "RANDOM"


DEFAULT_ROOM_TYPES = [
    "living-room",
    "kitchen",
    "dining-room",
    "master-bedroom",
    "bathroom",
    "bedroom",
    "home-office",
    "entryway",
    "hallway",
    "guest-bedroom",
    "master-bathroom",
    "children-bedroom",
    "balcony",
    "walk-in-closet",
    "laundry-room",
]


class InvalidStateTransition(Exception):
    """Raised when attempting an invalid execution state transition."""

    pass


class ExecutionConfig(BaseModel):
    """Batch configuration submitted by the caller."""

    limit: Optional[int] = PydanticField(default=None, ge=1)
    category_filter: Optional[str] = None
    sub_category_filter: Optional[str] = None
    generate_images: bool = True
    generate_room_profiles: bool = True
    room_types: list[str] = PydanticField(default_factory=lambda: list(DEFAULT_ROOM_TYPES))
    price_level: PriceLevel = PriceLevel.REGULAR
    dry_run: bool = False
    # Manual selection: both set skips the AI selection step
    approach: Optional[str] = None
    color: Optional[str] = None

    @model_validator(mode="after")
    def validate_manual_selection(self) -> "ExecutionConfig":
        """Manual selection requires both approach and color."""
        if (self.approach is None) != (self.color is None):
            raise ValueError("Manual selection requires both approach and color")
        return self

    @property
    def manual_selection(self) -> bool:
        return self.approach is not None and self.color is not None


class ExecutionStats(BaseModel):
    """Counters folded from unit outcomes."""

    total_candidates: int = 0
    already_done: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors_count: int = 0


class GeneratedUnit(BaseModel):
    """Reference to one unit produced by an execution."""

    unit_id: str
    name: str
    external_reference: Optional[str] = None


class WorkUnit(BaseModel):
    """One item of a batch (a sub-category to turn into a style). Never persisted."""

    unit_id: str
    slug: str
    name: str
    category_slug: str
    description: str = ""
    period: Optional[str] = None


class Execution(SQLModel, table=True):
    """Execution is the durable checkpoint of one batch generation run.

    Collections (stats, generated units, errors) are always replaced with new
    objects, never mutated in place, so every saved checkpoint is a complete
    snapshot of the run.
    """

    __tablename__ = "executions"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    organization_id: str = Field(max_length=255, index=True)
    status: ExecutionStatus = Field(default=ExecutionStatus.PENDING, index=True)
    config: dict = Field(default_factory=dict, sa_column=Column(JSON))
    stats: dict = Field(default_factory=dict, sa_column=Column(JSON))
    generated_units: list = Field(default_factory=list, sa_column=Column(JSON))
    candidate_unit_ids: list = Field(default_factory=list, sa_column=Column(JSON))
    unit_errors: list = Field(default_factory=list, sa_column=Column(JSON))
    in_flight: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    call_counts: dict = Field(default_factory=dict, sa_column=Column(JSON))
    credits_per_unit: int = Field(default=0, ge=0)
    estimated_cost: float = Field(default=0.0)
    actual_cost: Optional[float] = Field(default=None)
    attempt: int = Field(default=1, ge=1)
    started_at: Optional[datetime] = Field(default=None)
    completed_at: Optional[datetime] = Field(default=None)
    duration_ms: Optional[int] = Field(default=None)
    error: Optional[str] = Field(default=None, max_length=2000)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow, index=True)

    @property
    def execution_config(self) -> ExecutionConfig:
        return ExecutionConfig.model_validate(self.config)

    @property
    def execution_stats(self) -> ExecutionStats:
        return ExecutionStats.model_validate(self.stats)

    @property
    def generated_unit_ids(self) -> set[str]:
        return {entry["unit_id"] for entry in self.generated_units}

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def remaining_unit_ids(self) -> list[str]:
        """Candidate ids not yet recorded as generated, in submission order."""
        done = self.generated_unit_ids
        return [unit_id for unit_id in self.candidate_unit_ids if unit_id not in done]

    def replace_stats(self, stats: ExecutionStats) -> None:
        self.stats = stats.model_dump()

    def bump_stats(self, **deltas: int) -> None:
        """Increment stats counters by the given amounts."""
        current = self.execution_stats.model_dump()
        for key, delta in deltas.items():
            current[key] = current[key] + delta
        self.stats = ExecutionStats.model_validate(current).model_dump()

    def record_generated(self, unit: GeneratedUnit) -> None:
        self.generated_units = [*self.generated_units, unit.model_dump()]

    def record_unit_error(self, unit_id: str, error: str) -> None:
        self.unit_errors = [*self.unit_errors, {"unit_id": unit_id, "error": error[:1000]}]

    def add_call_counts(self, counts: dict[str, int]) -> None:
        merged = dict(self.call_counts)
        for kind, count in counts.items():
            merged[kind] = merged.get(kind, 0) + count
        self.call_counts = merged

    def set_in_flight(self, unit_id: str, reference_id: str, amount: int) -> None:
        self.in_flight = {"unit_id": unit_id, "reference_id": reference_id, "amount": amount}

    def clear_in_flight(self) -> None:
        self.in_flight = None

    def progress_snapshot(self) -> dict:
        """Capture the progress fields before an uncommitted change.

        Collections are replaced on every change, so references are enough.
        Call counts are observations and are not part of the snapshot.
        """
        return {name: getattr(self, name) for name in PROGRESS_FIELDS}

    def restore_progress(self, snapshot: dict) -> None:
        for name, value in snapshot.items():
            setattr(self, name, value)

    def touch(self) -> None:
        self.updated_at = utcnow()

    def mark_running(self) -> None:
        """Transition from pending to running.

        Raises:
            InvalidStateTransition: If current status is not pending
        """
        if self.status != ExecutionStatus.PENDING:
            raise InvalidStateTransition(
                f"Cannot mark running from {self.status.value}. Execution must be pending."
            )
        self.status = ExecutionStatus.RUNNING
        self.started_at = utcnow()

    def mark_completed(self, actual_cost: float) -> None:
        """Transition from running to completed.

        Raises:
            InvalidStateTransition: If current status is not running
        """
        if self.status != ExecutionStatus.RUNNING:
            raise InvalidStateTransition(
                f"Cannot mark completed from {self.status.value}. Execution must be running."
            )
        self.status = ExecutionStatus.COMPLETED
        self.actual_cost = actual_cost
        self._finish()

    def mark_stopped(self, actual_cost: float | None = None) -> None:
        """Transition from pending or running to stopped.

        Raises:
            InvalidStateTransition: If current status is terminal
        """
        if self.is_terminal:
            raise InvalidStateTransition(
                f"Cannot mark stopped from terminal state {self.status.value}."
            )
        self.status = ExecutionStatus.STOPPED
        self.actual_cost = actual_cost
        self._finish()

    def mark_failed(self, error: str, actual_cost: float | None = None) -> None:
        """Transition from pending or running to failed.

        Raises:
            InvalidStateTransition: If current status is terminal
        """
        if self.is_terminal:
            raise InvalidStateTransition(
                f"Cannot mark failed from terminal state {self.status.value}."
            )
        if not error:
            raise ValueError("error is required")
        self.status = ExecutionStatus.FAILED
        self.error = error[:2000]
        self.actual_cost = actual_cost
        self._finish()

    def mark_resumed(self) -> None:
        """Start a new running phase from stopped or failed.

        Unit errors and skips of the previous phase are cleared because those
        units are retried in the new phase. An execution that failed before it
        ever ran gets its start time here.

        Raises:
            InvalidStateTransition: If current status is not stopped or failed
        """
        if self.status not in RESUMABLE_STATUSES:
            raise InvalidStateTransition(
                f"Cannot resume from {self.status.value}. Execution must be stopped or failed."
            )
        self.status = ExecutionStatus.RUNNING
        self.attempt += 1
        self.started_at = self.started_at or utcnow()
        self.error = None
        self.completed_at = None
        self.duration_ms = None
        self.actual_cost = None
        self.unit_errors = []
        stats = self.execution_stats
        stats.errors_count = 0
        stats.skipped = 0
        self.replace_stats(stats)

    def _finish(self) -> None:
        now = utcnow()
        self.completed_at = now
        if self.started_at is not None:
            self.duration_ms = int((now - self.started_at).total_seconds() * 1000)
        else:
            self.duration_ms = 0
