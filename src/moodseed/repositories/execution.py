"""Execution repository.

Durable store behind the execution state: whole-record checkpoints, history
queries and the candidate listing that freezes a batch's work units.
"""

from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from moodseed.models.catalog import Style, SubCategory
from moodseed.models.execution import Execution, ExecutionConfig, ExecutionStatus, WorkUnit


@dataclass
class CandidateSet:
    """Work units selected for a batch plus the counters reported at start."""

    units: list[WorkUnit] = field(default_factory=list)
    already_done: int = 0

    @property
    def total(self) -> int:
        return len(self.units)


def to_work_unit(sub_category: SubCategory) -> WorkUnit:
    return WorkUnit(
        unit_id=str(sub_category.id),
        slug=sub_category.slug,
        name=sub_category.name,
        category_slug=sub_category.category_slug,
        description=sub_category.description,
        period=sub_category.period,
    )


class ExecutionRepository:
    """Repository for Execution entities.

    No base class; each repository is self-contained and bound to the session
    of the unit of work that created it.
    """

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def get_by_id(self, execution_id: UUID) -> Execution | None:
        """Load the latest checkpoint of an execution.

        Args:
            execution_id: Execution's unique identifier

        Returns:
            Execution if found, None otherwise
        """
        result = await self.session.execute(
            select(Execution).where(Execution.id == execution_id)  # type: ignore[arg-type]
        )
        return result.scalar_one_or_none()

    async def add(self, execution: Execution) -> Execution:
        """Persist a new execution.

        Args:
            execution: Execution entity to persist

        Returns:
            Persisted execution
        """
        self.session.add(execution)
        await self.session.flush()
        return execution

    async def save(self, execution: Execution) -> Execution:
        """Write the whole execution record as one checkpoint.

        The record is merged into this session so a detached instance from an
        earlier transaction can be checkpointed; every column is written in the
        same transaction, so readers never observe a partial update.

        Args:
            execution: Execution snapshot to write

        Returns:
            The session-bound instance holding the saved state
        """
        execution.touch()
        merged = await self.session.merge(execution)
        await self.session.flush()
        return merged

    async def get_by_status(self, status: ExecutionStatus) -> list[Execution]:
        """Retrieve all executions in a status, oldest activity first."""
        result = await self.session.execute(
            select(Execution)
            .where(Execution.status == status)  # type: ignore[arg-type]
            .order_by(Execution.updated_at.asc())  # type: ignore[attr-defined]
        )
        return list(result.scalars().all())

    async def list_paginated(
        self,
        organization_id: str | None = None,
        status: ExecutionStatus | None = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[Execution], int]:
        """Retrieve executions newest first together with the total count.

        Args:
            organization_id: Restrict to one organization (optional)
            status: Restrict to one status (optional)
            offset: Number of executions to skip
            limit: Maximum number of executions to return

        Returns:
            Tuple of (executions, total matching count)
        """
        query = select(Execution)
        count_query = select(func.count()).select_from(Execution)
        if organization_id is not None:
            query = query.where(Execution.organization_id == organization_id)  # type: ignore[arg-type]
            count_query = count_query.where(Execution.organization_id == organization_id)  # type: ignore[arg-type]
        if status is not None:
            query = query.where(Execution.status == status)  # type: ignore[arg-type]
            count_query = count_query.where(Execution.status == status)  # type: ignore[arg-type]

        result = await self.session.execute(
            query.order_by(Execution.created_at.desc())  # type: ignore[attr-defined]
            .offset(offset)
            .limit(limit)
        )
        total = (await self.session.execute(count_query)).scalar_one()
        return list(result.scalars().all()), total

    async def list_candidate_units(self, config: ExecutionConfig) -> CandidateSet:
        """Select the work units a batch with this configuration should process.

        Sub-categories that already have a style count as done, unless the
        configuration targets one sub-category explicitly, in which case it is
        regenerated. The limit applies to the pending units.

        Args:
            config: Batch configuration with filters and limit

        Returns:
            CandidateSet in processing order
        """
        query = select(SubCategory).order_by(
            SubCategory.category_slug,  # type: ignore[arg-type]
            SubCategory.order,  # type: ignore[arg-type]
            SubCategory.name,  # type: ignore[arg-type]
        )
        if config.category_filter:
            query = query.where(SubCategory.category_slug == config.category_filter)  # type: ignore[arg-type]
        if config.sub_category_filter:
            query = query.where(SubCategory.slug == config.sub_category_filter)  # type: ignore[arg-type]

        sub_categories = list((await self.session.execute(query)).scalars().all())

        styled = await self.session.execute(select(Style.sub_category_id))
        styled_ids = set(styled.scalars().all())

        if config.sub_category_filter:
            pending = sub_categories
            already_done = 0
        else:
            pending = [sc for sc in sub_categories if sc.id not in styled_ids]
            already_done = len(sub_categories) - len(pending)

        if config.limit is not None:
            pending = pending[: config.limit]

        return CandidateSet(units=[to_work_unit(sc) for sc in pending], already_done=already_done)
