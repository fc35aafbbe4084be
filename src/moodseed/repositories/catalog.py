"""Catalog repositories for sub-categories and generated styles."""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from moodseed.models.catalog import Style, SubCategory


class SubCategoryRepository:
    """Repository for SubCategory entities."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, sub_category_id: UUID) -> SubCategory | None:
        result = await self.session.execute(
            select(SubCategory).where(SubCategory.id == sub_category_id)  # type: ignore[arg-type]
        )
        return result.scalar_one_or_none()

    async def get_by_slug(self, slug: str) -> SubCategory | None:
        result = await self.session.execute(
            select(SubCategory).where(SubCategory.slug == slug)  # type: ignore[arg-type]
        )
        return result.scalar_one_or_none()

    async def add(self, sub_category: SubCategory) -> SubCategory:
        self.session.add(sub_category)
        await self.session.flush()
        return sub_category


class StyleRepository:
    """Repository for Style entities."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_sub_category(self, sub_category_id: UUID) -> Style | None:
        """Retrieve the style generated for a sub-category.

        Args:
            sub_category_id: Source sub-category (unique per style)

        Returns:
            Style if one exists, None otherwise
        """
        result = await self.session.execute(
            select(Style).where(Style.sub_category_id == sub_category_id)  # type: ignore[arg-type]
        )
        return result.scalar_one_or_none()

    async def add(self, style: Style) -> Style:
        self.session.add(style)
        await self.session.flush()
        return style

    async def list_by_execution(self, execution_id: UUID) -> list[Style]:
        result = await self.session.execute(
            select(Style)
            .where(Style.execution_id == execution_id)  # type: ignore[arg-type]
            .order_by(Style.created_at.asc())  # type: ignore[attr-defined]
        )
        return list(result.scalars().all())
