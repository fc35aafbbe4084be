"""Catalog entities - Sub-categories (generation candidates) and generated styles."""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from moodseed.core.timezone import utcnow


class SubCategory(SQLModel, table=True):
    """SubCategory is the source of one work unit: a design style to be generated."""

    __tablename__ = "sub_categories"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    slug: str = Field(unique=True, index=True, max_length=255)
    name: str = Field(max_length=255)
    category_slug: str = Field(index=True, max_length=255)
    description: str = Field(default="", max_length=2000)
    period: Optional[str] = Field(default=None, max_length=255)
    order: int = Field(default=0)
    created_at: datetime = Field(default_factory=utcnow)


class Style(SQLModel, table=True):
    """Style holds the generated content and imagery for one sub-category."""

    __tablename__ = "styles"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    slug: str = Field(unique=True, index=True, max_length=255)
    name: str = Field(max_length=255)
    sub_category_id: UUID = Field(foreign_key="sub_categories.id", unique=True, index=True)
    approach: str = Field(max_length=255)
    color: str = Field(max_length=255)
    price_level: str = Field(default="REGULAR", max_length=20)
    content: dict = Field(default_factory=dict, sa_column=Column(JSON))
    room_profiles: list = Field(default_factory=list, sa_column=Column(JSON))
    gallery: list = Field(default_factory=list, sa_column=Column(JSON))
    execution_id: Optional[UUID] = Field(default=None, foreign_key="executions.id", index=True)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
