"""pytest fixtures for moodseed backend tests.

Provides:
- utc_timezone: Autouse fixture enforcing UTC timezone
- session_factory: Function-scoped SQLite database with all tables created
- session / uow_factory: Database access for repository and service tests
- fake_text / fake_images: Scripted providers (no network)
- ledger / streamer / pipeline / controller: Services wired like the app lifespan
"""

import os

# Settings validation skips provider credentials in the test environment
os.environ["APP_ENV"] = "test"

import json
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from moodseed.core.config import Settings
from moodseed.core.database import create_tables, setup_db_session
from moodseed.models.catalog import SubCategory
from moodseed.services.credits.ledger import CreditLedger
from moodseed.services.execution.controller import ExecutionController
from moodseed.services.execution.streamer import ProgressStreamer
from moodseed.services.generation.pipeline import GenerationPipeline
from moodseed.services.generation.providers import ImageSpec
from moodseed.services.generation.rate_limiter import RateLimiter
from moodseed.uow import create_uow_factory

ORG = "org-test"

SELECTION_RESPONSE = {"approach": "warm-modern", "color": "sage", "reasoning": "test"}
MAIN_CONTENT_RESPONSE = {
    "description": "Calm, natural and uncluttered.",
    "characteristics": ["clean lines", "natural light"],
    "materials": ["oak", "linen", "travertine", "rattan", "brass"],
    "textures": ["boucle", "raw plaster", "woven jute", "matte ceramic", "brushed wool"],
}
ROOM_PROFILE_RESPONSE = {
    "description": "An airy room with low furniture.",
    "furniture": ["low sofa", "oak table"],
    "lighting": "soft indirect",
    "color_palette": ["sage", "cream"],
}


def prompt_kind(prompt: str) -> str:
    """Tell which text step a prompt belongs to."""
    if "Choose the best design approach" in prompt:
        return "selection"
    if "Write the content for" in prompt:
        return "main_content"
    return "room_profile"


class FakeTextGenerator:
    """Answers each text step with canned JSON; failures are scripted per step."""

    def __init__(self):
        self.calls: list[str] = []
        self.failures: dict[str, Exception] = {}
        self.raw_responses: dict[str, str] = {}

    async def generate_text(self, prompt: str) -> str:
        kind = prompt_kind(prompt)
        self.calls.append(kind)
        if kind in self.failures:
            raise self.failures[kind]
        if kind in self.raw_responses:
            return self.raw_responses[kind]
        response = {
            "selection": SELECTION_RESPONSE,
            "main_content": MAIN_CONTENT_RESPONSE,
            "room_profile": ROOM_PROFILE_RESPONSE,
        }[kind]
        return "Here you go:\n" + json.dumps(response)


class FakeImageGenerator:
    """Returns one URL per requested image; slots can be scripted to fail or come back short."""

    def __init__(self):
        self.calls: list[str] = []
        self.failures: dict[str, Exception] = {}
        self.short_slots: set[str] = set()

    async def generate_images(self, spec: ImageSpec) -> list[str]:
        self.calls.append(spec.slot)
        if spec.slot in self.failures:
            raise self.failures[spec.slot]
        if spec.slot in self.short_slots:
            return []
        return [f"https://cdn.test/{spec.slot}/{i}.png" for i in range(spec.count)]


class HookedPipeline:
    """Delegates to a real pipeline after awaiting a hook with the 1-based run number."""

    def __init__(self, pipeline: GenerationPipeline, hook):
        self.pipeline = pipeline
        self.hook = hook
        self.runs = 0

    async def run(self, unit, config):
        self.runs += 1
        await self.hook(unit, self.runs)
        return await self.pipeline.run(unit, config)


async def seed_sub_categories(uow_factory, count: int, category_slug: str = "modern") -> list:
    """Insert sub-categories named style-00, style-01, ... in processing order."""
    sub_categories = []
    async with await uow_factory() as uow:
        for index in range(count):
            sub_category = SubCategory(
                slug=f"style-{index:02d}",
                name=f"Style {index:02d}",
                category_slug=category_slug,
                description="A test style",
                order=index,
            )
            await uow.sub_categories.add(sub_category)
            sub_categories.append(sub_category)
    return sub_categories


@pytest.fixture(scope="session", autouse=True)
def utc_timezone():
    """Enforce UTC timezone for all tests."""
    os.environ["TZ"] = "UTC"
    yield


@pytest_asyncio.fixture(scope="function")
async def session_factory(tmp_path):
    """Provide a fresh SQLite database per test with all tables created."""
    db_url = f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"
    factory = setup_db_session(db_url)
    await create_tables(factory)

    yield factory

    await factory.kw["bind"].dispose()


@pytest_asyncio.fixture(scope="function")
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Provide a session on the test database."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def uow_factory(session_factory):
    return create_uow_factory(session_factory)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(  # type: ignore[call-arg]
        _env_file=None,
        APP_ENV="test",
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        CREDIT_VALUE_USD=0.01,
        PROVIDER_RATE_PER_SECOND=0,
        ORPHAN_GRACE_SECONDS=60,
        STREAM_QUEUE_SIZE=256,
    )


@pytest.fixture
def ledger(uow_factory) -> CreditLedger:
    return CreditLedger(uow_factory)


@pytest.fixture
def streamer() -> ProgressStreamer:
    return ProgressStreamer(max_queue_size=256)


@pytest.fixture
def fake_text() -> FakeTextGenerator:
    return FakeTextGenerator()


@pytest.fixture
def fake_images() -> FakeImageGenerator:
    return FakeImageGenerator()


@pytest.fixture
def pipeline(fake_text, fake_images) -> GenerationPipeline:
    return GenerationPipeline(
        text_generator=fake_text,
        image_generator=fake_images,
        rate_limiter=RateLimiter.unlimited(),
        image_concurrency=4,
    )


@pytest.fixture
def make_controller(uow_factory, ledger, streamer, settings):
    """Build a controller around any pipeline-like object."""

    def _make(pipeline) -> ExecutionController:
        return ExecutionController(
            uow_factory=uow_factory,
            ledger=ledger,
            pipeline=pipeline,
            streamer=streamer,
            settings=settings,
        )

    return _make


@pytest.fixture
def controller(make_controller, pipeline) -> ExecutionController:
    return make_controller(pipeline)
