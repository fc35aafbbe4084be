"""Generation pipeline tests with scripted text and image providers."""

from uuid import uuid4

import pytest

from moodseed.models.execution import ExecutionConfig, PriceLevel, WorkUnit
from moodseed.services.exceptions import (
    ProviderPermanentError,
    ProviderTransientError,
    UnitGenerationError,
)
from moodseed.services.generation import cost_estimator
from moodseed.services.generation.pipeline import GenerationPipeline, parse_json_object
from moodseed.services.generation.rate_limiter import RateLimiter


def make_unit(name: str = "Japandi") -> WorkUnit:
    return WorkUnit(
        unit_id=str(uuid4()),
        slug=name.lower(),
        name=name,
        category_slug="modern",
        description="Japanese minimalism meets Scandinavian warmth",
    )


@pytest.mark.asyncio
async def test_successful_unit_runs_every_step(pipeline, fake_text, fake_images):
    config = ExecutionConfig(room_types=["kitchen", "bathroom"])

    result = await pipeline.run(make_unit(), config)

    assert result.ok
    assert [step.step for step in result.steps] == [
        "selection",
        "main_content",
        "room_profiles",
        "images",
        "special_images",
    ]
    assert result.approach == "warm-modern"
    assert result.color == "sage"
    assert result.price_level == "REGULAR"
    assert len(result.content["materials"]) == 5
    assert [profile["room_type"] for profile in result.room_profiles] == ["kitchen", "bathroom"]
    # 6 scenes + 5 materials + 5 textures + 2 rooms x 4 views + composite + anchor
    assert len(result.gallery) == 26
    assert {"composite", "anchor"} <= {entry["slot"] for entry in result.gallery}
    assert fake_text.calls == ["selection", "main_content", "room_profile", "room_profile"]


@pytest.mark.asyncio
async def test_observed_calls_match_the_estimate(pipeline):
    config = ExecutionConfig(room_types=["kitchen", "bathroom", "hallway"])

    result = await pipeline.run(make_unit(), config)

    assert result.call_counts == cost_estimator.planned_call_counts(config, 1)


@pytest.mark.asyncio
async def test_failed_step_skips_every_later_step(pipeline, fake_text, fake_images):
    fake_text.failures["main_content"] = ProviderTransientError("Network timeout")

    result = await pipeline.run(make_unit(), ExecutionConfig())

    assert not result.ok
    assert [(step.step, step.ok) for step in result.steps] == [
        ("selection", True),
        ("main_content", False),
    ]
    assert fake_text.calls == ["selection", "main_content"]
    assert fake_images.calls == []
    assert result.call_counts == {"selection": 1, "main_content": 1}

    with pytest.raises(UnitGenerationError) as exc_info:
        result.raise_for_failure()
    assert exc_info.value.step == "main_content"
    assert "Network timeout" in str(exc_info.value)


@pytest.mark.asyncio
async def test_invalid_completion_fails_the_step(pipeline, fake_text):
    fake_text.raw_responses["selection"] = "I would pick something warm."

    result = await pipeline.run(make_unit(), ExecutionConfig())

    assert result.failed_step.step == "selection"
    assert "JSON" in result.failed_step.error


@pytest.mark.asyncio
async def test_missing_field_fails_the_step(pipeline, fake_text):
    fake_text.raw_responses["main_content"] = '{"description": "ok", "materials": []}'

    result = await pipeline.run(make_unit(), ExecutionConfig())

    assert result.failed_step.step == "main_content"
    assert "characteristics" in result.failed_step.error


@pytest.mark.asyncio
async def test_partial_image_batch_fails_the_unit(pipeline, fake_images):
    fake_images.short_slots.add("anchor")

    result = await pipeline.run(make_unit(), ExecutionConfig(room_types=["kitchen"]))

    assert not result.ok
    assert result.failed_step.step == "special_images"
    assert "partial batch" in result.failed_step.error


@pytest.mark.asyncio
async def test_image_slot_failure_fails_images_step_and_skips_special_images(
    pipeline, fake_images
):
    fake_images.failures["scene:dining"] = ProviderPermanentError("Content policy violation")

    result = await pipeline.run(make_unit(), ExecutionConfig(room_types=[]))

    assert result.failed_step.step == "images"
    assert "scene:dining" in result.failed_step.error
    assert "composite" not in fake_images.calls
    assert result.gallery == []


@pytest.mark.asyncio
async def test_manual_selection_skips_selection_call(pipeline, fake_text):
    config = ExecutionConfig(
        approach="industrial", color="charcoal", generate_images=False, room_types=[]
    )

    result = await pipeline.run(make_unit(), config)

    assert result.ok
    assert result.approach == "industrial"
    assert result.color == "charcoal"
    assert fake_text.calls == ["main_content"]
    assert "selection" not in result.call_counts


@pytest.mark.asyncio
async def test_disabled_toggles_skip_steps(pipeline, fake_text, fake_images):
    config = ExecutionConfig(generate_images=False, generate_room_profiles=False)

    result = await pipeline.run(make_unit(), config)

    assert result.ok
    assert [step.step for step in result.steps] == ["selection", "main_content"]
    assert fake_images.calls == []


@pytest.mark.asyncio
async def test_random_price_level_is_stable_per_unit(pipeline):
    config = ExecutionConfig(
        price_level=PriceLevel.RANDOM, generate_images=False, generate_room_profiles=False
    )
    unit = make_unit()

    first = await pipeline.run(unit, config)
    second = await pipeline.run(unit, config)

    assert first.price_level in ("REGULAR", "LUXURY")
    assert first.price_level == second.price_level


@pytest.mark.asyncio
async def test_every_provider_call_goes_through_the_rate_limiter(fake_text, fake_images):
    class CountingLimiter(RateLimiter):
        def __init__(self):
            super().__init__(rate_per_second=0)
            self.acquired = 0

        async def acquire(self, tokens: int = 1) -> None:
            self.acquired += tokens

    limiter = CountingLimiter()
    pipeline = GenerationPipeline(fake_text, fake_images, limiter, image_concurrency=2)

    result = await pipeline.run(make_unit(), ExecutionConfig(room_types=["kitchen"]))

    assert limiter.acquired == sum(result.call_counts.values())


def test_parse_json_object_extracts_embedded_object():
    assert parse_json_object('Sure! {"a": 1} Hope this helps') == {"a": 1}

    with pytest.raises(ValueError):
        parse_json_object("no json here")
    with pytest.raises(ValueError):
        parse_json_object("{not valid}")


def test_manual_selection_requires_approach_and_color():
    with pytest.raises(ValueError):
        ExecutionConfig(approach="industrial")
