"""Generation step pipeline for one work unit.

Steps run in a fixed order:
1. selection      - pick approach and color (skipped with a manual override)
2. main_content   - description, characteristics, materials, textures
3. room_profiles  - one profile per room type (optional)
4. images         - golden scenes, material and texture shots, room views
5. special_images - composite and anchor, after every other image succeeded

Each step yields a StepResult. The first failed step fails the unit and every
later step is skipped; nothing is retried here.
"""

import asyncio
import json
import zlib
from dataclasses import dataclass, field
from typing import Any

import structlog

from moodseed.models.execution import ExecutionConfig, PriceLevel, WorkUnit
from moodseed.services.exceptions import ProviderError, UnitGenerationError
from moodseed.services.generation import prompts
from moodseed.services.generation.cost_estimator import MATERIAL_SHOTS, TEXTURE_SHOTS
from moodseed.services.generation.providers import ImageGenerator, ImageSpec, TextGenerator
from moodseed.services.generation.rate_limiter import RateLimiter

logger = structlog.get_logger()


@dataclass
class StepResult:
    """Outcome of one pipeline step."""

    step: str
    ok: bool
    output: Any = None
    error: str | None = None


@dataclass
class UnitResult:
    """Outcome of one work unit through the pipeline."""

    unit_id: str
    steps: list[StepResult] = field(default_factory=list)
    call_counts: dict[str, int] = field(default_factory=dict)  # provider calls made, by kind
    approach: str | None = None
    color: str | None = None
    price_level: str | None = None
    content: dict = field(default_factory=dict)
    room_profiles: list[dict] = field(default_factory=list)
    gallery: list[dict] = field(default_factory=list)  # {slot, url}

    @property
    def failed_step(self) -> StepResult | None:
        return next((step for step in self.steps if not step.ok), None)

    @property
    def ok(self) -> bool:
        return self.failed_step is None

    def raise_for_failure(self) -> None:
        """Raise UnitGenerationError naming the failed step, if any."""
        failed = self.failed_step
        if failed is not None:
            raise UnitGenerationError(f"{failed.step}: {failed.error}", step=failed.step)


def parse_json_object(text: str) -> dict:
    """Extract the JSON object from a model completion.

    Raises:
        ValueError: If no JSON object can be parsed
    """
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        raise ValueError("Completion does not contain a JSON object")
    try:
        parsed = json.loads(text[start : end + 1])
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in completion: {e}") from e
    if not isinstance(parsed, dict):
        raise ValueError("Completion JSON is not an object")
    return parsed


def _require_str(data: dict, key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Missing or empty '{key}'")
    return value.strip()


def _require_str_list(data: dict, key: str) -> list[str]:
    value = data.get(key)
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ValueError(f"'{key}' must be a list of strings")
    return [item.strip() for item in value if item.strip()]


class GenerationPipeline:
    """Runs the ordered generation steps for one work unit at a time.

    Every provider call acquires the shared rate limiter first. Image slots of
    one unit are dispatched concurrently, bounded by image_concurrency.
    """

    def __init__(
        self,
        text_generator: TextGenerator,
        image_generator: ImageGenerator,
        rate_limiter: RateLimiter,
        image_concurrency: int = 8,
    ):
        self.text_generator = text_generator
        self.image_generator = image_generator
        self.rate_limiter = rate_limiter
        self.image_concurrency = image_concurrency

    async def run(self, unit: WorkUnit, config: ExecutionConfig) -> UnitResult:
        """Run all steps for a unit.

        Provider and validation failures are captured as failed steps, never raised.

        Args:
            unit: Work unit to generate
            config: Batch configuration (toggles, room types, overrides)

        Returns:
            UnitResult with step outcomes, call counts and generated output
        """
        result = UnitResult(unit_id=unit.unit_id)
        result.price_level = self._resolve_price_level(config, unit)

        steps = [self._select, self._main_content]
        if config.generate_room_profiles and config.room_types:
            steps.append(self._room_profiles)
        if config.generate_images:
            steps.extend([self._images, self._special_images])

        for step in steps:
            step_result = await step(unit, config, result)
            result.steps.append(step_result)
            if not step_result.ok:
                logger.warning(
                    "pipeline.step.failed",
                    unit_id=unit.unit_id,
                    step=step_result.step,
                    error=step_result.error,
                )
                break

        return result

    @staticmethod
    def _resolve_price_level(config: ExecutionConfig, unit: WorkUnit) -> str:
        if config.price_level != PriceLevel.RANDOM:
            return config.price_level.value
        # Stable per unit so a resumed run picks the same tier
        luxury = zlib.crc32(unit.unit_id.encode()) % 2 == 1
        return PriceLevel.LUXURY.value if luxury else PriceLevel.REGULAR.value

    def _count(self, result: UnitResult, kind: str, n: int = 1) -> None:
        result.call_counts[kind] = result.call_counts.get(kind, 0) + n

    async def _text_json(self, result: UnitResult, kind: str, prompt: str) -> dict:
        await self.rate_limiter.acquire()
        self._count(result, kind)
        completion = await self.text_generator.generate_text(prompt)
        return parse_json_object(completion)

    async def _select(self, unit: WorkUnit, config: ExecutionConfig, result: UnitResult) -> StepResult:
        if config.manual_selection:
            result.approach = config.approach
            result.color = config.color
            return StepResult(step="selection", ok=True, output={"manual": True})

        try:
            answer = await self._text_json(result, "selection", prompts.selection_prompt(unit))
            result.approach = _require_str(answer, "approach")
            result.color = _require_str(answer, "color")
        except (ProviderError, ValueError) as e:
            return StepResult(step="selection", ok=False, error=str(e))

        return StepResult(step="selection", ok=True, output=answer)

    async def _main_content(
        self, unit: WorkUnit, config: ExecutionConfig, result: UnitResult
    ) -> StepResult:
        prompt = prompts.main_content_prompt(
            unit, result.approach, result.color, PriceLevel(result.price_level)
        )
        try:
            answer = await self._text_json(result, "main_content", prompt)
            content = {
                "description": _require_str(answer, "description"),
                "characteristics": _require_str_list(answer, "characteristics"),
                "materials": _require_str_list(answer, "materials"),
                "textures": _require_str_list(answer, "textures"),
            }
        except (ProviderError, ValueError) as e:
            return StepResult(step="main_content", ok=False, error=str(e))

        result.content = content
        return StepResult(step="main_content", ok=True, output=content)

    async def _room_profiles(
        self, unit: WorkUnit, config: ExecutionConfig, result: UnitResult
    ) -> StepResult:
        profiles = []
        for room_type in config.room_types:
            prompt = prompts.room_profile_prompt(unit, room_type, result.approach, result.color)
            try:
                answer = await self._text_json(result, "room_profile", prompt)
                profiles.append(
                    {
                        "room_type": room_type,
                        "description": _require_str(answer, "description"),
                        "furniture": answer.get("furniture", []),
                        "lighting": answer.get("lighting", ""),
                        "color_palette": answer.get("color_palette", []),
                    }
                )
            except (ProviderError, ValueError) as e:
                return StepResult(step="room_profiles", ok=False, error=f"{room_type}: {e}")

        result.room_profiles = profiles
        return StepResult(step="room_profiles", ok=True, output=len(profiles))

    def _image_specs(self, unit: WorkUnit, result: UnitResult) -> list[ImageSpec]:
        approach, color = result.approach, result.color
        specs = []

        for index, (name, scene) in enumerate(prompts.GOLDEN_SCENES):
            specs.append(
                ImageSpec(
                    slot=f"scene:{name}",
                    prompt=prompts.golden_scene_prompt(unit, approach, color, scene),
                    aspect_ratio=prompts.ASPECT_RATIOS[index % len(prompts.ASPECT_RATIOS)],
                )
            )

        for material in result.content.get("materials", [])[:MATERIAL_SHOTS]:
            specs.append(
                ImageSpec(
                    slot=f"material:{material}",
                    prompt=prompts.material_prompt(unit, approach, color, material),
                )
            )

        for texture in result.content.get("textures", [])[:TEXTURE_SHOTS]:
            specs.append(
                ImageSpec(
                    slot=f"texture:{texture}",
                    prompt=prompts.texture_prompt(unit, approach, color, texture),
                )
            )

        for profile in result.room_profiles:
            room_type = profile["room_type"]
            for view, aspect_ratio, description in prompts.ROOM_VIEWS:
                specs.append(
                    ImageSpec(
                        slot=f"room:{room_type}:{view}",
                        prompt=prompts.room_view_prompt(unit, approach, color, room_type, description),
                        aspect_ratio=aspect_ratio,
                    )
                )

        return specs

    async def _generate_slot(self, semaphore: asyncio.Semaphore, spec: ImageSpec, result: UnitResult):
        async with semaphore:
            await self.rate_limiter.acquire()
            self._count(result, "image")
            try:
                urls = await self.image_generator.generate_images(spec)
            except ProviderError as e:
                return StepResult(step=spec.slot, ok=False, error=str(e))

        if len(urls) < spec.count:
            return StepResult(
                step=spec.slot,
                ok=False,
                error=f"partial batch: {len(urls)} of {spec.count} images",
            )
        return StepResult(step=spec.slot, ok=True, output=urls[: spec.count])

    async def _dispatch(self, step: str, specs: list[ImageSpec], result: UnitResult) -> StepResult:
        semaphore = asyncio.Semaphore(self.image_concurrency)
        outcomes = await asyncio.gather(
            *(self._generate_slot(semaphore, spec, result) for spec in specs)
        )

        failed = [outcome for outcome in outcomes if not outcome.ok]
        if failed:
            return StepResult(
                step=step,
                ok=False,
                error=f"{len(failed)} of {len(specs)} image slots failed; "
                f"{failed[0].step}: {failed[0].error}",
            )

        gallery = [{"slot": outcome.step, "url": url} for outcome in outcomes for url in outcome.output]
        result.gallery = [*result.gallery, *gallery]
        return StepResult(step=step, ok=True, output=len(gallery))

    async def _images(self, unit: WorkUnit, config: ExecutionConfig, result: UnitResult) -> StepResult:
        try:
            specs = self._image_specs(unit, result)
        except ValueError as e:
            return StepResult(step="images", ok=False, error=str(e))
        return await self._dispatch("images", specs, result)

    async def _special_images(
        self, unit: WorkUnit, config: ExecutionConfig, result: UnitResult
    ) -> StepResult:
        approach, color = result.approach, result.color
        try:
            specs = [
                ImageSpec(
                    slot="composite",
                    prompt=prompts.composite_prompt(
                        unit, approach, color, result.content.get("materials", [])
                    ),
                    aspect_ratio="4:3",
                ),
                ImageSpec(
                    slot="anchor",
                    prompt=prompts.anchor_prompt(unit, approach, color),
                    aspect_ratio="16:9",
                ),
            ]
        except ValueError as e:
            return StepResult(step="special_images", ok=False, error=str(e))
        return await self._dispatch("special_images", specs, result)
