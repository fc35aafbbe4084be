"""Cost estimation for batch style generation.

Pure functions: a batch configuration (or the call counts observed during a
run) is mapped to a USD cost from fixed per-call prices. No I/O.
"""

import math

from pydantic import BaseModel

from moodseed.models.execution import ExecutionConfig

# Per-call provider prices in USD (conservative)
PRICING = {
    "selection": 0.0005,  # approach + color selection
    "main_content": 0.001,
    "room_profile": 0.0005,
    "image": 0.003,
}

# Images generated per unit
GOLDEN_SCENES = 6
MATERIAL_SHOTS = 5
TEXTURE_SHOTS = 5
SPECIAL_IMAGES = 2  # composite + anchor
VIEWS_PER_ROOM = 4

TEXT_CALL_KINDS = ("selection", "main_content", "room_profile")


class CostBreakdown(BaseModel):
    """Predicted or observed cost split by provider kind."""

    call_counts: dict[str, int]
    text_cost: float
    image_cost: float
    total: float


def planned_call_counts(config: ExecutionConfig, unit_count: int = 1) -> dict[str, int]:
    """Number of provider calls of each kind a batch implies.

    Args:
        config: Batch configuration
        unit_count: Number of work units in the batch

    Returns:
        Mapping of call kind to count
    """
    rooms = len(config.room_types) if config.generate_room_profiles else 0

    images_per_unit = 0
    if config.generate_images:
        images_per_unit = GOLDEN_SCENES + MATERIAL_SHOTS + TEXTURE_SHOTS + SPECIAL_IMAGES
        images_per_unit += rooms * VIEWS_PER_ROOM

    return {
        "selection": 0 if config.manual_selection else unit_count,
        "main_content": unit_count,
        "room_profile": rooms * unit_count,
        "image": images_per_unit * unit_count,
    }


def actual_cost(call_counts: dict[str, int]) -> CostBreakdown:
    """Price the calls actually observed during a run.

    Unknown call kinds are ignored.
    """
    counts = {kind: call_counts.get(kind, 0) for kind in PRICING}
    text_cost = sum(counts[kind] * PRICING[kind] for kind in TEXT_CALL_KINDS)
    image_cost = counts["image"] * PRICING["image"]
    return CostBreakdown(
        call_counts=counts,
        text_cost=round(text_cost, 6),
        image_cost=round(image_cost, 6),
        total=round(text_cost + image_cost, 6),
    )


def estimate(config: ExecutionConfig, unit_count: int = 1) -> CostBreakdown:
    """Predict the cost of a batch before it runs."""
    return actual_cost(planned_call_counts(config, unit_count))


def credits_for(config: ExecutionConfig, credit_value_usd: float) -> int:
    """Credits charged for one unit: the unit estimate rounded up, at least 1.

    Args:
        config: Batch configuration
        credit_value_usd: USD value of one credit

    Returns:
        Positive integer number of credits
    """
    if credit_value_usd <= 0:
        raise ValueError("credit_value_usd must be positive")
    per_unit = estimate(config, 1).total
    # Rounded first so float noise like 24.000000001 does not add a credit
    return max(1, math.ceil(round(per_unit / credit_value_usd, 6)))


def estimate_duration_minutes(config: ExecutionConfig, unit_count: int) -> int:
    """Rough wall-clock estimate for a batch, in whole minutes."""
    minutes_per_unit = 0.75  # selection + main content

    if config.generate_images:
        minutes_per_unit += 1

    if config.generate_room_profiles:
        minutes_per_unit += 2
        if config.generate_images:
            minutes_per_unit += 3

    return math.ceil(unit_count * minutes_per_unit)


def format_cost(cost: float) -> str:
    """Format a USD amount for display: 3 decimals below one dollar, else 2."""
    return f"${cost:.{3 if cost < 1 else 2}f}"


def format_duration(minutes: int) -> str:
    if minutes < 60:
        return f"~{minutes} min"
    hours, mins = divmod(minutes, 60)
    return f"~{hours}h {mins}m" if mins else f"~{hours}h"
