"""Prompt construction and validation for style generation.

Builds the text prompts for selection, main content and room profiles, and the
image prompts for every image slot of a style. Prompts are validated before
they are sent to a provider.
"""

from moodseed.models.execution import PriceLevel, WorkUnit

MAX_TEXT_PROMPT_LENGTH = 4000
MAX_IMAGE_PROMPT_LENGTH = 1000

# Design vocabulary the selection step chooses from
APPROACHES = [
    "minimalist",
    "warm-modern",
    "classic",
    "industrial",
    "organic",
    "eclectic",
    "coastal",
    "rustic",
]

COLORS = [
    "warm-white",
    "sand",
    "terracotta",
    "olive",
    "sage",
    "charcoal",
    "navy",
    "blush",
    "ochre",
    "slate-blue",
]

GOLDEN_SCENES = [
    ("entrance", "Wide establishing view of the main living space at golden hour"),
    ("seating", "Inviting seating arrangement with layered textiles"),
    ("dining", "Dining area set for an intimate dinner"),
    ("reading-nook", "Quiet reading corner beside a window"),
    ("vignette", "Styled shelf vignette with curated objects"),
    ("evening", "Evening ambience with warm ambient lighting"),
]

ASPECT_RATIOS = ["16:9", "4:3", "1:1", "3:4", "9:16"]

ROOM_VIEWS = [
    ("wide", "16:9", "Wide-angle view of the whole room"),
    ("corner", "4:3", "View from the corner showing depth and layout"),
    ("detail", "1:1", "Close-up detail of signature furniture and finishes"),
    ("feature", "3:4", "Focus on the room's feature wall or focal point"),
]


def validate_prompt(prompt: str, max_length: int = MAX_IMAGE_PROMPT_LENGTH) -> str:
    """Validate prompt text before it is sent to a provider.

    Args:
        prompt: Prompt text
        max_length: Maximum allowed length

    Returns:
        Validated prompt (unchanged if valid)

    Raises:
        ValueError: If prompt is empty, None, or exceeds max_length characters
    """
    if not prompt:
        raise ValueError("Prompt cannot be empty or None")

    if not isinstance(prompt, str):
        raise ValueError(f"Prompt must be a string, got {type(prompt).__name__}")

    if len(prompt) > max_length:
        raise ValueError(
            f"Prompt exceeds maximum length of {max_length} characters (got {len(prompt)})"
        )

    return prompt


def _unit_context(unit: WorkUnit) -> str:
    lines = [f"Style: {unit.name}", f"Category: {unit.category_slug}"]
    if unit.period:
        lines.append(f"Period: {unit.period}")
    if unit.description:
        lines.append(f"Description: {unit.description}")
    return "\n".join(lines)


def selection_prompt(unit: WorkUnit) -> str:
    return validate_prompt(
        "You are an interior design curator.\n"
        f"{_unit_context(unit)}\n\n"
        f"Choose the best design approach from: {', '.join(APPROACHES)}.\n"
        f"Choose the best dominant color from: {', '.join(COLORS)}.\n"
        'Answer with JSON only: {"approach": "...", "color": "...", "reasoning": "..."}',
        MAX_TEXT_PROMPT_LENGTH,
    )


def main_content_prompt(unit: WorkUnit, approach: str, color: str, price_level: PriceLevel) -> str:
    tier = "luxury, high-end" if price_level == PriceLevel.LUXURY else "regular, accessible"
    return validate_prompt(
        "Write the content for an interior design style page.\n"
        f"{_unit_context(unit)}\n"
        f"Approach: {approach}\nColor: {color}\nPrice tier: {tier}\n\n"
        "Answer with JSON only, with these keys:\n"
        '"description" (string), "characteristics" (list of strings), '
        '"materials" (list of up to 5 material names), '
        '"textures" (list of up to 5 texture names).',
        MAX_TEXT_PROMPT_LENGTH,
    )


def room_profile_prompt(unit: WorkUnit, room_type: str, approach: str, color: str) -> str:
    return validate_prompt(
        f"Describe how the {unit.name} style ({approach} approach, {color} palette) "
        f"is applied to a {room_type.replace('-', ' ')}.\n"
        "Answer with JSON only, with these keys:\n"
        '"description" (string), "furniture" (list of strings), '
        '"lighting" (string), "color_palette" (list of strings).',
        MAX_TEXT_PROMPT_LENGTH,
    )


def _style_suffix(unit: WorkUnit, approach: str, color: str) -> str:
    return (
        f"{unit.name} interior style, {approach} approach, {color} color palette, "
        "photorealistic architectural photography, natural light"
    )


def golden_scene_prompt(unit: WorkUnit, approach: str, color: str, scene: str) -> str:
    return validate_prompt(f"{scene}. {_style_suffix(unit, approach, color)}")


def material_prompt(unit: WorkUnit, approach: str, color: str, material: str) -> str:
    return validate_prompt(
        f"Macro close-up of {material} as used in the {unit.name} style, "
        f"{color} tones, studio lighting, high detail"
    )


def texture_prompt(unit: WorkUnit, approach: str, color: str, texture: str) -> str:
    return validate_prompt(
        f"Seamless surface texture: {texture}, {unit.name} style, {color} tones, flat even lighting"
    )


def room_view_prompt(unit: WorkUnit, approach: str, color: str, room_type: str, view: str) -> str:
    return validate_prompt(
        f"{view} of a {room_type.replace('-', ' ')}. {_style_suffix(unit, approach, color)}"
    )


def composite_prompt(unit: WorkUnit, approach: str, color: str, materials: list[str]) -> str:
    swatches = ", ".join(materials) if materials else "fabric and wood swatches"
    return validate_prompt(
        f"Artistic flat-lay mood board for the {unit.name} style: {swatches}, "
        f"{color} color chips, paper samples, top-down view"
    )


def anchor_prompt(unit: WorkUnit, approach: str, color: str) -> str:
    return validate_prompt(
        f"Signature hero shot that defines the {unit.name} style. "
        f"{_style_suffix(unit, approach, color)}, editorial magazine cover quality"
    )
