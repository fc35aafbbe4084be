"""Provider contracts consumed by the generation pipeline."""

from typing import Protocol

from pydantic import BaseModel, Field


class ImageSpec(BaseModel):
    """One image request: a slot of a style and how many images it needs."""

    slot: str
    prompt: str
    count: int = Field(default=1, ge=1, le=4)
    aspect_ratio: str = "1:1"


class TextGenerator(Protocol):
    async def generate_text(self, prompt: str) -> str:
        """Return one text completion; may raise ProviderError."""
        ...


class ImageGenerator(Protocol):
    async def generate_images(self, spec: ImageSpec) -> list[str]:
        """Return stored-asset URLs; may return fewer than requested or raise ProviderError."""
        ...
