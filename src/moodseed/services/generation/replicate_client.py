"""Replicate API clients for text and image generation with error classification."""

import asyncio
from typing import Any

import replicate
from replicate.exceptions import ReplicateError as ReplicateAPIError

from moodseed.services.exceptions import (
    ContentPolicyError,
    ProviderError,
    ProviderPermanentError,
    ProviderTransientError,
)
from moodseed.services.generation.providers import ImageSpec


def classify_error(exception: Exception) -> ProviderError:
    """Classify exception into retry category.

    Args:
        exception: Original exception from Replicate SDK or network layer

    Returns:
        Classified ProviderError subclass instance

    Classification rules:
        - Timeout errors → ProviderTransientError
        - 429 (rate limit) → ProviderTransientError
        - 503 (service unavailable) → ProviderTransientError
        - 401/403 (authentication) → ProviderPermanentError
        - Content policy violations → ContentPolicyError
        - Other HTTP errors → ProviderPermanentError
        - Connection errors → ProviderTransientError
    """
    error_message = str(exception)
    error_message_lower = error_message.lower()

    if "timeout" in error_message_lower or isinstance(exception, TimeoutError):
        return ProviderTransientError(f"Network timeout: {error_message}")

    if "429" in error_message or "rate limit" in error_message_lower:
        return ProviderTransientError(f"Rate limit exceeded: {error_message}")

    if "503" in error_message or "service unavailable" in error_message_lower:
        return ProviderTransientError(f"Service unavailable: {error_message}")

    if (
        "401" in error_message
        or "403" in error_message
        or "unauthorized" in error_message_lower
        or "forbidden" in error_message_lower
        or "authentication" in error_message_lower
        or "invalid api token" in error_message_lower
    ):
        return ProviderPermanentError(f"Authentication failed: {error_message}")

    if (
        "content policy" in error_message_lower
        or "nsfw" in error_message_lower
        or "safety" in error_message_lower
        or "inappropriate" in error_message_lower
    ):
        return ContentPolicyError(f"Content policy violation: {error_message}")

    if isinstance(exception, (ConnectionError, OSError)):
        return ProviderTransientError(f"Connection error: {error_message}")

    return ProviderPermanentError(f"Permanent error: {error_message}")


async def _run(client: replicate.Client | None, model: str, model_input: dict[str, Any]) -> Any:
    """Run a model in a worker thread (the SDK is synchronous) and classify failures."""
    if client is None:
        raise ProviderPermanentError("REPLICATE_API_TOKEN not configured")

    try:
        return await asyncio.to_thread(client.run, model, input=model_input)

    except ReplicateAPIError as e:
        raise classify_error(e) from e

    except (ConnectionError, OSError, TimeoutError) as e:
        raise classify_error(e) from e

    except Exception as e:
        # Unexpected errors - treat as permanent to avoid retrying blindly
        raise ProviderPermanentError(f"Unexpected error: {e}") from e


class ReplicateTextGenerator:
    """Text completions through a Replicate-hosted language model."""

    def __init__(self, api_token: str, model: str = "meta/meta-llama-3-70b-instruct"):
        self.api_token = api_token
        self.model = model
        self.client = replicate.Client(api_token=api_token) if api_token else None

    async def generate_text(self, prompt: str) -> str:
        """Generate one completion.

        Raises:
            ProviderTransientError: Temporary failure
            ContentPolicyError: Prompt rejected
            ProviderPermanentError: Permanent failure or empty output
        """
        output = await _run(self.client, self.model, {"prompt": prompt, "max_tokens": 2048})

        # Language models stream their output as an iterator of string chunks
        if isinstance(output, str):
            text = output
        else:
            text = "".join(str(chunk) for chunk in output)

        if not text.strip():
            raise ProviderPermanentError("Empty completion from Replicate")
        return text


class ReplicateImageGenerator:
    """Image generation through a Replicate-hosted diffusion model."""

    def __init__(self, api_token: str, model: str = "black-forest-labs/flux-schnell"):
        self.api_token = api_token
        self.model = model
        self.client = replicate.Client(api_token=api_token) if api_token else None

    async def generate_images(self, spec: ImageSpec) -> list[str]:
        """Generate images for one slot.

        Returns:
            Image URLs from the Replicate CDN; may be fewer than spec.count

        Raises:
            ProviderTransientError: Temporary failure
            ContentPolicyError: Prompt rejected
            ProviderPermanentError: Permanent failure or unexpected output
        """
        output = await _run(
            self.client,
            self.model,
            {
                "prompt": spec.prompt,
                "num_outputs": spec.count,
                "aspect_ratio": spec.aspect_ratio,
            },
        )

        # Output format varies by model and SDK version
        if isinstance(output, str):
            items: list[Any] = [output]
        elif isinstance(output, list):
            items = output
        else:
            raise ProviderPermanentError(f"Unexpected output format from Replicate: {type(output)}")

        return [str(getattr(item, "url", item)) for item in items if item]
