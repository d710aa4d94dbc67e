"""Abstract base class for LLM providers."""

from abc import ABC, abstractmethod
from typing import Any


class LLMProvider(ABC):
    """Abstract base class for LLM providers.

    The analysis routines only depend on this interface, so tests can hand them a
    mock and deployments can point at any OpenAI-compatible endpoint.
    """

    @abstractmethod
    def chat(
        self,
        messages: list[dict[str, Any]],
        max_tokens: int | None = None,
        temperature: float | None = None,
        **kwargs: Any,
    ) -> str:
        """Generate chat completion from messages.

        Args:
            messages: List of message dicts with 'role' and 'content'.
            max_tokens: Maximum tokens to generate.
            temperature: Sampling temperature.
            **kwargs: Additional provider-specific parameters.

        Returns:
            Generated chat response.
        """
        pass

    @abstractmethod
    def describe_image(
        self,
        prompt: str,
        image: bytes,
        mime_type: str,
        max_tokens: int | None = None,
        **kwargs: Any,
    ) -> str:
        """Answer `prompt` about an image.

        Args:
            prompt: Instructions for the vision model.
            image: Raw image bytes.
            mime_type: Image MIME type, e.g. "image/jpeg".
            max_tokens: Maximum tokens to generate.
            **kwargs: Additional provider-specific parameters.

        Returns:
            Generated response text.
        """
        pass

    def generate(
        self,
        prompt: str,
        max_tokens: int | None = None,
        temperature: float | None = None,
        **kwargs: Any,
    ) -> str:
        """Single-turn convenience wrapper around `chat`."""
        return self.chat(
            [{"role": "user", "content": prompt}],
            max_tokens=max_tokens,
            temperature=temperature,
            **kwargs,
        )
