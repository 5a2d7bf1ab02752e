"""
Provider client capability.

Every LLM provider variant, and the retrying decorator around them,
satisfies this protocol through structural typing.
"""

from typing import Protocol, runtime_checkable

from .models import LLMRequest, LLMResponse


@runtime_checkable
class LLMClient(Protocol):
    """Send a chat request, get a response or a classified LLMError."""

    @property
    def provider_name(self) -> str:
        """Provider identifier, e.g. "ollama" or "openai"."""
        ...

    @property
    def model_name(self) -> str:
        """Model used for generation; part of the cache key."""
        ...

    def chat(self, request: LLMRequest) -> LLMResponse:
        """Send the request.

        Raises:
            LLMError: Classified failure
        """
        ...

    def is_available(self) -> bool:
        """Best-effort reachability probe. Never raises."""
        ...
