"""
Cache-backed structured extraction.

Turns free text into a JSON object through an LLM, consulting the
content-addressed cache first so identical text is never parsed twice
by the same schema and model.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..core.errors import ErrorKind, LLMError
from ..core.token_counter import TokenUsage
from ..storage.cache import ParseCache, compute_cache_key
from .base import LLMClient
from .models import LLMRequest, LLMResponse

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParseResult:
    """Parsed object plus the response that produced it."""
    data: Dict[str, Any]
    response: LLMResponse
    cache_key: str

    @property
    def from_cache(self) -> bool:
        return self.response.from_cache


def extract_json(content: str) -> str:
    """Strip Markdown code fences that models wrap around JSON."""
    text = (content or "").strip()
    if text.startswith("```"):
        text = text[3:]
        if text.lower().startswith("json"):
            text = text[4:]
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
    return text.strip()


class StructuredParser:
    """Extracts a JSON object from text with an LLM, cached by content."""

    def __init__(
        self,
        client: LLMClient,
        cache: Optional[ParseCache],
        schema_version: str,
        system_prompt: str,
        temperature: float = 0.1,
        max_tokens: int = 4096,
    ):
        """Initialize the parser.

        Args:
            client: LLM client (usually the retrying wrapper)
            cache: Parse cache, or None to always call the LLM
            schema_version: Version tag of the target schema and prompt
            system_prompt: Instructions describing the expected JSON
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate

        Raises:
            ValueError: If schema_version is empty
        """
        if not schema_version or not schema_version.strip():
            raise ValueError("schema_version is required and cannot be empty")
        self.client = client
        self.cache = cache
        self.schema_version = schema_version
        self.system_prompt = system_prompt
        self.temperature = temperature
        self.max_tokens = max_tokens

    def cache_key(self, text: str) -> str:
        return compute_cache_key(text, self.schema_version, self.client.model_name)

    def parse(self, text: str) -> ParseResult:
        """Parse text into a JSON object.

        Args:
            text: Source text

        Returns:
            ParseResult; ``from_cache`` tells whether the LLM was called

        Raises:
            ValueError: If text is empty
            LLMError: If the call fails or the reply is not a JSON object
            StorageError: If the cache can't be read or written
        """
        if not text or not text.strip():
            raise ValueError("text is required and cannot be empty")

        key = self.cache_key(text)
        if self.cache is not None:
            entry = self.cache.get(key)
            if entry is not None:
                logger.info("Parse served from cache: %s", key[:8])
                response = LLMResponse(
                    content=json.dumps(entry.value, ensure_ascii=False),
                    model=entry.response.get("model", self.client.model_name),
                    provider=entry.response.get("provider", self.client.provider_name),
                    usage=TokenUsage.from_counts(
                        entry.response.get("prompt_tokens"),
                        entry.response.get("completion_tokens"),
                    ),
                    from_cache=True,
                )
                return ParseResult(data=entry.value, response=response, cache_key=key)

        logger.info("Parsing with %s (%s), content hash: %s",
                    self.client.provider_name, self.client.model_name, key[:8])
        request = LLMRequest.of(
            text,
            system_prompt=self.system_prompt,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            json_mode=True,
        )
        response = self.client.chat(request)
        data = self._decode(response.content)

        if self.cache is not None:
            self.cache.put(key, data, response)

        return ParseResult(data=data, response=response, cache_key=key)

    def _decode(self, content: str) -> Dict[str, Any]:
        try:
            data = json.loads(extract_json(content))
        except json.JSONDecodeError as e:
            raise LLMError(ErrorKind.INVALID_RESPONSE, f"LLM reply is not valid JSON: {e}", e)
        if not isinstance(data, dict):
            raise LLMError(ErrorKind.INVALID_RESPONSE, "LLM reply is not a JSON object")
        return data
