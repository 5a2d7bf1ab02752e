"""
Cloud LLM client for OpenAI-compatible APIs.

Wraps the OpenAI SDK; the SDK's built-in retries are disabled so that
retry policy lives in one place.
"""

import logging
import time
from typing import Any, Dict, Optional

from openai import OpenAI

from ..config.loader import CloudLLMConfig
from ..core.errors import ErrorKind, LLMError, classify_error
from ..core.token_counter import TokenUsage
from .models import LLMRequest, LLMResponse

logger = logging.getLogger(__name__)


class OpenAIClient:
    """LLM client for OpenAI and OpenAI-compatible endpoints.

    Satisfies the LLMClient protocol. A missing API key is reported as
    INVALID_API_KEY without touching the network.
    """

    def __init__(self, config: CloudLLMConfig):
        """Initialize the cloud client.

        Args:
            config: Cloud provider settings (API key, model, base URL, timeout)

        Raises:
            ValueError: If model is missing/empty
        """
        if not config.model or not config.model.strip():
            raise ValueError("model is required and cannot be empty")

        self.base_url = (config.base_url or "").rstrip("/") or None
        self.model = config.model
        self.api_key = config.api_key or None
        self.timeout = config.timeout
        self._client: Optional[OpenAI] = None
        logger.info("Initialized OpenAI client: base_url=%s, model=%s", self.base_url, self.model)

    @property
    def provider_name(self) -> str:
        return "openai"

    @property
    def model_name(self) -> str:
        return self.model

    @property
    def client(self) -> OpenAI:
        """Lazily build the SDK client once a key is known to exist."""
        if self._client is None:
            self._client = OpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout,
                max_retries=0,
            )
        return self._client

    def build_params(self, request: LLMRequest) -> Dict[str, Any]:
        """Encode a request as chat.completions.create keyword arguments."""
        params: Dict[str, Any] = {
            "model": self.model,
            "messages": request.message_dicts(),
            "temperature": request.temperature,
            "max_tokens": request.max_tokens,
        }
        if request.json_mode:
            params["response_format"] = {"type": "json_object"}
        return params

    def chat(self, request: LLMRequest) -> LLMResponse:
        """Create a chat completion.

        Raises:
            LLMError: Classified failure
        """
        if not self.api_key:
            raise LLMError(
                ErrorKind.INVALID_API_KEY,
                "API key not configured. Set LLM_API_KEY environment variable.",
            )

        start = time.monotonic()
        try:
            completion = self.client.chat.completions.create(**self.build_params(request))
        except Exception as e:
            raise classify_error(e)

        return self._parse_completion(completion, start)

    def _parse_completion(self, completion: Any, start: float) -> LLMResponse:
        try:
            choice = completion.choices[0]
            content = choice.message.content
            finish_reason = choice.finish_reason or "stop"
        except (AttributeError, IndexError, TypeError) as e:
            raise LLMError(ErrorKind.INVALID_RESPONSE, f"Failed to parse OpenAI response: {e}", e)

        if finish_reason == "content_filter":
            raise LLMError(ErrorKind.CONTENT_FILTERED, "Response blocked by the provider's content filter")
        if not isinstance(content, str):
            raise LLMError(ErrorKind.INVALID_RESPONSE, "OpenAI response has no text content")

        usage = completion.usage
        return LLMResponse(
            content=content,
            model=getattr(completion, "model", None) or self.model,
            provider=self.provider_name,
            usage=TokenUsage.from_counts(
                getattr(usage, "prompt_tokens", 0),
                getattr(usage, "completion_tokens", 0),
            ),
            finish_reason=finish_reason,
            latency_ms=int((time.monotonic() - start) * 1000),
        )

    def is_available(self) -> bool:
        """Require a key and a successful model listing. Never raises."""
        if not self.api_key:
            return False
        try:
            self.client.models.list()
            return True
        except Exception as e:
            logger.debug("OpenAI availability check failed: %s", e)
            return False
