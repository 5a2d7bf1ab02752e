"""
Local LLM client backed by Ollama.

Talks to Ollama's native chat endpoint over HTTP.
"""

import logging
import time
from typing import Any, Dict, Optional

import httpx

from ..config.loader import LocalLLMConfig
from ..core.errors import ErrorKind, LLMError, classify_error, classify_status
from ..core.token_counter import TokenUsage
from .models import LLMRequest, LLMResponse

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT = 30.0


class OllamaClient:
    """LLM client for a local Ollama server.

    Satisfies the LLMClient protocol. Every failure is raised as a
    classified LLMError.
    """

    def __init__(self, config: LocalLLMConfig, http_client: Optional[httpx.Client] = None):
        """Initialize the Ollama client.

        Args:
            config: Local provider settings (base URL, model, timeout)
            http_client: Optional preconfigured httpx client, used by tests

        Raises:
            ValueError: If base URL or model is missing/empty
        """
        if not config.base_url or not config.base_url.strip():
            raise ValueError("base_url is required and cannot be empty")
        if not config.model or not config.model.strip():
            raise ValueError("model is required and cannot be empty")

        self.base_url = config.base_url.rstrip("/")
        self.model = config.model
        self.timeout = config.timeout
        self._http = http_client or httpx.Client(
            timeout=httpx.Timeout(config.timeout, connect=CONNECT_TIMEOUT)
        )
        logger.info("Initialized Ollama client: base_url=%s, model=%s", self.base_url, self.model)

    @property
    def provider_name(self) -> str:
        return "ollama"

    @property
    def model_name(self) -> str:
        return self.model

    def build_payload(self, request: LLMRequest) -> Dict[str, Any]:
        """Encode a request in Ollama's /api/chat format."""
        payload: Dict[str, Any] = {
            "model": self.model,
            "stream": False,
            "messages": request.message_dicts(),
            "options": {
                "temperature": request.temperature,
                "num_predict": request.max_tokens,
            },
        }
        if request.json_mode:
            payload["format"] = "json"
        return payload

    def chat(self, request: LLMRequest) -> LLMResponse:
        """Send a chat request to Ollama.

        Raises:
            LLMError: Classified failure (404 means the model isn't pulled)
        """
        start = time.monotonic()
        try:
            response = self._http.post(f"{self.base_url}/api/chat", json=self.build_payload(request))
        except httpx.TimeoutException as e:
            raise LLMError(
                ErrorKind.REQUEST_TIMEOUT,
                f"Ollama request timed out after {self.timeout} seconds",
                e,
            )
        except httpx.ConnectError as e:
            raise LLMError(
                ErrorKind.CONNECTION_FAILED,
                f"Failed to connect to Ollama at {self.base_url}. Is Ollama running?",
                e,
            )
        except Exception as e:
            raise classify_error(e)

        if response.is_error:
            self._raise_for_status(response)

        return self._parse_response(response, start)

    def _raise_for_status(self, response: httpx.Response) -> None:
        kind = classify_status(response.status_code, response.text)
        if kind is ErrorKind.MODEL_NOT_FOUND:
            message = f"Model '{self.model}' not found. Run: ollama pull {self.model}"
        else:
            message = f"Ollama returned error {response.status_code}: {response.text}"
        raise LLMError(kind, message)

    def _parse_response(self, response: httpx.Response, start: float) -> LLMResponse:
        try:
            body = response.json()
            content = body["message"]["content"]
        except Exception as e:
            raise LLMError(ErrorKind.INVALID_RESPONSE, f"Failed to parse Ollama response: {e}", e)

        if not isinstance(content, str):
            raise LLMError(ErrorKind.INVALID_RESPONSE, "Ollama response content is not text")

        return LLMResponse(
            content=content,
            model=self.model,
            provider=self.provider_name,
            usage=TokenUsage.from_counts(body.get("prompt_eval_count"), body.get("eval_count")),
            finish_reason=body.get("done_reason") or "stop",
            latency_ms=int((time.monotonic() - start) * 1000),
        )

    def is_available(self) -> bool:
        """Probe the tag listing endpoint. Never raises."""
        try:
            response = self._http.get(f"{self.base_url}/api/tags")
            return response.is_success
        except Exception as e:
            logger.debug("Ollama availability check failed: %s", e)
            return False
