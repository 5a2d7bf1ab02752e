"""
Factory for LLM clients.

Selects the provider variant from configuration and applies the retry
policy.
"""

import logging
from typing import Callable, Dict

from ..config.loader import PROVIDER_CLOUD, PROVIDER_LOCAL, LLMConfig
from ..core.errors import ErrorKind, LLMError
from .base import LLMClient
from .ollama_client import OllamaClient
from .openai_client import OpenAIClient
from .retry import RetryingLLMClient

logger = logging.getLogger(__name__)


class LLMClientFactory:
    """Creates LLM clients based on the ``llm`` configuration section."""

    def __init__(self, config: LLMConfig):
        self.config = config
        self._builders: Dict[str, Callable[[], LLMClient]] = {
            PROVIDER_LOCAL: self._create_local_client,
            PROVIDER_CLOUD: self._create_cloud_client,
        }

    def create(self) -> LLMClient:
        """Create the configured client, wrapped with retry when enabled.

        Raises:
            LLMError: CONFIG_ERROR if the provider name is unrecognized
        """
        logger.debug("Creating LLM client for provider: %s", self.config.provider)
        return self.wrap_with_retry(self.create_for(self.config.provider))

    def create_for(self, provider: str) -> LLMClient:
        """Create the bare client for a provider name (case-insensitive).

        Raises:
            LLMError: CONFIG_ERROR if the provider name is unrecognized
        """
        builder = self._builders.get((provider or "").strip().lower())
        if builder is None:
            raise LLMError(
                ErrorKind.CONFIG_ERROR,
                f"Unknown LLM provider: {provider}. Use '{PROVIDER_LOCAL}' or '{PROVIDER_CLOUD}'.",
            )
        return builder()

    def create_with_fallback(self) -> LLMClient:
        """Use the configured provider if reachable, else the other one.

        Raises:
            LLMError: CONFIG_ERROR for an unknown provider, CONNECTION_FAILED
                if neither provider is available
        """
        primary = self.config.provider.strip().lower()
        if primary not in self._builders:
            self.create_for(primary)
        fallback = PROVIDER_CLOUD if primary == PROVIDER_LOCAL else PROVIDER_LOCAL

        for provider in (primary, fallback):
            try:
                client = self.create_for(provider)
            except ValueError as e:
                logger.warning("Failed to create %s LLM client: %s", provider, e)
                continue
            if client.is_available():
                logger.info(
                    "Using %s LLM provider: %s (%s)",
                    "primary" if provider == primary else "fallback",
                    client.provider_name,
                    client.model_name,
                )
                return self.wrap_with_retry(client)
            logger.warning("LLM provider '%s' not available", provider)

        raise LLMError(
            ErrorKind.CONNECTION_FAILED,
            "No LLM provider available. Check your configuration and ensure "
            "Ollama is running or an API key is set.",
        )

    def wrap_with_retry(self, client: LLMClient) -> LLMClient:
        """Wrap a client with retry; a retry count of 0 returns it as is."""
        common = self.config.common
        if common.retry_times <= 0:
            return client
        return RetryingLLMClient(
            client,
            max_retries=common.retry_times,
            base_delay=common.retry_base_delay,
            backoff_multiplier=common.retry_multiplier,
        )

    def is_local_available(self) -> bool:
        """Probe the local base URL. Never raises."""
        try:
            return self._create_local_client().is_available()
        except Exception as e:
            logger.debug("Local provider check failed: %s", e)
            return False

    def is_cloud_available(self) -> bool:
        """Cloud needs a non-empty credential. Never raises."""
        api_key = self.config.cloud.api_key
        return bool(api_key and api_key.strip())

    def _create_local_client(self) -> LLMClient:
        return OllamaClient(self.config.local)

    def _create_cloud_client(self) -> LLMClient:
        return OpenAIClient(self.config.cloud)
