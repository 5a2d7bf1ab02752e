"""
Unit tests for the LLM client factory.
"""

from unittest.mock import patch

import pytest

from jobmatch.config.loader import CloudLLMConfig, CommonLLMConfig, LLMConfig
from jobmatch.core.errors import ErrorKind, LLMError
from jobmatch.llm.factory import LLMClientFactory
from jobmatch.llm.ollama_client import OllamaClient
from jobmatch.llm.openai_client import OpenAIClient
from jobmatch.llm.retry import RetryingLLMClient


def _config(provider="local", retry_times=2, api_key="sk-test") -> LLMConfig:
    return LLMConfig(
        provider=provider,
        cloud=CloudLLMConfig(api_key=api_key),
        common=CommonLLMConfig(retry_times=retry_times, retry_base_delay=0.5, retry_multiplier=3.0),
    )


class TestCreate:
    """Test provider selection and retry wrapping."""

    def test_local_provider_wrapped_with_retry(self):
        client = LLMClientFactory(_config("local")).create()

        assert isinstance(client, RetryingLLMClient)
        assert isinstance(client.delegate, OllamaClient)
        assert client.max_retries == 2
        assert client.base_delay == 0.5
        assert client.backoff_multiplier == 3.0
        assert client.provider_name == "ollama"

    def test_cloud_provider(self):
        client = LLMClientFactory(_config("cloud")).create()

        assert isinstance(client.delegate, OpenAIClient)
        assert client.provider_name == "openai"

    @pytest.mark.parametrize("provider", ["LOCAL", "Local", " local "])
    def test_provider_name_is_case_insensitive(self, provider):
        client = LLMClientFactory(_config(provider, retry_times=0)).create()
        assert isinstance(client, OllamaClient)

    def test_zero_retries_returns_bare_client(self):
        client = LLMClientFactory(_config("cloud", retry_times=0)).create()
        assert isinstance(client, OpenAIClient)

    def test_unknown_provider_is_config_error(self):
        with pytest.raises(LLMError) as exc_info:
            LLMClientFactory(_config("azure")).create()

        assert exc_info.value.kind == ErrorKind.CONFIG_ERROR
        assert not exc_info.value.retryable
        assert "azure" in exc_info.value.message


class TestAvailability:
    """Test provider reachability checks and fallback."""

    def test_cloud_requires_credential(self):
        assert LLMClientFactory(_config(api_key="sk-test")).is_cloud_available() is True
        assert LLMClientFactory(_config(api_key="")).is_cloud_available() is False
        assert LLMClientFactory(_config(api_key=None)).is_cloud_available() is False
        assert LLMClientFactory(_config(api_key="   ")).is_cloud_available() is False

    @patch.object(OllamaClient, "is_available", return_value=True)
    def test_local_probe(self, mock_available):
        assert LLMClientFactory(_config()).is_local_available() is True
        mock_available.assert_called_once_with()

    @patch.object(OllamaClient, "is_available", side_effect=RuntimeError("boom"))
    def test_local_probe_never_raises(self, mock_available):
        assert LLMClientFactory(_config()).is_local_available() is False

    @patch.object(OpenAIClient, "is_available", return_value=True)
    @patch.object(OllamaClient, "is_available", return_value=True)
    def test_fallback_prefers_primary(self, mock_local, mock_cloud):
        client = LLMClientFactory(_config("local")).create_with_fallback()

        assert client.provider_name == "ollama"
        mock_cloud.assert_not_called()

    @patch.object(OpenAIClient, "is_available", return_value=True)
    @patch.object(OllamaClient, "is_available", return_value=False)
    def test_fallback_to_cloud(self, mock_local, mock_cloud):
        client = LLMClientFactory(_config("local")).create_with_fallback()

        assert isinstance(client, RetryingLLMClient)
        assert client.provider_name == "openai"

    @patch.object(OpenAIClient, "is_available", return_value=False)
    @patch.object(OllamaClient, "is_available", return_value=False)
    def test_no_provider_available(self, mock_local, mock_cloud):
        with pytest.raises(LLMError) as exc_info:
            LLMClientFactory(_config("cloud")).create_with_fallback()

        assert exc_info.value.kind == ErrorKind.CONNECTION_FAILED

    def test_fallback_with_unknown_provider(self):
        with pytest.raises(LLMError) as exc_info:
            LLMClientFactory(_config("azure")).create_with_fallback()

        assert exc_info.value.kind == ErrorKind.CONFIG_ERROR
