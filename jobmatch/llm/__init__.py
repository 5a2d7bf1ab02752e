"""
LLM clients for jobmatch.

Provider variants, the retrying decorator and the factory that wires
them from configuration.
"""

from .base import LLMClient
from .factory import LLMClientFactory
from .models import LLMRequest, LLMResponse, Message
from .ollama_client import OllamaClient
from .openai_client import OpenAIClient
from .retry import RetryingLLMClient

__all__ = [
    "LLMClient",
    "LLMClientFactory",
    "LLMRequest",
    "LLMResponse",
    "Message",
    "OllamaClient",
    "OpenAIClient",
    "RetryingLLMClient",
]
