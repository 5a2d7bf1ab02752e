"""
Request and response models for LLM chat calls.

Both are immutable once built.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from ..core.token_counter import TokenUsage

ROLES = ("system", "user", "assistant")


@dataclass(frozen=True)
class Message:
    """A single role-tagged chat message."""
    role: str
    content: str

    def __post_init__(self):
        """Validate the role."""
        if self.role not in ROLES:
            raise ValueError(f"role must be one of {list(ROLES)}, got {self.role!r}")

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls("system", content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls("user", content)

    @classmethod
    def assistant(cls, content: str) -> "Message":
        return cls("assistant", content)

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class LLMRequest:
    """Chat request: ordered messages plus generation parameters.

    Attributes:
        messages: Conversation, oldest first
        temperature: Sampling temperature (0.0 - 2.0)
        max_tokens: Maximum tokens to generate
        json_mode: Ask the provider for strict JSON output
    """
    messages: Tuple[Message, ...]
    temperature: float = 0.1
    max_tokens: int = 4096
    json_mode: bool = False

    def __post_init__(self):
        """Freeze the message sequence and validate parameters."""
        object.__setattr__(self, "messages", tuple(self.messages))
        if not self.messages:
            raise ValueError("messages is required and cannot be empty")
        if not 0.0 <= self.temperature <= 2.0:
            raise ValueError("temperature must be between 0.0 and 2.0")
        if self.max_tokens <= 0:
            raise ValueError("max_tokens must be > 0")

    @classmethod
    def of(cls, prompt: str, system_prompt: Optional[str] = None, **params: Any) -> "LLMRequest":
        """Create a request from a user prompt and optional system prompt."""
        messages: List[Message] = []
        if system_prompt:
            messages.append(Message.system(system_prompt))
        messages.append(Message.user(prompt))
        return cls(messages=tuple(messages), **params)

    def message_dicts(self) -> List[Dict[str, str]]:
        """Messages in the wire shape shared by Ollama and OpenAI."""
        return [message.to_dict() for message in self.messages]


@dataclass(frozen=True)
class LLMResponse:
    """Generated content plus usage metadata."""
    content: str
    model: str
    provider: str
    usage: TokenUsage = field(default_factory=TokenUsage)
    finish_reason: str = "stop"
    latency_ms: int = 0
    from_cache: bool = False

    @property
    def total_tokens(self) -> int:
        return self.usage.total_tokens
