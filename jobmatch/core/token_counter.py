"""
Token usage accounting.

Normalizes token counts reported by the different LLM providers.
"""

from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class TokenUsage:
    """Token counts reported for a single LLM call.

    Contains exact provider counts; missing fields are recorded as zero.
    """
    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        """Total tokens used (prompt + completion)."""
        return self.prompt_tokens + self.completion_tokens

    @classmethod
    def from_counts(cls, prompt: Optional[Any], completion: Optional[Any]) -> "TokenUsage":
        """Build usage from possibly-missing provider fields."""
        return cls(
            prompt_tokens=int(prompt or 0),
            completion_tokens=int(completion or 0),
        )
