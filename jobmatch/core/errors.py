"""
Error taxonomy for LLM provider calls.

Reduces raw transport and provider failures to a fixed set of kinds,
each with a fixed retry eligibility.
"""

import json
from enum import Enum
from typing import Optional

import httpx
import openai


class ErrorKind(Enum):
    """Kinds of LLM failure with their numeric code and retryability."""
    CONNECTION_FAILED = (3001, "LLM service connection failed", True)
    INVALID_API_KEY = (3002, "Invalid or missing API key", False)
    REQUEST_TIMEOUT = (3003, "LLM request timeout", True)
    INVALID_RESPONSE = (3004, "Invalid response format", True)
    QUOTA_EXCEEDED = (3005, "API quota exceeded", False)
    MODEL_NOT_FOUND = (3006, "Model not found or not installed", False)
    CONTENT_FILTERED = (3007, "Content filtered by moderation", False)
    RATE_LIMITED = (3008, "Rate limited, please retry later", True)
    SERVICE_ERROR = (3009, "LLM service returned a server error", True)
    CANCELLED = (3010, "LLM request cancelled", False)
    CONFIG_ERROR = (3011, "Invalid LLM configuration", False)
    UNKNOWN = (3099, "Unknown LLM error", True)

    def __init__(self, code: int, description: str, retryable: bool):
        self.code = code
        self.description = description
        self.retryable = retryable


class JobMatchError(Exception):
    """Base error for the application, carrying a numeric code."""

    def __init__(self, code: int, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


class LLMError(JobMatchError):
    """A classified failure from an LLM provider call.

    The original exception, when there is one, is kept as ``__cause__``.
    ``attempts`` records how many provider invocations were made before
    this error surfaced.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(kind.code, message or kind.description)
        self.kind = kind
        self.attempts = 1
        if cause is not None:
            self.__cause__ = cause

    @property
    def retryable(self) -> bool:
        """Whether retrying the same request could succeed."""
        return self.kind.retryable

    def __repr__(self) -> str:
        return f"LLMError({self.kind.name}, {self.message!r}, attempts={self.attempts})"


class StorageError(JobMatchError):
    """Raised when the cache or job store cannot read or write."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(4001, message)
        if cause is not None:
            self.__cause__ = cause


def is_retryable(kind: ErrorKind) -> bool:
    """Return the fixed retry eligibility of an error kind."""
    return kind.retryable


_QUOTA_MARKERS = ("insufficient_quota", "quota exceeded", "exceeded your current quota")
_FILTER_MARKERS = ("content_filter", "content_policy", "content management policy")


def classify_status(status_code: int, message: str = "") -> ErrorKind:
    """Map an HTTP status code (and error body text) to an error kind.

    Args:
        status_code: HTTP status returned by the provider
        message: Error text from the response body, used to refine 400/429

    Returns:
        The matching ErrorKind
    """
    lowered = (message or "").lower()
    if status_code in (401, 403):
        return ErrorKind.INVALID_API_KEY
    if status_code == 404:
        return ErrorKind.MODEL_NOT_FOUND
    if status_code == 408:
        return ErrorKind.REQUEST_TIMEOUT
    if status_code == 429:
        if any(marker in lowered for marker in _QUOTA_MARKERS):
            return ErrorKind.QUOTA_EXCEEDED
        return ErrorKind.RATE_LIMITED
    if status_code == 400 and any(marker in lowered for marker in _FILTER_MARKERS):
        return ErrorKind.CONTENT_FILTERED
    if 500 <= status_code < 600:
        return ErrorKind.SERVICE_ERROR
    return ErrorKind.UNKNOWN


def _describe(exc: BaseException) -> str:
    text = str(exc)
    return text if text else type(exc).__name__


def classify_error(exc: BaseException) -> LLMError:
    """Classify a raw failure into exactly one LLMError.

    Pure function: never raises. Errors that are already classified are
    returned unchanged. Anything unrecognised becomes UNKNOWN.

    Args:
        exc: The exception raised by a transport or provider SDK

    Returns:
        LLMError wrapping the original exception as its cause
    """
    if isinstance(exc, LLMError):
        return exc

    # APITimeoutError subclasses APIConnectionError, so check it first
    if isinstance(exc, openai.APITimeoutError):
        return LLMError(ErrorKind.REQUEST_TIMEOUT, f"Request timed out: {_describe(exc)}", exc)
    if isinstance(exc, openai.APIConnectionError):
        return LLMError(ErrorKind.CONNECTION_FAILED, f"Connection failed: {_describe(exc)}", exc)
    if isinstance(exc, openai.APIStatusError):
        detail = f"{_describe(exc)} {getattr(exc, 'code', '') or ''} {exc.body or ''}"
        kind = classify_status(exc.status_code, detail)
        return LLMError(kind, f"Provider error ({exc.status_code}): {_describe(exc)}", exc)
    if isinstance(exc, openai.APIResponseValidationError):
        return LLMError(ErrorKind.INVALID_RESPONSE, f"Malformed response: {_describe(exc)}", exc)

    if isinstance(exc, httpx.TimeoutException):
        return LLMError(ErrorKind.REQUEST_TIMEOUT, f"Request timed out: {_describe(exc)}", exc)
    if isinstance(exc, httpx.HTTPStatusError):
        status_code = exc.response.status_code
        kind = classify_status(status_code, exc.response.text)
        return LLMError(kind, f"Provider error ({status_code}): {exc.response.text}", exc)
    if isinstance(exc, httpx.TransportError):
        return LLMError(ErrorKind.CONNECTION_FAILED, f"Connection failed: {_describe(exc)}", exc)

    if isinstance(exc, TimeoutError):
        return LLMError(ErrorKind.REQUEST_TIMEOUT, f"Request timed out: {_describe(exc)}", exc)
    if isinstance(exc, ConnectionError):
        return LLMError(ErrorKind.CONNECTION_FAILED, f"Connection failed: {_describe(exc)}", exc)
    if isinstance(exc, (json.JSONDecodeError, KeyError, IndexError)):
        return LLMError(ErrorKind.INVALID_RESPONSE, f"Malformed response: {_describe(exc)}", exc)

    return LLMError(ErrorKind.UNKNOWN, f"Unexpected error: {_describe(exc)}", exc)
