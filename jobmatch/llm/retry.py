"""
Retrying decorator for LLM clients.

Adds bounded retry with exponential backoff to any LLMClient. Whether a
failure is retried is decided by its ErrorKind, once per attempt.
"""

import logging
import random
import threading
import time
from typing import Callable, Optional

from ..core.errors import ErrorKind, LLMError, classify_error
from .base import LLMClient
from .models import LLMRequest, LLMResponse

logger = logging.getLogger(__name__)

DEFAULT_BASE_DELAY = 1.0
DEFAULT_BACKOFF_MULTIPLIER = 2.0


class RetryingLLMClient:
    """LLMClient decorator implementing retry with exponential backoff.

    Makes at most ``max_retries + 1`` sequential attempts. After a retryable
    failure with budget left it waits ``base_delay * multiplier ** attempt``
    seconds (attempt index starting at 0), optionally plus a random jitter
    of up to ``jitter`` times that delay. Non-retryable failures and
    exhaustion re-raise the last LLMError with ``attempts`` filled in.
    """

    def __init__(
        self,
        delegate: LLMClient,
        max_retries: int,
        base_delay: float = DEFAULT_BASE_DELAY,
        backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER,
        jitter: float = 0.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Wrap a client with retry.

        Args:
            delegate: Underlying LLM client
            max_retries: Retries after the first attempt (>= 0)
            base_delay: Delay before the first retry, in seconds
            backoff_multiplier: Growth factor for subsequent delays (>= 1)
            jitter: Upper bound of extra random delay, as a fraction of the delay
            sleep: Blocking wait used when no cancel event is supplied

        Raises:
            ValueError: If any setting is out of range
        """
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if base_delay < 0:
            raise ValueError("base_delay must be >= 0")
        if backoff_multiplier < 1:
            raise ValueError("backoff_multiplier must be >= 1")
        if not 0.0 <= jitter <= 1.0:
            raise ValueError("jitter must be between 0.0 and 1.0")

        self.delegate = delegate
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.backoff_multiplier = backoff_multiplier
        self.jitter = jitter
        self._sleep = sleep

    @property
    def provider_name(self) -> str:
        return self.delegate.provider_name

    @property
    def model_name(self) -> str:
        return self.delegate.model_name

    def is_available(self) -> bool:
        return self.delegate.is_available()

    def calculate_delay(self, attempt: int) -> float:
        """Backoff delay in seconds after the failed attempt with this index."""
        delay = self.base_delay * (self.backoff_multiplier ** attempt)
        if self.jitter:
            delay += random.uniform(0, self.jitter * delay)
        return delay

    def chat(self, request: LLMRequest, cancel_event: Optional[threading.Event] = None) -> LLMResponse:
        """Send the request, retrying transient failures.

        Args:
            request: Chat request
            cancel_event: Optional signal; once set, no further attempt is made
                and a pending backoff wait returns immediately

        Returns:
            The first successful response

        Raises:
            LLMError: The last classified failure, or CANCELLED
        """
        total_attempts = self.max_retries + 1

        for attempt in range(total_attempts):
            self._check_cancelled(cancel_event, attempt)
            try:
                response = self.delegate.chat(request)
            except Exception as e:
                error = classify_error(e)
                error.attempts = attempt + 1
            else:
                if attempt > 0:
                    logger.info("LLM request succeeded after %d retries", attempt)
                return response

            self._check_cancelled(cancel_event, attempt + 1, error)

            if not error.retryable:
                logger.debug("Non-retryable error: %s - %s", error.kind.name, error.message)
                raise error

            if attempt + 1 >= total_attempts:
                logger.error(
                    "LLM request failed after %d attempts: %s - %s",
                    total_attempts, error.kind.name, error.message,
                )
                raise error

            delay = self.calculate_delay(attempt)
            logger.warning(
                "LLM request failed (attempt %d/%d): %s - %s. Retrying in %.0fms...",
                attempt + 1, total_attempts, error.kind.name, error.message, delay * 1000,
            )
            self._backoff(delay, cancel_event, attempt + 1, error)

        # max_retries >= 0 guarantees at least one attempt
        raise AssertionError("unreachable")

    def _backoff(
        self,
        delay: float,
        cancel_event: Optional[threading.Event],
        attempts: int,
        last_error: LLMError,
    ) -> None:
        if cancel_event is None:
            self._sleep(delay)
            return
        if cancel_event.wait(delay):
            self._raise_cancelled(attempts, last_error)

    def _check_cancelled(
        self,
        cancel_event: Optional[threading.Event],
        attempts: int,
        last_error: Optional[LLMError] = None,
    ) -> None:
        if cancel_event is not None and cancel_event.is_set():
            self._raise_cancelled(attempts, last_error)

    def _raise_cancelled(self, attempts: int, last_error: Optional[LLMError]) -> None:
        error = LLMError(
            ErrorKind.CANCELLED,
            f"LLM request cancelled after {attempts} attempt(s)",
            last_error,
        )
        error.attempts = attempts
        raise error
