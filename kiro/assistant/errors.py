"""Error taxonomy and retry policy for the assistant pipeline.

User-visible failures:
- BudgetExceeded: pre-flight token check rejected the prompt
- ExternalCallFailure: the chat provider failed (surfaced with retry affordance)

Everything raised by the vision path is caught by the resolver and never
reaches the UI.
"""

import asyncio
import random
from typing import Optional, Callable, Any, Dict

from loguru import logger


class KiroError(Exception):
    """Base class for assistant errors."""


class BudgetExceeded(KiroError):
    """Prompt is larger than the per-request token ceiling."""

    def __init__(self, estimated_tokens: int, limit: int, warning: str):
        super().__init__(warning)
        self.estimated_tokens = estimated_tokens
        self.limit = limit
        self.warning = warning


class ExternalCallFailure(KiroError):
    """The chat or vision provider rejected or failed the call."""

    def __init__(self,
                 code: str,
                 message: str,
                 status: Optional[int] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status = status
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            'code': self.code,
            'message': self.message,
            'status': self.status,
        }


class MalformedExternalResponse(ExternalCallFailure):
    """Provider answered, but not with something we can use."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__('INVALID_RESPONSE', message, details=details)


class RetryPolicy:
    """Retry policy with exponential backoff."""

    def __init__(self,
                 max_retries: int = 3,
                 base_delay: float = 0.5,
                 max_delay: float = 3.0,
                 exponential_base: float = 2.0,
                 jitter: bool = True,
                 retry_on: Callable[[Exception], bool] = lambda e: True):
        """
        Initialize retry policy.

        Args:
            max_retries: Maximum retry attempts
            base_delay: Base delay in seconds
            max_delay: Maximum delay in seconds
            exponential_base: Base for exponential backoff
            jitter: Whether to add +/-20% jitter
            retry_on: Predicate deciding whether an exception is retryable
        """
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.retry_on = retry_on

    def calculate_delay(self, attempt: int) -> float:
        """
        Calculate delay for attempt.

        Args:
            attempt: Attempt number (0-based)

        Returns:
            Delay in seconds
        """
        delay = self.base_delay * (self.exponential_base ** attempt)
        delay = min(delay, self.max_delay)

        if self.jitter:
            delay = delay * (0.8 + 0.4 * random.random())

        return max(0.1, delay) if self.base_delay > 0 else 0.0

    async def execute(self, func: Callable, *args, **kwargs) -> Any:
        """
        Execute coroutine function with retry policy.

        Raises:
            Exception: The last error once retries are exhausted, or the first
                error the predicate refuses to retry
        """
        for attempt in range(self.max_retries + 1):
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                if attempt >= self.max_retries or not self.retry_on(e):
                    raise

                delay = self.calculate_delay(attempt)
                logger.warning(f"Retry {attempt + 1}/{self.max_retries} after {delay:.2f}s: {e}")
                await asyncio.sleep(delay)
