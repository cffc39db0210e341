"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

This module defines custom exceptions for error handling in the llms package.
"""

from __future__ import annotations

from typing import Literal


RetryableErrorKind = Literal["rate_limited", "server_error", "network_error"]


class LLMError(Exception):
    """Base exception for all completion-model errors."""

    pass


class LLMRetryableError(LLMError):
    """
    Transient failures: rate limits, provider outages, network trouble.
    These errors may be retried with backoff.
    """

    kind: RetryableErrorKind = "server_error"


class LLMRateLimitedError(LLMRetryableError):
    """Provider rejected the request for rate reasons. `retry_after` is in seconds."""

    kind: RetryableErrorKind = "rate_limited"

    def __init__(self, message: str = "rate limited", *, retry_after: float | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class LLMServerError(LLMRetryableError):
    kind: RetryableErrorKind = "server_error"


class LLMNetworkError(LLMRetryableError):
    kind: RetryableErrorKind = "network_error"


class LLMInvalidRequestError(LLMError):
    """The request was rejected as malformed, too long or otherwise invalid."""

    pass


class LLMAuthenticationError(LLMError):
    pass


class LLMCapabilityError(LLMError):
    """
    Raised when a model does not support a requested capability
    (e.g. native streaming or tool calling).
    """

    pass


class LLMCancelledError(LLMError):
    """Raised when an in-flight request is cancelled by the caller."""

    pass


class RetriesExhaustedError(LLMError):
    """
    A transient failure persisted past the retry policy.

    Attributes:
        attempts: Number of attempts made, including the first.
        last_error: Classified error from the final attempt.
    """

    def __init__(self, attempts: int, last_error: Exception) -> None:
        super().__init__(f"Model call failed after {attempts} attempt(s): {last_error}")
        self.attempts = attempts
        self.last_error = last_error
