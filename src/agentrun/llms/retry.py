"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

This module implements the retry policy and the retrying wrapper used for every
model call made by the run loop.
"""

from __future__ import annotations

import asyncio
import os
import random
import time
import uuid
from dataclasses import dataclass, field
from typing import AsyncIterator, Awaitable, Callable, Sequence

from .errors import (
    LLMCancelledError,
    LLMError,
    LLMRateLimitedError,
    LLMRetryableError,
    RetriesExhaustedError,
    RetryableErrorKind,
)
from .model import Model, classify_error
from .observability import LLMLifecycleEvent, LLMObserverCallback, notify_observers
from .types import CompletionRequest, CompletionResponse, StreamCompletedEvent, StreamEvent
from .utils import CancellationToken, sleep_unless_cancelled


_ALL_RETRYABLE: frozenset[RetryableErrorKind] = frozenset(
    {"rate_limited", "server_error", "network_error"}
)


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """
    Exponential backoff policy for transient model failures.

    Attributes:
        max_attempts: Total attempts including the first one.
        initial_delay_s: Delay before the second attempt.
        max_delay_s: Upper bound for any computed delay.
        backoff_multiplier: Growth factor between consecutive delays.
        jitter: Fraction of the delay randomly added or removed.
        retryable_errors: Error kinds that may be retried.
    """

    max_attempts: int = 3
    initial_delay_s: float = 0.1
    max_delay_s: float = 30.0
    backoff_multiplier: float = 2.0
    jitter: float = 0.1
    retryable_errors: frozenset[RetryableErrorKind] = field(default_factory=lambda: _ALL_RETRYABLE)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.initial_delay_s < 0 or self.max_delay_s < 0:
            raise ValueError("retry delays must be >= 0")
        if self.jitter < 0:
            raise ValueError("jitter must be >= 0")

    @staticmethod
    def none() -> RetryPolicy:
        """A single attempt; a transient failure surfaces as `RetriesExhaustedError`."""
        return RetryPolicy(max_attempts=1)

    @staticmethod
    def default() -> RetryPolicy:
        return RetryPolicy()

    @staticmethod
    def aggressive() -> RetryPolicy:
        return RetryPolicy(
            max_attempts=5,
            initial_delay_s=0.2,
            max_delay_s=60.0,
            backoff_multiplier=2.5,
            jitter=0.2,
        )

    @staticmethod
    def from_env() -> RetryPolicy:
        return RetryPolicy(
            max_attempts=int(os.getenv("AGENTRUN_RETRY_MAX_ATTEMPTS", "3")),
            initial_delay_s=float(os.getenv("AGENTRUN_RETRY_INITIAL_DELAY_S", "0.1")),
            max_delay_s=float(os.getenv("AGENTRUN_RETRY_MAX_DELAY_S", "30")),
            backoff_multiplier=float(os.getenv("AGENTRUN_RETRY_BACKOFF_MULTIPLIER", "2.0")),
            jitter=float(os.getenv("AGENTRUN_RETRY_JITTER", "0.1")),
        )

    def base_delay(self, attempt: int) -> float:
        """Delay before retry number `attempt`, without jitter."""
        if attempt <= 0:
            return 0.0
        raw = self.initial_delay_s * (self.backoff_multiplier ** (attempt - 1))
        return min(self.max_delay_s, raw)

    def delay(self, attempt: int) -> float:
        base = self.base_delay(attempt)
        if base <= 0 or self.jitter <= 0:
            return base
        spread = base * self.jitter
        return max(0.0, base + random.uniform(-spread, spread))

    def should_retry(self, error: Exception) -> bool:
        return isinstance(error, LLMRetryableError) and error.kind in self.retryable_errors


class RetryingCompletion:
    """
    Wraps a `Model` so each call is retried on transient failures.

    Failures the policy does not retry surface immediately as their classified
    `LLMError`. A retryable failure left over after the last permitted attempt
    surfaces as `RetriesExhaustedError`. Cancellation is honoured before each
    attempt, while a call is in flight and during backoff sleeps.
    """

    def __init__(
        self,
        model: Model,
        policy: RetryPolicy | None = None,
        *,
        observers: Sequence[LLMObserverCallback] = (),
        cancel_token: CancellationToken | None = None,
    ) -> None:
        self.model = model
        self.policy = policy or RetryPolicy()
        self._observers = list(observers)
        self._cancel = cancel_token

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        return await self._call_with_retries(lambda: self.model.complete(request))

    async def stream(
        self,
        request: CompletionRequest,
        on_event: Callable[[StreamEvent], Awaitable[None]],
    ) -> CompletionResponse:
        """
        Consume `model.stream(request)`, forwarding each event to `on_event`.

        Attempts are retried only while nothing has been forwarded yet; a
        failure after the first forwarded event is raised as-is.
        """
        forwarded = False

        async def _consume() -> CompletionResponse:
            nonlocal forwarded
            events: AsyncIterator[StreamEvent] = self.model.stream(request)
            async for event in events:
                if isinstance(event, StreamCompletedEvent):
                    return event.response
                forwarded = True
                await on_event(event)
            raise LLMError("Stream ended without a completed event")

        return await self._call_with_retries(_consume, can_retry=lambda: not forwarded)

    async def _call_with_retries(
        self,
        fn: Callable[[], Awaitable[CompletionResponse]],
        *,
        can_retry: Callable[[], bool] = lambda: True,
    ) -> CompletionResponse:
        request_id = uuid.uuid4().hex
        model_name = self.model.model_name
        policy = self.policy

        await self._emit("request_start", request_id, model_name, attempt=1)

        for attempt in range(1, policy.max_attempts + 1):
            self._raise_if_cancelled()
            started_at = time.monotonic()
            try:
                result = await self._unless_cancelled(fn)
            except LLMCancelledError:
                raise
            except Exception as e:
                classified = classify_error(e)
                latency_ms = (time.monotonic() - started_at) * 1000.0

                transient = policy.should_retry(classified) and can_retry()
                if transient and attempt < policy.max_attempts:
                    delay_s = self._delay_for(attempt, classified)
                    await self._emit(
                        "retry",
                        request_id,
                        model_name,
                        attempt=attempt,
                        latency_ms=latency_ms,
                        delay_s=delay_s,
                        error=classified,
                    )
                    if await sleep_unless_cancelled(delay_s, self._cancel):
                        raise LLMCancelledError("Model call cancelled during retry backoff") from e
                    continue

                await self._emit(
                    "request_error",
                    request_id,
                    model_name,
                    attempt=attempt,
                    latency_ms=latency_ms,
                    error=classified,
                )
                if transient:
                    raise RetriesExhaustedError(attempt, classified) from e
                if classified is e:
                    raise
                raise classified from e

            await self._emit(
                "request_success",
                request_id,
                model_name,
                attempt=attempt,
                latency_ms=(time.monotonic() - started_at) * 1000.0,
                usage=result.usage,
            )
            return result

        raise LLMError("retry loop exited without a result")  # pragma: no cover

    def _delay_for(self, attempt: int, error: LLMError) -> float:
        if isinstance(error, LLMRateLimitedError) and error.retry_after is not None:
            if 0 < error.retry_after <= self.policy.max_delay_s:
                return error.retry_after
        return self.policy.delay(attempt)

    async def _unless_cancelled(self, fn: Callable[[], Awaitable[CompletionResponse]]) -> CompletionResponse:
        """
        Await one attempt, racing it against the cancel token.

        The attempt is cancelled without waiting for it to unwind once the
        token fires.
        """
        if self._cancel is None:
            return await fn()

        task = asyncio.ensure_future(fn())
        waiter = asyncio.ensure_future(self._cancel.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except BaseException:
            task.cancel()
            raise
        finally:
            if not waiter.done():
                waiter.cancel()
        if task in done:
            return task.result()
        task.cancel()
        task.add_done_callback(_consume_result)
        raise LLMCancelledError("Model call cancelled")

    def _raise_if_cancelled(self) -> None:
        if self._cancel is not None and self._cancel.cancelled:
            raise LLMCancelledError("Model call cancelled")

    async def _emit(
        self,
        event_type: str,
        request_id: str,
        model: str,
        *,
        attempt: int | None = None,
        latency_ms: float | None = None,
        delay_s: float | None = None,
        usage=None,
        error: Exception | None = None,
    ) -> None:
        if not self._observers:
            return
        event = LLMLifecycleEvent(
            event_type=event_type,  # type: ignore[arg-type]
            request_id=request_id,
            model=model,
            attempt=attempt,
            latency_ms=latency_ms,
            delay_s=delay_s,
            usage=usage,
            error_class=type(error).__name__ if error is not None else None,
            error_message=str(error) if error is not None else None,
        )
        await notify_observers(self._observers, event)


def _consume_result(task: asyncio.Future[CompletionResponse]) -> None:
    if not task.cancelled():
        task.exception()
