from __future__ import annotations

import asyncio
import time

import pytest

from agentrun.llms import (
    CancellationToken,
    CompletionRequest,
    LLMCancelledError,
    LLMError,
    LLMInvalidRequestError,
    LLMRateLimitedError,
    LLMServerError,
    RetriesExhaustedError,
    RetryingCompletion,
    RetryPolicy,
    StreamTextDeltaEvent,
    UserMessage,
)
from agentrun.llms.testing import FunctionModel, ScriptedModel, text_response


def run_async(coro):
    return asyncio.run(coro)


def _request() -> CompletionRequest:
    return CompletionRequest(messages=(UserMessage.from_text("hi"),))


_FAST = RetryPolicy(max_attempts=3, initial_delay_s=0.001, max_delay_s=0.01, jitter=0.0)


def test_transient_failures_then_success():
    model = ScriptedModel([LLMServerError("503"), ConnectionError("reset"), text_response("ok")])
    completion = RetryingCompletion(model, _FAST)

    response = run_async(completion.complete(_request()))

    assert response.content == "ok"
    assert model.calls == 3


def test_persistent_transient_failure_exhausts_retries():
    model = ScriptedModel([LLMServerError("503")] * 3)
    completion = RetryingCompletion(model, _FAST)

    with pytest.raises(RetriesExhaustedError) as exc:
        run_async(completion.complete(_request()))

    assert exc.value.attempts == 3
    assert isinstance(exc.value.last_error, LLMServerError)
    assert model.calls == 3


def test_none_policy_surfaces_first_transient_failure():
    model = ScriptedModel([LLMRateLimitedError("slow down"), text_response("never")])
    completion = RetryingCompletion(model, RetryPolicy.none())

    with pytest.raises(RetriesExhaustedError) as exc:
        run_async(completion.complete(_request()))

    assert exc.value.attempts == 1
    assert model.calls == 1


def test_non_retryable_error_is_not_retried():
    model = ScriptedModel([LLMInvalidRequestError("bad request"), text_response("never")])
    completion = RetryingCompletion(model, _FAST)

    with pytest.raises(LLMInvalidRequestError):
        run_async(completion.complete(_request()))

    assert model.calls == 1


def test_kind_outside_retryable_set_surfaces_as_classified_error():
    policy = RetryPolicy(
        max_attempts=3,
        initial_delay_s=0.001,
        jitter=0.0,
        retryable_errors=frozenset({"server_error"}),
    )
    model = ScriptedModel([LLMRateLimitedError("429"), text_response("never")])
    completion = RetryingCompletion(model, policy)

    with pytest.raises(LLMRateLimitedError):
        run_async(completion.complete(_request()))

    assert model.calls == 1


def test_unclassified_exception_is_wrapped_as_llm_error():
    model = ScriptedModel([ValueError("weird payload")])
    completion = RetryingCompletion(model, _FAST)

    with pytest.raises(LLMError) as exc:
        run_async(completion.complete(_request()))

    assert isinstance(exc.value.__cause__, ValueError)


def test_retry_after_hint_is_used_when_within_cap():
    policy = RetryPolicy(max_attempts=2, initial_delay_s=5.0, max_delay_s=1.0, jitter=0.0)
    model = ScriptedModel([LLMRateLimitedError("429", retry_after=0.01), text_response("ok")])
    completion = RetryingCompletion(model, policy)

    started = time.monotonic()
    run_async(completion.complete(_request()))

    assert time.monotonic() - started < 0.5


def test_lifecycle_events_are_emitted_and_observer_failures_ignored():
    events = []

    def observer(event):
        events.append(event.event_type)

    def broken(event):
        raise RuntimeError("observer crash")

    model = ScriptedModel([LLMServerError("503"), text_response("ok")])
    completion = RetryingCompletion(model, _FAST, observers=[broken, observer])

    run_async(completion.complete(_request()))

    assert events == ["request_start", "retry", "request_success"]


def test_cancellation_during_backoff_stops_promptly():
    policy = RetryPolicy(max_attempts=3, initial_delay_s=5.0, jitter=0.0)

    async def scenario():
        token = CancellationToken()
        model = ScriptedModel([LLMServerError("503"), text_response("ok")])
        completion = RetryingCompletion(model, policy, cancel_token=token)
        task = asyncio.create_task(completion.complete(_request()))
        await asyncio.sleep(0.05)
        token.cancel()
        started = time.monotonic()
        with pytest.raises(LLMCancelledError):
            await task
        return time.monotonic() - started, model.calls

    elapsed, calls = run_async(scenario())
    assert elapsed < 1.0
    assert calls == 1


def test_cancellation_interrupts_in_flight_call():
    async def slow(request):
        await asyncio.sleep(3.0)
        return text_response("late")

    async def scenario():
        token = CancellationToken()
        completion = RetryingCompletion(FunctionModel(slow), _FAST, cancel_token=token)
        task = asyncio.create_task(completion.complete(_request()))
        await asyncio.sleep(0.05)
        token.cancel()
        started = time.monotonic()
        with pytest.raises(LLMCancelledError):
            await task
        return time.monotonic() - started

    assert run_async(scenario()) < 1.0


def test_stream_forwards_events_and_returns_final_response():
    forwarded = []

    async def on_event(event):
        forwarded.append(event)

    model = ScriptedModel([text_response("hello")])
    completion = RetryingCompletion(model, _FAST)

    response = run_async(completion.stream(_request(), on_event))

    assert response.content == "hello"
    assert forwarded == [StreamTextDeltaEvent(delta="hello")]


def test_stream_is_not_retried_after_events_were_forwarded():
    attempts = 0

    async def stream_fn(request):
        nonlocal attempts
        attempts += 1
        yield StreamTextDeltaEvent(delta="partial")
        raise LLMServerError("503 mid-stream")

    async def on_event(event):
        return None

    model = FunctionModel(lambda request: text_response("unused"), stream_fn=stream_fn)
    completion = RetryingCompletion(model, _FAST)

    with pytest.raises(LLMServerError):
        run_async(completion.stream(_request(), on_event))

    assert attempts == 1
