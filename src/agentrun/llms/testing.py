"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

Deterministic models for tests and examples.
"""

from __future__ import annotations

import inspect
from typing import Any, AsyncIterator, Awaitable, Callable, Iterable, Sequence

from .model import Model
from .types import (
    CompletionRequest,
    CompletionResponse,
    StreamEvent,
    ToolCall,
    Usage,
)


ScriptStep = CompletionResponse | Exception | Callable[[CompletionRequest], Any]


def text_response(text: str, *, usage: Usage | None = None, stop_reason: str = "end_turn") -> CompletionResponse:
    return CompletionResponse(
        content=text,
        stop_reason=stop_reason,  # type: ignore[arg-type]
        usage=usage or Usage(input_tokens=1, output_tokens=1),
    )


def tool_call_response(
    *calls: ToolCall,
    content: str = "",
    usage: Usage | None = None,
) -> CompletionResponse:
    return CompletionResponse(
        content=content,
        tool_calls=tuple(calls),
        stop_reason="tool_use",
        usage=usage or Usage(input_tokens=1, output_tokens=1),
    )


class ScriptedModel(Model):
    """
    Replays a fixed script of responses, one per `complete` call.

    A script step may be a `CompletionResponse`, an exception to raise, or a
    callable receiving the request and returning either of those (sync or
    async). Every request is recorded in `requests`.
    """

    def __init__(self, steps: Iterable[ScriptStep], *, name: str = "scripted") -> None:
        self._steps = list(steps)
        self._name = name
        self.requests: list[CompletionRequest] = []

    @property
    def model_name(self) -> str:
        return self._name

    @property
    def calls(self) -> int:
        return len(self.requests)

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        self.requests.append(request)
        if not self._steps:
            raise AssertionError("ScriptedModel ran out of scripted responses")
        step = self._steps.pop(0)
        if callable(step) and not isinstance(step, (CompletionResponse, Exception)):
            step = step(request)
            if inspect.isawaitable(step):
                step = await step
        if isinstance(step, Exception):
            raise step
        return step


class FunctionModel(Model):
    """Model backed by a plain function of the request (sync or async)."""

    def __init__(
        self,
        fn: Callable[[CompletionRequest], CompletionResponse | Awaitable[CompletionResponse]],
        *,
        stream_fn: Callable[[CompletionRequest], AsyncIterator[StreamEvent]] | None = None,
        name: str = "function",
    ) -> None:
        self._fn = fn
        self._stream_fn = stream_fn
        self._name = name
        self.requests: list[CompletionRequest] = []

    @property
    def model_name(self) -> str:
        return self._name

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        self.requests.append(request)
        result = self._fn(request)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def stream(self, request: CompletionRequest) -> AsyncIterator[StreamEvent]:
        if self._stream_fn is None:
            async for event in super().stream(request):
                yield event
            return
        self.requests.append(request)
        async for event in self._stream_fn(request):
            yield event


def last_user_text(messages: Sequence[Any]) -> str:
    for message in reversed(messages):
        if getattr(message, "role", None) == "user":
            return message.text
    return ""
