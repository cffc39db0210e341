"""
Loop observers: the seam through which the three run modes see one control flow.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Protocol, Sequence

from ..llms.types import (
    CompletionRequest,
    CompletionResponse,
    StreamEvent,
    StreamTextDeltaEvent,
    StreamToolCallDeltaEvent,
    StreamToolCallEndEvent,
    StreamToolCallStartEvent,
    ToolCall,
    Usage,
)
from ..tools.engine import ToolCallResult
from .types import (
    AgentResult,
    ContentDeltaEvent,
    EndNode,
    FinalResultEvent,
    ModelRequestNode,
    ModelResponseNode,
    ToolCallDeltaEvent,
    ToolCallEndEvent,
    ToolCallStartEvent,
    ToolExecutionNode,
    ToolResultEvent,
    ToolResultsNode,
    UsageEvent,
    UserPromptNode,
)

Emit = Callable[[Any], Awaitable[None]]


class LoopObserver(Protocol):
    """
    Hooks invoked by the run loop at fixed points of every iteration.

    Observers are notified in loop order and must not mutate run state.
    """

    async def on_loop_start(self, prompt: str | None) -> None: ...

    async def on_before_model_call(self, request: CompletionRequest) -> None: ...

    async def on_model_response(self, response: CompletionResponse, usage: Usage) -> None: ...

    async def on_before_tool_batch(self, calls: Sequence[ToolCall]) -> None: ...

    async def on_tool_complete(self, result: ToolCallResult) -> None: ...

    async def on_after_tool_batch(self, results: Sequence[ToolCallResult]) -> None: ...

    async def on_end(self, result: AgentResult[Any]) -> None: ...


class NoOpLoopObserver:
    """Observer for the blocking run mode."""

    async def on_loop_start(self, prompt: str | None) -> None:
        return None

    async def on_before_model_call(self, request: CompletionRequest) -> None:
        return None

    async def on_model_response(self, response: CompletionResponse, usage: Usage) -> None:
        return None

    async def on_before_tool_batch(self, calls: Sequence[ToolCall]) -> None:
        return None

    async def on_tool_complete(self, result: ToolCallResult) -> None:
        return None

    async def on_after_tool_batch(self, results: Sequence[ToolCallResult]) -> None:
        return None

    async def on_end(self, result: AgentResult[Any]) -> None:
        return None


class IteratingLoopObserver(NoOpLoopObserver):
    """Publishes one node per loop step for the step-wise iteration mode."""

    def __init__(self, emit: Emit) -> None:
        self._emit = emit

    async def on_loop_start(self, prompt: str | None) -> None:
        await self._emit(UserPromptNode(prompt=prompt))

    async def on_before_model_call(self, request: CompletionRequest) -> None:
        await self._emit(ModelRequestNode(request=request))

    async def on_model_response(self, response: CompletionResponse, usage: Usage) -> None:
        await self._emit(ModelResponseNode(response=response, usage=usage))

    async def on_before_tool_batch(self, calls: Sequence[ToolCall]) -> None:
        await self._emit(ToolExecutionNode(calls=tuple(calls)))

    async def on_after_tool_batch(self, results: Sequence[ToolCallResult]) -> None:
        await self._emit(ToolResultsNode(results=tuple(results)))

    async def on_end(self, result: AgentResult[Any]) -> None:
        await self._emit(EndNode(result=result))


class StreamingLoopObserver(NoOpLoopObserver):
    """
    Publishes coarse loop events for the live-stream mode.

    Fine-grained model deltas do not pass through the loop hooks; the run
    loop's stream adapter hands them to `forward`.
    """

    def __init__(self, emit: Emit) -> None:
        self._emit = emit
        self._current_tool_id: str | None = None

    async def forward(self, event: StreamEvent) -> None:
        if isinstance(event, StreamTextDeltaEvent):
            if event.delta:
                await self._emit(ContentDeltaEvent(delta=event.delta))
        elif isinstance(event, StreamToolCallStartEvent):
            self._current_tool_id = event.id
            await self._emit(ToolCallStartEvent(id=event.id, name=event.name))
        elif isinstance(event, StreamToolCallDeltaEvent):
            await self._emit(ToolCallDeltaEvent(id=event.id or self._current_tool_id, delta=event.delta))
        elif isinstance(event, StreamToolCallEndEvent):
            if self._current_tool_id == event.id:
                self._current_tool_id = None
            await self._emit(ToolCallEndEvent(id=event.id))

    async def on_model_response(self, response: CompletionResponse, usage: Usage) -> None:
        await self._emit(UsageEvent(usage=usage))

    async def on_tool_complete(self, result: ToolCallResult) -> None:
        await self._emit(ToolResultEvent(result=result))

    async def on_end(self, result: AgentResult[Any]) -> None:
        await self._emit(FinalResultEvent(result=result))
