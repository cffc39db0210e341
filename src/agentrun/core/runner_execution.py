"""
Main run loop shared by the blocking, streaming and iterating run modes.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Sequence

from ..agents.base import Agent
from ..agents.errors import (
    AgentCancelledError,
    HasDeferredToolsError,
    InternalError,
    IterationLimitExceededError,
)
from ..agents.limits import UsageLimiter
from ..agents.observer import LoopObserver
from ..agents.response import DispatchTools, FinalOutput, ResponseHandler, RetryWithFeedback
from ..agents.types import AgentResult, PendingToolCall
from ..llms.errors import LLMCancelledError
from ..llms.types import (
    AssistantMessage,
    CompletionRequest,
    CompletionResponse,
    ToolCall,
    ToolResultEntry,
    ToolResultsMessage,
    UserMessage,
)
from ..llms.utils import CancellationToken
from ..tools.base import ToolDeferred
from ..tools.engine import ToolCallResult, ToolExecutionEngine
from ..tools.errors import ToolCancelledError
from .runner_types import RunState

Requester = Callable[[CompletionRequest], Awaitable[CompletionResponse]]


class RunnerExecutionMixin:
    """
    The run loop.

    One iteration: check cancellation, check usage limits, build the request,
    call the model through the retrying requester, account usage, record the
    assistant turn, then either finish, feed validation errors back, or
    dispatch the tool batch. The loop knows nothing about the run mode; the
    observer and requester carry those differences.
    """

    async def _run_loop(
        self,
        agent: Agent,
        state: RunState,
        observer: LoopObserver,
        *,
        requester: Requester,
        cancel: CancellationToken | None,
    ) -> AgentResult[Any]:
        handler = ResponseHandler(agent.output, agent.end_strategy)
        limiter = UsageLimiter(agent.usage_limits)
        engine = self._engine_for(agent, cancel)

        while state.request_count < agent.max_iterations:
            self._check_cancelled(cancel)
            limiter.check(
                state.usage,
                request_count=state.request_count,
                tool_call_count=state.tool_call_count,
            )

            request = self._build_request(agent, state)
            await observer.on_before_model_call(request)
            try:
                response = await requester(request)
            except LLMCancelledError as e:
                raise AgentCancelledError("Run cancelled during model call") from e

            state.request_count += 1
            state.usage = state.usage + response.usage
            self._telemetry.increment_counter(
                "agent.model_requests",
                attributes={"agent": agent.name, "stop_reason": response.stop_reason},
            )
            await observer.on_model_response(response, state.usage)
            state.messages.append(
                AssistantMessage(text=response.content, tool_calls=tuple(response.tool_calls))
            )

            action = await handler.handle(response, state.context(agent.model))
            if isinstance(action, FinalOutput):
                return await self._finish(state, observer, action.output, action.tool_name)
            if isinstance(action, RetryWithFeedback):
                self._record_output_retry(agent, state, action.message)
                state.messages.append(UserMessage.from_text(action.message))
                continue

            if not isinstance(action, DispatchTools):
                raise InternalError(f"Unhandled response action: {type(action).__name__}")
            try:
                final = await self._process_tool_batch(agent, state, observer, handler, engine, action.calls)
            except ToolCancelledError as e:
                raise AgentCancelledError("Run cancelled during tool call") from e
            if final is not None:
                return await self._finish(state, observer, final.output, final.tool_name)

        raise IterationLimitExceededError(agent.max_iterations)

    async def _process_tool_batch(
        self,
        agent: Agent,
        state: RunState,
        observer: LoopObserver,
        handler: ResponseHandler,
        engine: ToolExecutionEngine,
        calls: Sequence[ToolCall],
    ) -> FinalOutput | None:
        """
        Process one batch of tool calls and append their results in call order.

        Raises:
            HasDeferredToolsError: A regular call deferred. Results of the calls
                completed before it are already in the transcript.
        """
        await observer.on_before_tool_batch(calls)
        ctx = state.context(agent.model)
        plan = await handler.plan_batch(calls, ctx)
        if not plan.has_output:
            for message in plan.retry_messages:
                self._record_output_retry(agent, state, message)

        results = await engine.execute_all(
            plan.run,
            ctx,
            on_complete=self._tool_completion_hook(agent, state, observer),
        )

        entries: dict[str, ToolResultEntry] = dict(plan.entries)
        for result in results:
            if not result.deferred:
                entries[result.call.id] = self._tool_entry(result.call, result.outcome)
        self._append_tool_results(state, calls, entries)
        await observer.on_after_tool_batch(results)

        if results and results[-1].deferred:
            deferred = results[-1]
            attempted = {r.call.id for r in results}
            remaining = [c for c in plan.run if c.id not in attempted]
            outcome = deferred.outcome
            if not isinstance(outcome, ToolDeferred):
                raise InternalError(f"Deferred result carries a {type(outcome).__name__} outcome")
            raise HasDeferredToolsError(
                self._pause(
                    state,
                    [PendingToolCall(tool_call=deferred.call, deferral=outcome.deferral)],
                    remaining,
                    has_output=plan.has_output,
                    output=plan.output,
                    output_tool_name=plan.output_call.name if plan.output_call else None,
                )
            )

        if plan.output_call is not None:
            return FinalOutput(output=plan.output, tool_name=plan.output_call.name)
        return None

    def _tool_completion_hook(
        self,
        agent: Agent,
        state: RunState,
        observer: LoopObserver,
    ) -> Callable[[ToolCallResult], Awaitable[None]]:
        async def _on_complete(result: ToolCallResult) -> None:
            state.tool_call_count += 1
            self._record_tool_result(agent, result)
            await observer.on_tool_complete(result)

        return _on_complete

    def _append_tool_results(
        self,
        state: RunState,
        calls: Sequence[ToolCall],
        entries: dict[str, ToolResultEntry],
    ) -> None:
        ordered = tuple(entries[c.id] for c in calls if c.id in entries)
        if ordered:
            state.messages.append(ToolResultsMessage(results=ordered))

    async def _finish(
        self,
        state: RunState,
        observer: LoopObserver,
        output: Any,
        output_tool_name: str | None,
    ) -> AgentResult[Any]:
        result = self._result(state, output, output_tool_name)
        await observer.on_end(result)
        return result

    async def _traced(self, agent: Agent, state: RunState, body: Awaitable[AgentResult[Any]]) -> AgentResult[Any]:
        """Run `body` inside an `agent.run` span, ending it with the run's outcome."""
        span = self._telemetry.start_span(
            "agent.run",
            attributes={"agent": agent.name, "run_id": state.run_id, "model": agent.model.model_name},
        )
        self._telemetry.increment_counter("agent.runs", attributes={"agent": agent.name})
        try:
            result = await body
        except HasDeferredToolsError:
            self._telemetry.end_span(span, status="paused", attributes=self._span_totals(state))
            raise
        except (AgentCancelledError, asyncio.CancelledError):
            self._telemetry.end_span(span, status="cancelled", attributes=self._span_totals(state))
            raise
        except Exception as e:
            self._telemetry.end_span(
                span,
                status="error",
                error=f"{type(e).__name__}: {e}",
                attributes=self._span_totals(state),
            )
            raise
        self._telemetry.end_span(span, status="ok", attributes=self._span_totals(state))
        return result

    @staticmethod
    def _span_totals(state: RunState) -> dict[str, Any]:
        return {
            "requests": state.request_count,
            "tool_calls": state.tool_call_count,
            "input_tokens": state.usage.input_tokens,
            "output_tokens": state.usage.output_tokens,
        }
