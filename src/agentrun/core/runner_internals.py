"""
Runner helper methods: request assembly, result/pause snapshots, telemetry
and snapshot persistence.
"""

from __future__ import annotations

import functools
from typing import Any, Sequence

from pydantic import TypeAdapter

from ..agents.base import Agent
from ..agents.errors import AgentCancelledError, HasDeferredToolsError, OutputValidationError
from ..agents.types import AgentResult, PausedAgentRun, PendingToolCall
from ..llms.retry import RetryPolicy
from ..llms.types import (
    CompletionRequest,
    SystemMessage,
    ToolCall,
    ToolResultEntry,
)
from ..llms.utils import CancellationToken, clamp_str
from ..tools.base import ToolOutcome, outcome_text
from ..tools.engine import ToolCallResult, ToolExecutionEngine
from .telemetry import TelemetryEvent, now_ms
from .runner_types import RunState


class RunnerInternalsMixin:
    """Internal helpers shared by the execution, deferral and API mixins."""

    def _retry_policy_for(self, agent: Agent) -> RetryPolicy:
        return agent.retry_policy or self.config.retry_policy

    def _max_output_retries_for(self, agent: Agent) -> int | None:
        if agent.max_output_retries is not None:
            return agent.max_output_retries
        return self.config.max_output_retries

    def _engine_for(self, agent: Agent, cancel: CancellationToken | None = None) -> ToolExecutionEngine:
        timeout_s = agent.tool_timeout_s if agent.tool_timeout_s is not None else self.config.tool_timeout_s
        return ToolExecutionEngine(
            agent.registry,
            default_timeout_s=timeout_s,
            propagate=(HasDeferredToolsError, AgentCancelledError),
            cancel_token=cancel,
        )

    def _build_request(self, agent: Agent, state: RunState) -> CompletionRequest:
        """
        Build one request from the full transcript.

        The system prompt goes first unless the transcript already opens with
        a system message. The output pseudo-tool is appended to the catalog
        for structured output types; an empty catalog is sent as `None`.
        """
        messages = list(state.messages)
        system_prompt = state.system_prompt
        if system_prompt and not (messages and isinstance(messages[0], SystemMessage)):
            messages.insert(0, SystemMessage(text=system_prompt))

        tools = agent.registry.definitions()
        output_tool = agent.output.tool_definition()
        if output_tool is not None:
            tools.append(output_tool)

        return CompletionRequest(
            messages=tuple(messages),
            tools=tuple(tools) if tools else None,
            settings=agent.settings,
        )

    def _tool_entry(self, call: ToolCall, outcome: ToolOutcome) -> ToolResultEntry:
        text, is_error = outcome_text(outcome)
        return ToolResultEntry(
            tool_call_id=call.id,
            output=clamp_str(text, self.config.tool_output_max_chars),
            is_error=is_error,
        )

    def _result(self, state: RunState, output: Any, output_tool_name: str | None) -> AgentResult[Any]:
        return AgentResult(
            output=output,
            usage=state.usage,
            messages=tuple(state.messages),
            run_id=state.run_id,
            request_count=state.request_count,
            tool_call_count=state.tool_call_count,
            output_tool_name=output_tool_name,
        )

    def _pause(
        self,
        state: RunState,
        pending: Sequence[PendingToolCall],
        remaining: Sequence[ToolCall],
        *,
        has_output: bool = False,
        output: Any = None,
        output_tool_name: str | None = None,
    ) -> PausedAgentRun:
        paused = PausedAgentRun(
            run_id=state.run_id,
            messages=tuple(state.messages),
            usage=state.usage,
            request_count=state.request_count,
            tool_call_count=state.tool_call_count,
            pending_calls=tuple(pending),
            remaining_calls=tuple(remaining),
            output_retries=state.output_retries,
            has_output_candidate=has_output,
            output_candidate=output if has_output else None,
            output_tool_name=output_tool_name if has_output else None,
        )
        self._emit_event(
            "agent.run_paused",
            run_id=state.run_id,
            pending=[p.id for p in pending],
            remaining=len(remaining),
        )
        return paused

    def _record_output_retry(self, agent: Agent, state: RunState, message: str) -> None:
        state.output_retries += 1
        self._emit_event("agent.output_retry", run_id=state.run_id, retries=state.output_retries)
        ceiling = self._max_output_retries_for(agent)
        if ceiling is not None and state.output_retries > ceiling:
            raise OutputValidationError(ceiling, message)

    def _check_cancelled(self, cancel: CancellationToken | None) -> None:
        if cancel is not None and cancel.cancelled:
            raise AgentCancelledError("Run cancelled")

    def _record_tool_result(self, agent: Agent, result: ToolCallResult) -> None:
        attrs = {"agent": agent.name, "tool": result.call.name, "status": result.outcome.status}
        self._telemetry.increment_counter("agent.tool_calls", attributes=attrs)
        self._telemetry.record_histogram("agent.tool.latency_ms", result.duration_s * 1000.0, attributes=attrs)

    def _emit_event(self, name: str, **attributes: Any) -> None:
        self._telemetry.record_event(TelemetryEvent(name=name, timestamp_ms=now_ms(), attributes=attributes))


@functools.lru_cache(maxsize=1)
def _paused_adapter() -> TypeAdapter[PausedAgentRun]:
    return TypeAdapter(PausedAgentRun)


def dump_paused_run(paused: PausedAgentRun) -> dict[str, Any]:
    """
    Serialize a pause snapshot into a JSON-safe dict.

    An output candidate is stored in its JSON form and re-validated against
    the agent's output type on resume.
    """
    return _paused_adapter().dump_python(paused, mode="json")


def load_paused_run(payload: dict[str, Any]) -> PausedAgentRun:
    return _paused_adapter().validate_python(payload)
