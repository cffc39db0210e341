"""
Resolution of deferred tool calls when a paused run is resumed.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Iterable, Mapping, Sequence

from ..agents.base import Agent
from ..agents.errors import HasDeferredToolsError, InternalError
from ..agents.observer import LoopObserver
from ..agents.response import FinalOutput
from ..agents.types import (
    Approved,
    Completed,
    Denied,
    Failed,
    PausedAgentRun,
    PendingToolCall,
    Resolution,
    ResolvedTool,
)
from ..llms.types import ToolCall, ToolResultEntry
from ..tools.base import ToolDeferred, encode_tool_output
from ..tools.engine import ToolExecutionEngine
from .runner_types import RunState

MISSING_RESOLUTION = "No resolution provided"


def normalize_resolutions(
    resolutions: Mapping[str, Resolution] | Iterable[ResolvedTool] | None,
) -> dict[str, Resolution]:
    if resolutions is None:
        return {}
    if isinstance(resolutions, Mapping):
        return dict(resolutions)
    return {r.id: r.resolution for r in resolutions}


class RunnerDeferralMixin:
    """
    Turns caller resolutions into tool results for a paused run.

    Resuming is not idempotent: resuming the same snapshot twice runs approved
    tools twice.
    """

    async def _resolve_paused(
        self,
        agent: Agent,
        state: RunState,
        observer: LoopObserver,
        paused: PausedAgentRun,
        resolutions: dict[str, Resolution],
        engine: ToolExecutionEngine,
    ) -> FinalOutput | None:
        """
        Apply resolutions, then run the interrupted batch's remaining calls.

        Returns:
            The output candidate captured before the pause, if any.

        Raises:
            HasDeferredToolsError: An approved tool or a remaining call deferred
                again. Results resolved so far are kept in the transcript.
        """
        ctx = state.context(agent.model)
        hook = self._tool_completion_hook(agent, state, observer)
        entries: dict[str, ToolResultEntry] = {}
        deferred_again: list[PendingToolCall] = []

        for pending in paused.pending_calls:
            call = pending.tool_call
            resolution = resolutions.get(pending.id) or resolutions.get(call.id) or Denied(MISSING_RESOLUTION)

            if isinstance(resolution, Approved):
                result = await engine.execute_timed(call, replace(ctx, approved=True), once=True)
                self._record_tool_result(agent, result)
                await observer.on_tool_complete(result)
                if isinstance(result.outcome, ToolDeferred):
                    deferred_again.append(PendingToolCall(tool_call=call, deferral=result.outcome.deferral))
                    continue
                entries[call.id] = self._tool_entry(call, result.outcome)
            elif isinstance(resolution, Denied):
                entries[call.id] = ToolResultEntry(
                    tool_call_id=call.id,
                    output=f"Tool call denied: {resolution.reason}",
                    is_error=True,
                )
            elif isinstance(resolution, Completed):
                entries[call.id] = ToolResultEntry(
                    tool_call_id=call.id,
                    output=encode_tool_output(resolution.result),
                )
            elif isinstance(resolution, Failed):
                entries[call.id] = ToolResultEntry(
                    tool_call_id=call.id,
                    output=f"Tool call failed: {resolution.error}",
                    is_error=True,
                )

        pending_calls = [p.tool_call for p in paused.pending_calls]
        if deferred_again:
            self._append_tool_results(state, pending_calls, entries)
            raise HasDeferredToolsError(self._pause_from(state, paused, deferred_again, paused.remaining_calls))

        results = await engine.execute_all(paused.remaining_calls, ctx, on_complete=hook)
        for result in results:
            if not result.deferred:
                entries[result.call.id] = self._tool_entry(result.call, result.outcome)
        self._append_tool_results(state, [*pending_calls, *paused.remaining_calls], entries)

        if results and results[-1].deferred:
            last = results[-1]
            outcome = last.outcome
            if not isinstance(outcome, ToolDeferred):
                raise InternalError(f"Deferred result carries a {type(outcome).__name__} outcome")
            attempted = {r.call.id for r in results}
            remaining = [c for c in paused.remaining_calls if c.id not in attempted]
            raise HasDeferredToolsError(
                self._pause_from(
                    state,
                    paused,
                    [PendingToolCall(tool_call=last.call, deferral=outcome.deferral)],
                    remaining,
                )
            )

        if paused.has_output_candidate:
            return FinalOutput(
                output=agent.output.coerce(paused.output_candidate),
                tool_name=paused.output_tool_name,
            )
        return None

    def _pause_from(
        self,
        state: RunState,
        paused: PausedAgentRun,
        pending: Sequence[PendingToolCall],
        remaining: Sequence[ToolCall],
    ) -> PausedAgentRun:
        return self._pause(
            state,
            pending,
            remaining,
            has_output=paused.has_output_candidate,
            output=paused.output_candidate,
            output_tool_name=paused.output_tool_name,
        )
