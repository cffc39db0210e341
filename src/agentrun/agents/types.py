"""
Public agent data types: limits, results, pause snapshots, resolutions and
the node/event shapes produced by the iterate and stream run modes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, Literal, TypeAlias, TypeVar, Union

from ..llms.types import CompletionRequest, CompletionResponse, Message, ToolCall, Usage
from ..tools.base import DeferredToolCall
from ..tools.engine import ToolCallResult

OutputT = TypeVar("OutputT")


class EndStrategy(str, Enum):
    """
    How a tool batch containing a valid final output is finished.

    `EARLY` stops at the first valid output; `EXHAUSTIVE` still runs every
    regular tool call in the batch, then returns that first output.
    """

    EARLY = "early"
    EXHAUSTIVE = "exhaustive"


@dataclass(frozen=True, slots=True)
class UsageLimits:
    """
    Optional per-run ceilings.

    Token ceilings trip once usage is strictly above them; request and tool
    call ceilings trip once the count reaches them, so no further model call is
    made.
    """

    max_input_tokens: int | None = None
    max_output_tokens: int | None = None
    max_total_tokens: int | None = None
    max_requests: int | None = None
    max_tool_calls: int | None = None

    @property
    def unlimited(self) -> bool:
        return all(
            v is None
            for v in (
                self.max_input_tokens,
                self.max_output_tokens,
                self.max_total_tokens,
                self.max_requests,
                self.max_tool_calls,
            )
        )


@dataclass(frozen=True, slots=True)
class AgentResult(Generic[OutputT]):
    """
    Terminal result of an agent run.

    Attributes:
        output: Typed final output.
        usage: Token usage accumulated over every model request of the run.
        messages: Full transcript, including the final assistant turn.
        output_tool_name: Name of the output tool when the answer came through
            it, `None` for plain text answers.
        run_id: Identifier shared with any pause snapshots of the same run.
        request_count: Number of model requests made.
        tool_call_count: Number of regular tool calls attempted.
    """

    output: OutputT
    usage: Usage
    messages: tuple[Message, ...]
    run_id: str
    request_count: int
    tool_call_count: int
    output_tool_name: str | None = None


@dataclass(frozen=True, slots=True)
class PendingToolCall:
    tool_call: ToolCall
    deferral: DeferredToolCall

    @property
    def id(self) -> str:
        return self.deferral.id or self.tool_call.id


@dataclass(frozen=True, slots=True)
class PausedAgentRun:
    """
    Snapshot of a run suspended on deferred tool calls.

    The snapshot is an immutable value; persisting it between pause and resume
    is the caller's concern (see `dump_paused_run` / `load_paused_run`).

    Attributes:
        pending_calls: Calls awaiting a resolution.
        remaining_calls: Calls of the interrupted batch that were never
            attempted; they run after the pending ones are resolved.
        output_candidate: Final output already validated earlier in the
            interrupted batch (exhaustive strategy only).
    """

    run_id: str
    messages: tuple[Message, ...]
    usage: Usage
    request_count: int
    tool_call_count: int
    pending_calls: tuple[PendingToolCall, ...]
    remaining_calls: tuple[ToolCall, ...] = ()
    output_retries: int = 0
    has_output_candidate: bool = False
    output_candidate: Any = None
    output_tool_name: str | None = None

    @property
    def deferrals(self) -> list[DeferredToolCall]:
        return [p.deferral for p in self.pending_calls]

    @property
    def approvals(self) -> list[PendingToolCall]:
        return [p for p in self.pending_calls if p.deferral.kind == "approval"]

    @property
    def external(self) -> list[PendingToolCall]:
        return [p for p in self.pending_calls if p.deferral.kind == "external"]


# ---------- Resolutions ----------


@dataclass(frozen=True, slots=True)
class Approved:
    kind: Literal["approved"] = "approved"


@dataclass(frozen=True, slots=True)
class Denied:
    reason: str = "Denied by user"
    kind: Literal["denied"] = "denied"


@dataclass(frozen=True, slots=True)
class Completed:
    """The deferred work was done outside the run; `result` becomes the tool output."""

    result: Any
    kind: Literal["completed"] = "completed"


@dataclass(frozen=True, slots=True)
class Failed:
    error: str
    kind: Literal["failed"] = "failed"


Resolution: TypeAlias = Union[Approved, Denied, Completed, Failed]


@dataclass(frozen=True, slots=True)
class ResolvedTool:
    id: str
    resolution: Resolution


# ---------- Iterate-mode nodes ----------


@dataclass(frozen=True, slots=True)
class UserPromptNode:
    prompt: str | None
    kind: Literal["user_prompt"] = "user_prompt"


@dataclass(frozen=True, slots=True)
class ModelRequestNode:
    request: CompletionRequest
    kind: Literal["model_request"] = "model_request"


@dataclass(frozen=True, slots=True)
class ModelResponseNode:
    response: CompletionResponse
    usage: Usage
    kind: Literal["model_response"] = "model_response"


@dataclass(frozen=True, slots=True)
class ToolExecutionNode:
    calls: tuple[ToolCall, ...]
    kind: Literal["tool_execution"] = "tool_execution"


@dataclass(frozen=True, slots=True)
class ToolResultsNode:
    results: tuple[ToolCallResult, ...]
    kind: Literal["tool_results"] = "tool_results"


@dataclass(frozen=True, slots=True)
class EndNode(Generic[OutputT]):
    result: AgentResult[OutputT]
    kind: Literal["end"] = "end"


AgentNode: TypeAlias = Union[
    UserPromptNode,
    ModelRequestNode,
    ModelResponseNode,
    ToolExecutionNode,
    ToolResultsNode,
    EndNode,
]


# ---------- Stream-mode events ----------


@dataclass(frozen=True, slots=True)
class ContentDeltaEvent:
    delta: str
    type: Literal["content_delta"] = "content_delta"


@dataclass(frozen=True, slots=True)
class ToolCallStartEvent:
    id: str
    name: str
    type: Literal["tool_call_start"] = "tool_call_start"


@dataclass(frozen=True, slots=True)
class ToolCallDeltaEvent:
    id: str | None
    delta: str
    type: Literal["tool_call_delta"] = "tool_call_delta"


@dataclass(frozen=True, slots=True)
class ToolCallEndEvent:
    id: str
    type: Literal["tool_call_end"] = "tool_call_end"


@dataclass(frozen=True, slots=True)
class ToolResultEvent:
    result: ToolCallResult
    type: Literal["tool_result"] = "tool_result"


@dataclass(frozen=True, slots=True)
class UsageEvent:
    usage: Usage
    type: Literal["usage"] = "usage"


@dataclass(frozen=True, slots=True)
class FinalResultEvent(Generic[OutputT]):
    result: AgentResult[OutputT]
    type: Literal["final_result"] = "final_result"


AgentStreamEvent: TypeAlias = Union[
    ContentDeltaEvent,
    ToolCallStartEvent,
    ToolCallDeltaEvent,
    ToolCallEndEvent,
    ToolResultEvent,
    UsageEvent,
    FinalResultEvent,
]


OutputValidator: TypeAlias = Callable[[Any, Any], Union[Any, Awaitable[Any]]]
