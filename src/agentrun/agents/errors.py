"""
Agent-layer error taxonomy.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from .types import PausedAgentRun


UsageLimitKind = Literal["input_tokens", "output_tokens", "total_tokens", "requests", "tool_calls"]


class AgentError(Exception):
    """Base exception for all agent-runtime failures."""
    pass


class AgentConfigurationError(AgentError):
    """
    Raised when agent configuration is invalid.

    Typical cases:
    - non-positive iteration ceiling
    - a tool registered under the output tool name
    - an output type pydantic cannot build a schema for
    """
    pass


class AgentExecutionError(AgentError):
    """Raised for runtime execution failures not tied to configuration."""
    pass


class IterationLimitExceededError(AgentExecutionError):
    """The loop hit `max_iterations` model requests without producing output."""

    def __init__(self, max_iterations: int) -> None:
        super().__init__(f"Exceeded maximum iterations ({max_iterations}) without producing output")
        self.max_iterations = max_iterations


class UsageLimitExceededError(AgentExecutionError):
    """A configured usage ceiling was reached before a further model call."""

    def __init__(self, kind: UsageLimitKind, used: int, limit: int) -> None:
        super().__init__(f"Usage limit exceeded for {kind}: {used} (limit {limit})")
        self.kind = kind
        self.used = used
        self.limit = limit


class ModelRefusedError(AgentExecutionError):
    def __init__(self, refusal: str) -> None:
        super().__init__(f"Model refused the request: {refusal}")
        self.refusal = refusal


class TruncatedOrFilteredError(AgentExecutionError):
    """The model stopped for a reason that leaves no usable answer."""
    pass


class ResponseTruncatedError(TruncatedOrFilteredError):
    def __init__(self) -> None:
        super().__init__("Model response was truncated at the token limit")


class ContentFilteredError(TruncatedOrFilteredError):
    def __init__(self) -> None:
        super().__init__("Model response was blocked by a content filter")


class UnexpectedModelBehaviorError(AgentExecutionError):
    """The model broke the loop contract (e.g. ended with neither output nor tool calls)."""
    pass


class OutputValidationError(AgentExecutionError):
    """Output validation kept failing past `max_output_retries`."""

    def __init__(self, retries: int, last_message: str) -> None:
        super().__init__(f"Output validation failed after {retries} retries: {last_message}")
        self.retries = retries
        self.last_message = last_message


class AgentCancelledError(AgentExecutionError):
    """Raised when a run is cancelled by the caller."""
    pass


class InternalError(AgentError):
    """An invariant of the runner itself was violated."""
    pass


class ValidationRetry(AgentError):
    """
    Raised by an output validator to reject a candidate answer.

    The run does not fail: `message` is fed back to the model and the loop
    continues.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class HasDeferredToolsError(AgentError):
    """
    The run suspended because a tool deferred. `paused` is the snapshot to
    hand back to `resume` together with the resolutions.
    """

    def __init__(self, paused: PausedAgentRun) -> None:
        ids = ", ".join(p.deferral.id or p.tool_call.id for p in paused.pending_calls)
        super().__init__(f"Run {paused.run_id} is waiting on deferred tool calls: {ids}")
        self.paused = paused
