"""
Classification of one model response into the loop's next action.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union

from ..llms.types import CompletionResponse, ToolCall, ToolResultEntry
from ..tools.base import ToolContext
from .errors import (
    ContentFilteredError,
    ModelRefusedError,
    ResponseTruncatedError,
    UnexpectedModelBehaviorError,
    ValidationRetry,
)
from .output import OutputSchema
from .types import EndStrategy

OUTPUT_ACCEPTED = "Output accepted"
OUTPUT_NOT_USED = "Output not used: a final result was already processed"
TOOL_SKIPPED = "Tool not executed: a final result was already processed"


@dataclass(frozen=True, slots=True)
class FinalOutput:
    output: Any
    tool_name: str | None = None


@dataclass(frozen=True, slots=True)
class DispatchTools:
    calls: tuple[ToolCall, ...]


@dataclass(frozen=True, slots=True)
class RetryWithFeedback:
    message: str


ResponseAction = Union[FinalOutput, DispatchTools, RetryWithFeedback]


@dataclass(slots=True)
class BatchPlan:
    """
    How one batch of tool calls is processed.

    `entries` holds the already-known result for each output-tool call and for
    each regular call skipped by the early end strategy, keyed by call id.
    `run` lists the regular calls to execute, in call order.
    """

    run: list[ToolCall] = field(default_factory=list)
    entries: dict[str, ToolResultEntry] = field(default_factory=dict)
    output_call: ToolCall | None = None
    output: Any = None
    retry_messages: list[str] = field(default_factory=list)

    @property
    def has_output(self) -> bool:
        return self.output_call is not None


class ResponseHandler:
    """Turns a model response into a `ResponseAction` and plans tool batches."""

    def __init__(self, output: OutputSchema, end_strategy: EndStrategy = EndStrategy.EARLY) -> None:
        self.output = output
        self.end_strategy = EndStrategy(end_strategy)

    async def handle(self, response: CompletionResponse, ctx: ToolContext) -> ResponseAction:
        """
        Raises:
            ModelRefusedError: The response carries a refusal.
            ResponseTruncatedError: Stopped at the token limit.
            ContentFilteredError: Stopped by a content filter.
            UnexpectedModelBehaviorError: Neither output nor tool calls.
        """
        if response.refusal:
            raise ModelRefusedError(response.refusal)

        stop = response.stop_reason
        if stop == "max_tokens":
            raise ResponseTruncatedError()
        if stop == "content_filtered":
            raise ContentFilteredError()

        if stop == "tool_use":
            if not response.tool_calls:
                raise UnexpectedModelBehaviorError("Model stopped for tool use without any tool calls")
            return DispatchTools(calls=tuple(response.tool_calls))

        if response.tool_calls:
            return DispatchTools(calls=tuple(response.tool_calls))

        if self.output.is_text and response.content:
            try:
                value = await self.output.validate(response.content, ctx)
            except ValidationRetry as e:
                return RetryWithFeedback(message=e.message)
            return FinalOutput(output=value)

        raise UnexpectedModelBehaviorError("Model ended without output or tool calls")

    def is_output_call(self, call: ToolCall) -> bool:
        return not self.output.is_text and call.name == self.output.tool_name

    def partition(self, calls: tuple[ToolCall, ...] | list[ToolCall]) -> tuple[list[ToolCall], list[ToolCall]]:
        output_calls = [c for c in calls if self.is_output_call(c)]
        regular = [c for c in calls if not self.is_output_call(c)]
        return output_calls, regular

    async def plan_batch(self, calls: tuple[ToolCall, ...] | list[ToolCall], ctx: ToolContext) -> BatchPlan:
        """
        Validate output-tool calls in call order and decide which regular
        calls run.

        The first output call that decodes and passes every validator becomes
        the candidate. Under `EARLY` regular calls positioned after it are
        skipped; under `EXHAUSTIVE` every regular call runs.
        """
        plan = BatchPlan()
        output_calls, regular = self.partition(calls)

        for call in output_calls:
            if plan.has_output:
                plan.entries[call.id] = ToolResultEntry(tool_call_id=call.id, output=OUTPUT_NOT_USED)
                continue
            try:
                value = self.output.decode(call.arguments)
                value = await self.output.validate(value, ctx.for_tool_call(call))
            except ValidationRetry as e:
                plan.retry_messages.append(e.message)
                plan.entries[call.id] = ToolResultEntry(tool_call_id=call.id, output=e.message, is_error=True)
                continue
            plan.output_call = call
            plan.output = value
            plan.entries[call.id] = ToolResultEntry(tool_call_id=call.id, output=OUTPUT_ACCEPTED)

        if plan.output_call is not None and self.end_strategy is EndStrategy.EARLY:
            cutoff = list(calls).index(plan.output_call)
            for position, call in enumerate(calls):
                if self.is_output_call(call):
                    continue
                if position < cutoff:
                    plan.run.append(call)
                else:
                    plan.entries[call.id] = ToolResultEntry(tool_call_id=call.id, output=TOOL_SKIPPED)
        else:
            plan.run = regular
        return plan
