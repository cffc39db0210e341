"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

This module defines the types and base classes for tools that can be registered and used by an agent.
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import json
from dataclasses import dataclass, field, replace
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Literal,
    Optional,
    Tuple,
    Type,
    TypeAlias,
    TypeVar,
    Union,
)

from pydantic import BaseModel, ValidationError

from ..llms.types import Message, ToolCall, ToolDefinition, Usage
from .errors import ToolArgumentsError, ToolValidationError


ArgsT = TypeVar("ArgsT", bound=BaseModel)

AsyncToolFn = Callable[..., Awaitable[Any]]
SyncToolFn = Callable[..., Any]
ToolFn = Union[AsyncToolFn, SyncToolFn]


@dataclass(frozen=True, slots=True)
class ToolContext:
    """
    Run context handed to a tool for one invocation.

    `deps` is the caller's opaque dependency value; `retries` counts how many
    times this same call has already been retried. `approved` is set when the
    call runs because a caller approved its earlier deferral.
    """

    deps: Any = None
    model: Any = None
    usage: Usage = field(default_factory=Usage)
    retries: int = 0
    tool_call_id: str | None = None
    tool_name: str | None = None
    run_id: str | None = None
    run_step: int = 0
    messages: Tuple[Message, ...] = ()
    approved: bool = False

    def for_tool_call(self, call: ToolCall) -> ToolContext:
        return replace(self, tool_call_id=call.id, tool_name=call.name, retries=0)

    def with_retry(self, retries: int) -> ToolContext:
        return replace(self, retries=retries)


DeferralKind = Literal["approval", "external", "custom"]


@dataclass(frozen=True, slots=True)
class DeferredToolCall:
    """
    A tool asked to suspend the run until an outside party resolves it.

    `id` defaults to the id of the tool call that deferred.
    """

    reason: str
    kind: DeferralKind = "approval"
    id: str | None = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @staticmethod
    def needs_approval(reason: str, *, id: str | None = None, **metadata: Any) -> DeferredToolCall:
        return DeferredToolCall(reason=reason, kind="approval", id=id, metadata=metadata)

    @staticmethod
    def external(reason: str, *, id: str | None = None, **metadata: Any) -> DeferredToolCall:
        return DeferredToolCall(reason=reason, kind="external", id=id, metadata=metadata)


# ---------- Outcomes ----------


@dataclass(frozen=True, slots=True)
class ToolSuccess:
    text: str
    status: Literal["success"] = "success"


@dataclass(frozen=True, slots=True)
class ToolRetry:
    """Returned by a tool to ask for another attempt; `message` explains why."""

    message: str
    status: Literal["retry"] = "retry"


@dataclass(frozen=True, slots=True)
class ToolFailure:
    error: Exception
    status: Literal["failure"] = "failure"


@dataclass(frozen=True, slots=True)
class ToolDeferred:
    deferral: DeferredToolCall
    status: Literal["deferred"] = "deferred"


ToolOutcome: TypeAlias = Union[ToolSuccess, ToolRetry, ToolFailure, ToolDeferred]


def outcome_text(outcome: ToolOutcome) -> Tuple[str, bool]:
    """
    Render an outcome as model-visible tool-result content.

    Returns:
        `(text, is_error)` pair.
    """
    if isinstance(outcome, ToolSuccess):
        return outcome.text, False
    if isinstance(outcome, ToolRetry):
        return f"Tool failed after retries: {outcome.message}", True
    if isinstance(outcome, ToolFailure):
        return str(outcome.error) or type(outcome.error).__name__, True
    return f"Tool deferred: {outcome.deferral.reason}", True


def encode_tool_output(value: Any) -> str:
    if isinstance(value, str):
        return value
    if value is None:
        return ""
    if isinstance(value, BaseModel):
        return value.model_dump_json()
    try:
        return json.dumps(value, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return str(value)


def as_async(fn: ToolFn) -> AsyncToolFn:
    """
    Convert a synchronous function into an asynchronous one.
    Sync tools run in the default thread pool so they never block the loop.
    """
    if inspect.iscoroutinefunction(fn):
        return fn  # type: ignore[return-value]

    async def _wrapped(*args: Any, **kwargs: Any) -> Any:
        return await asyncio.to_thread(functools.partial(fn, *args, **kwargs))

    return _wrapped


def _infer_call_style(fn: Callable[..., Any]) -> str:
    """
    Determine how to call a tool based on its signature.

    Allowed:
      (args)
      (args, ctx)
      (ctx, args)

    ctx is recognised by the name "ctx" OR the annotation ToolContext.
    """
    sig = inspect.signature(fn)
    params = list(sig.parameters.values())

    if any(p.kind in (p.VAR_KEYWORD, p.VAR_POSITIONAL) for p in params):
        raise ToolValidationError(
            f"Tool function '{getattr(fn, '__name__', 'unknown')}' cannot have *args or **kwargs."
        )

    if len(params) == 1:
        return "args"

    if len(params) == 2:
        p0, p1 = params
        if p0.annotation in (ToolContext, "ToolContext") or p0.name == "ctx":
            return "ctx_args"
        if p1.annotation in (ToolContext, "ToolContext") or p1.name == "ctx":
            return "args_ctx"
        raise ToolValidationError(
            f"Tool function '{getattr(fn, '__name__', 'unknown')}' must include ToolContext "
            f"as 'ctx' (by name or annotation). Signature: {sig}"
        )

    raise ToolValidationError(
        f"Tool function '{getattr(fn, '__name__', 'unknown')}' has invalid signature. "
        f"Expected (args) or (args, ctx) or (ctx, args). Got {sig}."
    )


class Tool:
    """
    Type-erased tool: a model-facing definition plus an invoke closure.

    The typed function and its pydantic args model are captured once at
    construction; afterwards the engine only sees `invoke(ctx, arguments_json)`.
    Exceptions raised by the function propagate to the caller of `invoke`.
    """

    def __init__(
        self,
        *,
        definition: ToolDefinition,
        fn: ToolFn,
        args_model: Type[BaseModel],
        max_retries: int = 1,
        timeout_s: Optional[float] = None,
    ) -> None:
        if max_retries < 0:
            raise ToolValidationError("max_retries must be >= 0")
        self.definition = definition
        self.args_model = args_model
        self.max_retries = max_retries
        self.timeout_s = timeout_s
        self._fn = as_async(fn)
        self._call_style = _infer_call_style(fn)

    @property
    def name(self) -> str:
        return self.definition.name

    def parse_arguments(self, arguments_json: str) -> BaseModel:
        try:
            return self.args_model.model_validate_json(arguments_json or "{}")
        except ValidationError as e:
            raise ToolArgumentsError(f"Invalid arguments for tool '{self.name}': {e}") from e

    async def invoke(self, ctx: ToolContext, arguments_json: str) -> ToolOutcome:
        try:
            args = self.parse_arguments(arguments_json)
        except ToolArgumentsError as e:
            return ToolFailure(error=e)

        if self._call_style == "args":
            value = await self._fn(args)
        elif self._call_style == "args_ctx":
            value = await self._fn(args, ctx)
        else:
            value = await self._fn(ctx, args)

        if isinstance(value, (ToolSuccess, ToolRetry, ToolFailure, ToolDeferred)):
            return value
        return ToolSuccess(text=encode_tool_output(value))

    def __repr__(self) -> str:
        return f"Tool(name={self.name!r}, max_retries={self.max_retries})"
