"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

This module implements the ToolExecutionEngine: lookup, per-tool retry, timeout
racing and ordered batch dispatch of the tool calls requested by the model.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, replace
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple, Type

from ..llms.types import ToolCall
from ..llms.utils import CancellationToken
from .base import Tool, ToolContext, ToolDeferred, ToolFailure, ToolOutcome, ToolRetry
from .errors import ToolCancelledError, ToolNotFoundError, ToolRetriesExhaustedError, ToolTimeoutError
from .registry import ToolRegistry


@dataclass(frozen=True, slots=True)
class ToolCallResult:
    """Outcome of one tool call together with its wall-clock duration."""

    call: ToolCall
    outcome: ToolOutcome
    duration_s: float = 0.0

    @property
    def deferred(self) -> bool:
        return isinstance(self.outcome, ToolDeferred)


OnToolComplete = Callable[[ToolCallResult], Awaitable[None]]


class ToolExecutionEngine:
    """
    Executes tool calls against a registry.

    The engine keeps no state between calls. Exceptions raised by a tool turn
    into `ToolFailure` outcomes, except `ToolTimeoutError`, `ToolCancelledError`
    and any type listed in `propagate`, which abort the caller. With a
    `cancel_token`, each invocation is raced against the token as well as its
    timeout.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        *,
        default_timeout_s: Optional[float] = None,
        propagate: Tuple[Type[BaseException], ...] = (),
        cancel_token: Optional[CancellationToken] = None,
    ) -> None:
        self.registry = registry
        self.default_timeout_s = default_timeout_s
        self._propagate = (ToolTimeoutError, ToolCancelledError, *propagate)
        self._cancel = cancel_token

    async def execute(self, call: ToolCall, ctx: ToolContext) -> ToolOutcome:
        """
        Run one call, retrying while the tool returns `ToolRetry`.

        A tool is invoked at most `max_retries + 1` times; a retry outcome left
        after that becomes a `ToolFailure` carrying `ToolRetriesExhaustedError`.
        """
        tool = self.registry.find(call.name)
        if tool is None:
            return ToolFailure(error=ToolNotFoundError(call.name))

        call_ctx = ctx.for_tool_call(call)
        retries = 0
        while True:
            outcome = await self._invoke(tool, call, call_ctx.with_retry(retries))
            if not isinstance(outcome, ToolRetry):
                return outcome
            if retries >= tool.max_retries:
                return ToolFailure(
                    error=ToolRetriesExhaustedError(tool.name, retries + 1, outcome.message)
                )
            retries += 1

    async def execute_once(self, call: ToolCall, ctx: ToolContext) -> ToolOutcome:
        """Run one call a single time with no retry wrapping."""
        tool = self.registry.find(call.name)
        if tool is None:
            return ToolFailure(error=ToolNotFoundError(call.name))
        return await self._invoke(tool, call, ctx.for_tool_call(call))

    async def execute_timed(self, call: ToolCall, ctx: ToolContext, *, once: bool = False) -> ToolCallResult:
        started_at = time.monotonic()
        if once:
            outcome = await self.execute_once(call, ctx)
        else:
            outcome = await self.execute(call, ctx)
        return ToolCallResult(call=call, outcome=outcome, duration_s=time.monotonic() - started_at)

    async def execute_all(
        self,
        calls: Sequence[ToolCall],
        ctx: ToolContext,
        *,
        on_complete: Optional[OnToolComplete] = None,
    ) -> List[ToolCallResult]:
        """
        Execute `calls` sequentially in order.

        Stops after the first deferred outcome; that result is the last element
        of the returned list and later calls are never attempted.
        """
        results: List[ToolCallResult] = []
        for call in calls:
            result = await self.execute_timed(call, ctx)
            results.append(result)
            if on_complete is not None:
                await on_complete(result)
            if result.deferred:
                break
        return results

    async def _invoke(self, tool: Tool, call: ToolCall, ctx: ToolContext) -> ToolOutcome:
        timeout_s = tool.timeout_s if tool.timeout_s is not None else self.default_timeout_s
        if self._cancel is not None and self._cancel.cancelled:
            raise ToolCancelledError(tool.name)
        try:
            if timeout_s is None and self._cancel is None:
                outcome = await tool.invoke(ctx, call.arguments)
            else:
                outcome = await _race(tool.invoke(ctx, call.arguments), tool.name, timeout_s, self._cancel)
        except self._propagate:
            raise
        except Exception as e:
            return ToolFailure(error=e)

        if isinstance(outcome, ToolDeferred) and outcome.deferral.id is None:
            return ToolDeferred(deferral=replace(outcome.deferral, id=call.id))
        return outcome


async def _race(
    coro: Awaitable[ToolOutcome],
    tool_name: str,
    timeout_s: Optional[float],
    cancel: Optional[CancellationToken],
) -> ToolOutcome:
    """
    Race a tool invocation against `timeout_s` and the cancel token.

    The losing task is cancelled without waiting for it to unwind, so a tool
    that ignores cancellation cannot hold the run past its deadline.
    """
    task = asyncio.ensure_future(coro)
    waiters = {task}
    cancel_waiter = None
    if cancel is not None:
        cancel_waiter = asyncio.ensure_future(cancel.wait())
        waiters.add(cancel_waiter)
    try:
        done, _ = await asyncio.wait(waiters, timeout=timeout_s, return_when=asyncio.FIRST_COMPLETED)
    except BaseException:
        task.cancel()
        raise
    finally:
        if cancel_waiter is not None and not cancel_waiter.done():
            cancel_waiter.cancel()
    if task in done:
        return task.result()
    task.cancel()
    task.add_done_callback(_consume_result)
    if cancel_waiter is not None and cancel_waiter in done:
        raise ToolCancelledError(tool_name)
    raise ToolTimeoutError(tool_name, timeout_s)


def _consume_result(task: asyncio.Future[ToolOutcome]) -> None:
    if not task.cancelled():
        task.exception()
