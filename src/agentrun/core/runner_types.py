"""
Shared runtime types for runner internals.
"""

from __future__ import annotations

import asyncio
import os
import uuid
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Coroutine

from ..llms.retry import RetryPolicy
from ..llms.types import Message, Usage
from ..tools.base import ToolContext


_RUN_END = object()


def _optional_float(name: str) -> float | None:
    raw = os.getenv(name)
    return float(raw) if raw not in (None, "") else None


def _optional_int(name: str) -> int | None:
    raw = os.getenv(name)
    return int(raw) if raw not in (None, "") else None


@dataclass(frozen=True, slots=True)
class RunnerConfig:
    """
    Runner-wide defaults. Settings on an `Agent` take precedence.

    Attributes:
        retry_policy: Model-call retry policy for agents without their own.
        tool_timeout_s: Per-tool timeout for agents without their own.
        max_output_retries: Output validation retry ceiling for agents
            without their own. `None` means bounded only by iterations.
        tool_output_max_chars: Max tool output characters forwarded to the
            model. `None` disables truncation.
    """

    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)
    tool_timeout_s: float | None = None
    max_output_retries: int | None = None
    tool_output_max_chars: int | None = None

    @staticmethod
    def from_env() -> RunnerConfig:
        return RunnerConfig(
            retry_policy=RetryPolicy.from_env(),
            tool_timeout_s=_optional_float("AGENTRUN_TOOL_TIMEOUT_S"),
            max_output_retries=_optional_int("AGENTRUN_MAX_OUTPUT_RETRIES"),
            tool_output_max_chars=_optional_int("AGENTRUN_TOOL_OUTPUT_MAX_CHARS"),
        )


@dataclass(slots=True)
class RunState:
    """
    Mutable state of exactly one run.

    Only the run loop writes to it; observers and tools see immutable
    snapshots through `ToolContext`.
    """

    run_id: str = field(default_factory=lambda: f"run_{uuid.uuid4().hex}")
    deps: Any = None
    messages: list[Message] = field(default_factory=list)
    usage: Usage = field(default_factory=Usage)
    request_count: int = 0
    tool_call_count: int = 0
    output_retries: int = 0
    system_prompt: str = ""

    def context(self, model: Any) -> ToolContext:
        return ToolContext(
            deps=self.deps,
            model=model,
            usage=self.usage,
            run_id=self.run_id,
            run_step=self.request_count,
            messages=tuple(self.messages),
        )


class _RunChannel:
    """
    Single-consumer event channel between a background run task and the
    caller iterating over stream events or nodes.

    The task's exception, if any, is re-raised to the consumer after the last
    queued item. `close` cancels a task whose consumer stopped early.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._task: asyncio.Task[None] | None = None
        self._error: BaseException | None = None
        self._consumed = False

    async def emit(self, item: Any) -> None:
        await self._queue.put(item)

    def start(self, coro: Coroutine[Any, Any, Any]) -> None:
        async def _drive() -> None:
            try:
                await coro
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._error = e
            finally:
                self._queue.put_nowait(_RUN_END)

        self._task = asyncio.get_running_loop().create_task(_drive())

    async def iterate(self) -> AsyncIterator[Any]:
        if self._consumed:
            raise RuntimeError("run channel supports a single consumer")
        self._consumed = True
        while True:
            item = await self._queue.get()
            if item is _RUN_END:
                break
            yield item
        if self._error is not None:
            raise self._error

    async def close(self) -> None:
        task = self._task
        if task is None or task.done():
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
