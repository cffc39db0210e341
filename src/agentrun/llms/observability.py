"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

Typed observability primitives for model-call lifecycle events.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Literal, Protocol, Sequence, cast

from .types import Usage


LLMLifecycleEventType = Literal[
    "request_start",
    "retry",
    "request_success",
    "request_error",
]


@dataclass(frozen=True, slots=True)
class LLMLifecycleEvent:
    """
    One normalized lifecycle event emitted by `RetryingCompletion`.

    Observer callbacks are best-effort only; their failures never affect the call.
    """

    event_type: LLMLifecycleEventType
    request_id: str
    model: str | None = None
    attempt: int | None = None
    latency_ms: float | None = None
    delay_s: float | None = None
    usage: Usage | None = None
    error_class: str | None = None
    error_message: str | None = None


class LLMObserver(Protocol):
    """Observer callback protocol for model-call lifecycle events."""

    def __call__(self, event: LLMLifecycleEvent) -> None | Awaitable[None]:
        ...


LLMObserverCallback = Callable[[LLMLifecycleEvent], None | Awaitable[None]]


async def notify_observers(observers: Sequence[LLMObserverCallback], event: LLMLifecycleEvent) -> None:
    """Deliver `event` to every observer, ignoring observer failures."""
    for observer in observers:
        try:
            result = observer(event)
            if inspect.isawaitable(result):
                await cast(Awaitable[Any], result)
        except Exception:
            continue
