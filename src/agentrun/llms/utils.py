"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

Small helpers shared by the model and run layers.
"""

from __future__ import annotations

import asyncio


def clamp_str(s: str, max_chars: int | None) -> str:
    if max_chars is None or len(s) <= max_chars:
        return s
    return s[:max_chars] + "…"


class CancellationToken:
    """
    Cooperative cancellation flag shared between a caller and a running loop.

    The loop checks `cancelled` at safe points (top of each iteration, before
    each model attempt) and races `wait()` against in-flight model calls, tool
    invocations and backoff sleeps.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()


async def sleep_unless_cancelled(delay_s: float, token: CancellationToken | None) -> bool:
    """
    Sleep for `delay_s` seconds, returning early if `token` is cancelled.

    Returns:
        True when the sleep was interrupted by cancellation.
    """
    if token is None:
        if delay_s > 0:
            await asyncio.sleep(delay_s)
        return False
    if token.cancelled:
        return True
    if delay_s <= 0:
        return False

    waiter = asyncio.ensure_future(token.wait())
    try:
        done, _ = await asyncio.wait({waiter}, timeout=delay_s)
    finally:
        if not waiter.done():
            waiter.cancel()
    return waiter in done
