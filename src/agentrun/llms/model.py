"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

This module defines the `Model` base class consumed by the run loop and the
error classifier that maps provider failures onto retryable error kinds.
"""

from __future__ import annotations

import asyncio
import socket
from abc import ABC, abstractmethod
from typing import AsyncIterator

from .errors import (
    LLMAuthenticationError,
    LLMCapabilityError,
    LLMError,
    LLMInvalidRequestError,
    LLMNetworkError,
    LLMRateLimitedError,
    LLMServerError,
)
from .types import (
    CompletionRequest,
    CompletionResponse,
    StreamCompletedEvent,
    StreamEvent,
    StreamTextDeltaEvent,
    StreamToolCallDeltaEvent,
    StreamToolCallEndEvent,
    StreamToolCallStartEvent,
)


class Model(ABC):
    """
    Completion model interface.

    Subclasses implement `complete`. `stream` defaults to replaying a single
    `complete` call as stream events, so every model can back the live-stream
    run mode; adapters with native streaming override it.
    """

    @property
    def model_name(self) -> str:
        return type(self).__name__

    @abstractmethod
    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        raise NotImplementedError

    async def stream(self, request: CompletionRequest) -> AsyncIterator[StreamEvent]:
        response = await self.complete(request)
        if response.content:
            yield StreamTextDeltaEvent(delta=response.content)
        for call in response.tool_calls:
            yield StreamToolCallStartEvent(id=call.id, name=call.name)
            yield StreamToolCallDeltaEvent(delta=call.arguments, id=call.id)
            yield StreamToolCallEndEvent(id=call.id)
        yield StreamCompletedEvent(response=response)


def _status_code(e: Exception) -> int | None:
    for attr in ("status_code", "status", "code"):
        val = getattr(e, attr, None)
        if isinstance(val, int):
            return val
        if isinstance(val, str) and val.isdigit():
            return int(val)

    resp = getattr(e, "response", None)
    if resp is not None:
        sc = getattr(resp, "status_code", None) or getattr(resp, "status", None)
        if isinstance(sc, int):
            return sc
        if isinstance(sc, str) and sc.isdigit():
            return int(sc)
    return None


def _retry_after(e: Exception) -> float | None:
    val = getattr(e, "retry_after", None)
    if isinstance(val, (int, float)):
        return float(val)
    headers = getattr(getattr(e, "response", None), "headers", None)
    if headers is not None:
        try:
            raw = headers.get("retry-after") or headers.get("Retry-After")
        except AttributeError:
            return None
        if raw is not None:
            try:
                return float(raw)
            except (TypeError, ValueError):
                return None
    return None


_RATE_PHRASES = ("rate limit", "rate_limit", "rate-limit", "quota exceeded", "429")
_SERVER_PHRASES = (
    "temporarily unavailable",
    "overloaded",
    "service unavailable",
    "internal server error",
    "try again",
    "please retry",
    "502",
    "503",
    "504",
    "500",
)
_NETWORK_PHRASES = (
    "timeout",
    "timed out",
    "connection reset",
    "connection aborted",
    "connection refused",
    "connection error",
    "name or service not known",
    "econnreset",
    "econnrefused",
    "ehostunreach",
    "eai_again",
)
_AUTH_PHRASES = ("invalid api key", "invalid_api_key", "unauthorized", "authentication failed", "forbidden")


def classify_error(e: Exception) -> LLMError:
    """
    Map an arbitrary exception raised by a model into the `LLMError` taxonomy.

    Already-classified `LLMError` instances pass through. HTTP-like status
    codes win over exception types, which win over message phrases. Anything
    unrecognised is a plain, non-retryable `LLMError`.
    """
    if isinstance(e, LLMError):
        return e

    msg = str(e) or repr(e)
    m = msg.lower()

    status = _status_code(e)
    if status is not None:
        if status == 429:
            return LLMRateLimitedError(msg, retry_after=_retry_after(e))
        if status == 408 or 500 <= status < 600:
            return LLMServerError(msg)
        if status in (401, 403):
            return LLMAuthenticationError(msg)
        if 400 <= status < 500:
            return LLMInvalidRequestError(msg)

    if isinstance(e, NotImplementedError):
        return LLMCapabilityError(msg)

    transient_types = (
        asyncio.TimeoutError,
        TimeoutError,
        socket.timeout,
        ConnectionError,
        OSError,
    )
    if isinstance(e, transient_types):
        return LLMNetworkError(msg)

    if any(phrase in m for phrase in _RATE_PHRASES):
        return LLMRateLimitedError(msg, retry_after=_retry_after(e))
    if any(phrase in m for phrase in _NETWORK_PHRASES):
        return LLMNetworkError(msg)
    if any(phrase in m for phrase in _SERVER_PHRASES):
        return LLMServerError(msg)
    if any(phrase in m for phrase in _AUTH_PHRASES):
        return LLMAuthenticationError(msg)

    return LLMError(msg)
