"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

This module provides the @tool decorator for defining tools in a concise way.
"""

from __future__ import annotations

import inspect
from typing import Any, Callable, Type, TypeVar

from pydantic import BaseModel

from ..llms.types import ToolDefinition
from .base import Tool, ToolFn


ArgsT = TypeVar("ArgsT", bound=BaseModel)


def _default_description(fn: Callable[..., Any], fallback: str) -> str:
    doc = inspect.getdoc(fn) or ""
    first_line = doc.splitlines()[0].strip() if doc else ""
    return first_line or fallback


def tool(
    *,
    args_model: Type[ArgsT],
    name: str | None = None,
    description: str | None = None,
    max_retries: int = 1,
    timeout: float | None = None,
) -> Callable[[ToolFn], Tool]:
    """
    Create a Tool from a sync/async function and a Pydantic v2 args model.

    Tool function can be sync or async and should use one of:
      def/async def fn(args: ArgsModel) -> Any
      def/async def fn(args: ArgsModel, ctx: ToolContext) -> Any
      def/async def fn(ctx: ToolContext, args: ArgsModel) -> Any

    The function may return any JSON-serialisable value (sent to the model as
    text) or a ToolRetry / ToolDeferred / ToolFailure outcome directly.

    max_retries: how many extra attempts a ToolRetry outcome may trigger.
    timeout: per-tool timeout in seconds, overriding the agent default.
    """

    def decorator(fn: ToolFn) -> Tool:
        tool_name = name or getattr(fn, "__name__", "tool")
        tool_desc = description or _default_description(fn, tool_name)

        schema = args_model.model_json_schema()
        definition = ToolDefinition(name=tool_name, description=tool_desc, parameters_schema=schema)

        return Tool(
            definition=definition,
            fn=fn,
            args_model=args_model,
            max_retries=max_retries,
            timeout_s=timeout,
        )

    return decorator
