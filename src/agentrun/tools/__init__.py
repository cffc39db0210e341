"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

Tool definitions, registry and execution engine.
"""

from .base import (
    DeferralKind,
    DeferredToolCall,
    Tool,
    ToolContext,
    ToolDeferred,
    ToolFailure,
    ToolOutcome,
    ToolRetry,
    ToolSuccess,
    as_async,
    outcome_text,
)
from .decorator import tool
from .engine import ToolCallResult, ToolExecutionEngine
from .errors import (
    ToolAlreadyRegisteredError,
    ToolArgumentsError,
    ToolCancelledError,
    ToolError,
    ToolNotFoundError,
    ToolRetriesExhaustedError,
    ToolTimeoutError,
    ToolValidationError,
)
from .registry import ToolRegistry

__all__ = [
    "DeferralKind",
    "DeferredToolCall",
    "Tool",
    "ToolAlreadyRegisteredError",
    "ToolArgumentsError",
    "ToolCallResult",
    "ToolCancelledError",
    "ToolContext",
    "ToolDeferred",
    "ToolError",
    "ToolExecutionEngine",
    "ToolFailure",
    "ToolNotFoundError",
    "ToolOutcome",
    "ToolRegistry",
    "ToolRetriesExhaustedError",
    "ToolRetry",
    "ToolSuccess",
    "ToolTimeoutError",
    "ToolValidationError",
    "as_async",
    "outcome_text",
    "tool",
]
