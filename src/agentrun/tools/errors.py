"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

This module defines custom exceptions for error handling in the tools.
"""

from __future__ import annotations


class ToolError(Exception):
    """Base exception for all tool-related errors."""

    pass


class ToolValidationError(ToolError):
    """A tool function or its declaration is malformed."""

    pass


class ToolAlreadyRegisteredError(ToolError):
    pass


class ToolArgumentsError(ToolError):
    """The model supplied arguments that do not match the tool's args model."""

    pass


class ToolNotFoundError(ToolError):
    def __init__(self, tool_name: str) -> None:
        super().__init__(f"Tool not found: {tool_name}")
        self.tool_name = tool_name


class ToolRetriesExhaustedError(ToolError):
    """A tool kept asking for a retry past its `max_retries`."""

    def __init__(self, tool_name: str, attempts: int, last_message: str | None = None) -> None:
        detail = f": {last_message}" if last_message else ""
        super().__init__(f"Tool '{tool_name}' failed after {attempts} attempt(s){detail}")
        self.tool_name = tool_name
        self.attempts = attempts
        self.last_message = last_message


class ToolTimeoutError(ToolError):
    """
    A tool invocation exceeded its timeout. This aborts the run rather than
    being reported back to the model.
    """

    def __init__(self, tool_name: str, timeout_s: float) -> None:
        super().__init__(f"Tool '{tool_name}' execution exceeded timeout of {timeout_s} seconds.")
        self.tool_name = tool_name
        self.timeout_s = timeout_s


class ToolCancelledError(ToolError):
    """The run was cancelled while a tool invocation was in flight."""

    def __init__(self, tool_name: str) -> None:
        super().__init__(f"Tool '{tool_name}' cancelled")
        self.tool_name = tool_name
