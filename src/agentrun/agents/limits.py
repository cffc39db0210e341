"""
Usage ceiling enforcement.
"""

from __future__ import annotations

from ..llms.types import Usage
from .errors import UsageLimitExceededError
from .types import UsageLimits


class UsageLimiter:
    """
    Checks accumulated usage against `UsageLimits` before each model request.

    Stateless: the counts come from the caller's run state on every check.
    """

    def __init__(self, limits: UsageLimits | None = None) -> None:
        self.limits = limits or UsageLimits()

    def check(self, usage: Usage, *, request_count: int, tool_call_count: int) -> None:
        """
        Raise `UsageLimitExceededError` if any configured ceiling is reached.

        Token ceilings use a strict comparison; request and tool-call ceilings
        trip once the count equals the limit.
        """
        limits = self.limits
        if limits.unlimited:
            return

        if limits.max_input_tokens is not None and usage.input_tokens > limits.max_input_tokens:
            raise UsageLimitExceededError("input_tokens", usage.input_tokens, limits.max_input_tokens)
        if limits.max_output_tokens is not None and usage.output_tokens > limits.max_output_tokens:
            raise UsageLimitExceededError("output_tokens", usage.output_tokens, limits.max_output_tokens)
        if limits.max_total_tokens is not None and usage.total_tokens > limits.max_total_tokens:
            raise UsageLimitExceededError("total_tokens", usage.total_tokens, limits.max_total_tokens)
        if limits.max_requests is not None and request_count >= limits.max_requests:
            raise UsageLimitExceededError("requests", request_count, limits.max_requests)
        if limits.max_tool_calls is not None and tool_call_count >= limits.max_tool_calls:
            raise UsageLimitExceededError("tool_calls", tool_call_count, limits.max_tool_calls)
