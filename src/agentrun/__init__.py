"""
agentrun: an async agent execution engine.

Drives a loop between a completion model and a tool catalog until a typed
final output is produced, with retries, tool timeouts and resumable
human-in-the-loop deferrals.
"""

from .agents import (
    Agent,
    AgentError,
    AgentResult,
    Approved,
    Completed,
    Denied,
    EndStrategy,
    Failed,
    HasDeferredToolsError,
    PausedAgentRun,
    ResolvedTool,
    UsageLimits,
    ValidationRetry,
)
from .core import Runner, RunnerConfig, dump_paused_run, load_paused_run
from .llms import CancellationToken, Model, RetryPolicy, Usage
from .tools import DeferredToolCall, ToolContext, ToolDeferred, ToolRetry, tool

__all__ = [
    "Agent",
    "AgentError",
    "AgentResult",
    "Approved",
    "CancellationToken",
    "Completed",
    "DeferredToolCall",
    "Denied",
    "EndStrategy",
    "Failed",
    "HasDeferredToolsError",
    "Model",
    "PausedAgentRun",
    "ResolvedTool",
    "RetryPolicy",
    "Runner",
    "RunnerConfig",
    "ToolContext",
    "ToolDeferred",
    "ToolRetry",
    "Usage",
    "UsageLimits",
    "ValidationRetry",
    "dump_paused_run",
    "load_paused_run",
    "tool",
]
