"""
Agent definition, run types, output handling and loop observers.
"""

from .base import Agent, InstructionProvider
from .errors import (
    AgentCancelledError,
    AgentConfigurationError,
    AgentError,
    AgentExecutionError,
    ContentFilteredError,
    HasDeferredToolsError,
    InternalError,
    IterationLimitExceededError,
    ModelRefusedError,
    OutputValidationError,
    ResponseTruncatedError,
    TruncatedOrFilteredError,
    UnexpectedModelBehaviorError,
    UsageLimitExceededError,
    UsageLimitKind,
    ValidationRetry,
)
from .limits import UsageLimiter
from .observer import (
    IteratingLoopObserver,
    LoopObserver,
    NoOpLoopObserver,
    StreamingLoopObserver,
)
from .output import OutputSchema
from .response import ResponseHandler
from .types import (
    AgentNode,
    AgentResult,
    AgentStreamEvent,
    Approved,
    Completed,
    ContentDeltaEvent,
    Denied,
    EndNode,
    EndStrategy,
    Failed,
    FinalResultEvent,
    ModelRequestNode,
    ModelResponseNode,
    PausedAgentRun,
    PendingToolCall,
    Resolution,
    ResolvedTool,
    ToolCallDeltaEvent,
    ToolCallEndEvent,
    ToolCallStartEvent,
    ToolExecutionNode,
    ToolResultEvent,
    ToolResultsNode,
    UsageEvent,
    UsageLimits,
    UserPromptNode,
)

__all__ = [
    "Agent",
    "AgentCancelledError",
    "AgentConfigurationError",
    "AgentError",
    "AgentExecutionError",
    "AgentNode",
    "AgentResult",
    "AgentStreamEvent",
    "Approved",
    "Completed",
    "ContentDeltaEvent",
    "ContentFilteredError",
    "Denied",
    "EndNode",
    "EndStrategy",
    "Failed",
    "FinalResultEvent",
    "HasDeferredToolsError",
    "InstructionProvider",
    "InternalError",
    "IteratingLoopObserver",
    "IterationLimitExceededError",
    "LoopObserver",
    "ModelRefusedError",
    "ModelRequestNode",
    "ModelResponseNode",
    "NoOpLoopObserver",
    "OutputSchema",
    "OutputValidationError",
    "PausedAgentRun",
    "PendingToolCall",
    "Resolution",
    "ResolvedTool",
    "ResponseHandler",
    "ResponseTruncatedError",
    "StreamingLoopObserver",
    "ToolCallDeltaEvent",
    "ToolCallEndEvent",
    "ToolCallStartEvent",
    "ToolExecutionNode",
    "ToolResultEvent",
    "ToolResultsNode",
    "TruncatedOrFilteredError",
    "UnexpectedModelBehaviorError",
    "UsageEvent",
    "UsageLimitExceededError",
    "UsageLimitKind",
    "UsageLimiter",
    "UsageLimits",
    "UserPromptNode",
    "ValidationRetry",
]
