"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

Provider-agnostic completion model layer: types, errors, retries and test models.
"""

from .errors import (
    LLMAuthenticationError,
    LLMCancelledError,
    LLMCapabilityError,
    LLMError,
    LLMInvalidRequestError,
    LLMNetworkError,
    LLMRateLimitedError,
    LLMRetryableError,
    LLMServerError,
    RetriesExhaustedError,
)
from .model import Model, classify_error
from .observability import LLMLifecycleEvent, LLMObserver
from .retry import RetryingCompletion, RetryPolicy
from .types import (
    AssistantMessage,
    CompletionRequest,
    CompletionResponse,
    CompletionSettings,
    ImagePart,
    Message,
    StopReason,
    StreamCompletedEvent,
    StreamEvent,
    StreamTextDeltaEvent,
    StreamToolCallDeltaEvent,
    StreamToolCallEndEvent,
    StreamToolCallStartEvent,
    SystemMessage,
    TextPart,
    ToolCall,
    ToolDefinition,
    ToolResultEntry,
    ToolResultsMessage,
    Usage,
    UserMessage,
)
from .utils import CancellationToken

__all__ = [
    "AssistantMessage",
    "CancellationToken",
    "CompletionRequest",
    "CompletionResponse",
    "CompletionSettings",
    "ImagePart",
    "LLMAuthenticationError",
    "LLMCancelledError",
    "LLMCapabilityError",
    "LLMError",
    "LLMInvalidRequestError",
    "LLMLifecycleEvent",
    "LLMNetworkError",
    "LLMObserver",
    "LLMRateLimitedError",
    "LLMRetryableError",
    "LLMServerError",
    "Message",
    "Model",
    "RetriesExhaustedError",
    "RetryingCompletion",
    "RetryPolicy",
    "StopReason",
    "StreamCompletedEvent",
    "StreamEvent",
    "StreamTextDeltaEvent",
    "StreamToolCallDeltaEvent",
    "StreamToolCallEndEvent",
    "StreamToolCallStartEvent",
    "SystemMessage",
    "TextPart",
    "ToolCall",
    "ToolDefinition",
    "ToolResultEntry",
    "ToolResultsMessage",
    "Usage",
    "UserMessage",
    "classify_error",
]
