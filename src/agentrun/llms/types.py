"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

This module defines the provider-agnostic types exchanged with a completion model:
transcript messages, tool calls, requests/responses, usage counters and stream events.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Annotated, Any, Literal, TypeAlias

from pydantic import Field


JSONPrimitive: TypeAlias = str | int | float | bool | None
JSONValue: TypeAlias = JSONPrimitive | list["JSONValue"] | dict[str, "JSONValue"]
JSONObject: TypeAlias = dict[str, JSONValue]
JSONSchema: TypeAlias = dict[str, Any]

StopReason = Literal[
    "end_turn",
    "tool_use",
    "max_tokens",
    "stop_sequence",
    "content_filtered",
]


@dataclass(frozen=True, slots=True)
class Usage:
    """
    Token counters for one or more completions.

    `cached_tokens` and `reasoning_tokens` stay `None` when no provider reported
    them. Addition is elementwise, so accumulating usage across requests is
    associative and commutative.
    """

    input_tokens: int = 0
    output_tokens: int = 0
    cached_tokens: int | None = None
    reasoning_tokens: int | None = None

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def __add__(self, other: Usage) -> Usage:
        if not isinstance(other, Usage):
            return NotImplemented
        return Usage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
            cached_tokens=_add_optional(self.cached_tokens, other.cached_tokens),
            reasoning_tokens=_add_optional(self.reasoning_tokens, other.reasoning_tokens),
        )


def _add_optional(a: int | None, b: int | None) -> int | None:
    if a is None and b is None:
        return None
    return (a or 0) + (b or 0)


@dataclass(frozen=True, slots=True)
class ToolCall:
    """One tool invocation requested by the model. `arguments` is raw JSON text."""

    id: str
    name: str
    arguments: str = "{}"


@dataclass(frozen=True, slots=True)
class ToolDefinition:
    """
    Model-facing tool metadata: name, description and JSON schema of the arguments.
    """

    name: str
    description: str
    parameters_schema: JSONSchema = field(default_factory=dict)


# ---------- Transcript messages ----------


@dataclass(frozen=True, slots=True)
class TextPart:
    text: str
    type: Literal["text"] = "text"


@dataclass(frozen=True, slots=True)
class ImagePart:
    """Image content. `data` is base64 text or a URL, depending on `source`."""

    data: str
    mime_type: str = "image/png"
    source: Literal["base64", "url"] = "base64"
    type: Literal["image"] = "image"


ContentPart: TypeAlias = Annotated[TextPart | ImagePart, Field(discriminator="type")]


@dataclass(frozen=True, slots=True)
class SystemMessage:
    text: str
    role: Literal["system"] = "system"


@dataclass(frozen=True, slots=True)
class UserMessage:
    parts: tuple[ContentPart, ...]
    role: Literal["user"] = "user"

    @staticmethod
    def from_text(text: str) -> UserMessage:
        return UserMessage(parts=(TextPart(text=text),))

    @property
    def text(self) -> str:
        return "".join(p.text for p in self.parts if isinstance(p, TextPart))


@dataclass(frozen=True, slots=True)
class AssistantMessage:
    text: str = ""
    tool_calls: tuple[ToolCall, ...] = ()
    role: Literal["assistant"] = "assistant"


@dataclass(frozen=True, slots=True)
class ToolResultEntry:
    """Result of one tool call as shown to the model on the next turn."""

    tool_call_id: str
    output: str
    is_error: bool = False


@dataclass(frozen=True, slots=True)
class ToolResultsMessage:
    results: tuple[ToolResultEntry, ...]
    role: Literal["tool"] = "tool"


Message: TypeAlias = Annotated[
    SystemMessage | UserMessage | AssistantMessage | ToolResultsMessage,
    Field(discriminator="role"),
]


# ---------- Requests / responses ----------


@dataclass(frozen=True, slots=True)
class CompletionSettings:
    """Optional sampling controls forwarded to the model unchanged."""

    temperature: float | None = None
    top_p: float | None = None
    max_tokens: int | None = None
    stop_sequences: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class CompletionRequest:
    """
    One completion request built from the full transcript.

    `tools` is `None` when the catalog is empty so providers that reject an
    empty tool list never see one.
    """

    messages: tuple[Message, ...]
    tools: tuple[ToolDefinition, ...] | None = None
    settings: CompletionSettings = field(default_factory=CompletionSettings)


@dataclass(frozen=True, slots=True)
class CompletionResponse:
    content: str = ""
    tool_calls: tuple[ToolCall, ...] = ()
    stop_reason: StopReason = "end_turn"
    usage: Usage = field(default_factory=Usage)
    refusal: str | None = None
    model: str | None = None


# ---------- Stream events ----------


@dataclass(frozen=True, slots=True)
class StreamTextDeltaEvent:
    delta: str
    type: Literal["text_delta"] = "text_delta"


@dataclass(frozen=True, slots=True)
class StreamToolCallStartEvent:
    id: str
    name: str
    type: Literal["tool_call_start"] = "tool_call_start"


@dataclass(frozen=True, slots=True)
class StreamToolCallDeltaEvent:
    """
    Incremental tool arguments. Providers that omit `id` on deltas rely on the
    consumer tracking the most recently started call.
    """

    delta: str
    id: str | None = None
    type: Literal["tool_call_delta"] = "tool_call_delta"


@dataclass(frozen=True, slots=True)
class StreamToolCallEndEvent:
    id: str
    type: Literal["tool_call_end"] = "tool_call_end"


@dataclass(frozen=True, slots=True)
class StreamCompletedEvent:
    response: CompletionResponse
    type: Literal["completed"] = "completed"


StreamEvent: TypeAlias = (
    StreamTextDeltaEvent
    | StreamToolCallStartEvent
    | StreamToolCallDeltaEvent
    | StreamToolCallEndEvent
    | StreamCompletedEvent
)
