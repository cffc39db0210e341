"""
Typed final output: pseudo-tool schema, decoding and validator chain.
"""

from __future__ import annotations

import inspect
import json
from typing import Any, Awaitable, Sequence, cast

from pydantic import TypeAdapter, ValidationError
from pydantic.errors import PydanticSchemaGenerationError

from ..llms.types import ToolDefinition
from ..tools.base import ToolContext
from .errors import AgentConfigurationError, InternalError, ValidationRetry
from .types import OutputValidator

DEFAULT_OUTPUT_TOOL_NAME = "final_result"
DEFAULT_OUTPUT_TOOL_DESCRIPTION = "Provide the final result"

_WRAPPER_KEY = "response"


class OutputSchema:
    """
    Describes how a run produces its final output.

    For `str` the model answers in plain text. Any other type is requested
    through an output pseudo-tool whose arguments are validated with pydantic.
    Types whose JSON schema is not an object are wrapped as
    `{"response": <value>}` so the pseudo-tool always takes an object.
    """

    def __init__(
        self,
        output_type: Any = str,
        *,
        tool_name: str = DEFAULT_OUTPUT_TOOL_NAME,
        tool_description: str = DEFAULT_OUTPUT_TOOL_DESCRIPTION,
        validators: Sequence[OutputValidator] = (),
    ) -> None:
        self.output_type = output_type
        self.tool_name = tool_name
        self.tool_description = tool_description
        self.validators = tuple(validators)
        self._adapter: TypeAdapter[Any] | None = None
        self._schema: dict[str, Any] | None = None
        self._wrapped = False

        if not self.is_text:
            try:
                self._adapter = TypeAdapter(output_type)
                schema = self._adapter.json_schema()
            except PydanticSchemaGenerationError as e:
                raise AgentConfigurationError(
                    f"Cannot build an output schema for {output_type!r}: {e}"
                ) from e
            if schema.get("type") == "object":
                self._schema = schema
            else:
                defs = schema.pop("$defs", None)
                wrapped: dict[str, Any] = {
                    "type": "object",
                    "properties": {_WRAPPER_KEY: schema},
                    "required": [_WRAPPER_KEY],
                }
                if defs:
                    wrapped["$defs"] = defs
                self._schema = wrapped
                self._wrapped = True

    @property
    def is_text(self) -> bool:
        return self.output_type is str

    def tool_definition(self) -> ToolDefinition | None:
        if self.is_text or self._schema is None:
            return None
        return ToolDefinition(
            name=self.tool_name,
            description=self.tool_description,
            parameters_schema=self._schema,
        )

    def decode(self, arguments_json: str) -> Any:
        """
        Decode output-tool arguments into the output type.

        Raises:
            ValidationRetry: With a model-readable description of what was wrong.
        """
        if self._adapter is None:
            raise InternalError("decode called on a plain-text output schema")
        try:
            if not self._wrapped:
                return self._adapter.validate_json(arguments_json or "{}")
            payload = json.loads(arguments_json or "{}")
            if not isinstance(payload, dict) or _WRAPPER_KEY not in payload:
                raise ValidationRetry(f"Invalid output: expected an object with a '{_WRAPPER_KEY}' field")
            return self._adapter.validate_python(payload[_WRAPPER_KEY])
        except ValidationError as e:
            raise ValidationRetry(f"Invalid output: {e}") from e
        except ValueError as e:
            raise ValidationRetry(f"Invalid output JSON: {e}") from e

    def coerce(self, value: Any) -> Any:
        """Re-validate an output restored from a persisted snapshot."""
        if self._adapter is None:
            return value
        return self._adapter.validate_python(value)

    def dump(self, value: Any) -> Any:
        if self._adapter is None:
            return value
        return self._adapter.dump_python(value, mode="json")

    async def validate(self, value: Any, ctx: ToolContext) -> Any:
        """
        Run output validators in order. A validator may return a replacement
        value; returning `None` keeps the current one. `ValidationRetry`
        propagates to the caller.
        """
        for validator in self.validators:
            if len(inspect.signature(validator).parameters) == 1:
                result = validator(value)
            else:
                result = validator(ctx, value)
            if inspect.isawaitable(result):
                result = await cast(Awaitable[Any], result)
            if result is not None:
                value = result
        return value
