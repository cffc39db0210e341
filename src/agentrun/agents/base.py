"""
Declarative agent definition.
"""

from __future__ import annotations

import inspect
from typing import TYPE_CHECKING, Any, AsyncIterator, Awaitable, Callable, Iterable, Mapping, Sequence, cast

from ..llms.model import Model
from ..llms.retry import RetryPolicy
from ..llms.types import CompletionSettings, Message
from ..tools.base import Tool
from ..tools.errors import ToolError
from ..tools.registry import ToolRegistry
from .errors import AgentConfigurationError
from .output import DEFAULT_OUTPUT_TOOL_DESCRIPTION, DEFAULT_OUTPUT_TOOL_NAME, OutputSchema
from .types import (
    AgentNode,
    AgentResult,
    AgentStreamEvent,
    EndStrategy,
    OutputValidator,
    PausedAgentRun,
    Resolution,
    ResolvedTool,
    UsageLimits,
)

if TYPE_CHECKING:
    from ..core.runner import Runner


InstructionProvider = Callable[[Any], "str | Awaitable[str]"]


class Agent:
    """
    Agent configuration consumed by the runner.

    The class is declarative: it stores the model, tool catalog, output type
    and loop limits. Execution happens in `Runner`; the `run*`/`iter`/`resume`
    methods here only delegate. An agent is read-only while runs are in flight
    and may serve any number of concurrent runs.
    """

    def __init__(
        self,
        *,
        model: Model,
        name: str | None = None,
        tools: Iterable[Tool] | None = None,
        instructions: str | InstructionProvider | None = None,
        output_type: Any = str,
        output_validators: Sequence[OutputValidator] | None = None,
        output_tool_name: str = DEFAULT_OUTPUT_TOOL_NAME,
        output_tool_description: str = DEFAULT_OUTPUT_TOOL_DESCRIPTION,
        end_strategy: EndStrategy | str = EndStrategy.EARLY,
        max_iterations: int = 10,
        usage_limits: UsageLimits | None = None,
        retry_policy: RetryPolicy | None = None,
        tool_timeout_s: float | None = None,
        max_output_retries: int | None = None,
        settings: CompletionSettings | None = None,
        runner: "Runner | None" = None,
    ) -> None:
        """
        Initialize an agent definition.

        Args:
            model: Completion model driving the loop.
            name: Optional logical name used in telemetry.
            tools: Tools the model may call.
            instructions: System prompt, or a callable receiving the run's
                deps and returning it (sync or async).
            output_type: Final output type. `str` means a plain text answer;
                any other pydantic-compatible type is requested through the
                output tool.
            output_validators: Callables `(ctx, output)` or `(output)` run on
                every candidate output; they may raise `ValidationRetry`.
            output_tool_name: Name of the output pseudo-tool.
            output_tool_description: Description of the output pseudo-tool.
            end_strategy: `early` or `exhaustive` handling of tool batches that
                contain a valid output.
            max_iterations: Ceiling on model requests per run.
            usage_limits: Optional token/request/tool-call ceilings.
            retry_policy: Model-call retry policy. Falls back to the runner's.
            tool_timeout_s: Default per-tool timeout. Falls back to the runner's.
            max_output_retries: Optional ceiling on output validation retries.
                `None` leaves them bounded only by `max_iterations`.
            settings: Sampling settings forwarded with every request.
            runner: Runner used by the convenience methods.
        """
        if max_iterations < 1:
            raise AgentConfigurationError("max_iterations must be >= 1")
        if max_output_retries is not None and max_output_retries < 0:
            raise AgentConfigurationError("max_output_retries must be >= 0")
        if tool_timeout_s is not None and tool_timeout_s <= 0:
            raise AgentConfigurationError("tool_timeout_s must be > 0")

        self.model = model
        self.name = name or type(self).__name__
        self.tools = list(tools or [])
        self.instructions = instructions
        self.output_validators = list(output_validators or [])
        self.end_strategy = EndStrategy(end_strategy)
        self.max_iterations = max_iterations
        self.usage_limits = usage_limits or UsageLimits()
        self.retry_policy = retry_policy
        self.tool_timeout_s = tool_timeout_s
        self.max_output_retries = max_output_retries
        self.settings = settings or CompletionSettings()
        self.runner = runner

        self.output = OutputSchema(
            output_type,
            tool_name=output_tool_name,
            tool_description=output_tool_description,
            validators=self.output_validators,
        )
        self.registry = self.build_tool_registry()

    @property
    def output_type(self) -> Any:
        return self.output.output_type

    def build_tool_registry(self) -> ToolRegistry:
        """
        Build the agent's tool catalog.

        Raises:
            AgentConfigurationError: If a tool uses the output tool name or two
                tools share a name.
        """
        reserved = () if self.output.is_text else (self.output.tool_name,)
        try:
            return ToolRegistry(self.tools, reserved_names=reserved)
        except ToolError as e:
            raise AgentConfigurationError(f"Invalid tool catalog for agent '{self.name}': {e}") from e

    async def resolve_instructions(self, deps: Any) -> str:
        if self.instructions is None:
            return ""
        if isinstance(self.instructions, str):
            return self.instructions
        value = self.instructions(deps)
        if inspect.isawaitable(value):
            value = await cast(Awaitable[str], value)
        return str(value or "")

    def _runner(self) -> "Runner":
        from ..core.runner import Runner

        return self.runner or Runner()

    async def run(
        self,
        prompt: str | None = None,
        *,
        deps: Any = None,
        history: Sequence[Message] | None = None,
    ) -> AgentResult[Any]:
        """Execute this agent through a runner and return the terminal result."""
        return await self._runner().run(self, prompt, deps=deps, history=history)

    def run_stream(
        self,
        prompt: str | None = None,
        *,
        deps: Any = None,
        history: Sequence[Message] | None = None,
    ) -> AsyncIterator[AgentStreamEvent]:
        return self._runner().run_stream(self, prompt, deps=deps, history=history)

    def iter(
        self,
        prompt: str | None = None,
        *,
        deps: Any = None,
        history: Sequence[Message] | None = None,
    ) -> AsyncIterator[AgentNode]:
        return self._runner().iter(self, prompt, deps=deps, history=history)

    async def resume(
        self,
        paused: PausedAgentRun,
        resolutions: Mapping[str, Resolution] | Iterable[ResolvedTool],
        *,
        deps: Any = None,
    ) -> AgentResult[Any]:
        return await self._runner().resume(self, paused, resolutions, deps=deps)
