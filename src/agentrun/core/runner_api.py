"""
Public runner API: blocking run, live stream, step-wise iteration and resume.
"""

from __future__ import annotations

from typing import Any, AsyncIterator, Iterable, Mapping, Sequence

from ..agents.base import Agent
from ..agents.errors import AgentCancelledError, AgentConfigurationError
from ..agents.observer import (
    IteratingLoopObserver,
    LoopObserver,
    NoOpLoopObserver,
    StreamingLoopObserver,
)
from ..agents.types import (
    AgentNode,
    AgentResult,
    AgentStreamEvent,
    PausedAgentRun,
    Resolution,
    ResolvedTool,
)
from ..llms.observability import LLMObserverCallback
from ..llms.retry import RetryingCompletion
from ..llms.types import Message, UserMessage
from ..llms.utils import CancellationToken
from ..tools.errors import ToolCancelledError
from .runner_deferral import normalize_resolutions
from .runner_execution import Requester
from .runner_types import RunnerConfig, RunState, _RunChannel
from .telemetry import NullTelemetrySink, TelemetrySink


class RunnerAPIMixin:
    """
    Public API surface for running and resuming agents.

    Every mode drives the same loop; only the observer and the model requester
    differ. A runner holds no per-run state and may execute any number of runs
    concurrently.
    """

    def __init__(
        self,
        *,
        config: RunnerConfig | None = None,
        telemetry: TelemetrySink | None = None,
        llm_observers: Sequence[LLMObserverCallback] = (),
    ) -> None:
        """
        Args:
            config: Runner defaults. Defaults to `RunnerConfig()`.
            telemetry: Sink for spans, counters and events.
            llm_observers: Callbacks receiving model-call lifecycle events.
        """
        self.config = config or RunnerConfig()
        self._telemetry = telemetry or NullTelemetrySink()
        self._llm_observers = list(llm_observers)

    async def run(
        self,
        agent: Agent,
        prompt: str | None = None,
        *,
        deps: Any = None,
        history: Sequence[Message] | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> AgentResult[Any]:
        """
        Execute an agent run and wait for its terminal result.

        Args:
            agent: Agent definition to execute.
            prompt: User prompt appended after `history`.
            deps: Opaque dependency value handed to tools and instructions.
            history: Prior transcript to continue from.
            cancel_token: Optional cooperative cancellation token.

        Raises:
            HasDeferredToolsError: A tool deferred; the error carries the
                snapshot to resume from.
        """
        return await self._execute(agent, prompt, deps, history, NoOpLoopObserver(), cancel_token)

    async def run_stream(
        self,
        agent: Agent,
        prompt: str | None = None,
        *,
        deps: Any = None,
        history: Sequence[Message] | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> AsyncIterator[AgentStreamEvent]:
        """
        Execute a run, yielding model deltas and loop events as they happen.

        The last event of a successful run is `FinalResultEvent`. Run errors
        are raised from the iterator. Closing the iterator early cancels the run.
        """
        channel = _RunChannel()
        observer = StreamingLoopObserver(channel.emit)
        channel.start(
            self._execute(agent, prompt, deps, history, observer, cancel_token, stream_observer=observer)
        )
        try:
            async for event in channel.iterate():
                yield event
        finally:
            await channel.close()

    async def iter(
        self,
        agent: Agent,
        prompt: str | None = None,
        *,
        deps: Any = None,
        history: Sequence[Message] | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> AsyncIterator[AgentNode]:
        """Execute a run, yielding one node per loop step, ending with `EndNode`."""
        channel = _RunChannel()
        observer = IteratingLoopObserver(channel.emit)
        channel.start(self._execute(agent, prompt, deps, history, observer, cancel_token))
        try:
            async for node in channel.iterate():
                yield node
        finally:
            await channel.close()

    async def resume(
        self,
        agent: Agent,
        paused: PausedAgentRun,
        resolutions: Mapping[str, Resolution] | Iterable[ResolvedTool] | None = None,
        *,
        deps: Any = None,
        cancel_token: CancellationToken | None = None,
    ) -> AgentResult[Any]:
        """
        Continue a paused run.

        Each pending call is resolved by deferral id (or tool call id). A call
        with no resolution is denied. Approved calls run once, without retry.
        """
        state = RunState(
            run_id=paused.run_id,
            deps=deps,
            messages=list(paused.messages),
            usage=paused.usage,
            request_count=paused.request_count,
            tool_call_count=paused.tool_call_count,
            output_retries=paused.output_retries,
            system_prompt=await agent.resolve_instructions(deps),
        )
        observer = NoOpLoopObserver()
        mapping = normalize_resolutions(resolutions)

        async def _body() -> AgentResult[Any]:
            engine = self._engine_for(agent, cancel_token)
            try:
                final = await self._resolve_paused(agent, state, observer, paused, mapping, engine)
            except ToolCancelledError as e:
                raise AgentCancelledError("Run cancelled during tool call") from e
            if final is not None:
                return await self._finish(state, observer, final.output, final.tool_name)
            return await self._run_loop(
                agent,
                state,
                observer,
                requester=self._requester(agent, cancel_token, None),
                cancel=cancel_token,
            )

        return await self._traced(agent, state, _body())

    async def _execute(
        self,
        agent: Agent,
        prompt: str | None,
        deps: Any,
        history: Sequence[Message] | None,
        observer: LoopObserver,
        cancel: CancellationToken | None,
        *,
        stream_observer: StreamingLoopObserver | None = None,
    ) -> AgentResult[Any]:
        if prompt is None and not history:
            raise AgentConfigurationError("a prompt or a non-empty history is required")

        state = RunState(deps=deps, messages=list(history or []))
        state.system_prompt = await agent.resolve_instructions(deps)
        if prompt is not None:
            state.messages.append(UserMessage.from_text(prompt))

        async def _body() -> AgentResult[Any]:
            await observer.on_loop_start(prompt)
            return await self._run_loop(
                agent,
                state,
                observer,
                requester=self._requester(agent, cancel, stream_observer),
                cancel=cancel,
            )

        return await self._traced(agent, state, _body())

    def _requester(
        self,
        agent: Agent,
        cancel: CancellationToken | None,
        stream_observer: StreamingLoopObserver | None,
    ) -> Requester:
        completion = RetryingCompletion(
            agent.model,
            self._retry_policy_for(agent),
            observers=self._llm_observers,
            cancel_token=cancel,
        )
        if stream_observer is None:
            return completion.complete

        async def _stream(request):
            return await completion.stream(request, stream_observer.forward)

        return _stream
