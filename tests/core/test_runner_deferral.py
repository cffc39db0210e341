from __future__ import annotations

import asyncio
import json

import pytest
from pydantic import BaseModel

from agentrun.agents import (
    Agent,
    Approved,
    Completed,
    Denied,
    EndStrategy,
    Failed,
    HasDeferredToolsError,
    IterationLimitExceededError,
    PausedAgentRun,
    PendingToolCall,
    ResolvedTool,
)
from agentrun.core import Runner, dump_paused_run, load_paused_run
from agentrun.llms import AssistantMessage, ToolCall, ToolResultsMessage, Usage
from agentrun.llms.testing import ScriptedModel, text_response, tool_call_response
from agentrun.tools import DeferredToolCall, ToolContext, ToolDeferred, tool


def run_async(coro):
    return asyncio.run(coro)


class Empty(BaseModel):
    pass


class AddArgs(BaseModel):
    a: int
    b: int


class Verdict(BaseModel):
    label: str
    score: int


@tool(args_model=AddArgs)
def add(args: AddArgs) -> int:
    return args.a + args.b


class Gate:
    """Tool that asks for approval until it runs with an approved context."""

    def __init__(self, *, defer_always: bool = False, deferral_id: str | None = None) -> None:
        self.seen: list[bool] = []
        self.defer_always = defer_always
        self.deferral_id = deferral_id

        @tool(args_model=Empty, name="gate")
        def gate(args: Empty, ctx: ToolContext):
            self.seen.append(ctx.approved)
            if self.defer_always or not ctx.approved:
                return ToolDeferred(DeferredToolCall.needs_approval("needs sign-off", id=self.deferral_id))
            return "gate opened"

        self.tool = gate


def _add_call(call_id: str, a: int = 1, b: int = 2) -> ToolCall:
    return ToolCall(id=call_id, name="add", arguments=f'{{"a": {a}, "b": {b}}}')


def _pause(runner: Runner, agent: Agent, prompt: str = "go") -> PausedAgentRun:
    with pytest.raises(HasDeferredToolsError) as exc:
        run_async(runner.run(agent, prompt))
    return exc.value.paused


def test_deferral_pauses_with_completed_results_in_transcript():
    gate = Gate()
    model = ScriptedModel([tool_call_response(_add_call("a"), ToolCall(id="b", name="gate"))])
    agent = Agent(model=model, tools=[add, gate.tool])

    paused = _pause(Runner(), agent)

    assert [p.id for p in paused.pending_calls] == ["b"]
    assert paused.deferrals[0].reason == "needs sign-off"
    assert paused.deferrals[0].id == "b"
    assert [p.id for p in paused.approvals] == ["b"]
    assert paused.external == []
    assert paused.remaining_calls == ()
    assert paused.request_count == 1
    assert paused.tool_call_count == 2

    last = paused.messages[-1]
    assert isinstance(last, ToolResultsMessage)
    assert [(e.tool_call_id, e.output) for e in last.results] == [("a", "3")]


def test_resume_approved_runs_tool_once_and_continues():
    gate = Gate()
    model = ScriptedModel(
        [tool_call_response(ToolCall(id="b", name="gate")), text_response("all done")]
    )
    agent = Agent(model=model, tools=[gate.tool])
    runner = Runner()
    paused = _pause(runner, agent)

    result = run_async(runner.resume(agent, paused, {"b": Approved()}))

    assert gate.seen == [False, True]
    assert result.output == "all done"
    assert result.run_id == paused.run_id
    assert result.request_count == 2
    assert result.tool_call_count == 1
    entry = result.messages[2].results[0]
    assert entry.output == "gate opened"
    assert not entry.is_error


def test_resuming_the_same_snapshot_twice_runs_the_approved_tool_twice():
    gate = Gate()
    model = ScriptedModel(
        [
            tool_call_response(ToolCall(id="b", name="gate")),
            text_response("first"),
            text_response("second"),
        ]
    )
    agent = Agent(model=model, tools=[gate.tool])
    runner = Runner()
    paused = _pause(runner, agent)

    first = run_async(runner.resume(agent, paused, {"b": Approved()}))
    second = run_async(runner.resume(agent, paused, {"b": Approved()}))

    assert gate.seen == [False, True, True]
    assert (first.output, second.output) == ("first", "second")
    assert first.run_id == second.run_id == paused.run_id
    assert first.request_count == second.request_count == 2
    assert first.messages[2].results[0].output == "gate opened"
    assert second.messages[2].results[0].output == "gate opened"


@pytest.mark.parametrize(
    "resolution, expected, is_error",
    [
        (Denied("too risky"), "Tool call denied: too risky", True),
        (Completed({"rows": 3}), '{"rows": 3}', False),
        (Completed("manual answer"), "manual answer", False),
        (Failed("upstream timeout"), "Tool call failed: upstream timeout", True),
    ],
)
def test_resume_without_running_the_tool(resolution, expected, is_error):
    gate = Gate()
    model = ScriptedModel([tool_call_response(ToolCall(id="b", name="gate")), text_response("ok")])
    agent = Agent(model=model, tools=[gate.tool])
    runner = Runner()
    paused = _pause(runner, agent)

    result = run_async(runner.resume(agent, paused, [ResolvedTool(id="b", resolution=resolution)]))

    assert gate.seen == [False]
    entry = result.messages[2].results[0]
    assert entry.output == expected
    assert entry.is_error is is_error
    assert model.requests[-1].messages[-1] == result.messages[2]


def test_missing_resolution_is_an_implicit_denial():
    gate = Gate()
    model = ScriptedModel([tool_call_response(ToolCall(id="b", name="gate")), text_response("ok")])
    agent = Agent(model=model, tools=[gate.tool])
    runner = Runner()
    paused = _pause(runner, agent)

    result = run_async(runner.resume(agent, paused, {}))

    entry = result.messages[2].results[0]
    assert entry.is_error
    assert entry.output == "Tool call denied: No resolution provided"
    assert gate.seen == [False]


def test_custom_deferral_id_is_used_for_resolution():
    gate = Gate(deferral_id="ticket-9")
    model = ScriptedModel([tool_call_response(ToolCall(id="b", name="gate")), text_response("ok")])
    agent = Agent(model=model, tools=[gate.tool])
    runner = Runner()
    paused = _pause(runner, agent)

    assert paused.pending_calls[0].id == "ticket-9"
    result = run_async(runner.resume(agent, paused, {"ticket-9": Approved()}))
    assert result.messages[2].results[0].output == "gate opened"


def test_remaining_calls_run_after_resolution():
    gate = Gate()
    model = ScriptedModel(
        [
            tool_call_response(_add_call("a", 1, 1), ToolCall(id="b", name="gate"), _add_call("c", 2, 2)),
            text_response("finished"),
        ]
    )
    agent = Agent(model=model, tools=[add, gate.tool])
    runner = Runner()
    paused = _pause(runner, agent)

    assert [c.id for c in paused.remaining_calls] == ["c"]
    assert paused.tool_call_count == 2

    result = run_async(runner.resume(agent, paused, {"b": Approved()}))

    assert result.tool_call_count == 3
    tool_messages = [m for m in result.messages if isinstance(m, ToolResultsMessage)]
    assert [[e.tool_call_id for e in m.results] for m in tool_messages] == [["a"], ["b", "c"]]
    assert tool_messages[1].results[1].output == "4"


def test_redeferral_is_scoped_to_the_redeferred_call():
    gate = Gate(defer_always=True)
    model = ScriptedModel([text_response("ok")])
    agent = Agent(model=model, tools=[gate.tool])
    first = ToolCall(id="b1", name="gate")
    second = ToolCall(id="b2", name="gate")
    paused = PausedAgentRun(
        run_id="run_fixed",
        messages=(AssistantMessage(tool_calls=(first, second)),),
        usage=Usage(input_tokens=1, output_tokens=1),
        request_count=1,
        tool_call_count=2,
        pending_calls=(
            PendingToolCall(first, DeferredToolCall.needs_approval("x", id="b1")),
            PendingToolCall(second, DeferredToolCall.needs_approval("y", id="b2")),
        ),
    )
    runner = Runner()

    with pytest.raises(HasDeferredToolsError) as exc:
        run_async(runner.resume(agent, paused, {"b1": Denied("no"), "b2": Approved()}))
    again = exc.value.paused

    assert [p.id for p in again.pending_calls] == ["b2"]
    assert again.run_id == "run_fixed"
    assert again.tool_call_count == 2
    kept = again.messages[-1]
    assert [(e.tool_call_id, e.output) for e in kept.results] == [("b1", "Tool call denied: no")]

    gate.defer_always = False
    result = run_async(runner.resume(agent, again, {"b2": Completed("external result")}))
    tool_messages = [m for m in result.messages if isinstance(m, ToolResultsMessage)]
    assert [[e.tool_call_id for e in m.results] for m in tool_messages] == [["b1"], ["b2"]]
    assert result.output == "ok"


def test_output_candidate_survives_the_pause():
    gate = Gate()
    model = ScriptedModel(
        [
            tool_call_response(
                ToolCall(id="o", name="final_result", arguments='{"label": "ok", "score": 5}'),
                ToolCall(id="b", name="gate"),
            )
        ]
    )
    agent = Agent(
        model=model,
        tools=[gate.tool],
        output_type=Verdict,
        end_strategy=EndStrategy.EXHAUSTIVE,
    )
    runner = Runner()
    paused = _pause(runner, agent)
    assert paused.has_output_candidate

    result = run_async(runner.resume(agent, paused, {"b": Approved()}))

    assert result.output == Verdict(label="ok", score=5)
    assert result.output_tool_name == "final_result"
    assert model.calls == 1


def test_paused_run_survives_json_persistence():
    gate = Gate()
    model = ScriptedModel(
        [
            tool_call_response(
                ToolCall(id="o", name="final_result", arguments='{"label": "ok", "score": 5}'),
                ToolCall(id="b", name="gate"),
            )
        ]
    )
    agent = Agent(model=model, tools=[gate.tool], output_type=Verdict, end_strategy="exhaustive")
    runner = Runner()
    paused = _pause(runner, agent)

    payload = json.loads(json.dumps(dump_paused_run(paused)))
    restored = load_paused_run(payload)

    assert restored.run_id == paused.run_id
    assert restored.messages == paused.messages
    assert restored.pending_calls == paused.pending_calls
    assert restored.usage == paused.usage
    assert payload["output_candidate"] == {"label": "ok", "score": 5}

    result = run_async(runner.resume(agent, restored, {"b": Approved()}))
    assert result.output == Verdict(label="ok", score=5)


def test_resume_keeps_counting_towards_iteration_limit():
    gate = Gate()
    model = ScriptedModel(
        [
            tool_call_response(ToolCall(id="b", name="gate")),
            tool_call_response(_add_call("c")),
        ]
    )
    agent = Agent(model=model, tools=[add, gate.tool], max_iterations=2)
    runner = Runner()
    paused = _pause(runner, agent)

    with pytest.raises(IterationLimitExceededError):
        run_async(runner.resume(agent, paused, {"b": Approved()}))
    assert model.calls == 2


def test_agent_resume_convenience():
    gate = Gate()
    model = ScriptedModel([tool_call_response(ToolCall(id="b", name="gate")), text_response("ok")])
    agent = Agent(model=model, tools=[gate.tool])

    with pytest.raises(HasDeferredToolsError) as exc:
        run_async(agent.run("go"))
    result = run_async(agent.resume(exc.value.paused, {"b": Approved()}))
    assert result.output == "ok"
