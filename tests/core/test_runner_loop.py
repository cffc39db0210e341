from __future__ import annotations

import asyncio

import pytest
from pydantic import BaseModel

from agentrun.agents import (
    Agent,
    AgentConfigurationError,
    ContentFilteredError,
    EndStrategy,
    IterationLimitExceededError,
    ModelRefusedError,
    OutputValidationError,
    ResponseTruncatedError,
    UnexpectedModelBehaviorError,
    UsageLimitExceededError,
    UsageLimits,
    ValidationRetry,
)
from agentrun.core import Runner, RunnerConfig
from agentrun.llms import (
    AssistantMessage,
    CompletionResponse,
    LLMAuthenticationError,
    LLMServerError,
    RetriesExhaustedError,
    RetryPolicy,
    SystemMessage,
    ToolCall,
    ToolResultsMessage,
    Usage,
    UserMessage,
)
from agentrun.llms.testing import (
    FunctionModel,
    ScriptedModel,
    last_user_text,
    text_response,
    tool_call_response,
)
from agentrun.tools import ToolContext, ToolTimeoutError, tool


def run_async(coro):
    return asyncio.run(coro)


FAST_RETRY = RetryPolicy(max_attempts=3, initial_delay_s=0.0, jitter=0.0)


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
    """Add two integers."""
    return args.a + args.b


def _add_call(call_id: str, a: int = 1, b: int = 2) -> ToolCall:
    return ToolCall(id=call_id, name="add", arguments=f'{{"a": {a}, "b": {b}}}')


def test_plain_text_answer_finishes_in_one_request():
    model = ScriptedModel([text_response("Paris", usage=Usage(input_tokens=5, output_tokens=2))])
    agent = Agent(model=model)

    result = run_async(Runner().run(agent, "Capital of France?"))

    assert result.output == "Paris"
    assert result.request_count == 1
    assert result.tool_call_count == 0
    assert result.usage == Usage(input_tokens=5, output_tokens=2)
    assert result.output_tool_name is None
    assert result.run_id.startswith("run_")
    assert isinstance(result.messages[0], UserMessage)
    assert result.messages[-1] == AssistantMessage(text="Paris")


def test_request_without_tools_sends_no_catalog():
    model = ScriptedModel([text_response("ok")])
    run_async(Runner().run(Agent(model=model), "hi"))
    assert model.requests[0].tools is None


def test_tool_turns_are_counted_and_fed_back_in_order():
    model = ScriptedModel(
        [
            tool_call_response(_add_call("c1", 1, 2)),
            tool_call_response(_add_call("c2", 3, 4), _add_call("c3", 5, 6)),
            text_response("done"),
        ]
    )
    agent = Agent(model=model, tools=[add])

    result = run_async(Runner().run(agent, "add things"))

    assert result.output == "done"
    assert result.request_count == 3
    assert result.tool_call_count == 3
    assert result.usage == Usage(input_tokens=3, output_tokens=3)

    tool_messages = [m for m in result.messages if isinstance(m, ToolResultsMessage)]
    assert [[e.tool_call_id for e in m.results] for m in tool_messages] == [["c1"], ["c2", "c3"]]
    assert [e.output for e in tool_messages[1].results] == ["7", "11"]
    assert [d.name for d in model.requests[0].tools] == ["add"]


def test_tool_failure_is_reported_to_model_and_run_continues():
    @tool(args_model=Empty)
    def broken(args: Empty):
        raise RuntimeError("backend down")

    model = ScriptedModel(
        [tool_call_response(ToolCall(id="c1", name="broken")), text_response("sorry")]
    )
    result = run_async(Runner().run(Agent(model=model, tools=[broken]), "go"))

    entry = result.messages[2].results[0]
    assert entry.is_error
    assert entry.output == "backend down"
    assert result.output == "sorry"


def test_loop_signal_raised_by_a_tool_is_reported_as_tool_error():
    @tool(args_model=Empty)
    def picky(args: Empty):
        raise ValidationRetry("not like that")

    model = ScriptedModel(
        [tool_call_response(ToolCall(id="c1", name="picky")), text_response("recovered")]
    )
    result = run_async(Runner().run(Agent(model=model, tools=[picky]), "go"))

    entry = result.messages[2].results[0]
    assert entry.is_error
    assert entry.output == "not like that"
    assert result.output == "recovered"
    assert result.request_count == 2


def test_unknown_tool_call_is_an_error_entry():
    model = ScriptedModel([tool_call_response(ToolCall(id="c1", name="ghost")), text_response("ok")])
    result = run_async(Runner().run(Agent(model=model, tools=[add]), "go"))

    entry = result.messages[2].results[0]
    assert entry.is_error
    assert entry.output == "Tool not found: ghost"
    assert result.tool_call_count == 1


def test_tool_timeout_aborts_the_run():
    @tool(args_model=Empty)
    async def slow(args: Empty):
        await asyncio.sleep(5)

    model = ScriptedModel([tool_call_response(ToolCall(id="c1", name="slow"))])
    agent = Agent(model=model, tools=[slow], tool_timeout_s=0.05)

    with pytest.raises(ToolTimeoutError):
        run_async(Runner().run(agent, "go"))


def test_tool_output_is_truncated_to_configured_length():
    @tool(args_model=Empty)
    def chatty(args: Empty):
        return "x" * 50

    model = ScriptedModel([tool_call_response(ToolCall(id="c1", name="chatty")), text_response("ok")])
    runner = Runner(config=RunnerConfig(tool_output_max_chars=10))
    result = run_async(runner.run(Agent(model=model, tools=[chatty]), "go"))

    assert result.messages[2].results[0].output == "x" * 10 + "…"


def test_structured_output_via_output_tool():
    model = ScriptedModel(
        [
            tool_call_response(
                ToolCall(id="o1", name="final_result", arguments='{"label": "spam", "score": 9}')
            )
        ]
    )
    agent = Agent(model=model, output_type=Verdict)

    result = run_async(Runner().run(agent, "classify"))

    assert result.output == Verdict(label="spam", score=9)
    assert result.output_tool_name == "final_result"
    assert [d.name for d in model.requests[0].tools] == ["final_result"]
    assert result.messages[-1].results[0].output == "Output accepted"


def test_invalid_structured_output_is_retried_with_error_feedback():
    model = ScriptedModel(
        [
            tool_call_response(ToolCall(id="o1", name="final_result", arguments='{"label": "spam"}')),
            tool_call_response(
                ToolCall(id="o2", name="final_result", arguments='{"label": "spam", "score": 1}')
            ),
        ]
    )
    result = run_async(Runner().run(Agent(model=model, output_type=Verdict), "classify"))

    feedback = result.messages[2].results[0]
    assert feedback.tool_call_id == "o1"
    assert feedback.is_error
    assert feedback.output.startswith("Invalid output")
    assert result.output.score == 1
    assert result.request_count == 2


def test_text_validator_feedback_is_sent_as_user_message():
    def must_shout(value):
        if value != value.upper():
            raise ValidationRetry("Please answer in capitals")

    model = ScriptedModel([text_response("paris"), text_response("PARIS")])
    agent = Agent(model=model, output_validators=[must_shout])

    result = run_async(Runner().run(agent, "capital?"))

    assert result.output == "PARIS"
    assert last_user_text(model.requests[1].messages) == "Please answer in capitals"


def test_output_retry_ceiling_raises():
    def never(value):
        raise ValidationRetry("no")

    model = ScriptedModel([text_response("a"), text_response("b")])
    agent = Agent(model=model, output_validators=[never], max_output_retries=1)

    with pytest.raises(OutputValidationError) as exc:
        run_async(Runner().run(agent, "go"))
    assert exc.value.retries == 1
    assert model.calls == 2


def test_early_strategy_skips_tools_after_output():
    invoked = []

    @tool(args_model=Empty)
    def side_effect(args: Empty):
        invoked.append("ran")
        return "ran"

    model = ScriptedModel(
        [
            tool_call_response(
                ToolCall(id="o1", name="final_result", arguments='{"label": "a", "score": 1}'),
                ToolCall(id="s1", name="side_effect"),
            )
        ]
    )
    agent = Agent(model=model, tools=[side_effect], output_type=Verdict)
    result = run_async(Runner().run(agent, "go"))

    assert invoked == []
    assert result.tool_call_count == 0
    skipped = result.messages[-1].results[1]
    assert skipped.tool_call_id == "s1"
    assert skipped.output.startswith("Tool not executed")


def test_exhaustive_strategy_runs_every_tool_and_keeps_first_output():
    invoked = []

    @tool(args_model=Empty)
    def side_effect(args: Empty):
        invoked.append("ran")
        return "ran"

    model = ScriptedModel(
        [
            tool_call_response(
                ToolCall(id="o1", name="final_result", arguments='{"label": "first", "score": 1}'),
                ToolCall(id="s1", name="side_effect"),
                ToolCall(id="o2", name="final_result", arguments='{"label": "second", "score": 2}'),
            )
        ]
    )
    agent = Agent(
        model=model,
        tools=[side_effect],
        output_type=Verdict,
        end_strategy=EndStrategy.EXHAUSTIVE,
    )
    result = run_async(Runner().run(agent, "go"))

    assert invoked == ["ran"]
    assert result.tool_call_count == 1
    assert result.output.label == "first"
    assert [e.tool_call_id for e in result.messages[-1].results] == ["o1", "s1", "o2"]


def test_iteration_limit():
    model = ScriptedModel([tool_call_response(_add_call(f"c{i}")) for i in range(3)])
    agent = Agent(model=model, tools=[add], max_iterations=2)

    with pytest.raises(IterationLimitExceededError) as exc:
        run_async(Runner().run(agent, "loop forever"))
    assert exc.value.max_iterations == 2
    assert model.calls == 2


def test_request_limit_stops_before_next_model_call():
    model = ScriptedModel([tool_call_response(_add_call("c1")), text_response("never")])
    agent = Agent(model=model, tools=[add], usage_limits=UsageLimits(max_requests=1))

    with pytest.raises(UsageLimitExceededError) as exc:
        run_async(Runner().run(agent, "go"))
    assert exc.value.kind == "requests"
    assert model.calls == 1


def test_token_limit_uses_accumulated_usage():
    heavy = Usage(input_tokens=60, output_tokens=0)
    model = ScriptedModel(
        [
            tool_call_response(_add_call("c1"), usage=heavy),
            tool_call_response(_add_call("c2"), usage=heavy),
            text_response("never"),
        ]
    )
    agent = Agent(model=model, tools=[add], usage_limits=UsageLimits(max_input_tokens=100))

    with pytest.raises(UsageLimitExceededError) as exc:
        run_async(Runner().run(agent, "go"))
    assert exc.value.kind == "input_tokens"
    assert model.calls == 2


@pytest.mark.parametrize(
    "response, error",
    [
        (CompletionResponse(content="x", refusal="I can't help"), ModelRefusedError),
        (CompletionResponse(content="x", stop_reason="max_tokens"), ResponseTruncatedError),
        (CompletionResponse(content="", stop_reason="content_filtered"), ContentFilteredError),
        (CompletionResponse(content=""), UnexpectedModelBehaviorError),
    ],
)
def test_unusable_responses_end_the_run(response, error):
    with pytest.raises(error):
        run_async(Runner().run(Agent(model=ScriptedModel([response])), "go"))


def test_transient_model_errors_are_retried_without_counting_requests():
    model = ScriptedModel([LLMServerError("503"), text_response("ok")])
    agent = Agent(model=model, retry_policy=FAST_RETRY)

    result = run_async(Runner().run(agent, "go"))

    assert result.output == "ok"
    assert result.request_count == 1
    assert model.calls == 2


def test_model_retries_exhausted_surfaces():
    model = ScriptedModel([LLMServerError("503")] * 3)
    agent = Agent(model=model, retry_policy=FAST_RETRY)

    with pytest.raises(RetriesExhaustedError) as exc:
        run_async(Runner().run(agent, "go"))
    assert exc.value.attempts == 3


def test_non_retryable_model_error_surfaces_immediately():
    model = ScriptedModel([LLMAuthenticationError("bad key")])
    with pytest.raises(LLMAuthenticationError):
        run_async(Runner().run(Agent(model=model, retry_policy=FAST_RETRY), "go"))
    assert model.calls == 1


def test_system_prompt_goes_first():
    model = ScriptedModel([text_response("ok")])
    run_async(Runner().run(Agent(model=model, instructions="Be brief."), "hi"))

    messages = model.requests[0].messages
    assert messages[0] == SystemMessage(text="Be brief.")
    assert messages[1] == UserMessage.from_text("hi")


def test_history_with_system_message_is_not_prefixed_again():
    model = ScriptedModel([text_response("ok")])
    history = [SystemMessage(text="Existing."), UserMessage.from_text("earlier")]
    result = run_async(Runner().run(Agent(model=model, instructions="New."), "now", history=history))

    messages = model.requests[0].messages
    assert [type(m) for m in messages] == [SystemMessage, UserMessage, UserMessage]
    assert messages[0].text == "Existing."
    assert result.messages[0].text == "Existing."


def test_dynamic_instructions_receive_deps():
    async def instructions(deps):
        return f"User is {deps['name']}."

    model = ScriptedModel([text_response("ok")])
    run_async(Runner().run(Agent(model=model, instructions=instructions), "hi", deps={"name": "Ada"}))
    assert model.requests[0].messages[0].text == "User is Ada."


def test_tools_receive_deps_and_run_metadata():
    seen = []

    @tool(args_model=Empty)
    def whoami(args: Empty, ctx: ToolContext):
        seen.append((ctx.deps, ctx.tool_call_id, ctx.run_step))
        return ctx.deps

    model = ScriptedModel([tool_call_response(ToolCall(id="c1", name="whoami")), text_response("ok")])
    run_async(Runner().run(Agent(model=model, tools=[whoami]), "hi", deps="tenant-7"))
    assert seen == [("tenant-7", "c1", 1)]


def test_history_only_run_is_allowed_but_empty_run_is_not():
    model = ScriptedModel([text_response("ok")])
    result = run_async(Runner().run(Agent(model=model), history=[UserMessage.from_text("hello")]))
    assert result.output == "ok"

    with pytest.raises(AgentConfigurationError):
        run_async(Runner().run(Agent(model=ScriptedModel([])), None))


def test_agent_convenience_method_delegates_to_runner():
    agent = Agent(model=ScriptedModel([text_response("ok")]))
    assert run_async(agent.run("hi")).output == "ok"


def test_invalid_agent_configuration():
    with pytest.raises(AgentConfigurationError):
        Agent(model=ScriptedModel([]), max_iterations=0)

    @tool(args_model=Empty, name="final_result")
    def clash(args: Empty):
        return None

    with pytest.raises(AgentConfigurationError):
        Agent(model=ScriptedModel([]), tools=[clash], output_type=Verdict)
    Agent(model=ScriptedModel([]), tools=[clash])


def test_concurrent_runs_do_not_share_state():
    async def echo(request):
        await asyncio.sleep(0.01)
        return text_response(f"echo: {last_user_text(request.messages)}")

    agent = Agent(model=FunctionModel(echo))
    runner = Runner()

    async def scenario():
        return await asyncio.gather(*(runner.run(agent, f"prompt {i}") for i in range(5)))

    results = run_async(scenario())
    assert [r.output for r in results] == [f"echo: prompt {i}" for i in range(5)]
    assert len({r.run_id for r in results}) == 5
    assert all(r.request_count == 1 and len(r.messages) == 2 for r in results)
