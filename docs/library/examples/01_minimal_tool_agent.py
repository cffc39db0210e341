"""
Example 01: Minimal agent with one typed tool and a structured final output.

The model is scripted so the example runs offline; swap in any `Model`
implementation to talk to a real provider.

Run:
    uv run python docs/library/examples/01_minimal_tool_agent.py
"""

from __future__ import annotations

import asyncio

from pydantic import BaseModel, Field

from agentrun import Agent
from agentrun.llms import ToolCall
from agentrun.llms.testing import ScriptedModel, tool_call_response
from agentrun.tools import tool


class SumArgs(BaseModel):
    numbers: list[float] = Field(min_length=1, max_length=50)


class Answer(BaseModel):
    total: float
    explanation: str


@tool(args_model=SumArgs, name="sum_numbers")
def sum_numbers(args: SumArgs) -> dict[str, float]:
    """Add a list of numbers."""
    return {"sum": float(sum(args.numbers))}


async def main() -> None:
    model = ScriptedModel(
        [
            tool_call_response(
                ToolCall(id="call_1", name="sum_numbers", arguments='{"numbers": [2.5, 8, -1]}')
            ),
            tool_call_response(
                ToolCall(
                    id="call_2",
                    name="final_result",
                    arguments='{"total": 9.5, "explanation": "2.5 + 8 - 1 = 9.5"}',
                )
            ),
        ]
    )

    agent = Agent(
        name="MathTutor",
        model=model,
        instructions="You are a math tutor. Use sum_numbers whenever arithmetic is needed.",
        tools=[sum_numbers],
        output_type=Answer,
    )

    result = await agent.run("Please add 2.5, 8, and -1.")

    print("run_id:", result.run_id)
    print("output:", result.output)
    print("requests:", result.request_count)
    print("tool_calls:", result.tool_call_count)
    print("usage:", result.usage)


if __name__ == "__main__":
    asyncio.run(main())
