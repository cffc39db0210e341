"""
Example 03: Stream loop events and step through a run node by node.

Run:
    uv run python docs/library/examples/03_streaming_events.py
"""

from __future__ import annotations

import asyncio

from pydantic import BaseModel

from agentrun import Agent
from agentrun.agents import ContentDeltaEvent, FinalResultEvent, ToolResultEvent
from agentrun.llms import ToolCall
from agentrun.llms.testing import ScriptedModel, text_response, tool_call_response
from agentrun.tools import tool


class CityArgs(BaseModel):
    city: str


@tool(args_model=CityArgs, name="get_weather")
async def get_weather(args: CityArgs) -> str:
    """Current weather for a city."""
    return f"{args.city}: 18C, light rain"


def build_agent() -> Agent:
    model = ScriptedModel(
        [
            tool_call_response(ToolCall(id="call_1", name="get_weather", arguments='{"city": "Oslo"}')),
            text_response("It is 18C with light rain in Oslo."),
        ]
    )
    return Agent(name="Weather", model=model, tools=[get_weather])


async def main() -> None:
    async for event in build_agent().run_stream("Weather in Oslo?"):
        if isinstance(event, ContentDeltaEvent):
            print("delta:", event.delta)
        elif isinstance(event, ToolResultEvent):
            print("tool:", event.result.call.name, "->", event.result.outcome.status)
        elif isinstance(event, FinalResultEvent):
            print("final:", event.result.output)

    async for node in build_agent().iter("Weather in Oslo?"):
        print("node:", node.kind)


if __name__ == "__main__":
    asyncio.run(main())
