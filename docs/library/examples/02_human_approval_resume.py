"""
Example 02: Pause a run on a tool that needs approval, persist the snapshot,
then resume it with the operator's decision.

Run:
    uv run python docs/library/examples/02_human_approval_resume.py
"""

from __future__ import annotations

import asyncio
import json

from pydantic import BaseModel

from agentrun import Agent, Approved, HasDeferredToolsError, dump_paused_run, load_paused_run
from agentrun.llms import ToolCall
from agentrun.llms.testing import ScriptedModel, text_response, tool_call_response
from agentrun.tools import DeferredToolCall, ToolContext, ToolDeferred, tool


class RefundArgs(BaseModel):
    order_id: str
    amount: float


@tool(args_model=RefundArgs, name="issue_refund")
def issue_refund(args: RefundArgs, ctx: ToolContext):
    """Refund an order. Amounts over 100 need a human sign-off."""
    if args.amount > 100 and not ctx.approved:
        return ToolDeferred(DeferredToolCall.needs_approval(f"refund of {args.amount} needs approval"))
    return {"order_id": args.order_id, "refunded": args.amount}


async def main() -> None:
    model = ScriptedModel(
        [
            tool_call_response(
                ToolCall(id="call_1", name="issue_refund", arguments='{"order_id": "A-17", "amount": 250}')
            ),
            text_response("Refund of 250 issued for order A-17."),
        ]
    )
    agent = Agent(name="Support", model=model, tools=[issue_refund])

    try:
        await agent.run("Customer A-17 wants their 250 back.")
        return
    except HasDeferredToolsError as e:
        stored = json.dumps(dump_paused_run(e.paused))

    paused = load_paused_run(json.loads(stored))
    for pending in paused.approvals:
        print("waiting on:", pending.id, "-", pending.deferral.reason)

    result = await agent.resume(paused, {p.id: Approved() for p in paused.approvals})
    print("output:", result.output)
    print("tool_calls:", result.tool_call_count)


if __name__ == "__main__":
    asyncio.run(main())
