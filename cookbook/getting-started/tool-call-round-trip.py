#!/usr/bin/env python3
"""🎯 Recipe: Tool Call Round Trip

When you need to: Let the model request a function, run it yourself, and
hand the result back so the model can finish its answer.

Ingredients:
- The credential for your provider, or a local Ollama server

What you'll learn:
- Declare a tool on a session
- Read canonical `tool_calls` (JSON-string arguments) from any provider
- Submit tool outputs and prompt the model to continue

Difficulty: ⭐⭐
Time: ~5 minutes
"""

from __future__ import annotations

import argparse
import asyncio
import json

from castor import (
    Runtime,
    ToolDefinition,
    send_message,
    submit_instructions,
    submit_tool_outputs,
)
from castor.config import PROVIDER_SETTINGS
from castor.models import ProviderId

GET_WEATHER = ToolDefinition(
    name="get_weather",
    description="Current weather for a city.",
    parameters={
        "type": "object",
        "properties": {"city": {"type": "string"}},
        "required": ["city"],
    },
)


def get_weather(city: str) -> str:
    # Stand-in for a real lookup.
    return f"{city}: 18°C, light rain"


async def main_async(
    provider: str, model: str | None, runtime: Runtime | None = None
) -> None:
    provider_id = ProviderId.parse(provider)
    model = model or PROVIDER_SETTINGS[provider_id].default_model

    async with runtime or Runtime() as rt:
        sid = rt.sessions.create(provider_id, model, tools=[GET_WEATHER]).id

        turn = await send_message(rt, sid, "Should I bring an umbrella in Lisbon?")
        calls = turn.result.tool_calls or []
        if not calls:
            print("\nModel answered directly:\n", turn.result.text, sep="")
            return

        outputs = []
        for call in calls:
            args = json.loads(call.arguments)
            print(f"🔧 {call.name}({args})")
            outputs.append(
                {"call_id": call.id, "output": get_weather(args.get("city", "?"))}
            )
        await submit_tool_outputs(rt, sid, outputs)

        final = await submit_instructions(
            rt, sid, "Use the tool results to answer the user."
        )
        print("\nFinal answer:\n", final.result.text, sep="")


def main() -> None:
    parser = argparse.ArgumentParser(description="Tool call round trip demo")
    parser.add_argument(
        "--provider",
        default="openai",
        choices=[p.value for p in ProviderId],
        help="Provider to talk to",
    )
    parser.add_argument("--model", default=None, help="Override the default model")
    args = parser.parse_args()
    asyncio.run(main_async(args.provider, args.model))


if __name__ == "__main__":
    main()
