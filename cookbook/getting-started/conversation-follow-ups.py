#!/usr/bin/env python3
"""🎯 Recipe: Conversation Follow-ups With Sessions

When you need to: Start a conversation, ask a question, then ask a coherent
follow-up while the server-side session keeps the history for you.

Ingredients:
- The credential for your provider (for example `OPENAI_API_KEY`), or a local
  Ollama server for `--provider ollama`

What you'll learn:
- Create a session with a system prompt and generation defaults
- Send a message, then a follow-up that relies on the stored history
- Inspect the session snapshot and token usage

Difficulty: ⭐
Time: ~5 minutes
"""

from __future__ import annotations

import argparse
import asyncio

from castor import Runtime, send_message
from castor.config import PROVIDER_SETTINGS
from castor.models import ProviderId


async def main_async(
    provider: str, model: str | None, runtime: Runtime | None = None
) -> None:
    provider_id = ProviderId.parse(provider)
    model = model or PROVIDER_SETTINGS[provider_id].default_model

    async with runtime or Runtime() as rt:
        sid = rt.sessions.create(
            provider_id,
            model,
            system_prompt="You are a concise research assistant.",
            defaults={"max_tokens": 300, "temperature": 0.3},
        ).id

        first = await send_message(rt, sid, "What are the central themes of Hamlet?")
        print("\nQ1 → A1 (first 200 chars):\n", first.result.text[:200], sep="")

        second = await send_message(
            rt, sid, "Based on that, list 3 questions for a book club."
        )
        print("\nQ2 → A2 (first 200 chars):\n", second.result.text[:200], sep="")

        usage = second.result.usage
        tokens = usage.total_tokens if usage else "n/a"
        print(
            f"\n💾 Stored messages: {len(second.session.messages)} | "
            f"last turn tokens: {tokens}"
        )


def main() -> None:
    parser = argparse.ArgumentParser(description="Conversation follow-ups demo")
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
