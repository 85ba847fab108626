# tools/completion_smoke.py
from __future__ import annotations
import asyncio
from persona_core.completion_cfg import settings
from persona_core.llm_bridge import CompletionClient, CompletionError
from persona_core.parser import parse_indices

async def main():
    s = settings()
    print("Backend  :", s.backend)
    print("Model    :", s.model)
    print("Base URL :", s.base_url or "(sdk default)")
    comp = CompletionClient(s)
    try:
        text = await comp(
            [{"role": "user", "content": "Reply with the JSON array [1, 2, 3] only."}],
            temperature=0.0, max_tokens=10, timeout=7.0,
        )
        print("Reply    :", text)
        print("Parsed   :", parse_indices(text, 5))
    except CompletionError as e:
        print("Completion call failed:", e)
        raise
    finally:
        await comp.close()

if __name__ == "__main__":
    asyncio.run(main())
