# autoplay.py
from __future__ import annotations
import argparse, asyncio, datetime, json, logging, os, random
from typing import Optional
from persona_core.engine import AdaptiveSelector
from persona_core.orchestrator import EngineSelectionClient, QuestionnaireOrchestrator, State, answer_to_dict
from persona_core.question_bank import get_questions
from persona_core.types import Question

# answer value per trait for the scripted respondents
PROFILE_VALUES = {
    "high": {"openness": 5, "conscientiousness": 5, "extraversion": 5, "agreeableness": 5, "neuroticism": 1},
    "low": {"openness": 1, "conscientiousness": 1, "extraversion": 1, "agreeableness": 1, "neuroticism": 5},
    "neutral": {},
}

def _value_for(q: Question, profile: str, rng: random.Random) -> int:
    values = [o.value for o in q.options]
    if profile == "random":
        return rng.choice(values)
    v = PROFILE_VALUES.get(profile, {}).get(q.trait, 3)
    return v if v in values else values[len(values) // 2]

async def run(profile: str, seed: Optional[int], adaptive: bool) -> str:
    rng = random.Random(seed or 1234)
    catalog = get_questions()
    orch = QuestionnaireOrchestrator(
        catalog, EngineSelectionClient(AdaptiveSelector(), catalog), adaptive_enabled=adaptive,
        on_notice=lambda n: print(f"(notice) {n.message}"),
    )
    while orch.state is not State.COMPLETED:
        if orch.loading:
            await orch.wait_settled(); continue
        q = orch.current_question()
        await orch.answer(_value_for(q, profile, rng))
    if not orch.answers: raise RuntimeError("Driver answered 0 questions.")

    ts = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
    os.makedirs("runs", exist_ok=True)
    path = os.path.join("runs", f"auto_{profile}_{ts}.json")
    with open(path, "w", encoding="utf-8") as f:
        json.dump({
            "profile": profile,
            "adaptive": orch.adaptive_indicator or bool(orch.injected),
            "injected": [q.id for q in orch.injected],
            "answers": [answer_to_dict(a) for a in orch.answers],
            "traits": orch.scores,
        }, f, indent=2)
    print(f"Run log: {path}")
    return path

def main():
    ap = argparse.ArgumentParser(description="Answer the questionnaire with a scripted respondent.")
    ap.add_argument("--profile", choices=["high", "low", "neutral", "random"], default="random")
    ap.add_argument("--seed", type=int, default=1337)
    ap.add_argument("--llm", choices=["none", "deepseek", "openai", "azure"], default="none")
    ap.add_argument("--no-adaptive", action="store_true")
    a = ap.parse_args()
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(name)s: %(message)s")
    os.environ["LLM_BACKEND"] = a.llm
    asyncio.run(run(a.profile, a.seed, not a.no_adaptive))

if __name__ == "__main__":
    main()
