from __future__ import annotations
from fastapi import FastAPI, HTTPException, Header
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field, model_validator
import asyncio, uuid, logging, typing as t

# ---- Engine imports ----
from persona_core.engine import AdaptiveSelector
from persona_core.question_bank import get_questions
from persona_core.scoring import insights, trait_scores
from persona_core.types import AnsweredQuestion, Question, SelectionRequest
from persona_core.config import ADAPTIVE_BATCH_SIZE
from persona_core.completion_cfg import backend_in_use, is_configured
from .storage import (
    list_results_for_user,
    load_result,
    recent_history,
    save_result,
    utcnow_iso,
)

log = logging.getLogger(__name__)

SELECTOR = AdaptiveSelector()

app = FastAPI(title="Persona Adaptive API")

@app.get("/")
def root():
    return {"status": "ok", "service": "persona-adaptive-api"}

ALLOWED_ORIGINS = [
    "http://localhost:3000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=False,  # keep False unless you use cookies
)

# ---- Schemas ----
class AnswerIn(BaseModel):
    questionId: str
    value: int | None = None
    answerValue: int | None = None
    trait: str | None = None
    questionText: str = ""
    answerText: str = ""

    @model_validator(mode="after")
    def _has_value(self) -> "AnswerIn":
        if self.value is None and self.answerValue is None:
            raise ValueError("answer needs value or answerValue")
        return self

    @property
    def chosen(self) -> int:
        return self.value if self.value is not None else t.cast(int, self.answerValue)

class AdaptiveReq(BaseModel):
    currentAnswers: list[AnswerIn]
    currentQuestionIndex: int = Field(ge=0)

class SubmitReq(BaseModel):
    answers: list[AnswerIn]

# ---- Helpers ----
def _to_answer(a: AnswerIn, by_id: dict[str, Question]) -> AnsweredQuestion:
    val = a.chosen
    q = by_id.get(a.questionId)
    return AnsweredQuestion(
        question_id=a.questionId,
        trait=(a.trait or (q.trait if q else "")),
        value=int(val),
        question_text=a.questionText or (q.text if q else ""),
        answer_text=a.answerText or (q.option_text(int(val)) if q else ""),
    )


def _serialize_question(q: Question) -> dict[str, t.Any]:
    return {
        "id": q.id,
        "text": q.text,
        "trait": q.trait,
        "weight": q.weight,
        "options": [{"value": o.value, "text": o.text} for o in q.options],
    }


def _serialize_answer(a: AnsweredQuestion) -> dict[str, t.Any]:
    return {
        "questionId": a.question_id,
        "trait": a.trait,
        "value": a.value,
        "questionText": a.question_text,
        "answerText": a.answer_text,
    }

# ---- Health ----
@app.get("/health")
def health():
    return {
        "llm_backend": backend_in_use(),
        "completion_config_present": is_configured(),
        "cache_entries": len(SELECTOR.cache),
    }

# ---- Questionnaire endpoints ----
@app.get("/api/test/questions")
def questions():
    return {"questions": [_serialize_question(q) for q in get_questions()]}

@app.post("/api/test/adaptive")
async def adaptive(req: AdaptiveReq, x_user_id: str | None = Header(default=None)):
    catalog = get_questions()
    by_id = {q.id: q for q in catalog}
    log.info(
        "adaptive request for question %d with %d answers",
        req.currentQuestionIndex + 1,
        len(req.currentAnswers),
    )
    try:
        history = await asyncio.to_thread(recent_history, x_user_id)
    except Exception as exc:
        log.warning("history lookup failed for %s: %s", x_user_id, exc)
        remaining = catalog[req.currentQuestionIndex + 1:]
        return {
            "nextQuestions": [_serialize_question(q) for q in remaining[:ADAPTIVE_BATCH_SIZE]],
            "isAdaptive": False,
            "success": False,
            "error": "History unavailable, using standard questions",
        }

    request = SelectionRequest(
        current_answers=[_to_answer(a, by_id) for a in req.currentAnswers],
        current_question_index=req.currentQuestionIndex,
    )
    result = await SELECTOR.select(request, history, catalog)
    out: dict[str, t.Any] = {
        "nextQuestions": [_serialize_question(q) for q in result.next_questions],
        "isAdaptive": result.used_adaptive_logic,
        "success": True,
    }
    if result.diagnostic_error:
        out["error"] = result.diagnostic_error
    return out

@app.post("/api/test/submit")
def submit(payload: SubmitReq, x_user_id: str | None = Header(default=None)):
    catalog = get_questions()
    by_id = {q.id: q for q in catalog}
    unknown = [a.questionId for a in payload.answers if a.questionId not in by_id]
    if unknown:
        raise HTTPException(400, f"unknown question ids: {', '.join(unknown)}")
    answers = [_to_answer(a, by_id) for a in payload.answers]
    traits = trait_scores(answers, catalog)
    rid = str(uuid.uuid4())
    completed = utcnow_iso()
    result = {
        "id": rid,
        "userId": x_user_id,
        "completedAt": completed,
        "answers": [_serialize_answer(a) for a in answers],
        "traits": traits,
        "insights": insights(traits),
    }
    if x_user_id:
        save_result(rid, result, {"userId": x_user_id, "completedAt": completed, "traits": traits})
    return result

@app.get("/results/{result_id}")
def get_result(result_id: str):
    result = load_result(result_id)
    if not result:
        raise HTTPException(404, "result not found")
    return result

@app.get("/users/{user_id}/results")
def list_results(user_id: str):
    return {"results": list_results_for_user(user_id)}
