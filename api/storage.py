"""Utility helpers for persisting completed questionnaire results.

The production deployment should ideally swap this module for a proper
database-backed implementation. For now we use simple JSON files stored on
disk so that prior sessions survive restarts and can feed the adaptive
selector as history.
"""

from __future__ import annotations

import json
import os
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from persona_core.config import HISTORY_LIMIT
from persona_core.types import AnsweredQuestion, HistoricalSession


DATA_ROOT = Path(os.getenv("DATA_DIR", "data")).resolve()
RESULTS_DIR = DATA_ROOT / "results"
RESULT_INDEX_PATH = DATA_ROOT / "results_index.json"

_LOCK = threading.Lock()


def _ensure_dirs() -> None:
    RESULTS_DIR.mkdir(parents=True, exist_ok=True)
    DATA_ROOT.mkdir(parents=True, exist_ok=True)


def _read_json(path: Path, default: Any) -> Any:
    if not path.exists():
        return default
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except Exception:
        return default


def _write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
    tmp.replace(path)


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def save_result(result_id: str, result: Dict[str, Any], metadata: Dict[str, Any]) -> None:
    """Persist the finished answer sequence, trait scores and index metadata."""

    _ensure_dirs()
    result_path = RESULTS_DIR / f"{result_id}.json"

    with _LOCK:
        index: Dict[str, Dict[str, Any]] = _read_json(RESULT_INDEX_PATH, {})
        index[result_id] = metadata
        _write_json(RESULT_INDEX_PATH, index)

    _write_json(result_path, result)


def load_result(result_id: str) -> Optional[Dict[str, Any]]:
    path = RESULTS_DIR / f"{result_id}.json"
    if not path.exists():
        return None
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except Exception:
        return None


def list_results_for_user(user_id: str) -> List[Dict[str, Any]]:
    index: Dict[str, Dict[str, Any]] = _read_json(RESULT_INDEX_PATH, {})
    out: List[Dict[str, Any]] = []
    for rid, meta in index.items():
        if meta.get("userId") == user_id:
            item = {"id": rid}
            item.update({k: v for k, v in meta.items() if k != "id"})
            out.append(item)
    out.sort(key=lambda r: r.get("completedAt", ""), reverse=True)
    return out


def _answer_from_dict(raw: Dict[str, Any]) -> AnsweredQuestion:
    return AnsweredQuestion(
        question_id=str(raw.get("questionId", "")),
        trait=raw.get("trait", ""),
        value=int(raw.get("value", 0)),
        question_text=str(raw.get("questionText", "")),
        answer_text=str(raw.get("answerText", "")),
    )


def recent_history(user_id: Optional[str], limit: int = HISTORY_LIMIT) -> List[HistoricalSession]:
    """Most recent completed sessions for ``user_id``, newest first."""

    if not user_id:
        return []
    out: List[HistoricalSession] = []
    for meta in list_results_for_user(user_id)[:limit]:
        result = load_result(meta["id"])
        if not result:
            continue
        out.append(
            HistoricalSession(
                trait_scores={k: float(v) for k, v in (result.get("traits") or {}).items()},
                past_answers=[_answer_from_dict(a) for a in result.get("answers") or []],
            )
        )
    return out
