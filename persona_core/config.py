from __future__ import annotations
import os, json, pathlib


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError:
        return default


# position in the catalog whose answer triggers adaptive selection (6th question)
CHECKPOINT_INDEX: int = 5
ADAPTIVE_BATCH_SIZE: int = 3
BYPASS_THRESHOLD: int = 5
HISTORY_LIMIT: int = 3

CACHE_TTL_SEC: float = 60.0 * 60.0
CACHE_MAX_ENTRIES: int = 1024
CACHE_LOG_INTERVAL_SEC: float = 60.0

ENGINE_DEADLINE_SEC: float = 10.0
COMPLETION_TIMEOUT_SEC: float = 7.0
COMPLETION_TEMPERATURE: float = 0.3
COMPLETION_MAX_TOKENS: int = 100
COMPLETION_ERROR_MARKERS: tuple[str, ...] = ("timed out", "Error processing")

CLIENT_ABORT_SEC: float = 10.0
CLIENT_AUTO_ADVANCE_SEC: float = 8.0
CONFIRM_DELAY_SEC: float = 1.5
ERROR_ADVANCE_DELAY_SEC: float = 1.0

ADAPTIVE_ENABLED: bool = True

# // env overrides for staging/ops; defaults remain conservative.
CHECKPOINT_INDEX = _env_int("CHECKPOINT_INDEX", CHECKPOINT_INDEX)
CACHE_TTL_SEC = _env_float("CACHE_TTL_SEC", CACHE_TTL_SEC)
CACHE_MAX_ENTRIES = _env_int("CACHE_MAX_ENTRIES", CACHE_MAX_ENTRIES)
ENGINE_DEADLINE_SEC = _env_float("ENGINE_DEADLINE_SEC", ENGINE_DEADLINE_SEC)
COMPLETION_TIMEOUT_SEC = _env_float("COMPLETION_TIMEOUT_SEC", COMPLETION_TIMEOUT_SEC)
CLIENT_ABORT_SEC = _env_float("CLIENT_ABORT_SEC", CLIENT_ABORT_SEC)
CLIENT_AUTO_ADVANCE_SEC = _env_float("CLIENT_AUTO_ADVANCE_SEC", CLIENT_AUTO_ADVANCE_SEC)
ADAPTIVE_ENABLED = _env_bool("ADAPTIVE_ENABLED", ADAPTIVE_ENABLED)


def completion_budget(deadline: float, requested: float, margin: float = 0.5) -> float:
    """Sub-deadline for the completion call, kept strictly inside the engine deadline."""

    deadline = float(deadline)
    ceiling = max(0.0, deadline - min(float(margin), deadline / 10.0))
    return max(0.0, min(float(requested), ceiling))


COMPLETION_TIMEOUT_SEC = completion_budget(ENGINE_DEADLINE_SEC, COMPLETION_TIMEOUT_SEC)


def _env_true(name: str) -> bool:
    return os.environ.get(name, "").lower() in ("1","true","yes","on")
def load_config() -> dict:
    cfg = {}
    p = pathlib.Path("config.json")
    if p.exists():
        try: cfg = json.loads(p.read_text(encoding="utf-8"))
        except Exception: cfg = {}
    e = os.environ
    if e.get("ADAPTIVE_ENABLED"): cfg["ADAPTIVE_ENABLED"] = _env_true("ADAPTIVE_ENABLED")
    if e.get("LLM_BACKEND"): cfg["LLM_BACKEND"] = e.get("LLM_BACKEND")
    for k in ("DEEPSEEK_BASE_URL","DEEPSEEK_MODEL","AZURE_OPENAI_ENDPOINT","AZURE_OPENAI_DEPLOYMENT"):
        if e.get(k): cfg[k] = e.get(k)
    return cfg
def get_backend(cfg: dict) -> str|None:
    if cfg.get("ADAPTIVE_ENABLED") is False: return None
    b = (cfg.get("LLM_BACKEND") or "").lower().strip()
    return b if b in ("deepseek","openai","azure") else None
