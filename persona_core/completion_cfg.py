# persona_core/completion_cfg.py
from __future__ import annotations
import os, json, pathlib
from dataclasses import dataclass
from openai import AsyncAzureOpenAI, AsyncOpenAI

from .config import load_config, get_backend

DEFAULT_BASE_URL = "https://api.deepseek.com/v1"
DEFAULT_MODEL = "deepseek-chat"
OPENAI_DEFAULT_MODEL = "gpt-4o-mini"

@dataclass(frozen=True)
class CompletionSettings:
    backend: str
    api_key: str
    model: str
    base_url: str = ""
    api_version: str = ""

def _from_env(backend: str) -> dict[str, str]:
    if backend == "azure":
        return {
            "base_url":   os.getenv("AZURE_OPENAI_ENDPOINT", ""),
            "api_key":    os.getenv("AZURE_OPENAI_API_KEY", ""),
            "api_version":os.getenv("AZURE_OPENAI_API_VERSION", ""),
            "model":      os.getenv("AZURE_OPENAI_DEPLOYMENT", ""),
        }
    if backend == "openai":
        return {
            "base_url": os.getenv("OPENAI_BASE_URL", ""),
            "api_key":  os.getenv("OPENAI_API_KEY", ""),
            "model":    os.getenv("OPENAI_MODEL", OPENAI_DEFAULT_MODEL),
        }
    return {
        "base_url": os.getenv("DEEPSEEK_BASE_URL", DEFAULT_BASE_URL),
        "api_key":  os.getenv("DEEPSEEK_API_KEY", ""),
        "model":    os.getenv("DEEPSEEK_MODEL", DEFAULT_MODEL),
    }

def _from_json(path: str = ".completion_config.json") -> dict[str, str]:
    p = pathlib.Path(path)
    if not p.exists(): return {}
    try:
        j = json.loads(p.read_text(encoding="utf-8"))
        return {k: str(j.get(k, "")) for k in ("base_url", "api_key", "api_version", "model") if j.get(k)}
    except Exception:
        return {}

def backend_in_use() -> str:
    return get_backend(load_config()) or "none"

def settings(backend: str | None = None) -> CompletionSettings:
    b = backend or backend_in_use()
    if b == "none":
        raise RuntimeError("Completion service disabled (LLM_BACKEND is unset or 'none').")
    cfg = _from_env(b)
    if not all(cfg.values()):
        j = _from_json()
        for k,v in j.items():
            if not cfg.get(k): cfg[k] = v
    # an empty base_url means the SDK default endpoint
    optional = {"base_url"} if b == "openai" else set()
    missing = [k for k,v in cfg.items() if not v and k not in optional]
    if missing:
        raise RuntimeError(f"Completion backend '{b}' not configured. Missing: {', '.join(missing)}")
    return CompletionSettings(
        backend=b,
        api_key=cfg["api_key"],
        model=cfg["model"],
        base_url=cfg.get("base_url", ""),
        api_version=cfg.get("api_version", ""),
    )

def is_configured() -> bool:
    try:
        settings()
    except RuntimeError:
        return False
    return True

def client(s: CompletionSettings | None = None) -> AsyncOpenAI:
    s = s or settings()
    # retries are disabled: a failed call goes straight to the fallback selector
    if s.backend == "azure":
        return AsyncAzureOpenAI(
            azure_endpoint=s.base_url,
            api_key=s.api_key,
            api_version=s.api_version,
            max_retries=0,
        )
    return AsyncOpenAI(api_key=s.api_key, base_url=s.base_url or None, max_retries=0)
