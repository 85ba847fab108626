from __future__ import annotations
import asyncio, logging, time
from typing import Any, Awaitable, Callable, Dict, List, Optional

import openai

from . import completion_cfg
from .completion_cfg import CompletionSettings

log = logging.getLogger(__name__)

Message = Dict[str, str]
CompletionFn = Callable[..., Awaitable[str]]


class CompletionError(Exception):
    """The completion service could not produce text."""


class CompletionTimeout(CompletionError):
    """The completion call ran past its deadline and was cancelled."""


class CompletionClient:
    """Async chat-completion call: messages in, plain text out.

    Each call runs under ``asyncio.wait_for``; on expiry the in-flight request
    task is cancelled, which closes the underlying HTTP connection.
    """

    def __init__(self, settings: Optional[CompletionSettings] = None, client: Any = None):
        self._settings = settings
        self._client = client

    def _ensure(self) -> tuple[CompletionSettings, Any]:
        if self._settings is None:
            try:
                self._settings = completion_cfg.settings()
            except RuntimeError as exc:
                raise CompletionError(str(exc)) from exc
        if self._client is None:
            self._client = completion_cfg.client(self._settings)
        return self._settings, self._client

    async def __call__(
        self,
        messages: List[Message],
        *,
        temperature: float,
        max_tokens: int,
        timeout: float,
    ) -> str:
        s, cli = self._ensure()
        t0 = time.monotonic()
        try:
            resp = await asyncio.wait_for(
                cli.chat.completions.create(
                    model=s.model,
                    messages=messages,
                    temperature=temperature,
                    max_tokens=max_tokens,
                    timeout=timeout,
                ),
                timeout=timeout,
            )
        except (asyncio.TimeoutError, openai.APITimeoutError) as exc:
            raise CompletionTimeout(f"completion timed out after {timeout:.1f}s") from exc
        except openai.OpenAIError as exc:
            raise CompletionError(f"{type(exc).__name__}: {exc}") from exc
        log.info("completion (%s) answered in %dms", s.backend, int((time.monotonic() - t0) * 1000))
        content = resp.choices[0].message.content if resp.choices else None
        return content or ""

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None


__all__ = ["CompletionClient", "CompletionError", "CompletionTimeout", "CompletionFn"]
