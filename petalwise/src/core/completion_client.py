"""
Petalwise - CompletionClient
=============================
Thin async boundary around the generative model.

The return value is untrusted text; parsing and validation belong to
``response_parser``.  Calls are bounded by ``asyncio.wait_for`` and
are **never retried**: any failure becomes ``ModelCallError`` and the
orchestrator drops to the rule-based tier.

Usage:
    from petalwise.src.core.completion_client import GeminiCompletionClient
    client = GeminiCompletionClient()
    text   = await client.complete(SYSTEM_PROMPT, prompt, temperature=0.7, max_tokens=800)
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Protocol, runtime_checkable

from petalwise.config.settings import settings
from petalwise.src.core.errors import ModelCallError
from petalwise.src.utils.logger import get_logger

logger = get_logger(__name__)


@runtime_checkable
class CompletionClient(Protocol):
    """Anything that turns (system, user) prompts into text."""

    async def complete(self, system_instructions: str, user_prompt: str, temperature: float, max_tokens: int) -> str: ...


def _content_to_text(content: Any) -> str:
    """Flatten a LangChain message content (str or list of parts) to text."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and isinstance(part.get("text"), str):
                parts.append(part["text"])
        return "".join(parts)
    return "" if content is None else str(content)


class GeminiCompletionClient:
    """
    ``CompletionClient`` backed by LangChain's ``ChatGoogleGenerativeAI``.

    One chat model is built lazily per (temperature, max_tokens) pair
    and reused afterwards.

    Parameters
    ----------
    model
        Gemini model name.  Defaults to ``settings.LLM_MODEL``.
    timeout_s
        Upper bound per call.  Defaults to ``settings.LLM_TIMEOUT_S``.
    """

    __slots__ = ("_model", "_timeout_s", "_llms")

    def __init__(self, model: str | None = None, timeout_s: float | None = None) -> None:
        self._model = model or settings.LLM_MODEL
        self._timeout_s = timeout_s or settings.LLM_TIMEOUT_S
        self._llms: dict[tuple[float, int], Any] = {}


    def _get_llm(self, temperature: float, max_tokens: int) -> Any:
        key = (temperature, max_tokens)
        if key not in self._llms:
            from langchain_google_genai import ChatGoogleGenerativeAI

            self._llms[key] = ChatGoogleGenerativeAI(model=self._model, temperature=temperature, max_output_tokens=max_tokens, google_api_key=settings.GOOGLE_API_KEY.get_secret_value())
            logger.info("[PREDICT] LLM initialised: %s (temperature=%.1f, max_tokens=%d)", self._model, temperature, max_tokens)
        return self._llms[key]


    async def complete(self, system_instructions: str, user_prompt: str, temperature: float, max_tokens: int) -> str:
        """
        Send one system + user exchange and return the reply text.

        Raises
        ------
        ModelCallError
            On timeout, any client error, or an empty reply.
        """
        from langchain_core.messages import HumanMessage, SystemMessage

        t_llm = time.perf_counter()
        messages = [SystemMessage(content=system_instructions), HumanMessage(content=user_prompt)]
        try:
            response = await asyncio.wait_for(self._get_llm(temperature, max_tokens).ainvoke(messages), timeout=self._timeout_s)
        except asyncio.TimeoutError as exc:
            logger.warning("[PREDICT] LLM call timed out after %.1fs.", self._timeout_s)
            raise ModelCallError(f"Model call timed out after {self._timeout_s}s") from exc
        except Exception as exc:
            logger.warning("[PREDICT] LLM call failed: %s", exc)
            raise ModelCallError(f"Model call failed: {exc}") from exc

        text = _content_to_text(getattr(response, "content", response)).strip()
        if not text:
            raise ModelCallError("Model returned an empty response.")

        logger.info("[PREDICT] LLM response: %.1fms (%d chars)", (time.perf_counter() - t_llm) * 1000, len(text))
        return text


    def __repr__(self) -> str:
        return f"GeminiCompletionClient(model='{self._model}', cached_models={len(self._llms)})"
