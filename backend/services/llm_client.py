"""
Text-completion collaborator.

Wraps a LangChain chat model behind ``complete(prompt) -> str`` so the
generation loop only ever sees one free-text request and one free-text
answer.
"""
import logging
import os
import time
from concurrent.futures import TimeoutError as FuturesTimeoutError
from typing import Any, Optional

from langchain_openai import ChatOpenAI

from backend.services.runtime import log_event, run_with_timeout

logger = logging.getLogger("llm_client")

LLM_PROVIDER = os.getenv("LLM_PROVIDER", "openai")
LLM_MODEL = os.getenv("LLM_MODEL", "gpt-4o-mini")
LLM_API_BASE = os.getenv("LLM_API_BASE", "")
LLM_TEMPERATURE = float(os.getenv("LLM_TEMPERATURE", "0.2"))
LLM_TIMEOUT_S = max(1.0, float(os.getenv("LLM_TIMEOUT_S", "60")))


def create_chat_model(
    model: str = LLM_MODEL,
    api_key: Optional[str] = None,
    api_base: Optional[str] = None,
    temperature: float = LLM_TEMPERATURE,
    provider: str = LLM_PROVIDER,
) -> ChatOpenAI:
    key = (api_key or os.getenv("OPENAI_API_KEY") or "").strip()
    base = (api_base or LLM_API_BASE or "").strip()
    if not base and provider.lower() == "deepseek":
        base = "https://api.deepseek.com"
    if not key:
        raise ValueError("Missing API key. Set OPENAI_API_KEY in the environment or pass api_key.")
    if base:
        return ChatOpenAI(model=model, temperature=temperature, openai_api_key=key, openai_api_base=base)
    return ChatOpenAI(model=model, temperature=temperature, openai_api_key=key)


class LLMCompletionClient:
    """Single-prompt completion with a per-call timeout."""

    def __init__(self, llm: Any, timeout_s: float = LLM_TIMEOUT_S):
        self._llm = llm
        self.timeout_s = timeout_s

    def complete(self, prompt: str) -> str:
        started = time.perf_counter()

        def _invoke():
            resp = self._llm.invoke(prompt)
            return resp.content if hasattr(resp, "content") else str(resp)

        try:
            out = run_with_timeout(_invoke, timeout_s=self.timeout_s)
        except FuturesTimeoutError as exc:
            log_event(
                logger,
                logging.WARNING,
                "llm_call_timeout",
                timeout_s=self.timeout_s,
                elapsed_ms=round((time.perf_counter() - started) * 1000, 2),
                prompt_chars=len(prompt),
            )
            raise TimeoutError(f"llm_timeout_{self.timeout_s}s") from exc
        log_event(
            logger,
            logging.INFO,
            "llm_call_ok",
            elapsed_ms=round((time.perf_counter() - started) * 1000, 2),
            prompt_chars=len(prompt),
            response_chars=len(out or ""),
        )
        return (out or "").strip()

    __call__ = complete
