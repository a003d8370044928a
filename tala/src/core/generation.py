"""
Tala - Generation Client
=========================
Companion client that sends an assembled context plus the user question
to Gemini, rotating across the configured models and API keys.

Rate-limit handling
-------------------
- Quota errors (``RESOURCE_EXHAUSTED`` / "quota") put the *credential*
  in cooldown (``CREDENTIAL_COOLDOWN_SECONDS``).
- Any other 429 puts the *model* in cooldown (``MODEL_COOLDOWN_SECONDS``)
  and the next model is tried.
- Non-rate-limit errors propagate unchanged.
- When no (model, key) pair is left, ``AllCredentialsExhaustedError``
  is raised.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from typing import Any

from tala.config.settings import settings
from tala.src.core.key_rotation import AllCredentialsExhaustedError, KeyRotator
from tala.src.utils.clock import Clock, SystemClock
from tala.src.utils.logger import get_logger

logger = get_logger(__name__)

SYSTEM_PROMPT = (
    "You are the virtual assistant of Davao Oriental State University (DOrSU). "
    "Answer using only the knowledge-base context provided. "
    "If the context does not contain the answer, say so briefly."
)

LLMFactory = Callable[[str, str], Any]


def _default_llm_factory(model: str, api_key: str) -> Any:
    from langchain_google_genai import ChatGoogleGenerativeAI

    return ChatGoogleGenerativeAI(model=model, temperature=settings.LLM_TEMPERATURE, google_api_key=api_key)


def is_rate_limit(exc: BaseException) -> bool:
    message = str(exc)
    return getattr(exc, "status_code", None) == 429 or getattr(exc, "code", None) == 429 or "429" in message or "RESOURCE_EXHAUSTED" in message or "rate_limit" in message.lower()


def is_quota_error(exc: BaseException) -> bool:
    message = str(exc)
    return "RESOURCE_EXHAUSTED" in message or "quota" in message.lower()


def build_prompt(context: str, question: str) -> str:
    return f"Context:\n{context}\n\nQuestion: {question}"


class GenerationClient:
    """
    Parameters
    ----------
    api_keys
        Credential pool, in priority order.
    models
        Model names, in priority order.
    llm_factory
        ``(model, api_key) -> chat model`` exposing ``ainvoke``.
    """

    def __init__(self, api_keys: Sequence[str] | None = None, models: Sequence[str] | None = None, llm_factory: LLMFactory | None = None, clock: Clock | None = None, timeout: float | None = None) -> None:
        self._keys = list(api_keys if api_keys is not None else settings.api_keys)
        self._models = list(models if models is not None else settings.llm_models)
        if not self._keys:
            raise ValueError("GenerationClient needs at least one API key (GOOGLE_API_KEYS)")
        clock = clock or SystemClock()
        self._credentials = KeyRotator([f"key#{i + 1}" for i in range(len(self._keys))], settings.CREDENTIAL_COOLDOWN_SECONDS, clock, pool="credentials")
        self._model_pool = KeyRotator(self._models, settings.MODEL_COOLDOWN_SECONDS, clock, pool="models")
        self._factory = llm_factory or _default_llm_factory
        self._timeout = timeout if timeout is not None else settings.EXTERNAL_CALL_TIMEOUT_SECONDS
        self._clients: dict[tuple[int, int], Any] = {}


    @property
    def credentials(self) -> KeyRotator:
        return self._credentials


    @property
    def models(self) -> KeyRotator:
        return self._model_pool


    def _client(self, model_index: int, key_index: int) -> Any:
        pair = (model_index, key_index)
        if pair not in self._clients:
            self._clients[pair] = self._factory(self._models[model_index], self._keys[key_index])
        return self._clients[pair]


    async def generate(self, context: str, question: str) -> str:
        """Return the model's answer for *question* grounded on *context*."""
        from langchain_core.messages import HumanMessage, SystemMessage

        messages = [SystemMessage(content=SYSTEM_PROMPT), HumanMessage(content=build_prompt(context, question))]
        max_attempts = len(self._models) * len(self._keys)

        for _ in range(max_attempts):
            key_index = self._credentials.acquire()
            model_index = self._model_pool.acquire()
            model = self._models[model_index]
            try:
                response = await asyncio.wait_for(self._client(model_index, key_index).ainvoke(messages), timeout=self._timeout)
            except Exception as exc:
                if not is_rate_limit(exc):
                    raise
                if is_quota_error(exc):
                    self._credentials.mark_exhausted(key_index)
                else:
                    self._model_pool.mark_exhausted(model_index)
                logger.warning("[KEYS] Rate limit on %s with %s: %s", model, self._credentials.label(key_index), exc)
                continue

            answer = response.content if hasattr(response, "content") else str(response)
            usage = getattr(response, "usage_metadata", None) or {}
            self._credentials.record_success(key_index, int(usage.get("total_tokens", 0)))
            self._model_pool.record_success(model_index, int(usage.get("total_tokens", 0)))
            logger.info("[KEYS] %s answered with %s (%d chars).", model, self._credentials.label(key_index), len(answer))
            return answer

        raise AllCredentialsExhaustedError("credentials")
