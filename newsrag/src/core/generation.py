"""
NewsRAG - Generation Gateway
=============================
Wraps the Gemini chat model (``ChatGoogleGenerativeAI``) for one-shot and
streaming text generation.

Guarantees
----------
``generate(prompt)``
    Always returns text and never raises.  Transient overload signals
    from the model (503 / 429 / ``UNAVAILABLE`` / ``RESOURCE_EXHAUSTED``)
    are retried under a ``RetryPolicy``, by default 3 attempts with
    1s, 2s backoff.  Any other failure, an empty response, a timeout, or
    exhausting the attempts resolves to ``GENERATION_FALLBACK``.
``generate_stream(prompt)``
    A finite, non-restartable async sequence of text fragments.  No
    retry (it would duplicate partial output); an upstream error simply
    ends the sequence.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Protocol, runtime_checkable

from newsrag.config.prompt_templates import GENERATION_FALLBACK
from newsrag.config.settings import settings
from newsrag.src.core.exceptions import GenerationError
from newsrag.src.utils.logger import get_logger

logger = get_logger(__name__)

_OVERLOAD_STATUS_CODES = {429, 503}
_OVERLOAD_MARKERS = ("overloaded", "unavailable", "resource_exhausted", "resource exhausted")


@runtime_checkable
class ChatModel(Protocol):
    """Structural type for a LangChain chat model."""

    async def ainvoke(self, input: str) -> object: ...

    def astream(self, input: str) -> AsyncIterator[object]: ...


def _init_llm() -> ChatModel:
    """Initialise the Gemini LLM via LangChain."""
    from langchain_google_genai import ChatGoogleGenerativeAI

    llm = ChatGoogleGenerativeAI(model=settings.LLM_MODEL, temperature=settings.LLM_TEMPERATURE, max_output_tokens=settings.LLM_MAX_OUTPUT_TOKENS, max_retries=1, google_api_key=settings.GOOGLE_API_KEY.get_secret_value())
    logger.info("LLM initialised: %s (temperature=%.1f)", settings.LLM_MODEL, settings.LLM_TEMPERATURE)
    return llm


def is_overloaded(exc: BaseException) -> bool:
    """Return True if ``exc`` is the model's transient-overload signal."""
    for attr in ("code", "status_code", "status"):
        value = getattr(exc, attr, None)
        if isinstance(value, int) and value in _OVERLOAD_STATUS_CODES:
            return True
    message = str(exc).lower()
    return any(marker in message for marker in _OVERLOAD_MARKERS)


def message_text(message: object) -> str:
    """Extract plain text from a LangChain message / chunk (str or content-part list)."""
    content = getattr(message, "content", message)
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and part.get("type", "text") == "text":
                parts.append(str(part.get("text", "")))
        return "".join(parts)
    return "" if content is None else str(content)


class RetryPolicy:
    """
    Explicit retry state machine for ``generate``.

    ``attempt`` is 1-based.  After a failed attempt ``n`` the caller asks
    ``should_retry(n, exc)``; if True it sleeps ``backoff(n)`` and tries
    attempt ``n + 1``.
    """

    __slots__ = ("max_attempts", "base_delay")

    def __init__(self, max_attempts: int | None = None, base_delay: float | None = None) -> None:
        self.max_attempts = max_attempts or settings.GENERATION_MAX_ATTEMPTS
        self.base_delay = settings.GENERATION_BACKOFF_BASE if base_delay is None else base_delay


    def backoff(self, attempt: int) -> float:
        return self.base_delay * (2 ** (attempt - 1))


    def should_retry(self, attempt: int, exc: BaseException) -> bool:
        return attempt < self.max_attempts and is_overloaded(exc)


class GenerationGateway:
    """
    Text generation with bounded retry for the one-shot form.

    Parameters
    ----------
    llm
        A ``ChatModel``; defaults to ``ChatGoogleGenerativeAI``.
    retry_policy
        Retry schedule for ``generate``.
    timeout
        Seconds allowed per attempt (and per streamed fragment).
    sleep
        Awaitable sleep used between attempts (injected by tests).
    """

    __slots__ = ("_llm", "_policy", "_timeout", "_sleep")

    def __init__(self, llm: ChatModel | None = None, retry_policy: RetryPolicy | None = None, timeout: float | None = None, sleep: Callable[[float], Awaitable[object]] = asyncio.sleep) -> None:
        self._llm = llm if llm is not None else _init_llm()
        self._policy = retry_policy or RetryPolicy()
        self._timeout = timeout or settings.GENERATION_TIMEOUT
        self._sleep = sleep


    async def generate(self, prompt: str) -> str:
        """Generate a complete answer; returns ``GENERATION_FALLBACK`` on failure."""
        attempt = 1
        while True:
            t_llm = time.perf_counter()
            try:
                text = await self._invoke(prompt)
            except Exception as exc:
                if not self._policy.should_retry(attempt, exc):
                    if is_overloaded(exc):
                        logger.error("[LLM] Model still overloaded after %d attempt(s); giving up.", attempt)
                    else:
                        logger.error("[LLM] Generation failed on attempt %d: %s", attempt, exc)
                    return GENERATION_FALLBACK

                delay = self._policy.backoff(attempt)
                logger.warning("[LLM] Model overloaded (attempt %d/%d). Retrying in %.1fs…", attempt, self._policy.max_attempts, delay)
                await self._sleep(delay)
                attempt += 1
                continue

            logger.info("[LLM] Response in %.1fms (%d chars, attempt %d).", (time.perf_counter() - t_llm) * 1000, len(text), attempt)
            return text


    async def generate_stream(self, prompt: str) -> AsyncIterator[str]:
        """Yield answer fragments as the model produces them."""
        stream = self._llm.astream(prompt)
        emitted = 0
        try:
            while True:
                try:
                    chunk = await asyncio.wait_for(stream.__anext__(), timeout=self._timeout)
                except StopAsyncIteration:
                    break
                fragment = message_text(chunk)
                if fragment:
                    emitted += 1
                    yield fragment
        except Exception as exc:
            logger.error("[LLM] Stream interrupted after %d fragment(s): %s", emitted, exc)
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                try:
                    await aclose()
                except Exception:
                    logger.debug("[LLM] Ignoring error while closing the model stream.", exc_info=True)
        logger.debug("[LLM] Stream finished (%d fragments).", emitted)


    async def _invoke(self, prompt: str) -> str:
        try:
            response = await asyncio.wait_for(self._llm.ainvoke(prompt), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            raise GenerationError(f"Generation timed out after {self._timeout}s") from exc

        text = message_text(response).strip()
        if not text:
            raise GenerationError("Model returned an empty response")
        return text
