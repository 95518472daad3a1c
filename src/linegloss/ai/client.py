"""Thin async wrapper over an OpenAI-compatible chat completions endpoint."""

from __future__ import annotations

import inspect
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

import httpx
from openai import APIConnectionError, APIStatusError, AsyncOpenAI, RateLimitError
from openai.types.chat import ChatCompletionMessageParam
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from ..services.settings import Settings
from ..services.telemetry import emit

__all__ = ["AIClient", "ClientSettings", "is_transient_error"]

LOGGER = logging.getLogger(__name__)

_PROMPT_LOG_LIMIT = 4_000


@dataclass(slots=True)
class ClientSettings:
    """Connection and sampling options for :class:`AIClient`."""

    base_url: str
    api_key: str
    model: str
    organization: str | None = None
    request_timeout: float | None = 90.0
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    temperature: float = 0.0
    max_tokens: int | None = 8_192
    default_headers: Mapping[str, str] | None = None
    debug_logging: bool = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "ClientSettings":
        fields = (
            "base_url",
            "api_key",
            "model",
            "organization",
            "request_timeout",
            "max_retries",
            "retry_min_seconds",
            "retry_max_seconds",
            "temperature",
            "max_tokens",
            "debug_logging",
        )
        values = {name: getattr(settings, name) for name in fields}
        return cls(default_headers=dict(settings.default_headers) or None, **values)


def is_transient_error(exc: BaseException) -> bool:
    """Whether a failed request is worth another attempt."""

    if isinstance(exc, (httpx.TimeoutException, APIConnectionError, RateLimitError)):
        return True
    if isinstance(exc, APIStatusError):
        return exc.status_code >= 500
    return False


class AIClient:
    """Sends one chat request per call and returns the reply text.

    Retries happen here rather than in the SDK so that backoff follows the
    configured bounds; the SDK client is therefore built with ``max_retries=0``.
    """

    def __init__(self, settings: ClientSettings, *, client: AsyncOpenAI | None = None) -> None:
        self._settings = settings
        self._client = client if client is not None else self._open(settings)

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    async def complete(
        self,
        messages: Iterable[Mapping[str, Any] | ChatCompletionMessageParam],
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
        **extra_params: Any,
    ) -> str:
        """Return the assistant text for *messages*; empty when the reply has none."""

        options = self._settings
        payload: dict[str, Any] = {"model": options.model, "messages": _as_messages(messages)}
        sampling = {
            "temperature": options.temperature if temperature is None else temperature,
            "max_tokens": options.max_tokens if max_tokens is None else max_tokens,
        }
        payload.update({key: value for key, value in sampling.items() if value is not None})
        payload.update(extra_params)

        LOGGER.debug("Chat request to %s (%d messages)", options.model, len(payload["messages"]))
        if options.debug_logging:
            self._log_prompt_payload(payload)

        started = time.perf_counter()
        attempts = 0
        response: Any = None
        async for attempt in self._retrying():
            with attempt:
                attempts += 1
                response = await self._client.chat.completions.create(**payload)
        emit(
            "ai.completion",
            {
                "model": options.model,
                "attempts": attempts,
                "duration_ms": round((time.perf_counter() - started) * 1000, 1),
            },
        )
        return _reply_text(response)

    async def aclose(self) -> None:
        close = getattr(self._client, "close", None)
        if close is None:
            return
        result = close()
        if inspect.isawaitable(result):
            await result

    def _retrying(self) -> AsyncRetrying:
        options = self._settings
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, options.max_retries)),
            wait=wait_exponential(multiplier=options.retry_min_seconds, max=options.retry_max_seconds),
            retry=retry_if_exception(is_transient_error),
            before_sleep=_log_retry,
        )

    def _log_prompt_payload(self, payload: Mapping[str, Any]) -> None:
        try:
            dumped = json.dumps(payload, ensure_ascii=False, indent=2)
        except (TypeError, ValueError):
            dumped = repr(payload)
        LOGGER.debug("Prompt payload:\n%s", dumped[:_PROMPT_LOG_LIMIT])

    @staticmethod
    def _open(settings: ClientSettings) -> AsyncOpenAI:
        return AsyncOpenAI(
            api_key=settings.api_key,
            base_url=settings.base_url,
            organization=settings.organization,
            timeout=settings.request_timeout,
            default_headers=dict(settings.default_headers) if settings.default_headers else None,
            max_retries=0,
        )


def _as_messages(messages: Iterable[Mapping[str, Any] | ChatCompletionMessageParam]) -> list[dict[str, Any]]:
    result = []
    for message in messages:
        if not isinstance(message, Mapping):
            raise TypeError(f"Chat messages must be mappings, got {type(message).__name__}")
        result.append(dict(message))
    if not result:
        raise ValueError("At least one message is required")
    return result


def _reply_text(response: Any) -> str:
    choices = getattr(response, "choices", None) or []
    if not choices:
        return ""
    content = getattr(getattr(choices[0], "message", None), "content", None)
    return content if isinstance(content, str) else ""


def _log_retry(state: Any) -> None:
    outcome = state.outcome
    error = outcome.exception() if outcome is not None else None
    LOGGER.info("Retrying chat request (attempt %d failed: %s)", state.attempt_number, error)
