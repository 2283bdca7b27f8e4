"""LLM completion contract and an OpenAI-compatible httpx client."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from agentcore.config import Settings
from agentcore.context.models import Message, ToolCall
from agentcore.errors import LLMError, TransientLLMError

logger = logging.getLogger(__name__)

_RETRYABLE_STATUS = {408, 429, 500, 502, 503, 504, 529}


@dataclass
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass
class LLMResponse:
    content: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    reasoning_content: str | None = None
    finish_reason: str | None = None
    usage: Usage = field(default_factory=Usage)


class LLMClient(Protocol):
    async def complete(
        self,
        messages: list[Message],
        tools: list[dict[str, Any]] | None = None,
        **options: Any,
    ) -> LLMResponse: ...

    async def simple_chat(self, prompt: str, system_prompt: str | None = None) -> str: ...


class OpenAICompatibleClient:
    """POSTs to ``{api_base_url}/chat/completions``.

    Rate limits, server errors and timeouts raise TransientLLMError so the
    caller's retry policy can handle them; other failures raise LLMError.
    """

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._settings = settings
        self._transport = transport
        self._http: httpx.AsyncClient | None = None

    async def start(self) -> None:
        settings = self._settings
        headers = {"content-type": "application/json"}
        if settings.api_key:
            headers["authorization"] = f"Bearer {settings.api_key}"
        else:
            logger.warning("OPENAI_API_KEY is not set -- API calls may fail")

        timeout = httpx.Timeout(
            connect=settings.api_timeout_connect,
            read=settings.api_timeout_read,
            write=10.0,
            pool=10.0,
        )
        limits = httpx.Limits(max_connections=10, max_keepalive_connections=5)
        self._http = httpx.AsyncClient(
            base_url=settings.api_base_url.rstrip("/") + "/",
            headers=headers,
            timeout=timeout,
            limits=limits,
            transport=self._transport,
        )
        logger.info("LLM client initialized (%s, model %s)", settings.api_base_url, settings.model)

    async def close(self) -> None:
        if self._http:
            await self._http.aclose()
            self._http = None

    async def __aenter__(self) -> "OpenAICompatibleClient":
        await self.start()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()

    def _build_payload(
        self,
        messages: list[Message],
        tools: list[dict[str, Any]] | None,
        options: dict[str, Any],
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": options.pop("model", self._settings.model),
            "max_tokens": options.pop("max_tokens", self._settings.max_tokens),
            "messages": [m.to_dict() for m in messages],
        }
        if tools:
            payload["tools"] = tools
        payload.update(options)
        return payload

    async def complete(
        self,
        messages: list[Message],
        tools: list[dict[str, Any]] | None = None,
        **options: Any,
    ) -> LLMResponse:
        if not self._http:
            raise RuntimeError("httpx client not initialized -- call start() first")

        payload = self._build_payload(messages, tools, dict(options))
        try:
            response = await self._http.post("chat/completions", json=payload)
        except httpx.TimeoutException as e:
            raise TransientLLMError(f"API request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise LLMError(f"HTTP error: {e}") from e

        if response.status_code != 200:
            raise self._error_for(response)
        return self._parse(response.json())

    async def simple_chat(self, prompt: str, system_prompt: str | None = None) -> str:
        messages = []
        if system_prompt:
            messages.append(Message(role="system", content=system_prompt))
        messages.append(Message(role="user", content=prompt))
        response = await self.complete(messages)
        return response.content

    @staticmethod
    def _error_for(response: httpx.Response) -> LLMError:
        try:
            error = response.json().get("error", {})
            message = error.get("message", "unknown error") if isinstance(error, dict) else str(error)
        except ValueError:
            message = response.text[:500]
        text = f"LLM API error ({response.status_code}): {message}"
        if response.status_code in _RETRYABLE_STATUS:
            retry_after = response.headers.get("retry-after")
            try:
                delay = float(retry_after) if retry_after else None
            except ValueError:
                delay = None
            return TransientLLMError(text, retry_after=delay)
        return LLMError(text)

    @staticmethod
    def _parse(data: dict[str, Any]) -> LLMResponse:
        choices = data.get("choices") or []
        if not choices:
            raise LLMError("LLM response contained no choices")
        choice = choices[0]
        message = choice.get("message") or {}
        usage = data.get("usage") or {}
        return LLMResponse(
            content=message.get("content") or "",
            tool_calls=[ToolCall.from_dict(tc) for tc in message.get("tool_calls") or []],
            reasoning_content=message.get("reasoning_content"),
            finish_reason=choice.get("finish_reason"),
            usage=Usage(
                input_tokens=usage.get("prompt_tokens", 0),
                output_tokens=usage.get("completion_tokens", 0),
            ),
        )
