from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

import httpx
import structlog
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..errors import ClassificationError

logger = structlog.get_logger(__name__)


class OpenAIAdapterError(ClassificationError):
    pass


class OpenAIAdapter:
    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 15.0,
        max_attempts: int = 1,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(
            base_url=self._base_url,
            timeout=timeout,
            headers={"Authorization": f"Bearer {api_key}"},
        )
        self._owns_client = client is None
        self._max_attempts = max(1, max_attempts)

    async def post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        retry = AsyncRetrying(
            wait=wait_exponential(multiplier=0.5, min=0.5, max=5.0),
            stop=stop_after_attempt(self._max_attempts),
            retry=retry_if_exception_type((httpx.TimeoutException, httpx.ReadError)),
            reraise=True,
        )
        try:
            async for attempt in retry:
                with attempt:
                    logger.debug(
                        "openai_request",
                        path=path,
                        attempt=attempt.retry_state.attempt_number,
                    )
                    response = await self._client.post(path, json=payload)
                    if response.status_code >= 400:
                        raise OpenAIAdapterError(f"API error: {response.status_code} {response.text[:200]}")
                    data = response.json()
                    logger.debug("openai_response", path=path, status=response.status_code)
                    return data
        except httpx.HTTPError as exc:
            raise OpenAIAdapterError(f"Transport error: {exc.__class__.__name__}: {exc}") from exc
        except ValueError as exc:
            raise OpenAIAdapterError(f"Malformed API response: {exc}") from exc
        raise OpenAIAdapterError("Retry exhausted")

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()


@dataclass(slots=True)
class ChatCompletionRequest:
    model: str
    messages: list[dict[str, Any]]
    temperature: Optional[float] = None
    max_completion_tokens: Optional[int] = 256


@dataclass(slots=True)
class ChatCompletionResult:
    content: str
    finish_reason: str
    tokens: int = 0


class GPTClient(OpenAIAdapter):
    async def complete(self, request: ChatCompletionRequest) -> ChatCompletionResult:
        payload: dict[str, Any] = {
            "model": request.model,
            "messages": request.messages,
        }
        if request.temperature is not None:
            payload["temperature"] = request.temperature
        if request.max_completion_tokens is not None:
            payload["max_completion_tokens"] = request.max_completion_tokens
        logger.debug("gpt_api_call", model=request.model, messages_count=len(request.messages))
        data = await self.post("/chat/completions", payload)
        try:
            choice = data["choices"][0]
            content = choice["message"].get("content") or ""
        except (KeyError, IndexError, TypeError, AttributeError) as exc:
            raise OpenAIAdapterError("Completion response has no choices") from exc
        usage = data.get("usage") or {}
        return ChatCompletionResult(
            content=content,
            finish_reason=choice.get("finish_reason") or "stop",
            tokens=usage.get("total_tokens", 0),
        )
