from __future__ import annotations

import abc
import json
from typing import Dict, List, Mapping, Optional, Sequence

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from .config import LLMConfig
from .errors import GatewayError
from .logging_utils import get_logger

logger = get_logger(__name__)

Message = Mapping[str, str]

_DEFAULT_BASE_URLS = {
    "groq": "https://api.groq.com/openai/v1",
    "openai": "https://api.openai.com/v1",
}


class TransientGatewayError(GatewayError):
    """Transport failure, 429 or 5xx. Retried inside the gateway."""


class LanguageModelGateway(abc.ABC):
    @abc.abstractmethod
    async def complete(self, messages: Sequence[Message]) -> str:
        raise NotImplementedError

    async def aclose(self) -> None:
        return None


class OfflineGateway(LanguageModelGateway):
    """Stands in when no API key is configured."""

    async def complete(self, messages: Sequence[Message]) -> str:
        return json.dumps({
            "type": "clarify",
            "clarifying_question": "The language model is not configured. Set LLM_API_KEY and try again.",
            "options": [],
        })


class OpenAICompatibleGateway(LanguageModelGateway):
    def __init__(self, cfg: LLMConfig, api_key: str, client: Optional[httpx.AsyncClient] = None):
        self._cfg = cfg
        base_url = cfg.base_url or _DEFAULT_BASE_URLS.get(cfg.provider.lower())
        if not base_url:
            raise ValueError(f"Unsupported LLM provider: {cfg.provider}")
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            timeout=cfg.request_timeout_s,
            headers={"Authorization": f"Bearer {api_key}"},
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def complete(self, messages: Sequence[Message]) -> str:
        payload = {
            "model": self._cfg.model,
            "temperature": self._cfg.temperature,
            "max_tokens": self._cfg.max_tokens,
            "response_format": {"type": "json_object"},
            "messages": [dict(m) for m in messages],
        }
        retry_cfg = self._cfg.retry
        async for attempt in AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(retry_cfg.attempts),
            wait=wait_exponential(multiplier=retry_cfg.backoff_seconds, max=5),
            retry=retry_if_exception_type(TransientGatewayError),
        ):
            with attempt:
                return await self._post(payload)
        raise GatewayError("LLM retries exhausted")  # pragma: no cover

    async def _post(self, payload: Dict) -> str:
        try:
            resp = await self._client.post("/chat/completions", json=payload)
        except httpx.TransportError as exc:
            logger.warning("llm_transport_error", error=str(exc))
            raise TransientGatewayError(f"LLM transport error: {exc}") from exc
        if resp.status_code == 429 or resp.status_code >= 500:
            logger.warning("llm_http_retryable", status=resp.status_code)
            raise TransientGatewayError(f"LLM HTTP {resp.status_code}")
        if resp.status_code >= 400:
            raise GatewayError(f"LLM HTTP {resp.status_code}: {resp.text[:500]}")
        try:
            data = resp.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise GatewayError("Unexpected LLM response") from exc
        return content or ""


def build_gateway(cfg: LLMConfig, api_key: str) -> LanguageModelGateway:
    if not api_key:
        logger.warning("llm_offline", reason="missing LLM_API_KEY")
        return OfflineGateway()
    return OpenAICompatibleGateway(cfg, api_key)


def as_messages(system_prompt: str, user_prompt: str) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": user_prompt},
    ]


__all__ = [
    "LanguageModelGateway",
    "OfflineGateway",
    "OpenAICompatibleGateway",
    "TransientGatewayError",
    "build_gateway",
    "as_messages",
]
