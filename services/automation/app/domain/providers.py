"""HTTP clients for the AI providers used by the model router."""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Protocol

import httpx
import structlog

from ..config import ProviderSettings, get_settings
from .errors import ProviderCallError

logger = structlog.get_logger(__name__)


@dataclass
class ProviderResponse:
    text: str
    model: str
    input_tokens: int
    output_tokens: int


class Provider(Protocol):
    name: str

    @property
    def configured(self) -> bool: ...

    def select_model(self, tier: str, complexity: str) -> str: ...

    def cap_output_tokens(self, model: str, complexity: str, requested: int) -> int: ...

    async def complete(
        self,
        prompt: str,
        *,
        model: str,
        max_tokens: int,
        temperature: float,
        metadata: dict[str, Any] | None = None,
    ) -> ProviderResponse: ...


def _estimate_tokens(text: str) -> int:
    return max(1, len(text) // 4)


class _HttpProvider:
    name = "provider"

    def __init__(self, settings: ProviderSettings | None = None, client: httpx.AsyncClient | None = None) -> None:
        self._settings = settings or get_settings().providers
        self._client = client

    async def _post(self, url: str, headers: dict[str, str], payload: dict[str, Any]) -> dict[str, Any]:
        start = time.perf_counter()
        try:
            if self._client is not None:
                response = await self._client.post(
                    url, headers=headers, json=payload, timeout=self._settings.request_timeout_seconds
                )
            else:
                async with httpx.AsyncClient(timeout=self._settings.request_timeout_seconds) as client:
                    response = await client.post(url, headers=headers, json=payload)
        except httpx.HTTPError as exc:
            logger.warning("provider.transport_error", provider=self.name, error=str(exc))
            raise ProviderCallError(self.name, f"transport error: {exc}") from exc
        latency_ms = int((time.perf_counter() - start) * 1000)
        logger.info("provider.call", provider=self.name, latency_ms=latency_ms, status_code=response.status_code)
        if response.status_code >= 400:
            raise ProviderCallError(
                self.name, f"HTTP {response.status_code}: {response.text[:200]}", status_code=response.status_code
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise ProviderCallError(self.name, "response body is not JSON", status_code=response.status_code) from exc
        if not isinstance(data, dict):
            raise ProviderCallError(self.name, "response body is not an object", status_code=response.status_code)
        return data


class AnthropicProvider(_HttpProvider):
    name = "anthropic"
    # output ceilings per model family and complexity
    OUTPUT_CAPS = {
        "default": {"simple": 3000, "medium": 3500, "high": 4000},
        "advanced": {"simple": 4000, "medium": 4500, "high": 5000},
    }

    @property
    def configured(self) -> bool:
        return bool(self._settings.anthropic_api_key)

    def select_model(self, tier: str, complexity: str) -> str:
        if self._settings.advanced_model_enabled and tier == "orchestrator" and complexity == "high":
            return self._settings.anthropic_advanced_model
        return self._settings.anthropic_default_model

    def cap_output_tokens(self, model: str, complexity: str, requested: int) -> int:
        family = "advanced" if model == self._settings.anthropic_advanced_model else "default"
        caps = self.OUTPUT_CAPS[family]
        return min(requested, caps.get(complexity, caps["simple"]))

    async def complete(
        self,
        prompt: str,
        *,
        model: str,
        max_tokens: int,
        temperature: float,
        metadata: dict[str, Any] | None = None,
    ) -> ProviderResponse:
        headers = {
            "x-api-key": self._settings.anthropic_api_key,
            "anthropic-version": self._settings.anthropic_version,
            "Content-Type": "application/json",
        }
        payload = {
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        data = await self._post(self._settings.anthropic_url, headers, payload)
        blocks = data.get("content")
        if not isinstance(blocks, list) or not blocks or not isinstance(blocks[0], dict):
            raise ProviderCallError(self.name, "response missing content blocks")
        text = "".join(block.get("text", "") for block in blocks if isinstance(block, dict))
        usage = data.get("usage") or {}
        return ProviderResponse(
            text=text,
            model=data.get("model") or model,
            input_tokens=usage.get("input_tokens") or _estimate_tokens(prompt),
            output_tokens=usage.get("output_tokens") or _estimate_tokens(text),
        )


class OpenAIProvider(_HttpProvider):
    name = "openai"

    @property
    def configured(self) -> bool:
        return bool(self._settings.openai_api_key)

    def select_model(self, tier: str, complexity: str) -> str:
        if tier == "orchestrator":
            return self._settings.openai_orchestrator_model
        return self._settings.openai_agent_model

    def cap_output_tokens(self, model: str, complexity: str, requested: int) -> int:
        return requested

    async def complete(
        self,
        prompt: str,
        *,
        model: str,
        max_tokens: int,
        temperature: float,
        metadata: dict[str, Any] | None = None,
    ) -> ProviderResponse:
        headers = {
            "Authorization": f"Bearer {self._settings.openai_api_key}",
            "Content-Type": "application/json",
        }
        payload: dict[str, Any] = {
            "model": model,
            "temperature": temperature,
            "max_completion_tokens": max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        if metadata:
            payload["metadata"] = {key: str(value) for key, value in metadata.items() if value is not None}
        data = await self._post(self._settings.openai_url, headers, payload)
        choices = data.get("choices")
        if not isinstance(choices, list) or not choices:
            raise ProviderCallError(self.name, "response missing choices")
        message = choices[0].get("message") if isinstance(choices[0], dict) else None
        if not isinstance(message, dict) or not isinstance(message.get("content"), str):
            raise ProviderCallError(self.name, "response missing message content")
        usage = data.get("usage") or {}
        return ProviderResponse(
            text=message["content"],
            model=data.get("model") or model,
            input_tokens=usage.get("prompt_tokens") or _estimate_tokens(prompt),
            output_tokens=usage.get("completion_tokens") or _estimate_tokens(message["content"]),
        )


__all__ = ["AnthropicProvider", "OpenAIProvider", "Provider", "ProviderResponse"]
