"""Tenant-aware routing of prompts across AI providers."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

import structlog

from ..config import AutomationSettings, get_settings
from .cost_monitor import CostMonitor
from .errors import ProviderCallError, ProviderError
from .providers import AnthropicProvider, OpenAIProvider, Provider
from .types import ComplexityTier, OrganizationContext

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ModelPreferences:
    preferred: str
    fallback: str
    max_tokens: int
    temperature: float


PERSONAL_PREFERENCES = ModelPreferences("anthropic", "openai", 8192, 0.7)
PLAN_PREFERENCES: dict[str, ModelPreferences] = {
    "free": ModelPreferences("openai", "anthropic", 4096, 0.7),
    "starter": ModelPreferences("anthropic", "openai", 8192, 0.7),
    "professional": ModelPreferences("anthropic", "openai", 16384, 0.5),
    "enterprise": ModelPreferences("anthropic", "openai", 32768, 0.3),
}


def get_model_preferences(organization: OrganizationContext | None) -> ModelPreferences:
    if organization is None or not organization.organization_id:
        return PERSONAL_PREFERENCES
    return PLAN_PREFERENCES.get(organization.organization_plan, PLAN_PREFERENCES["free"])


class ModelRouter:
    """The only component that talks to AI providers."""

    def __init__(
        self,
        cost_monitor: CostMonitor,
        providers: Mapping[str, Provider] | None = None,
        settings: AutomationSettings | None = None,
    ) -> None:
        settings = settings or get_settings()
        self._cost_monitor = cost_monitor
        self._providers: dict[str, Provider] = dict(
            providers
            or {
                "anthropic": AnthropicProvider(settings.providers),
                "openai": OpenAIProvider(settings.providers),
            }
        )

    @property
    def cost_monitor(self) -> CostMonitor:
        return self._cost_monitor

    def provider_chain(self, preferences: ModelPreferences) -> list[Provider]:
        chain: list[Provider] = []
        for name in (preferences.preferred, preferences.fallback):
            provider = self._providers.get(name)
            if provider is None or provider in chain:
                continue
            if not provider.configured:
                logger.info("model_router.provider_skipped", provider=name, reason="not configured")
                continue
            chain.append(provider)
        return chain

    async def call(
        self,
        prompt: str,
        *,
        tier: str = "agent",
        complexity: ComplexityTier | str = ComplexityTier.simple,
        organization_context: OrganizationContext | None = None,
        job_id: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        workflow_type: str | None = None,
    ) -> str:
        complexity_value = ComplexityTier(complexity).value
        preferences = get_model_preferences(organization_context)
        requested_tokens = max_tokens if max_tokens is not None else preferences.max_tokens
        sampling = temperature if temperature is not None else preferences.temperature
        workspace = organization_context.organization_id if organization_context else None

        chain = self.provider_chain(preferences)
        if not chain:
            raise ProviderError("No AI provider is configured; set an Anthropic or OpenAI API key")

        attempts: list[str] = []
        for provider in chain:
            model = provider.select_model(tier, complexity_value)
            budget = provider.cap_output_tokens(model, complexity_value, requested_tokens)
            logger.info(
                "model_router.attempt",
                provider=provider.name,
                model=model,
                tier=tier,
                complexity=complexity_value,
                max_tokens=budget,
                organization_id=workspace or "personal",
                job_id=job_id,
            )
            try:
                response = await provider.complete(
                    prompt,
                    model=model,
                    max_tokens=budget,
                    temperature=sampling,
                    metadata={"organizationId": workspace, "tier": tier, "complexity": complexity_value},
                )
            except ProviderCallError as exc:
                attempts.append(str(exc))
                record = self._cost_monitor.calculate_cost(model, 0, 0)
                self._cost_monitor.log_cost(
                    record,
                    tier=tier,
                    complexity=complexity_value,
                    job_id=job_id,
                    workflow_type=workflow_type,
                    success=False,
                )
                self._cost_monitor.check_budget(record)
                logger.warning("model_router.attempt_failed", provider=provider.name, error=str(exc), job_id=job_id)
                continue

            record = self._cost_monitor.calculate_cost(response.model, response.input_tokens, response.output_tokens)
            self._cost_monitor.log_cost(
                record,
                tier=tier,
                complexity=complexity_value,
                job_id=job_id,
                workflow_type=workflow_type,
                success=True,
            )
            self._cost_monitor.check_budget(record)
            return response.text

        raise ProviderError(
            f"All AI providers failed for {workspace or 'Personal'} workspace: {'; '.join(attempts)}",
            attempts=attempts,
        )


__all__ = ["ModelPreferences", "ModelRouter", "get_model_preferences"]
