"""Application configuration using Pydantic settings."""
from __future__ import annotations

from functools import lru_cache
from typing import Any, Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ProviderSettings(BaseModel):
    anthropic_api_key: str = Field(default="", description="API key for the Anthropic messages endpoint")
    anthropic_url: str = "https://api.anthropic.com/v1/messages"
    anthropic_version: str = "2023-06-01"
    anthropic_default_model: str = "claude-3-5-sonnet-20241022"
    anthropic_advanced_model: str = "claude-3-7-sonnet-20250219"
    advanced_model_enabled: bool = False
    openai_api_key: str = Field(default="", description="API key for the OpenAI chat completions endpoint")
    openai_url: str = "https://api.openai.com/v1/chat/completions"
    openai_orchestrator_model: str = "gpt-4o"
    openai_agent_model: str = "gpt-4o-mini"
    request_timeout_seconds: float = Field(default=60.0, gt=0)


class DiscoverySettings(BaseModel):
    server_url: str | None = Field(default=None, description="Base URL of the node-discovery JSON-RPC server")
    auth_token: str = ""
    timeout_seconds: float = Field(default=15.0, gt=0)
    protocol_version: str = "2024-11-05"
    client_name: str = "automation-generator"
    client_version: str = "1.0.0"
    max_essential_fields: int = Field(default=20, ge=10, le=20)


class BudgetSettings(BaseModel):
    daily_cost_budget: float = 10.0
    single_call_limit: float = 1.0
    ledger_size: int = Field(default=100, ge=1)


class GenerationSettings(BaseModel):
    strategy: Literal["ai", "blueprint"] = "ai"
    webhook_auth_placeholder: bool = False
    webhook_path_prefix: str = "automation"
    orchestrator_max_tokens: int = 2048
    orchestrator_temperature: float = 0.1
    generation_temperature: float = 0.1
    candidate_node_limit: int = 6
    description_excerpt_chars: int = 200


class ObservabilitySettings(BaseModel):
    otel_service_name: str = "automation-generator"
    otel_exporter_otlp_endpoint: str | None = None
    log_level: str = "INFO"


class StorageSettings(BaseModel):
    database_url: str = Field(
        default="sqlite+aiosqlite:///./automation.db",
        description="SQLAlchemy async database URL (Postgres in production)",
    )


class AutomationSettings(BaseSettings):
    providers: ProviderSettings = ProviderSettings()
    discovery: DiscoverySettings = DiscoverySettings()
    budget: BudgetSettings = BudgetSettings()
    generation: GenerationSettings = GenerationSettings()
    observability: ObservabilitySettings = ObservabilitySettings()
    storage: StorageSettings = StorageSettings()
    environment: Literal["dev", "qa", "prod"] | str = "dev"

    model_config = SettingsConfigDict(env_nested_delimiter="__", env_prefix="AUTOMATION_", case_sensitive=False)


@lru_cache(maxsize=1)
def get_settings(**kwargs: Any) -> AutomationSettings:
    """Return cached settings instance."""
    return AutomationSettings(**kwargs)


__all__ = [
    "AutomationSettings",
    "BudgetSettings",
    "DiscoverySettings",
    "GenerationSettings",
    "ObservabilitySettings",
    "ProviderSettings",
    "StorageSettings",
    "get_settings",
]
