"""Error hierarchy for the workflow generation pipeline."""
from __future__ import annotations

from typing import Sequence


class AutomationError(Exception):
    """Base class for pipeline errors."""


class ProviderCallError(AutomationError):
    """A single provider attempt failed (transport, auth, rate limit, malformed body)."""

    def __init__(self, provider: str, message: str, status_code: int | None = None) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.status_code = status_code


class ProviderError(AutomationError):
    """Every provider in the fallback chain failed."""

    def __init__(self, message: str, attempts: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.attempts = list(attempts)


class PlanParseError(AutomationError):
    """Orchestration plan text could not be parsed into a usable plan."""


class GenerationParseError(AutomationError):
    """Workflow text could not be parsed after the normalization retry."""


class WorkflowValidationError(AutomationError):
    """Workflow still violates structural/policy/security rules after repair."""

    def __init__(self, errors: Sequence[str]) -> None:
        self.errors = list(errors)
        super().__init__(f"Workflow validation failed: {'; '.join(self.errors)}")


class DiscoveryConnectionError(AutomationError):
    """Node-discovery session could not be established."""


class DiscoveryToolError(AutomationError):
    """Node-discovery tool call returned an error."""

    def __init__(self, tool: str, message: str, code: int | None = None) -> None:
        super().__init__(f"Tool call {tool} failed: {message}")
        self.tool = tool
        self.code = code


__all__ = [
    "AutomationError",
    "DiscoveryConnectionError",
    "DiscoveryToolError",
    "GenerationParseError",
    "PlanParseError",
    "ProviderCallError",
    "ProviderError",
    "WorkflowValidationError",
]
