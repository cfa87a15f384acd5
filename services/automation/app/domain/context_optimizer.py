"""Prompt-context sizing by workflow type and complexity."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from .complexity import WorkflowComplexityDetector
from .cost_monitor import MODEL_RATES, rate_key_for
from .types import AutomationJob, ComplexityTier, ContextConfig, OrchestrationPlan

MAX_DOCUMENTED_NODES = 10


@dataclass(frozen=True)
class WorkflowTypeProfile:
    focus_node_types: tuple[str, ...]
    focus_areas: tuple[str, ...]
    base_node_count: int
    base_chars_per_doc: int
    priority: str


PROFILES: dict[str, WorkflowTypeProfile] = {
    "email-automation": WorkflowTypeProfile(
        ("gmail", "gmailTrigger", "function", "openai", "switch", "merge"),
        ("email handling", "AI responses", "conditional logic"),
        6,
        1000,
        "email processing and AI integration",
    ),
    "data-sync": WorkflowTypeProfile(
        ("googleSheets", "airtable", "webhook", "function", "merge", "json"),
        ("data transformation", "parallel processing", "error handling"),
        6,
        800,
        "data reliability and sync accuracy",
    ),
    "ai-classification": WorkflowTypeProfile(
        ("openai", "function", "switch", "webhook", "httpRequest", "merge"),
        ("AI processing", "conditional routing", "decision logic"),
        8,
        1200,
        "intelligent decision making and routing",
    ),
    "document-processing": WorkflowTypeProfile(
        ("httpRequest", "function", "openai", "googleSheets", "switch"),
        ("file handling", "content extraction", "document analysis"),
        6,
        900,
        "document parsing and processing",
    ),
    "api-integration": WorkflowTypeProfile(
        ("webhook", "httpRequest", "function", "json", "switch", "merge"),
        ("API authentication", "error handling", "data transformation"),
        5,
        700,
        "reliable API connectivity and error handling",
    ),
    "general-automation": WorkflowTypeProfile(
        ("webhook", "function", "httpRequest", "switch", "merge"),
        ("workflow orchestration", "error handling", "general integration"),
        4,
        600,
        "flexible automation patterns",
    ),
}
DEFAULT_WORKFLOW_TYPE = "general-automation"

SCALING: dict[ComplexityTier, tuple[float, float]] = {
    ComplexityTier.simple: (1.0, 0.8),
    ComplexityTier.medium: (1.2, 1.0),
    ComplexityTier.high: (1.5, 1.3),
}

ESTIMATED_OUTPUT_TOKENS = {ComplexityTier.simple: 3000, ComplexityTier.medium: 4000, ComplexityTier.high: 5000}


def detect_workflow_type(plan: OrchestrationPlan | None, job: AutomationJob) -> str:
    description = job.description.lower()
    integrations = set(plan.integrations) if plan else set()
    solutions = [op.automation_solution for op in job.automation_opportunities]

    if "email" in description or "gmail" in integrations or any("email" in s for s in solutions):
        return "email-automation"
    if (
        any(word in description for word in ("sync", "sheets", "airtable"))
        or integrations & {"googleSheets", "airtable"}
    ):
        return "data-sync"
    if any(word in description for word in ("classif", "categoriz", "analysis")) or any("ai_" in s for s in solutions):
        return "ai-classification"
    if any(word in description for word in ("document", "pdf", "file")):
        return "document-processing"
    if any(word in description for word in ("api", "webhook")) or integrations & {"httpRequest", "webhook"}:
        return "api-integration"
    return DEFAULT_WORKFLOW_TYPE


def scale_profile(profile: WorkflowTypeProfile, complexity: ComplexityTier) -> tuple[int, int]:
    node_factor, chars_factor = SCALING[complexity]
    node_count = min(MAX_DOCUMENTED_NODES, round(profile.base_node_count * node_factor))
    return node_count, round(profile.base_chars_per_doc * chars_factor)


class ContextOptimizer:
    def __init__(self, detector: WorkflowComplexityDetector | None = None) -> None:
        self._detector = detector or WorkflowComplexityDetector()

    def get_optimized_context(self, plan: OrchestrationPlan | None, job: AutomationJob) -> ContextConfig:
        workflow_type = detect_workflow_type(plan, job)
        profile = PROFILES[workflow_type]
        complexity = self._detector.analyze_complexity(plan, job).complexity
        node_count, chars_per_doc = scale_profile(profile, complexity)
        return ContextConfig(
            workflow_type=workflow_type,
            complexity=complexity,
            node_count=node_count,
            chars_per_doc=chars_per_doc,
            focus_node_types=list(profile.focus_node_types),
            focus_areas=list(profile.focus_areas),
            priority=profile.priority,
            reasoning=f"Detected {workflow_type} workflow ({complexity.value} complexity)",
        )

    @staticmethod
    def build_optimized_prompt(base_prompt: str, config: ContextConfig, business_context: Mapping[str, Any]) -> str:
        focus = [
            "",
            "## WORKFLOW FOCUS AREAS",
            f"**Primary Focus**: {config.priority}",
            f"**Key Areas**: {', '.join(config.focus_areas)}",
            f"**Target Nodes**: {', '.join(config.focus_node_types)}",
            "",
            f"**Business Context**: {business_context.get('industry') or 'General'} | "
            f"{business_context.get('department') or 'Operations'}",
            f"**Complexity**: {config.complexity.value} workflow requiring {config.focus_areas[0]}",
        ]
        return base_prompt + "\n".join(focus)

    @staticmethod
    def estimate_cost(config: ContextConfig, model: str = "claude-3-5-sonnet") -> dict[str, Any]:
        key = rate_key_for(model)
        rates = MODEL_RATES[key]
        input_tokens = int(config.node_count * config.chars_per_doc * 0.25) + 2000
        output_tokens = ESTIMATED_OUTPUT_TOKENS[config.complexity]
        input_cost = input_tokens / 1_000_000 * rates["input"]
        output_cost = output_tokens / 1_000_000 * rates["output"]
        return {
            "model": key,
            "estimatedInputTokens": input_tokens,
            "estimatedOutputTokens": output_tokens,
            "inputCost": round(input_cost, 5),
            "outputCost": round(output_cost, 5),
            "totalCost": round(input_cost + output_cost, 5),
        }


__all__ = ["ContextOptimizer", "PROFILES", "detect_workflow_type", "scale_profile"]
