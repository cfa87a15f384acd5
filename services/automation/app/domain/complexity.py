"""Workflow complexity scoring and token budgets."""
from __future__ import annotations

import re

from .types import AutomationJob, ComplexityAnalysis, ComplexityTier, ContextBudget, OrchestrationPlan

REGULATED_INDUSTRIES = ("finance", "insurance", "healthcare")
HIGH_VOLUME_MARKERS = ("100+", "200+", "high")
CONDITIONAL_STEP_TYPES = {"condition", "conditional", "switch", "if"}

CONTEXT_BUDGETS: dict[ComplexityTier, dict[str, ContextBudget]] = {
    ComplexityTier.simple: {
        "orchestrator": ContextBudget(input_tokens=8000, output_tokens=3000),
        "agent": ContextBudget(input_tokens=6000, output_tokens=2000),
    },
    ComplexityTier.medium: {
        "orchestrator": ContextBudget(input_tokens=12000, output_tokens=4000),
        "agent": ContextBudget(input_tokens=8000, output_tokens=2500),
    },
    ComplexityTier.high: {
        "orchestrator": ContextBudget(input_tokens=15000, output_tokens=5000),
        "agent": ContextBudget(input_tokens=10000, output_tokens=3000),
    },
}

DOCUMENTATION_PARAMS: dict[ComplexityTier, dict[str, int]] = {
    ComplexityTier.simple: {"node_count": 4, "chars_per_doc": 600},
    ComplexityTier.medium: {"node_count": 6, "chars_per_doc": 900},
    ComplexityTier.high: {"node_count": 8, "chars_per_doc": 1200},
}


class WorkflowComplexityDetector:
    @staticmethod
    def analyze_complexity(plan: OrchestrationPlan | None, job: AutomationJob) -> ComplexityAnalysis:
        score = 0
        reasoning: list[str] = []
        steps = plan.steps if plan else []
        integrations = plan.integrations if plan else []

        if len(steps) >= 5:
            score += 3
            reasoning.append(f"High step count: {len(steps)} steps")
        elif len(steps) >= 3:
            score += 1
            reasoning.append(f"Medium step count: {len(steps)} steps")

        if len(integrations) >= 2:
            score += 2
            reasoning.append(f"Multi-platform integration: {', '.join(integrations)}")

        description = job.description.lower()
        has_ai = (
            re.search(r"\bai\b", description) is not None
            or "analysis" in description
            or "classification" in description
            or any(
                "ai_" in op.automation_solution or "intelligent" in op.automation_solution.lower()
                for op in job.automation_opportunities
            )
        )
        if has_ai:
            score += 2
            reasoning.append("AI processing required")

        if "email" in description:
            score += 1
            reasoning.append("Email handling required")

        context = job.process_data.business_context
        industry = (context.industry or "").lower()
        if any(name in industry for name in REGULATED_INDUSTRIES):
            score += 1
            reasoning.append(f"High-compliance industry: {context.industry}")

        volume = context.volume or (plan.volume_expected if plan else None) or ""
        if any(marker in volume.lower() for marker in HIGH_VOLUME_MARKERS):
            score += 1
            reasoning.append(f"High volume requirements: {volume}")

        if any(step.type in CONDITIONAL_STEP_TYPES for step in steps):
            score += 1
            reasoning.append("Conditional logic required")

        if len(integrations) > 2 or "parallel" in description or "simultaneous" in description:
            score += 2
            reasoning.append("Parallel processing required")

        if len(job.automation_opportunities) > 3:
            score += 1
            reasoning.append(f"Many automation opportunities: {len(job.automation_opportunities)}")

        tier = ComplexityTier.from_score(score)
        return ComplexityAnalysis(
            complexity=tier,
            score=score,
            reasoning=reasoning,
            recommendation="advanced-model" if tier is ComplexityTier.high else "default-model",
            cost_impact={"simple": "low", "medium": "moderate", "high": "high"}[tier.value],
        )

    @staticmethod
    def get_context_budget(complexity: ComplexityTier | str, tier: str) -> ContextBudget:
        budgets = CONTEXT_BUDGETS.get(ComplexityTier(complexity), CONTEXT_BUDGETS[ComplexityTier.simple])
        return budgets.get(tier, budgets["agent"])

    @staticmethod
    def get_documentation_params(complexity: ComplexityTier | str) -> dict[str, int]:
        return dict(DOCUMENTATION_PARAMS[ComplexityTier(complexity)])


__all__ = ["CONTEXT_BUDGETS", "WorkflowComplexityDetector"]
