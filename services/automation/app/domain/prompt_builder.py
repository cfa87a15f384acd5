"""Tenant-aware prompt assembly for workflow generation."""
from __future__ import annotations

import json
from typing import Any, Mapping

from .types import OrchestrationPlan, OrganizationContext

ORGANIZATION_SETTINGS: dict[str, dict[str, Any]] = {
    "free": {"executionTimeout": 300, "saveExecutionProgress": False, "saveManualExecutions": False},
    "starter": {"executionTimeout": 600, "saveExecutionProgress": True, "saveManualExecutions": False},
    "professional": {"executionTimeout": 1800, "saveExecutionProgress": True, "saveManualExecutions": True},
    "enterprise": {"executionTimeout": 3600, "saveExecutionProgress": True, "saveManualExecutions": True},
}

PERFORMANCE_GUIDELINES: dict[str, list[str]] = {
    "free": [
        "Keep workflows simple, processing 1-10 items per execution",
        "Avoid parallel branches and long-running loops",
        "Prefer a single external integration per workflow",
    ],
    "starter": [
        "Process moderate batches of 10-50 items",
        "Use basic error handling on every external call",
    ],
    "professional": [
        "Process batches of up to 200 items with splitInBatches",
        "Use parallel branches where steps are independent",
        "Record progress for long executions",
    ],
    "enterprise": [
        "Leverage concurrent, high-performance execution with large batches",
        "Design for queue-mode workers and horizontal scaling",
        "Add audit logging for every external side effect",
    ],
}


def _plan_tier(plan_tier: str | None) -> str:
    return plan_tier if plan_tier in ORGANIZATION_SETTINGS else "free"


def get_organization_settings(plan_tier: str | None) -> dict[str, Any]:
    return {"executionOrder": "v1", **ORGANIZATION_SETTINGS[_plan_tier(plan_tier)]}


def get_performance_guidelines(plan_tier: str | None) -> list[str]:
    return list(PERFORMANCE_GUIDELINES[_plan_tier(plan_tier)])


def _implementation_guidelines(plan: OrchestrationPlan) -> list[str]:
    sections: list[str] = []
    if "email" in plan.description.lower() or any(step.type in {"email", "gmail"} for step in plan.steps):
        sections.append(
            "**Email Automation Guidelines**:\n"
            "- Use an IMAP or Gmail trigger for incoming mail, a webhook for external notifications\n"
            "- Classify content before routing and always send an acknowledgment\n"
            "- emailSend nodes need non-empty to/subject/text and must connect onward or set parameters.terminal=true"
        )
    if any(step.type in {"http", "httpRequest"} for step in plan.steps):
        sections.append(
            "**HTTP Integration Guidelines**:\n"
            "- Set options.retryOnFail=true and options.maxRetries=3 on every httpRequest node\n"
            "- Use 30s timeouts for standard APIs and 120s for slow services\n"
            "- Never leave an httpRequest node terminal; connect it to a node that records the response"
        )
    if any(trigger.type == "webhook" for trigger in plan.triggers):
        sections.append(
            "**Webhook Security Guidelines**:\n"
            "- Configure authentication (headerAuth with a {{placeholder}} credential)\n"
            "- Validate incoming payload structure before processing"
        )
    return sections or ["Follow standard n8n development practices."]


def build_intelligent_prompt(
    plan: OrchestrationPlan,
    business_context: Mapping[str, Any],
    organization_context: OrganizationContext | None = None,
) -> str:
    organization = organization_context or OrganizationContext()
    tier = _plan_tier(organization.organization_plan)
    security = business_context.get("securityRequirements") or ["Standard security"]
    lines = [
        "# n8n Workflow Architect",
        "",
        "You generate production-ready n8n workflows as strict JSON.",
        "",
        "## BUSINESS REQUIREMENTS",
        f"**Process**: {plan.description or business_context.get('processDescription') or 'Business process automation'}",
        f"**Workflow Type**: {plan.workflow_name}",
        f"**Industry**: {business_context.get('industry') or 'General'}",
        f"**Department**: {business_context.get('department') or 'Operations'}",
        f"**Expected Volume**: {business_context.get('expectedVolume') or 'Standard'}",
        f"**Complexity**: {business_context.get('complexity') or 'Standard'}",
        f"**SLA**: {business_context.get('slaRequirements') or 'Standard'}",
        f"**Security**: {', '.join(security)}",
        f"**Automation Goals**: {', '.join(business_context.get('automationGoals') or ['Efficiency improvement'])}",
        "",
        "## ORCHESTRATION PLAN",
        "```json",
        plan.to_json(indent=2),
        "```",
        "",
        f"## ORGANIZATION SETTINGS ({organization.display_name}, {tier} plan, {organization.workspace_type} workspace)",
        "Use exactly these workflow settings:",
        json.dumps(get_organization_settings(tier), indent=2),
        "",
        "## PERFORMANCE GUIDELINES",
        *[f"- {line}" for line in get_performance_guidelines(tier)],
        "",
        "## TECHNICAL REQUIREMENTS",
        "- Top-level keys: name, nodes, connections, active (false), settings",
        "- Every node has a unique id, a unique descriptive name, a type of the form n8n-nodes-base.*, "
        "typeVersion, position [x, y] and a parameters object",
        "- connections are keyed by source node name: {\"Source\": {\"main\": [[{\"node\": \"Target\", "
        "\"type\": \"main\", \"index\": 0}]]}}",
        "- Reference credentials and keys only through {{ $env.VARIABLE_NAME }} placeholders, never literals",
        "",
        "## IMPLEMENTATION GUIDELINES",
        *_implementation_guidelines(plan),
        "",
        "## OUTPUT REQUIREMENTS",
        "Return ONLY the workflow JSON object. No markdown fences, no commentary, no text before or after the JSON.",
    ]
    return "\n".join(lines)


__all__ = [
    "ORGANIZATION_SETTINGS",
    "build_intelligent_prompt",
    "get_organization_settings",
    "get_performance_guidelines",
]
