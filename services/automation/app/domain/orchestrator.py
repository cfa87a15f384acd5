"""Orchestration planning backed by node discovery and the model router."""
from __future__ import annotations

from enum import Enum
from typing import Any

import structlog
from pydantic import ValidationError

from ..config import AutomationSettings, get_settings
from .discovery import NodeDiscoveryClient
from .errors import DiscoveryConnectionError, DiscoveryToolError, PlanParseError
from .model_router import ModelRouter
from .requirements import KeywordRequirementsClassifier, RequirementsClassifier
from .response_parser import ParseErr, parse_json_response
from .types import AutomationJob, BusinessRequirements, NodeCandidate, OrchestrationPlan

logger = structlog.get_logger(__name__)

CORE_NODE_CAPABILITIES: dict[str, list[str]] = {
    "gmail": ["trigger_on_new_email", "send_email", "search_emails", "mark_read"],
    "googleSheets": ["read_sheet", "append_row", "update_cell", "create_sheet"],
    "airtable": ["create_record", "update_record", "search_records", "delete_record"],
    "openai": ["text_completion", "classification", "data_extraction", "response_generation"],
    "function": ["data_transformation", "validation", "calculation", "parsing"],
    "if": ["conditional_routing", "data_filtering", "priority_handling"],
    "slack": ["send_message", "create_channel", "upload_file"],
    "switch": ["multi_path_routing", "categorization", "workflow_branching"],
    "merge": ["data_combination", "workflow_synchronization"],
    "webhook": ["http_trigger", "api_endpoint", "external_integration"],
}

PRIORITY_ORDER = {"high": 3, "medium": 2, "low": 1}
DEFAULT_WORKFLOW_NAME = "Advanced Automation Workflow"


class OrchestratorState(str, Enum):
    uninitialized = "uninitialized"
    initialized = "initialized"
    degraded = "degraded"


def create_fallback_plan(job: AutomationJob) -> OrchestrationPlan:
    """Canonical seven-step plan used whenever the model's plan is unusable."""
    steps: list[dict[str, Any]] = [
        {
            "id": "email_analysis",
            "name": "AI Email Analysis",
            "type": "openai",
            "description": "Analyze email content and extract structured data",
            "configuration": {
                "model": "gpt-4o-mini",
                "prompt": "Analyze this email and extract key information as JSON",
                "temperature": 0.1,
            },
        },
        {
            "id": "data_processing",
            "name": "Data Processing & Validation",
            "type": "function",
            "description": "Process AI response and prepare data for storage",
            "configuration": {
                "functionCode": "const analysis = JSON.parse($json.choices[0].message.content); return [{ json: analysis }];"
            },
        },
        {
            "id": "priority_check",
            "name": "Priority Routing",
            "type": "if",
            "description": "Route high-priority emails for immediate attention",
            "configuration": {
                "conditions": {"leftValue": "={{ $json.priority }}", "operation": "equal", "rightValue": "high"}
            },
        },
        {
            "id": "sheets_update",
            "name": "Update Google Sheets",
            "type": "googleSheets",
            "description": "Log email data to tracking spreadsheet",
            "configuration": {
                "operation": "append",
                "sheetId": "{{ $env.SHEET_ID }}",
                "values": ["{{ $json.timestamp }}", "{{ $json.from }}", "{{ $json.subject }}", "{{ $json.priority }}"],
            },
        },
        {
            "id": "airtable_record",
            "name": "Create Airtable Record",
            "type": "airtable",
            "description": "Create customer record",
            "configuration": {
                "operation": "create",
                "base": "{{ $env.AIRTABLE_BASE }}",
                "table": "Customer_Inquiries",
                "fields": {
                    "Email": "{{ $json.from }}",
                    "Subject": "{{ $json.subject }}",
                    "Priority": "{{ $json.priority }}",
                    "Status": "Processing",
                },
            },
        },
        {
            "id": "ai_response",
            "name": "Generate AI Response",
            "type": "openai",
            "description": "Create personalized response based on analysis",
            "configuration": {
                "model": "gpt-4o-mini",
                "prompt": "Generate a professional email response for: {{ $json.main_issue }}",
                "temperature": 0.3,
            },
        },
        {
            "id": "send_reply",
            "name": "Send Email Reply",
            "type": "gmail",
            "description": "Send automated response to customer",
            "configuration": {
                "operation": "send",
                "to": "{{ $json.from }}",
                "subject": "Re: {{ $json.subject }}",
                "body": "{{ $json.choices[0].message.content }}",
            },
        },
    ]
    connections = [{"from": a["id"], "to": b["id"]} for a, b in zip(steps, steps[1:])]
    return OrchestrationPlan.model_validate(
        {
            "workflowName": "Email-Sheets-Airtable Integration Workflow",
            "description": (
                "Automation combining email processing, Google Sheets tracking and Airtable data management"
            ),
            "complexity": "high",
            "triggers": [
                {
                    "type": "gmail",
                    "name": "New Email Trigger",
                    "configuration": {
                        "folder": "INBOX",
                        "filter": "has:attachment OR subject:(inquiry OR support)",
                        "markAsRead": False,
                    },
                }
            ],
            "steps": steps,
            "connections": connections,
            "integrations": ["gmail", "openai", "googleSheets", "airtable"],
            "errorHandling": {
                "strategy": "retry-with-notification",
                "notifications": ["slack"],
                "fallbackActions": ["Forward to support team", "Log in error sheet"],
            },
            "expectedOutcomes": {
                "timeReduction": "From 30+ minutes to 2-5 minutes per email",
                "accuracyImprovement": "95%+ consistent data vs 70-80% manual",
                "scalabilityBenefit": "Handle 10x volume without additional staff",
            },
            "meta": {"generatedBy": "orchestrator-fallback", "jobId": job.id, "fallbackUsed": True},
        }
    )


def parse_orchestration_plan(text: str, job: AutomationJob) -> OrchestrationPlan:
    result = parse_json_response(text)
    if isinstance(result, ParseErr):
        raise PlanParseError(f"Orchestration plan is not valid JSON: {result.message}")
    data = dict(result.value)
    if not data.get("workflowName"):
        data["workflowName"] = DEFAULT_WORKFLOW_NAME
    for key in ("steps", "triggers"):
        if not isinstance(data.get(key), list) or not data[key]:
            raise PlanParseError(f"Invalid orchestration plan: missing or empty {key} array")
    meta = data.get("meta") if isinstance(data.get("meta"), dict) else {}
    data["meta"] = {**meta, "generatedBy": "orchestrator", "jobId": job.id}
    try:
        return OrchestrationPlan.model_validate(data)
    except ValidationError as exc:
        raise PlanParseError(f"Invalid orchestration plan: {exc.error_count()} schema errors") from exc


class EnhancedOrchestrator:
    def __init__(
        self,
        router: ModelRouter,
        discovery: NodeDiscoveryClient,
        classifier: RequirementsClassifier | None = None,
        settings: AutomationSettings | None = None,
    ) -> None:
        self._router = router
        self._discovery = discovery
        self._classifier = classifier or KeywordRequirementsClassifier()
        self._settings = settings or get_settings()
        self.state = OrchestratorState.uninitialized
        self.node_capabilities: dict[str, list[str]] = {}

    async def initialize(self) -> bool:
        self.node_capabilities = {name: list(caps) for name, caps in CORE_NODE_CAPABILITIES.items()}
        try:
            await self._discovery.connect()
        except DiscoveryConnectionError as exc:
            self.state = OrchestratorState.degraded
            logger.warning("orchestrator.degraded", error=str(exc))
            return False
        self.state = OrchestratorState.initialized
        logger.info("orchestrator.initialized", node_types=len(self.node_capabilities))
        return True

    def analyze_business_requirements(self, job: AutomationJob) -> BusinessRequirements:
        return self._classifier.classify(job)

    def discover_relevant_nodes(self, requirements: BusinessRequirements) -> list[NodeCandidate]:
        candidates: list[NodeCandidate] = []
        if requirements.has_email_processing:
            candidates += [
                NodeCandidate("gmail", "high", "Email processing required"),
                NodeCandidate("openai", "high", "AI email analysis"),
                NodeCandidate("function", "medium", "Email data parsing"),
            ]
        if requirements.has_sheets_integration:
            candidates.append(NodeCandidate("googleSheets", "high", "Google Sheets integration"))
        if requirements.has_record_store_integration:
            candidates.append(NodeCandidate("airtable", "high", "Airtable database integration"))
        if requirements.has_conditional_logic:
            candidates += [
                NodeCandidate("if", "high", "Conditional logic required"),
                NodeCandidate("switch", "medium", "Multi-path routing"),
            ]
        if requirements.needs_ai_processing:
            candidates.append(NodeCandidate("openai", "high", "AI processing capabilities"))
        if requirements.needs_notifications:
            candidates += [
                NodeCandidate("slack", "medium", "Team notifications"),
                NodeCandidate("gmail", "medium", "Email notifications"),
            ]
        candidates += [
            NodeCandidate("function", "medium", "Data transformation"),
            NodeCandidate("merge", "low", "Workflow synchronization"),
            NodeCandidate("webhook", "low", "External triggers"),
        ]

        unique: dict[str, NodeCandidate] = {}
        for candidate in candidates:
            unique.setdefault(candidate.type, candidate)
        # stable sort: equal priorities keep discovery order
        return sorted(unique.values(), key=lambda c: PRIORITY_ORDER[c.priority], reverse=True)

    async def _remote_capabilities(self, job: AutomationJob) -> list[str]:
        if self.state is not OrchestratorState.initialized:
            return []
        try:
            result = await self._discovery.search_nodes(job.description[:100] or "automation", limit=5)
        except (DiscoveryToolError, DiscoveryConnectionError) as exc:
            logger.info("orchestrator.remote_search_failed", error=str(exc))
            return []
        nodes = result.get("nodes", []) if isinstance(result, dict) else result
        names: list[str] = []
        for node in nodes if isinstance(nodes, list) else []:
            if isinstance(node, dict):
                name = node.get("nodeType") or node.get("displayName") or node.get("name")
                if name:
                    names.append(str(name))
            elif isinstance(node, str):
                names.append(node)
        return names

    def build_orchestration_prompt(
        self,
        job: AutomationJob,
        requirements: BusinessRequirements,
        candidates: list[NodeCandidate],
        remote_nodes: list[str] | None = None,
    ) -> str:
        generation = self._settings.generation
        top_nodes = ", ".join(c.type for c in candidates[: generation.candidate_node_limit])
        description = job.description[: generation.description_excerpt_chars] or "Business automation"
        goals = ", ".join(op.automation_solution for op in job.automation_opportunities[:3])
        lines = [
            f"Create an n8n workflow plan for: {description}",
            "",
            f"REQUIREMENTS: {requirements.summary() or 'General'} integration.",
            "",
            f"AVAILABLE NODES: {top_nodes}",
        ]
        if remote_nodes:
            lines += ["", f"CATALOG MATCHES: {', '.join(remote_nodes)}"]
        lines += [
            "",
            f"AUTOMATION GOALS: {goals}",
            "",
            "Return JSON:",
            "{",
            '  "workflowName": "string",',
            '  "description": "string",',
            '  "triggers": [{"type": "gmail|webhook|schedule|email|form", "name": "string", "configuration": {}}],',
            '  "steps": [{"id": "string", "name": "string", "type": "openai|gmail|googleSheets|airtable|function|http|if",'
            ' "description": "string", "configuration": {}}],',
            '  "connections": [{"from": "string", "to": "string"}],',
            '  "expectedOutcomes": {"timeReduction": "string", "accuracyImprovement": "string"}',
            "}",
            "",
            "Create 4-6 steps.",
        ]
        return "\n".join(lines)

    async def create_sophisticated_orchestration_plan(self, job: AutomationJob) -> OrchestrationPlan:
        requirements = self.analyze_business_requirements(job)
        candidates = self.discover_relevant_nodes(requirements)
        remote_nodes = await self._remote_capabilities(job)
        prompt = self.build_orchestration_prompt(job, requirements, candidates, remote_nodes)
        logger.info(
            "orchestrator.planning",
            job_id=job.id,
            complexity=requirements.complexity.value,
            candidates=[c.type for c in candidates],
        )
        generation = self._settings.generation
        text = await self._router.call(
            prompt,
            tier="orchestrator",
            complexity=requirements.complexity,
            organization_context=job.organization_context,
            job_id=job.id,
            max_tokens=generation.orchestrator_max_tokens,
            temperature=generation.orchestrator_temperature,
        )
        try:
            plan = parse_orchestration_plan(text, job)
        except PlanParseError as exc:
            logger.warning("orchestrator.fallback_plan", job_id=job.id, error=str(exc))
            return create_fallback_plan(job)
        logger.info("orchestrator.plan_created", job_id=job.id, steps=len(plan.steps), triggers=len(plan.triggers))
        return plan

    def create_fallback_plan(self, job: AutomationJob) -> OrchestrationPlan:
        return create_fallback_plan(job)

    async def cleanup(self) -> None:
        try:
            await self._discovery.disconnect()
        except Exception as exc:  # noqa: BLE001
            logger.warning("orchestrator.cleanup_failed", error=str(exc))


__all__ = [
    "CORE_NODE_CAPABILITIES",
    "EnhancedOrchestrator",
    "OrchestratorState",
    "create_fallback_plan",
    "parse_orchestration_plan",
]
