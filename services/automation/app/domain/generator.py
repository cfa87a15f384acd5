"""Workflow generation strategies and shared finalisation."""
from __future__ import annotations

import json
import zlib
from datetime import datetime, timezone
from typing import Any, Protocol, Sequence

import structlog

from ..config import GenerationSettings, get_settings
from . import blueprints
from .complexity import WorkflowComplexityDetector
from .context_optimizer import ContextOptimizer
from .discovery import NodeDiscoveryClient
from .errors import DiscoveryConnectionError, DiscoveryToolError, WorkflowValidationError
from .knowledge import KnowledgeIndex, NodeDoc, render_doc_excerpts
from .model_router import ModelRouter
from .node_types import (
    is_webhook_node,
    map_step_type,
    map_trigger_type,
    new_node_id,
    unique_name,
)
from .prompt_builder import build_intelligent_prompt, get_organization_settings
from .repair import auto_repair_workflow
from .response_parser import parse_workflow_response
from .types import AutomationJob, ContextConfig, OrchestrationPlan, WorkflowGraph
from .validator import node_name, validate_workflow

logger = structlog.get_logger(__name__)

GENERATED_BY = "automation-generator"
GENERATOR_VERSION = "1.1.0"
WORKFLOW_TAGS = ["automated", "automation-generator"]
REGULATED_INDUSTRIES = ("finance", "insurance")
WEBHOOK_AUTH_HEADER = "X-Automation-Token"
WEBHOOK_AUTH_PLACEHOLDER = "{{N8N_WEBHOOK_TOKEN}}"


class WorkflowGenerator(Protocol):
    async def generate(self, plan: OrchestrationPlan, job: AutomationJob) -> WorkflowGraph: ...


def compute_plan_hash(plan: OrchestrationPlan) -> str:
    return f"h{zlib.crc32(plan.to_json().encode('utf-8'))}"


def build_business_context(plan: OrchestrationPlan, job: AutomationJob) -> dict[str, Any]:
    process = job.process_data
    context = process.business_context
    industry = context.industry or "Business Process Automation"
    if process.security_requirements:
        security = list(process.security_requirements)
    elif any(name in industry.lower() for name in REGULATED_INDUSTRIES):
        security = ["Data encryption", "Access logging", "Compliance tracking"]
    else:
        security = ["Standard security"]
    goals = [op.automation_solution for op in job.automation_opportunities if op.automation_solution]
    return {
        "industry": industry,
        "department": context.department or "Operations",
        "expectedVolume": context.volume or plan.volume_expected or "Medium volume - 50-200 operations per day",
        "complexity": context.complexity or plan.complexity or "Medium - requires API integrations and data processing",
        "slaRequirements": process.sla_requirements or "< 30 minutes processing time",
        "securityRequirements": security,
        "integrations": plan.integrations or ["REST APIs", "Email systems", "Database"],
        "automationGoals": goals or ["Efficiency improvement", "Error reduction", "Process standardization"],
        "processDescription": process.description or plan.description or "Business process automation",
    }


def expand_node_types(plan: OrchestrationPlan, business_context: dict[str, Any]) -> list[str]:
    node_types = [step.type for step in plan.steps] + [trigger.type for trigger in plan.triggers]
    description = str(business_context.get("processDescription", "")).lower()
    if any(word in description for word in ("email", "text", "analysis")):
        node_types += ["openai", "function", "switch", "merge"]
    complexity = str(business_context.get("complexity", "")).lower()
    integrations = [str(item).lower() for item in business_context.get("integrations", [])]
    if "data" in complexity or any("database" in item for item in integrations):
        node_types += ["json", "xml", "csv", "set", "filter", "aggregate"]
    industry = str(business_context.get("industry", "")).lower()
    if any(name in industry for name in REGULATED_INDUSTRIES):
        node_types += ["webhook", "httpRequest", "emailSend", "schedule", "if"]
    node_types += ["errorTrigger", "stopAndError", "noOp", "respondToWebhook"]
    return list(dict.fromkeys(t for t in node_types if t))


def synthesize_nodes(plan: OrchestrationPlan) -> list[dict[str, Any]]:
    nodes: list[dict[str, Any]] = []
    taken: set[str] = set()
    y = 250
    trigger = plan.triggers[0]
    name = unique_name(trigger.name or "Trigger", taken)
    taken.add(name)
    nodes.append(
        {
            "id": new_node_id("trigger"),
            "name": name,
            "type": map_trigger_type(trigger.type),
            "typeVersion": 1,
            "position": [250, y],
            "parameters": dict(trigger.configuration),
        }
    )
    for index, step in enumerate(plan.steps, start=1):
        y += 150
        name = unique_name(step.name or f"Step {index}", taken)
        taken.add(name)
        nodes.append(
            {
                "id": step.id or new_node_id("step"),
                "name": name,
                "type": map_step_type(step.type),
                "typeVersion": 1,
                "position": [250, y],
                "parameters": dict(step.configuration),
            }
        )
    return nodes


class WorkflowFinalizer:
    """Defaults, metadata and the validate/repair/validate cycle shared by all strategies."""

    def __init__(self, settings: GenerationSettings | None = None) -> None:
        self._settings = settings or get_settings().generation

    def apply_webhook_defaults(self, graph: WorkflowGraph, job: AutomationJob) -> None:
        webhooks = [n for n in graph.get("nodes", []) if isinstance(n, dict) and is_webhook_node(n.get("type"))]
        for index, node in enumerate(webhooks):
            if not isinstance(node.get("parameters"), dict):
                node["parameters"] = {}
            parameters = node["parameters"]
            suffix = "" if index == 0 else f"-{index + 1}"
            parameters.setdefault("path", f"{self._settings.webhook_path_prefix}/{job.id}{suffix}")
            parameters.setdefault("httpMethod", "POST")
            parameters.setdefault("responseMode", "onReceived")
            parameters.setdefault("responseCode", 200)
            if self._settings.webhook_auth_placeholder:
                parameters["authentication"] = "headerAuth"
                parameters.setdefault("headerName", WEBHOOK_AUTH_HEADER)
                parameters.setdefault("headerValue", WEBHOOK_AUTH_PLACEHOLDER)
            elif not parameters.get("authentication"):
                parameters["authentication"] = "none"
            if parameters["authentication"] == "none":
                logger.warning("generator.webhook_unauthenticated", node=node.get("name"), job_id=job.id)

    def finalize(self, graph: WorkflowGraph, plan: OrchestrationPlan, job: AutomationJob) -> WorkflowGraph:
        if not graph.get("name"):
            graph["name"] = plan.workflow_name or "Generated Automation Workflow"
        if not graph.get("description"):
            graph["description"] = plan.description or "Automation workflow"
        if not isinstance(graph.get("nodes"), list) or not graph["nodes"]:
            graph["nodes"] = synthesize_nodes(plan)
            logger.info("generator.nodes_synthesized", job_id=job.id, nodes=len(graph["nodes"]))
        if not isinstance(graph.get("connections"), dict):
            named = [n for n in graph["nodes"] if node_name(n)]
            graph["connections"] = blueprints.connect_linear(named)
        graph.setdefault("active", False)
        settings = graph.get("settings") if isinstance(graph.get("settings"), dict) else {}
        graph["settings"] = {**get_organization_settings(job.organization_context.organization_plan), **settings}

        self.apply_webhook_defaults(graph, job)

        meta = graph.get("meta") if isinstance(graph.get("meta"), dict) else {}
        graph["meta"] = {
            **meta,
            "generatedAt": datetime.now(timezone.utc).isoformat(),
            "generatedBy": GENERATED_BY,
            "version": GENERATOR_VERSION,
            "planHash": compute_plan_hash(plan),
        }
        graph["tags"] = list(WORKFLOW_TAGS)

        validation = validate_workflow(graph)
        if not validation.valid:
            logger.info("generator.repairing", job_id=job.id, errors=validation.errors)
            auto_repair_workflow(graph)
            validation = validate_workflow(graph)
            if not validation.valid:
                logger.warning("generator.validation_failed", job_id=job.id, errors=validation.errors)
                raise WorkflowValidationError(validation.errors)
        return graph


class AIWorkflowGenerator:
    """Prompts the model for a workflow graph.

    When a connected node catalog is supplied, documentation comes from its
    essential-property lookups and the finished graph gets an advisory remote
    check recorded under ``meta.catalogValidation``. The local index covers
    every catalog failure.
    """

    def __init__(
        self,
        router: ModelRouter,
        finalizer: WorkflowFinalizer | None = None,
        optimizer: ContextOptimizer | None = None,
        knowledge: KnowledgeIndex | None = None,
        detector: WorkflowComplexityDetector | None = None,
        settings: GenerationSettings | None = None,
        discovery: NodeDiscoveryClient | None = None,
    ) -> None:
        self._settings = settings or get_settings().generation
        self._router = router
        self._finalizer = finalizer or WorkflowFinalizer(self._settings)
        self._detector = detector or WorkflowComplexityDetector()
        self._optimizer = optimizer or ContextOptimizer(self._detector)
        self._knowledge = knowledge or KnowledgeIndex()
        self._discovery = discovery

    def _catalog_available(self) -> bool:
        return self._discovery is not None and self._discovery.connected

    async def catalog_docs(self, node_types: Sequence[str]) -> list[NodeDoc] | None:
        if not self._catalog_available():
            return None
        docs: list[NodeDoc] = []
        try:
            for node_type in dict.fromkeys(node_types):
                essentials = await self._discovery.get_node_essentials(node_type)
                if essentials:
                    docs.append(NodeDoc(f"n8n {node_type}", json.dumps(essentials, sort_keys=True)))
        except (DiscoveryToolError, DiscoveryConnectionError) as exc:
            logger.info("generator.catalog_docs_failed", error=str(exc))
            return None
        return docs or None

    async def catalog_validation(self, graph: WorkflowGraph) -> dict[str, Any] | None:
        if not self._catalog_available():
            return None
        try:
            result = await self._discovery.validate_workflow(graph)
        except (DiscoveryToolError, DiscoveryConnectionError) as exc:
            logger.info("generator.catalog_validation_failed", error=str(exc))
            return {"checked": False, "reason": str(exc)}
        if not isinstance(result, dict) or "valid" not in result:
            return {"checked": False, "reason": "malformed catalog response"}
        errors = result.get("errors") if isinstance(result.get("errors"), list) else []
        return {"checked": True, "valid": result["valid"] is True, "errors": [str(error) for error in errors]}

    async def build_prompt(self, plan: OrchestrationPlan, job: AutomationJob) -> tuple[str, ContextConfig]:
        business_context = build_business_context(plan, job)
        node_types = expand_node_types(plan, business_context)
        config = self._optimizer.get_optimized_context(plan, job)
        documented = (config.focus_node_types + node_types)[: config.node_count]
        docs = await self.catalog_docs(documented)
        source = "catalog"
        if docs is None:
            source = "local"
            docs = self._knowledge.get_relevant_docs(
                f"{plan.description or config.priority} for {business_context['industry']}",
                node_types=documented,
                params_hint={"retryOnFail": True, "maxRetries": 3, "authentication": True, "errorHandling": True},
                top_k=config.node_count,
            )
        base = build_intelligent_prompt(plan, business_context, job.organization_context)
        prompt = self._optimizer.build_optimized_prompt(base, config, business_context)
        prompt += render_doc_excerpts(docs, config.chars_per_doc)
        logger.info(
            "generator.context",
            job_id=job.id,
            workflow_type=config.workflow_type,
            complexity=config.complexity.value,
            documented_nodes=len(docs),
            chars_per_doc=config.chars_per_doc,
            doc_source=source,
        )
        return prompt, config

    async def generate(self, plan: OrchestrationPlan, job: AutomationJob) -> WorkflowGraph:
        prompt, config = await self.build_prompt(plan, job)
        budget = self._detector.get_context_budget(config.complexity, "orchestrator")
        text = await self._router.call(
            prompt,
            tier="orchestrator",
            complexity=config.complexity,
            organization_context=job.organization_context,
            job_id=job.id,
            max_tokens=budget.output_tokens,
            temperature=self._settings.generation_temperature,
            workflow_type=config.workflow_type,
        )
        graph = self._finalizer.finalize(parse_workflow_response(text), plan, job)
        remote = await self.catalog_validation(graph)
        if remote is not None:
            graph["meta"]["catalogValidation"] = remote
            if remote.get("checked") and not remote["valid"]:
                logger.warning("generator.catalog_validation_rejected", job_id=job.id, errors=remote["errors"])
        return graph


class BlueprintWorkflowGenerator:
    """Maps plan steps onto blueprint factories; makes no provider calls."""

    def __init__(self, finalizer: WorkflowFinalizer | None = None, settings: GenerationSettings | None = None) -> None:
        self._settings = settings or get_settings().generation
        self._finalizer = finalizer or WorkflowFinalizer(self._settings)

    def _trigger_block(self, plan: OrchestrationPlan, job: AutomationJob) -> blueprints.Blueprint:
        trigger = plan.triggers[0]
        if trigger.type == "webhook":
            block = blueprints.webhook_trigger(path=f"{self._settings.webhook_path_prefix}/{job.id}")
        else:
            block = blueprints.Blueprint(
                nodes=[
                    {
                        "id": new_node_id("trigger"),
                        "name": "Trigger",
                        "type": map_trigger_type(trigger.type),
                        "typeVersion": 1,
                        "position": [250, 300],
                        "parameters": dict(trigger.configuration),
                    }
                ]
            )
        if trigger.name:
            block.nodes[0]["name"] = trigger.name
        return block

    @staticmethod
    def _step_block(step: Any) -> blueprints.Blueprint:
        local_type = map_step_type(step.type).rsplit(".", 1)[-1]
        if local_type == "httpRequest":
            url = step.configuration.get("url", "{{API_URL}}")
            block = blueprints.http_request(url=url, method=step.configuration.get("method", "POST"))
        elif local_type in {"emailSend", "gmail"}:
            block = blueprints.email_send(
                to=step.configuration.get("to", "{{recipient}}"),
                subject=step.configuration.get("subject", step.name or "Notification"),
                text=step.configuration.get("text") or step.configuration.get("body") or "See details.",
            )
        elif local_type == "googleSheets":
            block = blueprints.sheet_append()
        elif local_type in {"airtable", "postgres"}:
            block = blueprints.record_upsert()
        else:
            block = blueprints.field_set((("step", step.id), ("description", step.description or step.id)))
        if step.name:
            block.nodes[0]["name"] = step.name
        return block

    def assemble(self, plan: OrchestrationPlan, job: AutomationJob) -> blueprints.AssembledWorkflow:
        blocks = [self._trigger_block(plan, job)] + [self._step_block(step) for step in plan.steps]
        return blueprints.assemble_workflow(plan.workflow_name, blocks)

    async def generate(self, plan: OrchestrationPlan, job: AutomationJob) -> WorkflowGraph:
        assembled = self.assemble(plan, job)
        graph = assembled.workflow
        graph["description"] = plan.description
        graph["meta"] = {"requiredEnv": assembled.env}
        logger.info("generator.blueprint_assembled", job_id=job.id, nodes=len(graph["nodes"]))
        return self._finalizer.finalize(graph, plan, job)


def create_generator(
    router: ModelRouter,
    settings: GenerationSettings | None = None,
    discovery: NodeDiscoveryClient | None = None,
) -> WorkflowGenerator:
    settings = settings or get_settings().generation
    if settings.strategy == "blueprint":
        return BlueprintWorkflowGenerator(settings=settings)
    return AIWorkflowGenerator(router, settings=settings, discovery=discovery)


__all__ = [
    "AIWorkflowGenerator",
    "BlueprintWorkflowGenerator",
    "WorkflowFinalizer",
    "WorkflowGenerator",
    "build_business_context",
    "compute_plan_hash",
    "create_generator",
    "expand_node_types",
    "synthesize_nodes",
]
