"""End-to-end job processing: plan, generate, persist."""
from __future__ import annotations

import copy
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import structlog
from opentelemetry import trace

from ..config import AutomationSettings, get_settings
from ..persistence.sinks import PersistenceSink, ProgressSink, UsageSink
from .cost_monitor import CostMonitor
from .discovery import NodeDiscoveryClient
from .errors import WorkflowValidationError
from .generator import WorkflowGenerator, create_generator
from .model_router import ModelRouter
from .orchestrator import EnhancedOrchestrator, OrchestratorState
from .types import AutomationJob, OrchestrationPlan, OrganizationContext, WorkflowGraph

logger = structlog.get_logger(__name__)
tracer = trace.get_tracer(__name__)

PLATFORM = "n8n"


@dataclass
class PipelineResult:
    job_id: str
    automation_id: str
    automation: dict[str, Any]
    plan: OrchestrationPlan


def _failure_stage(exc: Exception, stage: str) -> str:
    if isinstance(exc, WorkflowValidationError):
        return "validation"
    return stage


def generate_instructions(workflow: WorkflowGraph, organization: OrganizationContext | None = None) -> str:
    organization = organization or OrganizationContext()
    lines = [
        f"# {workflow.get('name') or 'n8n Workflow'}",
        f"Generated for: **{organization.display_name}** ({organization.workspace_type} workspace)",
        "",
        "## How to Import This Workflow in n8n",
        "",
        "1. Open your n8n instance",
        '2. Click on "Workflows" in the left sidebar',
        '3. Click the "Import" button',
        '4. Select "From File" and upload the downloaded JSON file',
        "5. Review and activate the workflow",
        "",
        "## Configuration Required",
        "",
        "After importing, you will need to:",
    ]
    node_types = dict.fromkeys(
        str(node.get("type", "")).lower() for node in workflow.get("nodes") or [] if isinstance(node, dict)
    )
    steps: list[str] = []
    for node_type in node_types:
        if "webhook" in node_type:
            steps.append("- Configure webhook URL and authentication")
        if "email" in node_type or "gmail" in node_type:
            steps.append("- Set up email credentials")
        if "postgres" in node_type or "airtable" in node_type or "googlesheets" in node_type:
            steps.append("- Configure database and spreadsheet connections")
        if "httprequest" in node_type or "openai" in node_type:
            steps.append("- Add API keys and endpoints")
    lines += list(dict.fromkeys(steps)) or ["- Review node parameters and replace {{placeholders}}"]
    lines += [
        "",
        "## Testing",
        "",
        '1. Use the "Execute Workflow" button to test',
        "2. Check the execution log for any errors",
        "3. Adjust node settings as needed",
    ]
    return "\n".join(lines)


def build_automation(
    workflow: WorkflowGraph, job: AutomationJob, generation_ms: int
) -> dict[str, Any]:
    organization = job.organization_context
    frozen = copy.deepcopy(workflow)
    return {
        "name": frozen.get("name"),
        "description": frozen.get("description"),
        "platform": PLATFORM,
        "workflow_json": frozen,
        "instructions": generate_instructions(frozen, organization),
        "metadata": {
            "organizationId": organization.organization_id,
            "organizationName": organization.display_name,
            "organizationPlan": organization.organization_plan,
            "workspaceType": organization.workspace_type,
            "generationTime": generation_ms,
            "nodeCount": len(frozen.get("nodes") or []),
            "generatedAt": datetime.now(timezone.utc).isoformat(),
        },
    }


class AutomationPipeline:
    """Runs one job end to end and reports progress at 10/30/70/100."""

    def __init__(
        self,
        orchestrator: EnhancedOrchestrator,
        generator: WorkflowGenerator,
        progress: ProgressSink,
        persistence: PersistenceSink,
        usage: UsageSink | None = None,
    ) -> None:
        self._orchestrator = orchestrator
        self._generator = generator
        self._progress = progress
        self._persistence = persistence
        self._usage = usage

    async def _log_usage(self, job: AutomationJob, event: dict[str, Any]) -> None:
        if self._usage is None:
            return
        await self._usage.log_usage(job.organization_context.organization_id, {"jobId": job.id, **event})

    async def _plan(self, job: AutomationJob) -> OrchestrationPlan:
        with tracer.start_as_current_span("automation.plan") as span:
            if self._orchestrator.state is OrchestratorState.uninitialized:
                await self._orchestrator.initialize()
            span.set_attribute("automation.orchestrator_state", self._orchestrator.state.value)
            plan = await self._orchestrator.create_sophisticated_orchestration_plan(job)
            span.set_attribute("automation.plan_steps", len(plan.steps))
            return plan

    async def _generate(self, plan: OrchestrationPlan, job: AutomationJob) -> WorkflowGraph:
        with tracer.start_as_current_span("automation.generate") as span:
            workflow = await self._generator.generate(plan, job)
            span.set_attribute("automation.node_count", len(workflow.get("nodes") or []))
            return workflow

    async def process_job(self, job: AutomationJob) -> PipelineResult:
        organization = job.organization_context
        started = time.perf_counter()
        stage = "orchestration"
        logger.info("pipeline.started", job_id=job.id, workspace=organization.display_name)
        with tracer.start_as_current_span("automation.process_job") as span:
            span.set_attribute("automation.job_id", job.id)
            try:
                await self._progress.update_progress(job.id, 10, "processing")
                plan = await self._plan(job)
                await self._progress.update_progress(job.id, 30, "processing")

                stage = "generation"
                generation_started = time.perf_counter()
                workflow = await self._generate(plan, job)
                generation_ms = int((time.perf_counter() - generation_started) * 1000)
                await self._progress.update_progress(job.id, 70, "processing")

                stage = "persistence"
                automation = build_automation(workflow, job, generation_ms)
                automation_id = await self._persistence.save_automation(job.id, automation)
            except Exception as exc:
                failure_stage = _failure_stage(exc, stage)
                elapsed_ms = int((time.perf_counter() - started) * 1000)
                span.record_exception(exc)
                logger.error("pipeline.failed", job_id=job.id, error=str(exc), stage=failure_stage)
                await self._progress.update_progress(job.id, 0, "failed", str(exc))
                await self._log_usage(
                    job,
                    {
                        "eventType": "automation_failed",
                        "automationType": PLATFORM,
                        "processingTime": elapsed_ms,
                        "success": False,
                        "error": str(exc),
                        "organizationPlan": organization.organization_plan,
                        "failureStage": failure_stage,
                    },
                )
                raise

            # the artifact is stored; a failed status write must not mark the job failed
            try:
                await self._progress.update_progress(job.id, 100, "completed")
            except Exception as exc:
                span.record_exception(exc)
                logger.error(
                    "pipeline.completion_update_failed", job_id=job.id, automation_id=automation_id, error=str(exc)
                )
                raise

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        await self._log_usage(
            job,
            {
                "eventType": "automation_completed",
                "automationType": PLATFORM,
                "nodeCount": automation["metadata"]["nodeCount"],
                "processingTime": elapsed_ms,
                "success": True,
                "workflowGenTime": generation_ms,
                "organizationPlan": organization.organization_plan,
            },
        )
        logger.info("pipeline.completed", job_id=job.id, automation_id=automation_id, elapsed_ms=elapsed_ms)
        return PipelineResult(job_id=job.id, automation_id=automation_id, automation=automation, plan=plan)

    async def close(self) -> None:
        await self._orchestrator.cleanup()


def create_default_pipeline(
    progress: ProgressSink,
    persistence: PersistenceSink,
    usage: UsageSink | None = None,
    settings: AutomationSettings | None = None,
    cost_monitor: CostMonitor | None = None,
) -> AutomationPipeline:
    settings = settings or get_settings()
    router = ModelRouter(cost_monitor or CostMonitor(settings.budget), settings=settings)
    discovery = NodeDiscoveryClient(settings.discovery)
    orchestrator = EnhancedOrchestrator(router, discovery, settings=settings)
    generator = create_generator(router, settings.generation, discovery=discovery)
    return AutomationPipeline(orchestrator, generator, progress, persistence, usage)


__all__ = [
    "AutomationPipeline",
    "PipelineResult",
    "build_automation",
    "create_default_pipeline",
    "generate_instructions",
]
