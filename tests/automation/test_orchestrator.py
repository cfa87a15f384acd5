import json

import httpx
import pytest

from services.automation.app.config import DiscoverySettings
from services.automation.app.domain.discovery import NodeDiscoveryClient
from services.automation.app.domain.errors import PlanParseError, ProviderCallError, ProviderError
from services.automation.app.domain.orchestrator import (
    CORE_NODE_CAPABILITIES,
    EnhancedOrchestrator,
    OrchestratorState,
    create_fallback_plan,
    parse_orchestration_plan,
)

from support import FakeDiscovery, FakeProvider, email_sheet_plan, email_sheet_plan_json, make_router


def _orchestrator(settings, cost_monitor, *providers, discovery=None):
    router = make_router(cost_monitor, settings, *providers)
    return EnhancedOrchestrator(router, discovery or FakeDiscovery(), settings=settings)


def test_parse_plan_stamps_meta(job):
    plan = parse_orchestration_plan(email_sheet_plan_json(), job)

    assert plan.workflow_name == "Email Categorization Log"
    assert [step.id for step in plan.steps] == ["categorize", "log"]
    assert plan.connections[0].from_ == "categorize"
    assert plan.meta == {"generatedBy": "orchestrator", "jobId": "job-s1"}


def test_parse_plan_defaults_workflow_name(job):
    payload = email_sheet_plan()
    del payload["workflowName"]
    plan = parse_orchestration_plan(json.dumps(payload), job)
    assert plan.workflow_name == "Advanced Automation Workflow"


@pytest.mark.parametrize("key", ["steps", "triggers"])
def test_parse_plan_requires_steps_and_triggers(job, key):
    payload = email_sheet_plan()
    payload[key] = []
    with pytest.raises(PlanParseError, match=key):
        parse_orchestration_plan(json.dumps(payload), job)


def test_parse_plan_rejects_schema_violations(job):
    payload = email_sheet_plan()
    payload["steps"] = [{"name": "No id or type"}]
    with pytest.raises(PlanParseError, match="schema errors"):
        parse_orchestration_plan(json.dumps(payload), job)


def test_fallback_plan_shape(job):
    plan = create_fallback_plan(job)

    assert plan.workflow_name == "Email-Sheets-Airtable Integration Workflow"
    assert len(plan.steps) == 7
    assert len(plan.connections) == 6
    assert [(c.from_, c.to) for c in plan.connections][0] == ("email_analysis", "data_processing")
    assert plan.triggers[0].type == "gmail"
    assert plan.meta["fallbackUsed"] is True
    assert plan.meta["jobId"] == job.id


def test_fallback_plan_is_deterministic(job):
    assert create_fallback_plan(job).to_json() == create_fallback_plan(job).to_json()


@pytest.mark.asyncio
async def test_unparsable_plan_falls_back_without_raising(settings, cost_monitor, job):
    provider = FakeProvider("anthropic", ["I am unable to produce JSON today."])
    orchestrator = _orchestrator(settings, cost_monitor, provider, FakeProvider("openai"))

    first = await orchestrator.create_sophisticated_orchestration_plan(job)
    provider.responses.append("still not json")
    second = await orchestrator.create_sophisticated_orchestration_plan(job)

    assert len(first.steps) == 7
    assert len(first.connections) == 6
    assert first == second


@pytest.mark.asyncio
async def test_plan_call_uses_orchestrator_budget(settings, cost_monitor, job):
    provider = FakeProvider("anthropic", [f"```json\n{email_sheet_plan_json()}\n```"])
    orchestrator = _orchestrator(settings, cost_monitor, provider, FakeProvider("openai"))

    plan = await orchestrator.create_sophisticated_orchestration_plan(job)

    assert plan.workflow_name == "Email Categorization Log"
    call = provider.calls[0]
    assert call["max_tokens"] == 2048
    assert call["temperature"] == 0.1
    assert "AVAILABLE NODES:" in call["prompt"]
    assert cost_monitor.entries()[0].tier == "orchestrator"


@pytest.mark.asyncio
async def test_provider_exhaustion_propagates(settings, cost_monitor, job):
    orchestrator = _orchestrator(
        settings,
        cost_monitor,
        FakeProvider("anthropic", [ProviderCallError("anthropic", "HTTP 529")]),
        FakeProvider("openai", [ProviderCallError("openai", "HTTP 500")]),
    )
    with pytest.raises(ProviderError):
        await orchestrator.create_sophisticated_orchestration_plan(job)


@pytest.mark.asyncio
async def test_initialize_degrades_without_discovery(settings, cost_monitor):
    orchestrator = _orchestrator(settings, cost_monitor, FakeProvider("anthropic"))

    assert await orchestrator.initialize() is False
    assert orchestrator.state is OrchestratorState.degraded
    assert set(orchestrator.node_capabilities) == set(CORE_NODE_CAPABILITIES)


@pytest.mark.asyncio
async def test_initialize_degrades_on_catalog_error_string(settings, cost_monitor):
    def busy(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "error": "server busy"})

    discovery = NodeDiscoveryClient(
        DiscoverySettings(server_url="http://catalog.test"), transport=httpx.MockTransport(busy)
    )
    orchestrator = _orchestrator(settings, cost_monitor, FakeProvider("anthropic"), discovery=discovery)

    assert await orchestrator.initialize() is False
    assert orchestrator.state is OrchestratorState.degraded


@pytest.mark.asyncio
async def test_catalog_search_errors_are_absorbed(settings, cost_monitor, job):
    def catalog(request: httpx.Request) -> httpx.Response:
        if request.method == "DELETE":
            return httpx.Response(204)
        body = json.loads(request.content)
        if body["method"] == "initialize":
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": {}}, headers={"mcp-session-id": "s-1"})
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "error": "search index rebuilding"})

    discovery = NodeDiscoveryClient(
        DiscoverySettings(server_url="http://catalog.test"), transport=httpx.MockTransport(catalog)
    )
    provider = FakeProvider("anthropic", [email_sheet_plan_json()])
    orchestrator = _orchestrator(settings, cost_monitor, provider, discovery=discovery)

    assert await orchestrator.initialize() is True
    plan = await orchestrator.create_sophisticated_orchestration_plan(job)
    await orchestrator.cleanup()

    assert plan.workflow_name
    assert "CATALOG MATCHES" not in provider.calls[0]["prompt"]


@pytest.mark.asyncio
async def test_catalog_matches_reach_the_prompt(settings, cost_monitor, job):
    discovery = FakeDiscovery(available=True, search_result={"nodes": [{"nodeType": "nodes-base.slack"}, "gmail"]})
    provider = FakeProvider("anthropic", [email_sheet_plan_json()])
    orchestrator = _orchestrator(settings, cost_monitor, provider, discovery=discovery)

    assert await orchestrator.initialize() is True
    await orchestrator.create_sophisticated_orchestration_plan(job)
    await orchestrator.cleanup()

    assert "CATALOG MATCHES: nodes-base.slack, gmail" in provider.calls[0]["prompt"]
    assert discovery.disconnected is True


def test_candidates_are_ranked_and_unique(settings, cost_monitor, job):
    orchestrator = _orchestrator(settings, cost_monitor, FakeProvider("anthropic"))
    requirements = orchestrator.analyze_business_requirements(job)

    candidates = orchestrator.discover_relevant_nodes(requirements)
    types = [candidate.type for candidate in candidates]

    assert requirements.has_email_processing and requirements.has_sheets_integration
    assert len(types) == len(set(types))
    assert set(types[:3]) == {"gmail", "openai", "googleSheets"}
    assert types[-2:] == ["merge", "webhook"]
