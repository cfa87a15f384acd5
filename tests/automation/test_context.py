import json

import pytest

from services.automation.app.domain.complexity import WorkflowComplexityDetector
from services.automation.app.domain.context_optimizer import PROFILES, ContextOptimizer, detect_workflow_type, scale_profile
from services.automation.app.domain.knowledge import KnowledgeIndex, NodeDoc, render_doc_excerpts
from services.automation.app.domain.orchestrator import create_fallback_plan, parse_orchestration_plan
from services.automation.app.domain.prompt_builder import (
    build_intelligent_prompt,
    get_organization_settings,
    get_performance_guidelines,
)
from services.automation.app.domain.requirements import KeywordRequirementsClassifier, assess_complexity
from services.automation.app.domain.types import ComplexityTier, OrganizationContext

from support import email_sheet_job, email_sheet_plan_json


@pytest.fixture
def plan(job):
    return parse_orchestration_plan(email_sheet_plan_json(), job)


@pytest.mark.parametrize(
    "score, tier",
    [(0, ComplexityTier.simple), (3, ComplexityTier.simple), (4, ComplexityTier.medium), (6, ComplexityTier.medium), (7, ComplexityTier.high)],
)
def test_tier_boundaries(score, tier):
    assert ComplexityTier.from_score(score) is tier


def test_email_sheet_job_scores_simple(job, plan):
    analysis = WorkflowComplexityDetector.analyze_complexity(plan, job)

    assert analysis.score == 3
    assert analysis.complexity is ComplexityTier.simple
    assert analysis.reasoning == ["Multi-platform integration: gmail, googleSheets", "Email handling required"]
    assert analysis.recommendation == "default-model"


def test_fallback_plan_scores_high(job):
    analysis = WorkflowComplexityDetector.analyze_complexity(create_fallback_plan(job), job)

    assert analysis.complexity is ComplexityTier.high
    assert "High step count: 7 steps" in analysis.reasoning
    assert "Conditional logic required" in analysis.reasoning
    assert "Parallel processing required" in analysis.reasoning
    assert analysis.cost_impact == "high"


def test_regulated_high_volume_job_without_plan():
    job = email_sheet_job(
        processData={
            "description": "AI review of insurance claims with parallel approvals",
            "businessContext": {"industry": "Insurance", "volume": "200+ per day"},
        },
        automationOpportunities=[{"automationSolution": f"step {i}"} for i in range(4)],
    )

    analysis = WorkflowComplexityDetector.analyze_complexity(None, job)

    assert analysis.reasoning == [
        "AI processing required",
        "High-compliance industry: Insurance",
        "High volume requirements: 200+ per day",
        "Parallel processing required",
        "Many automation opportunities: 4",
    ]
    assert analysis.score == 7
    assert analysis.recommendation == "advanced-model"


def test_context_budgets():
    detector = WorkflowComplexityDetector()
    assert detector.get_context_budget("simple", "orchestrator").output_tokens == 3000
    assert detector.get_context_budget(ComplexityTier.high, "agent").input_tokens == 10000
    assert detector.get_context_budget("medium", "unknown-tier").output_tokens == 2500
    assert detector.get_documentation_params("high") == {"node_count": 8, "chars_per_doc": 1200}


@pytest.mark.parametrize(
    "description, expected",
    [
        ("Sync leads into airtable nightly", "data-sync"),
        ("Classify support tickets by urgency", "ai-classification"),
        ("Parse PDF invoices", "document-processing"),
        ("Call the partner API on new orders", "api-integration"),
        ("Weekly cleanup of stale records", "general-automation"),
    ],
)
def test_workflow_type_detection(description, expected):
    job = email_sheet_job(processData={"description": description}, automationOpportunities=[])
    assert detect_workflow_type(None, job) == expected


def test_email_job_context_is_scaled_by_complexity(job, plan):
    config = ContextOptimizer().get_optimized_context(plan, job)

    assert config.workflow_type == "email-automation"
    assert config.complexity is ComplexityTier.simple
    assert (config.node_count, config.chars_per_doc) == (6, 800)
    assert config.focus_node_types[0] == "gmail"


def test_high_complexity_widens_documentation(job):
    fallback = create_fallback_plan(job)
    classify_job = email_sheet_job(processData={"description": "Classify tickets"}, automationOpportunities=[])

    config = ContextOptimizer().get_optimized_context(fallback, classify_job)

    assert config.workflow_type == "email-automation"
    assert config.complexity is ComplexityTier.high
    assert (config.node_count, config.chars_per_doc) == (9, 1300)


def test_documented_nodes_are_capped():
    assert scale_profile(PROFILES["ai-classification"], ComplexityTier.high) == (10, 1560)
    assert scale_profile(PROFILES["api-integration"], ComplexityTier.medium) == (6, 700)


def test_cost_estimate_for_context(job, plan):
    config = ContextOptimizer().get_optimized_context(plan, job)

    estimate = ContextOptimizer.estimate_cost(config)

    assert estimate["estimatedInputTokens"] == 3200
    assert estimate["estimatedOutputTokens"] == 3000
    assert estimate["totalCost"] == pytest.approx(0.0546)


def test_optimized_prompt_appends_focus_section(job, plan):
    config = ContextOptimizer().get_optimized_context(plan, job)

    prompt = ContextOptimizer.build_optimized_prompt("BASE", config, {"industry": "Retail"})

    assert prompt.startswith("BASE\n## WORKFLOW FOCUS AREAS")
    assert "**Business Context**: Retail | Operations" in prompt
    assert "**Complexity**: simple workflow requiring email handling" in prompt


def test_knowledge_ranks_by_keyword_hits():
    docs = KnowledgeIndex().get_relevant_docs("googleSheets append", top_k=2)
    assert docs[0].title == "n8n googleSheets"
    assert len(docs) == 2


def test_knowledge_without_matches_is_empty():
    index = KnowledgeIndex([NodeDoc("n8n noOp", "Does nothing.")])
    assert index.get_relevant_docs("zzz") == []
    assert len(index) == 1


def test_knowledge_node_type_queries():
    index = KnowledgeIndex()
    index.load([NodeDoc("n8n slack", "Post to a channel."), NodeDoc("n8n set", "Shape fields.")])

    docs = index.get_relevant_docs("", node_types=["slack"], top_k=5)

    assert [doc.title for doc in docs] == ["n8n slack", "n8n set"]


def test_doc_excerpts_are_truncated():
    rendered = render_doc_excerpts([NodeDoc("n8n set", "Set  node\nwith   spacing and more text")], 12)
    assert "#### 1. n8n set\nSet node wit" in rendered
    assert "more text" not in rendered


def test_organization_settings_fall_back_to_free():
    assert get_organization_settings("enterprise")["executionTimeout"] == 3600
    assert get_organization_settings("gold") == get_organization_settings("free")
    assert get_organization_settings(None)["executionOrder"] == "v1"
    assert get_performance_guidelines("free")[0].startswith("Keep workflows simple")


def test_prompt_carries_plan_organization_and_guidelines(plan):
    organization = OrganizationContext(
        organizationId="org-1", organizationName="Acme", organizationPlan="professional", workspaceType="team"
    )

    prompt = build_intelligent_prompt(plan, {"industry": "Retail", "securityRequirements": ["SSO"]}, organization)

    assert "## ORGANIZATION SETTINGS (Acme, professional plan, team workspace)" in prompt
    assert json.dumps(get_organization_settings("professional"), indent=2) in prompt
    assert "**Security**: SSO" in prompt
    assert "**Email Automation Guidelines**" in prompt
    assert "**HTTP Integration Guidelines**" not in prompt
    assert plan.to_json(indent=2) in prompt
    assert prompt.endswith("No markdown fences, no commentary, no text before or after the JSON.")


def test_requirements_classifier(job):
    requirements = KeywordRequirementsClassifier().classify(job)

    assert requirements.has_email_processing is True
    assert requirements.has_sheets_integration is True
    assert requirements.needs_ai_processing is True
    assert requirements.has_record_store_integration is False
    assert requirements.industry == "Customer Support"
    assert requirements.volume == "50 per day"
    assert requirements.summary() == "Email Sheets AI"


def test_requirements_complexity_and_conditionals():
    job = email_sheet_job(processData={"description": "Route high priority orders"}, automationOpportunities=[])

    requirements = KeywordRequirementsClassifier().classify(job)

    assert requirements.has_conditional_logic is True
    assert assess_complexity(job) is ComplexityTier.simple
    assert requirements.industry == "general"
