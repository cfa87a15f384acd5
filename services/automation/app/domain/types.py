"""Domain-level types for automation generation."""
from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class ComplexityTier(str, Enum):
    simple = "simple"
    medium = "medium"
    high = "high"

    @classmethod
    def from_score(cls, score: int) -> "ComplexityTier":
        if score <= 3:
            return cls.simple
        if score <= 6:
            return cls.medium
        return cls.high


class _FrozenModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")


class BusinessContext(_FrozenModel):
    industry: str | None = None
    department: str | None = None
    volume: str | None = None
    complexity: str | None = None


class ProcessData(_FrozenModel):
    description: str = Field(
        default="",
        validation_alias=AliasChoices("description", "processDescription"),
    )
    business_context: BusinessContext = Field(default_factory=BusinessContext, alias="businessContext")
    sla_requirements: str | None = Field(default=None, alias="slaRequirements")
    security_requirements: list[str] | None = Field(default=None, alias="securityRequirements")

    @field_validator("security_requirements", mode="before")
    @classmethod
    def _coerce_security(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [value]
        return value


class AutomationOpportunity(_FrozenModel):
    step_description: str = Field(default="", alias="stepDescription")
    automation_solution: str = Field(default="", alias="automationSolution")
    priority: str | None = None


class OrganizationContext(_FrozenModel):
    organization_id: str | None = Field(default=None, alias="organizationId")
    organization_name: str | None = Field(default=None, alias="organizationName")
    organization_plan: str = Field(default="free", alias="organizationPlan")
    workspace_type: str = Field(default="personal", alias="workspaceType")

    @property
    def display_name(self) -> str:
        return self.organization_name or "Personal"


class AutomationJob(_FrozenModel):
    id: str = Field(validation_alias=AliasChoices("id", "jobId"))
    process_data: ProcessData = Field(default_factory=ProcessData, alias="processData")
    automation_opportunities: list[AutomationOpportunity] = Field(default_factory=list, alias="automationOpportunities")
    organization_context: OrganizationContext = Field(default_factory=OrganizationContext, alias="organizationContext")

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        if isinstance(value, int):
            return str(value)
        return value

    @field_validator("organization_context", mode="before")
    @classmethod
    def _default_org(cls, value: Any) -> Any:
        return value if value is not None else {}

    @property
    def description(self) -> str:
        return self.process_data.description


class PlanTrigger(_FrozenModel):
    type: str
    name: str | None = None
    configuration: dict[str, Any] = Field(default_factory=dict)


class PlanStep(_FrozenModel):
    id: str
    name: str | None = None
    type: str
    description: str = ""
    configuration: dict[str, Any] = Field(default_factory=dict)


class PlanConnection(_FrozenModel):
    from_: str = Field(alias="from")
    to: str


class OrchestrationPlan(_FrozenModel):
    workflow_name: str = Field(alias="workflowName", min_length=1)
    description: str = ""
    triggers: list[PlanTrigger] = Field(min_length=1)
    steps: list[PlanStep] = Field(min_length=1)
    connections: list[PlanConnection] = Field(default_factory=list)
    error_handling: dict[str, Any] = Field(default_factory=dict, alias="errorHandling")
    complexity: str | None = None
    integrations: list[str] = Field(default_factory=list)
    volume_expected: str | None = Field(default=None, alias="volumeExpected")
    expected_outcomes: dict[str, Any] = Field(default_factory=dict, alias="expectedOutcomes")
    meta: dict[str, Any] = Field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")

    def to_json(self, indent: int | None = None) -> str:
        if indent is None:
            return json.dumps(self.to_payload(), sort_keys=True, separators=(",", ":"))
        return json.dumps(self.to_payload(), indent=indent)


@dataclass
class CostRecord:
    model: str
    input_tokens: int
    output_tokens: int
    input_cost: float
    output_cost: float
    total_cost: float
    timestamp: str


@dataclass
class LedgerEntry:
    record: CostRecord
    tier: str | None = None
    complexity: str | None = None
    job_id: str | None = None
    workflow_type: str | None = None
    success: bool = True

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self.record)
        data.update(
            tier=self.tier,
            complexity=self.complexity,
            job_id=self.job_id,
            workflow_type=self.workflow_type,
            success=self.success,
        )
        return data


@dataclass
class BudgetStatus:
    within_budget: bool
    warnings: list[str]
    current_cost: float
    daily_total: float
    daily_budget: float
    single_call_limit: float


@dataclass
class ContextBudget:
    input_tokens: int
    output_tokens: int


@dataclass
class ComplexityAnalysis:
    complexity: ComplexityTier
    score: int
    reasoning: list[str]
    recommendation: str
    cost_impact: str


@dataclass
class ContextConfig:
    workflow_type: str
    complexity: ComplexityTier
    node_count: int
    chars_per_doc: int
    focus_node_types: list[str]
    focus_areas: list[str]
    priority: str
    reasoning: str = ""


@dataclass
class BusinessRequirements:
    has_email_processing: bool = False
    has_sheets_integration: bool = False
    has_record_store_integration: bool = False
    needs_ai_processing: bool = False
    needs_notifications: bool = False
    has_conditional_logic: bool = False
    complexity: ComplexityTier = ComplexityTier.simple
    industry: str = "general"
    volume: str = "medium"

    def summary(self) -> str:
        labels = []
        if self.has_email_processing:
            labels.append("Email")
        if self.has_sheets_integration:
            labels.append("Sheets")
        if self.has_record_store_integration:
            labels.append("Airtable")
        if self.needs_ai_processing:
            labels.append("AI")
        return " ".join(labels)


@dataclass
class NodeCandidate:
    type: str
    priority: str
    reason: str


@dataclass
class ValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"valid": self.valid, "errors": list(self.errors)}


WorkflowGraph = dict[str, Any]


__all__ = [
    "AutomationJob",
    "AutomationOpportunity",
    "BudgetStatus",
    "BusinessContext",
    "BusinessRequirements",
    "ComplexityAnalysis",
    "ComplexityTier",
    "ContextBudget",
    "ContextConfig",
    "CostRecord",
    "LedgerEntry",
    "NodeCandidate",
    "OrchestrationPlan",
    "OrganizationContext",
    "PlanConnection",
    "PlanStep",
    "PlanTrigger",
    "ProcessData",
    "ValidationResult",
    "WorkflowGraph",
]
