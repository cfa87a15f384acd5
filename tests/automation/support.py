import json
from typing import Any

from services.automation.app.config import AutomationSettings
from services.automation.app.domain.cost_monitor import CostMonitor
from services.automation.app.domain.errors import DiscoveryConnectionError, DiscoveryToolError
from services.automation.app.domain.model_router import ModelRouter
from services.automation.app.domain.providers import ProviderResponse
from services.automation.app.domain.types import AutomationJob


class FakeProvider:
    """Scripted provider: each call pops the next text or raises the next exception."""

    def __init__(self, name: str, responses: list[Any] | None = None, configured: bool = True, model: str | None = None):
        self.name = name
        self.configured = configured
        self.responses = list(responses or [])
        self.model = model or ("claude-3-5-sonnet-20241022" if name == "anthropic" else "gpt-4o")
        self.calls: list[dict[str, Any]] = []

    def select_model(self, tier: str, complexity: str) -> str:
        return self.model

    def cap_output_tokens(self, model: str, complexity: str, requested: int) -> int:
        return requested

    async def complete(self, prompt, *, model, max_tokens, temperature, metadata=None):
        self.calls.append({"prompt": prompt, "model": model, "max_tokens": max_tokens, "temperature": temperature})
        if not self.responses:
            raise AssertionError(f"{self.name} called more often than scripted")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return ProviderResponse(text=response, model=model, input_tokens=1000, output_tokens=500)


class FakeDiscovery:
    def __init__(
        self,
        available: bool = False,
        search_result: Any = None,
        essentials: dict[str, Any] | None = None,
        essentials_error: str | None = None,
        validation: Any = None,
    ):
        self.available = available
        self.search_result = search_result if search_result is not None else {"nodes": []}
        self.essentials = essentials or {}
        self.essentials_error = essentials_error
        self.validation = validation
        self.essential_requests: list[str] = []
        self.validated: list[dict[str, Any]] = []
        self.connected = False
        self.disconnected = False

    async def connect(self) -> None:
        if not self.available:
            raise DiscoveryConnectionError("Node discovery server URL is not configured")
        self.connected = True

    async def disconnect(self) -> None:
        self.disconnected = True

    async def search_nodes(self, query: str, **options: Any) -> Any:
        return self.search_result

    async def get_node_essentials(self, node_type: str) -> dict[str, Any]:
        self.essential_requests.append(node_type)
        if self.essentials_error:
            raise DiscoveryToolError("get_node_essentials", self.essentials_error)
        return self.essentials.get(node_type, {})

    async def validate_workflow(self, workflow: dict[str, Any]) -> Any:
        self.validated.append(workflow)
        if self.validation is None:
            raise DiscoveryToolError("validate_workflow", "tool not available")
        return self.validation


class RecordingSinks:
    def __init__(self) -> None:
        self.progress: list[tuple[str, int, str, str | None]] = []
        self.saved: dict[str, dict[str, Any]] = {}
        self.usage: list[tuple[str | None, dict[str, Any]]] = []

    async def update_progress(self, job_id, percent, status, error_message=None):
        self.progress.append((job_id, percent, status, error_message))

    async def save_automation(self, job_id, automation):
        self.saved[job_id] = automation
        return f"automation-{job_id}"

    async def log_usage(self, organization_id, event):
        self.usage.append((organization_id, event))


def make_settings(**overrides: Any) -> AutomationSettings:
    values: dict[str, Any] = {
        "providers": {"anthropic_api_key": "test-anthropic", "openai_api_key": "test-openai"},
    }
    values.update(overrides)
    return AutomationSettings(**values)


def make_router(cost_monitor: CostMonitor, settings: AutomationSettings, *providers: FakeProvider) -> ModelRouter:
    return ModelRouter(cost_monitor, providers={p.name: p for p in providers}, settings=settings)


def email_sheet_job(**overrides: Any) -> AutomationJob:
    payload: dict[str, Any] = {
        "id": "job-s1",
        "processData": {
            "description": "Categorize incoming support emails and log each one to a sheet",
            "businessContext": {"industry": "Customer Support", "department": "Operations", "volume": "50 per day"},
        },
        "automationOpportunities": [
            {"stepDescription": "Categorize emails", "automationSolution": "email categorization", "priority": "high"},
            {"stepDescription": "Log to a spreadsheet", "automationSolution": "sheet logging", "priority": "medium"},
        ],
    }
    payload.update(overrides)
    return AutomationJob.model_validate(payload)


def email_sheet_plan() -> dict[str, Any]:
    return {
        "workflowName": "Email Categorization Log",
        "description": "Categorize support emails and log them to a sheet",
        "triggers": [{"type": "gmail", "name": "New Support Email", "configuration": {}}],
        "steps": [
            {"id": "categorize", "name": "Categorize Email", "type": "openai", "description": "Classify"},
            {"id": "log", "name": "Log to Sheet", "type": "googleSheets", "description": "Append row"},
        ],
        "connections": [{"from": "categorize", "to": "log"}],
        "integrations": ["gmail", "googleSheets"],
    }


def email_sheet_plan_json() -> str:
    return json.dumps(email_sheet_plan())


def email_sheet_workflow() -> dict[str, Any]:
    return {
        "name": "Email Categorization Log",
        "nodes": [
            {
                "id": "trigger",
                "name": "New Support Email",
                "type": "n8n-nodes-base.gmailTrigger",
                "typeVersion": 1,
                "position": [250, 300],
                "parameters": {"filters": {"labelIds": ["INBOX"]}},
            },
            {
                "id": "categorize",
                "name": "Categorize Email",
                "type": "n8n-nodes-base.openAi",
                "typeVersion": 1,
                "position": [450, 300],
                "parameters": {"prompt": "Categorize: {{ $json.text }}"},
                "credentials": {"openAiApi": {"id": "{{OPENAI_CREDENTIALS}}", "name": "OpenAI"}},
            },
            {
                "id": "log",
                "name": "Log to Sheet",
                "type": "n8n-nodes-base.googleSheets",
                "typeVersion": 1,
                "position": [650, 300],
                "parameters": {"operation": "append", "sheetId": "{{SHEETS_ID}}"},
            },
        ],
        "connections": {
            "New Support Email": {"main": [[{"node": "Categorize Email", "type": "main", "index": 0}]]},
            "Categorize Email": {"main": [[{"node": "Log to Sheet", "type": "main", "index": 0}]]},
        },
    }
