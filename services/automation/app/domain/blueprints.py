"""Deterministic node factories and a linear assembler."""
from __future__ import annotations

import json
from copy import deepcopy
from dataclasses import dataclass, field
from typing import Any, Iterable, Sequence

from .node_types import NODE_PREFIX, new_node_id, unique_name
from .types import WorkflowGraph


@dataclass
class Blueprint:
    nodes: list[dict[str, Any]]
    env: dict[str, str] = field(default_factory=dict)


@dataclass
class AssembledWorkflow:
    workflow: WorkflowGraph
    env: dict[str, str]


def _node(kind: str, name: str, local_type: str, position: list[int], parameters: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": new_node_id(kind),
        "name": name,
        "type": f"{NODE_PREFIX}{local_type}",
        "typeVersion": 1,
        "position": position,
        "parameters": parameters,
    }


def webhook_trigger(
    path: str = "automation/{{JOB_ID}}",
    method: str = "POST",
    response_mode: str = "onReceived",
) -> Blueprint:
    node = _node(
        "webhook",
        "Webhook - Trigger",
        "webhook",
        [250, 300],
        {
            "path": path,
            "httpMethod": method,
            "responseMode": response_mode,
            "responseCode": 200,
            "authentication": "none",
        },
    )
    return Blueprint(nodes=[node])


def email_send(
    to: str = "{{recipient}}",
    subject: str = "Subject",
    text: str = "Body",
    credentials_ref: str = "{{GMAIL_CREDENTIALS}}",
    terminal: bool = True,
) -> Blueprint:
    node = _node(
        "email",
        "Email - Send",
        "emailSend",
        [600, 300],
        {
            "fromEmail": "{{from}}",
            "to": to,
            "subject": subject,
            "text": text,
            "terminal": terminal,
            "options": {"senderName": "{{senderName}}"},
        },
    )
    node["credentials"] = {"smtp": {"id": credentials_ref, "name": "SMTP"}}
    return Blueprint(
        nodes=[node],
        env={"GMAIL_CREDENTIALS": "Reference to SMTP/Gmail credentials configured in n8n"},
    )


def sheet_append(
    spreadsheet_id: str = "{{SHEETS_ID}}",
    range_: str = "A1",
    values: Sequence[Sequence[str]] = (("{{timestamp}}", "{{message}}"),),
) -> Blueprint:
    node = _node(
        "sheets",
        "Sheets - Append Row",
        "googleSheets",
        [800, 300],
        {
            "operation": "append",
            "spreadsheetId": spreadsheet_id,
            "range": range_,
            "options": {"valueInputMode": "RAW"},
            "columns": [list(row) for row in values],
        },
    )
    return Blueprint(nodes=[node], env={"SHEETS_ID": "Google Sheets spreadsheet ID"})


def record_upsert(
    base_id: str = "{{AIRTABLE_BASE}}",
    table: str = "{{AIRTABLE_TABLE}}",
    key: str = "id",
    record: dict[str, Any] | None = None,
) -> Blueprint:
    node = _node(
        "airtable",
        "Airtable - Upsert",
        "airtable",
        [1000, 300],
        {
            "operation": "upsert",
            "application": base_id,
            "table": table,
            "upsertKeys": [key],
            "additionalFields": {},
            "fields": deepcopy(record) if record is not None else {"id": "{{id}}", "value": "{{value}}"},
        },
    )
    return Blueprint(
        nodes=[node],
        env={"AIRTABLE_BASE": "Airtable Base ID", "AIRTABLE_TABLE": "Airtable Table Name"},
    )


def http_request(
    url: str = "{{API_URL}}",
    method: str = "POST",
    body: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> Blueprint:
    node = _node(
        "http",
        "HTTP - Request",
        "httpRequest",
        [1200, 300],
        {
            "url": url,
            "method": method,
            "sendBody": True,
            "jsonParameters": True,
            "options": {"retryOnFail": True, "maxRetries": 3, "allowUnauthorizedCerts": False},
            "headerParametersJson": json.dumps(headers or {"Authorization": "Bearer {{API_TOKEN}}"}),
            "jsonBody": json.dumps(body or {"message": "{{message}}"}),
        },
    )
    return Blueprint(
        nodes=[node],
        env={"API_URL": "Target API endpoint", "API_TOKEN": "Token for the target API"},
    )


def field_set(pairs: Iterable[tuple[str, str]] = (("message", "{{message}}"),)) -> Blueprint:
    node = _node(
        "set",
        "Transform - Set",
        "set",
        [700, 300],
        {
            "keepOnlySet": True,
            "values": {"string": [{"name": name, "value": value} for name, value in pairs]},
        },
    )
    return Blueprint(nodes=[node])


def connect_linear(nodes: Sequence[dict[str, Any]]) -> dict[str, Any]:
    connections: dict[str, Any] = {}
    for current, following in zip(nodes, nodes[1:]):
        connections[current["name"]] = {"main": [[{"node": following["name"], "type": "main", "index": 0}]]}
    return connections


def assemble_workflow(name: str = "Blueprint Workflow", blocks: Sequence[Blueprint] = ()) -> AssembledWorkflow:
    nodes: list[dict[str, Any]] = []
    env: dict[str, str] = {}
    taken: set[str] = set()
    for block in blocks:
        env.update(block.env)
        for node in block.nodes:
            placed = deepcopy(node)
            placed["name"] = unique_name(placed["name"], taken)
            placed["position"] = [250 + len(nodes) * 200, 300]
            taken.add(placed["name"])
            nodes.append(placed)
    workflow: WorkflowGraph = {
        "name": name,
        "nodes": nodes,
        "connections": connect_linear(nodes),
        "active": False,
        "settings": {},
        "versionId": "1",
    }
    return AssembledWorkflow(workflow=workflow, env=env)


__all__ = [
    "AssembledWorkflow",
    "Blueprint",
    "assemble_workflow",
    "connect_linear",
    "email_send",
    "field_set",
    "http_request",
    "record_upsert",
    "sheet_append",
    "webhook_trigger",
]
