"""Mapping tables from plan vocabulary to n8n node identifiers."""
from __future__ import annotations

import uuid

NODE_PREFIX = "n8n-nodes-base."

TRIGGER_TYPES: dict[str, str] = {
    "webhook": "webhook",
    "schedule": "scheduleTrigger",
    "email": "emailReadImap",
    "form": "formTrigger",
    "gmail": "gmailTrigger",
}
DEFAULT_TRIGGER_TYPE = "webhook"

STEP_TYPES: dict[str, str] = {
    "http": "httpRequest",
    "transform": "set",
    "condition": "if",
    "email": "emailSend",
    "database": "postgres",
    "function": "function",
    "merge": "merge",
    "split": "splitInBatches",
    "openai": "openAi",
    "gmail": "gmail",
    "googleSheets": "googleSheets",
    "airtable": "airtable",
    "if": "if",
    "switch": "switch",
    "slack": "slack",
}
DEFAULT_STEP_TYPE = "set"


def _qualify(local: str) -> str:
    return local if local.startswith(NODE_PREFIX) else f"{NODE_PREFIX}{local}"


def map_trigger_type(kind: str | None) -> str:
    """Platform identifier for a plan trigger type; unknown types become webhooks."""
    if kind and kind.startswith(NODE_PREFIX):
        return kind
    return _qualify(TRIGGER_TYPES.get(kind or "", DEFAULT_TRIGGER_TYPE))


def map_step_type(kind: str | None) -> str:
    """Platform identifier for a plan step type; unknown types become set nodes."""
    if kind and kind.startswith(NODE_PREFIX):
        return kind
    return _qualify(STEP_TYPES.get(kind or "", DEFAULT_STEP_TYPE))


def is_http_node(node_type: str | None) -> bool:
    return "httpRequest" in (node_type or "")


def is_email_node(node_type: str | None) -> bool:
    return "emailSend" in (node_type or "")


def is_webhook_node(node_type: str | None) -> bool:
    return (node_type or "").endswith(".webhook")


def new_node_id(kind: str = "node") -> str:
    return f"node-{kind}-{uuid.uuid4().hex[:6]}"


def unique_name(name: str, taken: set[str]) -> str:
    """Return ``name`` or the first free ``"{name} N"`` variant."""
    candidate, suffix = name, 2
    while candidate in taken:
        candidate = f"{name} {suffix}"
        suffix += 1
    return candidate


__all__ = [
    "DEFAULT_STEP_TYPE",
    "DEFAULT_TRIGGER_TYPE",
    "NODE_PREFIX",
    "STEP_TYPES",
    "TRIGGER_TYPES",
    "is_email_node",
    "is_http_node",
    "is_webhook_node",
    "map_step_type",
    "map_trigger_type",
    "new_node_id",
    "unique_name",
]
