"""Structural, policy and security checks over workflow graphs."""
from __future__ import annotations

import re
from typing import Any, Iterator

from .node_types import is_email_node, is_http_node
from .types import ValidationResult, WorkflowGraph

SECRET_PATTERN = re.compile(
    r"(sk-[a-z0-9]{10,}|api[_-]?key|secret|password|Bearer\s+(?!\{\{)[A-Za-z0-9_\-]{20,})",
    re.IGNORECASE,
)
PLACEHOLDER_PATTERN = re.compile(r"\{\{.*?\}\}", re.DOTALL)
EMAIL_REQUIRED_FIELDS = ("to", "subject", "text")


def iter_strings(value: Any) -> Iterator[str]:
    if isinstance(value, str):
        yield value
    elif isinstance(value, dict):
        for item in value.values():
            yield from iter_strings(item)
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from iter_strings(item)


def contains_secret(text: str) -> bool:
    return SECRET_PATTERN.search(PLACEHOLDER_PATTERN.sub("", text)) is not None


def iter_edges(connection: Any) -> Iterator[Any]:
    """Yield every edge of a connection entry across all outputs."""
    if not isinstance(connection, dict):
        return
    outputs = connection.get("main")
    if not isinstance(outputs, list):
        return
    for output in outputs:
        if isinstance(output, list):
            yield from output


def connection_sources(graph: WorkflowGraph) -> set[str]:
    connections = graph.get("connections")
    if not isinstance(connections, dict):
        return set()
    return {
        name
        for name, connection in connections.items()
        if any(isinstance(edge, dict) and edge.get("node") for edge in iter_edges(connection))
    }


def node_name(node: Any) -> str | None:
    """Return the node's name when it is a non-empty string."""
    name = node.get("name") if isinstance(node, dict) else None
    return name if isinstance(name, str) and name else None


def _valid_position(position: Any) -> bool:
    return (
        isinstance(position, (list, tuple))
        and len(position) == 2
        and all(isinstance(coord, (int, float)) and not isinstance(coord, bool) for coord in position)
    )


def _structural_errors(graph: WorkflowGraph, nodes: list[Any]) -> list[str]:
    errors: list[str] = []
    name = graph.get("name")
    if not isinstance(name, str) or not name.strip():
        errors.append("name is required")
    if not nodes:
        errors.append("nodes array is required and must not be empty")

    seen: set[str] = set()
    for index, node in enumerate(nodes):
        if not isinstance(node, dict):
            errors.append(f"node at index {index} is not an object")
            continue
        name_value = node.get("name")
        if name_value and not isinstance(name_value, str):
            errors.append(f"node name must be a string: index {index}")
            continue
        label = name_value or node.get("type") or f"index {index}"
        if not name_value or not node.get("type") or not _valid_position(node.get("position")):
            errors.append(f"node missing required fields (name/type/position): {label}")
        if name_value:
            if name_value in seen:
                errors.append(f"duplicate node name: {name_value}")
            seen.add(name_value)

    connections = graph.get("connections", {})
    if connections is None:
        connections = {}
    if not isinstance(connections, dict):
        errors.append("connections must be an object keyed by source node name")
        return errors
    for source, connection in connections.items():
        if source not in seen:
            errors.append(f"connection source does not exist: {source}")
        for edge in iter_edges(connection):
            target = edge.get("node") if isinstance(edge, dict) else None
            if not target:
                errors.append(f"connection from {source} has an edge without a target")
            elif not isinstance(target, str):
                errors.append(f"connection target must be a node name string: {source}")
            elif target not in seen:
                errors.append(f"connection target does not exist: {target}")
    return errors


def _policy_errors(graph: WorkflowGraph, nodes: list[dict[str, Any]]) -> list[str]:
    errors: list[str] = []
    sources = connection_sources(graph)
    for node in nodes:
        node_type = node.get("type")
        name = node_name(node)
        parameters = node.get("parameters") if isinstance(node.get("parameters"), dict) else {}
        if is_http_node(node_type):
            if name not in sources:
                errors.append(f"http request node is terminal without outgoing connection: {name}")
            options = parameters.get("options")
            if options is not None:
                options = options if isinstance(options, dict) else {}
                retries = options.get("maxRetries")
                has_retries = isinstance(retries, int) and not isinstance(retries, bool) and retries >= 1
                if options.get("retryOnFail") is not True or not has_retries:
                    errors.append(f"http request node missing retry policy (retryOnFail + maxRetries>=1): {name}")
        if is_email_node(node_type):
            if any(not parameters.get(key) for key in EMAIL_REQUIRED_FIELDS):
                errors.append(f"email node missing required fields (to/subject/text): {name}")
            if parameters.get("terminal") is not True and name not in sources:
                errors.append(
                    f"email node is terminal without outgoing connection (set parameters.terminal=true to allow): {name}"
                )
    return errors


def _security_errors(nodes: list[dict[str, Any]]) -> list[str]:
    errors: list[str] = []
    for node in nodes:
        for section in ("parameters", "credentials"):
            if any(contains_secret(text) for text in iter_strings(node.get(section))):
                errors.append(
                    f"potential secret found in {section} of node {node_name(node)}; use {{{{placeholders}}}} only"
                )
    return errors


def validate_workflow(graph: Any) -> ValidationResult:
    """Check a workflow graph without modifying it."""
    if not isinstance(graph, dict):
        return ValidationResult(valid=False, errors=["workflow is not an object"])
    raw_nodes = graph.get("nodes")
    nodes = raw_nodes if isinstance(raw_nodes, list) else []
    errors = _structural_errors(graph, nodes)
    well_formed = [node for node in nodes if isinstance(node, dict)]
    errors.extend(_policy_errors(graph, well_formed))
    errors.extend(_security_errors(well_formed))
    return ValidationResult(valid=not errors, errors=errors)


__all__ = [
    "SECRET_PATTERN",
    "connection_sources",
    "contains_secret",
    "iter_edges",
    "iter_strings",
    "node_name",
    "validate_workflow",
]
