"""Single bounded repair pass for mechanically fixable graph violations."""
from __future__ import annotations

from typing import Any

import structlog

from .blueprints import connect_linear
from .node_types import NODE_PREFIX, is_email_node, is_http_node, new_node_id, unique_name
from .types import WorkflowGraph
from .validator import connection_sources, node_name

logger = structlog.get_logger(__name__)

DEFAULT_MAX_RETRIES = 3
EMAIL_PLACEHOLDERS = {"to": "{{recipient}}", "subject": "Notification", "text": "See details."}


def _name_lookup(nodes: list[dict[str, Any]]) -> dict[str, str]:
    lookup: dict[str, str] = {}
    for node in nodes:
        name = node_name(node)
        if name is None:
            continue
        node_id = node.get("id")
        if isinstance(node_id, str) and node_id:
            lookup.setdefault(node_id, name)
    # names win over ids when they collide
    for node in nodes:
        name = node_name(node)
        if name is not None:
            lookup[name] = name
    return lookup


def repair_connections(graph: WorkflowGraph) -> None:
    """Rewrite stale id references to names and drop edges that still dangle."""
    nodes = [node for node in graph.get("nodes") or [] if isinstance(node, dict)]
    connections = graph.get("connections")
    if not isinstance(connections, dict):
        connections = {}
    lookup = _name_lookup(nodes)

    repaired: dict[str, Any] = {}
    pruned = 0
    for source_key, connection in connections.items():
        source = lookup.get(source_key)
        outputs: list[list[dict[str, Any]]] = []
        raw_outputs = connection.get("main") if isinstance(connection, dict) else None
        for raw_output in raw_outputs if isinstance(raw_outputs, list) else []:
            kept = []
            for edge in raw_output if isinstance(raw_output, list) else []:
                reference = edge.get("node") if isinstance(edge, dict) else None
                target = lookup.get(reference) if isinstance(reference, str) else None
                if source is None or target is None:
                    pruned += 1
                    continue
                kept.append({**edge, "node": target, "type": edge.get("type", "main"), "index": edge.get("index", 0)})
            outputs.append(kept)
        if source is None or not any(outputs):
            continue
        merged = repaired.setdefault(source, {"main": []})["main"]
        for index, kept in enumerate(outputs):
            if index < len(merged):
                merged[index].extend(kept)
            else:
                merged.append(kept)

    if pruned:
        logger.info("repair.pruned_edges", workflow=graph.get("name"), pruned=pruned)
    if not repaired and len(nodes) >= 2:
        repaired = connect_linear([node for node in nodes if node_name(node)])
        logger.info("repair.linear_chain", workflow=graph.get("name"), nodes=len(nodes))
    graph["connections"] = repaired


def _pass_through_node(source: dict[str, Any], taken: set[str]) -> dict[str, Any]:
    position = source.get("position")
    if not (isinstance(position, (list, tuple)) and len(position) == 2):
        position = [250, 300]
    return {
        "id": new_node_id("set"),
        "name": unique_name(f"{source['name']} Response", taken),
        "type": f"{NODE_PREFIX}set",
        "typeVersion": 1,
        "position": [position[0] + 200, position[1]],
        "parameters": {"values": {"string": [{"name": "status", "value": "completed"}]}},
    }


def backfill_policies(graph: WorkflowGraph) -> None:
    nodes = graph.get("nodes") or []
    sources = connection_sources(graph)
    taken = {name for name in map(node_name, nodes) if name}
    successors: list[tuple[dict[str, Any], dict[str, Any]]] = []

    for node in nodes:
        if node_name(node) is None:
            continue
        node_type = node.get("type")
        if not (is_http_node(node_type) or is_email_node(node_type)):
            continue
        if not isinstance(node.get("parameters"), dict):
            node["parameters"] = {}
        parameters = node["parameters"]
        terminal = node["name"] not in sources

        if is_http_node(node_type):
            if not isinstance(parameters.get("options"), dict):
                parameters["options"] = {}
            options = parameters["options"]
            if options.get("retryOnFail") is not True:
                options["retryOnFail"] = True
            retries = options.get("maxRetries")
            if not (isinstance(retries, int) and not isinstance(retries, bool) and retries >= 1):
                options["maxRetries"] = DEFAULT_MAX_RETRIES
            if terminal:
                successor = _pass_through_node(node, taken)
                taken.add(successor["name"])
                successors.append((node, successor))

        if is_email_node(node_type):
            for key, placeholder in EMAIL_PLACEHOLDERS.items():
                if not parameters.get(key):
                    parameters[key] = placeholder
            if terminal and parameters.get("terminal") is not True:
                parameters["terminal"] = True

    connections = graph.setdefault("connections", {})
    for source, successor in successors:
        nodes.append(successor)
        connections[source["name"]] = {"main": [[{"node": successor["name"], "type": "main", "index": 0}]]}
        logger.info("repair.pass_through_added", source=source["name"], successor=successor["name"])


def auto_repair_workflow(graph: WorkflowGraph) -> WorkflowGraph:
    """Repair ``graph`` in place and return it.

    Running the repair on its own output changes nothing. Secret-shaped values are
    never rewritten; they have to fail validation.
    """
    if not isinstance(graph.get("nodes"), list):
        graph["nodes"] = []
    repair_connections(graph)
    backfill_policies(graph)
    return graph


__all__ = ["auto_repair_workflow", "backfill_policies", "repair_connections"]
