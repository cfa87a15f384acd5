"""Keyword retrieval over a small node documentation index."""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Mapping, Sequence

DEFAULT_TOP_K = 6


@dataclass(frozen=True)
class NodeDoc:
    title: str
    content: str
    url: str | None = None


BUILTIN_DOCS: tuple[NodeDoc, ...] = (
    NodeDoc(
        "n8n webhook",
        "Webhook trigger node (n8n-nodes-base.webhook). Parameters: path (unique per workflow), httpMethod "
        "(GET, POST, PUT), responseMode (onReceived, lastNode, responseNode), responseCode, authentication "
        "(none, basicAuth, headerAuth). Use headerAuth with a credential placeholder for production endpoints.",
    ),
    NodeDoc(
        "n8n httpRequest",
        "HTTP Request node (n8n-nodes-base.httpRequest). Parameters: url, method, sendBody, jsonParameters, "
        "headerParametersJson, jsonBody. Under options set retryOnFail true and maxRetries 3, plus timeout in "
        "milliseconds. Always connect the node to a successor that records the response status.",
    ),
    NodeDoc(
        "n8n emailSend",
        "Send Email node (n8n-nodes-base.emailSend). Required parameters: to, subject, text; optional fromEmail "
        "and options.senderName. Credentials reference an SMTP account configured in n8n. Mark the node with "
        "parameters.terminal true when it intentionally ends the workflow.",
    ),
    NodeDoc(
        "n8n gmail",
        "Gmail node (n8n-nodes-base.gmail) and Gmail Trigger (n8n-nodes-base.gmailTrigger). Operations: send, "
        "reply, get, markAsRead. Trigger polls a label such as INBOX with an optional search filter. Uses OAuth2 "
        "credentials.",
    ),
    NodeDoc(
        "n8n googleSheets",
        "Google Sheets node (n8n-nodes-base.googleSheets). Operations: append, update, read, lookup. Parameters: "
        "spreadsheetId, range (for example A1:Z), columns or values, options.valueInputMode RAW or USER_ENTERED.",
    ),
    NodeDoc(
        "n8n airtable",
        "Airtable node (n8n-nodes-base.airtable). Operations: create, update, upsert, list, delete. Parameters: "
        "application (base id), table, fields, upsertKeys. Store the base id in an environment placeholder.",
    ),
    NodeDoc(
        "n8n openAi",
        "OpenAI node (n8n-nodes-base.openAi). Resources: chat, text, image. Parameters: model, prompt or "
        "messages, temperature, maxTokens. Use for classification, extraction and response drafting; parse the "
        "output with a Function node before storage.",
    ),
    NodeDoc(
        "n8n function",
        "Function node (n8n-nodes-base.function). Parameter functionCode holds JavaScript returning an array of "
        "items shaped like { json: {...} }. Wrap parsing logic in try/catch and return a status field on failure.",
    ),
    NodeDoc(
        "n8n if",
        "IF node (n8n-nodes-base.if). Routes items to true/false outputs using conditions on strings, numbers or "
        "booleans. Output 0 is true, output 1 is false.",
    ),
    NodeDoc(
        "n8n switch",
        "Switch node (n8n-nodes-base.switch). Routes items to numbered outputs by rules or expression; use for "
        "multi-way categorization.",
    ),
    NodeDoc(
        "n8n merge",
        "Merge node (n8n-nodes-base.merge). Modes: append, mergeByIndex, mergeByKey, waitForAll. Joins parallel "
        "branches back into one stream.",
    ),
    NodeDoc(
        "n8n set",
        "Set node (n8n-nodes-base.set). Parameters: keepOnlySet, values.string / values.number / values.boolean "
        "arrays of name/value pairs. Useful as a pass-through or response shaping step.",
    ),
    NodeDoc(
        "n8n slack",
        "Slack node (n8n-nodes-base.slack). Operations: post message, update message, upload file. Parameters: "
        "channel, text. Use for team notifications and error alerts.",
    ),
    NodeDoc(
        "n8n errorTrigger",
        "Error Trigger node (n8n-nodes-base.errorTrigger) starts an error workflow when another workflow fails. "
        "Pair with Stop and Error (n8n-nodes-base.stopAndError) to fail explicitly, and No Op for placeholders.",
    ),
    NodeDoc(
        "n8n retryOnFail",
        "Node setting retryOnFail with maxRetries and waitBetweenTries retries transient failures. Apply to every "
        "external call such as HTTP, email and database nodes.",
    ),
)


def _score(text: str, query: str) -> int:
    haystack = text.lower()
    return sum(haystack.count(token) for token in query.lower().split() if token)


class KnowledgeIndex:
    def __init__(self, docs: Iterable[NodeDoc] = BUILTIN_DOCS) -> None:
        self._docs: list[NodeDoc] = list(docs)

    def load(self, docs: Iterable[NodeDoc]) -> None:
        self._docs = list(docs)

    def __len__(self) -> int:
        return len(self._docs)

    def get_relevant_docs(
        self,
        task: str,
        node_types: Sequence[str] = (),
        params_hint: Mapping[str, object] | None = None,
        top_k: int = DEFAULT_TOP_K,
    ) -> list[NodeDoc]:
        queries = [task or "n8n workflow"]
        queries.extend(f"n8n {node_type}" for node_type in node_types)
        queries.extend(f"n8n {key}" for key in (params_hint or {}))
        ranked = []
        for position, doc in enumerate(self._docs):
            text = f"{doc.title} {doc.content}"
            score = max(_score(text, query) for query in queries)
            if score > 0:
                ranked.append((score, -position, doc))
        ranked.sort(key=lambda item: (item[0], item[1]), reverse=True)
        return [doc for _, _, doc in ranked[:top_k]]


def render_doc_excerpts(docs: Sequence[NodeDoc], chars_per_doc: int) -> str:
    lines = ["", "", "## TARGETED n8n NODE DOCUMENTATION", "### Key Node Types and Configurations:"]
    for index, doc in enumerate(docs, start=1):
        excerpt = re.sub(r"\s+", " ", doc.content)[:chars_per_doc]
        lines.append(f"\n#### {index}. {doc.title}\n{excerpt}")
    return "\n".join(lines)


__all__ = ["BUILTIN_DOCS", "KnowledgeIndex", "NodeDoc", "render_doc_excerpts"]
