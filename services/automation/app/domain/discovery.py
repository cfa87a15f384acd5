"""JSON-RPC client for the remote node-capability catalog."""
from __future__ import annotations

import itertools
from typing import Any

import httpx
import structlog

from ..config import DiscoverySettings, get_settings
from .errors import DiscoveryConnectionError, DiscoveryToolError

logger = structlog.get_logger(__name__)

SESSION_HEADER = "mcp-session-id"


def _error_details(error: Any) -> tuple[str, Any]:
    if isinstance(error, dict):
        return str(error.get("message") or "unknown error"), error.get("code")
    return str(error), None


class NodeDiscoveryClient:
    """Session-based JSON-RPC 2.0 client authenticated with a bearer token."""

    def __init__(
        self,
        settings: DiscoverySettings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings or get_settings().discovery
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._ids = itertools.count(2)
        self.session_id: str | None = None

    @property
    def connected(self) -> bool:
        return self.session_id is not None

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self._settings.auth_token:
            headers["Authorization"] = f"Bearer {self._settings.auth_token}"
        if self.session_id:
            headers[SESSION_HEADER] = self.session_id
        return headers

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._settings.server_url or "",
                timeout=self._settings.timeout_seconds,
                transport=self._transport,
            )
        return self._client

    async def connect(self) -> None:
        if self.connected:
            return
        if not self._settings.server_url:
            raise DiscoveryConnectionError("Node discovery server URL is not configured")
        payload = {
            "jsonrpc": "2.0",
            "method": "initialize",
            "params": {
                "protocolVersion": self._settings.protocol_version,
                "capabilities": {"resources": {}, "tools": {}},
                "clientInfo": {"name": self._settings.client_name, "version": self._settings.client_version},
            },
            "id": 1,
        }
        try:
            response = await self._http().post("/mcp", json=payload, headers=self._headers())
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            await self._close()
            raise DiscoveryConnectionError(f"Node discovery connection failed: {exc}") from exc
        if not isinstance(body, dict) or body.get("error"):
            await self._close()
            message = _error_details(body["error"])[0] if isinstance(body, dict) else "malformed response"
            raise DiscoveryConnectionError(f"Node discovery initialization failed: {message}")
        self.session_id = response.headers.get(SESSION_HEADER) or str(body.get("id", 1))
        logger.info("discovery.connected", server=self._settings.server_url, session_id=self.session_id)

    async def disconnect(self) -> None:
        if self.session_id is None:
            await self._close()
            return
        session_id = self.session_id
        try:
            await self._http().delete(f"/session/{session_id}", headers=self._headers())
        except httpx.HTTPError as exc:
            logger.warning("discovery.disconnect_failed", session_id=session_id, error=str(exc))
        finally:
            self.session_id = None
            await self._close()
        logger.info("discovery.disconnected", session_id=session_id)

    async def _close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def call_tool(self, name: str, params: dict[str, Any] | None = None) -> Any:
        await self.connect()
        payload = {
            "jsonrpc": "2.0",
            "method": "tools/call",
            "params": {"name": name, "arguments": params or {}},
            "id": next(self._ids),
        }
        try:
            response = await self._http().post("/mcp", json=payload, headers=self._headers())
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise DiscoveryToolError(name, str(exc)) from exc
        if not isinstance(body, dict):
            raise DiscoveryToolError(name, "malformed response")
        error = body.get("error")
        if error:
            message, code = _error_details(error)
            raise DiscoveryToolError(name, message, code=code)
        return body.get("result")

    async def get_node_essentials(self, node_type: str) -> dict[str, Any]:
        result = await self.call_tool("get_node_essentials", {"nodeType": node_type})
        if not isinstance(result, dict):
            return {}
        limit = self._settings.max_essential_fields
        properties = result.get("properties")
        if isinstance(properties, list):
            return {**result, "properties": properties[:limit]}
        if isinstance(properties, dict):
            return {**result, "properties": dict(list(properties.items())[:limit])}
        return result

    async def search_nodes(self, query: str, **options: Any) -> Any:
        return await self.call_tool("search_nodes", {"query": query, **options})

    async def get_node_for_task(self, task: str) -> Any:
        return await self.call_tool("get_node_for_task", {"task": task})

    async def validate_node_operation(self, node_type: str, config: dict[str, Any], profile: str = "runtime") -> Any:
        if profile not in {"runtime", "full", "minimal"}:
            raise ValueError(f"Unknown validation profile: {profile}")
        return await self.call_tool(
            "validate_node_operation", {"nodeType": node_type, "config": config, "profile": profile}
        )

    async def validate_node_minimal(self, node_type: str, config: dict[str, Any]) -> Any:
        return await self.call_tool("validate_node_minimal", {"nodeType": node_type, "config": config})

    async def list_ai_tools(self) -> Any:
        return await self.call_tool("list_ai_tools")

    async def validate_workflow(self, workflow: dict[str, Any]) -> Any:
        return await self.call_tool("validate_workflow", {"workflow": workflow})

    async def list_tasks(self) -> Any:
        return await self.call_tool("list_tasks")


__all__ = ["NodeDiscoveryClient"]
