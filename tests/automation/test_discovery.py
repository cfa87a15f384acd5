import json

import httpx
import pytest

from services.automation.app.config import DiscoverySettings
from services.automation.app.domain.discovery import NodeDiscoveryClient
from services.automation.app.domain.errors import DiscoveryConnectionError, DiscoveryToolError


class CatalogServer:
    """Minimal JSON-RPC catalog that records every request it sees."""

    def __init__(self, tool_results=None, tool_error=None):
        self.requests: list[httpx.Request] = []
        self.tool_results = tool_results or {}
        self.tool_error = tool_error

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == "DELETE":
            return httpx.Response(204)
        body = json.loads(request.content)
        if body["method"] == "initialize":
            return httpx.Response(
                200,
                json={"jsonrpc": "2.0", "id": body["id"], "result": {"serverInfo": {"name": "catalog"}}},
                headers={"mcp-session-id": "session-42"},
            )
        if self.tool_error:
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "error": self.tool_error})
        name = body["params"]["name"]
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": self.tool_results.get(name)})


def _client(server: CatalogServer, **overrides) -> NodeDiscoveryClient:
    settings = DiscoverySettings(server_url="http://catalog.test", auth_token="catalog-token", **overrides)
    return NodeDiscoveryClient(settings, transport=httpx.MockTransport(server))


@pytest.mark.asyncio
async def test_session_header_is_sent_on_tool_calls():
    server = CatalogServer(tool_results={"search_nodes": {"nodes": ["gmail"]}})
    client = _client(server)

    result = await client.search_nodes("email", limit=5)

    assert result == {"nodes": ["gmail"]}
    assert client.session_id == "session-42"
    initialize, call = server.requests
    assert initialize.headers["authorization"] == "Bearer catalog-token"
    assert "mcp-session-id" not in initialize.headers
    assert json.loads(initialize.content)["params"]["clientInfo"]["name"] == "automation-generator"
    assert call.headers["mcp-session-id"] == "session-42"
    assert json.loads(call.content)["params"] == {"name": "search_nodes", "arguments": {"query": "email", "limit": 5}}


@pytest.mark.asyncio
async def test_request_ids_increase_per_call():
    server = CatalogServer()
    client = _client(server)

    await client.list_tasks()
    await client.list_ai_tools()

    ids = [json.loads(request.content)["id"] for request in server.requests]
    assert ids == [1, 2, 3]


@pytest.mark.asyncio
async def test_tool_error_is_raised_with_code():
    client = _client(CatalogServer(tool_error={"code": -32602, "message": "unknown node type"}))

    with pytest.raises(DiscoveryToolError) as excinfo:
        await client.get_node_for_task("send slack message")

    assert excinfo.value.tool == "get_node_for_task"
    assert excinfo.value.code == -32602
    assert "unknown node type" in str(excinfo.value)


@pytest.mark.asyncio
async def test_missing_server_url_fails_to_connect():
    client = NodeDiscoveryClient(DiscoverySettings(server_url=None))
    with pytest.raises(DiscoveryConnectionError, match="not configured"):
        await client.connect()


@pytest.mark.asyncio
async def test_unreachable_server_fails_to_connect():
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = NodeDiscoveryClient(DiscoverySettings(server_url="http://catalog.test"), transport=httpx.MockTransport(refuse))

    with pytest.raises(DiscoveryConnectionError, match="connection failed"):
        await client.connect()
    assert client.connected is False


@pytest.mark.asyncio
async def test_essentials_are_capped():
    properties = [{"name": f"field{i}"} for i in range(30)]
    server = CatalogServer(tool_results={"get_node_essentials": {"nodeType": "httpRequest", "properties": properties}})
    client = _client(server, max_essential_fields=10)

    essentials = await client.get_node_essentials("httpRequest")

    assert len(essentials["properties"]) == 10
    assert essentials["nodeType"] == "httpRequest"


@pytest.mark.asyncio
async def test_unknown_validation_profile_is_rejected():
    server = CatalogServer()
    client = _client(server)
    with pytest.raises(ValueError, match="profile"):
        await client.validate_node_operation("httpRequest", {}, profile="strict")
    assert server.requests == []


@pytest.mark.asyncio
async def test_disconnect_deletes_session():
    server = CatalogServer()
    client = _client(server)
    await client.connect()

    await client.disconnect()

    assert client.connected is False
    assert server.requests[-1].method == "DELETE"
    assert server.requests[-1].url.path == "/session/session-42"


@pytest.mark.asyncio
async def test_string_error_on_initialize_fails_to_connect():
    def busy(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "error": "server busy"})

    client = NodeDiscoveryClient(DiscoverySettings(server_url="http://catalog.test"), transport=httpx.MockTransport(busy))

    with pytest.raises(DiscoveryConnectionError, match="initialization failed: server busy"):
        await client.connect()
    assert client.connected is False


@pytest.mark.asyncio
async def test_string_tool_error_is_raised_without_code():
    client = _client(CatalogServer(tool_error="rate limited"))

    with pytest.raises(DiscoveryToolError) as excinfo:
        await client.search_nodes("email")

    assert excinfo.value.code is None
    assert "rate limited" in str(excinfo.value)
