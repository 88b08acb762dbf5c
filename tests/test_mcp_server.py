"""Tests for the JSON-RPC dispatcher."""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest

from devops_mcp.api.sessions import Session
from devops_mcp.errors import AzureDevOpsError, ClientNotInitializedError
from devops_mcp.mcp.mcp_server import (
    MCPServer,
    RequireSessionPolicy,
    SessionPolicy,
    policy_from_settings,
)
from devops_mcp.mcp.mcp_tools import TOOL_REGISTRY
from devops_mcp.models.jsonrpc import ErrorCode
from tests.conftest import make_settings, make_work_item


def _call(name: str, arguments: dict | None = None, request_id=1) -> dict:
    params: dict = {"name": name}
    if arguments is not None:
        params["arguments"] = arguments
    return {"jsonrpc": "2.0", "id": request_id, "method": "tools/call", "params": params}


@pytest.fixture
def server(client, settings) -> MCPServer:
    return MCPServer(client, settings=settings)


class TestEnvelopeValidation:
    @pytest.mark.parametrize("body", [None, [], "hello", 42])
    async def test_non_object_body_is_invalid_request(self, server, body) -> None:
        response = await server.handle(body)
        assert response.error.code == ErrorCode.INVALID_REQUEST
        assert response.id is None

    async def test_missing_jsonrpc_is_invalid_request(self, server) -> None:
        response = await server.handle({"id": 7, "method": "ping"})
        assert response.error.code == ErrorCode.INVALID_REQUEST
        assert response.id == 7

    async def test_wrong_jsonrpc_version_is_invalid_request(self, server) -> None:
        response = await server.handle({"jsonrpc": "1.0", "id": "a", "method": "ping"})
        assert response.error.code == ErrorCode.INVALID_REQUEST
        assert response.id == "a"

    async def test_missing_method_without_error_is_invalid_request(self, server) -> None:
        response = await server.handle({"jsonrpc": "2.0", "id": 3})
        body = response.to_dict()
        assert body["jsonrpc"] == "2.0"
        assert body["id"] == 3
        assert body["error"]["code"] == -32600
        assert "result" not in body

    async def test_missing_method_and_id_echoes_null(self, server) -> None:
        body = (await server.handle({"jsonrpc": "2.0"})).to_dict()
        assert body["id"] is None
        assert body["error"]["code"] == -32600

    async def test_peer_error_is_acknowledged(self, server) -> None:
        response = await server.handle(
            {"jsonrpc": "2.0", "id": 11, "error": {"code": -32000, "message": "client side failure"}}
        )
        assert response.error is None
        assert response.id == 11
        assert response.result == {"acknowledged": True}


class TestIdEcho:
    @pytest.mark.parametrize("request_id", [1, 0, 1.5, -2, "abc", None])
    async def test_id_is_echoed_verbatim(self, server, request_id) -> None:
        response = await server.handle({"jsonrpc": "2.0", "id": request_id, "method": "ping"})
        assert response.to_dict()["id"] == request_id

    async def test_absent_id_defaults_to_null(self, server) -> None:
        body = (await server.handle({"jsonrpc": "2.0", "method": "notifications/initialized"})).to_dict()
        assert body["id"] is None
        assert body["result"] == {}

    async def test_id_echoed_on_tool_failure(self, server) -> None:
        response = await server.handle(_call("get_work_item", {}, request_id="req-9"))
        assert response.id == "req-9"


class TestMethodRouting:
    @pytest.mark.parametrize("method", ["resources/list", "tools/delete", "", "Initialize", "tools/list "])
    async def test_unknown_method_is_method_not_found(self, server, method) -> None:
        response = await server.handle({"jsonrpc": "2.0", "id": 1, "method": method})
        if method == "":
            assert response.error.code == ErrorCode.INVALID_REQUEST
        else:
            assert response.error.code == ErrorCode.METHOD_NOT_FOUND
            assert response.error.message == "Method not found"

    async def test_initialize_returns_static_metadata(self, server) -> None:
        response = await server.handle({"jsonrpc": "2.0", "id": 1, "method": "initialize", "params": {}})
        assert response.result == {
            "protocolVersion": "2024-11-05",
            "capabilities": {"tools": {}},
            "serverInfo": {"name": "azure-devops-mcp-simple", "version": "1.0.0"},
        }

    async def test_ping_returns_empty_result(self, server) -> None:
        response = await server.handle({"jsonrpc": "2.0", "id": 2, "method": "ping"})
        assert response.result == {}

    async def test_hello_reports_session(self, server) -> None:
        session = Session("abc-123")
        response = await server.handle({"jsonrpc": "2.0", "id": 2, "method": "hello"}, session)
        assert response.result["sessionId"] == "abc-123"
        assert response.result["serverName"] == "azure-devops-mcp-simple"

    async def test_hello_without_session(self, server) -> None:
        response = await server.handle({"jsonrpc": "2.0", "id": 2, "method": "hello"})
        assert response.result["sessionId"] is None


class TestToolsList:
    async def test_lists_every_registered_tool(self, server) -> None:
        response = await server.handle({"jsonrpc": "2.0", "id": 1, "method": "tools/list"})
        names = [t["name"] for t in response.result["tools"]]
        assert names == [name.value for name in TOOL_REGISTRY]
        for tool in response.result["tools"]:
            assert set(tool) == {"name", "description", "inputSchema"}

    async def test_is_idempotent_across_calls(self, server) -> None:
        first = await server.handle({"jsonrpc": "2.0", "id": 1, "method": "tools/list"})
        await server.handle(_call("get_work_item", {"workItemId": 1}))
        await server.handle(_call("list_projects"))
        second = await server.handle({"jsonrpc": "2.0", "id": 1, "method": "tools/list"})
        assert first.result == second.result

    async def test_input_schema_survives_json_round_trip(self, server) -> None:
        response = await server.handle({"jsonrpc": "2.0", "id": 1, "method": "tools/list"})
        wire = json.loads(json.dumps(response.to_dict()))
        for sent, tool in zip(wire["result"]["tools"], TOOL_REGISTRY.values()):
            assert sent["inputSchema"] == tool.input_schema


class TestToolsCall:
    async def test_get_work_item_scenario(self, server, client) -> None:
        response = await server.handle(_call("get_work_item", {"workItemId": 594}))
        assert response.error is None
        content = response.result["content"]
        assert len(content) == 1
        assert content[0]["type"] == "text"
        text = content[0]["text"]
        assert "X" in text
        assert "Active" in text
        assert "594" in text
        client.get_work_item.assert_awaited_once_with(594)

    @pytest.mark.parametrize(
        "tool, arguments, missing",
        [
            ("get_work_item", {}, "workItemId"),
            ("get_work_item", {"workItemId": None}, "workItemId"),
            ("get_project", {}, "projectId"),
            ("create_work_item", {"project": "Fabrikam", "title": "t"}, "workItemType"),
            ("query_work_items", {"project": "Fabrikam"}, "query"),
            ("get_repository", {"project": "Fabrikam"}, "repositoryId"),
        ],
    )
    async def test_missing_required_argument_never_reaches_backend(
        self, server, client, tool, arguments, missing
    ) -> None:
        response = await server.handle(_call(tool, arguments))
        assert response.error.code == ErrorCode.INTERNAL_ERROR
        assert missing in response.error.message
        assert missing in response.error.data
        for capability in (
            client.get_work_item,
            client.get_project,
            client.create_work_item,
            client.query_work_items,
            client.get_repository,
        ):
            capability.assert_not_awaited()

    async def test_fractional_work_item_id_is_not_truncated(self, server, client) -> None:
        response = await server.handle(_call("get_work_item", {"workItemId": 594.9}))
        assert response.error.code == ErrorCode.INTERNAL_ERROR
        assert response.error.data == "workItemId must be an integer"
        client.get_work_item.assert_not_awaited()

    async def test_missing_arguments_object_counts_as_empty(self, server, client) -> None:
        response = await server.handle(_call("get_work_item"))
        assert "workItemId" in response.error.data
        client.get_work_item.assert_not_awaited()

    async def test_tool_without_required_arguments_runs_without_arguments(self, server, client) -> None:
        response = await server.handle(_call("list_projects"))
        assert "Fabrikam" in response.result["content"][0]["text"]
        client.list_projects.assert_awaited_once()

    async def test_unknown_tool_is_internal_error(self, server) -> None:
        response = await server.handle(_call("delete_everything", {}))
        assert response.error.code == ErrorCode.INTERNAL_ERROR
        assert response.error.data == "Tool delete_everything not supported"

    async def test_missing_tool_name_is_internal_error(self, server) -> None:
        response = await server.handle({"jsonrpc": "2.0", "id": 1, "method": "tools/call", "params": {}})
        assert response.error.code == ErrorCode.INTERNAL_ERROR
        assert "not supported" in response.error.data

    async def test_non_object_arguments_rejected(self, server, client) -> None:
        response = await server.handle(_call("get_work_item", ["594"]))
        assert response.error.code == ErrorCode.INTERNAL_ERROR
        client.get_work_item.assert_not_awaited()

    async def test_backend_failure_surfaces_with_cause(self, server, client) -> None:
        client.get_work_item.side_effect = AzureDevOpsError("TF401232: Work item 594 does not exist", 404)
        response = await server.handle(_call("get_work_item", {"workItemId": 594}))
        assert response.error.code == ErrorCode.INTERNAL_ERROR
        assert response.error.message == "Internal error executing tool"
        assert response.error.data.startswith("Failed to get work item 594:")
        assert "TF401232" in response.error.data
        assert response.result is None

    async def test_not_initialized_backend_surfaces_as_error(self, server, client) -> None:
        client.list_projects.side_effect = ClientNotInitializedError()
        response = await server.handle(_call("list_projects"))
        assert "Azure DevOps connection not initialized" in response.error.data

    async def test_unexpected_handler_exception_is_internal_error(self, server, client) -> None:
        client.get_project.side_effect = RuntimeError("socket exploded")
        response = await server.handle(_call("get_project", {"projectId": "Fabrikam"}))
        assert response.error.code == ErrorCode.INTERNAL_ERROR
        assert response.error.data == "socket exploded"

    async def test_search_stub_never_calls_backend(self, server, client) -> None:
        response = await server.handle(_call("search_repository_code", {"searchText": "TODO"}))
        assert "not available" in response.result["content"][0]["text"]
        client.search_code.assert_not_awaited()

    async def test_concurrent_calls_do_not_block_each_other(self, server, client) -> None:
        finished: list[str] = []

        async def slow_work_item(work_item_id):
            await asyncio.sleep(0.2)
            return make_work_item(id=work_item_id)

        client.get_work_item.side_effect = slow_work_item

        async def run(body, label):
            response = await server.handle(body)
            finished.append(label)
            return response

        slow, fast = await asyncio.gather(
            run(_call("get_work_item", {"workItemId": 594}, request_id="slow"), "slow"),
            run(_call("list_projects", request_id="fast"), "fast"),
        )
        assert finished == ["fast", "slow"]
        assert slow.id == "slow" and slow.error is None
        assert fast.id == "fast" and fast.error is None

    async def test_timeout_bounds_slow_backend(self, client) -> None:
        server = MCPServer(client, settings=make_settings(TOOL_CALL_TIMEOUT_SECONDS=0.05))

        async def hang(work_item_id):
            await asyncio.sleep(5)

        client.get_work_item.side_effect = hang
        response = await server.handle(_call("get_work_item", {"workItemId": 1}))
        assert response.error.code == ErrorCode.INTERNAL_ERROR
        assert "timed out" in response.error.data


class TestSessionPolicy:
    def test_default_policy_is_stateless(self, settings) -> None:
        assert type(policy_from_settings(settings)) is SessionPolicy

    def test_require_session_from_settings(self) -> None:
        policy = policy_from_settings(make_settings(SESSION_POLICY="require_session"))
        assert isinstance(policy, RequireSessionPolicy)

    def test_unknown_policy_rejected(self) -> None:
        with pytest.raises(ValueError, match="SESSION_POLICY"):
            policy_from_settings(make_settings(SESSION_POLICY="sticky"))

    async def test_require_session_rejects_unbound_request(self, client, settings) -> None:
        server = MCPServer(client, settings=settings, policy=RequireSessionPolicy())
        response = await server.handle(_call("get_work_item", {"workItemId": 594}))
        assert response.error.code == ErrorCode.INVALID_REQUEST
        client.get_work_item.assert_not_awaited()

    async def test_require_session_admits_open_session(self, client, settings) -> None:
        server = MCPServer(client, settings=settings, policy=RequireSessionPolicy())
        response = await server.handle(_call("get_work_item", {"workItemId": 594}), Session("s-1"))
        assert response.error is None

    async def test_unknown_method_checked_before_policy(self, client, settings) -> None:
        server = MCPServer(client, settings=settings, policy=RequireSessionPolicy())
        response = await server.handle({"jsonrpc": "2.0", "id": 1, "method": "nope"})
        assert response.error.code == ErrorCode.METHOD_NOT_FOUND

    async def test_stateless_ignores_session(self, server) -> None:
        response = await server.handle(_call("list_projects"), None)
        assert response.error is None
