"""
MCP Server - JSON-RPC 2.0 dispatcher for the SSE bridge.

Takes one decoded request body plus the session it arrived on and always
produces exactly one response envelope. Supports:
  - initialize / notifications/initialized / ping / hello
  - tools/list  (static TOOL_REGISTRY descriptors)
  - tools/call  (argument validation, AzureDevOpsClient call, text result)

Architecture:
  MCPServer
    ├── _methods          - RpcMethod → handler coroutine
    ├── policy            - SessionPolicy deciding whether a session may call
    ├── TOOL_REGISTRY     - tool schemas + handlers (from mcp_tools.py)
    └── handle()          - envelope checks, routing, error mapping
"""
import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional

from pydantic import ValidationError

from ..api.sessions import Session
from ..config import Settings, get_settings
from ..errors import MissingArgumentError, ToolError, ToolExecutionError
from ..models.jsonrpc import (
    JSONRPC_VERSION,
    ErrorCode,
    JsonRpcRequest,
    JsonRpcResponse,
    RpcMethod,
    ToolCallResult,
)
from ..services.azure_devops import AzureDevOpsClient
from .mcp_tools import MCPTool, get_tool, list_tool_descriptors

logger = logging.getLogger(__name__)

MethodHandler = Callable[[JsonRpcRequest, Optional[Session]], Awaitable[Any]]


# ── Session policies ──────────────────────────────────────────────────────────

class SessionPolicy:
    """Stateless bridge: any request is admitted, with or without a session."""

    name = "stateless"

    def admit(self, method: RpcMethod, session: Optional[Session]) -> Optional[str]:
        """Return a rejection reason, or None to let the request through."""
        return None


class RequireSessionPolicy(SessionPolicy):
    """Every request must name an open SSE session."""

    name = "require_session"

    def admit(self, method: RpcMethod, session: Optional[Session]) -> Optional[str]:
        if session is None or not session.alive:
            return "Request is not bound to an open SSE session"
        return None


SESSION_POLICIES: dict[str, type[SessionPolicy]] = {
    SessionPolicy.name: SessionPolicy,
    RequireSessionPolicy.name: RequireSessionPolicy,
}


def policy_from_settings(settings: Settings) -> SessionPolicy:
    try:
        return SESSION_POLICIES[settings.SESSION_POLICY]()
    except KeyError:
        raise ValueError(
            f"Unknown SESSION_POLICY '{settings.SESSION_POLICY}'. "
            f"Valid: {sorted(SESSION_POLICIES)}"
        )


# ── Dispatcher ────────────────────────────────────────────────────────────────

class MCPServer:
    """
    JSON-RPC dispatcher for the Azure DevOps MCP bridge.

    Stateless apart from the shared AzureDevOpsClient: the session is passed
    in on every call and is only consulted by the policy and by ``hello``.
    """

    def __init__(
        self,
        client: AzureDevOpsClient,
        settings: Optional[Settings] = None,
        policy: Optional[SessionPolicy] = None,
    ):
        self._client = client
        self._settings = settings or get_settings()
        self.policy = policy or policy_from_settings(self._settings)
        self._methods: dict[RpcMethod, MethodHandler] = {
            RpcMethod.INITIALIZE: self._initialize,
            RpcMethod.TOOLS_LIST: self._tools_list,
            RpcMethod.TOOLS_CALL: self._tools_call,
            RpcMethod.NOTIFICATIONS_INITIALIZED: self._notifications_initialized,
            RpcMethod.PING: self._ping,
            RpcMethod.HELLO: self._hello,
        }
        logger.info(f"MCPServer initialized with session policy '{self.policy.name}'")

    @property
    def server_info(self) -> dict:
        return {"name": self._settings.APP_NAME, "version": self._settings.APP_VERSION}

    async def handle(self, body: Any, session: Optional[Session] = None) -> JsonRpcResponse:
        if not isinstance(body, dict):
            return _invalid_request(None, "Request body must be a JSON-RPC object")

        request_id = raw_request_id(body)
        try:
            request = JsonRpcRequest.model_validate(body)
        except ValidationError as e:
            logger.warning(f"Invalid MCP request envelope: {e.error_count()} error(s)")
            return _invalid_request(request_id, "Malformed JSON-RPC envelope")

        if request.jsonrpc != JSONRPC_VERSION:
            return _invalid_request(request.id, f"jsonrpc must be '{JSONRPC_VERSION}'")

        if request.error is not None:
            # Some clients echo failures back as pseudo-requests.
            logger.warning(f"Peer reported an error for id={request.id}: {request.error}")
            return JsonRpcResponse.success(request.id, {"acknowledged": True})

        if not request.method:
            return _invalid_request(request.id, "method is required")

        try:
            method = RpcMethod(request.method)
        except ValueError:
            logger.info(f"Method not found: {request.method}")
            return JsonRpcResponse.failure(request.id, ErrorCode.METHOD_NOT_FOUND, "Method not found")

        rejection = self.policy.admit(method, session)
        if rejection:
            return _invalid_request(request.id, rejection)

        logger.info(f"Processing MCP method: {method.value}")
        return await self._methods[method](request, session)

    # ── Methods ───────────────────────────────────────────────────────────────

    async def _initialize(self, request: JsonRpcRequest, session: Optional[Session]) -> JsonRpcResponse:
        return JsonRpcResponse.success(
            request.id,
            {
                "protocolVersion": self._settings.MCP_PROTOCOL_VERSION,
                "capabilities": {"tools": {}},
                "serverInfo": self.server_info,
            },
        )

    async def _tools_list(self, request: JsonRpcRequest, session: Optional[Session]) -> JsonRpcResponse:
        return JsonRpcResponse.success(request.id, {"tools": list_tool_descriptors()})

    async def _tools_call(self, request: JsonRpcRequest, session: Optional[Session]) -> JsonRpcResponse:
        params = request.params if isinstance(request.params, dict) else {}
        name = params.get("name")
        arguments = params.get("arguments")
        if arguments is None:
            arguments = {}
        logger.info(f"Tool call: {name} with args: {arguments}")

        try:
            if not isinstance(arguments, dict):
                raise ToolExecutionError("Tool arguments must be an object")
            tool = get_tool(name)
            tool.validate_arguments(arguments)
        except MissingArgumentError as e:
            return JsonRpcResponse.failure(
                request.id,
                ErrorCode.INTERNAL_ERROR,
                f"Missing required argument: {e.field}",
                data=str(e),
            )
        except ToolError as e:
            return _tool_failure(request.id, e)

        start = time.monotonic()
        try:
            text = await self._execute(tool, arguments)
        except Exception as e:
            elapsed_ms = int((time.monotonic() - start) * 1000)
            logger.error(f"MCPServer: {tool.name.value} failed in {elapsed_ms}ms: {e}")
            return _tool_failure(request.id, e)

        elapsed_ms = int((time.monotonic() - start) * 1000)
        logger.info(f"MCPServer: {tool.name.value} completed in {elapsed_ms}ms")
        return JsonRpcResponse.success(request.id, ToolCallResult.from_text(text).model_dump())

    async def _notifications_initialized(
        self, request: JsonRpcRequest, session: Optional[Session]
    ) -> JsonRpcResponse:
        logger.info("Client initialized notification received")
        return JsonRpcResponse.success(request.id, {})

    async def _ping(self, request: JsonRpcRequest, session: Optional[Session]) -> JsonRpcResponse:
        return JsonRpcResponse.success(request.id, {})

    async def _hello(self, request: JsonRpcRequest, session: Optional[Session]) -> JsonRpcResponse:
        return JsonRpcResponse.success(request.id, self.hello_params(session))

    def hello_params(self, session: Optional[Session]) -> dict:
        return {
            "sessionId": session.session_id if session else None,
            "serverName": self._settings.APP_NAME,
            "serverVersion": self._settings.APP_VERSION,
        }

    # ── Internals ─────────────────────────────────────────────────────────────

    async def _execute(self, tool: MCPTool, arguments: dict) -> str:
        timeout = self._settings.TOOL_CALL_TIMEOUT_SECONDS
        if not timeout:
            return await tool.execute(self._client, arguments)
        try:
            return await asyncio.wait_for(tool.execute(self._client, arguments), timeout=timeout)
        except asyncio.TimeoutError:
            raise ToolExecutionError(f"Tool {tool.name.value} timed out after {timeout}s")


def raw_request_id(body: dict) -> Any:
    """The envelope id when it is a usable JSON-RPC id (string or number), else None."""
    value = body.get("id")
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        return None
    return value


def _invalid_request(request_id: Any, reason: str) -> JsonRpcResponse:
    logger.warning(f"Invalid MCP request: {reason}")
    return JsonRpcResponse.failure(request_id, ErrorCode.INVALID_REQUEST, "Invalid Request", data=reason)


def _tool_failure(request_id: Any, error: Exception) -> JsonRpcResponse:
    return JsonRpcResponse.failure(
        request_id,
        ErrorCode.INTERNAL_ERROR,
        "Internal error executing tool",
        data=str(error),
    )
