"""
MCP (Model Context Protocol) - JSON-RPC dispatcher and Azure DevOps tool table.

Exposes Azure DevOps capabilities as standardized MCP tools over the
HTTP + SSE transport in devops_mcp.api.
"""
from .mcp_server import MCPServer, RequireSessionPolicy, SessionPolicy
from .mcp_tools import TOOL_REGISTRY, MCPTool, ToolName

__all__ = ["MCPServer", "SessionPolicy", "RequireSessionPolicy", "TOOL_REGISTRY", "MCPTool", "ToolName"]
