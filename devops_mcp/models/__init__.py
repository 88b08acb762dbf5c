# Azure DevOps MCP Bridge - Models Package
from .devops import Project, Repository, WorkItem, WorkItemDraft
from .jsonrpc import (
    ErrorCode,
    JsonRpcError,
    JsonRpcRequest,
    JsonRpcResponse,
    RpcMethod,
    ToolCallResult,
    ToolDescriptor,
)

__all__ = [
    "Project",
    "Repository",
    "WorkItem",
    "WorkItemDraft",
    "ErrorCode",
    "JsonRpcError",
    "JsonRpcRequest",
    "JsonRpcResponse",
    "RpcMethod",
    "ToolCallResult",
    "ToolDescriptor",
]
