from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, StrictFloat, StrictInt, StrictStr

JSONRPC_VERSION = "2.0"

RequestId = Union[StrictStr, StrictInt, StrictFloat, None]


class ErrorCode(int, Enum):
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INTERNAL_ERROR = -32603


class RpcMethod(str, Enum):
    INITIALIZE = "initialize"
    TOOLS_LIST = "tools/list"
    TOOLS_CALL = "tools/call"
    NOTIFICATIONS_INITIALIZED = "notifications/initialized"
    PING = "ping"
    HELLO = "hello"


class JsonRpcRequest(BaseModel):
    """Incoming envelope. ``method`` stays optional so peer error echoes parse."""

    model_config = ConfigDict(extra="ignore")

    jsonrpc: StrictStr
    id: RequestId = None
    method: Optional[StrictStr] = None
    params: Optional[Union[dict, list]] = None
    error: Optional[Any] = None


class JsonRpcError(BaseModel):
    code: int
    message: str
    data: Optional[Any] = None

    def to_dict(self) -> dict:
        payload = {"code": self.code, "message": self.message}
        if self.data is not None:
            payload["data"] = self.data
        return payload


class JsonRpcResponse(BaseModel):
    id: RequestId = None
    result: Optional[Any] = None
    error: Optional[JsonRpcError] = None

    @classmethod
    def success(cls, request_id: RequestId, result: Any) -> "JsonRpcResponse":
        return cls(id=request_id, result=result)

    @classmethod
    def failure(
        cls,
        request_id: RequestId,
        code: ErrorCode,
        message: str,
        data: Optional[Any] = None,
    ) -> "JsonRpcResponse":
        return cls(id=request_id, error=JsonRpcError(code=int(code), message=message, data=data))

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def to_dict(self) -> dict:
        # Exactly one of result/error, and id is always present (even null).
        payload: dict = {"jsonrpc": JSONRPC_VERSION, "id": self.id}
        if self.error is not None:
            payload["error"] = self.error.to_dict()
        else:
            payload["result"] = self.result if self.result is not None else {}
        return payload


class ToolDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    inputSchema: dict


class TextContent(BaseModel):
    type: str = "text"
    text: str


class ToolCallResult(BaseModel):
    content: list[TextContent]

    @classmethod
    def from_text(cls, text: str) -> "ToolCallResult":
        return cls(content=[TextContent(text=text)])
