"""Shared error types for the bridge."""
from typing import Optional


class BridgeError(Exception):
    """Base error for all bridge failures."""


class AzureDevOpsError(BridgeError):
    """A call against the Azure DevOps REST API failed."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class ClientNotInitializedError(AzureDevOpsError):
    """Organization URL or access token was missing at start-up."""

    def __init__(self) -> None:
        super().__init__("Azure DevOps connection not initialized")


class ToolError(BridgeError):
    """Base error for tool-layer failures surfaced as JSON-RPC internal errors."""


class UnknownToolError(ToolError):
    def __init__(self, name: Optional[str]) -> None:
        self.name = name
        super().__init__(f"Tool {name} not supported")


class MissingArgumentError(ToolError):
    def __init__(self, field: str) -> None:
        self.field = field
        super().__init__(f"{field} is required")


class InvalidArgumentError(ToolError):
    def __init__(self, field: str, expected: str) -> None:
        self.field = field
        super().__init__(f"{field} must be {expected}")


class ToolExecutionError(ToolError):
    """The backend call behind a tool failed."""
