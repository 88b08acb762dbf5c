"""Azure DevOps MCP bridge over HTTP + Server-Sent Events."""

__version__ = "1.0.0"
