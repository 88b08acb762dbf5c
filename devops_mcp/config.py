from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Azure DevOps Configuration
    AZURE_DEVOPS_ORG_URL: str = ""
    AZURE_DEVOPS_PAT: str = ""
    AZURE_DEVOPS_DEFAULT_PROJECT: Optional[str] = None
    AZURE_DEVOPS_API_VERSION: str = "7.1"
    AZURE_DEVOPS_REQUEST_TIMEOUT_SECONDS: float = 30.0

    # Server Configuration
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    APP_NAME: str = "azure-devops-mcp-simple"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # MCP transport
    MCP_PROTOCOL_VERSION: str = "2024-11-05"
    HEARTBEAT_INTERVAL_SECONDS: float = 30.0

    # "stateless"       → POSTs are dispatched whether or not they name a session
    # "require_session" → POSTs must name an open SSE session
    SESSION_POLICY: str = "stateless"

    # Per tool-call deadline. Unset means backend calls are never cut short.
    TOOL_CALL_TIMEOUT_SECONDS: Optional[float] = None

    # Refuse to start when the backend rejects the credentials.
    VERIFY_CONNECTION_ON_STARTUP: bool = True

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
