import json
import logging
import sys
import time
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from .api.routes import router
from .api.sessions import SessionManager
from .config import Settings, get_settings
from .mcp.mcp_server import MCPServer
from .mcp.mcp_tools import TOOL_REGISTRY
from .services.azure_devops import AzureDevOpsClient

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


# ─── Request logging middleware ───────────────────────────────────────────────
class RequestLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start = time.monotonic()
        response = await call_next(request)
        elapsed = (time.monotonic() - start) * 1000
        if request.url.path not in ("/health", "/favicon.ico"):
            logger.info(json.dumps({
                "method": request.method,
                "path":   request.url.path,
                "status": response.status_code,
                "ms":     round(elapsed, 1),
                "client": request.client.host if request.client else "unknown",
                "agent":  request.headers.get("user-agent", "unknown"),
            }))
        return response


# ─── Lifespan ─────────────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    client: AzureDevOpsClient = app.state.devops_client

    logger.info(json.dumps({
        "event":   "startup",
        "app":     settings.APP_NAME,
        "version": settings.APP_VERSION,
        "org":     settings.AZURE_DEVOPS_ORG_URL,
        "project": settings.AZURE_DEVOPS_DEFAULT_PROJECT,
        "tools":   len(TOOL_REGISTRY),
    }))

    if settings.VERIFY_CONNECTION_ON_STARTUP and client.initialized:
        if not await client.test_connection():
            await client.aclose()
            raise RuntimeError("Failed to connect to Azure DevOps API")
        logger.info("Successfully connected to Azure DevOps API")

    yield

    # Shutdown broadcast: every open SSE stream ends and its heartbeat stops.
    app.state.session_manager.close_all()
    await client.aclose()
    logger.info(json.dumps({"event": "shutdown", "app": settings.APP_NAME}))


# ─── App ──────────────────────────────────────────────────────────────────────
def create_app(
    settings: Optional[Settings] = None,
    client: Optional[AzureDevOpsClient] = None,
) -> FastAPI:
    settings = settings or get_settings()
    client = client or AzureDevOpsClient.from_settings(settings)

    app = FastAPI(
        title="Azure DevOps MCP Server",
        description="MCP bridge to Azure DevOps over HTTP + Server-Sent Events",
        version=settings.APP_VERSION,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.devops_client = client
    app.state.session_manager = SessionManager(heartbeat_interval=settings.HEARTBEAT_INTERVAL_SECONDS)
    app.state.mcp_server = MCPServer(client, settings=settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Origin", "X-Requested-With", "Content-Type", "Accept", "Authorization", "Mcp-Session-Id"],
    )
    app.add_middleware(RequestLogMiddleware)

    # ─── Global error handler ─────────────────────────────────────────────────
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error":   "internal_server_error",
                "message": str(exc) if settings.DEBUG else "An unexpected error occurred",
                "path":    str(request.url.path),
            },
        )

    app.include_router(router)
    return app


def run() -> None:
    settings = get_settings()
    configure_logging(settings)
    logger.info("Azure DevOps MCP Server (Simple) - Starting up")

    if not settings.AZURE_DEVOPS_ORG_URL:
        logger.error("AZURE_DEVOPS_ORG_URL environment variable is required")
        sys.exit(1)
    if not settings.AZURE_DEVOPS_PAT:
        logger.error("AZURE_DEVOPS_PAT environment variable is required")
        sys.exit(1)

    logger.info(f"Connect to http://{settings.HOST}:{settings.PORT}/sse to establish an SSE connection")
    uvicorn.run(create_app(settings), host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    run()
