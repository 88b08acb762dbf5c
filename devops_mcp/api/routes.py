"""HTTP routes: SSE stream, JSON-RPC POST endpoints and system endpoints."""

import json
import logging
import time
from datetime import datetime
from typing import AsyncIterator, Optional

from fastapi import APIRouter, Query, Request, Response
from fastapi.responses import JSONResponse, StreamingResponse

from ..mcp.mcp_server import MCPServer, raw_request_id
from ..mcp.mcp_tools import tool_names
from ..models.jsonrpc import ErrorCode, JsonRpcResponse
from .sessions import Session, SessionManager, format_sse_event

logger = logging.getLogger(__name__)

router = APIRouter()

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def _sessions(request: Request) -> SessionManager:
    return request.app.state.session_manager


def _mcp_server(request: Request) -> MCPServer:
    return request.app.state.mcp_server


async def sse_event_stream(
    session: Session, sessions: SessionManager, server: MCPServer
) -> AsyncIterator[str]:
    """endpoint event, hello message, then queued heartbeats until the session closes."""
    try:
        yield format_sse_event("endpoint", f"/message?sessionId={session.session_id}")
        hello = {
            "jsonrpc": "2.0",
            "method": "hello",
            "params": server.hello_params(session),
            "id": f"hello-{int(time.time() * 1000)}",
        }
        yield format_sse_event("message", json.dumps(hello))
        async for frame in session.frames():
            yield frame
    finally:
        # Client went away, a write failed, or the server is shutting down.
        sessions.close_session(session.session_id)


# ── SSE endpoint ──────────────────────────────────────────────────────────────

@router.get("/sse")
async def open_sse_stream(request: Request):
    sessions = _sessions(request)
    session = sessions.open_session()
    logger.info(f"SSE connection established with session: {session.session_id}")
    return StreamingResponse(
        sse_event_stream(session, sessions, _mcp_server(request)),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


# ── JSON-RPC endpoints ────────────────────────────────────────────────────────

@router.post("/sse")
async def post_sse_message(request: Request, session_id: Optional[str] = Query(None, alias="sessionId")):
    return await _dispatch(request, session_id)


@router.post("/message")
async def post_message(request: Request, session_id: Optional[str] = Query(None, alias="sessionId")):
    return await _dispatch(request, session_id)


async def _dispatch(request: Request, session_id: Optional[str]) -> JSONResponse:
    session_id = session_id or request.headers.get("Mcp-Session-Id")
    session = _sessions(request).get(session_id)
    if session_id and session is None:
        logger.warning(f"POST names unknown session: {session_id}")

    raw = await request.body()
    try:
        body = json.loads(raw) if raw else None
    except ValueError:
        logger.warning("MCP request body is not valid JSON")
        body = None

    try:
        response = await _mcp_server(request).handle(body, session)
    except Exception as e:
        logger.error(f"Error processing MCP request: {e}", exc_info=True)
        request_id = raw_request_id(body) if isinstance(body, dict) else None
        return JSONResponse(
            status_code=500,
            content=JsonRpcResponse.failure(
                request_id,
                ErrorCode.INTERNAL_ERROR,
                "Internal error",
            ).to_dict(),
        )
    logger.debug(f"MCP Response: {response.to_dict()}")
    return rpc_json_response(response)


def rpc_json_response(response: JsonRpcResponse) -> JSONResponse:
    status = 200
    if response.error is not None and response.error.code == ErrorCode.INVALID_REQUEST:
        status = 400
    return JSONResponse(status_code=status, content=response.to_dict())


# ── System endpoints ──────────────────────────────────────────────────────────

@router.get("/health", tags=["system"])
async def health_check(request: Request):
    settings = request.app.state.settings
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat(),
        "service": settings.APP_NAME,
        "sessions": _sessions(request).count,
    }


@router.get("/", tags=["system"])
async def root():
    return {
        "service": "Azure DevOps MCP Server (Simple)",
        "endpoints": {
            "health": "/health",
            "sse": "/sse",
            "message": "/message?sessionId=<sessionId>",
        },
        "tools": tool_names(),
        "timestamp": datetime.utcnow().isoformat(),
    }


@router.options("/{path:path}", include_in_schema=False)
async def preflight(path: str):
    return Response(status_code=200)
