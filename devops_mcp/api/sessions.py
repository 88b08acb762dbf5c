"""SSE session store: per-connection event queue, heartbeat task and close signal."""

import asyncio
import logging
import time
import uuid
from datetime import datetime
from typing import AsyncIterator, Dict, Optional

logger = logging.getLogger(__name__)

_CLOSED = object()


def new_session_id() -> str:
    """Random component plus a millisecond clock component."""
    return f"{uuid.uuid4().hex[:12]}-{int(time.time() * 1000):x}"


def format_sse_event(event: str, data: str) -> str:
    return f"event: {event}\ndata: {data}\n\n"


def format_sse_comment(text: str) -> str:
    return f": {text}\n\n"


class Session:
    """One SSE connection. OPEN → (heartbeat)* → CLOSED, never reopened."""

    __slots__ = ("session_id", "created_at", "alive", "closed", "_queue", "_heartbeat_task")

    def __init__(self, session_id: str):
        self.session_id = session_id
        self.created_at = datetime.utcnow()
        self.alive = True
        self.closed = asyncio.Event()
        self._queue: asyncio.Queue = asyncio.Queue()
        self._heartbeat_task: Optional[asyncio.Task] = None

    def push(self, frame: str) -> bool:
        if not self.alive:
            return False
        self._queue.put_nowait(frame)
        return True

    async def frames(self) -> AsyncIterator[str]:
        """Yield queued frames in order until the session closes."""
        while True:
            frame = await self._queue.get()
            if frame is _CLOSED:
                return
            yield frame

    def _close(self) -> None:
        self.alive = False
        if self._heartbeat_task is not None and not self._heartbeat_task.done():
            self._heartbeat_task.cancel()
        self._queue.put_nowait(_CLOSED)
        self.closed.set()

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "created_at": self.created_at.isoformat(),
            "alive": self.alive,
        }


class SessionManager:
    def __init__(self, heartbeat_interval: float = 30.0):
        self.heartbeat_interval = heartbeat_interval
        self._sessions: Dict[str, Session] = {}

    def open_session(self) -> Session:
        session = Session(new_session_id())
        self._sessions[session.session_id] = session
        session._heartbeat_task = asyncio.create_task(self._heartbeat(session))
        logger.info(f"SSE session opened: {session.session_id}. Active sessions: {self.count}")
        return session

    def close_session(self, session_id: str) -> None:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return
        session._close()
        logger.info(f"SSE session closed: {session_id}. Active sessions: {self.count}")

    def close_all(self) -> None:
        for session_id in list(self._sessions):
            self.close_session(session_id)

    def get(self, session_id: Optional[str]) -> Optional[Session]:
        if not session_id:
            return None
        return self._sessions.get(session_id)

    @property
    def count(self) -> int:
        return len(self._sessions)

    async def _heartbeat(self, session: Session) -> None:
        while session.alive:
            await asyncio.sleep(self.heartbeat_interval)
            if not session.push(format_sse_comment(f"heartbeat {int(time.time() * 1000)}")):
                logger.info(f"Heartbeat stopped, session {session.session_id} is gone")
                return
