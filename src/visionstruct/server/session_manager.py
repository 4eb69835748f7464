"""Session table for the SSE transport."""

from __future__ import annotations

import enum
import logging
import threading
from dataclasses import dataclass
from uuid import uuid4

import anyio
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream

from visionstruct.exceptions import SessionNotFoundError, TransportError
from visionstruct.gateway import InferenceGateway
from visionstruct.server.handler import ProtocolHandler
from visionstruct.types import JSONRPCMessage

logger = logging.getLogger(__name__)


class SessionStatus(enum.Enum):
    OPEN = "open"
    CLOSED = "closed"


@dataclass
class Session:
    """Server-side state bound to one open stream."""

    id: str
    stream: MemoryObjectSendStream[JSONRPCMessage]
    requests_writer: MemoryObjectSendStream[JSONRPCMessage]
    requests: MemoryObjectReceiveStream[JSONRPCMessage]
    status: SessionStatus = SessionStatus.OPEN

    async def send(self, message: JSONRPCMessage) -> None:
        """Write a message to the session's stream."""
        if self.status is SessionStatus.CLOSED:
            raise TransportError(f"Session {self.id} is closed")
        try:
            await self.stream.send(message)
        except (anyio.ClosedResourceError, anyio.BrokenResourceError) as e:
            raise TransportError(f"Stream for session {self.id} is no longer open") from e


class SessionManager:
    """
    Owns the mapping from session ID to open stream.

    Sessions are created with ``open`` when a client connects and removed with
    ``close`` when its stream goes away. Inbound messages are routed with
    ``dispatch`` into the session's request queue, and ``serve`` feeds that
    queue to the session's protocol handler one message at a time, so requests
    of a session are answered in arrival order while different sessions run
    independently.

    The table is guarded by a lock so that it can be mutated from concurrent
    connections.

    Args:
        gateway: The inference gateway tool invocations are relayed to
        queue_size: How many requests may wait behind the one being processed
    """

    def __init__(self, gateway: InferenceGateway, *, queue_size: int = 16):
        self._gateway = gateway
        self._queue_size = queue_size
        self._sessions: dict[str, Session] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions

    def get(self, session_id: str) -> Session | None:
        with self._lock:
            return self._sessions.get(session_id)

    def open(self, stream: MemoryObjectSendStream[JSONRPCMessage]) -> str:
        """Register a new session bound to ``stream`` and return its ID."""
        requests_writer, requests = anyio.create_memory_object_stream[JSONRPCMessage](self._queue_size)
        with self._lock:
            session_id = uuid4().hex
            while session_id in self._sessions:
                session_id = uuid4().hex
            self._sessions[session_id] = Session(
                id=session_id,
                stream=stream,
                requests_writer=requests_writer,
                requests=requests,
            )
        logger.info(f"Created new session with ID: {session_id}")
        return session_id

    def close(self, session_id: str) -> None:
        """Close and unregister a session. Unknown or already closed IDs are ignored."""
        with self._lock:
            session = self._sessions.pop(session_id, None)
            if session is None or session.status is SessionStatus.CLOSED:
                return
            session.status = SessionStatus.CLOSED

        session.requests_writer.close()
        session.stream.close()
        logger.info(f"Closed session {session_id}")

    async def dispatch(self, session_id: str | None, message: JSONRPCMessage) -> None:
        """Queue ``message`` for the session's protocol handler.

        Raises:
            SessionNotFoundError: no open session has this ID
        """
        session = self.get(session_id) if session_id else None
        if session is None or session.status is not SessionStatus.OPEN:
            raise SessionNotFoundError(session_id)

        logger.debug(f"Dispatching message to session {session_id}: {message}")
        try:
            await session.requests_writer.send(message)
        except (anyio.ClosedResourceError, anyio.BrokenResourceError) as e:
            raise SessionNotFoundError(session_id) from e

    async def serve(self, session_id: str) -> None:
        """Process the session's requests until it is closed or its stream breaks."""
        session = self.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)

        handler = ProtocolHandler(self._gateway, session.send, session_id=session_id)
        try:
            async with session.requests:
                async for message in session.requests:
                    try:
                        await handler.handle(message)
                    except TransportError as e:
                        logger.warning(f"Dropping response for session {session_id}: {e}")
                        break
        finally:
            self.close(session_id)
