"""
SSE Server Transport Module

This module implements the Server-Sent Events (SSE) transport for the
VisionStruct MCP server.

Example usage:
```
    # Create a session manager and an SSE transport posting to /messages/
    session_manager = SessionManager(InferenceGateway(settings))
    sse = SseServerTransport("/messages/", session_manager)

    async def handle_sse(request):
        await sse.handle_sse(request.scope, request.receive, request._send)
        return Response()

    routes = [
        Route("/sse", endpoint=handle_sse, methods=["GET"]),
        Mount("/messages/", app=sse.handle_post_message),
    ]
```

The GET handler opens a session, announces the message endpoint (including the
session ID) in an ``endpoint`` event, and then streams every response of that
session as ``message`` events until the client disconnects. Clients POST their
JSON-RPC messages to the announced endpoint.
"""

import logging
from typing import Any
from urllib.parse import quote

import anyio
import pydantic
from sse_starlette import EventSourceResponse
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import Receive, Scope, Send

from visionstruct.exceptions import SessionNotFoundError
from visionstruct.server.http_body import DEFAULT_MAX_BODY_BYTES, BodyTooLargeError, read_request_body
from visionstruct.server.session_manager import SessionManager
from visionstruct.types import JSONRPCMessage, JSONRPCMessageAdapter, dump_message

logger = logging.getLogger(__name__)

SESSION_ID_PARAMS = ("session_id", "sessionId")


class SseServerTransport:
    """
    SSE server transport. Provides two ASGI callables:

    1. handle_sse() handles the long-lived GET stream of one client.
    2. handle_post_message() handles inbound POST requests carrying JSON-RPC
       messages for an existing session.
    """

    def __init__(
        self,
        endpoint: str,
        session_manager: SessionManager,
        *,
        max_body_bytes: int | None = DEFAULT_MAX_BODY_BYTES,
    ) -> None:
        """
        Creates a new SSE server transport, which will direct the client to POST
        messages to the relative path given.

        Args:
            endpoint: A relative path where messages should be posted
                (e.g., "/messages/").
            session_manager: The table the opened sessions are registered in.
            max_body_bytes: Upper bound for a POSTed message, or None for no limit.

        Raises:
            ValueError: If the endpoint is a full URL instead of a relative path
        """
        if "://" in endpoint or endpoint.startswith("//") or "?" in endpoint or "#" in endpoint:
            raise ValueError(
                f"Given endpoint: {endpoint} is not a relative path (e.g., '/messages/'), "
                "expecting a relative path (e.g., '/messages/')."
            )
        if not endpoint.startswith("/"):
            endpoint = "/" + endpoint

        self._endpoint = endpoint
        self._session_manager = session_manager
        self._max_body_bytes = max_body_bytes
        logger.debug(f"SseServerTransport initialized with endpoint: {endpoint}")

    async def handle_sse(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            logger.error("handle_sse received non-HTTP request")
            raise ValueError("handle_sse can only handle HTTP requests")

        write_stream, write_stream_reader = anyio.create_memory_object_stream[JSONRPCMessage](0)
        session_id = self._session_manager.open(write_stream)

        root_path = scope.get("root_path", "")
        client_post_uri = f"{root_path.rstrip('/')}{quote(self._endpoint)}?session_id={session_id}"

        sse_stream_writer, sse_stream_reader = anyio.create_memory_object_stream[dict[str, Any]](0)

        async def sse_writer():
            logger.debug("Starting SSE writer")
            async with sse_stream_writer, write_stream_reader:
                await sse_stream_writer.send({"event": "endpoint", "data": client_post_uri})
                logger.debug(f"Sent endpoint event: {client_post_uri}")

                async for message in write_stream_reader:
                    logger.debug(f"Sending message via SSE: {message}")
                    await sse_stream_writer.send({"event": "message", "data": dump_message(message)})

        try:
            async with anyio.create_task_group() as tg:

                async def response_wrapper(scope: Scope, receive: Receive, send: Send):
                    await EventSourceResponse(content=sse_stream_reader, data_sender_callable=sse_writer)(
                        scope, receive, send
                    )
                    logger.debug(f"Client session disconnected {session_id}")
                    tg.cancel_scope.cancel()

                logger.debug("Starting SSE response task")
                tg.start_soon(response_wrapper, scope, receive, send)
                await self._session_manager.serve(session_id)
        finally:
            self._session_manager.close(session_id)

    async def handle_post_message(self, scope: Scope, receive: Receive, send: Send) -> None:
        logger.debug("Handling POST message")
        request = Request(scope, receive)

        session_id = next(
            (request.query_params[name] for name in SESSION_ID_PARAMS if name in request.query_params),
            None,
        )
        if not session_id:
            logger.warning("Received request without session_id")
            response = Response("session_id is required", status_code=400)
            return await response(scope, receive, send)

        if session_id not in self._session_manager:
            logger.warning(f"Could not find session for ID: {session_id}")
            response = Response("Could not find session", status_code=404)
            return await response(scope, receive, send)

        content_type = request.headers.get("content-type")
        if content_type is None or not content_type.lower().startswith("application/json"):
            response = Response("Invalid Content-Type header", status_code=400)
            return await response(scope, receive, send)

        try:
            body = await read_request_body(request, max_body_bytes=self._max_body_bytes)
        except BodyTooLargeError:
            logger.warning(f"Rejected oversized message for session {session_id}")
            response = Response("Payload too large", status_code=413)
            return await response(scope, receive, send)
        logger.debug(f"Received JSON: {len(body)} bytes")

        try:
            message = JSONRPCMessageAdapter.validate_json(body)
        except pydantic.ValidationError as err:
            logger.warning(f"Failed to parse message: {err}")
            response = Response("Could not parse message", status_code=400)
            return await response(scope, receive, send)

        try:
            await self._session_manager.dispatch(session_id, message)
        except SessionNotFoundError:
            logger.warning(f"Session {session_id} closed before message could be delivered")
            response = Response("Could not find session", status_code=404)
            return await response(scope, receive, send)

        response = Response("Accepted", status_code=202)
        await response(scope, receive, send)
