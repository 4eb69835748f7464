"""Starlette application wiring the SSE transport and metadata routes together."""

from __future__ import annotations

from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.routing import Mount, Route

from visionstruct.gateway import InferenceGateway
from visionstruct.server.metadata import create_metadata_routes
from visionstruct.server.session_manager import SessionManager
from visionstruct.server.sse import SseServerTransport
from visionstruct.settings import Settings


def create_app(settings: Settings | None = None, *, gateway: InferenceGateway | None = None) -> Starlette:
    """Return the server's ASGI application.

    The session manager is exposed as ``app.state.session_manager``.
    """
    settings = settings or Settings()
    gateway = gateway or InferenceGateway(settings)
    session_manager = SessionManager(gateway, queue_size=settings.session_queue_size)
    sse = SseServerTransport(settings.message_path, session_manager, max_body_bytes=settings.max_body_bytes)

    async def sse_endpoint(request: Request) -> Response:
        await sse.handle_sse(request.scope, request.receive, request._send)  # type: ignore[reportPrivateUsage]
        # Return empty response to avoid NoneType error
        return Response()

    routes: list[Route | Mount] = [
        Route(settings.sse_path, endpoint=sse_endpoint, methods=["GET"]),
        Mount(settings.message_path, app=sse.handle_post_message),
    ]
    routes.extend(create_metadata_routes(settings.sse_path))

    app = Starlette(
        debug=settings.debug,
        routes=routes,
        middleware=[
            Middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"]),
        ],
    )
    app.state.session_manager = session_manager
    return app
