"""Read-only discovery routes describing the server's tools."""

from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from visionstruct import registry

NO_STORE_HEADERS = {"Cache-Control": "no-store"}


async def handle_metadata(request: Request) -> JSONResponse:
    return JSONResponse(registry.server_metadata(), headers=NO_STORE_HEADERS)


async def handle_tool_names(request: Request) -> JSONResponse:
    return JSONResponse({"tools": registry.tool_summaries()}, headers=NO_STORE_HEADERS)


def create_metadata_routes(sse_path: str = "/sse") -> list[Route]:
    async def handle_root(request: Request) -> JSONResponse:
        return JSONResponse(
            {
                "status": "ok",
                "info": f"VisionStruct MCP server. Use {sse_path} for SSE or /metadata.json for tool listing.",
            },
            headers=NO_STORE_HEADERS,
        )

    return [
        Route("/", endpoint=handle_root, methods=["GET"]),
        Route("/metadata.json", endpoint=handle_metadata, methods=["GET"]),
        Route("/mcp", endpoint=handle_metadata, methods=["GET"]),
        Route("/tools", endpoint=handle_tool_names, methods=["GET"]),
    ]
