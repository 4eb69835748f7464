"""Capability registry: the tools this server exposes.

Everything that describes a tool's shape lives here, next to the coroutine that
carries it out. The protocol handler validates against these descriptors and
invokes through them, and the metadata routes serve them as-is, so a new
capability only needs to be added to ``_CAPABILITIES``.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from visionstruct.gateway import DEFAULT_MIME_TYPE, AnalysisResult, InferenceGateway, data_uri_mime_type
from visionstruct.types import Tool

SERVER_NAME = "vision-struct"
SERVER_VERSION = "1.0.0"

IMAGE_ARGUMENT = "image"
MIME_TYPE_ARGUMENT = "mimeType"

Invoker = Callable[[InferenceGateway, dict[str, Any]], Awaitable[AnalysisResult]]


@dataclass(frozen=True)
class Capability:
    """A tool descriptor bound to the coroutine that runs it.

    The invoker receives arguments that already passed schema validation.
    """

    tool: Tool
    invoke: Invoker


VISION_TO_JSON = Tool(
    name="vision_to_json",
    description=(
        "Visual Analysis Tool. Use this tool when the user asks to analyze, describe, or convert an image "
        "into JSON. It provides a deep structural breakdown of the visual elements."
    ),
    input_schema={
        "type": "object",
        "properties": {
            IMAGE_ARGUMENT: {
                "type": "string",
                "description": "Base64 encoded image data (a data URI prefix is accepted and stripped)",
            },
            MIME_TYPE_ARGUMENT: {
                "type": "string",
                "description": (
                    "MIME type of the image (e.g., image/jpeg, image/png). "
                    "Defaults to the type declared by a data URI, otherwise image/jpeg."
                ),
                "default": DEFAULT_MIME_TYPE,
            },
        },
        "required": [IMAGE_ARGUMENT],
    },
)


def apply_defaults(tool: Tool, arguments: dict[str, Any]) -> dict[str, Any]:
    """Fill schema defaults for optional arguments that are absent, null or empty strings."""
    resolved = dict(arguments)
    properties: dict[str, Any] = tool.input_schema.get("properties", {})
    for name, schema in properties.items():
        if "default" not in schema:
            continue
        if resolved.get(name) in (None, ""):
            resolved[name] = schema["default"]
    return resolved


async def _analyze_image(gateway: InferenceGateway, arguments: dict[str, Any]) -> AnalysisResult:
    image = arguments[IMAGE_ARGUMENT]
    # A type declared by a data URI takes precedence over the schema default.
    mime_type = arguments.get(MIME_TYPE_ARGUMENT) or data_uri_mime_type(image)
    resolved = apply_defaults(VISION_TO_JSON, {**arguments, MIME_TYPE_ARGUMENT: mime_type})
    return await gateway.analyze(resolved[IMAGE_ARGUMENT], resolved[MIME_TYPE_ARGUMENT])


_CAPABILITIES: dict[str, Capability] = {
    capability.tool.name: capability for capability in (Capability(VISION_TO_JSON, _analyze_image),)
}


def list_tools() -> list[Tool]:
    """Return every registered tool descriptor."""
    return [capability.tool for capability in _CAPABILITIES.values()]


def get_capability(name: str) -> Capability | None:
    return _CAPABILITIES.get(name)


def get_tool(name: str) -> Tool | None:
    capability = get_capability(name)
    return capability.tool if capability else None


def server_metadata() -> dict[str, Any]:
    """Static metadata document describing the server and its tools."""
    return {
        "name": SERVER_NAME,
        "version": SERVER_VERSION,
        "tools": [tool.model_dump(by_alias=True, exclude_none=True) for tool in list_tools()],
    }


def tool_summaries() -> list[dict[str, Any]]:
    return [{"name": tool.name, "description": tool.description} for tool in list_tools()]
