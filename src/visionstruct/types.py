"""Protocol types for the VisionStruct MCP server.

Only the subset of JSON-RPC 2.0 and the Model Context Protocol that the server
speaks is modelled here: the message envelopes, the initialize handshake, tool
listing and tool invocation.
"""

from typing import Annotated, Any, Final, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

JSONRPC_VERSION: Final[str] = "2.0"

LATEST_PROTOCOL_VERSION: Final[str] = "2025-06-18"
SUPPORTED_PROTOCOL_VERSIONS: Final[tuple[str, ...]] = ("2024-11-05", "2025-03-26", LATEST_PROTOCOL_VERSION)

PARSE_ERROR: Final[int] = -32700
INVALID_REQUEST: Final[int] = -32600
METHOD_NOT_FOUND: Final[int] = -32601
INVALID_PARAMS: Final[int] = -32602
INTERNAL_ERROR: Final[int] = -32603

RequestId = Annotated[int, Field(strict=True)] | str


class MCPModel(BaseModel):
    """Base class for all MCP domain types. Allows extra fields for forward compatibility."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)


class JSONRPCBase(MCPModel):
    jsonrpc: Literal["2.0"] = JSONRPC_VERSION


class JSONRPCRequest(JSONRPCBase):
    """A request that expects a response."""

    id: RequestId
    method: str
    params: dict[str, Any] | None = None


class JSONRPCNotification(JSONRPCBase):
    """A notification which does not expect a response."""

    method: str
    params: dict[str, Any] | None = None


class ErrorData(MCPModel):
    """Error information in a JSON-RPC error response."""

    code: int
    message: str
    data: Any | None = None


class JSONRPCResultResponse(JSONRPCBase):
    """A successful (non-error) response to a request."""

    id: RequestId
    result: dict[str, Any]


class JSONRPCErrorResponse(JSONRPCBase):
    """A response to a request that indicates an error occurred."""

    id: RequestId | None = None
    error: ErrorData


JSONRPCResponse = JSONRPCResultResponse | JSONRPCErrorResponse
JSONRPCMessage = JSONRPCRequest | JSONRPCNotification | JSONRPCResponse

JSONRPCMessageAdapter: TypeAdapter[JSONRPCMessage] = TypeAdapter(JSONRPCMessage)


def dump_message(message: JSONRPCMessage) -> str:
    """Serialize a message the way it goes over the wire."""
    return message.model_dump_json(by_alias=True, exclude_none=True)


class Implementation(MCPModel):
    name: str
    version: str


class ToolsCapability(MCPModel):
    list_changed: Annotated[bool | None, Field(alias="listChanged")] = None


class ServerCapabilities(MCPModel):
    tools: ToolsCapability | None = None


class InitializeRequestParams(MCPModel):
    protocol_version: Annotated[str, Field(alias="protocolVersion")]
    capabilities: dict[str, Any] = Field(default_factory=dict)
    client_info: Annotated[Implementation | None, Field(alias="clientInfo")] = None


class InitializeResult(MCPModel):
    """Server's response to an initialize request."""

    protocol_version: Annotated[str, Field(alias="protocolVersion")]
    capabilities: ServerCapabilities
    server_info: Annotated[Implementation, Field(alias="serverInfo")]
    instructions: str | None = None


class Tool(MCPModel):
    """Definition of a tool the server provides."""

    name: str
    description: str | None = None
    input_schema: Annotated[dict[str, Any], Field(alias="inputSchema")]


class ListToolsResult(MCPModel):
    tools: list[Tool]


class CallToolRequestParams(MCPModel):
    name: str
    arguments: dict[str, Any] | None = None


class TextContent(MCPModel):
    """Text provided to or from an LLM."""

    type: Literal["text"] = "text"
    text: str


class CallToolResult(MCPModel):
    """Server's response to a tools/call request."""

    content: list[TextContent]
    is_error: Annotated[bool, Field(alias="isError")] = False
