"""Per-session MCP protocol handler.

A ``ProtocolHandler`` consumes the JSON-RPC messages of one session, one at a
time, and writes the responses through the session's ``send`` callable. Tool
invocations are validated against the capability registry and run through the
invoker the registry binds to the tool.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import jsonschema
import pydantic

from visionstruct import registry
from visionstruct.exceptions import BackendError, ConfigurationError
from visionstruct.gateway import AnalysisFailure, InferenceGateway
from visionstruct.types import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    LATEST_PROTOCOL_VERSION,
    METHOD_NOT_FOUND,
    SUPPORTED_PROTOCOL_VERSIONS,
    CallToolRequestParams,
    CallToolResult,
    ErrorData,
    Implementation,
    InitializeRequestParams,
    InitializeResult,
    JSONRPCErrorResponse,
    JSONRPCMessage,
    JSONRPCNotification,
    JSONRPCRequest,
    JSONRPCResultResponse,
    ListToolsResult,
    ServerCapabilities,
    TextContent,
    ToolsCapability,
)

logger = logging.getLogger(__name__)

SendMessage = Callable[[JSONRPCMessage], Awaitable[None]]


class HandlerState(enum.Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    INVOKING = "invoking"
    RESPONDING = "responding"
    REJECTED = "rejected"


class RequestRejected(Exception):
    """A request that fails before reaching the tool, answered with a JSON-RPC error."""

    def __init__(self, code: int, message: str):
        super().__init__(message)
        self.error = ErrorData(code=code, message=message)


def _error_result(message: str) -> CallToolResult:
    return CallToolResult(content=[TextContent(text=message)], is_error=True)


def _describe_failure(failure: AnalysisFailure) -> str:
    match failure.error:
        case BackendError():
            return f"Error analyzing image: {failure.message}"
        case ConfigurationError():
            return f"Error: {failure.message}"
        case _:
            return f"Input validation error: {failure.message}"


class ProtocolHandler:
    """MCP state machine for a single session."""

    def __init__(self, gateway: InferenceGateway, send: SendMessage, *, session_id: str | None = None):
        self._gateway = gateway
        self._send = send
        self._session_id = session_id
        self.state = HandlerState.IDLE
        self.client_info: Implementation | None = None

    async def handle(self, message: JSONRPCMessage) -> None:
        """Process one inbound message, writing at most one response."""
        match message:
            case JSONRPCRequest():
                await self._handle_request(message)
            case JSONRPCNotification():
                logger.debug("Session %s received notification %s", self._session_id, message.method)
            case _:
                logger.debug("Session %s ignoring client response %r", self._session_id, message.id)

    async def _handle_request(self, request: JSONRPCRequest) -> None:
        logger.info("Session %s processing %s request", self._session_id, request.method)
        self.state = HandlerState.VALIDATING
        try:
            match request.method:
                case "initialize":
                    result = self._initialize(request.params)
                case "ping":
                    result = {}
                case "tools/list":
                    result = ListToolsResult(tools=registry.list_tools())
                case "tools/call":
                    result = await self._call_tool(request.params)
                case _:
                    raise RequestRejected(METHOD_NOT_FOUND, f"Method not found: {request.method}")
        except RequestRejected as err:
            self.state = HandlerState.REJECTED
            logger.info("Session %s rejected request %r: %s", self._session_id, request.id, err)
            response: JSONRPCMessage = JSONRPCErrorResponse(id=request.id, error=err.error)
        except Exception as err:
            self.state = HandlerState.REJECTED
            logger.exception("Unhandled error processing request %r", request.id)
            response = JSONRPCErrorResponse(id=request.id, error=ErrorData(code=INTERNAL_ERROR, message=str(err)))
        else:
            if self.state is not HandlerState.REJECTED:
                self.state = HandlerState.RESPONDING
            if isinstance(result, pydantic.BaseModel):
                result = result.model_dump(by_alias=True, exclude_none=True)
            response = JSONRPCResultResponse(id=request.id, result=result)

        try:
            await self._send(response)
        finally:
            self.state = HandlerState.IDLE

    def _initialize(self, params: dict[str, Any] | None) -> InitializeResult:
        try:
            init = InitializeRequestParams.model_validate(params or {})
        except pydantic.ValidationError as e:
            raise RequestRejected(INVALID_PARAMS, f"Invalid initialize params: {e}") from e

        self.client_info = init.client_info
        if init.protocol_version in SUPPORTED_PROTOCOL_VERSIONS:
            protocol_version = init.protocol_version
        else:
            protocol_version = LATEST_PROTOCOL_VERSION
        return InitializeResult(
            protocol_version=protocol_version,
            capabilities=ServerCapabilities(tools=ToolsCapability(list_changed=False)),
            server_info=Implementation(name=registry.SERVER_NAME, version=registry.SERVER_VERSION),
        )

    async def _call_tool(self, params: dict[str, Any] | None) -> CallToolResult:
        try:
            call = CallToolRequestParams.model_validate(params or {})
        except pydantic.ValidationError as e:
            raise RequestRejected(INVALID_PARAMS, f"Invalid tools/call params: {e}") from e

        capability = registry.get_capability(call.name)
        if capability is None:
            raise RequestRejected(INVALID_PARAMS, f"Tool not found: {call.name}")

        arguments = call.arguments or {}
        try:
            jsonschema.validate(instance=arguments, schema=capability.tool.input_schema)
        except jsonschema.ValidationError as e:
            self.state = HandlerState.REJECTED
            return _error_result(f"Input validation error: {e.message}")

        self.state = HandlerState.INVOKING
        outcome = await capability.invoke(self._gateway, arguments)
        if isinstance(outcome, AnalysisFailure):
            logger.info("Session %s analysis failed: %s", self._session_id, outcome.message)
            return _error_result(_describe_failure(outcome))
        return CallToolResult(content=[TextContent(text=outcome.text)])
