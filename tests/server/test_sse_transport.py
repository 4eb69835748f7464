import json
from urllib.parse import parse_qs, urlparse

import anyio
import pytest
from anyio.abc import TaskGroup
from starlette.types import Message, Scope

from tests.test_helpers import (
    FakeBackend,
    ResponseRecorder,
    body_receiver,
    call_tool_request,
    make_gateway,
    post_scope,
)
from visionstruct.gateway import InferenceGateway
from visionstruct.server.session_manager import SessionManager
from visionstruct.server.sse import SseServerTransport
from visionstruct.types import JSONRPCMessage, dump_message

pytestmark = pytest.mark.anyio


@pytest.fixture
def manager(gateway: InferenceGateway) -> SessionManager:
    return SessionManager(gateway)


@pytest.fixture
def transport(manager: SessionManager) -> SseServerTransport:
    return SseServerTransport("/messages/", manager, max_body_bytes=1_000)


def open_dangling_session(manager: SessionManager) -> str:
    writer, _ = anyio.create_memory_object_stream[JSONRPCMessage](16)
    return manager.open(writer)


async def post(transport: SseServerTransport, query: str, body: bytes, **scope_kwargs) -> ResponseRecorder:
    recorder = ResponseRecorder()
    await transport.handle_post_message(post_scope(query, **scope_kwargs), body_receiver(body), recorder)
    return recorder


@pytest.mark.parametrize("endpoint", ["http://example.com/messages/", "//evil/messages/", "/messages/?x=1"])
def test_endpoint_must_be_relative(manager: SessionManager, endpoint: str):
    with pytest.raises(ValueError, match="not a relative path"):
        SseServerTransport(endpoint, manager)


async def test_post_without_session_id(transport: SseServerTransport):
    recorder = await post(transport, "", b"{}")

    assert recorder.status == 400
    assert recorder.body == b"session_id is required"


async def test_post_to_unknown_session(transport: SseServerTransport, backend: FakeBackend):
    recorder = await post(transport, "session_id=ghost", dump_message(call_tool_request(1)).encode())

    assert recorder.status == 404
    assert recorder.body == b"Could not find session"
    assert backend.calls == []


async def test_post_to_closed_session(transport: SseServerTransport, manager: SessionManager):
    session_id = open_dangling_session(manager)
    manager.close(session_id)

    recorder = await post(transport, f"session_id={session_id}", b'{"jsonrpc": "2.0", "id": 1, "method": "ping"}')

    assert recorder.status == 404


@pytest.mark.parametrize("param", ["session_id", "sessionId"])
async def test_post_is_accepted(transport: SseServerTransport, manager: SessionManager, param: str):
    session_id = open_dangling_session(manager)

    recorder = await post(transport, f"{param}={session_id}", b'{"jsonrpc": "2.0", "id": 1, "method": "ping"}')

    assert recorder.status == 202
    assert recorder.body == b"Accepted"


async def test_post_with_wrong_content_type(transport: SseServerTransport, manager: SessionManager):
    session_id = open_dangling_session(manager)

    recorder = await post(transport, f"session_id={session_id}", b"{}", content_type="text/plain")

    assert recorder.status == 400


async def test_post_unparseable_message(transport: SseServerTransport, manager: SessionManager):
    session_id = open_dangling_session(manager)

    recorder = await post(transport, f"session_id={session_id}", b'{"not": "json-rpc"')

    assert recorder.status == 400
    assert recorder.body == b"Could not parse message"


async def test_post_oversized_message(transport: SseServerTransport, manager: SessionManager):
    session_id = open_dangling_session(manager)
    body = json.dumps(
        {"jsonrpc": "2.0", "id": 1, "method": "tools/call", "params": {"arguments": {"image": "A" * 2_000}}}
    ).encode()

    recorder = await post(transport, f"session_id={session_id}", body)

    assert recorder.status == 413
    assert recorder.body == b"Payload too large"


async def wait_for(recorder: ResponseRecorder, condition) -> None:
    with anyio.fail_after(5):
        while True:
            updated = recorder.updated
            if condition():
                return
            await updated.wait()


class SseClient:
    """Drives ``handle_sse`` the way a connected client would."""

    def __init__(self, transport: SseServerTransport):
        self.transport = transport
        self.stream = ResponseRecorder()
        self.disconnected = anyio.Event()
        self.endpoint = ""

    async def receive(self) -> Message:
        await self.disconnected.wait()
        return {"type": "http.disconnect"}

    async def connect(self, tg: TaskGroup) -> str:
        scope: Scope = {
            "type": "http",
            "method": "GET",
            "path": "/sse",
            "root_path": "",
            "query_string": b"",
            "headers": [],
        }
        tg.start_soon(self.transport.handle_sse, scope, self.receive, self.stream)
        await wait_for(self.stream, lambda: any(event == "endpoint" for event, _ in self.stream.sse_events()))
        self.endpoint = next(data for event, data in self.stream.sse_events() if event == "endpoint")
        return self.endpoint

    async def send(self, message: JSONRPCMessage) -> ResponseRecorder:
        return await post(self.transport, urlparse(self.endpoint).query, dump_message(message).encode())

    async def messages(self, count: int) -> list[dict]:
        await wait_for(self.stream, lambda: len(self.stream.sse_messages()) >= count)
        return self.stream.sse_messages()


async def test_sse_stream_round_trip(transport: SseServerTransport, manager: SessionManager):
    client = SseClient(transport)

    async with anyio.create_task_group() as tg:
        url = urlparse(await client.connect(tg))
        assert url.path == "/messages/"
        (session_id,) = parse_qs(url.query)["session_id"]
        assert session_id in manager

        accepted = await client.send(call_tool_request(42))
        assert accepted.status == 202

        (message,) = await client.messages(1)
        assert message["id"] == 42
        assert message["result"]["content"][0]["text"] == '{"meta": {"image_quality": "High"}}'

        client.disconnected.set()

    assert client.stream.status == 200
    assert len(manager) == 0
    ghost = await client.send(call_tool_request(43))
    assert ghost.status == 404


async def test_backend_failure_leaves_session_usable():
    backend = FakeBackend(RuntimeError("rate limited"), '```json\n{"ok": 1}\n```')
    manager = SessionManager(make_gateway(backend))
    client = SseClient(SseServerTransport("/messages/", manager))

    async with anyio.create_task_group() as tg:
        await client.connect(tg)
        assert (await client.send(call_tool_request(1))).status == 202
        await client.messages(1)
        assert (await client.send(call_tool_request(2))).status == 202
        failed, succeeded = await client.messages(2)
        client.disconnected.set()

    assert failed["id"] == 1
    assert failed["result"]["isError"] is True
    assert "rate limited" in failed["result"]["content"][0]["text"]
    assert succeeded["id"] == 2
    assert succeeded["result"]["isError"] is False
    assert succeeded["result"]["content"][0]["text"] == '{"ok": 1}'
    assert len(backend.calls) == 2


async def test_disconnect_cancels_in_flight_analysis():
    started = anyio.Event()
    cancelled: list[bool] = []

    async def never_answers(**kwargs):
        started.set()
        try:
            await anyio.sleep_forever()
        except anyio.get_cancelled_exc_class():
            cancelled.append(True)
            raise

    manager = SessionManager(make_gateway(FakeBackend(never_answers)))
    client = SseClient(SseServerTransport("/messages/", manager))

    with anyio.fail_after(5):
        async with anyio.create_task_group() as tg:
            await client.connect(tg)
            assert (await client.send(call_tool_request(1))).status == 202
            await started.wait()
            assert len(manager) == 1
            client.disconnected.set()

    assert cancelled == [True]
    assert len(manager) == 0
    assert client.stream.sse_messages() == []
