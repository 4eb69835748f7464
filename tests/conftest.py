import anyio
import pytest
import sse_starlette
from packaging import version

from tests.test_helpers import FakeBackend, make_gateway
from visionstruct.gateway import InferenceGateway


@pytest.fixture
def anyio_backend():
    return "asyncio"


SSE_STARLETTE_VERSION = version.parse(sse_starlette.__version__)
NEEDS_RESET = SSE_STARLETTE_VERSION < version.parse("3.0.0")


@pytest.fixture(autouse=True)
def reset_sse_app_status():
    """Reset sse-starlette's global AppStatus singleton before each test.

    Before 3.0, AppStatus.should_exit_event is a module-level asyncio.Event bound
    to the first event loop that touches it; every test gets a fresh one.
    """
    if not NEEDS_RESET:
        yield
        return

    from sse_starlette.sse import AppStatus

    AppStatus.should_exit_event = anyio.Event()  # type: ignore[attr-defined]
    yield
    AppStatus.should_exit_event = anyio.Event()  # type: ignore[attr-defined]


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend('```json\n{"meta": {"image_quality": "High"}}\n```')


@pytest.fixture
def gateway(backend: FakeBackend) -> InferenceGateway:
    return make_gateway(backend)
