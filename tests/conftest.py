import base64
import io
from typing import AsyncGenerator, Callable, Dict, Optional

import httpx
import pytest
from httpx import AsyncClient, ASGITransport
from PIL import Image

from src.api.dependencies import get_dispatcher
from src.core.config import Settings
from src.engines.providers.dispatcher import Dispatcher, build_handlers
from src.main import app

TEST_KEYS = {
    "OPENAI_API_KEY": "sk-test-openai",
    "STABILITY_API_KEY": "sk-test-stability",
    "REPLICATE_API_KEY": "r8_test",
}


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


def make_png(width: int, height: int, color=(255, 255, 255, 255)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGBA", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


def make_data_uri(width: int, height: int, color=(255, 255, 255, 255)) -> str:
    return "data:image/png;base64," + base64.b64encode(make_png(width, height, color)).decode("ascii")


@pytest.fixture
def png_data_uri() -> Callable[..., str]:
    return make_data_uri


@pytest.fixture
def settings() -> Settings:
    # Tests never wait on a real cadence
    return Settings(
        _env_file=None,
        POLL_INTERVAL_SECONDS=0.0,
        REPLICATE_POLL_TIMEOUT_MS=2000,
        **TEST_KEYS,
    )


@pytest.fixture
def make_dispatcher(settings) -> Callable[..., Dispatcher]:
    """Build a Dispatcher whose upstream HTTP calls are answered by `handler`."""

    def factory(handler, credentials: Optional[Dict[str, str]] = None) -> Dispatcher:
        transport = httpx.MockTransport(handler)
        return Dispatcher(
            build_handlers(settings, transport=transport),
            credentials=TEST_KEYS if credentials is None else credentials,
        )

    return factory


@pytest.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    # Trigger lifespan events (startup/shutdown)
    async with app.router.lifespan_context(app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def override_dispatcher() -> Callable[[Dispatcher], None]:
    def apply(dispatcher: Dispatcher) -> None:
        app.dependency_overrides[get_dispatcher] = lambda: dispatcher

    return apply
