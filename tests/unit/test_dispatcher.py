import httpx
import pytest

from src.core.exceptions import ErrorCode
from src.engines.providers.base import ProviderHandler
from src.engines.providers.dispatcher import Dispatcher
from src.engines.providers.types import GenerationRequest, ProviderId


def openai_ok(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"data": [{"b64_json": "QUJD"}]})


def never_called(request: httpx.Request) -> httpx.Response:
    raise AssertionError(f"unexpected upstream call to {request.url}")


class ExplodingHandler(ProviderHandler):
    """Breaks the handler contract by raising out of generate()."""
    provider_id = ProviderId.OPENAI

    async def _generate(self, request, api_key):
        raise NotImplementedError

    async def generate(self, request, api_key):
        raise RuntimeError("handler bug")


@pytest.mark.asyncio
async def test_unknown_provider(make_dispatcher):
    result = await make_dispatcher(never_called).generate(GenerationRequest(provider="unknown-id", prompt="x"))

    assert not result.success
    assert result.error_code == ErrorCode.PROVIDER_NOT_FOUND
    assert result.provider == "unknown-id"


@pytest.mark.asyncio
async def test_unavailable_provider(make_dispatcher):
    result = await make_dispatcher(never_called).generate(GenerationRequest(provider="anthropic", prompt="x"))

    assert result.error_code == ErrorCode.PROVIDER_NOT_AVAILABLE


@pytest.mark.asyncio
async def test_missing_credential(make_dispatcher):
    dispatcher = make_dispatcher(never_called, credentials={})
    result = await dispatcher.generate(
        GenerationRequest(provider="stability", prompt="x", width=1024, height=1024)
    )

    assert result.error_code == ErrorCode.MISSING_API_KEY
    assert "STABILITY_API_KEY" in result.error.message


@pytest.mark.asyncio
async def test_request_key_overrides_configured_key(make_dispatcher):
    seen = []

    def handler(request):
        seen.append(request.headers["Authorization"])
        return openai_ok(request)

    result = await make_dispatcher(handler).generate(
        GenerationRequest(provider="openai", prompt="x", apiKey="sk-user")
    )

    assert result.success
    assert seen == ["Bearer sk-user"]


@pytest.mark.asyncio
async def test_configured_key_used_without_override(make_dispatcher):
    seen = []

    def handler(request):
        seen.append(request.headers["Authorization"])
        return openai_ok(request)

    await make_dispatcher(handler).generate(GenerationRequest(provider="openai", prompt="x"))

    assert seen == ["Bearer sk-test-openai"]


@pytest.mark.asyncio
async def test_handler_crash_becomes_generation_failed(make_dispatcher):
    dispatcher = make_dispatcher(never_called)
    dispatcher.handlers[ProviderId.OPENAI] = ExplodingHandler("https://api.openai.com")

    result = await dispatcher.generate(GenerationRequest(provider="openai", prompt="x"))

    assert result.error_code == ErrorCode.GENERATION_FAILED
    assert "handler bug" in result.error.message


def test_available_provider_without_handler_is_rejected():
    with pytest.raises(ValueError, match="stability"):
        Dispatcher({ProviderId.OPENAI: ExplodingHandler("https://api.openai.com")})


def test_available_providers_requires_credentials(make_dispatcher):
    dispatcher = make_dispatcher(never_called, credentials={"OPENAI_API_KEY": "sk"})
    assert dispatcher.available_providers() == [ProviderId.OPENAI]


@pytest.mark.asyncio
async def test_validate_credential_unknown_provider_is_false(make_dispatcher):
    assert await make_dispatcher(never_called).validate_credential("anthropic", "key") is False
    assert await make_dispatcher(never_called).validate_credential("nope", "key") is False
