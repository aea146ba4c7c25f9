import asyncio
import base64
import json

import httpx
import pytest


def openai_ok(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"data": [{"b64_json": "QUJD"}]})


def never_called(request: httpx.Request) -> httpx.Response:
    raise AssertionError(f"unexpected upstream call to {request.url}")


@pytest.mark.asyncio
async def test_health_check(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_generate_success(client, make_dispatcher, override_dispatcher):
    override_dispatcher(make_dispatcher(openai_ok))

    response = await client.post("/api/v1/generate", json={"provider": "openai", "prompt": "a red bicycle"})

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["imageBase64"] == "data:image/png;base64,QUJD"
    assert "imageUrl" not in data
    assert "error" not in data


@pytest.mark.asyncio
async def test_generate_failures_are_200_with_error_code(client, make_dispatcher, override_dispatcher):
    override_dispatcher(make_dispatcher(never_called, credentials={}))

    response = await client.post(
        "/api/v1/generate",
        json={"provider": "stability", "prompt": "x", "width": 1024, "height": 1024},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is False
    assert data["error"]["code"] == "MISSING_API_KEY"

    response = await client.post("/api/v1/generate", json={"provider": "unknown-id", "prompt": "x"})
    assert response.json()["error"]["code"] == "PROVIDER_NOT_FOUND"


@pytest.mark.asyncio
async def test_generate_rejects_invalid_dimensions(client, make_dispatcher, override_dispatcher):
    override_dispatcher(make_dispatcher(never_called))

    response = await client.post("/api/v1/generate", json={"provider": "openai", "width": 0})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_list_providers(client, make_dispatcher, override_dispatcher):
    override_dispatcher(make_dispatcher(never_called, credentials={"OPENAI_API_KEY": "sk"}))

    response = await client.get("/api/v1/providers")

    assert response.status_code == 200
    providers = {p["id"]: p for p in response.json()}
    assert set(providers) == {"openai", "stability", "replicate", "anthropic"}
    assert providers["openai"]["configured"] is True
    assert providers["stability"]["configured"] is False
    assert providers["anthropic"]["available"] is False
    assert "1536x1024" in providers["openai"]["supportedSizes"]


@pytest.mark.asyncio
async def test_validate_key(client, make_dispatcher, override_dispatcher):
    override_dispatcher(make_dispatcher(lambda request: httpx.Response(200, json={"data": []})))

    response = await client.post("/api/v1/validate-key", json={"provider": "openai", "apiKey": "sk-user"})

    assert response.status_code == 200
    assert response.json()["valid"] is True
    assert response.json()["providerName"] == "OpenAI GPT Image"

    response = await client.post("/api/v1/validate-key", json={"provider": "dalle", "apiKey": "sk-user"})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_remove_background_autodetects_color(client, png_data_uri):
    response = await client.post(
        "/api/v1/tools/remove-background",
        json={"image": png_data_uri(20, 20, (255, 255, 255, 255))},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["color"] == "#ffffff"
    assert (data["width"], data["height"]) == (20, 20)


@pytest.mark.asyncio
async def test_remove_background_bad_color(client, png_data_uri):
    response = await client.post(
        "/api/v1/tools/remove-background",
        json={"image": png_data_uri(4, 4), "color": "white"},
    )

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_REQUEST"


@pytest.mark.asyncio
async def test_invalid_image_payload(client):
    response = await client.post("/api/v1/tools/detect-background", json={"image": "data:image/png;base64,aGVsbG8="})

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_IMAGE"


@pytest.mark.asyncio
async def test_crop_and_resize(client, png_data_uri):
    response = await client.post("/api/v1/tools/crop", json={"image": png_data_uri(100, 200), "ratio": "16:9"})
    assert (response.json()["width"], response.json()["height"]) == (100, 56)

    response = await client.post(
        "/api/v1/tools/resize", json={"image": png_data_uri(100, 200), "width": 30, "height": 40}
    )
    assert (response.json()["width"], response.json()["height"]) == (30, 40)


@pytest.mark.asyncio
async def test_variants(client, png_data_uri):
    response = await client.post(
        "/api/v1/tools/variants", json={"image": png_data_uri(160, 90), "variants": ["card_4x3", "square"]}
    )

    assert response.status_code == 200
    variants = response.json()["variants"]
    assert (variants["card_4x3"]["width"], variants["card_4x3"]["height"]) == (800, 600)
    assert set(variants) == {"card_4x3", "square"}


@pytest.mark.asyncio
async def test_extend_plan(client, png_data_uri):
    response = await client.post("/api/v1/tools/extend-plan", json={"image": png_data_uri(100, 100), "ratio": "16:9"})

    assert response.status_code == 200
    data = response.json()
    assert data["noop"] is False
    assert (data["plan"]["left"], data["plan"]["right"]) == (39, 39)
    assert data["plan"]["new_width"] == 178


@pytest.mark.asyncio
async def test_extend_plan_reports_downscaled_plan(client, png_data_uri):
    response = await client.post("/api/v1/tools/extend-plan", json={"image": png_data_uri(3000, 2000), "ratio": "9:16"})

    plan = response.json()["plan"]
    assert plan["scale"] < 1
    assert plan["new_width"] * plan["new_height"] <= 4_000_000
    assert plan["width"] < 3000


@pytest.mark.asyncio
async def test_tool_pixel_work_runs_in_worker_thread(client, png_data_uri, monkeypatch):
    from src.api.v1 import tools

    offloaded = []
    to_thread = asyncio.to_thread

    async def recording_to_thread(func, *args, **kwargs):
        offloaded.append(func.__name__)
        return await to_thread(func, *args, **kwargs)

    monkeypatch.setattr(tools.asyncio, "to_thread", recording_to_thread)

    await client.post("/api/v1/tools/resize", json={"image": png_data_uri(10, 10), "width": 5, "height": 5})
    await client.post("/api/v1/tools/extend-plan", json={"image": png_data_uri(10, 10), "ratio": "16:9"})

    assert offloaded == ["_sync_resize", "_sync_extend_plan"]


@pytest.mark.asyncio
async def test_outpaint_without_key(client, make_dispatcher, override_dispatcher, png_data_uri):
    override_dispatcher(make_dispatcher(never_called, credentials={}))

    response = await client.post("/api/v1/tools/outpaint", json={"image": png_data_uri(100, 100), "ratio": "16:9"})

    assert response.status_code == 200
    assert response.json()["error"]["code"] == "MISSING_API_KEY"


@pytest.mark.asyncio
async def test_outpaint(client, make_dispatcher, override_dispatcher, png_data_uri):
    seen = []

    def stability(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, content=b"outpainted")

    override_dispatcher(make_dispatcher(stability))

    response = await client.post(
        "/api/v1/tools/outpaint",
        json={"image": png_data_uri(100, 100), "ratio": "16:9", "prompt": "sandy beach", "apiKey": "sk-user"},
    )

    data = response.json()
    assert data["success"] is True
    assert base64.b64decode(data["imageBase64"].split(",", 1)[1]) == b"outpainted"
    assert seen[0].url.path == "/v2beta/stable-image/edit/outpaint"
    assert seen[0].headers["Authorization"] == "Bearer sk-user"


@pytest.mark.asyncio
async def test_ai_remove_background(client, make_dispatcher, override_dispatcher, png_data_uri):
    seen = []

    def stability(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, content=b"cutout")

    override_dispatcher(make_dispatcher(stability))

    response = await client.post("/api/v1/tools/ai-remove-background", json={"image": png_data_uri(32, 32)})

    data = response.json()
    assert response.status_code == 200
    assert data["success"] is True
    assert base64.b64decode(data["imageBase64"].split(",", 1)[1]) == b"cutout"
    assert seen[0].url.path == "/v2beta/stable-image/edit/remove-background"
    assert seen[0].headers["Authorization"] == "Bearer sk-test-stability"


@pytest.mark.asyncio
async def test_ai_remove_background_without_key(client, make_dispatcher, override_dispatcher, png_data_uri):
    override_dispatcher(make_dispatcher(never_called, credentials={}))

    response = await client.post("/api/v1/tools/ai-remove-background", json={"image": png_data_uri(8, 8)})

    assert response.status_code == 200
    assert response.json()["error"]["code"] == "MISSING_API_KEY"


@pytest.mark.asyncio
async def test_metrics_endpoint(client):
    await client.get("/health")
    response = await client.get("/api/v1/metrics")

    assert response.status_code == 200
    assert b"http_requests_total" in response.content


@pytest.mark.asyncio
async def test_request_timing_header(client):
    response = await client.get("/")
    assert "X-Process-Time" in response.headers
    assert json.loads(response.content)["api_v1"] == "/api/v1"
