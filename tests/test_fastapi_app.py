"""Tests for the FastAPI web layer."""
import json

import pytest
from httpx import AsyncClient, ASGITransport

from ai_sandbox.fastapi_app import create_app

from conftest import PNG_BYTES, image_entry


@pytest.fixture
def settings_file(tmp_path):
    return tmp_path / "settings.json"


def _client(app):
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_health_returns_ok(make_settings, settings_file):
    app = create_app(make_settings("http://127.0.0.1:1"), settings_file)
    async with _client(app) as client:
        response = await client.get("/api/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_index_page(make_settings, settings_file):
    app = create_app(make_settings("http://127.0.0.1:1"), settings_file)
    async with _client(app) as client:
        response = await client.get("/")

    assert response.status_code == 200
    assert "ComfyUI Image Generator" in response.text
    assert "/api/generate" in response.text


@pytest.mark.asyncio
async def test_generate_requires_prompt(make_settings, settings_file):
    app = create_app(make_settings("http://127.0.0.1:1"), settings_file)
    async with _client(app) as client:
        response = await client.post("/api/generate", json={"negative_prompt": "x"})

    assert response.status_code == 400
    assert response.json()["detail"] == "Prompt is required"


@pytest.mark.asyncio
async def test_generate_unreachable_backend(make_settings, settings_file):
    app = create_app(make_settings("http://127.0.0.1:1"), settings_file)
    async with _client(app) as client:
        response = await client.post("/api/generate", json={"prompt": "a cat"})

    assert response.status_code == 503


@pytest.mark.asyncio
async def test_generate_and_serve_image(fake_comfy, make_settings, settings_file):
    fake_comfy.history = [image_entry("x.png")]
    fake_comfy.images["x.png"] = PNG_BYTES
    app = create_app(make_settings(fake_comfy.url), settings_file)

    async with _client(app) as client:
        response = await client.post("/api/generate", json={"prompt": "a cat", "area_id": "42"})
        assert response.status_code == 200
        data = response.json()
        assert data["image_path"] == "/survival/area_42.png"
        assert data["prompt_id"] == "job-1"

        image = await client.get(data["image_path"])

    assert image.status_code == 200
    assert image.content == PNG_BYTES


@pytest.mark.asyncio
async def test_generate_uses_configured_defaults(fake_comfy, make_settings, settings_file):
    fake_comfy.history = [image_entry("x.png")]
    fake_comfy.images["x.png"] = PNG_BYTES
    app = create_app(make_settings(fake_comfy.url), settings_file)

    async with _client(app) as client:
        response = await client.post(
            "/api/generate", json={"prompt": "a cat", "negative_prompt": "", "model": ""}
        )

    assert response.status_code == 200
    submitted = fake_comfy.prompts[0]["prompt"]
    assert submitted["4"]["inputs"]["ckpt_name"] == "dreamshaper_8.safetensors"
    assert submitted["7"]["inputs"]["text"] == "text, watermark"
    assert submitted["5"]["inputs"]["width"] == 448


@pytest.mark.asyncio
async def test_generate_validation_error(fake_comfy, make_settings, settings_file):
    fake_comfy.prompt_status = 400
    fake_comfy.prompt_error = {"error": "unknown checkpoint"}
    app = create_app(make_settings(fake_comfy.url), settings_file)

    async with _client(app) as client:
        response = await client.post("/api/generate", json={"prompt": "a cat"})

    assert response.status_code == 400
    assert "unknown checkpoint" in response.json()["detail"]


@pytest.mark.asyncio
async def test_models(fake_comfy, make_settings, settings_file):
    app = create_app(make_settings(fake_comfy.url), settings_file)
    async with _client(app) as client:
        response = await client.get("/api/models")

    assert response.status_code == 200
    assert response.json() == {
        "models": ["dreamshaper_8.safetensors", "sdxl.safetensors"],
        "default": "dreamshaper_8.safetensors",
    }


@pytest.mark.asyncio
async def test_diagnostics_connected(fake_comfy, make_settings, settings_file):
    app = create_app(make_settings(fake_comfy.url), settings_file)
    async with _client(app) as client:
        response = await client.get("/api/diagnostics")

    data = response.json()
    assert data["connected"] is True
    assert data["comfyui_version"] == "0.3.10"
    assert data["devices"][0]["vram_total_gb"] == 12
    assert data["missing_operations"] == []


@pytest.mark.asyncio
async def test_diagnostics_disconnected(make_settings, settings_file):
    app = create_app(make_settings("http://127.0.0.1:1"), settings_file)
    async with _client(app) as client:
        response = await client.get("/api/diagnostics")

    assert response.status_code == 200
    data = response.json()
    assert data["connected"] is False
    assert data["error"]


@pytest.mark.asyncio
async def test_settings_update_is_saved(make_settings, settings_file):
    app = create_app(make_settings("http://127.0.0.1:1"), settings_file)
    async with _client(app) as client:
        response = await client.post(
            "/api/settings", json={"defaults": {"model": "sdxl.safetensors"}}
        )
        assert response.status_code == 200
        current = await client.get("/api/settings")

    assert current.json()["defaults"]["model"] == "sdxl.safetensors"
    assert "auth_token" not in current.json()
    saved = json.loads(settings_file.read_text())
    assert saved["defaults"]["model"] == "sdxl.safetensors"


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [
    {"timeout": -1},
    {"poll_interval": "fast"},
    {"defaults": {"width": 0}},
    {"defaults": {"height": "tall"}},
    {"comfy_url": ""},
])
async def test_settings_update_rejects_invalid(make_settings, settings_file, body):
    app = create_app(make_settings("http://127.0.0.1:1"), settings_file)
    async with _client(app) as client:
        response = await client.post("/api/settings", json=body)

    assert response.status_code == 422
    assert not settings_file.exists()


@pytest.mark.asyncio
async def test_settings_update_rejects_blank_url(make_settings, settings_file):
    app = create_app(make_settings("http://127.0.0.1:1"), settings_file)
    async with _client(app) as client:
        response = await client.post("/api/settings", json={"comfy_url": "   "})

    assert response.status_code == 400
    assert not settings_file.exists()


@pytest.mark.asyncio
async def test_settings_update_ignores_read_only_fields(make_settings, settings_file):
    settings = make_settings("http://127.0.0.1:1")
    app = create_app(settings, settings_file)
    async with _client(app) as client:
        response = await client.post(
            "/api/settings", json={"output_dir": "/etc", "timeout": 30}
        )

    assert response.status_code == 200
    assert response.json()["output_dir"] == str(settings.output_dir)
    assert response.json()["timeout"] == 30.0


@pytest.mark.asyncio
@pytest.mark.parametrize("area_id", ["../../../escaped", "a/b", "..", "x.png"])
async def test_generate_rejects_unsafe_area_id(make_settings, settings_file, tmp_path, area_id):
    app = create_app(make_settings("http://127.0.0.1:1"), settings_file)
    async with _client(app) as client:
        response = await client.post(
            "/api/generate", json={"prompt": "a cat", "area_id": area_id}
        )

    assert response.status_code == 400
    assert "area_id" in response.json()["detail"]
    assert not (tmp_path / "public" / "escaped.png").exists()
    assert list((tmp_path / "public" / "survival").iterdir()) == []


@pytest.mark.asyncio
async def test_generate_accepts_numeric_area_id(fake_comfy, make_settings, settings_file):
    fake_comfy.history = [image_entry("x.png")]
    fake_comfy.images["x.png"] = PNG_BYTES
    app = create_app(make_settings(fake_comfy.url), settings_file)

    async with _client(app) as client:
        response = await client.post("/api/generate", json={"prompt": "a cat", "area_id": 42})

    assert response.status_code == 200
    assert response.json()["image_path"] == "/survival/area_42.png"
