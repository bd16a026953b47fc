"""Shared fixtures: an in-process fake ComfyUI server."""
from pathlib import Path
from typing import Optional

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from ai_sandbox.core.settings import Settings

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake-image-data"

OBJECT_INFO = {
    "KSampler": {"input": {"required": {}}},
    "CheckpointLoaderSimple": {
        "input": {
            "required": {
                "ckpt_name": [["dreamshaper_8.safetensors", "sdxl.safetensors"]],
            }
        }
    },
    "CLIPTextEncode": {"input": {"required": {}}},
    "VAEDecode": {"input": {"required": {}}},
    "EmptyLatentImage": {"input": {"required": {}}},
    "SaveImage": {"input": {"required": {}}},
}

SYSTEM_STATS = {
    "system": {
        "comfyui_version": "0.3.10",
        "python_version": "3.11.9",
        "pytorch_version": "2.5.1",
    },
    "devices": [
        {"name": "cuda:0 NVIDIA RTX", "vram_total": 12 * 1024 ** 3, "vram_free": 10 * 1024 ** 3},
    ],
}


def image_entry(filename: str = "x.png", node_id: str = "9") -> dict:
    return {"outputs": {node_id: {"images": [{"filename": filename}]}}}


class FakeComfy:
    """Scriptable stand-in for the ComfyUI HTTP API (under /api)."""

    def __init__(self):
        self.url = ""
        self.prompt_id = "job-1"
        self.object_info: dict = dict(OBJECT_INFO)
        self.object_info_status = 200
        self.prompt_status = 200
        self.prompt_error: Optional[dict] = None
        # Entries returned by successive /history calls, last one repeats.
        # None means "no entry for this id yet".
        self.history: list[Optional[dict]] = [None]
        self.history_failures = 0
        # Successive /history calls answered with a truncated JSON body
        self.history_garbage = 0
        self.images: dict[str, bytes] = {}
        self.view_misses = 0

        self.prompts: list[dict] = []
        self.history_calls = 0
        self.view_calls = 0

    def make_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/api/object_info", self.handle_object_info)
        app.router.add_get("/api/system_stats", self.handle_system_stats)
        app.router.add_post("/api/prompt", self.handle_prompt)
        app.router.add_get("/api/history/{prompt_id}", self.handle_history)
        app.router.add_get("/api/view", self.handle_view)
        return app

    async def handle_object_info(self, request):
        if self.object_info_status != 200:
            return web.json_response({"error": "boom"}, status=self.object_info_status)
        return web.json_response(self.object_info)

    async def handle_system_stats(self, request):
        return web.json_response(SYSTEM_STATS)

    async def handle_prompt(self, request):
        self.prompts.append(await request.json())
        if self.prompt_status != 200:
            return web.json_response(self.prompt_error or {}, status=self.prompt_status)
        return web.json_response(
            {"prompt_id": self.prompt_id, "number": len(self.prompts), "node_errors": {}}
        )

    async def handle_history(self, request):
        self.history_calls += 1
        if self.history_failures > 0:
            self.history_failures -= 1
            return web.Response(status=500, text="Internal Server Error")
        if self.history_garbage > 0:
            self.history_garbage -= 1
            return web.Response(text="{truncated", content_type="application/json")
        index = min(self.history_calls - 1, len(self.history) - 1)
        entry = self.history[index]
        prompt_id = request.match_info["prompt_id"]
        if entry is None or prompt_id != self.prompt_id:
            return web.json_response({})
        return web.json_response({prompt_id: entry})

    async def handle_view(self, request):
        self.view_calls += 1
        filename = request.query.get("filename", "")
        if self.view_misses > 0:
            self.view_misses -= 1
            return web.Response(status=404)
        if filename not in self.images:
            return web.Response(status=404)
        return web.Response(body=self.images[filename], content_type="image/png")


@pytest_asyncio.fixture
async def fake_comfy():
    """Start a fake ComfyUI server on a free local port."""
    backend = FakeComfy()
    server = TestServer(backend.make_app())
    await server.start_server()
    backend.url = f"http://{server.host}:{server.port}"
    yield backend
    await server.close()


@pytest.fixture
def make_settings(tmp_path: Path):
    """Settings with short timeouts and outputs under tmp_path."""

    def _make(url: str, **overrides) -> Settings:
        values = dict(
            comfy_url=url,
            timeout=2.0,
            poll_interval=0.05,
            output_dir=tmp_path / "public" / "images",
            survival_dir=tmp_path / "public" / "survival",
        )
        values.update(overrides)
        return Settings(**values)

    return _make
