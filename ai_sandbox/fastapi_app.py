"""FastAPI application for the AI Sandbox web UI.

Serves the prompt page, the JSON API and the generated images. Settings are
loaded once in ``create_app`` and kept on ``app.state``.
"""
from pathlib import Path
from typing import Optional, Union

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import HTMLResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, Field, PositiveFloat, PositiveInt

from ai_sandbox.core.artifacts import ArtifactStore
from ai_sandbox.core.handlers import (
    ApiResponse,
    GenerateParams,
    handle_diagnostics,
    handle_generate,
    handle_get_models,
    handle_get_settings,
    handle_health,
    handle_update_settings,
)
from ai_sandbox.core.settings import (
    DEFAULT_COMFY_URL,
    DEFAULT_HEIGHT,
    DEFAULT_MODEL,
    DEFAULT_NEGATIVE_PROMPT,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_TIMEOUT,
    DEFAULT_WIDTH,
    Settings,
    load_settings,
    settings_path,
)

INDEX_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>ComfyUI Image Generator</title>
  <style>
    body { font-family: sans-serif; max-width: 720px; margin: 2em auto; }
    label { display: block; margin-top: 1em; }
    input, textarea { width: 100%; }
    #error { color: #b00020; }
    #result img { max-width: 100%; margin-top: 1em; }
  </style>
</head>
<body>
  <h1>ComfyUI Image Generator</h1>
  <form id="generate-form">
    <label>Prompt <textarea name="prompt" rows="3" required></textarea></label>
    <label>Negative prompt <input name="negative_prompt"></label>
    <label>Model <input name="model" list="models"></label>
    <datalist id="models"></datalist>
    <button type="submit">Generate</button>
  </form>
  <p id="error"></p>
  <div id="result"></div>
  <script>
    fetch("/api/models").then(r => r.ok ? r.json() : {models: []}).then(data => {
      const list = document.getElementById("models");
      (data.models || []).forEach(name => {
        const option = document.createElement("option");
        option.value = name;
        list.appendChild(option);
      });
    });
    document.getElementById("generate-form").addEventListener("submit", async event => {
      event.preventDefault();
      const form = new FormData(event.target);
      const error = document.getElementById("error");
      const result = document.getElementById("result");
      error.textContent = "";
      result.textContent = "Generating...";
      const response = await fetch("/api/generate", {
        method: "POST",
        headers: {"Content-Type": "application/json"},
        body: JSON.stringify(Object.fromEntries(form.entries())),
      });
      const data = await response.json();
      if (!response.ok) {
        result.textContent = "";
        error.textContent = data.detail || "Failed to generate image";
        return;
      }
      result.innerHTML = "";
      const img = document.createElement("img");
      img.src = data.image_path + "?t=" + Date.now();
      result.appendChild(img);
    });
  </script>
</body>
</html>
"""


class GenerateRequest(BaseModel):
    prompt: str = ""
    negative_prompt: str = ""
    model: str = ""
    width: Optional[int] = None
    height: Optional[int] = None
    area_id: Optional[Union[str, int]] = None


class GenerateResponse(BaseModel):
    image_path: str
    prompt_id: str
    filename: str
    seed: int


class DefaultsUpdate(BaseModel):
    model: str = Field(default=DEFAULT_MODEL, min_length=1)
    negative_prompt: str = DEFAULT_NEGATIVE_PROMPT
    width: PositiveInt = DEFAULT_WIDTH
    height: PositiveInt = DEFAULT_HEIGHT


class SettingsUpdate(BaseModel):
    """Editable settings; only the fields present in the body are applied."""
    comfy_url: str = Field(default=DEFAULT_COMFY_URL, min_length=1)
    timeout: PositiveFloat = DEFAULT_TIMEOUT
    poll_interval: PositiveFloat = DEFAULT_POLL_INTERVAL
    prevalidate_workflow: bool = False
    defaults: Optional[DefaultsUpdate] = None


def _raise_for_error(resp: ApiResponse):
    if resp.status != 200:
        raise HTTPException(status_code=resp.status, detail=resp.data.get("error"))


def create_app(
    settings: Optional[Settings] = None,
    settings_file: Optional[Path] = None,
) -> FastAPI:
    """Build the web app around an explicit settings value."""
    if settings is None:
        settings = load_settings(settings_file)

    app = FastAPI(title="AI Sandbox", version="0.1.0")
    app.state.settings = settings
    app.state.settings_file = settings_path(settings_file)

    store = ArtifactStore(settings.output_dir, settings.survival_dir)
    store.ensure_dirs()
    app.mount(store.output_url, StaticFiles(directory=str(store.output_dir)), name="images")
    app.mount(store.survival_url, StaticFiles(directory=str(store.survival_dir)), name="survival")

    @app.get("/", response_class=HTMLResponse)
    async def index() -> HTMLResponse:
        return HTMLResponse(content=INDEX_HTML)

    @app.get("/api/health")
    async def health():
        resp = await handle_health()
        return resp.data

    @app.post("/api/generate", response_model=GenerateResponse)
    async def generate(request: GenerateRequest, http_request: Request):
        """Generate an image and return its public path."""
        params = GenerateParams(
            prompt=request.prompt,
            negative_prompt=request.negative_prompt,
            model=request.model,
            width=request.width,
            height=request.height,
            area_id=str(request.area_id) if request.area_id is not None else None,
        )
        resp = await handle_generate(params, http_request.app.state.settings)
        _raise_for_error(resp)
        return resp.data

    @app.get("/api/models")
    async def get_models(http_request: Request):
        """List checkpoints available on the backend."""
        resp = await handle_get_models(http_request.app.state.settings)
        _raise_for_error(resp)
        return resp.data

    @app.get("/api/diagnostics")
    async def get_diagnostics(http_request: Request):
        resp = await handle_diagnostics(http_request.app.state.settings)
        return resp.data

    @app.get("/api/settings")
    async def get_settings(http_request: Request):
        resp = await handle_get_settings(http_request.app.state.settings)
        return resp.data

    @app.post("/api/settings")
    async def post_settings(update: SettingsUpdate, http_request: Request):
        """Update and persist the editable settings."""
        state = http_request.app.state
        resp, state.settings = await handle_update_settings(
            state.settings, update.model_dump(exclude_unset=True), state.settings_file
        )
        _raise_for_error(resp)
        return resp.data

    return app
