"""Framework-agnostic request handlers for the web API.

These handlers contain the request logic without any framework-specific code;
the FastAPI app only converts ``ApiResponse`` values into HTTP responses.
"""
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .comfy_client import ComfyClient
from .diagnostics import collect_diagnostics
from .errors import (
    BackendUnavailableError,
    GenerationFailedError,
    GenerationTimeoutError,
    NetworkError,
    WorkflowValidationError,
)
from .generator import generate
from .settings import Settings, save_settings
from .workflow import GenerationRequest

logger = logging.getLogger(__name__)


@dataclass
class ApiResponse:
    """Standard API response wrapper."""
    data: dict
    status: int = 200


@dataclass
class GenerateParams:
    """Parameters for image generation. Empty values use the configured defaults."""
    prompt: str
    negative_prompt: str = ""
    model: str = ""
    width: Optional[int] = None
    height: Optional[int] = None
    area_id: Optional[str] = None


def error_status(error: Exception) -> int:
    """HTTP status for a failed generation."""
    if isinstance(error, ValueError):
        return 400
    if isinstance(error, WorkflowValidationError):
        return 400
    if isinstance(error, BackendUnavailableError):
        return 503
    if isinstance(error, GenerationTimeoutError):
        return 504
    if isinstance(error, (GenerationFailedError, NetworkError)):
        return 502
    return 500


async def handle_health() -> ApiResponse:
    """Handle health check request."""
    return ApiResponse(data={"status": "ok"})


async def handle_generate(
    params: GenerateParams,
    settings: Settings,
    client: Optional[ComfyClient] = None,
) -> ApiResponse:
    """Handle generate request.

    Returns:
        ApiResponse with the public image path, or an error with status
        400/502/503/504.
    """
    if not params.prompt or not params.prompt.strip():
        return ApiResponse(data={"error": "Prompt is required"}, status=400)

    try:
        request = GenerationRequest.create(
            prompt=params.prompt,
            negative_prompt=params.negative_prompt,
            model=params.model,
            width=params.width,
            height=params.height,
            area_id=params.area_id,
            defaults=settings.defaults,
        )
        result = await generate(request, settings, client=client)
    except (ValueError, WorkflowValidationError, GenerationFailedError,
            GenerationTimeoutError, NetworkError) as e:
        logger.error("Generation failed: %s", e)
        return ApiResponse(data={"error": str(e)}, status=error_status(e))

    return ApiResponse(data={
        "image_path": result.public_path,
        "prompt_id": result.prompt_id,
        "filename": result.filename,
        "seed": result.seed,
    })


async def handle_get_models(
    settings: Settings,
    client: Optional[ComfyClient] = None,
) -> ApiResponse:
    """List checkpoints known to the backend."""
    try:
        if client is None:
            async with ComfyClient.from_settings(settings) as own_client:
                checkpoints = await own_client.list_checkpoints()
        else:
            checkpoints = await client.list_checkpoints()
    except NetworkError as e:
        return ApiResponse(data={"error": str(e)}, status=error_status(e))

    return ApiResponse(data={
        "models": checkpoints,
        "default": settings.defaults.model,
    })


async def handle_diagnostics(
    settings: Settings,
    client: Optional[ComfyClient] = None,
) -> ApiResponse:
    """Handle diagnostics request."""
    try:
        if client is None:
            async with ComfyClient.from_settings(settings) as own_client:
                report = await collect_diagnostics(own_client)
        else:
            report = await collect_diagnostics(client)
    except NetworkError as e:
        return ApiResponse(data={
            "connected": False,
            "comfy_url": settings.comfy_url,
            "error": str(e),
        })

    report["connected"] = True
    report["comfy_url"] = settings.comfy_url
    return ApiResponse(data=report)


async def handle_get_settings(settings: Settings) -> ApiResponse:
    return ApiResponse(data=settings.to_dict())


async def handle_update_settings(
    settings: Settings,
    data: dict,
    path: Optional[Path] = None,
) -> tuple[ApiResponse, Settings]:
    """Apply and persist a settings change.

    Returns:
        The response and the settings now in effect (unchanged on error)
    """
    try:
        updated = settings.update(data)
    except ValueError as e:
        return ApiResponse(data={"error": str(e)}, status=400), settings

    save_settings(updated, path)
    return ApiResponse(data=updated.to_dict()), updated
