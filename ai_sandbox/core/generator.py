"""Single-request image generation.

``generate`` runs the whole flow for one request: node catalogue lookup,
workflow build, submission, completion polling and storing the image. The
first failure propagates unchanged and nothing is written in that case.
"""
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .artifacts import ArtifactStore
from .comfy_client import ComfyClient, checkpoints_from_object_info
from .poller import wait_for_image
from .settings import Settings
from .workflow import GenerationRequest, build_txt2img_workflow, workflow_seed

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GenerationResult:
    path: Path
    public_path: str
    prompt_id: str
    filename: str
    seed: int


async def generate(
    request: GenerationRequest,
    settings: Settings,
    client: Optional[ComfyClient] = None,
    store: Optional[ArtifactStore] = None,
) -> GenerationResult:
    """Generate one image and store it locally.

    Args:
        request: What to generate
        settings: Backend location, timeouts and output directories
        client: Optional client to reuse; one is created (and closed) otherwise
        store: Optional artifact store; built from ``settings`` otherwise

    Returns:
        Where the image was written and how the web app serves it
    """
    if store is None:
        store = ArtifactStore(settings.output_dir, settings.survival_dir)

    if client is None:
        async with ComfyClient.from_settings(settings) as own_client:
            return await _generate(request, settings, own_client, store)
    return await _generate(request, settings, client, store)


async def _generate(
    request: GenerationRequest,
    settings: Settings,
    client: ComfyClient,
    store: ArtifactStore,
) -> GenerationResult:
    logger.info("Generating image with prompt: %s", request.prompt)
    logger.info("Negative prompt: %s", request.negative_prompt)
    logger.info("Using model: %s", request.model)
    logger.info("Dimensions: %d x %d", request.width, request.height)

    logger.info("Checking available models...")
    object_info = await client.get_object_info()
    checkpoints = checkpoints_from_object_info(object_info)
    logger.info("Backend exposes %d node types", len(object_info))
    logger.info("Available checkpoints: %s", checkpoints)
    if checkpoints and request.model not in checkpoints:
        logger.warning("Model %s is not in the checkpoint list, using it anyway", request.model)

    workflow = build_txt2img_workflow(request)
    logger.debug("Workflow: %s", workflow)
    prompt_id = await client.submit(workflow, prevalidate=settings.prevalidate_workflow)

    image = await wait_for_image(
        client,
        prompt_id,
        timeout=settings.timeout,
        interval=settings.poll_interval,
    )

    path = store.save(image.data, request.area_id)
    return GenerationResult(
        path=path,
        public_path=store.public_path(request.area_id),
        prompt_id=prompt_id,
        filename=image.filename,
        seed=workflow_seed(workflow),
    )
