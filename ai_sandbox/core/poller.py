"""Completion polling for queued ComfyUI jobs.

A job is done for us only when its history lists an output image *and* that
image can be downloaded: ComfyUI may report outputs before the file is
servable, so a failed download keeps the loop polling.

States: polling -> found | failed | timed out.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, Optional

from .comfy_client import ComfyClient
from .errors import GenerationFailedError, GenerationTimeoutError, NetworkError
from .settings import DEFAULT_POLL_INTERVAL, DEFAULT_TIMEOUT

logger = logging.getLogger(__name__)


class JobStatus(str, Enum):
    pending = "pending"
    running = "running"
    completed = "completed"
    failed = "failed"


@dataclass
class PolledImage:
    """An output image that was downloaded successfully."""
    node_id: str
    filename: str
    data: bytes


def _failure_message(status: dict) -> Optional[str]:
    """Return the failure text if ``status`` reports a failed job."""
    failed = (
        bool(status.get("failed"))
        or bool(status.get("error"))
        or status.get("status_str") == "error"
    )
    if not failed:
        return None

    if status.get("error"):
        return str(status["error"])
    for message in status.get("messages") or []:
        if (
            isinstance(message, (list, tuple))
            and len(message) == 2
            and message[0] == "execution_error"
            and isinstance(message[1], dict)
        ):
            return message[1].get("exception_message") or "Execution error"
    return "Generation failed"


def iter_output_images(entry: dict) -> Iterator[tuple[str, dict]]:
    """Yield (node_id, image_info) for the first image of every output node.

    Node order is whatever the server sent; callers take the first one that
    works, so a graph with several image outputs has no fixed winner.
    """
    outputs = entry.get("outputs") or {}
    for node_id, node_output in outputs.items():
        images = (node_output or {}).get("images") or []
        if images and images[0].get("filename"):
            yield node_id, images[0]


def infer_job_status(entry: Optional[dict]) -> tuple[JobStatus, Optional[str]]:
    """Normalize a history entry into a status and an optional error message.

    Handles both the plain ``status.completed/failed/error`` shape and
    ComfyUI's native ``status_str``/``messages`` shape. Failure takes
    precedence over outputs.
    """
    if not entry:
        return JobStatus.pending, None

    status = entry.get("status")
    if not isinstance(status, dict):
        status = {}
    message = _failure_message(status)
    if message is not None:
        return JobStatus.failed, message

    if any(True for _ in iter_output_images(entry)):
        return JobStatus.completed, None
    return JobStatus.running, None


async def wait_for_image(
    client: ComfyClient,
    prompt_id: str,
    timeout: float = DEFAULT_TIMEOUT,
    interval: float = DEFAULT_POLL_INTERVAL,
) -> PolledImage:
    """Poll the history of ``prompt_id`` until an output image is downloaded.

    Args:
        client: ComfyUI client
        prompt_id: Id returned when the workflow was queued
        timeout: Seconds to wait before giving up
        interval: Seconds between polls

    Returns:
        The first output image that could be fetched

    Raises:
        GenerationFailedError: the job reported a failure
        GenerationTimeoutError: nothing was fetched within ``timeout``
    """
    logger.info("Waiting for generation %s to complete...", prompt_id)
    start = time.monotonic()

    while time.monotonic() - start < timeout:
        try:
            history = await client.get_history(prompt_id)
        except NetworkError as e:
            logger.warning("Error checking history: %s", e)
            await asyncio.sleep(interval)
            continue

        entry = history.get(prompt_id)
        status, error = infer_job_status(entry)

        if status is JobStatus.failed:
            logger.error("Generation %s failed: %s", prompt_id, error)
            raise GenerationFailedError(error)

        if status is JobStatus.completed:
            for node_id, image in iter_output_images(entry):
                filename = image["filename"]
                logger.info("Found image %s on node %s", filename, node_id)
                try:
                    data = await client.view_image(
                        filename,
                        subfolder=image.get("subfolder", ""),
                        image_type=image.get("type", ""),
                    )
                except NetworkError as e:
                    logger.info("Image not available yet (%s), waiting...", e)
                    continue
                return PolledImage(node_id=node_id, filename=filename, data=data)
        else:
            logger.debug("Job %s is %s", prompt_id, status.value)

        await asyncio.sleep(interval)

    raise GenerationTimeoutError(
        f"Image not found after {timeout:g} seconds (prompt {prompt_id})"
    )
