"""ComfyUI HTTP client.

Wraps the endpoints the generation flow needs: node catalogue, prompt
submission, history lookup and image download.
"""
import logging
import uuid
from typing import Optional

from .aiohttp_request_manager import AiohttpRequestManager
from .errors import NetworkError, WorkflowValidationError
from .settings import DEFAULT_TIMEOUT, Settings

logger = logging.getLogger(__name__)

CHECKPOINT_LOADER = "CheckpointLoaderSimple"


class ComfyClient:
    """Client for one ComfyUI server."""

    def __init__(
        self,
        api_url: str,
        auth_token: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        requests: Optional[AiohttpRequestManager] = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.client_id: str = str(uuid.uuid4())
        self._requests = requests or AiohttpRequestManager(bearer=auth_token)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ComfyClient":
        return cls(settings.api_url, settings.auth_token, settings.timeout)

    async def __aenter__(self) -> "ComfyClient":
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    async def close(self):
        await self._requests.close()

    def _url(self, path: str) -> str:
        return f"{self.api_url}/{path.lstrip('/')}"

    async def system_stats(self) -> dict:
        """Fetch /system_stats (versions and devices)."""
        return await self._requests.get(self._url("system_stats"), timeout=self.timeout)

    async def get_object_info(self) -> dict:
        """Fetch /object_info, the catalogue of node types and their inputs."""
        return await self._requests.get(self._url("object_info"), timeout=self.timeout)

    async def list_checkpoints(self, object_info: Optional[dict] = None) -> list[str]:
        """Checkpoint names accepted by CheckpointLoaderSimple."""
        if object_info is None:
            object_info = await self.get_object_info()
        return checkpoints_from_object_info(object_info)

    async def _post_prompt(self, workflow: dict) -> dict:
        data = {"prompt": workflow, "client_id": self.client_id}
        try:
            result = await self._requests.post(
                self._url("prompt"), data, timeout=self.timeout
            )
        except NetworkError as e:
            if e.status is None or e.status < 400:
                raise
            raise WorkflowValidationError(
                f"Workflow validation failed: {e.message}", data=e.data
            ) from e
        if not isinstance(result, dict):
            raise WorkflowValidationError("Unexpected response from /prompt")
        return result

    async def validate(self, workflow: dict) -> dict:
        """Submit the workflow once and only check it was accepted.

        ComfyUI has no dry-run endpoint, so this queues the graph as well.
        """
        logger.info("Validating workflow...")
        result = await self._post_prompt(workflow)
        logger.info("Workflow validation successful: %s", result)
        return result

    async def submit(self, workflow: dict, prevalidate: bool = False) -> str:
        """Queue a workflow and return its prompt id.

        Raises:
            WorkflowValidationError: the server rejected the workflow
            BackendUnavailableError: the server could not be reached
        """
        if prevalidate:
            await self.validate(workflow)

        logger.info("Sending workflow to ComfyUI...")
        result = await self._post_prompt(workflow)
        prompt_id = result.get("prompt_id")
        if not prompt_id:
            raise WorkflowValidationError(
                f"No prompt_id in /prompt response: {result}", data=result
            )
        node_errors = result.get("node_errors")
        if node_errors:
            logger.warning("Prompt %s queued with node errors: %s", prompt_id, node_errors)
        logger.info("Prompt queued with ID: %s", prompt_id)
        return prompt_id

    async def get_history(self, prompt_id: str) -> dict:
        """Fetch /history/{prompt_id}. Empty dict while the job is queued."""
        result = await self._requests.get(
            self._url(f"history/{prompt_id}"), timeout=self.timeout
        )
        return result if isinstance(result, dict) else {}

    async def view_image(
        self,
        filename: str,
        subfolder: str = "",
        image_type: str = "",
    ) -> bytes:
        """Download an output image.

        Raises:
            ArtifactNotFoundError: the file is not served yet
        """
        params = {"filename": filename}
        if subfolder:
            params["subfolder"] = subfolder
        if image_type:
            params["type"] = image_type
        logger.info("Fetching image %s", filename)
        return await self._requests.download(
            self._url("view"), timeout=self.timeout, params=params
        )


def checkpoints_from_object_info(object_info: dict) -> list[str]:
    """Read the ``ckpt_name`` choices of the checkpoint loader node."""
    try:
        ckpt_input = object_info[CHECKPOINT_LOADER]["input"]["required"]["ckpt_name"]
        choices = ckpt_input[0]
    except (KeyError, IndexError, TypeError):
        return []
    # Newer servers send ["COMBO", {"options": [...]}]
    if choices == "COMBO" and len(ckpt_input) > 1 and isinstance(ckpt_input[1], dict):
        choices = ckpt_input[1].get("options", [])
    if not isinstance(choices, list):
        return []
    return [str(c) for c in choices]
