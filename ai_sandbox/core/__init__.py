"""Core module containing framework-agnostic business logic."""
from .artifacts import ArtifactStore
from .comfy_client import ComfyClient, checkpoints_from_object_info
from .errors import (
    ArtifactNotFoundError,
    BackendUnavailableError,
    ComfyError,
    GenerationFailedError,
    GenerationTimeoutError,
    NetworkError,
    WorkflowValidationError,
)
from .generator import GenerationResult, generate
from .poller import JobStatus, PolledImage, infer_job_status, wait_for_image
from .settings import GenerationDefaults, Settings, load_settings, save_settings
from .workflow import GenerationRequest, build_txt2img_workflow

__all__ = [
    # Settings
    "GenerationDefaults",
    "Settings",
    "load_settings",
    "save_settings",
    # Workflow
    "GenerationRequest",
    "build_txt2img_workflow",
    # Client
    "ComfyClient",
    "checkpoints_from_object_info",
    # Polling
    "JobStatus",
    "PolledImage",
    "infer_job_status",
    "wait_for_image",
    # Storage
    "ArtifactStore",
    # Orchestration
    "GenerationResult",
    "generate",
    # Errors
    "ComfyError",
    "NetworkError",
    "BackendUnavailableError",
    "ArtifactNotFoundError",
    "WorkflowValidationError",
    "GenerationFailedError",
    "GenerationTimeoutError",
]
