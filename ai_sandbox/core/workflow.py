"""Text-to-image workflow builder for ComfyUI.

Builds the fixed checkpoint -> encode -> sample -> decode -> save graph in
ComfyUI's API format. Inputs are either literals or ``[node_id, slot]``
references to another node's output.
"""
import random
import re
from dataclasses import dataclass
from typing import Iterator, Optional

from .settings import GenerationDefaults

FILENAME_PREFIX = "ai-sandbox"
SEED_RANGE = 1_000_000

# area ids end up in a file name
AREA_ID_PATTERN = re.compile(r"[A-Za-z0-9_-]+")

SAMPLER_NODE = "3"
CHECKPOINT_NODE = "4"
LATENT_NODE = "5"
POSITIVE_NODE = "6"
NEGATIVE_NODE = "7"
DECODE_NODE = "8"
SAVE_NODE = "9"


@dataclass(frozen=True)
class GenerationRequest:
    """A single txt2img request. Immutable once built."""
    prompt: str
    negative_prompt: str = GenerationDefaults.negative_prompt
    model: str = GenerationDefaults.model
    width: int = GenerationDefaults.width
    height: int = GenerationDefaults.height
    area_id: Optional[str] = None

    def __post_init__(self):
        if not isinstance(self.prompt, str) or not self.prompt.strip():
            raise ValueError("Prompt is required")
        for name in ("width", "height"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ValueError(f"{name} must be a positive integer, got {value!r}")
        if self.area_id is not None and not AREA_ID_PATTERN.fullmatch(self.area_id):
            raise ValueError(
                f"area_id may only contain letters, digits, '_' and '-', got {self.area_id!r}"
            )

    @classmethod
    def create(
        cls,
        prompt: str,
        negative_prompt: Optional[str] = None,
        model: Optional[str] = None,
        width: Optional[int] = None,
        height: Optional[int] = None,
        area_id: Optional[str] = None,
        defaults: GenerationDefaults = GenerationDefaults(),
    ) -> "GenerationRequest":
        """Build a request, falling back to ``defaults`` for empty values."""
        return cls(
            prompt=prompt,
            negative_prompt=negative_prompt or defaults.negative_prompt,
            model=model or defaults.model,
            width=width or defaults.width,
            height=height or defaults.height,
            area_id=str(area_id) if area_id else None,
        )


def build_txt2img_workflow(request: GenerationRequest) -> dict:
    """Build a txt2img workflow for ComfyUI.

    A fresh random seed is drawn on every call so identical prompts still
    produce distinct images.

    Args:
        request: Generation parameters

    Returns:
        ComfyUI workflow dict
    """
    return {
        SAMPLER_NODE: {
            "class_type": "KSampler",
            "inputs": {
                "seed": random.randrange(SEED_RANGE),
                "steps": 20,
                "cfg": 7,
                "sampler_name": "euler",
                "scheduler": "normal",
                "denoise": 1.0,
                "model": [CHECKPOINT_NODE, 0],
                "positive": [POSITIVE_NODE, 0],
                "negative": [NEGATIVE_NODE, 0],
                "latent_image": [LATENT_NODE, 0],
            },
        },
        CHECKPOINT_NODE: {
            "class_type": "CheckpointLoaderSimple",
            "inputs": {
                "ckpt_name": request.model,
            },
        },
        LATENT_NODE: {
            "class_type": "EmptyLatentImage",
            "inputs": {
                "width": request.width,
                "height": request.height,
                "batch_size": 1,
            },
        },
        POSITIVE_NODE: {
            "class_type": "CLIPTextEncode",
            "inputs": {
                "text": request.prompt,
                "clip": [CHECKPOINT_NODE, 1],
            },
        },
        NEGATIVE_NODE: {
            "class_type": "CLIPTextEncode",
            "inputs": {
                "text": request.negative_prompt,
                "clip": [CHECKPOINT_NODE, 1],
            },
        },
        DECODE_NODE: {
            "class_type": "VAEDecode",
            "inputs": {
                "samples": [SAMPLER_NODE, 0],
                "vae": [CHECKPOINT_NODE, 2],
            },
        },
        SAVE_NODE: {
            "class_type": "SaveImage",
            "inputs": {
                "filename_prefix": FILENAME_PREFIX,
                "images": [DECODE_NODE, 0],
            },
        },
    }


def workflow_seed(workflow: dict) -> int:
    return workflow[SAMPLER_NODE]["inputs"]["seed"]


def workflow_references(workflow: dict) -> Iterator[tuple[str, str, str]]:
    """Yield (node_id, input_name, referenced_node_id) for every link."""
    for node_id, node in workflow.items():
        for name, value in node["inputs"].items():
            if isinstance(value, list) and len(value) == 2 and isinstance(value[1], int):
                yield node_id, name, str(value[0])
