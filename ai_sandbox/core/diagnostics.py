"""Backend connectivity report."""
from .comfy_client import ComfyClient, checkpoints_from_object_info

KEY_OPERATIONS = [
    "KSampler",
    "CheckpointLoaderSimple",
    "CLIPTextEncode",
    "VAEDecode",
    "EmptyLatentImage",
    "SaveImage",
]

GIB = 1024 ** 3


async def collect_diagnostics(client: ComfyClient) -> dict:
    """Collect versions, devices and node availability from the backend.

    Raises:
        NetworkError: a request failed (BackendUnavailableError if unreachable)
    """
    stats = await client.system_stats()
    object_info = await client.get_object_info()

    system = stats.get("system", {})
    devices = [
        {
            "name": device.get("name", "unknown"),
            "vram_total_gb": round(device.get("vram_total", 0) / GIB),
            "vram_free_gb": round(device.get("vram_free", 0) / GIB),
        }
        for device in stats.get("devices", [])
    ]

    return {
        "comfyui_version": system.get("comfyui_version"),
        "python_version": system.get("python_version"),
        "pytorch_version": system.get("pytorch_version"),
        "devices": devices,
        "object_count": len(object_info),
        "key_operations": [op for op in KEY_OPERATIONS if op in object_info],
        "missing_operations": [op for op in KEY_OPERATIONS if op not in object_info],
        "checkpoints": checkpoints_from_object_info(object_info),
    }
