"""AI Sandbox - local ComfyUI orchestration layer.

Drives a self-hosted ComfyUI server through its HTTP API: builds a txt2img
workflow, queues it, polls the history until the image is servable and stores
it under a fixed local path.
"""
__version__ = "0.1.0"
