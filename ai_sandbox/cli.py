"""Command line entry points.

``ai-sandbox-generate`` prints exactly one line on stdout, the public path of
the stored image, so callers can capture it. Everything else is logged to
stderr.
"""
import argparse
import asyncio
import logging
import sys
from typing import Optional

from ai_sandbox.core.diagnostics import collect_diagnostics
from ai_sandbox.core.comfy_client import ComfyClient
from ai_sandbox.core.errors import BackendUnavailableError, ComfyError
from ai_sandbox.core.generator import generate
from ai_sandbox.core.settings import load_settings
from ai_sandbox.core.workflow import GenerationRequest

logger = logging.getLogger("ai_sandbox.cli")

USAGE = (
    'Usage: ai-sandbox-generate "your prompt here" ["negative prompt"] '
    '["model name"] [width] [height] [areaId]'
)


def setup_logging(level: int = logging.INFO):
    logging.basicConfig(
        level=level,
        stream=sys.stderr,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _parse_dimension(value: Optional[str]) -> Optional[int]:
    """Parse a width/height argument; anything unusable means "use default"."""
    if not value:
        return None
    try:
        number = int(value)
    except ValueError:
        return None
    return number if number > 0 else None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ai-sandbox-generate",
        description="Generate one image with ComfyUI and print its public path.",
    )
    parser.add_argument("prompt", nargs="?", default="")
    parser.add_argument("negative_prompt", nargs="?", default="")
    parser.add_argument("model", nargs="?", default="")
    parser.add_argument("width", nargs="?", default="")
    parser.add_argument("height", nargs="?", default="")
    parser.add_argument("area_id", nargs="?", default="")
    parser.add_argument("--settings", help="Path to the settings JSON file")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    if not args.prompt:
        print("Please provide a prompt as a command line argument", file=sys.stderr)
        print(USAGE, file=sys.stderr)
        return 1

    setup_logging()

    try:
        settings = load_settings(args.settings)
        request = GenerationRequest.create(
            prompt=args.prompt,
            negative_prompt=args.negative_prompt,
            model=args.model,
            width=_parse_dimension(args.width),
            height=_parse_dimension(args.height),
            area_id=args.area_id,
            defaults=settings.defaults,
        )
        result = asyncio.run(generate(request, settings))
    except (ValueError, OSError, ComfyError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    sys.stdout.write(result.public_path + "\n")
    sys.stdout.flush()
    return 0


def check_main(argv: Optional[list[str]] = None) -> int:
    """Connectivity test against the configured (or given) ComfyUI server."""
    parser = argparse.ArgumentParser(
        prog="ai-sandbox-check",
        description=(
            "Check that the ComfyUI API is reachable. Exits 1 when the server "
            "cannot be queried; missing key operations are only reported."
        ),
    )
    parser.add_argument("url", nargs="?", help="ComfyUI base URL (overrides settings)")
    parser.add_argument("--settings", help="Path to the settings JSON file")
    args = parser.parse_args(argv)

    setup_logging(logging.WARNING)
    settings = load_settings(args.settings)
    if args.url:
        settings = settings.update({"comfy_url": args.url})

    async def run() -> dict:
        async with ComfyClient(settings.api_url, settings.auth_token, timeout=5) as client:
            return await collect_diagnostics(client)

    print(f"Testing ComfyUI API at: {settings.api_url}")
    try:
        report = asyncio.run(run())
    except BackendUnavailableError as e:
        print(f"Could not connect to ComfyUI ({e}). Is it running and reachable?", file=sys.stderr)
        return 1
    except ComfyError as e:
        print(f"API Error: {e}", file=sys.stderr)
        return 1

    print("System Information:")
    print(f"- ComfyUI Version: {report['comfyui_version']}")
    print(f"- Python Version: {report['python_version']}")
    print(f"- PyTorch Version: {report['pytorch_version']}")
    print("\nGPU Information:")
    for device in report["devices"]:
        print(f"- {device['name']}")
        print(f"  VRAM Total: {device['vram_total_gb']}GB")
        print(f"  VRAM Free: {device['vram_free_gb']}GB")
    print(f"\nFound {report['object_count']} available models and operations")
    print("\nSome key operations available:")
    for op in report["key_operations"]:
        print(f"- {op}")
    if report["missing_operations"]:
        print(f"\nMissing operations: {', '.join(report['missing_operations'])}")
    print(f"\nCheckpoints: {', '.join(report['checkpoints']) or 'none'}")
    print("\nTest completed successfully!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
