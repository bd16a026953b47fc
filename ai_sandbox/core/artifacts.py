"""Local storage for generated images.

Every request shape maps to one fixed file: ``generated.png`` in the output
directory, or ``area_<id>.png`` in the survival directory when an area id is
given. Saving replaces the previous file at that path.
"""
import logging
from pathlib import Path
from typing import Optional

from .workflow import AREA_ID_PATTERN

logger = logging.getLogger(__name__)

DEFAULT_FILENAME = "generated.png"


class ArtifactStore:
    def __init__(
        self,
        output_dir: Path,
        survival_dir: Path,
        output_url: str = "/images",
        survival_url: str = "/survival",
    ):
        self.output_dir = Path(output_dir)
        self.survival_dir = Path(survival_dir)
        self.output_url = output_url.rstrip("/")
        self.survival_url = survival_url.rstrip("/")

    @staticmethod
    def filename_for(area_id: Optional[str] = None) -> str:
        if not area_id:
            return DEFAULT_FILENAME
        if not AREA_ID_PATTERN.fullmatch(area_id):
            raise ValueError(f"Invalid area_id: {area_id!r}")
        return f"area_{area_id}.png"

    def path_for(self, area_id: Optional[str] = None) -> Path:
        """Local destination for a request with the given area id."""
        directory = self.survival_dir if area_id else self.output_dir
        return directory / self.filename_for(area_id)

    def public_path(self, area_id: Optional[str] = None) -> str:
        """URL path the web app serves the artifact under."""
        base = self.survival_url if area_id else self.output_url
        return f"{base}/{self.filename_for(area_id)}"

    def ensure_dirs(self):
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.survival_dir.mkdir(parents=True, exist_ok=True)

    def save(self, data: bytes, area_id: Optional[str] = None) -> Path:
        """Write ``data`` to the destination for ``area_id``, replacing any old file.

        Returns:
            Path of the written file
        """
        path = self.path_for(area_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.unlink(missing_ok=True)
        path.write_bytes(data)
        logger.info("Image saved to: %s", path)
        return path
