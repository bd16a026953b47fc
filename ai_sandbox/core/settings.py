"""Application settings.

Settings are an explicit value: loaded once at process start with
``load_settings``, passed to whoever needs them, and written back only through
``save_settings``. Priority is defaults < settings file < environment.
"""
import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

DEFAULT_COMFY_URL = "http://localhost:8188"
DEFAULT_SETTINGS_FILE = "settings.json"
DEFAULT_MODEL = "dreamshaper_8.safetensors"
DEFAULT_NEGATIVE_PROMPT = "text, watermark"
DEFAULT_WIDTH = 448
DEFAULT_HEIGHT = 640
DEFAULT_TIMEOUT = 300.0
DEFAULT_POLL_INTERVAL = 1.0

EDITABLE_FIELDS = ("comfy_url", "timeout", "poll_interval", "prevalidate_workflow")


@dataclass(frozen=True)
class GenerationDefaults:
    """Values used when a request leaves a generation parameter empty."""
    model: str = DEFAULT_MODEL
    negative_prompt: str = DEFAULT_NEGATIVE_PROMPT
    width: int = DEFAULT_WIDTH
    height: int = DEFAULT_HEIGHT


@dataclass(frozen=True)
class Settings:
    comfy_url: str = DEFAULT_COMFY_URL
    api_prefix: str = "/api"
    auth_token: Optional[str] = None
    timeout: float = DEFAULT_TIMEOUT
    poll_interval: float = DEFAULT_POLL_INTERVAL
    prevalidate_workflow: bool = False
    output_dir: Path = Path("public") / "images"
    survival_dir: Path = Path("public") / "survival"
    defaults: GenerationDefaults = field(default_factory=GenerationDefaults)

    @property
    def api_url(self) -> str:
        """Base URL all backend paths are appended to."""
        return self.comfy_url.rstrip("/") + self.api_prefix

    def update(self, data: dict[str, Any]) -> "Settings":
        """Return a copy with the editable fields in ``data`` applied.

        ``data`` is expected to be validated already (see the web layer's
        ``SettingsUpdate``); unknown keys are ignored.

        Raises:
            ValueError: ``comfy_url`` is empty
        """
        changes = {k: data[k] for k in EDITABLE_FIELDS if k in data}
        if "comfy_url" in changes:
            changes["comfy_url"] = str(changes["comfy_url"]).strip()
            if not changes["comfy_url"]:
                raise ValueError("comfy_url must not be empty")
        if isinstance(data.get("defaults"), dict):
            default_fields = {f.name for f in fields(GenerationDefaults)}
            changes["defaults"] = replace(
                self.defaults,
                **{k: v for k, v in data["defaults"].items() if k in default_fields},
            )
        return replace(self, **changes)

    def to_dict(self, include_secrets: bool = False) -> dict[str, Any]:
        data = asdict(self)
        data["output_dir"] = str(self.output_dir)
        data["survival_dir"] = str(self.survival_dir)
        if not include_secrets:
            data.pop("auth_token", None)
        return data


def settings_path(path: str | Path | None = None) -> Path:
    """Resolve the settings file location (argument, env var, default)."""
    if path:
        return Path(path)
    return Path(os.getenv("AI_SANDBOX_SETTINGS", DEFAULT_SETTINGS_FILE))


def _from_dict(data: dict[str, Any]) -> Settings:
    known = {f.name for f in fields(Settings)}
    values = {k: v for k, v in data.items() if k in known and k != "defaults"}
    for name in ("output_dir", "survival_dir"):
        if name in values:
            values[name] = Path(values[name])
    if isinstance(data.get("defaults"), dict):
        default_fields = {f.name for f in fields(GenerationDefaults)}
        values["defaults"] = GenerationDefaults(
            **{k: v for k, v in data["defaults"].items() if k in default_fields}
        )
    return Settings(**values)


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings from the JSON file (if present) and the environment.

    Raises:
        ValueError: the settings file is not valid JSON
    """
    file_path = settings_path(path)
    settings = Settings()

    if file_path.exists():
        try:
            data = json.loads(file_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid settings file {file_path}: {e}") from e
        if isinstance(data, dict):
            settings = _from_dict(data)
        logger.info("Loaded settings from %s", file_path)

    env_url = os.getenv("COMFY_URL")
    if env_url:
        settings = replace(settings, comfy_url=env_url)
    env_token = os.getenv("COMFY_AUTH_TOKEN")
    if env_token:
        settings = replace(settings, auth_token=env_token)
    return settings


def save_settings(settings: Settings, path: str | Path | None = None) -> Path:
    """Persist settings as JSON. The auth token is never written."""
    file_path = settings_path(path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    file_path.write_text(json.dumps(settings.to_dict(), indent=2), encoding="utf-8")
    logger.info("Saved settings to %s", file_path)
    return file_path
