"""
chronicle/config.py -- Project settings and path resolution.

Settings live in ``<project>/_chronicle/settings.json``.  A missing or
corrupt file, or one holding invalid values, never stops the engine: the
defaults are used instead and the problem is logged.

The Anthropic API key may be left out of the file entirely and supplied
through the ``ANTHROPIC_API_KEY`` environment variable.
"""

from __future__ import annotations

import logging
import os
from typing import Literal

from platformdirs import user_data_dir
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from chronicle.utils import safe_read_json, safe_write_json

logger = logging.getLogger(__name__)

_APP_NAME = "Chronicle"
_APP_AUTHOR = "Chronicle"

SETTINGS_PATH = os.path.join("_chronicle", "settings.json")

DEFAULT_ANTHROPIC_MODEL = "claude-haiku-4-5-20251001"
DEFAULT_OLLAMA_MODEL = "llama3.2"


class Settings(BaseModel):
    """User-facing configuration for one writing project."""

    model_config = ConfigDict(extra="ignore")

    bible_folder: str = "_chronicle/bible"
    registry_path: str = "_chronicle/registry.json"
    scene_folders: list[str] = Field(default_factory=list)
    scan_on_save: bool = True
    extraction_window: int = Field(default=1, ge=1)
    absence_warning_threshold: int = Field(default=5, ge=0)

    llm_enabled: bool = False
    llm_provider: Literal["anthropic", "ollama"] = "anthropic"
    llm_api_key: str = ""
    llm_model: str = DEFAULT_ANTHROPIC_MODEL
    ollama_endpoint: str = "http://localhost:11434"
    ollama_model: str = DEFAULT_OLLAMA_MODEL
    llm_timeout: float = Field(default=60, gt=0)

    @field_validator("bible_folder", "registry_path")
    @classmethod
    def _normalise_path(cls, value: str) -> str:
        value = value.strip().replace("\\", "/").rstrip("/")
        if not value:
            raise ValueError("path must not be empty")
        return value

    @field_validator("scene_folders")
    @classmethod
    def _normalise_folders(cls, value: list[str]) -> list[str]:
        folders = [f.strip().replace("\\", "/").rstrip("/") for f in value]
        return [f for f in folders if f]

    @property
    def registry_folder(self) -> str:
        """Folder holding the registry, or ``""`` when it sits at the root."""
        return self.registry_path.rpartition("/")[0]

    @property
    def conflict_log_path(self) -> str:
        folder = self.registry_folder
        return f"{folder}/conflicts.json" if folder else "conflicts.json"


def default_project_root() -> str:
    """Return the platform-appropriate fallback project directory."""
    path = user_data_dir(_APP_NAME, _APP_AUTHOR)
    os.makedirs(path, exist_ok=True)
    return path


def load_settings(project_root: str) -> Settings:
    """Load settings for *project_root*, falling back to defaults.

    Parameters
    ----------
    project_root : str
        Root directory of the writing project.

    Returns
    -------
    Settings
        Always a valid settings object.
    """
    path = os.path.join(project_root, SETTINGS_PATH)
    raw = safe_read_json(path, default=None)
    settings = Settings()

    if raw is None:
        if os.path.exists(path):
            logger.warning("Could not read settings from %s; using defaults", path)
    elif not isinstance(raw, dict):
        logger.warning("Settings file %s is not a JSON object; using defaults", path)
    else:
        try:
            settings = Settings.model_validate(raw)
        except ValidationError as exc:
            logger.warning(
                "Invalid settings in %s (%d problem(s)); using defaults: %s",
                path, exc.error_count(), exc.errors()[0].get("msg", ""),
            )

    if not settings.llm_api_key:
        env_key = os.environ.get("ANTHROPIC_API_KEY", "")
        if env_key:
            settings = settings.model_copy(update={"llm_api_key": env_key})
    return settings


def save_settings(project_root: str, settings: Settings) -> None:
    """Atomically write *settings* to the project's settings file.

    A key that came from ``ANTHROPIC_API_KEY`` is not written back.
    """
    path = os.path.join(project_root, SETTINGS_PATH)
    data = settings.model_dump()
    if data["llm_api_key"] and data["llm_api_key"] == os.environ.get("ANTHROPIC_API_KEY"):
        data["llm_api_key"] = ""
    safe_write_json(path, data)
    logger.info("Settings saved to %s", path)
