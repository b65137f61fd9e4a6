"""YAML persistence for user settings."""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path

import yaml
from pydantic import ValidationError

from focuslock.core.settings import Settings

logger = logging.getLogger(__name__)


class SettingsStore:
    """Loads and saves ``Settings`` as a YAML document.

    A missing, unreadable or invalid file never propagates an error: ``load()``
    falls back to default settings and logs why.
    """

    def __init__(self, path: Path):
        self.path = path

    async def load(self) -> Settings:
        return await asyncio.to_thread(self.load_sync)

    async def save(self, settings: Settings) -> bool:
        return await asyncio.to_thread(self.save_sync, settings)

    def load_sync(self) -> Settings:
        """Read settings from disk, or return defaults."""
        if not self.path.exists():
            logger.info(f"Settings file not found at {self.path}, using defaults")
            return Settings()

        try:
            with open(self.path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
            if not isinstance(data, dict):
                raise ValueError("Top-level YAML value must be a mapping")
            return Settings.model_validate(data)
        except (yaml.YAMLError, ValueError, ValidationError, OSError) as e:
            logger.error(f"Failed to load settings from {self.path}: {e} - using defaults")
            return Settings()

    def save_sync(self, settings: Settings) -> bool:
        """Write settings to disk. Returns False if the file could not be written."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            data = settings.model_dump(mode="json")

            tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            with open(tmp_path, "w", encoding="utf-8") as f:
                yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
            os.replace(tmp_path, self.path)
            return True
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to save settings to {self.path}: {e}")
            return False
