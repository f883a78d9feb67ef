"""Persisted theme preference."""
from __future__ import annotations

from typing import Literal, cast
import logging

from .storage import KeyValueStorage, StorageError

logger = logging.getLogger(__name__)

Theme = Literal["light", "dark", "system"]

THEMES = ("light", "dark", "system")
THEME_KEY = "meila_theme_v1"
DEFAULT_THEME: Theme = "system"


class ThemePreference:
    def __init__(self, storage: KeyValueStorage, key: str = THEME_KEY) -> None:
        self.storage = storage
        self.key = key

    def get(self) -> Theme:
        try:
            value = self.storage.get(self.key)
        except (StorageError, OSError):
            logger.exception("Failed to load theme preference")
            return DEFAULT_THEME
        if value not in THEMES:
            return DEFAULT_THEME
        return cast(Theme, value)

    def set(self, theme: str) -> None:
        if theme not in THEMES:
            raise ValueError(f"Unknown theme {theme!r}")
        try:
            self.storage.set(self.key, theme)
        except (StorageError, OSError):
            logger.exception("Failed to save theme preference")


__all__ = ["DEFAULT_THEME", "THEMES", "Theme", "ThemePreference"]
