"""Per-document reader settings and reading position.

Settings live in one JSON file in the platform's user config directory,
keyed by the absolute path of the document.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import platformdirs

from .constants import LINE_SPACINGS, PAGE_NUMBERING_MODES, VIEW_MODES
from .layout import LayoutConfig
from .page_calculator import PendingPosition

logger = logging.getLogger(__name__)

_CHOICES = {
    "view_mode": VIEW_MODES,
    "line_spacing": LINE_SPACINGS,
    "page_numbering_mode": PAGE_NUMBERING_MODES,
}
_POSITION_KEYS = ("chapter_index", "line_offset", "page_in_chapter")


class SettingsPersistence:
    """Reads and writes the settings file, caching it in memory."""

    def __init__(self, config_dir: Optional[Union[str, Path]] = None):
        if config_dir is None:
            config_dir = platformdirs.user_config_dir("leafline")
        self._config_dir = Path(config_dir)
        self._settings_file = self._config_dir / "settings.json"
        self._settings_cache: Optional[Dict[str, Dict[str, Any]]] = None

    @property
    def settings_file(self) -> Path:
        return self._settings_file

    def _load_all(self) -> Dict[str, Dict[str, Any]]:
        if self._settings_cache is not None:
            return self._settings_cache
        self._settings_cache = {}
        if not self._settings_file.exists():
            return self._settings_cache
        try:
            with open(self._settings_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError, OSError) as e:
            logger.warning(f"Could not load settings from {self._settings_file}: {e}")
            return self._settings_cache
        if not isinstance(data, dict):
            logger.warning("Settings file has invalid format (not a dict), ignoring")
            return self._settings_cache
        self._settings_cache = data
        return self._settings_cache

    def _save_all(self, settings: Dict[str, Dict[str, Any]]) -> bool:
        try:
            self._config_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning(f"Could not create config directory {self._config_dir}: {e}")
            return False

        temp_file = self._settings_file.with_suffix(".tmp")
        try:
            with open(temp_file, "w", encoding="utf-8") as f:
                json.dump(settings, f, indent=2)
            temp_file.replace(self._settings_file)
        except (OSError, TypeError, ValueError) as e:
            logger.warning(f"Could not save settings to {self._settings_file}: {e}")
            try:
                if temp_file.exists():
                    temp_file.unlink()
            except OSError:
                pass
            return False
        self._settings_cache = settings
        return True

    @staticmethod
    def _key(document_path: Optional[str]) -> Optional[str]:
        if not document_path:
            return None
        try:
            return os.path.abspath(document_path)
        except (OSError, ValueError):
            logger.warning(f"Invalid document path: {document_path}")
            return None

    def load_settings(self, document_path: Optional[str]) -> Dict[str, Any]:
        """Settings for one document; {} when none are stored."""
        key = self._key(document_path)
        if key is None:
            return {}
        settings = self._load_all().get(key, {})
        if not isinstance(settings, dict):
            logger.warning(f"Settings for {key} are not a dict, ignoring")
            return {}
        return dict(settings)

    def save_settings(self, document_path: Optional[str], settings: Dict[str, Any]) -> bool:
        """Replace one document's settings. Invalid values are dropped."""
        key = self._key(document_path)
        if key is None:
            return False
        clean = {}
        for name, value in settings.items():
            if self.validate_setting(name, value):
                clean[name] = value
            else:
                logger.warning(f"Not saving invalid setting {name}={value!r}")
        all_settings = dict(self._load_all())
        all_settings[key] = clean
        return self._save_all(all_settings)

    def update_settings(self, document_path: Optional[str], **changes: Any) -> bool:
        settings = self.load_settings(document_path)
        settings.update(changes)
        return self.save_settings(document_path, settings)

    def layout_config(self, document_path: Optional[str]) -> LayoutConfig:
        return LayoutConfig.from_settings(self.load_settings(document_path))

    def save_position(self, document_path: Optional[str], chapter_index: int,
                      line_offset: Optional[int] = None, page_in_chapter: Optional[int] = None) -> bool:
        position = {"chapter_index": chapter_index}
        if line_offset is not None:
            position["line_offset"] = line_offset
        if page_in_chapter is not None:
            position["page_in_chapter"] = page_in_chapter
        return self.update_settings(document_path, position=position)

    def load_position(self, document_path: Optional[str]) -> Optional[PendingPosition]:
        position = self.load_settings(document_path).get("position")
        if not self.validate_setting("position", position) or position is None:
            return None
        return PendingPosition.from_dict(position)

    def validate_setting(self, key: str, value: Any) -> bool:
        """Check a setting's type and range. Unknown keys pass."""
        if value is None:
            return True
        if key in _CHOICES:
            return value in _CHOICES[key]
        if key == "image_rendering":
            return isinstance(value, bool)
        if key == "position":
            if not isinstance(value, dict) or "chapter_index" not in value:
                return False
            return all(
                isinstance(value[name], int) and not isinstance(value[name], bool) and value[name] >= 0
                for name in _POSITION_KEYS if name in value
            )
        return True

    def clear_cache(self) -> None:
        self._settings_cache = None


_persistence: Optional[SettingsPersistence] = None


def get_persistence() -> SettingsPersistence:
    """Shared SettingsPersistence instance."""
    global _persistence
    if _persistence is None:
        _persistence = SettingsPersistence()
    return _persistence
