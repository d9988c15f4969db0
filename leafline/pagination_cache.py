"""On-disk cache of dynamic page maps.

One JSON file per document, named by the SHA1 of the document's canonical
path, stored in the user's cache directory. Each file holds the page maps
for every layout (terminal size, view mode, line spacing) the document has
been paginated at. Only compact page records are stored; wrapped lines are
always re-derived.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import platformdirs

from .constants import LayoutConstants
from .document import DocumentLike

logger = logging.getLogger(__name__)

CompactPage = Dict[str, int]

_REQUIRED_FIELDS = ("chapter_index", "page_in_chapter", "total_pages_in_chapter", "start_line", "end_line")


def _document_path(document: Union[DocumentLike, str]) -> Optional[str]:
    if isinstance(document, str):
        return document
    return getattr(document, "canonical_path", None)


def _valid_page(page: Any) -> bool:
    if not isinstance(page, dict):
        return False
    for name in _REQUIRED_FIELDS:
        value = page.get(name)
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            return False
    return page["start_line"] <= page["end_line"]


class PaginationCache:
    """Persists page maps keyed by document identity and layout."""

    def __init__(self, cache_dir: Optional[Union[str, Path]] = None):
        """Initialize the cache.

        Args:
            cache_dir: Directory for cache files. Defaults to the
                platform's user cache directory for leafline.
        """
        if cache_dir is None:
            cache_dir = platformdirs.user_cache_dir("leafline")
        self._cache_dir = Path(cache_dir)

    @property
    def cache_dir(self) -> Path:
        return self._cache_dir

    @staticmethod
    def layout_key(width: int, height: int, view_mode: str, line_spacing: str) -> str:
        return f"{width}x{height}_{view_mode}_{line_spacing}"

    def cache_path(self, document: Union[DocumentLike, str]) -> Optional[Path]:
        """Path of the cache file for a document, or None without a canonical path."""
        path = _document_path(document)
        if not path:
            return None
        digest = hashlib.sha1(path.encode("utf-8")).hexdigest()
        return self._cache_dir / f"{digest}{LayoutConstants.CACHE_FILE_SUFFIX}"

    def _read(self, cache_file: Path) -> Optional[Dict[str, Any]]:
        try:
            with open(cache_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return None
        except (json.JSONDecodeError, UnicodeDecodeError, OSError) as e:
            logger.warning(f"Could not read pagination cache {cache_file}: {e}")
            return None

        if not isinstance(data, dict) or not isinstance(data.get("layouts"), dict):
            logger.warning(f"Pagination cache {cache_file} has invalid format, ignoring")
            return None
        version = data.get("version")
        if not isinstance(version, int) or version > LayoutConstants.CACHE_SCHEMA_VERSION:
            logger.warning(f"Pagination cache {cache_file} has unsupported version {version!r}, ignoring")
            return None
        return data

    def load_for_document(self, document: Union[DocumentLike, str], key: str) -> Optional[List[CompactPage]]:
        """Load the compact page list stored for a layout key.

        Returns:
            The list of compact pages, or None on a miss, an unreadable
            file, or a malformed entry.
        """
        cache_file = self.cache_path(document)
        if cache_file is None:
            return None
        data = self._read(cache_file)
        if data is None:
            return None

        entry = data["layouts"].get(key)
        if entry is None:
            return None
        if not isinstance(entry, dict) or entry.get("version") != LayoutConstants.CACHE_SCHEMA_VERSION:
            logger.warning(f"Pagination cache entry {key} in {cache_file} is stale, ignoring")
            return None
        pages = entry.get("pages")
        if not isinstance(pages, list) or not all(_valid_page(page) for page in pages):
            logger.warning(f"Pagination cache entry {key} in {cache_file} is malformed, ignoring")
            return None
        return [{name: page[name] for name in _REQUIRED_FIELDS} for page in pages]

    def save_for_document(self, document: Union[DocumentLike, str], key: str,
                          pages: List[CompactPage]) -> bool:
        """Store compact pages for a layout key, keeping other layouts.

        Returns:
            True if the write succeeded, False otherwise.
        """
        cache_file = self.cache_path(document)
        if cache_file is None:
            return False
        try:
            self._cache_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning(f"Could not create cache directory {self._cache_dir}: {e}")
            return False

        data = self._read(cache_file) or {"version": LayoutConstants.CACHE_SCHEMA_VERSION, "layouts": {}}
        data["version"] = LayoutConstants.CACHE_SCHEMA_VERSION
        data["layouts"][key] = {
            "version": LayoutConstants.CACHE_SCHEMA_VERSION,
            "pages": [{name: int(page[name]) for name in _REQUIRED_FIELDS} for page in pages],
        }

        temp_name = None
        try:
            # Write to temp file first, then rename for atomicity
            with tempfile.NamedTemporaryFile(
                mode="w",
                encoding="utf-8",
                dir=self._cache_dir,
                suffix=".tmp",
                delete=False,
            ) as temp_file:
                temp_name = temp_file.name
                json.dump(data, temp_file)
            os.replace(temp_name, cache_file)
            return True
        except (OSError, TypeError, ValueError) as e:
            logger.warning(f"Could not save pagination cache {cache_file}: {e}")
            if temp_name is not None:
                try:
                    os.remove(temp_name)
                except OSError:
                    pass
            return False

    def delete_for_document(self, document: Union[DocumentLike, str]) -> None:
        cache_file = self.cache_path(document)
        if cache_file is None:
            return
        try:
            cache_file.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not delete pagination cache {cache_file}: {e}")

    def exists_for_document(self, document: Union[DocumentLike, str], key: Optional[str] = None) -> bool:
        """Whether a cache file (or, given a key, that layout's entry) exists."""
        cache_file = self.cache_path(document)
        if cache_file is None or not cache_file.exists():
            return False
        if key is None:
            return True
        return self.load_for_document(document, key) is not None
