"""Tests for the on-disk page map cache."""

import json
import os
import shutil
import tempfile
import unittest

from leafline.constants import LayoutConstants
from leafline.document import Document
from leafline.pagination_cache import PaginationCache

PAGES = [
    {"chapter_index": 0, "page_in_chapter": 0, "total_pages_in_chapter": 2, "start_line": 0, "end_line": 29},
    {"chapter_index": 0, "page_in_chapter": 1, "total_pages_in_chapter": 2, "start_line": 30, "end_line": 41},
]


class TestPaginationCache(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.cache = PaginationCache(cache_dir=os.path.join(self.temp_dir, "cache"))
        self.document = Document("/books/novel.xhtml")

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def test_layout_key(self):
        self.assertEqual(PaginationCache.layout_key(80, 24, "split", "normal"), "80x24_split_normal")

    def test_cache_path_is_stable_per_document(self):
        path = self.cache.cache_path(self.document)
        self.assertEqual(path, self.cache.cache_path("/books/novel.xhtml"))
        self.assertTrue(path.name.endswith(LayoutConstants.CACHE_FILE_SUFFIX))
        self.assertNotEqual(path, self.cache.cache_path("/books/other.xhtml"))
        self.assertIsNone(self.cache.cache_path(""))

    def test_round_trip(self):
        self.assertTrue(self.cache.save_for_document(self.document, "80x33_single_compact", PAGES))
        self.assertEqual(self.cache.load_for_document(self.document, "80x33_single_compact"), PAGES)
        self.assertIsNone(self.cache.load_for_document(self.document, "100x40_split_compact"))

    def test_layouts_are_kept_side_by_side(self):
        self.cache.save_for_document(self.document, "a", PAGES)
        self.cache.save_for_document(self.document, "b", PAGES[:1])
        self.assertEqual(self.cache.load_for_document(self.document, "a"), PAGES)
        self.assertEqual(self.cache.load_for_document(self.document, "b"), PAGES[:1])

    def test_missing_file_is_a_miss(self):
        self.assertIsNone(self.cache.load_for_document(self.document, "a"))

    def test_corrupt_file_is_a_miss(self):
        self.cache.cache_dir.mkdir(parents=True)
        self.cache.cache_path(self.document).write_text("{ not json", encoding="utf-8")
        with self.assertLogs("leafline.pagination_cache", "WARNING"):
            self.assertIsNone(self.cache.load_for_document(self.document, "a"))

    def test_corrupt_file_is_replaced_on_save(self):
        self.cache.cache_dir.mkdir(parents=True)
        self.cache.cache_path(self.document).write_text("[]", encoding="utf-8")
        with self.assertLogs("leafline.pagination_cache", "WARNING"):
            self.assertTrue(self.cache.save_for_document(self.document, "a", PAGES))
        self.assertEqual(self.cache.load_for_document(self.document, "a"), PAGES)

    def test_newer_version_is_ignored(self):
        self.cache.save_for_document(self.document, "a", PAGES)
        path = self.cache.cache_path(self.document)
        data = json.loads(path.read_text(encoding="utf-8"))
        data["version"] = LayoutConstants.CACHE_SCHEMA_VERSION + 1
        path.write_text(json.dumps(data), encoding="utf-8")
        with self.assertLogs("leafline.pagination_cache", "WARNING"):
            self.assertIsNone(self.cache.load_for_document(self.document, "a"))

    def test_malformed_entry_is_ignored(self):
        self.cache.save_for_document(self.document, "a", PAGES)
        path = self.cache.cache_path(self.document)
        data = json.loads(path.read_text(encoding="utf-8"))
        data["layouts"]["a"]["pages"][0]["end_line"] = "29"
        path.write_text(json.dumps(data), encoding="utf-8")
        with self.assertLogs("leafline.pagination_cache", "WARNING"):
            self.assertIsNone(self.cache.load_for_document(self.document, "a"))

    def test_no_temp_files_left_behind(self):
        self.cache.save_for_document(self.document, "a", PAGES)
        leftovers = [name for name in os.listdir(self.cache.cache_dir) if name.endswith(".tmp")]
        self.assertEqual(leftovers, [])

    def test_exists_and_delete(self):
        self.assertFalse(self.cache.exists_for_document(self.document))
        self.cache.save_for_document(self.document, "a", PAGES)
        self.assertTrue(self.cache.exists_for_document(self.document))
        self.assertTrue(self.cache.exists_for_document(self.document, "a"))
        self.assertFalse(self.cache.exists_for_document(self.document, "b"))
        self.cache.delete_for_document(self.document)
        self.assertFalse(self.cache.exists_for_document(self.document))
        self.cache.delete_for_document(self.document)
