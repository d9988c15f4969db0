"""Unit tests for settings persistence."""

import json
import os
import shutil
import tempfile
import unittest

from leafline.layout import LayoutConfig
from leafline.page_calculator import PendingPosition
from leafline.settings_persistence import SettingsPersistence, get_persistence


class TestSettingsPersistence(unittest.TestCase):
    """Test settings persistence functionality."""

    def setUp(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.mkdtemp()
        self.persistence = SettingsPersistence(config_dir=self.temp_dir)
        self.test_doc_path = os.path.join(self.temp_dir, "book.xhtml")

    def tearDown(self):
        if os.path.exists(self.temp_dir):
            shutil.rmtree(self.temp_dir)

    def test_save_and_load_settings(self):
        """Test saving and loading settings for a document."""
        settings = {"view_mode": "single", "line_spacing": "relaxed", "image_rendering": True}
        self.assertTrue(self.persistence.save_settings(self.test_doc_path, settings))
        self.assertEqual(self.persistence.load_settings(self.test_doc_path), settings)

    def test_load_nonexistent_document(self):
        self.assertEqual(self.persistence.load_settings("/nonexistent/document.xhtml"), {})

    def test_none_document_path(self):
        """Saving with no path fails and loading gives an empty dict."""
        self.assertFalse(self.persistence.save_settings(None, {"view_mode": "single"}))
        self.assertEqual(self.persistence.load_settings(None), {})

    def test_update_settings_merges(self):
        self.persistence.save_settings(self.test_doc_path, {"view_mode": "single"})
        self.persistence.update_settings(self.test_doc_path, line_spacing="normal")
        self.assertEqual(self.persistence.load_settings(self.test_doc_path),
                         {"view_mode": "single", "line_spacing": "normal"})

    def test_invalid_values_are_dropped(self):
        with self.assertLogs("leafline.settings_persistence", "WARNING"):
            self.persistence.save_settings(self.test_doc_path, {"view_mode": "triple", "line_spacing": "normal"})
        self.assertEqual(self.persistence.load_settings(self.test_doc_path), {"line_spacing": "normal"})

    def test_settings_survive_a_new_instance(self):
        """Test that settings are written to disk, not just cached."""
        self.persistence.save_settings(self.test_doc_path, {"view_mode": "single"})
        fresh = SettingsPersistence(config_dir=self.temp_dir)
        self.assertEqual(fresh.load_settings(self.test_doc_path), {"view_mode": "single"})
        with open(fresh.settings_file, "r", encoding="utf-8") as f:
            self.assertIn(os.path.abspath(self.test_doc_path), json.load(f))

    def test_relative_and_absolute_paths_share_settings(self):
        cwd = os.getcwd()
        try:
            os.chdir(self.temp_dir)
            here = os.getcwd()
            self.persistence.save_settings("book.xhtml", {"view_mode": "single"})
        finally:
            os.chdir(cwd)
        self.assertEqual(self.persistence.load_settings(os.path.join(here, "book.xhtml")),
                         {"view_mode": "single"})

    def test_corrupted_settings_file(self):
        """Test handling of a corrupted settings file."""
        with open(self.persistence.settings_file, "w") as f:
            f.write("{ invalid json")
        with self.assertLogs("leafline.settings_persistence", "WARNING"):
            self.assertEqual(self.persistence.load_settings(self.test_doc_path), {})

    def test_non_dict_settings_file(self):
        with open(self.persistence.settings_file, "w") as f:
            json.dump(["not", "a", "dict"], f)
        self.assertEqual(self.persistence.load_settings(self.test_doc_path), {})

    def test_layout_config(self):
        self.persistence.save_settings(self.test_doc_path, {"view_mode": "single"})
        config = self.persistence.layout_config(self.test_doc_path)
        self.assertEqual(config, LayoutConfig(view_mode="single"))

    def test_save_and_load_position(self):
        self.persistence.save_settings(self.test_doc_path, {"view_mode": "single"})
        self.assertTrue(self.persistence.save_position(self.test_doc_path, 3, line_offset=120))
        self.assertEqual(self.persistence.load_position(self.test_doc_path),
                         PendingPosition(chapter_index=3, line_offset=120))
        self.assertEqual(self.persistence.load_settings(self.test_doc_path)["view_mode"], "single")

    def test_position_with_page_only(self):
        self.persistence.save_position(self.test_doc_path, 1, page_in_chapter=4)
        position = self.persistence.load_position(self.test_doc_path)
        self.assertIsNone(position.line_offset)
        self.assertEqual(position.page_in_chapter, 4)

    def test_missing_or_invalid_position(self):
        self.assertIsNone(self.persistence.load_position(self.test_doc_path))
        self.persistence._save_all({os.path.abspath(self.test_doc_path): {"position": {"chapter_index": -1}}})
        self.assertIsNone(self.persistence.load_position(self.test_doc_path))

    def test_validate_setting(self):
        """Test validation of individual settings."""
        self.assertTrue(self.persistence.validate_setting("view_mode", "split"))
        self.assertFalse(self.persistence.validate_setting("view_mode", "wide"))
        self.assertTrue(self.persistence.validate_setting("page_numbering_mode", "absolute"))
        self.assertTrue(self.persistence.validate_setting("image_rendering", False))
        self.assertFalse(self.persistence.validate_setting("image_rendering", "yes"))
        self.assertTrue(self.persistence.validate_setting("position", {"chapter_index": 0, "line_offset": 5}))
        self.assertFalse(self.persistence.validate_setting("position", {"line_offset": 5}))
        self.assertFalse(self.persistence.validate_setting("position", {"chapter_index": True}))
        self.assertTrue(self.persistence.validate_setting("unknown_key", object()))
        self.assertTrue(self.persistence.validate_setting("view_mode", None))

    def test_clear_cache_rereads_file(self):
        self.persistence.save_settings(self.test_doc_path, {"view_mode": "single"})
        other = SettingsPersistence(config_dir=self.temp_dir)
        other.save_settings(self.test_doc_path, {"view_mode": "split"})
        self.assertEqual(self.persistence.load_settings(self.test_doc_path), {"view_mode": "single"})
        self.persistence.clear_cache()
        self.assertEqual(self.persistence.load_settings(self.test_doc_path), {"view_mode": "split"})

    def test_get_persistence_is_shared(self):
        self.assertIs(get_persistence(), get_persistence())


if __name__ == "__main__":
    unittest.main()
