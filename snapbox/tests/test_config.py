import os
import unittest
from unittest.mock import patch

from snapbox.config import DEFAULT_ALLOWED_UPLOAD_TYPES, Settings


class AllowedUploadTypesTests(unittest.TestCase):
    def test_default(self):
        with patch.dict(os.environ, {}, clear=True):
            self.assertEqual(Settings().allowed_upload_types, DEFAULT_ALLOWED_UPLOAD_TYPES)

    def test_comma_separated_env(self):
        with patch.dict(os.environ, {"ALLOWED_UPLOAD_TYPES": "image/png, image/jpeg,"}):
            settings = Settings()
        self.assertEqual(settings.allowed_upload_types, ["image/png", "image/jpeg"])

    def test_single_value_env(self):
        with patch.dict(os.environ, {"ALLOWED_UPLOAD_TYPES": "image/png"}):
            self.assertEqual(Settings().allowed_upload_types, ["image/png"])

    def test_json_list_env(self):
        with patch.dict(os.environ, {"ALLOWED_UPLOAD_TYPES": '["video/mp4"]'}):
            self.assertEqual(Settings().allowed_upload_types, ["video/mp4"])

    def test_keyword_list(self):
        settings = Settings(allowed_upload_types=["image/gif"])
        self.assertEqual(settings.allowed_upload_types, ["image/gif"])


class InMemoryToggleTests(unittest.TestCase):
    def test_prefixed_env_name(self):
        with patch.dict(os.environ, {"SNAPBOX_USE_IN_MEMORY_BACKENDS": "true"}):
            self.assertTrue(Settings().use_in_memory_backends)
        self.assertTrue(Settings(use_in_memory_backends=True).use_in_memory_backends)


if __name__ == "__main__":
    unittest.main()
