import os
import unittest
from unittest import mock

from pydantic import ValidationError

from crux.core.config import Settings, settings
from crux.handle import Crux
from tests.handle.base import Baguette


class SettingsTests(unittest.TestCase):
    def test_defaults(self):
        with mock.patch.dict(os.environ, {}, clear=True):
            fresh = Settings(_env_file=None)
        self.assertEqual(fresh.CRUX_PAGE_SIZE, 50)
        self.assertEqual(fresh.CRUX_SOFT_DELETE_FIELD, "deleted_at")

    def test_environment_override(self):
        with mock.patch.dict(os.environ, {"CRUX_PAGE_SIZE": "25"}):
            self.assertEqual(Settings(_env_file=None).CRUX_PAGE_SIZE, 25)

    def test_page_size_must_be_positive(self):
        with mock.patch.dict(os.environ, {"CRUX_PAGE_SIZE": "0"}):
            with self.assertRaises(ValidationError):
                Settings(_env_file=None)

    def test_handle_falls_back_to_settings_page_size(self):
        with mock.patch.object(settings, "CRUX_PAGE_SIZE", 7):
            self.assertEqual(Crux(Baguette, repo=None).page_size, 7)
        self.assertEqual(Crux(Baguette, repo=None, page_size=3).page_size, 3)


if __name__ == "__main__":
    unittest.main()
