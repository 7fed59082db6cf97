#!/usr/bin/env python3
"""
Tests for the env_loader module.
"""

import os
import shutil
import tempfile
import unittest
from unittest.mock import patch

from post_archiver.utils.env_loader import (
    DEFAULT_CACHE_DIR, DEFAULT_NAVIGATION_TIMEOUT_MS, DEFAULT_RECOVER_REPEATS,
    build_playwright_proxy, get_general_config, get_proxy_config, load_env_vars
)


class TestEnvLoader(unittest.TestCase):
    """Test cases for environment configuration."""

    def setUp(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.mkdtemp()

    def tearDown(self):
        """Tear down test fixtures."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_load_missing_env_file(self):
        self.assertFalse(load_env_vars(os.path.join(self.temp_dir, ".env")))

    @patch.dict(os.environ, {}, clear=True)
    def test_load_env_file(self):
        env_file = os.path.join(self.temp_dir, ".env")
        with open(env_file, "w") as f:
            f.write("ARCHIVER_PROXY_SERVER=http://proxy:8080\nARCHIVER_RECOVER_REPEATS=7\n")

        self.assertTrue(load_env_vars(env_file))
        self.assertEqual(get_proxy_config()["server"], "http://proxy:8080")
        self.assertEqual(get_general_config()["recover_repeats"], 7)

    @patch.dict(os.environ, {}, clear=True)
    def test_general_config_defaults(self):
        config = get_general_config()

        self.assertEqual(config["cache_dir"], DEFAULT_CACHE_DIR)
        self.assertEqual(config["recover_repeats"], DEFAULT_RECOVER_REPEATS)
        self.assertEqual(config["navigation_timeout_ms"], DEFAULT_NAVIGATION_TIMEOUT_MS)

    @patch.dict(os.environ, {"ARCHIVER_DEFAULT_TIMEOUT_MS": "soon"}, clear=True)
    def test_non_numeric_values_use_defaults(self):
        self.assertEqual(get_general_config()["default_timeout_ms"], 50000)

    @patch.dict(os.environ, {}, clear=True)
    def test_proxy_config_empty(self):
        self.assertEqual(get_proxy_config(), {"server": "", "username": "", "password": ""})


class TestBuildPlaywrightProxy(unittest.TestCase):
    """Test cases for browser proxy settings."""

    def test_complete_proxy(self):
        self.assertEqual(
            build_playwright_proxy("http://proxy:8080", "user", "secret"),
            {"server": "http://proxy:8080", "username": "user", "password": "secret"}
        )

    def test_missing_password_is_empty(self):
        self.assertEqual(build_playwright_proxy("http://proxy:8080", "user", None)["password"], "")

    def test_incomplete_proxy_is_ignored(self):
        self.assertIsNone(build_playwright_proxy("http://proxy:8080", "", "secret"))
        self.assertIsNone(build_playwright_proxy(None, "user", "secret"))


if __name__ == "__main__":
    unittest.main()
