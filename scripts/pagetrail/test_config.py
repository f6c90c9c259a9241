#!/usr/bin/env python3
"""
Tests for engine configuration loading and validation.
"""

import json
import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from pagetrail.config import DEFAULT_API_ENDPOINT, EngineConfig, load_config
from pagetrail.errors import ConfigurationError


class TestEngineConfig(unittest.TestCase):
    """Test EngineConfig construction and validation."""

    def test_defaults(self):
        config = EngineConfig(api_key="k", source="s")
        self.assertEqual(config.api_endpoint, DEFAULT_API_ENDPOINT)
        self.assertEqual(config.batch_size, 10)
        self.assertEqual(config.batch_interval_ms, 2000)
        self.assertEqual(config.session_timeout_ms, 30 * 60 * 1000)
        self.assertEqual(config.debounce_delay_ms, 2000)
        self.assertEqual(config.retry_attempts, 3)
        self.assertTrue(config.respect_do_not_track)
        self.assertFalse(config.track_clicks)
        self.assertIsNone(config.probe_timeout_ms)

    def test_camel_case_aliases(self):
        config = EngineConfig.from_dict({
            "apiKey": "k",
            "source": "s",
            "trackClicks": True,
            "batchSize": 25,
            "sessionTimeout": 60_000,
            "enableConsent": True,
        })
        self.assertEqual(config.api_key, "k")
        self.assertTrue(config.track_clicks)
        self.assertEqual(config.batch_size, 25)
        self.assertEqual(config.session_timeout_ms, 60_000)
        self.assertTrue(config.enable_consent)

    def test_unknown_options_are_ignored(self):
        config = EngineConfig.from_dict({"api_key": "k", "source": "s", "colour": "blue"})
        self.assertNotIn("colour", config.to_dict())

    def test_validate_requires_key_and_source(self):
        with self.assertRaises(ConfigurationError):
            EngineConfig(source="s").validate()
        with self.assertRaises(ConfigurationError):
            EngineConfig(api_key="k").validate()

    def test_validate_rejects_bad_numbers(self):
        for options in ({"batch_size": 0}, {"retry_attempts": 0},
                        {"batch_interval_ms": -1}, {"probe_timeout_ms": 0}):
            with self.subTest(options=options):
                with self.assertRaises(ConfigurationError):
                    EngineConfig(api_key="k", source="s", **options).validate()

    def test_configuration_error_is_value_error(self):
        with self.assertRaises(ValueError):
            EngineConfig().validate()


class TestLoadConfig(unittest.TestCase):
    """Test file, environment and override precedence."""

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.path = Path(self.tmpdir.name) / "pagetrail.json"

    def tearDown(self):
        self.tmpdir.cleanup()

    def write(self, data):
        with open(self.path, "w") as f:
            json.dump(data, f)

    @mock.patch.dict(os.environ, {}, clear=True)
    def test_file_values(self):
        self.write({"apiKey": "file-key", "source": "docs", "batchSize": 5})
        config = load_config(self.path)
        self.assertEqual(config.api_key, "file-key")
        self.assertEqual(config.batch_size, 5)

    @mock.patch.dict(os.environ, {"PAGETRAIL_API_KEY": "env-key", "PAGETRAIL_DEBUG": "true",
                                  "PAGETRAIL_RESPECT_DNT": "0"}, clear=True)
    def test_env_overrides_file(self):
        self.write({"apiKey": "file-key", "source": "docs"})
        config = load_config(self.path)
        self.assertEqual(config.api_key, "env-key")
        self.assertTrue(config.debug)
        self.assertFalse(config.respect_do_not_track)

    @mock.patch.dict(os.environ, {"PAGETRAIL_SOURCE": "env-source"}, clear=True)
    def test_overrides_win(self):
        self.write({"apiKey": "file-key"})
        config = load_config(self.path, {"source": "cli", "storagePath": "/tmp/store.json"})
        self.assertEqual(config.source, "cli")
        self.assertEqual(config.storage_path, "/tmp/store.json")

    @mock.patch.dict(os.environ, {}, clear=True)
    def test_missing_or_broken_file_falls_back(self):
        with open(self.path, "w") as f:
            f.write("{not json")
        config = load_config(self.path, {"api_key": "k", "source": "s"})
        self.assertEqual(config.batch_size, 10)

        config = load_config(Path(self.tmpdir.name) / "absent.json", {"api_key": "k", "source": "s"})
        self.assertEqual(config.api_key, "k")

    @mock.patch.dict(os.environ, {}, clear=True)
    def test_missing_required_raises(self):
        with self.assertRaises(ConfigurationError):
            load_config()


if __name__ == "__main__":
    unittest.main()
