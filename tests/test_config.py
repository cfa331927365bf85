"""Tests for meter.config -- settings validation and persistence."""

import json
import os
import tempfile
import unittest
from unittest import mock

from meter.config import (
    RECOGNIZED_OPTIONS,
    Settings,
    get_config_value,
    load_config,
    load_settings,
    merge_settings,
    save_config,
    set_config_value,
)


class TestSettingsDefaults(unittest.TestCase):
    def test_defaults(self):
        s = Settings()
        self.assertEqual(s.concurrency, 6)
        self.assertEqual(s.max_duration_seconds, 15.0)
        self.assertAlmostEqual(s.grace_time_seconds, 0.3)
        self.assertTrue(s.auto_shorten)
        self.assertAlmostEqual(s.overhead_compensation_factor, 1.08)
        self.assertEqual(s.top_fraction, 0.5)

    def test_millisecond_views(self):
        s = Settings(max_duration_seconds=10, grace_time_seconds=0.5)
        self.assertEqual(s.max_duration_ms, 10_000)
        self.assertEqual(s.grace_time_ms, 500)

    def test_to_dict_has_every_option(self):
        d = Settings().to_dict()
        self.assertEqual(set(d), set(RECOGNIZED_OPTIONS))


class TestMergeSettings(unittest.TestCase):
    def test_no_overrides_returns_base(self):
        base = Settings(concurrency=3)
        self.assertIs(merge_settings(base, None), base)
        self.assertIs(merge_settings(base, {}), base)

    def test_override_applied(self):
        s = merge_settings(Settings(), {"concurrency": 8, "auto_shorten": False})
        self.assertEqual(s.concurrency, 8)
        self.assertFalse(s.auto_shorten)

    def test_none_values_ignored(self):
        s = merge_settings(Settings(), {"concurrency": None, "grace_time_seconds": 1})
        self.assertEqual(s.concurrency, 6)
        self.assertEqual(s.grace_time_seconds, 1.0)

    def test_unknown_option_rejected(self):
        with self.assertRaises(ValueError):
            merge_settings(Settings(), {"plan": 100})

    def test_concurrency_bounds(self):
        for bad in (0, 33):
            with self.assertRaises(ValueError):
                merge_settings(Settings(), {"concurrency": bad})
        self.assertEqual(merge_settings(Settings(), {"concurrency": 32}).concurrency, 32)

    def test_duration_bounds(self):
        for bad in (0.5, 301):
            with self.assertRaises(ValueError):
                merge_settings(Settings(), {"max_duration_seconds": bad})

    def test_grace_may_be_zero(self):
        s = merge_settings(Settings(), {"grace_time_seconds": 0})
        self.assertEqual(s.grace_time_seconds, 0.0)

    def test_overhead_bounds(self):
        with self.assertRaises(ValueError):
            merge_settings(Settings(), {"overhead_compensation_factor": 0.9})
        with self.assertRaises(ValueError):
            merge_settings(Settings(), {"overhead_compensation_factor": 2.0})

    def test_top_fraction_excludes_zero(self):
        with self.assertRaises(ValueError):
            merge_settings(Settings(), {"top_fraction": 0})
        self.assertEqual(merge_settings(Settings(), {"top_fraction": 1}).top_fraction, 1.0)

    def test_bool_rejected_for_numbers(self):
        with self.assertRaises(ValueError):
            merge_settings(Settings(), {"concurrency": True})

    def test_string_rejected(self):
        with self.assertRaises(ValueError):
            merge_settings(Settings(), {"max_duration_seconds": "10"})

    def test_auto_shorten_must_be_bool(self):
        with self.assertRaises(ValueError):
            merge_settings(Settings(), {"auto_shorten": 1})

    def test_fractional_int_rejected(self):
        with self.assertRaises(ValueError):
            merge_settings(Settings(), {"ping_probe_count": 2.5})
        self.assertEqual(merge_settings(Settings(), {"ping_probe_count": 4.0}).ping_probe_count, 4)

    def test_chunk_order(self):
        with self.assertRaises(ValueError):
            merge_settings(Settings(), {"min_chunk_bytes": 4 * 1024 * 1024, "max_chunk_bytes": 1024 * 1024})

    def test_chunk_floor(self):
        with self.assertRaises(ValueError):
            merge_settings(Settings(), {"min_chunk_bytes": 1024})


class TestLoadSaveConfig(unittest.TestCase):
    def test_load_empty_when_missing(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "config.json")
            with mock.patch("meter.config._config_path", return_value=path):
                self.assertEqual(load_config(), {})
                self.assertEqual(load_settings(), Settings())

    def test_save_and_load(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "sub", "config.json")
            with mock.patch("meter.config._config_path", return_value=path):
                save_config({"concurrency": 4, "auto_shorten": False})
                s = load_settings()
                self.assertEqual(s.concurrency, 4)
                self.assertFalse(s.auto_shorten)
                # Defaults still present
                self.assertEqual(s.ping_probe_count, 10)

    def test_overrides_beat_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "config.json")
            with mock.patch("meter.config._config_path", return_value=path):
                save_config({"concurrency": 4})
                s = load_settings({"concurrency": 12})
                self.assertEqual(s.concurrency, 12)

    def test_corrupt_file_ignored(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "config.json")
            with open(path, "w") as f:
                f.write("NOT JSON")
            with mock.patch("meter.config._config_path", return_value=path):
                with self.assertLogs("meter.config", level="WARNING"):
                    self.assertEqual(load_config(), {})

    def test_non_utf8_file_ignored(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "config.json")
            with open(path, "wb") as f:
                f.write(b"\xff\xfe\x00bad")
            with mock.patch("meter.config._config_path", return_value=path):
                with self.assertLogs("meter.config", level="WARNING"):
                    self.assertEqual(load_config(), {})

    def test_non_object_ignored(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "config.json")
            with open(path, "w") as f:
                json.dump([1, 2, 3], f)
            with mock.patch("meter.config._config_path", return_value=path):
                with self.assertLogs("meter.config", level="WARNING"):
                    self.assertEqual(load_config(), {})

    def test_get_set_value(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "config.json")
            with mock.patch("meter.config._config_path", return_value=path):
                set_config_value("concurrency", 10)
                self.assertEqual(get_config_value("concurrency"), 10)
                self.assertEqual(get_config_value("ping_probe_count"), 10)

    def test_set_invalid_value_not_saved(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "config.json")
            with mock.patch("meter.config._config_path", return_value=path):
                with self.assertRaises(ValueError):
                    set_config_value("concurrency", 99)
                self.assertFalse(os.path.exists(path))

    def test_get_unknown_key(self):
        with self.assertRaises(ValueError):
            get_config_value("server")


if __name__ == "__main__":
    unittest.main()
