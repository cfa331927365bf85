"""Unit tests for ui.output and ui.dashboard helpers."""

import json
import os
import tempfile
import unittest

from ui.dashboard import create_histogram
from ui.output import (
    create_failure_json,
    create_result_json,
    format_text_result,
    save_json,
)


class TestCreateResultJson(unittest.TestCase):
    def _make(self, **overrides):
        result = {
            "download_mbps": 100.0,
            "upload_mbps": 50.0,
            "ping_ms": 10.0,
            "jitter_ms": 1.5,
            "latency": {"pings": [9.0, 10.0, 11.0]},
            "download": {"speed_mbps": 100.0},
            "upload": {"speed_mbps": 50.0},
        }
        result.update(overrides)
        return create_result_json({"name": "Srv"}, {"concurrency": 6}, result)

    def test_basic_structure(self):
        r = self._make()
        for key in ("timestamp", "server", "settings", "latency", "download", "upload"):
            self.assertIn(key, r)

    def test_headline_numbers(self):
        r = self._make()
        self.assertEqual(r["ping"], 10.0)
        self.assertEqual(r["jitter"], 1.5)
        self.assertEqual(r["download_mbps"], 100.0)
        self.assertEqual(r["upload_mbps"], 50.0)
        self.assertEqual(r["server"]["name"], "Srv")

    def test_missing_sections_default_empty(self):
        r = create_result_json({}, {}, {})
        self.assertEqual(r["download"], {})
        self.assertEqual(r["ping"], 0)


class TestCreateFailureJson(unittest.TestCase):
    def test_failed(self):
        r = create_failure_json({"name": "Srv"}, "upload", "No data transferred during upload phase")
        self.assertEqual(r["status"], "failed")
        self.assertEqual(r["failed_phase"], "upload")
        self.assertIn("upload", r["error"])

    def test_aborted(self):
        r = create_failure_json({}, "download", "Test aborted", aborted=True)
        self.assertEqual(r["status"], "aborted")


class TestSaveJson(unittest.TestCase):
    def test_roundtrip(self):
        data = {"key": "value", "number": 42}
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "result.json")
            save_json(data, path)
            with open(path) as fh:
                self.assertEqual(json.load(fh), data)
            self.assertEqual(os.listdir(tmpdir), ["result.json"])

    def test_atomic_no_partial(self):
        # If the directory doesn't exist, it should raise, not leave a temp file
        with self.assertRaises(IOError):
            save_json({"a": 1}, "/nonexistent/dir/file.json")


class TestFormatTextResult(unittest.TestCase):
    def test_contains_values(self):
        text = format_text_result(
            ping_ms=15.0, jitter_ms=2.0, download_mbps=100.0,
            upload_mbps=50.0, server_name="Test",
        )
        self.assertIn("15.0 ms", text)
        self.assertIn("2.00 ms", text)
        self.assertIn("100.00 Mbps", text)
        self.assertIn("50.00 Mbps", text)
        self.assertIn("Test", text)


class TestHistogram(unittest.TestCase):
    def test_empty(self):
        self.assertEqual(create_histogram([]), "No data")

    def test_one_bar_per_value(self):
        self.assertEqual(len(create_histogram([1.0, 5.0, 3.0])), 3)

    def test_flat_series(self):
        self.assertEqual(create_histogram([4.0, 4.0]), "▁▁")


if __name__ == "__main__":
    unittest.main()
