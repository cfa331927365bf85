"""Tests for meter.control -- auto-shorten bonus and grace window."""

import random
import unittest

from meter.config import Settings
from meter.control import AdaptiveDeadlineController, GraceWindowFilter
from meter.session import Phase, TestSession


class TestAdaptiveDeadline(unittest.TestCase):
    def test_bonus_proportional_to_speed(self):
        c = AdaptiveDeadlineController(15_000)
        self.assertAlmostEqual(c.update(100.0), 50.0)
        self.assertAlmostEqual(c.bonus_time_ms, 50.0)

    def test_step_cap(self):
        c = AdaptiveDeadlineController(15_000)
        self.assertEqual(c.update(10_000.0), 100.0)

    def test_total_cap_is_half_duration_for_short_tests(self):
        c = AdaptiveDeadlineController(4_000)
        for _ in range(100):
            c.update(1000.0)
        self.assertEqual(c.bonus_time_ms, 2_000.0)

    def test_total_cap_absolute(self):
        c = AdaptiveDeadlineController(60_000)
        for _ in range(200):
            c.update(1000.0)
        self.assertEqual(c.bonus_time_ms, 5_000.0)

    def test_monotonic_non_decreasing(self):
        rng = random.Random(7)
        c = AdaptiveDeadlineController(15_000)
        previous = 0.0
        for _ in range(500):
            c.update(rng.uniform(-50, 2000))
            self.assertGreaterEqual(c.bonus_time_ms, previous)
            previous = c.bonus_time_ms

    def test_disabled(self):
        c = AdaptiveDeadlineController(15_000, auto_shorten=False)
        self.assertEqual(c.update(500.0), 0.0)
        self.assertEqual(c.bonus_time_ms, 0.0)

    def test_expired_includes_bonus(self):
        c = AdaptiveDeadlineController(10_000)
        self.assertFalse(c.expired(9_000))
        for _ in range(10):
            c.update(1000.0)
        self.assertTrue(c.expired(9_000))

    def test_progress_clamped(self):
        c = AdaptiveDeadlineController(10_000)
        self.assertEqual(c.progress(-5), 0.0)
        self.assertAlmostEqual(c.progress(5_000), 0.5)
        self.assertEqual(c.progress(20_000), 1.0)

    def test_reset(self):
        c = AdaptiveDeadlineController(10_000)
        c.update(100.0)
        c.reset()
        self.assertEqual(c.bonus_time_ms, 0.0)


class TestGraceWindow(unittest.TestCase):
    def _session(self, grace=1.0):
        return TestSession(
            mode=Phase.DOWNLOAD,
            settings=Settings(grace_time_seconds=grace),
            start_time_ms=0.0,
        )

    def test_within_grace_rejected(self):
        s = self._session()
        self.assertFalse(GraceWindowFilter(1000).admit(s, 500))
        self.assertFalse(s.grace_elapsed)

    def test_crossing_rebases(self):
        s = self._session()
        s.cumulative_bytes = 1234
        self.assertFalse(GraceWindowFilter(1000).admit(s, 1200))
        self.assertTrue(s.grace_elapsed)
        self.assertEqual(s.start_time_ms, 1200)
        self.assertEqual(s.cumulative_bytes, 0)

    def test_crossing_without_bytes_keeps_start(self):
        s = self._session()
        GraceWindowFilter(1000).admit(s, 1200)
        self.assertTrue(s.grace_elapsed)
        self.assertEqual(s.start_time_ms, 0.0)

    def test_after_grace_admitted(self):
        s = self._session()
        f = GraceWindowFilter(1000)
        f.admit(s, 1200)
        self.assertTrue(f.admit(s, 1300))


if __name__ == "__main__":
    unittest.main()
