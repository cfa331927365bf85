"""Tests for meter.retry -- bounded retries and capped backoff."""

import unittest

from meter.retry import RetryPolicy


class TestRetryPolicy(unittest.TestCase):
    def test_exhausted_after_max_attempts(self):
        p = RetryPolicy(max_attempts=3)
        self.assertFalse(p.exhausted(3))
        self.assertTrue(p.exhausted(4))

    def test_backoff_doubles(self):
        p = RetryPolicy(base_delay=0.1, max_delay=10)
        self.assertAlmostEqual(p.delay(1), 0.2)
        self.assertAlmostEqual(p.delay(2), 0.4)
        self.assertAlmostEqual(p.delay(3), 0.8)

    def test_backoff_capped(self):
        p = RetryPolicy(base_delay=0.1, max_delay=1.0)
        self.assertEqual(p.delay(10), 1.0)

    def test_no_delay_without_failures(self):
        self.assertEqual(RetryPolicy().delay(0), 0.0)

    def test_zero_base(self):
        self.assertEqual(RetryPolicy(base_delay=0).delay(5), 0.0)


if __name__ == "__main__":
    unittest.main()
