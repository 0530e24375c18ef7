"""
Sentinel Sensor Failure Source Test Suite
"""

import unittest

from sentinel.sensors import FixedFailureSource, RandomFailureSource


class TestRandomFailureSource(unittest.TestCase):

    def test_default_rate(self):
        self.assertEqual(RandomFailureSource().rate, 0.05)

    def test_rate_bounds(self):
        with self.assertRaises(ValueError):
            RandomFailureSource(rate=-0.1)
        with self.assertRaises(ValueError):
            RandomFailureSource(rate=1.5)

    def test_zero_rate_never_fails(self):
        source = RandomFailureSource(rate=0.0, seed=7)
        self.assertFalse(any(source.scan_failed("QR") for _ in range(500)))

    def test_full_rate_always_fails(self):
        source = RandomFailureSource(rate=1.0, seed=7)
        self.assertTrue(all(source.scan_failed("FACE") for _ in range(500)))

    def test_seeded_sequence_is_reproducible(self):
        a = RandomFailureSource(rate=0.3, seed=42)
        b = RandomFailureSource(rate=0.3, seed=42)
        self.assertEqual(
            [a.scan_failed("QR") for _ in range(200)],
            [b.scan_failed("QR") for _ in range(200)]
        )

    def test_rate_is_roughly_honoured(self):
        source = RandomFailureSource(rate=0.05, seed=1)
        failures = sum(source.scan_failed("PLATE") for _ in range(10000))
        self.assertGreater(failures, 300)
        self.assertLess(failures, 700)


class TestFixedFailureSource(unittest.TestCase):

    def test_fixed(self):
        self.assertFalse(FixedFailureSource().scan_failed("QR"))
        self.assertTrue(FixedFailureSource(fail=True).scan_failed("QR"))


if __name__ == "__main__":
    unittest.main()
