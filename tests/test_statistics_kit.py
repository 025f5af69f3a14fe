"""Tests for descriptive statistics."""

import math
import unittest

from nutri_planner import statistics_kit
from nutri_planner.errors import InsufficientDataError


class TestCentralTendency(unittest.TestCase):
    def test_mean(self):
        self.assertAlmostEqual(statistics_kit.mean([1, 2, 3, 4]), 2.5)

    def test_mean_of_floats_is_correctly_rounded(self):
        self.assertEqual(statistics_kit.mean([0.1, 0.2, 0.3]), 0.2)

    def test_median_even_count_averages_middle_pair(self):
        self.assertAlmostEqual(statistics_kit.median([4, 1, 3, 2]), 2.5)

    def test_median_odd_count(self):
        self.assertEqual(statistics_kit.median([5, 1, 3]), 3)


class TestDispersion(unittest.TestCase):
    def test_population_variance(self):
        self.assertAlmostEqual(statistics_kit.variance([1, 2, 3, 4]), 1.25)
        self.assertAlmostEqual(statistics_kit.std_dev([1, 2, 3, 4]), math.sqrt(1.25))

    def test_std_dev_of_constant_series_is_zero(self):
        self.assertEqual(statistics_kit.std_dev([7, 7, 7]), 0)

    def test_quartile_uses_floor_index(self):
        values = [4, 3, 2, 1]
        self.assertEqual(statistics_kit.quartile(values, 0.25), 2)
        self.assertEqual(statistics_kit.quartile(values, 0.75), 4)

    def test_quartile_clamps_to_last_element(self):
        self.assertEqual(statistics_kit.quartile([1, 2, 3], 1.0), 3)

    def test_mad(self):
        self.assertAlmostEqual(statistics_kit.mad([1, 2, 3, 4]), 1.0)


class TestSummary(unittest.TestCase):
    def test_summary_fields(self):
        summary = statistics_kit.summary([2, 4, 4, 4, 5, 5, 7, 9])
        self.assertEqual(summary["count"], 8)
        self.assertEqual(summary["mean"], 5.0)
        self.assertEqual(summary["median"], 4.5)
        self.assertEqual(summary["std_dev"], 2.0)
        self.assertEqual(summary["min"], 2)
        self.assertEqual(summary["max"], 9)
        self.assertEqual(summary["range"], 7)

    def test_empty_input_raises(self):
        for func in (statistics_kit.mean, statistics_kit.median, statistics_kit.std_dev,
                     statistics_kit.mad, statistics_kit.summary):
            with self.assertRaises(InsufficientDataError):
                func([])


if __name__ == "__main__":
    unittest.main()
