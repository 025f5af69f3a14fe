"""Tests for multi-method outlier detection."""

import unittest
from datetime import date, timedelta

from nutri_planner.models import DetectionMethod, MetricSample, MetricType, Severity
from nutri_planner.outlier_detector import (
    detect_data_quality,
    detect_iqr,
    detect_isolation,
    detect_mad,
    detect_outliers,
    detect_z_score,
    fuse,
    method_catalogue,
    statistical_severity,
)

START = date(2026, 3, 1)

# One clear spike at the end
SPIKE_SERIES = [10, 11, 9, 10, 12, 10, 11, 9, 10, 15.4]


def _samples(values, metric_type=MetricType.STEPS, with_ids=False, start=START):
    return [
        MetricSample(
            id=i + 1 if with_ids else None,
            user_id=1,
            metric_type=metric_type,
            value=v,
            recorded_date=start + timedelta(days=i),
        )
        for i, v in enumerate(values)
    ]


class TestStatisticalMethods(unittest.TestCase):
    def test_z_score_flags_spike(self):
        result = detect_z_score(_samples(SPIKE_SERIES), 2.5)
        self.assertEqual([o.source_index for o in result.outliers], [9])
        finding = result.outliers[0]
        self.assertAlmostEqual(finding.detection_score, 4.66 / 1.78, places=4)
        self.assertAlmostEqual(result.confidence[9], 4.66 / 1.78 / 5, places=4)
        self.assertEqual(finding.severity, Severity.LOW)

    def test_iqr_flags_spike(self):
        result = detect_iqr(_samples(SPIKE_SERIES), 1.5)
        self.assertEqual(result.statistics["q1"], 10)
        self.assertEqual(result.statistics["q3"], 11)
        self.assertEqual([o.source_index for o in result.outliers], [9])
        self.assertAlmostEqual(result.outliers[0].detection_score, 2.9)
        self.assertEqual(result.outliers[0].severity, Severity.MEDIUM)

    def test_mad_flags_spike(self):
        result = detect_mad(_samples(SPIKE_SERIES), 3.5)
        self.assertEqual(result.statistics["median"], 10)
        self.assertEqual(result.statistics["mad"], 1)
        self.assertEqual([o.source_index for o in result.outliers], [9])

    def test_constant_series_has_no_statistical_outliers(self):
        samples = _samples([5, 5, 5, 5])
        self.assertEqual(detect_z_score(samples, 2.5).outliers, [])
        self.assertEqual(detect_iqr(samples, 1.5).outliers, [])
        self.assertEqual(detect_mad(samples, 3.5).outliers, [])

    def test_severity_bands(self):
        self.assertEqual(statistical_severity(5.1, 2.5), Severity.HIGH)
        self.assertEqual(statistical_severity(4.0, 2.5), Severity.MEDIUM)
        self.assertEqual(statistical_severity(2.6, 2.5), Severity.LOW)


class TestIsolationHeuristic(unittest.TestCase):
    def test_most_isolated_point_flagged(self):
        result = detect_isolation(_samples([10, 11, 12, 50]), 0.1)
        self.assertEqual(len(result.outliers), 1)
        finding = result.outliers[0]
        self.assertEqual(finding.source_index, 3)
        self.assertAlmostEqual(finding.confidence, 1.0)
        self.assertEqual(finding.severity, Severity.HIGH)
        self.assertEqual(finding.kind, "isolation")

    def test_constant_series_still_flags_one_point(self):
        result = detect_isolation(_samples([5, 5, 5]), 0.1)
        self.assertEqual(len(result.outliers), 1)
        self.assertEqual(result.outliers[0].confidence, 0)


class TestDataQuality(unittest.TestCase):
    def test_rapid_weight_change(self):
        result = detect_data_quality(_samples([70, 70.5, 80], MetricType.WEIGHT))
        self.assertEqual([o.source_index for o in result.outliers], [2])
        finding = result.outliers[0]
        self.assertAlmostEqual(finding.detection_score, 1.0)
        self.assertEqual(len(finding.violations), 2)
        self.assertEqual(finding.severity, Severity.HIGH)

    def test_value_out_of_range(self):
        result = detect_data_quality(_samples([70, 71, 350], MetricType.WEIGHT, start=START))
        last = result.outliers[-1]
        self.assertEqual(last.source_index, 2)
        self.assertTrue(any("above maximum" in v for v in last.violations))

    def test_gaps_over_a_week_skip_change_rules(self):
        samples = _samples([70, 80], MetricType.WEIGHT)
        samples[1].recorded_date = START + timedelta(days=30)
        samples.append(MetricSample(None, 1, MetricType.WEIGHT, 80.5, START + timedelta(days=31)))
        self.assertEqual(detect_data_quality(samples).outliers, [])

    def test_metric_without_rules(self):
        self.assertEqual(detect_data_quality(_samples([1, 100, 1], MetricType.BMI)).outliers, [])


class TestFusion(unittest.TestCase):
    def test_detect_outliers_fuses_methods(self):
        report = detect_outliers(_samples(SPIKE_SERIES))
        self.assertEqual(report.status, "ok")
        self.assertEqual(report.total_outliers, 1)
        finding = report.outliers[0]
        self.assertEqual(finding.source_index, 9)
        self.assertEqual(
            finding.detected_by,
            [DetectionMethod.Z_SCORE, DetectionMethod.IQR, DetectionMethod.MAD],
        )
        self.assertAlmostEqual(finding.confidence, 1.0)
        self.assertEqual(finding.severity, Severity.LOW)
        self.assertEqual(report.statistics["count"], 10)
        self.assertEqual(set(report.method_results), {
            DetectionMethod.Z_SCORE, DetectionMethod.IQR, DetectionMethod.MAD,
        })

    def test_fusion_keys_on_sample_id(self):
        samples = _samples(SPIKE_SERIES, with_ids=True)
        report = detect_outliers(samples, [DetectionMethod.Z_SCORE, DetectionMethod.IQR])
        self.assertEqual(report.outliers[0].sample_id, 10)
        self.assertAlmostEqual(report.outliers[0].confidence, min(1.0, 4.66 / 1.78 / 5 + 0.3), places=4)

    def test_single_method_confidence_is_unchanged(self):
        result = detect_iqr(_samples(SPIKE_SERIES), 1.5)
        fused = fuse([result])
        self.assertAlmostEqual(fused[0].confidence, result.confidence[9])

    def test_custom_threshold(self):
        report = detect_outliers(_samples(SPIKE_SERIES), [DetectionMethod.Z_SCORE], {"z_score": 3.0})
        self.assertEqual(report.outliers, [])

    def test_insufficient_data(self):
        report = detect_outliers(_samples([10, 11]))
        self.assertEqual(report.status, "insufficient_data")
        self.assertEqual(report.outliers, [])
        self.assertEqual(report.data_point_count, 2)

    def test_report_serialises(self):
        data = detect_outliers(_samples(SPIKE_SERIES)).to_dict()
        self.assertEqual(data["total_outliers"], 1)
        self.assertEqual(data["outliers"][0]["detected_by"], ["z_score", "iqr", "mad"])
        self.assertIn("z_score", data["method_results"])


class TestCatalogue(unittest.TestCase):
    def test_every_method_listed(self):
        catalogue = method_catalogue()
        for method in DetectionMethod:
            self.assertIn(method.value, catalogue)
        self.assertEqual(catalogue["z_score"]["default_threshold"], 2.5)
        self.assertIn("weight", catalogue["data_quality_rules"])


if __name__ == "__main__":
    unittest.main()
