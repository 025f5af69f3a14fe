"""Multi-method outlier detection for health metric series.

Each method runs independently over the same ordered series and produces a
MethodResult. Findings are then fused per data point (keyed by sample id, or
position when the sample has no id):

- the first method to flag a point sets its confidence
- every further method that flags it adds FUSION_CONFIDENCE_BONUS, capped at 1.0
- detected_by records the flagging methods in the order they ran

Methods:
- z_score: |v - mean| / std over the population std
- iqr: distance beyond the Tukey fences, in IQR units
- mad: modified z-score 0.6745 * (v - median) / MAD
- isolation_forest: nearest-neighbour isolation heuristic. Each point is
  scored by the mean distance to its (up to) 3 nearest points of a different
  value and the top contamination share is flagged. This is not a trained
  isolation forest.
- data_quality: physiological range and rate-of-change rules per metric type
"""

import logging
import math
from typing import Optional

from nutri_planner import statistics_kit
from nutri_planner.config import (
    DAILY_CHANGE_VIOLATION_SCORE,
    DATA_QUALITY_RULES,
    DEFAULT_THRESHOLDS,
    FUSION_CONFIDENCE_BONUS,
    ISOLATION_NEIGHBOURS,
    MAD_SCALE,
    METHOD_DESCRIPTIONS,
    MIN_SAMPLES_FOR_ANALYSIS,
    RANGE_VIOLATION_SCORE,
    WEEKLY_CHANGE_VIOLATION_SCORE,
)
from nutri_planner.models import (
    DetectionMethod,
    MethodResult,
    MetricSample,
    OutlierFinding,
    OutlierReport,
    Severity,
)

logger = logging.getLogger(__name__)

DEFAULT_METHODS = (DetectionMethod.Z_SCORE, DetectionMethod.IQR, DetectionMethod.MAD)


def statistical_severity(score: float, threshold: float) -> Severity:
    """Severity of a z/IQR/MAD style score relative to its threshold."""
    if score > threshold * 2:
        return Severity.HIGH
    if score > threshold * 1.5:
        return Severity.MEDIUM
    return Severity.LOW


def _relative_severity(score: float, ceiling: float) -> Severity:
    if score > ceiling * 0.7:
        return Severity.HIGH
    if score > ceiling * 0.4:
        return Severity.MEDIUM
    return Severity.LOW


def _finding(index: int, sample: MetricSample, method: DetectionMethod, score: float,
             threshold: Optional[float], confidence: float, severity: Severity,
             kind: str = "statistical", violations: Optional[list] = None) -> OutlierFinding:
    return OutlierFinding(
        source_index=index,
        value=sample.value,
        date=sample.recorded_date,
        detection_score=score,
        threshold=threshold,
        confidence=confidence,
        severity=severity,
        detected_by=[method],
        sample_id=sample.id,
        kind=kind,
        violations=violations or [],
    )


def detect_z_score(samples: list, threshold: float) -> MethodResult:
    values = [s.value for s in samples]
    mean = statistics_kit.mean(values)
    std = statistics_kit.std_dev(values)
    result = MethodResult(DetectionMethod.Z_SCORE, statistics={"mean": mean, "std_dev": std})
    if std == 0:
        return result

    for i, sample in enumerate(samples):
        z = abs(sample.value - mean) / std
        if z > threshold:
            confidence = min(1.0, z / (threshold * 2))
            result.confidence[i] = confidence
            result.outliers.append(_finding(
                i, sample, DetectionMethod.Z_SCORE, z, threshold, confidence,
                statistical_severity(z, threshold),
            ))
    return result


def detect_iqr(samples: list, multiplier: float) -> MethodResult:
    values = [s.value for s in samples]
    q1 = statistics_kit.quartile(values, 0.25)
    q3 = statistics_kit.quartile(values, 0.75)
    iqr = q3 - q1
    lower = q1 - multiplier * iqr
    upper = q3 + multiplier * iqr
    result = MethodResult(DetectionMethod.IQR, statistics={
        "q1": q1, "q3": q3, "iqr": iqr, "lower_bound": lower, "upper_bound": upper,
    })
    if iqr == 0:
        return result

    for i, sample in enumerate(samples):
        if sample.value < lower:
            distance = (lower - sample.value) / iqr
        elif sample.value > upper:
            distance = (sample.value - upper) / iqr
        else:
            continue
        confidence = min(1.0, distance / (multiplier * 2))
        result.confidence[i] = confidence
        result.outliers.append(_finding(
            i, sample, DetectionMethod.IQR, distance, multiplier, confidence,
            statistical_severity(distance, multiplier),
        ))
    return result


def detect_mad(samples: list, threshold: float) -> MethodResult:
    values = [s.value for s in samples]
    median = statistics_kit.median(values)
    mad = statistics_kit.mad(values)
    result = MethodResult(DetectionMethod.MAD, statistics={"median": median, "mad": mad})
    if mad == 0:
        return result

    for i, sample in enumerate(samples):
        modified_z = abs(MAD_SCALE * (sample.value - median) / mad)
        if modified_z > threshold:
            confidence = min(1.0, modified_z / (threshold * 2))
            result.confidence[i] = confidence
            result.outliers.append(_finding(
                i, sample, DetectionMethod.MAD, modified_z, threshold, confidence,
                statistical_severity(modified_z, threshold),
            ))
    return result


def _isolation_score(value: float, values: list) -> float:
    distances = sorted(abs(value - other) for other in values if other != value)
    nearest = distances[:ISOLATION_NEIGHBOURS]
    return sum(nearest) / len(nearest) if nearest else 0.0


def detect_isolation(samples: list, contamination: float) -> MethodResult:
    values = [s.value for s in samples]
    scores = [_isolation_score(v, values) for v in values]
    ranked = sorted(range(len(samples)), key=lambda i: scores[i], reverse=True)
    count = max(1, int(math.floor(len(samples) * contamination)))
    max_score = max(scores) or 1.0

    result = MethodResult(DetectionMethod.ISOLATION_FOREST, statistics={
        "contamination": contamination, "max_score": max_score, "flagged": count,
    })
    for i in ranked[:count]:
        confidence = scores[i] / max_score
        result.confidence[i] = confidence
        result.outliers.append(_finding(
            i, samples[i], DetectionMethod.ISOLATION_FOREST, scores[i], contamination,
            confidence, _relative_severity(scores[i], max_score), kind="isolation",
        ))
    return result


def detect_data_quality(samples: list) -> MethodResult:
    metric_type = samples[0].metric_type
    metric_key = getattr(metric_type, "value", metric_type)
    rules = DATA_QUALITY_RULES.get(metric_key)
    result = MethodResult(DetectionMethod.DATA_QUALITY, statistics={"rules": rules})
    if rules is None:
        logger.debug("No data quality rules for %s", metric_key)
        return result

    for i, sample in enumerate(samples):
        score = 0.0
        violations = []

        if sample.value < rules["min"]:
            score += RANGE_VIOLATION_SCORE
            violations.append(f"Value {sample.value} below minimum {rules['min']}")
        if sample.value > rules["max"]:
            score += RANGE_VIOLATION_SCORE
            violations.append(f"Value {sample.value} above maximum {rules['max']}")

        if i > 0:
            previous = samples[i - 1]
            days_diff = abs((sample.recorded_date - previous.recorded_date).days)
            change = abs(sample.value - previous.value)

            daily_max = rules["max_daily_change"]
            if days_diff == 1 and daily_max is not None and change > daily_max:
                score += DAILY_CHANGE_VIOLATION_SCORE
                violations.append(f"Daily change {change:g} exceeds maximum {daily_max}")

            weekly_max = rules["max_weekly_change"]
            if days_diff <= 7 and weekly_max is not None:
                weekly_change = change * 7 / max(days_diff, 1)
                if weekly_change > weekly_max:
                    score += WEEKLY_CHANGE_VIOLATION_SCORE
                    violations.append(
                        f"Weekly change rate {weekly_change:.2f} exceeds maximum {weekly_max}"
                    )

        if score > 0:
            confidence = min(1.0, score)
            result.confidence[i] = confidence
            result.outliers.append(_finding(
                i, sample, DetectionMethod.DATA_QUALITY, score, None, confidence,
                _relative_severity(score, 1.0), kind="data_quality", violations=violations,
            ))
    return result


def run_method(method: DetectionMethod, samples: list, threshold) -> MethodResult:
    if method == DetectionMethod.Z_SCORE:
        return detect_z_score(samples, threshold)
    if method == DetectionMethod.IQR:
        return detect_iqr(samples, threshold)
    if method == DetectionMethod.MAD:
        return detect_mad(samples, threshold)
    if method == DetectionMethod.ISOLATION_FOREST:
        return detect_isolation(samples, threshold)
    if method == DetectionMethod.DATA_QUALITY:
        return detect_data_quality(samples)
    raise ValueError(f"Unknown detection method: {method}")


def fuse(results: list) -> list:
    """Merge per-method findings into one finding per data point."""
    fused = {}
    for result in results:
        for finding in result.outliers:
            key = ("id", finding.sample_id) if finding.sample_id is not None else ("index", finding.source_index)
            existing = fused.get(key)
            if existing is None:
                fused[key] = OutlierFinding(
                    source_index=finding.source_index,
                    value=finding.value,
                    date=finding.date,
                    detection_score=finding.detection_score,
                    threshold=finding.threshold,
                    confidence=result.confidence.get(finding.source_index, 0.5),
                    severity=finding.severity,
                    detected_by=[result.method],
                    sample_id=finding.sample_id,
                    kind=finding.kind,
                    violations=list(finding.violations),
                )
                continue
            if result.method not in existing.detected_by:
                existing.detected_by.append(result.method)
                existing.confidence = min(1.0, existing.confidence + FUSION_CONFIDENCE_BONUS)
            existing.violations.extend(v for v in finding.violations if v not in existing.violations)
    return sorted(fused.values(), key=lambda f: f.source_index)


def detect_outliers(samples: list, methods=DEFAULT_METHODS, thresholds: Optional[dict] = None) -> OutlierReport:
    """Run the requested detection methods and fuse their findings.

    Fewer than three samples yields an empty report with status
    "insufficient_data" rather than an error.
    """
    samples = list(samples)
    if len(samples) < MIN_SAMPLES_FOR_ANALYSIS:
        return OutlierReport.insufficient(
            len(samples),
            f"Insufficient data for outlier detection (minimum {MIN_SAMPLES_FOR_ANALYSIS} points required)",
        )

    merged = dict(DEFAULT_THRESHOLDS)
    if thresholds:
        merged.update({getattr(k, "value", k): v for k, v in thresholds.items()})

    results = {}
    for method in methods:
        method = DetectionMethod(method)
        results[method] = run_method(method, samples, merged.get(method.value))
        logger.debug("%s flagged %d of %d points", method.value, len(results[method].outliers), len(samples))

    return OutlierReport(
        outliers=fuse(list(results.values())),
        method_results=results,
        statistics=statistics_kit.summary([s.value for s in samples]),
        data_point_count=len(samples),
    )


def method_catalogue() -> dict:
    """Available methods with default thresholds and descriptions."""
    catalogue = {
        method.value: {
            "default_threshold": DEFAULT_THRESHOLDS[method.value],
            "description": METHOD_DESCRIPTIONS[method.value],
        }
        for method in DetectionMethod
    }
    catalogue["data_quality_rules"] = DATA_QUALITY_RULES
    return catalogue
