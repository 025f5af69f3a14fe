"""Turn an outlier report into user-facing recommendations.

Rules are evaluated in order:
1. No outliers: a single positive note, nothing else.
2. Outlier rate above 20%: review how measurements are taken.
3. Any data-quality finding: verify those measurements.
4. A high-severity finding within the last 7 days: monitor closely.
5. More than 3 outliers: track influencing factors.
"""

from datetime import date, timedelta
from typing import Optional

from nutri_planner.config import HIGH_OUTLIER_RATE_PCT, MANY_OUTLIERS_COUNT, RECENT_OUTLIER_DAYS
from nutri_planner.models import DetectionMethod, OutlierReport, Recommendation, Severity


def _label(metric_type) -> str:
    return getattr(metric_type, "value", metric_type).replace("_", " ")


def recommend(report: OutlierReport, metric_type, history: list, today: Optional[date] = None) -> list:
    """Return an ordered list of Recommendation objects."""
    if today is None:
        today = date.today()
    outliers = report.outliers
    metric = _label(metric_type)

    if not outliers:
        return [Recommendation(
            type="positive",
            message="Your measurements appear consistent and within normal ranges.",
            priority="low",
        )]

    recommendations = []

    rate = len(outliers) / len(history) * 100 if history else 0
    if rate > HIGH_OUTLIER_RATE_PCT:
        recommendations.append(Recommendation(
            type="warning",
            message=(f"High number of unusual {metric} measurements detected "
                     f"({rate:.1f}%). Consider reviewing your measurement process."),
            priority="high",
            action="review_measurement_process",
        ))

    quality = [o for o in outliers if DetectionMethod.DATA_QUALITY in o.detected_by]
    if quality:
        recommendations.append(Recommendation(
            type="error",
            message=(f"Some {metric} measurements appear to be outside normal ranges "
                     f"or show unrealistic changes."),
            priority="high",
            action="verify_measurements",
            affected_dates=[o.date for o in quality if o.date],
        ))

    cutoff = today - timedelta(days=RECENT_OUTLIER_DAYS)
    recent_high = [
        o for o in outliers
        if o.severity == Severity.HIGH and o.date is not None and o.date >= cutoff
    ]
    if recent_high:
        recommendations.append(Recommendation(
            type="alert",
            message=(f"Recent unusual {metric} readings detected. If this reflects a real change, "
                     f"consider monitoring closely or consulting with a healthcare provider."),
            priority="medium",
            action="monitor_closely",
            affected_dates=[o.date for o in recent_high],
        ))

    if len(outliers) > MANY_OUTLIERS_COUNT:
        recommendations.append(Recommendation(
            type="info",
            message=(f"Consider tracking factors that might influence your {metric} "
                     f"such as time of day, diet, exercise, or stress levels."),
            priority="low",
            action="track_influencing_factors",
        ))

    return recommendations
