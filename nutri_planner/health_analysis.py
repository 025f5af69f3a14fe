"""Health metric analysis over stored history.

Combines the metric store, the outlier detector and the recommendation
engine into the operations exposed to callers: full analysis of a user's
recent history, validation of a value before it is stored, trend summaries
and batch analysis across users.
"""

import logging
from datetime import date, datetime
from typing import Optional

from nutri_planner import metric_store
from nutri_planner.config import (
    BATCH_ANALYSIS_DAYS,
    DB_PATH,
    DEFAULT_ANALYSIS_DAYS,
    TREND_STABLE_PCT,
)
from nutri_planner.models import DetectionMethod, MetricSample, MetricType
from nutri_planner.outlier_detector import detect_outliers
from nutri_planner.recommendations import recommend

logger = logging.getLogger(__name__)

ANALYSIS_METHODS = (
    DetectionMethod.Z_SCORE,
    DetectionMethod.IQR,
    DetectionMethod.MAD,
    DetectionMethod.DATA_QUALITY,
)
VALIDATION_METHODS = (DetectionMethod.Z_SCORE, DetectionMethod.IQR, DetectionMethod.DATA_QUALITY)

VALIDATION_SUGGESTIONS = [
    "Double-check the measurement",
    "Ensure consistent measurement conditions",
    "Consider factors that might affect this metric",
]


def analyze_user_metrics(
    user_id: int,
    metric_type: MetricType,
    days: int = DEFAULT_ANALYSIS_DAYS,
    methods=ANALYSIS_METHODS,
    thresholds: Optional[dict] = None,
    db_path: str = DB_PATH,
    today: Optional[date] = None,
) -> dict:
    """Detect outliers in a user's recent history and recommend next steps.

    Always returns a structured result; a short history yields status
    "insufficient_data" with no findings.
    """
    metric_type = MetricType(metric_type)
    history = metric_store.get_history(user_id, metric_type, days, today=today, db_path=db_path)
    report = detect_outliers(history, methods, thresholds)
    recommendations = recommend(report, metric_type, history, today=today)

    logger.info(
        "Analyzed %d %s samples for user %s: %d outliers",
        len(history), metric_type.value, user_id, report.total_outliers,
    )
    return {
        "user_id": user_id,
        "metric_type": metric_type.value,
        "analysis_period_days": days,
        "data_points_analyzed": len(history),
        "status": report.status,
        "message": report.message,
        "outliers": [o.to_dict() for o in report.outliers],
        "method_results": {m.value: r.to_dict() for m, r in report.method_results.items()},
        "statistics": report.statistics,
        "recommendations": [r.to_dict() for r in recommendations],
        "analysis_date": datetime.now().isoformat(timespec="seconds"),
    }


def validate_metric(
    user_id: int,
    metric_type: MetricType,
    value: float,
    recorded_date: date,
    db_path: str = DB_PATH,
    today: Optional[date] = None,
) -> dict:
    """Check whether a new value looks unusual against recent history."""
    metric_type = MetricType(metric_type)
    history = metric_store.get_history(
        user_id, metric_type, DEFAULT_ANALYSIS_DAYS, today=today, db_path=db_path
    )
    candidate = MetricSample(
        id=None, user_id=user_id, metric_type=metric_type, value=value, recorded_date=recorded_date,
    )
    series = history + [candidate]
    report = detect_outliers(series, VALIDATION_METHODS)

    candidate_index = len(series) - 1
    finding = next((o for o in report.outliers if o.source_index == candidate_index), None)
    is_outlier = finding is not None
    return {
        "is_outlier": is_outlier,
        "outlier_details": finding.to_dict() if finding else None,
        "validation_result": "warning" if is_outlier else "normal",
        "message": ("This value appears unusual compared to your recent measurements"
                    if is_outlier else "Value appears normal"),
        "suggestions": list(VALIDATION_SUGGESTIONS) if is_outlier else [],
    }


def calculate_trend(samples: list) -> dict:
    """Direction and size of change between the first and last sample."""
    if len(samples) < 2:
        return {"trend": "insufficient_data", "change": 0}

    ordered = sorted(samples, key=lambda s: s.sort_key)
    first, last = ordered[0], ordered[-1]
    absolute_change = last.value - first.value
    percentage_change = absolute_change / first.value * 100 if first.value != 0 else 0

    if abs(percentage_change) <= TREND_STABLE_PCT:
        trend = "stable"
    elif percentage_change > 0:
        trend = "increasing"
    else:
        trend = "decreasing"

    return {
        "trend": trend,
        "absolute_change": round(absolute_change, 2),
        "percentage_change": round(percentage_change, 2),
        "first_value": first.value,
        "last_value": last.value,
        "first_date": first.recorded_date.isoformat(),
        "last_date": last.recorded_date.isoformat(),
    }


def trend_for_user(
    user_id: int,
    metric_type: MetricType,
    days: int = DEFAULT_ANALYSIS_DAYS,
    db_path: str = DB_PATH,
    today: Optional[date] = None,
) -> dict:
    history = metric_store.get_history(user_id, metric_type, days, today=today, db_path=db_path)
    return calculate_trend(history)


def batch_analyze_users(
    user_ids: list,
    days: int = BATCH_ANALYSIS_DAYS,
    db_path: str = DB_PATH,
    today: Optional[date] = None,
) -> dict:
    """Analyse every metric type for each user, keeping only those with outliers."""
    results = {}
    for user_id in user_ids:
        user_results = {}
        for metric_type in MetricType:
            analysis = analyze_user_metrics(
                user_id, metric_type, days, db_path=db_path, today=today
            )
            if analysis["outliers"]:
                user_results[metric_type.value] = analysis
        if user_results:
            results[user_id] = user_results
    logger.info("Batch analysis: %d of %d users with outliers", len(results), len(user_ids))
    return results
