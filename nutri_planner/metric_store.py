"""Health metric persistence.

At most one sample exists per (user, metric type, date, goal flag); recording
a second one for the same key replaces the value.
"""

from datetime import date, time, timedelta
from typing import Optional

from nutri_planner.config import DB_PATH, DEFAULT_METRIC_UNITS
from nutri_planner.db import get_connection
from nutri_planner.models import MetricSample, MetricType


def _row_to_sample(row) -> MetricSample:
    return MetricSample(
        id=row["id"],
        user_id=row["user_id"],
        metric_type=MetricType(row["metric_type"]),
        value=row["value"],
        recorded_date=date.fromisoformat(row["recorded_date"]),
        unit=row["unit"],
        recorded_time=time.fromisoformat(row["recorded_time"]) if row["recorded_time"] else None,
        is_goal=bool(row["is_goal"]),
        notes=row["notes"] or "",
    )


def record_metric(sample: MetricSample, db_path: str = DB_PATH) -> int:
    """Insert or update a sample. Returns the row ID."""
    metric_type = MetricType(sample.metric_type)
    unit = sample.unit or DEFAULT_METRIC_UNITS[metric_type.value]
    with get_connection(db_path) as conn:
        conn.execute(
            """INSERT INTO health_metrics
               (user_id, metric_type, value, unit, recorded_date, recorded_time, is_goal, notes)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)
               ON CONFLICT(user_id, metric_type, recorded_date, is_goal) DO UPDATE SET
               value = excluded.value, unit = excluded.unit,
               recorded_time = excluded.recorded_time, notes = excluded.notes""",
            (
                sample.user_id,
                metric_type.value,
                sample.value,
                unit,
                sample.recorded_date.isoformat(),
                sample.recorded_time.isoformat() if sample.recorded_time else None,
                int(sample.is_goal),
                sample.notes,
            ),
        )
        row = conn.execute(
            """SELECT id FROM health_metrics
               WHERE user_id = ? AND metric_type = ? AND recorded_date = ? AND is_goal = ?""",
            (sample.user_id, metric_type.value, sample.recorded_date.isoformat(), int(sample.is_goal)),
        ).fetchone()
        return row["id"]


def get_history(
    user_id: int,
    metric_type: MetricType,
    since_days: int,
    today: Optional[date] = None,
    db_path: str = DB_PATH,
) -> list:
    """Non-goal samples from the last `since_days` days, oldest first."""
    if today is None:
        today = date.today()
    since = today - timedelta(days=since_days)
    with get_connection(db_path) as conn:
        rows = conn.execute(
            """SELECT * FROM health_metrics
               WHERE user_id = ? AND metric_type = ? AND is_goal = 0
               AND recorded_date >= ? AND recorded_date <= ?
               ORDER BY recorded_date, recorded_time""",
            (user_id, MetricType(metric_type).value, since.isoformat(), today.isoformat()),
        ).fetchall()
        return [_row_to_sample(row) for row in rows]


def get_latest(user_id: int, metric_type: MetricType, db_path: str = DB_PATH) -> Optional[MetricSample]:
    """Most recent non-goal sample."""
    with get_connection(db_path) as conn:
        row = conn.execute(
            """SELECT * FROM health_metrics
               WHERE user_id = ? AND metric_type = ? AND is_goal = 0
               ORDER BY recorded_date DESC, recorded_time DESC LIMIT 1""",
            (user_id, MetricType(metric_type).value),
        ).fetchone()
        return _row_to_sample(row) if row else None


def get_goal(user_id: int, metric_type: MetricType, db_path: str = DB_PATH) -> Optional[MetricSample]:
    """Most recent goal value for a metric."""
    with get_connection(db_path) as conn:
        row = conn.execute(
            """SELECT * FROM health_metrics
               WHERE user_id = ? AND metric_type = ? AND is_goal = 1
               ORDER BY recorded_date DESC LIMIT 1""",
            (user_id, MetricType(metric_type).value),
        ).fetchone()
        return _row_to_sample(row) if row else None


def delete_metric(metric_id: int, user_id: int, db_path: str = DB_PATH) -> bool:
    """Delete a sample owned by the user. Returns True if deleted."""
    with get_connection(db_path) as conn:
        cursor = conn.execute(
            "DELETE FROM health_metrics WHERE id = ? AND user_id = ?", (metric_id, user_id)
        )
        return cursor.rowcount > 0
