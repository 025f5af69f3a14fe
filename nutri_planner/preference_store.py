"""Dietary preference persistence."""

import json
from dataclasses import asdict
from typing import Optional

from nutri_planner.config import DB_PATH
from nutri_planner.db import get_connection
from nutri_planner.models import DietaryPreference


def get_preferences(user_id: int, db_path: str = DB_PATH) -> Optional[DietaryPreference]:
    """Load a user's preferences, or None if none are stored."""
    with get_connection(db_path) as conn:
        row = conn.execute(
            "SELECT data FROM dietary_preferences WHERE user_id = ?", (user_id,)
        ).fetchone()
    if not row:
        return None
    data = json.loads(row["data"])
    known = DietaryPreference.__dataclass_fields__
    data = {k: v for k, v in data.items() if k in known and k != "user_id"}
    return DietaryPreference(user_id=user_id, **data)


def save_preferences(preferences: DietaryPreference, db_path: str = DB_PATH) -> None:
    """Insert or replace a user's preferences."""
    data = asdict(preferences)
    data.pop("user_id")
    with get_connection(db_path) as conn:
        conn.execute(
            """INSERT INTO dietary_preferences (user_id, data) VALUES (?, ?)
               ON CONFLICT(user_id) DO UPDATE SET data = excluded.data,
               updated_at = CURRENT_TIMESTAMP""",
            (preferences.user_id, json.dumps(data)),
        )
