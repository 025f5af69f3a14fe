"""Database setup and connection handling using SQLite."""

import logging
import os
import sqlite3
from contextlib import contextmanager

from nutri_planner.config import DB_PATH

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS recipes (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL,
    source TEXT NOT NULL DEFAULT 'user',
    source_url TEXT DEFAULT '',
    servings INTEGER DEFAULT 1,
    prep_time_minutes INTEGER DEFAULT 0,
    cook_time_minutes INTEGER DEFAULT 0,
    meal_category TEXT DEFAULT '',
    cuisine TEXT DEFAULT '',
    difficulty INTEGER DEFAULT 1 CHECK(difficulty BETWEEN 1 AND 4),
    average_rating REAL DEFAULT 0,
    total_ratings INTEGER DEFAULT 0,
    cost_per_serving REAL,
    dietary_tags TEXT DEFAULT '',
    allergens TEXT DEFAULT '',
    tags TEXT DEFAULT '',
    equipment_needed TEXT DEFAULT '',
    storage_instructions TEXT DEFAULT '',
    ingredients TEXT DEFAULT '[]',
    instructions TEXT DEFAULT '[]',
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS recipe_nutrition (
    recipe_id INTEGER PRIMARY KEY,
    calories REAL NOT NULL,
    protein_g REAL NOT NULL,
    carbs_g REAL NOT NULL,
    fat_g REAL NOT NULL,
    fiber_g REAL DEFAULT 0,
    sugar_g REAL DEFAULT 0,
    sodium_mg REAL DEFAULT 0,
    FOREIGN KEY (recipe_id) REFERENCES recipes(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS dietary_preferences (
    user_id INTEGER PRIMARY KEY,
    data TEXT NOT NULL DEFAULT '{}',
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS health_metrics (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    metric_type TEXT NOT NULL,
    value REAL NOT NULL,
    unit TEXT DEFAULT '',
    recorded_date DATE NOT NULL,
    recorded_time TEXT,
    is_goal INTEGER NOT NULL DEFAULT 0,
    notes TEXT DEFAULT '',
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    UNIQUE(user_id, metric_type, recorded_date, is_goal)
);

CREATE TABLE IF NOT EXISTS meal_plans (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    name TEXT NOT NULL,
    description TEXT DEFAULT '',
    start_date DATE NOT NULL,
    end_date DATE NOT NULL,
    target_calories REAL NOT NULL,
    target_protein_g REAL NOT NULL,
    target_carbs_g REAL NOT NULL,
    target_fat_g REAL NOT NULL,
    meal_types TEXT NOT NULL DEFAULT '',
    constraints TEXT NOT NULL DEFAULT '{}',
    feedback_data TEXT NOT NULL DEFAULT '{}',
    status TEXT NOT NULL DEFAULT 'draft'
        CHECK(status IN ('draft', 'generating', 'active', 'completed', 'archived')),
    actual_calories REAL,
    actual_protein_g REAL,
    actual_carbs_g REAL,
    actual_fat_g REAL,
    adherence_score REAL,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS meal_plan_meals (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    meal_plan_id INTEGER NOT NULL,
    recipe_id INTEGER,
    date DATE NOT NULL,
    meal_type TEXT NOT NULL,
    servings REAL DEFAULT 1.0,
    planned_calories REAL,
    planned_protein_g REAL,
    planned_carbs_g REAL,
    planned_fat_g REAL,
    planned_fiber_g REAL,
    planned_sugar_g REAL,
    planned_sodium_mg REAL,
    is_meal_prep INTEGER NOT NULL DEFAULT 0,
    prep_date DATE,
    estimated_prep_time INTEGER,
    status TEXT NOT NULL DEFAULT 'planned'
        CHECK(status IN ('planned', 'prepped', 'completed', 'skipped', 'substituted')),
    substituted_with_recipe_id INTEGER,
    substitution_reason TEXT DEFAULT '',
    user_rating INTEGER,
    notes TEXT DEFAULT '',
    completed_at TIMESTAMP,
    FOREIGN KEY (meal_plan_id) REFERENCES meal_plans(id) ON DELETE CASCADE,
    FOREIGN KEY (recipe_id) REFERENCES recipes(id),
    UNIQUE(meal_plan_id, date, meal_type)
);

CREATE INDEX IF NOT EXISTS idx_health_metrics_user_type_date
    ON health_metrics(user_id, metric_type, recorded_date);
CREATE INDEX IF NOT EXISTS idx_meal_plans_user ON meal_plans(user_id, start_date);
CREATE INDEX IF NOT EXISTS idx_recipe_category ON recipes(meal_category);
"""


def init_db(db_path: str = DB_PATH) -> None:
    """Initialize the database, creating tables if they don't exist."""
    directory = os.path.dirname(db_path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with get_connection(db_path) as conn:
        conn.executescript(SCHEMA_SQL)


@contextmanager
def get_connection(db_path: str = DB_PATH):
    """Context manager for database connections.

    Commits on success; rolls back and re-raises on any exception.
    """
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        logger.debug("Rolled back transaction on %s", db_path)
        raise
    finally:
        conn.close()


def split_list(raw: str) -> list:
    """Decode a comma-separated text column."""
    return [item.strip() for item in (raw or "").split(",") if item.strip()]


def join_list(items) -> str:
    return ",".join(items or [])
