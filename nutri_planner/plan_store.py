"""Meal plan persistence.

A plan and all of its meals are written in a single transaction; a
failure part way through leaves nothing behind.
"""

import json
import logging
import sqlite3
from datetime import date, datetime
from typing import Optional

from nutri_planner.config import DB_PATH
from nutri_planner.db import get_connection, join_list, split_list
from nutri_planner.errors import NotFoundError, PersistenceError, ValidationError
from nutri_planner.models import (
    MacroTargets,
    MealPlan,
    MealPlanMeal,
    MealStatus,
    MealType,
    Nutrition,
    PlanConstraints,
    PlanStatus,
)
from nutri_planner.recipe_store import get_recipes

logger = logging.getLogger(__name__)

_MEAL_COLUMNS = (
    "meal_plan_id, recipe_id, date, meal_type, servings, planned_calories, planned_protein_g, "
    "planned_carbs_g, planned_fat_g, planned_fiber_g, planned_sugar_g, planned_sodium_mg, "
    "is_meal_prep, prep_date, estimated_prep_time, status, substituted_with_recipe_id, "
    "substitution_reason, user_rating, notes, completed_at"
)


def _meal_params(plan_id: int, meal: MealPlanMeal) -> tuple:
    n = meal.planned or Nutrition.zero()
    return (
        plan_id,
        meal.recipe_id,
        meal.date.isoformat(),
        meal.meal_type.value,
        meal.servings,
        n.calories, n.protein_g, n.carbs_g, n.fat_g, n.fiber_g, n.sugar_g, n.sodium_mg,
        int(meal.is_meal_prep),
        meal.prep_date.isoformat() if meal.prep_date else None,
        meal.estimated_prep_time,
        meal.status.value,
        meal.substituted_with_recipe_id,
        meal.substitution_reason,
        meal.user_rating,
        meal.notes,
        meal.completed_at.isoformat() if meal.completed_at else None,
    )


def _row_to_meal(row) -> MealPlanMeal:
    planned = None
    if row["planned_calories"] is not None:
        planned = Nutrition(
            calories=row["planned_calories"],
            protein_g=row["planned_protein_g"],
            carbs_g=row["planned_carbs_g"],
            fat_g=row["planned_fat_g"],
            fiber_g=row["planned_fiber_g"] or 0,
            sugar_g=row["planned_sugar_g"] or 0,
            sodium_mg=row["planned_sodium_mg"] or 0,
        )
    return MealPlanMeal(
        id=row["id"],
        meal_plan_id=row["meal_plan_id"],
        date=date.fromisoformat(row["date"]),
        meal_type=MealType(row["meal_type"]),
        recipe_id=row["recipe_id"],
        servings=row["servings"],
        planned=planned,
        is_meal_prep=bool(row["is_meal_prep"]),
        prep_date=date.fromisoformat(row["prep_date"]) if row["prep_date"] else None,
        estimated_prep_time=row["estimated_prep_time"],
        status=MealStatus(row["status"]),
        substituted_with_recipe_id=row["substituted_with_recipe_id"],
        substitution_reason=row["substitution_reason"] or "",
        user_rating=row["user_rating"],
        notes=row["notes"] or "",
        completed_at=datetime.fromisoformat(row["completed_at"]) if row["completed_at"] else None,
    )


def _row_to_plan(row, meals: list) -> MealPlan:
    actual = None
    if row["actual_calories"] is not None:
        actual = Nutrition(
            row["actual_calories"], row["actual_protein_g"], row["actual_carbs_g"], row["actual_fat_g"]
        )
    return MealPlan(
        id=row["id"],
        user_id=row["user_id"],
        name=row["name"],
        description=row["description"] or "",
        start_date=date.fromisoformat(row["start_date"]),
        end_date=date.fromisoformat(row["end_date"]),
        targets=MacroTargets(
            calories=row["target_calories"],
            protein_g=row["target_protein_g"],
            carbs_g=row["target_carbs_g"],
            fat_g=row["target_fat_g"],
        ),
        meal_types=[MealType(m) for m in split_list(row["meal_types"])],
        constraints=PlanConstraints.from_dict(json.loads(row["constraints"])),
        status=PlanStatus(row["status"]),
        feedback_data=json.loads(row["feedback_data"]),
        meals=meals,
        actual_nutrition=actual,
        adherence_score=row["adherence_score"],
        created_at=row["created_at"],
    )


def _persistence_error(action: str, error: sqlite3.Error) -> PersistenceError:
    logger.error("Failed to %s: %s", action, error)
    return PersistenceError(f"Failed to {action}: {error}")


def create_meal_plan(plan: MealPlan, db_path: str = DB_PATH) -> MealPlan:
    """Insert a plan with all of its meals atomically. Sets the new IDs."""
    try:
        with get_connection(db_path) as conn:
            cursor = conn.execute(
                """INSERT INTO meal_plans
                   (user_id, name, description, start_date, end_date, target_calories,
                    target_protein_g, target_carbs_g, target_fat_g, meal_types,
                    constraints, feedback_data, status)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    plan.user_id,
                    plan.name,
                    plan.description,
                    plan.start_date.isoformat(),
                    plan.end_date.isoformat(),
                    plan.targets.calories,
                    plan.targets.protein_g,
                    plan.targets.carbs_g,
                    plan.targets.fat_g,
                    join_list(m.value for m in plan.meal_types),
                    json.dumps(plan.constraints.to_dict()),
                    json.dumps(plan.feedback_data),
                    plan.status.value,
                ),
            )
            plan_id = cursor.lastrowid
            for meal in plan.meals:
                cursor = conn.execute(
                    f"INSERT INTO meal_plan_meals ({_MEAL_COLUMNS}) VALUES ({','.join('?' * 21)})",
                    _meal_params(plan_id, meal),
                )
                meal.id = cursor.lastrowid
                meal.meal_plan_id = plan_id
    except sqlite3.Error as e:
        raise _persistence_error("create meal plan", e) from e

    plan.id = plan_id
    return plan


def save_regenerated_plan(plan: MealPlan, changed_meals: list, db_path: str = DB_PATH) -> None:
    """Persist feedback and replaced meals of an existing plan atomically."""
    try:
        with get_connection(db_path) as conn:
            conn.execute(
                "UPDATE meal_plans SET feedback_data = ?, constraints = ?, status = ? WHERE id = ?",
                (json.dumps(plan.feedback_data), json.dumps(plan.constraints.to_dict()),
                 plan.status.value, plan.id),
            )
            for meal in changed_meals:
                params = _meal_params(plan.id, meal)
                # recipe_id, then servings through status
                conn.execute(
                    """UPDATE meal_plan_meals SET recipe_id = ?, servings = ?,
                       planned_calories = ?, planned_protein_g = ?, planned_carbs_g = ?,
                       planned_fat_g = ?, planned_fiber_g = ?, planned_sugar_g = ?,
                       planned_sodium_mg = ?, is_meal_prep = ?, prep_date = ?,
                       estimated_prep_time = ?, status = ?
                       WHERE id = ? AND meal_plan_id = ?""",
                    params[1:2] + params[4:16] + (meal.id, plan.id),
                )
    except sqlite3.Error as e:
        raise _persistence_error("update meal plan", e) from e


def load_meal_plan(plan_id: int, db_path: str = DB_PATH, with_recipes: bool = True) -> Optional[MealPlan]:
    """Load a plan with its meals ordered by date then slot."""
    with get_connection(db_path) as conn:
        plan_row = conn.execute("SELECT * FROM meal_plans WHERE id = ?", (plan_id,)).fetchone()
        if not plan_row:
            return None
        meal_rows = conn.execute(
            "SELECT * FROM meal_plan_meals WHERE meal_plan_id = ? ORDER BY date, id",
            (plan_id,),
        ).fetchall()
        meals = [_row_to_meal(row) for row in meal_rows]

    if with_recipes:
        recipes = get_recipes((m.recipe_id for m in meals), db_path)
        for meal in meals:
            meal.recipe = recipes.get(meal.recipe_id)
    order = list(MealType)
    meals.sort(key=lambda m: (m.date, order.index(m.meal_type)))
    return _row_to_plan(plan_row, meals)


def list_meal_plans(user_id: int, db_path: str = DB_PATH) -> list:
    """A user's plans without their meals, newest first."""
    with get_connection(db_path) as conn:
        rows = conn.execute(
            "SELECT * FROM meal_plans WHERE user_id = ? ORDER BY start_date DESC, id DESC",
            (user_id,),
        ).fetchall()
        return [_row_to_plan(row, []) for row in rows]


def get_meal(meal_id: int, db_path: str = DB_PATH) -> Optional[MealPlanMeal]:
    with get_connection(db_path) as conn:
        row = conn.execute("SELECT * FROM meal_plan_meals WHERE id = ?", (meal_id,)).fetchone()
        return _row_to_meal(row) if row else None


def actual_nutrition(meals: list) -> Optional[Nutrition]:
    """Average daily nutrition over days with at least one completed meal."""
    completed = [m for m in meals if m.status == MealStatus.COMPLETED and m.planned]
    if not completed:
        return None
    total = Nutrition.zero()
    for meal in completed:
        total = total + meal.planned
    days = len({m.date for m in completed})
    return total.scaled(1.0 / days).rounded(1)


def adherence_score(meals: list) -> float:
    """Percentage of meals completed."""
    if not meals:
        return 0.0
    completed = sum(1 for m in meals if m.status == MealStatus.COMPLETED)
    return round(completed / len(meals) * 100, 1)


def update_meal_status(
    meal_id: int,
    status: MealStatus,
    substitute_recipe_id: Optional[int] = None,
    reason: str = "",
    rating: Optional[int] = None,
    notes: Optional[str] = None,
    db_path: str = DB_PATH,
) -> MealPlanMeal:
    """Move a meal to a new status and refresh the plan's adherence figures.

    Raises InvalidTransitionError for transitions the lifecycle forbids.
    """
    status = MealStatus(status)
    meal = get_meal(meal_id, db_path)
    if meal is None:
        raise NotFoundError("Meal", meal_id)
    if status == MealStatus.SUBSTITUTED and substitute_recipe_id is None:
        raise ValidationError("A substitute recipe is required", field="substitute_recipe_id")
    if rating is not None and not 1 <= rating <= 5:
        raise ValidationError("Rating must be between 1 and 5", field="rating")

    meal.transition_to(status)
    if status == MealStatus.COMPLETED:
        meal.completed_at = datetime.now()
    if status == MealStatus.SUBSTITUTED:
        meal.substituted_with_recipe_id = substitute_recipe_id
        meal.substitution_reason = reason
    if rating is not None:
        meal.user_rating = rating
    if notes is not None:
        meal.notes = notes

    try:
        with get_connection(db_path) as conn:
            conn.execute(
                """UPDATE meal_plan_meals SET status = ?, completed_at = ?,
                   substituted_with_recipe_id = ?, substitution_reason = ?,
                   user_rating = ?, notes = ? WHERE id = ?""",
                (
                    meal.status.value,
                    meal.completed_at.isoformat() if meal.completed_at else None,
                    meal.substituted_with_recipe_id,
                    meal.substitution_reason,
                    meal.user_rating,
                    meal.notes,
                    meal.id,
                ),
            )
            rows = conn.execute(
                "SELECT * FROM meal_plan_meals WHERE meal_plan_id = ?", (meal.meal_plan_id,)
            ).fetchall()
            meals = [_row_to_meal(row) for row in rows]
            actual = actual_nutrition(meals)
            conn.execute(
                """UPDATE meal_plans SET actual_calories = ?, actual_protein_g = ?,
                   actual_carbs_g = ?, actual_fat_g = ?, adherence_score = ? WHERE id = ?""",
                (
                    actual.calories if actual else None,
                    actual.protein_g if actual else None,
                    actual.carbs_g if actual else None,
                    actual.fat_g if actual else None,
                    adherence_score(meals),
                    meal.meal_plan_id,
                ),
            )
    except sqlite3.Error as e:
        raise _persistence_error("update meal status", e) from e

    logger.info("Meal %s marked %s", meal.id, meal.status.value)
    return meal


def delete_meal_plan(plan_id: int, db_path: str = DB_PATH) -> bool:
    """Delete a plan and its meals. Returns True if deleted."""
    with get_connection(db_path) as conn:
        cursor = conn.execute("DELETE FROM meal_plans WHERE id = ?", (plan_id,))
        return cursor.rowcount > 0
