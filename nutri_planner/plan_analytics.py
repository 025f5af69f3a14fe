"""Meal plan analytics built on a pandas frame of the plan's meals."""

import pandas as pd

from nutri_planner.config import CALORIES_PER_GRAM
from nutri_planner.models import MealPlan, MealStatus

QUICK_MINUTES = 30
MODERATE_MINUTES = 60
FAVORITE_MIN_RATING = 4
FAVORITE_LIMIT = 5

MEAL_COLUMNS = [
    "meal_id", "date", "meal_type", "recipe_id", "recipe_title", "cuisine",
    "total_time_minutes", "status", "user_rating", "calories", "protein_g", "carbs_g", "fat_g",
]


def meals_frame(plan: MealPlan) -> pd.DataFrame:
    """One row per meal; recipe columns are empty when recipes aren't loaded."""
    rows = []
    for meal in plan.meals:
        recipe = meal.recipe
        planned = meal.planned
        rows.append({
            "meal_id": meal.id,
            "date": pd.Timestamp(meal.date),
            "meal_type": meal.meal_type.value,
            "recipe_id": meal.recipe_id,
            "recipe_title": recipe.title if recipe else None,
            "cuisine": (recipe.cuisine or None) if recipe else None,
            "total_time_minutes": recipe.total_time_minutes if recipe else None,
            "status": meal.status.value,
            "user_rating": meal.user_rating,
            "calories": planned.calories if planned else 0.0,
            "protein_g": planned.protein_g if planned else 0.0,
            "carbs_g": planned.carbs_g if planned else 0.0,
            "fat_g": planned.fat_g if planned else 0.0,
        })
    return pd.DataFrame(rows, columns=MEAL_COLUMNS)


def daily_nutrition_trends(df: pd.DataFrame) -> dict:
    """Planned calories and macros summed per date."""
    if df.empty:
        return {}
    daily = df.groupby("date")[["calories", "protein_g", "carbs_g", "fat_g"]].sum().round(2)
    return {
        day.date().isoformat(): {
            "calories": float(row["calories"]),
            "protein": float(row["protein_g"]),
            "carbs": float(row["carbs_g"]),
            "fat": float(row["fat_g"]),
        }
        for day, row in daily.iterrows()
    }


def variety_score(df: pd.DataFrame) -> float:
    """Unique recipes as a percentage of meals."""
    if df.empty:
        return 0.0
    return round(df["recipe_id"].nunique() / len(df) * 100, 1)


def completion_stats(df: pd.DataFrame) -> dict:
    counts = df["status"].value_counts()
    stats = {"total_meals": int(len(df))}
    for status in (MealStatus.COMPLETED, MealStatus.SKIPPED, MealStatus.SUBSTITUTED, MealStatus.PLANNED):
        stats[status.value] = int(counts.get(status.value, 0))
    return stats


def cuisine_distribution(df: pd.DataFrame) -> dict:
    counts = df["cuisine"].dropna().value_counts()
    return {cuisine: int(n) for cuisine, n in counts.items()}


def cooking_time_analysis(df: pd.DataFrame) -> dict:
    times = df["total_time_minutes"].dropna()
    times = times[times > 0]
    if times.empty:
        return {
            "average_cooking_time": None,
            "min_cooking_time": None,
            "max_cooking_time": None,
            "time_distribution": {"quick": 0, "moderate": 0, "long": 0},
        }
    return {
        "average_cooking_time": round(float(times.mean()), 1),
        "min_cooking_time": int(times.min()),
        "max_cooking_time": int(times.max()),
        "time_distribution": {
            "quick": int((times <= QUICK_MINUTES).sum()),
            "moderate": int(((times > QUICK_MINUTES) & (times <= MODERATE_MINUTES)).sum()),
            "long": int((times > MODERATE_MINUTES).sum()),
        },
    }


def favorite_meals(df: pd.DataFrame) -> list:
    """Up to five meals rated 4 or higher, best first."""
    ratings = pd.to_numeric(df["user_rating"], errors="coerce").fillna(0)
    rated = df.assign(user_rating=ratings)[ratings >= FAVORITE_MIN_RATING]
    rated = rated.sort_values(["user_rating", "date"], ascending=[False, True]).head(FAVORITE_LIMIT)
    return [
        {"meal_id": int(row.meal_id), "recipe_title": row.recipe_title, "user_rating": int(row.user_rating)}
        for row in rated.itertuples()
    ]


def nutritional_accuracy(plan: MealPlan) -> dict:
    """Actual daily averages against targets, capped at 100%."""
    actual = plan.actual_nutrition
    accuracy = {}
    pairs = [
        ("calories", plan.targets.calories, actual.calories if actual else 0),
        ("protein", plan.targets.protein_g, actual.protein_g if actual else 0),
        ("carbs", plan.targets.carbs_g, actual.carbs_g if actual else 0),
        ("fat", plan.targets.fat_g, actual.fat_g if actual else 0),
    ]
    for nutrient, target, value in pairs:
        if target > 0:
            accuracy[nutrient] = {
                "target": target,
                "actual": value,
                "accuracy_percentage": round(min(100.0, value / target * 100), 1),
            }
    return accuracy


def _distribution(calories, protein_g, carbs_g, fat_g) -> dict:
    if not calories:
        return {"protein": 0, "carbs": 0, "fat": 0}
    return {
        "protein": round(protein_g * CALORIES_PER_GRAM["protein"] / calories * 100, 1),
        "carbs": round(carbs_g * CALORIES_PER_GRAM["carbs"] / calories * 100, 1),
        "fat": round(fat_g * CALORIES_PER_GRAM["fat"] / calories * 100, 1),
    }


def macro_distribution(plan: MealPlan) -> dict:
    """Target and actual share of calories per macro."""
    t = plan.targets
    a = plan.actual_nutrition
    return {
        "target": _distribution(t.calories, t.protein_g, t.carbs_g, t.fat_g),
        "actual": _distribution(a.calories, a.protein_g, a.carbs_g, a.fat_g) if a else _distribution(0, 0, 0, 0),
    }


def plan_analytics(plan: MealPlan) -> dict:
    """All analytics for one plan."""
    df = meals_frame(plan)
    return {
        "adherence_score": plan.adherence_score or 0.0,
        "nutritional_accuracy": nutritional_accuracy(plan),
        "variety_score": variety_score(df),
        "completion_stats": completion_stats(df),
        "favorite_meals": favorite_meals(df),
        "cuisine_distribution": cuisine_distribution(df),
        "cooking_time_analysis": cooking_time_analysis(df),
        "daily_nutrition_trends": daily_nutrition_trends(df),
        "macro_distribution": macro_distribution(plan),
    }
