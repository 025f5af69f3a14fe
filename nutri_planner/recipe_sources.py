"""Recipe catalog import and export.

Recipes travel as CSV: one row per recipe, list columns comma-joined and
ingredients/instructions as JSON strings. Importing skips titles already
in the catalog so a file can be re-imported safely.
"""

import csv
import json
import logging
from typing import Optional

from nutri_planner.config import DB_PATH
from nutri_planner.db import join_list, split_list
from nutri_planner.models import Ingredient, Nutrition, Recipe
from nutri_planner.recipe_store import get_all_recipes, save_recipe, search_recipes

logger = logging.getLogger(__name__)

CSV_COLUMNS = [
    "title", "source", "source_url", "servings", "prep_time_minutes",
    "cook_time_minutes", "meal_category", "cuisine", "difficulty",
    "average_rating", "total_ratings", "cost_per_serving", "dietary_tags",
    "allergens", "tags", "equipment_needed", "storage_instructions",
    "ingredients", "instructions", "calories", "protein_g", "carbs_g",
    "fat_g", "fiber_g", "sugar_g", "sodium_mg",
]

NUTRITION_COLUMNS = ["calories", "protein_g", "carbs_g", "fat_g", "fiber_g", "sugar_g", "sodium_mg"]


def recipe_to_row(r: Recipe) -> dict:
    row = {
        "title": r.title,
        "source": r.source,
        "source_url": r.source_url,
        "servings": r.servings,
        "prep_time_minutes": r.prep_time_minutes,
        "cook_time_minutes": r.cook_time_minutes,
        "meal_category": r.meal_category,
        "cuisine": r.cuisine,
        "difficulty": r.difficulty,
        "average_rating": r.average_rating,
        "total_ratings": r.total_ratings,
        "cost_per_serving": "" if r.cost_per_serving is None else r.cost_per_serving,
        "dietary_tags": join_list(r.dietary_tags),
        "allergens": join_list(r.allergens),
        "tags": join_list(r.tags),
        "equipment_needed": join_list(r.equipment_needed),
        "storage_instructions": r.storage_instructions,
        "ingredients": json.dumps([
            {"name": i.name, "quantity": i.quantity, "unit": i.unit, "notes": i.notes, "allergens": i.allergens}
            for i in r.ingredients
        ]),
        "instructions": json.dumps(r.instructions),
    }
    for column in NUTRITION_COLUMNS:
        row[column] = getattr(r.nutrition, column) if r.nutrition else ""
    return row


def _json_column(row: dict, column: str, title: str) -> list:
    raw = (row.get(column) or "").strip()
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Ignoring malformed %s for '%s'", column, title)
        return []
    return value if isinstance(value, list) else []


def _number(row: dict, column: str, cast=float, default=0):
    raw = (row.get(column) or "").strip()
    return cast(float(raw)) if raw else default


def row_to_recipe(row: dict) -> Optional[Recipe]:
    """Build a Recipe from a CSV row, or None if the row has no title."""
    title = (row.get("title") or "").strip()
    if not title:
        return None

    nutrition = None
    if (row.get("calories") or "").strip():
        nutrition = Nutrition(**{column: _number(row, column) for column in NUTRITION_COLUMNS})

    ingredients = [
        Ingredient(
            name=ing.get("name", ""),
            quantity=ing.get("quantity", 0),
            unit=ing.get("unit", ""),
            notes=ing.get("notes", ""),
            allergens=ing.get("allergens", []),
        )
        for ing in _json_column(row, "ingredients", title)
        if isinstance(ing, dict)
    ]

    return Recipe(
        id=None,
        title=title,
        source=row.get("source") or "csv",
        source_url=row.get("source_url", ""),
        servings=_number(row, "servings", int, 1),
        prep_time_minutes=_number(row, "prep_time_minutes", int),
        cook_time_minutes=_number(row, "cook_time_minutes", int),
        meal_category=(row.get("meal_category") or "").strip().lower(),
        cuisine=(row.get("cuisine") or "").strip(),
        difficulty=_number(row, "difficulty", int, 1),
        average_rating=_number(row, "average_rating"),
        total_ratings=_number(row, "total_ratings", int),
        cost_per_serving=_number(row, "cost_per_serving", float, None),
        dietary_tags=split_list(row.get("dietary_tags")),
        allergens=split_list(row.get("allergens")),
        tags=split_list(row.get("tags")),
        equipment_needed=split_list(row.get("equipment_needed")),
        storage_instructions=row.get("storage_instructions", ""),
        ingredients=ingredients,
        instructions=_json_column(row, "instructions", title),
        nutrition=nutrition,
    )


def export_recipes_csv(file_path: str, db_path: str = DB_PATH) -> int:
    """Export all recipes from the database to a CSV file.

    Returns the number of recipes exported.
    """
    recipes = get_all_recipes(db_path)
    with open(file_path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=CSV_COLUMNS)
        writer.writeheader()
        for recipe in recipes:
            writer.writerow(recipe_to_row(recipe))
    logger.info("Exported %d recipes to %s", len(recipes), file_path)
    return len(recipes)


def import_recipes_csv(file_path: str, db_path: str = DB_PATH) -> int:
    """Import recipes from a CSV file into the database.

    Skips recipes whose title already exists in the database.
    Returns the number of newly imported recipes.
    """
    imported = 0
    with open(file_path, "r", newline="", encoding="utf-8") as f:
        for line_no, row in enumerate(csv.DictReader(f), start=2):
            try:
                recipe = row_to_recipe(row)
            except ValueError as e:
                logger.warning("Skipping line %d of %s: %s", line_no, file_path, e)
                continue
            if recipe is None:
                continue

            existing = search_recipes(recipe.title, db_path)
            if any(r.title.lower() == recipe.title.lower() for r in existing):
                logger.debug("Skipping duplicate recipe '%s'", recipe.title)
                continue

            save_recipe(recipe, db_path)
            imported += 1

    logger.info("Imported %d recipes from %s", imported, file_path)
    return imported
