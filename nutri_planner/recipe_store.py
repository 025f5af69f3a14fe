"""Recipe persistence layer - catalog reads and writes."""

import json
from typing import Optional

from nutri_planner.config import DB_PATH
from nutri_planner.db import get_connection, join_list, split_list
from nutri_planner.models import Ingredient, Nutrition, Recipe

_SELECT_WITH_NUTRITION = """
    SELECT r.*, rn.calories, rn.protein_g, rn.carbs_g, rn.fat_g,
           rn.fiber_g, rn.sugar_g, rn.sodium_mg
    FROM recipes r
    LEFT JOIN recipe_nutrition rn ON rn.recipe_id = r.id
"""


def _row_to_recipe(row) -> Recipe:
    """Convert a joined recipes/recipe_nutrition row to a Recipe object."""
    nutrition = None
    if row["calories"] is not None:
        nutrition = Nutrition(
            calories=row["calories"],
            protein_g=row["protein_g"],
            carbs_g=row["carbs_g"],
            fat_g=row["fat_g"],
            fiber_g=row["fiber_g"] or 0,
            sugar_g=row["sugar_g"] or 0,
            sodium_mg=row["sodium_mg"] or 0,
        )

    ingredients_raw = json.loads(row["ingredients"]) if row["ingredients"] else []
    ingredients = [
        Ingredient(
            name=ing.get("name", ""),
            quantity=ing.get("quantity", 0),
            unit=ing.get("unit", ""),
            notes=ing.get("notes", ""),
            allergens=ing.get("allergens", []),
        )
        for ing in ingredients_raw
    ]

    return Recipe(
        id=row["id"],
        title=row["title"],
        source=row["source"],
        source_url=row["source_url"],
        servings=row["servings"],
        prep_time_minutes=row["prep_time_minutes"],
        cook_time_minutes=row["cook_time_minutes"],
        meal_category=row["meal_category"],
        cuisine=row["cuisine"],
        difficulty=row["difficulty"],
        average_rating=row["average_rating"],
        total_ratings=row["total_ratings"],
        cost_per_serving=row["cost_per_serving"],
        dietary_tags=split_list(row["dietary_tags"]),
        allergens=split_list(row["allergens"]),
        tags=split_list(row["tags"]),
        equipment_needed=split_list(row["equipment_needed"]),
        storage_instructions=row["storage_instructions"] or "",
        ingredients=ingredients,
        instructions=json.loads(row["instructions"]) if row["instructions"] else [],
        nutrition=nutrition,
        created_at=row["created_at"],
    )


def ingredients_to_json(ingredients: list) -> str:
    return json.dumps([
        {"name": i.name, "quantity": i.quantity, "unit": i.unit, "notes": i.notes, "allergens": i.allergens}
        for i in ingredients
    ])


def save_recipe(recipe: Recipe, db_path: str = DB_PATH) -> int:
    """Save a recipe to the database. Returns the recipe ID."""
    with get_connection(db_path) as conn:
        cursor = conn.execute(
            """INSERT INTO recipes (title, source, source_url, servings,
               prep_time_minutes, cook_time_minutes, meal_category, cuisine,
               difficulty, average_rating, total_ratings, cost_per_serving,
               dietary_tags, allergens, tags, equipment_needed,
               storage_instructions, ingredients, instructions)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                recipe.title,
                recipe.source,
                recipe.source_url,
                recipe.servings,
                recipe.prep_time_minutes,
                recipe.cook_time_minutes,
                recipe.meal_category,
                recipe.cuisine,
                recipe.difficulty,
                recipe.average_rating,
                recipe.total_ratings,
                recipe.cost_per_serving,
                join_list(recipe.dietary_tags),
                join_list(recipe.allergens),
                join_list(recipe.tags),
                join_list(recipe.equipment_needed),
                recipe.storage_instructions,
                ingredients_to_json(recipe.ingredients),
                json.dumps(recipe.instructions),
            ),
        )
        recipe_id = cursor.lastrowid

        if recipe.nutrition:
            n = recipe.nutrition
            conn.execute(
                """INSERT INTO recipe_nutrition
                   (recipe_id, calories, protein_g, carbs_g, fat_g, fiber_g, sugar_g, sodium_mg)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (recipe_id, n.calories, n.protein_g, n.carbs_g, n.fat_g,
                 n.fiber_g, n.sugar_g, n.sodium_mg),
            )

        return recipe_id


def get_recipe(recipe_id: int, db_path: str = DB_PATH) -> Optional[Recipe]:
    """Load a single recipe by ID."""
    with get_connection(db_path) as conn:
        row = conn.execute(_SELECT_WITH_NUTRITION + " WHERE r.id = ?", (recipe_id,)).fetchone()
        return _row_to_recipe(row) if row else None


def get_recipes(recipe_ids, db_path: str = DB_PATH) -> dict:
    """Load several recipes, keyed by ID."""
    ids = sorted({i for i in recipe_ids if i is not None})
    if not ids:
        return {}
    placeholders = ",".join("?" for _ in ids)
    with get_connection(db_path) as conn:
        rows = conn.execute(
            _SELECT_WITH_NUTRITION + f" WHERE r.id IN ({placeholders})", ids
        ).fetchall()
        return {row["id"]: _row_to_recipe(row) for row in rows}


def get_all_recipes(db_path: str = DB_PATH) -> list:
    """Load all recipes."""
    with get_connection(db_path) as conn:
        rows = conn.execute(_SELECT_WITH_NUTRITION + " ORDER BY r.title").fetchall()
        return [_row_to_recipe(row) for row in rows]


def find_candidates(criteria: Optional[dict] = None, db_path: str = DB_PATH) -> list:
    """Recipes with nutrition data matching coarse catalog criteria.

    Supported criteria: meal_categories, max_total_time, max_difficulty,
    min_rating, cuisines. Finer filtering happens in the recipe selector.
    """
    criteria = criteria or {}
    clauses = ["r.id IN (SELECT recipe_id FROM recipe_nutrition)"]
    params = []

    categories = criteria.get("meal_categories")
    if categories:
        clauses.append(f"r.meal_category IN ({','.join('?' for _ in categories)})")
        params.extend(categories)
    if criteria.get("max_total_time") is not None:
        clauses.append("(r.prep_time_minutes + r.cook_time_minutes) <= ?")
        params.append(criteria["max_total_time"])
    if criteria.get("max_difficulty") is not None:
        clauses.append("r.difficulty <= ?")
        params.append(criteria["max_difficulty"])
    if criteria.get("min_rating") is not None:
        clauses.append("r.average_rating >= ?")
        params.append(criteria["min_rating"])
    cuisines = criteria.get("cuisines")
    if cuisines:
        clauses.append(f"r.cuisine IN ({','.join('?' for _ in cuisines)})")
        params.extend(cuisines)

    query = _SELECT_WITH_NUTRITION + " WHERE " + " AND ".join(clauses) + " ORDER BY r.id"
    with get_connection(db_path) as conn:
        rows = conn.execute(query, params).fetchall()
        return [_row_to_recipe(row) for row in rows]


def recipe_count(db_path: str = DB_PATH) -> int:
    """Return total number of recipes in the database."""
    with get_connection(db_path) as conn:
        row = conn.execute("SELECT COUNT(*) as cnt FROM recipes").fetchone()
        return row["cnt"]


def search_recipes(query: str, db_path: str = DB_PATH) -> list:
    """Search recipes by title (case-insensitive)."""
    with get_connection(db_path) as conn:
        rows = conn.execute(
            _SELECT_WITH_NUTRITION + " WHERE LOWER(r.title) LIKE ? ORDER BY r.title",
            (f"%{query.lower()}%",),
        ).fetchall()
        return [_row_to_recipe(row) for row in rows]
