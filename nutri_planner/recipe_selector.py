"""Recipe selection for a single meal slot.

Algorithm overview:
1. Build the candidate pool: recipes of the slot's meal category that pass
   every hard constraint (diet, allergens, time, difficulty, cuisine
   whitelist, rating floor, disliked ingredients, equipment, budget)
2. With seasonal prioritisation on, keep only in-season recipes unless
   none are left
3. Variety filter: drop recipes used within the reuse window before the
   slot date. If that empties the pool the filter is ignored.
4. Score each candidate (0-100) from preferences, rating, popularity,
   meal-type fit and season
5. Pick uniformly at random among the 5 best-scoring candidates
"""

import logging
import random
from datetime import date
from typing import Optional

from nutri_planner.config import (
    APPROPRIATE_CATEGORY_BONUS,
    BASE_RECIPE_SCORE,
    HIGH_FIBER_GRAMS,
    HIGH_PROTEIN_GRAMS,
    LIGHT_SNACK_CALORIES,
    MEAL_TYPE_APPROPRIATENESS,
    MIN_RECIPE_RATING,
    NUTRITION_PREFERENCE_BONUS,
    POPULAR_RATING_COUNT,
    POPULARITY_BONUS,
    PREFERRED_CUISINE_BONUS,
    PREFERRED_INGREDIENT_BONUS,
    QUICK_BREAKFAST_MINUTES,
    RATING_MIDPOINT,
    RATING_WEIGHT,
    SEASON_MONTHS,
    SEASONAL_BONUS,
    SEASONAL_FILTER_TAGS,
    SEASONAL_SCORE_TAGS,
    SECONDARY_APPROPRIATENESS_BONUS,
    TIME_PENALTY_FACTOR,
    TIME_RATIO_THRESHOLD,
    TOP_CANDIDATES,
)
from nutri_planner.models import DietaryPreference, MealType, PlanConstraints, Recipe

logger = logging.getLogger(__name__)


def season_for(day: date) -> str:
    for season, months in SEASON_MONTHS.items():
        if day.month in months:
            return season
    raise ValueError(f"No season for month {day.month}")


def _has_seasonal_tag(recipe: Recipe, day: date, table: dict) -> bool:
    wanted = table[season_for(day)]
    return any(tag.lower() in wanted for tag in recipe.tags)


def violates_constraints(recipe: Recipe, constraints: PlanConstraints) -> Optional[str]:
    """Name of the first hard constraint the recipe breaks, or None."""
    if recipe.nutrition is None:
        return "nutrition"
    if recipe.id in constraints.excluded_recipe_ids:
        return "excluded"
    if any(not recipe.is_suitable_for_diet(r) for r in constraints.dietary_restrictions):
        return "dietary_restriction"
    if any(recipe.contains_allergen(a) for a in constraints.allergens):
        return "allergen"
    if constraints.max_cooking_time is not None and recipe.total_time_minutes > constraints.max_cooking_time:
        return "cooking_time"
    if constraints.max_difficulty is not None and recipe.difficulty > constraints.max_difficulty:
        return "difficulty"
    if constraints.cuisine_whitelist and recipe.cuisine not in constraints.cuisine_whitelist:
        return "cuisine"
    if (recipe.average_rating or 0) < MIN_RECIPE_RATING:
        return "rating"
    disliked = {i.lower() for i in constraints.disliked_ingredients}
    if any(ing.name.lower() in disliked for ing in recipe.ingredients):
        return "disliked_ingredient"
    if constraints.equipment_available:
        available = {e.lower() for e in constraints.equipment_available}
        if any(e.lower() not in available for e in recipe.equipment_needed):
            return "equipment"
    if (constraints.budget_per_meal is not None and recipe.cost_per_serving is not None
            and recipe.cost_per_serving > constraints.budget_per_meal):
        return "budget"
    return None


def build_candidate_pool(recipes: list, meal_type: MealType, constraints: PlanConstraints,
                         slot_date: date) -> list:
    """Recipes eligible for the slot before the variety filter."""
    meal_type = MealType(meal_type)
    pool = [
        r for r in recipes
        if r.meal_category == meal_type.category and violates_constraints(r, constraints) is None
    ]
    if constraints.prioritize_seasonal and pool:
        seasonal = [r for r in pool if _has_seasonal_tag(r, slot_date, SEASONAL_FILTER_TAGS)]
        if seasonal:
            pool = seasonal
        else:
            logger.info("No in-season %s recipes for %s, keeping full pool", meal_type.value, slot_date)
    return pool


def filter_for_variety(pool: list, recently_used: list, slot_date: date, reuse_days: int) -> list:
    """Drop recipes used within `reuse_days` of the slot, on either side.

    `recently_used` is a list of (date, recipe_id) pairs. Returns the
    unfiltered pool when every candidate would be removed.
    """
    if not recently_used:
        return pool
    recent_ids = {recipe_id for used_on, recipe_id in recently_used if abs((used_on - slot_date).days) <= reuse_days}
    filtered = [r for r in pool if r.id not in recent_ids]
    if not filtered:
        logger.info("Variety filter removed every candidate for %s, relaxing it", slot_date)
        return pool
    return filtered


def _appropriateness_score(recipe: Recipe, meal_type: MealType) -> float:
    if recipe.meal_category in MEAL_TYPE_APPROPRIATENESS.get(meal_type.value, []):
        return APPROPRIATE_CATEGORY_BONUS
    if meal_type == MealType.BREAKFAST and recipe.total_time_minutes <= QUICK_BREAKFAST_MINUTES:
        return SECONDARY_APPROPRIATENESS_BONUS
    if meal_type.is_snack and recipe.nutrition and recipe.nutrition.calories <= LIGHT_SNACK_CALORIES:
        return SECONDARY_APPROPRIATENESS_BONUS
    return 0


def score_recipe(recipe: Recipe, preferences: Optional[DietaryPreference], meal_type: MealType,
                 slot_date: Optional[date] = None, constraints: Optional[PlanConstraints] = None) -> float:
    """Score a recipe for a slot, clamped to [0, 100]."""
    meal_type = MealType(meal_type)
    score = BASE_RECIPE_SCORE

    preferred_cuisines = list(preferences.cuisine_preferences) if preferences else []
    if constraints:
        preferred_cuisines += constraints.preferred_cuisines
    if recipe.cuisine and recipe.cuisine in preferred_cuisines:
        score += PREFERRED_CUISINE_BONUS

    if preferences:
        for ingredient in recipe.ingredients:
            if preferences.prefers_ingredient(ingredient.name):
                score += PREFERRED_INGREDIENT_BONUS

    if constraints is not None:
        max_time = constraints.max_cooking_time
    else:
        max_time = preferences.max_cooking_time if preferences else None
    if max_time:
        ratio = recipe.total_time_minutes / max_time
        if ratio > TIME_RATIO_THRESHOLD:
            score -= (ratio - TIME_RATIO_THRESHOLD) * TIME_PENALTY_FACTOR

    if preferences and recipe.nutrition:
        if preferences.prioritize_protein and recipe.nutrition.protein_g > HIGH_PROTEIN_GRAMS:
            score += NUTRITION_PREFERENCE_BONUS
        if preferences.high_fiber and recipe.nutrition.fiber_g > HIGH_FIBER_GRAMS:
            score += NUTRITION_PREFERENCE_BONUS

    if recipe.average_rating and recipe.average_rating > 0:
        score += (recipe.average_rating - RATING_MIDPOINT) * RATING_WEIGHT
    if recipe.total_ratings > POPULAR_RATING_COUNT:
        score += POPULARITY_BONUS

    score += _appropriateness_score(recipe, meal_type)

    if slot_date and _has_seasonal_tag(recipe, slot_date, SEASONAL_SCORE_TAGS):
        score += SEASONAL_BONUS

    return max(0.0, min(100.0, score))


def _ranked(pool: list, preferences, meal_type, slot_date, constraints) -> list:
    scored = [(score_recipe(r, preferences, meal_type, slot_date, constraints), r) for r in pool]
    scored.sort(key=lambda x: (-x[0], x[1].id if x[1].id is not None else 0))
    return scored


def select_for_slot(
    recipes: list,
    preferences: Optional[DietaryPreference],
    meal_type: MealType,
    slot_date: date,
    constraints: PlanConstraints,
    recently_used: Optional[list] = None,
    rng: Optional[random.Random] = None,
) -> Optional[Recipe]:
    """Choose a recipe for one (date, meal type) slot, or None if nothing fits."""
    rng = rng or random.Random()
    pool = build_candidate_pool(recipes, meal_type, constraints, slot_date)
    if not pool:
        logger.warning("No candidate recipes for %s on %s", MealType(meal_type).value, slot_date)
        return None

    if constraints.avoid_repetition:
        pool = filter_for_variety(pool, recently_used or [], slot_date, constraints.max_recipe_reuse_days)

    scored = _ranked(pool, preferences, meal_type, slot_date, constraints)

    # Pick from top candidates with randomization
    top_n = min(TOP_CANDIDATES, len(scored))
    idx = rng.randint(0, top_n - 1) if top_n > 1 else 0
    return scored[idx][1]


def rank_alternatives(
    recipes: list,
    preferences: Optional[DietaryPreference],
    meal_type: MealType,
    slot_date: date,
    constraints: PlanConstraints,
    current_recipe_id: Optional[int],
    count: int,
) -> list:
    """Best-scoring recipes other than the current one, deterministic order."""
    pool = [
        r for r in build_candidate_pool(recipes, meal_type, constraints, slot_date)
        if r.id != current_recipe_id
    ]
    return [r for _, r in _ranked(pool, preferences, meal_type, slot_date, constraints)[:count]]
