"""Meal plan generation and management.

Generation walks every (date, meal type) slot in the requested range,
asks the recipe selector for a recipe, and builds a MealPlanMeal scaled to
the plan's default servings. An optimisation pass then reviews the plan:

- days more than 15% off any calorie/macro target are handed to the
  rebalance hook
- meal-prep meals are grouped into prep sessions with advisory tips
- recipes used more often than the reuse window are handed to the
  substitution hook

Both hooks only log by default. The finished plan is written in a single
transaction.
"""

import logging
import random
from collections import Counter
from datetime import date, timedelta
from typing import Callable, Optional

from nutri_planner.config import (
    DB_PATH,
    DEFAULT_ALTERNATIVES,
    DEFAULT_DAILY_CALORIES,
    DEFAULT_DIFFICULTY_MAX,
    DEFAULT_MAX_REUSE_DAYS,
    DEFAULT_MEAL_TYPES,
    DEFAULT_SERVINGS,
    MEAL_PREP_LEAD_DAYS,
    MEAL_PREP_MIN_MINUTES,
    MIN_RECIPE_RATING,
    NUTRITION_TOLERANCE,
    PREP_SESSION_MAX_CUISINES,
    PREP_SESSION_MAX_MEALS,
    PREP_SESSION_MAX_MINUTES,
)
from nutri_planner.errors import NotFoundError, ValidationError
from nutri_planner.models import (
    DietaryPreference,
    MacroTargets,
    MealPlan,
    MealPlanMeal,
    MealStatus,
    MealType,
    PlanConstraints,
    PlanParameters,
    PlanReview,
    PlanStatus,
    PrepSession,
    Recipe,
)
from nutri_planner.nutrition_calculator import macro_targets_from_calories
from nutri_planner.plan_store import create_meal_plan, get_meal, load_meal_plan, save_regenerated_plan
from nutri_planner.preference_store import get_preferences
from nutri_planner.recipe_selector import rank_alternatives, select_for_slot
from nutri_planner.recipe_store import find_candidates

logger = logging.getLogger(__name__)

RebalanceHook = Callable[[MealPlan, date, dict], None]
SubstituteHook = Callable[[MealPlan, int, int], None]

FEEDBACK_CHOICES = {
    "cooking_time_preference": ("shorter", "longer", "same"),
    "portion_feedback": ("too_small", "too_large", "just_right"),
    "variety_feedback": ("more_variety", "less_variety", "good"),
}


def log_rebalance(plan: MealPlan, day: date, details: dict) -> None:
    logger.info("Plan %s: %s needs rebalancing (%s)", plan.id, day, ", ".join(details["off_target"]))


def log_substitution(plan: MealPlan, recipe_id: int, count: int) -> None:
    logger.info("Plan %s: recipe %s used %d times, consider substituting", plan.id, recipe_id, count)


# --- Resolution of targets and constraints ---

def resolve_targets(parameters: PlanParameters, preferences: Optional[DietaryPreference]) -> MacroTargets:
    """Explicit parameters, then stored preferences, then defaults."""
    calories = parameters.target_calories
    if calories is None and preferences:
        calories = preferences.target_calories_per_day
    if calories is None:
        calories = DEFAULT_DAILY_CALORIES

    split = preferences.macro_split() if preferences else None
    targets = macro_targets_from_calories(calories, split)
    if parameters.target_protein_g is not None:
        targets.protein_g = parameters.target_protein_g
    if parameters.target_carbs_g is not None:
        targets.carbs_g = parameters.target_carbs_g
    if parameters.target_fat_g is not None:
        targets.fat_g = parameters.target_fat_g
    return targets


def _pick(explicit, stored, default=None):
    if explicit is not None:
        return explicit
    if stored is not None:
        return stored
    return default


def resolve_constraints(parameters: PlanParameters, preferences: Optional[DietaryPreference]) -> PlanConstraints:
    prefs = preferences or DietaryPreference(user_id=0)
    return PlanConstraints(
        dietary_restrictions=list(_pick(parameters.dietary_restrictions, prefs.dietary_restrictions, [])),
        allergens=list(_pick(parameters.allergens, prefs.allergens, [])),
        cuisine_whitelist=list(_pick(parameters.cuisine_preferences, prefs.cuisine_preferences, [])),
        disliked_ingredients=list(prefs.disliked_ingredients),
        equipment_available=list(prefs.equipment_available),
        max_cooking_time=_pick(parameters.max_cooking_time, prefs.max_cooking_time),
        max_difficulty=_pick(parameters.difficulty_max, prefs.preferred_difficulty_max, DEFAULT_DIFFICULTY_MAX),
        budget_per_meal=_pick(parameters.budget_per_meal, prefs.budget_per_meal),
        include_meal_prep=bool(_pick(parameters.include_meal_prep, prefs.meal_prep_friendly, False)),
        prioritize_seasonal=bool(_pick(parameters.prioritize_seasonal, prefs.seasonal_preference, False)),
        avoid_repetition=parameters.avoid_repetition,
        max_recipe_reuse_days=_pick(parameters.max_recipe_reuse_days, None, DEFAULT_MAX_REUSE_DAYS),
        default_servings=_pick(parameters.default_servings, None, DEFAULT_SERVINGS),
    )


def catalog_criteria(constraints: PlanConstraints, meal_types: list) -> dict:
    """Coarse filters pushed down to the recipe store."""
    return {
        "meal_categories": sorted({MealType(m).category for m in meal_types}),
        "max_total_time": constraints.max_cooking_time,
        "max_difficulty": constraints.max_difficulty,
        "min_rating": MIN_RECIPE_RATING,
        "cuisines": constraints.cuisine_whitelist,
    }


# --- Plan construction ---

def make_meal(recipe: Recipe, slot_date: date, meal_type: MealType, constraints: PlanConstraints,
              rng: random.Random) -> MealPlanMeal:
    """A planned meal with macros scaled to the default servings."""
    servings = constraints.default_servings
    is_prep = bool(
        constraints.include_meal_prep
        and recipe.storage_instructions
        and recipe.total_time_minutes > MEAL_PREP_MIN_MINUTES
        and not meal_type.is_snack
    )
    return MealPlanMeal(
        id=None,
        meal_plan_id=None,
        date=slot_date,
        meal_type=meal_type,
        recipe_id=recipe.id,
        servings=servings,
        planned=recipe.nutrition.scaled(servings).rounded(2),
        is_meal_prep=is_prep,
        prep_date=slot_date - timedelta(days=rng.randint(*MEAL_PREP_LEAD_DAYS)) if is_prep else None,
        estimated_prep_time=recipe.total_time_minutes if is_prep else None,
        status=MealStatus.PLANNED,
        recipe=recipe,
    )


def build_meal_plan(
    user_id: int,
    parameters: PlanParameters,
    preferences: Optional[DietaryPreference],
    recipes: list,
    rng: Optional[random.Random] = None,
    constraints: Optional[PlanConstraints] = None,
    on_rebalance: Optional[RebalanceHook] = None,
    on_substitute: Optional[SubstituteHook] = None,
) -> MealPlan:
    """Generate an active, unsaved plan from an in-memory recipe catalog."""
    parameters.validate()
    rng = rng or random.Random()
    constraints = constraints or resolve_constraints(parameters, preferences)
    meal_types = [MealType(m) for m in (parameters.meal_types or DEFAULT_MEAL_TYPES)]
    start = parameters.start_date

    plan = MealPlan(
        id=None,
        user_id=user_id,
        name=parameters.name or f"Meal Plan for {start.strftime('%b %d, %Y')}",
        description=parameters.description,
        start_date=start,
        end_date=start + timedelta(days=parameters.duration_days - 1),
        targets=resolve_targets(parameters, preferences),
        meal_types=meal_types,
        constraints=constraints,
    )
    plan.transition_to(PlanStatus.GENERATING)

    used = []  # (date, recipe_id)
    for offset in range(parameters.duration_days):
        slot_date = start + timedelta(days=offset)
        for meal_type in meal_types:
            recipe = select_for_slot(recipes, preferences, meal_type, slot_date, constraints, used, rng)
            if recipe is None:
                continue
            plan.meals.append(make_meal(recipe, slot_date, meal_type, constraints, rng))
            used.append((slot_date, recipe.id))

    plan.review = optimize_meal_plan(plan, on_rebalance, on_substitute)
    plan.transition_to(PlanStatus.ACTIVE)
    return plan


def generate_meal_plan(
    user_id: int,
    parameters: PlanParameters,
    db_path: str = DB_PATH,
    rng: Optional[random.Random] = None,
    on_rebalance: Optional[RebalanceHook] = None,
    on_substitute: Optional[SubstituteHook] = None,
) -> MealPlan:
    """Generate and persist a plan for a user.

    Steps:
    1. Validate parameters before touching the store
    2. Resolve targets and constraints once from parameters and preferences
    3. Load the candidate catalog once
    4. Fill every slot, then run the optimisation pass
    5. Save plan and meals in one transaction
    """
    parameters.validate()
    preferences = get_preferences(user_id, db_path)
    constraints = resolve_constraints(parameters, preferences)
    meal_types = parameters.meal_types or DEFAULT_MEAL_TYPES
    recipes = find_candidates(catalog_criteria(constraints, meal_types), db_path)

    plan = build_meal_plan(
        user_id, parameters, preferences, recipes, rng, constraints, on_rebalance, on_substitute
    )
    create_meal_plan(plan, db_path)
    logger.info(
        "Generated plan %s for user %s: %d meals over %d days",
        plan.id, user_id, len(plan.meals), plan.duration_days,
    )
    return plan


# --- Optimisation pass ---

def _off_target(totals, targets: MacroTargets) -> list:
    checks = [
        ("calories", totals.calories, targets.calories),
        ("protein", totals.protein_g, targets.protein_g),
        ("carbs", totals.carbs_g, targets.carbs_g),
        ("fat", totals.fat_g, targets.fat_g),
    ]
    return [
        name for name, actual, target in checks
        if target > 0 and abs(actual - target) / target > NUTRITION_TOLERANCE
    ]


def build_prep_sessions(meals: list) -> list:
    """Group meal-prep meals by prep date and attach advisory tips."""
    by_date = {}
    for meal in meals:
        if meal.is_meal_prep and meal.prep_date:
            by_date.setdefault(meal.prep_date, []).append(meal)

    sessions = []
    for prep_date in sorted(by_date):
        group = by_date[prep_date]
        total = sum(m.estimated_prep_time or 0 for m in group)
        cuisines = sorted({m.recipe.cuisine for m in group if m.recipe and m.recipe.cuisine})
        tips = []
        if len(group) > PREP_SESSION_MAX_MEALS:
            tips.append("Consider batch cooking similar ingredients to save time")
        if total > PREP_SESSION_MAX_MINUTES:
            tips.append("This is a long prep session - consider splitting across multiple days")
        if len(cuisines) > PREP_SESSION_MAX_CUISINES:
            tips.append("Group similar cuisines together for efficient seasoning and cleanup")
        sessions.append(PrepSession(prep_date, group, total, cuisines, tips))
    return sessions


def optimize_meal_plan(
    plan: MealPlan,
    on_rebalance: Optional[RebalanceHook] = None,
    on_substitute: Optional[SubstituteHook] = None,
) -> PlanReview:
    """Review daily balance, prep sessions and recipe repetition."""
    on_rebalance = on_rebalance or log_rebalance
    on_substitute = on_substitute or log_substitution
    review = PlanReview()

    for day, totals in plan.daily_totals().items():
        off_target = _off_target(totals, plan.targets)
        if off_target:
            details = {"totals": totals, "off_target": off_target}
            review.rebalance_days[day] = details
            on_rebalance(plan, day, details)

    if plan.constraints.include_meal_prep:
        review.prep_sessions = build_prep_sessions(plan.meals)

    frequency = Counter(m.recipe_id for m in plan.meals if m.recipe_id is not None)
    for recipe_id, count in sorted(frequency.items()):
        if count > plan.constraints.max_recipe_reuse_days:
            review.excess_recipes[recipe_id] = count
            on_substitute(plan, recipe_id, count)

    return review


# --- Feedback and alternatives ---

def validate_feedback(feedback: dict) -> None:
    for key, choices in FEEDBACK_CHOICES.items():
        if key in feedback and feedback[key] not in choices:
            raise ValidationError(f"{key} must be one of {', '.join(choices)}", field=key)
    for value in feedback.get("dates_to_regenerate", []):
        try:
            date.fromisoformat(value)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Invalid date: {value}", field="dates_to_regenerate") from e
    for value in feedback.get("meal_types_to_regenerate", []):
        try:
            MealType(value)
        except ValueError as e:
            raise ValidationError(str(e), field="meal_types_to_regenerate") from e


def _targeted(meal: MealPlanMeal, dates: set, meal_types: set, disliked: set) -> bool:
    if meal.status != MealStatus.PLANNED:
        return False
    if meal.recipe_id in disliked:
        return True
    if not dates and not meal_types:
        return False
    return (not dates or meal.date in dates) and (not meal_types or meal.meal_type in meal_types)


def regenerate_with_feedback(
    plan_id: int,
    feedback: dict,
    db_path: str = DB_PATH,
    rng: Optional[random.Random] = None,
    on_rebalance: Optional[RebalanceHook] = None,
    on_substitute: Optional[SubstituteHook] = None,
) -> MealPlan:
    """Merge feedback into the plan and re-select only the targeted meals.

    A planned meal is targeted when it uses a disliked recipe, or matches
    the feedback's dates and/or meal types. Completed, skipped and
    substituted meals are left alone.
    """
    validate_feedback(feedback)
    plan = load_meal_plan(plan_id, db_path)
    if plan is None:
        raise NotFoundError("Meal plan", plan_id)
    rng = rng or random.Random()

    plan.feedback_data = {**plan.feedback_data, **feedback}
    disliked = set(feedback.get("disliked_recipes", []))
    constraints = plan.constraints
    constraints.excluded_recipe_ids = sorted(set(constraints.excluded_recipe_ids) | disliked)
    for cuisine in feedback.get("preferred_cuisines", []):
        if cuisine not in constraints.preferred_cuisines:
            constraints.preferred_cuisines.append(cuisine)

    dates = {date.fromisoformat(d) for d in feedback.get("dates_to_regenerate", [])}
    meal_types = {MealType(m) for m in feedback.get("meal_types_to_regenerate", [])}
    targeted = [m for m in plan.meals if _targeted(m, dates, meal_types, disliked)]

    preferences = get_preferences(plan.user_id, db_path)
    recipes = find_candidates(catalog_criteria(constraints, plan.meal_types), db_path)
    used = [(m.date, m.recipe_id) for m in plan.meals if m not in targeted and m.recipe_id is not None]

    changed = []
    for meal in targeted:
        recipe = select_for_slot(recipes, preferences, meal.meal_type, meal.date, constraints, used, rng)
        if recipe is None:
            logger.warning("No replacement for %s on %s in plan %s", meal.meal_type.value, meal.date, plan.id)
            continue
        replacement = make_meal(recipe, meal.date, meal.meal_type, constraints, rng)
        replacement.id = meal.id
        replacement.meal_plan_id = plan.id
        plan.meals[plan.meals.index(meal)] = replacement
        used.append((meal.date, recipe.id))
        changed.append(replacement)

    plan.review = optimize_meal_plan(plan, on_rebalance, on_substitute)
    save_regenerated_plan(plan, changed, db_path)
    logger.info("Regenerated %d of %d targeted meals in plan %s", len(changed), len(targeted), plan.id)
    return plan


def generate_alternatives(meal_id: int, count: int = DEFAULT_ALTERNATIVES, db_path: str = DB_PATH) -> list:
    """Next-best recipes for a planned meal, best first."""
    meal = get_meal(meal_id, db_path)
    if meal is None:
        raise NotFoundError("Meal", meal_id)
    plan = load_meal_plan(meal.meal_plan_id, db_path, with_recipes=False)
    preferences = get_preferences(plan.user_id, db_path)
    recipes = find_candidates(catalog_criteria(plan.constraints, [meal.meal_type]), db_path)
    return rank_alternatives(
        recipes, preferences, meal.meal_type, meal.date, plan.constraints, meal.recipe_id, count
    )


# --- Presentation helpers ---

def shopping_list(plan: MealPlan) -> list:
    """Ingredient totals across the plan, one entry per (name, unit)."""
    totals = {}
    for meal in plan.meals:
        if not meal.recipe:
            continue
        scale = meal.servings / (meal.recipe.servings or 1)
        for ing in meal.recipe.ingredients:
            key = (ing.name.lower(), ing.unit)
            entry = totals.setdefault(key, {"name": ing.name, "unit": ing.unit, "total_amount": 0.0})
            entry["total_amount"] += (ing.quantity or 0) * scale
    return [
        dict(entry, total_amount=round(entry["total_amount"], 2))
        for _, entry in sorted(totals.items())
    ]


def meal_prep_suggestions(plan: MealPlan) -> list:
    return [
        {
            "prep_date": session.prep_date.isoformat(),
            "total_prep_time": session.total_prep_minutes,
            "recipes": sorted({m.recipe.title for m in session.meals if m.recipe}),
            "meal_count": len(session.meals),
            "tips": session.tips,
        }
        for session in build_prep_sessions(plan.meals)
    ]


def format_meal_plan(plan: MealPlan) -> str:
    """Format a meal plan for display."""
    lines = [
        f"{plan.name} ({plan.start_date.isoformat()} to {plan.end_date.isoformat()}) [{plan.status.value}]",
        f"Targets: {plan.targets.calories:.0f} cal | P:{plan.targets.protein_g:.0f}g "
        f"C:{plan.targets.carbs_g:.0f}g F:{plan.targets.fat_g:.0f}g",
        "=" * 60,
    ]
    totals = plan.daily_totals()
    for offset in range(plan.duration_days):
        day = plan.start_date + timedelta(days=offset)
        meals = plan.meals_on(day)
        if not meals:
            continue
        lines.append(f"\n{day.strftime('%A %Y-%m-%d')}:")
        lines.append("-" * 30)
        for meal in meals:
            name = meal.recipe.title if meal.recipe else f"Recipe #{meal.recipe_id}"
            servings_str = f" ({meal.servings:.2g} servings)" if meal.servings != 1.0 else ""
            prep_str = f" [prep {meal.prep_date.isoformat()}]" if meal.is_meal_prep else ""
            lines.append(f"  [{meal.id}] {meal.meal_type.value:16s} {name}{servings_str}{prep_str}")
            if meal.planned:
                n = meal.planned
                lines.append(f"{'':22s}{n.calories:.0f} cal | P:{n.protein_g:.0f}g "
                             f"C:{n.carbs_g:.0f}g F:{n.fat_g:.0f}g")
        if day in totals:
            t = totals[day]
            lines.append(f"  {'Daily Total':20s}{t.calories:.0f} cal | P:{t.protein_g:.0f}g "
                         f"C:{t.carbs_g:.0f}g F:{t.fat_g:.0f}g")

    if plan.review and plan.review.prep_sessions:
        lines.append("\nMeal prep sessions:")
        for session in plan.review.prep_sessions:
            lines.append(f"  {session.prep_date.isoformat()}: {len(session.meals)} meals, "
                         f"{session.total_prep_minutes} min")
            lines.extend(f"    - {tip}" for tip in session.tips)
    return "\n".join(lines)
