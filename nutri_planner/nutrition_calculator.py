"""Unit conversion and nutrient scaling for food profiles.

Food profiles are dicts of nutrient name -> amount per 100 g, e.g.
{"calories": 364, "protein": 10.3, "carbs": 76.3, "fat": 1.0}. Any
non-numeric entry (a food name, a source label) is carried through
unchanged.

Conversion to grams:
- weight units convert directly
- volume units convert to millilitres, then by ingredient density
  (exact name match, then substring match, default water 1.0 g/ml)
- piece/serving units use a standard serving weight (default 100 g)
- unknown units are treated as grams and logged as a warning
"""

import logging
from numbers import Number
from typing import Optional

from nutri_planner.config import (
    CALORIES_PER_GRAM,
    DAILY_VALUES,
    DEFAULT_DENSITY,
    DEFAULT_MACRO_SPLIT,
    DEFAULT_SERVING_GRAMS,
    HIGHER_IS_BETTER,
    INGREDIENT_DENSITIES,
    LOWER_IS_BETTER,
    PIECE_UNITS,
    STANDARD_SERVINGS,
    VOLUME_UNITS,
    WEIGHT_UNITS,
)
from nutri_planner.models import MacroTargets

logger = logging.getLogger(__name__)

DEFAULT_COMPARISON_NUTRIENTS = ["calories", "protein", "fat", "carbs", "fiber", "sugar", "sodium"]
REQUIRED_NUTRIENTS = ["calories", "protein", "fat", "carbs"]


def _is_number(value) -> bool:
    return isinstance(value, Number) and not isinstance(value, bool)


def _nutrient(profile: dict, name: str, default: float = 0) -> float:
    """Look up a nutrient by plain name, falling back to its _per_100g key."""
    value = profile.get(name, profile.get(f"{name}_per_100g"))
    return value if _is_number(value) else default


def _fuzzy_lookup(table: dict, name: Optional[str]) -> Optional[float]:
    if not name:
        return None
    name = name.strip().lower()
    if name in table:
        return table[name]
    for key, value in table.items():
        if key in name or name in key:
            return value
    return None


def ingredient_density(name: Optional[str]) -> float:
    """Density in g/ml, defaulting to water."""
    density = _fuzzy_lookup(INGREDIENT_DENSITIES, name)
    if density is None:
        if name:
            logger.warning("No density for '%s', assuming water", name)
        return DEFAULT_DENSITY
    return density


def standard_serving(name: Optional[str]) -> float:
    """Weight in grams of one piece or serving."""
    grams = _fuzzy_lookup(STANDARD_SERVINGS, name)
    if grams is None:
        logger.warning("No standard serving for '%s', assuming %d g", name, DEFAULT_SERVING_GRAMS)
        return DEFAULT_SERVING_GRAMS
    return grams


def convert_to_grams(amount: float, unit: str, name_hint: Optional[str] = None) -> float:
    """Convert an amount in any supported unit to grams."""
    unit = (unit or "g").strip().lower()

    if unit in WEIGHT_UNITS:
        return amount * WEIGHT_UNITS[unit]
    if unit in VOLUME_UNITS:
        return amount * VOLUME_UNITS[unit] * ingredient_density(name_hint)
    if unit in PIECE_UNITS:
        return amount * standard_serving(name_hint)

    logger.warning("Unknown unit '%s', treating amount as grams", unit)
    return amount


def calculate_nutrition(profile: dict, amount: float, unit: str = "g", name_hint: Optional[str] = None) -> dict:
    """Scale a per-100g profile to the given amount.

    Numeric values are rounded to 2 decimal places; other values pass
    through unchanged.
    """
    factor = convert_to_grams(amount, unit, name_hint) / 100.0
    return {
        nutrient: round(value * factor, 2) if _is_number(value) else value
        for nutrient, value in profile.items()
    }


def serving_info(amount: float, unit: str = "g", name_hint: Optional[str] = None) -> dict:
    grams = convert_to_grams(amount, unit, name_hint)
    return {
        "serving_amount": amount,
        "serving_unit": unit,
        "serving_grams": round(grams, 2),
        "scale_factor": round(grams / 100.0, 4),
    }


def calculate_total_nutrition(items: list) -> dict:
    """Sum the scaled numeric nutrients of several food items.

    Each item is a dict with "nutrition_data", "amount" and optionally
    "unit" and "food_name".
    """
    totals = {}
    for item in items:
        scaled = calculate_nutrition(
            item["nutrition_data"], item["amount"], item.get("unit", "g"), item.get("food_name")
        )
        for nutrient, value in scaled.items():
            if _is_number(value):
                totals[nutrient] = totals.get(nutrient, 0) + value
    return {k: round(v, 2) for k, v in totals.items()}


def macro_percentages(profile: dict) -> dict:
    """Share of calories from protein, carbs and fat, 1 decimal place."""
    calories = _nutrient(profile, "calories")
    if calories == 0:
        return {"protein": 0, "fat": 0, "carbs": 0}
    return {
        "protein": round(_nutrient(profile, "protein") * CALORIES_PER_GRAM["protein"] / calories * 100, 1),
        "fat": round(_nutrient(profile, "fat") * CALORIES_PER_GRAM["fat"] / calories * 100, 1),
        "carbs": round(_nutrient(profile, "carbs") * CALORIES_PER_GRAM["carbs"] / calories * 100, 1),
    }


def convert_units(amount: float, from_unit: str, to_unit: str, name_hint: Optional[str] = None) -> float:
    """Convert between any two supported units via grams."""
    grams = convert_to_grams(amount, from_unit, name_hint)
    to_unit = to_unit.strip().lower()

    if to_unit in WEIGHT_UNITS:
        return grams / WEIGHT_UNITS[to_unit]
    if to_unit in VOLUME_UNITS:
        return grams / ingredient_density(name_hint) / VOLUME_UNITS[to_unit]
    if to_unit in PIECE_UNITS:
        return grams / standard_serving(name_hint)

    logger.warning("Unknown target unit '%s', returning grams", to_unit)
    return grams


def supported_units() -> dict:
    return {
        "weight": sorted(WEIGHT_UNITS),
        "volume": sorted(VOLUME_UNITS),
        "count": list(PIECE_UNITS),
    }


def nutrition_density(profile: dict) -> dict:
    """Each nutrient per calorie."""
    calories = _nutrient(profile, "calories") or 1
    return {
        f"{nutrient}_per_calorie": round(value / calories, 4)
        for nutrient, value in profile.items()
        if _is_number(value) and "calories" not in nutrient
    }


def _better_choice(nutrient: str, first: float, second: float) -> Optional[str]:
    if nutrient in HIGHER_IS_BETTER:
        better_first = first > second
    elif nutrient in LOWER_IS_BETTER:
        better_first = first < second
    else:
        return None
    if first == second:
        return None
    return "first" if better_first else "second"


def compare_nutrition(first: dict, second: dict, nutrients: Optional[list] = None) -> dict:
    """Nutrient-by-nutrient comparison of two profiles."""
    comparison = {}
    for nutrient in nutrients or DEFAULT_COMPARISON_NUTRIENTS:
        a = _nutrient(first, nutrient)
        b = _nutrient(second, nutrient)
        difference = a - b
        comparison[nutrient] = {
            "first_value": a,
            "second_value": b,
            "difference": round(difference, 2),
            "percentage_difference": round(difference / b * 100, 1) if b != 0 else 0,
            "better_choice": _better_choice(nutrient, a, b),
        }
    return comparison


def daily_value_percentages(profile: dict, daily_values: Optional[dict] = None) -> dict:
    """Percent of the reference daily value for each known nutrient."""
    daily_values = daily_values or DAILY_VALUES
    return {
        f"{nutrient}_dv_percentage": round(value / daily_values[nutrient] * 100, 1)
        for nutrient, value in profile.items()
        if nutrient in daily_values and _is_number(value)
    }


def validate_nutritional_data(profile: dict) -> dict:
    """Check a per-100g profile for missing macros and implausible values."""
    errors = []
    warnings = []

    for nutrient in REQUIRED_NUTRIENTS:
        if nutrient not in profile and f"{nutrient}_per_100g" not in profile:
            errors.append(f"Missing required nutrient: {nutrient}")

    calories = _nutrient(profile, "calories")
    protein = _nutrient(profile, "protein")
    fat = _nutrient(profile, "fat")
    carbs = _nutrient(profile, "carbs")

    from_macros = (protein * CALORIES_PER_GRAM["protein"]
                   + carbs * CALORIES_PER_GRAM["carbs"]
                   + fat * CALORIES_PER_GRAM["fat"])
    if abs(calories - from_macros) > calories * 0.1:
        warnings.append(
            f"Calorie count may be inaccurate. Calculated: {from_macros:g}, Provided: {calories:g}"
        )
    if calories < 0 or calories > 900:
        warnings.append(f"Unusual calorie content: {calories:g} per 100g")
    if protein < 0 or protein > 100:
        warnings.append(f"Unusual protein content: {protein:g}g per 100g")

    return {"valid": not errors, "errors": errors, "warnings": warnings}


def macro_targets_from_calories(calories: float, split: Optional[dict] = None) -> MacroTargets:
    """Convert a daily calorie target and percent split to gram targets."""
    split = split or DEFAULT_MACRO_SPLIT
    return MacroTargets(
        calories=calories,
        protein_g=round(calories * split["protein"] / 100 / CALORIES_PER_GRAM["protein"], 1),
        carbs_g=round(calories * split["carbs"] / 100 / CALORIES_PER_GRAM["carbs"], 1),
        fat_g=round(calories * split["fat"] / 100 / CALORIES_PER_GRAM["fat"], 1),
    )
