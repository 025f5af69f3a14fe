"""Command-line interface for health analysis and meal planning."""

import argparse
import json
import logging
import os
import sys
from datetime import date

from nutri_planner.config import DB_PATH, LOG_FORMAT, LOG_LEVEL
from nutri_planner.db import init_db
from nutri_planner.errors import NotFoundError, NutriPlannerError
from nutri_planner.food_database import DATA_TYPES, FoodDatabaseClient
from nutri_planner.health_analysis import (
    analyze_user_metrics,
    batch_analyze_users,
    trend_for_user,
    validate_metric,
)
from nutri_planner.metric_store import get_history, record_metric
from nutri_planner.models import (
    DetectionMethod,
    DietaryPreference,
    MealStatus,
    MealType,
    MetricSample,
    MetricType,
    PlanParameters,
)
from nutri_planner.nutrition_calculator import calculate_nutrition, macro_percentages, serving_info
from nutri_planner.outlier_detector import method_catalogue
from nutri_planner.plan_analytics import plan_analytics
from nutri_planner.plan_store import list_meal_plans, load_meal_plan, update_meal_status
from nutri_planner.planner import (
    format_meal_plan,
    generate_alternatives,
    generate_meal_plan,
    meal_prep_suggestions,
    regenerate_with_feedback,
    shopping_list,
)
from nutri_planner.preference_store import get_preferences, save_preferences
from nutri_planner.recipe_sources import export_recipes_csv, import_recipes_csv
from nutri_planner.recipe_store import get_all_recipes, get_recipe, search_recipes

METRIC_CHOICES = [m.value for m in MetricType]
MEAL_TYPE_CHOICES = [m.value for m in MealType]


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str))


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid date '{value}', expected YYYY-MM-DD") from None


def _load_plan(args):
    plan = load_meal_plan(args.plan_id, args.db)
    if plan is None or plan.user_id != args.user:
        raise NotFoundError("Meal plan", args.plan_id)
    return plan


# --- metrics ---

def cmd_metrics_add(args):
    sample = MetricSample(
        id=None,
        user_id=args.user,
        metric_type=MetricType(args.type),
        value=args.value,
        recorded_date=args.date or date.today(),
        unit=args.unit or "",
        is_goal=args.goal,
        notes=args.notes or "",
    )
    metric_id = record_metric(sample, args.db)
    print(f"Recorded {args.type} = {args.value} on {sample.recorded_date.isoformat()} (ID: {metric_id})")


def cmd_metrics_history(args):
    history = get_history(args.user, MetricType(args.type), args.days, db_path=args.db)
    if not history:
        print(f"No {args.type} measurements in the last {args.days} days.")
        return
    print(f"{'Date':<12}  {'Value':>10}  {'Unit':<8}  Notes")
    print("-" * 50)
    for s in history:
        print(f"{s.recorded_date.isoformat():<12}  {s.value:>10g}  {s.unit:<8}  {s.notes}")


def cmd_metrics_analyze(args):
    methods = [DetectionMethod(m) for m in args.methods] if args.methods else None
    kwargs = {"methods": methods} if methods else {}
    _print_json(analyze_user_metrics(args.user, MetricType(args.type), args.days, db_path=args.db, **kwargs))


def cmd_metrics_validate(args):
    result = validate_metric(args.user, MetricType(args.type), args.value, args.date or date.today(), db_path=args.db)
    _print_json(result)


def cmd_metrics_trend(args):
    _print_json(trend_for_user(args.user, MetricType(args.type), args.days, db_path=args.db))


def cmd_metrics_batch(args):
    _print_json(batch_analyze_users(args.users, args.days, db_path=args.db))


def cmd_metrics_methods(args):
    _print_json(method_catalogue())


# --- prefs ---

def cmd_prefs_show(args):
    prefs = get_preferences(args.user, args.db)
    if prefs is None:
        print("No dietary preferences stored. Set them with: nutri-planner prefs set ...")
        return
    _print_json(vars(prefs))


def cmd_prefs_set(args):
    prefs = get_preferences(args.user, args.db) or DietaryPreference(user_id=args.user)
    list_fields = {
        "diet": "dietary_restrictions",
        "allergen": "allergens",
        "cuisine": "cuisine_preferences",
        "dislike": "disliked_ingredients",
        "like": "preferred_ingredients",
        "equipment": "equipment_available",
    }
    for arg_name, field_name in list_fields.items():
        value = getattr(args, arg_name)
        if value is not None:
            setattr(prefs, field_name, value)
    if args.max_time is not None:
        prefs.max_cooking_time = args.max_time
    if args.difficulty is not None:
        prefs.preferred_difficulty_max = args.difficulty
    if args.calories is not None:
        prefs.target_calories_per_day = args.calories
    if args.budget is not None:
        prefs.budget_per_meal = args.budget
    for macro in ("protein", "carbs", "fat"):
        pct = getattr(args, f"{macro}_pct")
        if pct is not None:
            prefs.macro_targets[macro] = pct
    for flag in ("prioritize_protein", "high_fiber", "low_sodium", "low_sugar",
                 "meal_prep_friendly", "seasonal_preference"):
        value = getattr(args, flag)
        if value is not None:
            setattr(prefs, flag, value)

    save_preferences(prefs, args.db)
    print(f"Saved dietary preferences for user {args.user}.")


# --- recipes ---

def cmd_recipes_list(args):
    recipes = search_recipes(args.query, args.db) if args.query else get_all_recipes(args.db)
    if not recipes:
        print("No recipes found. Import a catalog with:")
        print("  nutri-planner recipes import-csv recipes.csv")
        return

    print(f"{'ID':>4}  {'Title':<40}  {'Cal':>5}  {'P(g)':>5}  {'C(g)':>5}  {'F(g)':>5}  "
          f"{'Category':<10}  {'Cuisine'}")
    print("-" * 100)
    for r in recipes:
        cal = f"{r.nutrition.calories:.0f}" if r.nutrition else "N/A"
        prot = f"{r.nutrition.protein_g:.0f}" if r.nutrition else "N/A"
        carb = f"{r.nutrition.carbs_g:.0f}" if r.nutrition else "N/A"
        fat = f"{r.nutrition.fat_g:.0f}" if r.nutrition else "N/A"
        print(f"{r.id:>4}  {r.title[:40]:<40}  {cal:>5}  {prot:>5}  {carb:>5}  {fat:>5}  "
              f"{r.meal_category:<10}  {r.cuisine}")


def cmd_recipes_show(args):
    recipe = get_recipe(args.recipe_id, args.db)
    if not recipe:
        raise NotFoundError("Recipe", args.recipe_id)

    print(f"Title:      {recipe.title}")
    print(f"Category:   {recipe.meal_category}")
    print(f"Cuisine:    {recipe.cuisine}")
    print(f"Servings:   {recipe.servings}")
    print(f"Time:       {recipe.prep_time_minutes} min prep + {recipe.cook_time_minutes} min cook")
    print(f"Difficulty: {recipe.difficulty}")
    print(f"Rating:     {recipe.average_rating:.1f} ({recipe.total_ratings} ratings)")
    if recipe.dietary_tags:
        print(f"Diet:       {', '.join(recipe.dietary_tags)}")
    if recipe.allergens:
        print(f"Allergens:  {', '.join(recipe.allergens)}")

    if recipe.ingredients:
        print("\nIngredients:")
        for ing in recipe.ingredients:
            notes = f" ({ing.notes})" if ing.notes else ""
            print(f"  - {ing.quantity} {ing.unit} {ing.name}{notes}")

    if recipe.nutrition:
        n = recipe.nutrition
        pct = n.macro_percentages()
        print("\nNutrition (per serving):")
        print(f"  Calories: {n.calories:.0f}")
        print(f"  Protein:  {n.protein_g:.0f}g ({pct['protein']}%)")
        print(f"  Carbs:    {n.carbs_g:.0f}g ({pct['carbs']}%)")
        print(f"  Fat:      {n.fat_g:.0f}g ({pct['fat']}%)")
        print(f"  Fiber:    {n.fiber_g:.0f}g")


def cmd_recipes_export(args):
    count = export_recipes_csv(args.file, args.db)
    print(f"Exported {count} recipes to {args.file}")


def cmd_recipes_import_csv(args):
    if not os.path.exists(args.file):
        print(f"File not found: {args.file}")
        sys.exit(1)
    count = import_recipes_csv(args.file, args.db)
    if count == 0:
        print("No new recipes imported (all already in database, or file empty).")
    else:
        print(f"Imported {count} new recipes from {args.file}")


# --- plan ---

def cmd_plan_generate(args):
    parameters = PlanParameters(
        start_date=args.start or date.today(),
        duration_days=args.days,
        target_calories=args.calories,
        meal_types=args.meal_types,
        dietary_restrictions=args.diet,
        allergens=args.allergen,
        cuisine_preferences=args.cuisine,
        max_cooking_time=args.max_time,
        difficulty_max=args.difficulty,
        budget_per_meal=args.budget,
        include_meal_prep=args.meal_prep,
        prioritize_seasonal=args.seasonal,
        avoid_repetition=not args.allow_repeats,
        max_recipe_reuse_days=args.reuse_days,
        default_servings=args.servings,
        name=args.name,
    )
    plan = generate_meal_plan(args.user, parameters, args.db)
    print(format_meal_plan(plan))
    print(f"\nPlan saved (ID: {plan.id})")


def cmd_plan_list(args):
    plans = list_meal_plans(args.user, args.db)
    if not plans:
        print("No meal plans found. Generate one with: nutri-planner plan generate")
        return
    for p in plans:
        adherence = f"{p.adherence_score:.0f}%" if p.adherence_score is not None else "-"
        print(f"  [{p.id}] {p.name} ({p.start_date.isoformat()} to {p.end_date.isoformat()}) "
              f"{p.status.value}, adherence {adherence}")


def cmd_plan_show(args):
    plan = _load_plan(args)
    print(format_meal_plan(plan))
    if args.shopping:
        print("\nShopping list:")
        for item in shopping_list(plan):
            print(f"  - {item['total_amount']:g} {item['unit']} {item['name']}")
    if args.prep:
        print("\nMeal prep:")
        _print_json(meal_prep_suggestions(plan))


def cmd_plan_regenerate(args):
    feedback = {}
    if args.dates:
        feedback["dates_to_regenerate"] = args.dates
    if args.meal_types:
        feedback["meal_types_to_regenerate"] = args.meal_types
    if args.dislike:
        feedback["disliked_recipes"] = args.dislike
    if args.cuisine:
        feedback["preferred_cuisines"] = args.cuisine
    if args.cooking_time:
        feedback["cooking_time_preference"] = args.cooking_time
    if args.portions:
        feedback["portion_feedback"] = args.portions
    if args.variety:
        feedback["variety_feedback"] = args.variety
    if args.comments:
        feedback["general_comments"] = args.comments

    _load_plan(args)
    plan = regenerate_with_feedback(args.plan_id, feedback, args.db)
    print(format_meal_plan(plan))


def cmd_plan_alternatives(args):
    alternatives = generate_alternatives(args.meal_id, args.count, args.db)
    if not alternatives:
        print("No alternative recipes found.")
        return
    for r in alternatives:
        cal = f"{r.nutrition.calories:.0f} cal" if r.nutrition else "no nutrition"
        print(f"  [{r.id}] {r.title} ({cal}, {r.total_time_minutes} min)")


def cmd_plan_analytics(args):
    _print_json(plan_analytics(_load_plan(args)))


def cmd_plan_meal(args):
    meal = update_meal_status(
        args.meal_id,
        MealStatus(args.status),
        substitute_recipe_id=args.substitute,
        reason=args.reason or "",
        rating=args.rating,
        notes=args.notes,
        db_path=args.db,
    )
    print(f"Meal {meal.id} on {meal.date.isoformat()} ({meal.meal_type.value}) is now {meal.status.value}")


# --- foods ---

def cmd_foods_search(args):
    results = FoodDatabaseClient().search_foods(args.query, args.limit, args.data_type)
    print(f"{results['total_hits']} matches (page {results['current_page']} of {results['total_pages']})")
    for food in results["foods"]:
        preview = food["nutrients_preview"]
        cal = f"{preview['calories']:.0f} cal/100g" if "calories" in preview else ""
        brand = f" - {food['brand_name']}" if food["brand_name"] else ""
        print(f"  [{food['id']}] {food['name']}{brand} {cal}")


def cmd_foods_nutrition(args):
    profile = FoodDatabaseClient().get_nutrition_profile(args.fdc_id)
    nutrition = calculate_nutrition(profile, args.amount, args.unit, profile["name"])
    _print_json({
        "food": profile["name"],
        "serving": serving_info(args.amount, args.unit, profile["name"]),
        "nutrition": nutrition,
        "macro_percentages": macro_percentages(nutrition),
    })


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="nutri-planner",
        description="Health metric analysis and meal planning",
    )
    parser.add_argument("--db", default=DB_PATH, help="SQLite database path")
    parser.add_argument("--user", type=int, default=1, help="User ID (default: 1)")
    subparsers = parser.add_subparsers(dest="command")

    # --- metrics ---
    metrics_parser = subparsers.add_parser("metrics", help="Health metrics and outlier analysis")
    metrics_sub = metrics_parser.add_subparsers(dest="subcommand")

    add_p = metrics_sub.add_parser("add", help="Record a measurement")
    add_p.add_argument("--type", required=True, choices=METRIC_CHOICES)
    add_p.add_argument("--value", type=float, required=True)
    add_p.add_argument("--date", type=_parse_date, help="YYYY-MM-DD, default: today")
    add_p.add_argument("--unit")
    add_p.add_argument("--goal", action="store_true", help="Record as a goal value")
    add_p.add_argument("--notes")
    add_p.set_defaults(func=cmd_metrics_add)

    history_p = metrics_sub.add_parser("history", help="Show recent measurements")
    history_p.add_argument("--type", required=True, choices=METRIC_CHOICES)
    history_p.add_argument("--days", type=int, default=90)
    history_p.set_defaults(func=cmd_metrics_history)

    analyze_p = metrics_sub.add_parser("analyze", help="Detect outliers and get recommendations")
    analyze_p.add_argument("--type", required=True, choices=METRIC_CHOICES)
    analyze_p.add_argument("--days", type=int, default=90)
    analyze_p.add_argument("--methods", nargs="+", choices=[m.value for m in DetectionMethod])
    analyze_p.set_defaults(func=cmd_metrics_analyze)

    validate_p = metrics_sub.add_parser("validate", help="Check a value before recording it")
    validate_p.add_argument("--type", required=True, choices=METRIC_CHOICES)
    validate_p.add_argument("--value", type=float, required=True)
    validate_p.add_argument("--date", type=_parse_date)
    validate_p.set_defaults(func=cmd_metrics_validate)

    trend_p = metrics_sub.add_parser("trend", help="Show the trend over a period")
    trend_p.add_argument("--type", required=True, choices=METRIC_CHOICES)
    trend_p.add_argument("--days", type=int, default=90)
    trend_p.set_defaults(func=cmd_metrics_trend)

    batch_p = metrics_sub.add_parser("batch", help="Analyse all metrics for several users")
    batch_p.add_argument("--users", type=int, nargs="+", required=True)
    batch_p.add_argument("--days", type=int, default=30)
    batch_p.set_defaults(func=cmd_metrics_batch)

    methods_p = metrics_sub.add_parser("methods", help="List outlier detection methods")
    methods_p.set_defaults(func=cmd_metrics_methods)

    # --- prefs ---
    prefs_parser = subparsers.add_parser("prefs", help="Dietary preferences")
    prefs_sub = prefs_parser.add_subparsers(dest="subcommand")

    prefs_show_p = prefs_sub.add_parser("show", help="Show stored preferences")
    prefs_show_p.set_defaults(func=cmd_prefs_show)

    prefs_set_p = prefs_sub.add_parser("set", help="Update preferences")
    prefs_set_p.add_argument("--diet", nargs="*", help="Dietary restrictions, e.g. vegetarian")
    prefs_set_p.add_argument("--allergen", nargs="*")
    prefs_set_p.add_argument("--cuisine", nargs="*", help="Preferred cuisines")
    prefs_set_p.add_argument("--dislike", nargs="*", help="Disliked ingredients")
    prefs_set_p.add_argument("--like", nargs="*", help="Preferred ingredients")
    prefs_set_p.add_argument("--equipment", nargs="*")
    prefs_set_p.add_argument("--max-time", type=int)
    prefs_set_p.add_argument("--difficulty", type=int, choices=[1, 2, 3, 4])
    prefs_set_p.add_argument("--calories", type=float)
    prefs_set_p.add_argument("--budget", type=float)
    prefs_set_p.add_argument("--protein-pct", type=float)
    prefs_set_p.add_argument("--carbs-pct", type=float)
    prefs_set_p.add_argument("--fat-pct", type=float)
    for flag in ("prioritize-protein", "high-fiber", "low-sodium", "low-sugar",
                 "meal-prep-friendly", "seasonal-preference"):
        prefs_set_p.add_argument(f"--{flag}", action=argparse.BooleanOptionalAction, default=None)
    prefs_set_p.set_defaults(func=cmd_prefs_set)

    # --- recipes ---
    recipes_parser = subparsers.add_parser("recipes", help="Manage the recipe catalog")
    recipes_sub = recipes_parser.add_subparsers(dest="subcommand")

    list_p = recipes_sub.add_parser("list", help="List recipes")
    list_p.add_argument("query", nargs="?", help="Optional title search term")
    list_p.set_defaults(func=cmd_recipes_list)

    show_rp = recipes_sub.add_parser("show", help="Show recipe details")
    show_rp.add_argument("recipe_id", type=int, help="Recipe ID")
    show_rp.set_defaults(func=cmd_recipes_show)

    export_p = recipes_sub.add_parser("export", help="Export all recipes to a CSV file")
    export_p.add_argument("file", help="Output CSV file path (e.g. recipes.csv)")
    export_p.set_defaults(func=cmd_recipes_export)

    import_csv_p = recipes_sub.add_parser("import-csv", help="Import recipes from a CSV file")
    import_csv_p.add_argument("file", help="CSV file to import")
    import_csv_p.set_defaults(func=cmd_recipes_import_csv)

    # --- plan ---
    plan_parser = subparsers.add_parser("plan", help="Meal planning")
    plan_sub = plan_parser.add_subparsers(dest="subcommand")

    gen_p = plan_sub.add_parser("generate", help="Generate a meal plan")
    gen_p.add_argument("--start", type=_parse_date, help="Start date (YYYY-MM-DD), default: today")
    gen_p.add_argument("--days", type=int, default=7)
    gen_p.add_argument("--calories", type=float)
    gen_p.add_argument("--meal-types", nargs="+", choices=MEAL_TYPE_CHOICES)
    gen_p.add_argument("--diet", nargs="+")
    gen_p.add_argument("--allergen", nargs="+")
    gen_p.add_argument("--cuisine", nargs="+")
    gen_p.add_argument("--max-time", type=int)
    gen_p.add_argument("--difficulty", type=int)
    gen_p.add_argument("--budget", type=float)
    gen_p.add_argument("--meal-prep", action=argparse.BooleanOptionalAction, default=None)
    gen_p.add_argument("--seasonal", action=argparse.BooleanOptionalAction, default=None)
    gen_p.add_argument("--allow-repeats", action="store_true")
    gen_p.add_argument("--reuse-days", type=int)
    gen_p.add_argument("--servings", type=float)
    gen_p.add_argument("--name")
    gen_p.set_defaults(func=cmd_plan_generate)

    plan_list_p = plan_sub.add_parser("list", help="List meal plans")
    plan_list_p.set_defaults(func=cmd_plan_list)

    show_pp = plan_sub.add_parser("show", help="Show a meal plan")
    show_pp.add_argument("plan_id", type=int)
    show_pp.add_argument("--shopping", action="store_true", help="Include the shopping list")
    show_pp.add_argument("--prep", action="store_true", help="Include meal prep suggestions")
    show_pp.set_defaults(func=cmd_plan_show)

    regen_p = plan_sub.add_parser("regenerate", help="Regenerate meals from feedback")
    regen_p.add_argument("plan_id", type=int)
    regen_p.add_argument("--dates", nargs="+", help="Dates to regenerate (YYYY-MM-DD)")
    regen_p.add_argument("--meal-types", nargs="+", choices=MEAL_TYPE_CHOICES)
    regen_p.add_argument("--dislike", type=int, nargs="+", help="Disliked recipe IDs")
    regen_p.add_argument("--cuisine", nargs="+", help="Cuisines to favour")
    regen_p.add_argument("--cooking-time", choices=["shorter", "longer", "same"])
    regen_p.add_argument("--portions", choices=["too_small", "too_large", "just_right"])
    regen_p.add_argument("--variety", choices=["more_variety", "less_variety", "good"])
    regen_p.add_argument("--comments")
    regen_p.set_defaults(func=cmd_plan_regenerate)

    alt_p = plan_sub.add_parser("alternatives", help="Suggest alternatives for a planned meal")
    alt_p.add_argument("meal_id", type=int)
    alt_p.add_argument("--count", type=int, default=5)
    alt_p.set_defaults(func=cmd_plan_alternatives)

    analytics_p = plan_sub.add_parser("analytics", help="Show plan analytics")
    analytics_p.add_argument("plan_id", type=int)
    analytics_p.set_defaults(func=cmd_plan_analytics)

    meal_p = plan_sub.add_parser("meal", help="Mark a meal completed, skipped or substituted")
    meal_p.add_argument("meal_id", type=int)
    meal_p.add_argument("--status", required=True, choices=[s.value for s in MealStatus if s != MealStatus.PLANNED])
    meal_p.add_argument("--substitute", type=int, help="Substitute recipe ID")
    meal_p.add_argument("--reason")
    meal_p.add_argument("--rating", type=int, choices=[1, 2, 3, 4, 5])
    meal_p.add_argument("--notes")
    meal_p.set_defaults(func=cmd_plan_meal)

    # --- foods ---
    foods_parser = subparsers.add_parser("foods", help="USDA FoodData Central lookups")
    foods_sub = foods_parser.add_subparsers(dest="subcommand")

    search_p = foods_sub.add_parser("search", help="Search foods")
    search_p.add_argument("query")
    search_p.add_argument("--limit", type=int, default=25)
    search_p.add_argument("--data-type", nargs="+", choices=DATA_TYPES)
    search_p.set_defaults(func=cmd_foods_search)

    nutrition_p = foods_sub.add_parser("nutrition", help="Nutrition for an amount of a food")
    nutrition_p.add_argument("fdc_id")
    nutrition_p.add_argument("--amount", type=float, default=100)
    nutrition_p.add_argument("--unit", default="g")
    nutrition_p.set_defaults(func=cmd_foods_nutrition)

    return parser


def main(argv=None):
    logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return

    if not hasattr(args, "func"):
        # Subcommand not specified
        sub = parser._subparsers._group_actions[0].choices[args.command]
        sub.print_help()
        return

    init_db(args.db)
    try:
        args.func(args)
    except NutriPlannerError as e:
        print(f"Error: {e.detail}")
        sys.exit(1)


if __name__ == "__main__":
    main()
