"""Tests for meal plan generation, feedback and presentation helpers."""

import os
import random
import tempfile
import unittest
from datetime import date, timedelta

from nutri_planner.db import init_db
from nutri_planner.errors import NotFoundError, ValidationError
from nutri_planner.models import (
    DietaryPreference,
    Ingredient,
    MacroTargets,
    MealPlan,
    MealPlanMeal,
    MealType,
    Nutrition,
    PlanConstraints,
    PlanParameters,
    PlanStatus,
    Recipe,
)
from nutri_planner.plan_store import list_meal_plans, load_meal_plan
from nutri_planner.planner import (
    build_meal_plan,
    build_prep_sessions,
    format_meal_plan,
    generate_alternatives,
    generate_meal_plan,
    meal_prep_suggestions,
    regenerate_with_feedback,
    resolve_constraints,
    resolve_targets,
    shopping_list,
    validate_feedback,
)
from nutri_planner.preference_store import save_preferences
from nutri_planner.recipe_store import save_recipe

START = date(2026, 6, 1)


def _catalog(per_category=7, start_id=1):
    recipes = []
    next_id = start_id
    for category in ("breakfast", "lunch", "dinner"):
        for i in range(per_category):
            recipes.append(Recipe(
                id=next_id, title=f"{category.title()} {i + 1}", source="test",
                meal_category=category, cuisine="Italian" if i % 2 else "Mexican",
                difficulty=2, average_rating=4.0, servings=2,
                prep_time_minutes=10, cook_time_minutes=15,
                ingredients=[Ingredient("Olive Oil", 2, "tbsp"), Ingredient(f"{category} base", 200, "g")],
                nutrition=Nutrition(500, 30, 55, 18),
            ))
            next_id += 1
    return recipes


class TestResolution(unittest.TestCase):
    def test_targets_default_split(self):
        targets = resolve_targets(PlanParameters(start_date=START), None)
        self.assertEqual(targets.calories, 2000)
        self.assertEqual(targets.protein_g, 100.0)
        self.assertEqual(targets.carbs_g, 250.0)

    def test_targets_explicit_overrides(self):
        prefs = DietaryPreference(user_id=1, target_calories_per_day=1800)
        targets = resolve_targets(PlanParameters(start_date=START, target_protein_g=150), prefs)
        self.assertEqual(targets.calories, 1800)
        self.assertEqual(targets.protein_g, 150)

    def test_constraints_fall_back_to_preferences(self):
        prefs = DietaryPreference(
            user_id=1, cuisine_preferences=["Italian"], allergens=["peanuts"], meal_prep_friendly=True,
        )
        constraints = resolve_constraints(PlanParameters(start_date=START), prefs)
        self.assertEqual(constraints.cuisine_whitelist, ["Italian"])
        self.assertEqual(constraints.allergens, ["peanuts"])
        self.assertTrue(constraints.include_meal_prep)
        self.assertEqual(constraints.max_difficulty, 3)
        self.assertEqual(constraints.max_recipe_reuse_days, 7)

    def test_explicit_parameters_win(self):
        prefs = DietaryPreference(user_id=1, cuisine_preferences=["Italian"], meal_prep_friendly=True)
        params = PlanParameters(start_date=START, cuisine_preferences=["Thai"], include_meal_prep=False)
        constraints = resolve_constraints(params, prefs)
        self.assertEqual(constraints.cuisine_whitelist, ["Thai"])
        self.assertFalse(constraints.include_meal_prep)


class TestBuildMealPlan(unittest.TestCase):
    def test_week_of_three_meals(self):
        plan = build_meal_plan(1, PlanParameters(start_date=START), None, _catalog(), random.Random(42))
        self.assertEqual(len(plan.meals), 21)
        self.assertEqual(plan.status, PlanStatus.ACTIVE)
        self.assertEqual(plan.end_date, START + timedelta(days=6))
        self.assertEqual(plan.name, "Meal Plan for Jun 01, 2026")
        for meal in plan.meals:
            self.assertEqual(meal.recipe.meal_category, meal.meal_type.value)
            self.assertEqual(meal.planned.calories, 500)

    def test_no_repeats_within_reuse_window(self):
        dinners = [r for r in _catalog() if r.meal_category == "dinner"]
        params = PlanParameters(start_date=START, meal_types=["dinner"], max_recipe_reuse_days=7)
        plan = build_meal_plan(1, params, None, dinners, random.Random(3))
        self.assertEqual(len({m.recipe_id for m in plan.meals}), 7)

    def test_servings_scale_planned_nutrition(self):
        params = PlanParameters(start_date=START, duration_days=1, default_servings=1.5)
        plan = build_meal_plan(1, params, None, _catalog(), random.Random(1))
        self.assertEqual(plan.meals[0].servings, 1.5)
        self.assertEqual(plan.meals[0].planned.calories, 750)

    def test_meal_prep_dates(self):
        recipes = _catalog()
        for recipe in recipes:
            recipe.cook_time_minutes = 45
            recipe.storage_instructions = "Refrigerate up to 4 days"
        params = PlanParameters(start_date=START, include_meal_prep=True, max_cooking_time=120)
        plan = build_meal_plan(1, params, None, recipes, random.Random(5))
        for meal in plan.meals:
            self.assertTrue(meal.is_meal_prep)
            self.assertIn((meal.date - meal.prep_date).days, (1, 2))
            self.assertEqual(meal.estimated_prep_time, 55)
        self.assertTrue(plan.review.prep_sessions)

    def test_rebalance_hook_called_for_low_days(self):
        calls = []
        plan = build_meal_plan(
            1, PlanParameters(start_date=START, duration_days=2), None, _catalog(), random.Random(1),
            on_rebalance=lambda p, day, details: calls.append((day, details["off_target"])),
        )
        # 3 x 500 kcal is 25% below the 2000 kcal default
        self.assertEqual([day for day, _ in calls], [START, START + timedelta(days=1)])
        self.assertIn("calories", calls[0][1])
        self.assertEqual(set(plan.review.rebalance_days), {START, START + timedelta(days=1)})

    def test_substitution_hook_for_overused_recipe(self):
        dinner = [r for r in _catalog() if r.meal_category == "dinner"][:1]
        calls = []
        params = PlanParameters(start_date=START, duration_days=10, meal_types=["dinner"])
        plan = build_meal_plan(
            1, params, None, dinner, random.Random(1),
            on_substitute=lambda p, recipe_id, count: calls.append((recipe_id, count)),
        )
        self.assertEqual(calls, [(dinner[0].id, 10)])
        self.assertEqual(plan.review.excess_recipes, {dinner[0].id: 10})

    def test_empty_slots_are_skipped(self):
        breakfasts = [r for r in _catalog() if r.meal_category == "breakfast"]
        plan = build_meal_plan(1, PlanParameters(start_date=START, duration_days=2), None, breakfasts,
                               random.Random(1))
        self.assertEqual({m.meal_type for m in plan.meals}, {MealType.BREAKFAST})

    def test_invalid_parameters(self):
        with self.assertRaises(ValidationError) as ctx:
            build_meal_plan(1, PlanParameters(start_date=START, duration_days=0), None, _catalog())
        self.assertEqual(ctx.exception.error_code, "VALIDATION_ERROR_DURATION_DAYS")


def _prep_meal(day, cuisine, minutes=60):
    recipe = Recipe(id=None, title=f"{cuisine} bake", cuisine=cuisine)
    return MealPlanMeal(
        id=None, meal_plan_id=None, date=day, meal_type=MealType.DINNER, recipe_id=None,
        is_meal_prep=True, prep_date=START, estimated_prep_time=minutes, recipe=recipe,
    )


class TestPrepSessions(unittest.TestCase):
    def test_tips(self):
        meals = [_prep_meal(START + timedelta(days=i + 1), c)
                 for i, c in enumerate(["Italian", "Thai", "Mexican", "Italian"])]
        sessions = build_prep_sessions(meals)
        self.assertEqual(len(sessions), 1)
        session = sessions[0]
        self.assertEqual(session.total_prep_minutes, 240)
        self.assertEqual(session.cuisines, ["Italian", "Mexican", "Thai"])
        self.assertEqual(len(session.tips), 3)

    def test_small_session_has_no_tips(self):
        sessions = build_prep_sessions([_prep_meal(START + timedelta(days=1), "Italian")])
        self.assertEqual(sessions[0].tips, [])

    def test_suggestions(self):
        plan = MealPlan(None, 1, "Prep", START, START + timedelta(days=2), MacroTargets(2000, 100, 250, 67),
                        meals=[_prep_meal(START + timedelta(days=1), "Italian", 45)])
        suggestions = meal_prep_suggestions(plan)
        self.assertEqual(suggestions, [{
            "prep_date": START.isoformat(),
            "total_prep_time": 45,
            "recipes": ["Italian bake"],
            "meal_count": 1,
            "tips": [],
        }])


class TestPresentation(unittest.TestCase):
    def test_shopping_list_scales_by_servings(self):
        plan = build_meal_plan(
            1, PlanParameters(start_date=START, duration_days=2, meal_types=["dinner"]), None,
            _catalog(), random.Random(1),
        )
        items = {(i["name"], i["unit"]): i["total_amount"] for i in shopping_list(plan)}
        # each recipe serves 2 and each meal is one serving
        self.assertEqual(items[("Olive Oil", "tbsp")], 2.0)
        self.assertEqual(items[("dinner base", "g")], 200.0)

    def test_format_meal_plan(self):
        plan = build_meal_plan(1, PlanParameters(start_date=START, duration_days=1), None, _catalog(),
                               random.Random(1))
        text = format_meal_plan(plan)
        self.assertIn("Meal Plan for Jun 01, 2026", text)
        self.assertIn("Daily Total", text)
        self.assertIn("1500 cal", text)


class TestFeedbackValidation(unittest.TestCase):
    def test_accepts_known_values(self):
        validate_feedback({"portion_feedback": "just_right", "dates_to_regenerate": ["2026-06-02"],
                           "meal_types_to_regenerate": ["dinner"]})

    def test_rejects_unknown_choice(self):
        with self.assertRaises(ValidationError) as ctx:
            validate_feedback({"portion_feedback": "huge"})
        self.assertEqual(ctx.exception.field, "portion_feedback")

    def test_rejects_bad_date_and_meal_type(self):
        with self.assertRaises(ValidationError):
            validate_feedback({"dates_to_regenerate": ["June 2"]})
        with self.assertRaises(ValidationError):
            validate_feedback({"meal_types_to_regenerate": ["brunch"]})


class TestStoredPlans(unittest.TestCase):
    def setUp(self):
        self.db_fd, self.db_path = tempfile.mkstemp(suffix=".db")
        init_db(self.db_path)
        for recipe in _catalog():
            recipe.id = None
            save_recipe(recipe, self.db_path)

    def tearDown(self):
        os.close(self.db_fd)
        os.unlink(self.db_path)

    def _generate(self, **kwargs):
        params = PlanParameters(start_date=START, **kwargs)
        return generate_meal_plan(1, params, self.db_path, rng=random.Random(11))

    def test_generate_and_load(self):
        plan = self._generate()
        loaded = load_meal_plan(plan.id, self.db_path)
        self.assertEqual(loaded.status, PlanStatus.ACTIVE)
        self.assertEqual(len(loaded.meals), 21)
        self.assertEqual([m.recipe_id for m in loaded.meals], [m.recipe_id for m in plan.meals])
        self.assertTrue(all(m.recipe is not None for m in loaded.meals))

    def test_stored_preferences_apply(self):
        save_preferences(DietaryPreference(user_id=1, cuisine_preferences=["Italian"]), self.db_path)
        plan = self._generate(duration_days=2)
        self.assertTrue(all(m.recipe.cuisine == "Italian" for m in plan.meals))

    def test_invalid_parameters_write_nothing(self):
        with self.assertRaises(ValidationError):
            self._generate(target_calories=100)

    def test_duplicate_meal_types_rejected_before_generation(self):
        with self.assertRaises(ValidationError) as ctx:
            self._generate(duration_days=2, meal_types=["breakfast", "breakfast", "lunch"])
        self.assertEqual(ctx.exception.error_code, "VALIDATION_ERROR_MEAL_TYPES")
        self.assertEqual(list_meal_plans(1, self.db_path), [])

    def test_alternatives(self):
        plan = self._generate(duration_days=1)
        dinner = next(m for m in plan.meals if m.meal_type == MealType.DINNER)
        alternatives = generate_alternatives(dinner.id, 3, self.db_path)
        self.assertEqual(len(alternatives), 3)
        self.assertNotIn(dinner.recipe_id, [r.id for r in alternatives])
        self.assertTrue(all(r.meal_category == "dinner" for r in alternatives))

    def test_alternatives_unknown_meal(self):
        with self.assertRaises(NotFoundError):
            generate_alternatives(999, db_path=self.db_path)

    def test_regenerate_replaces_disliked_recipe(self):
        plan = self._generate(duration_days=3)
        disliked = plan.meals[0].recipe_id
        regenerate_with_feedback(
            plan.id, {"disliked_recipes": [disliked], "variety_feedback": "more_variety"},
            self.db_path, rng=random.Random(2),
        )
        loaded = load_meal_plan(plan.id, self.db_path)
        self.assertEqual(len(loaded.meals), 9)
        self.assertNotIn(disliked, [m.recipe_id for m in loaded.meals])
        self.assertIn(disliked, loaded.constraints.excluded_recipe_ids)
        self.assertEqual(loaded.feedback_data["variety_feedback"], "more_variety")
        self.assertEqual([m.id for m in loaded.meals], [m.id for m in plan.meals])

    def test_regenerate_only_requested_slots(self):
        plan = self._generate(duration_days=2)
        before = {(m.date, m.meal_type): m.recipe_id for m in plan.meals}
        regenerate_with_feedback(
            plan.id, {"meal_types_to_regenerate": ["breakfast"], "preferred_cuisines": ["Mexican"]},
            self.db_path, rng=random.Random(4),
        )
        loaded = load_meal_plan(plan.id, self.db_path)
        for meal in loaded.meals:
            if meal.meal_type != MealType.BREAKFAST:
                self.assertEqual(meal.recipe_id, before[(meal.date, meal.meal_type)])
        self.assertEqual(loaded.constraints.preferred_cuisines, ["Mexican"])

    def test_regenerated_day_avoids_recipe_of_following_day(self):
        for seed in range(10):
            plan = self._generate(duration_days=2, meal_types=["breakfast"])
            following = plan.meals[1].recipe_id
            regenerate_with_feedback(
                plan.id, {"dates_to_regenerate": [START.isoformat()]}, self.db_path, rng=random.Random(seed),
            )
            loaded = load_meal_plan(plan.id, self.db_path)
            self.assertEqual(loaded.meals[1].recipe_id, following)
            self.assertNotEqual(loaded.meals[0].recipe_id, following)

    def test_regenerate_unknown_plan(self):
        with self.assertRaises(NotFoundError):
            regenerate_with_feedback(404, {}, self.db_path)


if __name__ == "__main__":
    unittest.main()
