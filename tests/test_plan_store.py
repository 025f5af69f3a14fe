"""Tests for meal plan persistence and meal status tracking."""

import os
import random
import tempfile
import unittest
from dataclasses import replace
from datetime import date

from nutri_planner.db import get_connection, init_db
from nutri_planner.errors import InvalidTransitionError, NotFoundError, PersistenceError, ValidationError
from nutri_planner.models import MealStatus, Nutrition, PlanParameters, Recipe
from nutri_planner.plan_store import (
    actual_nutrition,
    adherence_score,
    create_meal_plan,
    delete_meal_plan,
    get_meal,
    list_meal_plans,
    load_meal_plan,
    update_meal_status,
)
from nutri_planner.planner import build_meal_plan
from nutri_planner.recipe_store import save_recipe


class TestPlanStore(unittest.TestCase):
    def setUp(self):
        self.db_fd, self.db_path = tempfile.mkstemp(suffix=".db")
        init_db(self.db_path)

        recipes = []
        for category, calories in (("breakfast", 400), ("lunch", 600), ("dinner", 800)):
            recipe = Recipe(
                id=None, title=f"Test {category}", source="test", meal_category=category,
                average_rating=4.0, nutrition=Nutrition(calories, 30, 60, 20),
            )
            recipe.id = save_recipe(recipe, self.db_path)
            recipes.append(recipe)
        self.recipes = recipes
        self.spare_id = save_recipe(Recipe(
            id=None, title="Spare Dinner", source="test", meal_category="dinner",
            average_rating=4.0, nutrition=Nutrition(700, 40, 70, 25),
        ), self.db_path)

        plan = build_meal_plan(1, PlanParameters(start_date=date(2026, 6, 1)), None, recipes,
                               random.Random(1))
        self.plan = create_meal_plan(plan, self.db_path)

    def tearDown(self):
        os.close(self.db_fd)
        os.unlink(self.db_path)

    def test_create_assigns_ids(self):
        self.assertIsNotNone(self.plan.id)
        self.assertTrue(all(m.id is not None and m.meal_plan_id == self.plan.id for m in self.plan.meals))

    def test_round_trip_keeps_constraints_and_targets(self):
        loaded = load_meal_plan(self.plan.id, self.db_path)
        self.assertEqual(loaded.targets, self.plan.targets)
        self.assertEqual(loaded.constraints, self.plan.constraints)
        self.assertEqual(loaded.meal_types, self.plan.meal_types)
        self.assertEqual(loaded.meals[0].planned, self.plan.meals[0].planned)

    def test_load_missing_plan(self):
        self.assertIsNone(load_meal_plan(999, self.db_path))

    def test_list_meal_plans(self):
        plans = list_meal_plans(1, self.db_path)
        self.assertEqual([p.id for p in plans], [self.plan.id])
        self.assertEqual(plans[0].meals, [])
        self.assertEqual(list_meal_plans(2, self.db_path), [])

    def test_complete_meal_updates_adherence(self):
        breakfast = self.plan.meals[0]
        meal = update_meal_status(breakfast.id, MealStatus.COMPLETED, rating=5, db_path=self.db_path)
        self.assertEqual(meal.status, MealStatus.COMPLETED)
        self.assertIsNotNone(meal.completed_at)

        loaded = load_meal_plan(self.plan.id, self.db_path)
        self.assertEqual(loaded.adherence_score, 4.8)
        self.assertEqual(loaded.actual_nutrition.calories, 400)
        self.assertEqual(loaded.meals[0].user_rating, 5)

    def test_completed_meal_cannot_be_skipped(self):
        meal_id = self.plan.meals[0].id
        update_meal_status(meal_id, MealStatus.COMPLETED, db_path=self.db_path)
        with self.assertRaises(InvalidTransitionError):
            update_meal_status(meal_id, MealStatus.SKIPPED, db_path=self.db_path)
        self.assertEqual(get_meal(meal_id, self.db_path).status, MealStatus.COMPLETED)

    def test_substitution_requires_recipe(self):
        dinner = self.plan.meals[2]
        with self.assertRaises(ValidationError):
            update_meal_status(dinner.id, MealStatus.SUBSTITUTED, db_path=self.db_path)

        meal = update_meal_status(dinner.id, MealStatus.SUBSTITUTED, substitute_recipe_id=self.spare_id,
                                  reason="Out of salmon", db_path=self.db_path)
        stored = get_meal(meal.id, self.db_path)
        self.assertEqual(stored.substituted_with_recipe_id, self.spare_id)
        self.assertEqual(stored.substitution_reason, "Out of salmon")

    def test_rating_out_of_range(self):
        with self.assertRaises(ValidationError) as ctx:
            update_meal_status(self.plan.meals[0].id, MealStatus.COMPLETED, rating=6, db_path=self.db_path)
        self.assertEqual(ctx.exception.field, "rating")

    def test_unknown_meal(self):
        with self.assertRaises(NotFoundError):
            update_meal_status(9999, MealStatus.COMPLETED, db_path=self.db_path)

    def test_failed_insert_writes_nothing(self):
        plan = build_meal_plan(1, PlanParameters(start_date=date(2026, 7, 1), duration_days=1), None, self.recipes,
                               random.Random(1))
        plan.meals.append(replace(plan.meals[0]))
        with self.assertRaises(PersistenceError) as ctx:
            create_meal_plan(plan, self.db_path)
        self.assertEqual(ctx.exception.error_code, "PERSISTENCE_ERROR")
        self.assertIsNone(plan.id)
        self.assertEqual([p.id for p in list_meal_plans(1, self.db_path)], [self.plan.id])
        with get_connection(self.db_path) as conn:
            count = conn.execute("SELECT COUNT(*) AS cnt FROM meal_plan_meals").fetchone()["cnt"]
        self.assertEqual(count, len(self.plan.meals))

    def test_delete_removes_meals(self):
        self.assertTrue(delete_meal_plan(self.plan.id, self.db_path))
        self.assertIsNone(load_meal_plan(self.plan.id, self.db_path))
        with get_connection(self.db_path) as conn:
            count = conn.execute("SELECT COUNT(*) AS cnt FROM meal_plan_meals").fetchone()["cnt"]
        self.assertEqual(count, 0)
        self.assertFalse(delete_meal_plan(self.plan.id, self.db_path))


class TestAdherenceMath(unittest.TestCase):
    def test_actual_nutrition_averages_completed_days(self):
        plan = build_meal_plan(
            1, PlanParameters(start_date=date(2026, 6, 1), duration_days=2, meal_types=["dinner"]), None,
            [Recipe(id=1, title="Stew", meal_category="dinner", average_rating=4.0,
                    nutrition=Nutrition(600, 30, 60, 20))],
            random.Random(1),
        )
        self.assertIsNone(actual_nutrition(plan.meals))
        plan.meals[0].status = MealStatus.COMPLETED
        self.assertEqual(actual_nutrition(plan.meals).calories, 600)
        self.assertEqual(adherence_score(plan.meals), 50.0)

    def test_adherence_of_empty_plan(self):
        self.assertEqual(adherence_score([]), 0.0)


if __name__ == "__main__":
    unittest.main()
