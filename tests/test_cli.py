"""Smoke tests for the command-line interface."""

import io
import json
import os
import tempfile
import unittest
from contextlib import redirect_stdout

from nutri_planner.cli import main
from nutri_planner.db import init_db
from nutri_planner.models import Nutrition, Recipe
from nutri_planner.plan_store import list_meal_plans
from nutri_planner.preference_store import get_preferences
from nutri_planner.recipe_store import save_recipe


class TestCli(unittest.TestCase):
    def setUp(self):
        self.db_fd, self.db_path = tempfile.mkstemp(suffix=".db")
        init_db(self.db_path)

    def tearDown(self):
        os.close(self.db_fd)
        os.unlink(self.db_path)

    def run_cli(self, *argv):
        out = io.StringIO()
        with redirect_stdout(out):
            main(["--db", self.db_path, *argv])
        return out.getvalue()

    def test_metrics_add_and_history(self):
        output = self.run_cli("metrics", "add", "--type", "weight", "--value", "72.5", "--date", "2026-05-01")
        self.assertIn("Recorded weight = 72.5 on 2026-05-01", output)
        history = self.run_cli("metrics", "history", "--type", "weight", "--days", "100000")
        self.assertIn("2026-05-01", history)
        self.assertIn("kg", history)

    def test_methods_catalogue_is_json(self):
        data = json.loads(self.run_cli("metrics", "methods"))
        self.assertIn("mad", data)

    def test_prefs_set_and_show(self):
        self.run_cli("prefs", "set", "--cuisine", "Italian", "Thai", "--high-fiber", "--calories", "1900")
        prefs = get_preferences(1, self.db_path)
        self.assertEqual(prefs.cuisine_preferences, ["Italian", "Thai"])
        self.assertTrue(prefs.high_fiber)
        self.assertEqual(prefs.target_calories_per_day, 1900)
        self.assertIn('"high_fiber": true', self.run_cli("prefs", "show"))

    def test_plan_generate_and_list(self):
        for category in ("breakfast", "lunch", "dinner"):
            save_recipe(Recipe(id=None, title=f"Simple {category}", source="test", meal_category=category,
                               average_rating=4.0, nutrition=Nutrition(600, 30, 70, 20)), self.db_path)
        output = self.run_cli("plan", "generate", "--start", "2026-06-01", "--days", "2")
        self.assertIn("Plan saved (ID: 1)", output)
        self.assertEqual(len(list_meal_plans(1, self.db_path)), 1)
        self.assertIn("[1] Meal Plan for Jun 01, 2026", self.run_cli("plan", "list"))

    def test_errors_exit_nonzero(self):
        with self.assertRaises(SystemExit) as ctx:
            self.run_cli("plan", "show", "42")
        self.assertEqual(ctx.exception.code, 1)

    def test_missing_subcommand_prints_help(self):
        self.assertIn("usage:", self.run_cli("metrics"))


if __name__ == "__main__":
    unittest.main()
