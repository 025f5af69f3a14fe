"""Tests for the USDA FoodData Central client."""

import unittest
from unittest import mock

import requests

from nutri_planner.errors import FoodDatabaseError
from nutri_planner.food_database import FoodDatabaseClient, format_food_details, nutrient_key, nutrition_profile

SEARCH_RESPONSE = {
    "totalHits": 1,
    "currentPage": 1,
    "totalPages": 1,
    "foods": [{
        "fdcId": 173944,
        "description": "Bananas, raw",
        "dataType": "SR Legacy",
        "foodCategory": "Fruits and Fruit Juices",
        "foodNutrients": [
            {"nutrientName": "Energy", "unitName": "KJ", "value": 371},
            {"nutrientName": "Energy", "unitName": "KCAL", "value": 89},
            {"nutrientName": "Protein", "unitName": "G", "value": 1.09},
            {"nutrientName": "Potassium, K", "unitName": "MG", "value": 358},
        ],
    }],
}

DETAILS_RESPONSE = {
    "fdcId": 173944,
    "description": "Bananas, raw",
    "dataType": "SR Legacy",
    "foodNutrients": [
        {"nutrient": {"name": "Energy", "unitName": "kJ"}, "amount": 371},
        {"nutrient": {"name": "Energy", "unitName": "kcal"}, "amount": 89},
        {"nutrient": {"name": "Carbohydrate, by difference", "unitName": "g"}, "amount": 22.8},
        {"nutrient": {"name": "Sodium, Na", "unitName": "mg"}, "amount": 1},
        {"nutrient": {"name": "Potassium, K", "unitName": "mg"}, "amount": 358},
    ],
}


def _response(payload=None, status=200):
    response = mock.Mock()
    response.status_code = status
    response.json.return_value = payload
    if status >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(response=response)
    return response


class TestFoodDatabaseClient(unittest.TestCase):
    def setUp(self):
        self.session = mock.Mock()
        self.client = FoodDatabaseClient(api_key="test-key", base_url="https://fdc.test/v1/", session=self.session)

    def test_search_params_and_results(self):
        self.session.get.return_value = _response(SEARCH_RESPONSE)
        result = self.client.search_foods("banana", limit=500, data_types=["SR Legacy", "Foundation"])

        url = self.session.get.call_args[0][0]
        params = self.session.get.call_args[1]["params"]
        self.assertEqual(url, "https://fdc.test/v1/foods/search")
        self.assertEqual(params["pageSize"], 200)
        self.assertEqual(params["dataType"], "SR Legacy,Foundation")
        self.assertEqual(params["api_key"], "test-key")

        self.assertEqual(result["total_hits"], 1)
        food = result["foods"][0]
        self.assertEqual(food["id"], 173944)
        self.assertEqual(food["nutrients_preview"], {"calories": 89, "protein": 1.09})

    def test_missing_api_key(self):
        client = FoodDatabaseClient(api_key="", session=self.session)
        with self.assertRaises(FoodDatabaseError):
            client.search_foods("banana")
        self.session.get.assert_not_called()

    def test_http_error_status(self):
        self.session.get.return_value = _response(status=404)
        with self.assertRaises(FoodDatabaseError) as ctx:
            self.client.get_food_details(1)
        self.assertEqual(ctx.exception.status_code, 404)

    def test_connection_error(self):
        self.session.get.side_effect = requests.ConnectionError("refused")
        with self.assertRaises(FoodDatabaseError) as ctx:
            self.client.search_foods("banana")
        self.assertIsNone(ctx.exception.status_code)

    def test_details_cached(self):
        self.session.get.return_value = _response(DETAILS_RESPONSE)
        first = self.client.get_food_details(173944)
        second = self.client.get_food_details("173944")
        self.assertIs(first, second)
        self.assertEqual(self.session.get.call_count, 1)
        self.assertEqual(self.session.get.call_args[1]["params"]["format"], "full")

    def test_nutrition_profile(self):
        self.session.get.return_value = _response(DETAILS_RESPONSE)
        profile = self.client.get_nutrition_profile(173944)
        self.assertEqual(profile["name"], "Bananas, raw")
        self.assertEqual(profile["calories"], 89)
        self.assertEqual(profile["carbs"], 22.8)
        self.assertEqual(profile["potassium__k"], 358)


class TestFormatting(unittest.TestCase):
    def test_nutrient_key(self):
        self.assertEqual(nutrient_key("Total lipid (fat)"), "fat")
        self.assertEqual(nutrient_key("Vitamin D (D2 + D3)"), "vitamin_d__d2_+_d3_")

    def test_details_skip_kilojoules(self):
        details = format_food_details(DETAILS_RESPONSE)
        self.assertEqual(details["nutrients"]["calories"], {"amount": 89, "unit": "kcal"})
        self.assertEqual(details["serving_size"], 100)
        self.assertEqual(nutrition_profile(details)["sodium"], 1)


if __name__ == "__main__":
    unittest.main()
