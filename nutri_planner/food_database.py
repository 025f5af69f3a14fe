"""USDA FoodData Central client.

Searches foods and fetches per-100g nutrient profiles that feed the
nutrition calculator. Detail lookups are cached for the life of the
client.
"""

import logging
import re
from typing import Optional

import requests

from nutri_planner.config import USDA_API_KEY, USDA_BASE_URL, USDA_MAX_PAGE_SIZE, USDA_TIMEOUT_SECONDS
from nutri_planner.errors import FoodDatabaseError

logger = logging.getLogger(__name__)

NUTRIENT_NAMES = {
    "Energy": "calories",
    "Energy (Atwater General Factors)": "calories",
    "Energy (Atwater Specific Factors)": "calories",
    "Protein": "protein",
    "Total lipid (fat)": "fat",
    "Carbohydrate, by difference": "carbs",
    "Fiber, total dietary": "fiber",
    "Sugars, total including NLEA": "sugar",
    "Sodium, Na": "sodium",
    "Calcium, Ca": "calcium",
    "Iron, Fe": "iron",
    "Vitamin C, total ascorbic acid": "vitamin_c",
    "Vitamin A, IU": "vitamin_a",
}

DATA_TYPES = ["Foundation", "SR Legacy", "Survey (FNDDS)", "Branded"]


def nutrient_key(name: str) -> str:
    """Map a USDA nutrient name to the calculator's key."""
    if name in NUTRIENT_NAMES:
        return NUTRIENT_NAMES[name]
    return re.sub(r"[ ,()]", "_", name).lower()


def _nutrient_fields(entry: dict) -> tuple:
    """(name, unit, amount) from either the search or the details shape."""
    nutrient = entry.get("nutrient")
    if nutrient:
        return nutrient.get("name", ""), nutrient.get("unitName", "g"), entry.get("amount", 0)
    return entry.get("nutrientName", ""), entry.get("unitName", "g"), entry.get("value", 0)


def nutrients_preview(food_nutrients: list) -> dict:
    preview = {}
    for entry in food_nutrients:
        name, unit, amount = _nutrient_fields(entry)
        key = nutrient_key(name)
        if key == "calories" and unit.lower() == "kj":
            continue
        if key in ("calories", "protein", "fat", "carbs", "fiber"):
            preview.setdefault(key, amount)
    return preview


def format_search_result(food: dict) -> dict:
    return {
        "id": food["fdcId"],
        "source": "usda",
        "name": food.get("description", ""),
        "brand_name": food.get("brandName") or food.get("brandOwner"),
        "category": food.get("foodCategory"),
        "data_type": food.get("dataType"),
        "serving_size": food.get("servingSize"),
        "serving_size_unit": food.get("servingSizeUnit"),
        "nutrients_preview": nutrients_preview(food.get("foodNutrients", [])),
    }


def format_food_details(data: dict) -> dict:
    nutrients = {}
    for entry in data.get("foodNutrients", []):
        name, unit, amount = _nutrient_fields(entry)
        key = nutrient_key(name)
        if key == "calories" and unit.lower() == "kj":
            continue
        nutrients.setdefault(key, {"amount": amount or 0, "unit": unit})
    return {
        "id": data["fdcId"],
        "source": "usda",
        "name": data.get("description", ""),
        "brand_name": data.get("brandName") or data.get("brandOwner"),
        "category": data.get("foodCategory"),
        "data_type": data.get("dataType"),
        "serving_size": data.get("servingSize", 100),
        "serving_size_unit": data.get("servingSizeUnit", "g"),
        "nutrients": nutrients,
    }


def nutrition_profile(details: dict) -> dict:
    """Flatten food details to a {nutrient: amount per 100 g} profile."""
    profile = {"name": details["name"]}
    for key, nutrient in details["nutrients"].items():
        profile[key] = nutrient["amount"]
    return profile


class FoodDatabaseClient:
    """Thin wrapper over the FoodData Central REST API."""

    def __init__(self, api_key: Optional[str] = None, base_url: str = USDA_BASE_URL,
                 timeout: float = USDA_TIMEOUT_SECONDS, session: Optional[requests.Session] = None):
        self.api_key = api_key if api_key is not None else USDA_API_KEY
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self._details_cache = {}

    def _get(self, path: str, params: dict) -> dict:
        if not self.api_key:
            raise FoodDatabaseError("USDA API key not configured (set USDA_API_KEY)")
        url = f"{self.base_url}{path}"
        try:
            response = self.session.get(url, params={**params, "api_key": self.api_key}, timeout=self.timeout)
            response.raise_for_status()
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            logger.error("USDA request %s failed with status %s", path, status)
            raise FoodDatabaseError(f"USDA API error: {status}", status_code=status) from e
        except requests.RequestException as e:
            logger.error("USDA request %s failed: %s", path, e)
            raise FoodDatabaseError(f"USDA API unreachable: {e}") from e
        return response.json()

    def search_foods(self, query: str, limit: int = 50, data_types: Optional[list] = None,
                     brand_owner: Optional[str] = None) -> dict:
        """Search foods by keyword. At most 200 results per page."""
        params = {
            "query": query,
            "pageSize": min(limit, USDA_MAX_PAGE_SIZE),
            "sortBy": "dataType.keyword",
            "sortOrder": "asc",
        }
        if data_types:
            params["dataType"] = ",".join(data_types)
        if brand_owner:
            params["brandOwner"] = brand_owner

        data = self._get("/foods/search", params)
        foods = [format_search_result(f) for f in data.get("foods", [])]
        logger.debug("USDA search '%s' returned %d foods", query, len(foods))
        return {
            "foods": foods,
            "total_hits": data.get("totalHits", 0),
            "current_page": data.get("currentPage", 1),
            "total_pages": data.get("totalPages", 1),
            "source": "usda",
        }

    def get_food_details(self, fdc_id) -> dict:
        """Full nutrient details for one food, cached per FDC id."""
        key = str(fdc_id)
        if key not in self._details_cache:
            data = self._get(f"/food/{key}", {"format": "full"})
            self._details_cache[key] = format_food_details(data)
        return self._details_cache[key]

    def get_nutrition_profile(self, fdc_id) -> dict:
        return nutrition_profile(self.get_food_details(fdc_id))
