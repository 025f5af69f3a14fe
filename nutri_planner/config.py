"""Application configuration and constants."""

import os

# Database
DB_DIR = os.path.join(os.path.expanduser("~"), ".nutri_planner")
DB_PATH = os.environ.get("NUTRI_PLANNER_DB", os.path.join(DB_DIR, "nutri_planner.db"))

# Logging
LOG_LEVEL = os.environ.get("NUTRI_PLANNER_LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# USDA FoodData Central
USDA_API_KEY = os.environ.get("USDA_API_KEY", "")
USDA_BASE_URL = os.environ.get("USDA_BASE_URL", "https://api.nal.usda.gov/fdc/v1")
USDA_TIMEOUT_SECONDS = float(os.environ.get("USDA_TIMEOUT_SECONDS", "10"))
USDA_MAX_PAGE_SIZE = 200

# --- Outlier detection ---

MIN_SAMPLES_FOR_ANALYSIS = 3
DEFAULT_ANALYSIS_DAYS = 90
BATCH_ANALYSIS_DAYS = 30

# Default threshold per detection method (isolation_forest is a contamination rate)
DEFAULT_THRESHOLDS = {
    "z_score": 2.5,
    "iqr": 1.5,
    "mad": 3.5,
    "isolation_forest": 0.1,
    "data_quality": None,
}

METHOD_DESCRIPTIONS = {
    "z_score": "Standard deviation based detection. Good for normally distributed data.",
    "iqr": "Interquartile range based detection. Robust to skewed distributions.",
    "mad": "Median absolute deviation. Very robust to extreme outliers.",
    "isolation_forest": "Nearest-neighbour isolation heuristic. Flags the most isolated points.",
    "data_quality": "Physiological range and rate-of-change rules per metric type.",
}

MAD_SCALE = 0.6745  # Modified z-score constant
ISOLATION_NEIGHBOURS = 3
FUSION_CONFIDENCE_BONUS = 0.3  # Added per additional detecting method

# Data quality penalties
RANGE_VIOLATION_SCORE = 0.8
DAILY_CHANGE_VIOLATION_SCORE = 0.6
WEEKLY_CHANGE_VIOLATION_SCORE = 0.4

# Per-metric plausibility rules: (min, max, max daily change, max weekly change)
DATA_QUALITY_RULES = {
    "weight": {"min": 20, "max": 300, "max_daily_change": 5, "max_weekly_change": 10},
    "height": {"min": 50, "max": 250, "max_daily_change": 0, "max_weekly_change": 1},
    "body_fat": {"min": 3, "max": 60, "max_daily_change": 5, "max_weekly_change": 10},
    "muscle_mass": {"min": 10, "max": 100, "max_daily_change": 2, "max_weekly_change": 5},
    "blood_pressure_systolic": {"min": 70, "max": 250, "max_daily_change": 50, "max_weekly_change": 80},
    "blood_pressure_diastolic": {"min": 40, "max": 150, "max_daily_change": 30, "max_weekly_change": 50},
    "heart_rate": {"min": 40, "max": 200, "max_daily_change": 50, "max_weekly_change": 80},
    "steps": {"min": 0, "max": 50000, "max_daily_change": None, "max_weekly_change": None},
    "sleep_hours": {"min": 1, "max": 16, "max_daily_change": 8, "max_weekly_change": 12},
    "water_intake": {"min": 200, "max": 8000, "max_daily_change": None, "max_weekly_change": None},
}

DEFAULT_METRIC_UNITS = {
    "weight": "kg",
    "height": "cm",
    "body_fat": "%",
    "muscle_mass": "kg",
    "bmi": "kg/m²",
    "waist_circumference": "cm",
    "hip_circumference": "cm",
    "chest_circumference": "cm",
    "arm_circumference": "cm",
    "thigh_circumference": "cm",
    "neck_circumference": "cm",
    "blood_pressure_systolic": "mmHg",
    "blood_pressure_diastolic": "mmHg",
    "heart_rate": "bpm",
    "steps": "steps",
    "sleep_hours": "hours",
    "water_intake": "ml",
}

# Recommendation rules
HIGH_OUTLIER_RATE_PCT = 20
RECENT_OUTLIER_DAYS = 7
MANY_OUTLIERS_COUNT = 3

TREND_STABLE_PCT = 1.0  # |change| at or below this percentage is "stable"

# --- Nutrition ---

CALORIES_PER_GRAM = {
    "protein": 4,
    "carbs": 4,
    "fat": 9,
}

# Grams per unit
WEIGHT_UNITS = {
    "g": 1,
    "gram": 1,
    "grams": 1,
    "kg": 1000,
    "kilogram": 1000,
    "kilograms": 1000,
    "mg": 0.001,
    "milligram": 0.001,
    "milligrams": 0.001,
    "mcg": 0.000001,
    "microgram": 0.000001,
    "micrograms": 0.000001,
    "oz": 28.3495,
    "ounce": 28.3495,
    "ounces": 28.3495,
    "lb": 453.592,
    "lbs": 453.592,
    "pound": 453.592,
    "pounds": 453.592,
}

# Millilitres per unit
VOLUME_UNITS = {
    "ml": 1,
    "milliliter": 1,
    "milliliters": 1,
    "l": 1000,
    "liter": 1000,
    "liters": 1000,
    "cl": 10,
    "fl oz": 29.5735,
    "fluid ounce": 29.5735,
    "fluid ounces": 29.5735,
    "tsp": 5,
    "teaspoon": 5,
    "teaspoons": 5,
    "tbsp": 15,
    "tablespoon": 15,
    "tablespoons": 15,
    "cup": 240,
    "cups": 240,
    "pint": 473.176,
    "pints": 473.176,
    "quart": 946.353,
    "quarts": 946.353,
    "gallon": 3785.41,
    "gallons": 3785.41,
}

PIECE_UNITS = ["piece", "pieces", "item", "items", "each", "whole", "serving", "servings"]

# g/ml
INGREDIENT_DENSITIES = {
    "water": 1.0,
    "milk": 1.03,
    "cream": 0.98,
    "oil": 0.92,
    "olive oil": 0.915,
    "honey": 1.42,
    "syrup": 1.37,
    "juice": 1.05,
    "flour": 0.57,
    "sugar": 0.85,
    "brown sugar": 0.96,
    "powdered sugar": 0.56,
    "salt": 1.22,
    "baking powder": 0.95,
    "cocoa": 0.51,
    "rice": 0.75,
    "oats": 0.41,
    "butter": 0.91,
    "margarine": 0.91,
    "peanut butter": 0.95,
    "yogurt": 1.04,
    "sour cream": 0.96,
}
DEFAULT_DENSITY = 1.0  # water

# Grams per piece/serving
STANDARD_SERVINGS = {
    "apple": 182,
    "banana": 118,
    "orange": 154,
    "egg": 50,
    "bread": 28,
    "rice": 158,
    "pasta": 140,
    "chicken breast": 85,
    "salmon": 85,
}
DEFAULT_SERVING_GRAMS = 100

# Reference daily values for adults
DAILY_VALUES = {
    "calories": 2000,
    "protein": 50,
    "fat": 65,
    "carbs": 300,
    "fiber": 25,
    "sugar": 50,
    "sodium": 2300,  # mg
    "calcium": 1000,  # mg
    "iron": 18,  # mg
    "vitamin_c": 90,  # mg
    "vitamin_a": 900,  # mcg
}

HIGHER_IS_BETTER = ["protein", "fiber", "vitamin_c", "vitamin_a", "calcium", "iron"]
LOWER_IS_BETTER = ["calories", "fat", "sugar", "sodium"]

# --- Meal planning ---

DEFAULT_DAILY_CALORIES = 2000
DEFAULT_MACRO_SPLIT = {"protein": 20, "carbs": 50, "fat": 30}  # percent of calories
DEFAULT_MEAL_TYPES = ["breakfast", "lunch", "dinner"]
DEFAULT_DIFFICULTY_MAX = 3
DEFAULT_MAX_REUSE_DAYS = 7
DEFAULT_SERVINGS = 1.0
MIN_RECIPE_RATING = 3.0
TOP_CANDIDATES = 5  # Random pick among this many best-scoring recipes
DEFAULT_ALTERNATIVES = 5

# Parameter bounds (inclusive)
PLAN_DURATION_RANGE = (1, 90)
TARGET_CALORIES_RANGE = (800, 5000)
MAX_COOKING_TIME_RANGE = (5, 300)
DIFFICULTY_RANGE = (1, 4)
MAX_REUSE_DAYS_RANGE = (1, 14)
SERVINGS_RANGE = (0.5, 10)

# Scoring
BASE_RECIPE_SCORE = 50.0
PREFERRED_CUISINE_BONUS = 15
PREFERRED_INGREDIENT_BONUS = 5
TIME_RATIO_THRESHOLD = 0.8
TIME_PENALTY_FACTOR = 20
HIGH_PROTEIN_GRAMS = 20
HIGH_FIBER_GRAMS = 5
NUTRITION_PREFERENCE_BONUS = 10
RATING_MIDPOINT = 2.5
RATING_WEIGHT = 8  # 5 stars -> +20, 1 star -> -12
POPULAR_RATING_COUNT = 50
POPULARITY_BONUS = 5
APPROPRIATE_CATEGORY_BONUS = 15
SECONDARY_APPROPRIATENESS_BONUS = 10
QUICK_BREAKFAST_MINUTES = 30
LIGHT_SNACK_CALORIES = 300
SEASONAL_BONUS = 5

# Recipe categories that suit each meal slot
MEAL_TYPE_APPROPRIATENESS = {
    "breakfast": ["breakfast", "snack"],
    "lunch": ["lunch", "salad", "soup", "side_dish"],
    "dinner": ["dinner", "main"],
    "snack_morning": ["snack", "appetizer"],
    "snack_afternoon": ["snack", "appetizer", "dessert"],
    "snack_evening": ["snack", "dessert"],
}

SEASON_MONTHS = {
    "spring": [3, 4, 5],
    "summer": [6, 7, 8],
    "fall": [9, 10, 11],
    "winter": [12, 1, 2],
}

# Tags that earn the seasonal score bonus
SEASONAL_SCORE_TAGS = {
    "spring": ["fresh", "light", "vegetables"],
    "summer": ["grilled", "salad", "fresh"],
    "fall": ["roasted", "warming", "hearty"],
    "winter": ["stew", "soup", "comfort", "warming"],
}

# Broader tag set used to narrow the pool when seasonal prioritisation is on
SEASONAL_FILTER_TAGS = {
    "spring": ["fresh", "light", "vegetables", "asparagus", "peas", "strawberries"],
    "summer": ["grilled", "salad", "berries", "tomatoes", "corn", "melon"],
    "fall": ["roasted", "pumpkin", "apple", "squash", "warming", "hearty"],
    "winter": ["stew", "soup", "comfort", "root vegetables", "warming", "hearty"],
}

# Meal prep
MEAL_PREP_MIN_MINUTES = 30  # Recipe must take longer than this
MEAL_PREP_LEAD_DAYS = (1, 2)
PREP_SESSION_MAX_MEALS = 3
PREP_SESSION_MAX_MINUTES = 180
PREP_SESSION_MAX_CUISINES = 2

NUTRITION_TOLERANCE = 0.15  # Fraction off target before a day is flagged
