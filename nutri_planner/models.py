"""Data models for health metrics, recipes and meal plans."""

from dataclasses import asdict, dataclass, field
from datetime import date, datetime, time
from enum import Enum
from typing import Optional

from nutri_planner.config import (
    CALORIES_PER_GRAM,
    DEFAULT_MACRO_SPLIT,
    DEFAULT_MAX_REUSE_DAYS,
    DEFAULT_SERVINGS,
    DIFFICULTY_RANGE,
    MAX_COOKING_TIME_RANGE,
    MAX_REUSE_DAYS_RANGE,
    PLAN_DURATION_RANGE,
    SERVINGS_RANGE,
    TARGET_CALORIES_RANGE,
)
from nutri_planner.errors import InvalidTransitionError, ValidationError


class MetricType(str, Enum):
    """Health metric tracked over time."""
    WEIGHT = "weight"
    HEIGHT = "height"
    BODY_FAT = "body_fat"
    MUSCLE_MASS = "muscle_mass"
    BMI = "bmi"
    WAIST_CIRCUMFERENCE = "waist_circumference"
    HIP_CIRCUMFERENCE = "hip_circumference"
    CHEST_CIRCUMFERENCE = "chest_circumference"
    ARM_CIRCUMFERENCE = "arm_circumference"
    THIGH_CIRCUMFERENCE = "thigh_circumference"
    NECK_CIRCUMFERENCE = "neck_circumference"
    BLOOD_PRESSURE_SYSTOLIC = "blood_pressure_systolic"
    BLOOD_PRESSURE_DIASTOLIC = "blood_pressure_diastolic"
    HEART_RATE = "heart_rate"
    STEPS = "steps"
    SLEEP_HOURS = "sleep_hours"
    WATER_INTAKE = "water_intake"


class DetectionMethod(str, Enum):
    """Outlier detection algorithm."""
    Z_SCORE = "z_score"
    IQR = "iqr"
    MAD = "mad"
    ISOLATION_FOREST = "isolation_forest"
    DATA_QUALITY = "data_quality"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class MealType(str, Enum):
    """A slot within a day."""
    BREAKFAST = "breakfast"
    LUNCH = "lunch"
    DINNER = "dinner"
    SNACK_MORNING = "snack_morning"
    SNACK_AFTERNOON = "snack_afternoon"
    SNACK_EVENING = "snack_evening"

    @property
    def is_snack(self) -> bool:
        return self.value.startswith("snack")

    @property
    def category(self) -> str:
        """Recipe meal category that fills this slot."""
        return "snack" if self.is_snack else self.value


class PlanStatus(str, Enum):
    DRAFT = "draft"
    GENERATING = "generating"
    ACTIVE = "active"
    COMPLETED = "completed"
    ARCHIVED = "archived"

    def can_transition_to(self, other: "PlanStatus") -> bool:
        return other in PLAN_TRANSITIONS[self]


class MealStatus(str, Enum):
    PLANNED = "planned"
    PREPPED = "prepped"
    COMPLETED = "completed"
    SKIPPED = "skipped"
    SUBSTITUTED = "substituted"

    def can_transition_to(self, other: "MealStatus") -> bool:
        return other in MEAL_TRANSITIONS[self]


PLAN_TRANSITIONS = {
    PlanStatus.DRAFT: {PlanStatus.GENERATING},
    PlanStatus.GENERATING: {PlanStatus.ACTIVE},
    PlanStatus.ACTIVE: {PlanStatus.COMPLETED, PlanStatus.ARCHIVED},
    PlanStatus.COMPLETED: {PlanStatus.ARCHIVED},
    PlanStatus.ARCHIVED: set(),
}

# Meal statuses only move forward; a substituted meal may be substituted again.
MEAL_TRANSITIONS = {
    MealStatus.PLANNED: {MealStatus.PREPPED, MealStatus.COMPLETED, MealStatus.SKIPPED, MealStatus.SUBSTITUTED},
    MealStatus.PREPPED: {MealStatus.COMPLETED, MealStatus.SKIPPED, MealStatus.SUBSTITUTED},
    MealStatus.SUBSTITUTED: {MealStatus.PREPPED, MealStatus.COMPLETED, MealStatus.SKIPPED, MealStatus.SUBSTITUTED},
    MealStatus.COMPLETED: set(),
    MealStatus.SKIPPED: set(),
}


@dataclass
class Nutrition:
    """Nutritional information per serving."""
    calories: float
    protein_g: float
    carbs_g: float
    fat_g: float
    fiber_g: float = 0.0
    sugar_g: float = 0.0
    sodium_mg: float = 0.0

    def scaled(self, servings: float) -> "Nutrition":
        """Return nutrition scaled by number of servings."""
        return Nutrition(
            calories=self.calories * servings,
            protein_g=self.protein_g * servings,
            carbs_g=self.carbs_g * servings,
            fat_g=self.fat_g * servings,
            fiber_g=self.fiber_g * servings,
            sugar_g=self.sugar_g * servings,
            sodium_mg=self.sodium_mg * servings,
        )

    def rounded(self, ndigits: int = 2) -> "Nutrition":
        return Nutrition(*(round(v, ndigits) for v in asdict(self).values()))

    def __add__(self, other: "Nutrition") -> "Nutrition":
        return Nutrition(
            calories=self.calories + other.calories,
            protein_g=self.protein_g + other.protein_g,
            carbs_g=self.carbs_g + other.carbs_g,
            fat_g=self.fat_g + other.fat_g,
            fiber_g=self.fiber_g + other.fiber_g,
            sugar_g=self.sugar_g + other.sugar_g,
            sodium_mg=self.sodium_mg + other.sodium_mg,
        )

    @staticmethod
    def zero() -> "Nutrition":
        return Nutrition(0, 0, 0, 0, 0, 0, 0)

    def macro_percentages(self) -> dict:
        """Return macro percentages based on caloric contribution."""
        if self.calories == 0:
            return {"protein": 0, "carbs": 0, "fat": 0}
        return {
            "protein": round(self.protein_g * CALORIES_PER_GRAM["protein"] / self.calories * 100, 1),
            "carbs": round(self.carbs_g * CALORIES_PER_GRAM["carbs"] / self.calories * 100, 1),
            "fat": round(self.fat_g * CALORIES_PER_GRAM["fat"] / self.calories * 100, 1),
        }

    def to_profile(self) -> dict:
        """Nutrient-name keyed view used by the nutrition calculator."""
        return {
            "calories": self.calories,
            "protein": self.protein_g,
            "carbs": self.carbs_g,
            "fat": self.fat_g,
            "fiber": self.fiber_g,
            "sugar": self.sugar_g,
            "sodium": self.sodium_mg,
        }


@dataclass
class MacroTargets:
    """Daily calorie and macro targets for a plan."""
    calories: float
    protein_g: float
    carbs_g: float
    fat_g: float

    def as_nutrition(self) -> Nutrition:
        return Nutrition(self.calories, self.protein_g, self.carbs_g, self.fat_g)


@dataclass
class Ingredient:
    """A recipe ingredient."""
    name: str
    quantity: float
    unit: str
    notes: str = ""
    allergens: list = field(default_factory=list)


@dataclass
class Recipe:
    """A catalog recipe with metadata and per-serving nutrition."""
    id: Optional[int]
    title: str
    source: str = "user"  # e.g. "csv", "user", "usda"
    source_url: str = ""
    servings: int = 1
    prep_time_minutes: int = 0
    cook_time_minutes: int = 0
    meal_category: str = ""  # breakfast, lunch, dinner, snack, main, salad, dessert...
    cuisine: str = ""
    difficulty: int = 1  # 1 (easy) to 4 (expert)
    average_rating: float = 0.0
    total_ratings: int = 0
    cost_per_serving: Optional[float] = None
    dietary_tags: list = field(default_factory=list)  # vegetarian, gluten_free...
    allergens: list = field(default_factory=list)
    tags: list = field(default_factory=list)
    equipment_needed: list = field(default_factory=list)
    storage_instructions: str = ""
    ingredients: list = field(default_factory=list)  # List[Ingredient]
    instructions: list = field(default_factory=list)  # List[str]
    nutrition: Optional[Nutrition] = None  # Per serving
    created_at: Optional[datetime] = None

    @property
    def total_time_minutes(self) -> int:
        return (self.prep_time_minutes or 0) + (self.cook_time_minutes or 0)

    def contains_allergen(self, allergen: str) -> bool:
        """True if the recipe or any of its ingredients lists the allergen."""
        wanted = allergen.lower()
        if wanted in (a.lower() for a in self.allergens):
            return True
        return any(wanted in (a.lower() for a in ing.allergens) for ing in self.ingredients)

    def is_suitable_for_diet(self, restriction: str) -> bool:
        return restriction.lower() in (t.lower() for t in self.dietary_tags)


@dataclass
class MetricSample:
    """A single health measurement."""
    id: Optional[int]
    user_id: int
    metric_type: MetricType
    value: float
    recorded_date: date
    unit: str = ""
    recorded_time: Optional[time] = None
    is_goal: bool = False
    notes: str = ""

    @property
    def sort_key(self) -> tuple:
        return (self.recorded_date, self.recorded_time or time.min)


@dataclass
class OutlierFinding:
    """A data point flagged by one or more detection methods."""
    source_index: int
    value: float
    date: Optional[date]
    detection_score: float
    threshold: Optional[float]
    confidence: float
    severity: Severity
    detected_by: list = field(default_factory=list)  # List[DetectionMethod]
    sample_id: Optional[int] = None
    kind: str = "statistical"  # statistical, isolation, data_quality
    violations: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "index": self.source_index,
            "id": self.sample_id,
            "value": self.value,
            "date": self.date.isoformat() if self.date else None,
            "detection_score": round(self.detection_score, 3),
            "threshold": self.threshold,
            "confidence": round(self.confidence, 3),
            "severity": self.severity.value,
            "detected_by": [m.value for m in self.detected_by],
            "type": self.kind,
            "violations": list(self.violations),
        }


@dataclass
class MethodResult:
    """Output of a single detection method."""
    method: DetectionMethod
    outliers: list = field(default_factory=list)  # List[OutlierFinding]
    confidence: dict = field(default_factory=dict)  # index -> confidence
    statistics: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "method": self.method.value,
            "outliers": [o.to_dict() for o in self.outliers],
            "confidence": {str(k): round(v, 3) for k, v in self.confidence.items()},
            "statistics": self.statistics,
        }


@dataclass
class OutlierReport:
    """Fused result of running several detection methods over a series."""
    outliers: list = field(default_factory=list)  # List[OutlierFinding]
    method_results: dict = field(default_factory=dict)  # DetectionMethod -> MethodResult
    statistics: dict = field(default_factory=dict)
    data_point_count: int = 0
    status: str = "ok"  # ok, insufficient_data
    message: str = ""

    @property
    def total_outliers(self) -> int:
        return len(self.outliers)

    @staticmethod
    def insufficient(data_point_count: int, message: str) -> "OutlierReport":
        return OutlierReport(data_point_count=data_point_count, status="insufficient_data", message=message)

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "message": self.message,
            "outliers": [o.to_dict() for o in self.outliers],
            "method_results": {m.value: r.to_dict() for m, r in self.method_results.items()},
            "statistics": self.statistics,
            "total_outliers": self.total_outliers,
            "data_point_count": self.data_point_count,
        }


@dataclass
class Recommendation:
    """Actionable advice derived from an outlier report."""
    type: str  # positive, warning, error, alert, info
    message: str
    priority: str  # low, medium, high
    action: Optional[str] = None
    affected_dates: list = field(default_factory=list)

    def to_dict(self) -> dict:
        data = {"type": self.type, "message": self.message, "priority": self.priority}
        if self.action:
            data["action"] = self.action
        if self.affected_dates:
            data["affected_dates"] = [d.isoformat() for d in self.affected_dates]
        return data


@dataclass
class DietaryPreference:
    """A user's stored dietary preferences."""
    user_id: int
    dietary_restrictions: list = field(default_factory=list)
    allergens: list = field(default_factory=list)
    cuisine_preferences: list = field(default_factory=list)
    disliked_cuisines: list = field(default_factory=list)
    disliked_ingredients: list = field(default_factory=list)
    preferred_ingredients: list = field(default_factory=list)
    max_cooking_time: Optional[int] = None
    preferred_difficulty_max: Optional[int] = None
    target_calories_per_day: Optional[float] = None
    macro_targets: dict = field(default_factory=dict)  # protein/carbs/fat percent
    prioritize_protein: bool = False
    high_fiber: bool = False
    low_sodium: bool = False
    low_sugar: bool = False
    meal_prep_friendly: bool = False
    seasonal_preference: bool = False
    equipment_available: list = field(default_factory=list)
    budget_per_meal: Optional[float] = None

    def macro_split(self) -> dict:
        """Percent split with defaults filled in."""
        split = dict(DEFAULT_MACRO_SPLIT)
        split.update({k: v for k, v in self.macro_targets.items() if k in split and v is not None})
        return split

    def prefers_cuisine(self, cuisine: str) -> bool:
        return bool(cuisine) and cuisine in self.cuisine_preferences

    def prefers_ingredient(self, ingredient: str) -> bool:
        return ingredient.lower() in (i.lower() for i in self.preferred_ingredients)

    def dislikes_ingredient(self, ingredient: str) -> bool:
        return ingredient.lower() in (i.lower() for i in self.disliked_ingredients)


def _check_range(value, bounds: tuple, name: str, integer: bool = False) -> None:
    low, high = bounds
    if integer and value is not None and (isinstance(value, bool) or not isinstance(value, int)):
        raise ValidationError(f"{name} must be a whole number, got {value!r}", field=name)
    if value is not None and not (low <= value <= high):
        raise ValidationError(f"{name} must be between {low} and {high}, got {value}", field=name)


@dataclass
class PlanParameters:
    """Caller-supplied options for generating a meal plan."""
    start_date: date
    duration_days: int = 7
    target_calories: Optional[float] = None
    target_protein_g: Optional[float] = None
    target_carbs_g: Optional[float] = None
    target_fat_g: Optional[float] = None
    meal_types: Optional[list] = None  # List[MealType]
    dietary_restrictions: Optional[list] = None
    allergens: Optional[list] = None
    cuisine_preferences: Optional[list] = None
    max_cooking_time: Optional[int] = None
    difficulty_max: Optional[int] = None
    budget_per_meal: Optional[float] = None
    include_meal_prep: Optional[bool] = None  # None = use stored preference
    prioritize_seasonal: Optional[bool] = None
    avoid_repetition: bool = True
    max_recipe_reuse_days: Optional[int] = None
    default_servings: Optional[float] = None
    name: Optional[str] = None
    description: str = ""

    def validate(self) -> None:
        """Raise ValidationError for out-of-range parameters."""
        if not isinstance(self.start_date, date):
            raise ValidationError("start_date must be a date", field="start_date")
        _check_range(self.duration_days, PLAN_DURATION_RANGE, "duration_days", integer=True)
        _check_range(self.target_calories, TARGET_CALORIES_RANGE, "target_calories")
        _check_range(self.max_cooking_time, MAX_COOKING_TIME_RANGE, "max_cooking_time")
        _check_range(self.difficulty_max, DIFFICULTY_RANGE, "difficulty_max", integer=True)
        _check_range(self.max_recipe_reuse_days, MAX_REUSE_DAYS_RANGE, "max_recipe_reuse_days", integer=True)
        _check_range(self.default_servings, SERVINGS_RANGE, "default_servings")
        for macro in ("target_protein_g", "target_carbs_g", "target_fat_g"):
            value = getattr(self, macro)
            if value is not None and value < 0:
                raise ValidationError(f"{macro} cannot be negative", field=macro)
        if self.meal_types is not None:
            if not self.meal_types:
                raise ValidationError("meal_types cannot be empty", field="meal_types")
            try:
                self.meal_types = [MealType(m) for m in self.meal_types]
            except ValueError as e:
                raise ValidationError(str(e), field="meal_types") from e
            if len(set(self.meal_types)) != len(self.meal_types):
                raise ValidationError("meal_types cannot contain duplicates", field="meal_types")


@dataclass
class PlanConstraints:
    """Selection constraints resolved once per generation run."""
    dietary_restrictions: list = field(default_factory=list)
    allergens: list = field(default_factory=list)
    cuisine_whitelist: list = field(default_factory=list)
    preferred_cuisines: list = field(default_factory=list)
    disliked_ingredients: list = field(default_factory=list)
    equipment_available: list = field(default_factory=list)  # empty = not checked
    excluded_recipe_ids: list = field(default_factory=list)
    max_cooking_time: Optional[int] = None
    max_difficulty: Optional[int] = None
    budget_per_meal: Optional[float] = None
    include_meal_prep: bool = False
    prioritize_seasonal: bool = False
    avoid_repetition: bool = True
    max_recipe_reuse_days: int = DEFAULT_MAX_REUSE_DAYS
    default_servings: float = DEFAULT_SERVINGS

    def to_dict(self) -> dict:
        return asdict(self)

    @staticmethod
    def from_dict(data: dict) -> "PlanConstraints":
        known = PlanConstraints.__dataclass_fields__
        return PlanConstraints(**{k: v for k, v in (data or {}).items() if k in known})


@dataclass
class MealPlanMeal:
    """A single planned meal."""
    id: Optional[int]
    meal_plan_id: Optional[int]
    date: date
    meal_type: MealType
    recipe_id: Optional[int]
    servings: float = 1.0
    planned: Optional[Nutrition] = None
    is_meal_prep: bool = False
    prep_date: Optional[date] = None
    estimated_prep_time: Optional[int] = None
    status: MealStatus = MealStatus.PLANNED
    substituted_with_recipe_id: Optional[int] = None
    substitution_reason: str = ""
    user_rating: Optional[int] = None
    notes: str = ""
    completed_at: Optional[datetime] = None
    recipe: Optional[Recipe] = None  # Populated on load

    def transition_to(self, status: MealStatus) -> None:
        if not self.status.can_transition_to(status):
            raise InvalidTransitionError(self.status.value, status.value)
        self.status = status


@dataclass
class PrepSession:
    """Meals sharing a prep date, with advisory tips."""
    prep_date: date
    meals: list = field(default_factory=list)  # List[MealPlanMeal]
    total_prep_minutes: int = 0
    cuisines: list = field(default_factory=list)
    tips: list = field(default_factory=list)


@dataclass
class PlanReview:
    """Findings of the post-generation optimisation pass."""
    rebalance_days: dict = field(default_factory=dict)  # date -> {"totals": Nutrition, "off_target": [...]}
    prep_sessions: list = field(default_factory=list)  # List[PrepSession]
    excess_recipes: dict = field(default_factory=dict)  # recipe_id -> days used


@dataclass
class MealPlan:
    """A multi-day meal plan."""
    id: Optional[int]
    user_id: int
    name: str
    start_date: date
    end_date: date
    targets: MacroTargets
    meal_types: list = field(default_factory=list)  # List[MealType]
    constraints: PlanConstraints = field(default_factory=PlanConstraints)
    description: str = ""
    status: PlanStatus = PlanStatus.DRAFT
    feedback_data: dict = field(default_factory=dict)
    meals: list = field(default_factory=list)  # List[MealPlanMeal]
    review: Optional[PlanReview] = None
    actual_nutrition: Optional[Nutrition] = None  # Daily average of completed meals
    adherence_score: Optional[float] = None
    created_at: Optional[datetime] = None

    @property
    def duration_days(self) -> int:
        return (self.end_date - self.start_date).days + 1

    def transition_to(self, status: PlanStatus) -> None:
        if not self.status.can_transition_to(status):
            raise InvalidTransitionError(self.status.value, status.value)
        self.status = status

    def meals_on(self, day: date) -> list:
        return [m for m in self.meals if m.date == day]

    def daily_totals(self) -> dict:
        """Planned nutrition summed per date, in date order."""
        totals = {}
        for meal in sorted(self.meals, key=lambda m: m.date):
            if meal.planned is None:
                continue
            totals[meal.date] = totals.get(meal.date, Nutrition.zero()) + meal.planned
        return totals
