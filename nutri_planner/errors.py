"""Exception classes shared across the planner and analysis modules."""

from typing import Optional


class NutriPlannerError(Exception):
    """Base exception with a machine-readable error code."""

    def __init__(self, detail: str, error_code: Optional[str] = None):
        super().__init__(detail)
        self.detail = detail
        self.error_code = error_code or "NUTRI_PLANNER_ERROR"


class InsufficientDataError(NutriPlannerError):
    """Not enough data points for the requested computation."""

    def __init__(self, detail: str = "Insufficient data"):
        super().__init__(detail, error_code="INSUFFICIENT_DATA")


class ValidationError(NutriPlannerError):
    """Malformed input parameters."""

    def __init__(self, detail: str, field: Optional[str] = None):
        error_code = f"VALIDATION_ERROR_{field.upper()}" if field else "VALIDATION_ERROR"
        super().__init__(detail, error_code=error_code)
        self.field = field


class NotFoundError(NutriPlannerError):
    """Resource not found."""

    def __init__(self, resource: str, identifier):
        super().__init__(f"{resource} not found: {identifier}", error_code="NOT_FOUND")
        self.resource = resource
        self.identifier = identifier


class PersistenceError(NutriPlannerError):
    """The store rejected a write; the transaction was rolled back."""

    def __init__(self, detail: str):
        super().__init__(detail, error_code="PERSISTENCE_ERROR")


class InvalidTransitionError(NutriPlannerError):
    """A status change not permitted by the lifecycle."""

    def __init__(self, current: str, requested: str):
        super().__init__(
            f"Cannot move from '{current}' to '{requested}'",
            error_code="INVALID_TRANSITION",
        )
        self.current = current
        self.requested = requested


class FoodDatabaseError(NutriPlannerError):
    """The external food database could not serve the request."""

    def __init__(self, detail: str, status_code: Optional[int] = None):
        super().__init__(detail, error_code="FOOD_DATABASE_ERROR")
        self.status_code = status_code
