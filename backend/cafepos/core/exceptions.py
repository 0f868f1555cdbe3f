"""Domain errors raised by services and mapped to JSON responses in main.

Every error carries a human-readable ``message`` and the HTTP status the
API layer answers with. Routes never catch these; the exception handlers
registered on the app render them as ``{"error": message}``.
"""

from decimal import Decimal
from typing import List, Optional


class POSError(Exception):
    """Base class for all expected business errors."""

    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(POSError):
    """Bad input or a precondition that the caller can fix."""

    status_code = 400


class InvalidTransitionError(ValidationError):
    """Requested status change is not allowed from the current status."""

    def __init__(self, entity: str, current: str, requested: str):
        self.entity = entity
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot change {entity} status from {current} to {requested}")


class ReservationConflictError(ValidationError):
    """Table is held by a reservation whose window has not started."""


class NoInventoryRecordError(ValidationError):
    """Menu item has no inventory counter to deduct from."""

    def __init__(self, item_name: str):
        self.item_name = item_name
        super().__init__(f"No inventory record for {item_name}")


class InsufficientStockError(ValidationError):
    """Not enough stock for a deduction."""

    def __init__(self, item_name: str, available, requested):
        self.item_name = item_name
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient stock for {item_name}. Available: {_fmt(available)}, "
            f"requested: {_fmt(requested)}"
        )


class IngredientInUseError(ValidationError):
    """Ingredient is referenced by one or more recipes."""

    def __init__(self, ingredient_name: str, menu_items: List[str]):
        self.ingredient_name = ingredient_name
        self.menu_items = menu_items
        super().__init__(
            f"Cannot delete ingredient {ingredient_name}. "
            f"It is used in: {', '.join(menu_items)}"
        )


class AuthenticationError(POSError):
    status_code = 401


class NotFoundError(POSError):
    status_code = 404

    def __init__(self, entity: str, identifier: Optional[object] = None):
        self.entity = entity
        self.identifier = identifier
        if identifier is None:
            super().__init__(f"{entity} not found")
        else:
            super().__init__(f"{entity} {identifier} not found")


class ConflictError(POSError):
    status_code = 409


class InternalError(POSError):
    status_code = 500


def _fmt(value) -> str:
    """Render stock quantities without trailing decimal zeros."""
    if isinstance(value, Decimal):
        normalized = value.normalize()
        return format(normalized, "f")
    return str(value)
