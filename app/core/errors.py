from decimal import Decimal
from typing import Any, Dict, Optional


class ServiceError(Exception):
    """Base class for errors the order service maps to client responses."""

    code = "service_error"
    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(ServiceError):
    code = "validation_error"
    status_code = 400


class ReferenceNotFoundError(ServiceError):
    """Unknown order, menu item or ingredient id."""

    code = "not_found"
    status_code = 404


class InsufficientStock(ServiceError):
    """Business rejection: an ingredient cannot cover an order's demand."""

    code = "insufficient_inventory"
    status_code = 409

    def __init__(self, ingredient_id: int, ingredient_name: str, required: Decimal, available: Decimal):
        super().__init__(
            f"insufficient ingredient: {ingredient_name}",
            details={
                "ingredient_id": ingredient_id,
                "name": ingredient_name,
                "required": str(required),
                "available": str(available),
            },
        )
        self.ingredient_id = ingredient_id
        self.ingredient_name = ingredient_name
        self.required = required
        self.available = available


class ConflictError(ServiceError):
    code = "conflict"
    status_code = 409


class InvalidRange(ServiceError):
    code = "invalid_range"
    status_code = 400


class StorageError(ServiceError):
    """Transaction or connection failure. Never retried."""

    code = "storage_error"
    status_code = 503
