"""Service layer exception classes for the Bakery Shift Ledger.

This module defines all custom exceptions used by the service layer to provide
consistent error handling across the application.

Exception Hierarchy:
    ServiceError (base)
    ├── ValidationError
    ├── NotFoundError
    │   ├── MaterialNotFound
    │   ├── ProductionLogNotFound
    │   └── FlourBatchNotFound
    ├── InsufficientStock
    └── PersistenceError
"""

from typing import List, Optional, Union


class ServiceError(Exception):
    """Base exception for all service layer errors.

    All service-specific exceptions should inherit from this class.
    """

    pass


class ValidationError(ServiceError):
    """Raised when request data is missing or malformed.

    Args:
        errors: List of field error messages

    Example:
        >>> raise ValidationError(["shift: This field is required"])
        ValidationError: Validation failed: shift: This field is required
    """

    def __init__(self, errors: Union[List[str], str]):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        error_msg = "; ".join(self.errors)
        super().__init__(f"Validation failed: {error_msg}")


class NotFoundError(ServiceError):
    """Base class for missing-record errors."""

    pass


class MaterialNotFound(NotFoundError):
    """Raised when a raw material batch cannot be found by ID.

    Example:
        >>> raise MaterialNotFound(12)
        MaterialNotFound: Raw material with ID 12 not found
    """

    def __init__(self, material_id: int):
        self.material_id = material_id
        super().__init__(f"Raw material with ID {material_id} not found")


class ProductionLogNotFound(NotFoundError):
    """Raised when a production log cannot be found by ID."""

    def __init__(self, log_id: int):
        self.log_id = log_id
        super().__init__(f"Production log with ID {log_id} not found")


class FlourBatchNotFound(NotFoundError):
    """Raised when the daily reset finds no flour batch to deduct from."""

    def __init__(self, material_name: str = "Flour"):
        self.material_name = material_name
        super().__init__(f"No '{material_name}' batch exists")


class InsufficientStock(ServiceError):
    """Raised when a request needs more of a material than all its batches hold.

    Args:
        material_name: Name shared by the batches in the pool
        required: Quantity requested
        available: Total current stock across the pool

    Example:
        >>> raise InsufficientStock("Flour", 40, 25)
        InsufficientStock: Insufficient stock for Flour: required 40, available 25
    """

    def __init__(self, material_name: str, required: int, available: int):
        self.material_name = material_name
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient stock for {material_name}: "
            f"required {required}, available {available}"
        )


class PersistenceError(ServiceError):
    """Raised when a storage operation fails; the transaction has been rolled back."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        self.original_error = original_error
        super().__init__(f"Database error: {message}")
