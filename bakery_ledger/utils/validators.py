"""
Input validation functions for the Bakery Shift Ledger application.

Validators return ``(is_valid, error_message)`` tuples so a service can
collect every problem in a request before raising a single ValidationError.
The ``parse_*`` helpers convert request values to the stored types.
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Tuple

from .constants import (
    MAX_NAME_LENGTH,
    MAX_QUANTITY,
    MAX_PRICE,
    ERROR_REQUIRED_FIELD,
    ERROR_INVALID_INTEGER,
    ERROR_INVALID_NUMBER,
    ERROR_INVALID_POSITIVE,
    ERROR_INVALID_NON_NEGATIVE,
    ERROR_INVALID_PRICE_PRECISION,
)


def validate_required_string(value: Optional[str], field_name: str = "Field") -> Tuple[bool, str]:
    """
    Validate that a string field is not empty.

    Args:
        value: The string value to validate
        field_name: Name of the field for error messages

    Returns:
        Tuple of (is_valid, error_message)
    """
    if value is None or not isinstance(value, str) or value.strip() == "":
        return False, f"{field_name}: {ERROR_REQUIRED_FIELD}"
    return True, ""


def validate_string_length(
    value: str, max_length: int = MAX_NAME_LENGTH, field_name: str = "Field"
) -> Tuple[bool, str]:
    """
    Validate that a string doesn't exceed maximum length.

    Returns:
        Tuple of (is_valid, error_message)
    """
    if value and len(value) > max_length:
        return False, f"{field_name}: Must be {max_length} characters or less"
    return True, ""


def parse_integer(value: Any) -> Optional[int]:
    """
    Convert a request value to int, or None if it is not a whole number.

    Accepts ints, integral floats (``5.0``) and numeric strings (``"5"``).
    Booleans are rejected.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, (str, Decimal)):
        try:
            number = Decimal(str(value).strip())
        except InvalidOperation:
            return None
        if not number.is_finite() or number != number.to_integral_value():
            return None
        return int(number)
    return None


def parse_decimal(value: Any) -> Optional[Decimal]:
    """Convert a request value to Decimal, or None if it is not a finite number."""
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = Decimal(str(value).strip())
    except InvalidOperation:
        return None
    return number if number.is_finite() else None


def validate_non_negative_integer(value: Any, field_name: str = "Field") -> Tuple[bool, str]:
    """
    Validate that a value is a whole number >= 0.

    Returns:
        Tuple of (is_valid, error_message)
    """
    number = parse_integer(value)
    if number is None:
        return False, f"{field_name}: {ERROR_INVALID_INTEGER}"
    if number < 0:
        return False, f"{field_name}: {ERROR_INVALID_NON_NEGATIVE}"
    if number > MAX_QUANTITY:
        return False, f"{field_name}: Must be {MAX_QUANTITY} or less"
    return True, ""


def validate_positive_integer(value: Any, field_name: str = "Field") -> Tuple[bool, str]:
    """
    Validate that a value is a whole number > 0.

    Returns:
        Tuple of (is_valid, error_message)
    """
    is_valid, error = validate_non_negative_integer(value, field_name)
    if not is_valid:
        return is_valid, error
    if parse_integer(value) == 0:
        return False, f"{field_name}: {ERROR_INVALID_POSITIVE}"
    return True, ""


def validate_price(value: Any, field_name: str = "price") -> Tuple[bool, str]:
    """
    Validate that a price is a non-negative number within limits.

    Prices are stored with two decimal places, so finer values are rejected
    rather than rounded.

    Returns:
        Tuple of (is_valid, error_message)
    """
    number = parse_decimal(value)
    if number is None:
        return False, f"{field_name}: {ERROR_INVALID_NUMBER}"
    if number < 0:
        return False, f"{field_name}: {ERROR_INVALID_NON_NEGATIVE}"
    if number > MAX_PRICE:
        return False, f"{field_name}: Must be {MAX_PRICE} or less"
    if number != number.quantize(Decimal("0.01")):
        return False, f"{field_name}: {ERROR_INVALID_PRICE_PRECISION}"
    return True, ""
