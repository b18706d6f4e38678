"""
Constants for the Bakery Shift Ledger application.

This module defines all system-wide constants including:
- Application metadata
- Product prices used to value production
- Wage rate applied to flour consumption
- Validation limits
"""

from decimal import Decimal
from typing import FrozenSet

# ============================================================================
# Application Metadata
# ============================================================================

APP_NAME = "Bakery Shift Ledger"
APP_VERSION = "0.1.0"
DATABASE_VERSION = "1.0"
DATABASE_FILENAME = "bakery_ledger.db"

# ============================================================================
# Pricing and Wages
# ============================================================================

# Value of one unit of production (currency units)
CAKE_PRICE = Decimal("45")
BREAD_PRICE = Decimal("55")

# Wage owed per unit (bag) of flour consumed by a shift
WAGE_RATE_PER_FLOUR_UNIT = Decimal("500")

# Material whose consumption drives wages and the daily reset.
# Matched case-insensitively against batch names.
FLOUR_MATERIAL_NAME = "Flour"

# ============================================================================
# Validation Limits
# ============================================================================

MAX_NAME_LENGTH = 200
MAX_SHIFT_LENGTH = 50
MAX_QUANTITY = 1_000_000
MAX_PRICE = Decimal("100000000")

# Fields a material patch may touch
UPDATABLE_MATERIAL_FIELDS: FrozenSet[str] = frozenset(
    {"name", "price", "initial_stock", "current_stock"}
)

# ============================================================================
# Error Messages
# ============================================================================

ERROR_REQUIRED_FIELD = "This field is required"
ERROR_INVALID_INTEGER = "Must be a whole number"
ERROR_INVALID_NUMBER = "Must be a valid number"
ERROR_INVALID_POSITIVE = "Must be greater than zero"
ERROR_INVALID_NON_NEGATIVE = "Must be zero or greater"
ERROR_INVALID_DATE = "Must be an ISO date (YYYY-MM-DD)"
ERROR_INVALID_PRICE_PRECISION = "Must have at most 2 decimal places"
