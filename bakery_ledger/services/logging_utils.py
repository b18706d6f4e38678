"""Service layer logging utilities.

Provides structured logging functions for service operations, enabling
consistent log format and context across stock, production and wage
operations.

Usage:
    from bakery_ledger.services.logging_utils import get_service_logger, log_operation

    logger = get_service_logger(__name__)

    # Log successful operation
    log_operation(
        logger,
        operation="allocate",
        outcome="success",
        material_name="Flour",
        quantity=40,
    )

    # Log a rejected request
    log_operation(
        logger,
        operation="allocate",
        outcome="insufficient_stock",
        level=logging.WARNING,
        material_name="Flour",
        required=40,
        available=25,
    )
"""

import logging
from typing import Any


def get_service_logger(name: str) -> logging.Logger:
    """
    Get a logger configured for service operations.

    Args:
        name: Logger name (typically __name__ of the calling module)

    Returns:
        Logger instance with the 'bakery_ledger.services' prefix.

    Example:
        >>> logger = get_service_logger(__name__)
        >>> logger.name
        'bakery_ledger.services.stock_ledger_service'
    """
    # Extract just the module name if full path is provided
    if "." in name:
        name = name.split(".")[-1]
    return logging.getLogger(f"bakery_ledger.services.{name}")


def log_operation(
    logger: logging.Logger,
    operation: str,
    outcome: str,
    level: int = logging.INFO,
    **context: Any,
) -> None:
    """
    Log a service operation with structured context.

    The context is passed via the 'extra' parameter for structured logging.

    Args:
        logger: Logger instance to use
        operation: Operation name (e.g., "allocate", "pay_wages")
        outcome: Outcome description (e.g., "success", "insufficient_stock", "error")
        level: Log level (default: INFO). Use DEBUG for verbose/frequent logs.
        **context: Additional context fields (entity IDs, quantities, error details)
    """
    extra = {
        "operation": operation,
        "outcome": outcome,
        **context,
    }
    logger.log(level, f"{operation}: {outcome}", extra=extra)
