"""Proportional stock allocation across batches of one material.

This module holds the pure allocation algorithm used by the stock ledger.
It takes an ordered sequence of ``(batch_id, current_stock)`` pairs and
returns how much of a requested quantity each batch supplies. It performs no
I/O so it can be tested without a database.

Algorithm:
    1. total = sum of current_stock; reject quantity > total
    2. Each batch gets floor(current_stock * quantity / total)
    3. The shortfall left by rounding is handed out in batch order
       (oldest first), capped by each batch's spare stock

Example:
    >>> allocate_proportionally([(1, 30), (2, 70)], 40)
    [Allocation(batch_id=1, quantity=12), Allocation(batch_id=2, quantity=28)]
"""

from typing import List, NamedTuple, Sequence, Tuple

from .exceptions import InsufficientStock, ValidationError


class Allocation(NamedTuple):
    """Quantity drawn from one batch."""

    batch_id: int
    quantity: int


def allocate_proportionally(
    stocks: Sequence[Tuple[int, int]],
    quantity: int,
    material_name: str = "",
) -> List[Allocation]:
    """
    Split ``quantity`` across batches in proportion to their current stock.

    Args:
        stocks: Ordered (batch_id, current_stock) pairs, oldest batch first
        quantity: Whole number of units requested
        material_name: Used only in the InsufficientStock message

    Returns:
        Allocations in batch order, omitting batches that supply nothing.
        The quantities sum to exactly ``quantity``.

    Raises:
        ValidationError: If quantity or a stock level is not a non-negative integer
        InsufficientStock: If quantity exceeds the total stock of the pool
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError([f"quantity: must be a whole number, got {quantity!r}"])
    if quantity < 0:
        raise ValidationError([f"quantity: must be zero or greater, got {quantity}"])

    for batch_id, current_stock in stocks:
        if current_stock < 0:
            raise ValidationError([f"batch {batch_id}: current stock is negative"])

    total = sum(current_stock for _, current_stock in stocks)
    if quantity > total:
        raise InsufficientStock(material_name, quantity, total)

    if quantity == 0:
        return []

    # Integer floor of current_stock / total * quantity, free of float rounding
    shares = [current_stock * quantity // total for _, current_stock in stocks]

    remainder = quantity - sum(shares)
    for index, (_, current_stock) in enumerate(stocks):
        if remainder == 0:
            break
        extra = min(remainder, current_stock - shares[index])
        shares[index] += extra
        remainder -= extra

    if remainder:
        raise RuntimeError(f"Allocation of {quantity} left {remainder} unassigned")

    return [
        Allocation(batch_id, share)
        for (batch_id, _), share in zip(stocks, shares)
        if share > 0
    ]
