"""Wage Service - wage settlement for shifts.

Two settlement paths:
- pay_wages(shift, day): flag every log of one shift on one day as paid
- daily_reset(): end-of-day settlement; deducts the flour consumed by all
  unpaid logs from the flour batches and flags those logs as paid

Both are idempotent: once logs are paid, running them again changes nothing.
"""

import logging
from datetime import date
from typing import Any, Dict

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload

from ..models import ProductionLog, RawMaterialBatch
from ..utils.constants import ERROR_INVALID_DATE, FLOUR_MATERIAL_NAME, MAX_SHIFT_LENGTH
from ..utils.datetime_utils import day_bounds, utc_now, utc_today
from ..utils.validators import validate_required_string, validate_string_length
from .database import Database
from .exceptions import FlourBatchNotFound, PersistenceError, ServiceError, ValidationError
from .logging_utils import get_service_logger, log_operation
from .stock_ledger_service import StockLedger
from .summary_service import is_flour

logger = get_service_logger(__name__)


class WageService:
    """
    Settles wages owed for production logs.
    """

    def __init__(self, database: Database, ledger: StockLedger):
        self._db = database
        self._ledger = ledger

    def pay_wages(self, shift: str, day: date) -> Dict[str, Any]:
        """
        Mark every log of ``shift`` on ``day`` as wages paid.

        Args:
            shift: Shift label
            day: Calendar date of the work

        Returns:
            Dict with shift, date and ``updated`` (number of logs newly marked)

        Raises:
            ValidationError: If shift or date is missing
            PersistenceError: If the update fails
        """
        errors = []
        for is_valid, error in (
            validate_required_string(shift, "shift"),
            validate_string_length(shift if isinstance(shift, str) else "", MAX_SHIFT_LENGTH, "shift"),
        ):
            if not is_valid:
                errors.append(error)
        if not isinstance(day, date):
            errors.append(f"date: {ERROR_INVALID_DATE}")
        if errors:
            raise ValidationError(errors)

        start, end = day_bounds(day)
        try:
            with self._db.session_scope() as session:
                updated = (
                    session.query(ProductionLog)
                    .filter(
                        ProductionLog.shift == shift.strip(),
                        ProductionLog.date >= start,
                        ProductionLog.date < end,
                        ProductionLog.wages_paid.is_(False),
                    )
                    .update(
                        {ProductionLog.wages_paid: True, ProductionLog.updated_at: utc_now()},
                        synchronize_session=False,
                    )
                )
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to pay wages for {shift}", original_error=e) from e

        log_operation(
            logger,
            operation="pay_wages",
            outcome="success" if updated else "already_paid",
            shift=shift,
            date=day.isoformat(),
            updated=updated,
        )
        return {"shift": shift.strip(), "date": day.isoformat(), "updated": updated}

    def daily_reset(self) -> Dict[str, Any]:
        """
        Settle all unpaid logs at end of day.

        Sums the flour consumed by every log with wages_paid = False, deducts
        that total from the flour batches (proportionally, one usage entry
        per batch drawn down) and marks those logs paid.

        Returns:
            Dict with ``logs_settled``, ``flour_deducted`` and the per-batch
            ``allocations``

        Raises:
            FlourBatchNotFound: If no flour batch exists
            InsufficientStock: If the flour batches cannot cover the total;
                nothing is changed
            PersistenceError: If a write fails; nothing is changed
        """
        try:
            with self._ledger.material_locks([FLOUR_MATERIAL_NAME]):
                with self._db.session_scope() as session:
                    flour_batches = (
                        session.query(RawMaterialBatch)
                        .filter(func.lower(RawMaterialBatch.name) == FLOUR_MATERIAL_NAME.lower())
                        .order_by(RawMaterialBatch.created_at.asc(), RawMaterialBatch.id.asc())
                        .all()
                    )
                    if not flour_batches:
                        raise FlourBatchNotFound(FLOUR_MATERIAL_NAME)

                    unpaid = (
                        session.query(ProductionLog)
                        .options(selectinload(ProductionLog.materials_used))
                        .filter(ProductionLog.wages_paid.is_(False))
                        .order_by(ProductionLog.date.asc(), ProductionLog.id.asc())
                        .all()
                    )

                    batch_names = {
                        batch_id: name
                        for batch_id, name in session.query(
                            RawMaterialBatch.id, RawMaterialBatch.name
                        )
                    }
                    flour_total = sum(
                        usage.quantity
                        for log in unpaid
                        for usage in log.materials_used
                        if is_flour(batch_names.get(usage.batch_id))
                    )

                    allocations = self._ledger.allocate_from_batches(
                        flour_batches,
                        flour_total,
                        FLOUR_MATERIAL_NAME,
                        session,
                        usage_date=utc_today(),
                    )

                    for log in unpaid:
                        log.wages_paid = True
                    session.flush()
        except ServiceError as e:
            log_operation(
                logger, "daily_reset", "rejected", level=logging.WARNING, error=str(e)
            )
            raise
        except SQLAlchemyError as e:
            log_operation(logger, "daily_reset", "error", level=logging.ERROR, error=str(e))
            raise PersistenceError("Failed to run daily reset", original_error=e) from e

        result = {
            "logs_settled": len(unpaid),
            "flour_deducted": flour_total,
            "allocations": [
                {"batch_id": item["batch_id"], "quantity": item["quantity"]}
                for item in allocations
            ],
        }
        log_operation(logger, operation="daily_reset", outcome="success", **result)
        return result
