"""Production Service - shift production submissions.

This module records production log rows: cake/bread output for a shift, and
raw material usage for a shift. Material usage is deducted from stock through
the StockLedger inside the same transaction that writes the log row, so a
failed allocation leaves neither stock changes nor a log behind.

Example Usage:
    >>> service = ProductionService(database, ledger)
    >>> service.log_cake_production("Shift 1", {"standard_cakes": 10, "bread": 4})
    {'id': 1, 'shift': 'Shift 1', 'total_value': 670.0, ...}
    >>> service.log_materials_usage("Shift 1", [{"material_id": 1, "quantity": 2}])
"""

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from ..models import ProductionLog, MaterialUsage
from ..utils.constants import BREAD_PRICE, CAKE_PRICE, MAX_SHIFT_LENGTH
from ..utils.datetime_utils import parse_datetime, range_bounds, utc_now
from ..utils.validators import (
    parse_integer,
    validate_non_negative_integer,
    validate_required_string,
    validate_string_length,
)
from .database import Database
from .exceptions import (
    PersistenceError,
    ProductionLogNotFound,
    ServiceError,
    ValidationError,
)
from .logging_utils import get_service_logger, log_operation
from .stock_ledger_service import StockLedger

logger = get_service_logger(__name__)

DateLike = Union[str, date, datetime, None]


def calculate_production_value(standard_cakes: int, bread: int) -> Decimal:
    """
    Monetary value of a cake/bread submission.

    Returns:
        standard_cakes * CAKE_PRICE + bread * BREAD_PRICE
    """
    return standard_cakes * CAKE_PRICE + bread * BREAD_PRICE


def _validate_shift(shift: Any) -> List[str]:
    errors = []
    for is_valid, error in (
        validate_required_string(shift, "shift"),
        validate_string_length(shift if isinstance(shift, str) else "", MAX_SHIFT_LENGTH, "shift"),
    ):
        if not is_valid:
            errors.append(error)
    return errors


def _resolve_log_date(log_date: DateLike, errors: List[str]) -> Optional[datetime]:
    if log_date is None:
        return utc_now()
    try:
        return parse_datetime(log_date)
    except (TypeError, ValueError):
        errors.append("date: Must be an ISO date or datetime")
        return None


class ProductionService:
    """
    Records production submissions for shifts.
    """

    def __init__(self, database: Database, ledger: StockLedger):
        self._db = database
        self._ledger = ledger

    def log_cake_production(
        self,
        shift: str,
        production: Dict[str, Any],
        log_date: DateLike = None,
    ) -> Dict[str, Any]:
        """
        Record cakes and bread produced by a shift.

        Args:
            shift: Shift label
            production: Dict with ``standard_cakes`` and ``bread`` counts
                (a missing count is treated as 0, at least one must be present)
            log_date: Optional date of the work (defaults to now)

        Returns:
            Dict of the created ProductionLog

        Raises:
            ValidationError: Missing shift, missing/malformed production payload
            PersistenceError: If the write fails
        """
        errors = _validate_shift(shift)
        if not isinstance(production, dict) or not (
            "standard_cakes" in production or "bread" in production
        ):
            errors.append("production: standard_cakes or bread is required")
            production = {}
        for field in ("standard_cakes", "bread"):
            if field in production:
                is_valid, error = validate_non_negative_integer(
                    production[field], f"production.{field}"
                )
                if not is_valid:
                    errors.append(error)
        when = _resolve_log_date(log_date, errors)
        if errors:
            raise ValidationError(errors)

        standard_cakes = parse_integer(production.get("standard_cakes", 0))
        bread = parse_integer(production.get("bread", 0))
        total_value = calculate_production_value(standard_cakes, bread)

        try:
            with self._db.session_scope() as session:
                log = ProductionLog(
                    date=when,
                    shift=shift.strip(),
                    standard_cakes=standard_cakes,
                    bread=bread,
                    total_value=total_value,
                    wages_paid=False,
                )
                session.add(log)
                session.flush()
                result = log.to_dict()
        except SQLAlchemyError as e:
            raise PersistenceError("Failed to log cake production", original_error=e) from e

        log_operation(
            logger,
            operation="log_cake_production",
            outcome="success",
            production_log_id=result["id"],
            shift=result["shift"],
            standard_cakes=standard_cakes,
            bread=bread,
        )
        return result

    def log_materials_usage(
        self,
        shift: str,
        materials: List[Dict[str, Any]],
        log_date: DateLike = None,
    ) -> Dict[str, Any]:
        """
        Record raw materials consumed by a shift and deduct them from stock.

        Each requested item names a batch by ``material_id``; the batch's name
        selects the pool of batches the quantity is allocated across.

        Args:
            shift: Shift label
            materials: List of ``{"material_id": int, "quantity": int}``
            log_date: Optional date of the work (defaults to now)

        Returns:
            Dict of the created ProductionLog with its materials_used links

        Raises:
            ValidationError: Missing shift or malformed material list
            MaterialNotFound: If a material_id does not exist
            InsufficientStock: If a material's batches cannot cover the request
            PersistenceError: If a write fails; no stock is deducted
        """
        errors = _validate_shift(shift)
        requests = []
        if not isinstance(materials, list) or not materials:
            errors.append("materials: At least one material is required")
        else:
            for index, item in enumerate(materials):
                if not isinstance(item, dict):
                    errors.append(f"materials[{index}]: Must be an object")
                    continue
                material_id = parse_integer(item.get("material_id"))
                if material_id is None:
                    errors.append(f"materials[{index}].material_id: This field is required")
                is_valid, error = validate_non_negative_integer(
                    item.get("quantity"), f"materials[{index}].quantity"
                )
                if not is_valid:
                    errors.append(error)
                elif material_id is not None:
                    requests.append((material_id, parse_integer(item["quantity"])))
        when = _resolve_log_date(log_date, errors)
        if errors:
            raise ValidationError(errors)

        def _do_log(sess: Session) -> Dict[str, Any]:
            log = ProductionLog(
                date=when,
                shift=shift.strip(),
                total_value=Decimal("0"),
                wages_paid=False,
            )
            for material_id, quantity in requests:
                consumed = self._ledger.allocate(
                    names[material_id],
                    quantity,
                    session=sess,
                    usage_date=when.date(),
                )
                for item in consumed:
                    log.materials_used.append(
                        MaterialUsage(
                            batch_id=item["batch_id"],
                            quantity=item["quantity"],
                            unit_price=item["unit_price"],
                        )
                    )
            sess.add(log)
            sess.flush()
            return log.to_dict()

        def _resolve_names(sess: Session) -> Dict[int, str]:
            return {
                material_id: self._ledger.get_batch(material_id, session=sess).name
                for material_id, _ in requests
            }

        try:
            # Names pick the locks; a rename before the locks are held forces another pass
            with self._db.session_scope() as session:
                names = _resolve_names(session)

            result = None
            while result is None:
                with self._ledger.material_locks(names.values()):
                    with self._db.session_scope() as sess:
                        current = _resolve_names(sess)
                        if current == names:
                            result = _do_log(sess)
                names = current
        except ServiceError:
            raise
        except SQLAlchemyError as e:
            log_operation(
                logger, "log_materials_usage", "error", level=logging.ERROR,
                shift=shift, error=str(e),
            )
            raise PersistenceError("Failed to log materials usage", original_error=e) from e

        log_operation(
            logger,
            operation="log_materials_usage",
            outcome="success",
            production_log_id=result["id"],
            shift=result["shift"],
            materials=[
                {"batch_id": usage["material_id"], "quantity": usage["quantity"]}
                for usage in result["materials_used"]
            ],
        )
        return result

    def get_log(self, log_id: int) -> Dict[str, Any]:
        """
        Get a production log by id.

        Raises:
            ProductionLogNotFound: If no log has that id
        """
        with self._db.session_scope() as session:
            log = (
                session.query(ProductionLog)
                .options(selectinload(ProductionLog.materials_used))
                .filter(ProductionLog.id == log_id)
                .first()
            )
            if log is None:
                raise ProductionLogNotFound(log_id)
            return log.to_dict()

    def list_logs(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> List[Dict[str, Any]]:
        """
        List production logs, oldest first, optionally within an inclusive day range.

        Args:
            start_date: First day to include (None for no lower bound)
            end_date: Last day to include (None for no upper bound)
        """
        if start_date and end_date and start_date > end_date:
            raise ValidationError(["start_date: Must not be after end_date"])

        with self._db.session_scope() as session:
            query = session.query(ProductionLog).options(
                selectinload(ProductionLog.materials_used)
            )
            if start_date is not None:
                start, _ = range_bounds(start_date, start_date)
                query = query.filter(ProductionLog.date >= start)
            if end_date is not None:
                _, end = range_bounds(end_date, end_date)
                query = query.filter(ProductionLog.date < end)
            logs = query.order_by(ProductionLog.date.asc(), ProductionLog.id.asc()).all()
            return [log.to_dict() for log in logs]
