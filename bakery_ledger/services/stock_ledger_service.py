"""Stock Ledger Service - raw material batches and stock allocation.

This module provides business logic for raw material stock including
batch receipt (create-or-merge by price), listing, patching and the
allocation of usage requests across every batch of a material.

Methods follow the session pattern:
- If session provided: caller owns the transaction (and the material locks)
- If session is None: the method opens its own transaction via session_scope()

Key Features:
- Batches are the unit of price history: a receipt at a new price opens a
  new batch, a receipt at an existing price merges into that batch
- Proportional allocation across batches (see allocation.py)
- Per-material locks around read-then-write sequences
- Optimistic version check on every batch UPDATE
- All-or-nothing writes: any storage failure rolls back the whole request

Example Usage:
    >>> ledger = StockLedger(database)
    >>> ledger.receive_stock("Flour", Decimal("10"), 30)
    >>> ledger.receive_stock("Flour", Decimal("12"), 70)
    >>> ledger.allocate("Flour", 40)
    [{'batch_id': 1, 'quantity': 12, ...}, {'batch_id': 2, 'quantity': 28, ...}]
"""

import logging
import threading
from contextlib import ExitStack, contextmanager
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, Iterable, Iterator, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from ..models import BatchUsage, RawMaterialBatch
from ..utils.constants import MAX_NAME_LENGTH, UPDATABLE_MATERIAL_FIELDS
from ..utils.datetime_utils import utc_now, utc_today
from ..utils.validators import (
    parse_decimal,
    parse_integer,
    validate_non_negative_integer,
    validate_positive_integer,
    validate_price,
    validate_required_string,
    validate_string_length,
)
from .allocation import allocate_proportionally
from .database import Database
from .exceptions import (
    InsufficientStock,
    MaterialNotFound,
    PersistenceError,
    ServiceError,
    ValidationError,
)
from .logging_utils import get_service_logger, log_operation

logger = get_service_logger(__name__)


def _lock_key(material_name: str) -> str:
    return material_name.strip().lower()


def _next_price_stamp(batches: Iterable[RawMaterialBatch]) -> datetime:
    """Now, or just after the newest price stamp of the pool if the clock has not moved on."""
    stamp = utc_now()
    latest = max((b.price_updated_at for b in batches if b.price_updated_at), default=None)
    if latest is not None and stamp <= latest:
        stamp = latest + timedelta(microseconds=1)
    return stamp


class StockLedger:
    """
    Owns raw material batches and the allocation of usage against them.
    """

    def __init__(self, database: Database):
        self._db = database
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    # =========================================================================
    # Locking
    # =========================================================================

    def _lock_for(self, material_name: str) -> threading.Lock:
        key = _lock_key(material_name)
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def material_locks(self, material_names: Iterable[str]) -> Iterator[None]:
        """
        Hold the locks of several materials for the duration of the block.

        Locks are taken in sorted key order so two requests touching the same
        materials cannot deadlock.
        """
        keys = sorted({_lock_key(name) for name in material_names})
        with ExitStack() as stack:
            for key in keys:
                stack.enter_context(self._lock_for(key))
            yield

    # =========================================================================
    # Queries
    # =========================================================================

    def get_batches_by_name(
        self,
        material_name: str,
        case_sensitive: bool = True,
        session: Optional[Session] = None,
    ) -> List[RawMaterialBatch]:
        """
        Get all batches of a material ordered by creation time (oldest first).

        Args:
            material_name: Material name
            case_sensitive: If False, match the name case-insensitively
            session: Optional database session

        Returns:
            List[RawMaterialBatch]: Batches ordered by created_at, then id
        """

        def _do_query(sess: Session) -> List[RawMaterialBatch]:
            query = sess.query(RawMaterialBatch).options(
                selectinload(RawMaterialBatch.daily_usage)
            )
            if case_sensitive:
                query = query.filter(RawMaterialBatch.name == material_name)
            else:
                query = query.filter(func.lower(RawMaterialBatch.name) == material_name.lower())
            return query.order_by(
                RawMaterialBatch.created_at.asc(), RawMaterialBatch.id.asc()
            ).all()

        if session is not None:
            return _do_query(session)
        with self._db.session_scope() as sess:
            return _do_query(sess)

    def get_batch(self, material_id: int, session: Optional[Session] = None) -> RawMaterialBatch:
        """
        Get one batch by id.

        Raises:
            MaterialNotFound: If no batch has that id
        """

        def _do_get(sess: Session) -> RawMaterialBatch:
            batch = (
                sess.query(RawMaterialBatch)
                .options(selectinload(RawMaterialBatch.daily_usage))
                .filter(RawMaterialBatch.id == material_id)
                .first()
            )
            if batch is None:
                raise MaterialNotFound(material_id)
            return batch

        if session is not None:
            return _do_get(session)
        with self._db.session_scope() as sess:
            return _do_get(sess)

    def get_material(self, material_id: int) -> Dict[str, Any]:
        """Get one batch as a dictionary, including its usage history."""
        with self._db.session_scope() as session:
            return self.get_batch(material_id, session=session).to_dict(
                include_relationships=True
            )

    def list_materials(self, session: Optional[Session] = None) -> List[Dict[str, Any]]:
        """
        List every batch with derived stock fields.

        Each entry carries ``used`` (initial - current), ``remaining``
        (current), ``out_of_stock``, ``stock_value`` and ``daily_usage``.
        """

        def _do_list(sess: Session) -> List[Dict[str, Any]]:
            batches = (
                sess.query(RawMaterialBatch)
                .options(selectinload(RawMaterialBatch.daily_usage))
                .order_by(
                    RawMaterialBatch.name.asc(),
                    RawMaterialBatch.created_at.asc(),
                    RawMaterialBatch.id.asc(),
                )
                .all()
            )
            return [batch.to_dict(include_relationships=True) for batch in batches]

        if session is not None:
            return _do_list(session)
        with self._db.session_scope() as sess:
            return _do_list(sess)

    # =========================================================================
    # Receipts and patches
    # =========================================================================

    def receive_stock(self, name: str, price: Any, quantity: Any) -> Dict[str, Any]:
        """
        Record a stock receipt.

        If a batch with the same name and exactly the same price exists, the
        quantity is merged into it (both initial and current stock grow).
        Otherwise a new batch is created at the submitted price.

        Args:
            name: Material name
            price: Price per unit
            quantity: Whole number of units received (> 0)

        Returns:
            Dict of the created or merged batch, with ``merged`` set accordingly

        Raises:
            ValidationError: If any field is missing or invalid
            PersistenceError: If the write fails
        """
        errors = []
        for is_valid, error in (
            validate_required_string(name, "name"),
            validate_string_length(name if isinstance(name, str) else "", MAX_NAME_LENGTH, "name"),
            validate_price(price),
            validate_positive_integer(quantity, "quantity"),
        ):
            if not is_valid:
                errors.append(error)
        if errors:
            raise ValidationError(errors)

        name = name.strip()
        unit_price = parse_decimal(price)
        units = parse_integer(quantity)

        def _do_receive(sess: Session) -> Dict[str, Any]:
            batches = self.get_batches_by_name(name, session=sess)
            target = next(
                (batch for batch in batches if Decimal(str(batch.price)) == unit_price),
                None,
            )
            stamp = _next_price_stamp(batches)
            merged = target is not None
            if merged:
                target.initial_stock += units
                target.current_stock += units
                target.price_updated_at = stamp
            else:
                target = RawMaterialBatch(
                    name=name,
                    price=unit_price,
                    initial_stock=units,
                    current_stock=units,
                    price_updated_at=stamp,
                )
                sess.add(target)
            sess.flush()
            result = target.to_dict(include_relationships=True)
            result["merged"] = merged
            return result

        try:
            with self.material_locks([name]):
                with self._db.session_scope() as sess:
                    result = _do_receive(sess)
        except SQLAlchemyError as e:
            log_operation(
                logger, "receive_stock", "error", level=logging.ERROR,
                material_name=name, error=str(e),
            )
            raise PersistenceError(f"Failed to receive stock for {name}", original_error=e) from e

        log_operation(
            logger,
            operation="receive_stock",
            outcome="merged" if result["merged"] else "created",
            material_name=name,
            batch_id=result["id"],
            quantity=units,
        )
        return result

    def update_material(self, material_id: int, fields: Dict[str, Any]) -> Dict[str, Any]:
        """
        Patch a batch.

        Only ``name``, ``price``, ``initial_stock`` and ``current_stock`` can be
        changed, and the result must keep ``0 <= current_stock <= initial_stock``.
        A price change is stamped as the material's most recent price. The
        material lock of the current name (and of the new name on a rename)
        is held for the write.

        Raises:
            ValidationError: Unknown field, bad value or broken stock bounds
            MaterialNotFound: If no batch has that id
            PersistenceError: If the write fails
        """
        if not isinstance(fields, dict) or not fields:
            raise ValidationError(["fields: At least one field to update is required"])

        unknown = sorted(set(fields) - UPDATABLE_MATERIAL_FIELDS)
        if unknown:
            raise ValidationError([f"{field}: Field cannot be updated" for field in unknown])

        errors = []
        if "name" in fields:
            for is_valid, error in (
                validate_required_string(fields["name"], "name"),
                validate_string_length(
                    fields["name"] if isinstance(fields["name"], str) else "",
                    MAX_NAME_LENGTH,
                    "name",
                ),
            ):
                if not is_valid:
                    errors.append(error)
        if "price" in fields:
            is_valid, error = validate_price(fields["price"])
            if not is_valid:
                errors.append(error)
        for field in ("initial_stock", "current_stock"):
            if field in fields:
                is_valid, error = validate_non_negative_integer(fields[field], field)
                if not is_valid:
                    errors.append(error)
        if errors:
            raise ValidationError(errors)

        new_name = fields["name"].strip() if "name" in fields else None

        def _do_update(sess: Session, locked_name: str) -> Optional[Dict[str, Any]]:
            batch = self.get_batch(material_id, session=sess)
            if batch.name != locked_name:
                # Renamed while waiting for the lock
                return None
            initial = parse_integer(fields.get("initial_stock", batch.initial_stock))
            current = parse_integer(fields.get("current_stock", batch.current_stock))
            if current > initial:
                raise ValidationError(["current_stock: Cannot exceed initial_stock"])

            if new_name is not None:
                batch.name = new_name
            if "price" in fields:
                pool = self.get_batches_by_name(batch.name, session=sess)
                batch.price = parse_decimal(fields["price"])
                batch.price_updated_at = _next_price_stamp(pool)
            batch.initial_stock = initial
            batch.current_stock = current
            sess.flush()
            return batch.to_dict(include_relationships=True)

        try:
            result = None
            while result is None:
                locked_name = self.get_batch(material_id).name
                names = [locked_name] if new_name is None else [locked_name, new_name]
                with self.material_locks(names):
                    with self._db.session_scope() as sess:
                        result = _do_update(sess, locked_name)
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Failed to update raw material {material_id}", original_error=e
            ) from e

        log_operation(
            logger,
            operation="update_material",
            outcome="success",
            batch_id=material_id,
            fields=sorted(fields),
        )
        return result

    # =========================================================================
    # Allocation
    # =========================================================================

    def _apply_allocation(
        self,
        batch: RawMaterialBatch,
        quantity: int,
        usage_date: date,
    ) -> None:
        """Decrement one batch and append its usage record."""
        batch.current_stock -= quantity
        batch.daily_usage.append(
            BatchUsage(usage_date=usage_date, quantity=quantity, unit_price=batch.price)
        )

    def allocate_from_batches(
        self,
        batches: List[RawMaterialBatch],
        quantity: int,
        material_name: str,
        session: Session,
        usage_date: Optional[date] = None,
    ) -> List[Dict[str, Any]]:
        """
        Allocate ``quantity`` across already-loaded batches and apply it.

        The caller owns the transaction and must hold the material lock.

        Returns:
            List of dicts with batch_id, quantity and unit_price, in batch order
        """
        allocations = allocate_proportionally(
            [(batch.id, batch.current_stock) for batch in batches],
            quantity,
            material_name,
        )
        if not allocations:
            return []

        usage_date = usage_date or utc_today()
        by_id = {batch.id: batch for batch in batches}
        consumed = []
        for allocation in allocations:
            batch = by_id[allocation.batch_id]
            self._apply_allocation(batch, allocation.quantity, usage_date)
            consumed.append(
                {
                    "batch_id": batch.id,
                    "quantity": allocation.quantity,
                    "unit_price": batch.price,
                }
            )
        session.flush()
        return consumed

    def allocate(
        self,
        material_name: str,
        quantity: int,
        session: Optional[Session] = None,
        usage_date: Optional[date] = None,
    ) -> List[Dict[str, Any]]:
        """
        Deduct ``quantity`` of a material across all of its batches.

        **CRITICAL FUNCTION**: every batch write of one request commits
        together or not at all.

        Args:
            material_name: Name shared by the batch pool
            quantity: Whole number of units to deduct
            session: Optional session. When given, the caller owns the
                transaction and must hold ``material_locks([material_name])``.
            usage_date: Day recorded on the usage entries (defaults to today)

        Returns:
            List of dicts with batch_id, quantity and unit_price

        Raises:
            ValidationError: If quantity is not a non-negative whole number
            InsufficientStock: If quantity exceeds the pool's total stock
            PersistenceError: If a write fails; nothing is applied
        """

        def _do_allocate(sess: Session) -> List[Dict[str, Any]]:
            batches = self.get_batches_by_name(material_name, session=sess)
            return self.allocate_from_batches(
                batches, quantity, material_name, sess, usage_date=usage_date
            )

        try:
            if session is not None:
                consumed = _do_allocate(session)
            else:
                with self.material_locks([material_name]):
                    with self._db.session_scope() as sess:
                        consumed = _do_allocate(sess)
        except InsufficientStock as e:
            log_operation(
                logger, "allocate", "insufficient_stock", level=logging.WARNING,
                material_name=material_name, required=e.required, available=e.available,
            )
            raise
        except ServiceError:
            raise
        except SQLAlchemyError as e:
            log_operation(
                logger, "allocate", "error", level=logging.ERROR,
                material_name=material_name, quantity=quantity, error=str(e),
            )
            raise PersistenceError(
                f"Failed to allocate {quantity} of {material_name}", original_error=e
            ) from e

        log_operation(
            logger,
            operation="allocate",
            outcome="success",
            level=logging.DEBUG,
            material_name=material_name,
            quantity=quantity,
            batches=[item["batch_id"] for item in consumed],
        )
        return consumed
