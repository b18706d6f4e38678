"""Summary Service - daily and date-range production summaries.

This module replays production logs in a date window and joins their
material usage links against the current raw material batches to derive
output counts, production value, flour consumption, wages owed and material
cost. It never writes.

Rules:
- Flour is any batch whose name matches FLOUR_MATERIAL_NAME case-insensitively
- A shift's wages are flour_used * WAGE_RATE_PER_FLOUR_UNIT, or 0 once every
  log contributing to it has wages_paid set
- Usage cost is priced at the most recently recorded price of the material
  name (by price_updated_at, which receipts and price patches refresh);
  the price captured at allocation is reported alongside as
  cost_at_consumption
- Links to batches that no longer exist contribute nothing
- total_stock_cost values remaining stock (price * current_stock) over all
  batches, regardless of the date window

Example Usage:
    >>> summaries = SummaryService(database)
    >>> summaries.daily_summary(date(2024, 3, 1))["shifts"][0]["worker_wages"]
    2500.0
"""

from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from ..models import ProductionLog, RawMaterialBatch
from ..utils.constants import ERROR_INVALID_DATE, FLOUR_MATERIAL_NAME, WAGE_RATE_PER_FLOUR_UNIT
from ..utils.datetime_utils import day_bounds, range_bounds, utc_now
from .database import Database
from .exceptions import PersistenceError, ValidationError
from .logging_utils import get_service_logger

logger = get_service_logger(__name__)


def _money(value: Decimal) -> float:
    return float(value)


def is_flour(material_name: Optional[str]) -> bool:
    """True if a batch name denotes flour (case-insensitive)."""
    return bool(material_name) and material_name.strip().lower() == FLOUR_MATERIAL_NAME.lower()


def calculate_wages(flour_used: int, all_wages_paid: bool) -> Decimal:
    """Wages owed for a group of logs."""
    if all_wages_paid:
        return Decimal("0")
    return flour_used * WAGE_RATE_PER_FLOUR_UNIT


@dataclass
class _ShiftTotals:
    """Running totals for one shift (or one shift on one day)."""

    name: str
    cakes_sold: int = 0
    bread_sold: int = 0
    total_cake_value: Decimal = Decimal("0")
    flour_used: int = 0
    log_count: int = 0
    all_wages_paid: bool = True
    worker_wages: Decimal = Decimal("0")
    days: Dict[date, "_ShiftTotals"] = field(default_factory=dict)

    def add(self, log: ProductionLog, flour_used: int) -> None:
        self.cakes_sold += log.standard_cakes or 0
        self.bread_sold += log.bread or 0
        self.total_cake_value += Decimal(str(log.total_value or 0))
        self.flour_used += flour_used
        self.log_count += 1
        self.all_wages_paid = self.all_wages_paid and bool(log.wages_paid)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "cakes_sold": self.cakes_sold,
            "bread_sold": self.bread_sold,
            "total_cake_value": _money(self.total_cake_value),
            "flour_used": self.flour_used,
            "worker_wages": _money(self.worker_wages),
            "all_wages_paid": self.all_wages_paid,
            "log_count": self.log_count,
        }


class _BatchCatalog:
    """Snapshot of all batches used to resolve usage links."""

    def __init__(self, batches: Iterable[RawMaterialBatch]):
        self.by_id: Dict[int, RawMaterialBatch] = {}
        self.latest_price: Dict[str, Decimal] = {}
        stamps: Dict[str, Tuple[Any, int]] = {}
        for batch in batches:
            self.by_id[batch.id] = batch
            # Most recently recorded price wins; id breaks ties
            stamp = (batch.price_updated_at or batch.created_at, batch.id)
            if batch.name not in stamps or stamp > stamps[batch.name]:
                stamps[batch.name] = stamp
                self.latest_price[batch.name] = Decimal(str(batch.price))

    def flour_in(self, log: ProductionLog) -> int:
        total = 0
        for usage in log.materials_used:
            batch = self.by_id.get(usage.batch_id)
            if batch is not None and is_flour(batch.name):
                total += usage.quantity
        return total

    def stock_cost(self) -> Decimal:
        return sum((batch.stock_value for batch in self.by_id.values()), Decimal("0"))

    def usage_by_material(self, logs: Iterable[ProductionLog]) -> Dict[str, Dict[str, Any]]:
        usage: Dict[str, Dict[str, Any]] = OrderedDict()
        for log in logs:
            for link in log.materials_used:
                batch = self.by_id.get(link.batch_id)
                if batch is None:
                    continue
                entry = usage.setdefault(
                    batch.name,
                    {"quantity": 0, "cost": Decimal("0"), "cost_at_consumption": Decimal("0")},
                )
                latest = self.latest_price[batch.name]
                captured = (
                    Decimal(str(link.unit_price)) if link.unit_price is not None else latest
                )
                entry["quantity"] += link.quantity
                entry["cost"] += latest * link.quantity
                entry["cost_at_consumption"] += captured * link.quantity

        return {
            name: {
                "quantity": entry["quantity"],
                "price": _money(self.latest_price[name]),
                "cost": _money(entry["cost"]),
                "cost_at_consumption": _money(entry["cost_at_consumption"]),
            }
            for name, entry in usage.items()
        }

    def stock_by_material(self) -> Dict[str, Dict[str, Any]]:
        materials: Dict[str, Dict[str, Any]] = OrderedDict()
        for batch in self.by_id.values():
            entry = materials.setdefault(
                batch.name,
                {"price": _money(self.latest_price[batch.name]), "used": 0, "remaining": 0,
                 "batches": 0},
            )
            entry["used"] += batch.used
            entry["remaining"] += batch.remaining
            entry["batches"] += 1
        for entry in materials.values():
            entry["out_of_stock"] = entry["remaining"] <= 0
        return materials


class SummaryService:
    """
    Read-only production summaries.
    """

    def __init__(self, database: Database):
        self._db = database

    def _load(
        self, sess: Session, start, end
    ) -> Tuple[List[ProductionLog], _BatchCatalog]:
        logs = (
            sess.query(ProductionLog)
            .options(selectinload(ProductionLog.materials_used))
            .filter(ProductionLog.date >= start, ProductionLog.date < end)
            .order_by(ProductionLog.date.asc(), ProductionLog.id.asc())
            .all()
        )
        batches = (
            sess.query(RawMaterialBatch)
            .order_by(RawMaterialBatch.created_at.asc(), RawMaterialBatch.id.asc())
            .all()
        )
        return logs, _BatchCatalog(batches)

    @staticmethod
    def _group_by_shift(
        logs: List[ProductionLog], catalog: _BatchCatalog
    ) -> "OrderedDict[str, _ShiftTotals]":
        """Group logs by shift, with a nested per-day group for the wage rule."""
        shifts: "OrderedDict[str, _ShiftTotals]" = OrderedDict()
        for log in logs:
            flour = catalog.flour_in(log)
            totals = shifts.setdefault(log.shift, _ShiftTotals(name=log.shift))
            totals.add(log, flour)
            log_day = log.date.date()
            day_totals = totals.days.setdefault(log_day, _ShiftTotals(name=log.shift))
            day_totals.add(log, flour)

        for totals in shifts.values():
            for day_totals in totals.days.values():
                day_totals.worker_wages = calculate_wages(
                    day_totals.flour_used, day_totals.all_wages_paid
                )
            totals.worker_wages = sum(
                (day_totals.worker_wages for day_totals in totals.days.values()), Decimal("0")
            )
        return shifts

    @staticmethod
    def _totals(shifts: Iterable[_ShiftTotals]) -> Dict[str, Any]:
        shifts = list(shifts)
        return {
            "cakes_sold": sum(s.cakes_sold for s in shifts),
            "bread_sold": sum(s.bread_sold for s in shifts),
            "total_cake_value": _money(sum((s.total_cake_value for s in shifts), Decimal("0"))),
            "flour_used": sum(s.flour_used for s in shifts),
            "worker_wages": _money(sum((s.worker_wages for s in shifts), Decimal("0"))),
            "all_wages_paid": all(s.all_wages_paid for s in shifts),
        }

    def daily_summary(self, day: date) -> Dict[str, Any]:
        """
        Summarize one calendar day, broken down by shift.

        Args:
            day: Calendar date; logs in ``[day, day + 1)`` are included

        Returns:
            Dict with keys:
                - "date" (str)
                - "shifts" (List[Dict]): per shift cakes_sold, bread_sold,
                  total_cake_value, flour_used, worker_wages, all_wages_paid
                - "totals" (Dict): the same figures over all shifts
                - "raw_materials" (Dict): per material price/used/remaining
                - "raw_material_usage" (Dict): per material quantity and cost
                - "total_stock_cost" (float)
                - "last_updated" (str)
        """
        if not isinstance(day, date):
            raise ValidationError([f"date: {ERROR_INVALID_DATE}"])
        start, end = day_bounds(day)

        try:
            with self._db.session_scope() as sess:
                logs, catalog = self._load(sess, start, end)
                shifts = self._group_by_shift(logs, catalog)
                summary = {
                    "date": day.isoformat(),
                    "shifts": [totals.to_dict() for totals in shifts.values()],
                    "totals": self._totals(shifts.values()),
                    "raw_materials": catalog.stock_by_material(),
                    "raw_material_usage": catalog.usage_by_material(logs),
                    "total_stock_cost": _money(catalog.stock_cost()),
                    "last_updated": utc_now().isoformat(),
                }
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Failed to build daily summary for {day}", original_error=e
            ) from e

        logger.debug(f"Daily summary for {day}: {len(logs)} logs, {len(shifts)} shifts")
        return summary

    def range_summary(self, start_date: date, end_date: date) -> Dict[str, Any]:
        """
        Summarize every log from start_date through end_date (both inclusive).

        Wages are computed per (day, shift) with the daily rule and summed, so
        a one-day range reports the same wages as that day's shifts.

        Returns:
            Dict with keys "start_date", "end_date", the overall totals
            (cakes_sold, bread_sold, total_cake_value, flour_used,
            worker_wages, all_wages_paid), "shifts", "raw_material_usage",
            "total_stock_cost" and "last_updated"
        """
        if not isinstance(start_date, date) or not isinstance(end_date, date):
            raise ValidationError(["start_date/end_date: Must be ISO dates (YYYY-MM-DD)"])
        if start_date > end_date:
            raise ValidationError(["start_date: Must not be after end_date"])
        start, end = range_bounds(start_date, end_date)

        try:
            with self._db.session_scope() as sess:
                logs, catalog = self._load(sess, start, end)
                shifts = self._group_by_shift(logs, catalog)
                summary = {
                    "start_date": start_date.isoformat(),
                    "end_date": end_date.isoformat(),
                    **self._totals(shifts.values()),
                    "log_count": len(logs),
                    "shifts": [totals.to_dict() for totals in shifts.values()],
                    "raw_material_usage": catalog.usage_by_material(logs),
                    "total_stock_cost": _money(catalog.stock_cost()),
                    "last_updated": utc_now().isoformat(),
                }
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Failed to build summary for {start_date}..{end_date}", original_error=e
            ) from e

        return summary
