"""
RawMaterialBatch model for per-lot raw material stock tracking.

This module contains the RawMaterialBatch model, one purchase lot of a named
material, and BatchUsage, the append-only consumption history of a lot.
"""

from decimal import Decimal

from sqlalchemy import (
    Column,
    Integer,
    String,
    Date,
    DateTime,
    ForeignKey,
    Index,
    CheckConstraint,
    Numeric,
)
from sqlalchemy.orm import relationship

from .base import BaseModel, _serialize_value
from bakery_ledger.utils.datetime_utils import utc_now


class RawMaterialBatch(BaseModel):
    """
    RawMaterialBatch model for one purchase lot of a raw material.

    Several batches may share a name: each is a separate purchase at its own
    price. Batches of one name form the pool that usage requests are
    allocated across, oldest lot first.

    Attributes:
        name: Material name (e.g. "Flour")
        price: Purchase price per unit for this lot
        initial_stock: Quantity received (grows when a same-price receipt merges in)
        current_stock: Quantity remaining (decremented only by allocation)
        price_updated_at: When this lot's price was last recorded (creation,
            a same-price receipt merging in, or a price patch)
        version_id: Optimistic concurrency counter, bumped on every UPDATE

    Relationships:
        daily_usage: One-to-Many with BatchUsage, in recording order
    """

    __tablename__ = "raw_material_batches"

    name = Column(String(200), nullable=False, index=True)
    price = Column(Numeric(12, 2), nullable=False)
    price_updated_at = Column(DateTime, nullable=False, default=utc_now)

    initial_stock = Column(Integer, nullable=False, default=0)
    current_stock = Column(Integer, nullable=False, default=0)

    version_id = Column(Integer, nullable=False)

    daily_usage = relationship(
        "BatchUsage",
        back_populates="batch",
        cascade="all, delete-orphan",
        order_by="BatchUsage.id",
    )

    __mapper_args__ = {"version_id_col": version_id}

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_batch_price_non_negative"),
        CheckConstraint("current_stock >= 0", name="ck_batch_current_stock_non_negative"),
        CheckConstraint(
            "current_stock <= initial_stock", name="ck_batch_current_within_initial"
        ),
        Index("idx_batch_name_created", "name", "created_at"),
    )

    @property
    def used(self) -> int:
        """Quantity consumed from this lot so far."""
        return (self.initial_stock or 0) - (self.current_stock or 0)

    @property
    def remaining(self) -> int:
        """Quantity still available in this lot."""
        return self.current_stock or 0

    @property
    def out_of_stock(self) -> bool:
        """True once the lot is exhausted."""
        return self.remaining <= 0

    @property
    def stock_value(self) -> Decimal:
        """
        Value of the remaining stock.

        Returns:
            price * current_stock
        """
        return Decimal(str(self.price or 0)) * self.remaining

    def to_dict(self, include_relationships: bool = False) -> dict:
        """
        Convert batch to dictionary with derived stock fields.

        Args:
            include_relationships: If True, include the daily usage history

        Returns:
            Dictionary representation
        """
        result = super().to_dict(include_relationships=False)
        result.pop("version_id", None)

        result["used"] = self.used
        result["remaining"] = self.remaining
        result["out_of_stock"] = self.out_of_stock
        result["stock_value"] = float(self.stock_value)

        if include_relationships:
            result["daily_usage"] = [usage.to_dict() for usage in self.daily_usage]

        return result


class BatchUsage(BaseModel):
    """
    One consumption record against a batch.

    Attributes:
        batch_id: Foreign key to the consumed RawMaterialBatch
        usage_date: Calendar day the consumption was recorded
        quantity: Units deducted from the batch
        unit_price: Batch price at the time of consumption
    """

    __tablename__ = "batch_usages"

    batch_id = Column(
        Integer,
        ForeignKey("raw_material_batches.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    usage_date = Column(Date, nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=True)

    batch = relationship("RawMaterialBatch", back_populates="daily_usage")

    __table_args__ = (CheckConstraint("quantity > 0", name="ck_batch_usage_quantity_positive"),)

    def to_dict(self, include_relationships: bool = False) -> dict:
        return {
            "id": self.id,
            "batch_id": self.batch_id,
            "date": _serialize_value(self.usage_date),
            "quantity": self.quantity,
            "unit_price": _serialize_value(self.unit_price),
        }

    def __repr__(self) -> str:
        return (
            f"BatchUsage(id={self.id}, batch_id={self.batch_id}, "
            f"date={self.usage_date}, quantity={self.quantity})"
        )
