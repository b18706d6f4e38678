"""
ProductionLog model for per-shift production submissions.

A shift can submit several logs per day: cake production and materials usage
are recorded as separate rows. Material consumption is stored as
MaterialUsage links pointing at the batches that were drawn down.
"""

from decimal import Decimal
from typing import Optional, Dict

from sqlalchemy import (
    Boolean,
    Column,
    Integer,
    String,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    CheckConstraint,
)
from sqlalchemy.orm import relationship

from .base import BaseModel, _serialize_value
from bakery_ledger.utils.datetime_utils import utc_now


class ProductionLog(BaseModel):
    """
    ProductionLog model for one shift submission.

    Attributes:
        date: When the work happened (defaults to submission time)
        shift: Free-form shift label, e.g. "Shift 1"
        standard_cakes: Cakes produced (None for materials-only submissions)
        bread: Bread produced (None for materials-only submissions)
        total_value: Monetary value of the production in this row
        wages_paid: Set once wages for this row have been settled

    Relationships:
        materials_used: One-to-Many with MaterialUsage, in allocation order
    """

    __tablename__ = "production_logs"

    date = Column(DateTime, nullable=False, default=utc_now, index=True)
    shift = Column(String(50), nullable=False, index=True)

    standard_cakes = Column(Integer, nullable=True)
    bread = Column(Integer, nullable=True)
    total_value = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))

    wages_paid = Column(Boolean, nullable=False, default=False, index=True)

    materials_used = relationship(
        "MaterialUsage",
        back_populates="production_log",
        cascade="all, delete-orphan",
        order_by="MaterialUsage.id",
    )

    __table_args__ = (
        CheckConstraint(
            "standard_cakes IS NULL OR standard_cakes >= 0",
            name="ck_production_log_cakes_non_negative",
        ),
        CheckConstraint(
            "bread IS NULL OR bread >= 0", name="ck_production_log_bread_non_negative"
        ),
        Index("idx_production_log_shift_date", "shift", "date"),
    )

    @property
    def production(self) -> Optional[Dict[str, int]]:
        """Cake/bread counts, or None when this row is a materials submission."""
        if self.standard_cakes is None and self.bread is None:
            return None
        return {
            "standard_cakes": self.standard_cakes or 0,
            "bread": self.bread or 0,
        }

    def to_dict(self, include_relationships: bool = True) -> dict:
        """
        Convert production log to dictionary.

        Args:
            include_relationships: If True, include the materials_used links

        Returns:
            Dictionary representation
        """
        result = {
            "id": self.id,
            "uuid": self.uuid,
            "date": _serialize_value(self.date),
            "shift": self.shift,
            "production": self.production,
            "total_value": _serialize_value(self.total_value),
            "wages_paid": bool(self.wages_paid),
            "last_updated": _serialize_value(self.updated_at),
        }
        if include_relationships:
            result["materials_used"] = [usage.to_dict() for usage in self.materials_used]
        return result

    def __repr__(self) -> str:
        return (
            f"ProductionLog(id={self.id}, shift='{self.shift}', "
            f"date={self.date}, wages_paid={self.wages_paid})"
        )


class MaterialUsage(BaseModel):
    """
    Quantity of one batch consumed by a production log.

    batch_id is a plain reference without a foreign key: summaries treat a
    batch that no longer exists as contributing nothing.

    Attributes:
        production_log_id: Foreign key to the owning ProductionLog
        batch_id: Id of the RawMaterialBatch drawn down
        quantity: Units allocated from that batch
        unit_price: Batch price when the allocation was made
    """

    __tablename__ = "production_material_usages"

    production_log_id = Column(
        Integer,
        ForeignKey("production_logs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    batch_id = Column(Integer, nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=True)

    production_log = relationship("ProductionLog", back_populates="materials_used")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_material_usage_quantity_positive"),
    )

    def to_dict(self, include_relationships: bool = False) -> dict:
        return {
            "material_id": self.batch_id,
            "quantity": self.quantity,
            "unit_price": _serialize_value(self.unit_price),
        }

    def __repr__(self) -> str:
        return (
            f"MaterialUsage(log_id={self.production_log_id}, "
            f"batch_id={self.batch_id}, quantity={self.quantity})"
        )
