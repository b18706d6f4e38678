"""
Database models package.

This package contains all SQLAlchemy ORM models for the application.
"""

from .base import Base, BaseModel
from .raw_material_batch import RawMaterialBatch, BatchUsage
from .production_log import ProductionLog, MaterialUsage

__all__ = [
    "Base",
    "BaseModel",
    "RawMaterialBatch",
    "BatchUsage",
    "ProductionLog",
    "MaterialUsage",
]
