"""Bakery shift ledger: production, raw material stock and wage tracking."""

__version__ = "0.1.0"
