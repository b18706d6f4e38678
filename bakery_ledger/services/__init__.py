"""Services package - Business logic layer for the Bakery Shift Ledger.

Architecture:
- Services: classes constructed with an explicit Database handle
- Transactions: Managed via Database.session_scope()
- Exceptions: Consistent error handling via the ServiceError hierarchy
- Validation: Input validation before database operations

Service Modules:
- allocation: Pure proportional allocation of a quantity across batches
- stock_ledger_service: Raw material batches, receipts and allocation
- production_service: Cake production and materials usage submissions
- summary_service: Daily and range summaries
- wage_service: Wage payment and daily reset

Infrastructure:
- exceptions: Custom exception classes for service layer errors
- database: Storage handle and session management
- logging_utils: Structured logging helpers
"""

from .database import Database, initialize_app_database
from .stock_ledger_service import StockLedger
from .production_service import ProductionService
from .summary_service import SummaryService
from .wage_service import WageService

__all__ = [
    "Database",
    "initialize_app_database",
    "StockLedger",
    "ProductionService",
    "SummaryService",
    "WageService",
]
