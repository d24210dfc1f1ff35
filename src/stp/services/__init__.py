from .audit_recorder import AuditRecorder
from .ingest_service import IngestService, ProcessingResult
from .inventory_service import InventoryService
from .line_item_writer import LineItemWriter
from .reporting_service import ReportingService
from .stock_ledger import StockLedger
from .transaction_service import TransactionService

__all__ = [
    "AuditRecorder",
    "IngestService",
    "ProcessingResult",
    "InventoryService",
    "LineItemWriter",
    "ReportingService",
    "StockLedger",
    "TransactionService",
]
