from .models import (
    MovementKind,
    Product,
    SaleItem,
    SaleRequest,
    StockMovement,
    TransactionHeader,
    TransactionLine,
)
from .errors import (
    BusinessError,
    EmptyItemsError,
    ErrorCode,
    InsufficientStockError,
    InvalidDateError,
    InvalidQuantityError,
    MessageParsingError,
    NotFoundError,
    StorageFailureError,
    TransactionProcessingError,
    ValidationError,
)

__all__ = [
    "MovementKind",
    "Product",
    "SaleItem",
    "SaleRequest",
    "StockMovement",
    "TransactionHeader",
    "TransactionLine",
    "BusinessError",
    "EmptyItemsError",
    "ErrorCode",
    "InsufficientStockError",
    "InvalidDateError",
    "InvalidQuantityError",
    "MessageParsingError",
    "NotFoundError",
    "StorageFailureError",
    "TransactionProcessingError",
    "ValidationError",
]
