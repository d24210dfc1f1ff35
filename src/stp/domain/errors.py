from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(Enum):
    PRODUCT_NOT_FOUND = ("PRD001", "Product not found")
    INSUFFICIENT_STOCK = ("PRD002", "Insufficient stock")
    TRANSACTION_PROCESSING_ERROR = ("TXN001", "Transaction processing failed")
    INVALID_TRANSACTION_DATE = ("TXN002", "Invalid transaction date format")
    EMPTY_TRANSACTION_ITEMS = ("TXN004", "Transaction items cannot be empty")
    VALIDATION_ERROR = ("VAL001", "Validation error")
    INVALID_QUANTITY = ("VAL002", "Invalid quantity")
    MESSAGE_PARSING_ERROR = ("KFK001", "Failed to parse message")
    DATABASE_ERROR = ("DB001", "Database operation failed")

    @property
    def code(self) -> str:
        return self.value[0]

    @property
    def message(self) -> str:
        return self.value[1]


class AppError(Exception):
    """Base app error."""


class BusinessError(AppError):
    """Failure with a stable code and structured detail.

    ``detail`` holds enough context to reproduce the decision without
    reading the logs (product id, requested and available quantity, ...).
    """

    error_code: ErrorCode = ErrorCode.TRANSACTION_PROCESSING_ERROR
    retryable: bool = False

    def __init__(self, message: str | None = None, **detail: Any):
        self.message = message or self.error_code.message
        self.detail: dict[str, Any] = dict(detail)
        super().__init__(self.message)

    @property
    def code(self) -> str:
        return self.error_code.code

    def add_detail(self, key: str, value: Any) -> "BusinessError":
        self.detail[key] = value
        return self

    def detailed_message(self) -> str:
        if not self.detail:
            return self.message
        pairs = ", ".join(f"{k}={v}" for k, v in self.detail.items())
        return f"{self.message} - Details: {{{pairs}}}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "detail": {k: _jsonable(v) for k, v in self.detail.items()},
            "retryable": self.retryable,
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r}, detail={self.detail!r})"


def _jsonable(value: Any) -> Any:
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return str(value)


class ValidationError(BusinessError):
    error_code = ErrorCode.VALIDATION_ERROR


class InvalidQuantityError(ValidationError):
    error_code = ErrorCode.INVALID_QUANTITY


class NotFoundError(BusinessError):
    error_code = ErrorCode.PRODUCT_NOT_FOUND


class InsufficientStockError(BusinessError):
    error_code = ErrorCode.INSUFFICIENT_STOCK


class InvalidDateError(BusinessError):
    error_code = ErrorCode.INVALID_TRANSACTION_DATE


class EmptyItemsError(BusinessError):
    error_code = ErrorCode.EMPTY_TRANSACTION_ITEMS


class TransactionProcessingError(BusinessError):
    error_code = ErrorCode.TRANSACTION_PROCESSING_ERROR


class MessageParsingError(BusinessError):
    error_code = ErrorCode.MESSAGE_PARSING_ERROR
    retryable = True


class StorageFailureError(BusinessError):
    """The unit of work could not read or commit. Safe to retry the whole event."""

    error_code = ErrorCode.DATABASE_ERROR
    retryable = True
