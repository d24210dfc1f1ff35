from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Iterable, Optional

from stp.domain.errors import BusinessError, InvalidDateError, MessageParsingError, TransactionProcessingError
from stp.domain.models import SaleItem, SaleRequest, TransactionHeader
from stp.services.transaction_service import DATE_FORMAT_LABEL, MAX_YEAR, MIN_YEAR, TransactionService

log = logging.getLogger("stp.ingest")

PREVIEW_CHARS = 100
ERROR_CHARS = 200

STATUS_PROCESSED = "processed"
STATUS_FAILED = "failed"
STATUS_SKIPPED = "skipped"

ACCEPTED_DATE_FORMATS = f"[year, month, day] or {DATE_FORMAT_LABEL}"


def _preview(text: str, limit: int = PREVIEW_CHARS) -> str:
    return text[:limit] + "..." if len(text) > limit else text


def looks_like_json(message: Optional[str]) -> bool:
    if message is None or not message.strip():
        return False
    trimmed = message.strip()
    return (trimmed.startswith("{") and trimmed.endswith("}")) or (
        trimmed.startswith("[") and trimmed.endswith("]")
    )


def _invalid_date(message: str, value: Any) -> InvalidDateError:
    return InvalidDateError(message, providedDate=value, expectedFormat=ACCEPTED_DATE_FORMATS)


def normalize_transaction_date(value: Any) -> str:
    """Accept ``"2026-02-13"`` or ``[2026, 2, 13]``; return the ISO string.

    Strings are passed through untouched; the processor validates their format.
    """
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        if len(value) != 3 or not all(isinstance(v, int) and not isinstance(v, bool) for v in value):
            raise _invalid_date("Invalid date array format. Expected [year, month, day]", value)
        year, month, day = value
        if year < MIN_YEAR or year > MAX_YEAR:
            raise _invalid_date(f"Invalid year: {year}", value)
        if month < 1 or month > 12:
            raise _invalid_date(f"Invalid month: {month}", value)
        if day < 1 or day > 31:
            raise _invalid_date(f"Invalid day: {day}", value)
        try:
            return date(year, month, day).isoformat()
        except ValueError as exc:
            raise _invalid_date(f"Invalid date: {exc}", value) from exc
    raise _invalid_date("Invalid date format. Expected array [year, month, day] or string 'yyyy-MM-dd'", value)


def _int_field(raw: dict, *names: str) -> int:
    for name in names:
        if name in raw and raw[name] is not None:
            value = raw[name]
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"{name} must be an integer, got {value!r}")
            return value
    raise ValueError(f"{names[0]} cannot be null")


def parse_message(message: str) -> SaleRequest:
    try:
        payload = json.loads(message)
        if not isinstance(payload, dict):
            raise ValueError("Expected a JSON object")
        if payload.get("transaction_date") is None:
            raise ValueError("Transaction date cannot be null")
        raw_items = payload.get("items")
        if not isinstance(raw_items, list):
            raise ValueError("Items cannot be null")
        items = []
        for raw in raw_items:
            if not isinstance(raw, dict):
                raise ValueError(f"Item must be an object, got {raw!r}")
            items.append(SaleItem(product_id=_int_field(raw, "product_id", "productId"), qty=_int_field(raw, "qty")))
    except (ValueError, RecursionError) as exc:
        # json.JSONDecodeError is a ValueError; deeply nested input overflows the decoder.
        raise MessageParsingError(
            "Invalid JSON format: " + _preview(str(exc), ERROR_CHARS),
            rawMessage=_preview(message),
        ) from exc

    return SaleRequest(
        transaction_date=normalize_transaction_date(payload["transaction_date"]),
        items=tuple(items),
    )


def transaction_to_dict(header: TransactionHeader) -> dict[str, Any]:
    return {
        "id": header.id,
        "transaction_date": header.transaction_date.isoformat(),
        "total_price": str(header.total_price),
        "created_at": header.created_at,
    }


@dataclass(frozen=True)
class ProcessingResult:
    status: str
    transaction: Optional[TransactionHeader] = None
    error: Optional[BusinessError] = None

    @property
    def ok(self) -> bool:
        return self.status == STATUS_PROCESSED

    @property
    def retryable(self) -> bool:
        return self.error is not None and self.error.retryable

    def to_response(self) -> dict[str, Any]:
        if self.status == STATUS_PROCESSED and self.transaction is not None:
            return {
                "success": True,
                "message": "Transaction processed",
                "data": transaction_to_dict(self.transaction),
            }
        if self.status == STATUS_SKIPPED or self.error is None:
            return {"success": False, "message": "Message skipped: not a JSON payload", "error": None}
        return {
            "success": False,
            "message": self.error.message,
            "error": self.error.to_dict(),
        }


class IngestService:
    """Adapter between raw sale messages and the transaction processor.

    Business failures are terminal for the message and are reported, never
    retried here. ``result.retryable`` tells the caller whether re-delivery
    makes sense (malformed payloads and storage failures).
    """

    def __init__(self, transactions: TransactionService):
        self.transactions = transactions

    def handle_message(self, message: Optional[str]) -> ProcessingResult:
        if not looks_like_json(message):
            log.warning("message_skipped reason=not_json preview=%r", _preview(message or ""))
            return ProcessingResult(STATUS_SKIPPED)

        log.info("message_received size=%s", len(message))
        try:
            request = parse_message(message)
        except BusinessError as e:
            log.warning("message_rejected code=%s retryable=%s message=%s", e.code, e.retryable, e.message)
            return ProcessingResult(STATUS_FAILED, error=e)
        except Exception as e:
            return self._unexpected_failure(message, e)
        log.info("message_parsed date=%s items=%s", request.transaction_date, len(request.items))

        try:
            header = self.transactions.process_transaction(request)
        except BusinessError as e:
            # Already logged by the processor.
            return ProcessingResult(STATUS_FAILED, error=e)
        except Exception as e:
            return self._unexpected_failure(message, e)

        log.info("message_processed transaction_id=%s total=%s", header.id, header.total_price)
        return ProcessingResult(STATUS_PROCESSED, transaction=header)

    def _unexpected_failure(self, message: str, exc: Exception) -> ProcessingResult:
        log.error("message_failed error=%s preview=%r", exc, _preview(message), exc_info=exc)
        error = TransactionProcessingError(
            f"Failed to process message: {_preview(str(exc), ERROR_CHARS)}",
            rawMessage=_preview(message),
        )
        error.__cause__ = exc
        return ProcessingResult(STATUS_FAILED, error=error)

    def consume(self, messages: Iterable[str]) -> list[ProcessingResult]:
        return [self.handle_message(m) for m in messages]
