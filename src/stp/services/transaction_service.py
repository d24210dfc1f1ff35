from __future__ import annotations

import logging
import re
import sqlite3
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Iterable

from stp.domain.errors import (
    BusinessError,
    EmptyItemsError,
    InvalidDateError,
    InvalidQuantityError,
    StorageFailureError,
    TransactionProcessingError,
)
from stp.domain.models import Product, SaleItem, SaleRequest, TransactionHeader
from stp.repositories.sqlite_repo import SqliteRepository
from stp.repositories.unit_of_work import SqliteUnitOfWork, UnitOfWork
from stp.services.audit_recorder import AuditRecorder
from stp.services.line_item_writer import LineItemWriter
from stp.services.stock_ledger import StockLedger, insufficient_stock, product_not_found

log = logging.getLogger("stp.transactions")

DATE_FORMAT = "%Y-%m-%d"
DATE_FORMAT_LABEL = "yyyy-MM-dd"
MIN_YEAR = 1900
MAX_YEAR = 2100
_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_transaction_date(value: object) -> date:
    """Strict ``yyyy-MM-dd`` with a year in 1900..2100."""
    text = value if isinstance(value, str) else None
    if text is None or not _ISO_DATE.match(text):
        raise _invalid_date(value)
    try:
        parsed = datetime.strptime(text, DATE_FORMAT).date()
    except ValueError as exc:
        raise _invalid_date(value) from exc
    if not MIN_YEAR <= parsed.year <= MAX_YEAR:
        raise _invalid_date(value)
    return parsed


def _invalid_date(value: object) -> InvalidDateError:
    return InvalidDateError(
        f"Invalid date format: {value}. Expected format: {DATE_FORMAT_LABEL}",
        providedDate=value,
        expectedFormat=DATE_FORMAT_LABEL,
    )


class TransactionService:
    """Turns a sale request into a committed transaction, or into nothing.

    Every item is checked against stock before anything is written. The
    writes for the whole request then run in a single unit of work. Any
    failure aborts that unit, so a half-applied sale is never visible.
    """

    def __init__(
        self,
        repo: SqliteRepository,
        uow_factory: Callable[[], UnitOfWork] | None = None,
        low_stock_threshold: int = 10,
    ):
        self.repo = repo
        self.uow_factory = uow_factory or (lambda: SqliteUnitOfWork(repo))
        self.low_stock_threshold = int(low_stock_threshold)

    def process_transaction(self, request: SaleRequest) -> TransactionHeader:
        items = list(request.items)
        log.info("transaction_received date=%s items=%s", request.transaction_date, len(items))
        try:
            transaction_date = parse_transaction_date(request.transaction_date)
            self.validate_items(items)
            header, stock_after = self._apply(transaction_date, items)
        except StorageFailureError as e:
            log.error("transaction_storage_failure code=%s detail=%s", e.code, e.detailed_message(), exc_info=True)
            raise
        except BusinessError as e:
            log.warning("transaction_rejected code=%s detail=%s", e.code, e.detailed_message())
            raise
        except sqlite3.Error as e:
            log.error("transaction_storage_failure error=%s", e, exc_info=True)
            raise StorageFailureError(
                f"Storage failure while processing transaction: {e}",
                operation="process_transaction",
                transactionDate=request.transaction_date,
            ) from e
        except Exception as e:
            log.error("transaction_failed error=%s", e, exc_info=True)
            raise TransactionProcessingError(
                f"Failed to process transaction: {e}",
                transactionDate=request.transaction_date,
                itemCount=len(items),
            ) from e

        log.info("transaction_committed id=%s total=%s lines=%s", header.id, header.total_price, len(items))
        self._warn_low_stock(stock_after)
        return header

    def validate_items(self, items: Iterable[SaleItem]) -> list[Product]:
        """Read-only pass over every item: existence and stock at event start.

        Quantities of repeated products are not summed here; the running
        balance is enforced by the ledger while the unit of work is open.
        """
        items = list(items)
        if not items:
            raise EmptyItemsError()
        for it in items:
            if isinstance(it.qty, bool) or not isinstance(it.qty, int):
                raise InvalidQuantityError("Quantity must be a whole number", productId=it.product_id, qty=it.qty)
            if it.qty < 1:
                raise InvalidQuantityError("Quantity must be greater than 0", productId=it.product_id, qty=it.qty)

        products = []
        for it in items:
            product = self.repo.get_product_by_id(it.product_id)
            if product is None:
                raise product_not_found(it.product_id)
            if product.stock < it.qty:
                raise insufficient_stock(product, it.qty)
            log.debug("item_validated product_id=%s qty=%s available=%s", product.id, it.qty, product.stock)
            products.append(product)
        log.info("items_validated count=%s", len(items))
        return products

    def _apply(self, transaction_date: date, items: list[SaleItem]) -> tuple[TransactionHeader, dict[int, int]]:
        stock_after: dict[int, int] = {}
        with self.uow_factory() as uow:
            lines = LineItemWriter(uow)
            audit = AuditRecorder(uow)
            ledger = StockLedger(uow)

            transaction_id = uow.add_header(transaction_date)
            total = Decimal("0")
            for it in items:
                # Re-read inside the scope: earlier lines of this request may have moved stock.
                product = uow.get_product(it.product_id)
                if product is None:
                    raise product_not_found(it.product_id)

                line = lines.write_line(transaction_id, product.id, it.qty, product.price)
                audit.record_sale(product.id, it.qty)
                stock_after[product.id] = ledger.decrement(product.id, it.qty)
                total += line.total_price
                log.debug("line_written transaction_id=%s line_id=%s total=%s", transaction_id, line.id, line.total_price)

            uow.set_header_total(transaction_id, total)
            header = uow.get_header(transaction_id)
        return header, stock_after

    def _warn_low_stock(self, stock_after: dict[int, int]) -> None:
        for product_id, stock in stock_after.items():
            if stock < self.low_stock_threshold:
                log.warning("low_stock product_id=%s stock=%s threshold=%s", product_id, stock, self.low_stock_threshold)
