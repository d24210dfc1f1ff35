from __future__ import annotations

import logging

from stp.domain.errors import InsufficientStockError, InvalidQuantityError, NotFoundError
from stp.domain.models import Product
from stp.repositories.sqlite_repo import now_iso
from stp.repositories.unit_of_work import UnitOfWork

log = logging.getLogger("stp.transactions")


def product_not_found(product_id: int) -> NotFoundError:
    return NotFoundError(f"Product not found with ID: {product_id}", productId=product_id)


def insufficient_stock(product: Product, required_qty: int, available: int | None = None) -> InsufficientStockError:
    available = product.stock if available is None else available
    return InsufficientStockError(
        f"Insufficient stock for product ID {product.id}. Required: {required_qty}, Available: {available}",
        productId=product.id,
        productName=product.name,
        requiredQty=required_qty,
        availableStock=available,
    )


class StockLedger:
    """Current stock per product, read and decremented inside a unit of work.

    The decrement is a single conditional UPDATE, so the floor check and the
    write are the same statement; nothing is cached between calls.
    """

    def __init__(self, uow: UnitOfWork):
        self.uow = uow

    def current_stock(self, product_id: int) -> int:
        row = self.uow.execute("SELECT stock FROM products WHERE id=?", (int(product_id),)).fetchone()
        if not row:
            raise product_not_found(product_id)
        return int(row[0])

    def decrement(self, product_id: int, qty: int) -> int:
        if int(qty) < 1:
            raise InvalidQuantityError("Quantity must be greater than 0", productId=product_id, qty=qty)

        cur = self.uow.execute(
            """
            UPDATE products
            SET stock = stock - ?, updated_at = ?
            WHERE id = ? AND stock >= ?
            """,
            (int(qty), now_iso(), int(product_id), int(qty)),
        )
        if cur.rowcount == 0:
            product = self.uow.get_product(product_id)
            if product is None:
                raise product_not_found(product_id)
            log.debug(
                "stock_decrement_refused product_id=%s required=%s available=%s",
                product_id, qty, product.stock,
            )
            raise insufficient_stock(product, int(qty))

        new_stock = self.current_stock(product_id)
        log.info("stock_decremented product_id=%s old=%s new=%s", product_id, new_stock + int(qty), new_stock)
        return new_stock

    def increment(self, product_id: int, qty: int) -> int:
        if int(qty) < 1:
            raise InvalidQuantityError("Quantity must be greater than 0", productId=product_id, qty=qty)

        cur = self.uow.execute(
            "UPDATE products SET stock = stock + ?, updated_at = ? WHERE id = ?",
            (int(qty), now_iso(), int(product_id)),
        )
        if cur.rowcount == 0:
            raise product_not_found(product_id)
        new_stock = self.current_stock(product_id)
        log.info("stock_incremented product_id=%s old=%s new=%s", product_id, new_stock - int(qty), new_stock)
        return new_stock
