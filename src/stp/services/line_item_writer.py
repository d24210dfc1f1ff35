from __future__ import annotations

from decimal import Decimal

from stp.domain.errors import InvalidQuantityError
from stp.domain.models import TransactionLine
from stp.repositories.sqlite_repo import now_iso
from stp.repositories.unit_of_work import UnitOfWork


class LineItemWriter:
    def __init__(self, uow: UnitOfWork):
        self.uow = uow

    def write_line(self, transaction_id: int, product_id: int, qty: int, unit_price: Decimal) -> TransactionLine:
        """Append one line. ``total_price`` is ``unit_price * qty`` in Decimal, unrounded."""
        if int(qty) < 1:
            raise InvalidQuantityError("Quantity must be greater than 0", productId=product_id, qty=qty)

        unit_price = Decimal(unit_price)
        total_price = unit_price * int(qty)
        created_at = now_iso()
        cur = self.uow.execute(
            """
            INSERT INTO transaction_detail (transaction_id, product_id, qty, price, total_price, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (int(transaction_id), int(product_id), int(qty), str(unit_price), str(total_price), created_at),
        )
        return TransactionLine(
            id=int(cur.lastrowid),
            transaction_id=int(transaction_id),
            product_id=int(product_id),
            qty=int(qty),
            unit_price=unit_price,
            total_price=total_price,
            created_at=created_at,
        )
