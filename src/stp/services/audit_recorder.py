from __future__ import annotations

from stp.domain.models import MovementKind
from stp.repositories.sqlite_repo import now_iso
from stp.repositories.unit_of_work import UnitOfWork


class AuditRecorder:
    """Appends rows to ``stock_log``. Rows are never updated or deleted here."""

    def __init__(self, uow: UnitOfWork):
        self.uow = uow

    def record(self, product_id: int, quantity_change: int, kind: MovementKind) -> int:
        cur = self.uow.execute(
            """
            INSERT INTO stock_log (product_id, quantity_change, log_type, created_at)
            VALUES (?, ?, ?, ?)
            """,
            (int(product_id), int(quantity_change), MovementKind(kind).value, now_iso()),
        )
        return int(cur.lastrowid)

    def record_sale(self, product_id: int, qty: int) -> int:
        return self.record(product_id, -int(qty), MovementKind.SALE)
