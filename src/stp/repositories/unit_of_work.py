from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Optional, Protocol

from stp.domain.errors import StorageFailureError
from stp.domain.models import Product, TransactionHeader
from stp.repositories.sqlite_repo import HEADER_COLUMNS, SqliteRepository, fetch_product, header_from_row, now_iso

log = logging.getLogger(__name__)


class UnitOfWork(Protocol):
    def __enter__(self) -> "UnitOfWork": ...
    def __exit__(self, exc_type, exc, tb) -> None: ...
    def begin(self) -> "UnitOfWork": ...
    def commit(self) -> None: ...
    def abort(self) -> None: ...
    def execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor: ...
    def get_product(self, product_id: int) -> Optional[Product]: ...
    def add_header(self, transaction_date: date) -> int: ...
    def set_header_total(self, transaction_id: int, total_price: Decimal) -> None: ...
    def get_header(self, transaction_id: int) -> TransactionHeader: ...


@dataclass
class SqliteUnitOfWork:
    """One atomic write scope over a dedicated connection.

    ``begin`` issues ``BEGIN IMMEDIATE`` so the database write lock is held
    from the first read of the scope until commit/abort. A second scope
    touching the same products blocks (up to the repository busy timeout)
    instead of interleaving its stock checks with ours.

    As a context manager it commits on a clean exit and aborts when the
    block raises; the exception is never suppressed.
    """

    repo: SqliteRepository
    conn: sqlite3.Connection | None = field(default=None, init=False)

    def __enter__(self) -> "SqliteUnitOfWork":
        return self.begin()

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.commit()
        else:
            self.abort()
        return None

    @property
    def active(self) -> bool:
        return self.conn is not None

    def begin(self) -> "SqliteUnitOfWork":
        if self.conn is not None:
            raise RuntimeError("Unit of work already started.")
        conn = None
        try:
            conn = self.repo._conn()
            conn.execute("BEGIN IMMEDIATE")
        except sqlite3.Error as exc:
            if conn is not None:
                conn.close()
            raise StorageFailureError(f"Could not open unit of work: {exc}", operation="begin") from exc
        self.conn = conn
        return self

    def commit(self) -> None:
        conn = self._require_conn()
        try:
            conn.commit()
        except sqlite3.Error as exc:
            self.abort()
            raise StorageFailureError(f"Unit of work could not commit: {exc}", operation="commit") from exc
        self._close()

    def abort(self) -> None:
        if self.conn is None:
            return
        try:
            self.conn.rollback()
        except sqlite3.Error:
            # The connection is dropped below; SQLite discards the open transaction with it.
            log.error("uow_rollback_failed db=%s", self.repo.db_path, exc_info=True)
        finally:
            self._close()

    def execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        return self._require_conn().execute(sql, params)

    def _require_conn(self) -> sqlite3.Connection:
        if self.conn is None:
            raise RuntimeError("Unit of work is not active.")
        return self.conn

    def _close(self) -> None:
        conn, self.conn = self.conn, None
        if conn is not None:
            conn.close()

    # ---------- Reads inside the scope ----------
    def get_product(self, product_id: int) -> Optional[Product]:
        return fetch_product(self._require_conn().cursor(), product_id)

    # ---------- Transaction header ----------
    def add_header(self, transaction_date: date) -> int:
        cur = self.execute(
            """
            INSERT INTO transaction_history (transaction_date, total_price, created_at)
            VALUES (?, ?, ?)
            """,
            (transaction_date.isoformat(), str(Decimal("0")), now_iso()),
        )
        return int(cur.lastrowid)

    def set_header_total(self, transaction_id: int, total_price: Decimal) -> None:
        self.execute(
            "UPDATE transaction_history SET total_price=? WHERE id=?",
            (str(total_price), int(transaction_id)),
        )

    def get_header(self, transaction_id: int) -> TransactionHeader:
        cur = self.execute(f"SELECT {HEADER_COLUMNS} FROM transaction_history WHERE id=?", (int(transaction_id),))
        return header_from_row(cur.fetchone())
