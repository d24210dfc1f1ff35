from __future__ import annotations

import logging
import shutil
import sqlite3
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Optional

from stp.domain.errors import StorageFailureError
from stp.domain.models import MovementKind, Product, StockMovement, TransactionHeader, TransactionLine

log = logging.getLogger(__name__)

PRODUCT_COLUMNS = "id, sku, name, price, stock, created_at, updated_at"
HEADER_COLUMNS = "id, transaction_date, total_price, created_at"
LINE_COLUMNS = "id, transaction_id, product_id, qty, price, total_price, created_at"
MOVEMENT_COLUMNS = "id, product_id, quantity_change, log_type, created_at"


def now_iso() -> str:
    return datetime.now().replace(microsecond=0).isoformat(sep=" ")


def product_from_row(r) -> Product:
    return Product(
        id=int(r[0]),
        sku=str(r[1]),
        name=str(r[2]),
        price=Decimal(str(r[3])),
        stock=int(r[4]),
        created_at=str(r[5]),
        updated_at=str(r[6]),
    )


def header_from_row(r) -> TransactionHeader:
    return TransactionHeader(
        id=int(r[0]),
        transaction_date=date.fromisoformat(str(r[1])),
        total_price=Decimal(str(r[2])),
        created_at=str(r[3]),
    )


def line_from_row(r) -> TransactionLine:
    return TransactionLine(
        id=int(r[0]),
        transaction_id=int(r[1]),
        product_id=int(r[2]),
        qty=int(r[3]),
        unit_price=Decimal(str(r[4])),
        total_price=Decimal(str(r[5])),
        created_at=str(r[6]),
    )


def movement_from_row(r) -> StockMovement:
    return StockMovement(
        id=int(r[0]),
        product_id=int(r[1]),
        quantity_change=int(r[2]),
        kind=MovementKind(str(r[3])),
        created_at=str(r[4]),
    )


def fetch_product(cur, product_id: int) -> Optional[Product]:
    cur.execute(f"SELECT {PRODUCT_COLUMNS} FROM products WHERE id=?", (int(product_id),))
    r = cur.fetchone()
    return product_from_row(r) if r else None


class SqliteRepository:
    """Schema, product catalogue and read queries.

    Money columns are TEXT holding canonical decimal strings; SQLite's REAL
    would round them through binary floating point.
    """

    def __init__(self, db_path: Path | str, busy_timeout: float = 5.0):
        self.db_path = str(db_path)
        self.busy_timeout = float(busy_timeout)

    def _conn(self) -> sqlite3.Connection:
        # Transactions are opened explicitly (BEGIN / BEGIN IMMEDIATE).
        conn = sqlite3.connect(self.db_path, timeout=self.busy_timeout, isolation_level=None)
        conn.execute("PRAGMA foreign_keys = ON;")
        return conn

    def init_db(self) -> None:
        self.run_migrations()

    def run_migrations(self) -> None:
        conn = self._conn()
        backup_path = self._create_pre_migration_backup()
        try:
            cur = conn.cursor()
            cur.execute("BEGIN")
            cur.execute("CREATE TABLE IF NOT EXISTS schema_migrations (version INTEGER PRIMARY KEY, applied_at TEXT NOT NULL)")
            cur.execute("SELECT COALESCE(MAX(version), 0) FROM schema_migrations")
            current_version = int(cur.fetchone()[0])

            migrations = [
                (1, self._migration_v1_base),
                (2, self._migration_v2_indexes),
            ]

            for version, migration in migrations:
                if version <= current_version:
                    continue
                migration(cur)
                cur.execute(
                    "INSERT INTO schema_migrations (version, applied_at) VALUES (?, datetime('now'))",
                    (version,),
                )
                log.info("migration_applied version=%s db=%s", version, self.db_path)
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            self._restore_pre_migration_backup(backup_path)
            raise StorageFailureError(
                "Database migration failed. Original database restored from automatic backup.",
                operation="migrate",
            ) from exc
        finally:
            conn.close()
        self._discard_pre_migration_backup(backup_path)

    def _create_pre_migration_backup(self) -> Path | None:
        db_file = Path(self.db_path)
        if not db_file.exists() or db_file.stat().st_size == 0:
            return None
        backup_file = db_file.with_name(f"{db_file.stem}.pre_migration_{datetime.now().strftime('%Y%m%d%H%M%S')}.bak")
        shutil.copy2(db_file, backup_file)
        return backup_file

    def _restore_pre_migration_backup(self, backup_path: Path | None) -> None:
        if backup_path is None or not backup_path.exists():
            return
        shutil.copy2(backup_path, self.db_path)

    def _discard_pre_migration_backup(self, backup_path: Path | None) -> None:
        if backup_path is not None and backup_path.exists():
            backup_path.unlink()

    def _migration_v1_base(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS products (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            sku TEXT UNIQUE NOT NULL,
            name TEXT NOT NULL,
            price TEXT NOT NULL,
            stock INTEGER NOT NULL DEFAULT 0 CHECK(stock >= 0),
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """
        )

        cur.execute("""
        CREATE TABLE IF NOT EXISTS transaction_history (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            transaction_date TEXT NOT NULL,
            total_price TEXT NOT NULL,
            created_at TEXT NOT NULL
        )
        """)

        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS transaction_detail (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            transaction_id INTEGER NOT NULL,
            product_id INTEGER NOT NULL,
            qty INTEGER NOT NULL CHECK(qty > 0),
            price TEXT NOT NULL,
            total_price TEXT NOT NULL,
            created_at TEXT NOT NULL,
            FOREIGN KEY(transaction_id) REFERENCES transaction_history(id) ON DELETE CASCADE,
            FOREIGN KEY(product_id) REFERENCES products(id)
        )
        """
        )

        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS stock_log (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            product_id INTEGER NOT NULL,
            quantity_change INTEGER NOT NULL,
            log_type TEXT NOT NULL CHECK(log_type IN ('SALE','PURCHASE','ADJUSTMENT')),
            created_at TEXT NOT NULL,
            FOREIGN KEY(product_id) REFERENCES products(id)
        )
        """
        )

    def _migration_v2_indexes(self, cur: sqlite3.Cursor) -> None:
        cur.execute("CREATE INDEX IF NOT EXISTS ix_transaction_detail_tx ON transaction_detail(transaction_id)")
        cur.execute("CREATE INDEX IF NOT EXISTS ix_stock_log_product ON stock_log(product_id)")
        cur.execute("CREATE INDEX IF NOT EXISTS ix_transaction_history_date ON transaction_history(transaction_date)")

    # ---------- Products ----------
    def add_product(self, sku: str, name: str, price: Decimal, stock: int) -> int:
        ts = now_iso()
        conn = self._conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                INSERT INTO products (sku, name, price, stock, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
            """,
                (sku, name, str(price), int(stock), ts, ts),
            )
            return int(cur.lastrowid)
        finally:
            conn.close()

    def list_products(self) -> list[Product]:
        conn = self._conn()
        try:
            cur = conn.cursor()
            cur.execute(f"SELECT {PRODUCT_COLUMNS} FROM products ORDER BY name")
            return [product_from_row(r) for r in cur.fetchall()]
        finally:
            conn.close()

    def list_low_stock(self, threshold: int) -> list[Product]:
        conn = self._conn()
        try:
            cur = conn.cursor()
            cur.execute(
                f"SELECT {PRODUCT_COLUMNS} FROM products WHERE stock < ? ORDER BY stock ASC, name ASC",
                (int(threshold),),
            )
            return [product_from_row(r) for r in cur.fetchall()]
        finally:
            conn.close()

    def get_product_by_id(self, product_id: int) -> Optional[Product]:
        conn = self._conn()
        try:
            return fetch_product(conn.cursor(), product_id)
        finally:
            conn.close()

    def get_product_by_sku(self, sku: str) -> Optional[Product]:
        conn = self._conn()
        try:
            cur = conn.cursor()
            cur.execute(f"SELECT {PRODUCT_COLUMNS} FROM products WHERE sku=?", (sku,))
            r = cur.fetchone()
            return product_from_row(r) if r else None
        finally:
            conn.close()

    # ---------- Transactions ----------
    def get_transaction_header(self, transaction_id: int) -> Optional[TransactionHeader]:
        conn = self._conn()
        try:
            cur = conn.cursor()
            cur.execute(f"SELECT {HEADER_COLUMNS} FROM transaction_history WHERE id=?", (int(transaction_id),))
            r = cur.fetchone()
            return header_from_row(r) if r else None
        finally:
            conn.close()

    def list_transactions_between(self, start: date, end: date) -> list[TransactionHeader]:
        """Headers with ``start <= transaction_date <= end``."""
        conn = self._conn()
        try:
            cur = conn.cursor()
            cur.execute(
                f"""
                SELECT {HEADER_COLUMNS}
                FROM transaction_history
                WHERE transaction_date >= ? AND transaction_date <= ?
                ORDER BY transaction_date, id
            """,
                (start.isoformat(), end.isoformat()),
            )
            return [header_from_row(r) for r in cur.fetchall()]
        finally:
            conn.close()

    def lines_for_transaction(self, transaction_id: int) -> list[TransactionLine]:
        conn = self._conn()
        try:
            cur = conn.cursor()
            cur.execute(
                f"SELECT {LINE_COLUMNS} FROM transaction_detail WHERE transaction_id=? ORDER BY id",
                (int(transaction_id),),
            )
            return [line_from_row(r) for r in cur.fetchall()]
        finally:
            conn.close()

    def movements_for_product(self, product_id: int) -> list[StockMovement]:
        conn = self._conn()
        try:
            cur = conn.cursor()
            cur.execute(
                f"SELECT {MOVEMENT_COLUMNS} FROM stock_log WHERE product_id=? ORDER BY id",
                (int(product_id),),
            )
            return [movement_from_row(r) for r in cur.fetchall()]
        finally:
            conn.close()

    def table_counts(self) -> dict[str, int]:
        conn = self._conn()
        try:
            cur = conn.cursor()
            counts = {}
            for table in ("products", "transaction_history", "transaction_detail", "stock_log"):
                cur.execute(f"SELECT COUNT(*) FROM {table}")
                counts[table] = int(cur.fetchone()[0])
            return counts
        finally:
            conn.close()

    def integrity_check(self) -> str:
        conn = self._conn()
        try:
            cur = conn.cursor()
            cur.execute("PRAGMA integrity_check")
            row = cur.fetchone()
            return str(row[0]) if row else "unknown"
        finally:
            conn.close()
