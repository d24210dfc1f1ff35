from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from stp.repositories.sqlite_repo import SqliteRepository
from stp.services.ingest_service import IngestService
from stp.services.inventory_service import InventoryService
from stp.services.reporting_service import ReportingService
from stp.services.transaction_service import TransactionService


@dataclass(frozen=True)
class AppContainer:
    repo: SqliteRepository
    inventory: InventoryService
    transactions: TransactionService
    ingest: IngestService
    reporting: ReportingService


def build_container(db_path: Path | str, low_stock_threshold: int = 10, busy_timeout: float = 5.0) -> AppContainer:
    repo = SqliteRepository(db_path, busy_timeout=busy_timeout)
    repo.init_db()

    inventory = InventoryService(repo)
    transactions = TransactionService(repo, low_stock_threshold=low_stock_threshold)
    ingest = IngestService(transactions)
    reporting = ReportingService(repo)

    return AppContainer(
        repo=repo,
        inventory=inventory,
        transactions=transactions,
        ingest=ingest,
        reporting=reporting,
    )
