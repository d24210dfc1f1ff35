import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


def make_repo(tmp_path: Path, name: str = "stp.db", **kwargs):
    from stp.repositories.sqlite_repo import SqliteRepository

    repo = SqliteRepository(tmp_path / name, **kwargs)
    repo.init_db()
    return repo


def sale(date: str, *items):
    from stp.domain.models import SaleItem, SaleRequest

    return SaleRequest(transaction_date=date, items=tuple(SaleItem(product_id=p, qty=q) for p, q in items))


def assert_nothing_written(repo, product_stock: dict[int, int]) -> None:
    counts = repo.table_counts()
    assert counts["transaction_history"] == 0
    assert counts["transaction_detail"] == 0
    assert counts["stock_log"] == 0
    for pid, stock in product_stock.items():
        assert repo.get_product_by_id(pid).stock == stock
