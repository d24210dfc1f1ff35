from datetime import date
from decimal import Decimal
from pathlib import Path

from conftest import make_repo, sale

from stp.domain.models import MovementKind
from stp.services.inventory_service import InventoryService
from stp.services.transaction_service import TransactionService


def _setup(tmp_path: Path):
    repo = make_repo(tmp_path)
    inventory = InventoryService(repo)
    return repo, inventory, TransactionService(repo)


def test_single_item_sale_commits_header_line_movement_and_stock(tmp_path: Path):
    repo, inventory, service = _setup(tmp_path)
    a = inventory.add_product("SKU-A", "Product A", "9.99", 5)

    header = service.process_transaction(sale("2025-01-10", (a, 2)))

    assert header.transaction_date == date(2025, 1, 10)
    assert header.total_price == Decimal("19.98")
    assert repo.get_product_by_id(a).stock == 3

    lines = repo.lines_for_transaction(header.id)
    assert len(lines) == 1
    assert lines[0].qty == 2
    assert lines[0].unit_price == Decimal("9.99")
    assert lines[0].total_price == Decimal("19.98")

    movements = repo.movements_for_product(a)
    assert [(m.quantity_change, m.kind) for m in movements] == [(-2, MovementKind.SALE)]


def test_header_total_is_exact_sum_of_line_totals(tmp_path: Path):
    repo, inventory, service = _setup(tmp_path)
    a = inventory.add_product("SKU-A", "Product A", "0.10", 50)
    b = inventory.add_product("SKU-B", "Product B", "19.99", 50)
    c = inventory.add_product("SKU-C", "Product C", "1234.55", 50)

    header = service.process_transaction(sale("2025-03-01", (a, 3), (b, 7), (c, 1)))

    lines = repo.lines_for_transaction(header.id)
    assert [l.total_price for l in lines] == [Decimal("0.30"), Decimal("139.93"), Decimal("1234.55")]
    assert header.total_price == sum((l.total_price for l in lines), Decimal("0"))
    assert header.total_price == Decimal("1374.78")
    assert repo.get_transaction_header(header.id).total_price == Decimal("1374.78")

    assert repo.get_product_by_id(a).stock == 47
    assert repo.get_product_by_id(b).stock == 43
    assert repo.get_product_by_id(c).stock == 49


def test_repeated_product_lines_within_stock_see_cumulative_decrement(tmp_path: Path):
    repo, inventory, service = _setup(tmp_path)
    a = inventory.add_product("SKU-A", "Product A", "2.50", 5)

    header = service.process_transaction(sale("2025-03-01", (a, 2), (a, 3)))

    assert repo.get_product_by_id(a).stock == 0
    assert header.total_price == Decimal("12.50")
    assert [m.quantity_change for m in repo.movements_for_product(a)] == [-2, -3]


def test_one_sale_movement_per_line(tmp_path: Path):
    repo, inventory, service = _setup(tmp_path)
    a = inventory.add_product("SKU-A", "Product A", "1.00", 10)
    b = inventory.add_product("SKU-B", "Product B", "2.00", 10)

    header = service.process_transaction(sale("2025-03-01", (a, 1), (b, 4), (a, 2)))
    lines = repo.lines_for_transaction(header.id)
    movements = repo.movements_for_product(a) + repo.movements_for_product(b)

    assert len(movements) == len(lines) == 3
    assert all(m.kind is MovementKind.SALE for m in movements)
    assert sorted(m.quantity_change for m in movements) == sorted(-l.qty for l in lines)


def test_line_keeps_unit_price_snapshot_after_price_change(tmp_path: Path):
    repo, inventory, service = _setup(tmp_path)
    a = inventory.add_product("SKU-A", "Product A", "9.99", 5)
    header = service.process_transaction(sale("2025-01-10", (a, 1)))

    conn = repo._conn()
    conn.execute("UPDATE products SET price='15.00' WHERE id=?", (a,))
    conn.close()

    line = repo.lines_for_transaction(header.id)[0]
    assert line.unit_price == Decimal("9.99")
    assert repo.get_transaction_header(header.id).total_price == Decimal("9.99")


def test_redelivered_event_is_applied_twice(tmp_path: Path):
    repo, inventory, service = _setup(tmp_path)
    a = inventory.add_product("SKU-A", "Product A", "1.00", 5)
    request = sale("2025-01-10", (a, 2))

    first = service.process_transaction(request)
    second = service.process_transaction(request)

    assert first.id != second.id
    assert repo.get_product_by_id(a).stock == 1


def test_restock_records_purchase_movement(tmp_path: Path):
    repo, inventory, service = _setup(tmp_path)
    a = inventory.add_product("SKU-A", "Product A", "1.00", 1)

    assert inventory.restock(a, 4) == 5
    service.process_transaction(sale("2025-01-10", (a, 5)))

    kinds = [(m.kind, m.quantity_change) for m in repo.movements_for_product(a)]
    assert kinds == [(MovementKind.PURCHASE, 4), (MovementKind.SALE, -5)]
    assert repo.get_product_by_id(a).stock == 0


def test_low_stock_warning_after_commit(tmp_path: Path, caplog):
    repo = make_repo(tmp_path)
    a = InventoryService(repo).add_product("SKU-A", "Product A", "1.00", 12)
    service = TransactionService(repo, low_stock_threshold=10)

    with caplog.at_level("WARNING", logger="stp.transactions"):
        service.process_transaction(sale("2025-01-10", (a, 2)))
        assert not [r for r in caplog.records if "low_stock" in r.getMessage()]
        service.process_transaction(sale("2025-01-10", (a, 1)))

    warnings = [r.getMessage() for r in caplog.records if "low_stock" in r.getMessage()]
    assert warnings == [f"low_stock product_id={a} stock=9 threshold=10"]
