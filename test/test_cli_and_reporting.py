import json
import logging
from datetime import date
from pathlib import Path

import pytest
from click.testing import CliRunner
from openpyxl import load_workbook

from stp.application.container import build_container
from stp.cli import cli
from stp.config import AppPaths, Settings
from stp.domain.errors import NotFoundError, ValidationError


def _container(tmp_path: Path):
    return build_container(tmp_path / "cli.db")


def _paths(tmp_path: Path) -> AppPaths:
    return AppPaths(base_dir=tmp_path, db_path=tmp_path / "default.db", logs_dir=tmp_path / "logs", exports_dir=tmp_path / "exports")


def test_settings_from_env_reads_overrides(tmp_path: Path):
    env = {
        "STP_DB_PATH": str(tmp_path / "custom.db"),
        "STP_LOG_LEVEL": "debug",
        "STP_LOW_STOCK_THRESHOLD": "3",
        "STP_BUSY_TIMEOUT": "0.5",
    }

    settings = Settings.from_env(env, paths=_paths(tmp_path))

    assert settings.db_path == tmp_path / "custom.db"
    assert settings.log_level == logging.DEBUG
    assert settings.low_stock_threshold == 3
    assert settings.busy_timeout == 0.5


def test_settings_defaults(tmp_path: Path):
    settings = Settings.from_env({}, paths=_paths(tmp_path))

    assert settings.db_path == tmp_path / "default.db"
    assert settings.log_level == logging.INFO
    assert settings.low_stock_threshold == 10


@pytest.mark.parametrize(
    "env",
    [
        {"STP_LOG_LEVEL": "chatty"},
        {"STP_LOW_STOCK_THRESHOLD": "ten"},
        {"STP_LOW_STOCK_THRESHOLD": "-1"},
        {"STP_BUSY_TIMEOUT": "0"},
    ],
)
def test_settings_reject_bad_values(tmp_path: Path, env):
    with pytest.raises(ValidationError):
        Settings.from_env(env, paths=_paths(tmp_path))


def test_cli_consume_and_show(tmp_path: Path):
    container = _container(tmp_path)
    runner = CliRunner()

    added = runner.invoke(cli, ["product", "add", "--sku", "A", "--name", "Alpha", "--price", "9.99", "--stock", "5"], obj=container)
    assert added.exit_code == 0, added.output
    pid = container.inventory.get_product_by_sku("A").id

    source = tmp_path / "events.jsonl"
    source.write_text(
        json.dumps({"transaction_date": "2025-01-10", "items": [{"product_id": pid, "qty": 2}]}) + "\n\n",
        encoding="utf-8",
    )
    consumed = runner.invoke(cli, ["consume", str(source)], obj=container)
    assert consumed.exit_code == 0, consumed.output
    assert "processed transaction #1 total=19.98" in consumed.output

    shown = runner.invoke(cli, ["transaction", "show", "--id", "1"], obj=container)
    assert shown.exit_code == 0
    assert "19.98" in shown.output
    assert "date=2025-01-10" in shown.output

    listed = runner.invoke(cli, ["product", "list"], obj=container)
    assert "Alpha" in listed.output


def test_cli_consume_exits_non_zero_on_failure(tmp_path: Path):
    container = _container(tmp_path)
    runner = CliRunner()

    result = runner.invoke(
        cli,
        ["consume", "-"],
        input=json.dumps({"transaction_date": "2025-01-10", "items": [{"product_id": 7, "qty": 1}]}) + "\n",
        obj=container,
    )

    assert result.exit_code == 1
    assert "PRD001" in result.output


def test_cli_rejects_bad_product(tmp_path: Path):
    result = CliRunner().invoke(
        cli, ["product", "add", "--sku", "A", "--name", "Alpha", "--price", "9.999"], obj=_container(tmp_path)
    )

    assert result.exit_code == 1
    assert "at most 2 decimal places" in result.output


def test_export_transactions_excel(tmp_path: Path):
    container = _container(tmp_path)
    a = container.inventory.add_product("A", "Alpha", "9.99", 10)
    b = container.inventory.add_product("B", "Beta", "1.50", 10)
    container.ingest.handle_message(json.dumps({"transaction_date": "2025-01-10", "items": [{"product_id": a, "qty": 2}, {"product_id": b, "qty": 1}]}))
    container.ingest.handle_message(json.dumps({"transaction_date": "2025-02-01", "items": [{"product_id": b, "qty": 3}]}))

    out = tmp_path / "report.xlsx"
    count = container.reporting.export_transactions_excel(str(out), date(2025, 1, 1), date(2025, 1, 31))

    assert count == 1
    wb = load_workbook(out)
    tx_rows = list(wb["Transactions"].iter_rows(min_row=2, values_only=True))
    line_rows = list(wb["Lines"].iter_rows(min_row=2, values_only=True))
    assert len(tx_rows) == 1
    assert tx_rows[0][1] == "2025-01-10"
    assert float(tx_rows[0][2]) == pytest.approx(21.48)
    assert [(r[1], r[3]) for r in line_rows] == [("A", 2), ("B", 1)]


def test_reporting_rejects_reversed_range_and_unknown_id(tmp_path: Path):
    container = _container(tmp_path)

    with pytest.raises(ValidationError):
        container.reporting.list_transactions_between(date(2025, 2, 1), date(2025, 1, 1))
    with pytest.raises(NotFoundError):
        container.reporting.transaction_detail(42)


def test_migrations_are_idempotent(tmp_path: Path):
    container = _container(tmp_path)
    container.repo.init_db()

    conn = container.repo._conn()
    versions = [r[0] for r in conn.execute("SELECT version FROM schema_migrations ORDER BY version")]
    conn.close()

    assert versions == [1, 2]
    assert container.repo.integrity_check() == "ok"
    assert list(tmp_path.glob("*.bak")) == []


def test_cli_low_stock_lists_only_products_below_threshold(tmp_path: Path):
    container = _container(tmp_path)
    container.inventory.add_product("LOW", "Lowish", "1.00", 2)
    container.inventory.add_product("FULL", "Plenty", "1.00", 50)

    result = CliRunner().invoke(cli, ["product", "low-stock", "--threshold", "5"], obj=container)

    assert result.exit_code == 0
    assert "LOW" in result.output
    assert "FULL" not in result.output
