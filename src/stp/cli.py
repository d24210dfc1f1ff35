"""Command-line entry point for the sales transaction processor."""

from __future__ import annotations

from datetime import date
from pathlib import Path

import click

from stp.application.container import AppContainer, build_container
from stp.config import Settings
from stp.domain.errors import BusinessError
from stp.logging_config import setup_logging


def _container(ctx: click.Context) -> AppContainer:
    return ctx.find_object(AppContainer)


def _parse_date(_ctx, _param, value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise click.BadParameter(f"Invalid date '{value}'. Expected yyyy-MM-dd.")


@click.group()
@click.option(
    "--db",
    "db_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="SQLite database file (defaults to STP_DB_PATH or the app data dir).",
)
@click.pass_context
def cli(ctx: click.Context, db_path: Path | None) -> None:
    """Sales transaction processor."""
    if isinstance(ctx.obj, AppContainer):
        return
    try:
        settings = Settings.from_env()
    except BusinessError as exc:
        raise click.ClickException(exc.detailed_message())
    setup_logging(settings.logs_dir, level=settings.log_level)
    ctx.obj = build_container(
        db_path or settings.db_path,
        low_stock_threshold=settings.low_stock_threshold,
        busy_timeout=settings.busy_timeout,
    )


@cli.command("init-db")
@click.pass_context
def init_db(ctx: click.Context) -> None:
    """Create or migrate the database schema."""
    container = _container(ctx)
    click.echo(f"Database ready: {container.repo.db_path} (integrity={container.repo.integrity_check()})")


@cli.group()
def product() -> None:
    """Manage products."""


@product.command("add")
@click.option("--sku", required=True, help="Unique product code.")
@click.option("--name", required=True, help="Display name.")
@click.option("--price", required=True, help="Unit price, e.g. 9.99.")
@click.option("--stock", default=0, show_default=True, type=int, help="Initial stock.")
@click.pass_context
def product_add(ctx: click.Context, sku: str, name: str, price: str, stock: int) -> None:
    """Add a product to the catalogue."""
    try:
        pid = _container(ctx).inventory.add_product(sku, name, price, stock)
    except BusinessError as exc:
        raise click.ClickException(exc.detailed_message())
    click.echo(f"Product #{pid} created ({sku})")


@product.command("list")
@click.pass_context
def product_list(ctx: click.Context) -> None:
    """List products with price and stock."""
    products = _container(ctx).inventory.list_products()
    click.echo(f"  {'ID':>4} {'SKU':<12} {'Name':<24} {'Price':>10} {'Stock':>6}")
    click.echo(f"  {'-'*60}")
    for p in products:
        click.echo(f"  {p.id:>4} {p.sku:<12} {p.name:<24} {p.price:>10} {p.stock:>6}")


@product.command("low-stock")
@click.option("--threshold", default=10, show_default=True, type=int, help="Report products with stock below this.")
@click.pass_context
def product_low_stock(ctx: click.Context, threshold: int) -> None:
    """List products running low on stock."""
    for p in _container(ctx).inventory.low_stock(threshold):
        click.echo(f"  {p.sku:<12} {p.name:<24} stock={p.stock}")


@cli.command("consume")
@click.argument("source", type=click.File("r", encoding="utf-8"), default="-")
@click.pass_context
def consume(ctx: click.Context, source) -> None:
    """Process sale messages, one JSON document per line."""
    ingest = _container(ctx).ingest
    failed = 0
    for lineno, raw in enumerate(source, start=1):
        if not raw.strip():
            continue
        result = ingest.handle_message(raw.strip())
        if result.ok:
            tx = result.transaction
            click.echo(f"line {lineno}: processed transaction #{tx.id} total={tx.total_price}")
        elif result.error is not None:
            failed += 1
            retry = " (retryable)" if result.retryable else ""
            click.echo(f"line {lineno}: failed [{result.error.code}] {result.error.message}{retry}", err=True)
        else:
            click.echo(f"line {lineno}: skipped (not JSON)", err=True)
    if failed:
        ctx.exit(1)


@cli.group()
def transaction() -> None:
    """Inspect transactions."""


@transaction.command("show")
@click.option("--id", "transaction_id", required=True, type=int, help="Transaction ID to display.")
@click.pass_context
def transaction_show(ctx: click.Context, transaction_id: int) -> None:
    """Show a transaction with its lines."""
    container = _container(ctx)
    try:
        header, lines = container.reporting.transaction_detail(transaction_id)
    except BusinessError as exc:
        raise click.ClickException(exc.detailed_message())

    click.echo(f"Transaction #{header.id}  date={header.transaction_date.isoformat()}")
    click.echo(f"Created:  {header.created_at}")
    click.echo()
    click.echo(f"  {'Product':>8} {'Qty':>5} {'Price':>10} {'Total':>12}")
    click.echo(f"  {'-'*38}")
    for line in lines:
        click.echo(f"  {line.product_id:>8} {line.qty:>5} {line.unit_price:>10} {line.total_price:>12}")
    click.echo(f"  {'-'*38}")
    click.echo(f"  {'Total':<16} {header.total_price:>20}")


@cli.group()
def report() -> None:
    """Export reports."""


@report.command("export")
@click.option("--start", required=True, callback=_parse_date, help="First date (yyyy-MM-dd).")
@click.option("--end", required=True, callback=_parse_date, help="Last date (yyyy-MM-dd).")
@click.option("--out", required=True, type=click.Path(dir_okay=False, path_type=Path), help="Target .xlsx file.")
@click.pass_context
def report_export(ctx: click.Context, start: date, end: date, out: Path) -> None:
    """Export transactions in a date range to Excel."""
    try:
        count = _container(ctx).reporting.export_transactions_excel(str(out), start, end)
    except BusinessError as exc:
        raise click.ClickException(exc.detailed_message())
    click.echo(f"Exported {count} transactions to {out}")
