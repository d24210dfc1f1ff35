from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Callable

from stp.domain.errors import ValidationError, NotFoundError
from stp.domain.models import MovementKind, Product
from stp.repositories.unit_of_work import SqliteUnitOfWork, UnitOfWork
from stp.services.audit_recorder import AuditRecorder
from stp.services.stock_ledger import StockLedger

log = logging.getLogger(__name__)

PRICE_SCALE = Decimal("0.01")


def parse_price(value) -> Decimal:
    try:
        price = Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as e:
        raise ValidationError(f"Invalid price: {value}", field="price", value=value) from e
    if not price.is_finite() or price <= 0:
        raise ValidationError("Price must be > 0.", field="price", value=value)
    if price != price.quantize(PRICE_SCALE):
        raise ValidationError("Price must have at most 2 decimal places.", field="price", value=value)
    return price.quantize(PRICE_SCALE)


class InventoryService:
    def __init__(self, repo, uow_factory: Callable[[], UnitOfWork] | None = None):
        self.repo = repo
        self.uow_factory = uow_factory or (lambda: SqliteUnitOfWork(repo))

    def list_products(self) -> list[Product]:
        return self.repo.list_products()

    def low_stock(self, threshold: int = 10) -> list[Product]:
        return self.repo.list_low_stock(threshold)

    def get_product(self, product_id: int) -> Product:
        p = self.repo.get_product_by_id(int(product_id))
        if not p:
            raise NotFoundError(f"Product not found with ID: {product_id}", productId=product_id)
        return p

    def get_product_by_sku(self, sku: str) -> Product:
        p = self.repo.get_product_by_sku(sku)
        if not p:
            raise NotFoundError(f"Product not found with SKU: {sku}", sku=sku)
        return p

    def add_product(self, sku: str, name: str, price, stock: int) -> int:
        sku = (sku or "").strip()
        name = (name or "").strip()
        if not sku or not name:
            raise ValidationError("SKU and Name are required.")
        if int(stock) < 0:
            raise ValidationError("Stock must be >= 0.", field="stock", value=stock)
        if self.repo.get_product_by_sku(sku):
            raise ValidationError(f"SKU already exists: {sku}", field="sku", value=sku)
        pid = self.repo.add_product(sku, name, parse_price(price), int(stock))
        log.info("product_added id=%s sku=%s stock=%s", pid, sku, stock)
        return pid

    def restock(self, product_id: int, qty: int) -> int:
        """Add stock and record a PURCHASE movement in one unit of work."""
        if int(qty) <= 0:
            raise ValidationError("Quantity to add must be > 0.", field="qty", value=qty)
        with self.uow_factory() as uow:
            new_stock = StockLedger(uow).increment(int(product_id), int(qty))
            AuditRecorder(uow).record(int(product_id), int(qty), MovementKind.PURCHASE)
        return new_stock
