from __future__ import annotations
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum


class MovementKind(str, Enum):
    SALE = "SALE"
    PURCHASE = "PURCHASE"
    ADJUSTMENT = "ADJUSTMENT"


@dataclass(frozen=True)
class Product:
    id: int
    sku: str
    name: str
    price: Decimal
    stock: int
    created_at: str
    updated_at: str


@dataclass(frozen=True)
class TransactionHeader:
    id: int
    transaction_date: date
    total_price: Decimal
    created_at: str


@dataclass(frozen=True)
class TransactionLine:
    id: int
    transaction_id: int
    product_id: int
    qty: int
    unit_price: Decimal
    total_price: Decimal
    created_at: str


@dataclass(frozen=True)
class StockMovement:
    id: int
    product_id: int
    quantity_change: int
    kind: MovementKind
    created_at: str


@dataclass(frozen=True)
class SaleItem:
    product_id: int
    qty: int


@dataclass(frozen=True)
class SaleRequest:
    """Parsed sale event. The date is still the raw ISO string from the message."""

    transaction_date: str
    items: tuple[SaleItem, ...]
