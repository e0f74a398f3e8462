# comanda/models.py
from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import Column, DateTime
from sqlmodel import SQLModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: datetime | None) -> datetime | None:
    """SQLite drops tzinfo: naive values are UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def cents_to_decimal(cents: int | None) -> Decimal:
    return (Decimal(int(cents or 0)) / 100).quantize(Decimal("0.01"))


def _tz_column(nullable: bool = False) -> Column:
    return Column(DateTime(timezone=True), nullable=nullable)


# ---- Status enums --------------------------------------------------------

class TableStatus(str, Enum):
    free = "free"
    occupied = "occupied"


class OrderStatus(str, Enum):
    pending = "pending"
    preparing = "preparing"
    ready = "ready"
    delivered = "delivered"
    paid = "paid"


class LineStatus(str, Enum):
    pending = "pending"
    preparing = "preparing"
    ready = "ready"
    delivered = "delivered"


class PaymentMethod(str, Enum):
    cash = "cash"
    card = "card"
    pix = "pix"


# ---- Catalog (reference data, read-only for the engine) -----------------

class Category(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str


class Product(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    price_cents: int = 0
    category_id: Optional[int] = Field(default=None, foreign_key="category.id")
    active: bool = True


# ---- Floor ----------------------------------------------------------------

class DiningTable(SQLModel, table=True):
    __tablename__ = "dining_table"
    id: Optional[int] = Field(default=None, primary_key=True)
    label: str = Field(index=True)
    status: TableStatus = TableStatus.free
    # no FK: order.table_id already points here
    current_order_id: Optional[int] = Field(default=None, index=True)


class Order(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    table_id: Optional[int] = Field(default=None, foreign_key="dining_table.id", index=True)
    status: OrderStatus = Field(default=OrderStatus.pending, index=True)
    total_cents: int = Field(default=0, nullable=False)
    paid_method: Optional[PaymentMethod] = None
    created_at: datetime = Field(default_factory=utcnow, sa_column=_tz_column())
    closed_at: Optional[datetime] = Field(default=None, sa_column=_tz_column(nullable=True))


class OrderLine(SQLModel, table=True):
    __tablename__ = "orderline"
    id: Optional[int] = Field(default=None, primary_key=True)
    order_id: int = Field(foreign_key="order.id", index=True)
    product_id: int = Field(foreign_key="product.id")
    quantity: int = 1
    # price at the time the line was placed; never re-read from the catalog
    unit_price_cents: int = 0
    notes: str = ""
    status: LineStatus = Field(default=LineStatus.pending, index=True)
    created_at: datetime = Field(default_factory=utcnow, sa_column=_tz_column())
