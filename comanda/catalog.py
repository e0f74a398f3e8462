# comanda/catalog.py
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func as sa_func
from sqlmodel import Session, select

from .errors import NotFoundError
from .models import Category, Product, cents_to_decimal


@dataclass(frozen=True)
class CatalogEntry:
    id: int
    name: str
    price_cents: int
    category: Optional[str]
    active: bool

    @property
    def price(self) -> Decimal:
        return cents_to_decimal(self.price_cents)


def get_product(session: Session, product_id: int) -> CatalogEntry:
    row = session.exec(
        select(Product, Category)
        .where(Product.id == product_id)
        .join(Category, Category.id == Product.category_id, isouter=True)
    ).first()
    if not row:
        raise NotFoundError(f"product {product_id} not found")
    prod, cat = row
    return CatalogEntry(
        id=int(prod.id),
        name=prod.name,
        price_cents=int(prod.price_cents or 0),
        category=cat.name if cat else None,
        active=bool(prod.active),
    )


def list_products(session: Session, active_only: bool = True) -> List[CatalogEntry]:
    q = (
        select(Product, Category)
        .join(Category, Category.id == Product.category_id, isouter=True)
        .order_by(sa_func.lower(Product.name))
    )
    if active_only:
        q = q.where(Product.active == True)  # noqa: E712
    return [
        CatalogEntry(
            id=int(p.id),
            name=p.name,
            price_cents=int(p.price_cents or 0),
            category=c.name if c else None,
            active=bool(p.active),
        )
        for p, c in session.exec(q).all()
    ]
