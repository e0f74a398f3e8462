# comanda/orders.py
"""
Order engine.

An order's ``total_cents`` is a cached value: after every line mutation it is
recomputed from the stored line set (never by adding deltas) and persisted in
the same transaction. ``current_total`` re-checks the cache against the lines
and treats a mismatch as a bug.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional

from sqlalchemy import func as sa_func
from sqlmodel import Session, select

from .catalog import get_product
from .db import atomic
from .errors import ConsistencyError, InvalidInputError, InvalidStateError, NotFoundError
from .events import LINE_CHANGED, EventFeed, publish
from .locks import order_lock
from .models import (
    DiningTable,
    LineStatus,
    Order,
    OrderLine,
    OrderStatus,
    Product,
    TableStatus,
    as_utc,
    cents_to_decimal,
)
from .tables import open_table

log = logging.getLogger("comanda.orders")

_LINE_RANK = {
    LineStatus.pending: 0,
    LineStatus.preparing: 1,
    LineStatus.ready: 2,
    LineStatus.delivered: 3,
}


@dataclass
class LineView:
    id: int
    order_id: int
    product_id: int
    product_name: str
    quantity: int
    unit_price_cents: int
    notes: str
    status: LineStatus
    created_at: datetime

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "name": self.product_name,
            "quantity": self.quantity,
            "unit_price": str(cents_to_decimal(self.unit_price_cents)),
            "line_total": str(cents_to_decimal(self.line_total_cents)),
            "notes": self.notes,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
        }


# ---- loading ----------------------------------------------------------------

def load_order(session: Session, order_id: int) -> Order:
    order = session.get(Order, order_id, populate_existing=True)
    if not order:
        raise NotFoundError(f"order {order_id} not found")
    return order


def _ensure_open(order: Order) -> None:
    if order.status == OrderStatus.paid:
        raise InvalidStateError(f"order {order.id} is already paid")


def get_or_create_active_order(session: Session, table_id: int, *, feed: Optional[EventFeed] = None) -> Order:
    return open_table(session, table_id, feed=feed)


# ---- aggregate --------------------------------------------------------------

def sum_lines_cents(session: Session, order_id: int) -> int:
    session.flush()
    total = session.exec(
        select(sa_func.coalesce(sa_func.sum(OrderLine.unit_price_cents * OrderLine.quantity), 0))
        .where(OrderLine.order_id == order_id)
    ).one()
    return int(total or 0)


def rollup_status(statuses: Iterable[LineStatus]) -> OrderStatus:
    """Kitchen progress of an unpaid order, derived from its lines."""
    ranks = [_LINE_RANK[LineStatus(s)] for s in statuses]
    if not ranks:
        return OrderStatus.pending
    if min(ranks) >= _LINE_RANK[LineStatus.delivered]:
        return OrderStatus.delivered
    if min(ranks) >= _LINE_RANK[LineStatus.ready]:
        return OrderStatus.ready
    if max(ranks) >= _LINE_RANK[LineStatus.preparing]:
        return OrderStatus.preparing
    return OrderStatus.pending


def refresh_order(session: Session, order: Order) -> Order:
    """Recomputes total and status from the stored lines. Caller commits."""
    order.total_cents = sum_lines_cents(session, order.id)
    if order.status != OrderStatus.paid:
        statuses = session.exec(select(OrderLine.status).where(OrderLine.order_id == order.id)).all()
        order.status = rollup_status(statuses)
    session.add(order)
    log.debug("order #%s recomputed: total=%s status=%s", order.id, order.total_cents, order.status.value)
    return order


def verify_total(session: Session, order: Order) -> None:
    expected = sum_lines_cents(session, order.id)
    if int(order.total_cents) != expected:
        log.error("order #%s total drift: cached=%s lines=%s", order.id, order.total_cents, expected)
        raise ConsistencyError(
            f"order {order.id} total {order.total_cents} != sum of lines {expected}"
        )


def current_total(session: Session, order_id: int) -> Decimal:
    order = load_order(session, order_id)
    verify_total(session, order)
    return cents_to_decimal(order.total_cents)


# ---- line mutations ---------------------------------------------------------

def add_line(
    session: Session,
    order_id: int,
    product_id: int,
    quantity: int = 1,
    notes: str = "",
    *,
    feed: Optional[EventFeed] = None,
) -> OrderLine:
    """
    Adds ``quantity`` of a product to an unpaid order.

    A line for the same product that is not yet delivered absorbs the
    quantity instead of a new line being created (notes are not part of the
    key). New lines snapshot the current catalog price.
    """
    if int(quantity) < 1:
        raise InvalidInputError("quantity must be a positive integer")

    with order_lock(order_id):
        with atomic(session):
            order = load_order(session, order_id)
            _ensure_open(order)
            verify_total(session, order)

            line = session.exec(
                select(OrderLine)
                .where(
                    OrderLine.order_id == order.id,
                    OrderLine.product_id == product_id,
                    OrderLine.status != LineStatus.delivered,
                )
                .order_by(OrderLine.id)
                .execution_options(populate_existing=True)
            ).first()

            if line is not None:
                line.quantity += int(quantity)
                log.debug("order #%s: merged %sx product %s into line #%s", order.id, quantity, product_id, line.id)
            else:
                product = get_product(session, product_id)
                if not product.active:
                    raise InvalidStateError(f"product {product.name} is not available")
                line = OrderLine(
                    order_id=order.id,
                    product_id=product.id,
                    quantity=int(quantity),
                    unit_price_cents=product.price_cents,
                    notes=notes or "",
                    status=LineStatus.pending,
                )
            session.add(line)
            session.flush()
            refresh_order(session, order)

    publish(feed, LINE_CHANGED, line.id)
    return line


def remove_line(session: Session, order_id: int, line_id: int, *, feed: Optional[EventFeed] = None) -> Order:
    """Deletes a line whatever its production status."""
    with order_lock(order_id):
        with atomic(session):
            order = load_order(session, order_id)
            _ensure_open(order)
            verify_total(session, order)
            line = session.get(OrderLine, line_id)
            if not line or line.order_id != order.id:
                raise NotFoundError(f"line {line_id} not found in order {order_id}")
            if line.status != LineStatus.pending:
                log.info("order #%s: removing line #%s already %s", order.id, line.id, line.status.value)
            session.delete(line)
            session.flush()
            refresh_order(session, order)

    publish(feed, LINE_CHANGED, line_id)
    return order


# ---- read side --------------------------------------------------------------

def order_lines(session: Session, order_id: int) -> List[LineView]:
    rows = session.exec(
        select(OrderLine, Product)
        .where(OrderLine.order_id == order_id)
        .join(Product, Product.id == OrderLine.product_id)
        .order_by(OrderLine.created_at, OrderLine.id)
    ).all()
    return [
        LineView(
            id=int(ol.id),
            order_id=int(ol.order_id),
            product_id=int(prod.id),
            product_name=prod.name,
            quantity=int(ol.quantity),
            unit_price_cents=int(ol.unit_price_cents),
            notes=ol.notes or "",
            status=LineStatus(ol.status),
            created_at=as_utc(ol.created_at),
        )
        for ol, prod in rows
    ]


def order_as_dict(session: Session, order: Order) -> dict:
    return {
        "id": order.id,
        "table_id": order.table_id,
        "status": order.status.value,
        "total": str(cents_to_decimal(order.total_cents)),
        "paid_method": order.paid_method.value if order.paid_method else None,
        "created_at": as_utc(order.created_at).isoformat(),
        "closed_at": as_utc(order.closed_at).isoformat() if order.closed_at else None,
        "lines": [lv.as_dict() for lv in order_lines(session, order.id)],
    }


def audit_invariants(session: Session) -> List[str]:
    """Violations of the total and occupancy invariants; empty when healthy."""
    problems: List[str] = []

    sums = dict(session.exec(
        select(OrderLine.order_id, sa_func.sum(OrderLine.unit_price_cents * OrderLine.quantity))
        .group_by(OrderLine.order_id)
    ).all())
    orders = session.exec(select(Order)).all()
    unpaid_by_table: dict[int, list[int]] = {}
    for o in orders:
        expected = int(sums.get(o.id) or 0)
        if int(o.total_cents) != expected:
            problems.append(f"order {o.id}: total {o.total_cents} != lines {expected}")
        if o.status != OrderStatus.paid and o.table_id is not None:
            unpaid_by_table.setdefault(int(o.table_id), []).append(int(o.id))

    for t in session.exec(select(DiningTable)).all():
        unpaid = unpaid_by_table.get(int(t.id), [])
        if t.status == TableStatus.occupied:
            if len(unpaid) != 1:
                problems.append(f"table {t.label}: occupied with {len(unpaid)} unpaid orders")
            elif t.current_order_id != unpaid[0]:
                problems.append(f"table {t.label}: bound to order {t.current_order_id}, open order is {unpaid[0]}")
        else:
            if unpaid:
                problems.append(f"table {t.label}: free but has unpaid orders {unpaid}")
            if t.current_order_id is not None:
                problems.append(f"table {t.label}: free but still bound to order {t.current_order_id}")

    for p in problems:
        log.error("invariant violation: %s", p)
    return problems
