# comanda/settlement.py
"""
Checkout / settlement flow.

Paying an order forces all its lines to delivered, marks it paid and frees
its table, all in one transaction: either every change is committed or none
is. Locks are taken order first, then table.
"""
from __future__ import annotations

import logging
from contextlib import ExitStack
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlmodel import Session, select

from .db import atomic
from .errors import InvalidStateError, NotFoundError
from .events import ORDER_PAID, TABLE_RELEASED, EventFeed, publish
from .lines import mark_delivered
from .locks import order_lock, table_lock
from .models import (
    DiningTable,
    Order,
    OrderLine,
    OrderStatus,
    PaymentMethod,
    as_utc,
    cents_to_decimal,
    utcnow,
)
from .orders import LineView, load_order, order_lines, verify_total
from .tables import get_active_order, load_table, release_table

log = logging.getLogger("comanda.settlement")


@dataclass
class SettlementView:
    order_id: int
    table_id: int
    table_label: str
    status: OrderStatus
    total_cents: int
    created_at: datetime
    lines: List[LineView] = field(default_factory=list)

    @property
    def total(self) -> Decimal:
        return cents_to_decimal(self.total_cents)

    def as_dict(self) -> dict:
        return {
            "order_id": self.order_id,
            "table_id": self.table_id,
            "table": self.table_label,
            "status": self.status.value,
            "total": str(self.total),
            "created_at": self.created_at.isoformat(),
            "lines": [lv.as_dict() for lv in self.lines],
            "payment_methods": [m.value for m in PaymentMethod],
        }


@dataclass
class ReceiptSnapshot:
    """Finalized, immutable view of a paid order for the receipt renderer."""
    order_id: int
    table_label: str
    lines: List[LineView]
    total_cents: int
    paid_method: PaymentMethod
    closed_at: datetime

    @property
    def total(self) -> Decimal:
        return cents_to_decimal(self.total_cents)

    def as_dict(self) -> dict:
        return {
            "order_id": self.order_id,
            "table": self.table_label,
            "lines": [lv.as_dict() for lv in self.lines],
            "total": str(self.total),
            "paid_method": self.paid_method.value,
            "closed_at": self.closed_at.isoformat(),
        }


def load_settlement_view(session: Session, table_id: int) -> SettlementView:
    table = load_table(session, table_id)
    order = get_active_order(session, table.id)
    if order is None:
        raise NotFoundError(f"table {table.label} has no open order")
    return SettlementView(
        order_id=int(order.id),
        table_id=int(table.id),
        table_label=table.label,
        status=order.status,
        total_cents=int(order.total_cents),
        created_at=as_utc(order.created_at),
        lines=order_lines(session, order.id),
    )


def complete_payment(
    session: Session,
    order_id: int,
    paid_method: PaymentMethod | str,
    *,
    feed: Optional[EventFeed] = None,
    now: Optional[datetime] = None,
) -> ReceiptSnapshot:
    try:
        method = PaymentMethod(paid_method)
    except ValueError:
        raise InvalidStateError(f"unsupported payment method: {paid_method!r}") from None

    # table id is read before locking to know which lock to take second;
    # an order never changes table
    table_id = load_order(session, order_id).table_id
    closed_at = as_utc(now) or utcnow()

    with ExitStack() as stack:
        stack.enter_context(order_lock(order_id))
        if table_id is not None:
            stack.enter_context(table_lock(table_id))

        with atomic(session):
            order = load_order(session, order_id)
            if order.status == OrderStatus.paid:
                raise InvalidStateError(f"order {order.id} is already paid")
            verify_total(session, order)

            lines = session.exec(
                select(OrderLine)
                .where(OrderLine.order_id == order.id)
                .execution_options(populate_existing=True)
            ).all()
            forced = mark_delivered(session, lines)

            order.status = OrderStatus.paid
            order.paid_method = method
            order.closed_at = closed_at
            session.add(order)
            session.flush()

            table_label = ""
            if table_id is not None:
                table = release_table(session, table_id)
                table_label = table.label

    log.info(
        "order #%s paid (%s) total=%s, %d line(s) forced to delivered, table %s freed",
        order_id, method.value, order.total_cents, forced, table_label or "-",
    )
    publish(feed, ORDER_PAID, order_id)
    if table_id is not None:
        publish(feed, TABLE_RELEASED, table_id)

    return ReceiptSnapshot(
        order_id=int(order_id),
        table_label=table_label,
        lines=order_lines(session, order_id),
        total_cents=int(order.total_cents),
        paid_method=method,
        closed_at=closed_at,
    )


def receipt_for(session: Session, order_id: int) -> ReceiptSnapshot:
    """Snapshot of an already paid order (reprints)."""
    order: Order = load_order(session, order_id)
    if order.status != OrderStatus.paid:
        raise InvalidStateError(f"order {order.id} is not paid yet")
    table = session.get(DiningTable, order.table_id) if order.table_id is not None else None
    return ReceiptSnapshot(
        order_id=int(order.id),
        table_label=table.label if table else "",
        lines=order_lines(session, order.id),
        total_cents=int(order.total_cents),
        paid_method=PaymentMethod(order.paid_method),
        closed_at=as_utc(order.closed_at),
    )
