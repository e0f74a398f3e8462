# comanda/tables.py
"""
Table engine: occupancy and the table -> open order binding.

``free -> occupied`` happens on open, ``occupied -> free`` only through
settlement. Opening an occupied table returns its current order.
"""
from __future__ import annotations

import logging
from typing import List, Optional

from sqlmodel import Session, select

from .db import atomic
from .errors import InvalidStateError, NotFoundError
from .events import ORDER_CREATED, EventFeed, publish
from .locks import table_lock
from .models import DiningTable, Order, OrderStatus, TableStatus

log = logging.getLogger("comanda.tables")


def load_table(session: Session, table_id: int) -> DiningTable:
    table = session.get(DiningTable, table_id, populate_existing=True)
    if not table:
        raise NotFoundError(f"table {table_id} not found")
    return table


def _unpaid_order(session: Session, table_id: int) -> Optional[Order]:
    return session.exec(
        select(Order)
        .where(Order.table_id == table_id, Order.status != OrderStatus.paid)
        .order_by(Order.id)
        .execution_options(populate_existing=True)
    ).first()


def open_table(session: Session, table_id: int, *, feed: Optional[EventFeed] = None) -> Order:
    """Returns the table's unpaid order, creating it (and occupying the table) if needed."""
    created = False
    with table_lock(table_id):
        with atomic(session):
            table = load_table(session, table_id)
            order = _unpaid_order(session, table.id)
            if order is None:
                order = Order(table_id=table.id, status=OrderStatus.pending, total_cents=0)
                session.add(order)
                session.flush()
                table.status = TableStatus.occupied
                table.current_order_id = order.id
                session.add(table)
                created = True

    if created:
        log.info("table %s opened, order #%s", table.label, order.id)
        publish(feed, ORDER_CREATED, order.id)
    return order


def get_active_order(session: Session, table_id: int) -> Optional[Order]:
    load_table(session, table_id)
    return _unpaid_order(session, table_id)


def list_tables(session: Session) -> List[DiningTable]:
    return list(session.exec(select(DiningTable).order_by(DiningTable.id)).all())


def list_occupied_tables(session: Session) -> List[DiningTable]:
    return list(session.exec(
        select(DiningTable)
        .where(DiningTable.status == TableStatus.occupied)
        .order_by(DiningTable.id)
    ).all())


def release_table(session: Session, table_id: int) -> DiningTable:
    """
    Frees a table whose current order has just been paid.

    Runs inside the settlement transaction and does not commit. Any call made
    while the bound order is still unpaid is rejected.
    """
    table = session.get(DiningTable, table_id)
    if not table:
        raise NotFoundError(f"table {table_id} not found")
    if table.status != TableStatus.occupied or table.current_order_id is None:
        raise InvalidStateError(f"table {table.label} is not occupied")

    order = session.get(Order, table.current_order_id)
    if order is None or order.status != OrderStatus.paid:
        raise InvalidStateError(f"table {table.label} still has an unpaid order")

    table.status = TableStatus.free
    table.current_order_id = None
    session.add(table)
    return table
