# comanda/lines.py
"""Ticket line engine: kitchen-side production status of single lines."""
from __future__ import annotations

import logging
from typing import Iterable, Optional

from sqlmodel import Session

from .db import atomic
from .errors import InvalidStateError, InvalidTransitionError, NotFoundError
from .events import LINE_CHANGED, EventFeed, publish
from .locks import order_lock
from .models import LineStatus, OrderLine, OrderStatus
from .orders import load_order, refresh_order, verify_total

log = logging.getLogger("comanda.lines")

# delivered is only ever reached through settlement
TRANSITIONS: dict[LineStatus, frozenset[LineStatus]] = {
    LineStatus.pending: frozenset({LineStatus.preparing}),
    LineStatus.preparing: frozenset({LineStatus.ready}),
    LineStatus.ready: frozenset(),
    LineStatus.delivered: frozenset(),
}


def can_transition(current: LineStatus, new: LineStatus) -> bool:
    return LineStatus(new) in TRANSITIONS[LineStatus(current)]


def set_production_status(
    session: Session,
    line_id: int,
    new_status: LineStatus | str,
    *,
    feed: Optional[EventFeed] = None,
) -> OrderLine:
    try:
        target = LineStatus(new_status)
    except ValueError:
        raise InvalidTransitionError(f"unknown production status: {new_status!r}") from None

    line = session.get(OrderLine, line_id)
    if not line:
        raise NotFoundError(f"line {line_id} not found")
    order_id = line.order_id

    with order_lock(order_id):
        with atomic(session):
            line = session.get(OrderLine, line_id, populate_existing=True)
            if not line:
                raise NotFoundError(f"line {line_id} not found")
            order = load_order(session, order_id)
            if order.status == OrderStatus.paid:
                raise InvalidStateError(f"order {order.id} is already paid")
            verify_total(session, order)
            current = LineStatus(line.status)
            if not can_transition(current, target):
                raise InvalidTransitionError(
                    f"line {line.id}: {current.value} -> {target.value} not allowed"
                )
            line.status = target
            session.add(line)
            session.flush()
            refresh_order(session, order)

    log.info("line #%s %s -> %s", line_id, current.value, target.value)
    publish(feed, LINE_CHANGED, line_id)
    return line


def mark_delivered(session: Session, lines: Iterable[OrderLine]) -> int:
    """Forces lines to delivered. Settlement only; caller holds the lock and commits."""
    n = 0
    for line in lines:
        if line.status != LineStatus.delivered:
            line.status = LineStatus.delivered
            session.add(line)
            n += 1
    return n
