# comanda/production.py
"""
Kitchen production queue.

A read projection over all orders: lines still pending or in preparation,
oldest first, with the table label and age of each. Recomputed on every
poll; urgency is a pure function of the clock.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sqlmodel import Session, select

from .config import CONFIG
from .errors import InvalidInputError
from .models import DiningTable, LineStatus, Order, OrderLine, Product, as_utc

ACTIVE_STATUSES = (LineStatus.pending, LineStatus.preparing)


def _age_human(seconds: int) -> str:
    m, s = divmod(max(0, int(seconds)), 60)
    h, m = divmod(m, 60)
    if h:
        return f"{h}h {m}m"
    if m:
        return f"{m}m {s}s"
    return f"{s}s"


@dataclass
class ActiveLine:
    line_id: int
    order_id: int
    product_name: str
    quantity: int
    notes: str
    status: LineStatus
    table_label: str
    created_at: datetime
    elapsed: timedelta
    is_urgent: bool

    @property
    def elapsed_minutes(self) -> int:
        return int(self.elapsed.total_seconds() // 60)

    def as_dict(self) -> dict:
        return {
            "line_id": self.line_id,
            "order_id": self.order_id,
            "name": self.product_name,
            "quantity": self.quantity,
            "notes": self.notes,
            "status": self.status.value,
            "table": self.table_label,
            "created_at": self.created_at.isoformat(),
            "elapsed_minutes": self.elapsed_minutes,
            "age": _age_human(int(self.elapsed.total_seconds())),
            "is_urgent": self.is_urgent,
        }


def list_active_lines(
    session: Session,
    status: Optional[LineStatus | str] = None,
    now: Optional[datetime] = None,
    urgent_after: Optional[timedelta] = None,
) -> List[ActiveLine]:
    if status is not None:
        try:
            status = LineStatus(status)
        except ValueError:
            raise InvalidInputError(f"unknown line status: {status!r}") from None
        if status not in ACTIVE_STATUSES:
            raise InvalidInputError(f"kitchen queue only holds {[s.value for s in ACTIVE_STATUSES]}")
        wanted = (status,)
    else:
        wanted = ACTIVE_STATUSES

    now = as_utc(now) or datetime.now(timezone.utc)
    if urgent_after is None:
        urgent_after = timedelta(minutes=CONFIG.kitchen.urgent_after_minutes)

    rows = session.exec(
        select(OrderLine, Product, DiningTable)
        .join(Product, Product.id == OrderLine.product_id)
        .join(Order, Order.id == OrderLine.order_id)
        .join(DiningTable, DiningTable.id == Order.table_id, isouter=True)
        .where(OrderLine.status.in_(wanted))
        .order_by(OrderLine.created_at.asc(), OrderLine.id.asc())
    ).all()

    out: List[ActiveLine] = []
    for ol, prod, table in rows:
        created = as_utc(ol.created_at)
        elapsed = max(now - created, timedelta(0))
        out.append(ActiveLine(
            line_id=int(ol.id),
            order_id=int(ol.order_id),
            product_name=prod.name,
            quantity=int(ol.quantity),
            notes=ol.notes or "",
            status=LineStatus(ol.status),
            table_label=table.label if table else "",
            created_at=created,
            elapsed=elapsed,
            is_urgent=elapsed >= urgent_after,
        ))
    return out
