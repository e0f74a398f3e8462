# comanda/views_pos.py
from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlmodel import Session

from .catalog import get_product, list_products
from .db import get_session_dep
from .events import feed
from .models import DiningTable
from .orders import add_line, current_total, load_order, order_as_dict, remove_line
from .tables import list_occupied_tables, list_tables, open_table

router = APIRouter(prefix="/api")

SessionDep = Annotated[Session, Depends(get_session_dep)]


class LineIn(BaseModel):
    product_id: int
    quantity: int = Field(1, gt=0)
    notes: str = Field("", max_length=500)


def _table_dict(t: DiningTable) -> dict:
    return {
        "id": t.id,
        "label": t.label,
        "status": t.status.value,
        "current_order_id": t.current_order_id,
    }


# ---- catalog (read-only) ----------------------------------------------------

@router.get("/products")
def api_products(session: SessionDep, include_inactive: bool = False):
    rows = list_products(session, active_only=not include_inactive)
    return {
        "ok": True,
        "products": [
            {"id": p.id, "name": p.name, "price": str(p.price), "category": p.category, "active": p.active}
            for p in rows
        ],
    }


@router.get("/products/{product_id}")
def api_product(session: SessionDep, product_id: int):
    p = get_product(session, product_id)
    return {"ok": True, "product": {"id": p.id, "name": p.name, "price": str(p.price),
                                    "category": p.category, "active": p.active}}


# ---- tables -----------------------------------------------------------------

@router.get("/tables")
def api_tables(session: SessionDep):
    return {"ok": True, "tables": [_table_dict(t) for t in list_tables(session)]}


@router.get("/tables/occupied")
def api_tables_occupied(session: SessionDep):
    return {"ok": True, "tables": [_table_dict(t) for t in list_occupied_tables(session)]}


@router.post("/tables/{table_id}/open")
def api_open_table(session: SessionDep, table_id: int):
    order = open_table(session, table_id, feed=feed)
    return {"ok": True, "order": order_as_dict(session, order)}


# ---- orders -----------------------------------------------------------------

@router.get("/orders/{order_id}")
def api_order(session: SessionDep, order_id: int):
    order = load_order(session, order_id)
    return {"ok": True, "order": order_as_dict(session, order)}


@router.post("/orders/{order_id}/lines")
def api_add_line(session: SessionDep, order_id: int, body: LineIn):
    line = add_line(session, order_id, body.product_id, body.quantity, body.notes, feed=feed)
    order = load_order(session, order_id)
    return JSONResponse(
        {"ok": True, "line_id": line.id, "order": order_as_dict(session, order)},
        status_code=201,
    )


@router.delete("/orders/{order_id}/lines/{line_id}")
def api_remove_line(session: SessionDep, order_id: int, line_id: int):
    order = remove_line(session, order_id, line_id, feed=feed)
    return {"ok": True, "order": order_as_dict(session, order)}


@router.get("/orders/{order_id}/total")
def api_order_total(session: SessionDep, order_id: int):
    return {"ok": True, "order_id": order_id, "total": str(current_total(session, order_id))}
