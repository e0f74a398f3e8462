# comanda/views_kds.py
from __future__ import annotations

from typing import Annotated, Literal, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlmodel import Session

from .db import get_session_dep
from .events import feed
from .lines import set_production_status
from .models import LineStatus
from .production import list_active_lines

SessionDep = Annotated[Session, Depends(get_session_dep)]

router = APIRouter(prefix="/api/kitchen", tags=["kitchen"])


@router.get("/lines")
def kitchen_lines(
    session: SessionDep,
    status: Optional[Literal["pending", "preparing"]] = Query(None, description="filter; default both"),
):
    """Polled by the kitchen screen every few seconds."""
    rows = list_active_lines(session, status=status)
    resp = JSONResponse({
        "ok": True,
        "lines": [r.as_dict() for r in rows],
        "urgent": sum(1 for r in rows if r.is_urgent),
    })
    resp.headers["Cache-Control"] = "no-store, max-age=0"
    return resp


@router.post("/lines/{line_id}/preparing")
def kitchen_preparing(session: SessionDep, line_id: int):
    line = set_production_status(session, line_id, LineStatus.preparing, feed=feed)
    return {"ok": True, "line_id": line.id, "status": line.status.value}


@router.post("/lines/{line_id}/ready")
def kitchen_ready(session: SessionDep, line_id: int):
    line = set_production_status(session, line_id, LineStatus.ready, feed=feed)
    return {"ok": True, "line_id": line.id, "status": line.status.value}
