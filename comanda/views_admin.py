# comanda/views_admin.py
from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlmodel import Session

from .db import get_session_dep
from .orders import audit_invariants

SessionDep = Annotated[Session, Depends(get_session_dep)]

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.get("/audit")
def admin_audit(session: SessionDep):
    """Order totals and table occupancy checked against the stored rows."""
    problems = audit_invariants(session)
    return JSONResponse({"ok": not problems, "violations": problems}, status_code=200 if not problems else 500)
