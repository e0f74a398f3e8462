import asyncio
import logging
import os

from fastapi import FastAPI, Request, WebSocket
from fastapi.responses import JSONResponse, PlainTextResponse
from fastapi.websockets import WebSocketDisconnect

from .config import CONFIG
from .db import create_db_and_tables, seed_if_empty
from .errors import ComandaError, ConsistencyError
from .events import feed
from .ws import manager
from . import views_pos, views_kds, views_checkout, views_admin

log = logging.getLogger("comanda")

app = FastAPI(title="Comanda: order lifecycle engine")


@app.exception_handler(ComandaError)
async def comanda_error_handler(request: Request, exc: ComandaError):
    if isinstance(exc, ConsistencyError):
        log.error("consistency failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse({"ok": False, "error": str(exc), "kind": type(exc).__name__},
                        status_code=exc.status_code)


@app.on_event("startup")
async def on_startup():
    logging.basicConfig(
        level=os.getenv("COMANDA_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    create_db_and_tables()
    if CONFIG.seed.enabled:
        seed_if_empty()
    manager.attach(feed, asyncio.get_running_loop())


@app.get("/health", response_class=PlainTextResponse)
def health():
    return "OK"


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    await manager.connect(websocket)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        manager.disconnect(websocket)


app.include_router(views_pos.router)
app.include_router(views_kds.router)
app.include_router(views_checkout.router)
app.include_router(views_admin.router)
