# comanda/db.py
from sqlmodel import SQLModel, create_engine, Session, select
from sqlalchemy import event
from contextlib import contextmanager
import logging
import os

from .config import CONFIG
# table registration only
from .models import Category, Product, DiningTable, Order, OrderLine  # noqa: F401

log = logging.getLogger("comanda.db")

# ---- Engine ----
DB_URL = os.getenv("COMANDA_DB_URL", "sqlite:///comanda.db")
IS_SQLITE = DB_URL.startswith("sqlite")

connect_args = {"check_same_thread": False, "timeout": 30} if IS_SQLITE else {}

engine = create_engine(
    DB_URL,
    echo=False,
    connect_args=connect_args,
    pool_pre_ping=True,
    pool_size=10,
    max_overflow=20,
    pool_timeout=10,
    pool_recycle=1800,
)


def install_sqlite_pragmas(target_engine) -> None:
    @event.listens_for(target_engine, "connect")
    def set_sqlite_pragmas(dbapi_connection, connection_record):
        cur = dbapi_connection.cursor()
        # WAL: readers (kitchen/checkout polling) run alongside one writer
        cur.execute("PRAGMA journal_mode=WAL;")
        cur.execute("PRAGMA busy_timeout=30000;")
        cur.execute("PRAGMA foreign_keys=ON;")
        cur.close()


if IS_SQLITE:
    install_sqlite_pragmas(engine)


# ---- Schema ----
def create_db_and_tables(target_engine=None):
    SQLModel.metadata.create_all(target_engine or engine)


# ---- Sessions ----
def get_session_dep():
    """FastAPI dependency: one session per request, always closed."""
    with Session(engine, expire_on_commit=False) as session:
        yield session


@contextmanager
def atomic(session: Session):
    """Commits on success; on any failure rolls back everything and re-raises."""
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise


# ---- Seed ----
DEMO_CATALOG = {
    "Pratos": [
        ("Feijoada", 4590),
        ("Picanha na chapa", 6290),
        ("Moqueca de peixe", 5890),
    ],
    "Lanches": [
        ("Pastel de carne", 1250),
        ("Coxinha", 800),
        ("Pão de queijo (6un)", 1500),
    ],
    "Bebidas": [
        ("Água 500ml", 500),
        ("Refrigerante lata", 700),
        ("Caipirinha", 1800),
    ],
}


def seed_if_empty(target_engine=None, tables: int | None = None):
    """Seeds tables and a demo catalog on an empty database."""
    n_tables = CONFIG.seed.tables if tables is None else tables
    with Session(target_engine or engine) as session:
        if not session.exec(select(DiningTable)).first():
            session.add_all([DiningTable(label=str(i)) for i in range(1, n_tables + 1)])
            session.commit()
            log.info("seeded %d tables", n_tables)

        if not session.exec(select(Product)).first():
            for cat_name, items in DEMO_CATALOG.items():
                cat = Category(name=cat_name)
                session.add(cat)
                session.flush()
                session.add_all([
                    Product(name=name, price_cents=price, category_id=cat.id)
                    for name, price in items
                ])
            session.commit()
            log.info("seeded demo catalog")
