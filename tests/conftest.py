from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from comanda.db import get_session_dep, install_sqlite_pragmas
from comanda.events import EventFeed
from comanda.main import app
from comanda.models import Category, DiningTable, Product


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session(engine):
    with Session(engine, expire_on_commit=False) as s:
        yield s


def _populate(engine) -> SimpleNamespace:
    with Session(engine) as s:
        food = Category(name="Pratos")
        s.add(food)
        s.flush()
        t1 = DiningTable(label="1")
        t2 = DiningTable(label="2")
        p1 = Product(name="Pastel", price_cents=1250, category_id=food.id)
        p2 = Product(name="Suco", price_cents=500)
        off = Product(name="Sazonal", price_cents=900, active=False)
        s.add_all([t1, t2, p1, p2, off])
        s.commit()
        return SimpleNamespace(t1=t1.id, t2=t2.id, p1=p1.id, p2=p2.id, inactive=off.id)


@pytest.fixture
def floor(engine):
    """Two free tables, Pastel @ 12.50, Suco @ 5.00 and one inactive product."""
    return _populate(engine)


@pytest.fixture
def feed():
    return EventFeed()


@pytest.fixture
def client(engine, floor):
    def override_get_session():
        with Session(engine, expire_on_commit=False) as s:
            yield s

    app.dependency_overrides[get_session_dep] = override_get_session
    # no context manager: startup would create the default database
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def file_engine(tmp_path):
    """File database with the production pragmas, for multi-threaded tests."""
    eng = create_engine(
        f"sqlite:///{tmp_path / 'comanda.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    install_sqlite_pragmas(eng)
    SQLModel.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def file_floor(file_engine):
    return _populate(file_engine)
