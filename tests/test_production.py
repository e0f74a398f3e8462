from datetime import datetime, timedelta, timezone

import pytest
from sqlmodel import select

from comanda.errors import InvalidInputError
from comanda.lines import set_production_status
from comanda.models import LineStatus, OrderLine
from comanda.orders import add_line
from comanda.production import _age_human, list_active_lines
from comanda.settlement import complete_payment
from comanda.tables import open_table

T0 = datetime(2026, 3, 14, 19, 0, 0, tzinfo=timezone.utc)


def _stamp(session, line_id, created_at) -> None:
    line = session.get(OrderLine, line_id)
    line.created_at = created_at
    session.add(line)
    session.commit()


@pytest.fixture
def queue(session, floor):
    o1 = open_table(session, floor.t1)
    o2 = open_table(session, floor.t2)
    late = add_line(session, o1.id, floor.p1, notes="sem sal")
    early = add_line(session, o2.id, floor.p2)
    middle = add_line(session, o2.id, floor.p1)
    _stamp(session, late.id, T0 + timedelta(minutes=10))
    _stamp(session, early.id, T0)
    _stamp(session, middle.id, T0 + timedelta(minutes=5))
    return {"late": late.id, "early": early.id, "middle": middle.id, "o1": o1.id, "o2": o2.id}


def test_oldest_first_with_table_labels(session, queue) -> None:
    rows = list_active_lines(session, now=T0 + timedelta(minutes=12))

    assert [r.line_id for r in rows] == [queue["early"], queue["middle"], queue["late"]]
    assert [r.table_label for r in rows] == ["2", "2", "1"]
    assert rows[2].notes == "sem sal"
    assert rows[0].product_name == "Suco"


def test_urgent_after_fifteen_minutes(session, queue) -> None:
    rows = list_active_lines(session, now=T0 + timedelta(minutes=15))
    urgent = {r.line_id: r.is_urgent for r in rows}

    assert urgent == {queue["early"]: True, queue["middle"]: False, queue["late"]: False}
    assert rows[0].elapsed_minutes == 15


def test_ready_and_delivered_lines_leave_queue(session, queue) -> None:
    set_production_status(session, queue["early"], "preparing")
    set_production_status(session, queue["early"], "ready")
    complete_payment(session, queue["o1"], "cash")

    rows = list_active_lines(session, now=T0)
    assert [r.line_id for r in rows] == [queue["middle"]]


def test_filter_by_status(session, queue) -> None:
    set_production_status(session, queue["middle"], "preparing")

    preparing = list_active_lines(session, status=LineStatus.preparing, now=T0)
    pending = list_active_lines(session, status="pending", now=T0)

    assert [r.line_id for r in preparing] == [queue["middle"]]
    assert [r.line_id for r in pending] == [queue["early"], queue["late"]]
    with pytest.raises(InvalidInputError):
        list_active_lines(session, status="ready")
    with pytest.raises(InvalidInputError):
        list_active_lines(session, status="served")


def test_custom_threshold_and_dict(session, queue) -> None:
    rows = list_active_lines(session, now=T0 + timedelta(minutes=6), urgent_after=timedelta(minutes=5))
    data = rows[0].as_dict()

    assert data["is_urgent"] is True
    assert data["age"] == "6m 0s"
    assert data["status"] == "pending"
    assert [r.is_urgent for r in rows] == [True, False, False]


def test_view_does_not_mutate(session, queue) -> None:
    q = select(OrderLine).order_by(OrderLine.id)
    before = [(ln.id, ln.status) for ln in session.exec(q).all()]
    list_active_lines(session)
    after = [(ln.id, ln.status) for ln in session.exec(q).all()]
    assert before == after


@pytest.mark.parametrize("seconds, text", [(5, "5s"), (125, "2m 5s"), (3720, "1h 2m")])
def test_age_human(seconds, text) -> None:
    assert _age_human(seconds) == text
