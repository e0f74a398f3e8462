import threading

from sqlmodel import Session, select

from comanda.errors import InvalidStateError
from comanda.locks import order_lock
from comanda.models import (
    DiningTable,
    LineStatus,
    Order,
    OrderLine,
    OrderStatus,
    TableStatus,
)
from comanda.orders import add_line, audit_invariants
from comanda.settlement import ReceiptSnapshot, complete_payment
from comanda.tables import open_table


def _call(engine, fn, *args, **kwargs):
    with Session(engine, expire_on_commit=False) as s:
        return fn(s, *args, **kwargs)


def _in_threads(*targets, timeout=60):
    """Runs each callable in its own thread, released together."""
    results, errors = [], []
    barrier = threading.Barrier(len(targets))

    def run(fn):
        barrier.wait()
        try:
            results.append(fn())
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=run, args=(fn,)) for fn in targets]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout)
    assert not any(t.is_alive() for t in threads), "worker still blocked"
    return results, errors


def _orders_of(s, table_id):
    return s.exec(select(Order).where(Order.table_id == table_id)).all()


def test_concurrent_adds_to_one_order(file_engine, file_floor) -> None:
    order_id = _call(file_engine, open_table, file_floor.t1).id

    _, errors = _in_threads(*[
        lambda: _call(file_engine, add_line, order_id, file_floor.p1) for _ in range(8)
    ])

    assert errors == []
    with Session(file_engine) as s:
        lines = s.exec(select(OrderLine).where(OrderLine.order_id == order_id)).all()
        assert len(lines) == 1
        assert lines[0].quantity == 8
        assert s.get(Order, order_id).total_cents == 8 * 1250
        assert audit_invariants(s) == []


def test_parallel_opens_of_one_table_yield_one_order(file_engine, file_floor) -> None:
    results, errors = _in_threads(*[
        lambda: _call(file_engine, open_table, file_floor.t1).id for _ in range(8)
    ])

    assert errors == []
    assert len(results) == 8
    assert len(set(results)) == 1
    with Session(file_engine) as s:
        assert [o.id for o in _orders_of(s, file_floor.t1)] == results[:1]
        table = s.get(DiningTable, file_floor.t1)
        assert table.status == TableStatus.occupied
        assert table.current_order_id == results[0]
        assert audit_invariants(s) == []


def test_payment_racing_line_adds(file_engine, file_floor) -> None:
    order_id = _call(file_engine, open_table, file_floor.t1).id
    _call(file_engine, add_line, order_id, file_floor.p1)

    pay = lambda: _call(file_engine, complete_payment, order_id, "card")
    add = lambda: _call(file_engine, add_line, order_id, file_floor.p2)
    results, errors = _in_threads(add, add, add, pay, add, add, add)

    # adds that lost the race see a paid order; nothing else may fail
    assert all(isinstance(e, InvalidStateError) for e in errors)
    snapshots = [r for r in results if isinstance(r, ReceiptSnapshot)]
    assert len(snapshots) == 1
    added = len(results) - 1

    with Session(file_engine) as s:
        order = s.get(Order, order_id)
        lines = s.exec(select(OrderLine).where(OrderLine.order_id == order_id)).all()
        assert order.status == OrderStatus.paid
        assert order.total_cents == 1250 + 500 * added == snapshots[0].total_cents
        assert all(ln.status == LineStatus.delivered for ln in lines)
        assert sum(ln.quantity for ln in lines) == 1 + added
        assert s.get(DiningTable, file_floor.t1).status == TableStatus.free
        assert audit_invariants(s) == []


def test_concurrent_settlements_do_not_deadlock(file_engine, file_floor) -> None:
    o1 = _call(file_engine, open_table, file_floor.t1).id
    o2 = _call(file_engine, open_table, file_floor.t2).id
    _call(file_engine, add_line, o1, file_floor.p1)
    _call(file_engine, add_line, o2, file_floor.p2, quantity=2)

    results, errors = _in_threads(*[
        lambda oid=oid: _call(file_engine, complete_payment, oid, "cash")
        for oid in (o1, o2, o1, o2, o1, o2)
    ])

    # each order is paid exactly once; repeats are rejected
    assert sorted(r.order_id for r in results) == sorted([o1, o2])
    assert len(errors) == 4
    assert all(isinstance(e, InvalidStateError) for e in errors)
    with Session(file_engine) as s:
        for table_id in (file_floor.t1, file_floor.t2):
            table = s.get(DiningTable, table_id)
            assert table.status == TableStatus.free
            assert table.current_order_id is None
            assert len(_orders_of(s, table_id)) == 1
        assert audit_invariants(s) == []


def test_other_orders_proceed_while_one_is_locked(file_engine, file_floor) -> None:
    busy = _call(file_engine, open_table, file_floor.t1).id
    idle = _call(file_engine, open_table, file_floor.t2).id

    with order_lock(busy):
        _, errors = _in_threads(
            lambda: _call(file_engine, add_line, idle, file_floor.p1),
            lambda: _call(file_engine, complete_payment, idle, "pix"),
            timeout=30,
        )

    # the add may land after payment
    assert all(isinstance(e, InvalidStateError) for e in errors)
    with Session(file_engine) as s:
        assert s.get(Order, idle).status == OrderStatus.paid
        assert s.get(Order, busy).status == OrderStatus.pending
        assert audit_invariants(s) == []
