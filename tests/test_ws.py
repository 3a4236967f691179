# test_ws.py -- ConnectionRegistry tests

from __future__ import annotations

import itertools
import threading

from lrserver.ws import ConnectionRegistry

_ids = itertools.count(1)


class FakeConnection:
    """Registry only needs a hashable object with an ``id``."""

    def __init__(self) -> None:
        self.id = next(_ids)


def test_add_remove() -> None:
    reg = ConnectionRegistry()
    conn = FakeConnection()
    reg.add(conn)
    assert conn in reg
    assert len(reg) == 1
    reg.remove(conn)
    assert conn not in reg
    assert len(reg) == 0


def test_remove_idempotent() -> None:
    reg = ConnectionRegistry()
    a, b = FakeConnection(), FakeConnection()
    reg.add(a)
    reg.add(b)
    reg.remove(a)
    reg.remove(a)  # Should not raise
    assert len(reg) == 1
    assert b in reg


def test_remove_absent_noop() -> None:
    reg = ConnectionRegistry()
    reg.remove(FakeConnection())
    assert len(reg) == 0


def test_for_each_visits_each_once() -> None:
    reg = ConnectionRegistry()
    conns = [FakeConnection() for _ in range(5)]
    for c in conns:
        reg.add(c)
    seen: list[FakeConnection] = []
    reg.for_each(seen.append)
    assert sorted(c.id for c in seen) == sorted(c.id for c in conns)


def test_for_each_empty() -> None:
    reg = ConnectionRegistry()
    calls: list[object] = []
    reg.for_each(calls.append)
    assert calls == []


def test_for_each_may_mutate() -> None:
    reg = ConnectionRegistry()
    conns = [FakeConnection() for _ in range(3)]
    for c in conns:
        reg.add(c)
    reg.for_each(reg.remove)
    assert len(reg) == 0


def test_concurrent_add_remove() -> None:
    reg = ConnectionRegistry()
    keep = [FakeConnection() for _ in range(10)]
    for c in keep:
        reg.add(c)

    def churn() -> None:
        for _ in range(200):
            c = FakeConnection()
            reg.add(c)
            reg.for_each(lambda _c: None)
            reg.remove(c)
            reg.remove(c)

    threads = [threading.Thread(target=churn) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(reg) == 10
    assert all(c in reg for c in keep)
