"""
Lightweight psycopg stand-in for unit tests.

Provides ``install_fake_psycopg`` which monkeypatches ``psycopg.connect`` as seen
by a target module so every connection records the statements executed against
it and replays scripted results. Exceptions from the real ``psycopg.errors``
module can be scripted to exercise SQLSTATE translation.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple


@dataclass
class Scripted:
    """One canned response, consumed by the next `execute` call."""

    rows: List[Dict[str, Any]] = field(default_factory=list)
    rowcount: int = 0
    error: Optional[BaseException] = None


class FakeDB:
    def __init__(self) -> None:
        self.executed: List[Tuple[str, Tuple[Any, ...]]] = []
        self.dsns: List[str] = []
        self.commits = 0
        self.rollbacks = 0
        self._script: List[Scripted] = []

    def returns(self, *rows: Dict[str, Any], rowcount: Optional[int] = None) -> "FakeDB":
        self._script.append(Scripted(rows=list(rows), rowcount=len(rows) if rowcount is None else rowcount))
        return self

    def fails(self, error: BaseException) -> "FakeDB":
        self._script.append(Scripted(error=error))
        return self

    def next(self) -> Scripted:
        return self._script.pop(0) if self._script else Scripted()

    @property
    def last_sql(self) -> str:
        return " ".join(self.executed[-1][0].split())

    @property
    def last_params(self) -> Tuple[Any, ...]:
        return self.executed[-1][1]


class _FakeCursor:
    def __init__(self, db: FakeDB) -> None:
        self._db = db
        self._rows: List[Dict[str, Any]] = []
        self.rowcount = 0

    def execute(self, sql: str, params: Sequence[Any] = ()) -> None:
        self._db.executed.append((sql, tuple(params)))
        step = self._db.next()
        if step.error is not None:
            raise step.error
        self._rows = list(step.rows)
        self.rowcount = step.rowcount

    def fetchone(self):
        return self._rows.pop(0) if self._rows else None

    def fetchall(self):
        rows, self._rows = self._rows, []
        return rows

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False


class _FakeConn:
    def __init__(self, db: FakeDB) -> None:
        self._db = db

    def cursor(self, row_factory=None):
        return _FakeCursor(self._db)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is None:
            self._db.commits += 1
        else:
            self._db.rollbacks += 1
        return False


def install_fake_psycopg(monkeypatch, target_module) -> FakeDB:
    """
    Patch ``target_module.psycopg.connect`` so statements go to a recording fake.

    Returns the FakeDB used to script results and inspect executed SQL.
    """
    db = FakeDB()

    def fake_connect(dsn: str, **kwargs: Any):
        db.dsns.append(dsn)
        return _FakeConn(db)

    monkeypatch.setattr(target_module.psycopg, "connect", fake_connect)
    return db


__all__ = ["FakeDB", "Scripted", "install_fake_psycopg"]
