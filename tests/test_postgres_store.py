from __future__ import annotations

import json
from datetime import timedelta
from decimal import Decimal

import pytest

from care_refresh.core.exceptions import PersistenceError, ValidationError
from care_refresh.core.models import DataKind
from care_refresh.jobs.postgres_store import DELETE_SQL, INSERT_SQL, LOCK_SQL, SCHEMA_SQL, PostgresDatasetStore
from factories import NOW, make_facility, make_law, make_news


_STATE_COLUMN = {
    INSERT_SQL[DataKind.FACILITIES]: 5,
    INSERT_SQL[DataKind.LAWS]: 0,
    INSERT_SQL[DataKind.NEWS]: 4,
}


class FakeTransaction:
    def __init__(self, connection: "FakeConnection") -> None:
        self._connection = connection
        self._snapshot: list[tuple] = []

    async def __aenter__(self) -> "FakeTransaction":
        self._connection.events.append("begin")
        self._snapshot = list(self._connection.table)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        if exc_type:
            self._connection.table = self._snapshot
        self._connection.events.append("rollback" if exc_type else "commit")
        return False


class FakeConnection:
    """Keeps inserted rows of one table in ``table`` and undoes them on rollback."""

    def __init__(self, fail_on_insert: bool = False, rows: list[dict] | None = None) -> None:
        self.events: list[str] = []
        self.executed: list[tuple[str, tuple]] = []
        self.inserted: list[tuple[str, list[tuple]]] = []
        self.table: list[tuple] = []
        self.fail_on_insert = fail_on_insert
        self._rows = rows or []
        self._state_column = 0

    def transaction(self) -> FakeTransaction:
        return FakeTransaction(self)

    async def execute(self, sql: str, *args) -> str:
        self.executed.append((sql, args))
        if sql in DELETE_SQL.values():
            self.table = [row for row in self.table if row[self._state_column] != args[0]]
        return "OK"

    async def executemany(self, sql: str, values: list[tuple]) -> None:
        self._state_column = _STATE_COLUMN[sql]
        self.table.extend(values)
        if self.fail_on_insert:
            raise RuntimeError("insert failed")
        self.inserted.append((sql, values))

    async def fetch(self, sql: str, *args) -> list[dict]:
        self.executed.append((sql, args))
        return self._rows



class FakeAcquire:
    def __init__(self, connection: FakeConnection) -> None:
        self._connection = connection

    async def __aenter__(self) -> FakeConnection:
        return self._connection

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        return False


class FakePool:
    def __init__(self, connection: FakeConnection) -> None:
        self.connection = connection
        self.closed = False

    def acquire(self) -> FakeAcquire:
        return FakeAcquire(self.connection)

    async def close(self) -> None:
        self.closed = True


def _store(connection: FakeConnection, **kwargs) -> tuple[PostgresDatasetStore, FakePool]:
    pool = FakePool(connection)

    async def pool_factory(_: str):
        return pool

    return PostgresDatasetStore("postgresql://example", pool_factory=pool_factory, **kwargs), pool


@pytest.mark.asyncio
async def test_replace_locks_deletes_and_inserts_in_one_transaction() -> None:
    connection = FakeConnection()
    store, _ = _store(connection)

    saved = await store.replace("IN", DataKind.FACILITIES, [make_facility("A"), make_facility("B")])

    assert saved == 2
    assert connection.events == ["begin", "commit"]
    assert connection.executed[0] == (LOCK_SQL, ("facilities:IN",))
    assert connection.executed[1] == (DELETE_SQL[DataKind.FACILITIES], ("IN",))
    sql, values = connection.inserted[0]
    assert sql == INSERT_SQL[DataKind.FACILITIES]
    assert [row[0] for row in values] == ["A", "B"]
    assert values[0][5] == "IN"
    assert values[0][9] == Decimal("39.7684")
    assert json.loads(values[0][16]) == ["Family Planning"]


@pytest.mark.asyncio
async def test_news_delete_is_scoped_to_recency_window() -> None:
    connection = FakeConnection()
    store, _ = _store(connection, news_recency_days=30)

    await store.replace("IL", DataKind.NEWS, [make_news("one", 1)], now=NOW)

    sql, args = connection.executed[1]
    assert sql == DELETE_SQL[DataKind.NEWS]
    assert args == ("IL", NOW - timedelta(days=30))


@pytest.mark.asyncio
async def test_insert_failure_rolls_back_and_keeps_previous_rows() -> None:
    connection = FakeConnection()
    store, _ = _store(connection)
    await store.replace("IN", DataKind.LAWS, [make_law("Existing A"), make_law("Existing B")])
    await store.replace("IL", DataKind.LAWS, [make_law("Illinois", region="IL")])
    rows_before = list(connection.table)
    connection.fail_on_insert = True

    with pytest.raises(PersistenceError):
        await store.replace("IN", DataKind.LAWS, [make_law("Replacement")])

    assert connection.events[-2:] == ["begin", "rollback"]
    assert connection.table == rows_before
    assert len(connection.table) == 3
    assert [row[2] for row in connection.table if row[0] == "IN"] == ["Existing A", "Existing B"]


@pytest.mark.asyncio
async def test_record_of_wrong_kind_is_rejected_before_transaction() -> None:
    connection = FakeConnection()
    store, _ = _store(connection)

    with pytest.raises(ValidationError, match="expected Law"):
        await store.replace("IN", DataKind.LAWS, [make_news("headline", 1)])

    assert connection.events == []


@pytest.mark.asyncio
async def test_facilities_without_coordinates_never_open_a_transaction() -> None:
    connection = FakeConnection()
    store, _ = _store(connection)

    with pytest.raises(ValidationError):
        await store.replace("IN", DataKind.FACILITIES, [make_facility("A", with_coordinates=False)])

    assert connection.events == []


@pytest.mark.asyncio
async def test_list_records_maps_rows_back_to_models() -> None:
    row = {
        "state": "IN",
        "category": "General",
        "title": "Overview",
        "content": "Content",
        "source": "Source",
        "effective_date": None,
        "last_updated": NOW,
    }
    store, _ = _store(FakeConnection(rows=[row]))

    laws = await store.list_records("IN", DataKind.LAWS)

    assert laws == [make_law("Overview")]


@pytest.mark.asyncio
async def test_ensure_schema_and_close() -> None:
    connection = FakeConnection()
    store, pool = _store(connection)

    await store.ensure_schema()
    await store.close()

    assert connection.executed == [(SCHEMA_SQL, ())]
    assert pool.closed is True
