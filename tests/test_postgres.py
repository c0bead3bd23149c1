"""PostgresStore SQL against a recording psycopg2 connection."""

import pytest

import floatplan.data.postgres as postgres
from floatplan.core.errors import NotFound
from floatplan.core.models import AccessPoint, LngLat, MileMarker, River
from floatplan.data.postgres import PostgresStore


class FakeCursor:
    def __init__(self, rowcount=1):
        self.statements = []
        self.rowcount = rowcount

    def execute(self, sql, params=None):
        self.statements.append((sql, params))

    def fetchone(self):
        return None

    def close(self):
        pass


class FakeConnection:
    def __init__(self, cursor):
        self._cursor = cursor
        self.committed = False
        self.rolled_back = False
        self.closed = False

    def cursor(self):
        return self._cursor

    def commit(self):
        self.committed = True

    def rollback(self):
        self.rolled_back = True

    def close(self):
        self.closed = True


@pytest.fixture
def db(monkeypatch):
    cursor = FakeCursor()
    conn = FakeConnection(cursor)
    monkeypatch.setattr(postgres.psycopg2, "connect", lambda url: conn)
    return conn, cursor


def test_upsert_access_point_clears_snap_when_moved(db):
    conn, cursor = db

    PostgresStore("postgresql://test").upsert_access_point(
        AccessPoint("ap-mid", "current", "Akers", LngLat(-91.0, 36.8), approved=True)
    )

    sql, params = cursor.statements[0]
    assert "ON CONFLICT (id) DO UPDATE" in sql
    assert "location_snap = CASE" in sql
    assert "river_mile_downstream = CASE" in sql
    assert sql.count("ST_Equals(access_points.location_orig, EXCLUDED.location_orig)") == 2
    assert params == ("ap-mid", "current", "Akers", "SRID=4326;POINT(-91.0 36.8)", True)
    assert conn.committed and conn.closed


def test_upsert_river_replaces_markers_only_when_given(db, monkeypatch):
    _, cursor = db
    inserted = []
    monkeypatch.setattr(
        postgres, "execute_values", lambda cur, sql, rows: inserted.extend(rows)
    )
    store = PostgresStore("postgresql://test")
    river = River("current", "Current River", [(-91.0, 37.0), (-91.0, 36.5)], True)

    store.upsert_river(river)
    assert len(cursor.statements) == 1

    store.upsert_river(river, [MileMarker("current", 10.0, "Cedargrove")])
    assert cursor.statements[-1][0] == "DELETE FROM mile_markers WHERE river_id = %s"
    assert inserted == [("current", 10.0, "Cedargrove", None)]


def test_update_missing_access_point_is_not_found(db):
    conn, cursor = db
    cursor.rowcount = 0

    with pytest.raises(NotFound):
        PostgresStore("postgresql://test").update_access_point_mile("ap-gone", 14.0)

    assert conn.rolled_back
    assert not conn.committed


def test_get_missing_river_is_not_found(db):
    with pytest.raises(NotFound, match="River missouri"):
        PostgresStore("postgresql://test").get_river("missouri")
