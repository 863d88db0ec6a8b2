import contextlib
from datetime import datetime, timezone

import psycopg
import psycopg.errors
import psycopg.rows
import pytest

from qrlink_platform.errors import Conflict, NotFound, StorageFailure, StorageTimeout
from qrlink_platform.storage.db_storage import DBStorage

NOW = datetime(2025, 6, 15, tzinfo=timezone.utc)


def code_row(**overrides):
    row = {
        "id": 1,
        "slug": "promo",
        "destination_url": "https://example.com",
        "title": "Promo",
        "description": "",
        "tags": "",
        "click_count": 0,
        "favorite_version_id": None,
        "created_at": NOW,
        "updated_at": NOW,
    }
    row.update(overrides)
    return row


def version_row(**overrides):
    row = {
        "id": 10,
        "code_id": 1,
        "name": "Version 1",
        "style_config": {"width": 300},
        "image_path": "qr-code-1/v10.png",
        "logo_path": None,
        "is_favorite": True,
        "created_at": NOW,
        "updated_at": NOW,
    }
    row.update(overrides)
    return row


class DummyCursor:
    def __init__(self, conn):
        self.conn = conn
        self.rowcount = conn.rowcount

    def execute(self, query, params=None):
        self.conn.executed.append((" ".join(query.split()), params))
        if self.conn.raise_on_execute is not None:
            raise self.conn.raise_on_execute
        return True

    def fetchone(self):
        if self.conn.results:
            return self.conn.results.pop(0)
        return None

    def fetchall(self):
        rows, self.conn.results = self.conn.results, []
        return rows

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False


class DummyConnection:
    def __init__(self, results=None, rowcount=1, raise_on_execute=None):
        # results is a list of dicts or tuples, consumed in order
        self.results = list(results or [])
        self.rowcount = rowcount
        self.raise_on_execute = raise_on_execute
        self.autocommit = False
        self.executed = []
        self.closed = False
        self.committed = None

    def cursor(self, row_factory=None):
        return DummyCursor(self)

    @contextlib.contextmanager
    def transaction(self):
        try:
            yield
        except BaseException:
            self.committed = False
            raise
        self.committed = True

    def close(self):
        self.closed = True


@pytest.fixture
def connect(monkeypatch):
    """Install a DummyConnection as psycopg.connect and return it."""
    calls = []

    def install(conn):
        def fake_connect(dsn, **kwargs):
            calls.append(kwargs)
            return conn

        monkeypatch.setattr("psycopg.connect", fake_connect)
        return conn

    install.calls = calls
    return install


# ---------------------------------------------------------------------
# Codes
# ---------------------------------------------------------------------

def test_insert_code_returns_record(connect):
    conn = connect(DummyConnection(results=[code_row()]))
    code = DBStorage("fake").insert_code("promo", "https://example.com", "Promo")
    assert code.id == 1
    assert code.slug == "promo"
    assert conn.autocommit is True
    assert conn.closed


def test_insert_code_unique_violation_is_conflict(connect):
    connect(DummyConnection(raise_on_execute=psycopg.errors.UniqueViolation("dup")))
    with pytest.raises(Conflict):
        DBStorage("fake").insert_code("promo", "https://example.com", "Promo")


def test_get_code_by_slug_with_timeout(connect):
    connect(DummyConnection(results=[code_row(slug="sale")]))
    code = DBStorage("fake").get_code_by_slug("sale", timeout=0.5)
    assert code.slug == "sale"
    kwargs = connect.calls[-1]
    assert kwargs["connect_timeout"] == 1
    assert kwargs["options"] == "-c statement_timeout=500"


def test_get_code_missing(connect):
    connect(DummyConnection(results=[]))
    assert DBStorage("fake").get_code(99) is None


def test_query_cancel_is_timeout(connect):
    connect(DummyConnection(raise_on_execute=psycopg.errors.QueryCanceled("slow")))
    with pytest.raises(StorageTimeout):
        DBStorage("fake").get_code_by_slug("slow", timeout=0.1)


def test_driver_error_is_storage_failure(connect):
    connect(DummyConnection(raise_on_execute=psycopg.OperationalError("down")))
    with pytest.raises(StorageFailure, match="Database operation failed"):
        DBStorage("fake").list_codes()


def test_connect_failure_is_storage_failure(monkeypatch):
    def refuse(dsn, **kwargs):
        raise psycopg.OperationalError("refused")

    monkeypatch.setattr("psycopg.connect", refuse)
    with pytest.raises(StorageFailure, match="Database unavailable"):
        DBStorage("fake").get_code(1)


def test_update_slug(connect):
    connect(DummyConnection(rowcount=1))
    assert DBStorage("fake").update_slug(1, "new") is True

    connect(DummyConnection(rowcount=0))
    assert DBStorage("fake").update_slug(1, "new") is False

    connect(DummyConnection(raise_on_execute=psycopg.errors.UniqueViolation("dup")))
    with pytest.raises(Conflict):
        DBStorage("fake").update_slug(1, "taken")


def test_slug_exists(connect):
    conn = connect(DummyConnection(results=[(True,)]))
    assert DBStorage("fake").slug_exists("taken", exclude_id=3) is True
    assert conn.executed[-1][1] == ("taken", 3)

    connect(DummyConnection(results=[(False,)]))
    assert DBStorage("fake").slug_exists("free") is False


def test_increment_click_is_single_update(connect):
    conn = connect(DummyConnection(rowcount=1))
    assert DBStorage("fake").increment_click(1) is True
    query, params = conn.executed[-1]
    assert "click_count = click_count + 1" in query
    assert params == (1,)


def test_increment_click_with_timeout(connect):
    connect(DummyConnection(rowcount=1))
    assert DBStorage("fake").increment_click(1, timeout=0.5) is True
    assert connect.calls[-1] == {"connect_timeout": 1, "options": "-c statement_timeout=500"}


def test_increment_click_lock_wait_is_timeout(connect):
    connect(DummyConnection(raise_on_execute=psycopg.errors.QueryCanceled("lock wait")))
    with pytest.raises(StorageTimeout):
        DBStorage("fake").increment_click(1, timeout=0.5)


def test_reset_and_delete_missing(connect):
    connect(DummyConnection(rowcount=0))
    storage = DBStorage("fake")
    assert storage.reset_clicks(5) is False
    assert storage.delete_code(5) is False


# ---------------------------------------------------------------------
# Versions
# ---------------------------------------------------------------------

def test_list_and_count_versions(connect):
    conn = connect(DummyConnection(results=[version_row(id=11), version_row(id=10)]))
    versions = DBStorage("fake").list_versions(1, limit=2, offset=0)
    assert [v.id for v in versions] == [11, 10]
    assert conn.executed[-1][1] == (1, 2, 0)

    connect(DummyConnection(results=[(3,)]))
    assert DBStorage("fake").count_versions(1) == 3


def test_null_style_config_becomes_dict(connect):
    connect(DummyConnection(results=[version_row(style_config=None)]))
    assert DBStorage("fake").get_version(10).style_config == {}


def test_update_version_builds_partial_set(connect):
    conn = connect(DummyConnection(results=[version_row(name="Renamed")]))
    version = DBStorage("fake").update_version(10, name="Renamed")
    assert version.name == "Renamed"
    query, params = conn.executed[-1]
    assert "name = %s" in query
    assert "style_config" not in query.split("RETURNING")[0]
    assert params == ["Renamed", 10]


def test_transaction_locks_code_row_and_commits(connect):
    conn = connect(DummyConnection(results=[code_row(), version_row(is_favorite=False)], rowcount=1))
    storage = DBStorage("fake")
    with storage.transaction(1) as tx:
        assert tx.code.id == 1
        version = tx.insert_version("Version 1", {"width": 300})
        tx.clear_favorites()
        tx.mark_favorite(version.id)
        tx.set_favorite_pointer(version.id)
        assert tx.code.favorite_version_id == version.id

    assert "FOR UPDATE" in conn.executed[0][0]
    assert conn.committed is True


def test_transaction_missing_code(connect):
    conn = connect(DummyConnection(results=[]))
    with pytest.raises(NotFound):
        with DBStorage("fake").transaction(404):
            pass
    assert conn.committed is False


def test_transaction_sets_logo_path(connect):
    conn = connect(DummyConnection(results=[code_row()], rowcount=1))
    with DBStorage("fake").transaction(1) as tx:
        tx.set_logo_path(10, "qr-code-1/logos/logo_v10.png")
    query, params = conn.executed[-1]
    assert query.startswith("UPDATE qr_code_versions SET logo_path")
    assert params == ("qr-code-1/logos/logo_v10.png", 10, 1)
    assert conn.committed is True


def test_transaction_rolls_back_on_error(connect):
    conn = connect(DummyConnection(results=[code_row()], rowcount=0))
    with pytest.raises(NotFound, match="Version not found"):
        with DBStorage("fake").transaction(1) as tx:
            tx.clear_favorites()
            tx.mark_favorite(77)
    assert conn.committed is False
