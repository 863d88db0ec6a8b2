import threading

import pytest

from qrlink_platform.errors import Conflict, NotFound
from qrlink_platform.storage.storage import Storage


@pytest.fixture
def store():
    return Storage()


def test_insert_and_lookup(store):
    code = store.insert_code("promo", "https://example.com/p", "Promo", "desc", "a,b")
    assert code.id == 1
    assert store.get_code(code.id).slug == "promo"
    assert store.get_code_by_slug("promo").destination_url == "https://example.com/p"
    # Case-sensitive.
    assert store.get_code_by_slug("PROMO") is None


def test_insert_duplicate_slug_conflicts(store):
    store.insert_code("dup", "https://a.example", "A")
    with pytest.raises(Conflict):
        store.insert_code("dup", "https://b.example", "B")
    assert len(store.list_codes()) == 1


def test_returned_records_are_copies(store):
    code = store.insert_code("copy", "https://example.com", "Copy")
    code.title = "mutated"
    assert store.get_code(code.id).title == "Copy"


def test_list_codes_newest_first(store):
    first = store.insert_code("one", "https://example.com/1", "1")
    second = store.insert_code("two", "https://example.com/2", "2")
    assert [c.id for c in store.list_codes()] == [second.id, first.id]


def test_update_slug(store):
    a = store.insert_code("a", "https://example.com", "A")
    store.insert_code("b", "https://example.com", "B")
    with pytest.raises(Conflict):
        store.update_slug(a.id, "b")
    assert store.update_slug(a.id, "c") is True
    assert store.get_code_by_slug("a") is None
    assert store.get_code_by_slug("c").id == a.id
    assert store.update_slug(999, "zzz") is False


def test_slug_exists_with_exclusion(store):
    a = store.insert_code("taken", "https://example.com", "A")
    assert store.slug_exists("taken")
    assert not store.slug_exists("taken", exclude_id=a.id)
    assert not store.slug_exists("free")


def test_click_increment_and_reset(store):
    code = store.insert_code("clicks", "https://example.com", "C")
    assert store.increment_click(code.id)
    assert store.increment_click(code.id)
    assert store.get_code(code.id).click_count == 2
    assert store.reset_clicks(code.id)
    assert store.get_code(code.id).click_count == 0
    assert store.increment_click(999) is False


def test_concurrent_increments_are_not_lost(store):
    code = store.insert_code("busy", "https://example.com", "Busy")

    def scan():
        for _ in range(200):
            store.increment_click(code.id)

    threads = [threading.Thread(target=scan) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert store.get_code(code.id).click_count == 1600


def test_delete_code_cascades_versions(store):
    code = store.insert_code("gone", "https://example.com", "Gone")
    with store.transaction(code.id) as tx:
        v = tx.insert_version("V1", {})
    assert store.delete_code(code.id) is True
    assert store.get_version(v.id) is None
    assert store.get_code_by_slug("gone") is None
    assert store.delete_code(code.id) is False


def test_delete_code_releases_its_lock(store):
    code = store.insert_code("temp", "https://example.com", "Temp")
    with store.transaction(code.id) as tx:
        tx.insert_version("V1", {})
    assert code.id in store._code_locks
    store.delete_code(code.id)
    assert code.id not in store._code_locks


def test_transaction_requires_code(store):
    with pytest.raises(NotFound, match="QR code not found"):
        with store.transaction(42):
            pass


def test_transaction_commits(store):
    code = store.insert_code("tx", "https://example.com", "Tx")
    with store.transaction(code.id) as tx:
        v = tx.insert_version("V1", {"a": 1})
        tx.set_image_path(v.id, "qr-code-1/v1.png")
        tx.clear_favorites()
        tx.mark_favorite(v.id)
        tx.set_favorite_pointer(v.id)
        assert tx.code.favorite_version_id == v.id

    stored = store.get_version(v.id)
    assert stored.is_favorite
    assert stored.image_path == "qr-code-1/v1.png"
    assert store.get_code(code.id).favorite_version_id == v.id
    assert store.count_versions(code.id) == 1


def test_transaction_rolls_back_versions_and_pointer(store):
    code = store.insert_code("rb", "https://example.com", "Rb")
    with store.transaction(code.id) as tx:
        v1 = tx.insert_version("V1", {})
        tx.mark_favorite(v1.id)
        tx.set_favorite_pointer(v1.id)

    with pytest.raises(RuntimeError):
        with store.transaction(code.id) as tx:
            v2 = tx.insert_version("V2", {})
            tx.clear_favorites()
            tx.mark_favorite(v2.id)
            tx.set_favorite_pointer(v2.id)
            store.increment_click(code.id)
            raise RuntimeError("boom")

    assert store.count_versions(code.id) == 1
    assert store.get_version(v1.id).is_favorite
    assert store.get_code(code.id).favorite_version_id == v1.id
    # Clicks are not part of the rollback.
    assert store.get_code(code.id).click_count == 1


def test_transaction_only_sees_own_versions(store):
    a = store.insert_code("a", "https://example.com", "A")
    b = store.insert_code("b", "https://example.com", "B")
    with store.transaction(b.id) as tx:
        foreign = tx.insert_version("B1", {})
    with store.transaction(a.id) as tx:
        assert tx.get_version(foreign.id) is None
        assert tx.list_versions() == []
        with pytest.raises(NotFound):
            tx.mark_favorite(foreign.id)
        assert tx.delete_version(foreign.id) is False


def test_list_versions_pagination(store):
    code = store.insert_code("pages", "https://example.com", "P")
    with store.transaction(code.id) as tx:
        ids = [tx.insert_version(f"V{i}", {}).id for i in range(5)]
    newest_first = list(reversed(ids))
    assert [v.id for v in store.list_versions(code.id)] == newest_first
    assert [v.id for v in store.list_versions(code.id, limit=2, offset=2)] == newest_first[2:4]
    assert store.count_versions(code.id) == 5


def test_update_version_fields(store):
    code = store.insert_code("upd", "https://example.com", "U")
    with store.transaction(code.id) as tx:
        v = tx.insert_version("Old", {"k": 1})
    updated = store.update_version(v.id, name="New")
    assert updated.name == "New"
    assert updated.style_config == {"k": 1}
    updated = store.update_version(v.id, style_config={"k": 2}, logo_path="qr-code-1/logos/logo_v1.png")
    assert updated.style_config == {"k": 2}
    assert updated.logo_path == "qr-code-1/logos/logo_v1.png"
    assert store.update_version(999, name="x") is None
