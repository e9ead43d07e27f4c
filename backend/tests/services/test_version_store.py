# tests/services/test_version_store.py
import threading
from datetime import timedelta

import pytest
from sqlalchemy.orm import sessionmaker

from docbin.database import Base, build_engine
from docbin.schemas.revision import FileData
from docbin.services.store import (
    DocumentFileNotFoundError,
    DocumentNotFoundError,
    InvalidRevisionError,
    KeyConflictError,
    RevisionNotFoundError,
    StoreTimeoutError,
    VersionStore,
    utcnow,
)


def files(content: str = "print('hi')", name: str = "hello.py"):
    return [FileData(name=name, content=content)]


def test_create_and_get(store):
    """Test that a new document starts at version 0"""
    created = store.create("abcd1234", files())

    assert created.version == 0
    assert created.document_key == "abcd1234"
    assert created.expires_at is None
    assert created.files[0].language == "auto"

    fetched = store.get("abcd1234")
    assert fetched == created
    assert store.get("abcd1234", 0) == created


def test_append_revision_is_gapless(store):
    store.create("abcd1234", files("v0"))
    for expected in range(1, 5):
        revision = store.append_revision("abcd1234", files(f"v{expected}"))
        assert revision.version == expected

    assert [v.version for v in store.list_versions("abcd1234")] == [4, 3, 2, 1, 0]
    assert store.get("abcd1234").files[0].content == "v4"
    assert store.get("abcd1234", 2).files[0].content == "v2"


def test_old_revisions_are_unchanged(store):
    original = store.create("abcd1234", files("v0"))
    store.append_revision("abcd1234", files("v1", name="other.txt"))

    assert store.get("abcd1234", 0) == original


def test_missing_document(store):
    with pytest.raises(DocumentNotFoundError):
        store.get("missing1")
    with pytest.raises(DocumentNotFoundError):
        store.append_revision("missing1", files())
    with pytest.raises(DocumentNotFoundError):
        store.delete("missing1")
    assert not store.exists("missing1")


def test_missing_version_and_file(store):
    store.create("abcd1234", files())

    with pytest.raises(RevisionNotFoundError):
        store.get("abcd1234", 3)
    with pytest.raises(DocumentFileNotFoundError):
        store.get_file("abcd1234", "nope.py")
    assert store.get_file("abcd1234", "HELLO.py").name == "hello.py"


def test_create_existing_key(store):
    store.create("abcd1234", files())
    with pytest.raises(KeyConflictError):
        store.create("abcd1234", files())


def test_create_reuses_expired_key(store):
    store.create("abcd1234", files("old"), expires_at=utcnow() - timedelta(seconds=1))

    created = store.create("abcd1234", files("new"))

    assert created.version == 0
    assert store.get("abcd1234").files[0].content == "new"


@pytest.mark.parametrize("bad_files", [
    [],
    [FileData(name="", content="x")],
    [FileData(name="a.txt", content="x"), FileData(name="A.txt", content="y")],
])
def test_invalid_file_sets(store, bad_files):
    with pytest.raises(InvalidRevisionError):
        store.create("abcd1234", bad_files)
    assert not store.exists("abcd1234")


def test_expired_document_is_not_found(store):
    store.create("abcd1234", files(), expires_at=utcnow() - timedelta(seconds=1))

    assert not store.exists("abcd1234")
    with pytest.raises(DocumentNotFoundError):
        store.get("abcd1234")
    with pytest.raises(DocumentNotFoundError):
        store.list_versions("abcd1234")


def test_delete(store):
    store.create("abcd1234", files("v0"))
    store.append_revision("abcd1234", files("v1"))

    deleted = store.delete("abcd1234")

    assert deleted.version == 1
    assert not store.exists("abcd1234")
    with pytest.raises(DocumentNotFoundError):
        store.get("abcd1234", 0)


def test_delete_expired(store):
    store.create("expired1", files(), expires_at=utcnow() + timedelta(minutes=1))
    store.create("living01", files(), expires_at=utcnow() + timedelta(hours=1))
    store.create("forever1", files())

    deleted = store.delete_expired(now=utcnow() + timedelta(minutes=5))

    assert deleted == 1
    assert store.exists("living01")
    assert store.exists("forever1")
    assert not store.exists("expired1")


def test_delete_expired_by_age(store):
    store.create("idle0001", files())

    assert store.delete_expired(expire_after=3600) == 0
    assert store.delete_expired(now=utcnow() + timedelta(hours=2), expire_after=3600) == 1
    assert not store.exists("idle0001")


def test_lock_timeout(store):
    store.create("abcd1234", files())
    store.lock_timeout = 0.1

    with store.locks.hold("abcd1234"):
        with pytest.raises(StoreTimeoutError):
            store.append_revision("abcd1234", files("late"))

    assert len(store.locks) == 0
    assert store.get("abcd1234").version == 0


@pytest.fixture
def file_store(tmp_path):
    """Store backed by a database file, so several threads get their own connections"""
    engine = build_engine(f"sqlite:///{tmp_path / 'store.db'}")
    Base.metadata.create_all(engine)
    yield VersionStore(sessionmaker(bind=engine, expire_on_commit=False), lock_timeout=10)
    engine.dispose()


def test_concurrent_appends(file_store):
    """Test that concurrent writers get distinct, consecutive versions"""
    file_store.create("abcd1234", files("v0"))
    versions = []
    errors = []

    def append(index):
        try:
            versions.append(file_store.append_revision("abcd1234", files(f"writer {index}")).version)
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=append, args=(i,)) for i in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert sorted(versions) == list(range(1, 9))
    assert [v.version for v in file_store.list_versions("abcd1234")] == list(range(8, -1, -1))
    assert len(file_store.locks) == 0


def test_append_revision_keeps_expiry_unless_given(store):
    expires_at = utcnow() + timedelta(hours=1)
    store.create("abcd1234", files(), expires_at=expires_at)

    assert store.append_revision("abcd1234", files("v1")).expires_at == expires_at

    later = utcnow() + timedelta(days=1)
    assert store.append_revision("abcd1234", files("v2"), expires_at=later).expires_at == later
    assert store.get("abcd1234", 0).expires_at == later
