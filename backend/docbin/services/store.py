# backend/docbin/services/store.py
"""Durable, ordered storage of document revisions.

Every public operation runs in its own short transaction and returns frozen
pydantic snapshots, so nothing handed to callers is tied to a live session.
Writers for one key are serialised through ``KeyLockTable``; the unique
``(document_key, version)`` constraint backs that up when several processes
share a database.
"""
import threading
import time
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterable, List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from ..models import Document, File, Revision
from ..schemas.revision import FileData, Revision as RevisionSnapshot, VersionInfo
from ..utils.logging import db_logger


class StoreError(Exception):
    pass


class DocumentNotFoundError(StoreError):
    def __init__(self, key: str):
        self.key = key
        super().__init__(f"document {key} not found")


class RevisionNotFoundError(StoreError):
    def __init__(self, key: str, version: Optional[int]):
        self.key = key
        self.version = version
        super().__init__(f"version {version} of document {key} not found")


class DocumentFileNotFoundError(StoreError):
    def __init__(self, key: str, filename: str):
        self.key = key
        self.filename = filename
        super().__init__(f"file {filename} not found in document {key}")


class KeyConflictError(StoreError):
    def __init__(self, key: str):
        self.key = key
        super().__init__(f"document {key} already exists")


class ConcurrentWriteError(StoreError):
    """Another writer committed the same version first"""


class InvalidRevisionError(StoreError):
    pass


class StoreTimeoutError(StoreError):
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes (sqlite drops the offset) as UTC"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_expired(document: Document, now: datetime) -> bool:
    expires_at = as_utc(document.expires_at)
    return expires_at is not None and expires_at <= now


class KeyLockTable:
    """One lock per document key, created on first use and dropped once idle"""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, list] = {}

    @contextmanager
    def hold(self, key: str, timeout: Optional[float] = None):
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1

        lock = entry[0]
        acquired = lock.acquire(timeout=-1 if timeout is None else timeout)
        try:
            if not acquired:
                raise StoreTimeoutError(f"timed out waiting for a write lock on document {key}")
            yield
        finally:
            if acquired:
                lock.release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


def validate_files(files: Iterable[FileData]) -> List[FileData]:
    """Check a revision's file set and fill in default languages"""
    files = list(files)
    if not files:
        raise InvalidRevisionError("a document needs at least one file")

    seen = set()
    normalized = []
    for file in files:
        if not file.name or not file.name.strip():
            raise InvalidRevisionError("file name must not be empty")
        folded = file.name.casefold()
        if folded in seen:
            raise InvalidRevisionError(f"duplicate file name: {file.name}")
        seen.add(folded)
        normalized.append(file if file.language else file.model_copy(update={"language": "auto"}))
    return normalized


def _snapshot(revision: Revision, document: Document) -> RevisionSnapshot:
    return RevisionSnapshot(
        document_key=revision.document_key,
        version=revision.version,
        created_at=as_utc(revision.created_at),
        expires_at=as_utc(document.expires_at),
        files=tuple(FileData.model_validate(file) for file in revision.files),
    )


def _build_files(files: List[FileData]) -> List[File]:
    return [
        File(name=file.name, content=file.content, language=file.language, order_index=index)
        for index, file in enumerate(files)
    ]


class VersionStore:
    """Documents and their revisions, one short transaction per call.

    ``locks`` only queues writers inside this process. When several worker
    processes share the database, a writer that loses the race for a version
    number fails with ``ConcurrentWriteError`` instead of waiting.
    """

    def __init__(
            self,
            session_factory: Callable[[], Session],
            lock_timeout: Optional[float] = None,
            locks: Optional[KeyLockTable] = None
    ):
        self._session_factory = session_factory
        self.lock_timeout = lock_timeout
        self.locks = locks or KeyLockTable()

    @contextmanager
    def _transaction(self):
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def _load_document(self, session: Session, key: str, now: Optional[datetime] = None) -> Document:
        document = session.get(Document, key)
        if document is None or is_expired(document, now or utcnow()):
            raise DocumentNotFoundError(key)
        return document

    def create(self, key: str, files: Iterable[FileData], expires_at: Optional[datetime] = None) -> RevisionSnapshot:
        files = validate_files(files)
        start_time = time.time()

        with self.locks.hold(key, self.lock_timeout):
            try:
                with self._transaction() as session:
                    now = utcnow()
                    existing = session.get(Document, key)
                    if existing is not None:
                        if not is_expired(existing, now):
                            raise KeyConflictError(key)
                        db_logger.info("Purging expired document before reusing its key", extra={"key": key})
                        session.delete(existing)
                        session.flush()

                    document = Document(key=key, created_at=now, expires_at=as_utc(expires_at))
                    revision = Revision(version=0, created_at=now, files=_build_files(files))
                    document.revisions.append(revision)
                    session.add(document)
                    session.flush()
                    snapshot = _snapshot(revision, document)
            except IntegrityError as e:
                raise KeyConflictError(key) from e

        db_logger.debug("Stored new document", extra={
            "key": key,
            "file_count": len(files),
            "execution_time_ms": round((time.time() - start_time) * 1000, 2)
        })
        return snapshot

    def append_revision(
            self,
            key: str,
            files: Iterable[FileData],
            expires_at: Optional[datetime] = None
    ) -> RevisionSnapshot:
        """Store ``files`` as the next version; a new ``expires_at`` replaces the document's expiry"""
        files = validate_files(files)
        start_time = time.time()

        with self.locks.hold(key, self.lock_timeout):
            try:
                with self._transaction() as session:
                    document = self._load_document(session, key)
                    if expires_at is not None:
                        document.expires_at = as_utc(expires_at)
                    latest = session.scalar(
                        select(func.max(Revision.version)).where(Revision.document_key == key)
                    )
                    revision = Revision(
                        document_key=key,
                        version=(latest if latest is not None else -1) + 1,
                        created_at=utcnow(),
                        files=_build_files(files)
                    )
                    session.add(revision)
                    session.flush()
                    snapshot = _snapshot(revision, document)
            except IntegrityError as e:
                raise ConcurrentWriteError(f"document {key} was modified concurrently") from e

        db_logger.debug("Appended revision", extra={
            "key": key,
            "version": snapshot.version,
            "execution_time_ms": round((time.time() - start_time) * 1000, 2)
        })
        return snapshot

    def get(self, key: str, version: Optional[int] = None) -> RevisionSnapshot:
        """Return ``version`` of a document, or its latest revision when omitted"""
        with self._transaction() as session:
            document = self._load_document(session, key)
            query = (
                select(Revision)
                .where(Revision.document_key == key)
                .options(selectinload(Revision.files))
            )
            if version is None:
                query = query.order_by(Revision.version.desc()).limit(1)
            else:
                query = query.where(Revision.version == version)

            revision = session.scalars(query).first()
            if revision is None:
                raise RevisionNotFoundError(key, version)
            return _snapshot(revision, document)

    def get_file(self, key: str, filename: str, version: Optional[int] = None) -> FileData:
        revision = self.get(key, version)
        file = revision.file(filename)
        if file is None:
            raise DocumentFileNotFoundError(key, filename)
        return file

    def list_versions(self, key: str) -> List[VersionInfo]:
        """Versions of a document, latest first"""
        with self._transaction() as session:
            self._load_document(session, key)
            rows = session.execute(
                select(Revision.version, Revision.created_at)
                .where(Revision.document_key == key)
                .order_by(Revision.version.desc())
            ).all()
            return [VersionInfo(version=version, created_at=as_utc(created_at)) for version, created_at in rows]

    def exists(self, key: str) -> bool:
        try:
            with self._transaction() as session:
                self._load_document(session, key)
        except DocumentNotFoundError:
            return False
        return True

    def delete(self, key: str) -> RevisionSnapshot:
        """Remove a document with all its revisions; returns the latest revision it had"""
        with self.locks.hold(key, self.lock_timeout):
            with self._transaction() as session:
                document = self._load_document(session, key)
                latest = document.revisions[-1]
                snapshot = _snapshot(latest, document)
                session.delete(document)

        db_logger.info("Deleted document", extra={"key": key, "version_count": snapshot.version + 1})
        return snapshot

    def delete_expired(self, now: Optional[datetime] = None, expire_after: Optional[float] = None) -> int:
        """Remove documents past ``expires_at``, or idle for longer than ``expire_after`` seconds"""
        now = as_utc(now) or utcnow()
        conditions = [Document.expires_at <= now]
        if expire_after:
            cutoff = now - timedelta(seconds=expire_after)
            idle = (
                select(Revision.document_key)
                .group_by(Revision.document_key)
                .having(func.max(Revision.created_at) < cutoff)
            )
            conditions.append(Document.key.in_(idle))

        with self._transaction() as session:
            keys = list(session.scalars(select(Document.key).where(or_(*conditions))))

        deleted = 0
        for key in keys:
            with self.locks.hold(key, self.lock_timeout):
                with self._transaction() as session:
                    document = session.get(Document, key)
                    if document is None:
                        continue
                    if not is_expired(document, now) and not self._idle(document, now, expire_after):
                        continue
                    session.delete(document)
                    deleted += 1

        if deleted:
            db_logger.info("Removed expired documents", extra={"deleted_count": deleted})
        return deleted

    @staticmethod
    def _idle(document: Document, now: datetime, expire_after: Optional[float]) -> bool:
        if not expire_after or not document.revisions:
            return False
        newest = as_utc(document.revisions[-1].created_at)
        return newest < now - timedelta(seconds=expire_after)
