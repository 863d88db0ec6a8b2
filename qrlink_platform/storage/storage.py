"""
Storage module for QR Link Platform (in-memory implementation).

Responsibilities:
    - Save LogicalCodes and enforce slug uniqueness atomically
    - Track click counts with lock-protected increments
    - Store versions and provide per-code transactions with rollback

Design:
    - This is an in-memory reference implementation that satisfies the BaseStorage contract.
    - It keeps unit/integration tests fast and deterministic, and is safe to share
      between request threads: one storage-wide lock guards the dictionaries, and
      one re-entrant lock per code serializes that code's version mutations.
    - Records are copied on the way in and out so callers never alias internal state.
    - For production, use the PostgreSQL backend (see `db_storage.py`).

LLM Prompt Example:
    "Explain how this in-memory storage can emulate row locks and transaction
     rollback so the same invariant tests run against it and a SQL backend."
"""

import contextlib
import copy
import itertools
import threading
from typing import Any, Dict, Iterator, List, Optional

from ..errors import Conflict, NotFound
from ..models import LogicalCode, Version, utcnow
from .base import BaseStorage, VersionTransaction


def _newest_first(versions: List[Version]) -> List[Version]:
    return sorted(versions, key=lambda v: (v.created_at, v.id), reverse=True)


class _MemoryVersionTransaction(VersionTransaction):
    def __init__(self, storage: "Storage", code_id: int):
        self._storage = storage
        self._code_id = code_id

    @property
    def code(self) -> LogicalCode:
        with self._storage._lock:
            return copy.deepcopy(self._storage.codes[self._code_id])

    def _owned(self, version_id: int) -> Optional[Version]:
        version = self._storage.versions.get(version_id)
        if version is None or version.code_id != self._code_id:
            return None
        return version

    def list_versions(self) -> List[Version]:
        with self._storage._lock:
            owned = [v for v in self._storage.versions.values() if v.code_id == self._code_id]
            return [copy.deepcopy(v) for v in _newest_first(owned)]

    def get_version(self, version_id: int) -> Optional[Version]:
        with self._storage._lock:
            version = self._owned(version_id)
            return copy.deepcopy(version) if version else None

    def insert_version(self, name: str, style_config: Dict[str, Any]) -> Version:
        with self._storage._lock:
            version = Version(
                id=next(self._storage._version_ids),
                code_id=self._code_id,
                name=name,
                style_config=copy.deepcopy(style_config),
            )
            self._storage.versions[version.id] = version
            return copy.deepcopy(version)

    def set_image_path(self, version_id: int, image_path: str) -> None:
        with self._storage._lock:
            version = self._owned(version_id)
            if version is not None:
                version.image_path = image_path

    def set_logo_path(self, version_id: int, logo_path: str) -> None:
        with self._storage._lock:
            version = self._owned(version_id)
            if version is not None:
                version.logo_path = logo_path
                version.updated_at = utcnow()

    def clear_favorites(self) -> None:
        with self._storage._lock:
            for version in self._storage.versions.values():
                if version.code_id == self._code_id:
                    version.is_favorite = False

    def mark_favorite(self, version_id: int) -> None:
        with self._storage._lock:
            version = self._owned(version_id)
            if version is None:
                raise NotFound("Version not found")
            version.is_favorite = True
            version.updated_at = utcnow()

    def set_favorite_pointer(self, version_id: Optional[int]) -> None:
        with self._storage._lock:
            self._storage.codes[self._code_id].favorite_version_id = version_id

    def delete_version(self, version_id: int) -> bool:
        with self._storage._lock:
            if self._owned(version_id) is None:
                return False
            del self._storage.versions[version_id]
            return True


class Storage(BaseStorage):
    def __init__(self):
        """
        Initialize empty storage.

        Internal schema:
            self.codes    = {code_id: LogicalCode}
            self.slugs    = {slug: code_id}          # unique index
            self.versions = {version_id: Version}
        """
        self.codes: Dict[int, LogicalCode] = {}
        self.slugs: Dict[str, int] = {}
        self.versions: Dict[int, Version] = {}
        self._code_ids = itertools.count(1)
        self._version_ids = itertools.count(1)
        self._lock = threading.RLock()
        self._code_locks: Dict[int, threading.RLock] = {}

    def _code_lock(self, code_id: int) -> threading.RLock:
        with self._lock:
            return self._code_locks.setdefault(code_id, threading.RLock())

    # ---- Codes ------------------------------------------------------------

    def insert_code(
        self,
        slug: str,
        destination_url: str,
        title: str,
        description: str = "",
        tags: str = "",
    ) -> LogicalCode:
        """
        Check-and-insert under the storage lock, the in-memory equivalent of a
        UNIQUE(slug) index: two concurrent inserts of the same slug can never
        both succeed.
        """
        with self._lock:
            if slug in self.slugs:
                raise Conflict()
            code = LogicalCode(
                id=next(self._code_ids),
                slug=slug,
                destination_url=destination_url,
                title=title,
                description=description,
                tags=tags,
            )
            self.codes[code.id] = code
            self.slugs[slug] = code.id
            return copy.deepcopy(code)

    def get_code(self, code_id: int) -> Optional[LogicalCode]:
        with self._lock:
            code = self.codes.get(code_id)
            return copy.deepcopy(code) if code else None

    def get_code_by_slug(self, slug: str, timeout: Optional[float] = None) -> Optional[LogicalCode]:
        # Dictionary lookups cannot block; timeout is part of the contract for SQL backends.
        with self._lock:
            code_id = self.slugs.get(slug)
            return copy.deepcopy(self.codes[code_id]) if code_id is not None else None

    def list_codes(self) -> List[LogicalCode]:
        with self._lock:
            ordered = sorted(self.codes.values(), key=lambda c: (c.created_at, c.id), reverse=True)
            return [copy.deepcopy(c) for c in ordered]

    def update_code(
        self,
        code_id: int,
        *,
        title: str,
        description: str,
        destination_url: str,
        tags: str,
    ) -> Optional[LogicalCode]:
        with self._lock:
            code = self.codes.get(code_id)
            if code is None:
                return None
            code.title = title
            code.description = description
            code.destination_url = destination_url
            code.tags = tags
            code.updated_at = utcnow()
            return copy.deepcopy(code)

    def update_slug(self, code_id: int, slug: str) -> bool:
        with self._lock:
            code = self.codes.get(code_id)
            if code is None:
                return False
            owner = self.slugs.get(slug)
            if owner is not None and owner != code_id:
                raise Conflict()
            del self.slugs[code.slug]
            self.slugs[slug] = code_id
            code.slug = slug
            code.updated_at = utcnow()
            return True

    def delete_code(self, code_id: int) -> bool:
        with self._code_lock(code_id):
            with self._lock:
                code = self.codes.pop(code_id, None)
                if code is None:
                    return False
                self.slugs.pop(code.slug, None)
                for version_id in [v.id for v in self.versions.values() if v.code_id == code_id]:
                    del self.versions[version_id]
                self._code_locks.pop(code_id, None)
                return True

    def slug_exists(self, slug: str, exclude_id: Optional[int] = None) -> bool:
        with self._lock:
            owner = self.slugs.get(slug)
            return owner is not None and owner != exclude_id

    def increment_click(self, code_id: int, timeout: Optional[float] = None) -> bool:
        with self._lock:
            code = self.codes.get(code_id)
            if code is None:
                return False
            code.click_count += 1
            return True

    def reset_clicks(self, code_id: int) -> bool:
        with self._lock:
            code = self.codes.get(code_id)
            if code is None:
                return False
            code.click_count = 0
            code.updated_at = utcnow()
            return True

    # ---- Versions ---------------------------------------------------------

    def get_version(self, version_id: int) -> Optional[Version]:
        with self._lock:
            version = self.versions.get(version_id)
            return copy.deepcopy(version) if version else None

    def list_versions(self, code_id: int, limit: Optional[int] = None, offset: int = 0) -> List[Version]:
        with self._lock:
            owned = _newest_first([v for v in self.versions.values() if v.code_id == code_id])
            end = offset + limit if limit is not None else None
            return [copy.deepcopy(v) for v in owned[offset:end]]

    def count_versions(self, code_id: int) -> int:
        with self._lock:
            return sum(1 for v in self.versions.values() if v.code_id == code_id)

    def update_version(
        self,
        version_id: int,
        *,
        name: Optional[str] = None,
        style_config: Optional[Dict[str, Any]] = None,
        logo_path: Optional[str] = None,
    ) -> Optional[Version]:
        version = self.get_version(version_id)
        if version is None:
            return None
        with self._code_lock(version.code_id):
            with self._lock:
                current = self.versions.get(version_id)
                if current is None:
                    return None
                if name is not None:
                    current.name = name
                if style_config is not None:
                    current.style_config = copy.deepcopy(style_config)
                if logo_path is not None:
                    current.logo_path = logo_path
                current.updated_at = utcnow()
                return copy.deepcopy(current)

    @contextlib.contextmanager
    def transaction(self, code_id: int) -> Iterator[VersionTransaction]:
        """
        Hold the code's lock for the whole block; on error restore the code's
        versions and favorite pointer to their state at entry. Click counts and
        metadata are not part of the snapshot, so concurrent scans are never undone.
        """
        with self._code_lock(code_id):
            with self._lock:
                code = self.codes.get(code_id)
                if code is None:
                    raise NotFound("QR code not found")
                saved_pointer = code.favorite_version_id
                saved_versions = {
                    vid: copy.deepcopy(v) for vid, v in self.versions.items() if v.code_id == code_id
                }
            try:
                yield _MemoryVersionTransaction(self, code_id)
            except BaseException:
                with self._lock:
                    for vid in [v.id for v in self.versions.values() if v.code_id == code_id]:
                        del self.versions[vid]
                    self.versions.update(saved_versions)
                    if code_id in self.codes:
                        self.codes[code_id].favorite_version_id = saved_pointer
                raise
