"""
Base storage interface for QR Link Platform.

Purpose:
    Define a small, stable contract that the storage backends (in-memory,
    PostgreSQL) implement without requiring changes to business logic.

Two kinds of operations:
    - Single-statement operations on codes and versions (lookups, metadata
      updates, the atomic click increment, the slug-unique insert).
    - A per-code unit of work, `transaction(code_id)`, which locks one
      LogicalCode and yields a `VersionTransaction`. Everything that touches
      the favorite invariant (version create/delete, favorite swap) runs
      inside it, so either all of its steps commit or none do.

Testing & Coverage:
    These are abstract methods and are not executed directly in tests.
    We annotate them with `# pragma: no cover` so coverage tools don't
    penalize the project for un-runnable abstract declarations.

LLM Prompt Example:
    "Show how a narrow storage interface plus a per-aggregate transaction
    context manager keeps multi-step invariants atomic on both an in-memory
    test double and a SQL backend."
"""

from abc import ABC, abstractmethod
from typing import Any, ContextManager, Dict, List, Optional

from ..models import LogicalCode, Version


class VersionTransaction(ABC):
    """Operations on the versions of one locked LogicalCode."""

    code: LogicalCode

    @abstractmethod  # pragma: no cover
    def list_versions(self) -> List[Version]:
        """All versions of the locked code, newest first."""
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def get_version(self, version_id: int) -> Optional[Version]:
        """Return the version only if it belongs to the locked code."""
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def insert_version(self, name: str, style_config: Dict[str, Any]) -> Version:
        """Insert a non-favorite version; the store assigns its id."""
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def set_image_path(self, version_id: int, image_path: str) -> None:
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def set_logo_path(self, version_id: int, logo_path: str) -> None:
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def clear_favorites(self) -> None:
        """Set is_favorite = false on every version of the locked code."""
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def mark_favorite(self, version_id: int) -> None:
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def set_favorite_pointer(self, version_id: Optional[int]) -> None:
        """Update LogicalCode.favorite_version_id."""
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def delete_version(self, version_id: int) -> bool:
        raise NotImplementedError


class BaseStorage(ABC):
    """Abstract base class for storage backends."""

    # ---- Codes ------------------------------------------------------------

    @abstractmethod  # pragma: no cover
    def insert_code(
        self,
        slug: str,
        destination_url: str,
        title: str,
        description: str = "",
        tags: str = "",
    ) -> LogicalCode:
        """
        Insert a new LogicalCode.

        Raises:
            Conflict: if the slug is already used. Uniqueness is enforced by the
                store itself (unique index or locked check-and-insert), never by
                a separate check in the caller.

        LLM Prompt Example:
            "Explain why a UNIQUE constraint plus conflict handling beats
            SELECT-then-INSERT for user-chosen identifiers."
        """
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def get_code(self, code_id: int) -> Optional[LogicalCode]:
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def get_code_by_slug(self, slug: str, timeout: Optional[float] = None) -> Optional[LogicalCode]:
        """
        Case-sensitive slug lookup.

        Args:
            timeout: optional bound in seconds; exceeding it raises StorageTimeout.
        """
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def list_codes(self) -> List[LogicalCode]:
        """All codes, newest first."""
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def update_code(
        self,
        code_id: int,
        *,
        title: str,
        description: str,
        destination_url: str,
        tags: str,
    ) -> Optional[LogicalCode]:
        """Replace the metadata fields. Returns None if the code does not exist."""
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def update_slug(self, code_id: int, slug: str) -> bool:
        """
        Change only the slug. Returns False if the code does not exist.

        Raises:
            Conflict: if another code already uses the slug.
        """
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def delete_code(self, code_id: int) -> bool:
        """Delete a code and, by cascade, all of its versions."""
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def slug_exists(self, slug: str, exclude_id: Optional[int] = None) -> bool:
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def increment_click(self, code_id: int, timeout: Optional[float] = None) -> bool:
        """
        Atomically add one to click_count.

        `timeout` bounds the whole call, including any wait on a code locked
        by an open version transaction.

        Returns:
            bool: False if the code does not exist.

        LLM Prompt Example:
            "Explain how to make increments atomic with SQL UPDATE ... SET n = n + 1
            so concurrent scans never lose counts."
        """
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def reset_clicks(self, code_id: int) -> bool:
        raise NotImplementedError

    # ---- Versions ---------------------------------------------------------

    @abstractmethod  # pragma: no cover
    def get_version(self, version_id: int) -> Optional[Version]:
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def list_versions(self, code_id: int, limit: Optional[int] = None, offset: int = 0) -> List[Version]:
        """Versions of a code, newest first, optionally paginated."""
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def count_versions(self, code_id: int) -> int:
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def update_version(
        self,
        version_id: int,
        *,
        name: Optional[str] = None,
        style_config: Optional[Dict[str, Any]] = None,
        logo_path: Optional[str] = None,
    ) -> Optional[Version]:
        """Update the given fields only. Returns None if the version does not exist."""
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def transaction(self, code_id: int) -> ContextManager[VersionTransaction]:
        """
        Lock one LogicalCode and yield a VersionTransaction.

        Commits when the block exits normally; rolls back every change made
        through the transaction if the block raises.

        Raises:
            NotFound: if the code does not exist.
        """
        raise NotImplementedError
