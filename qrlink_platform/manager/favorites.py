"""
FavoriteCoordinator – the single-favorite invariant.

Responsibilities:
    - Move the favorite flag between versions of one code
    - Gate version deletion (last version, favorite without replacement)
    - Remove version files once a deletion has committed

Every mutation runs inside `storage.transaction(code_id)`, so the three
steps of a swap (clear all, mark one, repoint the code) commit together
or not at all, and concurrent swaps on the same code serialize.

LLM Prompt Example:
    "Show how to keep an 'exactly one favorite child' invariant under
    concurrent writers with a per-parent row lock and a small state machine
    for deleting the current favorite."
"""

import logging
from typing import Optional

from ..errors import LastVersion, NotFound, RequiresNewFavorite, ValidationError
from ..models import Version
from ..storage.base import BaseStorage, VersionTransaction
from ..storage.files import VersionFileLayout

log = logging.getLogger(__name__)

# How many alternatives a RequiresNewFavorite response offers.
MAX_FAVORITE_CHOICES = 5


class FavoriteCoordinator:
    def __init__(self, storage: BaseStorage, layout: VersionFileLayout):
        self.storage = storage
        self.layout = layout

    @staticmethod
    def promote(tx: VersionTransaction, version_id: int) -> None:
        """Make `version_id` the only favorite of the transaction's code."""
        tx.clear_favorites()
        tx.mark_favorite(version_id)
        tx.set_favorite_pointer(version_id)

    def _locate(self, version_id: int) -> Version:
        version = self.storage.get_version(version_id)
        if version is None:
            raise NotFound("Version not found")
        return version

    def set_favorite(self, version_id: int) -> Version:
        """
        Promote a version to favorite. Re-submitting the current favorite
        changes nothing.

        Raises:
            NotFound: if the version does not exist.
        """
        version = self._locate(version_id)
        with self.storage.transaction(version.code_id) as tx:
            target = tx.get_version(version_id)
            if target is None:
                # Deleted between the lookup and the lock.
                raise NotFound("Version not found")
            if target.is_favorite and tx.code.favorite_version_id == version_id:
                return target
            self.promote(tx, version_id)
            updated = tx.get_version(version_id)
        log.info("Favorite changed: code=%s version=%s", version.code_id, version_id)
        return updated  # type: ignore[return-value]

    def delete_version(self, version_id: int, new_favorite_id: Optional[int] = None) -> None:
        """
        Delete a version, reassigning the favorite first when required.

        State machine (evaluated under the code lock):
            - only version left          -> LastVersion
            - favorite, no replacement   -> RequiresNewFavorite (nothing changes)
            - favorite, replacement      -> swap to replacement, then delete
            - not the favorite           -> delete (new_favorite_id ignored)

        Files are removed after commit, best-effort.

        Raises:
            NotFound, LastVersion, RequiresNewFavorite, ValidationError
        """
        version = self._locate(version_id)
        code_id = version.code_id
        with self.storage.transaction(code_id) as tx:
            target = tx.get_version(version_id)
            if target is None:
                raise NotFound("Version not found")
            versions = tx.list_versions()
            if len(versions) <= 1:
                raise LastVersion()
            if target.is_favorite:
                others = [v for v in versions if v.id != version_id]
                if new_favorite_id is None:
                    raise RequiresNewFavorite([v.summary() for v in others[:MAX_FAVORITE_CHOICES]])
                if new_favorite_id not in {v.id for v in others}:
                    raise ValidationError("The new favorite must be another version of the same QR code")
                self.promote(tx, new_favorite_id)
            tx.delete_version(version_id)

        if not self.layout.remove_version_files(code_id, version_id):
            log.warning("Version %s deleted but some of its files could not be removed", version_id)
        log.info("Version deleted: code=%s version=%s", code_id, version_id)
