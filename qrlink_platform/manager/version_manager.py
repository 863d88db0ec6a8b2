"""
VersionManager module for QR Link Platform.

Responsibilities:
    - Create versions (fresh, from a payload, or cloned) under the version cap
    - Allocate deterministic artifact paths from (code_id, version_id)
    - Promote the first version of a code to favorite
    - Paginate, read and update versions
    - Accept rendered images and logos from the client-side renderer

Design notes:
    - style_config is opaque: it is stored and copied, never interpreted.
    - Version ids come from the store, so paths are derived after the insert
      and recorded in the same transaction.
    - Favorite changes and deletions are delegated to FavoriteCoordinator.

LLM Prompt Example:
    "Show how a service layer can allocate store-assigned ids, derive file
    paths from them, and keep the count check and insert inside one locked
    transaction so a version cap cannot be exceeded by concurrent writers."
"""

import copy
import logging
import math
from typing import Any, Dict, Optional

from ..errors import LimitExceeded, NotFound, ValidationError
from ..models import Version
from ..storage.base import BaseStorage, VersionTransaction
from ..storage.files import VersionFileLayout, sniff_image
from .favorites import FavoriteCoordinator

log = logging.getLogger(__name__)

MAX_NAME_LENGTH = 100
MAX_PAGE_LIMIT = 50

DEFAULT_STYLE_CONFIG: Dict[str, Any] = {
    "width": 300,
    "height": 300,
    "margin": 10,
    "dotsOptions": {"type": "rounded", "color": "#000000"},
    "backgroundOptions": {"color": "#ffffff"},
    "cornersSquareOptions": {"type": "square", "color": "#000000"},
    "cornersDotOptions": {"type": "square", "color": "#000000"},
    "imageOptions": {"hideBackgroundDots": True, "imageSize": 0.4, "margin": 0},
    "logo": {"hasLogo": False, "logoPath": None, "logoFilename": None},
}


def default_style_config() -> Dict[str, Any]:
    """Fresh copy of the default renderer settings."""
    return copy.deepcopy(DEFAULT_STYLE_CONFIG)


def _clean_name(name: Optional[str]) -> Optional[str]:
    if name is None:
        return None
    name = name.strip()
    if len(name) > MAX_NAME_LENGTH:
        raise ValidationError(f"Version name must be at most {MAX_NAME_LENGTH} characters")
    return name or None


def _check_style(style_config: Any) -> None:
    if not isinstance(style_config, dict):
        raise ValidationError("Style configuration must be a JSON object")


class VersionManager:
    def __init__(
        self,
        storage: BaseStorage,
        layout: VersionFileLayout,
        favorites: Optional[FavoriteCoordinator] = None,
        max_versions: int = 20,
        base_url: str = "",
    ):
        """
        Args:
            storage: injected storage backend.
            layout: file layout rooted at the generated-files directory.
            favorites: coordinator for favorite swaps; built from storage/layout if omitted.
            max_versions: version cap per code.
            base_url: public base used only to compose display URLs.
        """
        self.storage = storage
        self.layout = layout
        self.favorites = favorites or FavoriteCoordinator(storage, layout)
        self.max_versions = max_versions
        self.base_url = base_url.rstrip("/")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def file_url(self, relative_path: Optional[str]) -> Optional[str]:
        if not relative_path:
            return None
        return f"{self.base_url}/generated/{relative_path}"

    def describe(self, version: Version) -> Dict[str, Any]:
        """Version as a response dict, with display URLs for its files."""
        data = version.to_dict()
        data["image_url"] = self.file_url(version.image_path)
        data["logo_url"] = self.file_url(version.logo_path)
        return data

    def _resolve_style(
        self,
        style_config: Optional[Dict[str, Any]],
        clone_from_version_id: Optional[int],
    ) -> Dict[str, Any]:
        if style_config:
            return copy.deepcopy(style_config)
        if clone_from_version_id is not None:
            source = self.storage.get_version(clone_from_version_id)
            if source is not None and source.style_config:
                return copy.deepcopy(source.style_config)
            log.warning("Clone source version %s not found; using default style", clone_from_version_id)
        return default_style_config()

    @staticmethod
    def _owned_version(tx: VersionTransaction, version_id: int) -> Version:
        version = tx.get_version(version_id)
        if version is None:
            raise NotFound("Version not found")
        return version

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def create_version(
        self,
        code_id: int,
        name: Optional[str] = None,
        style_config: Optional[Dict[str, Any]] = None,
        clone_from_version_id: Optional[int] = None,
    ) -> Version:
        """
        Create a version of a code.

        Style resolution: explicit payload, else the clone source's style,
        else the default style. The first version of a code becomes its
        favorite.

        Raises:
            NotFound: code does not exist.
            LimitExceeded: code already has max_versions versions.
            ValidationError: bad name or non-object style payload.
        """
        name = _clean_name(name)
        if style_config is not None:
            _check_style(style_config)

        with self.storage.transaction(code_id) as tx:
            count = len(tx.list_versions())
            if count >= self.max_versions:
                raise LimitExceeded(count, self.max_versions)
            style = self._resolve_style(style_config, clone_from_version_id)
            version = tx.insert_version(name or f"Version {count + 1}", style)
            tx.set_image_path(version.id, self.layout.relative_image_path(code_id, version.id))
            self.layout.ensure_code_dirs(code_id)
            if count == 0:
                self.favorites.promote(tx, version.id)
            created = tx.get_version(version.id)

        log.info("Version created: code=%s version=%s", code_id, version.id)
        return created  # type: ignore[return-value]

    def clone_version(self, version_id: int, new_name: Optional[str] = None) -> Version:
        """Copy a version's style into a new version of the same code."""
        source = self.storage.get_version(version_id)
        if source is None:
            raise NotFound("Source version not found")
        name = _clean_name(new_name) or f"Copy of {source.name}"[:MAX_NAME_LENGTH]
        return self.create_version(source.code_id, name=name, clone_from_version_id=source.id)

    def get_versions(self, code_id: int, page: int = 1, limit: Optional[int] = None) -> Dict[str, Any]:
        """
        Newest-first page of a code's versions.

        Returns:
            dict: versions, total_count, page, limit, total_pages.
        """
        if self.storage.get_code(code_id) is None:
            raise NotFound("QR code not found")
        page = max(1, int(page or 1))
        if limit is not None:
            limit = max(1, min(MAX_PAGE_LIMIT, int(limit)))
        offset = (page - 1) * limit if limit else 0

        versions = self.storage.list_versions(code_id, limit=limit, offset=offset)
        total = self.storage.count_versions(code_id)
        return {
            "versions": [self.describe(v) for v in versions],
            "total_count": total,
            "page": page,
            "limit": limit,
            "total_pages": int(math.ceil(total / limit)) if limit else 1,
        }

    def get_version(self, version_id: int) -> Version:
        version = self.storage.get_version(version_id)
        if version is None:
            raise NotFound("Version not found")
        return version

    def update_version(
        self,
        version_id: int,
        name: Optional[str] = None,
        style_config: Optional[Dict[str, Any]] = None,
    ) -> Version:
        name = _clean_name(name)
        if style_config is not None:
            _check_style(style_config)
        if name is None and style_config is None:
            raise ValidationError("No fields to update")

        updated = self.storage.update_version(version_id, name=name, style_config=style_config)
        if updated is None:
            raise NotFound("Version not found")
        log.info("Version updated: version=%s", version_id)
        return updated

    def set_favorite(self, version_id: int) -> Version:
        return self.favorites.set_favorite(version_id)

    def delete_version(self, version_id: int, new_favorite_id: Optional[int] = None) -> None:
        self.favorites.delete_version(version_id, new_favorite_id=new_favorite_id)

    # ------------------------------------------------------------------
    # Artifacts
    # ------------------------------------------------------------------
    def attach_image(self, code_id: int, version_id: int, data: bytes) -> Version:
        """
        Store the rendered image of a version at its deterministic path.

        The ownership check and the write run under the code's transaction,
        so a concurrent delete_version cannot leave an orphaned file.

        Raises:
            NotFound: code or version missing, or version owned by another code.
            ValidationError: content is not PNG/JPEG.
            StorageFailure: the file could not be written.
        """
        sniff_image(data)
        with self.storage.transaction(code_id) as tx:
            version = self._owned_version(tx, version_id)
            self.layout.write_image(code_id, version_id, data)
        log.info("Image saved: code=%s version=%s", code_id, version_id)
        return version

    def attach_logo(self, code_id: int, version_id: int, data: bytes) -> Version:
        """Store a logo under its sniffed extension and record its path."""
        extension = sniff_image(data)
        with self.storage.transaction(code_id) as tx:
            self._owned_version(tx, version_id)
            relative = self.layout.write_logo(code_id, version_id, data, extension)
            tx.set_logo_path(version_id, relative)
            updated = tx.get_version(version_id)
        log.info("Logo saved: code=%s version=%s", code_id, version_id)
        return updated
