"""
CodeManager module for QR Link Platform.

Responsibilities:
    - Create logical codes with a custom or generated slug
    - Validate destination URLs and metadata
    - Rename slugs with a confirmation gate for codes already in circulation
    - Read, update, delete codes and reset their click counters

Design notes:
    - Slug uniqueness is the store's job (UNIQUE index / locked insert); this
      layer only turns a Conflict into one that carries suggestions.
    - Public URLs are display strings built from config; the store never
      sees them.
    - Deleting a code cascades to its versions in the store, then removes the
      code's folder best-effort.

LLM Prompt Example:
    "Design a slug rename workflow that validates, detects conflicts with
    suggestions, and asks for explicit confirmation before breaking printed
    QR codes that have already been scanned."
"""

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from ..errors import Conflict, NeedsConfirmation, NotFound, StorageFailure, ValidationError
from ..models import LogicalCode
from ..storage.base import BaseStorage
from ..storage.files import VersionFileLayout
from .slugs import SlugValidator

log = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 255
MAX_TAGS_LENGTH = 255
GENERATE_ATTEMPTS = 10


def validate_url(url: Optional[str]) -> str:
    """
    Require an absolute http/https URL with a host.

    Raises:
        ValidationError: If the URL is missing or malformed.

    LLM Prompt Example:
        "Explain secure URL validation rules to prevent open redirect or
        javascript: scheme abuse."
    """
    url = (url or "").strip()
    if not url:
        raise ValidationError("Destination URL is required")
    parsed = urlparse(url)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValidationError("Invalid destination URL format")
    return url


class CodeManager:
    def __init__(
        self,
        storage: BaseStorage,
        validator: SlugValidator,
        layout: VersionFileLayout,
        base_url: str = "",
        code_length: int = 6,
    ):
        """
        Args:
            storage: injected storage backend.
            validator: slug rules and suggestion engine.
            layout: file layout, used to clean up a deleted code's folder.
            base_url: public base for display URLs.
            code_length: length of generated slugs.
        """
        self.storage = storage
        self.validator = validator
        self.layout = layout
        self.base_url = base_url.rstrip("/")
        self.code_length = code_length

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def public_url(self, slug: str) -> str:
        return f"{self.base_url}/{slug}"

    def describe(self, code: LogicalCode) -> Dict[str, Any]:
        data = code.to_dict()
        data["public_url"] = self.public_url(code.slug)
        return data

    @staticmethod
    def _clean_metadata(title: Optional[str], description: Optional[str], tags: Optional[str]):
        title = (title or "").strip()
        if not title:
            raise ValidationError("Title is required")
        if len(title) > MAX_TITLE_LENGTH:
            raise ValidationError(f"Title must be at most {MAX_TITLE_LENGTH} characters")
        tags = (tags or "").strip()
        if len(tags) > MAX_TAGS_LENGTH:
            raise ValidationError(f"Tags must be at most {MAX_TAGS_LENGTH} characters")
        return title, (description or "").strip(), tags

    def _require(self, code_id: int) -> LogicalCode:
        code = self.storage.get_code(code_id)
        if code is None:
            raise NotFound("QR code not found")
        return code

    def _insert_generated(self, destination_url: str, title: str, description: str, tags: str) -> LogicalCode:
        for _ in range(GENERATE_ATTEMPTS):
            candidate = self.validator.generate_code(self.code_length)
            if not self.validator.validate(candidate).ok:
                continue
            try:
                return self.storage.insert_code(candidate, destination_url, title, description, tags)
            except Conflict:
                continue
        log.error("Gave up generating a unique code after %d attempts", GENERATE_ATTEMPTS)
        raise StorageFailure("Failed to generate unique code. Please try again.")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def create_code(
        self,
        destination_url: str,
        title: str,
        description: str = "",
        tags: str = "",
        slug: Optional[str] = None,
    ) -> LogicalCode:
        """
        Create a logical code.

        Rules:
            - Destination must be http/https with a host; title is required.
            - Custom slug: validated, then inserted; if the store reports it
              taken, raise Conflict with suggestions.
            - No slug: random code, retried on collision.

        Raises:
            ValidationError, Conflict, StorageFailure
        """
        destination_url = validate_url(destination_url)
        title, description, tags = self._clean_metadata(title, description, tags)

        if slug:
            self.validator.ensure_valid(slug)
            try:
                code = self.storage.insert_code(slug, destination_url, title, description, tags)
            except Conflict:
                raise Conflict(suggestions=self.validator.suggest_alternatives(slug))
        else:
            code = self._insert_generated(destination_url, title, description, tags)

        log.info("QR code created: id=%s slug=%s", code.id, code.slug)
        return code

    def get_code(self, code_id: int) -> LogicalCode:
        return self._require(code_id)

    def list_codes(self) -> List[LogicalCode]:
        return self.storage.list_codes()

    def update_code(
        self,
        code_id: int,
        destination_url: str,
        title: str,
        description: str = "",
        tags: str = "",
    ) -> LogicalCode:
        destination_url = validate_url(destination_url)
        title, description, tags = self._clean_metadata(title, description, tags)
        code = self.storage.update_code(
            code_id,
            title=title,
            description=description,
            destination_url=destination_url,
            tags=tags,
        )
        if code is None:
            raise NotFound("QR code not found")
        log.info("QR code updated: id=%s", code_id)
        return code

    def delete_code(self, code_id: int) -> None:
        if not self.storage.delete_code(code_id):
            raise NotFound("QR code not found")
        if not self.layout.remove_code_dir(code_id):
            log.warning("QR code %s deleted but its folder could not be removed", code_id)
        log.info("QR code deleted: id=%s", code_id)

    def rename_slug(self, code_id: int, new_slug: str, confirmed: bool = False) -> LogicalCode:
        """
        Change a code's slug.

        Order of checks:
            1. NotFound if the code is missing
            2. ValidationError for an invalid or reserved slug
            3. same slug: returned unchanged
            4. Conflict (with suggestions) if another code owns it
            5. NeedsConfirmation if the code has been scanned and not confirmed
            6. update the slug only

        Files and versions are keyed by id and are not touched.
        """
        code = self._require(code_id)
        self.validator.ensure_valid(new_slug)
        if new_slug == code.slug:
            return code
        if not self.validator.is_available(new_slug, exclude_id=code_id):
            raise Conflict(suggestions=self.validator.suggest_alternatives(new_slug))
        if code.click_count > 0 and not confirmed:
            raise NeedsConfirmation(code.click_count)

        try:
            updated = self.storage.update_slug(code_id, new_slug)
        except Conflict:
            # Lost a race with a concurrent create/rename.
            raise Conflict(suggestions=self.validator.suggest_alternatives(new_slug))
        if not updated:
            raise NotFound("QR code not found")

        log.info("Slug renamed: id=%s %s -> %s", code_id, code.slug, new_slug)
        return self._require(code_id)

    def check_slug_availability(self, slug: str, exclude_id: Optional[int] = None) -> Dict[str, Any]:
        check = self.validator.validate(slug)
        if not check.ok:
            return {
                "slug": slug,
                "valid": False,
                "available": False,
                "message": check.reason,
                "suggestions": [],
            }
        if not self.validator.is_available(slug, exclude_id=exclude_id):
            return {
                "slug": slug,
                "valid": True,
                "available": False,
                "message": "This slug is already in use",
                "suggestions": self.validator.suggest_alternatives(slug),
            }
        return {
            "slug": slug,
            "valid": True,
            "available": True,
            "message": "Slug is available",
            "suggestions": [],
        }

    def reset_clicks(self, code_id: int) -> LogicalCode:
        if not self.storage.reset_clicks(code_id):
            raise NotFound("QR code not found")
        log.info("Clicks reset: id=%s", code_id)
        return self._require(code_id)
