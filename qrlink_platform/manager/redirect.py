"""
RedirectResolver – the public scan path.

Malformed slugs are rejected before touching the store. A store lookup that
fails or exceeds its timeout is treated as a miss, so a slow database
degrades to 404s instead of hanging scanners. Click counting never blocks
a redirect.
"""

import logging
import re

from ..errors import NotFound, StorageFailure
from ..storage.base import BaseStorage

log = logging.getLogger(__name__)


class RedirectResolver:
    def __init__(self, storage: BaseStorage, max_slug_length: int = 33, timeout: float = 2.0):
        self.storage = storage
        self.timeout = timeout
        self._pattern = re.compile(rf"[A-Za-z0-9_-]{{1,{max_slug_length}}}")

    def resolve(self, slug: str) -> str:
        """
        Return the destination URL for `slug` and count the click.

        Raises:
            NotFound: unknown or malformed slug, or the store was unavailable.
        """
        if not slug or not self._pattern.fullmatch(slug):
            raise NotFound("QR code not found")

        try:
            code = self.storage.get_code_by_slug(slug, timeout=self.timeout)
        except StorageFailure as e:
            log.warning("Redirect lookup failed for slug %r: %s", slug, e.message)
            raise NotFound("QR code not found") from e
        if code is None:
            raise NotFound("QR code not found")

        try:
            if not self.storage.increment_click(code.id, timeout=self.timeout):
                log.warning("Click not counted for slug %r: code no longer exists", slug)
        except StorageFailure as e:
            log.warning("Click not counted for slug %r: %s", slug, e.message)

        log.info("Redirect: slug=%s", slug)
        return code.destination_url
