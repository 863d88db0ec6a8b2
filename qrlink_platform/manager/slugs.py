"""
Slug validation and suggestion engine.

Responsibilities:
    - Validate slug syntax, length and reserved words
    - Check availability against the store
    - Suggest human-readable alternatives when a slug is taken
    - Generate random slugs for codes created without a custom one

Suggestion order (numeric, then temporal, then random):
    1. base-2 ... base-(count+1)
    2. base-<year>
    3. base-<mon>-<year>
    4. base-<3 random chars>, up to 10 attempts; the base is cut short
       when needed so these always fit max_length

LLM Prompt Example:
    "Show how to generate readable alternative identifiers on collision,
    preferring deterministic numeric and date suffixes before random ones."
"""

import random
import re
from datetime import date
from typing import Callable, FrozenSet, List, NamedTuple, Optional

from ..errors import ValidationError
from ..storage.base import BaseStorage

# Ambiguous glyphs (0, O, 1, I) removed.
CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
SLUG_CHARSET = re.compile(r"[A-Za-z0-9_-]+")

RANDOM_SUFFIX_LENGTH = 3
RANDOM_SUFFIX_ATTEMPTS = 10
# Fixed English abbreviations; strftime("%b") would follow the process locale.
MONTHS = ("jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec")


class SlugCheck(NamedTuple):
    ok: bool
    reason: str = ""


def generate_code(length: int = 6, rng: Optional[random.Random] = None) -> str:
    """Random code from CODE_ALPHABET."""
    rng = rng or random.SystemRandom()
    return "".join(rng.choice(CODE_ALPHABET) for _ in range(length))


class SlugValidator:
    def __init__(
        self,
        storage: BaseStorage,
        reserved: FrozenSet[str],
        max_length: int = 33,
        today: Callable[[], date] = date.today,
        rng: Optional[random.Random] = None,
    ):
        """
        Args:
            storage: store used for availability checks.
            reserved: lower-cased reserved words (see config.reserved_set).
            max_length: maximum slug length.
            today: clock for the date-based suggestions.
            rng: random source for suffixes and generated codes.
        """
        self.storage = storage
        self.reserved = frozenset(w.lower() for w in reserved)
        self.max_length = max_length
        self.today = today
        self.rng = rng or random.SystemRandom()

    def validate(self, slug: Optional[str]) -> SlugCheck:
        if not slug:
            return SlugCheck(False, "Slug cannot be empty")
        if len(slug) > self.max_length:
            return SlugCheck(False, f"Slug must be between 1 and {self.max_length} characters")
        if not SLUG_CHARSET.fullmatch(slug):
            return SlugCheck(False, "Slug can only contain letters, numbers, hyphens, and underscores")
        if slug.lower() in self.reserved:
            return SlugCheck(False, "This slug is reserved and cannot be used")
        return SlugCheck(True)

    def ensure_valid(self, slug: Optional[str]) -> str:
        check = self.validate(slug)
        if not check.ok:
            raise ValidationError(check.reason)
        return slug  # type: ignore[return-value]

    def is_available(self, slug: str, exclude_id: Optional[int] = None) -> bool:
        return not self.storage.slug_exists(slug, exclude_id=exclude_id)

    def generate_code(self, length: int = 6) -> str:
        return generate_code(length, self.rng)

    def _candidates(self, base: str, count: int):
        for n in range(2, count + 2):
            yield f"{base}-{n}"
        today = self.today()
        yield f"{base}-{today.year}"
        yield f"{base}-{MONTHS[today.month - 1]}-{today.year}"
        # Random candidates trim the base so a long slug still gets one.
        stem = base[: max(1, self.max_length - RANDOM_SUFFIX_LENGTH - 1)]
        for _ in range(RANDOM_SUFFIX_ATTEMPTS):
            yield f"{stem}-{generate_code(RANDOM_SUFFIX_LENGTH, self.rng).lower()}"

    def suggest_alternatives(self, base: str, count: int = 5) -> List[str]:
        """
        Return up to `count` valid, available alternatives for `base`.

        Each candidate must fit max_length, pass validate(), be free in the
        store and not already be suggested. Stops as soon as `count` are found.
        """
        suggestions: List[str] = []
        if count <= 0:
            return suggestions
        for candidate in self._candidates(base, count):
            if len(candidate) > self.max_length or candidate in suggestions:
                continue
            if not self.validate(candidate).ok or not self.is_available(candidate):
                continue
            suggestions.append(candidate)
            if len(suggestions) >= count:
                break
        return suggestions
