"""
Slug generation.

Derives a URL-safe, collision-free slug from an explicit slug or a title.
Uniqueness is checked against the storage port inside the caller's
transaction; the database UNIQUE constraint is the final arbiter and the
engine retries with `taken` when it fires.
"""

from __future__ import annotations

import logging
import re
import unicodedata
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from quire.core.errors import ConflictError
from quire.domain.entities import ContentItem, ContentStatus

logger = logging.getLogger(__name__)

_NON_ALNUM = re.compile(r"[^a-z0-9]+")
_HYPHENS = re.compile(r"-{2,}")

SlugExists = Callable[[str, UUID | None], bool]


def slugify(value: str, max_length: int = 185) -> str:
    """
    Normalize text to a lowercase hyphenated slug.

    "Hello World!" -> "hello-world", "Café au lait" -> "cafe-au-lait".
    May return an empty string.
    """
    folded = unicodedata.normalize("NFKD", value or "")
    ascii_text = folded.encode("ascii", "ignore").decode("ascii").lower()
    slug = _NON_ALNUM.sub("-", ascii_text)
    slug = _HYPHENS.sub("-", slug).strip("-")
    if len(slug) > max_length:
        slug = slug[:max_length].rstrip("-")
    return slug


@dataclass
class SlugGenerator:
    """Produces unique slugs for one resource kind."""

    exists: SlugExists
    max_length: int = 185
    max_attempts: int = 50
    reserved: frozenset[str] = field(default_factory=frozenset)

    def base_slug(self, candidate: str, fallback: str) -> str:
        slug = slugify(candidate, self.max_length) or fallback
        if slug in self.reserved:
            slug = f"{slug}-{fallback}"
        return slug

    def generate(
        self,
        candidate: str,
        *,
        fallback: str,
        exclude_id: UUID | None = None,
        taken: Iterable[str] = (),
    ) -> str:
        """
        Return the first free slug among base, base-2, base-3, ...

        Raises ConflictError once `max_attempts` candidates were rejected.
        """
        base = self.base_slug(candidate, fallback)
        skip = set(taken)

        for attempt in range(1, self.max_attempts + 1):
            slug = base if attempt == 1 else self._with_suffix(base, attempt)
            if slug in skip:
                continue
            if not self.exists(slug, exclude_id):
                return slug

        logger.warning("Slug space exhausted for base %r", base)
        raise ConflictError(
            f"Could not find a free slug for '{base}' after {self.max_attempts} attempts",
            field="slug",
        )

    def _with_suffix(self, base: str, n: int) -> str:
        suffix = f"-{n}"
        return base[: self.max_length - len(suffix)].rstrip("-") + suffix


def resolve_edit_slug(
    generator: SlugGenerator,
    previous: ContentItem,
    *,
    title: str,
    requested_slug: str | None,
    status: ContentStatus,
    published_at: datetime | None,
    taken: Iterable[str] = (),
) -> str:
    """
    Pick the slug an edited item should carry.

    An item that stays a never-published draft after this edit follows its new
    title, but only when its stored slug is exactly what the previous title
    would have produced (i.e. the slug was never customised). `status` and
    `published_at` are the values after the transition. Otherwise the explicit
    or stored slug is re-validated for uniqueness.
    """
    fallback = previous.variant.slug_fallback
    title_changed = title != previous.title
    slug_changed = requested_slug is not None and requested_slug != previous.slug

    if title_changed and not slug_changed and status == "draft" and published_at is None:
        new_slug = generator.generate(
            title, fallback=fallback, exclude_id=previous.id, taken=taken
        )
        old_auto = generator.generate(
            previous.title, fallback=fallback, exclude_id=previous.id, taken=taken
        )
        if old_auto == previous.slug:
            return new_slug

    candidate = requested_slug or previous.slug or title
    return generator.generate(
        candidate, fallback=fallback, exclude_id=previous.id, taken=taken
    )
