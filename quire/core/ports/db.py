"""
Storage port interfaces.

Protocol-based interfaces for the transactional storage the lifecycle engine
runs against. Implementations: SQLite (`quire.adapters.sqlite_db`).

All repositories obtained from one unit of work share its transaction.
Uniqueness violations surface as `ConflictError`, never as driver errors.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from contextlib import AbstractContextManager
from typing import Any, Protocol
from uuid import UUID

from quire.domain.entities import (
    ActionRecord,
    Author,
    ContentItem,
    ContentStatus,
    ContentType,
    EmailRecord,
    PostsMeta,
    Revision,
    Tag,
)

# -----------------------------------------------------------------------------
# Content items
# -----------------------------------------------------------------------------


class ContentRepoPort(Protocol):
    """
    Repository for content items, their join tables and meta row.

    Reads always return the fully materialized item (tags, authors, meta).
    """

    def get_by_id(self, item_id: UUID) -> ContentItem | None:
        """Get item by ID regardless of status."""
        ...

    def slug_exists(self, slug: str, exclude_id: UUID | None = None) -> bool:
        """Check if any item other than `exclude_id` holds the slug."""
        ...

    def insert(self, item: ContentItem) -> None:
        """Insert the item row. Raises ConflictError on a taken slug."""
        ...

    def update(self, item: ContentItem) -> None:
        """Update the item row. Raises ConflictError on a taken slug."""
        ...

    def delete(self, item_id: UUID) -> None:
        """Delete the item and everything it owns."""
        ...

    def replace_tags(self, item_id: UUID, tag_ids: Sequence[UUID]) -> None:
        """Replace the ordered tag relation."""
        ...

    def replace_authors(self, item_id: UUID, author_ids: Sequence[UUID]) -> None:
        """Replace the ordered author relation."""
        ...

    def save_meta(self, item_id: UUID, meta: PostsMeta | None) -> None:
        """Upsert the meta row, or remove it when `meta` is None."""
        ...

    def list_items(
        self,
        *,
        statuses: Sequence[ContentStatus] | None = None,
        content_type: ContentType | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[ContentItem]:
        """List items in the default lifecycle order."""
        ...


# -----------------------------------------------------------------------------
# Revisions
# -----------------------------------------------------------------------------


class RevisionRepoPort(Protocol):
    """Repository for body revisions (internal audit log)."""

    def list_for_item(self, item_id: UUID) -> list[Revision]:
        """List revisions newest-first."""
        ...

    def add(self, revision: Revision) -> None:
        ...

    def delete_many(self, revision_ids: Sequence[UUID]) -> None:
        ...

    def max_sequence(self) -> int:
        """Largest created_at_seq stored (0 when empty)."""
        ...


# -----------------------------------------------------------------------------
# Relations and collaborators
# -----------------------------------------------------------------------------


class TagRepoPort(Protocol):
    def get_by_id(self, tag_id: UUID) -> Tag | None:
        ...

    def get_by_slug(self, slug: str) -> Tag | None:
        ...

    def find_by_name(self, name: str) -> Tag | None:
        """Case-insensitive lookup by name."""
        ...

    def slug_exists(self, slug: str, exclude_id: UUID | None = None) -> bool:
        ...

    def insert(self, tag: Tag) -> None:
        ...


class AuthorRepoPort(Protocol):
    def get_by_id(self, author_id: UUID) -> Author | None:
        ...

    def insert(self, author: Author) -> None:
        ...


class EmailRepoPort(Protocol):
    def exists_for_item(self, item_id: UUID) -> bool:
        ...

    def insert(self, email: EmailRecord) -> None:
        ...


class ActionLogRepoPort(Protocol):
    def append(self, record: ActionRecord) -> ActionRecord:
        ...

    def list_by_resource(self, resource_id: UUID, limit: int = 100) -> list[ActionRecord]:
        ...


class EventSequenceRepoPort(Protocol):
    """Per-item lifecycle event counter; kept after the item is destroyed."""

    def reserve(self, item_id: UUID, count: int) -> int:
        """Advance the counter by `count` and return the first reserved value."""
        ...

    def last_sequence(self, item_id: UUID) -> int:
        """Last reserved value (0 when nothing was emitted yet)."""
        ...


# -----------------------------------------------------------------------------
# Unit of Work
# -----------------------------------------------------------------------------


class UnitOfWorkPort(Protocol):
    """
    One storage transaction.

    Callbacks registered with `on_commit` run only after a successful commit
    and are dropped on rollback.
    """

    content: ContentRepoPort
    revisions: RevisionRepoPort
    tags: TagRepoPort
    authors: AuthorRepoPort
    emails: EmailRepoPort
    actions: ActionLogRepoPort
    sequences: EventSequenceRepoPort

    def __enter__(self) -> UnitOfWorkPort:
        ...

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        ...

    def commit(self) -> None:
        ...

    def rollback(self) -> None:
        ...

    def savepoint(self, name: str) -> AbstractContextManager[None]:
        """Nested rollback scope inside the open transaction."""
        ...

    def on_commit(self, callback: Callable[[], None]) -> None:
        ...


UnitOfWorkFactory = Callable[[], UnitOfWorkPort]

__all__ = [
    "ActionLogRepoPort",
    "AuthorRepoPort",
    "ContentRepoPort",
    "EmailRepoPort",
    "EventSequenceRepoPort",
    "RevisionRepoPort",
    "TagRepoPort",
    "UnitOfWorkFactory",
    "UnitOfWorkPort",
]
