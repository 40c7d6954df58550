"""
SQLite Database Adapter.

Implements the storage ports (`quire.core.ports.db`) using SQLite.

A `SQLiteUnitOfWork` owns one connection in autocommit mode and opens the
transaction explicitly with `BEGIN IMMEDIATE`, so concurrent writers queue on
the database lock instead of failing mid-transaction. Repositories created by
the unit of work share that connection; standalone repositories open and
commit their own.

UNIQUE violations on slugs are raised as `ConflictError(field="slug")`.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime
from typing import Any
from uuid import UUID

from quire.core.errors import ConflictError
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
    ensure_utc,
)

logger = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# Helper functions
# -----------------------------------------------------------------------------


def dict_factory(cursor: sqlite3.Cursor, row: tuple[Any, ...]) -> dict[str, Any]:
    """Convert SQLite row to dictionary."""
    return {col[0]: row[idx] for idx, col in enumerate(cursor.description)}


def parse_dt(s: str | None) -> datetime | None:
    """Parse ISO datetime string (naive values are UTC)."""
    return ensure_utc(datetime.fromisoformat(s)) if s else None


def parse_uuid(s: str | None) -> UUID | None:
    """Parse UUID string."""
    return UUID(s) if s else None


def format_dt(dt: datetime | None) -> str | None:
    """Fixed-width UTC ISO string so lexical order matches time order."""
    if dt is None:
        return None
    utc = ensure_utc(dt)
    assert utc is not None
    return utc.isoformat(timespec="microseconds")


def _str_or_none(value: UUID | None) -> str | None:
    return str(value) if value else None


def _raise_if_slug_conflict(exc: sqlite3.IntegrityError, slug: str) -> None:
    if "UNIQUE" in str(exc) and ".slug" in str(exc):
        raise ConflictError(f"Slug '{slug}' is already taken", field="slug") from exc


def connect(db_path: str) -> sqlite3.Connection:
    conn = sqlite3.connect(db_path, timeout=30, isolation_level=None)
    conn.row_factory = dict_factory
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


# -----------------------------------------------------------------------------
# Base SQLite Repository
# -----------------------------------------------------------------------------


class SQLiteRepoBase:
    """Base class for SQLite repositories."""

    def __init__(self, db_path: str, connection: sqlite3.Connection | None = None):
        self.db_path = db_path
        self._external_conn = connection

    def _get_conn(self) -> sqlite3.Connection:
        """Get database connection (uses external if provided)."""
        if self._external_conn is not None:
            return self._external_conn
        return connect(self.db_path)

    def _should_close(self) -> bool:
        """Whether to close connection after use."""
        return self._external_conn is None

    @contextmanager
    def _session(self) -> Iterator[sqlite3.Connection]:
        conn = self._get_conn()
        try:
            yield conn
        finally:
            if self._should_close():
                conn.close()


# -----------------------------------------------------------------------------
# Content items
# -----------------------------------------------------------------------------

_POST_COLUMNS = (
    "id",
    "uuid",
    "type",
    "status",
    "title",
    "slug",
    "body_json",
    "html",
    "plaintext",
    "custom_excerpt",
    "feature_image",
    "canonical_url",
    "codeinjection_head",
    "codeinjection_foot",
    "featured",
    "visibility",
    "send_email_when_published",
    "comment_id",
    "published_at",
    "published_by",
    "created_at",
    "created_by",
    "updated_at",
    "updated_by",
)

_DEFAULT_ORDER = """
    CASE status WHEN 'scheduled' THEN 1 WHEN 'draft' THEN 2 ELSE 3 END ASC,
    CASE WHEN status != 'draft' THEN published_at END DESC,
    updated_at DESC,
    id DESC
"""


class SQLiteContentRepo(SQLiteRepoBase):
    """SQLite implementation of ContentRepoPort."""

    def get_by_id(self, item_id: UUID) -> ContentItem | None:
        with self._session() as conn:
            row = conn.execute("SELECT * FROM posts WHERE id = ?", (str(item_id),)).fetchone()
            return self._map_row(conn, row) if row else None

    def slug_exists(self, slug: str, exclude_id: UUID | None = None) -> bool:
        with self._session() as conn:
            row = conn.execute(
                "SELECT 1 FROM posts WHERE slug = ? AND id != ? LIMIT 1",
                (slug, str(exclude_id) if exclude_id else ""),
            ).fetchone()
            return row is not None

    def insert(self, item: ContentItem) -> None:
        params = self._params(item)
        placeholders = ", ".join("?" for _ in _POST_COLUMNS)
        with self._session() as conn:
            try:
                conn.execute(
                    f"INSERT INTO posts ({', '.join(_POST_COLUMNS)}) VALUES ({placeholders})",
                    params,
                )
            except sqlite3.IntegrityError as e:
                _raise_if_slug_conflict(e, item.slug)
                raise

    def update(self, item: ContentItem) -> None:
        params = self._params(item)
        assignments = ", ".join(f"{col} = ?" for col in _POST_COLUMNS[1:])
        with self._session() as conn:
            try:
                conn.execute(
                    f"UPDATE posts SET {assignments} WHERE id = ?",
                    (*params[1:], params[0]),
                )
            except sqlite3.IntegrityError as e:
                _raise_if_slug_conflict(e, item.slug)
                raise

    def delete(self, item_id: UUID) -> None:
        with self._session() as conn:
            conn.execute("DELETE FROM posts WHERE id = ?", (str(item_id),))

    def replace_tags(self, item_id: UUID, tag_ids: Sequence[UUID]) -> None:
        self._replace_relation("posts_tags", "tag_id", item_id, tag_ids)

    def replace_authors(self, item_id: UUID, author_ids: Sequence[UUID]) -> None:
        self._replace_relation("posts_authors", "author_id", item_id, author_ids)

    def save_meta(self, item_id: UUID, meta: PostsMeta | None) -> None:
        with self._session() as conn:
            if meta is None:
                conn.execute("DELETE FROM posts_meta WHERE post_id = ?", (str(item_id),))
                return
            fields = list(PostsMeta.model_fields)
            conn.execute(
                f"""
                INSERT INTO posts_meta (post_id, {', '.join(fields)})
                VALUES (?, {', '.join('?' for _ in fields)})
                ON CONFLICT(post_id) DO UPDATE SET
                    {', '.join(f'{f}=excluded.{f}' for f in fields)}
                """,
                (str(item_id), *(getattr(meta, f) for f in fields)),
            )

    def list_items(
        self,
        *,
        statuses: Sequence[ContentStatus] | None = None,
        content_type: ContentType | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[ContentItem]:
        conditions: list[str] = []
        params: list[Any] = []
        if statuses:
            conditions.append(f"status IN ({', '.join('?' for _ in statuses)})")
            params.extend(statuses)
        if content_type:
            conditions.append("type = ?")
            params.append(content_type)

        query = "SELECT * FROM posts"
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += f" ORDER BY {_DEFAULT_ORDER} LIMIT ? OFFSET ?"
        params.extend([limit, offset])

        with self._session() as conn:
            rows = conn.execute(query, params).fetchall()
            return [self._map_row(conn, r) for r in rows]

    def _replace_relation(
        self, table: str, column: str, item_id: UUID, ids: Sequence[UUID]
    ) -> None:
        with self._session() as conn:
            conn.execute(f"DELETE FROM {table} WHERE post_id = ?", (str(item_id),))
            for position, related_id in enumerate(ids):
                conn.execute(
                    f"INSERT INTO {table} (post_id, {column}, sort_order) VALUES (?, ?, ?)",
                    (str(item_id), str(related_id), position),
                )

    def _params(self, item: ContentItem) -> tuple[Any, ...]:
        return (
            str(item.id),
            str(item.uuid),
            item.type,
            item.status,
            item.title,
            item.slug,
            json.dumps(item.body),
            item.html,
            item.plaintext,
            item.custom_excerpt,
            item.feature_image,
            item.canonical_url,
            item.codeinjection_head,
            item.codeinjection_foot,
            int(item.featured),
            item.visibility,
            int(item.send_email_when_published),
            item.comment_id,
            format_dt(item.published_at),
            _str_or_none(item.published_by),
            format_dt(item.created_at),
            _str_or_none(item.created_by),
            format_dt(item.updated_at),
            _str_or_none(item.updated_by),
        )

    def _map_row(self, conn: sqlite3.Connection, row: dict[str, Any]) -> ContentItem:
        tag_rows = conn.execute(
            """
            SELECT t.* FROM tags t
            JOIN posts_tags pt ON pt.tag_id = t.id
            WHERE pt.post_id = ? ORDER BY pt.sort_order ASC
            """,
            (row["id"],),
        ).fetchall()
        author_rows = conn.execute(
            """
            SELECT a.* FROM authors a
            JOIN posts_authors pa ON pa.author_id = a.id
            WHERE pa.post_id = ? ORDER BY pa.sort_order ASC
            """,
            (row["id"],),
        ).fetchall()
        meta_row = conn.execute(
            "SELECT * FROM posts_meta WHERE post_id = ?", (row["id"],)
        ).fetchone()

        meta = None
        if meta_row:
            meta_row.pop("post_id")
            meta = PostsMeta(**meta_row)

        return ContentItem(
            id=UUID(row["id"]),
            uuid=UUID(row["uuid"]),
            type=row["type"],
            status=row["status"],
            title=row["title"],
            slug=row["slug"],
            body=json.loads(row["body_json"]),
            html=row["html"],
            plaintext=row["plaintext"],
            custom_excerpt=row["custom_excerpt"],
            feature_image=row["feature_image"],
            canonical_url=row["canonical_url"],
            codeinjection_head=row["codeinjection_head"],
            codeinjection_foot=row["codeinjection_foot"],
            featured=bool(row["featured"]),
            visibility=row["visibility"],
            send_email_when_published=bool(row["send_email_when_published"]),
            comment_id=row["comment_id"],
            published_at=parse_dt(row["published_at"]),
            published_by=parse_uuid(row["published_by"]),
            created_at=parse_dt(row["created_at"]),
            created_by=parse_uuid(row["created_by"]),
            updated_at=parse_dt(row["updated_at"]),
            updated_by=parse_uuid(row["updated_by"]),
            tags=[_map_tag(r) for r in tag_rows],
            authors=[_map_author(r) for r in author_rows],
            meta=meta,
        )


# -----------------------------------------------------------------------------
# Revisions
# -----------------------------------------------------------------------------


class SQLiteRevisionRepo(SQLiteRepoBase):
    """SQLite implementation of RevisionRepoPort."""

    def list_for_item(self, item_id: UUID) -> list[Revision]:
        with self._session() as conn:
            rows = conn.execute(
                """
                SELECT * FROM post_revisions
                WHERE post_id = ?
                ORDER BY created_at_seq DESC
                """,
                (str(item_id),),
            ).fetchall()
            return [self._map_row(r) for r in rows]

    def add(self, revision: Revision) -> None:
        with self._session() as conn:
            conn.execute(
                """
                INSERT INTO post_revisions (id, post_id, body_json, created_at_seq)
                VALUES (?, ?, ?, ?)
                """,
                (
                    str(revision.id),
                    str(revision.item_id),
                    json.dumps(revision.body_snapshot),
                    revision.created_at_seq,
                ),
            )

    def delete_many(self, revision_ids: Sequence[UUID]) -> None:
        if not revision_ids:
            return
        with self._session() as conn:
            conn.execute(
                f"DELETE FROM post_revisions WHERE id IN ({', '.join('?' for _ in revision_ids)})",
                [str(r) for r in revision_ids],
            )

    def max_sequence(self) -> int:
        with self._session() as conn:
            row = conn.execute(
                "SELECT COALESCE(MAX(created_at_seq), 0) AS seq FROM post_revisions"
            ).fetchone()
            return int(row["seq"])

    def _map_row(self, row: dict[str, Any]) -> Revision:
        return Revision(
            id=UUID(row["id"]),
            item_id=UUID(row["post_id"]),
            body_snapshot=json.loads(row["body_json"]),
            created_at_seq=row["created_at_seq"],
        )


# -----------------------------------------------------------------------------
# Tags / Authors
# -----------------------------------------------------------------------------


def _map_tag(row: dict[str, Any]) -> Tag:
    return Tag(
        id=UUID(row["id"]),
        name=row["name"],
        slug=row["slug"],
        visibility=row["visibility"],
        created_at=parse_dt(row["created_at"]),
    )


def _map_author(row: dict[str, Any]) -> Author:
    return Author(
        id=UUID(row["id"]),
        name=row["name"],
        slug=row["slug"],
        roles=json.loads(row["roles_json"]),
        created_at=parse_dt(row["created_at"]),
    )


class SQLiteTagRepo(SQLiteRepoBase):
    """SQLite implementation of TagRepoPort."""

    def get_by_id(self, tag_id: UUID) -> Tag | None:
        with self._session() as conn:
            row = conn.execute("SELECT * FROM tags WHERE id = ?", (str(tag_id),)).fetchone()
            return _map_tag(row) if row else None

    def get_by_slug(self, slug: str) -> Tag | None:
        with self._session() as conn:
            row = conn.execute("SELECT * FROM tags WHERE slug = ?", (slug,)).fetchone()
            return _map_tag(row) if row else None

    def find_by_name(self, name: str) -> Tag | None:
        with self._session() as conn:
            row = conn.execute(
                "SELECT * FROM tags WHERE lower(name) = lower(?) LIMIT 1", (name,)
            ).fetchone()
            return _map_tag(row) if row else None

    def slug_exists(self, slug: str, exclude_id: UUID | None = None) -> bool:
        with self._session() as conn:
            row = conn.execute(
                "SELECT 1 FROM tags WHERE slug = ? AND id != ? LIMIT 1",
                (slug, str(exclude_id) if exclude_id else ""),
            ).fetchone()
            return row is not None

    def insert(self, tag: Tag) -> None:
        with self._session() as conn:
            try:
                conn.execute(
                    """
                    INSERT INTO tags (id, name, slug, visibility, created_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (str(tag.id), tag.name, tag.slug, tag.visibility, format_dt(tag.created_at)),
                )
            except sqlite3.IntegrityError as e:
                _raise_if_slug_conflict(e, tag.slug)
                raise


class SQLiteAuthorRepo(SQLiteRepoBase):
    """SQLite implementation of AuthorRepoPort."""

    def get_by_id(self, author_id: UUID) -> Author | None:
        with self._session() as conn:
            row = conn.execute(
                "SELECT * FROM authors WHERE id = ?", (str(author_id),)
            ).fetchone()
            return _map_author(row) if row else None

    def insert(self, author: Author) -> None:
        with self._session() as conn:
            try:
                conn.execute(
                    """
                    INSERT INTO authors (id, name, slug, roles_json, created_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        str(author.id),
                        author.name,
                        author.slug,
                        json.dumps(author.roles),
                        format_dt(author.created_at),
                    ),
                )
            except sqlite3.IntegrityError as e:
                _raise_if_slug_conflict(e, author.slug)
                raise


# -----------------------------------------------------------------------------
# Emails / Actions
# -----------------------------------------------------------------------------


class SQLiteEmailRepo(SQLiteRepoBase):
    """SQLite implementation of EmailRepoPort."""

    def exists_for_item(self, item_id: UUID) -> bool:
        with self._session() as conn:
            row = conn.execute(
                "SELECT 1 FROM emails WHERE post_id = ? LIMIT 1", (str(item_id),)
            ).fetchone()
            return row is not None

    def insert(self, email: EmailRecord) -> None:
        with self._session() as conn:
            conn.execute(
                "INSERT INTO emails (id, post_id, status, created_at) VALUES (?, ?, ?, ?)",
                (str(email.id), str(email.item_id), email.status, format_dt(email.created_at)),
            )


class SQLiteActionLogRepo(SQLiteRepoBase):
    """SQLite implementation of ActionLogRepoPort."""

    def append(self, record: ActionRecord) -> ActionRecord:
        with self._session() as conn:
            conn.execute(
                """
                INSERT INTO actions (
                    id, event, resource_id, resource_type,
                    actor_id, actor_type, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    str(record.id),
                    record.event,
                    str(record.resource_id),
                    record.resource_type,
                    str(record.actor_id),
                    record.actor_type,
                    format_dt(record.created_at),
                ),
            )
            return record

    def list_by_resource(self, resource_id: UUID, limit: int = 100) -> list[ActionRecord]:
        with self._session() as conn:
            rows = conn.execute(
                """
                SELECT * FROM actions
                WHERE resource_id = ?
                ORDER BY created_at ASC, rowid ASC LIMIT ?
                """,
                (str(resource_id), limit),
            ).fetchall()
            return [self._map_row(r) for r in rows]

    def _map_row(self, row: dict[str, Any]) -> ActionRecord:
        return ActionRecord(
            id=UUID(row["id"]),
            event=row["event"],
            resource_id=UUID(row["resource_id"]),
            resource_type=row["resource_type"],
            actor_id=UUID(row["actor_id"]),
            actor_type=row["actor_type"],
            created_at=parse_dt(row["created_at"]),
        )


class SQLiteEventSequenceRepo(SQLiteRepoBase):
    """SQLite implementation of EventSequenceRepoPort."""

    def reserve(self, item_id: UUID, count: int) -> int:
        if count < 1:
            raise ValueError("count must be positive")
        with self._session() as conn:
            conn.execute(
                """
                INSERT INTO event_sequences (item_id, last_sequence) VALUES (?, ?)
                ON CONFLICT(item_id) DO UPDATE
                SET last_sequence = last_sequence + excluded.last_sequence
                """,
                (str(item_id), count),
            )
            row = conn.execute(
                "SELECT last_sequence FROM event_sequences WHERE item_id = ?",
                (str(item_id),),
            ).fetchone()
            return int(row["last_sequence"]) - count + 1

    def last_sequence(self, item_id: UUID) -> int:
        with self._session() as conn:
            row = conn.execute(
                "SELECT last_sequence FROM event_sequences WHERE item_id = ?",
                (str(item_id),),
            ).fetchone()
            return int(row["last_sequence"]) if row else 0


# -----------------------------------------------------------------------------
# Unit of Work
# -----------------------------------------------------------------------------


class SQLiteUnitOfWork:
    """
    SQLite Unit of Work implementation.

    Provides transaction management and access to all repositories.
    Uses a shared connection for all operations within a transaction.
    Callbacks registered with `on_commit` run after COMMIT succeeds and are
    discarded on rollback.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._conn: sqlite3.Connection | None = None
        self._after_commit: list[Callable[[], None]] = []

        # Lazy-initialized repositories
        self._content: SQLiteContentRepo | None = None
        self._revisions: SQLiteRevisionRepo | None = None
        self._tags: SQLiteTagRepo | None = None
        self._authors: SQLiteAuthorRepo | None = None
        self._emails: SQLiteEmailRepo | None = None
        self._actions: SQLiteActionLogRepo | None = None
        self._sequences: SQLiteEventSequenceRepo | None = None

    def __enter__(self) -> SQLiteUnitOfWork:
        self._conn = connect(self.db_path)
        self._conn.execute("BEGIN IMMEDIATE")
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        if exc_type is not None:
            self.rollback()
        elif self._conn is not None and self._conn.in_transaction:
            # Leaving without commit discards the work.
            self.rollback()
        if self._conn:
            self._conn.close()
            self._conn = None

    @property
    def connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("Unit of work is not active")
        return self._conn

    def commit(self) -> None:
        if self._conn is None or not self._conn.in_transaction:
            return
        self._conn.execute("COMMIT")
        callbacks, self._after_commit = self._after_commit, []
        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("After-commit callback failed")

    def rollback(self) -> None:
        self._after_commit.clear()
        if self._conn is not None and self._conn.in_transaction:
            self._conn.execute("ROLLBACK")

    def on_commit(self, callback: Callable[[], None]) -> None:
        self._after_commit.append(callback)

    @contextmanager
    def savepoint(self, name: str) -> Iterator[None]:
        conn = self.connection
        conn.execute(f'SAVEPOINT "{name}"')
        try:
            yield
        except BaseException:
            conn.execute(f'ROLLBACK TO SAVEPOINT "{name}"')
            conn.execute(f'RELEASE SAVEPOINT "{name}"')
            raise
        else:
            conn.execute(f'RELEASE SAVEPOINT "{name}"')

    @property
    def content(self) -> SQLiteContentRepo:
        if self._content is None:
            self._content = SQLiteContentRepo(self.db_path, self.connection)
        return self._content

    @property
    def revisions(self) -> SQLiteRevisionRepo:
        if self._revisions is None:
            self._revisions = SQLiteRevisionRepo(self.db_path, self.connection)
        return self._revisions

    @property
    def tags(self) -> SQLiteTagRepo:
        if self._tags is None:
            self._tags = SQLiteTagRepo(self.db_path, self.connection)
        return self._tags

    @property
    def authors(self) -> SQLiteAuthorRepo:
        if self._authors is None:
            self._authors = SQLiteAuthorRepo(self.db_path, self.connection)
        return self._authors

    @property
    def emails(self) -> SQLiteEmailRepo:
        if self._emails is None:
            self._emails = SQLiteEmailRepo(self.db_path, self.connection)
        return self._emails

    @property
    def actions(self) -> SQLiteActionLogRepo:
        if self._actions is None:
            self._actions = SQLiteActionLogRepo(self.db_path, self.connection)
        return self._actions

    @property
    def sequences(self) -> SQLiteEventSequenceRepo:
        if self._sequences is None:
            self._sequences = SQLiteEventSequenceRepo(self.db_path, self.connection)
        return self._sequences
