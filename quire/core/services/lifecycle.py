"""
ContentLifecycleEngine - add / edit / destroy for posts and pages.

Each mutating operation runs inside one unit of work: either the caller's
(`LifecycleOptions.transacting`) or a fresh one committed on success. The
sequence is:

    permission gate -> state machine -> field assembly -> URL normalization
    -> render -> slug resolution + item write -> revisions -> relations
    -> re-read -> event derivation -> after-commit dispatch

Nothing is dispatched for a rolled-back mutation. All sub-step errors
propagate unchanged as `LifecycleError` subclasses.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import timedelta
from typing import Any
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError

from quire.core.errors import ConflictError, NotFoundError, ValidationError
from quire.core.ports.db import UnitOfWorkFactory, UnitOfWorkPort
from quire.core.ports.events import ActorResolverPort
from quire.core.ports.renderer import DocumentRendererPort
from quire.core.ports.time import TimePort
from quire.core.services.dispatch import EventDispatcher
from quire.core.services.events import ChangeDiff, EventBatch, derive_events
from quire.core.services.revisions import RevisionHistory
from quire.core.services.slugs import SlugGenerator, resolve_edit_slug
from quire.core.services.urls import ITEM_URL_FIELDS, META_URL_FIELDS, UrlNormalizer
from quire.domain.actors import Actor, ActorContext
from quire.domain.entities import (
    ALL_STATUSES,
    ALLOWED_FORMATS,
    META_FIELDS,
    TYPE_DEFAULTS,
    Author,
    ContentItem,
    ContentStatus,
    ContentType,
    ContentVisibility,
    PostsMeta,
    Revision,
    Tag,
    blank_document,
)
from quire.domain.policy import PolicyEngine
from quire.domain.state import PublicationStateMachine, TransitionRequest, parse_published_at
from quire.rules.models import Rules

logger = logging.getLogger(__name__)

# Plain fields copied from caller data when present.
SIMPLE_FIELDS: tuple[str, ...] = (
    "custom_excerpt",
    "feature_image",
    "canonical_url",
    "codeinjection_head",
    "codeinjection_foot",
    "featured",
    "visibility",
)

# Fields the engine owns; caller values are only honoured in the named modes.
GENERATED_FIELDS: tuple[str, ...] = ("html", "plaintext", "comment_id")
IMPORT_FIELDS: tuple[str, ...] = ("uuid", "created_at", "created_by")
IGNORED_FIELDS: tuple[str, ...] = (
    "updated_at",
    "updated_by",
    "send_email_when_published",
    "primary_tag",
    "primary_author",
)

ACCEPTED_FIELDS = frozenset(
    {
        "id",
        "type",
        "status",
        "title",
        "slug",
        "body",
        "published_at",
        "published_by",
        "tags",
        "authors",
        "meta",
        *SIMPLE_FIELDS,
        *GENERATED_FIELDS,
        *IMPORT_FIELDS,
        *IGNORED_FIELDS,
        *META_FIELDS,
    }
)


# --- Settings / Options ---


@dataclass(frozen=True)
class LifecycleSettings:
    """Explicit configuration for the engine (built from rules.yaml)."""

    site_url: str
    min_lead: timedelta = timedelta(minutes=2)
    max_revisions: int = 10
    slug_max_length: int = 185
    slug_max_attempts: int = 50
    reserved_slugs: frozenset[str] = frozenset()
    default_visibility: ContentVisibility = "public"
    untitled_title: str = "(Untitled)"
    emit_without_actor: bool = False

    @classmethod
    def from_rules(cls, rules: Rules) -> LifecycleSettings:
        return cls(
            site_url=rules.urls.site_url,
            min_lead=timedelta(minutes=rules.scheduling.min_lead_minutes),
            max_revisions=rules.revisions.max_count,
            slug_max_length=rules.slugs.max_length,
            slug_max_attempts=rules.slugs.max_attempts,
            reserved_slugs=frozenset(rules.slugs.reserved),
            default_visibility=rules.content.default_visibility,
            untitled_title=rules.content.untitled_title,
            emit_without_actor=rules.events.emit_without_actor,
        )


@dataclass
class LifecycleOptions:
    """Per-call options recognised by add, edit and destroy."""

    importing: bool = False
    migrating: bool = False
    transacting: UnitOfWorkPort | None = None
    actor_context: ActorContext = field(default_factory=ActorContext)
    send_email_when_published: bool = False
    force_rerender: bool = False


# --- Helpers ---


def _pydantic_field(e: PydanticValidationError) -> str | None:
    errors = e.errors()
    if errors and errors[0].get("loc"):
        return str(errors[0]["loc"][0])
    return None


def _parse_uuid(value: Any, field_name: str) -> UUID | None:
    if value is None or value == "":
        return None
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError as e:
        raise ValidationError(f"Invalid id for {field_name}: {value!r}", field=field_name) from e


def _ref_value(ref: Any, key: str) -> Any:
    if isinstance(ref, Mapping):
        return ref.get(key)
    return getattr(ref, key, None)


# --- Engine ---


class ContentLifecycleEngine:
    """
    Orchestrates the content lifecycle.

    Collaborators are injected; nothing is looked up from process state.
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        settings: LifecycleSettings,
        policy: PolicyEngine,
        renderer: DocumentRendererPort,
        clock: TimePort,
        actor_resolver: ActorResolverPort,
        dispatcher: EventDispatcher | None = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._settings = settings
        self._policy = policy
        self._renderer = renderer
        self._clock = clock
        self._actors = actor_resolver
        self._dispatcher = dispatcher
        self._state = PublicationStateMachine(settings.min_lead)
        self._urls = UrlNormalizer(settings.site_url)

    @property
    def settings(self) -> LifecycleSettings:
        return self._settings

    # --- Mutations ---

    def add(
        self, data: Mapping[str, Any], options: LifecycleOptions | None = None
    ) -> ContentItem:
        """Create an item. Raises ValidationError, AuthorizationError, ConflictError."""
        options = options or LifecycleOptions()
        self._check_fields(data)

        with self._transaction(options) as uow:
            context = options.actor_context
            self._policy.ensure_permission(context, "add", data)

            now = self._clock.now_utc()
            actor = self._actors.resolve(context)
            item_type = self._resolve_type(data.get("type", "post"))
            title = self._resolve_title(data.get("title"), options)

            transition = self._state.apply(
                TransitionRequest(
                    previous=None,
                    status=data.get("status") or "draft",
                    published_at=parse_published_at(data.get("published_at")),
                    published_by=_parse_uuid(data.get("published_by"), "published_by"),
                    send_email_when_published=False,
                ),
                now=now,
                actor_id=actor.id if actor else None,
                importing=options.importing,
                internal=context.internal,
                send_email_option=options.send_email_when_published,
            )

            values: dict[str, Any] = {
                "type": item_type,
                "title": title,
                "body": self._resolve_body(data.get("body")),
                "visibility": self._settings.default_visibility,
                "status": transition.status,
                "published_at": transition.published_at,
                "published_by": transition.published_by,
                "send_email_when_published": transition.send_email_when_published,
                "created_at": now,
                "updated_at": now,
                "created_by": actor.id if actor else None,
                "updated_by": actor.id if actor else None,
            }
            if data.get("id"):
                values["id"] = _parse_uuid(data["id"], "id")
            values.update({f: data[f] for f in SIMPLE_FIELDS if f in data})
            if options.migrating:
                values.update({f: data[f] for f in GENERATED_FIELDS if data.get(f) is not None})
            if options.importing:
                values.update({f: data[f] for f in IMPORT_FIELDS if data.get(f) is not None})

            item = self._build(values)
            if uow.content.get_by_id(item.id) is not None:
                raise ConflictError(f"Content item {item.id} already exists", field="id")
            if item.comment_id is None:
                item = item.model_copy(update={"comment_id": str(item.id)})

            item = self._normalize_urls(item, None)
            item = self._render(item, None, options)

            tags = self._resolve_tags(uow, data.get("tags"))
            authors = self._resolve_authors(uow, data.get("authors"), actor)
            meta = self._merge_meta(None, data)

            slugs = self._slug_generator(uow)
            candidate = data.get("slug") or title
            item = self._write_with_slug(
                uow,
                item,
                lambda taken: slugs.generate(
                    candidate, fallback=item.variant.slug_fallback, taken=taken
                ),
                uow.content.insert,
            )

            uow.content.replace_tags(item.id, [t.id for t in tags])
            uow.content.replace_authors(item.id, [a.id for a in authors])
            if meta is not None:
                uow.content.save_meta(item.id, meta)

            stored = self._reload(uow, item.id)
            self._emit(uow, derive_events(ChangeDiff(None, stored, "insert"), actor), actor)

        logger.info("Added %s %s (slug=%s, status=%s)", stored.type, stored.id, stored.slug, stored.status)
        return stored

    def edit(
        self,
        item_id: UUID,
        data: Mapping[str, Any],
        options: LifecycleOptions | None = None,
    ) -> ContentItem:
        """Update an item. Raises ValidationError, AuthorizationError, ConflictError, NotFoundError."""
        options = options or LifecycleOptions()
        self._check_fields(data)

        with self._transaction(options) as uow:
            previous = uow.content.get_by_id(item_id)
            if previous is None:
                raise NotFoundError(f"Content item {item_id} not found")

            context = options.actor_context
            self._policy.ensure_permission(context, "edit", data, previous)

            now = self._clock.now_utc()
            actor = self._actors.resolve(context)

            published_at = (
                parse_published_at(data["published_at"])
                if "published_at" in data
                else previous.published_at
            )
            published_by = (
                _parse_uuid(data["published_by"], "published_by")
                if "published_by" in data
                else previous.published_by
            )
            transition = self._state.apply(
                TransitionRequest(
                    previous=previous,
                    status=data.get("status") or previous.status,
                    published_at=published_at,
                    published_by=published_by,
                    send_email_when_published=previous.send_email_when_published,
                ),
                now=now,
                actor_id=actor.id if actor else None,
                importing=options.importing,
                internal=context.internal,
                send_email_option=options.send_email_when_published,
                email_exists=lambda: uow.emails.exists_for_item(item_id),
            )

            values = previous.model_dump(exclude={"tags", "authors", "meta"})
            values.update(
                {
                    "status": transition.status,
                    "published_at": transition.published_at,
                    "published_by": transition.published_by,
                    "send_email_when_published": transition.send_email_when_published,
                    "updated_at": now,
                    "updated_by": actor.id if actor else previous.updated_by,
                }
            )
            if "type" in data:
                values["type"] = self._resolve_type(data["type"])
            if "title" in data:
                values["title"] = self._resolve_title(data["title"], options)
            if "body" in data:
                values["body"] = self._resolve_body(data["body"])
            values.update({f: data[f] for f in SIMPLE_FIELDS if f in data})
            if options.migrating:
                values.update({f: data[f] for f in GENERATED_FIELDS if f in data})
            if options.importing:
                values.update({f: data[f] for f in IMPORT_FIELDS if data.get(f) is not None})

            item = self._build(values)
            item = self._normalize_urls(item, previous)
            item = self._render(item, previous, options)

            tags = (
                self._resolve_tags(uow, data["tags"]) if data.get("tags") is not None else previous.tags
            )
            authors = (
                self._resolve_authors(uow, data["authors"], actor)
                if data.get("authors")
                else previous.authors
            )
            meta = self._merge_meta(previous.meta, data)

            slugs = self._slug_generator(uow)
            requested_slug = data.get("slug") or None
            item = self._write_with_slug(
                uow,
                item,
                lambda taken: resolve_edit_slug(
                    slugs,
                    previous,
                    title=item.title,
                    requested_slug=requested_slug,
                    status=item.status,
                    published_at=item.published_at,
                    taken=taken,
                ),
                uow.content.update,
            )

            # Item row first so a failed update never leaves orphan revisions.
            if item.body != previous.body and not (options.importing or options.migrating):
                RevisionHistory(uow.revisions, self._settings.max_revisions).record(
                    item.id, previous.body, item.body, now
                )

            if [t.id for t in tags] != previous.tag_ids():
                uow.content.replace_tags(item.id, [t.id for t in tags])
            if [a.id for a in authors] != previous.author_ids():
                uow.content.replace_authors(item.id, [a.id for a in authors])
            if meta != previous.meta:
                uow.content.save_meta(item.id, meta)

            stored = self._reload(uow, item.id)
            self._emit(uow, derive_events(ChangeDiff(previous, stored, "update"), actor), actor)

        logger.info("Edited %s %s (status %s -> %s)", stored.type, stored.id, previous.status, stored.status)
        return stored

    def destroy(self, item_id: UUID, options: LifecycleOptions | None = None) -> None:
        """Delete an item. Raises AuthorizationError, NotFoundError."""
        options = options or LifecycleOptions()

        with self._transaction(options) as uow:
            previous = uow.content.get_by_id(item_id)
            if previous is None:
                raise NotFoundError(f"Content item {item_id} not found")

            context = options.actor_context
            self._policy.ensure_permission(context, "destroy", {}, previous)
            actor = self._actors.resolve(context)

            uow.content.delete(item_id)
            self._emit(uow, derive_events(ChangeDiff(previous, None, "destroy"), actor), actor)

        logger.info("Destroyed %s %s", previous.type, item_id)

    # --- Reads ---

    def get(self, item_id: UUID, status: str | Sequence[str] = "all") -> ContentItem | None:
        statuses = self._resolve_statuses(status)
        with self._uow_factory() as uow:
            item = uow.content.get_by_id(item_id)
        if item is None or item.status not in statuses:
            return None
        return item

    def list_items(
        self,
        status: str | Sequence[str] = "all",
        content_type: ContentType | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[ContentItem]:
        """Items in default order: scheduled, drafts, then the rest by published_at."""
        statuses = self._resolve_statuses(status)
        if content_type is not None:
            content_type = self._resolve_type(content_type)
        with self._uow_factory() as uow:
            return uow.content.list_items(
                statuses=statuses, content_type=content_type, limit=limit, offset=offset
            )

    def list_revisions(self, item_id: UUID) -> list[Revision]:
        """Revision log oldest-first. Raises NotFoundError for unknown items."""
        with self._uow_factory() as uow:
            if uow.content.get_by_id(item_id) is None:
                raise NotFoundError(f"Content item {item_id} not found")
            return RevisionHistory(uow.revisions, self._settings.max_revisions).list_oldest_first(
                item_id
            )

    def serialize(self, item: ContentItem, formats: Sequence[str] = ("html",)) -> dict[str, Any]:
        """
        Public representation of an item.

        Only requested formats (body/html/plaintext) are included, stored
        relative URLs are expanded, and revisions are never part of it.
        """
        unknown = [f for f in formats if f not in ALLOWED_FORMATS]
        if unknown:
            raise ValidationError(f"Unknown formats: {', '.join(unknown)}", field="formats")

        data = item.model_dump(mode="json")
        for fmt in ALLOWED_FORMATS:
            if fmt not in formats:
                data.pop(fmt, None)

        for name, transform in ITEM_URL_FIELDS.items():
            if name in data:
                data[name] = self._urls.to_absolute(data[name], transform)
        if "html" in data and data["html"]:
            data["html"] = self._urls.html_relative_to_absolute(data["html"])
        if data.get("meta"):
            for name, transform in META_URL_FIELDS.items():
                data["meta"][name] = self._urls.to_absolute(data["meta"][name], transform)

        public_tags = [t for t in data["tags"] if t["visibility"] == "public"]
        first_tag = data["tags"][0] if data["tags"] else None
        data["primary_tag"] = first_tag if first_tag in public_tags else None
        data["primary_author"] = data["authors"][0] if data["authors"] else None
        return data

    # --- Transaction / dispatch ---

    @contextmanager
    def _transaction(self, options: LifecycleOptions) -> Iterator[UnitOfWorkPort]:
        if options.transacting is not None:
            # Caller owns commit and rollback; a failed operation only
            # unwinds its own savepoint.
            with options.transacting.savepoint("lifecycle_op"):
                yield options.transacting
            return
        with self._uow_factory() as uow:
            yield uow
            uow.commit()

    def _emit(self, uow: UnitOfWorkPort, batch: EventBatch, actor: Actor | None) -> None:
        if self._dispatcher is None:
            return
        if actor is None and not self._settings.emit_without_actor:
            # Relation hooks still go out; only the item-level stream is muted.
            logger.debug(
                "Actor-less mutation of %s; %d event(s) not emitted",
                batch.item_id,
                len(batch.events),
            )
            batch = replace(batch, events=())
        if batch.events:
            start = uow.sequences.reserve(batch.item_id, len(batch.events))
            batch = batch.with_sequences(start)
        if not batch.events and not batch.hooks:
            return
        dispatcher = self._dispatcher
        uow.on_commit(lambda: dispatcher.dispatch(batch))

    # --- Field assembly ---

    def _check_fields(self, data: Mapping[str, Any]) -> None:
        for key in data:
            if key not in ACCEPTED_FIELDS:
                raise ValidationError(f"Unknown field '{key}'", field=key)

    def _build(self, values: Mapping[str, Any]) -> ContentItem:
        try:
            return ContentItem.model_validate(values)
        except PydanticValidationError as e:
            field_name = _pydantic_field(e)
            raise ValidationError(f"Invalid value for {field_name}: {e}", field=field_name) from e

    def _resolve_type(self, value: Any) -> ContentType:
        if value not in TYPE_DEFAULTS:
            raise ValidationError(f"Unknown content type '{value}'", field="type")
        return value  # type: ignore[no-any-return]

    def _resolve_statuses(self, status: str | Sequence[str]) -> list[ContentStatus]:
        if status == "all":
            return list(ALL_STATUSES)
        requested = [status] if isinstance(status, str) else list(status)
        for s in requested:
            if s not in ALL_STATUSES:
                raise ValidationError(f"Unknown status '{s}'", field="status")
        return requested  # type: ignore[return-value]

    def _resolve_title(self, raw: Any, options: LifecycleOptions) -> str:
        if raw is not None and not isinstance(raw, str):
            raise ValidationError("Title must be a string", field="title")
        title = (raw or "").strip()
        if not title and not options.importing:
            title = self._settings.untitled_title
        return title

    def _resolve_body(self, raw: Any) -> dict[str, Any]:
        if raw is None:
            return blank_document()
        if not isinstance(raw, dict):
            raise ValidationError("Body must be a structured document", field="body")
        return raw

    def _normalize_urls(self, item: ContentItem, previous: ContentItem | None) -> ContentItem:
        updates: dict[str, Any] = {}
        for name, transform in ITEM_URL_FIELDS.items():
            value = getattr(item, name)
            if value and (previous is None or value != getattr(previous, name)):
                updates[name] = self._urls.to_relative(value, transform)
        return item.model_copy(update=updates) if updates else item

    def _render(
        self, item: ContentItem, previous: ContentItem | None, options: LifecycleOptions
    ) -> ContentItem:
        body_changed = previous is None or item.body != previous.body
        needs_render = (
            (body_changed and not (options.migrating and item.html))
            or options.force_rerender
            or (not item.html and (options.migrating or options.importing))
            or not item.plaintext
        )
        if not needs_render:
            return item
        try:
            rendered = self._renderer.render(item.body)
        except Exception as e:
            raise ValidationError("Invalid document structure", field="body") from e
        return item.model_copy(update={"html": rendered.html, "plaintext": rendered.plaintext})

    def _merge_meta(
        self, previous: PostsMeta | None, data: Mapping[str, Any]
    ) -> PostsMeta | None:
        updates: dict[str, Any] = {}
        nested = data.get("meta")
        if nested is not None:
            if not isinstance(nested, Mapping):
                raise ValidationError("meta must be an object", field="meta")
            unknown = [k for k in nested if k not in META_FIELDS]
            if unknown:
                raise ValidationError(f"Unknown meta field '{unknown[0]}'", field="meta")
            updates.update(nested)
        updates.update({f: data[f] for f in META_FIELDS if f in data})
        if not updates:
            return previous

        base = previous.model_dump() if previous else {}
        merged = {**base, **updates}
        for name, transform in META_URL_FIELDS.items():
            if merged.get(name) and merged.get(name) != base.get(name):
                merged[name] = self._urls.to_relative(merged[name], transform)
        try:
            meta = PostsMeta.model_validate(merged)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid meta: {e}", field="meta") from e
        return meta if meta.has_data() else None

    # --- Relations ---

    def _resolve_tags(self, uow: UnitOfWorkPort, refs: Any) -> list[Tag]:
        if refs is None:
            return []
        if not isinstance(refs, (list, tuple)):
            raise ValidationError("tags must be a list", field="tags")

        tags: list[Tag] = []
        seen: set[str] = set()
        for ref in refs:
            tag = self._find_tag(uow, ref)
            if tag is None:
                tag = self._create_tag(uow, ref)
            key = tag.name.lower()
            if key in seen:
                continue
            seen.add(key)
            tags.append(tag)
        return tags

    def _find_tag(self, uow: UnitOfWorkPort, ref: Any) -> Tag | None:
        if isinstance(ref, str):
            try:
                found = uow.tags.get_by_id(UUID(ref))
            except ValueError:
                found = None
            return found or uow.tags.find_by_name(ref.strip())

        tag_id = _ref_value(ref, "id")
        if tag_id:
            found = uow.tags.get_by_id(_parse_uuid(tag_id, "tags"))  # type: ignore[arg-type]
            if found is None and not _ref_value(ref, "name"):
                raise ValidationError(f"Unknown tag {tag_id}", field="tags")
            if found is not None:
                return found
        slug = _ref_value(ref, "slug")
        if slug:
            found = uow.tags.get_by_slug(slug)
            if found is not None:
                return found
        name = _ref_value(ref, "name")
        return uow.tags.find_by_name(name.strip()) if isinstance(name, str) else None

    def _create_tag(self, uow: UnitOfWorkPort, ref: Any) -> Tag:
        name = ref if isinstance(ref, str) else _ref_value(ref, "name")
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("Tag name is required", field="tags")
        name = name.strip()
        internal = name.startswith("#")
        candidate = _ref_value(ref, "slug") or (f"hash-{name[1:]}" if internal else name)

        generator = SlugGenerator(
            exists=uow.tags.slug_exists,
            max_length=self._settings.slug_max_length,
            max_attempts=self._settings.slug_max_attempts,
        )
        tag = Tag(
            name=name,
            slug=generator.generate(candidate, fallback="tag"),
            visibility="internal" if internal else "public",
        )
        uow.tags.insert(tag)
        logger.debug("Created tag %s (%s)", tag.slug, tag.visibility)
        return tag

    def _resolve_authors(
        self, uow: UnitOfWorkPort, refs: Any, actor: Actor | None
    ) -> list[Author]:
        if not refs:
            if actor is None:
                return []
            own = uow.authors.get_by_id(actor.id)
            return [own] if own else []
        if not isinstance(refs, (list, tuple)):
            raise ValidationError("authors must be a list", field="authors")

        authors: list[Author] = []
        seen: set[UUID] = set()
        for ref in refs:
            raw = ref if isinstance(ref, (str, UUID)) else _ref_value(ref, "id")
            author_id = _parse_uuid(raw, "authors")
            if author_id is None:
                raise ValidationError("Author id is required", field="authors")
            author = uow.authors.get_by_id(author_id)
            if author is None:
                raise ValidationError(f"Unknown author {author_id}", field="authors")
            if author_id not in seen:
                seen.add(author_id)
                authors.append(author)
        return authors

    # --- Slugs ---

    def _slug_generator(self, uow: UnitOfWorkPort) -> SlugGenerator:
        return SlugGenerator(
            exists=uow.content.slug_exists,
            max_length=self._settings.slug_max_length,
            max_attempts=self._settings.slug_max_attempts,
            reserved=self._settings.reserved_slugs,
        )

    def _write_with_slug(
        self,
        uow: UnitOfWorkPort,
        item: ContentItem,
        resolve: Callable[[set[str]], str],
        write: Callable[[ContentItem], None],
    ) -> ContentItem:
        """
        Resolve a slug and write the item, retrying when a concurrent writer
        claimed the slug between the check and the write.
        """
        taken: set[str] = set()
        for attempt in range(self._settings.slug_max_attempts):
            candidate = item.model_copy(update={"slug": resolve(taken)})
            try:
                with uow.savepoint(f"slug_{attempt}"):
                    write(candidate)
                return candidate
            except ConflictError as e:
                if e.field != "slug":
                    raise
                logger.info("Slug '%s' taken concurrently, retrying", candidate.slug)
                taken.add(candidate.slug)

        raise ConflictError(
            f"Could not claim a unique slug after {self._settings.slug_max_attempts} attempts",
            field="slug",
        )

    def _reload(self, uow: UnitOfWorkPort, item_id: UUID) -> ContentItem:
        stored = uow.content.get_by_id(item_id)
        if stored is None:
            raise NotFoundError(f"Content item {item_id} vanished during write")
        return stored
