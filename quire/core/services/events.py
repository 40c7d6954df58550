"""
Lifecycle event derivation.

`derive_events` is a pure function of an immutable `ChangeDiff` (the item
before and after one mutation) and the acting identity. It returns an
`EventBatch`: the ordered item-level events plus the relation hooks (tag and
author deltas) that downstream consumers re-evaluate after commit.

Precedence for updates:
1. type changing: old-type unpublished/unscheduled, deleted, added,
   new-type published/scheduled (no `edited`)
2. status changing: unpublished / published / scheduled, then unscheduled
   when leaving scheduled for draft
3. status unchanged: published.edited when published, rescheduled when a
   scheduled item's published_at moved
4. edited, always last outside the type-change path
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Literal
from uuid import UUID

from quire.domain.actors import Actor
from quire.domain.entities import ActorType, ContentItem, ContentType

ChangeMethod = Literal["insert", "update", "destroy"]
RelationName = Literal["tag", "author"]
HookAction = Literal["attached", "detached", "refreshed"]


@dataclass(frozen=True)
class LifecycleEvent:
    name: str
    resource_id: UUID
    resource_type: ContentType
    actor_id: UUID | None = None
    actor_type: ActorType | None = None
    type_changing: bool = False
    sequence: int = 0

    @property
    def qualified_name(self) -> str:
        """e.g. `page.published`, `post.published.edited`."""
        return f"{self.resource_type}.{self.name}"


@dataclass(frozen=True)
class RelationHook:
    """A tag/author delta to re-evaluate once the mutation is committed."""

    relation: RelationName
    action: HookAction
    resource_id: UUID
    ids: tuple[UUID, ...]


@dataclass(frozen=True)
class EventBatch:
    item_id: UUID
    events: tuple[LifecycleEvent, ...] = ()
    hooks: tuple[RelationHook, ...] = ()

    @property
    def names(self) -> list[str]:
        return [e.name for e in self.events]

    def with_sequences(self, start: int) -> EventBatch:
        """Stamp consecutive per-item sequence numbers starting at `start`."""
        stamped = tuple(
            replace(event, sequence=start + offset)
            for offset, event in enumerate(self.events)
        )
        return replace(self, events=stamped)


@dataclass(frozen=True)
class ChangeDiff:
    """Immutable before/after snapshot pair for one mutation."""

    previous: ContentItem | None
    current: ContentItem | None
    method: ChangeMethod = field(default="update")

    def __post_init__(self) -> None:
        if self.method == "insert" and self.current is None:
            raise ValueError("insert diff requires the current item")
        if self.method == "destroy" and self.previous is None:
            raise ValueError("destroy diff requires the previous item")
        if self.method == "update" and (self.previous is None or self.current is None):
            raise ValueError("update diff requires both snapshots")

    @property
    def item_id(self) -> UUID:
        item = self.current or self.previous
        assert item is not None
        return item.id

    @property
    def old_status(self) -> str | None:
        return self.previous.status if self.previous else None

    @property
    def new_status(self) -> str | None:
        return self.current.status if self.current else None

    @property
    def status_changing(self) -> bool:
        return self.old_status != self.new_status

    @property
    def type_changing(self) -> bool:
        return (
            self.previous is not None
            and self.current is not None
            and self.previous.type != self.current.type
        )

    @property
    def was_published(self) -> bool:
        return self.old_status == "published"

    @property
    def was_scheduled(self) -> bool:
        return self.old_status == "scheduled"

    @property
    def is_published(self) -> bool:
        return self.new_status == "published"

    @property
    def is_scheduled(self) -> bool:
        return self.new_status == "scheduled"

    @property
    def published_at_changing(self) -> bool:
        old = self.previous.published_at if self.previous else None
        new = self.current.published_at if self.current else None
        return old != new

    @property
    def needs_reschedule(self) -> bool:
        return self.published_at_changing and self.is_scheduled

    def tag_delta(self) -> tuple[list[UUID], list[UUID]]:
        return _delta(
            self.previous.tag_ids() if self.previous else [],
            self.current.tag_ids() if self.current else [],
        )

    def author_delta(self) -> tuple[list[UUID], list[UUID]]:
        return _delta(
            self.previous.author_ids() if self.previous else [],
            self.current.author_ids() if self.current else [],
        )


def _delta(old: list[UUID], new: list[UUID]) -> tuple[list[UUID], list[UUID]]:
    old_set, new_set = set(old), set(new)
    added = [i for i in new if i not in old_set]
    removed = [i for i in old if i not in new_set]
    return added, removed


def derive_events(diff: ChangeDiff, actor: Actor | None = None) -> EventBatch:
    """Compute the ordered events and relation hooks for one mutation."""
    actor_id = actor.id if actor else None
    actor_type = actor.type if actor else None
    item_id = diff.item_id
    events: list[LifecycleEvent] = []

    def emit(name: str, resource_type: ContentType, type_changing: bool = False) -> None:
        events.append(
            LifecycleEvent(
                name=name,
                resource_id=item_id,
                resource_type=resource_type,
                actor_id=actor_id,
                actor_type=actor_type,
                type_changing=type_changing,
            )
        )

    if diff.method == "insert":
        assert diff.current is not None
        new_type = diff.current.type
        emit("added", new_type)
        if diff.is_published:
            emit("published", new_type)
        elif diff.is_scheduled:
            emit("scheduled", new_type)

    elif diff.method == "destroy":
        assert diff.previous is not None
        old_type = diff.previous.type
        if diff.was_published:
            emit("unpublished", old_type)
        emit("deleted", old_type)

    else:
        assert diff.previous is not None and diff.current is not None
        old_type = diff.previous.type
        new_type = diff.current.type

        if diff.type_changing:
            if diff.was_published:
                emit("unpublished", old_type)
            if diff.was_scheduled:
                emit("unscheduled", old_type)
            emit("deleted", old_type, type_changing=True)
            emit("added", new_type, type_changing=True)
            if diff.is_published:
                emit("published", new_type)
            if diff.is_scheduled:
                emit("scheduled", new_type)
        else:
            if diff.status_changing:
                if diff.was_published:
                    emit("unpublished", new_type)
                if diff.is_published:
                    emit("published", new_type)
                if diff.is_scheduled:
                    emit("scheduled", new_type)
                if diff.was_scheduled and not diff.is_scheduled and not diff.is_published:
                    emit("unscheduled", new_type)
            else:
                if diff.is_published:
                    emit("published.edited", new_type)
                if diff.needs_reschedule:
                    emit("rescheduled", new_type)
            emit("edited", new_type)

    return EventBatch(item_id=item_id, events=tuple(events), hooks=derive_hooks(diff))


def derive_hooks(diff: ChangeDiff) -> tuple[RelationHook, ...]:
    """Relation deltas plus a refresh of every attached relation on publish changes."""
    item_id = diff.item_id
    hooks: list[RelationHook] = []

    for relation, (added, removed) in (
        ("tag", diff.tag_delta()),
        ("author", diff.author_delta()),
    ):
        if added:
            hooks.append(RelationHook(relation, "attached", item_id, tuple(added)))
        if removed:
            hooks.append(RelationHook(relation, "detached", item_id, tuple(removed)))

    if diff.method == "update" and diff.status_changing and (
        diff.is_published or diff.was_published
    ):
        assert diff.current is not None
        if diff.current.tags:
            hooks.append(RelationHook("tag", "refreshed", item_id, tuple(diff.current.tag_ids())))
        if diff.current.authors:
            hooks.append(
                RelationHook("author", "refreshed", item_id, tuple(diff.current.author_ids()))
            )

    return tuple(hooks)
