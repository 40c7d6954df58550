"""
Event delivery and actor resolution ports.

The event sink receives one ordered batch per committed mutation. Delivery is
at-least-once; sinks deduplicate on (event name, resource id, sequence).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

from quire.domain.actors import Actor, ActorContext

if TYPE_CHECKING:
    from quire.core.services.events import EventBatch


class EventSinkPort(Protocol):
    def deliver(self, batch: EventBatch) -> None:
        """Accept an ordered batch of lifecycle events and relation hooks."""
        ...


class ActorResolverPort(Protocol):
    def resolve(self, context: ActorContext | None) -> Actor | None:
        """Return the acting identity, or None for system-internal operations."""
        ...
