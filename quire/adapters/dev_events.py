"""
Dev Event Sink.

Logs lifecycle event batches instead of forwarding them anywhere.
Used for local development and testing.

Key behaviors:
- Logs each event with its per-item sequence
- Stores delivered batches in memory for test assertions
- Thread-safe, since delivery may run on an executor
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from uuid import UUID

from quire.core.services.events import EventBatch, LifecycleEvent, RelationHook

logger = logging.getLogger(__name__)


@dataclass
class DevEventSink:
    """Dev sink that logs and records every delivered batch."""

    log_events: bool = True
    batches: list[EventBatch] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def deliver(self, batch: EventBatch) -> None:
        with self._lock:
            self.batches.append(batch)

        if self.log_events:
            for event in batch.events:
                logger.info(
                    "[DEV EVENT] %s #%d resource=%s actor=%s",
                    event.qualified_name,
                    event.sequence,
                    event.resource_id,
                    event.actor_id,
                )
            for hook in batch.hooks:
                logger.info(
                    "[DEV EVENT] %s.%s resource=%s ids=%d",
                    hook.relation,
                    hook.action,
                    hook.resource_id,
                    len(hook.ids),
                )

    @property
    def events(self) -> list[LifecycleEvent]:
        with self._lock:
            return [e for b in self.batches for e in b.events]

    @property
    def hooks(self) -> list[RelationHook]:
        with self._lock:
            return [h for b in self.batches for h in b.hooks]

    def names_for(self, item_id: UUID) -> list[str]:
        return [e.name for e in self.events if e.resource_id == item_id]

    def clear(self) -> None:
        with self._lock:
            self.batches.clear()
