"""
Post-commit event dispatch.

Hands committed event batches to the sink in emission order. Batches for the
same item are serialized: one drainer per item id delivers its queue in FIFO
order, so events from two mutations of one item never interleave. Batches
arrive already stamped with their per-item sequences (reserved in the
mutation's transaction), so the dispatcher holds no state once a queue drains.

With an executor, delivery is fire-and-forget relative to the caller; without
one it happens inline on the committing thread.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from collections.abc import Iterable
from concurrent.futures import Executor
from uuid import UUID

from quire.core.ports.events import EventSinkPort
from quire.core.services.events import EventBatch

logger = logging.getLogger(__name__)


class EventDispatcher:
    def __init__(self, sink: EventSinkPort, executor: Executor | None = None) -> None:
        self._sink = sink
        self._executor = executor
        self._lock = threading.Lock()
        self._queues: dict[UUID, deque[EventBatch]] = {}
        self._draining: set[UUID] = set()

    def dispatch(self, batch: EventBatch) -> None:
        if not batch.events and not batch.hooks:
            return

        item_id = batch.item_id
        with self._lock:
            self._queues.setdefault(item_id, deque()).append(batch)
            if item_id in self._draining:
                return
            self._draining.add(item_id)

        if self._executor is not None:
            self._executor.submit(self._drain, item_id)
        else:
            self._drain(item_id)

    def pending_items(self) -> set[UUID]:
        """Item ids with batches queued or being delivered."""
        with self._lock:
            return set(self._draining)

    def _drain(self, item_id: UUID) -> None:
        while True:
            with self._lock:
                queue = self._queues.get(item_id)
                if not queue:
                    self._queues.pop(item_id, None)
                    self._draining.discard(item_id)
                    return
                batch = queue.popleft()

            try:
                self._sink.deliver(batch)
            except Exception:
                logger.exception(
                    "Event sink failed for item %s (events=%s)", item_id, batch.names
                )


class FanOutEventSink:
    """Delivers each batch to several sinks in order."""

    def __init__(self, sinks: Iterable[EventSinkPort]) -> None:
        self._sinks = list(sinks)

    def deliver(self, batch: EventBatch) -> None:
        for sink in self._sinks:
            try:
                sink.deliver(batch)
            except Exception:
                logger.exception("Sink %r failed for item %s", sink, batch.item_id)
