"""
Action log sink.

Persists one ActionRecord per lifecycle event that carries an actor, giving
an audit trail of who added, edited, published or deleted each item.
Runs after commit, on its own connection.
"""

from __future__ import annotations

import logging

from quire.core.ports.db import ActionLogRepoPort
from quire.core.services.events import EventBatch
from quire.domain.entities import ActionRecord

logger = logging.getLogger(__name__)


class ActionLogSink:
    def __init__(self, repo: ActionLogRepoPort) -> None:
        self._repo = repo

    def deliver(self, batch: EventBatch) -> None:
        for event in batch.events:
            if event.actor_id is None or event.actor_type is None:
                continue
            self._repo.append(
                ActionRecord(
                    event=event.name,
                    resource_id=event.resource_id,
                    resource_type=event.resource_type,
                    actor_id=event.actor_id,
                    actor_type=event.actor_type,
                )
            )
        logger.debug("Logged actions for %s (%d events)", batch.item_id, len(batch.events))
