"""
Revision history.

Bounded FIFO log of body snapshots per item. Ordering uses `created_at_seq`,
a logical sequence seeded from the millisecond clock and always bumped past
the largest stored value, so two snapshots taken in the same millisecond still
order deterministically.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from quire.core.ports.db import RevisionRepoPort
from quire.domain.entities import Revision

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RevisionPlan:
    """Rows to write and rows to evict for one body change."""

    add: tuple[Revision, ...]
    evict: tuple[UUID, ...]


def _to_millis(now: datetime) -> int:
    return int(now.timestamp() * 1000)


def plan_revisions(
    item_id: UUID,
    *,
    previous_body: dict[str, Any],
    new_body: dict[str, Any],
    existing: list[Revision],
    max_count: int,
    now: datetime,
    max_sequence: int,
) -> RevisionPlan:
    """
    Compute the revision log change for an edited body.

    `existing` must be newest-first. With no stored history both the prior
    and the new body are recorded; otherwise the newest `max_count - 1`
    entries are kept and the new body is appended.
    """
    if not existing:
        new_seq = max(_to_millis(now), max_sequence + 2)
        return RevisionPlan(
            add=(
                Revision(item_id=item_id, body_snapshot=previous_body, created_at_seq=new_seq - 1),
                Revision(item_id=item_id, body_snapshot=new_body, created_at_seq=new_seq),
            ),
            evict=(),
        )

    ordered = sorted(existing, key=lambda r: r.created_at_seq, reverse=True)
    kept = ordered[: max_count - 1]
    evicted = tuple(r.id for r in ordered[max_count - 1 :])
    new_seq = max(_to_millis(now), max_sequence + 1, kept[0].created_at_seq + 1)

    return RevisionPlan(
        add=(Revision(item_id=item_id, body_snapshot=new_body, created_at_seq=new_seq),),
        evict=evicted,
    )


class RevisionHistory:
    """Applies revision plans through the revision repository."""

    def __init__(self, repo: RevisionRepoPort, max_count: int = 10) -> None:
        self._repo = repo
        self._max_count = max_count

    def record(
        self,
        item_id: UUID,
        previous_body: dict[str, Any],
        new_body: dict[str, Any],
        now: datetime,
    ) -> RevisionPlan:
        plan = plan_revisions(
            item_id,
            previous_body=previous_body,
            new_body=new_body,
            existing=self._repo.list_for_item(item_id),
            max_count=self._max_count,
            now=now,
            max_sequence=self._repo.max_sequence(),
        )
        if plan.evict:
            self._repo.delete_many(plan.evict)
        for revision in plan.add:
            self._repo.add(revision)
        logger.debug(
            "Recorded %d revision(s) for %s, evicted %d",
            len(plan.add),
            item_id,
            len(plan.evict),
        )
        return plan

    def list_oldest_first(self, item_id: UUID) -> list[Revision]:
        return list(reversed(self._repo.list_for_item(item_id)))
