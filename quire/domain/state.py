"""
Publication state machine.

States: draft, scheduled, published.

- * → scheduled: requires a parseable published_at at least `min_lead`
  ahead of now when published_at changed (skipped when importing or internal)
- published → scheduled: always rejected
- * → published: published_at defaults to now; published_by follows the actor
- * → draft: send_email_when_published re-evaluated against sent emails
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from quire.core.errors import ValidationError
from quire.domain.entities import ALL_STATUSES, ContentItem, ContentStatus, ensure_utc

_DATETIME = TypeAdapter(datetime)

FORBIDDEN_TRANSITIONS: frozenset[tuple[ContentStatus, ContentStatus]] = frozenset(
    {("published", "scheduled")}
)


def parse_published_at(value: Any) -> datetime | None:
    """Accept a datetime or an ISO-8601 string; None stays None."""
    if value is None or value == "":
        return None
    try:
        return ensure_utc(_DATETIME.validate_python(value))
    except PydanticValidationError as e:
        raise ValidationError(
            f"Invalid published_at value: {value!r}", field="published_at"
        ) from e


@dataclass(frozen=True)
class TransitionRequest:
    """Status-relevant slice of an add/edit request."""

    previous: ContentItem | None
    status: ContentStatus
    published_at: datetime | None
    published_by: UUID | None
    send_email_when_published: bool


@dataclass(frozen=True)
class TransitionResult:
    status: ContentStatus
    published_at: datetime | None
    published_by: UUID | None
    send_email_when_published: bool


class PublicationStateMachine:
    """Validates and applies status transitions with temporal constraints."""

    def __init__(self, min_lead: timedelta) -> None:
        self._min_lead = min_lead

    def apply(
        self,
        request: TransitionRequest,
        *,
        now: datetime,
        actor_id: UUID | None,
        importing: bool = False,
        internal: bool = False,
        send_email_option: bool = False,
        email_exists: Callable[[], bool] | None = None,
    ) -> TransitionResult:
        """
        Validate the requested transition and return the resolved fields.

        Raises ValidationError on any violated precondition; nothing is
        applied in that case.
        """
        previous = request.previous
        old_status = previous.status if previous else None
        new_status = request.status

        if new_status not in ALL_STATUSES:
            raise ValidationError(f"Unknown status '{new_status}'", field="status")

        status_changing = old_status != new_status

        if old_status is not None and (old_status, new_status) in FORBIDDEN_TRANSITIONS:
            raise ValidationError(
                f"Cannot transition from '{old_status}' to '{new_status}'; "
                "unpublish to draft first",
                field="status",
            )

        published_at = request.published_at
        published_by = request.published_by
        send_email = request.send_email_when_published
        previous_published_at = previous.published_at if previous else None

        if new_status == "scheduled":
            if published_at is None:
                raise ValidationError(
                    "published_at is required for scheduling", field="published_at"
                )
            published_at_changing = published_at != previous_published_at
            if published_at_changing and not (importing or internal):
                threshold = now + self._min_lead
                if published_at < threshold:
                    minutes = int(self._min_lead.total_seconds() // 60)
                    raise ValidationError(
                        f"published_at must be at least {minutes} minutes in the future",
                        field="published_at",
                    )

        if new_status == "published":
            if published_at is None:
                published_at = now
            if status_changing and not (importing and published_by is not None):
                published_by = actor_id

        # published_by is only writable while importing
        if not importing and not (new_status == "published" and status_changing):
            published_by = previous.published_by if previous else None

        if status_changing and send_email_option and new_status in ("published", "scheduled"):
            send_email = True

        if status_changing and new_status == "draft" and previous is not None:
            send_email = bool(email_exists()) if email_exists else False

        return TransitionResult(
            status=new_status,
            published_at=published_at,
            published_by=published_by,
            send_email_when_published=send_email,
        )
