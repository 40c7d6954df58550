"""
Content component input/output models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from quire.core.services.lifecycle import LifecycleOptions
from quire.domain.entities import ContentItem, Revision

# --- Validation Error ---


@dataclass(frozen=True)
class ContentValidationError:
    """Error surfaced by a content operation."""

    code: str
    message: str
    field: str | None = None


# --- Input Models ---


@dataclass(frozen=True)
class AddContentInput:
    """Input for creating a post or page."""

    data: dict[str, Any]
    options: LifecycleOptions = field(default_factory=LifecycleOptions)


@dataclass(frozen=True)
class EditContentInput:
    """Input for editing an existing item."""

    content_id: UUID
    data: dict[str, Any]
    options: LifecycleOptions = field(default_factory=LifecycleOptions)


@dataclass(frozen=True)
class DestroyContentInput:
    content_id: UUID
    options: LifecycleOptions = field(default_factory=LifecycleOptions)


@dataclass(frozen=True)
class GetContentInput:
    content_id: UUID
    status: str = "all"
    formats: tuple[str, ...] = ("html",)


@dataclass(frozen=True)
class ListRevisionsInput:
    content_id: UUID


# --- Output Models ---


@dataclass(frozen=True)
class ContentOperationOutput:
    """Output for add, edit and destroy."""

    content: ContentItem | None = None
    errors: list[ContentValidationError] = field(default_factory=list)
    success: bool = True


@dataclass(frozen=True)
class ContentOutput:
    """Output containing a single item and its public representation."""

    content: ContentItem | None
    data: dict[str, Any] | None = None
    errors: list[ContentValidationError] = field(default_factory=list)
    success: bool = True


@dataclass(frozen=True)
class RevisionListOutput:
    revisions: list[Revision] = field(default_factory=list)
    errors: list[ContentValidationError] = field(default_factory=list)
    success: bool = True
