"""
Content component port definitions.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Protocol
from uuid import UUID

from quire.core.services.lifecycle import LifecycleOptions
from quire.domain.entities import ContentItem, Revision


class ContentLifecyclePort(Protocol):
    """The lifecycle engine operations the component delegates to."""

    def add(
        self, data: Mapping[str, Any], options: LifecycleOptions | None = None
    ) -> ContentItem:
        ...

    def edit(
        self,
        item_id: UUID,
        data: Mapping[str, Any],
        options: LifecycleOptions | None = None,
    ) -> ContentItem:
        ...

    def destroy(self, item_id: UUID, options: LifecycleOptions | None = None) -> None:
        ...

    def get(self, item_id: UUID, status: str | Sequence[str] = "all") -> ContentItem | None:
        ...

    def list_revisions(self, item_id: UUID) -> list[Revision]:
        ...

    def serialize(
        self, item: ContentItem, formats: Sequence[str] = ("html",)
    ) -> dict[str, Any]:
        ...
