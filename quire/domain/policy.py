"""
Permission gate for add / edit / destroy.

Role sets come from rules.yaml; internal and actor-less contexts bypass
every check.
"""

from collections.abc import Mapping
from typing import Any, Literal

from quire.core.errors import AuthorizationError
from quire.domain.actors import ActorContext
from quire.domain.entities import ContentItem
from quire.rules.models import Rules

Action = Literal["add", "edit", "destroy"]


class PolicyEngine:
    def __init__(self, rules: Rules):
        self.rules = rules

    def check_permission(
        self,
        context: ActorContext,
        action: Action,
        unsafe_attrs: Mapping[str, Any],
        item: ContentItem | None = None,
    ) -> bool:
        """
        Check whether the actor may perform the action.

        Order of precedence:
        1. Internal / actor-less contexts (always allowed)
        2. Contributor rules (status, draft-only, authorship, tags)
        3. Visibility restriction for non-privileged actors
        """
        if context.internal or context.actor_id is None:
            return True

        rbac = self.rules.rbac
        is_contributor = context.has_role(rbac.contributor_role)
        is_privileged = context.has_role(*rbac.privileged_roles)

        if is_contributor:
            if not self._contributor_allowed(context, action, unsafe_attrs, item):
                return False
            # Contributors cannot touch the tag relation
            if self._tags_changing(unsafe_attrs, item):
                return False

        if not is_privileged and self._is_changing("visibility", unsafe_attrs, item):
            return False

        return True

    def ensure_permission(
        self,
        context: ActorContext,
        action: Action,
        unsafe_attrs: Mapping[str, Any],
        item: ContentItem | None = None,
    ) -> None:
        if not self.check_permission(context, action, unsafe_attrs, item):
            raise AuthorizationError(
                f"Not enough permission to {action} this content item"
            )

    def _contributor_allowed(
        self,
        context: ActorContext,
        action: Action,
        unsafe_attrs: Mapping[str, Any],
        item: ContentItem | None,
    ) -> bool:
        is_draft = item is not None and item.status == "draft"

        if action == "edit":
            return (
                not self._is_changing("status", unsafe_attrs, item)
                and is_draft
                and self._is_author(context, item)
            )
        if action == "add":
            status = unsafe_attrs.get("status")
            if status and status != "draft":
                return False
            requested = _author_ids(unsafe_attrs.get("authors"))
            return not requested or requested <= {str(context.actor_id)}
        if action == "destroy":
            return is_draft and self._is_author(context, item)
        return False

    def _is_changing(
        self, attr: str, unsafe_attrs: Mapping[str, Any], item: ContentItem | None
    ) -> bool:
        value = unsafe_attrs.get(attr)
        if not value:
            return False
        if item is None:
            current = (
                self.rules.content.default_visibility if attr == "visibility" else "draft"
            )
        else:
            current = getattr(item, attr)
        return value != current

    def _tags_changing(
        self, unsafe_attrs: Mapping[str, Any], item: ContentItem | None
    ) -> bool:
        if "tags" not in unsafe_attrs or unsafe_attrs["tags"] is None:
            return False
        requested = unsafe_attrs["tags"]
        if item is None:
            return bool(requested)
        current = set()
        for tag in item.tags:
            current.update({str(tag.id), tag.slug.lower(), tag.name.lower()})
        if len(requested) != len(item.tags):
            return True
        return any(_tag_key(ref) not in current for ref in requested)

    def _is_author(self, context: ActorContext, item: ContentItem | None) -> bool:
        if item is None:
            return False
        return any(a.id == context.actor_id for a in item.authors)


def _tag_key(ref: Any) -> str:
    if isinstance(ref, Mapping):
        for key in ("id", "slug", "name"):
            if ref.get(key):
                return str(ref[key]).lower()
        return ""
    return str(ref).lower()


def _author_ids(refs: Any) -> set[str]:
    if not refs:
        return set()
    ids = set()
    for ref in refs:
        if isinstance(ref, Mapping):
            ids.add(str(ref.get("id")))
        else:
            ids.add(str(ref))
    return ids
