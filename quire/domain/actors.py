"""Acting identities: the caller-supplied context and the resolved actor."""

from dataclasses import dataclass, field
from uuid import UUID

from quire.domain.entities import ActorType


@dataclass(frozen=True)
class Actor:
    """Resolved acting identity attached to lifecycle events."""

    id: UUID
    type: ActorType = "user"


@dataclass(frozen=True)
class ActorContext:
    """Context for the actor performing an operation."""

    actor_id: UUID | None = None
    actor_type: ActorType = "user"
    roles: tuple[str, ...] = field(default_factory=tuple)
    actor_name: str | None = None
    internal: bool = False

    def has_role(self, *names: str) -> bool:
        return any(name in self.roles for name in names)


INTERNAL_CONTEXT = ActorContext(internal=True, actor_name="system")
