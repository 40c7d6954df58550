"""Actor resolver adapter."""

from quire.domain.actors import Actor, ActorContext


class ContextActorResolver:
    """
    Resolves the acting identity straight from the operation's ActorContext.

    Internal contexts and contexts without an actor id resolve to None, which
    marks the mutation as actor-less.
    """

    def resolve(self, context: ActorContext | None) -> Actor | None:
        if context is None or context.internal or context.actor_id is None:
            return None
        return Actor(id=context.actor_id, type=context.actor_type)
