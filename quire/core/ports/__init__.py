# quire: Ports (Protocol Interfaces)
# Abstract interfaces for adapters; no implementations here

from quire.core.ports.db import (
    ActionLogRepoPort,
    AuthorRepoPort,
    ContentRepoPort,
    EmailRepoPort,
    EventSequenceRepoPort,
    RevisionRepoPort,
    TagRepoPort,
    UnitOfWorkFactory,
    UnitOfWorkPort,
)
from quire.core.ports.events import ActorResolverPort, EventSinkPort
from quire.core.ports.renderer import (
    DocumentRenderError,
    DocumentRendererPort,
    RenderedDocument,
)
from quire.core.ports.time import TimePort

__all__ = [
    # Storage
    "ActionLogRepoPort",
    "AuthorRepoPort",
    "ContentRepoPort",
    "EmailRepoPort",
    "EventSequenceRepoPort",
    "RevisionRepoPort",
    "TagRepoPort",
    "UnitOfWorkFactory",
    "UnitOfWorkPort",
    # Events
    "ActorResolverPort",
    "EventSinkPort",
    # Rendering
    "DocumentRenderError",
    "DocumentRendererPort",
    "RenderedDocument",
    # Time
    "TimePort",
]
