"""Domain entities for content items and their relations."""

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Literal
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

# --- Enums / Literals ---
ContentType = Literal["post", "page"]
ContentStatus = Literal["draft", "scheduled", "published"]
ContentVisibility = Literal["public", "members", "paid"]
TagVisibility = Literal["public", "internal"]
ActorType = Literal["user", "integration"]

ALL_STATUSES: tuple[ContentStatus, ...] = ("published", "draft", "scheduled")
ALLOWED_FORMATS: tuple[str, ...] = ("body", "html", "plaintext")


def utc_now() -> datetime:
    return datetime.now(UTC)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Treat naive datetimes as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def blank_document() -> dict[str, Any]:
    return {"type": "doc", "content": []}


# --- Content variants ---


@dataclass(frozen=True)
class ContentVariant:
    """Per-type defaults shared by the lifecycle logic."""

    type: ContentType
    slug_fallback: str
    listed_by_default: bool


TYPE_DEFAULTS: dict[ContentType, ContentVariant] = {
    "post": ContentVariant(type="post", slug_fallback="post", listed_by_default=True),
    "page": ContentVariant(type="page", slug_fallback="page", listed_by_default=False),
}

# --- Relations ---

class Tag(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    name: str
    slug: str
    visibility: TagVisibility = "public"
    created_at: datetime = Field(default_factory=utc_now)


class Author(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    name: str
    slug: str
    roles: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)


META_FIELDS: tuple[str, ...] = (
    "og_image",
    "og_title",
    "og_description",
    "twitter_image",
    "twitter_title",
    "twitter_description",
    "meta_title",
    "meta_description",
)


class PostsMeta(BaseModel):
    og_image: str | None = None
    og_title: str | None = None
    og_description: str | None = None
    twitter_image: str | None = None
    twitter_title: str | None = None
    twitter_description: str | None = None
    meta_title: str | None = None
    meta_description: str | None = None

    def has_data(self) -> bool:
        return any(getattr(self, name) for name in META_FIELDS)

# --- Content ---

class ContentItem(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    uuid: UUID = Field(default_factory=uuid4)
    type: ContentType = "post"
    status: ContentStatus = "draft"

    title: str = ""
    slug: str = ""
    body: dict[str, Any] = Field(default_factory=blank_document)
    html: str | None = None
    plaintext: str | None = None

    custom_excerpt: str | None = None
    feature_image: str | None = None
    canonical_url: str | None = None
    codeinjection_head: str | None = None
    codeinjection_foot: str | None = None

    featured: bool = False
    visibility: ContentVisibility = "public"
    send_email_when_published: bool = False
    comment_id: str | None = None

    published_at: datetime | None = None
    published_by: UUID | None = None
    created_at: datetime = Field(default_factory=utc_now)
    created_by: UUID | None = None
    updated_at: datetime = Field(default_factory=utc_now)
    updated_by: UUID | None = None

    tags: list[Tag] = Field(default_factory=list)
    authors: list[Author] = Field(default_factory=list)
    meta: PostsMeta | None = None

    @field_validator("published_at", "created_at", "updated_at")
    @classmethod
    def _as_utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value)

    @property
    def variant(self) -> ContentVariant:
        return TYPE_DEFAULTS[self.type]

    def tag_ids(self) -> list[UUID]:
        return [t.id for t in self.tags]

    def author_ids(self) -> list[UUID]:
        return [a.id for a in self.authors]

# --- History / Audit ---

class Revision(BaseModel):
    """Immutable body snapshot. Ordered by created_at_seq, never by wall clock."""

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    item_id: UUID
    body_snapshot: dict[str, Any]
    created_at_seq: int


class EmailRecord(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    item_id: UUID
    status: str = "pending"
    created_at: datetime = Field(default_factory=utc_now)


class ActionRecord(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    event: str
    resource_id: UUID
    resource_type: str
    actor_id: UUID
    actor_type: ActorType
    created_at: datetime = Field(default_factory=utc_now)
