from typing import Literal

from pydantic import BaseModel, Field


class ProjectRules(BaseModel):
    slug: str
    rules_version: str

class SchedulingRules(BaseModel):
    min_lead_minutes: int = Field(default=2, ge=0)

class RevisionRules(BaseModel):
    # Seeding writes two entries at once, so the bound must hold at least two.
    max_count: int = Field(default=10, ge=2)

class SlugRules(BaseModel):
    max_length: int = Field(default=185, ge=8)
    max_attempts: int = Field(default=50, ge=1)
    reserved: list[str] = Field(default_factory=list)

class RbacRules(BaseModel):
    privileged_roles: list[str]
    contributor_role: str = "Contributor"

class ContentRules(BaseModel):
    default_visibility: Literal["public", "members", "paid"] = "public"
    untitled_title: str = "(Untitled)"

class UrlRules(BaseModel):
    site_url: str

class EventRules(BaseModel):
    emit_without_actor: bool = False

class Rules(BaseModel):
    project: ProjectRules
    scheduling: SchedulingRules = Field(default_factory=SchedulingRules)
    revisions: RevisionRules = Field(default_factory=RevisionRules)
    slugs: SlugRules = Field(default_factory=SlugRules)
    rbac: RbacRules
    content: ContentRules = Field(default_factory=ContentRules)
    urls: UrlRules
    events: EventRules = Field(default_factory=EventRules)
