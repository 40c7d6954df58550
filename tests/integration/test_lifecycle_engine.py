"""
End-to-end lifecycle tests against a real SQLite database.

The engine fixture dispatches inline, so events are visible on the dev sink
as soon as the mutating call returns.
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from uuid import uuid4

import pytest

from quire.adapters.actors import ContextActorResolver
from quire.adapters.dev_events import DevEventSink
from quire.adapters.render.document_renderer import DocumentRenderer
from quire.adapters.sqlite_db import (
    SQLiteActionLogRepo,
    SQLiteContentRepo,
    SQLiteEmailRepo,
    SQLiteUnitOfWork,
)
from quire.app_shell.config import create_lifecycle_engine
from quire.core.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from quire.core.services.dispatch import EventDispatcher
from quire.core.services.lifecycle import (
    ContentLifecycleEngine,
    LifecycleOptions,
    LifecycleSettings,
)
from quire.domain.actors import INTERNAL_CONTEXT
from quire.domain.entities import EmailRecord
from quire.domain.policy import PolicyEngine

SITE = "http://localhost:2368"


def doc(*paragraphs: str) -> dict:
    return {
        "type": "doc",
        "content": [
            {"type": "paragraph", "content": [{"type": "text", "text": p}]} for p in paragraphs
        ],
    }


def iso(dt) -> str:
    return dt.isoformat()


class BlindContentRepo(SQLiteContentRepo):
    """Never sees existing slugs, so only the UNIQUE constraint catches collisions."""

    def slug_exists(self, slug, exclude_id=None):
        return False


class BlindUnitOfWork(SQLiteUnitOfWork):
    @property
    def content(self):
        if self._content is None:
            self._content = BlindContentRepo(self.db_path, self.connection)
        return self._content


# --- add ---


class TestAdd:
    def test_draft_defaults(self, engine, sink, owner, as_owner):
        author, _ = owner
        item = engine.add({"title": "Hello World", "body": doc("Hi there")}, as_owner)

        assert item.slug == "hello-world"
        assert item.status == "draft"
        assert item.html == "<p>Hi there</p>"
        assert item.plaintext == "Hi there"
        assert item.comment_id == str(item.id)
        assert item.created_by == author.id
        assert [a.id for a in item.authors] == [author.id]
        assert sink.names_for(item.id) == ["added"]

    def test_untitled(self, engine, as_owner):
        item = engine.add({}, as_owner)
        assert item.title == "(Untitled)"
        assert item.slug == "untitled"

    def test_published(self, engine, sink, clock, owner, as_owner):
        author, _ = owner
        item = engine.add({"title": "Now", "status": "published"}, as_owner)

        assert item.published_at == clock.now_utc()
        assert item.published_by == author.id
        assert [e.qualified_name for e in sink.events] == ["post.added", "post.published"]

    def test_scheduled_page(self, engine, sink, clock, as_owner):
        when = clock.now_utc() + timedelta(hours=1)
        item = engine.add(
            {"title": "Later", "type": "page", "status": "scheduled", "published_at": iso(when)},
            as_owner,
        )
        assert item.published_at == when
        assert [e.qualified_name for e in sink.events] == ["page.added", "page.scheduled"]

    def test_schedule_too_soon(self, engine, sink, clock, as_owner):
        when = clock.now_utc() + timedelta(minutes=1)
        with pytest.raises(ValidationError) as exc:
            engine.add({"title": "Soon", "status": "scheduled", "published_at": iso(when)}, as_owner)
        assert exc.value.field == "published_at"
        assert engine.list_items() == []
        assert sink.events == []

    def test_duplicate_titles_get_suffixes(self, engine, as_owner):
        slugs = [engine.add({"title": "Same"}, as_owner).slug for _ in range(3)]
        assert slugs == ["same", "same-2", "same-3"]

    def test_reserved_slug(self, engine, as_owner):
        assert engine.add({"title": "RSS"}, as_owner).slug == "rss-post"

    def test_explicit_id_must_be_new(self, engine, as_owner):
        item = engine.add({"title": "First"}, as_owner)
        with pytest.raises(ConflictError) as exc:
            engine.add({"id": str(item.id), "title": "Again"}, as_owner)
        assert exc.value.field == "id"

    def test_unknown_field(self, engine, as_owner):
        with pytest.raises(ValidationError) as exc:
            engine.add({"title": "x", "bogus": 1}, as_owner)
        assert exc.value.field == "bogus"

    def test_invalid_visibility(self, engine, as_owner):
        with pytest.raises(ValidationError) as exc:
            engine.add({"title": "x", "visibility": "secret"}, as_owner)
        assert exc.value.field == "visibility"

    @pytest.mark.parametrize("body", [{"type": "paragraph"}, "plain text", {"type": "doc", "content": 3}])
    def test_invalid_body(self, engine, as_owner, body):
        with pytest.raises(ValidationError) as exc:
            engine.add({"title": "x", "body": body}, as_owner)
        assert exc.value.field == "body"


class TestRelations:
    def test_tags_created_and_deduplicated(self, engine, as_owner):
        item = engine.add({"title": "Tagged", "tags": ["News", "news", "#internal"]}, as_owner)

        assert [(t.name, t.slug, t.visibility) for t in item.tags] == [
            ("News", "news", "public"),
            ("#internal", "hash-internal", "internal"),
        ]

    def test_existing_tags_are_reused(self, engine, as_owner):
        first = engine.add({"title": "One", "tags": ["News"]}, as_owner)
        second = engine.add({"title": "Two", "tags": ["NEWS", {"slug": "news"}]}, as_owner)
        assert second.tag_ids() == first.tag_ids()

    def test_unknown_tag_id(self, engine, as_owner):
        with pytest.raises(ValidationError) as exc:
            engine.add({"title": "x", "tags": [{"id": str(uuid4())}]}, as_owner)
        assert exc.value.field == "tags"

    def test_explicit_authors(self, engine, make_author, as_owner):
        first, _ = make_author("Ann", "Author")
        second, _ = make_author("Ben", "Author")
        item = engine.add(
            {"title": "Duo", "authors": [{"id": str(first.id)}, str(second.id)]}, as_owner
        )
        assert item.author_ids() == [first.id, second.id]

    def test_unknown_author(self, engine, as_owner):
        with pytest.raises(ValidationError) as exc:
            engine.add({"title": "x", "authors": [str(uuid4())]}, as_owner)
        assert exc.value.field == "authors"

    def test_tags_replaced_and_cleared(self, engine, sink, as_owner):
        item = engine.add({"title": "T", "tags": ["a", "b"]}, as_owner)
        item = engine.edit(item.id, {"tags": ["b", "c"]}, as_owner)
        assert [t.name for t in item.tags] == ["b", "c"]

        hooks = [(h.relation, h.action, len(h.ids)) for h in sink.batches[-1].hooks]
        assert hooks == [("tag", "attached", 1), ("tag", "detached", 1)]

        item = engine.edit(item.id, {"tags": []}, as_owner)
        assert item.tags == []

    def test_meta_fields(self, engine, as_owner):
        item = engine.add(
            {
                "title": "Meta",
                "og_image": f"{SITE}/content/images/og.png",
                "meta": {"og_title": "Open Graph"},
            },
            as_owner,
        )
        assert item.meta.og_image == "/content/images/og.png"
        assert item.meta.og_title == "Open Graph"

        item = engine.edit(item.id, {"og_title": None, "og_image": None}, as_owner)
        assert item.meta is None


# --- URLs / serialization ---


class TestSerialization:
    def test_site_urls_stored_relative_and_expanded(self, engine, as_owner):
        body = {
            "type": "doc",
            "content": [
                {
                    "type": "paragraph",
                    "content": [
                        {
                            "type": "text",
                            "text": "about",
                            "marks": [{"type": "link", "attrs": {"href": f"{SITE}/about/"}}],
                        }
                    ],
                }
            ],
        }
        item = engine.add(
            {
                "title": "Links",
                "body": body,
                "feature_image": f"{SITE}/content/images/a.png",
                "canonical_url": "https://elsewhere.org/first-seen/",
            },
            as_owner,
        )

        assert item.feature_image == "/content/images/a.png"
        assert item.canonical_url == "https://elsewhere.org/first-seen/"
        assert 'href="/about/"' in item.html

        data = engine.serialize(item, formats=("html", "body"))
        assert data["feature_image"] == f"{SITE}/content/images/a.png"
        assert f'href="{SITE}/about/"' in data["html"]
        assert data["body"]["content"][0]["content"][0]["marks"][0]["attrs"]["href"] == f"{SITE}/about/"

    def test_formats_filter(self, engine, as_owner):
        item = engine.add({"title": "F", "body": doc("x")}, as_owner)

        default = engine.serialize(item)
        assert "html" in default
        assert "body" not in default and "plaintext" not in default

        plain = engine.serialize(item, formats=("plaintext",))
        assert plain["plaintext"] == "x"
        assert "html" not in plain

        with pytest.raises(ValidationError) as exc:
            engine.serialize(item, formats=("mobiledoc",))
        assert exc.value.field == "formats"

    def test_primary_tag_and_author(self, engine, owner, as_owner):
        author, _ = owner
        public_first = engine.add({"title": "P", "tags": ["Public", "#hidden"]}, as_owner)
        internal_first = engine.add({"title": "I", "tags": ["#hidden", "Public"]}, as_owner)

        assert engine.serialize(public_first)["primary_tag"]["name"] == "Public"
        assert engine.serialize(internal_first)["primary_tag"] is None
        assert engine.serialize(public_first)["primary_author"]["id"] == str(author.id)


# --- edit ---


class TestEdit:
    def test_title_change_moves_auto_slug(self, engine, as_owner):
        item = engine.add({"title": "First Title"}, as_owner)
        item = engine.edit(item.id, {"title": "Second Title"}, as_owner)
        assert item.slug == "second-title"

    def test_custom_slug_survives_title_change(self, engine, as_owner):
        item = engine.add({"title": "First", "slug": "keep-me"}, as_owner)
        item = engine.edit(item.id, {"title": "Second"}, as_owner)
        assert item.slug == "keep-me"

    def test_published_slug_is_stable(self, engine, as_owner):
        item = engine.add({"title": "Live", "status": "published"}, as_owner)
        item = engine.edit(item.id, {"title": "Renamed"}, as_owner)
        assert item.slug == "live"

    @pytest.mark.parametrize("status", ["published", "scheduled"])
    def test_leaving_draft_while_retitling_keeps_slug(self, engine, clock, as_owner, status):
        item = engine.add({"title": "Hello"}, as_owner)
        payload = {"title": "Goodbye", "status": status}
        if status == "scheduled":
            payload["published_at"] = iso(clock.now_utc() + timedelta(hours=1))

        edited = engine.edit(item.id, payload, as_owner)

        assert edited.status == status
        assert edited.title == "Goodbye"
        assert edited.slug == "hello"

    def test_publish_then_edit_events(self, engine, sink, as_owner):
        item = engine.add({"title": "E"}, as_owner)
        engine.edit(item.id, {"status": "published"}, as_owner)
        engine.edit(item.id, {"title": "E2"}, as_owner)
        engine.edit(item.id, {"status": "draft"}, as_owner)

        assert sink.names_for(item.id) == [
            "added",
            "published",
            "edited",
            "published.edited",
            "edited",
            "unpublished",
            "edited",
        ]
        assert [e.sequence for e in sink.events] == list(range(1, 8))

    def test_reschedule(self, engine, sink, clock, as_owner):
        when = clock.now_utc() + timedelta(hours=1)
        item = engine.add({"title": "S", "status": "scheduled", "published_at": iso(when)}, as_owner)
        engine.edit(item.id, {"published_at": iso(when + timedelta(hours=1))}, as_owner)
        engine.edit(item.id, {"status": "draft"}, as_owner)

        assert sink.names_for(item.id) == [
            "added",
            "scheduled",
            "rescheduled",
            "edited",
            "unscheduled",
            "edited",
        ]

    def test_published_to_scheduled_rejected(self, engine, clock, as_owner):
        item = engine.add({"title": "P", "status": "published"}, as_owner)
        later = clock.now_utc() + timedelta(days=1)
        with pytest.raises(ValidationError) as exc:
            engine.edit(item.id, {"status": "scheduled", "published_at": iso(later)}, as_owner)
        assert exc.value.field == "status"
        assert engine.get(item.id).status == "published"

    def test_type_change_events(self, engine, sink, as_owner):
        item = engine.add({"title": "Shift", "status": "published"}, as_owner)
        sink.clear()

        item = engine.edit(item.id, {"type": "page"}, as_owner)

        assert item.type == "page"
        assert [e.qualified_name for e in sink.events] == [
            "post.unpublished",
            "post.deleted",
            "page.added",
            "page.published",
        ]

    def test_missing_item(self, engine, as_owner):
        with pytest.raises(NotFoundError):
            engine.edit(uuid4(), {"title": "x"}, as_owner)

    def test_force_rerender(self, engine, as_owner):
        item = engine.add(
            {"title": "Legacy", "body": doc("fresh"), "html": "<p>stale</p>", "plaintext": "stale"},
            LifecycleOptions(actor_context=as_owner.actor_context, migrating=True),
        )
        assert item.html == "<p>stale</p>"

        item = engine.edit(item.id, {}, as_owner)
        assert item.html == "<p>stale</p>"

        item = engine.edit(
            item.id,
            {},
            LifecycleOptions(actor_context=as_owner.actor_context, force_rerender=True),
        )
        assert item.html == "<p>fresh</p>"
        assert item.plaintext == "fresh"

    def test_generated_fields_ignored_outside_migration(self, engine, as_owner):
        item = engine.add({"title": "G", "body": doc("real"), "html": "<p>fake</p>"}, as_owner)
        assert item.html == "<p>real</p>"


class TestRevisions:
    def test_body_edits_are_recorded(self, engine, as_owner):
        item = engine.add({"title": "R", "body": doc("v0")}, as_owner)
        engine.edit(item.id, {"body": doc("v1")}, as_owner)
        engine.edit(item.id, {"title": "R2"}, as_owner)
        engine.edit(item.id, {"body": doc("v2")}, as_owner)

        revisions = engine.list_revisions(item.id)
        assert [r.body_snapshot for r in revisions] == [doc("v0"), doc("v1"), doc("v2")]

    def test_bounded(self, engine, as_owner):
        item = engine.add({"title": "R", "body": doc("v0")}, as_owner)
        for i in range(1, 15):
            engine.edit(item.id, {"body": doc(f"v{i}")}, as_owner)

        revisions = engine.list_revisions(item.id)
        assert len(revisions) == engine.settings.max_revisions
        assert revisions[-1].body_snapshot == doc("v14")

    def test_import_records_nothing(self, engine, as_owner):
        item = engine.add({"title": "I", "body": doc("v0")}, as_owner)
        engine.edit(
            item.id,
            {"body": doc("v1")},
            LifecycleOptions(actor_context=as_owner.actor_context, importing=True),
        )
        assert engine.list_revisions(item.id) == []

    def test_missing_item(self, engine):
        with pytest.raises(NotFoundError):
            engine.list_revisions(uuid4())


# --- destroy ---


class TestDestroy:
    def test_destroy_published(self, engine, sink, as_owner):
        item = engine.add({"title": "Bye", "status": "published", "body": doc("x")}, as_owner)
        engine.edit(item.id, {"body": doc("y")}, as_owner)

        engine.destroy(item.id, as_owner)

        assert engine.get(item.id) is None
        assert sink.names_for(item.id)[-2:] == ["unpublished", "deleted"]
        with pytest.raises(NotFoundError):
            engine.list_revisions(item.id)

    def test_destroy_missing(self, engine, as_owner):
        with pytest.raises(NotFoundError):
            engine.destroy(uuid4(), as_owner)


# --- permissions / actors ---


class TestPermissions:
    def test_contributor_cannot_publish(self, engine, sink, make_author):
        _, ctx = make_author("Cora", "Contributor")
        with pytest.raises(AuthorizationError):
            engine.add({"title": "Mine", "status": "published"}, LifecycleOptions(actor_context=ctx))
        assert engine.list_items() == []
        assert sink.events == []

    def test_contributor_lifecycle_on_own_draft(self, engine, make_author):
        author, ctx = make_author("Cora", "Contributor")
        options = LifecycleOptions(actor_context=ctx)

        item = engine.add({"title": "Mine"}, options)
        assert item.author_ids() == [author.id]

        item = engine.edit(item.id, {"title": "Still mine"}, options)
        engine.destroy(item.id, options)
        assert engine.get(item.id) is None

    def test_contributor_cannot_touch_others(self, engine, make_author, as_owner):
        _, ctx = make_author("Cora", "Contributor")
        item = engine.add({"title": "Owner's"}, as_owner)
        with pytest.raises(AuthorizationError):
            engine.edit(item.id, {"title": "Hijack"}, LifecycleOptions(actor_context=ctx))

    def test_author_cannot_change_visibility(self, engine, make_author):
        _, ctx = make_author("Abe", "Author")
        with pytest.raises(AuthorizationError):
            engine.add({"title": "Paid", "visibility": "paid"}, LifecycleOptions(actor_context=ctx))

    def test_internal_mutations_emit_only_relation_hooks(self, engine, sink, clock):
        past = clock.now_utc() - timedelta(days=1)
        item = engine.add(
            {"title": "System", "status": "scheduled", "published_at": iso(past), "tags": ["ops"]},
            LifecycleOptions(actor_context=INTERNAL_CONTEXT),
        )
        assert item.status == "scheduled"
        assert item.authors == []
        assert sink.events == []
        assert [(h.relation, h.action, h.ids) for h in sink.hooks] == [
            ("tag", "attached", tuple(item.tag_ids()))
        ]

    def test_internal_mutation_without_relation_changes_is_silent(self, engine, sink):
        engine.add({"title": "Quiet"}, LifecycleOptions(actor_context=INTERNAL_CONTEXT))
        assert sink.batches == []


class TestActionLog:
    def test_actions_recorded_after_commit(self, engine, migrated_db, owner, as_owner):
        author, _ = owner
        item = engine.add({"title": "Logged", "status": "published"}, as_owner)

        actions = SQLiteActionLogRepo(migrated_db).list_by_resource(item.id)
        assert [a.event for a in actions] == ["added", "published"]
        assert {a.actor_id for a in actions} == {author.id}


class TestEmailFlag:
    def test_flag_follows_sent_email(self, engine, migrated_db, as_owner):
        options = LifecycleOptions(
            actor_context=as_owner.actor_context, send_email_when_published=True
        )
        item = engine.add({"title": "Newsletter", "status": "published"}, options)
        assert item.send_email_when_published is True

        item = engine.edit(item.id, {"status": "draft"}, as_owner)
        assert item.send_email_when_published is False

        item = engine.edit(item.id, {"status": "published"}, options)
        SQLiteEmailRepo(migrated_db).insert(EmailRecord(item_id=item.id))
        item = engine.edit(item.id, {"status": "draft"}, as_owner)
        assert item.send_email_when_published is True

    def test_caller_value_ignored(self, engine, as_owner):
        item = engine.add({"title": "x", "send_email_when_published": True}, as_owner)
        assert item.send_email_when_published is False


# --- reads ---


class TestReads:
    def test_list_order(self, engine, clock, as_owner):
        engine.add({"title": "Old", "status": "published"}, as_owner)
        clock.advance(minutes=5)
        engine.add({"title": "New", "status": "published"}, as_owner)
        engine.add({"title": "Draft"}, as_owner)
        when = clock.now_utc() + timedelta(days=1)
        engine.add({"title": "Sched", "status": "scheduled", "published_at": iso(when)}, as_owner)

        assert [i.title for i in engine.list_items()] == ["Sched", "Draft", "New", "Old"]
        assert [i.title for i in engine.list_items(status="published")] == ["New", "Old"]

    def test_get_with_status_filter(self, engine, as_owner):
        item = engine.add({"title": "D"}, as_owner)
        assert engine.get(item.id).id == item.id
        assert engine.get(item.id, status="published") is None
        assert engine.get(item.id, status=["draft", "published"]) is not None

    def test_unknown_status_filter(self, engine):
        with pytest.raises(ValidationError):
            engine.list_items(status="archived")

    def test_type_filter(self, engine, as_owner):
        engine.add({"title": "A post"}, as_owner)
        engine.add({"title": "A page", "type": "page"}, as_owner)
        assert [i.title for i in engine.list_items(content_type="page")] == ["A page"]


# --- transactions ---


class TestTransacting:
    def test_caller_commit_publishes_events(self, engine, sink, migrated_db, as_owner):
        with SQLiteUnitOfWork(migrated_db) as uow:
            options = LifecycleOptions(actor_context=as_owner.actor_context, transacting=uow)
            item = engine.add({"title": "In tx"}, options)
            engine.edit(item.id, {"title": "Still in tx"}, options)
            assert sink.events == []
            uow.commit()

        assert engine.get(item.id).title == "Still in tx"
        assert sink.names_for(item.id) == ["added", "edited"]

    def test_caller_rollback_discards_everything(self, engine, sink, migrated_db, as_owner):
        with SQLiteUnitOfWork(migrated_db) as uow:
            options = LifecycleOptions(actor_context=as_owner.actor_context, transacting=uow)
            item = engine.add({"title": "Doomed"}, options)
            uow.rollback()

        assert engine.get(item.id) is None
        assert sink.events == []

    def test_failed_operation_keeps_earlier_work(self, engine, sink, migrated_db, as_owner):
        with SQLiteUnitOfWork(migrated_db) as uow:
            options = LifecycleOptions(actor_context=as_owner.actor_context, transacting=uow)
            kept = engine.add({"title": "Kept"}, options)
            with pytest.raises(ValidationError):
                engine.add({"title": "Bad", "body": "nope"}, options)
            uow.commit()

        assert engine.get(kept.id) is not None
        assert [i.title for i in engine.list_items()] == ["Kept"]
        assert sink.names_for(kept.id) == ["added"]


# --- event sequences ---


class TestEventSequences:
    def _sequences(self, sink, item_id):
        return [(e.name, e.sequence) for e in sink.events if e.resource_id == item_id]

    def test_sequences_continue_across_engines(
        self, engine, sink, migrated_db, rules, clock, as_owner
    ):
        item = engine.add({"title": "Long lived"}, as_owner)
        engine.edit(item.id, {"title": "Long lived 2"}, as_owner)

        other_sink = DevEventSink(log_events=False)
        restarted = create_lifecycle_engine(
            migrated_db, rules, sink=other_sink, clock=clock, migrations_dir=None
        )
        restarted.edit(item.id, {"title": "Long lived 3"}, as_owner)
        restarted.edit(item.id, {"status": "published"}, as_owner)

        assert self._sequences(sink, item.id) == [("added", 1), ("edited", 2)]
        assert self._sequences(other_sink, item.id) == [
            ("edited", 3),
            ("published", 4),
            ("edited", 5),
        ]

    def test_dedup_keys_never_repeat(
        self, engine, sink, migrated_db, rules, clock, as_owner
    ):
        item = engine.add({"title": "Keys"}, as_owner)
        for n in range(3):
            create_lifecycle_engine(
                migrated_db, rules, sink=sink, clock=clock, migrations_dir=None
            ).edit(item.id, {"title": f"Keys {n}"}, as_owner)

        keys = [(e.name, e.resource_id, e.sequence) for e in sink.events]
        assert len(keys) == len(set(keys))

    def test_counter_survives_destroy(self, engine, sink, migrated_db, as_owner):
        item = engine.add({"title": "Gone", "status": "published"}, as_owner)
        engine.destroy(item.id, as_owner)
        engine.add({"id": str(item.id), "title": "Back"}, as_owner)

        assert [s for _, s in self._sequences(sink, item.id)] == [1, 2, 3, 4, 5]
        with SQLiteUnitOfWork(migrated_db) as uow:
            assert uow.sequences.last_sequence(item.id) == 5

    def test_rolled_back_mutation_reserves_nothing(self, engine, sink, migrated_db, as_owner):
        item = engine.add({"title": "Steady"}, as_owner)
        with SQLiteUnitOfWork(migrated_db) as uow:
            options = LifecycleOptions(actor_context=as_owner.actor_context, transacting=uow)
            engine.edit(item.id, {"title": "Discarded"}, options)
            uow.rollback()

        engine.edit(item.id, {"title": "Kept"}, as_owner)
        assert self._sequences(sink, item.id) == [("added", 1), ("edited", 2)]


# --- concurrency ---


def _blind_engine(db_path, rules, clock, sink):
    return ContentLifecycleEngine(
        uow_factory=lambda: BlindUnitOfWork(db_path),
        settings=LifecycleSettings.from_rules(rules),
        policy=PolicyEngine(rules),
        renderer=DocumentRenderer(),
        clock=clock,
        actor_resolver=ContextActorResolver(),
        dispatcher=EventDispatcher(sink),
    )


class TestSlugRaces:
    def test_unique_constraint_triggers_retry(self, migrated_db, rules, clock, as_owner):
        engine = _blind_engine(migrated_db, rules, clock, DevEventSink(log_events=False))
        first = engine.add({"title": "Race"}, as_owner)
        second = engine.add({"title": "Race"}, as_owner)

        assert (first.slug, second.slug) == ("race", "race-2")

    def test_edit_retries_too(self, migrated_db, rules, clock, as_owner):
        engine = _blind_engine(migrated_db, rules, clock, DevEventSink(log_events=False))
        engine.add({"title": "Target"}, as_owner)
        other = engine.add({"title": "Other"}, as_owner)

        edited = engine.edit(other.id, {"slug": "target"}, as_owner)
        assert edited.slug == "target-2"

    def test_concurrent_adds_get_distinct_slugs(self, engine, sink, as_owner):
        with ThreadPoolExecutor(max_workers=6) as pool:
            items = list(pool.map(lambda _: engine.add({"title": "Crowd"}, as_owner), range(12)))

        slugs = {i.slug for i in items}
        assert len(slugs) == 12
        assert "crowd" in slugs
        for item in items:
            assert sink.names_for(item.id) == ["added"]


def test_direct_repo_view_matches_engine(engine, migrated_db, as_owner):
    item = engine.add({"title": "Same view", "tags": ["x"]}, as_owner)
    assert SQLiteContentRepo(migrated_db).get_by_id(item.id) == item
