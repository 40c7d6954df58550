from uuid import uuid4

import pytest

from quire.core.errors import ConflictError
from quire.core.services.slugs import SlugGenerator, resolve_edit_slug, slugify
from quire.domain.entities import ContentItem, utc_now


def make_generator(owners: dict[str, object], **kwargs):
    """Generator whose storage is a slug -> owner id mapping."""
    return SlugGenerator(
        exists=lambda slug, exclude_id: slug in owners and owners[slug] != exclude_id,
        **kwargs,
    )


# --- slugify ---


@pytest.mark.parametrize(
    "text,expected",
    [
        ("Hello World", "hello-world"),
        ("  Café au lait!  ", "cafe-au-lait"),
        ("a -- b", "a-b"),
        ("C++ & Rust", "c-rust"),
        ("!!!", ""),
        ("", ""),
    ],
)
def test_slugify(text, expected):
    assert slugify(text) == expected


def test_slugify_caps_length_without_trailing_hyphen():
    slug = slugify("word " * 100, max_length=20)
    assert len(slug) <= 20
    assert not slug.endswith("-")


# --- SlugGenerator ---


def test_generate_free_base():
    gen = make_generator({})
    assert gen.generate("Hello World", fallback="post") == "hello-world"


def test_generate_appends_counter_on_collision():
    gen = make_generator({"hello-world": uuid4()})
    assert gen.generate("Hello World", fallback="post") == "hello-world-2"


def test_generate_scans_until_free():
    gen = make_generator({"hello-world": uuid4(), "hello-world-2": uuid4()})
    assert gen.generate("Hello World", fallback="post") == "hello-world-3"


def test_generate_ignores_own_slug():
    own = uuid4()
    gen = make_generator({"hello-world": own})
    assert gen.generate("Hello World", fallback="post", exclude_id=own) == "hello-world"


def test_generate_skips_taken_candidates():
    gen = make_generator({})
    assert gen.generate("Hello", fallback="post", taken={"hello"}) == "hello-2"


def test_generate_empty_uses_fallback():
    gen = make_generator({})
    assert gen.generate("???", fallback="page") == "page"


def test_generate_reserved_word_gets_type_suffix():
    gen = make_generator({}, reserved=frozenset({"admin", "rss"}))
    assert gen.generate("Admin", fallback="post") == "admin-post"
    assert gen.generate("RSS", fallback="page") == "rss-page"


def test_generate_is_bounded():
    gen = make_generator({"x": 1, "x-2": 2, "x-3": 3}, max_attempts=3)
    with pytest.raises(ConflictError) as exc:
        gen.generate("x", fallback="post")
    assert exc.value.field == "slug"


def test_suffix_respects_max_length():
    gen = make_generator({"a" * 10: 1}, max_length=10)
    slug = gen.generate("a" * 30, fallback="post")
    assert slug == "a" * 8 + "-2"


# --- Edit policy ---


def _draft(title: str, slug: str, **kwargs) -> ContentItem:
    return ContentItem(title=title, slug=slug, **kwargs)


def resolve(gen, previous, title, requested_slug=None, **after):
    """Resolve with the post-edit status defaulting to the stored one."""
    after.setdefault("status", previous.status)
    after.setdefault("published_at", previous.published_at)
    return resolve_edit_slug(gen, previous, title=title, requested_slug=requested_slug, **after)


def test_edit_follows_new_title_when_slug_was_automatic():
    previous = _draft("Hello", "hello")
    gen = make_generator({"hello": previous.id})
    assert resolve(gen, previous, "Goodbye") == "goodbye"


def test_edit_keeps_custom_slug_when_title_changes():
    previous = _draft("Hello", "my-custom-slug")
    gen = make_generator({"my-custom-slug": previous.id})
    assert resolve(gen, previous, "Goodbye") == "my-custom-slug"


def test_edit_treats_suffixed_auto_slug_as_automatic():
    other = uuid4()
    previous = _draft("Hello", "hello-2")
    gen = make_generator({"hello": other, "hello-2": previous.id})
    assert resolve(gen, previous, "Fresh") == "fresh"


def test_edit_of_published_item_keeps_slug():
    previous = _draft("Hello", "hello", status="published", published_at=utc_now())
    gen = make_generator({"hello": previous.id})
    assert resolve(gen, previous, "Goodbye") == "hello"


def test_edit_of_once_published_draft_keeps_slug():
    previous = _draft("Hello", "hello", published_at=utc_now())
    gen = make_generator({"hello": previous.id})
    assert resolve(gen, previous, "Goodbye") == "hello"


@pytest.mark.parametrize("status", ["published", "scheduled"])
def test_draft_leaving_draft_in_same_edit_keeps_slug(status):
    previous = _draft("Hello", "hello")
    gen = make_generator({"hello": previous.id})
    slug = resolve(gen, previous, "Goodbye", status=status, published_at=utc_now())
    assert slug == "hello"


def test_draft_with_new_publish_date_keeps_slug():
    previous = _draft("Hello", "hello")
    gen = make_generator({"hello": previous.id})
    assert resolve(gen, previous, "Goodbye", published_at=utc_now()) == "hello"


def test_edit_explicit_slug_is_normalized_and_deduplicated():
    previous = _draft("Hello", "hello")
    gen = make_generator({"hello": previous.id, "taken": uuid4()})
    assert resolve(gen, previous, "Hello", requested_slug="Taken") == "taken-2"


def test_edit_unchanged_is_idempotent():
    previous = _draft("Hello", "hello-3")
    gen = make_generator({"hello": uuid4(), "hello-2": uuid4(), "hello-3": previous.id})
    assert resolve(gen, previous, "Hello", requested_slug="hello-3") == "hello-3"
    assert resolve(gen, previous, "Hello") == "hello-3"
