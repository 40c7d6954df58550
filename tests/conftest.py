from datetime import UTC, datetime
from pathlib import Path
from uuid import uuid4

import pytest

from quire.adapters.clock import FixedClock
from quire.adapters.dev_events import DevEventSink
from quire.adapters.sqlite.migrator import SQLiteMigrator
from quire.adapters.sqlite_db import SQLiteAuthorRepo
from quire.app_shell.config import create_lifecycle_engine
from quire.core.services.lifecycle import LifecycleOptions
from quire.domain.actors import ActorContext
from quire.domain.entities import Author
from quire.rules.loader import load_rules

PROJECT_ROOT = Path(__file__).resolve().parent.parent
MIGRATIONS_DIR = str(PROJECT_ROOT / "migrations")
RULES_PATH = PROJECT_ROOT / "rules.yaml"

FIXED_NOW = datetime(2026, 1, 15, 12, 0, 0, tzinfo=UTC)


@pytest.fixture
def rules():
    return load_rules(RULES_PATH)


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "quire_test.db")


@pytest.fixture
def migrated_db(db_path):
    SQLiteMigrator(db_path, MIGRATIONS_DIR).run_migrations()
    return db_path


@pytest.fixture
def clock():
    return FixedClock(FIXED_NOW)


@pytest.fixture
def sink():
    return DevEventSink(log_events=False)


@pytest.fixture
def engine(migrated_db, rules, sink, clock):
    """Lifecycle engine over a fresh SQLite database with inline dispatch."""
    return create_lifecycle_engine(
        migrated_db,
        rules,
        sink=sink,
        clock=clock,
        migrations_dir=None,
    )


@pytest.fixture
def make_author(migrated_db):
    """Insert an author row and return an ActorContext acting as that author."""

    def _make(name: str, *roles: str) -> tuple[Author, ActorContext]:
        author = Author(
            id=uuid4(),
            name=name,
            slug=f"{name.lower()}-{uuid4().hex[:6]}",
            roles=list(roles),
        )
        SQLiteAuthorRepo(migrated_db).insert(author)
        return author, ActorContext(actor_id=author.id, roles=tuple(roles), actor_name=name)

    return _make


@pytest.fixture
def owner(make_author):
    return make_author("Olive", "Owner")


@pytest.fixture
def as_owner(owner):
    _, ctx = owner
    return LifecycleOptions(actor_context=ctx)
