"""
Application wiring: rules, environment overrides and engine construction.

Environment:
- QUIRE_RULES_PATH  rules file (default: rules.yaml)
- QUIRE_DB_PATH     SQLite database (default: quire.db)
- QUIRE_MIGRATIONS_DIR  SQL migrations (default: migrations)
- QUIRE_SITE_URL    overrides urls.site_url from the rules file
"""

import logging
import os
from collections.abc import Mapping
from concurrent.futures import Executor
from dataclasses import dataclass
from pathlib import Path

from quire.adapters.action_log import ActionLogSink
from quire.adapters.actors import ContextActorResolver
from quire.adapters.clock import SystemClock
from quire.adapters.render.document_renderer import DocumentRenderer
from quire.adapters.sqlite.migrator import SQLiteMigrator
from quire.adapters.sqlite_db import SQLiteActionLogRepo, SQLiteUnitOfWork
from quire.core.ports.events import EventSinkPort
from quire.core.ports.time import TimePort
from quire.core.services.dispatch import EventDispatcher, FanOutEventSink
from quire.core.services.lifecycle import ContentLifecycleEngine, LifecycleSettings
from quire.core.services.urls import UrlNormalizer
from quire.domain.policy import PolicyEngine
from quire.rules.loader import load_rules
from quire.rules.models import Rules

logger = logging.getLogger(__name__)

DEFAULT_RULES_PATH = "rules.yaml"
DEFAULT_DB_PATH = "quire.db"
DEFAULT_MIGRATIONS_DIR = "migrations"


@dataclass(frozen=True)
class AppConfig:
    db_path: str
    rules: Rules
    migrations_dir: str = DEFAULT_MIGRATIONS_DIR


def apply_env_overrides(rules: Rules, environ: Mapping[str, str]) -> Rules:
    site_url = environ.get("QUIRE_SITE_URL")
    if site_url:
        rules = rules.model_copy(
            update={"urls": rules.urls.model_copy(update={"site_url": site_url})}
        )
    return rules


def validate_config(config: AppConfig) -> None:
    """
    Validate operational requirements before wiring the engine.
    Raises ValueError on a bad site URL or missing migrations directory.
    """
    UrlNormalizer(config.rules.urls.site_url)
    if not Path(config.migrations_dir).is_dir():
        raise ValueError(f"Migrations directory not found: {config.migrations_dir}")


def load_settings(environ: Mapping[str, str] | None = None) -> AppConfig:
    environ = os.environ if environ is None else environ
    rules_path = Path(environ.get("QUIRE_RULES_PATH", DEFAULT_RULES_PATH))
    rules = apply_env_overrides(load_rules(rules_path), environ)
    config = AppConfig(
        db_path=environ.get("QUIRE_DB_PATH", DEFAULT_DB_PATH),
        rules=rules,
        migrations_dir=environ.get("QUIRE_MIGRATIONS_DIR", DEFAULT_MIGRATIONS_DIR),
    )
    validate_config(config)
    logger.info("Loaded rules %s from %s", rules.project.rules_version, rules_path)
    return config


def create_lifecycle_engine(
    db_path: str,
    rules: Rules,
    *,
    sink: EventSinkPort | None = None,
    executor: Executor | None = None,
    clock: TimePort | None = None,
    record_actions: bool = True,
    migrations_dir: str | None = DEFAULT_MIGRATIONS_DIR,
) -> ContentLifecycleEngine:
    """
    Build a ContentLifecycleEngine over SQLite.

    Migrations run first when `migrations_dir` is given. Events go to `sink`
    and, with `record_actions`, to the action log.
    """
    if migrations_dir is not None:
        SQLiteMigrator(db_path, migrations_dir).run_migrations()

    sinks: list[EventSinkPort] = []
    if record_actions:
        sinks.append(ActionLogSink(SQLiteActionLogRepo(db_path)))
    if sink is not None:
        sinks.append(sink)
    dispatcher = EventDispatcher(FanOutEventSink(sinks), executor=executor) if sinks else None

    return ContentLifecycleEngine(
        uow_factory=lambda: SQLiteUnitOfWork(db_path),
        settings=LifecycleSettings.from_rules(rules),
        policy=PolicyEngine(rules),
        renderer=DocumentRenderer(),
        clock=clock or SystemClock(),
        actor_resolver=ContextActorResolver(),
        dispatcher=dispatcher,
    )
