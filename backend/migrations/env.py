import sys
from os.path import abspath, dirname
from logging.config import fileConfig

from sqlalchemy import engine_from_config, pool
from alembic import context

# Racine backend/ dans le path pour importer 'app'
sys.path.insert(0, abspath(dirname(dirname(__file__))))

from app.core.config import settings
from app.core.database import Base
# Enregistre annuaire + pulse dans Base.metadata
from app.shared.models import (  # noqa: F401
    Tenant, Member,
    PulseQuestion, PulseCohort, PulseCohortMember, PulseSchedule,
    PulseInvite, PulseResponse, PulseDispatchRun,
)

ASYNC_DRIVERS = ("+asyncpg", "+aiosqlite")

config = context.config


def sync_database_url(url: str) -> str:
    """Alembic tourne en synchrone : postgresql+asyncpg:// → postgresql://."""
    for driver in ASYNC_DRIVERS:
        url = url.replace(driver, "")
    return url


config.set_main_option("sqlalchemy.url", sync_database_url(settings.DATABASE_URL))

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _configure_kwargs(url: str) -> dict:
    # SQLite ne sait pas ALTER une contrainte : mode batch
    return {
        "target_metadata": target_metadata,
        "compare_type": True,
        "render_as_batch": url.startswith("sqlite"),
    }


def run_migrations_offline() -> None:
    """Génère le SQL sans se connecter (alembic upgrade --sql)."""
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_configure_kwargs(url),
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            **_configure_kwargs(str(connection.engine.url)),
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
