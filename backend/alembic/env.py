"""Alembic migration environment for the student events schema.

The URL always comes from ``student_events.config`` (``DATABASE_URL``), never
from alembic.ini, so migrations hit the same database as the API.
"""
from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from student_events.config import settings
from student_events.database import Base

# Register every table on Base.metadata for autogenerate
from student_events.models.user import User  # noqa: F401
from student_events.models.event import Event  # noqa: F401
from student_events.models.rsvp import RSVP  # noqa: F401
from student_events.models.otp import OTP  # noqa: F401

config = context.config
config.set_main_option("sqlalchemy.url", settings.DATABASE_URL)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _configure_options(url: str) -> dict:
    # SQLite cannot ALTER constraints in place; batch mode rebuilds the table.
    return {
        "target_metadata": target_metadata,
        "compare_type": True,
        "render_as_batch": url.startswith("sqlite"),
    }


def run_migrations_offline() -> None:
    """Emit SQL to stdout instead of connecting."""
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_configure_options(url),
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
        context.configure(connection=connection, **_configure_options(settings.DATABASE_URL))
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
