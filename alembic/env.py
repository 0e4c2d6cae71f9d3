"""
Alembic environment for the portal schema (portal_users, otp_store,
notifications).

The URL comes from Settings, so SQLALCHEMY_DATABASE_URI or the DATABASE_*
variables in .env decide where migrations run; alembic.ini carries none.
SQLite URLs get batch mode, since SQLite cannot ALTER most column changes
in place.

  alembic upgrade head                 apply
  alembic upgrade head --sql           print SQL only (offline)
  alembic revision --autogenerate -m   new revision from model changes
  alembic downgrade -1                 step back
"""

import os
import sys
from logging.config import fileConfig

from sqlalchemy import engine_from_config, pool
from alembic import context

# Run from any directory: put the project root (parent of alembic/) on the path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from app.config import settings
from app.database import Base
import app.models  # noqa: F401 (registers PortalUser, OTPRecord, Notification)

config = context.config
config.set_main_option("sqlalchemy.url", settings.database_url)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _configure_options(url: str) -> dict:
    return {
        "target_metadata": target_metadata,
        "compare_type": True,
        "compare_server_default": True,
        "render_as_batch": url.startswith("sqlite"),
    }


def run_migrations_offline() -> None:
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
    """Own short-lived connection (NullPool), separate from the app's pool."""
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            **_configure_options(str(connectable.url)),
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
