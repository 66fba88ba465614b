from __future__ import annotations

from alembic import context

from planmate import database
from planmate.models import Base

config = context.config
target_metadata = Base.metadata

# storage._alembic_config() passes the live engine URL; fall back for the bare CLI.
url = config.get_main_option("sqlalchemy.url") or str(database.DATABASE_URL)


def _migrate(**options) -> None:
    context.configure(target_metadata=target_metadata, compare_type=True, **options)
    with context.begin_transaction():
        context.run_migrations()


if context.is_offline_mode():
    _migrate(url=url, literal_binds=True, render_as_batch=url.startswith("sqlite"))
else:
    with database.engine.connect() as connection:
        _migrate(
            connection=connection,
            render_as_batch=connection.dialect.name == "sqlite",
        )
