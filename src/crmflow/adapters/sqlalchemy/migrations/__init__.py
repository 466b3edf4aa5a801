"""Programmatic access to the bundled Alembic revisions.

The same revisions are reachable from the ``alembic`` command line through
the ``[tool.alembic]`` table in ``pyproject.toml``.
"""

from __future__ import annotations

from logging import getLogger
from pathlib import Path
from typing import TYPE_CHECKING, Final

from alembic import command
from alembic.config import Config

from crmflow.config import get_database_config

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

MIGRATIONS_PATH: Final[Path] = Path(__file__).resolve().parent

log = getLogger(__name__)


def build_config(*, database_uri: str | None = None) -> Config:
    config = Config()
    config.set_main_option("script_location", str(MIGRATIONS_PATH))
    if database_uri is not None:
        config.set_main_option("sqlalchemy.url", database_uri)
    return config


def upgrade_head(*, engine: Engine | None = None, database_uri: str | None = None) -> None:
    """Bring the schema to the newest revision.

    An ``engine`` is used as-is, which keeps in-memory SQLite databases alive
    across the upgrade; otherwise ``database_uri`` or the configured database
    is opened for the duration of the upgrade.
    """

    if engine is None:
        uri = database_uri or get_database_config().uri
        command.upgrade(build_config(database_uri=uri), "head")
        return
    config = build_config()
    with engine.begin() as connection:
        config.attributes["connection"] = connection
        command.upgrade(config, "head")
    log.debug("Schema upgraded to head on %s", engine.url.render_as_string(hide_password=True))
