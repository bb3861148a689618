from __future__ import annotations

import logging
from pathlib import Path

from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from sqlalchemy.engine import Engine

from erp.core.config import DATABASE_URL, ENV_NORMALIZED, IS_PROD

logger = logging.getLogger(__name__)
MIGRATIONS_PREFIX = "[MIGRATIONS]"


def validate_database_environment() -> None:
    if IS_PROD and DATABASE_URL.startswith("sqlite"):
        logger.critical("%s SQLite is forbidden in production", MIGRATIONS_PREFIX)
        raise RuntimeError("SQLite is forbidden in production environment")


def ensure_migrations_applied(*, engine: Engine, alembic_config_path: Path) -> None:
    """Exige la base en el head de Alembic; las migraciones se aplican en el despliegue (`alembic upgrade head`)."""
    if ENV_NORMALIZED == "test":
        logger.info("%s skipped migration check in test environment", MIGRATIONS_PREFIX)
        return

    if not alembic_config_path.exists():
        raise RuntimeError(f"alembic config not found: {alembic_config_path}")

    expected_heads = set(ScriptDirectory.from_config(Config(str(alembic_config_path))).get_heads())
    with engine.connect() as connection:
        current_heads = set(MigrationContext.configure(connection).get_current_heads())

    if not current_heads:
        logger.critical("%s database has no migration state", MIGRATIONS_PREFIX)
        raise RuntimeError("Database has no migration state")
    if current_heads != expected_heads:
        logger.critical(
            "%s pending migrations current=%s expected=%s",
            MIGRATIONS_PREFIX,
            sorted(current_heads),
            sorted(expected_heads),
        )
        raise RuntimeError("Pending migrations detected")
    logger.info("%s schema at head %s", MIGRATIONS_PREFIX, ",".join(sorted(current_heads)))
