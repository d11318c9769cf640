"""Programmatic Alembic upgrades for the shared SQLite database."""

from __future__ import annotations

import logging
from pathlib import Path

from alembic import command
from alembic.config import Config

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parents[3] / "alembic"


def build_alembic_config(db_path: Path) -> Config:
    """Config pointing at the repo migrations and ``db_path``; no ini file needed."""

    config = Config()
    config.set_main_option("script_location", str(MIGRATIONS_DIR))
    config.set_main_option("sqlalchemy.url", f"sqlite:///{db_path}")
    return config


def upgrade_head(db_path: Path) -> None:
    """Bring ``db_path`` to the newest revision; a no-op when already there."""

    logger.debug("Upgrading %s to alembic head", db_path)
    command.upgrade(build_alembic_config(db_path), "head")
