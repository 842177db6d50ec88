"""Apply migrations. The worker queues reminder generation for every active
routine on start, so no seeding happens here."""

from __future__ import annotations

import logging
from pathlib import Path

from alembic import command
from alembic.config import Config

from remindbot.logging_utils import configure_logging
from remindbot.settings import settings

logger = logging.getLogger("remindbot.init_db")


def main() -> None:
    configure_logging(settings.LOG_LEVEL)
    project_root = Path(__file__).resolve().parents[1]
    alembic_ini = project_root / "alembic.ini"
    if not alembic_ini.exists():
        raise RuntimeError(f"alembic.ini not found at: {alembic_ini}")

    cfg = Config(str(alembic_ini))
    cfg.set_main_option("script_location", str(project_root / "alembic"))
    command.upgrade(cfg, "head")
    logger.info("DB migrated (alembic upgrade head).")


if __name__ == "__main__":
    main()
