# run_migrations.py
from pathlib import Path

from alembic import command
from alembic.config import Config

ROOT = Path(__file__).resolve().parent


def upgrade(database_url: str = None, revision: str = "head", configure_logger: bool = True) -> None:
    alembic_cfg = Config(str(ROOT / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(ROOT / "alembic"))
    alembic_cfg.attributes["configure_logger"] = configure_logger
    if database_url:
        alembic_cfg.attributes["database_url"] = database_url
    command.upgrade(alembic_cfg, revision)


if __name__ == "__main__":
    upgrade()
