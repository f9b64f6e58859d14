import os

from alembic import command
from alembic.config import Config

ALEMBIC_INI = os.path.join(os.path.dirname(__file__), '..', 'alembic.ini')


def _config(database_url: str | None = None) -> Config:
    cfg = Config(ALEMBIC_INI)
    cfg.set_main_option('script_location', os.path.join(os.path.dirname(ALEMBIC_INI), 'alembic'))
    # DATABASE_URL wins over the ini default
    url = database_url or os.getenv('DATABASE_URL')
    if url:
        cfg.set_main_option('sqlalchemy.url', url)
    return cfg


def upgrade_head(database_url: str | None = None):
    # programmatic `alembic upgrade head`
    command.upgrade(_config(database_url), 'head')


def downgrade_base(database_url: str | None = None):
    command.downgrade(_config(database_url), 'base')
