"""Initialize database tables."""
import logging

from sqlmodel import SQLModel

from volunteerhub.models.user import User  # noqa: F401
from volunteerhub.models.message import Message  # noqa: F401
from volunteerhub.db.config import engine

logger = logging.getLogger(__name__)


def init_db(bind=None):
    """Create all tables in the database."""
    logger.info("[DB INIT] Creating all tables...")
    SQLModel.metadata.create_all(bind or engine)
    logger.info("[DB INIT] Tables created successfully.")


if __name__ == "__main__":
    init_db()
