"""Database configuration for the VolunteerHub messaging service."""
import logging

from sqlalchemy import event
from sqlalchemy.pool import StaticPool
from sqlmodel import create_engine

from volunteerhub.config import DATABASE_URL

logger = logging.getLogger(__name__)

IS_SQLITE = DATABASE_URL.startswith("sqlite")

if IS_SQLITE:
    logger.info(f"[DB CONFIG] Using SQLite database: {DATABASE_URL}")
    connect_args = {"check_same_thread": False}
    if DATABASE_URL in ("sqlite://", "sqlite:///:memory:"):
        # A single shared connection keeps the in-memory database alive
        engine = create_engine(DATABASE_URL, echo=False, connect_args=connect_args, poolclass=StaticPool)
    else:
        engine = create_engine(DATABASE_URL, echo=False, connect_args=connect_args)

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()
else:
    logger.info("[DB CONFIG] Using PostgreSQL database")
    engine = create_engine(DATABASE_URL, echo=False, pool_pre_ping=True)
