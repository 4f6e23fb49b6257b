"""Generate database sessions"""

import logging

from sqlalchemy import StaticPool, create_engine
from sqlalchemy.orm import Session, sessionmaker

from chess_sessions.core.config import Settings
from chess_sessions.db.schema import Base

logger = logging.getLogger(__name__)


def create_session_factory(settings: Settings) -> sessionmaker[Session]:
    """Engine + session factory for the configured database. Ensures all tables are created."""
    connect_args: dict = {}
    engine_kwargs: dict = {}
    if settings.database_url.startswith("sqlite"):
        # sessions are used from multiple request threads
        connect_args["check_same_thread"] = False
        if ":memory:" in settings.database_url:
            engine_kwargs["poolclass"] = StaticPool

    engine = create_engine(
        settings.database_url,
        echo=settings.echo_sql,
        connect_args=connect_args,
        **engine_kwargs,
    )
    Base.metadata.create_all(bind=engine)
    logger.info("Connected to %s", engine.url.render_as_string(hide_password=True))
    return sessionmaker(bind=engine, autoflush=False)
