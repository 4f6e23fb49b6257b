"""Implementation of SessionStore using SQLAlchemy"""

import logging
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from chess_sessions.core.exceptions import ConflictError, NotFoundError
from chess_sessions.db.schema import DBGameSession, utc_now

logger = logging.getLogger(__name__)


class SQLSessionStore:
    """
    Blobs stored in a single table, one row per game.

    Every call opens its own database session, so the store can be shared between threads.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self.session_factory = session_factory

    def load(self, game_id: str) -> bytes:
        with self.session_factory() as db:
            blob = db.scalar(select(DBGameSession.blob).where(DBGameSession.id == game_id))
        if blob is None:
            raise NotFoundError(f"Game with {game_id=} not found.")
        return blob

    def save(
        self,
        game_id: str,
        blob: bytes,
        expected_revision: Optional[int],
        revision: int,
        status: str = "",
    ) -> None:
        with self.session_factory() as db:
            if expected_revision is None:
                self._insert(db, game_id, blob, revision, status)
            else:
                self._conditional_update(db, game_id, blob, expected_revision, revision, status)

    def delete(self, game_id: str) -> None:
        with self.session_factory() as db:
            record = db.get(DBGameSession, game_id)
            if record is None:
                raise NotFoundError(f"Game with {game_id=} not found.")
            db.delete(record)
            db.commit()

    def revision(self, game_id: str) -> int:
        """Currently stored revision (handy for diagnosing conflicts)."""
        with self.session_factory() as db:
            revision = db.scalar(select(DBGameSession.revision).where(DBGameSession.id == game_id))
        if revision is None:
            raise NotFoundError(f"Game with {game_id=} not found.")
        return revision

    # -- Internal helpers --
    def _insert(self, db: Session, game_id: str, blob: bytes, revision: int, status: str) -> None:
        db.add(DBGameSession(id=game_id, blob=blob, revision=revision, status=status))
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            raise ConflictError(f"Game with {game_id=} already exists.") from exc

    def _conditional_update(
        self,
        db: Session,
        game_id: str,
        blob: bytes,
        expected_revision: int,
        revision: int,
        status: str,
    ) -> None:
        """UPDATE ... WHERE revision = expected. Zero rows touched means somebody else wrote in between (or the row is gone)."""
        query = (
            update(DBGameSession)
            .where(DBGameSession.id == game_id, DBGameSession.revision == expected_revision)
            .values(blob=blob, revision=revision, status=status, updated_at=utc_now())
        )
        result = db.execute(query)
        if result.rowcount == 1:
            db.commit()
            return

        db.rollback()
        stored = db.scalar(select(DBGameSession.revision).where(DBGameSession.id == game_id))
        if stored is None:
            raise NotFoundError(f"Game with {game_id=} not found.")
        logger.warning(
            "Lost update prevented for game %s: expected revision %s, stored %s",
            game_id,
            expected_revision,
            stored,
        )
        raise ConflictError(
            f"Game {game_id} was modified concurrently: expected revision {expected_revision}, stored {stored}."
        )
