"""
Process-wide map of live game sessions.

Created once at process start (and injected where needed), drained at shutdown with `close()`.

Locking
-----
* `_lock` guards the live map and the per-game loading locks. It is never held while talking to the store.
* A per-game loading lock makes sure only one thread loads a given game; the others wait and receive its instance.
  It only exists while somebody holds or waits for it, so ids that are never seen again do not pile up.
* Each GameSession carries its own lock. Moves, termination, checkpoints and eviction all take it,
  so an eviction can never interleave with a move on the same game.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Callable, Iterator, Optional, Self, TypeVar

from chess_sessions.chess.game import Clock, GameSession, MoveOutcome, utc_now
from chess_sessions.chess.moves import Move
from chess_sessions.chess.pgn import import_pgn, split_games
from chess_sessions.core.config import Settings
from chess_sessions.core.exceptions import CodecError, ConflictError, PGNParseError, SessionEvictedError
from chess_sessions.db.codec import HistoryCodec
from chess_sessions.db.store import SessionStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class _LoadingLock:
    """Lock for one game id, plus the number of threads holding or waiting for it."""

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


class SessionRegistry:
    def __init__(
        self,
        store: SessionStore,
        codec: Optional[HistoryCodec] = None,
        checkpoint_interval: int = 0,
        clock: Clock = utc_now,
    ) -> None:
        self.store = store
        self.codec = codec or HistoryCodec()
        self.checkpoint_interval = checkpoint_interval
        self._clock = clock
        self._live: dict[str, GameSession] = {}
        self._loading_locks: dict[str, _LoadingLock] = {}
        self._lock = threading.Lock()
        self._closed = False

    @classmethod
    def from_settings(cls, store: SessionStore, settings: Settings) -> Self:
        return cls(
            store=store,
            codec=HistoryCodec(compression_level=settings.compression_level),
            checkpoint_interval=settings.checkpoint_interval,
        )

    # --- LIFECYCLE ---
    def __enter__(self) -> Self:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        """Shutdown: evict (and thereby persist) every live session."""
        with self._lock:
            self._closed = True
            game_ids = list(self._live)
        logger.info("Flushing %d live sessions", len(game_ids))
        for game_id in game_ids:
            self.evict(game_id)

    def live_game_ids(self) -> list[str]:
        with self._lock:
            return list(self._live)

    def is_live(self, game_id: str) -> bool:
        with self._lock:
            return game_id in self._live

    # --- CREATE / LOAD / EVICT ---
    def create_game(
        self,
        white_player: str,
        black_player: str,
        game_id: Optional[str] = None,
        starting_fen: Optional[str] = None,
    ) -> GameSession:
        """Start a new game. Its first blob is written right away, so the game id is claimed in the store."""
        self._assert_open()
        session = GameSession.new_game(
            white_player=white_player,
            black_player=black_player,
            starting_fen=starting_fen,
            game_id=game_id,
            clock=self._clock,
        )
        self.register(session)
        logger.info("Created game %s (%s vs %s)", session.game_id, white_player, black_player)
        return session

    def register(self, session: GameSession) -> GameSession:
        """Take over a session built elsewhere (e.g. replayed from PGN): claim its id in the store and make it live."""
        self._assert_open()
        with session.lock:
            self._persist(session)
        self._insert(session)
        return session

    def import_pgn(
        self, text: str, white_player: Optional[str] = None, black_player: Optional[str] = None
    ) -> list[GameSession]:
        """Replay every game in the PGN text, then register them. Nothing is stored unless all games replay."""
        sessions = [
            import_pgn(game_text, white_player=white_player, black_player=black_player, clock=self._clock)
            for game_text in split_games(text)
        ]
        if not sessions:
            raise PGNParseError("No PGN game found in the supplied text")
        for session in sessions:
            self.register(session)
        logger.info("Imported %d PGN games", len(sessions))
        return sessions

    def get_or_load(self, game_id: str) -> GameSession:
        """
        The live instance of the game, loading it from the store if needed.

        Whatever goes wrong while loading (store failure, cancellation, corrupt blob), nothing gets inserted.
        """
        live = self._lookup(game_id)
        if live is not None:
            return live

        with self._loading_lock(game_id):
            # somebody else may have finished loading while we waited
            live = self._lookup(game_id)
            if live is not None:
                return live

            self._assert_open()
            blob = self.store.load(game_id)
            try:
                session = self.codec.decode(blob, clock=self._clock)
            except CodecError:
                logger.error("Stored session %s failed integrity checks", game_id, exc_info=True)
                raise

            self._insert(session)
            logger.debug("Loaded game %s at revision %d", game_id, session.revision)
            return session

    def evict(self, game_id: str) -> None:
        """Persist the session and drop it from memory. No-op for games that are not live."""
        with self._loading_lock(game_id):
            session = self._lookup(game_id)
            if session is None:
                return

            with session.lock:
                self._persist(session)
                session.detach()
                with self._lock:
                    self._live.pop(game_id, None)
        logger.debug("Evicted game %s at revision %d", game_id, session.revision)

    def checkpoint(self, game_id: str) -> None:
        """Persist the live session without evicting it."""
        session = self.get_or_load(game_id)
        with session.lock:
            self._persist(session)

    # --- GAME ACTIONS ---
    def submit_move(self, game_id: str, move: Move, player: str) -> MoveOutcome:
        """Play a move on the game and persist when it ends (or when a checkpoint is due)."""
        return self.submit_move_and_read(game_id, move, player, lambda _session, outcome: outcome)

    def submit_move_and_read(
        self,
        game_id: str,
        move: Move,
        player: str,
        read: Callable[[GameSession, MoveOutcome], T],
    ) -> T:
        """
        Same as `submit_move()`, then `read` the session while still holding the lock the move was made under.
        What `read` sees is exactly the state this move produced.

        An instance can get evicted between fetching it and taking its lock. In that case fetch the game again.
        """
        while True:
            session = self.get_or_load(game_id)
            try:
                with session.lock:
                    outcome = session.submit_move(move, player)
                    if outcome.session_status.is_terminal or self._checkpoint_due(session):
                        self._persist(session)
                    return read(session, outcome)
            except SessionEvictedError:
                logger.debug("Game %s was evicted under us, reloading", game_id)

    def terminate(self, game_id: str, reason: str) -> GameSession:
        """Resignation / timeout: end the game and persist it."""
        while True:
            session = self.get_or_load(game_id)
            try:
                with session.lock:
                    session.terminate(reason)
                    self._persist(session)
                    logger.info("Game %s abandoned: %s", game_id, reason)
                    return session
            except SessionEvictedError:
                logger.debug("Game %s was evicted under us, reloading", game_id)

    # -- Internal helpers --
    def _lookup(self, game_id: str) -> Optional[GameSession]:
        with self._lock:
            return self._live.get(game_id)

    @contextmanager
    def _loading_lock(self, game_id: str) -> Iterator[None]:
        with self._lock:
            entry = self._loading_locks.setdefault(game_id, _LoadingLock())
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._lock:
                entry.users -= 1
                if entry.users == 0:
                    del self._loading_locks[game_id]

    def _insert(self, session: GameSession) -> None:
        """Make the session live, unless the registry was closed in the meantime (close() would never flush it)."""
        with self._lock:
            if self._closed:
                raise RuntimeError("Session registry is closed")
            self._live[session.game_id] = session

    def _assert_open(self) -> None:
        if self._closed:
            raise RuntimeError("Session registry is closed")

    def _checkpoint_due(self, session: GameSession) -> bool:
        return self.checkpoint_interval > 0 and session.revision % self.checkpoint_interval == 0

    def _persist(self, session: GameSession) -> None:
        """Write the session with optimistic concurrency. Caller holds the session lock."""
        if session.persisted_revision == session.revision:
            return
        blob = self.codec.encode(session)
        try:
            self.store.save(
                session.game_id,
                blob,
                expected_revision=session.persisted_revision,
                revision=session.revision,
                status=str(session.status),
            )
        except ConflictError:
            # this instance lost the race: drop it so the next access loads what is actually stored
            logger.warning("Conflict persisting game %s, dropping live instance", session.game_id)
            session.detach()
            with self._lock:
                if self._live.get(session.game_id) is session:
                    del self._live[session.game_id]
            raise
        session.persisted_revision = session.revision
        logger.debug(
            "Persisted game %s at revision %d (%d bytes)", session.game_id, session.revision, len(blob)
        )
