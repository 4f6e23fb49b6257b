"""
The GameSession is the entrypoint into the domain layer for the service layer.

It owns the authoritative state of one game and moves it forward one (legal) move at a time.
All rule checking is delegated to the rules module; the session only keeps track of
whose turn it is, what happened so far, and whether the game is over.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional, Self
from uuid import uuid4

from chess_sessions.chess import rules
from chess_sessions.chess.moves import Move
from chess_sessions.chess.pieces import Color
from chess_sessions.chess.position import Position
from chess_sessions.core.exceptions import (
    GameStateError,
    GameTerminatedError,
    SessionEvictedError,
    WrongTurnError,
)
from chess_sessions.core.shared_types import PositionStatus, SessionStatus

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class HistoryEntry:
    """One played move: the move as applied (tag filled in), the position it produced, and when it happened."""

    move: Move
    position: Position
    timestamp: datetime


@dataclass(frozen=True)
class MoveOutcome:
    """What the caller gets back after a successful move (to decide on persistence / notifications)."""

    move: Move
    position: Position
    position_status: PositionStatus
    session_status: SessionStatus
    revision: int


def session_status_for(position_status: PositionStatus, mover: Color) -> SessionStatus:
    """
    Translate the rules engine's verdict into a session status.

    NOTE: `mover` is the side that just made the move. Checkmate means the mover won.
    """
    if position_status == PositionStatus.CHECKMATE:
        return (
            SessionStatus.CHECKMATE_WHITE_WINS
            if mover == Color.WHITE
            else SessionStatus.CHECKMATE_BLACK_WINS
        )
    if position_status == PositionStatus.STALEMATE:
        return SessionStatus.STALEMATE_DRAW
    if position_status.is_draw:
        return SessionStatus.RULE_DRAW
    return SessionStatus.IN_PROGRESS


class GameSession:
    """
    Authoritative, mutable record of one game.
    ----

    Mutated only by `submit_move()` and `terminate()`. Both run entirely while holding the session lock,
    so two moves can never be applied at the same time and the status always reflects the latest move.
    """

    def __init__(
        self,
        game_id: str,
        white_player: str,
        black_player: str,
        initial_position: Optional[Position] = None,
        created_at: Optional[datetime] = None,
        clock: Clock = utc_now,
    ) -> None:
        if white_player == black_player:
            raise GameStateError(f"A player cannot play against themselves: {white_player!r}")

        self.game_id = game_id
        self.players: dict[Color, str] = {Color.WHITE: white_player, Color.BLACK: black_player}
        self.initial_position = initial_position or Position.starting_position()
        self.created_at = created_at or clock()
        self.history: list[HistoryEntry] = []
        self.status = SessionStatus.IN_PROGRESS
        self.position_status = rules.status(self.initial_position)
        self.revision = 0
        self.abandon_reason: Optional[str] = None
        # revision last written to the store (None: never persisted)
        self.persisted_revision: Optional[int] = None

        self.lock = threading.RLock()
        self._clock = clock
        self._detached = False

        # A custom starting position may already be decided
        if self.position_status.is_terminal:
            self.status = session_status_for(
                self.position_status, self.initial_position.color_to_move.opponent
            )

    @classmethod
    def new_game(
        cls,
        white_player: str,
        black_player: str,
        starting_fen: Optional[str] = None,
        game_id: Optional[str] = None,
        clock: Clock = utc_now,
    ) -> Self:
        """Start a new game, from the standard starting position unless a FEN is given."""
        initial_position = Position.from_fen(starting_fen) if starting_fen else None
        return cls(
            game_id=game_id or str(uuid4()),
            white_player=white_player,
            black_player=black_player,
            initial_position=initial_position,
            clock=clock,
        )

    # --- READ ACCESS ---
    @property
    def position(self) -> Position:
        """Current position: the one produced by the last move (or the initial one)"""
        return self.history[-1].position if self.history else self.initial_position

    @property
    def moves(self) -> list[Move]:
        return [entry.move for entry in self.history]

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def is_detached(self) -> bool:
        return self._detached

    @property
    def winner(self) -> Optional[str]:
        """Only checkmate produces a winner. Abandonment is judged outside the session."""
        if self.status == SessionStatus.CHECKMATE_WHITE_WINS:
            return self.players[Color.WHITE]
        if self.status == SessionStatus.CHECKMATE_BLACK_WINS:
            return self.players[Color.BLACK]
        return None

    def player_color(self, player: str) -> Optional[Color]:
        return next((color for color, name in self.players.items() if name == player), None)

    def positions_since_irreversible_move(self) -> list[Position]:
        """
        The earlier positions that could still be repeated by the current one.

        A capture or pawn move resets the half move clock, and nothing before it can ever occur again.
        """
        all_positions = [self.initial_position] + [entry.position for entry in self.history]
        earlier = all_positions[:-1]
        lookback = self.position.half_move_clock
        return earlier[-lookback:] if lookback else []

    def legal_moves(self, player: str) -> list[Move]:
        """
        Legal moves for the requesting player.

        Separates generating the legal move set (e.g. to display to the user) from selecting a move to make.
        """
        with self.lock:
            self._assert_in_progress()
            self._assert_your_turn(player)
            return sorted(rules.legal_moves(self.position), key=Move.to_uci)

    # --- MUTATIONS ---
    def submit_move(self, move: Move, submitting_player: str) -> MoveOutcome:
        """
        Attempt to make a move
        -----

        1. the game must still be in progress
        2. it must be the submitting player's turn
        3. the rules engine must accept the move (IllegalMoveError propagates, nothing changes)
        4. record the move, bump the revision, and re-evaluate the status of the game
        """
        with self.lock:
            self._assert_attached()
            self._assert_in_progress()
            self._assert_your_turn(submitting_player)

            before = self.position
            resolved, after = rules.play(before, move)

            self.history.append(HistoryEntry(resolved, after, self._clock()))
            self.revision += 1

            self.position_status = rules.status(after, self.positions_since_irreversible_move())
            new_status = session_status_for(self.position_status, before.color_to_move)
            if new_status.is_terminal:
                self._change_status(new_status)

            return MoveOutcome(
                move=resolved,
                position=after,
                position_status=self.position_status,
                session_status=self.status,
                revision=self.revision,
            )

    def terminate(self, reason: str) -> None:
        """
        External trigger (resignation, timeout) ending the game without a move.

        Raises GameTerminatedError if the game is already over, leaving everything untouched.
        """
        with self.lock:
            self._assert_attached()
            self._assert_in_progress()
            self.abandon_reason = reason
            self.revision += 1
            self._change_status(SessionStatus.ABANDONED)

    def detach(self) -> None:
        """Called by the registry on eviction: this instance must not accept mutations anymore."""
        with self.lock:
            self._detached = True

    # -- PRIVATE HELPERS ---
    def _change_status(self, new_status: SessionStatus) -> None:
        logger.info(
            "Game %s: %s -> %s after %d moves", self.game_id, self.status, new_status, len(self.history)
        )
        self.status = new_status

    def _assert_attached(self) -> None:
        if self._detached:
            raise SessionEvictedError(f"Game {self.game_id} was evicted from memory. Load it again.")

    def _assert_in_progress(self) -> None:
        if self.is_terminal:
            raise GameTerminatedError(f"Game {self.game_id} is over. status: {self.status}")

    def _assert_your_turn(self, player: str) -> None:
        """You must wait for your turn before calculating legal moves / making a move."""
        player_to_move = self.players[self.position.color_to_move]
        if player != player_to_move:
            raise WrongTurnError(
                f"It is not your turn. Waiting for player {player_to_move} to make a move first."
            )
