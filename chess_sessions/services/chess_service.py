"""Orchestration of communication from an API router to the session registry (and the reverse direction)."""

from typing import Optional, Self

from chess_sessions.api.models import (
    CreateGameRequest,
    GameResponse,
    GetGameRequest,
    ImportPGNRequest,
    LegalMovesRequest,
    LegalMovesResponse,
    MoveRequest,
    ResignRequest,
)
from chess_sessions.chess.game import GameSession
from chess_sessions.chess.moves import Move
from chess_sessions.chess.pgn import export_pgn
from chess_sessions.chess.pieces import PieceType
from chess_sessions.chess.square import Square
from chess_sessions.core.config import Settings
from chess_sessions.core.exceptions import WrongTurnError
from chess_sessions.core.logging_config import setup_logging
from chess_sessions.db.database import create_session_factory
from chess_sessions.db.sql_store import SQLSessionStore
from chess_sessions.services.registry import SessionRegistry


def build_move(request: MoveRequest) -> Move:
    """Parse the data in a MoveRequest into a (tagless) Move. The rules engine resolves the rest."""
    return Move(
        from_square=Square.from_algebraic(request.from_square),
        to_square=Square.from_algebraic(request.to_square),
        promote_to=PieceType[request.promote_to.upper()] if request.promote_to else None,
    )


class ChessService:
    """Orchestration of layers for chess games."""

    def __init__(self, registry: SessionRegistry) -> None:
        self.registry = registry

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> Self:
        """Process start: logging, database, store and registry wired up from the (environment) settings."""
        settings = settings or Settings.from_env()
        setup_logging(settings.log_level, settings.log_format)
        store = SQLSessionStore(create_session_factory(settings))
        return cls(SessionRegistry.from_settings(store, settings))

    def close(self) -> None:
        self.registry.close()

    # -- API routes logic ---
    def create_new_game(self, request: CreateGameRequest) -> GameResponse:
        session = self.registry.create_game(
            white_player=request.white_player,
            black_player=request.black_player,
            starting_fen=request.starting_fen,
        )
        return self._create_game_response(session)

    def get_game_state(self, request: GetGameRequest) -> GameResponse:
        """
        Retrieve current game state.
        ----
        Used in "polling" loop by frontend to check when it is the player's turn for instance.
        """
        session = self.registry.get_or_load(request.game_id)
        return self._create_game_response(session)

    def legal_moves(self, request: LegalMovesRequest) -> LegalMovesResponse:
        """retrieve set of legal moves."""
        session = self.registry.get_or_load(request.game_id)
        moves = session.legal_moves(request.player_name)
        color = session.player_color(request.player_name)
        assert color is not None, "legal_moves() only succeeds for the player to move"
        return LegalMovesResponse(
            game_id=request.game_id,
            player_name=request.player_name,
            color=color.name.lower(),
            legal_moves=[move.to_uci() for move in moves],
        )

    def make_move(self, request: MoveRequest) -> GameResponse:
        """Make a move attempt. The response shows the game right after this move, not after whatever came next."""
        return self.registry.submit_move_and_read(
            request.game_id,
            build_move(request),
            request.player_name,
            lambda session, _outcome: self._create_game_response(session),
        )

    def resign(self, request: ResignRequest) -> GameResponse:
        """Only the players of a game can resign it."""
        session = self.registry.get_or_load(request.game_id)
        if session.player_color(request.player_name) is None:
            raise WrongTurnError(f"{request.player_name} is not playing game {request.game_id}.")
        session = self.registry.terminate(request.game_id, reason=f"{request.player_name} resigned")
        return self._create_game_response(session)

    def export_pgn(self, request: GetGameRequest) -> str:
        session = self.registry.get_or_load(request.game_id)
        return export_pgn(session)

    def import_pgn(self, request: ImportPGNRequest) -> list[GameResponse]:
        """
        Import one or more PGN games as new games.
        ----
        All games are replayed before any is stored: one broken game rejects the whole upload.
        """
        sessions = self.registry.import_pgn(
            request.pgn, white_player=request.white_player, black_player=request.black_player
        )
        return [self._create_game_response(session) for session in sessions]

    # -- Internal helpers --
    def _create_game_response(self, session: GameSession) -> GameResponse:
        """Convert a (consistent snapshot of the) session into a GameResponse."""
        with session.lock:
            return GameResponse(
                game_id=session.game_id,
                players={color.name.lower(): name for color, name in session.players.items()},
                fen_state=session.position.to_fen(),
                starting_state=session.initial_position.to_fen(),
                move_history=[move.to_uci() for move in session.moves],
                status=session.status,
                position_status=session.position_status,
                revision=session.revision,
                winner=session.winner,
                abandon_reason=session.abandon_reason,
                last_move_at=session.history[-1].timestamp if session.history else None,
            )
