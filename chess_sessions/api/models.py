"""Requests and Response models"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from chess_sessions.chess.fen import is_valid_fen, is_valid_square
from chess_sessions.core.shared_types import PositionStatus, SessionStatus

PieceColor = str
PlayerName = str

PROMOTION_CHOICES = {"knight", "bishop", "rook", "queen"}


# --- REQUEST MODELS ---
class CreateGameRequest(BaseModel):
    white_player: PlayerName
    black_player: PlayerName
    starting_fen: Optional[str] = None

    @field_validator("starting_fen")
    @classmethod
    def validate_starting_fen(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value

        value = value.strip()
        if not is_valid_fen(value):
            raise ValueError(f"Cannot interpret {value!r} as a FEN string.")
        return value


class MoveRequest(BaseModel):
    game_id: str
    player_name: PlayerName
    from_square: str
    to_square: str
    promote_to: Optional[str] = None

    @field_validator("from_square", "to_square")
    @classmethod
    def validate_square(cls, value: str) -> str:
        if not is_valid_square(value):
            raise ValueError(f"Cannot interpret {value!r} as a valid square name.")
        return value

    @field_validator("promote_to")
    @classmethod
    def validate_promotion(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        if value.lower() not in PROMOTION_CHOICES:
            raise ValueError(
                f"Cannot promote to {value!r}. Pick one from {', '.join(sorted(PROMOTION_CHOICES))}."
            )
        return value.lower()


class ResignRequest(BaseModel):
    game_id: str
    player_name: PlayerName


class GetGameRequest(BaseModel):
    game_id: str


class LegalMovesRequest(BaseModel):
    game_id: str
    player_name: PlayerName


class ImportPGNRequest(BaseModel):
    pgn: str
    white_player: Optional[PlayerName] = None
    black_player: Optional[PlayerName] = None

    @field_validator("pgn")
    @classmethod
    def validate_pgn(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("PGN text is empty.")
        return value


# --- RESPONSE MODELS ---
class GameResponse(BaseModel):
    game_id: str
    players: dict[PieceColor, PlayerName]
    fen_state: str
    starting_state: str
    move_history: list[str]
    status: SessionStatus
    position_status: PositionStatus
    revision: int
    winner: Optional[PlayerName] = None
    abandon_reason: Optional[str] = None
    last_move_at: Optional[datetime] = None


class LegalMovesResponse(BaseModel):
    game_id: str
    player_name: PlayerName
    color: PieceColor
    legal_moves: list[str]
