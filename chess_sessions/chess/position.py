"""
Representation of a single position: everything that can be encoded in a FEN string.

Positions are immutable. The rules engine produces a new Position for every move.
"""

from dataclasses import dataclass
from typing import Optional, Self

from chess_sessions.chess.board import Board
from chess_sessions.chess.castling import (
    CastlingDirection,
    castling_from_fen,
    castling_to_fen,
)
from chess_sessions.chess.fen import STARTING_FEN, split_fen
from chess_sessions.chess.moves import is_square_attacked, pawn_direction
from chess_sessions.chess.pieces import Color, Piece, PieceType
from chess_sessions.chess.square import BOARD_DIMENSIONS, Square
from chess_sessions.core.exceptions import InvalidFENError


@dataclass(frozen=True)
class Position:
    """
    * The board: which piece stands where
    * The active color: whose turn it is
    * Castling rights: revoked during the game, never regained
    * The en passant square: the square a pawn passed over with a double push in the previous move (None otherwise)
    * The half move clock: moves made since the last pawn move or capture (fifty-move rule)
    * The full move number: starts at 1 and increments after every move black makes.
    """

    board: Board
    color_to_move: Color
    castling_rights: frozenset[CastlingDirection]
    en_passant_square: Optional[Square]
    half_move_clock: int
    full_move_number: int

    @classmethod
    def from_fen(cls, fen: str) -> Self:
        """Parse the FEN into a Position. Raises InvalidFENError for syntax errors as well as impossible positions."""
        (
            placement,
            active_color,
            castling_str,
            en_passant_algebraic,
            half_move_clock,
            full_move_number,
        ) = split_fen(fen)

        position = cls(
            board=Board.from_fen(placement),
            color_to_move=Color.WHITE if active_color == "w" else Color.BLACK,
            castling_rights=castling_from_fen(castling_str),
            en_passant_square=(
                Square.from_algebraic(en_passant_algebraic)
                if en_passant_algebraic != "-"
                else None
            ),
            half_move_clock=int(half_move_clock),
            full_move_number=int(full_move_number),
        )
        position._assert_consistent()
        return position

    @classmethod
    def starting_position(cls) -> Self:
        return cls.from_fen(STARTING_FEN)

    def to_fen(self) -> str:
        """reverse operation: write a FEN from the given data"""
        active_color = "w" if self.color_to_move == Color.WHITE else "b"
        castling_str = castling_to_fen(self.castling_rights)
        en_passant_algebraic = (
            self.en_passant_square.to_algebraic()
            if self.en_passant_square is not None
            else "-"
        )
        return (
            f"{self.board.to_fen()} {active_color} {castling_str} "
            f"{en_passant_algebraic} {self.half_move_clock} {self.full_move_number}"
        )

    def piece(self, square: Square) -> Optional[Piece]:
        return self.board.piece(square)

    def _assert_consistent(self) -> None:
        """A FEN can be syntactically fine and still describe something that can never occur in a game."""
        for color in Color:
            num_kings = len(self.board.locate_pieces(Piece(PieceType.KING, color)))
            if num_kings != 1:
                raise InvalidFENError(
                    f"Position needs exactly one {color.name.lower()} king, found {num_kings}: {self.to_fen()}"
                )

        for square, piece in self.board.pieces():
            if piece.type == PieceType.PAWN and square.rank in (1, BOARD_DIMENSIONS[1]):
                raise InvalidFENError(
                    f"Pawn on {square.to_algebraic()} cannot stand on the first or last rank: {self.to_fen()}"
                )

        # the side that just moved cannot have left its own king in check
        waiting_color = self.color_to_move.opponent
        waiting_king = self.board.king_square(waiting_color)
        assert waiting_king is not None
        if is_square_attacked(waiting_king, self.color_to_move, self.board):
            raise InvalidFENError(
                f"The {waiting_color.name.lower()} king is in check while it is not its turn: {self.to_fen()}"
            )

        if self.en_passant_square is not None:
            self._assert_en_passant_consistent(self.en_passant_square)

    def _assert_en_passant_consistent(self, square: Square) -> None:
        """
        The en passant square is the one an enemy pawn just skipped over:
        * on the 6th rank when white is to move (3rd rank for black)
        * empty, and so is the square that pawn came from
        * the pawn itself stands right in front of it
        """
        forward = pawn_direction(self.color_to_move)
        expected_rank = 6 if self.color_to_move == Color.WHITE else 3
        pushed_pawn = Piece(PieceType.PAWN, self.color_to_move.opponent)
        if (
            square.rank != expected_rank
            or not self.board.is_empty(square)
            or not self.board.is_empty(square.offset(0, forward))
            or self.board.piece(square.offset(0, -forward)) != pushed_pawn
        ):
            raise InvalidFENError(
                f"En passant square {square.to_algebraic()} does not follow a double pawn push: {self.to_fen()}"
            )
