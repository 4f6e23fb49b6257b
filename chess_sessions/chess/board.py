"""The board: an immutable mapping of squares to (optional) pieces."""

from dataclasses import dataclass
from typing import Iterator, Optional, Self

from chess_sessions.chess.pieces import Color, Piece, PieceType
from chess_sessions.chess.square import ALL_SQUARES, BOARD_DIMENSIONS, NUM_SQUARES, Square


@dataclass(frozen=True)
class Board:
    # one entry per square, indexed by Square.index (a1, b1, ..., h8)
    squares: tuple[Optional[Piece], ...]

    def __post_init__(self) -> None:
        if len(self.squares) != NUM_SQUARES:
            raise ValueError(f"Board needs {NUM_SQUARES} squares, got {len(self.squares)}")

    @classmethod
    def empty(cls) -> Self:
        return cls((None,) * NUM_SQUARES)

    @classmethod
    def from_fen(cls, fen_str: str) -> Self:
        """Construct a board using a given FEN string.

        That is, we supply the first part of the FEN string that denotes the board position
        ex. standard starting position:
        rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR
        means:
        * black pieces are on the 8th rank, starting with rook on a8, knight on b8, etc.
        * pawns cover 7th rank entirely
        * ranks 6 through 3 have 8 consecutive empty squares
        * rank 2 are the white pawns (capital letters)
        * 1st rank are the white pieces.
        """
        squares: list[Optional[Piece]] = [None] * NUM_SQUARES
        fen_by_ranks = fen_str.split("/")
        for rank_idx, fen_one_rank in enumerate(fen_by_ranks):
            # FEN string is read from top rank (8th) to bottom rank (1st)
            rank = BOARD_DIMENSIONS[1] - rank_idx
            # ... but the first character is the a-file, so reads in normal direction
            file = 1
            for character in fen_one_rank:
                if character.isalpha():
                    squares[Square(file, rank).index] = Piece.from_fen(character)
                    file += 1
                else:
                    # A number denotes the amount of empty squares after each other
                    file += int(character)
        return cls(tuple(squares))

    def to_fen(self) -> str:
        """Ranks are separated by slashes in FEN string."""
        return "/".join(
            self._rank_to_fen(rank) for rank in range(BOARD_DIMENSIONS[1], 0, -1)
        )

    def _rank_to_fen(self, rank: int) -> str:
        """FEN string of a single rank"""
        fen_characters: list[str] = []
        empty_count = 0
        for file in range(1, BOARD_DIMENSIONS[0] + 1):
            piece = self.piece(Square(file, rank))

            if piece is not None:
                if empty_count > 0:
                    fen_characters.append(str(empty_count))
                    empty_count = 0
                fen_characters.append(piece.to_fen())
            else:
                empty_count += 1

        # if the entire rank is empty, then we still place this number in the string
        if empty_count > 0:
            fen_characters.append(str(empty_count))
        return "".join(fen_characters)

    def piece(self, square: Square) -> Optional[Piece]:
        return self.squares[square.index]

    def is_empty(self, square: Square) -> bool:
        return self.squares[square.index] is None

    def pieces(self) -> Iterator[tuple[Square, Piece]]:
        for square in ALL_SQUARES:
            piece = self.squares[square.index]
            if piece is not None:
                yield square, piece

    def locate_pieces(self, piece: Piece) -> list[Square]:
        return [square for square, found in self.pieces() if found == piece]

    def locate_color(self, color: Color) -> list[Square]:
        return [square for square, piece in self.pieces() if piece.color == color]

    def king_square(self, color: Color) -> Optional[Square]:
        kings = self.locate_pieces(Piece(PieceType.KING, color))
        return kings[0] if kings else None

    # --- TRANSITIONS: never mutate, always hand back a new Board ---
    def with_changes(self, changes: dict[Square, Optional[Piece]]) -> Self:
        squares = list(self.squares)
        for square, piece in changes.items():
            squares[square.index] = piece
        return type(self)(tuple(squares))

    def with_piece_moved(self, from_square: Square, to_square: Square) -> Self:
        """Move whatever stands on from_square to to_square (capturing what was there)."""
        return self.with_changes({from_square: None, to_square: self.piece(from_square)})
