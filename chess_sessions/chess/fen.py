"""
Validation of FEN strings.

FEN, or Forsyth-Edwards Notation, is a standard notation for describing a particular board position of a chess game.

<board position string> <active color> <castling rights> <en passant square> <half move clock> <full move number>

ex) The standard starting position has a FEN
rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR w KQkq - 0 1
i.e. it is white to move, all castling options available, no en passant square, no half moves and we are in the first turn.
"""

from itertools import combinations
from string import ascii_lowercase

from chess_sessions.chess.castling import CASTLING_ORDER
from chess_sessions.chess.pieces import FEN_TO_PIECE
from chess_sessions.chess.square import BOARD_DIMENSIONS
from chess_sessions.core.exceptions import InvalidFENError

STARTING_FEN = "rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR w KQkq - 0 1"

# Every ordered subset of "KQkq", plus "-" when all rights have been revoked
VALID_CASTLING_ENCODINGS: set[str] = {"-"} | {
    "".join(direction.value for direction in subset)
    for size in range(1, len(CASTLING_ORDER) + 1)
    for subset in combinations(CASTLING_ORDER, size)
}


def split_fen(fen: str) -> list[str]:
    """Check the FEN and return its six space-separated fields. Raises InvalidFENError."""
    if not is_valid_fen(fen):
        raise InvalidFENError(f"Cannot interpret supplied string as FEN: {fen!r}")
    return fen.split(" ")


def is_valid_fen(fen: str) -> bool:
    """
    Check if given string follows proper FEN notation.

    NOTE only checks the syntax. Whether the position makes sense (one king per side etc.) is checked by the Position.
    """

    # there should be 6 parts to the string
    parts = fen.split(" ")
    if len(parts) != 6:
        return False

    position, color, castling, en_passant, half_move_counter, full_move_counter = parts
    return (
        is_valid_position(position)
        and is_valid_color_code(color)
        and is_valid_castling_rights(castling)
        and is_valid_en_passant(en_passant)
        and is_valid_move_counter(half_move_counter)
        and is_valid_move_counter(full_move_counter)
        and int(full_move_counter) >= 1
    )


def is_valid_position(position: str) -> bool:
    """Only check the part of the FEN encoding for the board position."""
    num_files, num_ranks = BOARD_DIMENSIONS
    rank_fens = position.split("/")
    if len(rank_fens) != num_ranks:
        return False

    for rank_fen in rank_fens:
        file_count = 0
        for character in rank_fen:
            # make sure every character is valid
            if character in "12345678":
                file_count += int(character)
            elif character.lower() in FEN_TO_PIECE:
                file_count += 1
            else:
                # immediately invalidate if the character is anything else
                return False

        # make sure you are creating a correctly sized board
        if file_count != num_files:
            return False
    return True


def is_valid_color_code(color: str) -> bool:
    return color in {"w", "b"}


def is_valid_castling_rights(castling: str) -> bool:
    """A valid castling encoding has either KQkq, KQk, etc. or a '-' if all rights have been revoked."""
    return castling in VALID_CASTLING_ENCODINGS


def is_valid_en_passant(en_passant: str) -> bool:
    """Valid en passant square encoding should be a square on the 3rd or 6th rank, or a '-'"""
    if en_passant == "-":
        return True
    return is_valid_square(en_passant) and en_passant[1] in {"3", "6"}


def is_valid_square(square: str) -> bool:
    """Valid square should be a letter for the file + a number for the rank"""
    num_files, num_ranks = BOARD_DIMENSIONS
    if len(square) != 2:
        return False

    file_char, rank_char = square[0], square[1]
    allowed_file_names = ascii_lowercase[:num_files]
    if file_char not in allowed_file_names:
        return False

    if not rank_char.isdigit():
        return False

    return 1 <= int(rank_char) <= num_ranks


def is_valid_move_counter(counter: str) -> bool:
    return counter.isdigit()
