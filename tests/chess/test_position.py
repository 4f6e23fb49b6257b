"""Unit tests for chess_sessions/chess/position.py"""

import pytest

from chess_sessions.chess.castling import CastlingDirection
from chess_sessions.chess.fen import STARTING_FEN
from chess_sessions.chess.pieces import Color
from chess_sessions.chess.position import Position
from chess_sessions.chess.square import Square
from chess_sessions.core.exceptions import InvalidFENError


@pytest.mark.parametrize(
    "fen",
    [
        STARTING_FEN,
        "rnbqkbnr/pp1ppppp/8/2p5/4P3/5N2/PPPP1PPP/RNBQKB1R b KQkq - 1 2",
        "r3k2r/pppq1ppp/2npbn2/4p3/2B1P3/2NP1N2/PPP2PPP/R1BQ1RK1 b kq - 3 9",
        "rnbqkbnr/ppp1pppp/8/8/3pP3/8/PPPP1PPP/RNBQKBNR b KQkq e3 0 3",
        "8/8/8/4k3/8/8/8/4K3 w - - 57 80",
    ],
)
def test_fen_parsing_roundtrip(fen: str) -> None:
    """Parse the FEN and convert it back."""
    assert Position.from_fen(fen).to_fen() == fen


def test_starting_position() -> None:
    position = Position.starting_position()

    assert position.to_fen() == STARTING_FEN
    assert position.color_to_move == Color.WHITE
    assert position.castling_rights == frozenset(CastlingDirection)
    assert position.en_passant_square is None
    assert position.half_move_clock == 0
    assert position.full_move_number == 1


@pytest.mark.parametrize("color_str, color", [("w", Color.WHITE), ("b", Color.BLACK)])
def test_color_to_move(color_str: str, color: Color) -> None:
    fen = f"4k3/8/8/8/8/8/8/4K3 {color_str} - - 0 1"
    assert Position.from_fen(fen).color_to_move == color


@pytest.mark.parametrize(
    "fen, expected_square",
    [
        ("4k3/8/8/8/8/8/8/4K3 w - - 0 1", None),
        ("4k3/8/8/8/4P3/8/8/4K3 b - e3 0 1", Square(5, 3)),
        ("4k3/8/8/2p5/8/8/8/4K3 w - c6 0 2", Square(3, 6)),
    ],
)
def test_en_passant_square(fen: str, expected_square: Square | None) -> None:
    assert Position.from_fen(fen).en_passant_square == expected_square


def test_move_counters() -> None:
    position = Position.from_fen("4k3/8/8/8/8/8/8/4K3 w - - 23 42")
    assert position.half_move_clock == 23
    assert position.full_move_number == 42


@pytest.mark.parametrize(
    "fen",
    [
        "8/8/8/8/8/8/8/8 w - - 0 1",  # no kings at all
        "4k3/8/8/8/8/8/8/8 w - - 0 1",  # white king missing
        "4k3/8/8/8/8/8/8/3KK3 w - - 0 1",  # two white kings
        "3kk3/8/8/8/8/8/8/4K3 b - - 0 1",  # two black kings
        "P3k3/8/8/8/8/8/8/4K3 w - - 0 1",  # pawn on the last rank
        "4k3/8/8/8/8/8/8/p3K3 w - - 0 1",  # pawn on the first rank
        "4k3/8/8/8/8/8/8/4R1K1 w - - 0 1",  # black king in check with white to move
        "4k3/8/8/8/8/8/4r3/4K3 b - - 0 1",  # white king in check with black to move
        "8/8/8/3Pk3/8/8/8/4K3 w - e6 0 1",  # no pawn in front of the en passant square
        "4k3/8/8/4p3/8/8/8/4K3 w - e3 0 1",  # en passant square on the wrong rank
        "4k3/8/4n3/4p3/8/8/8/4K3 w - e6 0 1",  # en passant square occupied
        "4k3/4p3/8/4p3/8/8/8/4K3 w - e6 0 1",  # pawn could not have come from e7
        "rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR x KQkq - 0 1",  # syntax error
    ],
)
def test_impossible_positions_are_rejected(fen: str) -> None:
    with pytest.raises(InvalidFENError):
        Position.from_fen(fen)


def test_positions_are_values() -> None:
    """Two parses of the same FEN are equal (and usable as dict keys)."""
    first = Position.from_fen(STARTING_FEN)
    second = Position.from_fen(STARTING_FEN)
    assert first == second
    assert {first: 1}[second] == 1
