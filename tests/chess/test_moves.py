"""Unit tests for chess_sessions/chess/moves.py"""

from unittest.mock import patch

import pytest

import chess_sessions.chess.moves as mv
from chess_sessions.chess.board import Board
from chess_sessions.chess.moves import (
    DIAGONALS,
    STRAIGHTS,
    Move,
    MoveTag,
    candidate_bishop_moves,
    candidate_king_moves,
    candidate_knight_moves,
    candidate_pawn_moves,
    candidate_queen_moves,
    candidate_rook_moves,
    en_passant_moves,
    is_attacked_by_king,
    is_attacked_by_knight,
    is_attacked_by_pawn,
    is_pawn_move_to_promotion_square,
    is_square_attacked,
    pawn_moves_w_promotion,
    raycasting_attack,
    raycasting_move,
    single_step_attack,
    single_step_move,
)
from chess_sessions.chess.pieces import Color, Piece, PieceType
from chess_sessions.chess.square import BOARD_DIMENSIONS, Square


def board_with(**placements: str) -> Board:
    """ex. board_with(d4="Q", e5="p"): white queen on d4, black pawn on e5"""
    return Board.empty().with_changes(
        {Square.from_algebraic(name): Piece.from_fen(char) for name, char in placements.items()}
    )


def uci_set(moves: list[Move]) -> set[str]:
    return {move.to_uci() for move in moves}


sq = Square.from_algebraic


# -- MOVE CREATION, ENCODING/DECODING UCI NOTATION ---
@pytest.mark.parametrize(
    "uci_move, from_uci, to_uci",
    [
        ("e2e4", "e2", "e4"),
        ("a1a5", "a1", "a5"),
        ("d2e4", "d2", "e4"),
        ("g3a7", "g3", "a7"),
    ],
)
def test_creating_move_from_uci(uci_move: str, from_uci: str, to_uci: str) -> None:
    """Creating logic / parsing of UCI notation for the move should be <from_square><to_square>"""
    move = Move.from_uci(uci_move)
    assert move.from_square == sq(from_uci)
    assert move.to_square == sq(to_uci)
    assert move.promote_to is None
    assert move.tag is None
    assert move.to_uci() == uci_move


def test_creating_move_incl_promotion() -> None:
    """Creation logic including promotion"""
    move = Move.from_uci("e7e8q")
    assert move.from_square == sq("e7")
    assert move.to_square == sq("e8")
    assert move.promote_to == PieceType.QUEEN
    assert move.to_uci() == "e7e8q"


@pytest.mark.parametrize("uci_move", ["e2", "e2e4e6", "e2e9", "i2i4", "e2e4x"])
def test_invalid_uci(uci_move: str) -> None:
    with pytest.raises((ValueError, KeyError)):
        Move.from_uci(uci_move)


def test_same_squares_ignores_tag() -> None:
    plain = Move(sq("e1"), sq("g1"))
    castle = Move(sq("e1"), sq("g1"), tag=MoveTag.CASTLE)
    assert plain.same_squares(castle)
    assert plain != castle
    assert not plain.same_squares(Move(sq("e1"), sq("f1")))


# --- MOVEMENT RULES ---
def test_raycasting_move_empty_board() -> None:
    """On an empty board, movements should be unrestricted. Should only be restricted by board dimensions"""
    board = board_with(a5="R")
    starting_square = sq("a5")
    horizontal_moves = [(1, 0), (-1, 0)]
    moves = raycasting_move(starting_square, board, horizontal_moves)
    assert len(moves) == BOARD_DIMENSIONS[0] - 1
    assert all(move.to_square.rank == starting_square.rank for move in moves)

    vertical_moves = [(0, 1), (0, -1)]
    moves = raycasting_move(starting_square, board, vertical_moves)
    assert len(moves) == BOARD_DIMENSIONS[1] - 1
    assert all(move.to_square.file == starting_square.file for move in moves)


def test_raycasting_move_w_enemy_blocker() -> None:
    """
    When running into enemy piece, still include in list of moves

    NOTE: The piece type does not matter here, only the color.
    """
    board = board_with(d2="P", d5="p")
    moves = raycasting_move(sq("d2"), board, [(0, 1), (0, -1)])
    assert uci_set(moves) == {"d2d1", "d2d3", "d2d4", "d2d5"}

    # Similar test for diagonal moves. Enemy piece is placed on f4 (same diagonal as d2)
    board = board_with(d2="B", f4="p")
    moves = raycasting_move(sq("d2"), board, DIAGONALS)
    assert uci_set(moves) == {"d2c1", "d2e3", "d2f4", "d2c3", "d2b4", "d2a5", "d2e1"}


def test_raycasting_move_w_friendly_blocker() -> None:
    """Own pieces block, and cannot be captured"""
    board = board_with(d2="R", d5="N", f2="P")
    moves = raycasting_move(sq("d2"), board, STRAIGHTS)
    assert uci_set(moves) == {
        "d2d1",
        "d2d3",
        "d2d4",
        "d2e2",
        "d2c2",
        "d2b2",
        "d2a2",
    }


def test_single_step_move() -> None:
    board = board_with(a1="K", b2="P", a2="n")
    moves = single_step_move(sq("a1"), board, [(0, 1), (1, 0), (1, 1), (-1, 0), (0, -1)])
    # off the board ignored, own pawn on b2 blocks, enemy knight on a2 can be taken
    assert uci_set(moves) == {"a1a2", "a1b1"}


def test_candidate_bishop_moves() -> None:
    board = board_with(c1="B", e3="P")
    assert uci_set(candidate_bishop_moves(sq("c1"), board)) == {"c1d2", "c1b2", "c1a3"}


def test_candidate_rook_moves() -> None:
    board = board_with(h1="R", h3="p", f1="K")
    assert uci_set(candidate_rook_moves(sq("h1"), board)) == {"h1g1", "h1h2", "h1h3"}


def test_candidate_queen_moves() -> None:
    """Rook and bishop moves combined: 27 squares from the center of an empty board"""
    board = board_with(d4="Q")
    assert len(candidate_queen_moves(sq("d4"), board)) == 27


def test_candidate_knight_moves() -> None:
    board = board_with(b1="N", d2="P", c3="p")
    assert uci_set(candidate_knight_moves(sq("b1"), board)) == {"b1a3", "b1c3"}

    board = board_with(e5="n")
    assert len(candidate_knight_moves(sq("e5"), board)) == 8


def test_candidate_king_moves() -> None:
    """Castling is not part of the candidate king moves"""
    board = board_with(e1="K", h1="R", a1="R")
    assert uci_set(candidate_king_moves(sq("e1"), board)) == {
        "e1d1",
        "e1f1",
        "e1d2",
        "e1e2",
        "e1f2",
    }


def test_white_pawn_push() -> None:
    """Single and double step from the starting rank. The double step is tagged."""
    moves = candidate_pawn_moves(sq("e2"), board_with(e2="P"))
    assert uci_set(moves) == {"e2e3", "e2e4"}
    assert Move(sq("e2"), sq("e4"), tag=MoveTag.DOUBLE_PAWN_PUSH) in moves

    # not on the starting rank anymore
    moves = candidate_pawn_moves(sq("e3"), board_with(e3="P"))
    assert uci_set(moves) == {"e3e4"}


def test_black_pawn_push() -> None:
    moves = candidate_pawn_moves(sq("d7"), board_with(d7="p"))
    assert uci_set(moves) == {"d7d6", "d7d5"}


def test_blocked_pawn() -> None:
    """A blocked pawn cannot jump over a piece either"""
    assert candidate_pawn_moves(sq("e2"), board_with(e2="P", e3="n")) == []
    assert uci_set(candidate_pawn_moves(sq("e2"), board_with(e2="P", e4="n"))) == {"e2e3"}


def test_white_pawn_takes() -> None:
    """Diagonally forward, only enemy pieces"""
    board = board_with(d4="P", c5="p", e5="N", d5="p")
    assert uci_set(candidate_pawn_moves(sq("d4"), board)) == {"d4c5"}


def test_black_pawn_takes() -> None:
    board = board_with(d4="p", c3="P", e3="P")
    assert uci_set(candidate_pawn_moves(sq("d4"), board)) == {"d4d3", "d4e3", "d4c3"}


# --- ATTACK RULES ---
def test_raycasting_attack_empty_board() -> None:
    """Sanity check: with the board empty, no square should be under attack."""
    board = Board.empty()
    a5 = sq("a5")
    assert not raycasting_attack(a5, Color.WHITE, (PieceType.ROOK,), board, STRAIGHTS)
    assert not raycasting_attack(a5, Color.BLACK, (PieceType.BISHOP,), board, DIAGONALS)


def test_raycasting_attack_w_attacker_on_same_file() -> None:
    """
    Black rook on A8 should be able to attack squares on the a-file, or on the 8th rank.
    Test that raycasting algorithm correctly finds the enemy piece on the file, that is of the correct type and color.
    """
    board = board_with(a8="r")
    a5 = sq("a5")
    on_same_rank = [(1, 0), (-1, 0)]
    on_same_file = [(0, 1), (0, -1)]

    # a5 is under attack by a8:
    assert raycasting_attack(a5, Color.BLACK, (PieceType.ROOK,), board, on_same_file)

    # a5 is not under attack by anything on the 5th rank
    assert not raycasting_attack(a5, Color.BLACK, (PieceType.ROOK,), board, on_same_rank)

    # a5 is under attack by a BLACK rook
    assert not raycasting_attack(a5, Color.WHITE, (PieceType.ROOK,), board, on_same_file)

    # a5 is under attack by a black ROOK
    assert not raycasting_attack(a5, Color.BLACK, (PieceType.QUEEN,), board, on_same_file)


@pytest.mark.parametrize("blocker", ["P", "p"])
def test_raycasting_attack_w_blocker(blocker: str) -> None:
    """Any piece in between (own or enemy) blocks the line of sight"""
    board = board_with(a8="r", a6=blocker)
    assert not raycasting_attack(sq("a5"), Color.BLACK, (PieceType.ROOK,), board, STRAIGHTS)


def test_raycasting_attack_along_diagonal() -> None:
    board = board_with(h8="q", a1="K")
    assert raycasting_attack(
        sq("a1"), Color.BLACK, (PieceType.BISHOP, PieceType.QUEEN), board, DIAGONALS
    )
    assert not raycasting_attack(sq("a1"), Color.BLACK, (PieceType.BISHOP,), board, DIAGONALS)


def test_single_step_attack_blocker_does_not_matter() -> None:
    """Knights jump"""
    board = board_with(b1="N", b2="p", c2="p", a2="p", d2="p", c3="p")
    assert single_step_attack(sq("c3"), Color.WHITE, PieceType.KNIGHT, board, mv.KNIGHT_DELTAS)
    assert is_attacked_by_knight(sq("a3"), Color.WHITE, board)
    assert not is_attacked_by_knight(sq("b3"), Color.WHITE, board)


def test_king_attack() -> None:
    board = board_with(b2="k")
    assert is_attacked_by_king(sq("a1"), Color.BLACK, board)
    assert not is_attacked_by_king(sq("a1"), Color.WHITE, board)
    assert not is_attacked_by_king(sq("d4"), Color.BLACK, board)


def test_white_pawn_attack() -> None:
    """Test methods are called correctly + white pawns take diagonally while moving UP the board"""
    board = board_with(b2="P")
    c3 = sq("c3")

    white_pawn_take = [(-1, 1), (1, 1)]
    inverse_takes = [(f * -1, r * -1) for (f, r) in white_pawn_take]

    # check wiring
    with patch.object(mv, "single_step_attack") as mock_single_step:
        is_attacked_by_pawn(c3, Color.WHITE, board)
        mock_single_step.assert_called_once_with(
            c3, Color.WHITE, PieceType.PAWN, board, inverse_takes
        )

    # ensure behavior is correct:
    assert is_attacked_by_pawn(c3, Color.WHITE, board)
    # pawns do not attack straight ahead or backwards
    assert not is_attacked_by_pawn(sq("b3"), Color.WHITE, board)
    assert not is_attacked_by_pawn(sq("c1"), Color.WHITE, board)


def test_black_pawn_attack() -> None:
    """black pawns take diagonally while moving DOWN the board"""
    board = board_with(d4="p")
    c3 = sq("c3")

    black_pawn_take = [(-1, -1), (1, -1)]
    inverse_takes = [(f * -1, r * -1) for (f, r) in black_pawn_take]

    with patch.object(mv, "single_step_attack") as mock_single_step:
        is_attacked_by_pawn(c3, Color.BLACK, board)
        mock_single_step.assert_called_once_with(
            c3, Color.BLACK, PieceType.PAWN, board, inverse_takes
        )

    assert is_attacked_by_pawn(c3, Color.BLACK, board)
    assert not is_attacked_by_pawn(sq("c5"), Color.BLACK, board)


def test_is_square_attacked_combines_all_rules() -> None:
    board = board_with(a1="R", h8="b", e4="N")
    assert is_square_attacked(sq("a7"), Color.WHITE, board)  # rook along the file
    assert is_square_attacked(sq("f6"), Color.WHITE, board)  # knight
    assert is_square_attacked(sq("b2"), Color.BLACK, board)  # bishop along the long diagonal
    assert not is_square_attacked(sq("b2"), Color.WHITE, board)


# -- EN PASSANT / PROMOTION --
def test_en_passant_moves() -> None:
    """Pawns on either side of the pawn that just double-stepped may take it"""
    board = board_with(d5="P", f5="P", e5="p", h5="P")
    moves = en_passant_moves(sq("e6"), Color.WHITE, board)
    assert uci_set(moves) == {"d5e6", "f5e6"}
    assert all(move.tag == MoveTag.EN_PASSANT for move in moves)


def test_no_en_passant_for_wrong_pieces() -> None:
    board = board_with(d4="N", f4="P", e4="P")
    assert en_passant_moves(sq("e3"), Color.BLACK, board) == []


def test_promotion_expansion() -> None:
    board = board_with(a7="P", b2="R")
    push = Move(sq("a7"), sq("a8"))
    assert is_pawn_move_to_promotion_square(push, board)
    assert not is_pawn_move_to_promotion_square(Move(sq("b2"), sq("b8")), board)

    promotions = pawn_moves_w_promotion(push)
    assert {move.promote_to for move in promotions} == {
        PieceType.KNIGHT,
        PieceType.BISHOP,
        PieceType.ROOK,
        PieceType.QUEEN,
    }
    assert uci_set(promotions) == {"a7a8n", "a7a8b", "a7a8r", "a7a8q"}
