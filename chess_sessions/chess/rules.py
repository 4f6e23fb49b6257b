"""
The rules engine.

Pure functions over immutable Positions:
* `legal_moves()`: the set of moves the side to move may play
* `apply()`: the Position reached by playing a legal move
* `status()`: classify a Position (check, mate, draws). Needs the positions leading up to it for the repetition rule.

Nothing in here keeps state between calls.
"""

from typing import Optional, Sequence

from chess_sessions.chess.board import Board
from chess_sessions.chess.castling import (
    CASTLING_RULES,
    CastlingDirection,
    castling_direction_of,
    directions_for,
)
from chess_sessions.chess.moves import (
    MOVEMENT_RULES,
    Move,
    MoveTag,
    en_passant_moves,
    is_pawn_move_to_promotion_square,
    is_square_attacked,
    pawn_direction,
    pawn_moves_w_promotion,
)
from chess_sessions.chess.pieces import Color, Piece, PieceType
from chess_sessions.chess.position import Position
from chess_sessions.chess.square import Square
from chess_sessions.core.exceptions import IllegalMoveError
from chess_sessions.core.shared_types import PositionStatus

# 50 moves by each player without a capture or pawn move
FIFTY_MOVE_HALF_MOVES = 100
REPETITIONS_FOR_DRAW = 3

RepetitionKey = tuple[Board, Color, frozenset[CastlingDirection], Optional[str]]


# --- LEGAL MOVES ---
def legal_moves(position: Position) -> frozenset[Move]:
    """
    Set of legal moves for the side to move
    ----

    **Combines the following**

    1. generate candidate moves, using the basic movement rules for all pieces
    2. add candidate castling moves
    3. add candidate en passant moves
    4. remove illegal options --> a move that would put you in check or you are in check and the move does not get you out of it.
    5. Pawn move to promotion square? --> expand the set of moves to include one for every choice of piece type to promote into.
    """
    color = position.color_to_move
    candidate_moves: list[Move] = []
    for square in position.board.locate_color(color):
        piece = position.board.piece(square)
        assert piece is not None
        candidate_moves.extend(MOVEMENT_RULES[piece.type](square, position.board))

    candidate_moves.extend(_castling_moves(position))
    if position.en_passant_square is not None:
        candidate_moves.extend(
            en_passant_moves(position.en_passant_square, color, position.board)
        )

    legal: set[Move] = set()
    for move in candidate_moves:
        if _leaves_king_in_check(position, move):
            continue
        if is_pawn_move_to_promotion_square(move, position.board):
            legal.update(pawn_moves_w_promotion(move))
        else:
            legal.add(move)
    return frozenset(legal)


def resolve_move(position: Position, move: Move) -> Move:
    """
    Find the legal move matching the requested one.

    Clients send moves without a tag (UCI does not carry one). A tag that IS supplied must agree with the rules.
    """
    for candidate in legal_moves(position):
        if candidate.same_squares(move) and move.tag in (None, candidate.tag):
            return candidate
    raise IllegalMoveError(f"Move not allowed: {move.to_uci()} in {position.to_fen()}")


def apply(position: Position, move: Move) -> Position:
    """Play the move. Raises IllegalMoveError if it is not legal in this position."""
    _, new_position = play(position, move)
    return new_position


def play(position: Position, move: Move) -> tuple[Move, Position]:
    """Same as `apply()`, but also hands back the move as the rules engine understood it (tag filled in)."""
    resolved = resolve_move(position, move)
    return resolved, _play(position, resolved)


# --- STATUS ---
def status(position: Position, history_tail: Sequence[Position] = ()) -> PositionStatus:
    """
    Classify the position
    ----

    `history_tail` holds the earlier positions of the game (oldest first). Only positions since the last capture or pawn move
    can ever repeat, so passing just those is enough.

    Precedence: a mate (or stalemate) on the board beats any draw rule.
    """
    in_check = is_check(position)
    if not legal_moves(position):
        return PositionStatus.CHECKMATE if in_check else PositionStatus.STALEMATE

    if has_insufficient_material(position.board):
        return PositionStatus.DRAW_INSUFFICIENT_MATERIAL

    if is_repetition(position, history_tail):
        return PositionStatus.DRAW_REPETITION

    if position.half_move_clock >= FIFTY_MOVE_HALF_MOVES:
        return PositionStatus.DRAW_FIFTY_MOVE

    return PositionStatus.CHECK if in_check else PositionStatus.ONGOING


def is_check(position: Position) -> bool:
    """Is the king of the side to move attacked?"""
    return _is_king_attacked(position.board, position.color_to_move)


def is_repetition(position: Position, history_tail: Sequence[Position]) -> bool:
    key = repetition_key(position)
    occurrences = 1 + sum(1 for earlier in history_tail if repetition_key(earlier) == key)
    return occurrences >= REPETITIONS_FOR_DRAW


def repetition_key(position: Position) -> RepetitionKey:
    """
    Two positions are 'the same' for the repetition rule when the pieces, the side to move and all possible moves are the same.
    The en passant square only matters if an en passant capture can actually be played.
    """
    en_passant = (
        position.en_passant_square.to_algebraic()
        if position.en_passant_square is not None and _legal_en_passant_moves(position)
        else None
    )
    return (position.board, position.color_to_move, position.castling_rights, en_passant)


def has_insufficient_material(board: Board) -> bool:
    """
    Neither side can ever mate:
    * King vs King
    * King + single minor piece vs King
    * Kings + bishops only, all standing on the same square color
    """
    minor_pieces: list[tuple[bool, Piece]] = []
    for square, piece in board.pieces():
        if piece.type == PieceType.KING:
            continue
        if piece.type not in (PieceType.KNIGHT, PieceType.BISHOP):
            return False
        minor_pieces.append((square.is_light, piece))

    if len(minor_pieces) <= 1:
        return True

    all_bishops = all(piece.type == PieceType.BISHOP for _, piece in minor_pieces)
    square_colors = {is_light for is_light, _ in minor_pieces}
    return all_bishops and len(square_colors) == 1


# -- CASTLING RULE HELPERS ---
def _castling_moves(position: Position) -> list[Move]:
    """
    **you are allowed to castle if**

    * You are not currently in check (you cannot castle out of check).
    * Castling rights are not yet revoked (and king + rook still stand on their starting squares).
    * All squares between king and rook are empty.
    * The king does not pass through (or land on) a square that is under attack.
    """
    color = position.color_to_move
    board = position.board
    if is_check(position):
        return []

    moves: list[Move] = []
    for direction in directions_for(color):
        if direction not in position.castling_rights:
            continue

        squares = CASTLING_RULES[direction]
        if board.piece(squares.king_from) != Piece(PieceType.KING, color):
            continue
        if board.piece(squares.rook_from) != Piece(PieceType.ROOK, color):
            continue
        if not all(board.is_empty(square) for square in squares.squares_between()):
            continue
        if any(is_square_attacked(square, color.opponent, board) for square in squares.king_path()):
            continue

        moves.append(Move(squares.king_from, squares.king_to, tag=MoveTag.CASTLE))
    return moves


def _revoked_castling_rights(move: Move, moving_piece: Piece) -> set[CastlingDirection]:
    """
    Which rights get revoked
    ----

    1. You move your king (castling included) --> revoke both
    2. A piece leaves a rook starting square --> revoke that direction
    3. A piece lands on a rook starting square (captures the rook) --> revoke that direction (of your opponent)
    """
    revoked: set[CastlingDirection] = set()
    if moving_piece.type == PieceType.KING:
        revoked.update(directions_for(moving_piece.color))

    for direction, squares in CASTLING_RULES.items():
        if squares.rook_from in (move.from_square, move.to_square):
            revoked.add(direction)
    return revoked


# --- EN PASSANT HELPERS ---
def _legal_en_passant_moves(position: Position) -> list[Move]:
    if position.en_passant_square is None:
        return []
    candidates = en_passant_moves(
        position.en_passant_square, position.color_to_move, position.board
    )
    return [move for move in candidates if not _leaves_king_in_check(position, move)]


def _en_passant_capture_square(move: Move) -> Square:
    """The captured pawn stands on the file of the target square, on the rank the capturing pawn came from."""
    return move.to_square.offset(0, move.from_square.rank - move.to_square.rank)


# --- MAKING THE MOVE ---
def _board_after(position: Position, move: Move) -> Board:
    """Only the piece placement after the move (enough to test for checks)."""
    board = position.board
    moving_piece = board.piece(move.from_square)
    assert moving_piece is not None

    if move.tag == MoveTag.CASTLE:
        direction = castling_direction_of(move.from_square, move.to_square)
        assert direction is not None
        squares = CASTLING_RULES[direction]
        return board.with_changes(
            {
                squares.king_from: None,
                squares.rook_from: None,
                squares.king_to: moving_piece,
                squares.rook_to: board.piece(squares.rook_from),
            }
        )

    placed = moving_piece.promoted_to(move.promote_to) if move.promote_to else moving_piece
    changes = {move.from_square: None, move.to_square: placed}
    if move.tag == MoveTag.EN_PASSANT:
        changes[_en_passant_capture_square(move)] = None
    return board.with_changes(changes)


def _is_king_attacked(board: Board, color: Color) -> bool:
    king_square = board.king_square(color)
    assert king_square is not None, "every valid position has a king of each color"
    return is_square_attacked(king_square, color.opponent, board)


def _leaves_king_in_check(position: Position, move: Move) -> bool:
    """Return True if, after the move, your own king is attacked"""
    return _is_king_attacked(_board_after(position, move), position.color_to_move)


def _play(position: Position, move: Move) -> Position:
    """Construct the next Position. Assumes `move` is a (tagged) legal move."""
    color = position.color_to_move
    moving_piece = position.board.piece(move.from_square)
    assert moving_piece is not None

    is_capture = move.tag == MoveTag.EN_PASSANT or position.board.piece(move.to_square) is not None
    is_pawn_move = moving_piece.type == PieceType.PAWN

    en_passant_square = (
        move.from_square.offset(0, pawn_direction(color))
        if move.tag == MoveTag.DOUBLE_PAWN_PUSH
        else None
    )

    return Position(
        board=_board_after(position, move),
        color_to_move=color.opponent,
        castling_rights=position.castling_rights - _revoked_castling_rights(move, moving_piece),
        en_passant_square=en_passant_square,
        half_move_clock=0 if (is_pawn_move or is_capture) else position.half_move_clock + 1,
        full_move_number=position.full_move_number + (1 if color == Color.BLACK else 0),
    )
