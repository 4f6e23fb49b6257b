"""
PGN (Portable Game Notation) export of a game session, and import of PGN games into new sessions.

Moves are written in SAN (Standard Algebraic Notation): "e4", "Nbd7", "exd6", "O-O", "e8=Q+", "Qh4#".
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

from chess_sessions.chess import rules
from chess_sessions.chess.fen import STARTING_FEN
from chess_sessions.chess.game import Clock, GameSession, utc_now
from chess_sessions.chess.moves import Move, MoveTag
from chess_sessions.chess.pieces import FEN_TO_PIECE, PIECE_TO_FEN, Color, PieceType
from chess_sessions.chess.position import Position
from chess_sessions.core.exceptions import IllegalMoveError, PGNParseError
from chess_sessions.core.shared_types import SessionStatus

logger = logging.getLogger(__name__)

MAX_LINE_LENGTH = 80

RESULT_TOKENS: dict[SessionStatus, str] = {
    SessionStatus.IN_PROGRESS: "*",
    SessionStatus.CHECKMATE_WHITE_WINS: "1-0",
    SessionStatus.CHECKMATE_BLACK_WINS: "0-1",
    SessionStatus.STALEMATE_DRAW: "1/2-1/2",
    SessionStatus.RULE_DRAW: "1/2-1/2",
    # the session does not record who abandoned the game
    SessionStatus.ABANDONED: "*",
}


def to_san(before: Position, move: Move, after: Optional[Position] = None) -> str:
    """SAN of a legal (resolved) move played in `before`. `after` is computed when not supplied."""
    after = after or rules.apply(before, move)
    return _san_body(before, move) + _check_suffix(after)


def _san_body(before: Position, move: Move) -> str:
    if move.tag == MoveTag.CASTLE:
        return "O-O" if move.to_square.file > move.from_square.file else "O-O-O"

    piece = before.piece(move.from_square)
    assert piece is not None
    is_capture = move.tag == MoveTag.EN_PASSANT or before.piece(move.to_square) is not None
    target = move.to_square.to_algebraic()

    if piece.type == PieceType.PAWN:
        origin_file = move.from_square.to_algebraic()[0]
        san = f"{origin_file}x{target}" if is_capture else target
        if move.promote_to:
            san += "=" + PIECE_TO_FEN[move.promote_to].upper()
        return san

    letter = PIECE_TO_FEN[piece.type].upper()
    capture = "x" if is_capture else ""
    return f"{letter}{_disambiguation(before, move)}{capture}{target}"


def _disambiguation(before: Position, move: Move) -> str:
    """
    Other pieces of the same kind that could go to the same square?
    -> add the origin file if that is unique, else the origin rank if that is unique, else both.
    """
    piece = before.piece(move.from_square)
    rivals = [
        other.from_square
        for other in rules.legal_moves(before)
        if other.to_square == move.to_square
        and other.from_square != move.from_square
        and before.piece(other.from_square) == piece
    ]
    if not rivals:
        return ""

    origin = move.from_square.to_algebraic()
    if all(square.file != move.from_square.file for square in rivals):
        return origin[0]
    if all(square.rank != move.from_square.rank for square in rivals):
        return origin[1]
    return origin


def _check_suffix(after: Position) -> str:
    if not rules.is_check(after):
        return ""
    return "#" if not rules.legal_moves(after) else "+"


def export_pgn(session: GameSession, event: str = "Casual game", site: str = "?") -> str:
    """Render the session as a single PGN game (tag pairs, blank line, movetext)."""
    with session.lock:
        result = RESULT_TOKENS[session.status]
        tags: list[tuple[str, str]] = [
            ("Event", event),
            ("Site", site),
            ("Date", session.created_at.strftime("%Y.%m.%d")),
            ("Round", "-"),
            ("White", session.players[Color.WHITE]),
            ("Black", session.players[Color.BLACK]),
            ("Result", result),
        ]
        initial_fen = session.initial_position.to_fen()
        if initial_fen != STARTING_FEN:
            tags.extend([("SetUp", "1"), ("FEN", initial_fen)])
        if session.status == SessionStatus.ABANDONED:
            tags.append(("Termination", "abandoned"))

        tokens: list[str] = []
        before = session.initial_position
        for ply, entry in enumerate(session.history):
            if before.color_to_move == Color.WHITE:
                tokens.append(f"{before.full_move_number}.")
            elif ply == 0:
                tokens.append(f"{before.full_move_number}...")
            tokens.append(to_san(before, entry.move, entry.position))
            before = entry.position
        tokens.append(result)

    header = "\n".join(f'[{name} "{_escape(value)}"]' for name, value in tags)
    return f"{header}\n\n{_wrap(tokens)}\n"


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def _wrap(tokens: list[str]) -> str:
    lines: list[str] = []
    current = ""
    for token in tokens:
        candidate = f"{current} {token}" if current else token
        if len(candidate) > MAX_LINE_LENGTH and current:
            lines.append(current)
            current = token
        else:
            current = candidate
    lines.append(current)
    return "\n".join(lines)


# --- IMPORT ---
TAG_PAIR = re.compile(r'\[\s*(\w+)\s+"((?:[^"\\]|\\.)*)"\s*\]')
SAN_MOVE = re.compile(
    r"^(?P<piece>[NBRQK])?(?P<from_file>[a-h])?(?P<from_rank>[1-8])?(?P<capture>x)?"
    r"(?P<target>[a-h][1-8])(?:=?(?P<promotion>[NBRQ]))?$"
)
RESULTS = {"1-0", "0-1", "1/2-1/2", "*"}


@dataclass(frozen=True)
class ParsedPGN:
    """One game as written down: tag pairs, SAN move tokens and the result token."""

    tags: dict[str, str]
    san_moves: list[str]
    result: str


def split_games(text: str) -> list[str]:
    """A PGN file can hold many games. Each one starts with its [Event ...] tag."""
    games: list[list[str]] = []
    for line in text.splitlines():
        if line.strip().startswith("[Event ") or not games:
            games.append([])
        games[-1].append(line)
    return ["\n".join(lines) for lines in games if "".join(lines).strip()]


def parse_pgn(text: str) -> ParsedPGN:
    """
    Read the tag pairs and the movetext of a single game.

    Comments ({...} and ; to end of line), variations (...) and NAGs ($n) are skipped.
    """
    tags = {name: _unescape(value) for name, value in TAG_PAIR.findall(text)}
    movetext = TAG_PAIR.sub(" ", text)
    tokens = _movetext_tokens(movetext)

    result = "*"
    if tokens and tokens[-1] in RESULTS:
        result = tokens.pop()
    if any(token in RESULTS for token in tokens):
        raise PGNParseError(f"Result token in the middle of the movetext: {' '.join(tokens)}")
    if "Result" in tags and tags["Result"] != result and result != "*":
        raise PGNParseError(f"Result tag {tags['Result']!r} does not match the movetext result {result!r}")

    return ParsedPGN(tags=tags, san_moves=tokens, result=tags.get("Result", result))


def _movetext_tokens(movetext: str) -> list[str]:
    tokens: list[str] = []
    depth = 0
    position = 0
    while position < len(movetext):
        char = movetext[position]
        if char == "{":
            end = movetext.find("}", position)
            if end == -1:
                raise PGNParseError("Unclosed comment in movetext")
            position = end + 1
            continue
        if char == ";":
            end = movetext.find("\n", position)
            position = len(movetext) if end == -1 else end + 1
            continue
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth < 0:
                raise PGNParseError("Unmatched ')' in movetext")
        elif not char.isspace() and depth == 0:
            end = position
            while end < len(movetext) and not movetext[end].isspace() and movetext[end] not in "{;()":
                end += 1
            token = movetext[position:end]
            position = end
            # "12.e4" is written without a space often enough
            number, dots, rest = token.partition(".")
            if number.isdigit() and dots:
                token = rest.lstrip(".")
            if token and not token.startswith("$"):
                tokens.append(token)
            continue
        position += 1

    if depth:
        raise PGNParseError("Unclosed variation in movetext")
    return tokens


def from_san(position: Position, san: str) -> Move:
    """
    The legal move in `position` written as `san`.

    Check/mate suffixes and annotations (!, ?) are optional. Raises IllegalMoveError when no legal move, or more than one, fits.
    """
    body = san.rstrip("+#!?").replace("0", "O")
    candidates = rules.legal_moves(position)

    if body in ("O-O", "O-O-O"):
        matches = [move for move in candidates if move.tag == MoveTag.CASTLE and _san_body(position, move) == body]
    else:
        match = SAN_MOVE.match(body)
        if match is None:
            raise IllegalMoveError(f"Cannot read {san!r} as a move in standard algebraic notation")
        matches = [move for move in candidates if _fits(position, move, match)]

    if not matches:
        raise IllegalMoveError(f"Move not allowed: {san} in {position.to_fen()}")
    if len(matches) > 1:
        options = ", ".join(sorted(to_san(position, move) for move in matches))
        raise IllegalMoveError(f"Ambiguous move {san} in {position.to_fen()}: could be {options}")
    return matches[0]


def _fits(position: Position, move: Move, match: re.Match[str]) -> bool:
    if move.tag == MoveTag.CASTLE:
        return False
    piece = position.piece(move.from_square)
    assert piece is not None

    letter = match["piece"]
    expected_type = FEN_TO_PIECE[letter.lower()] if letter else PieceType.PAWN
    if piece.type != expected_type or move.to_square.to_algebraic() != match["target"]:
        return False

    origin = move.from_square.to_algebraic()
    if match["from_file"] and origin[0] != match["from_file"]:
        return False
    if match["from_rank"] and origin[1] != match["from_rank"]:
        return False
    # a pawn move without origin file is a push: "d5" never means "exd5"
    if piece.type == PieceType.PAWN and not match["from_file"] and move.from_square.file != move.to_square.file:
        return False

    is_capture = move.tag == MoveTag.EN_PASSANT or position.piece(move.to_square) is not None
    if match["capture"] and not is_capture:
        return False

    promotion = FEN_TO_PIECE[match["promotion"].lower()] if match["promotion"] else None
    return move.promote_to == promotion


def import_pgn(
    text: str,
    white_player: Optional[str] = None,
    black_player: Optional[str] = None,
    game_id: Optional[str] = None,
    clock: Clock = utc_now,
) -> GameSession:
    """
    Replay a PGN game into a new session.
    ----

    * players default to the White / Black tags
    * a FEN tag sets the starting position
    * every move goes through `GameSession.submit_move()`, so nothing illegal gets in
    * a game that was decided off the board (result token, or a Termination tag of "abandoned") ends as abandoned
    """
    parsed = parse_pgn(text)
    session = GameSession.new_game(
        white_player=white_player or parsed.tags.get("White", "?"),
        black_player=black_player or parsed.tags.get("Black", "?"),
        starting_fen=parsed.tags.get("FEN"),
        game_id=game_id,
        clock=clock,
    )

    for ply, san in enumerate(parsed.san_moves, start=1):
        before = session.position
        try:
            move = from_san(before, san)
        except IllegalMoveError as exc:
            raise IllegalMoveError(f"Half-move {ply} of the PGN game: {exc}") from exc
        session.submit_move(move, session.players[before.color_to_move])

    if session.status == SessionStatus.IN_PROGRESS:
        termination = parsed.tags.get("Termination", "")
        if parsed.result != "*":
            session.terminate(f"ended {parsed.result} ({termination or 'not on the board'})")
        elif termination.lower() == "abandoned":
            session.terminate("abandoned")
    elif parsed.result != "*" and parsed.result != RESULT_TOKENS[session.status]:
        raise PGNParseError(
            f"Result {parsed.result} contradicts the moves, which end in {session.status}"
        )

    logger.info("Imported PGN game %s: %d moves, %s", session.game_id, len(session.history), session.status)
    return session


def _unescape(value: str) -> str:
    return re.sub(r"\\(.)", r"\1", value)
