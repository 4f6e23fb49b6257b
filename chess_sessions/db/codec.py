"""
History codec: GameSession <-> compressed bytes.

Blob layout
-----
    b"CHSB" | format version (1 byte) | zlib( payload )

payload (big endian, strings are uvarint length + UTF-8):

    game_id | white player | black player | status code (1 byte) | abandon reason
    | revision (uvarint) | created_at (int64, microseconds since epoch)
    | initial FEN ("" for the standard starting position)
    | number of moves (uvarint) | moves (2 bytes each) | timestamp deltas (zigzag varint, microseconds)

A move fits in 16 bits: origin square (6) | target square (6) | promotion (3) | unused (1).
Castling / en passant / double pawn push are not stored: replaying through the rules engine fills them in.

Decoding never trusts a stored position. It replays every move from the initial position, so a tampered
or corrupted blob surfaces as a ReplayValidationError instead of silently producing a broken game.
"""

import struct
import zlib
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from chess_sessions.chess import rules
from chess_sessions.chess.fen import STARTING_FEN
from chess_sessions.chess.game import (
    Clock,
    GameSession,
    HistoryEntry,
    session_status_for,
    utc_now,
)
from chess_sessions.chess.moves import Move
from chess_sessions.chess.pieces import Color, PieceType
from chess_sessions.chess.position import Position
from chess_sessions.chess.square import Square
from chess_sessions.core.exceptions import (
    CorruptDataError,
    GameStateError,
    IllegalMoveError,
    InvalidFENError,
    ReplayValidationError,
)
from chess_sessions.core.shared_types import SessionStatus

MAGIC = b"CHSB"
FORMAT_VERSION = 1
SUPPORTED_VERSIONS = {FORMAT_VERSION}
HEADER = struct.Struct(">4sB")

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
ONE_MICROSECOND = timedelta(microseconds=1)

# Codes are part of the persisted format: append only, never reorder.
STATUS_CODES: dict[SessionStatus, int] = {
    SessionStatus.IN_PROGRESS: 0,
    SessionStatus.CHECKMATE_WHITE_WINS: 1,
    SessionStatus.CHECKMATE_BLACK_WINS: 2,
    SessionStatus.STALEMATE_DRAW: 3,
    SessionStatus.RULE_DRAW: 4,
    SessionStatus.ABANDONED: 5,
}
CODE_TO_STATUS: dict[int, SessionStatus] = {code: status for status, code in STATUS_CODES.items()}

PROMOTION_CODES: dict[Optional[PieceType], int] = {
    None: 0,
    PieceType.KNIGHT: 1,
    PieceType.BISHOP: 2,
    PieceType.ROOK: 3,
    PieceType.QUEEN: 4,
}
CODE_TO_PROMOTION: dict[int, Optional[PieceType]] = {code: kind for kind, code in PROMOTION_CODES.items()}


# --- PRIMITIVES ---
def encode_uvarint(value: int) -> bytes:
    """LEB128: 7 bits per byte, high bit set on all but the last byte."""
    if value < 0:
        raise ValueError(f"uvarint cannot hold negative values: {value}")
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def zigzag(value: int) -> int:
    """Map signed to unsigned so small negative numbers stay small: 0, -1, 1, -2 -> 0, 1, 2, 3"""
    return value * 2 if value >= 0 else -value * 2 - 1


def unzigzag(value: int) -> int:
    return value // 2 if value % 2 == 0 else -(value + 1) // 2


def encode_str(text: str) -> bytes:
    data = text.encode("utf-8")
    return encode_uvarint(len(data)) + data


def encode_move(move: Move) -> int:
    return (
        (move.from_square.index << 10)
        | (move.to_square.index << 4)
        | (PROMOTION_CODES[move.promote_to] << 1)
    )


def decode_move(word: int) -> Move:
    if word & 1:
        raise CorruptDataError(f"Unused bit set in move word {word:#06x}")
    promotion_code = (word >> 1) & 0b111
    if promotion_code not in CODE_TO_PROMOTION:
        raise CorruptDataError(f"Unknown promotion code {promotion_code} in move word {word:#06x}")
    return Move(
        from_square=Square.from_index(word >> 10),
        to_square=Square.from_index((word >> 4) & 0b111111),
        promote_to=CODE_TO_PROMOTION[promotion_code],
    )


def to_microseconds(timestamp: datetime) -> int:
    return (timestamp - EPOCH) // ONE_MICROSECOND


def from_microseconds(micros: int) -> datetime:
    try:
        return EPOCH + timedelta(microseconds=micros)
    except OverflowError as exc:
        raise CorruptDataError(f"Timestamp out of range: {micros} microseconds since epoch") from exc


class _Reader:
    """Cursor over the payload. Any read past the end means the blob is truncated / malformed."""

    def __init__(self, data: bytes) -> None:
        self.data = data
        self.offset = 0

    def take(self, size: int) -> bytes:
        end = self.offset + size
        if end > len(self.data):
            raise CorruptDataError(
                f"Unexpected end of data: need {size} bytes at offset {self.offset}, only {len(self.data) - self.offset} left"
            )
        chunk = self.data[self.offset : end]
        self.offset = end
        return chunk

    def unpack(self, fmt: struct.Struct) -> tuple:
        return fmt.unpack(self.take(fmt.size))

    def uvarint(self) -> int:
        result = 0
        for shift in range(0, 70, 7):
            (byte,) = self.take(1)
            result |= (byte & 0x7F) << shift
            if not byte & 0x80:
                return result
        raise CorruptDataError(f"Varint too long at offset {self.offset}")

    def text(self) -> str:
        raw = self.take(self.uvarint())
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise CorruptDataError(f"Invalid UTF-8 string at offset {self.offset}") from exc

    def assert_exhausted(self) -> None:
        if self.offset != len(self.data):
            raise CorruptDataError(f"{len(self.data) - self.offset} trailing bytes after payload")


STATUS_STRUCT = struct.Struct(">B")
TIMESTAMP_STRUCT = struct.Struct(">q")
MOVE_STRUCT = struct.Struct(">H")


@dataclass(frozen=True)
class _DecodedPayload:
    """Raw content of a blob, before replaying it."""

    game_id: str
    white_player: str
    black_player: str
    status: SessionStatus
    abandon_reason: Optional[str]
    revision: int
    created_at: datetime
    initial_fen: str
    moves: list[Move]
    timestamps: list[datetime]


class HistoryCodec:
    """Serialize + compress sessions for the store, and the (validated) way back."""

    def __init__(self, compression_level: int = 9) -> None:
        self.compression_level = compression_level

    # --- ENCODE ---
    def encode(self, session: GameSession) -> bytes:
        with session.lock:
            payload = self._encode_payload(session)
        return HEADER.pack(MAGIC, FORMAT_VERSION) + zlib.compress(payload, self.compression_level)

    def _encode_payload(self, session: GameSession) -> bytes:
        initial_fen = session.initial_position.to_fen()
        parts: list[bytes] = [
            encode_str(session.game_id),
            encode_str(session.players[Color.WHITE]),
            encode_str(session.players[Color.BLACK]),
            STATUS_STRUCT.pack(STATUS_CODES[session.status]),
            encode_str(session.abandon_reason or ""),
            encode_uvarint(session.revision),
            TIMESTAMP_STRUCT.pack(to_microseconds(session.created_at)),
            encode_str("" if initial_fen == STARTING_FEN else initial_fen),
            encode_uvarint(len(session.history)),
        ]
        parts.extend(MOVE_STRUCT.pack(encode_move(entry.move)) for entry in session.history)

        # timestamps as deltas to the previous one: mostly a few bytes each
        previous = to_microseconds(session.created_at)
        for entry in session.history:
            current = to_microseconds(entry.timestamp)
            parts.append(encode_uvarint(zigzag(current - previous)))
            previous = current
        return b"".join(parts)

    # --- DECODE ---
    def decode(self, blob: bytes, clock: Clock = utc_now) -> GameSession:
        """Raises CorruptDataError for unreadable blobs, ReplayValidationError when the moves do not replay."""
        payload = self._decode_payload(self._decompress(blob))
        return self._replay(payload, clock)

    def _decompress(self, blob: bytes) -> bytes:
        if len(blob) < HEADER.size:
            raise CorruptDataError(f"Blob too short: {len(blob)} bytes")

        magic, version = HEADER.unpack_from(blob)
        if magic != MAGIC:
            raise CorruptDataError(f"Not a session blob (magic {magic!r})")
        if version not in SUPPORTED_VERSIONS:
            raise CorruptDataError(
                f"Unsupported blob format version {version}. Supported: {sorted(SUPPORTED_VERSIONS)}"
            )

        try:
            return zlib.decompress(blob[HEADER.size :])
        except zlib.error as exc:
            raise CorruptDataError(f"Cannot decompress session blob: {exc}") from exc

    def _decode_payload(self, payload: bytes) -> _DecodedPayload:
        reader = _Reader(payload)
        game_id = reader.text()
        white_player = reader.text()
        black_player = reader.text()

        (status_code,) = reader.unpack(STATUS_STRUCT)
        if status_code not in CODE_TO_STATUS:
            raise CorruptDataError(f"Unknown status code {status_code}")
        status = CODE_TO_STATUS[status_code]

        reason = reader.text()
        if status != SessionStatus.ABANDONED and reason:
            raise CorruptDataError(f"Abandon reason stored for a game with status {status!r}")

        revision = reader.uvarint()
        (created_micros,) = reader.unpack(TIMESTAMP_STRUCT)
        initial_fen = reader.text() or STARTING_FEN

        num_moves = reader.uvarint()
        moves = [decode_move(reader.unpack(MOVE_STRUCT)[0]) for _ in range(num_moves)]

        timestamps: list[datetime] = []
        previous = created_micros
        for _ in range(num_moves):
            previous += unzigzag(reader.uvarint())
            timestamps.append(from_microseconds(previous))
        reader.assert_exhausted()

        return _DecodedPayload(
            game_id=game_id,
            white_player=white_player,
            black_player=black_player,
            status=status,
            abandon_reason=reason if status == SessionStatus.ABANDONED else None,
            revision=revision,
            created_at=from_microseconds(created_micros),
            initial_fen=initial_fen,
            moves=moves,
            timestamps=timestamps,
        )

    def _replay(self, payload: _DecodedPayload, clock: Clock) -> GameSession:
        """Rebuild the session by playing every stored move through the rules engine."""
        try:
            initial_position = Position.from_fen(payload.initial_fen)
            session = GameSession(
                game_id=payload.game_id,
                white_player=payload.white_player,
                black_player=payload.black_player,
                initial_position=initial_position,
                created_at=payload.created_at,
                clock=clock,
            )
        except (InvalidFENError, GameStateError) as exc:
            raise CorruptDataError(f"Invalid session metadata for game {payload.game_id}: {exc}") from exc

        positions = [initial_position]
        history: list[HistoryEntry] = []
        position_status = session.position_status
        derived_status = session.status
        for ply, (move, timestamp) in enumerate(zip(payload.moves, payload.timestamps), start=1):
            if position_status.is_terminal:
                raise ReplayValidationError(
                    f"Game {payload.game_id}: move {ply} ({move.to_uci()}) played after the game ended ({position_status})"
                )

            before = positions[-1]
            try:
                resolved, after = rules.play(before, move)
            except IllegalMoveError as exc:
                raise ReplayValidationError(
                    f"Game {payload.game_id}: stored move {ply} ({move.to_uci()}) is illegal"
                ) from exc

            history.append(HistoryEntry(resolved, after, timestamp))
            positions.append(after)
            tail = positions[:-1][-after.half_move_clock :] if after.half_move_clock else []
            position_status = rules.status(after, tail)
            derived_status = session_status_for(position_status, before.color_to_move)

        self._check_consistency(payload, derived_status)

        session.history = history
        session.position_status = position_status
        session.status = payload.status
        session.abandon_reason = payload.abandon_reason
        session.revision = payload.revision
        session.persisted_revision = payload.revision
        return session

    @staticmethod
    def _check_consistency(payload: _DecodedPayload, derived_status: SessionStatus) -> None:
        """The stored status / revision must agree with what the replay produced."""
        if payload.status == SessionStatus.ABANDONED:
            if derived_status.is_terminal:
                raise ReplayValidationError(
                    f"Game {payload.game_id} stored as abandoned, but the moves end in {derived_status}"
                )
        elif payload.status != derived_status:
            raise ReplayValidationError(
                f"Game {payload.game_id} stored as {payload.status}, but the moves end in {derived_status}"
            )

        minimal_revision = len(payload.moves) + (1 if payload.status == SessionStatus.ABANDONED else 0)
        if payload.revision < minimal_revision:
            raise ReplayValidationError(
                f"Game {payload.game_id}: revision {payload.revision} lower than the {minimal_revision} recorded mutations"
            )
