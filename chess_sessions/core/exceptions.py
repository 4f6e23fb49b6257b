"""
Custom exceptions used across layers.

Everything derives from GameError, so an API layer can map the whole family to user-facing responses.
"""


class GameError(Exception):
    """Top-level exception for anything going wrong while hosting a game."""


# --- VALIDATION OUTCOMES (recoverable, reported to the caller) ---
class InvalidFENError(GameError):
    """String cannot be interpreted as a FEN, or describes an impossible position."""


class IllegalMoveError(GameError):
    """Move is not in the set of legal moves of the position."""


class WrongTurnError(GameError):
    """The submitting player is not the player whose side is to move."""


class GameTerminatedError(GameError):
    """Game already reached a terminal status. No further input is accepted."""


class PGNParseError(GameError):
    """Text cannot be read as a PGN game (broken movetext, or a result that contradicts the moves)."""


class GameStateError(GameError):
    """Session is in a state where the requested operation makes no sense."""


class SessionEvictedError(GameStateError):
    """Session instance was detached from the registry. Fetch a fresh one and try again."""


# --- DATA INTEGRITY (escalated, never retried) ---
class CodecError(GameError):
    """Base for failures while decoding a persisted session."""


class CorruptDataError(CodecError):
    """Blob cannot be decompressed or its binary layout is malformed."""


class ReplayValidationError(CodecError):
    """Replaying the stored moves through the rules engine failed."""


# --- PERSISTENCE ---
class RepositoryError(GameError):
    """Base for failures reported by the session store."""


class NotFoundError(RepositoryError):
    """No record for the requested game id."""


class ConflictError(RepositoryError):
    """Optimistic concurrency violation: stored revision differs from the expected one."""
