"""
Type definitions used across layers
"""

from enum import StrEnum


class SessionStatus(StrEnum):
    IN_PROGRESS = "in progress"
    CHECKMATE_WHITE_WINS = "checkmate, white wins"
    CHECKMATE_BLACK_WINS = "checkmate, black wins"
    STALEMATE_DRAW = "stalemate"
    RULE_DRAW = "draw by rule"
    ABANDONED = "abandoned"

    @property
    def is_terminal(self) -> bool:
        return self != SessionStatus.IN_PROGRESS


class PositionStatus(StrEnum):
    """What the rules engine can tell about a single position (+ the history leading up to it)."""

    ONGOING = "ongoing"
    CHECK = "check"
    CHECKMATE = "checkmate"
    STALEMATE = "stalemate"
    DRAW_FIFTY_MOVE = "draw by fifty-move rule"
    DRAW_REPETITION = "draw by repetition"
    DRAW_INSUFFICIENT_MATERIAL = "draw by insufficient material"

    @property
    def is_terminal(self) -> bool:
        return self not in (PositionStatus.ONGOING, PositionStatus.CHECK)

    @property
    def is_draw(self) -> bool:
        return self in (
            PositionStatus.DRAW_FIFTY_MOVE,
            PositionStatus.DRAW_REPETITION,
            PositionStatus.DRAW_INSUFFICIENT_MATERIAL,
        )
