"""
A square on the board

(placed in its own module as multiple other modules need to import it)
"""

from __future__ import annotations

from dataclasses import dataclass

# Chess board is always 8x8.
BOARD_DIMENSIONS = (8, 8)
NUM_SQUARES = BOARD_DIMENSIONS[0] * BOARD_DIMENSIONS[1]


@dataclass(frozen=True)
class Square:
    file: int
    rank: int

    @classmethod
    def from_algebraic(cls, sq: str) -> Square:
        """Algebraic notation: 'a1' - 'h8' get converted to (1,1) - (8,8)"""
        file = ord(sq[0]) - ord("a") + 1
        rank = int(sq[1])
        return cls(file, rank)

    @classmethod
    def from_index(cls, index: int) -> Square:
        """Reverse of `index`: 0 -> a1, 7 -> h1, 63 -> h8"""
        rank, file = divmod(index, BOARD_DIMENSIONS[0])
        return cls(file + 1, rank + 1)

    def to_algebraic(self) -> str:
        return f"{chr(self.file + ord('a') - 1)}{self.rank}"

    @property
    def index(self) -> int:
        """Position in a flat, rank-major list of squares. Used by the Board and the history codec (fits in 6 bits)."""
        return (self.rank - 1) * BOARD_DIMENSIONS[0] + (self.file - 1)

    @property
    def is_light(self) -> bool:
        """a1 is a dark square"""
        return (self.file + self.rank) % 2 == 1

    def is_within_bounds(self) -> bool:
        return (1 <= self.file <= BOARD_DIMENSIONS[0]) and (
            1 <= self.rank <= BOARD_DIMENSIONS[1]
        )

    def offset(self, df: int, dr: int) -> Square:
        return Square(self.file + df, self.rank + dr)


ALL_SQUARES: tuple[Square, ...] = tuple(Square.from_index(i) for i in range(NUM_SQUARES))
