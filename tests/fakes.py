"""In-memory stand-ins shared by several test modules."""

import threading
from datetime import datetime, timedelta
from typing import Callable, Optional

from chess_sessions.core.exceptions import ConflictError, NotFoundError


class MemorySessionStore:
    """Mock the SessionStore using a dictionary of blobs (+ their revisions)."""

    def __init__(self) -> None:
        self.records: dict[str, tuple[bytes, int, str]] = {}
        self.load_calls = 0
        self.save_calls = 0
        self._lock = threading.Lock()

    def load(self, game_id: str) -> bytes:
        with self._lock:
            self.load_calls += 1
            if game_id not in self.records:
                raise NotFoundError(f"Game with {game_id=} not found.")
            return self.records[game_id][0]

    def save(
        self,
        game_id: str,
        blob: bytes,
        expected_revision: Optional[int],
        revision: int,
        status: str = "",
    ) -> None:
        with self._lock:
            self.save_calls += 1
            stored = self.records.get(game_id)
            if expected_revision is None and stored is not None:
                raise ConflictError(f"Game with {game_id=} already exists.")
            if expected_revision is not None:
                if stored is None:
                    raise NotFoundError(f"Game with {game_id=} not found.")
                if stored[1] != expected_revision:
                    raise ConflictError(
                        f"expected revision {expected_revision}, stored {stored[1]}"
                    )
            self.records[game_id] = (blob, revision, status)

    def delete(self, game_id: str) -> None:
        with self._lock:
            if self.records.pop(game_id, None) is None:
                raise NotFoundError(f"Game with {game_id=} not found.")

    def revision(self, game_id: str) -> int:
        return self.records[game_id][1]


def make_clock(start: datetime, step: timedelta) -> Callable[[], datetime]:
    """Deterministic clock: every call is `step` later than the previous one."""
    lock = threading.Lock()
    current = [start]

    def clock() -> datetime:
        with lock:
            now = current[0]
            current[0] = now + step
            return now

    return clock
