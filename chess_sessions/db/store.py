"""Protocol for the session store (implemented with SQLAlchemy in sql_store.py, can add others later)"""

from typing import Optional, Protocol


class SessionStore(Protocol):
    """
    Persistence of serialized session blobs.

    Blobs are opaque to the store. The revision passed along with them is what optimistic concurrency is keyed on.
    """

    def load(self, game_id: str) -> bytes:
        """Stored blob of the game. Raises NotFoundError if there is no record."""
        ...

    def save(
        self,
        game_id: str,
        blob: bytes,
        expected_revision: Optional[int],
        revision: int,
        status: str = "",
    ) -> None:
        """
        Write the blob. `status` is informational (lets the store index games by status).

        expected_revision=None: create a new record (ConflictError if the game id is taken).
        Otherwise: the stored revision must equal expected_revision (ConflictError if not), and becomes `revision`.
        """
        ...

    def delete(self, game_id: str) -> None:
        """Remove a game's record. Raises NotFoundError if there is no record."""
        ...
