"""Named key/value slots stored in the client state DB."""

from __future__ import annotations

from pathlib import Path

from .connect import get_state_session
from .models import ClientState, utcnow


class KeyValueStore:
    """Read, overwrite and remove raw text slots.

    Errors from the database are propagated; callers decide how to degrade.
    """

    def __init__(self, db_path: str | Path | None = None) -> None:
        self.db_path = db_path

    def get(self, key: str) -> str | None:
        with get_state_session(self.db_path) as session:
            row = session.get(ClientState, key)
            return None if row is None else row.value_json

    def set(self, key: str, value: str) -> None:
        with get_state_session(self.db_path) as session:
            row = session.get(ClientState, key)
            if row is None:
                session.add(ClientState(key=key, value_json=value))
            else:
                row.value_json = value
                row.updated_at = utcnow()

    def delete(self, key: str) -> bool:
        with get_state_session(self.db_path) as session:
            row = session.get(ClientState, key)
            if row is None:
                return False
            session.delete(row)
            return True

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None
