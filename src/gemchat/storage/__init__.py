"""Persistent client state backed by SQLite."""

from .connect import get_state_db_uri, get_state_session
from .kv import KeyValueStore

__all__ = ["KeyValueStore", "get_state_db_uri", "get_state_session"]
