"""Durable multi-session chat history.

Two slots live in the client state DB: ``chat_sessions`` holds the full
session list as JSON and ``chat_history`` holds the single transcript written
by older releases. The legacy slot is consumed once by :meth:`migrate_legacy`.

Storage failures never reach callers. Reads degrade to an empty list and
failed writes leave the previous state in place; both are logged.
"""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Callable, Iterable

from sqlalchemy.exc import SQLAlchemyError

from gemchat.logging import get_logger
from gemchat.storage import KeyValueStore

from .models import LEGACY_TITLE, Message, Session, next_message_id, now_ms

logger = get_logger(__file__)

SESSIONS_KEY = "chat_sessions"
LEGACY_HISTORY_KEY = "chat_history"


class SessionStore:
    def __init__(self, kv: KeyValueStore | None = None, *, db_path: str | Path | None = None) -> None:
        self.kv = kv if kv is not None else KeyValueStore(db_path)
        # Serializes read-modify-write cycles across generation threads.
        self._write_lock = threading.RLock()

    # raw slot access ------------------------------------------------------
    def _read_sessions(self) -> list[Session]:
        try:
            raw = self.kv.get(SESSIONS_KEY)
        except SQLAlchemyError as exc:
            logger.error("Failed to load sessions: %s", exc)
            return []
        if not raw:
            return []
        try:
            data = json.loads(raw)
            if not isinstance(data, list):
                raise ValueError(f"expected a list, got {type(data).__name__}")
            sessions = [Session.from_dict(item) for item in data if isinstance(item, dict)]
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            logger.error("Failed to load sessions, treating store as empty: %s", exc)
            return []
        if len(sessions) != len(data):
            logger.warning("Skipped %d malformed session entries", len(data) - len(sessions))
        return sessions

    def _write_sessions(self, sessions: Iterable[Session]) -> bool:
        payload = json.dumps([session.to_dict() for session in sessions])
        try:
            self.kv.set(SESSIONS_KEY, payload)
        except SQLAlchemyError as exc:
            logger.error("Failed to save sessions: %s", exc)
            return False
        return True

    # public API -----------------------------------------------------------
    def load(self) -> list[Session]:
        """Return every persisted session, most recently created first."""

        return self._read_sessions()

    def save(self, sessions: Iterable[Session]) -> None:
        """Overwrite the persisted session list with ``sessions``."""

        with self._write_lock:
            self._write_sessions(list(sessions))

    def get_session(self, session_id: str) -> Session | None:
        for session in self._read_sessions():
            if session.id == session_id:
                return session
        return None

    def create_session(self, first_message: Message | None = None) -> Session:
        """Allocate a session in memory; nothing is persisted until it is saved."""

        created = now_ms()
        return Session(
            id=next_message_id(),
            messages=[first_message] if first_message is not None else [],
            created_at=created,
            updated_at=created,
        )

    def new_chat(self) -> Session:
        """Create a session seeded with the welcome message and persist it first in the list."""

        session = self.create_session(Message.welcome())
        self.update_session(session)
        return session

    def update_session(self, session: Session) -> None:
        """Persist one session, leaving every other stored session untouched."""

        with self._write_lock:
            sessions = self._read_sessions()
            for index, existing in enumerate(sessions):
                if existing.id == session.id:
                    sessions[index] = session
                    break
            else:
                sessions.insert(0, session)
            self._write_sessions(sessions)

    def modify_session(self, session_id: str, mutate: Callable[[Session], None]) -> Session | None:
        """Apply ``mutate`` to the stored copy of one session and write it back."""

        with self._write_lock:
            sessions = self._read_sessions()
            for session in sessions:
                if session.id == session_id:
                    mutate(session)
                    self._write_sessions(sessions)
                    return session
        return None

    def delete_session(self, session_id: str) -> bool:
        with self._write_lock:
            sessions = self._read_sessions()
            remaining = [session for session in sessions if session.id != session_id]
            if len(remaining) == len(sessions):
                return False
            return self._write_sessions(remaining)

    def clear_session(self, session_id: str) -> Session | None:
        """Reset a transcript back to the welcome message."""

        return self.modify_session(session_id, lambda session: session.replace_messages([Message.welcome()]))

    def migrate_legacy(self) -> Session | None:
        """Fold the single-transcript legacy slot into the session list.

        Returns the migrated session, or ``None`` when there was nothing worth
        keeping. The legacy slot is removed after any successful parse, so
        repeated calls are no-ops.
        """

        with self._write_lock:
            try:
                raw = self.kv.get(LEGACY_HISTORY_KEY)
            except SQLAlchemyError as exc:
                logger.error("Failed to read legacy history: %s", exc)
                return None
            if raw is None:
                return None

            try:
                data = json.loads(raw)
                if not isinstance(data, list):
                    raise ValueError("legacy history is not a list")
                messages = [Message.from_dict(item) for item in data if isinstance(item, dict)]
            except ValueError as exc:
                logger.error("Migration failed: %s", exc)
                return None

            migrated: Session | None = None
            candidate = Session(id=f"legacy-{now_ms()}", title=LEGACY_TITLE, messages=messages)
            if not candidate.is_blank():
                sessions = self._read_sessions()
                sessions.insert(0, candidate)
                if not self._write_sessions(sessions):
                    return None
                migrated = candidate
                logger.info("Migrated %s legacy message(s) into session %s", len(messages), candidate.id)

            try:
                self.kv.delete(LEGACY_HISTORY_KEY)
            except SQLAlchemyError as exc:
                logger.error("Failed to remove legacy history slot: %s", exc)
            return migrated
