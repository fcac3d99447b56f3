from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import DateTime, Text, create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(UTC)


class StateBase(DeclarativeBase):
    pass


class ClientState(StateBase):
    """One named slot of persisted client state holding a JSON document."""

    __tablename__ = "client_state"

    key: Mapped[str] = mapped_column(Text, primary_key=True)
    value_json: Mapped[str] = mapped_column(Text)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)


def sqlite_engine(db_uri: str = "sqlite:///./gemchat.db") -> Engine:
    engine = create_engine(
        db_uri,
        connect_args={"check_same_thread": False},
        echo=False,
    )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    return engine
