"""Where the client state DB lives and how code gets a session on it.

Resolution order for the database:

1. an explicit path or ``sqlite:`` URI passed by the caller
2. ``GEMCHAT_DB_PATH``
3. ``gemchat.db`` inside ``GEMCHAT_DB_DIR`` (default ``~/.gemchat``)
"""

from __future__ import annotations

import os
from contextlib import contextmanager
from functools import lru_cache
from pathlib import Path
from typing import Iterator

from sqlalchemy.orm import Session, sessionmaker

from gemchat.logging import get_logger

from .models import StateBase, sqlite_engine

logger = get_logger(__file__)

DB_FILENAME = "gemchat.db"


def _env(name: str) -> str:
    return (os.getenv(name) or "").strip()


def get_state_db_uri(file: str | Path | None = None) -> str:
    target = str(file).strip() if file is not None else _env("GEMCHAT_DB_PATH")
    if target.startswith("sqlite"):
        return target
    if target:
        path = Path(target).expanduser()
    else:
        db_dir = _env("GEMCHAT_DB_DIR")
        path = (Path(db_dir).expanduser() if db_dir else Path.home() / ".gemchat") / DB_FILENAME
    path.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{path}"


@lru_cache(maxsize=None)
def _session_factory(db_uri: str) -> sessionmaker[Session]:
    # One engine per URI; the schema is created the first time it is opened.
    engine = sqlite_engine(db_uri)
    StateBase.metadata.create_all(bind=engine)
    logger.debug("Opened client state DB %s", db_uri)
    return sessionmaker(bind=engine)


@contextmanager
def get_state_session(file_path: str | Path | None = None) -> Iterator[Session]:
    """Yield a session that commits on success and rolls back on error."""

    session = _session_factory(get_state_db_uri(file_path))()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
