"""Tests for the persisted session list and legacy migration."""

import json
import threading

import pytest

from gemchat.chat.models import LEGACY_TITLE, WELCOME_ID, Message, Session
from gemchat.chat.store import LEGACY_HISTORY_KEY, SESSIONS_KEY, SessionStore
from gemchat.storage import KeyValueStore


@pytest.fixture
def store(tmp_path):
    return SessionStore(db_path=tmp_path / "chat.db")


def test_load_empty_store(store):
    assert store.load() == []


def test_new_chat_is_persisted_first(store):
    first = store.new_chat()
    second = store.new_chat()
    sessions = store.load()
    assert [s.id for s in sessions] == [second.id, first.id]
    assert sessions[0].messages[0].id == WELCOME_ID


def test_create_session_is_not_persisted(store):
    session = store.create_session(Message.user("hi"))
    assert session.messages[0].text == "hi"
    assert store.load() == []


def test_corrupt_sessions_slot_loads_as_empty(store):
    store.kv.set(SESSIONS_KEY, "{not json")
    assert store.load() == []
    store.kv.set(SESSIONS_KEY, json.dumps({"id": "x"}))
    assert store.load() == []
    store.kv.set(SESSIONS_KEY, json.dumps(["abc", None]))
    assert store.load() == []
    assert store.get_session("abc") is None


def test_malformed_entries_are_skipped_and_the_rest_kept(store):
    kept = store.new_chat()
    raw = json.loads(store.kv.get(SESSIONS_KEY))
    store.kv.set(SESSIONS_KEY, json.dumps(["abc", *raw, None, 7]))

    assert [session.id for session in store.load()] == [kept.id]
    store.update_session(kept)
    assert len(json.loads(store.kv.get(SESSIONS_KEY))) == 1


def test_update_session_merges_by_id(store):
    a = store.new_chat()
    b = store.new_chat()

    a.append(Message.user("for a"))
    store.update_session(a)

    loaded = {s.id: s for s in store.load()}
    assert loaded[a.id].title == "for a"
    assert loaded[b.id].is_blank()
    assert [s.id for s in store.load()] == [b.id, a.id]


def test_concurrent_updates_to_different_sessions_do_not_clobber(store):
    sessions = [store.new_chat() for _ in range(4)]

    def worker(session):
        for i in range(5):
            store.modify_session(session.id, lambda s, i=i: s.append(Message.assistant(f"{session.id}-{i}")))

    threads = [threading.Thread(target=worker, args=(s,)) for s in sessions]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    for session in store.load():
        assert len(session.messages) == 6


def test_delete_and_clear(store):
    session = store.new_chat()
    store.modify_session(session.id, lambda s: s.append(Message.user("hello")))

    cleared = store.clear_session(session.id)
    assert cleared is not None
    assert [m.id for m in store.get_session(session.id).messages] == [WELCOME_ID]

    assert store.delete_session(session.id) is True
    assert store.delete_session(session.id) is False
    assert store.get_session(session.id) is None


def test_modify_unknown_session_returns_none(store):
    assert store.modify_session("missing", lambda s: None) is None


def test_migrate_legacy_history(store):
    existing = store.new_chat()
    legacy = [
        {"id": "welcome", "text": "Hello", "isUser": False},
        {"id": 1, "text": "old question", "isUser": True},
        {"id": 2, "text": "old answer", "isUser": False},
    ]
    store.kv.set(LEGACY_HISTORY_KEY, json.dumps(legacy))

    migrated = store.migrate_legacy()

    assert migrated is not None
    assert migrated.title == LEGACY_TITLE
    assert migrated.id.startswith("legacy-")
    assert [s.id for s in store.load()] == [migrated.id, existing.id]
    assert LEGACY_HISTORY_KEY not in store.kv

    assert store.migrate_legacy() is None
    assert len(store.load()) == 2


def test_migrate_welcome_only_history_discards_slot(store):
    store.kv.set(LEGACY_HISTORY_KEY, json.dumps([{"id": "welcome", "text": "Hello", "isUser": False}]))
    assert store.migrate_legacy() is None
    assert store.load() == []
    assert LEGACY_HISTORY_KEY not in store.kv


def test_migrate_unparseable_history_keeps_state(store):
    store.kv.set(LEGACY_HISTORY_KEY, "garbage")
    assert store.migrate_legacy() is None
    assert store.load() == []


def test_store_shares_kv_instance(tmp_path):
    kv = KeyValueStore(tmp_path / "shared.db")
    first = SessionStore(kv)
    session = first.new_chat()
    assert SessionStore(kv).get_session(session.id) is not None


def test_saved_sessions_round_trip_through_browser_shape(store):
    session = Session(id="1", title="T", messages=[Message.user("q"), Message.assistant("a")])
    store.save([session])
    raw = json.loads(store.kv.get(SESSIONS_KEY))
    assert raw[0]["messages"][0]["isUser"] is True
    assert store.load()[0].messages[1].text == "a"
