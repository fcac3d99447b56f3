"""Tests for the generation lifecycle against a scripted transport."""

import threading

import pytest

from gemchat.chat.errors import ErrorOutcome, MalformedRequestError, classify
from gemchat.chat.models import Message
from gemchat.chat.orchestrator import (
    IMAGE_STATUS_TEXT,
    STOP_MARKER,
    AttemptState,
    GenerationOrchestrator,
    image_prompt,
)
from gemchat.chat.store import SessionStore
from gemchat.chat.transport import ImageResult, StreamCancelled, StreamCompleted, StreamFailed
from gemchat.config.settings import GenerationSettings

SETTINGS = GenerationSettings()


class ScriptedTransport:
    """Emit fixed chunks, honouring the token the way the HTTP transport does."""

    def __init__(self, chunks=(), result=None, image=None):
        self.chunks = list(chunks)
        self.result = result
        self.image = image
        self.before_chunk = None
        self.requests = []
        self.image_prompts = []

    def stream(self, request, on_chunk, token):
        self.requests.append(request)
        received = []
        for index, chunk in enumerate(self.chunks):
            if self.before_chunk is not None:
                self.before_chunk(index, token)
            if token.cancelled:
                return StreamCancelled("".join(received))
            received.append(chunk)
            on_chunk(chunk)
        if self.result is not None:
            return self.result
        return StreamCompleted("".join(received))

    def generate_image(self, prompt):
        self.image_prompts.append(prompt)
        return self.image


@pytest.fixture
def store(tmp_path):
    return SessionStore(db_path=tmp_path / "chat.db")


def test_send_streams_reply_into_placeholder(store):
    session = store.new_chat()
    before = store.get_session(session.id).updated_at
    transport = ScriptedTransport(["Hi", " there"])
    updates = []
    orchestrator = GenerationOrchestrator(
        store, transport, on_update=lambda s: updates.append(s.messages[-1].text)
    )

    result = orchestrator.send(session.id, "Hello", settings=SETTINGS)

    assert result.state is AttemptState.COMPLETED
    assert result.message.text == "Hi there"
    request = transport.requests[0]
    assert request.context == []
    assert request.new_turn["parts"] == [{"text": "Hello"}]
    assert "Hi" in updates and updates[-1] == "Hi there"

    stored = store.get_session(session.id)
    assert [m.text for m in stored.messages[1:]] == ["Hello", "Hi there"]
    assert stored.messages[2].is_user is False
    assert stored.title == "Hello"
    assert not orchestrator.is_generating(session.id)
    assert stored.updated_at > before


def test_stop_keeps_prefix_and_appends_marker(store):
    session = store.new_chat()
    transport = ScriptedTransport(["Hi", " there", " friend"])
    orchestrator = GenerationOrchestrator(store, transport)
    stopped = []

    def stop_before_third(index, token):
        if index == 2:
            stopped.append(orchestrator.stop(session.id))

    transport.before_chunk = stop_before_third

    result = orchestrator.send(session.id, "Hello", settings=SETTINGS)

    assert stopped == [True]
    assert result.state is AttemptState.CANCELLED
    assert result.message.text == "Hi there" + STOP_MARKER
    assert store.get_session(session.id).messages[-1].text == "Hi there" + STOP_MARKER
    assert orchestrator.stop(session.id) is False


def test_failure_replaces_partial_text_and_flags_error(store):
    session = store.new_chat()
    outcome = classify("429 Too Many Requests, retry in 12.3s")
    transport = ScriptedTransport(["partial"], result=StreamFailed(outcome))
    orchestrator = GenerationOrchestrator(store, transport)

    result = orchestrator.send(session.id, "Hello", settings=SETTINGS)

    assert result.state is AttemptState.FAILED
    assert result.error == outcome
    stored = store.get_session(session.id).messages[-1]
    assert stored.is_error is True
    assert stored.text.startswith("Error: 429 Too Many Requests")
    assert "13 seconds" in stored.text
    assert "partial" not in stored.text


def test_regenerate_drops_previous_reply(store):
    session = store.new_chat()
    session.replace_messages([*session.messages, Message.user("U1"), Message.assistant("A1")])
    store.update_session(session)
    transport = ScriptedTransport(["A1 again"])
    orchestrator = GenerationOrchestrator(store, transport)

    result = orchestrator.regenerate(session.id, settings=SETTINGS)

    assert result.state is AttemptState.COMPLETED
    texts = [m.text for m in store.get_session(session.id).messages]
    assert texts[1:] == ["U1", "A1 again"]
    assert transport.requests[0].new_turn["parts"] == [{"text": "U1"}]
    assert transport.requests[0].context == []


def test_regenerate_without_user_turn_is_noop(store):
    session = store.new_chat()
    transport = ScriptedTransport(["x"])
    orchestrator = GenerationOrchestrator(store, transport)

    assert orchestrator.regenerate(session.id, settings=SETTINGS) is None
    assert transport.requests == []
    assert len(store.get_session(session.id).messages) == 1


def test_answer_pending_rejects_transcript_ending_with_model(store):
    session = store.new_chat()
    transport = ScriptedTransport(["x"])
    orchestrator = GenerationOrchestrator(store, transport)

    with pytest.raises(MalformedRequestError):
        orchestrator.answer_pending(session.id, settings=SETTINGS)

    assert transport.requests == []
    assert len(store.get_session(session.id).messages) == 1
    assert not orchestrator.is_generating(session.id)


def test_answer_pending_answers_trailing_user_turn(store):
    session = store.new_chat()
    session.append(Message.user("Pending?"))
    store.update_session(session)
    orchestrator = GenerationOrchestrator(store, ScriptedTransport(["Yes"]))

    result = orchestrator.answer_pending(session.id, settings=SETTINGS)

    assert result.message.text == "Yes"
    assert [m.text for m in store.get_session(session.id).messages][-2:] == ["Pending?", "Yes"]


def test_new_send_supersedes_live_attempt(store):
    session = store.new_chat()
    first = ScriptedTransport(["old", " late"])
    orchestrator = GenerationOrchestrator(store, first)
    second = ScriptedTransport(["new"])
    nested = []

    def start_second(index, token):
        if index == 1:
            orchestrator.transport = second
            nested.append(orchestrator.send(session.id, "Again", settings=SETTINGS))
            orchestrator.transport = first

    first.before_chunk = start_second

    result = orchestrator.send(session.id, "Hello", settings=SETTINGS)

    assert nested[0].state is AttemptState.COMPLETED
    assert result.state is AttemptState.CANCELLED
    texts = [m.text for m in store.get_session(session.id).messages[1:]]
    assert texts == ["Hello", "old" + STOP_MARKER, "Again", "new"]
    assert all(" late" not in text for text in texts)


def test_auto_speak_hook_runs_on_completion(store):
    session = store.new_chat()
    spoken = []
    orchestrator = GenerationOrchestrator(
        store,
        ScriptedTransport(["Hi"]),
        on_complete=lambda session_id, text: spoken.append((session_id, text)),
    )

    orchestrator.send(session.id, "Hello", settings=GenerationSettings(auto_speak=True))
    orchestrator.send(session.id, "Quiet", settings=SETTINGS)

    assert spoken == [(session.id, "Hi")]


def test_listener_errors_do_not_break_generation(store):
    session = store.new_chat()

    def broken(_session):
        raise RuntimeError("ui crashed")

    orchestrator = GenerationOrchestrator(store, ScriptedTransport(["ok"]), on_update=broken)

    assert orchestrator.send(session.id, "Hello", settings=SETTINGS).message.text == "ok"


def test_unknown_session_raises(store):
    orchestrator = GenerationOrchestrator(store, ScriptedTransport())
    with pytest.raises(KeyError):
        orchestrator.send("missing", "Hello", settings=SETTINGS)


def test_image_command(store):
    session = store.new_chat()
    transport = ScriptedTransport(image=ImageResult("QUJD", "image/png"))
    updates = []
    orchestrator = GenerationOrchestrator(
        store, transport, on_update=lambda s: updates.append(s.messages[-1].text)
    )

    result = orchestrator.send(session.id, "/imagine a red fox", settings=SETTINGS)

    assert transport.image_prompts == ["a red fox"]
    assert transport.requests == []
    assert IMAGE_STATUS_TEXT in updates
    assert result.message.text == 'Here is your image for: "a red fox"'
    assert result.message.attachment.preview == "data:image/png;base64,QUJD"


def test_image_command_failure(store):
    session = store.new_chat()
    transport = ScriptedTransport(image=ErrorOutcome("GENERAL", "No image generated"))
    orchestrator = GenerationOrchestrator(store, transport)

    result = orchestrator.send(session.id, "/image cat", settings=SETTINGS)

    assert result.state is AttemptState.FAILED
    assert result.message.is_error
    assert result.message.text == "Error: No image generated"


def test_image_prompt_parsing():
    assert image_prompt("/imagine a cat") == "a cat"
    assert image_prompt("/IMAGE dog") == "dog"
    assert image_prompt("/images of cats") is None
    assert image_prompt("imagine a cat") is None


class FirstCallBlocksTransport:
    """Hold the first stream call open until released; answer later calls at once."""

    def __init__(self):
        self.entered = threading.Event()
        self.release = threading.Event()
        self._calls = 0
        self._lock = threading.Lock()

    def stream(self, request, on_chunk, token):
        with self._lock:
            self._calls += 1
            call = self._calls
        if call == 1:
            self.entered.set()
            self.release.wait(timeout=5)
            return StreamCancelled("")
        reply = f"reply{call}"
        on_chunk(reply)
        return StreamCompleted(reply)


def test_late_finish_of_stopped_attempt_keeps_later_turns(store):
    session = store.new_chat()
    transport = FirstCallBlocksTransport()
    orchestrator = GenerationOrchestrator(store, transport)
    results = []
    first = threading.Thread(
        target=lambda: results.append(orchestrator.send(session.id, "first", settings=SETTINGS))
    )
    first.start()
    assert transport.entered.wait(timeout=5)

    assert orchestrator.stop(session.id) is True
    orchestrator.send(session.id, "second", settings=SETTINGS)
    orchestrator.send(session.id, "third", settings=SETTINGS)
    transport.release.set()
    first.join(timeout=5)

    assert results[0].state is AttemptState.CANCELLED
    stored = store.get_session(session.id)
    assert [m.text for m in stored.messages[1:]] == [
        "first",
        STOP_MARKER,
        "second",
        "reply2",
        "third",
        "reply3",
    ]
    assert not orchestrator.is_generating(session.id)


def test_finish_does_not_resurrect_truncated_placeholder(store):
    session = store.new_chat()
    transport = FirstCallBlocksTransport()
    orchestrator = GenerationOrchestrator(store, transport)
    first = threading.Thread(target=lambda: orchestrator.send(session.id, "first", settings=SETTINGS))
    first.start()
    assert transport.entered.wait(timeout=5)

    orchestrator.regenerate(session.id, settings=SETTINGS)
    transport.release.set()
    first.join(timeout=5)

    stored = store.get_session(session.id)
    assert [m.text for m in stored.messages[1:]] == ["first", "reply2"]
