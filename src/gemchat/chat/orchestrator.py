"""Drive one generation attempt from user input to a committed assistant message.

Each attempt moves through ``REQUESTING -> STREAMING -> COMPLETED | CANCELLED |
FAILED``. A placeholder assistant message is appended before the network call
and is the only message the attempt ever touches. At most one attempt is live
per session: starting a new one cancels the previous token, and every chunk
is checked against the session's current attempt before it is applied, so a
superseded attempt cannot write late text.
"""

from __future__ import annotations

import itertools
import re
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from gemchat.config.settings import GenerationSettings, load_settings
from gemchat.logging import get_logger

from .errors import ErrorOutcome, render_outcome
from .history import GenerationRequest, build_request
from .models import Attachment, Message, Session
from .store import SessionStore
from .transport import (
    CancellationToken,
    ImageResult,
    StreamCancelled,
    StreamCompleted,
    StreamFailed,
    StreamResult,
    StreamTransport,
)

logger = get_logger(__file__)

STOP_MARKER = " [Stopped]"
IMAGE_STATUS_TEXT = "🎨 Generating image..."
_IMAGE_COMMAND_RE = re.compile(r"^/(?:imagine|image)\b\s*", re.IGNORECASE)

SessionListener = Callable[[Session], None]
CompletionHook = Callable[[str, str], None]


class AttemptState(str, Enum):
    IDLE = "IDLE"
    REQUESTING = "REQUESTING"
    STREAMING = "STREAMING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"


@dataclass
class GenerationAttempt:
    attempt_id: int
    session_id: str
    placeholder_id: str
    token: CancellationToken
    state: AttemptState = AttemptState.IDLE


@dataclass(frozen=True)
class GenerationResult:
    session_id: str
    state: AttemptState
    message: Message
    error: ErrorOutcome | None = None


def image_prompt(text: str) -> str | None:
    """Return the prompt of an ``/image`` or ``/imagine`` command, else ``None``."""

    match = _IMAGE_COMMAND_RE.match(text.strip())
    if match is None:
        return None
    return text.strip()[match.end():]


class GenerationOrchestrator:
    """Compose, stream and commit assistant replies for stored sessions.

    ``on_update`` receives the live :class:`Session` after every mutation
    (including each streamed chunk). ``on_complete`` receives
    ``(session_id, text)`` after a non-empty completed reply when the
    settings ask for auto-speak.
    """

    def __init__(
        self,
        store: SessionStore,
        transport: StreamTransport | None = None,
        *,
        on_update: SessionListener | None = None,
        on_complete: CompletionHook | None = None,
    ) -> None:
        self.store = store
        self.transport = transport or StreamTransport()
        self.on_update = on_update
        self.on_complete = on_complete
        self._lock = threading.RLock()
        self._attempt_ids = itertools.count(1)
        self._attempts: dict[str, GenerationAttempt] = {}
        self._sessions: dict[str, Session] = {}
        # Placeholder messages of live attempts, keyed by message id.
        self._placeholders: dict[str, Message] = {}

    # session bookkeeping --------------------------------------------------
    def _session(self, session_id: str) -> Session:
        if session_id in self._attempts and session_id in self._sessions:
            return self._sessions[session_id]
        session = self.store.get_session(session_id)
        if session is None:
            raise KeyError(f"Unknown session: {session_id}")
        self._sessions[session_id] = session
        return session

    def _commit(self, session: Session) -> None:
        self.store.update_session(session)
        self._notify(session)

    def _finalize(self, attempt: GenerationAttempt, message: Message) -> Session:
        """Write the finished placeholder into the stored session by message id.

        Only that one message is patched, so an attempt that finishes after
        later turns were stored cannot roll them back. A placeholder that was
        truncated away in the meantime stays gone.
        """

        def patch(session: Session) -> None:
            ids = [existing.id for existing in session.messages]
            if message.id not in ids:
                return
            messages = list(session.messages)
            messages[ids.index(message.id)] = message
            session.replace_messages(messages)

        cached = self._sessions.get(attempt.session_id)
        if cached is not None:
            patch(cached)
        stored = self.store.modify_session(attempt.session_id, patch)
        return stored if stored is not None else cached

    def _notify(self, session: Session) -> None:
        if self.on_update is None:
            return
        try:
            self.on_update(session)
        except Exception:
            logger.exception("Session listener failed for %s", session.id)

    def _is_current(self, attempt: GenerationAttempt) -> bool:
        return self._attempts.get(attempt.session_id) is attempt and not attempt.token.cancelled

    def is_generating(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._attempts

    # public operations ----------------------------------------------------
    def send(
        self,
        session_id: str,
        text: str,
        attachment: Attachment | None = None,
        settings: GenerationSettings | None = None,
    ) -> GenerationResult:
        """Append a user turn to ``session_id`` and stream the reply into it.

        Raises ``KeyError`` for an unknown session. Provider and network
        failures never raise; they come back as a ``FAILED`` result with the
        error rendered into the assistant message.
        """

        settings = settings or load_settings()
        with self._lock:
            session = self._session(session_id)
            history = [*session.messages, Message.user(text, attachment)]
            request = build_request(history, settings)
            session.replace_messages(history)
            attempt = self._start_attempt(session)
        return self._run(session, attempt, request, settings, history[-1])

    def regenerate(
        self,
        session_id: str,
        settings: GenerationSettings | None = None,
    ) -> GenerationResult | None:
        """Drop everything after the last user turn and answer it again.

        The user turn itself is kept. Returns ``None`` when the session has
        no user turn to answer.
        """

        settings = settings or load_settings()
        with self._lock:
            session = self._session(session_id)
            index = session.last_user_index()
            if index == -1:
                return None
            history = session.messages[: index + 1]
            request = build_request(history, settings)
            session.replace_messages(history)
            attempt = self._start_attempt(session)
        return self._run(session, attempt, request, settings, history[-1])

    def answer_pending(
        self,
        session_id: str,
        settings: GenerationSettings | None = None,
    ) -> GenerationResult:
        """Answer a transcript whose last message is an unanswered user turn.

        Raises :class:`~gemchat.chat.errors.MalformedRequestError` before
        anything is appended when the transcript does not end with a user turn.
        """

        settings = settings or load_settings()
        with self._lock:
            session = self._session(session_id)
            history = list(session.messages)
            request = build_request(history, settings)
            attempt = self._start_attempt(session)
        return self._run(session, attempt, request, settings, history[-1])

    def stop(self, session_id: str) -> bool:
        """Signal the live attempt for ``session_id``; returns ``False`` if there is none."""

        with self._lock:
            attempt = self._attempts.get(session_id)
            if attempt is None:
                return False
            logger.info("Stopping generation %s for session %s", attempt.attempt_id, session_id)
            attempt.token.cancel()
            return True

    # attempt lifecycle ----------------------------------------------------
    def _start_attempt(self, session: Session) -> GenerationAttempt:
        previous = self._attempts.get(session.id)
        if previous is not None:
            logger.info("Generation %s superseded for session %s", previous.attempt_id, session.id)
            previous.token.cancel()

        placeholder = Message.assistant("")
        attempt = GenerationAttempt(
            attempt_id=next(self._attempt_ids),
            session_id=session.id,
            placeholder_id=placeholder.id,
            token=CancellationToken(),
            state=AttemptState.REQUESTING,
        )
        self._attempts[session.id] = attempt
        self._sessions[session.id] = session
        self._placeholders[placeholder.id] = placeholder
        session.append(placeholder)
        self._commit(session)
        return attempt

    def _run(
        self,
        session: Session,
        attempt: GenerationAttempt,
        request: GenerationRequest,
        settings: GenerationSettings,
        new_turn: Message,
    ) -> GenerationResult:
        prompt = image_prompt(new_turn.text)
        if prompt is not None:
            return self._generate_image(session, attempt, prompt)

        logger.info(
            "Generation %s: model=%s grounding=%s code_execution=%s",
            attempt.attempt_id,
            request.model_name,
            request.use_grounding,
            request.use_code_execution,
        )
        result = self.transport.stream(
            request,
            lambda chunk: self._apply_chunk(attempt, chunk),
            attempt.token,
        )
        outcome = self._finish_stream(session, attempt, result)
        if (
            outcome.state is AttemptState.COMPLETED
            and outcome.message.text
            and settings.auto_speak
            and self.on_complete is not None
        ):
            try:
                self.on_complete(session.id, outcome.message.text)
            except Exception:
                logger.exception("Completion hook failed for %s", session.id)
        return outcome

    def _apply_chunk(self, attempt: GenerationAttempt, chunk: str) -> None:
        with self._lock:
            if not self._is_current(attempt):
                return
            message = self._placeholders.get(attempt.placeholder_id)
            if message is None:
                return
            attempt.state = AttemptState.STREAMING
            message.text += chunk
            self._notify(self._sessions[attempt.session_id])

    def _release(self, attempt: GenerationAttempt) -> Message:
        message = self._placeholders.pop(attempt.placeholder_id)
        if self._attempts.get(attempt.session_id) is attempt:
            del self._attempts[attempt.session_id]
        return message

    def _finish_stream(
        self,
        session: Session,
        attempt: GenerationAttempt,
        result: StreamResult,
    ) -> GenerationResult:
        with self._lock:
            message = self._release(attempt)
            error: ErrorOutcome | None = None
            if isinstance(result, StreamCancelled) or attempt.token.cancelled:
                attempt.state = AttemptState.CANCELLED
                message.text += STOP_MARKER
                logger.info("Generation %s stopped", attempt.attempt_id)
            elif isinstance(result, StreamFailed):
                attempt.state = AttemptState.FAILED
                error = result.outcome
                message.text = render_outcome(error)
                message.is_error = True
                logger.error("Generation %s failed (%s): %s", attempt.attempt_id, error.kind, error.message)
            elif isinstance(result, StreamCompleted):
                attempt.state = AttemptState.COMPLETED
            self._notify(self._finalize(attempt, message))
            return GenerationResult(session.id, attempt.state, message, error)

    def _generate_image(self, session: Session, attempt: GenerationAttempt, prompt: str) -> GenerationResult:
        with self._lock:
            self._placeholders[attempt.placeholder_id].text = IMAGE_STATUS_TEXT
            self._notify(session)

        logger.info("Generation %s: image prompt %r", attempt.attempt_id, prompt)
        result = self.transport.generate_image(prompt)

        with self._lock:
            message = self._release(attempt)
            error: ErrorOutcome | None = None
            if isinstance(result, ImageResult):
                attempt.state = AttemptState.COMPLETED
                message.text = f'Here is your image for: "{prompt}"'
                message.attachment = Attachment(mime_type=result.mime_type, preview=result.data_url)
            else:
                attempt.state = AttemptState.FAILED
                error = result
                message.text = render_outcome(error)
                message.is_error = True
                logger.error("Image generation %s failed: %s", attempt.attempt_id, error.message)
            self._notify(self._finalize(attempt, message))
            return GenerationResult(session.id, attempt.state, message, error)
