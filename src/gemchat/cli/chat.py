"""Terminal chat client: stream replies from the proxy into stored sessions.

Generation runs on a :class:`~gemchat.chat.worker.ChatWorker` thread while the
main thread waits, so Ctrl+C can stop the stream cleanly.
"""

from __future__ import annotations

import json
import sys
from typing import Callable, TextIO

from gemchat.chat.orchestrator import GenerationOrchestrator, GenerationResult
from gemchat.chat.models import Session
from gemchat.chat.store import SessionStore
from gemchat.chat.task_queue import Task
from gemchat.chat.transport import StreamTransport
from gemchat.chat.worker import ChatWorker
from gemchat.logging import get_logger

logger = get_logger(__file__)


def register_subcommands(subparsers) -> None:
    send_parser = subparsers.add_parser("send", help="Send a message and stream the reply")
    send_parser.add_argument("text", help="Message text (prefix with /image for image generation)")
    send_parser.add_argument("--session", default=None, help="Session id (default: most recent)")

    regen_parser = subparsers.add_parser("regenerate", help="Regenerate the last reply")
    regen_parser.add_argument("--session", default=None, help="Session id (default: most recent)")

    subparsers.add_parser("models", help="List models available through the proxy")


class StreamPrinter:
    """Session listener writing only the newly streamed suffix of the last reply."""

    def __init__(self, out: TextIO = sys.stdout) -> None:
        self.out = out
        self.message_id: str | None = None
        self.printed = ""

    def __call__(self, session: Session) -> None:
        if not session.messages:
            return
        message = session.messages[-1]
        if message.is_user:
            return
        if message.id != self.message_id:
            self.message_id = message.id
            self.printed = ""
        if message.text.startswith(self.printed):
            self.out.write(message.text[len(self.printed):])
            self.out.flush()
            self.printed = message.text

    def finish(self, result: GenerationResult | None) -> None:
        if result is not None and result.message.text != self.printed:
            # Errors and image captions replace the text rather than extend it.
            self.out.write(("\n" if self.printed else "") + result.message.text)
        self.out.write("\n")
        self.out.flush()


def _resolve_session(store: SessionStore, session_id: str | None) -> str:
    if session_id:
        return session_id
    store.migrate_legacy()
    sessions = store.load()
    if sessions:
        return sessions[0].id
    return store.new_chat().id


def _wait(worker: ChatWorker, session_id: str, task: Task) -> GenerationResult | None:
    while True:
        try:
            return task.wait(timeout=0.1)
        except TimeoutError:
            continue
        except KeyboardInterrupt:
            worker.cancel(session_id)


def _run(
    store: SessionStore,
    session_id: str,
    submit: Callable[[ChatWorker], Task],
    out: TextIO,
) -> GenerationResult | None:
    printer = StreamPrinter(out)
    orchestrator = GenerationOrchestrator(store, StreamTransport(), on_update=printer)
    worker = ChatWorker(orchestrator)
    worker.start()
    try:
        result = _wait(worker, session_id, submit(worker))
    finally:
        worker.stop()
    printer.finish(result)
    return result


def dispatch(args, store: SessionStore | None = None, out: TextIO = sys.stdout) -> None:
    store = store or SessionStore()

    if args.subcommand == "models":
        models = StreamTransport().list_models()
        for model in models:
            out.write(f"{model.get('name', '')}\t{model.get('displayName', '')}\n")
        return

    session_id = _resolve_session(store, args.session)
    if args.subcommand == "send":
        result = _run(store, session_id, lambda worker: worker.send(session_id, args.text), out)
    elif args.subcommand == "regenerate":
        result = _run(store, session_id, lambda worker: worker.regenerate(session_id), out)
        if result is None:
            logger.warning("Nothing to regenerate in session %s", session_id)
    else:
        message = f"No handler for chat subcommand: {args.subcommand}"
        logger.error(message)
        raise ValueError(message)

    if result is not None and result.error is not None:
        logger.debug("Generation error detail: %s", json.dumps(result.error.to_dict()))
