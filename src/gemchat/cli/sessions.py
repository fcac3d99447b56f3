"""Session management subcommands (list, new, delete, clear, export, migrate)."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

from gemchat.chat.export import export_filename, export_messages
from gemchat.chat.store import SessionStore
from gemchat.logging import get_logger

logger = get_logger(__file__)


def register_subcommands(subparsers) -> None:
    subparsers.add_parser("list", help="List stored chat sessions")
    subparsers.add_parser("new", help="Start a new chat session")
    subparsers.add_parser("migrate", help="Import the legacy single-chat history, if any")

    delete_parser = subparsers.add_parser("delete", help="Delete a chat session")
    delete_parser.add_argument("session_id")

    clear_parser = subparsers.add_parser("clear", help="Reset a session to the welcome message")
    clear_parser.add_argument("session_id")

    export_parser = subparsers.add_parser("export", help="Export a session transcript")
    export_parser.add_argument("session_id")
    export_parser.add_argument("--format", choices=["json", "markdown"], default="json")
    export_parser.add_argument("--output", default=None, help="Write to a file instead of stdout")


def _format_ms(value: int) -> str:
    return datetime.fromtimestamp(value / 1000).strftime("%Y-%m-%d %H:%M")


def dispatch(args, store: SessionStore | None = None) -> None:
    store = store or SessionStore()

    if args.subcommand == "list":
        for session in store.load():
            print(f"{session.id}\t{_format_ms(session.updated_at)}\t{len(session.messages)}\t{session.title}")
    elif args.subcommand == "new":
        print(store.new_chat().id)
    elif args.subcommand == "migrate":
        migrated = store.migrate_legacy()
        print(migrated.id if migrated is not None else "Nothing to migrate")
    elif args.subcommand == "delete":
        if not store.delete_session(args.session_id):
            raise SystemExit(f"Unknown session: {args.session_id}")
    elif args.subcommand == "clear":
        if store.clear_session(args.session_id) is None:
            raise SystemExit(f"Unknown session: {args.session_id}")
    elif args.subcommand == "export":
        session = store.get_session(args.session_id)
        if session is None:
            raise SystemExit(f"Unknown session: {args.session_id}")
        content = export_messages(session.messages, args.format)
        if args.output is None:
            print(content)
            return
        output = Path(args.output)
        if output.is_dir():
            output = output / export_filename(args.format)
        output.write_text(content, encoding="utf-8")
        logger.info("Exported session %s to %s", session.id, output)
    else:
        message = f"No handler for sessions subcommand: {args.subcommand}"
        logger.error(message)
        raise ValueError(message)
