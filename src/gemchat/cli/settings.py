"""Show and change persisted generation settings."""

from __future__ import annotations

import json

from gemchat.config.settings import load_settings, update_settings
from gemchat.logging import get_logger


def _on_off(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


def register_subcommands(subparsers) -> None:
    subparsers.add_parser("show", help="Print the effective settings as JSON")

    set_parser = subparsers.add_parser("set", help="Update one or more settings")
    set_parser.add_argument("--model", dest="model_name", default=None)
    set_parser.add_argument("--system-instruction", default=None)
    set_parser.add_argument("--grounding", choices=["on", "off"], default=None)
    set_parser.add_argument("--code-execution", choices=["on", "off"], default=None)
    set_parser.add_argument("--auto-speak", choices=["on", "off"], default=None)


def dispatch(args) -> None:
    if args.subcommand == "show":
        print(json.dumps(load_settings().to_dict(), indent=2, sort_keys=True))
        return
    if args.subcommand != "set":
        get_logger(__file__).error("No handler for subcommand: %s", args.subcommand)
        return

    changes: dict[str, object] = {}
    if args.model_name is not None:
        changes["model_name"] = args.model_name
    if args.system_instruction is not None:
        changes["system_instruction"] = args.system_instruction or None
    if args.grounding is not None:
        changes["use_grounding"] = _on_off(args.grounding)
    if args.code_execution is not None:
        changes["use_code_execution"] = _on_off(args.code_execution)
    if args.auto_speak is not None:
        changes["auto_speak"] = _on_off(args.auto_speak)
    settings = update_settings(**changes)
    print(json.dumps(settings.to_dict(), indent=2, sort_keys=True))
