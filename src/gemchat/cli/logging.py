"""``gemchat logging``: inspect and persist the log level."""

import logging

from gemchat.logging import get_logger, reset_logger
from gemchat.logging.config import save_log_level
from gemchat.logging.logging import get_configured_level, log_file_path

LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def register_subcommands(subparsers):
    set_level_parser = subparsers.add_parser("set-level", help="Persist the logging level for future runs")
    set_level_parser.add_argument("level", type=str.upper, choices=LEVELS, help="Logging level to use")

    subparsers.add_parser("show-path", help="Show the log file location")
    subparsers.add_parser("show-level", help="Show the effective logging level")


def dispatch(args):
    if args.subcommand == "set-level":
        level = getattr(logging, args.level)
        path = save_log_level(args.level)
        reset_logger()
        get_logger(level=level).info("Log level set to %s (saved in %s)", args.level, path)
    elif args.subcommand == "show-path":
        print(log_file_path().resolve())
    elif args.subcommand == "show-level":
        get_logger()
        print(get_configured_level())
    else:
        message = f"No handler for logging subcommand: {args.subcommand}"
        get_logger(__file__).error(message)
        raise ValueError(message)
