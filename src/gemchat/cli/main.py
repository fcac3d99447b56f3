# gemchat/cli/main.py
import argparse
import sys

from gemchat.cli import api, chat, logging as logging_cli, sessions, settings
from gemchat.cli.env import extract_env_files, load_env_files


def main(argv=None):

    env_files, argv = extract_env_files(sys.argv[1:] if argv is None else argv)
    load_env_files(env_files)

    parser = argparse.ArgumentParser(prog="gemchat", description="gemchat client and proxy toolkit")
    parser.add_argument("--env-file", action="append", help="Load KEY=value pairs before running")
    subparsers = parser.add_subparsers(dest="command", required=True)

    api_parser = subparsers.add_parser("api", help="proxy server control")
    api.register_subcommands(api_parser.add_subparsers(dest="subcommand", required=True))

    chat_parser = subparsers.add_parser("chat", help="Chat with the model through the proxy")
    chat.register_subcommands(chat_parser.add_subparsers(dest="subcommand", required=True))

    sessions_parser = subparsers.add_parser("sessions", help="Manage stored chat sessions")
    sessions.register_subcommands(sessions_parser.add_subparsers(dest="subcommand", required=True))

    settings_parser = subparsers.add_parser("settings", help="Generation settings")
    settings.register_subcommands(settings_parser.add_subparsers(dest="subcommand", required=True))

    logging_parser = subparsers.add_parser("logging", help="Logging utilities")
    logging_cli.register_subcommands(logging_parser.add_subparsers(dest="subcommand", required=True))

    args = parser.parse_args(argv)

    handlers = {
        "api": api.dispatch,
        "chat": chat.dispatch,
        "sessions": sessions.dispatch,
        "settings": settings.dispatch,
        "logging": logging_cli.dispatch,
    }
    handlers[args.command](args)


if __name__ == "__main__":
    main()
