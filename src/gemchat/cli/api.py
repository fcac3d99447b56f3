"""``gemchat api``: run the proxy, or ask a running one whether it is up."""

import requests

from gemchat.chat.transport import default_base_url
from gemchat.cli.env import load_env_file
from gemchat.logging import get_logger

logger = get_logger(__file__)

UVICORN_LOG_LEVELS = ["critical", "error", "warning", "info", "debug"]


def register_subcommands(subparsers):
    status_parser = subparsers.add_parser("status", help="Check whether a proxy is answering")
    status_parser.add_argument(
        "--url",
        default=None,
        help="Proxy base URL (default: GEMCHAT_API_BASE_URL or http://localhost:8000)",
    )
    status_parser.add_argument("--timeout", type=float, default=5.0, help="Seconds to wait for a reply")

    start_parser = subparsers.add_parser("start", help="Start the proxy server")
    start_parser.add_argument("--host", default="localhost", help="Interface to bind")
    start_parser.add_argument("--port", type=int, default=8000, help="Port to listen on")
    start_parser.add_argument("--log-level", choices=UVICORN_LOG_LEVELS, default="info", help="uvicorn log level")


def _status(args) -> bool:
    base = (args.url or default_base_url()).rstrip("/")
    try:
        response = requests.get(f"{base}/status", timeout=args.timeout)
        response.raise_for_status()
    except requests.RequestException as exc:
        logger.debug("Status check against %s failed: %s", base, exc)
        print(f"proxy at {base} is not reachable: {exc}")
        return False
    print(f"proxy at {base} is up")
    return True


def _start(args) -> None:
    # An ambient .env only fills gaps; explicit --env-file values win.
    load_env_file(".env", override=False, required=False)
    import uvicorn

    from gemchat.api.main import app

    logger.info("Starting proxy server at %s:%s", args.host, args.port)
    uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level)


def dispatch(args):
    """Run an ``api`` subcommand.

    ``status`` exits with code 1 when the proxy does not answer. Unknown
    subcommands raise ``ValueError``.
    """
    if args.subcommand == "status":
        if not _status(args):
            raise SystemExit(1)
    elif args.subcommand == "start":
        _start(args)
    else:
        message = f"No handler for API subcommand: {args.subcommand}"
        logger.error(message)
        raise ValueError(message)
