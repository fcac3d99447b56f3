# gemchat/logging/logging.py
import os
import logging
import sys
from pathlib import Path

ROOT_LOGGER = "gemchat"
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_PACKAGE_DIR = Path(__file__).resolve().parents[1]
# Logger names that already carry gemchat handlers
_CONFIGURED = set()


def log_dir_path(log_dir=None):
    if log_dir is not None:
        return Path(log_dir)
    return Path(os.environ.get("GEMCHAT_LOG_DIR", Path.home() / ".gemchat" / "logs"))


def log_file_path(log_file=None, log_dir=None):
    if log_file is not None:
        return Path(log_file)
    return log_dir_path(log_dir) / "gemchat.log"


def logger_name(name):
    """Map a module ``__file__`` inside the package to its dotted module name.

    Any other name is returned unchanged.
    """
    path = Path(name)
    if path.suffix != ".py":
        return name
    try:
        relative = path.resolve().relative_to(_PACKAGE_DIR)
    except ValueError:
        return name
    parts = [ROOT_LOGGER, *relative.with_suffix("").parts]
    if parts[-1] == "__init__":
        parts.pop()
    return ".".join(parts)


def _default_level():
    # GEMCHAT_LOG_LEVEL wins over the level saved by `gemchat logging set-level`.
    from gemchat.logging.config import level_value, load_log_level

    for candidate in (os.environ.get("GEMCHAT_LOG_LEVEL"), load_log_level()):
        value = level_value(candidate)
        if value is not None:
            return value
    return logging.INFO


def _handlers(file_path, console, filemode, encoding):
    file_path.parent.mkdir(parents=True, exist_ok=True)
    handlers = [logging.FileHandler(file_path, mode=filemode, encoding=encoding)]
    if console:
        handlers.append(logging.StreamHandler(sys.stderr))
    return handlers


def get_logger(
    name=ROOT_LOGGER,
    level=None,
    log_file=None,
    log_dir=None,
    console=True,
    filemode="a",
    fmt=LOG_FORMAT,
    datefmt=DATE_FORMAT,
    encoding="utf-8",
    propagate=False,
):
    """Return the logger for ``name``, configuring it on first use.

    Modules pass ``__file__``; the logger is then named after the module
    (``gemchat.chat.store``). A new logger writes to ``log_file`` (default
    ``<log_dir>/gemchat.log``) and, with ``console``, to stderr. Without an
    explicit ``level`` it uses ``GEMCHAT_LOG_LEVEL``, then the persisted
    level, then INFO. Later calls return the configured logger unchanged
    until :func:`reset_logger` is called.
    """
    name = logger_name(name)
    logger = logging.getLogger(name)
    if name in _CONFIGURED:
        return logger

    logger.setLevel(level if level is not None else _default_level())
    logger.propagate = propagate
    formatter = logging.Formatter(fmt=fmt, datefmt=datefmt)
    for handler in _handlers(log_file_path(log_file, log_dir), console, filemode, encoding):
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    _CONFIGURED.add(name)
    return logger


def reset_logger(name=None):
    """Drop the handlers of ``name`` (or of every configured logger).

    The next :func:`get_logger` call for that name configures it afresh,
    which is how a changed level or log file takes effect in-process.
    """
    names = list(_CONFIGURED) if name is None else [logger_name(name)]
    for n in names:
        logger = logging.getLogger(n)
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()
        _CONFIGURED.discard(n)


def get_configured_level(name=ROOT_LOGGER):
    level = logging.getLogger(logger_name(name)).getEffectiveLevel()
    return logging.getLevelName(level)
