"""Tests for logging utilities."""

import logging

from gemchat.logging import get_logger, reset_logger
from gemchat.logging.config import load_log_level, save_log_level
from gemchat.logging.logging import logger_name


def test_reset_logger_allows_reconfiguration(tmp_path):
    log1 = tmp_path / "first.log"
    log2 = tmp_path / "second.log"

    logger = get_logger("test", log_file=log1, console=False)
    logger.info("first message")
    for handler in logger.handlers:
        handler.flush()

    assert "first message" in log1.read_text()

    reset_logger("test")
    assert logging.getLogger("test").handlers == []

    logger2 = get_logger("test", log_file=log2, console=False)
    logger2.info("second message")
    for handler in logger2.handlers:
        handler.flush()

    assert "second message" in log2.read_text()
    assert "second message" not in log1.read_text()
    reset_logger("test")


def test_persisted_level_is_used_by_default(tmp_path, monkeypatch):
    monkeypatch.setenv("GEMCHAT_LOG_CONFIG", str(tmp_path / "logging.json"))
    save_log_level("WARNING")

    logger = get_logger("persisted", log_file=tmp_path / "p.log", console=False)

    assert logger.level == logging.WARNING
    reset_logger("persisted")


def test_load_log_level_ignores_garbage(tmp_path):
    path = tmp_path / "logging.json"
    path.write_text('{"log_level": "LOUD"}', encoding="utf-8")
    assert load_log_level(path) is None
    path.write_text("not json", encoding="utf-8")
    assert load_log_level(path) is None


def test_env_level_overrides_persisted_level(tmp_path, monkeypatch):
    monkeypatch.setenv("GEMCHAT_LOG_CONFIG", str(tmp_path / "logging.json"))
    monkeypatch.setenv("GEMCHAT_LOG_LEVEL", "debug")
    save_log_level("ERROR")

    logger = get_logger("env-level", log_file=tmp_path / "e.log", console=False)

    assert logger.level == logging.DEBUG
    reset_logger("env-level")


def test_module_files_map_to_dotted_names():
    import gemchat.chat.store as store_module

    assert logger_name(store_module.__file__) == "gemchat.chat.store"
    assert logger_name("plain") == "plain"
