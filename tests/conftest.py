import os
import sys
from pathlib import Path

import pytest

# Ensure the src directory is on the path for imports
root = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(root / "src"))

log_dir = root / "logs"
log_dir.mkdir(parents=True, exist_ok=True)
os.environ.setdefault("GEMCHAT_LOG_DIR", str(log_dir))


@pytest.fixture(autouse=True)
def isolated_state(tmp_path, monkeypatch):
    """Keep settings and the state DB of every test inside its tmp dir."""

    monkeypatch.setenv("GEMCHAT_CONFIG_DIR", str(tmp_path / "config"))
    monkeypatch.setenv("GEMCHAT_DB_PATH", str(tmp_path / "state.db"))
    monkeypatch.delenv("GEMCHAT_SETTINGS_PATH", raising=False)
    monkeypatch.delenv("GEMCHAT_API_KEY", raising=False)
    monkeypatch.delenv("GEMCHAT_API_BASE_URL", raising=False)
    monkeypatch.delenv("GEMCHAT_LOG_LEVEL", raising=False)
    monkeypatch.delenv("GEMCHAT_LOG_CONFIG", raising=False)
    yield tmp_path
