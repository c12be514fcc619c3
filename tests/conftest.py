from __future__ import annotations

import sys
from pathlib import Path

import pytest


def _ensure_project_root_on_path() -> None:
    """Guarantee the repository root is discoverable for absolute imports."""

    root = Path(__file__).resolve().parent.parent
    root_str = str(root)
    if root_str not in sys.path:
        sys.path.insert(0, root_str)


_ensure_project_root_on_path()


@pytest.fixture(autouse=True)
def _isolated_host_env(monkeypatch: pytest.MonkeyPatch, tmp_path_factory: pytest.TempPathFactory):
    """Keep log files and configuration overrides away from real user data."""

    log_dir = tmp_path_factory.mktemp("logs")
    monkeypatch.setenv("AGENTOS_LOG_DIR", str(log_dir))
    for name in ("AGENTOS_LOG_FILE", "AGENTOS_CONFIG_FILE", "AGENTOS_COMPANION_LOCAL_DIR"):
        monkeypatch.delenv(name, raising=False)

    from app.config import reset_app_config_cache

    reset_app_config_cache()
    yield
    reset_app_config_cache()
