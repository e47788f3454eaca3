"""Root pytest configuration for all tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from biomelsp.config import reset_config

pytest_plugins = ("pytest_asyncio",)


@pytest.fixture(autouse=True)
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Point user config and storage at an empty directory and clear the cache."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    monkeypatch.delenv("BIOMELSP_LOG", raising=False)
    monkeypatch.delenv("BIOMELSP_TRANSPORT", raising=False)
    reset_config()
