from __future__ import annotations

import logging

import pytest


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep tests away from the real environment, ~/.config and .env."""
    monkeypatch.delenv("VITO_URL", raising=False)
    monkeypatch.delenv("VITO_TOKEN", raising=False)
    monkeypatch.setattr("vito_cli.config.DEFAULT_CONFIG_PATH", tmp_path / "home" / "config.json")
    monkeypatch.setattr("vito_cli.config.DEFAULT_ENV_PATH", tmp_path / "project" / ".env")
    yield tmp_path
    # configure_logging() binds a handler to the runner's stderr
    logging.getLogger().handlers.clear()
