"""Pytest configuration and fixtures."""

from __future__ import annotations

from typing import Callable

import pytest

from fmail import config
from fmail.client import Client
from tests.fixtures.jmap_server import FakeJMAP


@pytest.fixture
def make_client() -> Callable[..., Client]:
    """Build a Client over a FakeJMAP; the fake is available as ``client.jmap``."""

    def factory(handler=None, **kwargs) -> Client:
        return Client(FakeJMAP(handler, **kwargs))

    return factory


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """Keep tests away from the real config file, log file, and token."""
    for key in config.DEFAULT_CONFIG:
        monkeypatch.delenv(config.ENV_PREFIX + key.upper(), raising=False)
    monkeypatch.delenv("FMAIL_TOKEN", raising=False)
    monkeypatch.setenv("FMAIL_LOG", "none")
    monkeypatch.setattr(config, "CONFIG_FILE", tmp_path / "config.json")
    monkeypatch.setattr(config, "CONFIG_DIR", tmp_path)
