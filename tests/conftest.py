"""
Shared pytest fixtures for the PassVault test suite.

Every test gets fresh process-wide settings pointing at a temp vault, so
nothing touches the real ./ vault or a developer's .env salt.
"""

import threading

import pytest

from passvault.common import config
from passvault.server import VaultServer
from passvault.session import ActiveUsers, Session
from passvault.storage.vault import VaultStore


@pytest.fixture(autouse=True)
def settings(tmp_path):
    """Install default settings with the vault under tmp_path."""
    installed = config.init_settings(config.Settings(vault_root=tmp_path / "vault"))
    installed.vault_root.mkdir()
    yield installed
    config.reset_settings()


@pytest.fixture
def store(settings):
    return VaultStore(settings.vault_root)


@pytest.fixture
def active_users():
    return ActiveUsers()


@pytest.fixture
def session(store, active_users):
    return Session(store, active_users)


@pytest.fixture
def server(settings):
    """VaultServer on an ephemeral loopback port, serving from a background thread."""
    config.init_settings(settings.model_copy(update={"host": "127.0.0.1", "port": 0, "workers": 2}))
    srv = VaultServer(config.get_settings())
    srv.bind()
    thread = threading.Thread(target=srv.start, daemon=True)
    thread.start()
    yield srv
    srv.stop()
    thread.join(timeout=5)
