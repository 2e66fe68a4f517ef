"""Shared fixtures for depaudit tests."""

import pytest


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def depaudit_home(tmp_path_factory, monkeypatch):
    """Point DEPAUDIT_HOME at an empty directory and clear server env vars."""
    home = tmp_path_factory.mktemp("depaudit-home")
    monkeypatch.setenv("DEPAUDIT_HOME", str(home))
    for var in ("DEPAUDIT_SERVER_ID", "DEPAUDIT_URL", "DEPAUDIT_ACCESS_TOKEN"):
        monkeypatch.delenv(var, raising=False)
    return home
