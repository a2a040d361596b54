"""Pytest configuration and fixtures."""

from __future__ import annotations

import logging
import os

import pytest

from ssokit.config import clear_settings
from ssokit.flow import RedirectHost
from ssokit.storage import MemorySessionStorage, reset_session_storage

from tests.fakes import FakeOIDCClient, FakePresenter, RecordingDelegate


@pytest.fixture()
def oidc_client() -> FakeOIDCClient:
    """Create a scriptable OIDC client."""
    return FakeOIDCClient()


@pytest.fixture()
def storage() -> MemorySessionStorage:
    """Create a memory session storage."""
    return MemorySessionStorage()


@pytest.fixture()
def presenter() -> FakePresenter:
    """Create a recording presenter."""
    return FakePresenter()


@pytest.fixture()
def redirect_host() -> RedirectHost:
    """Create a redirect host."""
    return RedirectHost()


@pytest.fixture()
def delegate() -> RecordingDelegate:
    """Create a recording delegate."""
    return RecordingDelegate()


@pytest.fixture(autouse=True)
def reset_singletons():
    """Reset cached settings, storage and the package log level around each test."""
    package_logger = logging.getLogger("ssokit")
    level = package_logger.level
    reset_session_storage()
    clear_settings()
    yield
    reset_session_storage()
    clear_settings()
    package_logger.setLevel(level)


@pytest.fixture()
def clean_env(monkeypatch, tmp_path):
    """Run in an empty directory without SSOKIT_* variables or a user config."""
    for key in list(os.environ):
        if key.startswith("SSOKIT_"):
            monkeypatch.delenv(key)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.setenv("APPDATA", str(tmp_path / "appdata"))
    monkeypatch.chdir(tmp_path)
    return tmp_path
