"""Shared pytest fixtures for offerbridge tests."""
import sys
sys.dont_write_bytecode = True

import pytest  # noqa: E402

from .helpers import FakeStore, FakeTransport, ManualScheduler, RecordingSink  # noqa: E402


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def credentials_key_hex(monkeypatch):
    key = "0123456789abcdef0123456789abcdef0123456789abcdef0123456789abcdef"
    monkeypatch.setenv("CREDENTIALS_KEY", key)
    return key
