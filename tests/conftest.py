"""Shared test fixtures for SecureNotes tests."""

import pytest

from securenotes.session import Session
from securenotes.store import NoteStore

PASSWORD = "correct horse battery staple"


@pytest.fixture(autouse=True)
def _isolated_dirs(tmp_path, monkeypatch):
    """Keep config, credentials and logs out of the real home directory."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.delenv("SECURENOTES_STORAGE_PATH", raising=False)
    monkeypatch.delenv("SECURENOTES_PASSWORD", raising=False)
    monkeypatch.delenv("SECURENOTES_USER", raising=False)


@pytest.fixture
def storage_dir(tmp_path):
    return tmp_path / "notes"


@pytest.fixture
def session():
    s = Session()
    s.login("alice", PASSWORD)
    return s


@pytest.fixture
def store(storage_dir, session):
    return NoteStore(storage_dir, session)
