"""Tests for configuration and credential storage."""

import os
import stat

from securenotes import paths
from securenotes.config import AppConfig, SyncConfig, SyncProvider, load_config, save_config
from securenotes.credentials import FileCredentialStore, MemoryCredentialStore


def test_missing_config_gives_defaults(tmp_path):
    config = load_config(tmp_path / "nope.json")
    assert config.storage_path is None
    assert config.sync.provider == SyncProvider.NONE
    assert config.sync.auto_sync is False


def test_config_round_trip(tmp_path):
    path = tmp_path / "config.json"
    config = AppConfig(
        storage_path="~/notes",
        sync=SyncConfig(provider=SyncProvider.WEBDAV, url="https://dav", username="a",
                        auto_sync=True, timeout=5),
    )
    save_config(config, path)

    loaded = load_config(path)
    assert loaded == config


def test_unknown_provider_disables_sync(tmp_path):
    path = tmp_path / "config.json"
    path.write_text('{"sync": {"provider": "ftp"}}', encoding="utf-8")
    assert load_config(path).sync.provider == SyncProvider.NONE


def test_invalid_config_json(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{oops", encoding="utf-8")
    assert load_config(path) == AppConfig()


def test_storage_path_precedence(tmp_path, monkeypatch):
    config = AppConfig(storage_path=str(tmp_path / "from-config"))
    assert config.resolve_storage_path() == tmp_path / "from-config"

    monkeypatch.setenv("SECURENOTES_STORAGE_PATH", str(tmp_path / "from-env"))
    assert config.resolve_storage_path() == tmp_path / "from-env"
    assert config.resolve_storage_path(str(tmp_path / "explicit")) == tmp_path / "explicit"


def test_default_storage_path(monkeypatch, tmp_path):
    monkeypatch.setenv("HOME", str(tmp_path))
    assert AppConfig().resolve_storage_path() == tmp_path / "Documents" / "SecureNotes"


def test_config_dir_follows_xdg(tmp_path):
    assert paths.config_file() == tmp_path / "config" / "securenotes" / "config.json"


def test_file_credentials(tmp_path):
    store = FileCredentialStore(tmp_path / "creds.json")
    assert store.get("sync.token") is None

    store.store("sync.token", "abc")
    assert FileCredentialStore(tmp_path / "creds.json").get("sync.token") == "abc"
    assert stat.S_IMODE(os.stat(tmp_path / "creds.json").st_mode) == 0o600

    store.delete("sync.token")
    assert store.get("sync.token") is None


def test_memory_credentials():
    store = MemoryCredentialStore({"a": "1"})
    store.store("b", "2")
    store.delete("a")
    assert store.get("a") is None
    assert store.get("b") == "2"
