"""Helpers for resolving XDG data/config locations and the notes directory."""

import os
from pathlib import Path

APP_NAMESPACE = "securenotes"
DEFAULT_STORAGE_DIR = Path("~/Documents/SecureNotes")


def _ensure(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path


def _xdg_base(env_var: str, fallback: str) -> Path:
    base = os.environ.get(env_var)
    if not base:
        base = os.path.join(Path.home(), fallback)
    return Path(base) / APP_NAMESPACE


def user_data_dir() -> Path:
    return _ensure(_xdg_base("XDG_DATA_HOME", ".local/share"))


def user_config_dir() -> Path:
    return _ensure(_xdg_base("XDG_CONFIG_HOME", ".config"))


def log_dir() -> Path:
    return _ensure(user_data_dir() / "logs")


def config_file() -> Path:
    return user_config_dir() / "config.json"


def credentials_file() -> Path:
    return user_config_dir() / "credentials.json"


def expand_storage_path(raw: str | None) -> Path:
    """Resolve a user-supplied storage path, falling back to ~/Documents."""
    if raw and raw.strip():
        return Path(raw.strip()).expanduser()
    return DEFAULT_STORAGE_DIR.expanduser()
