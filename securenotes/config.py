"""Persistent configuration: storage location and cloud sync settings.

Settings live in ``config.json`` under the XDG config directory. Remote
passwords and tokens never go there; they are kept by a
:class:`~securenotes.credentials.CredentialStore`.
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path

from . import paths
from .filesystem import LocalFileSystem

logger = logging.getLogger(__name__)

STORAGE_PATH_ENV = "SECURENOTES_STORAGE_PATH"
DEFAULT_TIMEOUT = 30.0


class SyncProvider(str, Enum):
    """Remote backends a user can choose."""

    NONE = "none"
    WEBDAV = "webdav"
    GITHUB = "github"
    CUSTOM = "custom"


@dataclass
class SyncConfig:
    """Non-secret sync settings."""

    provider: SyncProvider = SyncProvider.NONE
    url: str | None = None
    username: str | None = None
    auto_sync: bool = False
    timeout: float = DEFAULT_TIMEOUT

    @classmethod
    def from_dict(cls, data: dict) -> "SyncConfig":
        try:
            provider = SyncProvider(data.get("provider") or SyncProvider.NONE.value)
        except ValueError:
            logger.warning("Unknown sync provider %r, sync disabled", data.get("provider"))
            provider = SyncProvider.NONE
        return cls(
            provider=provider,
            url=data.get("url") or None,
            username=data.get("username") or None,
            auto_sync=bool(data.get("auto_sync", False)),
            timeout=float(data.get("timeout") or DEFAULT_TIMEOUT),
        )

    def to_dict(self) -> dict:
        data = asdict(self)
        data["provider"] = self.provider.value
        return data


@dataclass
class AppConfig:
    """Everything stored in config.json."""

    storage_path: str | None = None
    sync: SyncConfig = field(default_factory=SyncConfig)

    def resolve_storage_path(self, override: str | None = None) -> Path:
        """Notes directory: explicit override, then env, then config, then default."""
        raw = override or os.environ.get(STORAGE_PATH_ENV) or self.storage_path
        return paths.expand_storage_path(raw)


def load_config(path: Path | None = None) -> AppConfig:
    """Read the config file; a missing file gives defaults."""
    path = path or paths.config_file()
    if not path.exists():
        return AppConfig()

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        logger.warning("Config file %s is not valid JSON (%s); using defaults", path, e)
        return AppConfig()

    if not isinstance(data, dict):
        return AppConfig()

    return AppConfig(
        storage_path=data.get("storage_path") or None,
        sync=SyncConfig.from_dict(data.get("sync") or {}),
    )


def save_config(config: AppConfig, path: Path | None = None) -> None:
    path = path or paths.config_file()
    data = {"storage_path": config.storage_path, "sync": config.sync.to_dict()}
    LocalFileSystem().write_text(path, json.dumps(data, indent=2))
    logger.debug("Saved config to %s", path)
