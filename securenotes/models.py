"""Data models for SecureNotes."""

import json
import time
from dataclasses import dataclass, field
from datetime import datetime

from .errors import StorageCorruptionError

DEFAULT_FOLDER = "default"


def now_ms() -> int:
    """Current time as milliseconds since the Unix epoch."""
    return int(time.time() * 1000)


def _timestamp(data: dict, key: str) -> int:
    """Read a millisecond timestamp field; a missing one reads as 0."""
    value = data.get(key)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise StorageCorruptionError(f"Invalid {key} value: {value!r}")
    return int(value)


def ms_to_datetime(timestamp: int | None) -> datetime | None:
    """Convert a millisecond epoch timestamp to a local datetime."""
    if timestamp is None:
        return None
    return datetime.fromtimestamp(timestamp / 1000)


@dataclass
class Folder:
    """Represents a notes folder."""

    name: str
    created_at: int = field(default_factory=now_ms)

    @classmethod
    def from_dict(cls, data: dict) -> "Folder":
        if not isinstance(data, dict) or not isinstance(data.get("name"), str):
            raise StorageCorruptionError(f"Invalid folder entry: {data!r}")
        return cls(name=data["name"], created_at=_timestamp(data, "createdAt"))

    def to_dict(self) -> dict:
        return {"name": self.name, "createdAt": self.created_at}


@dataclass
class Note:
    """A decrypted note."""

    id: str
    title: str
    content: str
    folder: str = DEFAULT_FOLDER
    created_at: int = 0
    updated_at: int = 0

    @property
    def created_date(self) -> datetime | None:
        """Get created date as datetime."""
        return ms_to_datetime(self.created_at)

    @property
    def updated_date(self) -> datetime | None:
        """Get last modification date as datetime."""
        return ms_to_datetime(self.updated_at)


@dataclass
class EncryptedNote:
    """A note as stored on disk: title and content are ciphertext."""

    id: str
    folder: str
    encrypted_title: str
    encrypted_content: str
    created_at: int = 0
    updated_at: int = 0

    @classmethod
    def from_dict(cls, data: dict) -> "EncryptedNote":
        if not isinstance(data, dict) or "id" not in data:
            raise StorageCorruptionError(f"Invalid note entry: {data!r}")
        return cls(
            id=str(data["id"]),
            # Notes written before folders existed have no folder field
            folder=data.get("folder") or DEFAULT_FOLDER,
            encrypted_title=data.get("encryptedTitle", ""),
            encrypted_content=data.get("encryptedContent", ""),
            created_at=_timestamp(data, "createdAt"),
            updated_at=_timestamp(data, "updatedAt"),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "folder": self.folder,
            "encryptedTitle": self.encrypted_title,
            "encryptedContent": self.encrypted_content,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


@dataclass
class EncryptedStorage:
    """The per-user document: folders plus encrypted notes."""

    folders: list[Folder] = field(default_factory=list)
    notes: list[EncryptedNote] = field(default_factory=list)

    @classmethod
    def from_json(cls, parsed) -> "EncryptedStorage":
        """Build a document from already-parsed JSON.

        A bare list is the legacy format, which only held notes.
        """
        if isinstance(parsed, list):
            return cls(folders=[], notes=[EncryptedNote.from_dict(n) for n in parsed])
        if not isinstance(parsed, dict):
            raise StorageCorruptionError(
                f"Expected an object or array at top level, got {type(parsed).__name__}"
            )

        folders = parsed.get("folders", [])
        notes = parsed.get("notes", [])
        if not isinstance(folders, list) or not isinstance(notes, list):
            raise StorageCorruptionError("'folders' and 'notes' must be arrays")

        return cls(
            folders=[Folder.from_dict(f) for f in folders],
            notes=[EncryptedNote.from_dict(n) for n in notes],
        )

    @classmethod
    def loads(cls, text: str) -> "EncryptedStorage":
        """Parse a document from its JSON text."""
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as e:
            raise StorageCorruptionError(f"Notes document is not valid JSON: {e}") from e
        return cls.from_json(parsed)

    def dumps(self) -> str:
        """Serialize the document to JSON text."""
        data = {
            "folders": [f.to_dict() for f in self.folders],
            "notes": [n.to_dict() for n in self.notes],
        }
        return json.dumps(data, indent=2, ensure_ascii=False)

    def find_note(self, note_id: str) -> EncryptedNote | None:
        for note in self.notes:
            if note.id == note_id:
                return note
        return None

    def has_folder(self, name: str) -> bool:
        return any(f.name == name for f in self.folders)
