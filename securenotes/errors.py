"""Exceptions raised by the SecureNotes core."""


class SecureNotesError(Exception):
    """Base exception for SecureNotes errors."""
    pass


class NoActiveKeyError(SecureNotesError):
    """Operation requires a logged-in user with a key."""
    pass


# Older name kept for callers that think in terms of "the password".
NoPasswordError = NoActiveKeyError


class DecryptionError(SecureNotesError):
    """Ciphertext could not be decrypted (wrong key or corrupted data)."""
    pass


class DuplicateFolderError(SecureNotesError):
    """A folder with this name already exists."""
    pass


class DuplicateTitleError(SecureNotesError):
    """A note with this title already exists in the folder."""
    pass


class StorageCorruptionError(SecureNotesError):
    """The notes document could not be parsed."""
    pass


class SyncError(SecureNotesError):
    """Base exception for cloud sync errors."""
    pass


class SyncBusyError(SyncError):
    """Another sync operation is already running."""
    pass


class SyncTransportError(SyncError):
    """The remote backend failed or could not be reached."""
    pass


class SyncConfigIncompleteError(SyncError):
    """The selected backend is missing its URL or credentials."""
    pass
