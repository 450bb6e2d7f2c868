"""Encrypted note storage for the logged-in user.

Each user has one JSON document, ``notes_<username>.encrypted``, holding the
folder list and the notes. Note titles and contents are encrypted with the
user's passphrase; ids, folder names and timestamps stay in the clear.
Every mutation loads the whole document, changes it and writes it back.
"""

import logging
import threading
import uuid
from pathlib import Path

from . import crypto
from .convert import html_to_plaintext
from .errors import (
    DecryptionError,
    DuplicateFolderError,
    DuplicateTitleError,
    NoActiveKeyError,
)
from .filesystem import FileSystem, LocalFileSystem
from .models import (
    DEFAULT_FOLDER,
    EncryptedNote,
    EncryptedStorage,
    Folder,
    Note,
    now_ms,
)
from .session import Session, validate_username

logger = logging.getLogger(__name__)


def document_file_name(username: str) -> str:
    """File name of a user's notes document."""
    return f"notes_{validate_username(username)}.encrypted"


def _decrypt_note(encrypted: EncryptedNote, key: str) -> Note:
    return Note(
        id=encrypted.id,
        folder=encrypted.folder,
        title=crypto.decrypt(encrypted.encrypted_title, key),
        content=crypto.decrypt(encrypted.encrypted_content, key),
        created_at=encrypted.created_at,
        updated_at=encrypted.updated_at,
    )


class NoteStore:
    """CRUD over the current user's encrypted document."""

    def __init__(
        self,
        storage_path: Path,
        session: Session,
        fs: FileSystem | None = None,
    ) -> None:
        self.storage_path = Path(storage_path)
        self.session = session
        self.fs = fs or LocalFileSystem()
        self._lock = threading.RLock()

        if not self.fs.exists(self.storage_path):
            self.fs.make_dirs(self.storage_path)

    def document_path(self, username: str | None = None) -> Path:
        """Path of a user's document (default: the current user).

        Raises:
            NoActiveKeyError: If no username is given and nobody is logged in
        """
        username = username or self.session.current_user
        if username is None:
            raise NoActiveKeyError("Please log in first.")
        return self.storage_path / document_file_name(username)

    def user_exists(self, username: str) -> bool:
        return self.fs.exists(self.document_path(username))

    # Document I/O

    def load_document(self, username: str | None = None) -> EncryptedStorage:
        """Read a user's document.

        A missing file is an empty document. A top-level array is the legacy
        notes-only format.

        Raises:
            StorageCorruptionError: If the file is not a valid document
        """
        path = self.document_path(username)
        if not self.fs.exists(path):
            return EncryptedStorage()
        return EncryptedStorage.loads(self.fs.read_text(path))

    def save_document(self, doc: EncryptedStorage) -> None:
        path = self.document_path()
        self.fs.write_text(path, doc.dumps())
        logger.debug("Saved %d notes, %d folders to %s", len(doc.notes), len(doc.folders), path)

    # Folders

    def list_folders(self) -> list[Folder]:
        if self.session.current_user is None:
            return []
        return self.load_document().folders

    def create_folder(self, name: str) -> Folder:
        if not name or not name.strip():
            raise ValueError("Folder name must not be empty")

        with self._lock:
            doc = self.load_document()
            if doc.has_folder(name):
                raise DuplicateFolderError(f'Folder "{name}" already exists')

            folder = Folder(name=name, created_at=now_ms())
            doc.folders.append(folder)
            self.save_document(doc)

        logger.info("Created folder %s", name)
        return folder

    def delete_folder(self, name: str) -> int:
        """Delete a folder and every note in it.

        Returns:
            Number of notes removed with the folder
        """
        with self._lock:
            doc = self.load_document()
            before = len(doc.notes)
            doc.folders = [f for f in doc.folders if f.name != name]
            doc.notes = [n for n in doc.notes if n.folder != name]
            self.save_document(doc)

        removed = before - len(doc.notes)
        logger.info("Deleted folder %s with %d notes", name, removed)
        return removed

    def folder_names(self) -> list[str]:
        """Stored folders plus any folder that only exists through its notes."""
        names = [f.name for f in self.list_folders()]
        for note in self.list_notes():
            if note.folder not in names:
                names.append(note.folder)
        return names

    # Notes

    def list_notes(self) -> list[Note]:
        """Decrypt every note; ones that fail to decrypt are skipped."""
        if not self.session.has_active_key():
            return []

        key = self.session.active_key()
        notes = []
        for encrypted in self.load_document().notes:
            try:
                notes.append(_decrypt_note(encrypted, key))
            except DecryptionError:
                logger.error("Failed to decrypt note %s, skipping it", encrypted.id)
        return notes

    def get_note(self, note_id: str) -> Note | None:
        """Decrypt a single note.

        Raises:
            DecryptionError: If the note exists but cannot be decrypted
        """
        if not self.session.has_active_key():
            return None

        encrypted = self.load_document().find_note(note_id)
        if encrypted is None:
            return None

        try:
            return _decrypt_note(encrypted, self.session.active_key())
        except DecryptionError as e:
            raise DecryptionError(
                f"Could not decrypt note {note_id}, the password may be wrong"
            ) from e

    def search_notes(
        self, query: str, title_only: bool = False, folder: str | None = None
    ) -> list[Note]:
        """Case-insensitive search over decrypted titles and content."""
        query_lower = query.lower()
        results = []
        for note in self.list_notes():
            if folder is not None and note.folder != folder:
                continue
            if query_lower in note.title.lower():
                results.append(note)
            elif not title_only and query_lower in html_to_plaintext(note.content).lower():
                results.append(note)
        return results

    def _check_title_free(self, title: str, folder: str, ignore_id: str | None = None) -> None:
        for note in self.list_notes():
            if note.folder == folder and note.title == title and note.id != ignore_id:
                raise DuplicateTitleError(
                    f'A note titled "{title}" already exists in folder "{folder}"'
                )

    def create_note(self, title: str, content: str, folder: str = DEFAULT_FOLDER) -> Note:
        """Encrypt and store a new note.

        Raises:
            NoActiveKeyError: If nobody is logged in
            DuplicateTitleError: If the folder already has a note with this title
        """
        key = self.session.active_key()
        folder = folder or DEFAULT_FOLDER

        with self._lock:
            self._check_title_free(title, folder)

            timestamp = now_ms()
            note = Note(
                id=uuid.uuid4().hex,
                folder=folder,
                title=title,
                content=content,
                created_at=timestamp,
                updated_at=timestamp,
            )

            doc = self.load_document()
            doc.notes.append(EncryptedNote(
                id=note.id,
                folder=folder,
                encrypted_title=crypto.encrypt(title, key),
                encrypted_content=crypto.encrypt(content, key),
                created_at=note.created_at,
                updated_at=note.updated_at,
            ))
            self.save_document(doc)

        logger.info("Created note %s in folder %s", note.id, folder)
        return note

    def update_note(self, note_id: str, title: str, content: str) -> Note | None:
        """Re-encrypt a note's title and content.

        An unknown id is ignored and returns None.

        Raises:
            NoActiveKeyError: If nobody is logged in
            DuplicateTitleError: If the new title is taken in the note's folder
        """
        key = self.session.active_key()

        with self._lock:
            doc = self.load_document()
            encrypted = doc.find_note(note_id)
            if encrypted is None:
                logger.debug("Update of unknown note %s ignored", note_id)
                return None

            self._check_title_free(title, encrypted.folder, ignore_id=note_id)

            encrypted.encrypted_title = crypto.encrypt(title, key)
            encrypted.encrypted_content = crypto.encrypt(content, key)
            encrypted.updated_at = now_ms()
            self.save_document(doc)

        logger.info("Updated note %s", note_id)
        return Note(
            id=encrypted.id,
            folder=encrypted.folder,
            title=title,
            content=content,
            created_at=encrypted.created_at,
            updated_at=encrypted.updated_at,
        )

    def delete_note(self, note_id: str) -> bool:
        """Remove a note. Returns False if there was nothing to remove."""
        with self._lock:
            doc = self.load_document()
            remaining = [n for n in doc.notes if n.id != note_id]
            if len(remaining) == len(doc.notes):
                return False
            doc.notes = remaining
            self.save_document(doc)

        logger.info("Deleted note %s", note_id)
        return True

    def verify_login(self, username: str, candidate_key: str) -> bool:
        """Check a passphrase by decrypting the user's first note.

        A user without notes has nothing to check against, so any
        passphrase is accepted (first-time setup).
        """
        doc = self.load_document(username)
        if not doc.notes:
            return True

        try:
            crypto.decrypt(doc.notes[0].encrypted_title, candidate_key)
        except DecryptionError:
            logger.warning("Password check failed for user %s", username)
            return False
        return True
