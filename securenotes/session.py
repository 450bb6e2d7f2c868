"""The logged-in user and their in-memory key."""

import logging

from .errors import NoActiveKeyError

logger = logging.getLogger(__name__)


def validate_username(username: str) -> str:
    """Check that a username is safe to use inside a file name."""
    if not username or username in (".", "..") or "/" in username or "\\" in username:
        raise ValueError(f"Invalid username: {username!r}")
    return username


class Session:
    """Single active user plus the passphrases entered during this process.

    Nothing here is persisted. Login does not check the passphrase; callers
    verify it first with ``NoteStore.verify_login``.
    """

    def __init__(self) -> None:
        self._current_user: str | None = None
        self._keys: dict[str, str] = {}

    @property
    def current_user(self) -> str | None:
        return self._current_user

    def login(self, username: str, secret: str) -> None:
        validate_username(username)
        self._current_user = username
        self._keys[username] = secret
        logger.info("Logged in as %s", username)

    def logout(self) -> None:
        if self._current_user is None:
            return
        self._keys.pop(self._current_user, None)
        logger.info("Logged out %s", self._current_user)
        self._current_user = None

    def has_active_key(self) -> bool:
        return self._current_user is not None and self._current_user in self._keys

    def active_key(self) -> str:
        """Return the current user's key.

        Raises:
            NoActiveKeyError: If nobody is logged in
        """
        if not self.has_active_key():
            raise NoActiveKeyError("Please log in first.")
        return self._keys[self._current_user]
