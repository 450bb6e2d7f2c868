"""Cloud sync of the encrypted notes document.

The engine moves the per-user document between the local disk and a remote
backend and merges the two copies. It never decrypts anything: merging
looks only at note ids, folders and timestamps.
"""

import base64
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

import httpx

from .config import SyncConfig, SyncProvider
from .credentials import PASSWORD_KEY, TOKEN_KEY, CredentialStore
from .errors import SyncBusyError, SyncConfigIncompleteError, SyncTransportError
from .filesystem import FileSystem, LocalFileSystem
from .models import EncryptedNote, EncryptedStorage, Folder, now_ms
from .store import document_file_name

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com/repos"


def remote_file_name(user: str) -> str:
    """Name of a user's document on the remote side."""
    return document_file_name(user)


def repo_api_url(repo: str) -> str:
    """Contents API base URL for an ``owner/name`` repository."""
    return f"{GITHUB_API_URL}/{repo.strip().strip('/')}"


class SyncBackend:
    """A remote place to keep the encrypted document."""

    name = "backend"

    def upload(self, file_name: str, content: str) -> bool:
        raise NotImplementedError

    def download(self, file_name: str) -> str | None:
        """Fetch a file; None means the remote has never received it."""
        raise NotImplementedError


class HttpBackend(SyncBackend):
    """Shared httpx plumbing for the HTTP backends."""

    def __init__(self, base_url: str, timeout: float = 30.0, client: httpx.Client | None = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            if self._client is not None:
                return self._client.request(method, url, timeout=self.timeout, **kwargs)
            with httpx.Client(timeout=self.timeout) as client:
                return client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise SyncTransportError(f"{self.name} request failed: {e}") from e

    def _json(self, response: httpx.Response) -> dict:
        try:
            data = response.json()
        except ValueError as e:
            raise SyncTransportError(f"{self.name} returned a non-JSON response: {e}") from e
        if not isinstance(data, dict):
            raise SyncTransportError(f"{self.name} returned an unexpected response: {data!r}")
        return data


class BasicAuthHttpBackend(HttpBackend):
    """WebDAV-style server: plain PUT and GET with HTTP basic auth."""

    name = "WebDAV"

    def __init__(self, base_url: str, username: str, password: str, **kwargs):
        super().__init__(base_url, **kwargs)
        self.auth = httpx.BasicAuth(username, password)

    def upload(self, file_name: str, content: str) -> bool:
        response = self._request(
            "PUT",
            f"{self.base_url}/{file_name}",
            auth=self.auth,
            headers={"Content-Type": "application/octet-stream"},
            content=content.encode("utf-8"),
        )
        if not response.is_success:
            raise SyncTransportError(
                f"WebDAV upload failed: {response.status_code} {response.reason_phrase}"
            )
        logger.info("Uploaded %s to WebDAV", file_name)
        return True

    def download(self, file_name: str) -> str | None:
        response = self._request("GET", f"{self.base_url}/{file_name}", auth=self.auth)
        if response.status_code == 404:
            return None
        if not response.is_success:
            raise SyncTransportError(
                f"WebDAV download failed: {response.status_code} {response.reason_phrase}"
            )
        try:
            content = response.content.decode("utf-8")
        except UnicodeDecodeError as e:
            raise SyncTransportError(f"WebDAV returned a non UTF-8 body: {e}") from e
        logger.info("Downloaded %s from WebDAV", file_name)
        return content


class RepoContentsBackend(HttpBackend):
    """Repository contents API (GitHub): base64 bodies and a revision sha."""

    name = "GitHub"

    def __init__(self, base_url: str, token: str, **kwargs):
        super().__init__(base_url, **kwargs)
        self.headers = {
            "Authorization": f"token {token}",
            "Accept": "application/vnd.github.v3+json",
        }

    def _contents_url(self, file_name: str) -> str:
        return f"{self.base_url}/contents/{file_name}"

    def _current_sha(self, file_name: str) -> str | None:
        response = self._request("GET", self._contents_url(file_name), headers=self.headers)
        if response.status_code == 404:
            return None
        if not response.is_success:
            raise SyncTransportError(
                f"GitHub lookup failed: {response.status_code} {response.reason_phrase}"
            )
        return self._json(response).get("sha")

    def upload(self, file_name: str, content: str) -> bool:
        body = {
            "message": f"Update encrypted notes - {datetime.now():%Y-%m-%d %H:%M:%S}",
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
        }
        sha = self._current_sha(file_name)
        if sha:
            body["sha"] = sha

        response = self._request(
            "PUT", self._contents_url(file_name), headers=self.headers, json=body
        )
        if not response.is_success:
            raise SyncTransportError(
                f"GitHub upload failed: {response.status_code} {response.text}"
            )
        logger.info("Uploaded %s to GitHub", file_name)
        return True

    def download(self, file_name: str) -> str | None:
        response = self._request("GET", self._contents_url(file_name), headers=self.headers)
        if response.status_code == 404:
            return None
        if not response.is_success:
            raise SyncTransportError(
                f"GitHub download failed: {response.status_code} {response.reason_phrase}"
            )
        # The API wraps base64 content at 60 columns
        encoded = self._json(response).get("content") or ""
        try:
            content = base64.b64decode("".join(str(encoded).split()), validate=True).decode("utf-8")
        except ValueError as e:
            raise SyncTransportError(f"GitHub returned undecodable content: {e}") from e
        logger.info("Downloaded %s from GitHub", file_name)
        return content


class CustomHttpBackend(SyncBackend):
    """Placeholder for a user-defined HTTP API; there is no protocol for it yet."""

    name = "custom"

    def __init__(self, base_url: str, token: str | None = None):
        self.base_url = base_url
        self.token = token

    def upload(self, file_name: str, content: str) -> bool:
        raise SyncConfigIncompleteError("Custom server sync is not implemented")

    def download(self, file_name: str) -> str | None:
        raise SyncConfigIncompleteError("Custom server sync is not implemented")


def build_backend(
    config: SyncConfig,
    credentials: CredentialStore,
    client: httpx.Client | None = None,
) -> SyncBackend | None:
    """Create the backend selected in the config; None when sync is disabled.

    Raises:
        SyncConfigIncompleteError: If the URL or a credential is missing
    """
    if config.provider == SyncProvider.NONE:
        return None

    if not config.url:
        raise SyncConfigIncompleteError(f"{config.provider.value} sync has no URL configured")

    if config.provider == SyncProvider.WEBDAV:
        password = credentials.get(PASSWORD_KEY)
        if not config.username or not password:
            raise SyncConfigIncompleteError("WebDAV sync needs a username and password")
        return BasicAuthHttpBackend(
            config.url, config.username, password, timeout=config.timeout, client=client
        )

    if config.provider == SyncProvider.GITHUB:
        token = credentials.get(TOKEN_KEY)
        if not token:
            raise SyncConfigIncompleteError("GitHub sync needs a personal access token")
        return RepoContentsBackend(config.url, token, timeout=config.timeout, client=client)

    return CustomHttpBackend(config.url, credentials.get(TOKEN_KEY))


@dataclass
class MergeResult:
    """What a merge did."""

    notes: int
    folders: int
    uploaded_baseline: bool = False


def merge_documents(
    local: EncryptedStorage,
    remote: EncryptedStorage,
    timestamp: int | None = None,
) -> EncryptedStorage:
    """Combine two documents, newest version of each note wins.

    A remote note replaces the local one only when its ``updatedAt`` is
    strictly greater; ties keep the local copy. Deletions are not tracked,
    so a note removed on one side comes back from the other. Folders are
    the union of both name sets, all stamped with ``timestamp``.
    """
    merged: dict[str, EncryptedNote] = {note.id: note for note in local.notes}
    for remote_note in remote.notes:
        local_note = merged.get(remote_note.id)
        if local_note is None or remote_note.updated_at > local_note.updated_at:
            merged[remote_note.id] = remote_note

    timestamp = now_ms() if timestamp is None else timestamp
    names: list[str] = []
    for folder in local.folders + remote.folders:
        if folder.name not in names:
            names.append(folder.name)

    return EncryptedStorage(
        folders=[Folder(name=name, created_at=timestamp) for name in names],
        notes=list(merged.values()),
    )


class SyncEngine:
    """Upload, download and merge one user's document."""

    def __init__(self, backend: SyncBackend | None, fs: FileSystem | None = None) -> None:
        self.backend = backend
        self.fs = fs or LocalFileSystem()
        self._busy = threading.Lock()

    @property
    def sync_in_progress(self) -> bool:
        return self._busy.locked()

    def _acquire(self) -> None:
        if not self._busy.acquire(blocking=False):
            logger.warning("Sync requested while another sync is running")
            raise SyncBusyError("A sync is already in progress")

    def _upload(self, local_path: Path, user: str) -> bool:
        content = self.fs.read_text(local_path)
        return self.backend.upload(remote_file_name(user), content)

    def upload(self, local_path: Path, user: str) -> bool:
        """Send the local document to the remote. False if sync is disabled."""
        if self.backend is None:
            return False

        self._acquire()
        try:
            return self._upload(local_path, user)
        finally:
            self._busy.release()

    def download(self, local_path: Path, user: str) -> bool:
        """Replace the local document with the remote copy.

        Returns:
            True if the local file was overwritten, False if sync is disabled
            or the remote has no copy yet
        """
        if self.backend is None:
            return False

        self._acquire()
        try:
            content = self.backend.download(remote_file_name(user))
            if content is None:
                logger.info("No remote copy of %s yet", remote_file_name(user))
                return False
            self.fs.write_text(local_path, content)
            return True
        finally:
            self._busy.release()

    def merge(self, local_path: Path, user: str) -> MergeResult | None:
        """Merge local and remote documents and push the result.

        Not transactional: if the final upload fails, the merged local file
        is kept.
        """
        if self.backend is None:
            return None

        self._acquire()
        try:
            remote_text = self.backend.download(remote_file_name(user))
            local = self._read_local(local_path)

            if remote_text is None:
                logger.info("Remote is empty, uploading local notes as baseline")
                if not self.fs.exists(local_path):
                    self.fs.write_text(local_path, local.dumps())
                self._upload(local_path, user)
                return MergeResult(
                    notes=len(local.notes), folders=len(local.folders), uploaded_baseline=True
                )

            remote = EncryptedStorage.loads(remote_text)
            merged = merge_documents(local, remote)

            self.fs.write_text(local_path, merged.dumps())
            self._upload(local_path, user)
        finally:
            self._busy.release()

        logger.info("Merged %d notes and %d folders", len(merged.notes), len(merged.folders))
        return MergeResult(notes=len(merged.notes), folders=len(merged.folders))

    def _read_local(self, local_path: Path) -> EncryptedStorage:
        if not self.fs.exists(local_path):
            return EncryptedStorage()
        return EncryptedStorage.loads(self.fs.read_text(local_path))
