"""Tests for cloud sync backends and the merge engine."""

import base64
import json

import httpx
import pytest

from securenotes.config import SyncConfig, SyncProvider
from securenotes.credentials import PASSWORD_KEY, TOKEN_KEY, MemoryCredentialStore
from securenotes.errors import (
    StorageCorruptionError,
    SyncBusyError,
    SyncConfigIncompleteError,
    SyncTransportError,
)
from securenotes.models import EncryptedStorage
from securenotes.sync import (
    BasicAuthHttpBackend,
    CustomHttpBackend,
    RepoContentsBackend,
    SyncBackend,
    SyncEngine,
    build_backend,
    merge_documents,
    remote_file_name,
    repo_api_url,
)


class MemoryBackend(SyncBackend):
    """Keeps uploaded files in a dict."""

    name = "memory"

    def __init__(self, files=None):
        self.files = dict(files or {})
        self.uploads = 0

    def upload(self, file_name, content):
        self.uploads += 1
        self.files[file_name] = content
        return True

    def download(self, file_name):
        return self.files.get(file_name)


class FailingBackend(SyncBackend):
    def upload(self, file_name, content):
        raise SyncTransportError("network down")

    def download(self, file_name):
        raise SyncTransportError("network down")


def _note(note_id, updated_at, folder="default", title="T"):
    return {
        "id": note_id, "folder": folder, "encryptedTitle": title,
        "encryptedContent": "C", "createdAt": 1, "updatedAt": updated_at,
    }


def _doc(notes=(), folders=()):
    return EncryptedStorage.from_json({
        "folders": [{"name": f, "createdAt": 5} for f in folders],
        "notes": list(notes),
    })


@pytest.fixture
def local_path(tmp_path):
    return tmp_path / "notes_alice.encrypted"


# -------------------------------------------------------------------
# merge_documents
# -------------------------------------------------------------------


def test_remote_newer_wins():
    merged = merge_documents(_doc([_note("1", 100, title="local")]),
                             _doc([_note("1", 200, title="remote")]))
    assert [n.encrypted_title for n in merged.notes] == ["remote"]


def test_local_newer_wins():
    merged = merge_documents(_doc([_note("1", 300, title="local")]),
                             _doc([_note("1", 200, title="remote")]))
    assert [n.encrypted_title for n in merged.notes] == ["local"]


def test_tie_keeps_local():
    merged = merge_documents(_doc([_note("1", 100, title="local")]),
                             _doc([_note("1", 100, title="remote")]))
    assert [n.encrypted_title for n in merged.notes] == ["local"]


def test_unseen_notes_from_both_sides_kept():
    merged = merge_documents(_doc([_note("a", 1)]), _doc([_note("b", 1)]))
    assert sorted(n.id for n in merged.notes) == ["a", "b"]


def test_locally_deleted_note_reappears():
    # No tombstones: a note only the remote still has comes back
    merged = merge_documents(_doc([]), _doc([_note("gone", 50)]))
    assert [n.id for n in merged.notes] == ["gone"]


def test_folders_union_restamped():
    merged = merge_documents(_doc(folders=["a", "b"]), _doc(folders=["b", "c"]),
                             timestamp=999)
    assert [f.name for f in merged.folders] == ["a", "b", "c"]
    assert all(f.created_at == 999 for f in merged.folders)


# -------------------------------------------------------------------
# SyncEngine
# -------------------------------------------------------------------


def test_disabled_engine(local_path):
    engine = SyncEngine(None)
    assert engine.upload(local_path, "alice") is False
    assert engine.download(local_path, "alice") is False
    assert engine.merge(local_path, "alice") is None


def test_upload_sends_file(local_path):
    local_path.write_text(_doc([_note("1", 1)]).dumps(), encoding="utf-8")
    backend = MemoryBackend()

    assert SyncEngine(backend).upload(local_path, "alice") is True
    assert backend.files["notes_alice.encrypted"] == local_path.read_text(encoding="utf-8")


def test_download_overwrites_local(local_path):
    local_path.write_text("old", encoding="utf-8")
    backend = MemoryBackend({"notes_alice.encrypted": "remote content"})

    assert SyncEngine(backend).download(local_path, "alice") is True
    assert local_path.read_text(encoding="utf-8") == "remote content"


def test_download_not_found(local_path):
    local_path.write_text("old", encoding="utf-8")
    assert SyncEngine(MemoryBackend()).download(local_path, "alice") is False
    assert local_path.read_text(encoding="utf-8") == "old"


def test_transport_error_clears_flag(local_path):
    local_path.write_text("{}", encoding="utf-8")
    engine = SyncEngine(FailingBackend())

    with pytest.raises(SyncTransportError):
        engine.upload(local_path, "alice")
    assert not engine.sync_in_progress

    with pytest.raises(SyncTransportError):
        engine.merge(local_path, "alice")
    assert not engine.sync_in_progress


def test_overlapping_sync_rejected(local_path):
    local_path.write_text("{}", encoding="utf-8")

    class ReentrantBackend(MemoryBackend):
        def upload(self, file_name, content):
            assert engine.sync_in_progress
            with pytest.raises(SyncBusyError):
                engine.download(local_path, "alice")
            return super().upload(file_name, content)

    backend = ReentrantBackend()
    engine = SyncEngine(backend)

    assert engine.upload(local_path, "alice") is True
    assert not engine.sync_in_progress


def test_merge_uploads_baseline_when_remote_empty(local_path):
    local_path.write_text(_doc([_note("1", 1)]).dumps(), encoding="utf-8")
    backend = MemoryBackend()

    result = SyncEngine(backend).merge(local_path, "alice")

    assert result.uploaded_baseline
    assert result.notes == 1
    assert backend.files["notes_alice.encrypted"] == local_path.read_text(encoding="utf-8")


def test_merge_writes_and_uploads_result(local_path):
    local_path.write_text(
        _doc([_note("1", 100, title="L1"), _note("2", 10)], folders=["x"]).dumps(),
        encoding="utf-8",
    )
    remote = _doc([_note("1", 200, title="R1"), _note("3", 10)], folders=["y"])
    backend = MemoryBackend({"notes_alice.encrypted": remote.dumps()})

    result = SyncEngine(backend).merge(local_path, "alice")

    assert result.notes == 3
    assert result.folders == 2
    merged = json.loads(local_path.read_text(encoding="utf-8"))
    titles = {n["id"]: n["encryptedTitle"] for n in merged["notes"]}
    assert titles == {"1": "R1", "2": "T", "3": "T"}
    assert backend.files["notes_alice.encrypted"] == local_path.read_text(encoding="utf-8")


def test_merge_accepts_legacy_remote(local_path):
    local_path.write_text(_doc([_note("1", 1)]).dumps(), encoding="utf-8")
    backend = MemoryBackend({"notes_alice.encrypted": json.dumps([_note("2", 1)])})

    assert SyncEngine(backend).merge(local_path, "alice").notes == 2


def test_merge_without_local_file(local_path):
    backend = MemoryBackend({"notes_alice.encrypted": _doc([_note("1", 1)]).dumps()})
    assert SyncEngine(backend).merge(local_path, "alice").notes == 1
    assert local_path.exists()


def test_merge_rejects_corrupt_remote(local_path):
    local_path.write_text(_doc().dumps(), encoding="utf-8")
    backend = MemoryBackend({"notes_alice.encrypted": "{broken"})

    engine = SyncEngine(backend)
    with pytest.raises(StorageCorruptionError):
        engine.merge(local_path, "alice")
    assert not engine.sync_in_progress


# -------------------------------------------------------------------
# HTTP backends
# -------------------------------------------------------------------


def _client(handler):
    return httpx.Client(transport=httpx.MockTransport(handler))


def test_webdav_put_and_get():
    requests = []
    stored = {}

    def handler(request):
        requests.append(request)
        if request.method == "PUT":
            stored[request.url.path] = request.content
            return httpx.Response(201)
        if request.url.path in stored:
            return httpx.Response(200, content=stored[request.url.path])
        return httpx.Response(404)

    backend = BasicAuthHttpBackend(
        "https://dav.example.com/notes/", "alice", "pw", client=_client(handler)
    )

    assert backend.download("notes_alice.encrypted") is None
    assert backend.upload("notes_alice.encrypted", '{"notes": []}') is True
    assert backend.download("notes_alice.encrypted") == '{"notes": []}'

    put = requests[1]
    assert str(put.url) == "https://dav.example.com/notes/notes_alice.encrypted"
    expected = base64.b64encode(b"alice:pw").decode()
    assert put.headers["Authorization"] == f"Basic {expected}"


def test_webdav_server_error():
    backend = BasicAuthHttpBackend(
        "https://dav.example.com", "a", "b",
        client=_client(lambda request: httpx.Response(500)),
    )
    with pytest.raises(SyncTransportError):
        backend.upload("f", "x")
    with pytest.raises(SyncTransportError):
        backend.download("f")


def test_connection_error_becomes_transport_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    backend = BasicAuthHttpBackend("https://dav.example.com", "a", "b", client=_client(handler))
    with pytest.raises(SyncTransportError):
        backend.download("f")


def test_github_upload_sends_sha_of_existing_file():
    puts = []

    def handler(request):
        assert request.headers["Authorization"] == "token tok"
        if request.method == "GET":
            return httpx.Response(200, json={"sha": "abc123", "content": ""})
        puts.append(json.loads(request.content))
        return httpx.Response(200, json={})

    backend = RepoContentsBackend(
        "https://api.github.com/repos/alice/notes", "tok", client=_client(handler)
    )
    assert backend.upload("notes_alice.encrypted", "payload") is True

    assert puts[0]["sha"] == "abc123"
    assert base64.b64decode(puts[0]["content"]) == b"payload"


def test_github_upload_new_file_has_no_sha():
    puts = []

    def handler(request):
        if request.method == "GET":
            return httpx.Response(404)
        puts.append(json.loads(request.content))
        return httpx.Response(201, json={})

    backend = RepoContentsBackend("https://api.github.com/repos/a/b", "tok",
                                  client=_client(handler))
    backend.upload("f", "payload")
    assert "sha" not in puts[0]


def test_github_download_decodes_wrapped_base64():
    encoded = base64.b64encode(b'{"folders": [], "notes": []}').decode()
    wrapped = encoded[:10] + "\n" + encoded[10:] + "\n"

    def handler(request):
        assert request.url.path == "/repos/a/b/contents/notes_alice.encrypted"
        return httpx.Response(200, json={"content": wrapped, "sha": "s"})

    backend = RepoContentsBackend("https://api.github.com/repos/a/b", "tok",
                                  client=_client(handler))
    assert backend.download("notes_alice.encrypted") == '{"folders": [], "notes": []}'


def test_github_download_not_found():
    backend = RepoContentsBackend(
        "https://api.github.com/repos/a/b", "tok",
        client=_client(lambda request: httpx.Response(404)),
    )
    assert backend.download("f") is None


def test_webdav_non_utf8_body_is_transport_error(local_path):
    backend = BasicAuthHttpBackend(
        "https://dav.example.com", "a", "b",
        client=_client(lambda request: httpx.Response(200, content=b"\xff\xfe")),
    )
    with pytest.raises(SyncTransportError):
        backend.download("f")

    engine = SyncEngine(backend)
    with pytest.raises(SyncTransportError):
        engine.merge(local_path, "alice")
    assert engine.sync_in_progress is False


def test_github_html_response_is_transport_error():
    backend = RepoContentsBackend(
        "https://api.github.com/repos/a/b", "tok",
        client=_client(lambda request: httpx.Response(200, text="<html>proxy</html>")),
    )
    with pytest.raises(SyncTransportError):
        backend.download("f")
    with pytest.raises(SyncTransportError):
        backend.upload("f", "payload")


@pytest.mark.parametrize("content", ["not base64!", base64.b64encode(b"\xff\xfe").decode()])
def test_github_undecodable_content_is_transport_error(content):
    backend = RepoContentsBackend(
        "https://api.github.com/repos/a/b", "tok",
        client=_client(lambda request: httpx.Response(200, json={"content": content})),
    )
    with pytest.raises(SyncTransportError):
        backend.download("f")


def test_custom_backend_is_unimplemented():
    backend = CustomHttpBackend("https://api.example.com")
    with pytest.raises(SyncConfigIncompleteError):
        backend.upload("f", "x")
    with pytest.raises(SyncConfigIncompleteError):
        backend.download("f")


# -------------------------------------------------------------------
# build_backend
# -------------------------------------------------------------------


def test_build_disabled():
    assert build_backend(SyncConfig(), MemoryCredentialStore()) is None


def test_build_webdav():
    config = SyncConfig(provider=SyncProvider.WEBDAV, url="https://dav", username="alice")
    backend = build_backend(config, MemoryCredentialStore({PASSWORD_KEY: "pw"}))
    assert isinstance(backend, BasicAuthHttpBackend)


def test_build_webdav_without_password():
    config = SyncConfig(provider=SyncProvider.WEBDAV, url="https://dav", username="alice")
    with pytest.raises(SyncConfigIncompleteError):
        build_backend(config, MemoryCredentialStore())


def test_build_without_url():
    with pytest.raises(SyncConfigIncompleteError):
        build_backend(SyncConfig(provider=SyncProvider.GITHUB),
                      MemoryCredentialStore({TOKEN_KEY: "t"}))


def test_build_github():
    config = SyncConfig(provider=SyncProvider.GITHUB, url=repo_api_url("alice/notes"))
    backend = build_backend(config, MemoryCredentialStore({TOKEN_KEY: "t"}))
    assert isinstance(backend, RepoContentsBackend)
    assert backend.base_url == "https://api.github.com/repos/alice/notes"


def test_build_custom():
    config = SyncConfig(provider=SyncProvider.CUSTOM, url="https://api")
    assert isinstance(build_backend(config, MemoryCredentialStore()), CustomHttpBackend)


def test_remote_file_name():
    assert remote_file_name("bob") == "notes_bob.encrypted"
