import threading
from pathlib import Path
from typing import Dict, Optional

import pytest
import requests
from google.api_core import exceptions as gexc
from google.auth import exceptions as auth_exc

from site_sync import gcp_gcs
from site_sync.errors import AuthError, SourceReadError, UploadError
from site_sync.metadata import CachePolicy, build_object_specs
from site_sync.tree_walker import walk_tree
from site_sync.uploader import UploadOptions, sync_objects


class _FakeBlob:
    def __init__(self, name: str, fail: Optional[BaseException] = None) -> None:
        self.name = name
        self.cache_control: Optional[str] = None
        self.content_type: Optional[str] = None
        self.md5_hash: Optional[str] = None
        self.uploaded: Optional[str] = None
        self._fail = fail

    def upload_from_filename(self, filename: str, content_type: Optional[str] = None) -> None:
        if self._fail is not None:
            raise self._fail
        Path(filename).read_bytes()
        self.uploaded = filename
        self.content_type = content_type


class _FakeBucket:
    def __init__(self, blobs: Dict[str, _FakeBlob], fail: Optional[BaseException] = None) -> None:
        self._blobs = blobs
        self._fail = fail

    def blob(self, name: str) -> _FakeBlob:
        blob = _FakeBlob(name, fail=self._fail)
        self._blobs[name] = blob
        return blob

    def get_blob(self, name: str) -> Optional[_FakeBlob]:
        if self._fail is not None:
            raise self._fail
        return self._blobs.get(name)

    def exists(self) -> bool:
        if self._fail is not None:
            raise self._fail
        return True


class _FakeClient:
    def __init__(self, fail: Optional[BaseException] = None) -> None:
        self.blobs: Dict[str, _FakeBlob] = {}
        self._fail = fail

    def bucket(self, name: str) -> _FakeBucket:
        return _FakeBucket(self.blobs, fail=self._fail)


@pytest.mark.parametrize(
    "exc, expected, retryable",
    [
        (gexc.Forbidden("denied"), AuthError, None),
        (gexc.Unauthorized("no token"), AuthError, None),
        (gexc.ServiceUnavailable("try later"), UploadError, True),
        (gexc.TooManyRequests("slow down"), UploadError, True),
        (gexc.InternalServerError("oops"), UploadError, True),
        (requests.exceptions.ConnectionError("reset"), UploadError, True),
        (gexc.DeadlineExceeded("deadline"), UploadError, True),
        (auth_exc.TransportError("dns lookup failed"), UploadError, True),
        (auth_exc.RefreshError("invalid_grant"), AuthError, None),
        (ConnectionResetError("reset by peer"), UploadError, True),
        (TimeoutError("timed out"), UploadError, True),
        (gexc.BadRequest("bad"), UploadError, False),
        (gexc.NotFound("no bucket"), UploadError, False),
        (FileNotFoundError("gone"), SourceReadError, None),
    ],
)
def test_translate(exc: BaseException, expected: type, retryable: Optional[bool]) -> None:
    translated = gcp_gcs._translate("index.html", exc)

    assert isinstance(translated, expected)
    if retryable is not None:
        assert translated.retryable is retryable


def test_put_object_sets_metadata(tmp_path: Path) -> None:
    f = tmp_path / "index.html"
    f.write_text("<html></html>", encoding="utf-8")
    client = _FakeClient()
    store = gcp_gcs.GcsObjectStore(client=client)  # type: ignore[arg-type]

    store.put_object("b", "index.html", f, "text/html", "public, max-age=3600")

    blob = client.blobs["index.html"]
    assert blob.uploaded == str(f)
    assert blob.content_type == "text/html"
    assert blob.cache_control == "public, max-age=3600"


def test_get_object_missing_returns_none() -> None:
    store = gcp_gcs.GcsObjectStore(client=_FakeClient())  # type: ignore[arg-type]

    assert store.get_object("b", "nope.html") is None


def test_get_object_maps_metadata() -> None:
    client = _FakeClient()
    blob = _FakeBlob("a.css")
    blob.md5_hash, blob.content_type, blob.cache_control = "abc==", "text/css", "public, max-age=86400"
    client.blobs["a.css"] = blob
    store = gcp_gcs.GcsObjectStore(client=client)  # type: ignore[arg-type]

    remote = store.get_object("b", "a.css")

    assert remote is not None
    assert remote.md5_hash == "abc=="
    assert remote.content_type == "text/css"
    assert remote.cache_control == "public, max-age=86400"


def test_put_object_forbidden_is_auth_error(tmp_path: Path) -> None:
    f = tmp_path / "a.js"
    f.write_text("1", encoding="utf-8")
    store = gcp_gcs.GcsObjectStore(client=_FakeClient(fail=gexc.Forbidden("denied")))  # type: ignore[arg-type]

    with pytest.raises(AuthError):
        store.put_object("b", "a.js", f, "application/javascript", "public, max-age=86400")


def test_put_object_missing_source(tmp_path: Path) -> None:
    store = gcp_gcs.GcsObjectStore(client=_FakeClient())  # type: ignore[arg-type]

    with pytest.raises(SourceReadError):
        store.put_object("b", "gone.html", tmp_path / "gone.html", "text/html", "public, max-age=3600")


def test_check_gcs_bucket_messages() -> None:
    ok = gcp_gcs.GcsObjectStore(client=_FakeClient())  # type: ignore[arg-type]
    denied = gcp_gcs.GcsObjectStore(client=_FakeClient(fail=gexc.Forbidden("denied")))  # type: ignore[arg-type]

    assert gcp_gcs.check_gcs_bucket(ok, "b") == "GCS: 버킷 존재함 (b)"
    assert "확인 불가" in gcp_gcs.check_gcs_bucket(denied, "b")


def test_missing_credentials_aborts_sync(site_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    def no_credentials(project=None):  # noqa: ANN001, ANN202
        raise auth_exc.DefaultCredentialsError("could not find default credentials")

    monkeypatch.setattr(gcp_gcs.storage, "Client", no_credentials)
    specs = build_object_specs(walk_tree(site_dir), CachePolicy())

    report = sync_objects(gcp_gcs.GcsObjectStore(), "b", specs, UploadOptions(max_workers=1, retry_backoff_seconds=0))

    assert isinstance(report.fatal_error, AuthError)
    assert "자격 증명" in str(report.fatal_error)
    assert report.results == []


def test_client_is_created_once_across_threads(monkeypatch: pytest.MonkeyPatch) -> None:
    created = []
    start = threading.Barrier(8)

    def make_client(project=None):  # noqa: ANN001, ANN202
        created.append(project)
        return _FakeClient()

    monkeypatch.setattr(gcp_gcs.storage, "Client", make_client)
    store = gcp_gcs.GcsObjectStore(project="demo")
    clients = []

    def worker() -> None:
        start.wait()
        clients.append(store.client)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert created == ["demo"]
    assert len({id(c) for c in clients}) == 1
