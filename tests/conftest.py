"""
pytest 설정:

로컬 작업 환경에 설치된 다른 버전의 site_sync 패키지가 존재할 때,
`pytest` 실행 시 site-packages 쪽이 먼저 import 되어 테스트가 깨질 수 있다.

테스트는 항상 현재 레포의 소스를 대상으로 해야 하므로, repo root 를 sys.path 최상단에 고정한다.
"""

from __future__ import annotations

import base64
import hashlib
import os
import sys
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest

from site_sync.models import RemoteObject


def pytest_configure() -> None:
    repo_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
    if repo_root not in sys.path:
        sys.path.insert(0, repo_root)


_CONFIG_ENV_VARS = (
    "SITE_ROOT",
    "BUCKET_NAME",
    "PULUMI_ORGANIZATION",
    "PULUMI_PROJECT",
    "PULUMI_STACK",
    "PULUMI_STACK_REFERENCE",
    "BUCKET_OUTPUT_NAME",
    "GCP_PROJECT_ID",
    "MAX_WORKERS",
    "MAX_RETRIES",
    "RETRY_BACKOFF_SECONDS",
    "FORCE_UPLOAD",
    "HTML_MAX_AGE",
    "ASSET_MAX_AGE",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    # 개발자 셸의 환경변수가 테스트에 섞이지 않도록 한다.
    for name in _CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class FakeStore:
    """
    메모리 기반 ObjectStore. 업로드된 바이트와 메타데이터를 dict 로 보관한다.
    fail_keys 에 있는 키는 put_object 에서 지정한 예외를 던진다.
    """

    def __init__(self, fail_keys: Optional[Dict[str, BaseException]] = None) -> None:
        self.objects: Dict[str, Dict[str, Tuple[bytes, str, str]]] = {}
        self.fail_keys = dict(fail_keys or {})
        self.get_calls: List[Tuple[str, str]] = []
        self.put_calls: List[Tuple[str, str]] = []

    def get_object(self, bucket: str, key: str) -> Optional[RemoteObject]:
        self.get_calls.append((bucket, key))
        stored = self.objects.get(bucket, {}).get(key)
        if stored is None:
            return None
        data, content_type, cache_control = stored
        md5 = base64.b64encode(hashlib.md5(data).digest()).decode("ascii")
        return RemoteObject(key=key, md5_hash=md5, content_type=content_type, cache_control=cache_control)

    def put_object(
        self,
        bucket: str,
        key: str,
        source_path: Path,
        content_type: str,
        cache_control: str,
    ) -> None:
        self.put_calls.append((bucket, key))
        if key in self.fail_keys:
            raise self.fail_keys[key]
        data = Path(source_path).read_bytes()
        self.objects.setdefault(bucket, {})[key] = (data, content_type, cache_control)

    @property
    def calls(self) -> int:
        return len(self.get_calls) + len(self.put_calls)


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def site_dir(tmp_path: Path) -> Path:
    """빌드 결과처럼 생긴 out/ 디렉토리."""
    root = tmp_path / "out"
    (root / "assets" / "img").mkdir(parents=True)
    (root / "_next" / "static").mkdir(parents=True)
    (root / "index.html").write_text("<html>home</html>", encoding="utf-8")
    (root / "404.html").write_text("<html>404</html>", encoding="utf-8")
    (root / "assets" / "site.css").write_text("body{}", encoding="utf-8")
    (root / "assets" / "img" / "logo.png").write_bytes(b"\x89PNG\r\n")
    (root / "_next" / "static" / "app.js").write_text("console.log(1)", encoding="utf-8")
    (root / "LICENSE").write_text("MIT", encoding="utf-8")
    return root


@pytest.fixture
def store_factory():  # noqa: ANN201
    return FakeStore
