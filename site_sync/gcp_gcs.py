"""
gcp_gcs
-------

GCS 오브젝트 조회/업로드를 담당하는 모듈.

google-cloud-storage 예외를 site_sync 예외로 변환한다.
- 429/5xx, 네트워크 오류(토큰 갱신 중 통신 오류 포함) → UploadError(retryable=True)
- 401/403, 자격 증명 오류 → AuthError (치명적)
- 그 외 API 오류 → UploadError(retryable=False)
- 로컬 파일 읽기 실패 → SourceReadError
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Optional

import requests
from google.api_core import exceptions as gexc
from google.auth import exceptions as auth_exc
from google.cloud import storage

from .errors import AuthError, SourceReadError, SyncError, UploadError
from .logging_utils import get_logger
from .models import RemoteObject


logger = get_logger(__name__)


# TransportError 는 GoogleAuthError 하위 클래스이고 ConnectionError/TimeoutError 는 OSError 하위 클래스라서
# 인증/로컬 파일 분기보다 먼저 검사해야 한다.
_RETRYABLE_NETWORK_ERRORS = (
    auth_exc.TransportError,
    ConnectionError,
    TimeoutError,
    requests.exceptions.RequestException,
)

_RETRYABLE_API_ERRORS = (
    gexc.TooManyRequests,
    gexc.DeadlineExceeded,
    gexc.ServerError,
)


def _translate(key: str, exc: BaseException) -> SyncError:
    if isinstance(exc, _RETRYABLE_NETWORK_ERRORS):
        return UploadError(key, exc, retryable=True)
    if isinstance(exc, (gexc.Unauthorized, gexc.Forbidden, auth_exc.GoogleAuthError)):
        return AuthError(f"GCS 인증/권한 오류 ({key}): {exc}")
    if isinstance(exc, _RETRYABLE_API_ERRORS):
        return UploadError(key, exc, retryable=True)
    if isinstance(exc, gexc.GoogleAPICallError):
        return UploadError(key, exc, retryable=False)
    if isinstance(exc, OSError):
        return SourceReadError(key, exc)
    return UploadError(key, exc, retryable=False)


class GcsObjectStore:
    """
    ObjectStore 구현체. 클라이언트는 처음 사용할 때 한 번만 생성한다. (ADC 사용)
    업로드 워커 스레드들이 같은 인스턴스를 공유한다.
    """

    def __init__(self, project: Optional[str] = None, client: Optional[storage.Client] = None) -> None:
        self._project = project
        self._client = client
        self._client_lock = threading.Lock()

    @property
    def client(self) -> storage.Client:
        with self._client_lock:
            if self._client is None:
                try:
                    self._client = storage.Client(project=self._project)
                except auth_exc.GoogleAuthError as e:
                    raise AuthError(
                        "GCP 자격 증명을 찾을 수 없습니다. "
                        "GOOGLE_APPLICATION_CREDENTIALS 또는 gcloud auth application-default login 을 확인하세요."
                    ) from e
            return self._client

    def get_object(self, bucket: str, key: str) -> Optional[RemoteObject]:
        client = self.client
        try:
            blob = client.bucket(bucket).get_blob(key)
        except Exception as e:  # noqa: BLE001
            raise _translate(key, e) from e
        if blob is None:
            return None
        return RemoteObject(
            key=key,
            md5_hash=blob.md5_hash,
            content_type=blob.content_type,
            cache_control=blob.cache_control,
        )

    def put_object(
        self,
        bucket: str,
        key: str,
        source_path: Path,
        content_type: str,
        cache_control: str,
    ) -> None:
        client = self.client
        try:
            blob = client.bucket(bucket).blob(key)
            blob.cache_control = cache_control
            blob.upload_from_filename(str(source_path), content_type=content_type)
        except Exception as e:  # noqa: BLE001
            raise _translate(key, e) from e
        logger.debug("업로드 완료: gs://%s/%s (%s)", bucket, key, content_type)

    def bucket_exists(self, bucket: str) -> bool:
        client = self.client
        try:
            return client.bucket(bucket).exists()
        except Exception as e:  # noqa: BLE001
            raise _translate(bucket, e) from e


def check_gcs_bucket(store: GcsObjectStore, bucket: str) -> str:
    """
    GCS 버킷 존재 여부를 확인만 하고, 생성하지 않는다.
    """
    try:
        exists = store.bucket_exists(bucket)
    except AuthError as e:
        return f"GCS: 권한 부족으로 확인 불가 ({bucket}): {e}"
    except SyncError as e:
        return f"GCS: 조회 실패 ({bucket}): {e}"

    if exists:
        return f"GCS: 버킷 존재함 ({bucket})"
    return f"GCS: 버킷 없음 ({bucket})"
