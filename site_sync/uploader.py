"""
uploader
--------

ObjectSpec 을 원격 버킷에 upsert 하는 엔진.

정책: 조건부 덮어쓰기.
로컬 MD5 와 원격 md5Hash, Content-Type, Cache-Control 이 모두 같으면 쓰지 않는다(UNCHANGED).
내용이 바뀐 파일은 해시가 달라지므로 건너뛰지 않는다. force=True 면 항상 덮어쓴다.

업로드는 서로 독립적이므로 ThreadPoolExecutor 로 제한된 개수만큼 동시에 실행한다.
한 파일의 실패는 다른 파일 업로드를 취소하지 않는다. 단, AuthError 나 외부 중단 요청이 오면
새 업로드는 더 이상 시작하지 않고, 이미 진행 중인 업로드만 끝까지 기다린다.
"""

from __future__ import annotations

import base64
import hashlib
import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Protocol

import backoff

from .errors import AuthError, SourceReadError, SyncError, UploadError
from .logging_utils import get_logger
from .models import ObjectSpec, Outcome, RemoteObject, UploadResult


logger = get_logger(__name__)


class ObjectStore(Protocol):
    def get_object(self, bucket: str, key: str) -> Optional[RemoteObject]:
        ...

    def put_object(
        self,
        bucket: str,
        key: str,
        source_path: Path,
        content_type: str,
        cache_control: str,
    ) -> None:
        ...


@dataclass(frozen=True)
class UploadOptions:
    force: bool = False
    max_workers: int = 8
    max_retries: int = 3
    retry_backoff_seconds: float = 0.5


@dataclass
class SyncReport:
    bucket: str
    results: List[UploadResult] = field(default_factory=list)
    fatal_error: Optional[SyncError] = None
    aborted: bool = False

    def count(self, outcome: Outcome) -> int:
        return sum(1 for r in self.results if r.outcome is outcome)

    @property
    def failed(self) -> List[UploadResult]:
        return [r for r in self.results if r.outcome is Outcome.FAILED]

    @property
    def has_failures(self) -> bool:
        return bool(self.failed) or self.fatal_error is not None or self.aborted


def file_md5_base64(path: Path, chunk_size: int = 1024 * 1024) -> str:
    """GCS 가 md5Hash 로 돌려주는 형식(base64)과 같은 형태로 계산한다."""
    digest = hashlib.md5()  # noqa: S324
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            digest.update(chunk)
    return base64.b64encode(digest.digest()).decode("ascii")


def _is_unchanged(remote: RemoteObject, spec: ObjectSpec, local_md5: str) -> bool:
    return (
        remote.md5_hash == local_md5
        and remote.content_type == spec.content_type
        and remote.cache_control == spec.cache_control
    )


def _upsert_once(store: ObjectStore, bucket: str, spec: ObjectSpec, force: bool) -> Outcome:
    try:
        local_md5 = file_md5_base64(spec.source_path)
    except OSError as e:
        raise SourceReadError(spec.key, e) from e

    remote = store.get_object(bucket, spec.key)
    if remote is not None and not force and _is_unchanged(remote, spec, local_md5):
        return Outcome.UNCHANGED

    store.put_object(bucket, spec.key, spec.source_path, spec.content_type, spec.cache_control)
    return Outcome.CREATED if remote is None else Outcome.UPDATED


def _is_permanent(e: Exception) -> bool:
    return not (isinstance(e, UploadError) and e.retryable)


def _log_backoff(details: dict) -> None:
    spec: ObjectSpec = details["args"][2]
    e = details["exception"]
    logger.warning(
        "업로드 재시도 %d (%s, %.1fs 후): %s",
        details["tries"], spec.key, details["wait"], getattr(e, "cause", e),
    )


def upsert_object(
    store: ObjectStore,
    bucket: str,
    spec: ObjectSpec,
    options: UploadOptions = UploadOptions(),
) -> UploadResult:
    """
    오브젝트 하나를 upsert 한다.

    retryable 한 UploadError 는 retry_backoff_seconds 부터 2배씩 늘려가며 최대 max_retries 번 재시도하고,
    파일 단위 실패는 FAILED 결과로 돌려준다. AuthError 만 그대로 전파한다.
    """
    attempt = backoff.on_exception(
        backoff.expo,
        UploadError,
        max_tries=options.max_retries + 1,
        giveup=_is_permanent,
        on_backoff=_log_backoff,
        jitter=None,
        factor=options.retry_backoff_seconds,
        logger=None,
    )(_upsert_once)

    try:
        outcome = attempt(store, bucket, spec, options.force)
        return UploadResult(key=spec.key, outcome=outcome)
    except AuthError:
        raise
    except UploadError as e:
        return UploadResult(key=spec.key, outcome=Outcome.FAILED, reason=str(e.cause))
    except SourceReadError as e:
        return UploadResult(key=spec.key, outcome=Outcome.FAILED, reason=str(e))
    except Exception as e:  # noqa: BLE001
        logger.exception("업로드 중 예상치 못한 오류: %s", spec.key)
        return UploadResult(key=spec.key, outcome=Outcome.FAILED, reason=str(e))


def sync_objects(
    store: ObjectStore,
    bucket: str,
    specs: Iterable[ObjectSpec],
    options: UploadOptions = UploadOptions(),
    *,
    on_result: Optional[Callable[[UploadResult], None]] = None,
    abort_event: Optional[threading.Event] = None,
) -> SyncReport:
    """
    specs 를 최대 options.max_workers 개씩 동시에 업로드하고 결과를 모아 반환한다.

    specs 는 지연 평가되는 iterable 이어도 된다. 동시에 진행 중인 업로드 수만큼만 꺼내 쓴다.
    """
    report = SyncReport(bucket=bucket)
    spec_iter = iter(specs)
    in_flight: Dict[Future, ObjectSpec] = {}
    exhausted = False

    def _stopping() -> bool:
        if report.fatal_error is not None:
            return True
        if abort_event is not None and abort_event.is_set():
            report.aborted = True
            return True
        return False

    with ThreadPoolExecutor(max_workers=options.max_workers) as pool:
        try:
            while True:
                while not exhausted and not _stopping() and len(in_flight) < options.max_workers:
                    spec = next(spec_iter, None)
                    if spec is None:
                        exhausted = True
                        break
                    future = pool.submit(upsert_object, store, bucket, spec, options)
                    in_flight[future] = spec

                if not in_flight:
                    break

                done, _ = wait(in_flight, return_when=FIRST_COMPLETED)
                for future in done:
                    spec = in_flight.pop(future)
                    try:
                        result = future.result()
                    except AuthError as e:
                        if report.fatal_error is None:
                            logger.error("권한 오류로 남은 업로드를 중단합니다: %s", e)
                            report.fatal_error = e
                        continue
                    report.results.append(result)
                    if on_result is not None:
                        on_result(result)
        except KeyboardInterrupt:
            logger.warning("중단 요청: 진행 중인 업로드 %d 개를 기다립니다.", len(in_flight))
            report.aborted = True
            wait(in_flight)
            raise

    return report
