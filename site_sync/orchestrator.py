from __future__ import annotations

import threading
from pathlib import Path
from typing import Callable, List, Optional

from .config import SyncConfig
from .errors import ConfigError, SyncError
from .gcp_gcs import GcsObjectStore, check_gcs_bucket
from .logging_utils import get_logger
from .metadata import CachePolicy, build_object_specs
from .models import Outcome, SyncTarget, UploadResult
from .stack_reference import Runner, resolve_output
from .tree_walker import ensure_root, walk_tree
from .uploader import ObjectStore, SyncReport, UploadOptions, sync_objects


logger = get_logger(__name__)


def _root_path(cfg: SyncConfig, base_dir: str) -> Path:
    # SITE_ROOT 가 절대 경로면 base_dir 은 무시된다
    return Path(base_dir) / cfg.site_root


def cache_policy_from_config(cfg: SyncConfig) -> CachePolicy:
    return CachePolicy(document_max_age=cfg.html_max_age, asset_max_age=cfg.asset_max_age)


def upload_options_from_config(cfg: SyncConfig) -> UploadOptions:
    return UploadOptions(
        force=cfg.force_upload,
        max_workers=cfg.max_workers,
        max_retries=cfg.max_retries,
        retry_backoff_seconds=cfg.retry_backoff_seconds,
    )


def describe_bucket_source(cfg: SyncConfig) -> str:
    if cfg.bucket_name:
        return f"BUCKET_NAME={cfg.bucket_name}"
    ref = cfg.stack_reference
    if ref is not None:
        return f"stack {ref} -> {cfg.bucket_output_name}"
    return "(not set)"


def resolve_bucket(cfg: SyncConfig, *, runner: Optional[Runner] = None) -> str:
    """
    버킷 이름을 결정한다. BUCKET_NAME 이 있으면 그대로 쓰고, 없으면 스택 출력값을 조회한다.
    """
    if cfg.bucket_name:
        logger.info("BUCKET_NAME 으로 지정된 버킷을 사용합니다: %s", cfg.bucket_name)
        return cfg.bucket_name

    ref = cfg.stack_reference
    if ref is None:
        raise ConfigError("BUCKET_NAME 또는 스택 레퍼런스가 필요합니다.")
    return resolve_output(ref, cfg.bucket_output_name, runner=runner)


def prepare_target(cfg: SyncConfig, base_dir: str = ".", *, runner: Optional[Runner] = None) -> SyncTarget:
    """
    업로드 전에 끝나야 하는 사전 조건 단계.
    루트 디렉토리 확인 → 버킷 이름 조회 순서로 진행하며, 하나라도 실패하면 예외를 던진다.
    """
    root = ensure_root(_root_path(cfg, base_dir))
    bucket = resolve_bucket(cfg, runner=runner)
    return SyncTarget(bucket_id=bucket, local_root=root)


def plan_sync(cfg: SyncConfig, base_dir: str = ".") -> str:
    """
    업로드될 오브젝트 목록과 메타데이터를 요약한다. 원격 호출은 하지 않는다.
    """
    policy = cache_policy_from_config(cfg)
    root = _root_path(cfg, base_dir)

    lines: List[str] = []
    lines.append("# Sync plan")
    lines.append(f"- root: {root}")
    lines.append(f"- bucket: {describe_bucket_source(cfg)}")
    lines.append(f"- upload policy: {'overwrite' if cfg.force_upload else 'skip unchanged (md5)'}")
    lines.append(f"- cache: html max-age={cfg.html_max_age}, assets max-age={cfg.asset_max_age}")
    lines.append(f"- workers: {cfg.max_workers}")
    lines.append("")

    lines.append("## Objects")
    specs = list(build_object_specs(walk_tree(root), policy))
    if specs:
        for spec in specs:
            lines.append(f"- {spec.key} ({spec.content_type}; {spec.cache_control})")
    else:
        lines.append("- (none)")

    lines.append("")
    lines.append(f"총 {len(specs)} 개 오브젝트")
    return "\n".join(lines)


def run_sync(
    cfg: SyncConfig,
    base_dir: str = ".",
    *,
    store: Optional[ObjectStore] = None,
    runner: Optional[Runner] = None,
    on_result: Optional[Callable[[UploadResult], None]] = None,
    abort_event: Optional[threading.Event] = None,
) -> SyncReport:
    """
    1) 사전 조건(루트, 버킷) 확인 2) 트리 순회 3) 메타데이터 결정 4) upsert 순서로 동기화한다.

    사전 조건 실패는 예외로 전파되고, 이 경우 업로드는 한 건도 시도하지 않는다.
    순회 중 읽지 못한 디렉토리는 FAILED 결과로 보고서에 남기고 나머지 파일은 계속 업로드한다.
    """
    target = prepare_target(cfg, base_dir, runner=runner)
    logger.info("동기화 시작: %s -> gs://%s", target.local_root, target.bucket_id)

    if store is None:
        store = GcsObjectStore(project=cfg.gcp_project_id)

    walk_failures: List[UploadResult] = []

    def _on_walk_error(rel_dir: str, e: OSError) -> None:
        # 읽지 못한 디렉토리는 키 끝에 '/' 를 붙여 파일 실패와 구분한다
        result = UploadResult(key=f"{rel_dir}/", outcome=Outcome.FAILED, reason=f"디렉토리 읽기 실패: {e}")
        walk_failures.append(result)
        if on_result is not None:
            on_result(result)

    specs = build_object_specs(
        walk_tree(target.local_root, on_error=_on_walk_error),
        cache_policy_from_config(cfg),
    )
    report = sync_objects(
        store,
        target.bucket_id,
        specs,
        upload_options_from_config(cfg),
        on_result=on_result,
        abort_event=abort_event,
    )
    report.results.extend(walk_failures)

    logger.info(
        "동기화 종료: created=%d updated=%d unchanged=%d failed=%d",
        report.count(Outcome.CREATED),
        report.count(Outcome.UPDATED),
        report.count(Outcome.UNCHANGED),
        report.count(Outcome.FAILED),
    )
    return report


def format_result_line(result: UploadResult) -> str:
    line = f"[{result.outcome.value}] {result.key}"
    if result.reason:
        line += f": {result.reason}"
    return line


def format_report(report: SyncReport) -> str:
    created = report.count(Outcome.CREATED)
    updated = report.count(Outcome.UPDATED)
    unchanged = report.count(Outcome.UNCHANGED)
    failed = report.failed

    lines: List[str] = []
    lines.append("# Sync summary")
    lines.append(f"- bucket: gs://{report.bucket}")
    lines.append("")

    lines.append("## Results")
    lines.append(f"- created: {created}")
    lines.append(f"- updated: {updated}")
    lines.append(f"- unchanged: {unchanged}")
    lines.append(f"- failed: {len(failed)}")

    lines.append("")
    lines.append("## Failed objects")
    if failed:
        for r in failed:
            lines.append(f"- {r.key}: {r.reason}")
    else:
        lines.append("- (none)")

    if report.fatal_error is not None or report.aborted:
        lines.append("")
        lines.append("## Aborted")
        if report.fatal_error is not None:
            lines.append(f"- {report.fatal_error}")
        else:
            lines.append("- 중단 요청으로 남은 업로드를 시작하지 않았습니다.")

    lines.append("")
    if report.has_failures:
        lines.append("동기화 실패: 위 목록을 확인하세요.")
    else:
        lines.append(
            f"동기화 완료: {created + updated} 개 업로드, {unchanged} 개 변경 없음 "
            f"(총 {len(report.results)} 개 오브젝트)"
        )
    return "\n".join(lines)


def check_sync(
    cfg: SyncConfig,
    base_dir: str = ".",
    *,
    store: Optional[GcsObjectStore] = None,
    runner: Optional[Runner] = None,
) -> tuple[str, bool]:
    """
    실제 업로드 없이 루트 디렉토리, 버킷 조회, 버킷 존재 여부를 점검한다.

    Returns:
        summary: 사람이 읽기 좋은 텍스트 요약
        has_issues: 동기화를 막는 이슈가 있는지 여부
    """
    lines: List[str] = []
    critical: List[str] = []
    warnings: List[str] = []

    lines.append("# Sync pre-check")
    lines.append("")

    # 1) 로컬 루트
    lines.append("## Local root")
    root = _root_path(cfg, base_dir)
    try:
        ensure_root(root)
        count = sum(1 for e in walk_tree(root) if not e.is_directory)
        msg = f"Root: {root} ({count} files)"
        lines.append(f"- {msg}")
        if count == 0:
            warnings.append(f"Root: 업로드할 파일이 없습니다 ({root})")
    except SyncError as e:
        lines.append(f"- {e}")
        critical.append(str(e))
    lines.append("")

    # 2) 버킷 조회
    lines.append("## Bucket")
    bucket: Optional[str] = None
    try:
        bucket = resolve_bucket(cfg, runner=runner)
        lines.append(f"- Bucket: {bucket} ({describe_bucket_source(cfg)})")
    except SyncError as e:
        lines.append(f"- {e}")
        critical.append(str(e))

    # 3) 버킷 존재 여부
    if bucket is not None:
        status = check_gcs_bucket(store or GcsObjectStore(project=cfg.gcp_project_id), bucket)
        lines.append(f"- {status}")
        if "버킷 없음" in status or "조회 실패" in status:
            critical.append(status)
        elif "확인 불가" in status:
            # 업로드 권한만 있고 버킷 조회 권한은 없는 서비스 계정일 수 있다
            warnings.append(status)
    lines.append("")

    lines.append("## Summary")
    if critical:
        lines.append("- 상태: 크리티컬 이슈가 있습니다. 동기화 전 반드시 해결해야 합니다.")
        for i in critical:
            lines.append(f"  - {i}")
    elif warnings:
        lines.append("- 상태: 경고가 있습니다.")
        for i in warnings:
            lines.append(f"  - {i}")
    else:
        lines.append("- 상태: 주요 이슈 없음 (동기화 가능 상태로 보입니다)")

    return "\n".join(lines), bool(critical)
