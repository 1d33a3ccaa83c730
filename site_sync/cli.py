import sys
from typing import Any, Dict, Optional

import click

from .config import load_env_files, SyncConfig
from .errors import SyncError
from .logging_utils import setup_logging, get_logger
from .orchestrator import check_sync, format_report, format_result_line, plan_sync, run_sync


logger = get_logger(__name__)


@click.group()
@click.option(
    "-C",
    "--chdir",
    "chdir",
    type=click.Path(file_okay=False, dir_okay=True, exists=True),
    default=".",
    help="작업 디렉토리 (기본: 현재 디렉토리). .env 파일과 SITE_ROOT 의 기준 경로",
)
@click.option(
    "-v",
    "--verbose",
    count=True,
    help="로그 레벨을 DEBUG로 올립니다. (-vv 는 google 라이브러리 로그까지 출력)",
)
@click.pass_context
def main(ctx: click.Context, chdir: str, verbose: int) -> None:
    """정적 사이트 빌드 결과를 GCS 버킷에 동기화하는 CLI"""
    setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["chdir"] = chdir
    ctx.obj["verbose"] = verbose


def _target_options(f):  # noqa: ANN001, ANN202
    f = click.option(
        "--output",
        "output_name",
        type=str,
        default=None,
        help="버킷 이름이 들어 있는 스택 출력값 이름 (기본: websiteBucket)",
    )(f)
    f = click.option(
        "--stack",
        "stack_reference",
        type=str,
        default=None,
        help="버킷을 export 하는 Pulumi 스택 (organization/project/stack)",
    )(f)
    f = click.option(
        "--bucket",
        "bucket_name",
        type=str,
        default=None,
        help="대상 버킷 이름. 지정하면 스택 레퍼런스를 조회하지 않습니다. (env: BUCKET_NAME)",
    )(f)
    f = click.option(
        "--root",
        "site_root",
        type=str,
        default=None,
        help="업로드할 빌드 결과 디렉토리 (기본: out, env: SITE_ROOT)",
    )(f)
    return f


def _load_config_from_ctx(
    ctx: click.Context,
    overrides: Dict[str, Any],
    require_bucket: bool = True,
) -> SyncConfig:
    base_dir: str = ctx.obj["chdir"]
    load_env_files(base_dir)
    cfg = SyncConfig.from_env(overrides, require_bucket=require_bucket)
    logger.debug("Config loaded: %s", cfg)
    return cfg


def _overrides(
    site_root: Optional[str],
    bucket_name: Optional[str],
    stack_reference: Optional[str],
    output_name: Optional[str],
    **extra: Any,
) -> Dict[str, Any]:
    values: Dict[str, Any] = {
        "site_root": site_root,
        "bucket_name": bucket_name,
        "stack_reference": stack_reference,
        "bucket_output_name": output_name,
    }
    values.update(extra)
    return values


@main.command()
@_target_options
@click.pass_context
def plan(
    ctx: click.Context,
    site_root: Optional[str],
    bucket_name: Optional[str],
    stack_reference: Optional[str],
    output_name: Optional[str],
) -> None:
    """업로드될 오브젝트와 Content-Type/Cache-Control 을 출력 (원격 호출 없음)"""
    try:
        cfg = _load_config_from_ctx(
            ctx,
            _overrides(site_root, bucket_name, stack_reference, output_name),
            require_bucket=False,
        )
        report = plan_sync(cfg, base_dir=ctx.obj["chdir"])
    except (SyncError, ValueError) as e:
        click.echo(f"[ERROR] {e}", err=True)
        sys.exit(1)

    click.echo(report)


@main.command(name="sync")
@_target_options
@click.option(
    "--force",
    "force",
    is_flag=True,
    help="원격 오브젝트와 내용이 같아도 항상 덮어씁니다. (env: FORCE_UPLOAD)",
)
@click.option(
    "--workers",
    "workers",
    type=click.IntRange(min=1),
    default=None,
    help="동시에 업로드할 최대 파일 수 (기본: 8, env: MAX_WORKERS)",
)
@click.pass_context
def sync(
    ctx: click.Context,
    site_root: Optional[str],
    bucket_name: Optional[str],
    stack_reference: Optional[str],
    output_name: Optional[str],
    force: bool,
    workers: Optional[int],
) -> None:
    """빌드 결과 디렉토리를 버킷에 동기화"""
    try:
        cfg = _load_config_from_ctx(
            ctx,
            _overrides(
                site_root,
                bucket_name,
                stack_reference,
                output_name,
                force_upload=force or None,
                max_workers=workers,
            ),
        )
    except (SyncError, ValueError) as e:
        click.echo(f"[ERROR] 설정 로드 실패: {e}", err=True)
        sys.exit(1)

    try:
        report = run_sync(
            cfg,
            base_dir=ctx.obj["chdir"],
            on_result=lambda r: click.echo(format_result_line(r)),
        )
    except (SyncError, OSError) as e:
        # 사전 조건 실패
        click.echo(f"[ERROR] {e}", err=True)
        sys.exit(1)
    except KeyboardInterrupt:
        click.echo("[ERROR] 사용자 요청으로 동기화를 중단했습니다.", err=True)
        sys.exit(130)

    click.echo("")
    click.echo(format_report(report))

    if report.has_failures:
        sys.exit(1)


@main.command()
@_target_options
@click.pass_context
def check(
    ctx: click.Context,
    site_root: Optional[str],
    bucket_name: Optional[str],
    stack_reference: Optional[str],
    output_name: Optional[str],
) -> None:
    """
    동기화 전에 로컬 루트 / 버킷 조회 / 버킷 존재 여부를 점검한다.
    (업로드는 하지 않는다)
    """
    try:
        cfg = _load_config_from_ctx(
            ctx, _overrides(site_root, bucket_name, stack_reference, output_name)
        )
    except (SyncError, ValueError) as e:
        click.echo(f"[ERROR] 설정 로드 실패: {e}", err=True)
        sys.exit(1)

    try:
        report, has_issues = check_sync(cfg, base_dir=ctx.obj["chdir"])
    except Exception as e:  # noqa: BLE001
        logger.exception("사전 체크 중 오류 발생")
        click.echo(f"[ERROR] 체크 실패: {e}", err=True)
        sys.exit(1)

    click.echo(report)

    # 크리티컬 이슈가 있으면 exit 1 로 종료하여 CI 등에서 감지 가능하게 한다.
    if has_issues:
        sys.exit(1)
