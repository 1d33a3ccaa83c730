from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from typing import Any, List, Mapping, Optional

from dotenv import load_dotenv

from .errors import ConfigError
from .stack_reference import DEFAULT_OUTPUT_NAME, StackReference, parse_stack_reference


ENV_FILES_DEFAULT_ORDER = [".env", ".env.sync"]


def load_env_files(base_dir: str = ".",
                   files: Optional[List[str]] = None) -> None:
    """
    주어진 디렉토리에서 .env 계열 파일을 순서대로 로드한다.
    후순위 파일이 같은 키를 덮어쓴다.
    """
    order = files or ENV_FILES_DEFAULT_ORDER
    for name in order:
        path = os.path.join(base_dir, name)
        if os.path.exists(path):
            load_dotenv(path, override=True)


def _get_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.lower() in {"1", "true", "yes", "y"}


def _get_number(name: str, default: Any, cast: type, invalid: List[str]) -> Any:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw)
    except ValueError:
        invalid.append(f"{name}={raw!r}")
        return default


@dataclass(frozen=True)
class SyncConfig:
    # 로컬 빌드 결과 디렉토리
    site_root: str = "out"

    # 버킷 지정: BUCKET_NAME 이 있으면 스택 레퍼런스보다 우선한다.
    bucket_name: Optional[str] = None
    pulumi_organization: Optional[str] = None
    pulumi_project: Optional[str] = None
    pulumi_stack: Optional[str] = None
    bucket_output_name: str = DEFAULT_OUTPUT_NAME

    gcp_project_id: Optional[str] = None

    # 업로드 동작
    max_workers: int = 8
    max_retries: int = 3
    retry_backoff_seconds: float = 0.5
    force_upload: bool = False

    # 캐시 정책 (초)
    html_max_age: int = 3600
    asset_max_age: int = 86400

    @property
    def stack_reference(self) -> Optional[StackReference]:
        if self.pulumi_organization and self.pulumi_project and self.pulumi_stack:
            return StackReference(
                self.pulumi_organization, self.pulumi_project, self.pulumi_stack
            )
        return None

    def with_overrides(self, overrides: Optional[Mapping[str, Any]]) -> "SyncConfig":
        """
        CLI 옵션 등으로 받은 값 중 None 이 아닌 것만 덮어쓴 새 설정을 반환한다.
        stack_reference 키는 'org/project/stack' 문자열로 받는다.
        """
        if not overrides:
            return self
        values = {k: v for k, v in overrides.items() if v is not None}
        ref_text = values.pop("stack_reference", None)
        if ref_text:
            try:
                ref = parse_stack_reference(ref_text)
            except ValueError as e:
                raise ConfigError(str(e)) from e
            values.update(
                pulumi_organization=ref.organization,
                pulumi_project=ref.project,
                pulumi_stack=ref.stack,
            )
        known = {f.name for f in fields(self)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ConfigError("알 수 없는 설정 키입니다: " + ", ".join(unknown))
        return replace(self, **values)

    def validate(self, require_bucket: bool = True) -> "SyncConfig":
        problems: List[str] = []

        if not self.site_root:
            problems.append("SITE_ROOT 가 비어 있습니다.")

        if require_bucket and not self.bucket_name and self.stack_reference is None:
            problems.append(
                "BUCKET_NAME 또는 스택 레퍼런스(PULUMI_STACK_REFERENCE 또는 "
                "PULUMI_ORGANIZATION/PULUMI_PROJECT/PULUMI_STACK)가 필요합니다."
            )

        if self.max_workers < 1:
            problems.append(f"MAX_WORKERS 는 1 이상이어야 합니다 ({self.max_workers})")
        if self.max_retries < 0:
            problems.append(f"MAX_RETRIES 는 0 이상이어야 합니다 ({self.max_retries})")
        if self.retry_backoff_seconds < 0:
            problems.append(
                f"RETRY_BACKOFF_SECONDS 는 0 이상이어야 합니다 ({self.retry_backoff_seconds})"
            )
        if self.html_max_age < 0 or self.asset_max_age < 0:
            problems.append("HTML_MAX_AGE / ASSET_MAX_AGE 는 0 이상이어야 합니다.")

        if problems:
            raise ConfigError("설정 오류: " + " ".join(problems))
        return self

    @classmethod
    def from_env(
        cls,
        overrides: Optional[Mapping[str, Any]] = None,
        require_bucket: bool = True,
    ) -> "SyncConfig":
        invalid: List[str] = []

        organization = os.getenv("PULUMI_ORGANIZATION")
        project = os.getenv("PULUMI_PROJECT")
        stack = os.getenv("PULUMI_STACK")

        # 전체 형식(org/project/stack)이 주어지면 개별 값보다 우선한다.
        ref_text = os.getenv("PULUMI_STACK_REFERENCE")
        if ref_text:
            try:
                ref = parse_stack_reference(ref_text)
                organization, project, stack = ref.organization, ref.project, ref.stack
            except ValueError:
                invalid.append(f"PULUMI_STACK_REFERENCE={ref_text!r}")

        cfg = cls(
            site_root=os.getenv("SITE_ROOT", "out"),
            bucket_name=os.getenv("BUCKET_NAME") or None,
            pulumi_organization=organization,
            pulumi_project=project,
            pulumi_stack=stack,
            bucket_output_name=os.getenv("BUCKET_OUTPUT_NAME", DEFAULT_OUTPUT_NAME),
            gcp_project_id=os.getenv("GCP_PROJECT_ID") or None,
            max_workers=_get_number("MAX_WORKERS", 8, int, invalid),
            max_retries=_get_number("MAX_RETRIES", 3, int, invalid),
            retry_backoff_seconds=_get_number("RETRY_BACKOFF_SECONDS", 0.5, float, invalid),
            force_upload=_get_bool("FORCE_UPLOAD", False),
            html_max_age=_get_number("HTML_MAX_AGE", 3600, int, invalid),
            asset_max_age=_get_number("ASSET_MAX_AGE", 86400, int, invalid),
        )

        if invalid:
            raise ConfigError(
                "환경변수 값이 올바르지 않습니다: " + ", ".join(sorted(invalid))
            )

        return cfg.with_overrides(overrides).validate(require_bucket=require_bucket)
