"""
errors
------

동기화 과정에서 발생하는 예외 계층.

- 사전 조건 실패(버킷 조회, 루트 디렉토리, 설정)는 업로드 시작 전에 전체 실행을 중단시킨다.
- 파일 단위 실패(SourceReadError, UploadError)는 모아서 마지막에 한 번에 보고한다.
- AuthError 는 이후 호출도 똑같이 실패하므로 남은 업로드를 즉시 중단시킨다.
"""

from __future__ import annotations

from typing import Optional


class SyncError(Exception):
    """site_sync 에서 발생시키는 모든 예외의 기반 클래스."""


class ConfigError(SyncError, ValueError):
    """필수 설정 누락 또는 잘못된 설정값."""


class ResolutionError(SyncError):
    """스택 레퍼런스로 버킷 이름을 조회하지 못함."""


class MissingOutputError(ResolutionError):
    """참조한 스택에 요청한 출력값이 없음."""

    def __init__(self, stack: str, output_name: str) -> None:
        self.stack = stack
        self.output_name = output_name
        super().__init__(
            f"스택 {stack} 에 출력값 '{output_name}' 이(가) 없습니다. "
            "프로비저닝 스택이 해당 값을 export 하는지 확인하세요."
        )


class RootNotFoundError(SyncError):
    """동기화할 로컬 루트 디렉토리가 없거나 디렉토리가 아님."""

    def __init__(self, root: str) -> None:
        self.root = root
        super().__init__(
            f"동기화할 디렉토리를 찾을 수 없습니다: {root}\n"
            "정적 사이트 빌드를 먼저 실행했는지 확인하세요 (예: npm run build)."
        )


class SourceReadError(SyncError):
    """목록에 있던 로컬 파일을 업로드 시점에 읽을 수 없음 (예: 실행 중 삭제)."""

    def __init__(self, key: str, cause: Optional[BaseException] = None) -> None:
        self.key = key
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(f"로컬 파일을 읽을 수 없습니다 ({key}){detail}")


class UploadError(SyncError):
    """오브젝트 업로드 실패. retryable=True 이면 일시적인 오류로 간주한다."""

    def __init__(self, key: str, cause: BaseException, retryable: bool = True) -> None:
        self.key = key
        self.cause = cause
        self.retryable = retryable
        super().__init__(f"업로드 실패 ({key}): {cause}")


class AuthError(SyncError):
    """인증/권한 오류. 재시도해도 결과가 같으므로 치명적이다."""
