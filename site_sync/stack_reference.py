"""
stack_reference
---------------

프로비저닝 스택(Pulumi)이 export 한 출력값을 읽어오는 모듈.

버킷 이름은 별도 배포(인프라 스택)의 상태를 읽어야 알 수 있으므로,
트리 순회/업로드를 시작하기 전에 여기서 한 번에 조회를 끝낸다.
프로비저닝 로직을 다시 실행하지 않고 `pulumi stack output --json` 만 호출한다 (읽기 전용).
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from .errors import MissingOutputError, ResolutionError
from .logging_utils import get_logger
from .subprocess_utils import CommandError, CommandNotFoundError, RunResult, run_command


logger = get_logger(__name__)


DEFAULT_OUTPUT_NAME = "websiteBucket"

Runner = Callable[[Sequence[str]], RunResult]


@dataclass(frozen=True)
class StackReference:
    organization: str
    project: str
    stack: str

    @property
    def fully_qualified(self) -> str:
        return f"{self.organization}/{self.project}/{self.stack}"

    def __str__(self) -> str:
        return self.fully_qualified


def parse_stack_reference(text: str) -> StackReference:
    """
    'organization/project/stack' 형식의 문자열을 StackReference 로 변환한다.
    """
    parts = [p.strip() for p in (text or "").strip().split("/")]
    if len(parts) != 3 or not all(parts):
        raise ValueError(
            f"스택 레퍼런스 형식이 잘못되었습니다: {text!r} (organization/project/stack)"
        )
    return StackReference(*parts)


def _looks_like_missing_stack(stderr: str) -> bool:
    lowered = stderr.lower()
    return "no stack named" in lowered or "not found" in lowered or "404" in lowered


def read_stack_outputs(ref: StackReference, *, runner: Optional[Runner] = None) -> dict:
    """
    참조한 스택의 출력값 전체를 dict 로 반환한다.
    """
    run = runner or run_command
    cmd = [
        "pulumi",
        "stack",
        "output",
        "--json",
        "--stack",
        ref.fully_qualified,
        "--non-interactive",
    ]
    try:
        result = run(cmd)
    except CommandNotFoundError as e:
        raise ResolutionError(
            "pulumi 명령을 찾을 수 없습니다. Pulumi CLI 가 설치되어 있는지 확인하거나 "
            "BUCKET_NAME 으로 버킷을 직접 지정하세요."
        ) from e
    except CommandError as e:
        if _looks_like_missing_stack(e.stderr):
            raise ResolutionError(f"스택을 찾을 수 없습니다: {ref}") from e
        raise ResolutionError(f"스택 출력값 조회에 실패했습니다 ({ref}): {e}") from e

    try:
        outputs = json.loads(result.stdout or "{}")
    except json.JSONDecodeError as e:
        raise ResolutionError(f"스택 출력값을 JSON 으로 해석할 수 없습니다 ({ref})") from e

    if not isinstance(outputs, dict):
        raise ResolutionError(f"예상치 못한 스택 출력 형식입니다 ({ref}): {type(outputs).__name__}")
    return outputs


def resolve_output(
    ref: StackReference,
    output_name: str = DEFAULT_OUTPUT_NAME,
    *,
    runner: Optional[Runner] = None,
) -> str:
    """
    스택 출력값 하나를 문자열로 조회한다.

    스택이 없으면 ResolutionError, 출력값이 없거나 비어 있으면 MissingOutputError.
    잘못된 버킷에 쓰는 것보다 실패하는 편이 낫기 때문에 기본값으로 대체하지 않는다.
    """
    logger.info("스택 출력값 조회: %s (%s)", ref, output_name)
    outputs = read_stack_outputs(ref, runner=runner)

    value = outputs.get(output_name)
    if not isinstance(value, str) or not value.strip():
        raise MissingOutputError(ref.fully_qualified, output_name)

    logger.info("스택 출력값 조회 완료: %s=%s", output_name, value)
    return value.strip()
