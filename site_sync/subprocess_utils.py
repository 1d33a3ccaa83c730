from __future__ import annotations

import subprocess
from dataclasses import dataclass
from textwrap import shorten
from typing import Mapping, Optional, Sequence

from .logging_utils import get_logger


logger = get_logger(__name__)


@dataclass(frozen=True)
class RunResult:
    returncode: int
    stdout: str
    stderr: str


class CommandError(RuntimeError):
    """외부 명령 실행 실패. 호출 측에서 stderr 내용을 보고 원인을 구분할 수 있다."""

    def __init__(
        self,
        message: str,
        *,
        cmd: Sequence[str],
        returncode: Optional[int] = None,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        super().__init__(message)
        self.cmd = list(cmd)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


class CommandNotFoundError(CommandError):
    """실행 파일이 PATH 에 없음."""


def run_command(
    cmd: Sequence[str],
    *,
    cwd: str | None = None,
    env: Mapping[str, str] | None = None,
    timeout: float | None = 300.0,
) -> RunResult:
    """
    subprocess 실행 공통 유틸.

    stdout/stderr 를 캡처하고, 실패 시 stderr(없으면 stdout) 요약을 에러 메시지에 포함한다.
    """
    logger.info("명령 실행: %s", " ".join(cmd))
    try:
        result = subprocess.run(
            list(cmd),
            check=True,
            capture_output=True,
            text=True,
            timeout=timeout,
            cwd=cwd,
            env=dict(env) if env is not None else None,
        )
    except FileNotFoundError as e:
        raise CommandNotFoundError(
            f"필요한 명령을 찾을 수 없습니다: {cmd[0]}",
            cmd=cmd,
        ) from e
    except subprocess.TimeoutExpired as e:
        raise CommandError(
            f"명령 실행이 {timeout}초 안에 끝나지 않았습니다: {' '.join(cmd)}",
            cmd=cmd,
        ) from e
    except subprocess.CalledProcessError as e:
        stdout = (e.stdout or "").strip()
        stderr = (e.stderr or "").strip()
        detail = ""
        if stderr:
            detail = "\nstderr:\n" + shorten(stderr, width=2000)
        elif stdout:
            detail = "\nstdout:\n" + shorten(stdout, width=2000)
        raise CommandError(
            f"명령 실행 실패: {' '.join(cmd)} (exit={e.returncode}){detail}",
            cmd=cmd,
            returncode=e.returncode,
            stdout=stdout,
            stderr=stderr,
        ) from e

    if result.stderr:
        logger.debug("명령 stderr: %s", shorten(result.stderr.strip(), width=2000))
    return RunResult(returncode=result.returncode, stdout=result.stdout or "", stderr=result.stderr or "")
