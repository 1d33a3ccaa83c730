"""
tree_walker
-----------

로컬 빌드 결과 디렉토리를 순회해서 FileEntry 목록을 만드는 모듈.

업로드 로직과 분리된 순수 순회 단계라서 원격 호출 없이 테스트할 수 있다.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Tuple, Union

from .errors import RootNotFoundError
from .logging_utils import get_logger
from .models import FileEntry


logger = get_logger(__name__)


def ensure_root(local_root: Union[str, Path]) -> Path:
    """
    루트가 존재하는 디렉토리인지 확인하고 절대 경로를 반환한다.
    """
    root = Path(local_root)
    if not root.is_dir():
        raise RootNotFoundError(str(root))
    return root.resolve()


def _inside(path: Path, root: Path) -> bool:
    try:
        path.relative_to(root)
    except ValueError:
        return False
    return True


def _join(prefix: str, name: str) -> str:
    return f"{prefix}/{name}" if prefix else name


def walk_tree(
    local_root: Union[str, Path],
    on_error: Optional[Callable[[str, OSError], None]] = None,
) -> Iterator[FileEntry]:
    """
    local_root 아래 모든 노드를 깊이 우선으로 순회한다.

    - 디렉토리도 FileEntry(is_directory=True)로 내보낸다. (업로드 대상은 아님)
    - relative_path 는 OS 와 무관하게 '/' 로 이어붙인다.
    - 심볼릭 링크 디렉토리는 따라가지 않고, 심볼릭 링크 파일은 대상이 루트 안에 있을 때만 포함한다.
    - 읽을 수 없는 하위 디렉토리는 건너뛰고 on_error(상대 경로, 예외)로 알린다. 순회는 계속된다.

    제너레이터라서 호출할 때마다 처음부터 다시 순회한다.
    RootNotFoundError 는 첫 next() 가 아니라 호출 즉시 발생한다.
    """
    root = ensure_root(local_root)
    return _walk(root, on_error)


def _walk(
    root: Path,
    on_error: Optional[Callable[[str, OSError], None]] = None,
) -> Iterator[FileEntry]:
    stack: List[Tuple[Path, str]] = [(root, "")]

    while stack:
        directory, prefix = stack.pop()
        try:
            with os.scandir(directory) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as e:
            logger.warning("디렉토리를 읽을 수 없어 건너뜁니다: %s (%s)", prefix or ".", e)
            if on_error is not None:
                on_error(prefix or ".", e)
            continue

        subdirs: List[Tuple[Path, str]] = []
        for entry in entries:
            rel = _join(prefix, entry.name)
            path = Path(entry.path)

            if entry.is_symlink():
                if entry.is_dir():
                    logger.warning("심볼릭 링크 디렉토리는 따라가지 않습니다: %s", rel)
                    continue
                target = path.resolve()
                if not target.is_file():
                    logger.warning("대상이 없는 심볼릭 링크를 건너뜁니다: %s", rel)
                    continue
                if not _inside(target, root):
                    logger.warning("루트 밖을 가리키는 심볼릭 링크를 건너뜁니다: %s -> %s", rel, target)
                    continue
                yield FileEntry(relative_path=rel, absolute_path=path)
                continue

            if entry.is_dir(follow_symlinks=False):
                yield FileEntry(relative_path=rel, absolute_path=path, is_directory=True)
                subdirs.append((path, rel))
            elif entry.is_file(follow_symlinks=False):
                yield FileEntry(relative_path=rel, absolute_path=path)
            else:
                logger.debug("일반 파일이 아니므로 건너뜁니다: %s", rel)

        # 스택이므로 역순으로 넣어야 이름순으로 내려간다
        stack.extend(reversed(subdirs))
