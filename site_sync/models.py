from __future__ import annotations

import enum
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


@dataclass(frozen=True)
class SyncTarget:
    # 실행 1회 동안 변하지 않는 동기화 대상
    bucket_id: str
    local_root: Path


@dataclass(frozen=True)
class FileEntry:
    relative_path: str  # posix 구분자, 앞쪽 슬래시 없음
    absolute_path: Path
    is_directory: bool = False


@dataclass(frozen=True)
class ObjectSpec:
    key: str
    content_type: str
    cache_control: str
    source_path: Path


class Outcome(str, enum.Enum):
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    FAILED = "failed"


@dataclass(frozen=True)
class UploadResult:
    key: str
    outcome: Outcome
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome is not Outcome.FAILED


@dataclass(frozen=True)
class RemoteObject:
    """원격 오브젝트의 비교용 메타데이터."""

    key: str
    md5_hash: Optional[str]
    content_type: Optional[str]
    cache_control: Optional[str]
