"""
metadata
--------

파일 확장자로 Content-Type 을, Content-Type 으로 Cache-Control 을 결정하는 정책 테이블.

캐시 정책은 2단계다.
- 문서(text/html): 배포마다 바뀌는 진입점이므로 짧게 (기본 1시간)
- 그 외 에셋: 파일명이 해시되거나 잘 재사용되지 않으므로 길게 (기본 24시간)
"""

from __future__ import annotations

import mimetypes
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import FrozenSet, Iterable, Iterator

from .models import FileEntry, ObjectSpec


DEFAULT_CONTENT_TYPE = "application/octet-stream"

# mimetypes 결과가 플랫폼/파이썬 버전마다 다를 수 있는 확장자는 여기서 고정한다.
CONTENT_TYPES = {
    ".html": "text/html",
    ".htm": "text/html",
    ".css": "text/css",
    ".js": "application/javascript",
    ".mjs": "application/javascript",
    ".json": "application/json",
    ".map": "application/json",
    ".webmanifest": "application/manifest+json",
    ".xml": "application/xml",
    ".txt": "text/plain",
    ".svg": "image/svg+xml",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".avif": "image/avif",
    ".ico": "image/x-icon",
    ".woff": "font/woff",
    ".woff2": "font/woff2",
    ".ttf": "font/ttf",
    ".otf": "font/otf",
    ".pdf": "application/pdf",
    ".wasm": "application/wasm",
}

DOCUMENT_CONTENT_TYPES: FrozenSet[str] = frozenset({"text/html"})

HTML_MAX_AGE_DEFAULT = 3600
ASSET_MAX_AGE_DEFAULT = 86400


def guess_content_type(path: str) -> str:
    """
    확장자만 보고 Content-Type 을 정한다. (대소문자 무시, 알 수 없으면 application/octet-stream)
    """
    suffix = PurePosixPath(path).suffix.lower()
    if not suffix:
        return DEFAULT_CONTENT_TYPE
    if suffix in CONTENT_TYPES:
        return CONTENT_TYPES[suffix]
    guessed, _ = mimetypes.guess_type(f"file{suffix}", strict=False)
    return guessed or DEFAULT_CONTENT_TYPE


@dataclass(frozen=True)
class CachePolicy:
    document_max_age: int = HTML_MAX_AGE_DEFAULT
    asset_max_age: int = ASSET_MAX_AGE_DEFAULT
    document_types: FrozenSet[str] = field(default=DOCUMENT_CONTENT_TYPES)

    def is_document(self, content_type: str) -> bool:
        return content_type.split(";", 1)[0].strip().lower() in self.document_types

    def cache_control_for(self, content_type: str) -> str:
        max_age = self.document_max_age if self.is_document(content_type) else self.asset_max_age
        return f"public, max-age={max_age}"


def build_object_spec(entry: FileEntry, policy: CachePolicy) -> ObjectSpec:
    if entry.is_directory:
        raise ValueError(f"디렉토리는 오브젝트가 될 수 없습니다: {entry.relative_path}")
    content_type = guess_content_type(entry.relative_path)
    return ObjectSpec(
        key=entry.relative_path,
        content_type=content_type,
        cache_control=policy.cache_control_for(content_type),
        source_path=entry.absolute_path,
    )


def build_object_specs(entries: Iterable[FileEntry], policy: CachePolicy) -> Iterator[ObjectSpec]:
    for entry in entries:
        if entry.is_directory:
            continue
        yield build_object_spec(entry, policy)
