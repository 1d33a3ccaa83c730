"""
site_sync
---------

정적 사이트 빌드 결과(out/)를 GCS 버킷에 오브젝트 단위로 동기화하는 CLI 패키지.
버킷 이름은 환경변수로 직접 지정하거나, 프로비저닝을 담당하는 Pulumi 스택의
출력값(websiteBucket)을 스택 레퍼런스로 조회해서 사용한다.
"""

__all__ = [
    "config",
    "orchestrator",
]
