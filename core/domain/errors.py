"""
도메인 오류 정의

외부 호출, 페이로드 검증, 스레드 탐색 제한 등에서 발생하는 오류 계층입니다.
상위 레이어는 오류 타입에 따라 재시도(TransientError), 재인증(AuthError),
폐기(ValidationError)를 결정합니다.
"""

from typing import Optional


class SyncError(Exception):
    """동기화 엔진 기본 오류"""


class ConfigurationError(SyncError):
    """필수 설정 누락"""


class ValidationError(SyncError):
    """잘못된 페이로드 또는 파라미터 (재시도하지 않음)"""


class RequestError(SyncError):
    """외부 API 호출 실패"""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        platform: Optional[str] = None,
        error_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.platform = platform
        self.error_code = error_code

    def __str__(self) -> str:
        if self.status_code is None:
            return self.message
        return f"{self.status_code} - {self.message}"


class AuthError(RequestError):
    """자격 증명이 유효하지 않거나 만료됨 (재인증 필요)"""


class TransientError(RequestError):
    """네트워크 오류 또는 요청 제한 (백오프 후 재시도 가능)"""


class TraversalLimitExceeded(SyncError):
    """스레드 탐색 제한 초과"""

    def __init__(self, node_id: str, value: int, limit: int):
        super().__init__(f"{type(self).__name__}: node={node_id}, value={value}, limit={limit}")
        self.node_id = node_id
        self.value = value
        self.limit = limit


class DepthExceeded(TraversalLimitExceeded):
    """최대 탐색 깊이 초과"""


class TooManyNodes(TraversalLimitExceeded):
    """최대 노드 수 초과"""
