"""
포트 인터페이스 정의

클린 아키텍처의 핵심으로, Core 레이어와 외부 어댑터 간의 계약을 정의합니다.
모든 포트는 추상 기본 클래스(ABC)로 정의되어 구현을 강제합니다.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Tuple
from uuid import UUID

from .entities import (
    Account,
    Conversation,
    Integration,
    Message,
    Platform,
    SyncCursor,
)


class AccountRepositoryPort(ABC):
    """계정 저장소 포트"""

    @abstractmethod
    async def create_account(self, account: Account) -> Optional[Account]:
        """계정 생성 (uid 중복 시 None)"""
        pass

    @abstractmethod
    async def remove_account(self, account_id: UUID) -> bool:
        """계정 삭제 (없는 ID도 오류 없음)"""
        pass

    @abstractmethod
    async def find_account(self, **criteria: Any) -> Optional[Account]:
        """조건에 맞는 계정 하나 조회"""
        pass

    @abstractmethod
    async def find_accounts(self, **criteria: Any) -> List[Account]:
        """조건에 맞는 계정 목록 조회"""
        pass

    @abstractmethod
    async def get_by_id(self, account_id: UUID) -> Optional[Account]:
        """ID로 계정 조회"""
        pass

    @abstractmethod
    async def list_all(self, skip: int = 0, limit: int = 100) -> List[Account]:
        """모든 계정 목록 조회"""
        pass


class IntegrationRepositoryPort(ABC):
    """연동 저장소 포트"""

    @abstractmethod
    async def create_integration(self, integration: Integration) -> Optional[Integration]:
        """연동 생성 ((kind, external_id) 중복 시 None)"""
        pass

    @abstractmethod
    async def get_by_external_id(self, kind: Platform, external_id: str) -> Optional[Integration]:
        """플랫폼 리소스 ID로 연동 조회"""
        pass

    @abstractmethod
    async def get_for_account(self, account_id: UUID, kind: Platform) -> Optional[Integration]:
        """계정의 플랫폼별 연동 조회"""
        pass

    @abstractmethod
    async def list_by_kind(self, kind: Platform) -> List[Integration]:
        """플랫폼별 연동 목록 조회"""
        pass


class SyncCursorRepositoryPort(ABC):
    """동기화 커서 저장소 포트"""

    @abstractmethod
    async def get(self, account_id: UUID) -> Optional[SyncCursor]:
        """계정의 커서 조회"""
        pass

    @abstractmethod
    async def save(self, account_id: UUID, position: str) -> SyncCursor:
        """커서 저장 (있으면 갱신)"""
        pass


class ConversationRepositoryPort(ABC):
    """대화 저장소 포트"""

    @abstractmethod
    async def get_by_external_id(self, account_id: UUID, external_thread_id: str) -> Optional[Conversation]:
        """외부 스레드 ID로 대화 조회"""
        pass

    @abstractmethod
    async def get_or_create(self, conversation: Conversation) -> Tuple[Conversation, bool]:
        """대화 조회 또는 생성 (유일성 제약으로 원자적 처리)"""
        pass

    @abstractmethod
    async def list_by_account(self, account_id: UUID, skip: int = 0, limit: int = 100) -> List[Conversation]:
        """계정별 대화 목록 조회"""
        pass


class MessageRepositoryPort(ABC):
    """메시지 저장소 포트"""

    @abstractmethod
    async def get_by_external_id(self, account_id: UUID, external_message_id: str) -> Optional[Message]:
        """외부 메시지 ID로 메시지 조회"""
        pass

    @abstractmethod
    async def create_if_absent(self, message: Message) -> Tuple[Message, bool]:
        """메시지 생성 (이미 있으면 기존 메시지 반환)"""
        pass

    @abstractmethod
    async def list_by_conversation(self, conversation_id: UUID) -> List[Message]:
        """대화별 메시지 목록 조회"""
        pass

    @abstractmethod
    async def count_by_external_id(self, account_id: UUID, external_message_id: str) -> int:
        """외부 메시지 ID로 메시지 수 조회"""
        pass


class UnitOfWorkPort(ABC):
    """작업 단위 포트

    장시간 실행되는 작업자가 작업마다 독립된 저장소 세션을 얻기 위해 사용합니다.
    """

    accounts: AccountRepositoryPort
    integrations: IntegrationRepositoryPort
    cursors: SyncCursorRepositoryPort
    conversations: ConversationRepositoryPort
    messages: MessageRepositoryPort

    @abstractmethod
    async def __aenter__(self) -> "UnitOfWorkPort":
        pass

    @abstractmethod
    async def __aexit__(self, exc_type, exc, tb) -> None:
        pass


UnitOfWorkFactory = Callable[[], UnitOfWorkPort]


class PlatformApiClientPort(ABC):
    """플랫폼 API 클라이언트 포트

    인증 헤더를 주입하여 get/post 요청을 보내고 파싱된 결과를 반환합니다.
    실패 시 RequestError(AuthError, TransientError)를 발생시킵니다.
    """

    platform: Platform

    @abstractmethod
    async def get(
        self,
        path: str,
        access_token: Optional[str] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> dict:
        """GET 요청"""
        pass

    @abstractmethod
    async def post(
        self,
        path: str,
        access_token: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> dict:
        """POST 요청"""
        pass


class FacebookApiPort(PlatformApiClientPort):
    """페이스북 Graph API 포트"""

    @abstractmethod
    def get_oauth_url(self, redirect_uri: str, scope: str) -> str:
        """OAuth 동의 URL 생성"""
        pass

    @abstractmethod
    async def exchange_code_for_token(self, code: str, redirect_uri: str) -> dict:
        """인증 코드를 토큰으로 교환"""
        pass

    @abstractmethod
    async def get_user_profile(self, access_token: str) -> dict:
        """사용자 최소 프로필 조회"""
        pass

    @abstractmethod
    async def get_page_info(self, page_id: str, user_access_token: str) -> dict:
        """페이지 정보(페이지 토큰 포함) 조회"""
        pass

    @abstractmethod
    async def subscribe_page(self, page_id: str, page_access_token: str) -> dict:
        """페이지 웹훅 구독"""
        pass

    @abstractmethod
    async def get_post_info(self, post_id: str, access_token: str) -> dict:
        """게시물 조회"""
        pass

    @abstractmethod
    async def get_comment_info(self, comment_id: str, access_token: str) -> dict:
        """댓글 조회"""
        pass

    @abstractmethod
    async def get_comments(self, object_id: str, access_token: str) -> List[dict]:
        """게시물/댓글의 직계 댓글 목록 조회"""
        pass

    @abstractmethod
    async def fetch_comments(self, post_id: str, access_token: str, limit: int = 5) -> dict:
        """게시물의 최신 댓글 조회"""
        pass


class GmailApiPort(PlatformApiClientPort):
    """Gmail API 포트"""

    @abstractmethod
    async def get_profile(self, access_token: str) -> dict:
        """메일함 프로필 조회 (emailAddress, historyId)"""
        pass

    @abstractmethod
    async def watch(self, access_token: str, topic_name: str) -> dict:
        """푸시 알림 등록"""
        pass

    @abstractmethod
    async def list_history(
        self,
        access_token: str,
        start_history_id: str,
        page_token: Optional[str] = None,
    ) -> dict:
        """히스토리 변경 목록 조회"""
        pass

    @abstractmethod
    async def get_message(self, access_token: str, message_id: str) -> dict:
        """메시지 조회"""
        pass

    @abstractmethod
    async def get_attachment(self, access_token: str, message_id: str, attachment_id: str) -> dict:
        """첨부파일 조회"""
        pass

    @abstractmethod
    async def send_message(self, access_token: str, raw: str) -> dict:
        """RFC 2822 메시지 발송"""
        pass


class PushSubscriberPort(ABC):
    """푸시 구독 백엔드 포트"""

    @abstractmethod
    async def ensure_subscription(self, topic: str, subscription: str) -> None:
        """구독이 없으면 생성"""
        pass

    @abstractmethod
    def subscribe(self, subscription: str, callback: Callable[[Any], None]) -> Any:
        """스트리밍 수신 시작 (cancel()/result()를 가진 future 반환)"""
        pass

    @abstractmethod
    def close(self) -> None:
        """클라이언트 종료"""
        pass


class EncryptionServicePort(ABC):
    """암호화 서비스 포트"""

    @abstractmethod
    async def encrypt(self, data: str) -> str:
        """데이터 암호화"""
        pass

    @abstractmethod
    async def decrypt(self, encrypted_data: str) -> str:
        """데이터 복호화"""
        pass


class LoggerPort(ABC):
    """로거 포트"""

    @abstractmethod
    def info(self, message: str, **kwargs) -> None:
        """정보 로그"""
        pass

    @abstractmethod
    def warning(self, message: str, **kwargs) -> None:
        """경고 로그"""
        pass

    @abstractmethod
    def error(self, message: str, **kwargs) -> None:
        """오류 로그"""
        pass

    @abstractmethod
    def debug(self, message: str, **kwargs) -> None:
        """디버그 로그"""
        pass


class ConfigPort(ABC):
    """설정 포트"""

    # 환경 설정
    @abstractmethod
    def get_environment(self) -> str:
        """환경 조회 (development, production, testing)"""
        pass

    @abstractmethod
    def is_debug(self) -> bool:
        """디버그 모드 여부"""
        pass

    # 데이터베이스 설정
    @abstractmethod
    def get_database_url(self) -> str:
        """데이터베이스 URL 조회"""
        pass

    @abstractmethod
    def get_encryption_key(self) -> str:
        """암호화 키 조회"""
        pass

    # 페이스북 설정
    @abstractmethod
    def get_facebook_app_id(self) -> str:
        """페이스북 앱 ID 조회"""
        pass

    @abstractmethod
    def get_facebook_app_secret(self) -> str:
        """페이스북 앱 시크릿 조회"""
        pass

    @abstractmethod
    def get_facebook_verify_token(self) -> str:
        """웹훅 검증 토큰 조회"""
        pass

    @abstractmethod
    def get_facebook_permissions(self) -> str:
        """OAuth 요청 권한 범위 조회"""
        pass

    @abstractmethod
    def get_facebook_graph_version(self) -> str:
        """Graph API 버전 조회"""
        pass

    @abstractmethod
    def get_domain(self) -> str:
        """OAuth 리다이렉트 도메인 조회"""
        pass

    @abstractmethod
    def get_main_app_domain(self) -> str:
        """인증 후 이동할 앱 도메인 조회"""
        pass

    # 푸시 구독 설정
    @abstractmethod
    def is_gmail_push_enabled(self) -> bool:
        """Gmail 푸시 수신 여부"""
        pass

    @abstractmethod
    def get_pubsub_config(self) -> dict:
        """Pub/Sub 설정 조회"""
        pass

    @abstractmethod
    def validate_push_settings(self) -> None:
        """푸시 구독 필수 설정 검증 (누락 시 ConfigurationError)"""
        pass

    # 동기화 설정
    @abstractmethod
    def get_thread_limits(self) -> dict:
        """스레드 탐색 제한 조회 (max_depth, max_nodes, concurrency)"""
        pass

    @abstractmethod
    def get_webhook_config(self) -> dict:
        """웹훅 작업자 설정 조회"""
        pass

    @abstractmethod
    def get_sync_max_attempts(self) -> int:
        """동기화 재시도 횟수 조회"""
        pass

    @abstractmethod
    def get_shutdown_timeout(self) -> float:
        """종료 대기 시간(초) 조회"""
        pass

    # 로깅 설정
    @abstractmethod
    def get_log_level(self) -> str:
        """로그 레벨 조회"""
        pass

    @abstractmethod
    def get_log_format(self) -> str:
        """로그 포맷 조회"""
        pass

    # 웹 서버 설정
    @abstractmethod
    def get_web_config(self) -> dict:
        """웹 서버 설정 조회"""
        pass
