"""
도메인 엔티티 정의

비즈니스 핵심 개념을 나타내는 엔티티들을 정의합니다.
모든 엔티티는 Pydantic 모델을 기반으로 하여 타입 안정성을 보장합니다.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, field_validator


def utcnow() -> datetime:
    """현재 UTC 시간을 tz 정보 없이 반환합니다."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Platform(str, Enum):
    """연동 플랫폼"""
    FACEBOOK = "facebook"
    GMAIL = "gmail"


class SubscriptionState(str, Enum):
    """푸시 구독 상태"""
    UNSUBSCRIBED = "unsubscribed"
    SUBSCRIBING = "subscribing"
    ACTIVE = "active"
    ERROR = "error"
    RESUBSCRIBING = "resubscribing"


class MessageOutcome(str, Enum):
    """푸시 메시지 처리 결과"""
    DISPATCHED = "dispatched"
    IGNORED = "ignored"
    DROPPED = "dropped"


class Account(BaseModel):
    """연동된 외부 계정 엔티티

    uid는 kind와 무관하게 전체 계정에서 유일합니다.
    """

    id: UUID = Field(default_factory=uuid4, description="계정 고유 ID")
    kind: str = Field(..., description="플랫폼 태그")
    uid: str = Field(..., description="플랫폼 사용자/페이지 ID")
    name: str = Field(..., description="표시 이름")
    token: str = Field(..., description="액세스 토큰")
    token_secret: Optional[str] = Field(None, description="토큰 시크릿")
    created_at: datetime = Field(default_factory=utcnow, description="생성 시간")

    @field_validator("kind", "uid")
    @classmethod
    def validate_not_blank(cls, v):
        """빈 값 검증"""
        if not v or not v.strip():
            raise ValueError("빈 값은 허용되지 않습니다")
        return v


class Integration(BaseModel):
    """계정에 연결된 플랫폼 리소스 (페이스북 페이지, 지메일 메일함)"""

    id: UUID = Field(default_factory=uuid4, description="연동 ID")
    account_id: UUID = Field(..., description="계정 ID")
    kind: Platform = Field(..., description="플랫폼")
    external_id: str = Field(..., description="페이지 ID 또는 메일 주소")
    access_token: str = Field(..., description="리소스 액세스 토큰")
    created_at: datetime = Field(default_factory=utcnow, description="생성 시간")


class SyncCursor(BaseModel):
    """증분 동기화 커서 엔티티"""

    account_id: UUID = Field(..., description="계정 ID")
    position: str = Field(..., description="외부 변경 스트림 위치 (historyId)")
    updated_at: datetime = Field(default_factory=utcnow, description="수정 시간")


class ThreadNode(BaseModel):
    """댓글/답글 노드"""

    id: str
    parent_id: Optional[str] = None
    author: Optional[str] = None
    body: Optional[str] = None
    created_at: Optional[str] = None
    child_count: Optional[int] = None
    depth: int = 1
    attachment_url: Optional[str] = None

    def has_children(self) -> bool:
        """하위 댓글이 있을 수 있는지 확인 (개수를 모르면 있다고 간주)"""
        return self.child_count is None or self.child_count > 0


class BranchFailure(BaseModel):
    """조회에 실패한 스레드 분기"""

    node_id: str
    depth: int
    error: str
    status_code: Optional[int] = None


class ThreadResolution(BaseModel):
    """스레드 탐색 결과"""

    root_id: str
    nodes: List[ThreadNode] = Field(default_factory=list)
    failures: List[BranchFailure] = Field(default_factory=list)
    limit_errors: List[Any] = Field(default_factory=list)

    @property
    def complete(self) -> bool:
        """실패나 제한 초과 없이 전체 탐색되었는지 여부"""
        return not self.failures and not self.limit_errors


class InboundMessage(BaseModel):
    """조정기로 전달되는 플랫폼 중립 메시지"""

    kind: Platform
    external_thread_id: str
    thread_title: Optional[str] = None
    author: Optional[str] = None
    body: Optional[str] = None
    sent_at: Optional[datetime] = None
    parent_external_id: Optional[str] = None
    attributes: Dict[str, Any] = Field(default_factory=dict)


class Conversation(BaseModel):
    """대화 엔티티"""

    id: UUID = Field(default_factory=uuid4, description="대화 ID")
    account_id: UUID = Field(..., description="계정 ID")
    kind: Platform = Field(..., description="플랫폼")
    external_thread_id: str = Field(..., description="외부 스레드 ID")
    title: Optional[str] = Field(None, description="제목")
    created_at: datetime = Field(default_factory=utcnow, description="생성 시간")
    updated_at: datetime = Field(default_factory=utcnow, description="수정 시간")


class Message(BaseModel):
    """메시지 엔티티"""

    id: UUID = Field(default_factory=uuid4, description="메시지 ID")
    conversation_id: UUID = Field(..., description="대화 ID")
    account_id: UUID = Field(..., description="계정 ID")
    external_message_id: str = Field(..., description="외부 메시지 ID")
    parent_external_id: Optional[str] = Field(None, description="상위 메시지 외부 ID")
    author: Optional[str] = Field(None, description="작성자")
    body: Optional[str] = Field(None, description="본문")
    sent_at: Optional[datetime] = Field(None, description="작성 시간")
    attributes: Dict[str, Any] = Field(default_factory=dict, description="플랫폼별 부가 정보")
    created_at: datetime = Field(default_factory=utcnow, description="생성 시간")


class ReconcileResult(BaseModel):
    """조정 결과"""

    conversation_id: UUID
    message_id: UUID
    created: bool


class SyncResult(BaseModel):
    """히스토리 동기화 결과"""

    account_id: UUID
    start_position: Optional[str] = None
    end_position: Optional[str] = None
    processed_count: int = 0
    skipped_count: int = 0
    failed_count: int = 0

    @property
    def advanced(self) -> bool:
        """커서가 전진했는지 여부"""
        return self.end_position is not None and self.end_position != self.start_position
