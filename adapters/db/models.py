"""
SQLAlchemy 데이터베이스 모델

도메인 엔티티와 매핑되는 데이터베이스 테이블 모델을 정의합니다.
SQLite 호환성을 위해 UUID는 String으로, 부가 정보는 JSON으로 처리합니다.
중복 수신을 막기 위한 유일성 제약이 추가되었습니다.
"""

import uuid

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    JSON,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

from core.domain.entities import utcnow

Base = declarative_base()


class AccountModel(Base):
    """계정 테이블 모델"""

    __tablename__ = "accounts"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    kind = Column(String(50), nullable=False, index=True)
    # uid는 kind와 무관하게 전역 유일
    uid = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    token = Column(Text, nullable=False)  # 암호화된 값
    token_secret = Column(Text)  # 암호화된 값 (선택적)
    created_at = Column(DateTime, default=utcnow, index=True)

    __table_args__ = (
        Index('idx_accounts_kind_uid', 'kind', 'uid'),
    )

    # 관계 설정
    integrations = relationship("IntegrationModel", back_populates="account")
    sync_cursor = relationship("SyncCursorModel", back_populates="account", uselist=False)
    conversations = relationship("ConversationModel", back_populates="account")


class IntegrationModel(Base):
    """연동(페이지/메일함) 테이블 모델"""

    __tablename__ = "integrations"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    account_id = Column(String(36), ForeignKey("accounts.id"), nullable=False, index=True)
    kind = Column(String(50), nullable=False, index=True)
    external_id = Column(String(255), nullable=False)
    access_token = Column(Text, nullable=False)  # 암호화된 값
    created_at = Column(DateTime, default=utcnow, index=True)

    __table_args__ = (
        UniqueConstraint('kind', 'external_id', name='uq_integrations_kind_external'),
        Index('idx_integrations_account_kind', 'account_id', 'kind'),
    )

    account = relationship("AccountModel", back_populates="integrations")


class SyncCursorModel(Base):
    """동기화 커서 테이블 모델"""

    __tablename__ = "sync_cursors"

    account_id = Column(String(36), ForeignKey("accounts.id"), primary_key=True)
    position = Column(String(255), nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, index=True)

    account = relationship("AccountModel", back_populates="sync_cursor")


class ConversationModel(Base):
    """대화 테이블 모델"""

    __tablename__ = "conversations"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    account_id = Column(String(36), ForeignKey("accounts.id"), nullable=False, index=True)
    kind = Column(String(50), nullable=False, index=True)
    external_thread_id = Column(String(255), nullable=False)
    title = Column(Text)
    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint('account_id', 'external_thread_id', name='uq_conversations_account_thread'),
        Index('idx_conversations_account_updated', 'account_id', 'updated_at'),
    )

    account = relationship("AccountModel", back_populates="conversations")
    messages = relationship("MessageModel", back_populates="conversation")


class MessageModel(Base):
    """메시지 테이블 모델"""

    __tablename__ = "messages"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    conversation_id = Column(String(36), ForeignKey("conversations.id"), nullable=False, index=True)
    account_id = Column(String(36), ForeignKey("accounts.id"), nullable=False, index=True)
    external_message_id = Column(String(255), nullable=False)
    parent_external_id = Column(String(255), index=True)
    author = Column(Text)
    body = Column(Text)
    sent_at = Column(DateTime, index=True)
    attributes = Column(JSON)
    created_at = Column(DateTime, default=utcnow, index=True)

    __table_args__ = (
        UniqueConstraint('account_id', 'external_message_id', name='uq_messages_account_external'),
        Index('idx_messages_conversation_sent', 'conversation_id', 'sent_at'),
    )

    conversation = relationship("ConversationModel", back_populates="messages")
