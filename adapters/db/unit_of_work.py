"""
작업 단위(Unit of Work) 어댑터

웹훅 작업자, 히스토리 동기화, 푸시 구독 처리처럼 오래 실행되는 작업은
작업 하나마다 새 세션을 열어 저장소를 사용합니다.
세션은 동시에 실행되는 태스크 사이에서 공유되지 않습니다.
"""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.domain.ports import EncryptionServicePort, UnitOfWorkPort
from .repositories import (
    AccountRepositoryAdapter,
    ConversationRepositoryAdapter,
    IntegrationRepositoryAdapter,
    MessageRepositoryAdapter,
    SyncCursorRepositoryAdapter,
)


class SqlAlchemyUnitOfWork(UnitOfWorkPort):
    """SQLAlchemy 세션 기반 작업 단위"""

    def __init__(self, session_factory: async_sessionmaker, encryption_service: EncryptionServicePort):
        self.session_factory = session_factory
        self.encryption_service = encryption_service
        self.session: Optional[AsyncSession] = None

    async def __aenter__(self) -> "SqlAlchemyUnitOfWork":
        self.session = self.session_factory()
        self.accounts = AccountRepositoryAdapter(self.session, self.encryption_service)
        self.integrations = IntegrationRepositoryAdapter(self.session, self.encryption_service)
        self.cursors = SyncCursorRepositoryAdapter(self.session)
        self.conversations = ConversationRepositoryAdapter(self.session)
        self.messages = MessageRepositoryAdapter(self.session)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None:
            await self.session.rollback()
        await self.session.close()
        self.session = None
