"""
데이터베이스 Repository 어댑터

Core 레이어의 Repository 포트를 구현하는 SQLAlchemy 기반 어댑터들입니다.
SQLite 호환성을 위해 UUID를 문자열로 변환하여 처리합니다.
토큰은 저장 전에 암호화되고 조회 시 복호화됩니다.
"""

from typing import Any, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import delete, desc, func, select
from sqlalchemy.exc import DataError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.domain.entities import (
    Account,
    Conversation,
    Integration,
    Message,
    Platform,
    SyncCursor,
    utcnow,
)
from core.domain.errors import ValidationError
from core.domain.ports import (
    AccountRepositoryPort,
    ConversationRepositoryPort,
    EncryptionServicePort,
    IntegrationRepositoryPort,
    MessageRepositoryPort,
    SyncCursorRepositoryPort,
)
from .models import (
    AccountModel,
    ConversationModel,
    IntegrationModel,
    MessageModel,
    SyncCursorModel,
)

# 계정 조회에 허용되는 조건 필드
ACCOUNT_CRITERIA_FIELDS = {"id", "kind", "uid", "name"}


class AccountRepositoryAdapter(AccountRepositoryPort):
    """계정 Repository 어댑터"""

    def __init__(self, session: AsyncSession, encryption_service: EncryptionServicePort):
        self.session = session
        self.encryption_service = encryption_service

    async def create_account(self, account: Account) -> Optional[Account]:
        """계정을 생성합니다. uid가 이미 있으면 None을 반환합니다."""
        model = AccountModel(
            id=str(account.id),  # UUID를 문자열로 변환
            kind=account.kind,
            uid=account.uid,
            name=account.name,
            token=await self.encryption_service.encrypt(account.token),
            token_secret=(
                await self.encryption_service.encrypt(account.token_secret)
                if account.token_secret else None
            ),
            created_at=account.created_at,
        )

        self.session.add(model)
        try:
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            return None

        await self.session.refresh(model)
        return await self._model_to_entity(model)

    async def remove_account(self, account_id: UUID) -> bool:
        """계정과 계정에 속한 연동, 커서, 대화, 메시지를 삭제합니다."""
        key = str(account_id)
        await self.session.execute(delete(MessageModel).where(MessageModel.account_id == key))
        await self.session.execute(delete(ConversationModel).where(ConversationModel.account_id == key))
        await self.session.execute(delete(SyncCursorModel).where(SyncCursorModel.account_id == key))
        await self.session.execute(delete(IntegrationModel).where(IntegrationModel.account_id == key))
        result = await self.session.execute(delete(AccountModel).where(AccountModel.id == key))
        await self.session.commit()

        return result.rowcount > 0

    async def find_account(self, **criteria: Any) -> Optional[Account]:
        """조건에 맞는 첫 번째 계정을 조회합니다."""
        accounts = await self.find_accounts(**criteria)
        return accounts[0] if accounts else None

    async def find_accounts(self, **criteria: Any) -> List[Account]:
        """조건에 맞는 계정 목록을 조회합니다."""
        stmt = select(AccountModel)
        for field, value in criteria.items():
            if field not in ACCOUNT_CRITERIA_FIELDS:
                raise ValueError(f"지원하지 않는 조회 조건입니다: {field}")
            if field == "id":
                value = str(value)
            stmt = stmt.where(getattr(AccountModel, field) == value)

        stmt = stmt.order_by(AccountModel.created_at)
        result = await self.session.execute(stmt)
        models = result.scalars().all()

        return [await self._model_to_entity(model) for model in models]

    async def get_by_id(self, account_id: UUID) -> Optional[Account]:
        """ID로 계정을 조회합니다."""
        return await self.find_account(id=account_id)

    async def list_all(self, skip: int = 0, limit: int = 100) -> List[Account]:
        """모든 계정을 조회합니다."""
        stmt = (
            select(AccountModel)
            .order_by(desc(AccountModel.created_at))
            .offset(skip)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        models = result.scalars().all()

        return [await self._model_to_entity(model) for model in models]

    async def _model_to_entity(self, model: AccountModel) -> Account:
        """모델을 엔티티로 변환합니다."""
        return Account(
            id=UUID(model.id),  # 문자열을 UUID로 변환
            kind=model.kind,
            uid=model.uid,
            name=model.name,
            token=await self.encryption_service.decrypt(model.token),
            token_secret=(
                await self.encryption_service.decrypt(model.token_secret)
                if model.token_secret else None
            ),
            created_at=model.created_at,
        )


class IntegrationRepositoryAdapter(IntegrationRepositoryPort):
    """연동 Repository 어댑터"""

    def __init__(self, session: AsyncSession, encryption_service: EncryptionServicePort):
        self.session = session
        self.encryption_service = encryption_service

    async def create_integration(self, integration: Integration) -> Optional[Integration]:
        """연동을 생성합니다. 같은 리소스가 이미 연결되어 있으면 None을 반환합니다."""
        model = IntegrationModel(
            id=str(integration.id),
            account_id=str(integration.account_id),
            kind=integration.kind.value,
            external_id=integration.external_id,
            access_token=await self.encryption_service.encrypt(integration.access_token),
            created_at=integration.created_at,
        )

        self.session.add(model)
        try:
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            return None

        await self.session.refresh(model)
        return await self._model_to_entity(model)

    async def get_by_external_id(self, kind: Platform, external_id: str) -> Optional[Integration]:
        """플랫폼 리소스 ID로 연동을 조회합니다."""
        stmt = select(IntegrationModel).where(
            IntegrationModel.kind == kind.value,
            IntegrationModel.external_id == external_id,
        )
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()

        if model is None:
            return None

        return await self._model_to_entity(model)

    async def get_for_account(self, account_id: UUID, kind: Platform) -> Optional[Integration]:
        """계정의 플랫폼별 연동을 조회합니다."""
        stmt = (
            select(IntegrationModel)
            .where(
                IntegrationModel.account_id == str(account_id),
                IntegrationModel.kind == kind.value,
            )
            .order_by(IntegrationModel.created_at)
        )
        result = await self.session.execute(stmt)
        model = result.scalars().first()

        if model is None:
            return None

        return await self._model_to_entity(model)

    async def list_by_kind(self, kind: Platform) -> List[Integration]:
        """플랫폼별 연동 목록을 조회합니다."""
        stmt = (
            select(IntegrationModel)
            .where(IntegrationModel.kind == kind.value)
            .order_by(IntegrationModel.created_at)
        )
        result = await self.session.execute(stmt)
        models = result.scalars().all()

        return [await self._model_to_entity(model) for model in models]

    async def _model_to_entity(self, model: IntegrationModel) -> Integration:
        """모델을 엔티티로 변환합니다."""
        return Integration(
            id=UUID(model.id),
            account_id=UUID(model.account_id),
            kind=Platform(model.kind),
            external_id=model.external_id,
            access_token=await self.encryption_service.decrypt(model.access_token),
            created_at=model.created_at,
        )


class SyncCursorRepositoryAdapter(SyncCursorRepositoryPort):
    """동기화 커서 Repository 어댑터"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, account_id: UUID) -> Optional[SyncCursor]:
        """계정의 커서를 조회합니다."""
        stmt = select(SyncCursorModel).where(SyncCursorModel.account_id == str(account_id))
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()

        if model is None:
            return None

        return self._model_to_entity(model)

    async def save(self, account_id: UUID, position: str) -> SyncCursor:
        """커서를 저장합니다."""
        stmt = select(SyncCursorModel).where(SyncCursorModel.account_id == str(account_id))
        result = await self.session.execute(stmt)
        existing_model = result.scalar_one_or_none()

        if existing_model:
            existing_model.position = position
            existing_model.updated_at = utcnow()
            model = existing_model
        else:
            model = SyncCursorModel(
                account_id=str(account_id),
                position=position,
                updated_at=utcnow(),
            )
            self.session.add(model)

        await self.session.commit()
        await self.session.refresh(model)

        return self._model_to_entity(model)

    def _model_to_entity(self, model: SyncCursorModel) -> SyncCursor:
        """모델을 엔티티로 변환합니다."""
        return SyncCursor(
            account_id=UUID(model.account_id),
            position=model.position,
            updated_at=model.updated_at,
        )


class ConversationRepositoryAdapter(ConversationRepositoryPort):
    """대화 Repository 어댑터"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_external_id(self, account_id: UUID, external_thread_id: str) -> Optional[Conversation]:
        """외부 스레드 ID로 대화를 조회합니다."""
        stmt = select(ConversationModel).where(
            ConversationModel.account_id == str(account_id),
            ConversationModel.external_thread_id == external_thread_id,
        )
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()

        if model is None:
            return None

        return self._model_to_entity(model)

    async def get_or_create(self, conversation: Conversation) -> Tuple[Conversation, bool]:
        """대화를 조회하거나 생성합니다. 동시 생성 경합은 유일성 제약으로 해소합니다."""
        existing = await self.get_by_external_id(conversation.account_id, conversation.external_thread_id)
        if existing:
            return existing, False

        model = ConversationModel(
            id=str(conversation.id),
            account_id=str(conversation.account_id),
            kind=conversation.kind.value,
            external_thread_id=conversation.external_thread_id,
            title=conversation.title,
            created_at=conversation.created_at,
            updated_at=conversation.updated_at,
        )
        self.session.add(model)
        try:
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            existing = await self.get_by_external_id(conversation.account_id, conversation.external_thread_id)
            if existing is None:
                raise
            return existing, False
        except DataError as e:
            await self.session.rollback()
            raise ValidationError(f"저장할 수 없는 값입니다: {e.orig}") from e

        await self.session.refresh(model)
        return self._model_to_entity(model), True

    async def list_by_account(self, account_id: UUID, skip: int = 0, limit: int = 100) -> List[Conversation]:
        """계정별 대화 목록을 조회합니다."""
        stmt = (
            select(ConversationModel)
            .where(ConversationModel.account_id == str(account_id))
            .order_by(desc(ConversationModel.updated_at))
            .offset(skip)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        models = result.scalars().all()

        return [self._model_to_entity(model) for model in models]

    def _model_to_entity(self, model: ConversationModel) -> Conversation:
        """모델을 엔티티로 변환합니다."""
        return Conversation(
            id=UUID(model.id),
            account_id=UUID(model.account_id),
            kind=Platform(model.kind),
            external_thread_id=model.external_thread_id,
            title=model.title,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )


class MessageRepositoryAdapter(MessageRepositoryPort):
    """메시지 Repository 어댑터"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_external_id(self, account_id: UUID, external_message_id: str) -> Optional[Message]:
        """외부 메시지 ID로 메시지를 조회합니다."""
        stmt = select(MessageModel).where(
            MessageModel.account_id == str(account_id),
            MessageModel.external_message_id == external_message_id,
        )
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()

        if model is None:
            return None

        return self._model_to_entity(model)

    async def create_if_absent(self, message: Message) -> Tuple[Message, bool]:
        """메시지를 생성합니다. 이미 있으면 기존 메시지를 반환합니다."""
        existing = await self.get_by_external_id(message.account_id, message.external_message_id)
        if existing:
            return existing, False

        model = MessageModel(
            id=str(message.id),
            conversation_id=str(message.conversation_id),
            account_id=str(message.account_id),
            external_message_id=message.external_message_id,
            parent_external_id=message.parent_external_id,
            author=message.author,
            body=message.body,
            sent_at=message.sent_at,
            attributes=message.attributes,
            created_at=message.created_at,
        )
        self.session.add(model)
        try:
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            existing = await self.get_by_external_id(message.account_id, message.external_message_id)
            if existing is None:
                raise
            return existing, False
        except DataError as e:
            await self.session.rollback()
            raise ValidationError(f"저장할 수 없는 값입니다: {e.orig}") from e

        await self.session.refresh(model)
        return self._model_to_entity(model), True

    async def list_by_conversation(self, conversation_id: UUID) -> List[Message]:
        """대화별 메시지 목록을 작성 순으로 조회합니다."""
        stmt = (
            select(MessageModel)
            .where(MessageModel.conversation_id == str(conversation_id))
            .order_by(MessageModel.sent_at, MessageModel.created_at)
        )
        result = await self.session.execute(stmt)
        models = result.scalars().all()

        return [self._model_to_entity(model) for model in models]

    async def count_by_external_id(self, account_id: UUID, external_message_id: str) -> int:
        """외부 메시지 ID로 저장된 메시지 수를 조회합니다."""
        stmt = select(func.count(MessageModel.id)).where(
            MessageModel.account_id == str(account_id),
            MessageModel.external_message_id == external_message_id,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one()

    def _model_to_entity(self, model: MessageModel) -> Message:
        """모델을 엔티티로 변환합니다."""
        return Message(
            id=UUID(model.id),
            conversation_id=UUID(model.conversation_id),
            account_id=UUID(model.account_id),
            external_message_id=model.external_message_id,
            parent_external_id=model.parent_external_id,
            author=model.author,
            body=model.body,
            sent_at=model.sent_at,
            attributes=model.attributes or {},
            created_at=model.created_at,
        )
