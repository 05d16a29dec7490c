"""
대화 조정 유즈케이스

외부에서 수신한 메시지를 로컬 대화/메시지로 병합합니다.
(account_id, external_message_id)가 이미 있으면 아무 것도 하지 않으며,
동시 호출 경합은 저장소의 유일성 제약이 결정합니다.
"""

from uuid import UUID

from ..domain.entities import (
    Conversation,
    InboundMessage,
    Message,
    ReconcileResult,
)
from ..domain.ports import LoggerPort, UnitOfWorkFactory


class ConversationReconciler:
    """대화 조정기"""

    def __init__(self, unit_of_work_factory: UnitOfWorkFactory, logger: LoggerPort):
        self.unit_of_work_factory = unit_of_work_factory
        self.logger = logger

    async def reconcile(
        self,
        account_id: UUID,
        external_message_id: str,
        payload: InboundMessage,
    ) -> ReconcileResult:
        """
        메시지를 조회 또는 생성합니다.

        Args:
            account_id: 계정 ID
            external_message_id: 플랫폼 메시지 ID
            payload: 플랫폼 중립 메시지

        Returns:
            대화 ID, 메시지 ID, 새로 생성되었는지 여부
        """
        async with self.unit_of_work_factory() as uow:
            existing = await uow.messages.get_by_external_id(account_id, external_message_id)
            if existing:
                self.logger.debug(f"이미 조정된 메시지: {external_message_id}")
                return ReconcileResult(
                    conversation_id=existing.conversation_id,
                    message_id=existing.id,
                    created=False,
                )

            conversation, conversation_created = await uow.conversations.get_or_create(
                Conversation(
                    account_id=account_id,
                    kind=payload.kind,
                    external_thread_id=payload.external_thread_id,
                    title=payload.thread_title,
                )
            )
            if conversation_created:
                self.logger.info(f"새 대화 생성: {payload.kind.value} thread={payload.external_thread_id}")

            message, created = await uow.messages.create_if_absent(
                Message(
                    conversation_id=conversation.id,
                    account_id=account_id,
                    external_message_id=external_message_id,
                    parent_external_id=payload.parent_external_id,
                    author=payload.author,
                    body=payload.body,
                    sent_at=payload.sent_at,
                    attributes=payload.attributes,
                )
            )

        if created:
            self.logger.debug(f"메시지 저장: {external_message_id} -> conversation={conversation.id}")

        return ReconcileResult(
            conversation_id=message.conversation_id,
            message_id=message.id,
            created=created,
        )
