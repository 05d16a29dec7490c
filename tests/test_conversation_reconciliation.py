"""대화 조정기 테스트"""

import asyncio

from core.domain.entities import InboundMessage, Platform
from core.usecases.conversation_reconciliation import ConversationReconciler


def inbound(thread_id: str = "thread-1", body: str = "hello") -> InboundMessage:
    return InboundMessage(kind=Platform.GMAIL, external_thread_id=thread_id, thread_title="Subject", body=body)


async def test_reconcile_is_idempotent(uow_factory, gmail_account, logger):
    reconciler = ConversationReconciler(uow_factory, logger)

    first = await reconciler.reconcile(gmail_account.id, "msg-1", inbound())
    second = await reconciler.reconcile(gmail_account.id, "msg-1", inbound(body="changed"))

    assert first.created is True
    assert second.created is False
    assert second.message_id == first.message_id

    async with uow_factory() as uow:
        assert await uow.messages.count_by_external_id(gmail_account.id, "msg-1") == 1
        messages = await uow.messages.list_by_conversation(first.conversation_id)
    assert messages[0].body == "hello"


async def test_messages_share_thread_conversation(uow_factory, gmail_account, logger):
    reconciler = ConversationReconciler(uow_factory, logger)

    first = await reconciler.reconcile(gmail_account.id, "msg-1", inbound())
    second = await reconciler.reconcile(gmail_account.id, "msg-2", inbound())
    other = await reconciler.reconcile(gmail_account.id, "msg-3", inbound(thread_id="thread-2"))

    assert first.conversation_id == second.conversation_id
    assert other.conversation_id != first.conversation_id

    async with uow_factory() as uow:
        conversations = await uow.conversations.list_by_account(gmail_account.id)
    assert len(conversations) == 2
    assert {conversation.title for conversation in conversations} == {"Subject"}


async def test_concurrent_reconcile_stores_single_message(uow_factory, gmail_account, logger):
    reconciler = ConversationReconciler(uow_factory, logger)

    results = await asyncio.gather(
        *(reconciler.reconcile(gmail_account.id, "msg-1", inbound()) for _ in range(3))
    )

    assert len({result.message_id for result in results}) == 1
    assert sum(result.created for result in results) == 1

    async with uow_factory() as uow:
        assert await uow.messages.count_by_external_id(gmail_account.id, "msg-1") == 1
