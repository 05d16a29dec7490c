"""Gmail 히스토리 증분 동기화 테스트"""

import asyncio
from datetime import datetime

import pytest

from core.domain.errors import AuthError, RequestError, TransientError, ValidationError
from core.usecases.conversation_reconciliation import ConversationReconciler
from core.usecases.mail_history_sync import (
    HistorySyncScheduler,
    MailHistorySyncUseCase,
    parse_gmail_message,
)
from conftest import FakeGmailClient, gmail_message


def added(record_id: str, *message_ids: str) -> dict:
    return {
        "id": record_id,
        "messagesAdded": [{"message": {"id": message_id, "threadId": "thread-1"}} for message_id in message_ids],
    }


@pytest.fixture
def gmail():
    return FakeGmailClient()


@pytest.fixture
def syncer(gmail, uow_factory, logger):
    return MailHistorySyncUseCase(gmail, ConversationReconciler(uow_factory, logger), uow_factory, logger)


async def cursor_position(uow_factory, account_id):
    async with uow_factory() as uow:
        cursor = await uow.cursors.get(account_id)
    return cursor.position if cursor else None


async def test_parse_gmail_message_extracts_headers_and_body():
    raw = gmail_message("m-1", thread_id="t-9", subject="Quarterly report")

    message = parse_gmail_message(raw)

    assert message.external_thread_id == "t-9"
    assert message.thread_title == "Quarterly report"
    assert message.author == "sender@example.com"
    assert message.body == "body of m-1"
    assert message.sent_at == datetime(2023, 11, 14, 22, 13, 20)
    assert message.attributes["label_ids"] == ["INBOX"]


async def test_parse_gmail_message_requires_thread_id():
    with pytest.raises(ValidationError):
        parse_gmail_message({"id": "m-1"})


async def test_parse_gmail_message_collects_multipart_attachments():
    raw = gmail_message("m-1")
    raw["payload"] = {
        "mimeType": "multipart/mixed",
        "headers": [],
        "parts": [
            {"mimeType": "text/plain", "body": {"data": "aGk"}},
            {"mimeType": "text/html", "body": {"data": "PGI-aGk8L2I-"}},
            {"mimeType": "application/pdf", "filename": "a.pdf", "body": {"attachmentId": "att-1", "size": 10}},
        ],
    }

    message = parse_gmail_message(raw)

    assert message.body == "hi"
    assert message.attributes["html"] == "<b>hi</b>"
    assert message.attributes["attachments"][0]["attachment_id"] == "att-1"


async def test_sync_advances_cursor_to_final_history_id(syncer, gmail, gmail_account, uow_factory):
    gmail.history_pages = [
        {"history": [added("101", "m-1")], "historyId": "105", "nextPageToken": "1"},
        {"history": [added("103", "m-2")], "historyId": "110"},
    ]

    result = await syncer.sync_account(gmail_account.id)

    assert result.processed_count == 2
    assert result.start_position == "100"
    assert result.end_position == "110"
    assert result.advanced
    assert await cursor_position(uow_factory, gmail_account.id) == "110"


async def test_failed_message_holds_cursor_before_failing_record(syncer, gmail, gmail_account, uow_factory):
    gmail.history_pages = [
        {"history": [added("101", "m-1"), added("102", "m-2"), added("103", "m-3")], "historyId": "110"},
    ]
    gmail.message_errors["m-2"] = RequestError("bad request", status_code=400, platform="gmail")

    result = await syncer.sync_account(gmail_account.id)

    assert result.processed_count == 2
    assert result.failed_count == 1
    assert result.end_position == "101"
    assert await cursor_position(uow_factory, gmail_account.id) == "101"

    # 재시도에서 실패했던 메시지가 다시 처리되고 이미 저장된 메시지는 중복되지 않음
    del gmail.message_errors["m-2"]
    retry = await syncer.sync_account(gmail_account.id)

    assert retry.failed_count == 0
    assert retry.end_position == "110"
    async with uow_factory() as uow:
        assert await uow.messages.count_by_external_id(gmail_account.id, "m-3") == 1


async def test_deleted_message_is_skipped(syncer, gmail, gmail_account, uow_factory):
    gmail.history_pages = [{"history": [added("101", "m-1", "m-2")], "historyId": "102"}]
    gmail.message_errors["m-1"] = RequestError("not found", status_code=404, platform="gmail")

    result = await syncer.sync_account(gmail_account.id)

    assert result.skipped_count == 1
    assert result.processed_count == 1
    assert await cursor_position(uow_factory, gmail_account.id) == "102"


async def test_duplicate_message_ids_are_fetched_once(syncer, gmail, gmail_account):
    gmail.history_pages = [{"history": [added("101", "m-1"), added("102", "m-1")], "historyId": "102"}]

    result = await syncer.sync_account(gmail_account.id)

    assert gmail.fetched == ["m-1"]
    assert result.processed_count == 1


async def test_auth_error_saves_progress_and_propagates(syncer, gmail, gmail_account, uow_factory):
    gmail.history_pages = [{"history": [added("101", "m-1"), added("102", "m-2")], "historyId": "110"}]
    gmail.message_errors["m-2"] = AuthError("invalid credentials", status_code=401, platform="gmail")

    with pytest.raises(AuthError):
        await syncer.sync_account(gmail_account.id)

    assert await cursor_position(uow_factory, gmail_account.id) == "101"


async def test_expired_cursor_resets_to_mailbox_position(syncer, gmail, gmail_account, uow_factory):
    gmail.history_error = RequestError("history expired", status_code=404, platform="gmail")

    result = await syncer.sync_account(gmail_account.id)

    assert result.processed_count == 0
    assert await cursor_position(uow_factory, gmail_account.id) == "500"


async def test_account_without_cursor_is_noop(syncer, gmail, uow_factory, facebook_account):
    result = await syncer.sync_account(facebook_account.id)

    assert result.start_position is None
    assert not result.advanced
    assert gmail.fetched == []


class BlockingSyncer:
    """호출 횟수를 세고 해제될 때까지 대기하는 동기화 가짜 구현"""

    def __init__(self):
        self.calls = 0
        self.release = asyncio.Event()
        self.errors = []

    async def sync_account(self, account_id):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        await self.release.wait()


async def wait_idle(scheduler):
    while scheduler.running_accounts:
        await asyncio.sleep(0.01)


async def test_scheduler_coalesces_notifications(uow_factory, gmail_account, logger):
    syncer = BlockingSyncer()
    scheduler = HistorySyncScheduler(syncer, uow_factory, logger)

    assert await scheduler.notify_mailbox("owner@example.com", "200") is True
    await asyncio.sleep(0)
    assert scheduler.schedule(gmail_account.id) is True
    assert scheduler.schedule(gmail_account.id) is True
    assert scheduler.running_accounts == [gmail_account.id]

    syncer.release.set()
    await asyncio.wait_for(wait_idle(scheduler), timeout=1.0)

    assert syncer.calls == 2


async def test_scheduler_ignores_unknown_mailbox(uow_factory, logger):
    scheduler = HistorySyncScheduler(BlockingSyncer(), uow_factory, logger)

    assert await scheduler.notify_mailbox("stranger@example.com") is False


async def test_scheduler_retries_transient_errors(uow_factory, gmail_account, logger):
    syncer = BlockingSyncer()
    syncer.errors = [TransientError("rate limited", status_code=429, platform="gmail")]
    syncer.release.set()
    scheduler = HistorySyncScheduler(syncer, uow_factory, logger, max_attempts=3, backoff_initial=0.01)

    scheduler.schedule(gmail_account.id)
    await scheduler.drain(timeout=1.0)

    assert syncer.calls == 2


async def test_scheduler_rejects_work_after_drain(uow_factory, gmail_account, logger):
    scheduler = HistorySyncScheduler(BlockingSyncer(), uow_factory, logger)

    await scheduler.drain(timeout=0.1)

    assert scheduler.schedule(gmail_account.id) is False


async def test_long_sender_header_is_stored(syncer, gmail, gmail_account, uow_factory):
    sender = "Very Long Display Name " * 40 + "<sender@example.com>"
    message = gmail_message("m-1")
    message["payload"]["headers"] = [
        {"name": "Subject", "value": "Hello"},
        {"name": "From", "value": sender},
    ]
    gmail.messages["m-1"] = message
    gmail.history_pages = [{"history": [added("101", "m-1")], "historyId": "102"}]

    result = await syncer.sync_account(gmail_account.id)

    assert result.processed_count == 1
    async with uow_factory() as uow:
        stored = await uow.messages.get_by_external_id(gmail_account.id, "m-1")
    assert stored.author == sender


class RejectingReconciler(ConversationReconciler):
    """지정한 메시지를 저장 불가로 거부하는 조정기"""

    def __init__(self, rejected, *args):
        super().__init__(*args)
        self.rejected = set(rejected)

    async def reconcile(self, account_id, external_message_id, payload):
        if external_message_id in self.rejected:
            raise ValidationError("value too long for column")
        return await super().reconcile(account_id, external_message_id, payload)


async def test_unstorable_message_does_not_hold_cursor(gmail, gmail_account, uow_factory, logger):
    syncer = MailHistorySyncUseCase(
        gmail, RejectingReconciler({"m-2"}, uow_factory, logger), uow_factory, logger
    )
    gmail.history_pages = [
        {"history": [added("101", "m-1"), added("102", "m-2"), added("103", "m-3")], "historyId": "110"},
    ]

    result = await syncer.sync_account(gmail_account.id)

    assert result.processed_count == 2
    assert result.skipped_count == 1
    assert result.failed_count == 0
    assert await cursor_position(uow_factory, gmail_account.id) == "110"
