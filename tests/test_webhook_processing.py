"""페이스북 웹훅 처리 테스트"""

from datetime import datetime

import pytest

from core.domain.errors import AuthError, RequestError, TransientError, ValidationError
from core.usecases.conversation_reconciliation import ConversationReconciler
from core.usecases.event_dispatch import WebhookEventDispatcher
from core.usecases.thread_resolution import ThreadResolver
from core.usecases.webhook_processing import (
    WebhookProcessingUseCase,
    parse_graph_time,
    post_to_inbound,
    verify_subscription,
)
from conftest import FakeFacebookClient


def feed_payload(page_id: str, **value) -> dict:
    return {
        "object": "page",
        "entry": [{"id": page_id, "time": 1, "changes": [{"field": "feed", "value": {"verb": "add", **value}}]}],
    }


@pytest.fixture
def facebook():
    client = FakeFacebookClient()
    client.posts["post-1"] = {
        "id": "post-1",
        "message": "Grand opening",
        "from": {"id": "page-1", "name": "Page"},
        "created_time": "2019-03-01T10:00:00+0000",
    }
    client.comments = {
        "post-1": [{"id": "c-1", "from": {"id": "u-1"}, "message": "first"}],
        "c-1": [{"id": "c-2", "parent": {"id": "c-1"}, "from": {"id": "u-2"}, "message": "reply"}],
    }
    return client


@pytest.fixture
def processor(facebook, uow_factory, logger):
    return WebhookProcessingUseCase(
        facebook_client=facebook,
        resolver=ThreadResolver(facebook, logger),
        reconciler=ConversationReconciler(uow_factory, logger),
        unit_of_work_factory=uow_factory,
        logger=logger,
        backoff_initial=0.01,
        backoff_max=0.02,
    )


async def stored_messages(uow_factory, account_id, thread_id):
    async with uow_factory() as uow:
        conversation = await uow.conversations.get_by_external_id(account_id, thread_id)
        if conversation is None:
            return []
        return await uow.messages.list_by_conversation(conversation.id)


def test_verify_subscription_returns_challenge_on_match():
    assert verify_subscription("subscribe", "1234", "secret", "secret") == "1234"


@pytest.mark.parametrize(
    "mode, challenge, token",
    [
        ("subscribe", "1234", "wrong"),
        ("unsubscribe", "1234", "secret"),
        ("subscribe", None, "secret"),
        (None, "1234", None),
    ],
)
def test_verify_subscription_rejects(mode, challenge, token):
    assert verify_subscription(mode, challenge, token, "secret") is None


def test_parse_graph_time_converts_to_utc():
    assert parse_graph_time("2019-03-01T10:00:00+0900") == datetime(2019, 3, 1, 1, 0, 0)
    assert parse_graph_time("not a date") is None


def test_post_to_inbound_truncates_title():
    message = post_to_inbound({"id": "p", "message": "x" * 300})

    assert message.external_thread_id == "p"
    assert len(message.thread_title) == 255
    assert len(message.body) == 300


async def test_new_post_resolves_whole_thread(processor, page_integration, uow_factory):
    handled = await processor.process(feed_payload("page-1", item="status", post_id="post-1"))

    assert handled == 3
    messages = await stored_messages(uow_factory, page_integration.account_id, "post-1")
    assert sorted(message.external_message_id for message in messages) == ["c-1", "c-2", "post-1"]
    reply = next(message for message in messages if message.external_message_id == "c-2")
    assert reply.parent_external_id == "c-1"


async def test_redelivered_event_is_idempotent(processor, page_integration, uow_factory):
    payload = feed_payload("page-1", item="post", post_id="post-1")

    await processor.process(payload)
    await processor.process(payload)

    messages = await stored_messages(uow_factory, page_integration.account_id, "post-1")
    assert len(messages) == 3


async def test_comment_on_known_post_fetches_single_comment(processor, facebook, page_integration, uow_factory):
    await processor.process(feed_payload("page-1", item="post", post_id="post-1"))
    facebook.calls.clear()
    facebook.comment_info["c-3"] = {"id": "c-3", "from": {"id": "u-3"}, "message": "late comment"}

    handled = await processor.process(
        feed_payload("page-1", item="comment", post_id="post-1", comment_id="c-3", parent_id="post-1")
    )

    assert handled == 1
    assert facebook.called("get_comment_info") == ["c-3"]
    assert facebook.called("get_comments") == []
    messages = await stored_messages(uow_factory, page_integration.account_id, "post-1")
    assert "c-3" in {message.external_message_id for message in messages}


async def test_comment_on_unknown_post_resolves_thread(processor, facebook, page_integration):
    handled = await processor.process(
        feed_payload("page-1", item="comment", post_id="post-1", comment_id="c-1", parent_id="post-1")
    )

    assert handled == 3
    assert facebook.called("get_post_info") == ["post-1"]


async def test_messenger_event_uses_sender_as_thread(processor, page_integration, uow_factory):
    payload = {
        "object": "page",
        "entry": [{
            "id": "page-1",
            "messaging": [
                {
                    "sender": {"id": "customer-1"},
                    "recipient": {"id": "page-1"},
                    "timestamp": 1551434400000,
                    "message": {"mid": "mid-1", "text": "hi there"},
                },
                {
                    "sender": {"id": "page-1"},
                    "recipient": {"id": "customer-1"},
                    "message": {"mid": "mid-2", "text": "echo", "is_echo": True},
                },
            ],
        }],
    }

    handled = await processor.process(payload)

    assert handled == 1
    messages = await stored_messages(uow_factory, page_integration.account_id, "customer-1")
    assert [message.body for message in messages] == ["hi there"]
    assert messages[0].sent_at == datetime(2019, 3, 1, 10, 0, 0)


async def test_unknown_page_is_skipped(processor, facebook, page_integration):
    handled = await processor.process(feed_payload("other-page", item="post", post_id="post-1"))

    assert handled == 0
    assert facebook.calls == []


async def test_malformed_change_is_skipped(processor, page_integration):
    assert await processor.process(feed_payload("page-1", item="comment", post_id="post-1")) == 0


@pytest.mark.parametrize("payload", [{"object": "user", "entry": []}, {"object": "page"}, []])
async def test_non_page_payload_is_rejected(processor, payload):
    with pytest.raises(ValidationError):
        await processor.process(payload)


async def test_resolve_post_for_unknown_page_raises(processor):
    with pytest.raises(ValueError):
        await processor.resolve_post_for_page("missing", "post-1")


def messenger_event(mid: str, sender: str = "customer-1", text: str = "hello") -> dict:
    return {
        "sender": {"id": sender},
        "recipient": {"id": "page-1"},
        "timestamp": 1551434400000,
        "message": {"mid": mid, "text": text},
    }


def post_change(post_id: str) -> dict:
    return {"field": "feed", "value": {"verb": "add", "item": "post", "post_id": post_id}}


def deleted_post_error() -> RequestError:
    return RequestError("post deleted", status_code=404, platform="facebook")


async def test_failed_change_does_not_drop_later_entries(processor, facebook, page_integration, uow_factory, logger):
    facebook.post_errors["gone"] = [deleted_post_error()]
    payload = {
        "object": "page",
        "entry": [
            {"id": "page-1", "changes": [post_change("gone")]},
            {"id": "page-1", "messaging": [messenger_event("m-1")]},
        ],
    }

    handled = await processor.process(payload)

    assert handled == 1
    messages = await stored_messages(uow_factory, page_integration.account_id, "customer-1")
    assert [message.external_message_id for message in messages] == ["m-1"]
    assert any("post deleted" in message for message in logger.messages("error"))


async def test_failed_change_does_not_drop_siblings_in_same_entry(processor, facebook, page_integration, uow_factory):
    facebook.post_errors["gone"] = [deleted_post_error()]
    payload = {
        "object": "page",
        "entry": [{
            "id": "page-1",
            "changes": [post_change("gone"), post_change("post-1")],
            "messaging": [messenger_event("m-1")],
        }],
    }

    handled = await processor.process(payload)

    assert handled == 4
    thread = await stored_messages(uow_factory, page_integration.account_id, "post-1")
    assert len(thread) == 3


async def test_transient_error_retries_only_failing_item(processor, facebook, page_integration, uow_factory):
    facebook.post_errors["post-1"] = [TransientError("throttled", status_code=400, platform="facebook")]
    payload = {
        "object": "page",
        "entry": [{"id": "page-1", "changes": [post_change("post-1")], "messaging": [messenger_event("m-1")]}],
    }

    handled = await processor.process(payload)

    assert handled == 4
    assert facebook.called("get_post_info") == ["post-1", "post-1"]
    thread = await stored_messages(uow_factory, page_integration.account_id, "post-1")
    assert len(thread) == 3


async def test_exhausted_retries_skip_item_and_keep_siblings(processor, facebook, page_integration, uow_factory, logger):
    facebook.post_errors["post-1"] = [TransientError("down", status_code=503) for _ in range(3)]
    payload = {
        "object": "page",
        "entry": [{"id": "page-1", "changes": [post_change("post-1")], "messaging": [messenger_event("m-1")]}],
    }

    handled = await processor.process(payload)

    assert handled == 1
    assert len(facebook.called("get_post_info")) == 3
    assert any("재시도 한도" in message for message in logger.messages("error"))
    messages = await stored_messages(uow_factory, page_integration.account_id, "customer-1")
    assert len(messages) == 1


async def test_auth_error_skips_rest_of_entry(processor, facebook, page_integration, uow_factory, logger):
    facebook.post_errors["post-1"] = [AuthError("token expired", status_code=401, platform="facebook")]
    payload = {
        "object": "page",
        "entry": [{"id": "page-1", "changes": [post_change("post-1")], "messaging": [messenger_event("m-1")]}],
    }

    handled = await processor.process(payload)

    assert handled == 0
    assert facebook.called("get_post_info") == ["post-1"]
    assert any("재인증" in message for message in logger.messages("error"))


async def test_dispatched_payload_keeps_valid_events(processor, facebook, page_integration, uow_factory, logger):
    facebook.post_errors["gone"] = [deleted_post_error()]
    dispatcher = WebhookEventDispatcher(processor, logger, workers=1, backoff_initial=0.01, backoff_max=0.02)
    await dispatcher.start()

    dispatcher.submit({
        "object": "page",
        "entry": [
            {"id": "page-1", "changes": [post_change("gone")]},
            {"id": "page-1", "messaging": [messenger_event("m-1")]},
        ],
    })
    await dispatcher.stop(timeout=1.0)

    messages = await stored_messages(uow_factory, page_integration.account_id, "customer-1")
    assert [message.external_message_id for message in messages] == ["m-1"]
