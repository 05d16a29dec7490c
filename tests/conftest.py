"""
테스트 공용 픽스처

임시 SQLite 파일 데이터베이스와 플랫폼 API 가짜 구현을 제공합니다.
"""

import base64
from typing import Dict, List, Optional

import pytest

from core.domain.entities import Account, Integration, Platform
from core.domain.errors import RequestError
from core.domain.ports import LoggerPort
from adapters.factory import AdapterFactory
from config.adapters import TestingConfig


class RecordingLogger(LoggerPort):
    """로그 메시지를 수준별로 기록하는 로거"""

    def __init__(self):
        self.records: List[tuple] = []

    def info(self, message: str, **kwargs) -> None:
        self.records.append(("info", message))

    def warning(self, message: str, **kwargs) -> None:
        self.records.append(("warning", message))

    def error(self, message: str, **kwargs) -> None:
        self.records.append(("error", message))

    def debug(self, message: str, **kwargs) -> None:
        self.records.append(("debug", message))

    def messages(self, level: str) -> List[str]:
        return [message for record_level, message in self.records if record_level == level]


class FakeFacebookClient:
    """댓글 트리와 오류를 미리 지정할 수 있는 Graph API 가짜 구현"""

    def __init__(self):
        self.comments: Dict[str, List[dict]] = {}
        self.comment_errors: Dict[str, Exception] = {}
        self.posts: Dict[str, dict] = {}
        self.post_errors: Dict[str, List[Exception]] = {}
        self.comment_info: Dict[str, dict] = {}
        self.pages: Dict[str, dict] = {}
        self.calls: List[tuple] = []

    def get_oauth_url(self, redirect_uri: str, scope: str) -> str:
        return f"https://www.facebook.com/dialog/oauth?redirect_uri={redirect_uri}"

    async def get_comments(self, object_id: str, access_token: str) -> List[dict]:
        self.calls.append(("get_comments", object_id))
        if object_id in self.comment_errors:
            raise self.comment_errors[object_id]
        return list(self.comments.get(object_id, []))

    async def get_post_info(self, post_id: str, access_token: str) -> dict:
        self.calls.append(("get_post_info", post_id))
        if self.post_errors.get(post_id):
            raise self.post_errors[post_id].pop(0)
        return self.posts.get(post_id, {"id": post_id, "message": f"post {post_id}"})

    async def get_comment_info(self, comment_id: str, access_token: str) -> dict:
        self.calls.append(("get_comment_info", comment_id))
        if comment_id not in self.comment_info:
            raise RequestError("not found", status_code=404, platform="facebook")
        return self.comment_info[comment_id]

    async def get_page_info(self, page_id: str, user_access_token: str) -> dict:
        self.calls.append(("get_page_info", page_id))
        return self.pages.get(page_id, {"id": page_id, "name": "Page", "access_token": f"page-token-{page_id}"})

    async def subscribe_page(self, page_id: str, page_access_token: str) -> dict:
        self.calls.append(("subscribe_page", page_id))
        return {"success": True}

    def called(self, name: str) -> List[str]:
        return [arg for call, arg in self.calls if call == name]


class FakeGmailClient:
    """히스토리 페이지와 메시지를 미리 지정할 수 있는 Gmail API 가짜 구현"""

    def __init__(self, email_address: str = "owner@example.com", history_id: str = "500"):
        self.profile = {"emailAddress": email_address, "historyId": history_id}
        self.history_pages: List[dict] = []
        self.history_error: Optional[Exception] = None
        self.messages: Dict[str, dict] = {}
        self.message_errors: Dict[str, Exception] = {}
        self.fetched: List[str] = []
        self.watched: List[str] = []

    async def get_profile(self, access_token: str) -> dict:
        return dict(self.profile)

    async def watch(self, access_token: str, topic_name: str) -> dict:
        self.watched.append(topic_name)
        return {"historyId": self.profile["historyId"]}

    async def list_history(self, access_token: str, start_history_id: str, page_token: Optional[str] = None) -> dict:
        if self.history_error is not None:
            raise self.history_error
        index = int(page_token) if page_token else 0
        return self.history_pages[index] if index < len(self.history_pages) else {}

    async def get_message(self, access_token: str, message_id: str) -> dict:
        self.fetched.append(message_id)
        if message_id in self.message_errors:
            raise self.message_errors[message_id]
        return self.messages.get(message_id, gmail_message(message_id))


def gmail_message(message_id: str, thread_id: str = "thread-1", subject: str = "Hello") -> dict:
    """Gmail format=full 응답 형태의 메시지"""
    return {
        "id": message_id,
        "threadId": thread_id,
        "labelIds": ["INBOX"],
        "snippet": f"snippet {message_id}",
        "internalDate": "1700000000000",
        "payload": {
            "mimeType": "text/plain",
            "headers": [
                {"name": "Subject", "value": subject},
                {"name": "From", "value": "sender@example.com"},
            ],
            "body": {"data": _b64(f"body of {message_id}")},
        },
    }


def _b64(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode()).decode().rstrip("=")


@pytest.fixture
def config(tmp_path):
    return TestingConfig(database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")


@pytest.fixture
async def factory(config):
    factory = AdapterFactory(config)
    database = factory.get_database()
    await database.initialize()
    await database.create_tables()
    yield factory
    await database.close()


@pytest.fixture
def uow_factory(factory):
    return factory.create_unit_of_work_factory()


@pytest.fixture
def logger():
    return RecordingLogger()


@pytest.fixture
async def facebook_account(uow_factory):
    async with uow_factory() as uow:
        return await uow.accounts.create_account(
            Account(kind="facebook", uid="fb-user-1", name="Page Owner", token="user-token")
        )


@pytest.fixture
async def page_integration(uow_factory, facebook_account):
    async with uow_factory() as uow:
        return await uow.integrations.create_integration(
            Integration(
                account_id=facebook_account.id,
                kind=Platform.FACEBOOK,
                external_id="page-1",
                access_token="page-token",
            )
        )


@pytest.fixture
async def gmail_account(uow_factory):
    async with uow_factory() as uow:
        account = await uow.accounts.create_account(
            Account(kind="gmail", uid="owner@example.com", name="Owner", token="gmail-token")
        )
        await uow.integrations.create_integration(
            Integration(
                account_id=account.id,
                kind=Platform.GMAIL,
                external_id="owner@example.com",
                access_token="gmail-token",
            )
        )
        await uow.cursors.save(account.id, "100")
    return account
