"""
Gmail API 클라이언트 어댑터

메일함 프로필, 푸시 알림 등록, 히스토리 조회, 메시지/첨부파일 조회를 담당합니다.
"""

from typing import Optional

import httpx

from core.domain.entities import Platform
from core.domain.ports import GmailApiPort, LoggerPort
from .platform_client import PlatformApiClientAdapter

GMAIL_BASE_URL = "https://gmail.googleapis.com/gmail/v1/users/me"

RATE_LIMIT_REASONS = {"rateLimitExceeded", "userRateLimitExceeded"}


class GmailApiClientAdapter(PlatformApiClientAdapter, GmailApiPort):
    """Gmail API 클라이언트 어댑터"""

    platform = Platform.GMAIL

    def __init__(
        self,
        logger: LoggerPort,
        base_url: str = GMAIL_BASE_URL,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(base_url, logger, timeout, transport)

    async def get_profile(self, access_token: str) -> dict:
        """메일함 주소와 현재 historyId를 조회합니다."""
        return await self.get("profile", access_token)

    async def watch(self, access_token: str, topic_name: str) -> dict:
        """받은편지함 변경을 Pub/Sub 토픽으로 푸시하도록 등록합니다."""
        result = await self.post(
            "watch",
            access_token,
            data={"topicName": topic_name, "labelIds": ["INBOX"]},
        )
        self.logger.info(f"Gmail 푸시 알림 등록 완료: historyId={result.get('historyId')}")
        return result

    async def list_history(
        self,
        access_token: str,
        start_history_id: str,
        page_token: Optional[str] = None,
    ) -> dict:
        """startHistoryId 이후의 메시지 추가 이력을 조회합니다."""
        params = {
            "startHistoryId": start_history_id,
            "historyTypes": "messageAdded",
        }
        if page_token:
            params["pageToken"] = page_token
        return await self.get("history", access_token, params=params)

    async def get_message(self, access_token: str, message_id: str) -> dict:
        """메시지 전체를 조회합니다."""
        return await self.get(f"messages/{message_id}", access_token, params={"format": "full"})

    async def get_attachment(self, access_token: str, message_id: str, attachment_id: str) -> dict:
        """첨부파일 데이터를 조회합니다."""
        return await self.get(f"messages/{message_id}/attachments/{attachment_id}", access_token)

    async def send_message(self, access_token: str, raw: str) -> dict:
        """base64url로 인코딩된 RFC 2822 메시지를 발송합니다."""
        return await self.post("messages/send", access_token, data={"raw": raw})

    def _is_throttled(self, status_code: int, body: dict) -> bool:
        # Gmail은 요청 제한을 403으로 응답하기도 함
        error = body.get("error")
        if not isinstance(error, dict):
            return False
        reasons = {item.get("reason") for item in error.get("errors", []) if isinstance(item, dict)}
        return bool(reasons & RATE_LIMIT_REASONS)
