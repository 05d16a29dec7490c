"""
페이스북 Graph API 클라이언트 어댑터

OAuth 로그인, 페이지 웹훅 구독, 게시물/댓글 조회를 담당합니다.
"""

from typing import List, Optional, Tuple
from urllib.parse import urlencode

import httpx

from core.domain.entities import Platform
from core.domain.ports import FacebookApiPort, LoggerPort
from .platform_client import PlatformApiClientAdapter

GRAPH_BASE_URL = "https://graph.facebook.com"
OAUTH_DIALOG_URL = "https://www.facebook.com/dialog/oauth"

# 요청 제한 오류 코드 (앱/사용자/페이지/메서드 단위)
THROTTLING_ERROR_CODES = {4, 17, 32, 613}
# 액세스 토큰 만료/폐기
OAUTH_EXCEPTION_CODE = 190

COMMENT_FIELDS = "parent.fields(id),id,from,message,attachment_url,comment_count,created_time"
COMMENT_INFO_FIELDS = (
    "parent.fields(id),id,from,message,can_comment,attachment,"
    "comment_count,created_time,comments.summary(true)"
)
POST_INFO_FIELDS = (
    "id,caption,description,link,picture,source,message,from,"
    "comments.summary(true),created_time"
)
PAGE_SUBSCRIBED_FIELDS = ["conversations", "messages", "feed"]

COMMENTS_PAGE_SIZE = 100
MAX_COMMENT_PAGES = 30


class FacebookApiClientAdapter(PlatformApiClientAdapter, FacebookApiPort):
    """페이스북 Graph API 클라이언트 어댑터"""

    platform = Platform.FACEBOOK

    def __init__(
        self,
        app_id: str,
        app_secret: str,
        logger: LoggerPort,
        graph_version: str = "v3.2",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(f"{GRAPH_BASE_URL}/{graph_version}", logger, timeout, transport)
        self.app_id = app_id
        self.app_secret = app_secret
        self.graph_version = graph_version

    def get_oauth_url(self, redirect_uri: str, scope: str) -> str:
        """OAuth 동의 화면 URL을 생성합니다."""
        params = {
            "client_id": self.app_id,
            "redirect_uri": redirect_uri,
            "scope": scope,
        }
        return f"{OAUTH_DIALOG_URL}?{urlencode(params)}"

    async def exchange_code_for_token(self, code: str, redirect_uri: str) -> dict:
        """인증 코드를 사용자 액세스 토큰으로 교환합니다."""
        self.logger.debug("페이스북 토큰 교환 요청")
        return await self.get(
            "oauth/access_token",
            params={
                "client_id": self.app_id,
                "client_secret": self.app_secret,
                "redirect_uri": redirect_uri,
                "code": code,
            },
        )

    async def get_user_profile(self, access_token: str) -> dict:
        """사용자 최소 프로필(id, 이름)을 조회합니다."""
        return await self.get("me", access_token, params={"fields": "id,first_name,last_name"})

    async def get_page_info(self, page_id: str, user_access_token: str) -> dict:
        """페이지 ID와 페이지 액세스 토큰을 조회합니다."""
        return await self.get(page_id, user_access_token, params={"fields": "id,name,access_token"})

    async def subscribe_page(self, page_id: str, page_access_token: str) -> dict:
        """페이지 이벤트를 앱 웹훅으로 구독합니다."""
        result = await self.post(
            f"{page_id}/subscribed_apps",
            page_access_token,
            data={"subscribed_fields": ",".join(PAGE_SUBSCRIBED_FIELDS)},
        )
        self.logger.info(f"페이지 웹훅 구독 완료: page_id={page_id}")
        return result

    async def get_post_info(self, post_id: str, access_token: str) -> dict:
        """게시물 정보를 조회합니다."""
        return await self.get(post_id, access_token, params={"fields": POST_INFO_FIELDS})

    async def get_comment_info(self, comment_id: str, access_token: str) -> dict:
        """댓글 정보를 조회합니다."""
        return await self.get(comment_id, access_token, params={"fields": COMMENT_INFO_FIELDS})

    async def get_comments(self, object_id: str, access_token: str) -> List[dict]:
        """게시물 또는 댓글의 직계 댓글을 플랫폼 반환 순서대로 조회합니다."""
        comments: List[dict] = []
        params = {"fields": COMMENT_FIELDS, "limit": COMMENTS_PAGE_SIZE}

        for _ in range(MAX_COMMENT_PAGES):
            page = await self.get(f"{object_id}/comments", access_token, params=params)
            comments.extend(page.get("data", []))

            after = self._next_cursor(page)
            if not after:
                break
            params = {**params, "after": after}
        else:
            self.logger.warning(f"댓글 페이지 수 제한 도달: object_id={object_id}, pages={MAX_COMMENT_PAGES}")

        return comments

    async def fetch_comments(self, post_id: str, access_token: str, limit: int = 5) -> dict:
        """게시물의 최신 댓글을 조회합니다."""
        return await self.get(
            f"{post_id}/comments",
            access_token,
            params={"order": "reverse_chronological", "limit": limit or 5},
        )

    @staticmethod
    def _next_cursor(page: dict) -> Optional[str]:
        paging = page.get("paging") or {}
        if not paging.get("next"):
            return None
        return (paging.get("cursors") or {}).get("after")

    def _extract_error(self, body: dict, response: httpx.Response) -> Tuple[str, Optional[int]]:
        error = body.get("error")
        if isinstance(error, dict):
            return error.get("message") or response.reason_phrase, error.get("code")
        return super()._extract_error(body, response)

    def _is_throttled(self, status_code: int, body: dict) -> bool:
        error = body.get("error")
        return isinstance(error, dict) and error.get("code") in THROTTLING_ERROR_CODES

    def _is_auth_failure(self, body: dict) -> bool:
        error = body.get("error")
        return isinstance(error, dict) and error.get("code") == OAUTH_EXCEPTION_CODE
