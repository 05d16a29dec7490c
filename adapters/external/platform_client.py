"""
플랫폼 API 클라이언트 기본 어댑터

페이스북 Graph API와 Gmail API 클라이언트가 공유하는 httpx 기반 요청 처리기입니다.
기본 URL과 인증 헤더만 플랫폼별로 다르며, 실패 응답은 도메인 오류로 변환됩니다.

- 401/403 또는 플랫폼 인증 오류 코드: AuthError
- 429, 5xx, 요청 제한 코드, 네트워크 오류: TransientError
- 그 밖의 4xx: RequestError
"""

from typing import Any, Dict, Optional, Tuple

import httpx

from core.domain.entities import Platform
from core.domain.errors import AuthError, RequestError, TransientError
from core.domain.ports import LoggerPort, PlatformApiClientPort


class PlatformApiClientAdapter(PlatformApiClientPort):
    """플랫폼 API 클라이언트 기본 어댑터"""

    platform: Platform

    def __init__(
        self,
        base_url: str,
        logger: LoggerPort,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.logger = logger
        self.timeout = timeout
        self.transport = transport

    async def get(
        self,
        path: str,
        access_token: Optional[str] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> dict:
        """GET 요청을 보냅니다."""
        return await self._request("GET", path, access_token, params=params)

    async def post(
        self,
        path: str,
        access_token: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> dict:
        """POST 요청을 보냅니다."""
        return await self._request("POST", path, access_token, params=params, json_body=data)

    def _auth_headers(self, access_token: Optional[str]) -> Dict[str, str]:
        """인증 헤더를 생성합니다."""
        headers = {"Accept": "application/json"}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        return headers

    def _build_url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    async def _request(
        self,
        method: str,
        path: str,
        access_token: Optional[str],
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
    ) -> dict:
        """요청을 보내고 파싱된 응답을 반환합니다."""
        url = self._build_url(path)
        self.logger.debug(f"{self.platform.value} API 요청: {method} {path}")

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.request(
                    method,
                    url,
                    params=params,
                    json=json_body,
                    headers=self._auth_headers(access_token),
                )
        except httpx.TimeoutException as e:
            self.logger.warning(f"{self.platform.value} API 요청 시간 초과: {method} {path}")
            raise TransientError(f"요청 시간 초과: {path}", platform=self.platform.value) from e
        except httpx.TransportError as e:
            self.logger.warning(f"{self.platform.value} API 네트워크 오류: {method} {path} - {type(e).__name__}")
            raise TransientError(f"네트워크 오류: {path}", platform=self.platform.value) from e

        if response.is_success:
            return self._parse_body(response)

        raise self._error_from_response(response)

    def _parse_body(self, response: httpx.Response) -> dict:
        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError as e:
            raise RequestError(
                "응답 본문을 파싱할 수 없습니다",
                status_code=response.status_code,
                platform=self.platform.value,
            ) from e
        if isinstance(body, dict):
            return body
        return {"data": body}

    def _error_from_response(self, response: httpx.Response) -> RequestError:
        """실패 응답을 도메인 오류로 변환합니다."""
        status_code = response.status_code
        body = self._safe_json(response)
        message, error_code = self._extract_error(body, response)

        if self._is_throttled(status_code, body):
            error_class = TransientError
        elif status_code in (401, 403) or self._is_auth_failure(body):
            error_class = AuthError
        elif status_code == 429 or status_code >= 500:
            error_class = TransientError
        else:
            error_class = RequestError

        error = error_class(
            message,
            status_code=status_code,
            platform=self.platform.value,
            error_code=error_code,
        )
        self.logger.error(f"{self.platform.value} API 요청 실패 ({error_class.__name__}): {error}")
        return error

    @staticmethod
    def _safe_json(response: httpx.Response) -> dict:
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    def _extract_error(self, body: dict, response: httpx.Response) -> Tuple[str, Optional[int]]:
        """오류 메시지와 플랫폼 오류 코드를 추출합니다."""
        error = body.get("error")
        if isinstance(error, dict):
            return error.get("message") or response.reason_phrase, None
        if isinstance(error, str):
            return body.get("error_description") or error, None
        return response.text[:200] or response.reason_phrase, None

    def _is_throttled(self, status_code: int, body: dict) -> bool:
        """플랫폼별 요청 제한 응답 여부"""
        return False

    def _is_auth_failure(self, body: dict) -> bool:
        """플랫폼별 인증 실패 응답 여부"""
        return False
