"""
페이스북 로그인 유즈케이스

OAuth 인증 코드 흐름으로 사용자 토큰을 받아 계정을 등록합니다.
이미 등록된 uid는 오류가 아니며 기존 계정을 그대로 사용합니다.
"""

from typing import Optional

from ..domain.entities import Account, Platform
from ..domain.errors import ValidationError
from ..domain.ports import FacebookApiPort, LoggerPort, UnitOfWorkFactory


class FacebookLoginUseCase:
    """페이스북 로그인 유즈케이스"""

    def __init__(
        self,
        facebook_client: FacebookApiPort,
        unit_of_work_factory: UnitOfWorkFactory,
        logger: LoggerPort,
        redirect_uri: str,
        scope: str,
        success_url: str,
    ):
        self.facebook_client = facebook_client
        self.unit_of_work_factory = unit_of_work_factory
        self.logger = logger
        self.redirect_uri = redirect_uri
        self.scope = scope
        self.success_url = success_url

    def get_authorization_url(self) -> str:
        """OAuth 동의 화면 URL을 반환합니다."""
        return self.facebook_client.get_oauth_url(self.redirect_uri, self.scope)

    async def complete_login(self, code: str) -> Optional[Account]:
        """
        인증 코드를 교환하고 계정을 등록합니다.

        Args:
            code: OAuth 인증 코드

        Returns:
            새로 생성된 계정, 이미 등록된 사용자면 None

        Raises:
            RequestError: 토큰 교환 또는 프로필 조회 실패
            ValidationError: 응답에 토큰이나 사용자 ID가 없는 경우
        """
        token_response = await self.facebook_client.exchange_code_for_token(code, self.redirect_uri)
        access_token = token_response.get("access_token")
        if not access_token:
            raise ValidationError("토큰 교환 응답에 access_token이 없습니다")

        profile = await self.facebook_client.get_user_profile(access_token)
        uid = profile.get("id")
        if not uid:
            raise ValidationError("사용자 프로필에 id가 없습니다")

        name = f"{profile.get('first_name', '')} {profile.get('last_name', '')}".strip() or uid

        async with self.unit_of_work_factory() as uow:
            account = await uow.accounts.create_account(
                Account(kind=Platform.FACEBOOK.value, uid=str(uid), name=name, token=access_token)
            )

        if account is None:
            self.logger.info(f"이미 등록된 페이스북 사용자입니다: uid={uid}")
        else:
            self.logger.info(f"페이스북 계정 등록 완료: {account.id}, {name}")
        return account
