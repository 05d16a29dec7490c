"""
계정 관리 유즈케이스

연동 계정의 등록, 조회, 삭제와 페이스북 페이지/Gmail 메일함 연결을 구현합니다.
"""

from typing import List, Optional
from uuid import UUID

from ..domain.entities import Account, Integration, Platform
from ..domain.errors import ValidationError
from ..domain.ports import (
    FacebookApiPort,
    GmailApiPort,
    LoggerPort,
    UnitOfWorkFactory,
)


class AccountManagementUseCase:
    """계정 관리 유즈케이스"""

    def __init__(
        self,
        unit_of_work_factory: UnitOfWorkFactory,
        facebook_client: FacebookApiPort,
        gmail_client: GmailApiPort,
        logger: LoggerPort,
    ):
        self.unit_of_work_factory = unit_of_work_factory
        self.facebook_client = facebook_client
        self.gmail_client = gmail_client
        self.logger = logger

    async def register_account(
        self,
        kind: str,
        uid: str,
        name: str,
        token: str,
        token_secret: Optional[str] = None,
    ) -> Optional[Account]:
        """
        새 연동 계정을 등록합니다.

        Args:
            kind: 플랫폼 태그 (facebook, gmail 등)
            uid: 플랫폼 사용자/페이지 ID (kind와 무관하게 전역 유일)
            name: 표시 이름
            token: 액세스 토큰
            token_secret: 토큰 시크릿

        Returns:
            생성된 계정, uid가 이미 등록되어 있으면 None
        """
        self.logger.info(f"계정 등록 시작: kind={kind}, uid={uid}")

        account = Account(kind=kind, uid=uid, name=name, token=token, token_secret=token_secret)
        async with self.unit_of_work_factory() as uow:
            created = await uow.accounts.create_account(account)

        if created is None:
            self.logger.warning(f"이미 등록된 uid입니다: {uid}")
            return None

        self.logger.info(f"계정 등록 완료: {created.id}, {name}")
        return created

    async def get_account(self, account_id: UUID) -> Optional[Account]:
        """ID로 계정을 조회합니다."""
        self.logger.debug(f"계정 조회: {account_id}")
        async with self.unit_of_work_factory() as uow:
            return await uow.accounts.get_by_id(account_id)

    async def find_account(self, **criteria) -> Optional[Account]:
        """조건으로 계정을 조회합니다."""
        async with self.unit_of_work_factory() as uow:
            return await uow.accounts.find_account(**criteria)

    async def list_accounts(self, skip: int = 0, limit: int = 100) -> List[Account]:
        """계정 목록을 조회합니다."""
        self.logger.debug(f"계정 목록 조회: skip={skip}, limit={limit}")
        async with self.unit_of_work_factory() as uow:
            return await uow.accounts.list_all(skip, limit)

    async def remove_account(self, account_id: UUID) -> bool:
        """계정과 계정에 속한 연동/대화를 삭제합니다. 없는 계정이면 False를 반환합니다."""
        async with self.unit_of_work_factory() as uow:
            removed = await uow.accounts.remove_account(account_id)

        if removed:
            self.logger.info(f"계정 삭제 완료: {account_id}")
        else:
            self.logger.info(f"삭제할 계정이 없습니다: {account_id}")
        return removed

    async def connect_facebook_page(self, account_id: UUID, page_id: str) -> Integration:
        """
        페이스북 페이지를 계정에 연결하고 페이지 웹훅을 구독합니다.

        Raises:
            ValueError: 계정이 없거나 다른 계정에 이미 연결된 페이지인 경우
            ValidationError: 페이지 토큰을 받지 못한 경우
        """
        account = await self._require_account(account_id)

        page = await self.facebook_client.get_page_info(page_id, account.token)
        page_token = page.get("access_token")
        if not page_token:
            raise ValidationError(f"페이지 액세스 토큰을 받지 못했습니다: {page_id}")

        await self.facebook_client.subscribe_page(page_id, page_token)

        return await self._store_integration(
            Integration(
                account_id=account.id,
                kind=Platform.FACEBOOK,
                external_id=str(page.get("id") or page_id),
                access_token=page_token,
            )
        )

    async def connect_gmail_mailbox(self, account_id: UUID, topic_name: Optional[str] = None) -> Integration:
        """
        계정 토큰의 Gmail 메일함을 연결하고 초기 동기화 커서를 저장합니다.

        topic_name이 주어지면 받은편지함 변경 푸시 알림도 등록합니다.
        """
        account = await self._require_account(account_id)

        profile = await self.gmail_client.get_profile(account.token)
        email_address = profile.get("emailAddress")
        history_id = profile.get("historyId")
        if not email_address or not history_id:
            raise ValidationError("메일함 프로필에 emailAddress 또는 historyId가 없습니다")

        if topic_name:
            watch = await self.gmail_client.watch(account.token, topic_name)
            history_id = watch.get("historyId") or history_id

        integration = await self._store_integration(
            Integration(
                account_id=account.id,
                kind=Platform.GMAIL,
                external_id=email_address,
                access_token=account.token,
            )
        )

        async with self.unit_of_work_factory() as uow:
            if await uow.cursors.get(account.id) is None:
                await uow.cursors.save(account.id, str(history_id))
                self.logger.info(f"초기 동기화 커서 저장: {email_address}, historyId={history_id}")

        return integration

    async def _require_account(self, account_id: UUID) -> Account:
        account = await self.get_account(account_id)
        if account is None:
            raise ValueError(f"계정을 찾을 수 없습니다: {account_id}")
        return account

    async def _store_integration(self, integration: Integration) -> Integration:
        async with self.unit_of_work_factory() as uow:
            created = await uow.integrations.create_integration(integration)
            if created is not None:
                self.logger.info(
                    f"{integration.kind.value} 연동 완료: account={integration.account_id}, "
                    f"external_id={integration.external_id}"
                )
                return created

            existing = await uow.integrations.get_by_external_id(integration.kind, integration.external_id)

        if existing is None or existing.account_id != integration.account_id:
            raise ValueError(f"다른 계정에 이미 연결되어 있습니다: {integration.external_id}")

        self.logger.info(f"이미 연결된 {integration.kind.value} 리소스입니다: {integration.external_id}")
        return existing
