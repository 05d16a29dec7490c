"""
어댑터 팩토리

모든 어댑터와 유즈케이스를 생성하고 의존성을 주입하는 팩토리 클래스입니다.
클린 아키텍처의 의존성 역전 원칙을 구현합니다.
오래 실행되는 작업자(웹훅 디스패처, 히스토리 스케줄러, 푸시 구독 관리자)는 팩토리당 하나만 생성됩니다.
"""

from typing import Optional

import httpx

from core.domain.entities import Platform
from core.domain.ports import (
    ConfigPort,
    EncryptionServicePort,
    FacebookApiPort,
    GmailApiPort,
    LoggerPort,
    PushSubscriberPort,
    UnitOfWorkFactory,
)
from core.usecases.account_management import AccountManagementUseCase
from core.usecases.authentication import FacebookLoginUseCase
from core.usecases.conversation_reconciliation import ConversationReconciler
from core.usecases.event_dispatch import WebhookEventDispatcher
from core.usecases.mail_history_sync import HistorySyncScheduler, MailHistorySyncUseCase
from core.usecases.push_subscription import PushSubscriptionManager
from core.usecases.thread_resolution import ThreadResolver
from core.usecases.webhook_processing import WebhookProcessingUseCase

from .db.database import DatabaseAdapter
from .db.unit_of_work import SqlAlchemyUnitOfWork
from .external import EncryptionServiceAdapter, PubSubSubscriberAdapter, create_platform_client
from .logger import LoggerAdapter
from config.adapters import get_config


class AdapterFactory:
    """어댑터 팩토리"""

    def __init__(
        self,
        config: Optional[ConfigPort] = None,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
        push_subscriber: Optional[PushSubscriberPort] = None,
    ):
        self.config = config or get_config()
        self.http_transport = http_transport
        self._logger: Optional[LoggerPort] = None
        self._encryption_service: Optional[EncryptionServicePort] = None
        self._database: Optional[DatabaseAdapter] = None
        self._facebook_client: Optional[FacebookApiPort] = None
        self._gmail_client: Optional[GmailApiPort] = None
        self._push_subscriber = push_subscriber
        self._event_dispatcher: Optional[WebhookEventDispatcher] = None
        self._history_scheduler: Optional[HistorySyncScheduler] = None
        self._push_manager: Optional[PushSubscriptionManager] = None

    def create_logger(self) -> LoggerPort:
        """로거 어댑터를 생성합니다."""
        if self._logger is None:
            self._logger = LoggerAdapter(
                name="convsync",
                level=self.config.get_log_level(),
                format_string=self.config.get_log_format(),
            )
        return self._logger

    def create_encryption_service(self) -> EncryptionServicePort:
        """암호화 서비스 어댑터를 생성합니다."""
        if self._encryption_service is None:
            self._encryption_service = EncryptionServiceAdapter(
                encryption_key=self.config.get_encryption_key(),
                logger=self.create_logger(),
            )
        return self._encryption_service

    def get_database(self) -> DatabaseAdapter:
        """데이터베이스 어댑터를 반환합니다. initialize()는 호출자가 수행합니다."""
        if self._database is None:
            self._database = DatabaseAdapter(self.config)
        return self._database

    def create_unit_of_work_factory(self) -> UnitOfWorkFactory:
        """작업마다 새 세션을 여는 작업 단위 팩토리를 생성합니다."""
        database = self.get_database()
        encryption_service = self.create_encryption_service()

        def unit_of_work() -> SqlAlchemyUnitOfWork:
            if database.session_factory is None:
                raise RuntimeError("데이터베이스가 초기화되지 않았습니다")
            return SqlAlchemyUnitOfWork(database.session_factory, encryption_service)

        return unit_of_work

    def create_facebook_client(self) -> FacebookApiPort:
        """페이스북 Graph API 클라이언트를 생성합니다."""
        if self._facebook_client is None:
            self._facebook_client = create_platform_client(
                Platform.FACEBOOK, self.config, self.create_logger(), self.http_transport
            )
        return self._facebook_client

    def create_gmail_client(self) -> GmailApiPort:
        """Gmail API 클라이언트를 생성합니다."""
        if self._gmail_client is None:
            self._gmail_client = create_platform_client(
                Platform.GMAIL, self.config, self.create_logger(), self.http_transport
            )
        return self._gmail_client

    def create_push_subscriber(self) -> PushSubscriberPort:
        """Pub/Sub 구독 어댑터를 생성합니다."""
        if self._push_subscriber is None:
            pubsub_config = self.config.get_pubsub_config()
            self._push_subscriber = PubSubSubscriberAdapter(
                project_id=pubsub_config["project_id"],
                logger=self.create_logger(),
                credentials_file=pubsub_config["credentials_file"],
            )
        return self._push_subscriber

    def create_reconciler(self) -> ConversationReconciler:
        """대화 조정기를 생성합니다."""
        return ConversationReconciler(self.create_unit_of_work_factory(), self.create_logger())

    def create_thread_resolver(self) -> ThreadResolver:
        """댓글 스레드 탐색기를 생성합니다."""
        limits = self.config.get_thread_limits()
        return ThreadResolver(
            facebook_client=self.create_facebook_client(),
            logger=self.create_logger(),
            max_depth=limits["max_depth"],
            max_nodes=limits["max_nodes"],
        )

    def create_webhook_processing_usecase(self) -> WebhookProcessingUseCase:
        """웹훅 처리 유즈케이스를 생성합니다."""
        return WebhookProcessingUseCase(
            facebook_client=self.create_facebook_client(),
            resolver=self.create_thread_resolver(),
            reconciler=self.create_reconciler(),
            unit_of_work_factory=self.create_unit_of_work_factory(),
            logger=self.create_logger(),
            thread_concurrency=self.config.get_thread_limits()["concurrency"],
            max_attempts=self.config.get_webhook_config()["max_attempts"],
        )

    def create_event_dispatcher(self) -> WebhookEventDispatcher:
        """웹훅 이벤트 디스패처를 생성합니다."""
        if self._event_dispatcher is None:
            webhook_config = self.config.get_webhook_config()
            self._event_dispatcher = WebhookEventDispatcher(
                processor=self.create_webhook_processing_usecase(),
                logger=self.create_logger(),
                workers=webhook_config["workers"],
                max_attempts=webhook_config["max_attempts"],
                queue_size=webhook_config["queue_size"],
            )
        return self._event_dispatcher

    def create_mail_history_sync_usecase(self) -> MailHistorySyncUseCase:
        """메일 히스토리 동기화 유즈케이스를 생성합니다."""
        return MailHistorySyncUseCase(
            gmail_client=self.create_gmail_client(),
            reconciler=self.create_reconciler(),
            unit_of_work_factory=self.create_unit_of_work_factory(),
            logger=self.create_logger(),
        )

    def create_history_sync_scheduler(self) -> HistorySyncScheduler:
        """계정별 히스토리 동기화 스케줄러를 생성합니다."""
        if self._history_scheduler is None:
            pubsub_config = self.config.get_pubsub_config()
            self._history_scheduler = HistorySyncScheduler(
                syncer=self.create_mail_history_sync_usecase(),
                unit_of_work_factory=self.create_unit_of_work_factory(),
                logger=self.create_logger(),
                max_attempts=self.config.get_sync_max_attempts(),
                backoff_initial=pubsub_config["backoff_initial"],
                backoff_max=pubsub_config["backoff_max"],
            )
        return self._history_scheduler

    def create_push_subscription_manager(self) -> PushSubscriptionManager:
        """
        푸시 구독 관리자를 생성합니다.

        Raises:
            ConfigurationError: GOOGLE_TOPIC 또는 GOOGLE_SUBSCRIPTION_NAME이 없는 경우
        """
        if self._push_manager is None:
            self.config.validate_push_settings()
            pubsub_config = self.config.get_pubsub_config()
            self._push_manager = PushSubscriptionManager(
                subscriber=self.create_push_subscriber(),
                scheduler=self.create_history_sync_scheduler(),
                logger=self.create_logger(),
                topic=pubsub_config["topic"],
                subscription=pubsub_config["subscription"],
                backoff_initial=pubsub_config["backoff_initial"],
                backoff_max=pubsub_config["backoff_max"],
            )
        return self._push_manager

    def create_account_management_usecase(self) -> AccountManagementUseCase:
        """계정 관리 유즈케이스를 생성합니다."""
        return AccountManagementUseCase(
            unit_of_work_factory=self.create_unit_of_work_factory(),
            facebook_client=self.create_facebook_client(),
            gmail_client=self.create_gmail_client(),
            logger=self.create_logger(),
        )

    def create_facebook_login_usecase(self) -> FacebookLoginUseCase:
        """페이스북 로그인 유즈케이스를 생성합니다."""
        return FacebookLoginUseCase(
            facebook_client=self.create_facebook_client(),
            unit_of_work_factory=self.create_unit_of_work_factory(),
            logger=self.create_logger(),
            redirect_uri=f"{self.config.get_domain()}/fblogin",
            scope=self.config.get_facebook_permissions(),
            success_url=f"{self.config.get_main_app_domain()}/settings/integrations?fbAuthorized=true",
        )

    def get_config(self) -> ConfigPort:
        """설정 객체를 반환합니다."""
        return self.config

