"""
외부 서비스 어댑터 패키지

플랫폼 API, Pub/Sub, 암호화 서비스와의 통신을 담당하는 어댑터들을 포함합니다.
"""

from typing import Dict, Optional, Type

import httpx

from core.domain.entities import Platform
from core.domain.ports import ConfigPort, LoggerPort, PlatformApiClientPort

from .encryption_service import EncryptionServiceAdapter
from .facebook_client import FacebookApiClientAdapter
from .gmail_client import GmailApiClientAdapter
from .platform_client import PlatformApiClientAdapter
from .pubsub_subscriber import PubSubSubscriberAdapter

PLATFORM_CLIENTS: Dict[Platform, Type[PlatformApiClientAdapter]] = {
    Platform.FACEBOOK: FacebookApiClientAdapter,
    Platform.GMAIL: GmailApiClientAdapter,
}


def create_platform_client(
    platform: Platform,
    config: ConfigPort,
    logger: LoggerPort,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> PlatformApiClientPort:
    """플랫폼에 맞는 API 클라이언트를 생성합니다."""
    client_class = PLATFORM_CLIENTS[platform]

    if client_class is FacebookApiClientAdapter:
        return FacebookApiClientAdapter(
            app_id=config.get_facebook_app_id(),
            app_secret=config.get_facebook_app_secret(),
            logger=logger,
            graph_version=config.get_facebook_graph_version(),
            transport=transport,
        )
    return client_class(logger=logger, transport=transport)


__all__ = [
    "EncryptionServiceAdapter",
    "FacebookApiClientAdapter",
    "GmailApiClientAdapter",
    "PlatformApiClientAdapter",
    "PubSubSubscriberAdapter",
    "create_platform_client",
]
