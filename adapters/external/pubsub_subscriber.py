"""
Google Cloud Pub/Sub 구독 어댑터

Gmail 푸시 알림을 받기 위한 구독 생성과 스트리밍 수신을 담당합니다.
google-cloud-pubsub의 SubscriberClient는 동기 API이므로 구독 생성은
실행기 스레드에서 수행하고, 수신 콜백은 클라이언트 스레드 풀에서 호출됩니다.
"""

import asyncio
from typing import Any, Callable, Optional

from google.api_core.exceptions import AlreadyExists
from google.cloud import pubsub_v1

from core.domain.errors import ConfigurationError
from core.domain.ports import LoggerPort, PushSubscriberPort


class PubSubSubscriberAdapter(PushSubscriberPort):
    """Pub/Sub 구독 어댑터"""

    def __init__(
        self,
        project_id: Optional[str],
        logger: LoggerPort,
        credentials_file: Optional[str] = None,
    ):
        self.project_id = project_id
        self.credentials_file = credentials_file
        self.logger = logger
        self._client: Optional[pubsub_v1.SubscriberClient] = None

    @property
    def client(self) -> pubsub_v1.SubscriberClient:
        """SubscriberClient를 지연 생성합니다."""
        if self._client is None:
            if self.credentials_file:
                self._client = pubsub_v1.SubscriberClient.from_service_account_file(self.credentials_file)
            else:
                self._client = pubsub_v1.SubscriberClient()
        return self._client

    def topic_path(self, topic: str) -> str:
        if topic.startswith("projects/"):
            return topic
        return f"projects/{self._require_project()}/topics/{topic}"

    def subscription_path(self, subscription: str) -> str:
        if subscription.startswith("projects/"):
            return subscription
        return f"projects/{self._require_project()}/subscriptions/{subscription}"

    def _require_project(self) -> str:
        if not self.project_id:
            raise ConfigurationError("GOOGLE_PROJECT_ID 설정이 없습니다")
        return self.project_id

    async def ensure_subscription(self, topic: str, subscription: str) -> None:
        """토픽에 구독이 없으면 생성합니다."""
        topic_path = self.topic_path(topic)
        subscription_path = self.subscription_path(subscription)
        loop = asyncio.get_running_loop()

        try:
            await loop.run_in_executor(
                None,
                lambda: self.client.create_subscription(
                    request={"name": subscription_path, "topic": topic_path}
                ),
            )
            self.logger.info(f"Pub/Sub 구독 생성: {subscription_path}")
        except AlreadyExists:
            self.logger.debug(f"Pub/Sub 구독이 이미 존재합니다: {subscription_path}")

    def subscribe(self, subscription: str, callback: Callable[[Any], None]) -> Any:
        """스트리밍 수신을 시작하고 StreamingPullFuture를 반환합니다."""
        subscription_path = self.subscription_path(subscription)
        self.logger.info(f"Pub/Sub 스트리밍 수신 시작: {subscription_path}")
        return self.client.subscribe(subscription_path, callback=callback)

    def close(self) -> None:
        """클라이언트를 종료합니다."""
        if self._client is not None:
            self._client.close()
            self._client = None
