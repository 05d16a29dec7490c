"""Pub/Sub 구독 어댑터 테스트"""

import pytest
from google.api_core.exceptions import AlreadyExists

from core.domain.errors import ConfigurationError
from adapters.external import PubSubSubscriberAdapter


class FakeSubscriberClient:
    def __init__(self, exists: bool = False):
        self.exists = exists
        self.requests = []
        self.closed = False

    def create_subscription(self, request):
        self.requests.append(request)
        if self.exists:
            raise AlreadyExists("subscription exists")

    def subscribe(self, subscription, callback):
        return (subscription, callback)

    def close(self):
        self.closed = True


def adapter_with(client, logger, project_id="proj") -> PubSubSubscriberAdapter:
    adapter = PubSubSubscriberAdapter(project_id, logger)
    adapter._client = client
    return adapter


def test_short_names_are_expanded_with_project(logger):
    adapter = PubSubSubscriberAdapter("proj", logger)

    assert adapter.topic_path("gmail") == "projects/proj/topics/gmail"
    assert adapter.subscription_path("sync") == "projects/proj/subscriptions/sync"
    assert adapter.topic_path("projects/other/topics/t") == "projects/other/topics/t"


def test_short_names_require_project(logger):
    with pytest.raises(ConfigurationError):
        PubSubSubscriberAdapter(None, logger).subscription_path("sync")


async def test_ensure_subscription_creates_with_full_paths(logger):
    client = FakeSubscriberClient()

    await adapter_with(client, logger).ensure_subscription("gmail", "sync")

    assert client.requests == [
        {"name": "projects/proj/subscriptions/sync", "topic": "projects/proj/topics/gmail"}
    ]


async def test_existing_subscription_is_reused(logger):
    client = FakeSubscriberClient(exists=True)

    await adapter_with(client, logger).ensure_subscription("gmail", "sync")

    assert len(client.requests) == 1


def test_close_releases_client(logger):
    client = FakeSubscriberClient()
    adapter = adapter_with(client, logger)

    subscription, _ = adapter.subscribe("sync", print)
    adapter.close()

    assert subscription == "projects/proj/subscriptions/sync"
    assert client.closed
    assert adapter._client is None
