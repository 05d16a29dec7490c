"""
페이스북 웹훅 처리 유즈케이스

페이지 웹훅 검증 핸드셰이크와 이벤트 페이로드 처리를 담당합니다.

- 피드 댓글 추가: 게시물 대화가 있으면 댓글 하나만 조회하여 조정, 없으면 게시물 스레드 전체를 탐색
- 게시물/상태/사진/동영상 추가: 게시물을 루트 메시지로 하여 스레드 전체를 탐색
- 메신저 메시지: 발신자 ID를 대화 키로 조정 (에코 제외)

스레드 탐색 동시성은 재귀 호출이 아닌 최상위 게시물 단위로 제한됩니다.
변경 항목과 메신저 이벤트는 각각 독립적으로 처리되며, 한 항목의 실패는 같은 페이로드의
다른 항목에 영향을 주지 않습니다. 일시적 오류는 실패한 항목만 재시도합니다.
"""

import asyncio
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from ..domain.entities import (
    Integration,
    InboundMessage,
    Platform,
    ThreadNode,
    ThreadResolution,
)
from ..domain.errors import AuthError, RequestError, TransientError, ValidationError
from ..domain.ports import FacebookApiPort, LoggerPort, UnitOfWorkFactory
from .conversation_reconciliation import ConversationReconciler
from .thread_resolution import ThreadResolver, parse_comment

POST_ITEMS = {"post", "status", "photo", "video"}
GRAPH_TIME_FORMAT = "%Y-%m-%dT%H:%M:%S%z"


def verify_subscription(
    mode: Optional[str],
    challenge: Optional[str],
    verify_token: Optional[str],
    expected_token: str,
) -> Optional[str]:
    """
    웹훅 검증 요청을 확인합니다.

    mode가 subscribe이고 challenge가 있으며 검증 토큰이 일치할 때만 challenge를 반환합니다.
    부수 효과가 없습니다.
    """
    if mode != "subscribe" or not challenge:
        return None
    if verify_token != expected_token:
        return None
    return challenge


def parse_graph_time(value: Optional[str]) -> Optional[datetime]:
    """Graph API 시간 문자열을 UTC 기준 datetime으로 변환합니다."""
    if not value:
        return None
    try:
        parsed = datetime.strptime(value, GRAPH_TIME_FORMAT)
    except (TypeError, ValueError):
        return None
    return parsed.astimezone(timezone.utc).replace(tzinfo=None)


def post_to_inbound(post: dict) -> InboundMessage:
    """게시물 응답을 스레드 루트 메시지로 변환합니다."""
    post_id = post.get("id")
    if not post_id:
        raise ValidationError("게시물 응답에 id가 없습니다")

    author = post.get("from") or {}
    body = post.get("message") or post.get("description") or post.get("caption")
    return InboundMessage(
        kind=Platform.FACEBOOK,
        external_thread_id=post_id,
        thread_title=body[:255] if body else None,
        author=author.get("id"),
        body=body,
        sent_at=parse_graph_time(post.get("created_time")),
        attributes={
            "author_name": author.get("name"),
            "link": post.get("link"),
            "picture": post.get("picture"),
            "source": post.get("source"),
        },
    )


def comment_to_inbound(node: ThreadNode, post_id: str, title: Optional[str] = None) -> InboundMessage:
    """댓글 노드를 게시물 대화의 메시지로 변환합니다."""
    return InboundMessage(
        kind=Platform.FACEBOOK,
        external_thread_id=post_id,
        thread_title=title,
        author=node.author,
        body=node.body,
        sent_at=parse_graph_time(node.created_at),
        parent_external_id=node.parent_id,
        attributes={
            "post_id": post_id,
            "attachment_url": node.attachment_url,
            "comment_count": node.child_count,
        },
    )


class WebhookProcessingUseCase:
    """페이스북 웹훅 처리 유즈케이스"""

    def __init__(
        self,
        facebook_client: FacebookApiPort,
        resolver: ThreadResolver,
        reconciler: ConversationReconciler,
        unit_of_work_factory: UnitOfWorkFactory,
        logger: LoggerPort,
        thread_concurrency: int = 4,
        max_attempts: int = 3,
        backoff_initial: float = 0.5,
        backoff_max: float = 10.0,
    ):
        self.facebook_client = facebook_client
        self.resolver = resolver
        self.reconciler = reconciler
        self.unit_of_work_factory = unit_of_work_factory
        self.logger = logger
        self._thread_slots = asyncio.Semaphore(thread_concurrency)
        self.max_attempts = max_attempts
        self.backoff_initial = backoff_initial
        self.backoff_max = backoff_max

    async def process(self, payload: dict) -> int:
        """
        웹훅 페이로드를 처리합니다.

        Args:
            payload: 페이스북이 전달한 JSON 본문

        Returns:
            조정 요청한 메시지 수

        Raises:
            ValidationError: 페이지 웹훅 형식이 아닌 경우
        """
        if not isinstance(payload, dict) or payload.get("object") != "page":
            raise ValidationError("페이지 웹훅 페이로드가 아닙니다")

        entries = payload.get("entry")
        if not isinstance(entries, list):
            raise ValidationError("entry 목록이 없습니다")

        handled = 0
        for entry in entries:
            if not isinstance(entry, dict):
                self.logger.warning(f"잘못된 entry 건너뜀: {entry!r}")
                continue

            page_id = str(entry.get("id") or "")
            integration = await self._find_integration(page_id)
            if integration is None:
                self.logger.info(f"연동되지 않은 페이지 이벤트 건너뜀: page_id={page_id}")
                continue

            try:
                handled += await self._process_entry(integration, entry)
            except AuthError as e:
                # 같은 entry의 나머지 항목도 같은 페이지 토큰을 사용
                self.logger.error(f"페이지 토큰 인증 실패, 재인증이 필요합니다: page_id={page_id}, {e}")

        return handled

    async def _process_entry(self, integration: Integration, entry: dict) -> int:
        page_id = integration.external_id
        handled = 0

        for change in entry.get("changes") or []:
            if not isinstance(change, dict) or change.get("field") != "feed":
                field = change.get("field") if isinstance(change, dict) else None
                self.logger.debug(f"처리하지 않는 변경 필드: {field}")
                continue
            value = change.get("value") or {}
            handled += await self._run_item(
                f"피드 변경 page_id={page_id}, item={value.get('item')}, post_id={value.get('post_id')}",
                lambda value=value: self._handle_feed_change(integration, value),
            )

        for event in entry.get("messaging") or []:
            handled += await self._run_item(
                f"메신저 이벤트 page_id={page_id}",
                lambda event=event: self._handle_messaging_event(integration, event),
            )

        return handled

    async def _run_item(self, label: str, operation: Callable[[], Awaitable[int]]) -> int:
        """
        항목 하나를 처리합니다.

        일시적 오류는 이 항목만 백오프 후 재시도하고, 그 밖의 요청 오류와 형식 오류는
        기록 후 건너뜁니다. AuthError는 호출자에게 전달됩니다.
        """
        delay = self.backoff_initial
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await operation()
            except ValidationError as e:
                self.logger.warning(f"잘못된 {label} 건너뜀: {e}")
                return 0
            except AuthError:
                raise
            except TransientError as e:
                if attempt >= self.max_attempts:
                    self.logger.error(f"{label} 재시도 한도 초과 ({self.max_attempts}회): {e}")
                    return 0
                self.logger.warning(f"일시적 오류로 {label} 재시도 ({attempt}/{self.max_attempts}): {e}")
                await asyncio.sleep(delay)
                delay = min(delay * 2, self.backoff_max)
            except RequestError as e:
                self.logger.error(f"{label} 처리 실패, 건너뜁니다: {e}")
                return 0
        return 0

    async def _find_integration(self, page_id: str) -> Optional[Integration]:
        if not page_id:
            return None
        async with self.unit_of_work_factory() as uow:
            return await uow.integrations.get_by_external_id(Platform.FACEBOOK, page_id)

    async def _handle_feed_change(self, integration: Integration, value: dict) -> int:
        item = value.get("item")
        verb = value.get("verb")
        if verb != "add":
            self.logger.debug(f"처리하지 않는 피드 동작: item={item}, verb={verb}")
            return 0

        post_id = value.get("post_id")
        if item == "comment":
            comment_id = value.get("comment_id")
            if not post_id or not comment_id:
                raise ValidationError("댓글 이벤트에 post_id 또는 comment_id가 없습니다")
            return await self._handle_comment(integration, post_id, comment_id, value.get("parent_id"))

        if item in POST_ITEMS:
            if not post_id:
                raise ValidationError(f"{item} 이벤트에 post_id가 없습니다")
            resolution = await self.resolve_post(integration, post_id)
            return 1 + len(resolution.nodes)

        self.logger.debug(f"처리하지 않는 피드 항목: {item}")
        return 0

    async def _handle_comment(
        self,
        integration: Integration,
        post_id: str,
        comment_id: str,
        parent_id: Optional[str],
    ) -> int:
        """새 댓글을 조정합니다. 게시물 대화가 없으면 스레드 전체를 탐색합니다."""
        async with self.unit_of_work_factory() as uow:
            conversation = await uow.conversations.get_by_external_id(integration.account_id, post_id)

        if conversation is None:
            resolution = await self.resolve_post(integration, post_id)
            return 1 + len(resolution.nodes)

        raw = await self.facebook_client.get_comment_info(comment_id, integration.access_token)
        node, reason = parse_comment(raw, parent_id or post_id, 1)
        if node is None:
            raise ValidationError(f"댓글 응답을 해석할 수 없습니다: {reason}")

        await self.reconciler.reconcile(
            integration.account_id,
            node.id,
            comment_to_inbound(node, post_id, conversation.title),
        )
        return 1

    async def resolve_post(self, integration: Integration, post_id: str) -> ThreadResolution:
        """게시물을 루트 메시지로 조정하고 모든 댓글을 탐색하여 조정합니다."""
        async with self._thread_slots:
            token = integration.access_token
            post = await self.facebook_client.get_post_info(post_id, token)
            root = post_to_inbound(post)
            await self.reconciler.reconcile(integration.account_id, post_id, root)

            resolution = await self.resolver.resolve(post_id, token)
            for node in resolution.nodes:
                await self.reconciler.reconcile(
                    integration.account_id,
                    node.id,
                    comment_to_inbound(node, post_id, root.thread_title),
                )

        if not resolution.complete:
            self.logger.warning(
                f"스레드 일부만 수집됨: post_id={post_id}, nodes={len(resolution.nodes)}, "
                f"failures={len(resolution.failures)}, limits={len(resolution.limit_errors)}"
            )
        else:
            self.logger.info(f"스레드 수집 완료: post_id={post_id}, nodes={len(resolution.nodes)}")
        return resolution

    async def resolve_post_for_page(self, page_id: str, post_id: str) -> ThreadResolution:
        """페이지 ID로 연동을 찾아 게시물 스레드를 수집합니다."""
        integration = await self._find_integration(page_id)
        if integration is None:
            raise ValueError(f"연동되지 않은 페이지입니다: {page_id}")
        return await self.resolve_post(integration, post_id)

    async def _handle_messaging_event(self, integration: Integration, event: dict) -> int:
        message = event.get("message")
        if not message:
            self.logger.debug("메시지가 없는 메신저 이벤트 (전달/읽음 확인)")
            return 0
        if message.get("is_echo"):
            self.logger.debug(f"에코 메시지 건너뜀: {message.get('mid')}")
            return 0

        sender_id = (event.get("sender") or {}).get("id")
        mid = message.get("mid")
        if not sender_id or not mid:
            raise ValidationError("메신저 이벤트에 sender 또는 mid가 없습니다")

        sent_at = None
        timestamp = event.get("timestamp")
        if isinstance(timestamp, (int, float)):
            sent_at = datetime.fromtimestamp(timestamp / 1000, tz=timezone.utc).replace(tzinfo=None)

        payload = InboundMessage(
            kind=Platform.FACEBOOK,
            external_thread_id=str(sender_id),
            author=str(sender_id),
            body=message.get("text"),
            sent_at=sent_at,
            attributes={
                "recipient_id": (event.get("recipient") or {}).get("id"),
                "attachments": message.get("attachments", []),
            },
        )
        await self.reconciler.reconcile(integration.account_id, mid, payload)
        return 1
