"""
푸시 구독 관리 유즈케이스

Gmail 변경 알림을 전달하는 Pub/Sub 구독의 수명 주기를 관리합니다.

상태 전이:
    UNSUBSCRIBED -> SUBSCRIBING -> ACTIVE -> (ERROR -> RESUBSCRIBING | ACTIVE) -> UNSUBSCRIBED

수신 메시지는 파싱 후 히스토리 동기화 스케줄러에 넘긴 뒤 항상 확인(ack)됩니다.
ack는 전송 수준의 확인이며, 업무 수준의 완료는 동기화 커서가 관리합니다.
구독 오류는 프로세스를 종료시키지 않고 백오프 후 재구독으로 이어집니다.
"""

import asyncio
import base64
import binascii
import json
from typing import Any, List, Optional, Set

from ..domain.entities import MessageOutcome, SubscriptionState
from ..domain.errors import ConfigurationError
from ..domain.ports import LoggerPort, PushSubscriberPort
from .mail_history_sync import HistorySyncScheduler


def decode_notification(data: bytes) -> Optional[dict]:
    """
    푸시 메시지 데이터를 디코딩합니다.

    JSON을 먼저 시도하고, 실패하면 base64로 감싼 JSON을 시도합니다.
    둘 다 실패하면 None을 반환합니다.
    """
    try:
        decoded = json.loads(data.decode("utf-8"))
        if isinstance(decoded, dict):
            return decoded
    except (UnicodeDecodeError, ValueError):
        pass

    try:
        decoded = json.loads(base64.b64decode(data, validate=True).decode("utf-8"))
        if isinstance(decoded, dict):
            return decoded
    except (binascii.Error, UnicodeDecodeError, ValueError):
        pass

    return None


class PushSubscriptionManager:
    """Pub/Sub 푸시 구독 관리자"""

    def __init__(
        self,
        subscriber: PushSubscriberPort,
        scheduler: HistorySyncScheduler,
        logger: LoggerPort,
        topic: str,
        subscription: str,
        backoff_initial: float = 1.0,
        backoff_max: float = 60.0,
    ):
        self.subscriber = subscriber
        self.scheduler = scheduler
        self.logger = logger
        self.topic = topic
        self.subscription = subscription
        self.backoff_initial = backoff_initial
        self.backoff_max = backoff_max

        self.state = SubscriptionState.UNSUBSCRIBED
        self.state_history: List[SubscriptionState] = [self.state]
        self._future: Any = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._stopping = False
        self._inflight: Set[asyncio.Task] = set()

    def _set_state(self, state: SubscriptionState) -> None:
        if state == self.state:
            return
        self.logger.info(f"푸시 구독 상태 변경: {self.state.value} -> {state.value}")
        self.state = state
        self.state_history.append(state)

    async def run(self) -> None:
        """
        구독을 설정하고 스트리밍 수신을 감시합니다.

        오류가 발생하면 ERROR 상태로 전환하고 지수 백오프 후 재구독합니다.
        stop()이 호출될 때까지 반환하지 않습니다.
        """
        self._loop = asyncio.get_running_loop()
        delay = self.backoff_initial
        attempt = 0

        while not self._stopping:
            attempt += 1
            self._set_state(SubscriptionState.SUBSCRIBING if attempt == 1 else SubscriptionState.RESUBSCRIBING)

            try:
                await self.subscriber.ensure_subscription(self.topic, self.subscription)
                self._future = self.subscriber.subscribe(self.subscription, self._on_message)
                self._set_state(SubscriptionState.ACTIVE)
                delay = self.backoff_initial

                await self._loop.run_in_executor(None, self._future.result)
                if self._stopping:
                    break
                raise ConnectionError("스트리밍 수신이 종료되었습니다")
            except ConfigurationError:
                self._cancel_future()
                self._set_state(SubscriptionState.UNSUBSCRIBED)
                raise
            except asyncio.CancelledError:
                self._cancel_future()
                if self._stopping:
                    break
                self._set_state(SubscriptionState.UNSUBSCRIBED)
                raise
            except Exception as e:
                self._cancel_future()
                if self._stopping:
                    break
                self._set_state(SubscriptionState.ERROR)
                self.logger.error(f"푸시 구독 오류: {type(e).__name__}: {e}, {delay:.1f}초 후 재구독")
                await asyncio.sleep(delay)
                delay = min(delay * 2, self.backoff_max)

        self._set_state(SubscriptionState.UNSUBSCRIBED)

    def _on_message(self, message: Any) -> None:
        """구독 클라이언트 스레드에서 호출되는 콜백"""
        loop = self._loop
        if self._stopping or loop is None or loop.is_closed():
            # 종료 중 수신한 메시지는 재전달되도록 확인하지 않음
            message.nack()
            return
        loop.call_soon_threadsafe(self._spawn_handler, message)

    def _spawn_handler(self, message: Any) -> None:
        task = asyncio.ensure_future(self.handle_message(message))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def handle_message(self, message: Any) -> MessageOutcome:
        """
        수신 메시지 하나를 처리합니다. 예외를 발생시키지 않으며 처리 후 항상 ack합니다.

        Returns:
            DISPATCHED: 동기화 스케줄러에 전달됨
            IGNORED: 연동되지 않은 메일함 등 처리 대상 아님
            DROPPED: 파싱 실패 또는 처리 중 오류
        """
        try:
            notification = decode_notification(message.data)
            if notification is None:
                preview = message.data[:200].decode("utf-8", errors="replace")
                self.logger.warning(f"푸시 메시지 파싱 실패 (ack 처리): {preview}")
                return MessageOutcome.DROPPED

            email_address = notification.get("emailAddress")
            if not email_address:
                self.logger.info(f"메일함 정보가 없는 푸시 메시지: {notification}")
                return MessageOutcome.IGNORED

            scheduled = await self.scheduler.notify_mailbox(
                email_address, notification.get("historyId")
            )
            return MessageOutcome.DISPATCHED if scheduled else MessageOutcome.IGNORED
        except Exception as e:
            self.logger.error(f"푸시 메시지 처리 실패: {type(e).__name__}: {e}")
            return MessageOutcome.DROPPED
        finally:
            message.ack()

    def _cancel_future(self) -> None:
        if self._future is not None:
            self._future.cancel()
            self._future = None

    async def stop(self, timeout: float) -> None:
        """새 메시지 수신을 멈추고 처리 중인 메시지를 timeout 동안 기다립니다."""
        self._stopping = True
        self._cancel_future()

        inflight = list(self._inflight)
        if inflight:
            self.logger.info(f"처리 중인 푸시 메시지 대기: {len(inflight)}개")
            _, pending = await asyncio.wait(inflight, timeout=timeout)
            for task in pending:
                task.cancel()

        self._set_state(SubscriptionState.UNSUBSCRIBED)
