"""
웹훅 이벤트 디스패처

웹훅 요청은 페이로드를 큐에 넣고 즉시 응답하며, 작업자 풀이 큐를 비우면서 처리합니다.
오류 종류에 따라 폐기(ValidationError), 백오프 재시도(TransientError),
기록 후 폐기(AuthError, 그 밖의 오류)를 결정합니다. 작업자는 오류로 종료되지 않습니다.
"""

import asyncio
from typing import List, Optional

from ..domain.errors import AuthError, TransientError, ValidationError
from ..domain.ports import LoggerPort
from .webhook_processing import WebhookProcessingUseCase


class WebhookEventDispatcher:
    """웹훅 이벤트 디스패처"""

    def __init__(
        self,
        processor: WebhookProcessingUseCase,
        logger: LoggerPort,
        workers: int = 2,
        max_attempts: int = 3,
        queue_size: int = 1000,
        backoff_initial: float = 0.5,
        backoff_max: float = 10.0,
    ):
        self.processor = processor
        self.logger = logger
        self.worker_count = workers
        self.max_attempts = max_attempts
        self.queue_size = queue_size
        self.backoff_initial = backoff_initial
        self.backoff_max = backoff_max
        self._queue: Optional[asyncio.Queue] = None
        self._workers: List[asyncio.Task] = []
        self._accepting = False

    @property
    def pending_count(self) -> int:
        return self._queue.qsize() if self._queue else 0

    async def start(self) -> None:
        """작업자들을 시작합니다."""
        if self._workers:
            return
        self._queue = asyncio.Queue(maxsize=self.queue_size)
        self._workers = [
            asyncio.create_task(self._worker(index), name=f"webhook-worker-{index}")
            for index in range(self.worker_count)
        ]
        self._accepting = True
        self.logger.info(f"웹훅 작업자 시작: {self.worker_count}개")

    def submit(self, payload: dict) -> bool:
        """페이로드를 큐에 넣습니다. 블로킹하지 않습니다."""
        if not self._accepting or self._queue is None:
            self.logger.warning("웹훅 디스패처가 실행 중이 아니라 이벤트를 받지 않습니다")
            return False
        try:
            self._queue.put_nowait(payload)
        except asyncio.QueueFull:
            self.logger.error(f"웹훅 큐가 가득 차 이벤트를 버립니다 (크기 {self.queue_size})")
            return False
        return True

    async def _worker(self, index: int) -> None:
        while True:
            payload = await self._queue.get()
            try:
                await self._process_with_retry(payload)
            finally:
                self._queue.task_done()

    async def _process_with_retry(self, payload: dict) -> None:
        delay = self.backoff_initial
        for attempt in range(1, self.max_attempts + 1):
            try:
                handled = await self.processor.process(payload)
                self.logger.debug(f"웹훅 이벤트 처리 완료: {handled}건")
                return
            except ValidationError as e:
                self.logger.warning(f"잘못된 웹훅 페이로드 폐기: {e}")
                return
            except TransientError as e:
                if attempt >= self.max_attempts:
                    self.logger.error(f"웹훅 이벤트 재시도 한도 초과 ({self.max_attempts}회): {e}")
                    return
                self.logger.warning(f"일시적 오류로 웹훅 이벤트 재시도 ({attempt}/{self.max_attempts}): {e}")
                await asyncio.sleep(delay)
                delay = min(delay * 2, self.backoff_max)
            except AuthError as e:
                self.logger.error(f"페이지 토큰 인증 실패, 재인증이 필요합니다: {e}")
                return
            except Exception as e:
                self.logger.error(f"웹훅 이벤트 처리 실패: {type(e).__name__}: {e}")
                return

    async def stop(self, timeout: float) -> None:
        """새 이벤트를 막고 큐에 남은 작업을 timeout 동안 처리한 뒤 작업자를 종료합니다."""
        self._accepting = False
        if self._queue is not None and self._workers:
            try:
                await asyncio.wait_for(self._queue.join(), timeout=timeout)
            except asyncio.TimeoutError:
                self.logger.warning(f"종료 시간 초과로 웹훅 이벤트 {self._queue.qsize()}개 이상을 처리하지 못했습니다")

        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        self.logger.info("웹훅 작업자 종료")
