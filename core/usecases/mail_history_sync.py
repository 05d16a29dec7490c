"""
메일 히스토리 증분 동기화 유즈케이스

저장된 커서(historyId) 이후의 메시지 추가 이력을 조회하여 각 메시지를 조정합니다.
커서는 배치 전체가 조정된 뒤에만 배치의 최종 historyId로 전진하며,
실패한 메시지가 있으면 그 메시지를 포함한 이력 레코드 직전 위치에서 멈춥니다.
따라서 전달은 최소 한 번(at-least-once)이며 조정은 멱등이어야 합니다.
"""

import asyncio
import base64
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Set
from uuid import UUID

from ..domain.entities import InboundMessage, Platform, SyncResult
from ..domain.errors import AuthError, RequestError, TransientError, ValidationError
from ..domain.ports import GmailApiPort, LoggerPort, UnitOfWorkFactory
from .conversation_reconciliation import ConversationReconciler

# 메시지 변환 시 추출하는 헤더
TRACKED_HEADERS = {
    "subject": "subject",
    "from": "from",
    "to": "to",
    "cc": "cc",
    "bcc": "bcc",
    "reply-to": "reply_to",
    "message-id": "message_id",
    "in-reply-to": "in_reply_to",
    "references": "references",
}


def decode_base64url(data: str) -> str:
    """패딩이 생략된 base64url 문자열을 디코딩합니다."""
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded.encode()).decode("utf-8", errors="replace")


def _walk_parts(part: dict) -> Iterable[dict]:
    yield part
    for child in part.get("parts") or []:
        yield from _walk_parts(child)


def parse_gmail_message(raw: dict) -> InboundMessage:
    """
    Gmail 메시지 응답을 플랫폼 중립 메시지로 변환합니다.

    Raises:
        ValidationError: id 또는 threadId가 없거나 본문을 디코딩할 수 없는 경우
    """
    if not isinstance(raw, dict) or not raw.get("id") or not raw.get("threadId"):
        raise ValidationError("Gmail 메시지에 id 또는 threadId가 없습니다")

    payload = raw.get("payload") or {}
    headers: Dict[str, str] = {}
    for header in payload.get("headers") or []:
        key = TRACKED_HEADERS.get(str(header.get("name", "")).lower())
        if key and key not in headers:
            headers[key] = header.get("value", "")

    text_parts: List[str] = []
    html_parts: List[str] = []
    attachments: List[dict] = []

    try:
        for part in _walk_parts(payload):
            body = part.get("body") or {}
            mime_type = part.get("mimeType", "")

            if part.get("filename") and body.get("attachmentId"):
                attachments.append({
                    "filename": part["filename"],
                    "mime_type": mime_type,
                    "size": body.get("size", 0),
                    "attachment_id": body["attachmentId"],
                })
                continue

            data = body.get("data")
            if not data:
                continue
            if mime_type == "text/plain":
                text_parts.append(decode_base64url(data))
            elif mime_type == "text/html":
                html_parts.append(decode_base64url(data))
    except (ValueError, TypeError) as e:
        raise ValidationError(f"Gmail 메시지 본문 디코딩 실패: {raw.get('id')}") from e

    sent_at: Optional[datetime] = None
    internal_date = raw.get("internalDate")
    if internal_date:
        try:
            sent_at = datetime.fromtimestamp(int(internal_date) / 1000, tz=timezone.utc).replace(tzinfo=None)
        except (ValueError, TypeError, OverflowError) as e:
            raise ValidationError(f"잘못된 internalDate: {internal_date}") from e

    attributes = {
        **headers,
        "label_ids": raw.get("labelIds", []),
        "snippet": raw.get("snippet"),
        "html": "".join(html_parts) or None,
        "attachments": attachments,
    }

    return InboundMessage(
        kind=Platform.GMAIL,
        external_thread_id=raw["threadId"],
        thread_title=headers.get("subject"),
        author=headers.get("from"),
        body="".join(text_parts) or raw.get("snippet"),
        sent_at=sent_at,
        attributes=attributes,
    )


class MailHistorySyncUseCase:
    """메일 히스토리 증분 동기화 유즈케이스"""

    PROCESSED = "processed"
    SKIPPED = "skipped"
    FAILED = "failed"

    def __init__(
        self,
        gmail_client: GmailApiPort,
        reconciler: ConversationReconciler,
        unit_of_work_factory: UnitOfWorkFactory,
        logger: LoggerPort,
    ):
        self.gmail_client = gmail_client
        self.reconciler = reconciler
        self.unit_of_work_factory = unit_of_work_factory
        self.logger = logger

    async def sync_account(self, account_id: UUID) -> SyncResult:
        """
        계정의 커서 이후 변경을 동기화합니다.

        Args:
            account_id: 계정 ID

        Returns:
            시작/종료 커서와 처리 건수

        Raises:
            AuthError: 메일함 토큰이 유효하지 않은 경우 (그때까지의 진행은 저장됨)
            TransientError: 이력 조회가 일시적으로 실패한 경우
        """
        async with self.unit_of_work_factory() as uow:
            cursor = await uow.cursors.get(account_id)
            integration = await uow.integrations.get_for_account(account_id, Platform.GMAIL)

        if cursor is None:
            self.logger.info(f"동기화 커서가 없어 건너뜁니다: {account_id}")
            return SyncResult(account_id=account_id)

        result = SyncResult(account_id=account_id, start_position=cursor.position)
        if integration is None:
            self.logger.warning(f"Gmail 연동이 없어 건너뜁니다: {account_id}")
            return result

        token = integration.access_token
        records, final_history_id = await self._collect_history(account_id, token, cursor.position)

        if not records:
            self.logger.debug(f"새 히스토리 없음: {account_id}, cursor={cursor.position}")
            return result

        self.logger.info(f"히스토리 동기화 시작: {account_id}, cursor={cursor.position}, records={len(records)}")

        safe_position = cursor.position
        failure_seen = False
        seen: Set[str] = set()

        try:
            for record in records:
                record_ok = True
                for message_id in self._added_message_ids(record):
                    if message_id in seen:
                        continue
                    seen.add(message_id)

                    outcome = await self._sync_message(account_id, token, message_id)
                    if outcome == self.PROCESSED:
                        result.processed_count += 1
                    elif outcome == self.SKIPPED:
                        result.skipped_count += 1
                    else:
                        result.failed_count += 1
                        record_ok = False

                if not record_ok:
                    failure_seen = True
                elif not failure_seen and record.get("id"):
                    safe_position = str(record["id"])
        except AuthError:
            await self._save_position(account_id, cursor.position, safe_position)
            result.end_position = safe_position
            self.logger.error(f"메일함 인증 실패로 동기화 중단: {account_id}, cursor={safe_position}")
            raise

        if failure_seen or not final_history_id:
            end_position = safe_position
        else:
            end_position = str(final_history_id)

        await self._save_position(account_id, cursor.position, end_position)
        result.end_position = end_position

        self.logger.info(
            f"히스토리 동기화 완료: {account_id}, processed={result.processed_count}, "
            f"skipped={result.skipped_count}, failed={result.failed_count}, cursor={end_position}"
        )
        return result

    async def _collect_history(self, account_id: UUID, token: str, start_history_id: str):
        """히스토리 전체 페이지를 순서대로 수집합니다."""
        records: List[dict] = []
        final_history_id: Optional[str] = None
        page_token: Optional[str] = None

        while True:
            try:
                page = await self.gmail_client.list_history(token, start_history_id, page_token)
            except RequestError as e:
                if e.status_code == 404:
                    await self._recover_expired_cursor(account_id, token, start_history_id)
                    return [], None
                raise

            records.extend(page.get("history") or [])
            if page.get("historyId"):
                final_history_id = str(page["historyId"])
            page_token = page.get("nextPageToken")
            if not page_token:
                break

        return records, final_history_id

    async def _recover_expired_cursor(self, account_id: UUID, token: str, start_history_id: str) -> None:
        """보관 기간이 지난 커서를 현재 메일함 위치로 재설정합니다."""
        profile = await self.gmail_client.get_profile(token)
        history_id = profile.get("historyId")
        if not history_id:
            raise ValidationError("메일함 프로필에 historyId가 없습니다")

        async with self.unit_of_work_factory() as uow:
            await uow.cursors.save(account_id, str(history_id))
        self.logger.warning(
            f"만료된 히스토리 커서 재설정: {account_id}, {start_history_id} -> {history_id}"
        )

    @staticmethod
    def _added_message_ids(record: dict) -> List[str]:
        """이력 레코드에서 추가된 메시지 ID를 순서대로 추출합니다."""
        added = record.get("messagesAdded")
        if added:
            refs = [item.get("message") or {} for item in added]
        else:
            refs = record.get("messages") or []
        return [str(ref["id"]) for ref in refs if isinstance(ref, dict) and ref.get("id")]

    async def _sync_message(self, account_id: UUID, token: str, message_id: str) -> str:
        """메시지 하나를 조회하고 조정합니다."""
        try:
            raw = await self.gmail_client.get_message(token, message_id)
        except AuthError:
            raise
        except RequestError as e:
            if e.status_code == 404:
                self.logger.info(f"삭제된 메시지 건너뜀: {message_id}")
                return self.SKIPPED
            self.logger.warning(f"메시지 조회 실패: {message_id}, 오류: {e}")
            return self.FAILED

        try:
            payload = parse_gmail_message(raw)
        except ValidationError as e:
            self.logger.warning(f"잘못된 메시지 건너뜀: {message_id}, 오류: {e}")
            return self.SKIPPED

        try:
            await self.reconciler.reconcile(account_id, message_id, payload)
        except ValidationError as e:
            # 저장할 수 없는 메시지는 재시도해도 같은 결과
            self.logger.warning(f"저장할 수 없는 메시지 건너뜀: {message_id}, 오류: {e}")
            return self.SKIPPED
        except Exception as e:
            self.logger.error(f"메시지 조정 실패: {message_id}, 오류: {type(e).__name__}: {e}")
            return self.FAILED

        return self.PROCESSED

    async def _save_position(self, account_id: UUID, start_position: str, position: str) -> None:
        if position == start_position:
            return
        async with self.unit_of_work_factory() as uow:
            await uow.cursors.save(account_id, position)


class HistorySyncScheduler:
    """
    계정별 히스토리 동기화 스케줄러

    계정마다 동기화 태스크를 하나만 실행하며, 실행 중 들어온 알림은 한 번의 재실행으로 합쳐집니다.
    서로 다른 계정의 동기화는 동시에 실행됩니다.
    """

    def __init__(
        self,
        syncer: MailHistorySyncUseCase,
        unit_of_work_factory: UnitOfWorkFactory,
        logger: LoggerPort,
        max_attempts: int = 3,
        backoff_initial: float = 1.0,
        backoff_max: float = 30.0,
    ):
        self.syncer = syncer
        self.unit_of_work_factory = unit_of_work_factory
        self.logger = logger
        self.max_attempts = max_attempts
        self.backoff_initial = backoff_initial
        self.backoff_max = backoff_max
        self._running: Dict[UUID, asyncio.Task] = {}
        self._pending: Set[UUID] = set()
        self._accepting = True

    @property
    def running_accounts(self) -> List[UUID]:
        return list(self._running)

    async def notify_mailbox(self, email_address: str, history_id: Optional[str] = None) -> bool:
        """메일함 주소로 계정을 찾아 동기화를 예약합니다."""
        async with self.unit_of_work_factory() as uow:
            integration = await uow.integrations.get_by_external_id(Platform.GMAIL, email_address)

        if integration is None:
            self.logger.warning(f"연동되지 않은 메일함 알림: {email_address}")
            return False

        self.logger.debug(f"메일함 알림 수신: {email_address}, historyId={history_id}")
        return self.schedule(integration.account_id)

    def schedule(self, account_id: UUID) -> bool:
        """계정 동기화를 예약합니다. 실행 중이면 재실행으로 합쳐집니다."""
        if not self._accepting:
            self.logger.warning(f"종료 중이라 동기화를 예약하지 않습니다: {account_id}")
            return False

        if account_id in self._running:
            self._pending.add(account_id)
            return True

        self._running[account_id] = asyncio.create_task(self._run(account_id))
        return True

    async def _run(self, account_id: UUID) -> None:
        try:
            while True:
                self._pending.discard(account_id)
                await self._sync_with_retry(account_id)
                if account_id not in self._pending or not self._accepting:
                    break
        finally:
            self._running.pop(account_id, None)
            self._pending.discard(account_id)

    async def _sync_with_retry(self, account_id: UUID) -> Optional[SyncResult]:
        delay = self.backoff_initial
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await self.syncer.sync_account(account_id)
            except TransientError as e:
                if attempt >= self.max_attempts:
                    self.logger.error(f"동기화 재시도 한도 초과: {account_id}, 오류: {e}")
                    return None
                self.logger.warning(f"일시적 오류로 동기화 재시도 ({attempt}/{self.max_attempts}): {account_id}, {e}")
                await asyncio.sleep(delay)
                delay = min(delay * 2, self.backoff_max)
            except AuthError as e:
                self.logger.error(f"메일함 재인증이 필요합니다: {account_id}, 오류: {e}")
                return None
            except Exception as e:
                self.logger.error(f"동기화 실패: {account_id}, 오류: {type(e).__name__}: {e}")
                return None
        return None

    async def drain(self, timeout: float) -> None:
        """새 예약을 막고 실행 중인 동기화를 timeout 동안 기다립니다."""
        self._accepting = False
        tasks = list(self._running.values())
        if not tasks:
            return

        self.logger.info(f"실행 중인 동기화 대기: {len(tasks)}개")
        _, pending = await asyncio.wait(tasks, timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            self.logger.warning(f"종료 시간 초과로 동기화 {len(pending)}개 중단 (재시작 시 재전달)")
