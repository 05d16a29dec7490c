"""
FastAPI 웹훅 라우터

페이스북 페이지 웹훅의 검증 핸드셰이크와 이벤트 수신을 처리합니다.
이벤트 수신은 디스패처 큐에 넣은 뒤 즉시 응답하며 조정 작업을 기다리지 않습니다.
"""

import json
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse

from core.domain.entities import Platform
from core.usecases.webhook_processing import verify_subscription
from adapters.logger import create_logger

router = APIRouter(prefix="/service", tags=["webhook"])
logger = create_logger("webhook_router")

VERIFICATION_MISMATCH = "Verification token mismatch"


def _ensure_known_target(request: Request, platform: str, app_id: str) -> None:
    """설정된 플랫폼/앱 ID의 경로가 아니면 404를 반환합니다."""
    config = request.app.state.config
    if platform != Platform.FACEBOOK.value or app_id != config.get_facebook_app_id():
        raise HTTPException(status_code=404, detail="Not Found")


@router.get("/{platform}/{app_id}/webhook-callback", response_class=PlainTextResponse)
async def verify_webhook(
    request: Request,
    platform: str,
    app_id: str,
    hub_mode: Optional[str] = Query(None, alias="hub.mode"),
    hub_challenge: Optional[str] = Query(None, alias="hub.challenge"),
    hub_verify_token: Optional[str] = Query(None, alias="hub.verify_token"),
):
    """웹훅 검증 요청에 challenge 값을 돌려줍니다."""
    _ensure_known_target(request, platform, app_id)

    config = request.app.state.config
    challenge = verify_subscription(
        hub_mode,
        hub_challenge,
        hub_verify_token,
        config.get_facebook_verify_token(),
    )
    if challenge is None:
        logger.warning(f"웹훅 검증 실패: mode={hub_mode}")
        return PlainTextResponse(VERIFICATION_MISMATCH)

    logger.info("웹훅 검증 성공")
    return PlainTextResponse(challenge)


@router.post("/{platform}/{app_id}/webhook-callback", response_class=PlainTextResponse)
async def receive_webhook(request: Request, platform: str, app_id: str):
    """웹훅 이벤트를 비동기 처리 큐에 넘기고 즉시 응답합니다."""
    _ensure_known_target(request, platform, app_id)

    body = await request.body()
    try:
        payload = json.loads(body)
    except ValueError:
        # 재전송 반복을 막기 위해 잘못된 본문도 성공으로 응답
        logger.warning(f"잘못된 웹훅 본문: {body[:200]!r}")
        return PlainTextResponse("success")

    dispatcher = request.app.state.dispatcher
    if not dispatcher.submit(payload):
        logger.error("웹훅 이벤트를 큐에 넣지 못했습니다")

    return PlainTextResponse("success")
