"""
FastAPI 페이스북 로그인 라우터

OAuth 인증 코드 흐름의 시작과 콜백을 하나의 경로에서 처리합니다.
"""

from typing import Optional

from fastapi import APIRouter, Query, Request
from fastapi.responses import PlainTextResponse, RedirectResponse

from core.domain.errors import RequestError, ValidationError
from adapters.logger import create_logger

router = APIRouter(tags=["oauth"])
logger = create_logger("oauth_router")


@router.get("/fblogin")
async def facebook_login(
    request: Request,
    code: Optional[str] = Query(None, description="인증 코드"),
    error: Optional[str] = Query(None, description="오류 코드"),
):
    """페이스북 로그인을 처리합니다."""
    # 사용자가 권한 동의를 거부한 경우
    if error:
        logger.info(f"페이스북 로그인 거부: {error}")
        return PlainTextResponse("access denied")

    usecase = request.app.state.factory.create_facebook_login_usecase()

    if not code:
        return RedirectResponse(url=usecase.get_authorization_url())

    try:
        await usecase.complete_login(code)
    except (RequestError, ValidationError) as e:
        logger.error(f"페이스북 로그인 실패: {type(e).__name__}: {e}")
        return PlainTextResponse("Facebook login failed", status_code=502)

    return RedirectResponse(url=usecase.success_url)
