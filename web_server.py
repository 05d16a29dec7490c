"""
FastAPI 웹 서버

페이스북 웹훅 수신과 페이스북 로그인을 위한 HTTP 인터페이스를 제공합니다.
서버 수명 동안 웹훅 디스패처와 Gmail 푸시 구독 관리자를 함께 실행합니다.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI

from core.domain.ports import ConfigPort
from adapters.factory import AdapterFactory
from adapters.logger import create_logger
from adapters.web.oauth_routes import router as oauth_router
from adapters.web.webhook_routes import router as webhook_router
from config.adapters import get_config

# 로거 설정
logger = create_logger("web_server")


def create_app(
    config: Optional[ConfigPort] = None,
    factory: Optional[AdapterFactory] = None,
) -> FastAPI:
    """설정과 어댑터 팩토리로 FastAPI 앱을 생성합니다."""
    config = config or (factory.get_config() if factory else get_config())
    factory = factory or AdapterFactory(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("FastAPI 웹 서버 시작")

        # 리스너를 시작하기 전에 설정 오류를 확인
        push_enabled = config.is_gmail_push_enabled()
        if push_enabled:
            config.validate_push_settings()

        database = factory.get_database()
        dispatcher = None
        push_manager = None
        push_task = None

        try:
            # 데이터베이스 초기화
            await database.initialize()
            await database.create_tables()

            if push_enabled:
                push_manager = factory.create_push_subscription_manager()

            dispatcher = factory.create_event_dispatcher()
            await dispatcher.start()

            app.state.config = config
            app.state.factory = factory
            app.state.dispatcher = dispatcher

            if push_manager is not None:
                push_task = asyncio.create_task(push_manager.run())

            logger.info(f"환경: {config.get_environment()}")
            logger.info("웹 서버 준비 완료")

            yield
        finally:
            logger.info("FastAPI 웹 서버 종료")
            timeout = config.get_shutdown_timeout()

            if push_task is not None:
                await push_manager.stop(timeout)
                try:
                    await asyncio.wait_for(push_task, timeout)
                except asyncio.TimeoutError:
                    logger.warning("푸시 구독 작업이 제한 시간 내에 종료되지 않았습니다")
                except Exception as e:
                    logger.error(f"푸시 구독 작업 오류: {type(e).__name__}: {e}")
            if push_manager is not None:
                push_manager.subscriber.close()

            if dispatcher is not None:
                await dispatcher.stop(timeout)
            await factory.create_history_sync_scheduler().drain(timeout)

            # 데이터베이스 연결 종료
            await database.close()

    app = FastAPI(
        title="Conversation Sync 서비스",
        description="페이스북 웹훅과 Gmail 푸시 알림을 대화로 동기화하는 서비스",
        version="1.0.0",
        lifespan=lifespan,
    )

    # 라우터 등록
    app.include_router(webhook_router)
    app.include_router(oauth_router)

    @app.get("/health")
    async def health():
        """상태 확인"""
        return {
            "status": "ok",
            "pending_webhooks": app.state.dispatcher.pending_count,
        }

    return app


def run_server(config: Optional[ConfigPort] = None) -> None:
    """uvicorn으로 웹 서버를 실행합니다."""
    config = config or get_config()
    web_config = config.get_web_config()

    uvicorn.run(
        create_app(config),
        host=web_config["host"],
        port=web_config["port"],
        log_level=config.get_log_level().lower(),
    )


if __name__ == "__main__":
    run_server()
