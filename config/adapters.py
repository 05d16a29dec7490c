"""
설정 어댑터

페이스북 웹훅, Gmail 푸시 구독, 동기화 작업자 설정을 제공하는 설정 어댑터입니다.
"""

import os
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.domain.errors import ConfigurationError
from core.domain.ports import ConfigPort


DEFAULT_FACEBOOK_PERMISSIONS = "manage_pages, pages_show_list, pages_messaging"


class BaseConfig(BaseSettings, ConfigPort):
    """기본 설정 클래스"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # 환경 설정
    environment: str = Field(default="development")
    debug: bool = Field(default=False)

    # 데이터베이스 설정
    database_url: str = Field(...)

    # 암호화 설정
    encryption_key: str = Field(...)

    # 페이스북 설정
    facebook_app_id: str = Field(...)
    facebook_app_secret: str = Field(...)
    facebook_verify_token: Optional[str] = Field(default=None)
    facebook_permissions: Optional[str] = Field(default=None)
    facebook_graph_version: str = Field(default="v3.2")

    # OAuth 리다이렉트 설정
    domain: str = Field(default="http://localhost:5000")
    main_app_domain: str = Field(default="http://localhost:3000")

    # Gmail 푸시 구독 설정
    gmail_push_enabled: bool = Field(default=False)
    google_project_id: Optional[str] = Field(default=None)
    google_topic: Optional[str] = Field(default=None)
    google_subscription_name: Optional[str] = Field(default=None)
    google_application_credentials: Optional[str] = Field(default=None)
    pubsub_backoff_initial: float = Field(default=1.0)
    pubsub_backoff_max: float = Field(default=60.0)

    # 스레드 탐색 설정
    thread_max_depth: int = Field(default=10, ge=1)
    thread_max_nodes: int = Field(default=3000, ge=1)
    thread_concurrency: int = Field(default=4, ge=1)

    # 웹훅 작업자 설정
    webhook_workers: int = Field(default=2, ge=1)
    webhook_max_attempts: int = Field(default=3, ge=1)
    webhook_queue_size: int = Field(default=1000, ge=1)

    # 동기화 설정
    sync_max_attempts: int = Field(default=3, ge=1)
    shutdown_timeout: float = Field(default=10.0)

    # 로깅 설정
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    # 웹 서버 설정
    web_host: str = Field(default="0.0.0.0")
    web_port: int = Field(default=5000)

    @field_validator("encryption_key")
    @classmethod
    def validate_encryption_key(cls, v):
        """암호화 키 검증"""
        if len(v) < 32:
            # 32바이트 미만이면 패딩
            v = v.ljust(32, '0')
        elif len(v) > 32:
            v = v[:32]
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """로그 레벨 검증"""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"로그 레벨은 {valid_levels} 중 하나여야 합니다")
        return v.upper()

    # ConfigPort 인터페이스 구현
    def get_environment(self) -> str:
        return self.environment

    def is_debug(self) -> bool:
        return self.debug

    def get_database_url(self) -> str:
        return self.database_url

    def get_encryption_key(self) -> str:
        return self.encryption_key

    def get_facebook_app_id(self) -> str:
        return self.facebook_app_id

    def get_facebook_app_secret(self) -> str:
        return self.facebook_app_secret

    def get_facebook_verify_token(self) -> str:
        # 별도 토큰이 없으면 앱 ID를 검증 토큰으로 사용
        return self.facebook_verify_token or self.facebook_app_id

    def get_facebook_permissions(self) -> str:
        return self.facebook_permissions or DEFAULT_FACEBOOK_PERMISSIONS

    def get_facebook_graph_version(self) -> str:
        return self.facebook_graph_version

    def get_domain(self) -> str:
        return self.domain.rstrip("/")

    def get_main_app_domain(self) -> str:
        return self.main_app_domain.rstrip("/")

    def is_gmail_push_enabled(self) -> bool:
        return self.gmail_push_enabled

    def get_pubsub_config(self) -> dict:
        """Pub/Sub 설정 조회"""
        return {
            "project_id": self.google_project_id,
            "topic": self.google_topic,
            "subscription": self.google_subscription_name,
            "credentials_file": self.google_application_credentials,
            "backoff_initial": self.pubsub_backoff_initial,
            "backoff_max": self.pubsub_backoff_max,
        }

    def validate_push_settings(self) -> None:
        """푸시 구독 필수 설정을 검증합니다."""
        if not self.google_topic:
            raise ConfigurationError("GOOGLE_TOPIC 설정이 없습니다")
        if not self.google_subscription_name:
            raise ConfigurationError("GOOGLE_SUBSCRIPTION_NAME 설정이 없습니다")

    def get_thread_limits(self) -> dict:
        """스레드 탐색 제한 조회"""
        return {
            "max_depth": self.thread_max_depth,
            "max_nodes": self.thread_max_nodes,
            "concurrency": self.thread_concurrency,
        }

    def get_webhook_config(self) -> dict:
        """웹훅 작업자 설정 조회"""
        return {
            "workers": self.webhook_workers,
            "max_attempts": self.webhook_max_attempts,
            "queue_size": self.webhook_queue_size,
        }

    def get_sync_max_attempts(self) -> int:
        return self.sync_max_attempts

    def get_shutdown_timeout(self) -> float:
        return self.shutdown_timeout

    def get_log_level(self) -> str:
        return self.log_level

    def get_log_format(self) -> str:
        return self.log_format

    def get_web_config(self) -> dict:
        """웹 서버 설정 조회"""
        return {
            "host": self.web_host,
            "port": self.web_port,
        }


class DevelopmentConfig(BaseConfig):
    """개발 환경 설정"""

    environment: str = "development"
    debug: bool = True
    log_level: str = "DEBUG"

    # 개발용 기본값들
    database_url: str = Field(default="sqlite+aiosqlite:///./dev_database.db")

    # 개발용 더미 값들 (실제 사용 시 .env 파일에서 설정)
    encryption_key: str = Field(default="dev_encryption_key_32_bytes_long")
    facebook_app_id: str = Field(default="dev_app_id")
    facebook_app_secret: str = Field(default="dev_app_secret")


class ProductionConfig(BaseConfig):
    """운영 환경 설정"""

    environment: str = "production"
    debug: bool = False
    log_level: str = "INFO"
    gmail_push_enabled: bool = True

    @field_validator("database_url")
    @classmethod
    def validate_production_database_url(cls, v):
        """운영 환경에서는 데이터베이스 URL이 필수"""
        if not v or v.startswith("sqlite"):
            raise ValueError("운영 환경에서는 PostgreSQL 데이터베이스가 필요합니다")
        return v

    @field_validator("facebook_app_secret", "encryption_key")
    @classmethod
    def validate_production_secrets(cls, v):
        """운영 환경에서는 모든 시크릿이 필수"""
        if not v or v.startswith("dev_"):
            raise ValueError("운영 환경에서는 실제 시크릿 값이 필요합니다")
        return v


class TestingConfig(BaseConfig):
    """테스트 환경 설정"""

    __test__ = False

    environment: str = "testing"
    debug: bool = True
    log_level: str = "WARNING"

    database_url: str = Field(default="sqlite+aiosqlite:///:memory:")

    # 테스트용 더미 값들
    encryption_key: str = "test_encryption_key_32_bytes_long"
    facebook_app_id: str = "test_app_id"
    facebook_app_secret: str = "test_app_secret"


class ConfigAdapter:
    """설정 어댑터 팩토리"""

    @staticmethod
    def create_config() -> ConfigPort:
        """환경에 따른 설정 객체를 생성합니다."""
        environment = os.getenv("ENVIRONMENT", "development").lower()

        if environment == "production":
            return ProductionConfig()
        elif environment == "testing":
            return TestingConfig()
        else:
            return DevelopmentConfig()


# 전역 설정 인스턴스 (진입점에서만 사용)
_config: Optional[ConfigPort] = None


def get_config() -> ConfigPort:
    """전역 설정 인스턴스를 반환합니다."""
    global _config
    if _config is None:
        _config = ConfigAdapter.create_config()
    return _config
