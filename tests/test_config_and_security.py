"""설정, 토큰 암호화, 로그 마스킹 테스트"""

import pytest

from core.domain.errors import ConfigurationError
from adapters.external import EncryptionServiceAdapter
from adapters.logger import mask_secrets
from config.adapters import TestingConfig


def test_verify_token_defaults_to_app_id():
    config = TestingConfig()

    assert config.get_facebook_verify_token() == "test_app_id"


def test_explicit_verify_token_wins():
    config = TestingConfig(facebook_verify_token="hub-secret")

    assert config.get_facebook_verify_token() == "hub-secret"


def test_push_settings_require_topic_and_subscription():
    with pytest.raises(ConfigurationError):
        TestingConfig().validate_push_settings()

    TestingConfig(google_topic="projects/p/topics/t", google_subscription_name="s").validate_push_settings()


def test_domains_are_normalized():
    config = TestingConfig(domain="https://sync.example.com/", main_app_domain="https://app.example.com/")

    assert config.get_domain() == "https://sync.example.com"
    assert config.get_main_app_domain() == "https://app.example.com"


def test_invalid_log_level_is_rejected():
    with pytest.raises(ValueError):
        TestingConfig(log_level="LOUD")


def test_thread_limits_must_be_positive():
    with pytest.raises(ValueError):
        TestingConfig(thread_max_depth=0)


def test_default_permissions_are_page_scopes():
    assert "pages_show_list" in TestingConfig().get_facebook_permissions()


async def test_encryption_round_trip(logger):
    service = EncryptionServiceAdapter("k" * 32, logger)

    encrypted = await service.encrypt("page-token")

    assert encrypted != "page-token"
    assert await service.decrypt(encrypted) == "page-token"
    assert service.verify_key()


async def test_decrypt_with_other_key_fails(logger):
    encrypted = await EncryptionServiceAdapter("a" * 32, logger).encrypt("page-token")

    with pytest.raises(ConfigurationError):
        await EncryptionServiceAdapter("b" * 32, logger).decrypt(encrypted)


def test_empty_encryption_key_is_rejected(logger):
    with pytest.raises(ConfigurationError):
        EncryptionServiceAdapter("", logger)


def test_mask_secrets_hides_tokens():
    text = "GET /me?access_token=EAAB123&fields=id Authorization: Bearer ya29.abc client_secret=s3cr3t"

    masked = mask_secrets(text)

    assert "EAAB123" not in masked
    assert "ya29.abc" not in masked
    assert "s3cr3t" not in masked
    assert "fields=id" in masked


def test_web_config_describes_single_process_server():
    config = TestingConfig(web_host="127.0.0.1", web_port=8080)

    assert config.get_web_config() == {"host": "127.0.0.1", "port": 8080}
