"""
암호화 서비스 어댑터

저장소에 기록되는 계정/연동 토큰의 암호화/복호화를 담당하는 어댑터입니다.
PBKDF2로 유도한 키와 Fernet 대칭 암호화를 사용합니다.
"""

import base64

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from core.domain.errors import ConfigurationError
from core.domain.ports import EncryptionServicePort, LoggerPort

KEY_SALT = b'conversation_sync_token_salt'
KEY_ITERATIONS = 100000


class EncryptionServiceAdapter(EncryptionServicePort):
    """토큰 암호화 서비스 어댑터"""

    def __init__(self, encryption_key: str, logger: LoggerPort):
        if not encryption_key:
            raise ConfigurationError("ENCRYPTION_KEY 설정이 없습니다")
        self.logger = logger
        self._fernet = self._create_fernet(encryption_key)

    def _create_fernet(self, password: str) -> Fernet:
        """암호화 키로부터 Fernet 인스턴스를 생성합니다."""
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=KEY_SALT,
            iterations=KEY_ITERATIONS,
        )
        key = base64.urlsafe_b64encode(kdf.derive(password.encode()))
        return Fernet(key)

    async def encrypt(self, data: str) -> str:
        """토큰을 암호화합니다."""
        if not data:
            return ""
        return self._fernet.encrypt(data.encode()).decode()

    async def decrypt(self, encrypted_data: str) -> str:
        """암호화된 토큰을 복호화합니다."""
        if not encrypted_data:
            return ""
        try:
            return self._fernet.decrypt(encrypted_data.encode()).decode()
        except InvalidToken as e:
            self.logger.error("토큰 복호화 실패: 암호화 키가 변경되었거나 데이터가 손상되었습니다")
            raise ConfigurationError("저장된 토큰을 복호화할 수 없습니다") from e

    def verify_key(self, test_data: str = "convsync_key_check") -> bool:
        """암호화 키로 왕복 변환이 가능한지 검증합니다."""
        try:
            encrypted = self._fernet.encrypt(test_data.encode())
            return self._fernet.decrypt(encrypted).decode() == test_data
        except InvalidToken:
            self.logger.error("암호화 키 검증 실패")
            return False
