import base64
import os

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC


class CryptoManager:
    """
    客户端加密: 数据在上传前用主密码派生的密钥加密，服务端只保存密文。
    """

    def __init__(self, iterations: int = 600000):
        self._iterations = iterations
        self._fernet: Fernet | None = None

    @property
    def is_unlocked(self) -> bool:
        return self._fernet is not None

    def generate_salt(self) -> str:
        salt = os.urandom(16)
        return base64.urlsafe_b64encode(salt).decode("utf-8")

    def derive_key(self, master_password: str, salt_b64: str) -> None:
        salt = base64.urlsafe_b64decode(salt_b64)
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=self._iterations,
        )
        key = base64.urlsafe_b64encode(kdf.derive(master_password.encode("utf-8")))
        self._fernet = Fernet(key)

    def lock(self) -> None:
        self._fernet = None

    def encrypt_bytes(self, data: bytes) -> bytes:
        if not self._fernet:
            raise ValueError("Vault is locked. Please derive key first.")
        return self._fernet.encrypt(data)

    def decrypt_bytes(self, token: bytes) -> bytes:
        if not self._fernet:
            raise ValueError("Vault is locked.")
        try:
            return self._fernet.decrypt(token)
        except InvalidToken as e:
            raise ValueError("Invalid Master Password or Corrupted Data") from e
