"""
Credential encryption for platform access tokens.

Fernet (AES-CBC + HMAC-SHA256, random IV per token) so equal plaintexts never
produce equal ciphertexts and tampering is detected. ENCRYPTION_KEY may hold
several comma-separated keys: the first encrypts, all of them decrypt.
"""
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken, MultiFernet

from app.config import Settings
from app.errors import CryptoError


class CredentialCipher:
    """Encrypt/decrypt access tokens before they touch the tenant store."""

    def __init__(self, keys: list[bytes]):
        if not keys:
            raise CryptoError("No encryption key configured (ENCRYPTION_KEY)")
        try:
            self._fernet = MultiFernet([Fernet(k) for k in keys])
        except (ValueError, TypeError):
            # Fernet raises ValueError for keys that are not 32 url-safe base64 bytes
            raise CryptoError("ENCRYPTION_KEY is not a valid Fernet key") from None

    @classmethod
    def from_secret(cls, secret: Optional[str]) -> "CredentialCipher":
        keys = [k.strip().encode() for k in (secret or "").split(",") if k.strip()]
        return cls(keys)

    @classmethod
    def from_settings(cls, settings: Settings) -> "CredentialCipher":
        return cls.from_secret(settings.encryption_key)

    def encrypt(self, token: str) -> str:
        if not token:
            raise CryptoError("Refusing to encrypt an empty token")
        return self._fernet.encrypt(token.encode("utf-8")).decode("ascii")

    def decrypt(self, ciphertext: str) -> str:
        if not ciphertext:
            raise CryptoError("No ciphertext to decrypt")
        try:
            return self._fernet.decrypt(ciphertext.encode("ascii")).decode("utf-8")
        except (InvalidToken, UnicodeError):
            raise CryptoError("Credential could not be decrypted (corrupt or wrong key)") from None

    def rotate(self, ciphertext: str) -> str:
        """Re-encrypt under the primary (first) key."""
        try:
            return self._fernet.rotate(ciphertext.encode("ascii")).decode("ascii")
        except (InvalidToken, UnicodeError):
            raise CryptoError("Credential could not be rotated (corrupt or wrong key)") from None
