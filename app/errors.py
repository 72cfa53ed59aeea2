"""
Error taxonomy.

Component internals (SQLAlchemy, Fernet, HTTP client) are translated to these
types at the component boundary; app.main maps them to stable JSON responses.
"""
from typing import Optional


class AppError(Exception):
    """Base for all errors the application raises on purpose."""


class CryptoError(AppError):
    """Encryption secret missing/malformed, or ciphertext corrupt / wrong key."""


class AuthError(AppError):
    """The authorization handshake could not be completed."""

    # Set to AuthState.FAILED by the flow controller once the attempt is abandoned
    status = None


class InvalidCallback(AuthError):
    """The provider callback failed validation (HMAC, state, shop or code exchange)."""


class UnknownShop(AppError):
    """No tenant record exists for the shop."""

    def __init__(self, shop_id: str):
        super().__init__(f"Shop not registered: {shop_id}")
        self.shop_id = shop_id


class ValidationError(AppError):
    """Input rejected; `fields` maps field name to a human-readable problem."""

    def __init__(self, fields: dict[str, str], message: str = "Invalid request"):
        super().__init__(message)
        self.message = message
        self.fields = fields


class WebhookRegistrationError(AppError):
    """Registering a single webhook topic failed. Never fatal to authorization."""

    def __init__(self, topic: str, reason: str, status_code: Optional[int] = None):
        super().__init__(f"Webhook registration failed for {topic}: {reason}")
        self.topic = topic
        self.reason = reason
        self.status_code = status_code


class StoreUnavailable(AppError):
    """The tenant store could not be reached or the operation failed."""
