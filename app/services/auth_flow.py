"""
Authorization flow: begin (redirect to provider) and complete (validate callback,
store encrypted credential, register webhooks).

Webhook registration is best-effort per topic. A failed topic is reported in
the outcome but never demotes an otherwise successful authorization.
"""
import enum
import logging
import secrets
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

from app.errors import (
    AuthError,
    CryptoError,
    StoreUnavailable,
    ValidationError,
    WebhookRegistrationError,
)
from app.connectors.shopify import AuthorizedShop, normalize_shop_domain
from app.models import Tenant
from app.security.cipher import CredentialCipher
from app.store.tenants import TenantStore

logger = logging.getLogger(__name__)


class AuthorizationProvider(Protocol):
    def authorization_url(self, shop: str, state: str) -> str: ...

    def validate_callback(self, params: dict[str, str], expected_state: Optional[str]) -> AuthorizedShop: ...

    def register_webhook(self, shop: str, access_token: str, topic: str, address: str) -> dict[str, Any]: ...


class AuthState(str, enum.Enum):
    UNAUTHORIZED = "unauthorized"
    PENDING_CALLBACK = "pending_callback"
    AUTHORIZED = "authorized"
    FAILED = "failed"


@dataclass
class AuthorizationRequest:
    url: str
    state: str  # nonce the callback must echo back
    status: AuthState = AuthState.PENDING_CALLBACK


@dataclass
class WebhookResult:
    topic: str
    registered: bool
    error: Optional[str] = None


@dataclass
class AuthorizationOutcome:
    tenant: Tenant
    status: AuthState = AuthState.AUTHORIZED
    webhooks: list[WebhookResult] = field(default_factory=list)

    @property
    def webhooks_complete(self) -> bool:
        return all(w.registered for w in self.webhooks)


class AuthorizationFlowController:
    """Drives Unauthorized -> PendingCallback -> Authorized (or Failed) for one shop."""

    def __init__(
        self,
        store: TenantStore,
        cipher: CredentialCipher,
        provider: AuthorizationProvider,
        webhook_topics: list[str],
        webhook_address: str,
    ):
        self.store = store
        self.cipher = cipher
        self.provider = provider
        self.webhook_topics = webhook_topics
        self.webhook_address = webhook_address

    def begin_authorization(self, shop: str) -> AuthorizationRequest:
        shop_id = normalize_shop_domain(shop)
        if not shop_id:
            raise ValidationError({"shop": "must be a shop domain such as example.myshopify.com"})
        state = secrets.token_urlsafe(24)
        url = self.provider.authorization_url(shop_id, state)
        logger.info("Authorization started for shop=%s", shop_id)
        return AuthorizationRequest(url=url, state=state)

    def complete_authorization(
        self, params: dict[str, str], expected_state: Optional[str]
    ) -> AuthorizationOutcome:
        try:
            authorized = self.provider.validate_callback(params, expected_state)
            ciphertext = self.cipher.encrypt(authorized.access_token)
            tenant = self.store.upsert(
                authorized.shop_id,
                access_token=ciphertext,
                scope=authorized.scope,
            )
        except AuthError as e:
            logger.warning("Authorization failed for shop=%s: %s", params.get("shop"), e)
            e.status = AuthState.FAILED
            raise
        except (CryptoError, StoreUnavailable) as e:
            logger.error(
                "Authorization failed for shop=%s: could not persist credential (%s)",
                params.get("shop"),
                e.__class__.__name__,
            )
            failure = AuthError("Credential could not be stored")
            failure.status = AuthState.FAILED
            raise failure from e

        logger.info("Authorization completed for shop=%s", tenant.shop_id)
        webhooks = self._register_webhooks(tenant)
        return AuthorizationOutcome(tenant=tenant, webhooks=webhooks)

    def _register_webhooks(self, tenant: Tenant) -> list[WebhookResult]:
        if not self.webhook_topics:
            return []
        # Decrypt at the point of use, from what was actually persisted
        try:
            token = self.cipher.decrypt(tenant.access_token)
        except CryptoError as e:
            logger.error("Skipping webhook registration for shop=%s: %s", tenant.shop_id, e)
            return [WebhookResult(t, registered=False, error="credential unavailable") for t in self.webhook_topics]

        results = []
        for topic in self.webhook_topics:
            try:
                self.provider.register_webhook(tenant.shop_id, token, topic, self.webhook_address)
            except WebhookRegistrationError as e:
                logger.warning("Webhook %s not registered for shop=%s: %s", topic, tenant.shop_id, e.reason)
                results.append(WebhookResult(topic, registered=False, error=e.reason))
            else:
                logger.info("Webhook %s registered for shop=%s", topic, tenant.shop_id)
                results.append(WebhookResult(topic, registered=True))
        return results
