"""Shopify connector: OAuth 2.0 authorization code flow, HMAC checks, webhook registration."""
import base64
import hashlib
import hmac
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Optional

import requests
from authlib.common.errors import AuthlibBaseError
from authlib.integrations.requests_client import OAuth2Session

from app.config import Settings, settings as default_settings
from app.errors import InvalidCallback, WebhookRegistrationError

logger = logging.getLogger(__name__)

# Lowercase hostname with at least one dot, e.g. a.myshopify.com
SHOP_DOMAIN_RE = re.compile(r"^[a-z0-9][a-z0-9-]*(\.[a-z0-9][a-z0-9-]*)+$")
MAX_LEN_SHOP = 255


def normalize_shop_domain(shop: Optional[str]) -> Optional[str]:
    """Return the canonical shop domain, or None if it is not a plain hostname."""
    if not shop:
        return None
    shop = shop.strip().lower()
    if len(shop) > MAX_LEN_SHOP or not SHOP_DOMAIN_RE.match(shop):
        return None
    return shop


def get_oauth_client(settings: Settings = default_settings) -> OAuth2Session:
    """Build the app's OAuth2 client; shop-specific URLs are passed per call."""
    return OAuth2Session(
        client_id=settings.shopify_api_key,
        client_secret=settings.shopify_api_secret,
        redirect_uri=settings.redirect_uri,
        scope=",".join(settings.scopes),  # Shopify expects comma-separated scopes
        token_endpoint_auth_method="client_secret_post",
    )


def get_authorization_url(shop: str, state: str, settings: Settings = default_settings) -> str:
    """Generate the install/authorize URL the merchant is redirected to."""
    client = get_oauth_client(settings)
    url, _ = client.create_authorization_url(
        f"https://{shop}/admin/oauth/authorize",
        state=state,
    )
    return url


def exchange_code_for_token(shop: str, code: str, settings: Settings = default_settings) -> dict[str, Any]:
    """Exchange authorization code for an offline access token."""
    client = get_oauth_client(settings)
    return client.fetch_token(
        f"https://{shop}/admin/oauth/access_token",
        code=code,
        timeout=settings.provider_timeout_seconds,
    )


def verify_callback_hmac(params: dict[str, str], secret: str) -> bool:
    """Check the hex HMAC Shopify appends to OAuth redirects (sorted query, hmac removed)."""
    received = params.get("hmac")
    if not received or not secret:
        return False
    message = "&".join(
        f"{k}={v}" for k, v in sorted(params.items()) if k not in ("hmac", "signature")
    )
    computed = hmac.new(secret.encode(), message.encode(), hashlib.sha256).hexdigest()
    return hmac.compare_digest(computed.encode(), received.encode())


def verify_webhook_hmac(payload: bytes, hmac_header: Optional[str], secret: str) -> bool:
    """Check the base64 X-Shopify-Hmac-Sha256 header of a webhook body."""
    if not hmac_header or not secret:
        return False
    computed = base64.b64encode(
        hmac.new(secret.encode(), payload, hashlib.sha256).digest()
    ).decode()
    return hmac.compare_digest(computed.encode(), hmac_header.encode())


def register_webhook(
    shop: str,
    access_token: str,
    topic: str,
    address: str,
    settings: Settings = default_settings,
) -> dict[str, Any]:
    """Subscribe `address` to `topic` for one shop. Raises WebhookRegistrationError."""
    url = f"https://{shop}/admin/api/{settings.shopify_api_version}/webhooks.json"
    headers = {"X-Shopify-Access-Token": access_token, "Accept": "application/json"}
    body = {"webhook": {"topic": topic, "address": address, "format": "json"}}
    try:
        r = requests.post(url, json=body, headers=headers, timeout=settings.provider_timeout_seconds)
    except requests.Timeout:
        raise WebhookRegistrationError(topic, "timed out") from None
    except requests.RequestException as e:
        raise WebhookRegistrationError(topic, e.__class__.__name__) from None

    # 422 "address ... has already been taken": subscription exists from an earlier install
    if r.status_code == 422 and "already been taken" in r.text:
        logger.info("Webhook %s already registered for %s", topic, shop)
        return {"topic": topic, "address": address, "existing": True}
    if r.status_code >= 400:
        raise WebhookRegistrationError(topic, f"HTTP {r.status_code}", status_code=r.status_code)
    try:
        return r.json().get("webhook", {})
    except (ValueError, AttributeError):
        raise WebhookRegistrationError(topic, "invalid response", status_code=r.status_code) from None


@dataclass
class AuthorizedShop:
    """Result of a validated OAuth callback."""

    shop_id: str
    access_token: str = field(repr=False)
    scope: str = ""


class ShopifyProvider:
    """Authorization Provider backed by the Shopify admin API."""

    def __init__(self, settings: Settings = default_settings):
        self.settings = settings

    def authorization_url(self, shop: str, state: str) -> str:
        return get_authorization_url(shop, state, self.settings)

    def validate_callback(self, params: dict[str, str], expected_state: Optional[str]) -> AuthorizedShop:
        shop = normalize_shop_domain(params.get("shop"))
        if not shop:
            raise InvalidCallback("Callback has no valid shop")
        if not verify_callback_hmac(params, self.settings.shopify_api_secret):
            raise InvalidCallback("Callback HMAC mismatch")
        state = params.get("state") or ""
        if not expected_state or not hmac.compare_digest(state.encode(), expected_state.encode()):
            raise InvalidCallback("Callback state mismatch")
        code = params.get("code")
        if not code:
            raise InvalidCallback("Callback has no authorization code")

        try:
            token = exchange_code_for_token(shop, code, self.settings)
        except requests.Timeout:
            raise InvalidCallback("Code exchange timed out") from None
        except (AuthlibBaseError, requests.RequestException, ValueError) as e:
            raise InvalidCallback(f"Code exchange failed: {e.__class__.__name__}") from None

        access_token = token.get("access_token")
        if not access_token:
            raise InvalidCallback("Code exchange returned no access token")
        return AuthorizedShop(shop_id=shop, access_token=access_token, scope=token.get("scope", ""))

    def register_webhook(self, shop: str, access_token: str, topic: str, address: str) -> dict[str, Any]:
        return register_webhook(shop, access_token, topic, address, self.settings)
