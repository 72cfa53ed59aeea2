"""
Shopify webhook receivers: mandatory privacy (GDPR) topics and app webhooks.

Bodies are authenticated with X-Shopify-Hmac-Sha256. Data export/erasure is
handled outside this service; receipt is acknowledged synchronously and no
tenant record is deleted here.
"""
import enum
import logging
from typing import Optional

from fastapi import APIRouter, Header, Request
from fastapi.responses import JSONResponse

from app.config import settings
from app.connectors.shopify import verify_webhook_hmac
from app.schemas import WebhookAck

router = APIRouter(prefix="/shopify")
logger = logging.getLogger(__name__)


class GdprRequest(str, enum.Enum):
    CUSTOMERS_DATA_REQUEST = "customers-data-request"
    CUSTOMERS_DATA_DELETE = "customers-data-delete"
    SHOP_DATA_DELETE = "shop-data-delete"


def _invalid_hmac(kind: str, shop: Optional[str]) -> JSONResponse:
    logger.warning("Rejected %s webhook with invalid HMAC (shop=%s)", kind, shop)
    return JSONResponse(status_code=401, content={"error": "Invalid HMAC"})


@router.post("/gdpr/{request_type}", response_model=WebhookAck)
async def gdpr_webhook(
    request_type: GdprRequest,
    request: Request,
    x_shopify_hmac_sha256: Optional[str] = Header(None),
    x_shopify_shop_domain: Optional[str] = Header(None),
):
    """Acknowledge a customer data request, customer redaction or shop redaction."""
    payload = await request.body()
    if not verify_webhook_hmac(payload, x_shopify_hmac_sha256, settings.shopify_api_secret):
        return _invalid_hmac(request_type.value, x_shopify_shop_domain)
    logger.info("GDPR %s received for shop=%s", request_type.value, x_shopify_shop_domain)
    return WebhookAck(topic=request_type.value)


@router.post("/webhooks", response_model=WebhookAck)
async def app_webhook(
    request: Request,
    x_shopify_hmac_sha256: Optional[str] = Header(None),
    x_shopify_topic: Optional[str] = Header(None),
    x_shopify_shop_domain: Optional[str] = Header(None),
):
    """Receiver for topics registered at authorization (e.g. app/uninstalled)."""
    payload = await request.body()
    if not verify_webhook_hmac(payload, x_shopify_hmac_sha256, settings.shopify_api_secret):
        return _invalid_hmac(x_shopify_topic or "app", x_shopify_shop_domain)
    logger.info("Webhook %s received for shop=%s", x_shopify_topic, x_shopify_shop_domain)
    return WebhookAck(topic=x_shopify_topic or "unknown")
