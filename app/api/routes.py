"""API routes for shop authorization, surcharge configuration and cart checks."""
import logging
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse, RedirectResponse

from app.config import settings
from app.connectors.shopify import normalize_shop_domain
from app.errors import AuthError, UnknownShop
from app.middleware.origin_policy import origin_may_act_for
from app.schemas import (
    CheckCartRequest,
    CheckCartResponse,
    SetConfigRequest,
    SetConfigResponse,
    MAX_LEN_SHOP,
)
from app.api.deps import get_auth_controller, get_tenant_store
from app.services.auth_flow import AuthorizationFlowController
from app.services.configuration import set_configuration
from app.services.surcharge import evaluate
from app.store.tenants import TenantStore

router = APIRouter()
logger = logging.getLogger(__name__)

STATE_COOKIE = "shopify_oauth_state"
STATE_COOKIE_MAX_AGE = 600
ADMIN_PATH = "/admin"


@router.get("/auth")
def authorize(
    shop: str = Query(..., min_length=1, max_length=MAX_LEN_SHOP),
    controller: AuthorizationFlowController = Depends(get_auth_controller),
):
    """Redirect the merchant to Shopify to approve the app."""
    auth_request = controller.begin_authorization(shop)
    response = RedirectResponse(url=auth_request.url)
    response.set_cookie(
        STATE_COOKIE,
        auth_request.state,
        max_age=STATE_COOKIE_MAX_AGE,
        httponly=True,
        secure=settings.app_url.startswith("https://"),
        samesite="lax",
    )
    return response


@router.get("/auth/callback")
def auth_callback(
    request: Request,
    controller: AuthorizationFlowController = Depends(get_auth_controller),
):
    """Handle the Shopify OAuth callback, store the encrypted token, redirect to the admin page."""
    params = dict(request.query_params)
    try:
        outcome = controller.complete_authorization(params, request.cookies.get(STATE_COOKIE))
    except AuthError:
        # Opaque on purpose: details are in the log only
        return PlainTextResponse("Authorization failed", status_code=500)

    if not outcome.webhooks_complete:
        failed = [w.topic for w in outcome.webhooks if not w.registered]
        logger.warning("Shop %s authorized with unregistered webhooks: %s", outcome.tenant.shop_id, failed)

    response = RedirectResponse(
        url=f"{ADMIN_PATH}?{urlencode({'shop': outcome.tenant.shop_id})}",
        status_code=302,
    )
    response.delete_cookie(STATE_COOKIE)
    return response


@router.post(
    "/check-cart",
    response_model=CheckCartResponse,
    response_model_exclude_none=True,
)
def check_cart(body: CheckCartRequest, store: TenantStore = Depends(get_tenant_store)):
    """Return the surcharge the storefront should add to this cart."""
    shop_id = normalize_shop_domain(body.shop)
    if not shop_id:
        raise UnknownShop(body.shop)
    decision = evaluate(store, shop_id, body.cart.items)
    return CheckCartResponse(surcharge=float(decision.surcharge), label=decision.label)


@router.post("/set-config", response_model=SetConfigResponse)
def set_config(
    request: Request,
    body: SetConfigRequest,
    store: TenantStore = Depends(get_tenant_store),
):
    """Save minimum order value, surcharge and localized labels for an authorized shop."""
    shop_id = normalize_shop_domain(body.shop)
    if not shop_id:
        raise UnknownShop(body.shop)
    origin = request.headers.get("origin")
    if not origin_may_act_for(origin, shop_id, settings.static_origins):
        logger.warning("Origin %s may not configure shop=%s", origin, shop_id)
        return JSONResponse(status_code=403, content={"error": "Origin not allowed"})
    set_configuration(
        store,
        shop_id,
        body.min_order_value,
        body.surcharge,
        body.surcharge_label,
    )
    return SetConfigResponse()
