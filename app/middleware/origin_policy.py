"""
Cross-origin policy derived from registered shops.

The permitted set is recomputed from the tenant store on every request, so a
shop is allowed as soon as its authorization callback has committed. Requests
without an Origin header (server-to-server, same-origin navigation) pass.
If the store cannot be read the request is denied.
"""
import logging
from typing import Callable, Iterable, Optional

from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from app.errors import StoreUnavailable
from app.models import Tenant
from app.store.tenants import TenantStore

logger = logging.getLogger(__name__)

ALLOW_METHODS = "GET, POST, OPTIONS"
ALLOW_HEADERS = "Content-Type, Authorization"
PREFLIGHT_MAX_AGE = "600"


def permitted_origins(tenants: Iterable[Tenant], static_origins: Iterable[str] = ()) -> set[str]:
    """Origins allowed for cross-origin calls: each shop's https origin plus the static set."""
    origins = {f"https://{t.shop_id}" for t in tenants}
    origins.update(static_origins)
    return origins


def origin_may_act_for(origin: Optional[str], shop_id: str, static_origins: Iterable[str] = ()) -> bool:
    """True if a request from `origin` may change `shop_id`'s data.

    Static origins (the app itself, ALLOWED_ORIGINS) act for any shop; a
    tenant-derived origin acts only for its own shop.
    """
    if not origin:
        return True
    origin = origin.rstrip("/")
    return origin in set(static_origins) or origin == f"https://{shop_id}"


class OriginPolicyResolver:
    """Answers whether an Origin may call this backend, reading live tenant data."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        static_origins: Iterable[str] = (),
        dynamic: bool = True,
    ):
        self.session_factory = session_factory
        self.static_origins = frozenset(static_origins)
        self.dynamic = dynamic

    def is_origin_allowed(self, origin: Optional[str]) -> bool:
        if not origin:
            return True
        origin = origin.rstrip("/")
        if origin in self.static_origins:
            return True
        if not self.dynamic:
            return False
        db = self.session_factory()
        try:
            tenants = TenantStore(db).list_all()
        except StoreUnavailable:
            logger.warning("Tenant store unavailable; denying origin %s", origin)
            return False
        finally:
            db.close()
        return origin in permitted_origins(tenants, self.static_origins)


def _cors_headers(origin: str) -> dict[str, str]:
    return {
        "Access-Control-Allow-Origin": origin,
        "Access-Control-Allow-Credentials": "true",
        "Vary": "Origin",
    }


class OriginPolicyMiddleware(BaseHTTPMiddleware):
    """Rejects disallowed origins with 403 and adds CORS headers for allowed ones."""

    def __init__(self, app, resolver: OriginPolicyResolver):
        super().__init__(app)
        self.resolver = resolver

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        origin = request.headers.get("origin")
        if not origin:
            return await call_next(request)

        allowed = await run_in_threadpool(self.resolver.is_origin_allowed, origin)
        if not allowed:
            logger.warning("Origin denied: %s %s from %s", request.method, request.url.path, origin)
            return JSONResponse(status_code=403, content={"error": "Origin not allowed"})

        headers = _cors_headers(origin)
        if request.method == "OPTIONS" and "access-control-request-method" in request.headers:
            headers.update({
                "Access-Control-Allow-Methods": ALLOW_METHODS,
                "Access-Control-Allow-Headers": request.headers.get(
                    "access-control-request-headers", ALLOW_HEADERS
                ),
                "Access-Control-Max-Age": PREFLIGHT_MAX_AGE,
            })
            return Response(status_code=204, headers=headers)

        response = await call_next(request)
        response.headers.update(headers)
        return response
