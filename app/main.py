"""FastAPI application entry point."""
import logging
import logging.config
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse
from fastapi.templating import Jinja2Templates

from app.api.deps import get_tenant_store
from app.api.routes import router
from app.api.webhooks import router as webhooks_router
from app.config import settings
from app.connectors.shopify import normalize_shop_domain
from app.database import SessionLocal, init_db
from app.errors import CryptoError, StoreUnavailable, UnknownShop, ValidationError
from app.middleware.origin_policy import OriginPolicyMiddleware, OriginPolicyResolver
from app.schemas import MAX_LEN_SHOP
from app.security.cipher import CredentialCipher
from app.store.tenants import TenantStore

# Configure structured logging at startup
logging.config.dictConfig({
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {
            "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            "datefmt": "%Y-%m-%dT%H:%M:%S",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "default",
        },
    },
    "root": {
        "level": "INFO",
        "handlers": ["console"],
    },
})

logger = logging.getLogger(__name__)
templates_dir = Path(__file__).parent / "templates"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Minimum order surcharge app starting up")
    # A missing or malformed ENCRYPTION_KEY aborts startup instead of failing per request
    app.state.cipher = CredentialCipher.from_settings(settings)
    try:
        init_db()
        logger.info("Database ready")
    except Exception as e:
        # Don't block startup: server must bind so /health passes; store calls answer 503
        logger.warning("Database init failed (server will start anyway): %s", e)
    yield
    logger.info("Minimum order surcharge app shutting down")


app = FastAPI(
    title="Minimum Order Surcharge",
    description="Per-shop minimum order value and small-cart surcharge for Shopify storefronts.",
    version="1.0.0",
    lifespan=lifespan,
)

# Cross-origin policy: registered shops' storefront origins, recomputed per request
app.add_middleware(
    OriginPolicyMiddleware,
    resolver=OriginPolicyResolver(
        SessionLocal,
        static_origins=settings.static_origins,
        dynamic=settings.dynamic_origins,
    ),
)

app.include_router(router, tags=["api"])
app.include_router(webhooks_router, tags=["webhooks"])

templates = Jinja2Templates(directory=str(templates_dir))


@app.exception_handler(UnknownShop)
async def unknown_shop_handler(request: Request, exc: UnknownShop):
    return JSONResponse(status_code=400, content={"error": "Shop not registered"})


@app.exception_handler(ValidationError)
async def validation_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"error": exc.message, "fields": exc.fields})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    fields = {
        ".".join(str(part) for part in err["loc"] if part != "body"): err["msg"]
        for err in exc.errors()
    }
    return JSONResponse(status_code=400, content={"error": "Invalid request", "fields": fields})


@app.exception_handler(StoreUnavailable)
async def store_unavailable_handler(request: Request, exc: StoreUnavailable):
    return JSONResponse(status_code=503, content={"error": "Service temporarily unavailable"})


@app.exception_handler(CryptoError)
async def crypto_error_handler(request: Request, exc: CryptoError):
    logger.error("Credential cipher failure on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"error": "Internal error"})


@app.get("/")
def landing():
    return PlainTextResponse("Minimum order surcharge app is running")


@app.get("/admin")
def admin(
    request: Request,
    shop: str = Query(..., min_length=1, max_length=MAX_LEN_SHOP),
    store: TenantStore = Depends(get_tenant_store),
):
    """Embedded admin page: edit the shop's minimum order value, surcharge and labels."""
    shop_id = normalize_shop_domain(shop)
    if not shop_id:
        raise UnknownShop(shop)
    tenant = store.get(shop_id)
    return templates.TemplateResponse(
        request,
        "admin.html",
        {
            "shop": tenant.shop_id,
            "min_order_value": tenant.min_order_value,
            "surcharge": tenant.surcharge,
            "surcharge_label": tenant.surcharge_label or {},
        },
    )


@app.get("/health")
def health():
    return {"status": "ok"}
