"""Request-scoped dependencies: tenant store, cipher, provider, auth controller."""
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from app.config import settings
from app.connectors.shopify import ShopifyProvider
from app.database import get_db
from app.security.cipher import CredentialCipher
from app.services.auth_flow import AuthorizationFlowController, AuthorizationProvider
from app.store.tenants import TenantStore


def get_tenant_store(db: Session = Depends(get_db)) -> TenantStore:
    return TenantStore(db)


def get_cipher(request: Request) -> CredentialCipher:
    """Cipher built once at startup (see app.main lifespan)."""
    return request.app.state.cipher


def get_provider() -> AuthorizationProvider:
    return ShopifyProvider(settings)


def get_auth_controller(
    store: TenantStore = Depends(get_tenant_store),
    cipher: CredentialCipher = Depends(get_cipher),
    provider: AuthorizationProvider = Depends(get_provider),
) -> AuthorizationFlowController:
    return AuthorizationFlowController(
        store=store,
        cipher=cipher,
        provider=provider,
        webhook_topics=settings.topics,
        webhook_address=settings.webhook_address,
    )
