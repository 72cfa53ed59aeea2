"""Pytest fixtures: in-memory database, generated Fernet key, fake Shopify provider."""
import os

from cryptography.fernet import Fernet

# Settings are read at import time, so the environment must be ready before `app` is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENCRYPTION_KEY"] = Fernet.generate_key().decode()
os.environ["SHOPIFY_API_KEY"] = "test-api-key"
os.environ["SHOPIFY_API_SECRET"] = "test-api-secret"
os.environ["APP_URL"] = "https://surcharge.example.com"
os.environ["WEBHOOK_TOPICS"] = "app/uninstalled,orders/create"
os.environ["ALLOWED_ORIGINS"] = ""
os.environ["DYNAMIC_ORIGINS"] = "true"
os.environ["ENVIRONMENT"] = "development"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

import app.models  # noqa: F401  (register tables)
from app.config import settings
from app.connectors.shopify import AuthorizedShop
from app.database import Base, SessionLocal, engine
from app.errors import InvalidCallback, WebhookRegistrationError
from app.security.cipher import CredentialCipher
from app.store.tenants import TenantStore


class FakeProvider:
    """Stands in for Shopify: accepts callbacks whose state matches, records webhook calls."""

    def __init__(self):
        self.reject = False
        self.failing_topics = set()
        self.registered = []

    def authorization_url(self, shop, state):
        return f"https://{shop}/admin/oauth/authorize?client_id=test-api-key&state={state}"

    def validate_callback(self, params, expected_state):
        if self.reject:
            raise InvalidCallback("Callback HMAC mismatch")
        if not expected_state or params.get("state") != expected_state:
            raise InvalidCallback("Callback state mismatch")
        return AuthorizedShop(
            shop_id=params["shop"],
            access_token=f"shpat_{params['code']}",
            scope="read_products,write_script_tags",
        )

    def register_webhook(self, shop, access_token, topic, address):
        if topic in self.failing_topics:
            raise WebhookRegistrationError(topic, "timed out")
        self.registered.append((shop, access_token, topic, address))
        return {"topic": topic, "address": address}


class BrokenSession:
    """Session whose every query fails as if the database were down."""

    def __init__(self):
        self.rolled_back = False

    def _down(self, *args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("database is down"))

    get = _down
    query = _down

    def rollback(self):
        self.rolled_back = True

    def close(self):
        pass


@pytest.fixture(autouse=True)
def tables():
    """Fresh schema for every test."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session():
    db = SessionLocal()
    yield db
    db.close()


@pytest.fixture
def store(db_session):
    return TenantStore(db_session)


@pytest.fixture
def load_tenant():
    """Read a tenant through a new session so no cached state leaks between requests."""
    def _load(shop_id):
        with SessionLocal() as db:
            tenant = TenantStore(db).find_by_shop_id(shop_id)
            if tenant is not None:
                db.expunge(tenant)
            return tenant
    return _load


@pytest.fixture
def cipher():
    return CredentialCipher.from_settings(settings)


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def registered_shop(store, cipher):
    """An authorized shop without surcharge configuration."""
    return store.upsert("a.myshop.com", access_token=cipher.encrypt("shpat_existing"), scope="read_products")


@pytest.fixture
def client(fake_provider):
    from app.api.deps import get_provider
    from app.main import app

    app.dependency_overrides[get_provider] = lambda: fake_provider
    # https base URL so the Secure state cookie round-trips
    with TestClient(app, base_url="https://testserver") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def broken_session_factory():
    return BrokenSession
