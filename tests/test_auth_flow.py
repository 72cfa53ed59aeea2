"""Tests for the authorization flow controller."""
from types import SimpleNamespace

import pytest

from app.config import settings
from app.connectors import shopify
from app.connectors.shopify import ShopifyProvider
from app.errors import AuthError, InvalidCallback, StoreUnavailable, ValidationError
from app.services.auth_flow import AuthState, AuthorizationFlowController

TOPICS = ["app/uninstalled", "orders/create"]
ADDRESS = "https://surcharge.example.com/shopify/webhooks"


class UnavailableStore:
    def upsert(self, shop_id, **fields):
        raise StoreUnavailable("Tenant store upsert failed")


@pytest.fixture
def controller(store, cipher, fake_provider):
    return AuthorizationFlowController(
        store=store,
        cipher=cipher,
        provider=fake_provider,
        webhook_topics=TOPICS,
        webhook_address=ADDRESS,
    )


def callback(shop="a.myshop.com", code="code1", state="nonce"):
    return {"shop": shop, "code": code, "state": state, "hmac": "checked-by-provider"}


class TestBegin:
    def test_returns_provider_url_and_state(self, controller, store):
        request = controller.begin_authorization("A.MyShop.com")
        assert request.status == AuthState.PENDING_CALLBACK
        assert request.url.startswith("https://a.myshop.com/admin/oauth/authorize")
        assert request.state in request.url
        assert store.list_all() == []

    def test_state_is_random(self, controller):
        first = controller.begin_authorization("a.myshop.com")
        second = controller.begin_authorization("a.myshop.com")
        assert first.state != second.state

    @pytest.mark.parametrize("shop", ["", "not a domain", "https://a.myshop.com", "localhost", "a.myshop.com/../x"])
    def test_invalid_shop(self, controller, shop):
        with pytest.raises(ValidationError):
            controller.begin_authorization(shop)


class TestComplete:
    def test_stores_encrypted_token(self, controller, cipher, load_tenant):
        outcome = controller.complete_authorization(callback(), "nonce")
        assert outcome.status == AuthState.AUTHORIZED
        tenant = load_tenant("a.myshop.com")
        assert tenant.access_token != "shpat_code1"
        assert cipher.decrypt(tenant.access_token) == "shpat_code1"
        assert tenant.scope == "read_products,write_script_tags"

    def test_repeat_callback_refreshes_single_record(self, controller, store, cipher, load_tenant):
        controller.complete_authorization(callback(code="first"), "nonce")
        controller.complete_authorization(callback(code="second"), "nonce")
        assert [t.shop_id for t in store.list_all()] == ["a.myshop.com"]
        assert cipher.decrypt(load_tenant("a.myshop.com").access_token) == "shpat_second"

    def test_reauthorization_keeps_configuration(self, controller, store, load_tenant):
        controller.complete_authorization(callback(code="first"), "nonce")
        store.upsert("a.myshop.com", min_order_value=50, surcharge=5)
        controller.complete_authorization(callback(code="second"), "nonce")
        tenant = load_tenant("a.myshop.com")
        assert tenant.min_order_value == 50
        assert tenant.surcharge == 5

    def test_registers_every_topic_with_decrypted_token(self, controller, fake_provider):
        outcome = controller.complete_authorization(callback(), "nonce")
        assert fake_provider.registered == [
            ("a.myshop.com", "shpat_code1", "app/uninstalled", ADDRESS),
            ("a.myshop.com", "shpat_code1", "orders/create", ADDRESS),
        ]
        assert outcome.webhooks_complete

    def test_webhook_failure_is_not_fatal(self, controller, fake_provider, load_tenant):
        fake_provider.failing_topics = {"app/uninstalled"}
        outcome = controller.complete_authorization(callback(), "nonce")

        assert outcome.status == AuthState.AUTHORIZED
        assert not outcome.webhooks_complete
        results = {w.topic: w for w in outcome.webhooks}
        assert not results["app/uninstalled"].registered
        assert results["app/uninstalled"].error == "timed out"
        assert results["orders/create"].registered
        assert load_tenant("a.myshop.com") is not None

    def test_unparseable_webhook_response_is_not_fatal(self, controller, fake_provider, monkeypatch):
        calls = []

        def post(url, json, headers, timeout):
            calls.append(json["webhook"]["topic"])
            if len(calls) == 1:
                def bad_json():
                    raise ValueError("Expecting value")
                return SimpleNamespace(status_code=200, text="<html>", json=bad_json)
            return SimpleNamespace(status_code=201, text="", json=lambda: {"webhook": {"id": 2}})

        monkeypatch.setattr(shopify.requests, "post", post)
        monkeypatch.setattr(fake_provider, "register_webhook", ShopifyProvider(settings).register_webhook)
        outcome = controller.complete_authorization(callback(), "nonce")

        assert outcome.status == AuthState.AUTHORIZED
        results = {w.topic: w for w in outcome.webhooks}
        assert not results["app/uninstalled"].registered
        assert results["app/uninstalled"].error == "invalid response"
        assert results["orders/create"].registered
        assert calls == TOPICS

    def test_invalid_callback_stores_nothing(self, controller, fake_provider, store):
        fake_provider.reject = True
        with pytest.raises(InvalidCallback) as exc:
            controller.complete_authorization(callback(), "nonce")
        assert exc.value.status == AuthState.FAILED
        assert store.list_all() == []
        assert fake_provider.registered == []

    def test_state_mismatch(self, controller, store):
        with pytest.raises(AuthError):
            controller.complete_authorization(callback(state="forged"), "nonce")
        assert store.list_all() == []

    def test_missing_state_cookie(self, controller):
        with pytest.raises(AuthError):
            controller.complete_authorization(callback(), None)

    def test_store_failure_becomes_auth_error(self, cipher, fake_provider):
        controller = AuthorizationFlowController(
            store=UnavailableStore(),
            cipher=cipher,
            provider=fake_provider,
            webhook_topics=TOPICS,
            webhook_address=ADDRESS,
        )
        with pytest.raises(AuthError) as exc:
            controller.complete_authorization(callback(), "nonce")
        assert isinstance(exc.value.__cause__, StoreUnavailable)
        assert exc.value.status == AuthState.FAILED
        assert fake_provider.registered == []

    def test_no_topics_configured(self, store, cipher, fake_provider):
        controller = AuthorizationFlowController(
            store=store,
            cipher=cipher,
            provider=fake_provider,
            webhook_topics=[],
            webhook_address=ADDRESS,
        )
        outcome = controller.complete_authorization(callback(), "nonce")
        assert outcome.webhooks == []
        assert outcome.webhooks_complete
