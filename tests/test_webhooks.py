"""Tests for the billing webhook endpoint."""

from __future__ import annotations

import time
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from billing_sync.app import create_app
from billing_sync.config import settings
from billing_sync.services.errors import CustomerNotFoundError, ProviderError, StorageError
from billing_sync.webhooks import delivery_outcomes, get_reconciler_dependency
from conftest import WEBHOOK_SECRET, event_payload, make_subscription, sign_payload


@pytest.fixture
def client(monkeypatch, reconciler):
    monkeypatch.setattr(settings, "stripe_webhook_secret", WEBHOOK_SECRET)
    monkeypatch.setattr(settings, "acknowledge_reconcile_failures", True)
    delivery_outcomes.clear()
    app = create_app(validate_config=False)
    app.dependency_overrides[get_reconciler_dependency] = lambda: reconciler
    return TestClient(app)


def post_event(client: TestClient, payload: str, signature: str | None = None):
    headers = {"content-type": "application/json"}
    headers["stripe-signature"] = signature if signature is not None else sign_payload(payload)
    return client.post("/webhooks/billing", content=payload, headers=headers)


def subscription_event(customer: str = "cus_A", event_type: str = "customer.subscription.updated"):
    return event_payload(
        event_type,
        {"id": "sub_1", "object": "subscription", "customer": customer, "status": "active"},
    )


class TestSignature:
    """Deliveries that fail verification are rejected without side effects."""

    def test_tampered_body(self, client, gateway, store):
        payload = subscription_event()
        signature = sign_payload(payload)
        tampered = payload.replace("cus_A", "cus_B")

        response = post_event(client, tampered, signature)

        assert response.status_code == 400
        assert response.json()["received"] is False
        assert response.json()["error"].startswith("Webhook Error:")
        gateway.retrieve_customer.assert_not_awaited()
        gateway.list_subscriptions.assert_not_awaited()
        assert store.calls == []

    def test_wrong_secret(self, client, store):
        payload = subscription_event()

        response = post_event(client, payload, sign_payload(payload, secret="whsec_other"))

        assert response.status_code == 400
        assert store.calls == []

    def test_missing_header(self, client, store):
        response = client.post("/webhooks/billing", content=subscription_event())

        assert response.status_code == 400
        assert "Missing stripe-signature header" in response.json()["error"]
        assert store.calls == []

    def test_expired_timestamp(self, client, store):
        payload = subscription_event()
        old = int(time.time()) - 3600

        response = post_event(client, payload, sign_payload(payload, timestamp=old))

        assert response.status_code == 400
        assert store.calls == []

    def test_missing_secret(self, client, monkeypatch, gateway, store):
        monkeypatch.setattr(settings, "stripe_webhook_secret", None)

        response = post_event(client, subscription_event())

        assert response.status_code == 500
        assert response.json()["received"] is False
        assert "STRIPE_WEBHOOK_SECRET" in response.json()["error"]
        gateway.retrieve_customer.assert_not_awaited()
        assert store.calls == []


class TestIgnoredDeliveries:
    """Verified deliveries that do not lead to a resync."""

    def test_unhandled_event_type(self, client, gateway, store):
        payload = event_payload("product.created", {"id": "prod_1", "object": "product"})

        response = post_event(client, payload)

        assert response.status_code == 200
        assert response.json() == {
            "received": True,
            "handled": False,
            "reason": "unhandled_event_type",
        }
        gateway.retrieve_customer.assert_not_awaited()
        assert store.calls == []

    def test_no_customer(self, client, gateway, store):
        payload = event_payload(
            "checkout.session.completed", {"id": "cs_1", "object": "checkout.session"}
        )

        response = post_event(client, payload)

        assert response.status_code == 200
        assert response.json()["reason"] == "no_customer_id"
        gateway.retrieve_customer.assert_not_awaited()
        assert store.calls == []


class TestReconciledDeliveries:
    """Verified deliveries that trigger a full resync."""

    def test_active_subscription(self, client, gateway, store):
        gateway.list_subscriptions.return_value = [make_subscription("sub_1", "active")]

        response = post_event(client, subscription_event("cus_A"))

        assert response.status_code == 200
        assert response.json() == {
            "received": True,
            "handled": True,
            "event_type": "customer.subscription.updated",
            "customer_id": "cus_A",
            "subscription_status": "active",
        }
        gateway.list_subscriptions.assert_awaited_once_with("cus_A")
        assert store.accounts["cus_A"]["plan"] == "pro"
        assert store.subscriptions["cus_A"]["subscription_id"] == "sub_1"

    def test_no_subscriptions_downgrades(self, client, gateway, store):
        store.subscriptions["cus_B"] = {"stripe_customer_id": "cus_B"}
        gateway.list_subscriptions.return_value = []

        response = post_event(client, subscription_event("cus_B", "customer.subscription.deleted"))

        assert response.status_code == 200
        assert response.json()["subscription_status"] == "inactive"
        assert store.accounts["cus_B"]["plan"] == "hobby"
        assert "cus_B" not in store.subscriptions

    def test_invoice_event_resolves_customer(self, client, gateway, store):
        gateway.list_subscriptions.return_value = [make_subscription("sub_9", "past_due")]
        payload = event_payload(
            "invoice.payment_failed",
            {"id": "in_1", "object": "invoice", "customer": "cus_C"},
        )

        response = post_event(client, payload)

        assert response.json()["customer_id"] == "cus_C"
        assert store.accounts["cus_C"]["subscription_status"] == "past_due"

    def test_redelivery_is_idempotent(self, client, gateway, store):
        gateway.list_subscriptions.return_value = [make_subscription("sub_1", "trialing")]
        payload = subscription_event("cus_A")

        post_event(client, payload)
        first = dict(store.accounts["cus_A"])
        post_event(client, payload)

        assert store.accounts["cus_A"] == first
        assert first["billing_mode"] == "trial"


class TestFailureAcknowledgment:
    """Resync failures are acknowledged by default."""

    def test_customer_not_found(self, client, gateway, store):
        gateway.retrieve_customer.side_effect = CustomerNotFoundError(
            "Stripe customer not found: cus_A", customer_id="cus_A"
        )

        response = post_event(client, subscription_event("cus_A"))

        assert response.status_code == 200
        assert response.json()["reason"] == "customer_not_found"
        assert store.calls == []

    def test_provider_error(self, client, gateway, store):
        gateway.list_subscriptions.side_effect = ProviderError("Timed out", customer_id="cus_A")

        response = post_event(client, subscription_event("cus_A"))

        assert response.status_code == 200
        assert response.json()["handled"] is False
        assert response.json()["reason"] == "reconcile_failed"
        assert store.calls == []

    def test_unexpected_error(self, client, gateway):
        gateway.list_subscriptions.side_effect = RuntimeError("boom")

        response = post_event(client, subscription_event("cus_A"))

        assert response.status_code == 200
        assert response.json()["reason"] == "reconcile_failed"

    def test_partial_sync(self, client, gateway, store):
        gateway.list_subscriptions.return_value = [make_subscription("sub_1", "active")]
        store.update_account = AsyncMock(side_effect=StorageError("connection reset"))

        response = post_event(client, subscription_event("cus_A"))

        assert response.status_code == 200
        body = response.json()
        assert body["reason"] == "partial_sync"
        assert body["errors"] == ["account: connection reset"]
        assert store.subscriptions["cus_A"]["subscription_id"] == "sub_1"

    def test_failures_not_acknowledged_when_disabled(self, client, gateway, monkeypatch):
        monkeypatch.setattr(settings, "acknowledge_reconcile_failures", False)
        gateway.list_subscriptions.side_effect = ProviderError("Timed out", customer_id="cus_A")

        response = post_event(client, subscription_event("cus_A"))

        assert response.status_code == 500
        assert response.json()["reason"] == "reconcile_failed"

    def test_ignored_events_still_acknowledged_when_disabled(self, client, monkeypatch):
        monkeypatch.setattr(settings, "acknowledge_reconcile_failures", False)
        payload = event_payload("product.created", {"id": "prod_1", "object": "product"})

        assert post_event(client, payload).status_code == 200


class TestHealth:
    def test_health(self, client, monkeypatch, gateway):
        monkeypatch.setattr(settings, "stripe_secret_key", "sk_test_123")
        gateway.list_subscriptions.return_value = []
        post_event(client, subscription_event("cus_A"))
        post_event(client, subscription_event("cus_A"), signature="t=1,v1=bad")

        response = client.get("/webhooks/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["stripe_configured"] is True
        assert data["webhook_secret_configured"] is True
        assert data["deliveries"] == {"reconciled": 1, "rejected": 1}
