"""Shared fixtures for billing sync tests."""

from __future__ import annotations

import hashlib
import hmac
import json
import time
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from billing_sync.services.account_state import SubscriptionState
from billing_sync.services.models import AccountBillingState, ProviderSubscription, SubscriptionRecord
from billing_sync.services.provider import StripeGateway
from billing_sync.services.reconciler import Reconciler

WEBHOOK_SECRET = "whsec_test_secret"


class InMemoryBillingStore:
    """Dict-backed stand-in for BillingStore with the same async interface."""

    def __init__(self, customer_ids: list[str] | None = None) -> None:
        self.accounts: dict[str, dict[str, Any]] = {}
        self.subscriptions: dict[str, dict[str, Any]] = {}
        for customer_id in customer_ids or []:
            self.accounts[customer_id] = AccountBillingState.inactive().to_row()
        self.calls: list[str] = []

    async def upsert_subscription(self, record: SubscriptionRecord) -> None:
        self.calls.append("upsert_subscription")
        self.subscriptions[record.stripe_customer_id] = record.to_row()

    async def delete_subscription(self, customer_id: str) -> None:
        self.calls.append("delete_subscription")
        self.subscriptions.pop(customer_id, None)

    async def update_account(self, customer_id: str, state: AccountBillingState) -> int:
        self.calls.append("update_account")
        if customer_id not in self.accounts:
            return 0
        self.accounts[customer_id] = state.to_row()
        return 1

    async def get_subscription(self, customer_id: str) -> SubscriptionRecord | None:
        row = self.subscriptions.get(customer_id)
        return SubscriptionRecord.from_row(row) if row else None

    async def get_account_state(self, customer_id: str) -> SubscriptionState:
        row = self.accounts.get(customer_id)
        return SubscriptionState.from_account_row(row) if row else SubscriptionState.default()


def make_subscription(
    sub_id: str = "sub_1",
    status: str = "active",
    created: int = 100,
    price_id: str | None = "price_pro",
    payment_method: Any = None,
    **kwargs: Any,
) -> ProviderSubscription:
    return ProviderSubscription(
        id=sub_id,
        status=status,
        created=created,
        price_ids=(price_id,) if price_id else (),
        current_period_start=kwargs.pop("current_period_start", 1_700_000_000),
        current_period_end=kwargs.pop("current_period_end", 1_702_592_000),
        default_payment_method=payment_method,
        **kwargs,
    )


def sign_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """Build a ``stripe-signature`` header value for a payload."""
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload}"
    signature = hmac.new(secret.encode("utf-8"), signed.encode("utf-8"), hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def event_payload(event_type: str, obj: dict[str, Any], event_id: str = "evt_1") -> str:
    return json.dumps(
        {
            "id": event_id,
            "object": "event",
            "type": event_type,
            "data": {"object": obj},
        }
    )


@pytest.fixture
def store() -> InMemoryBillingStore:
    return InMemoryBillingStore(customer_ids=["cus_A", "cus_B", "cus_C"])


@pytest.fixture
def gateway() -> MagicMock:
    """Stripe gateway mock; tests set ``list_subscriptions.return_value``."""
    mock = MagicMock(spec=StripeGateway)
    mock.retrieve_customer = AsyncMock(side_effect=lambda cid: {"id": cid, "object": "customer"})
    mock.list_subscriptions = AsyncMock(return_value=[])
    mock.retrieve_payment_method = AsyncMock(
        return_value={"id": "pm_1", "type": "card", "card": {"brand": "visa", "last4": "4242"}}
    )
    return mock


@pytest.fixture
def reconciler(gateway: MagicMock, store: InMemoryBillingStore) -> Reconciler:
    return Reconciler(gateway=gateway, store=store)  # type: ignore[arg-type]
