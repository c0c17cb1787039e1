"""Data models for provider subscriptions and local billing rows.

Provider objects arrive as plain mappings (``StripeObject.to_dict()``) and
are normalized into frozen dataclasses before any selection or projection
happens. Local rows are built with ``to_row`` and read back with
``from_row`` for the Supabase tables.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from billing_sync.services.subject import object_id


class Plan(str, Enum):
    HOBBY = "hobby"
    PRO = "pro"


class BillingMode(str, Enum):
    STANDARD = "standard"
    TRIAL = "trial"


INACTIVE_STATUS = "inactive"


def epoch_to_iso(value: int | None) -> str | None:
    """Convert epoch seconds to an ISO-8601 UTC timestamp."""
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc).isoformat()


@dataclass(frozen=True)
class ProviderSubscription:
    """Read-only view of a Stripe subscription."""

    id: str
    status: str
    created: int
    customer_id: str | None = None
    price_ids: tuple[str, ...] = ()
    current_period_start: int | None = None
    current_period_end: int | None = None
    cancel_at_period_end: bool = False
    default_payment_method: str | Mapping[str, Any] | None = None

    @property
    def price_id(self) -> str | None:
        return self.price_ids[0] if self.price_ids else None

    @property
    def payment_method_id(self) -> str | None:
        return object_id(self.default_payment_method)

    @classmethod
    def from_stripe(cls, obj: Mapping[str, Any]) -> ProviderSubscription:
        """Build from a subscription mapping.

        Newer Stripe API versions moved the billing period from the
        subscription onto its items, so the first item is used as a
        fallback for the period bounds.
        """
        items = (obj.get("items") or {}).get("data") or []
        price_ids = []
        for item in items:
            price = item.get("price")
            price_id = object_id(price)
            if price_id:
                price_ids.append(price_id)

        first_item = items[0] if items else {}
        period_start = obj.get("current_period_start")
        if period_start is None:
            period_start = first_item.get("current_period_start")
        period_end = obj.get("current_period_end")
        if period_end is None:
            period_end = first_item.get("current_period_end")

        return cls(
            id=obj["id"],
            status=obj.get("status") or "",
            created=int(obj.get("created") or 0),
            customer_id=object_id(obj.get("customer")),
            price_ids=tuple(price_ids),
            current_period_start=period_start,
            current_period_end=period_end,
            cancel_at_period_end=bool(obj.get("cancel_at_period_end")),
            default_payment_method=obj.get("default_payment_method"),
        )


@dataclass(frozen=True)
class CardDetails:
    """Brand and last four digits of the default card, when known."""

    brand: str | None = None
    last4: str | None = None

    @classmethod
    def from_payment_method(cls, obj: Mapping[str, Any] | None) -> CardDetails:
        if not obj or obj.get("type") != "card":
            return cls()
        card = obj.get("card") or {}
        return cls(brand=card.get("brand") or None, last4=card.get("last4") or None)


@dataclass(frozen=True)
class AccountBillingState:
    """Billing fields of a local account."""

    subscription_status: str
    plan: Plan
    billing_mode: BillingMode
    stripe_subscription_id: str | None = None

    @classmethod
    def inactive(cls) -> AccountBillingState:
        return cls(
            subscription_status=INACTIVE_STATUS,
            plan=Plan.HOBBY,
            billing_mode=BillingMode.STANDARD,
            stripe_subscription_id=None,
        )

    def to_row(self) -> dict[str, Any]:
        return {
            "subscription_status": self.subscription_status,
            "stripe_subscription_id": self.stripe_subscription_id,
            "plan": self.plan.value,
            "billing_mode": self.billing_mode.value,
        }


@dataclass(frozen=True)
class SubscriptionRecord:
    """Denormalized cache row in the ``subscriptions`` table."""

    stripe_customer_id: str
    subscription_id: str
    status: str
    price_id: str
    current_period_start: str | None
    current_period_end: str | None
    cancel_at_period_end: bool = False
    card: CardDetails = field(default_factory=CardDetails)

    def to_row(self) -> dict[str, Any]:
        return {
            "stripe_customer_id": self.stripe_customer_id,
            "subscription_id": self.subscription_id,
            "status": self.status,
            "price_id": self.price_id,
            "current_period_start": self.current_period_start,
            "current_period_end": self.current_period_end,
            "cancel_at_period_end": self.cancel_at_period_end,
            "card_brand": self.card.brand,
            "card_last4": self.card.last4,
        }

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> SubscriptionRecord:
        return cls(
            stripe_customer_id=row["stripe_customer_id"],
            subscription_id=row["subscription_id"],
            status=row["status"],
            price_id=row["price_id"],
            current_period_start=row.get("current_period_start"),
            current_period_end=row.get("current_period_end"),
            cancel_at_period_end=bool(row.get("cancel_at_period_end")),
            card=CardDetails(brand=row.get("card_brand"), last4=row.get("card_last4")),
        )
