"""Normalized subscription state of a local account, for feature gating."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from billing_sync.services.models import BillingMode, Plan

ACTIVE_STATUSES = frozenset({"active", "trialing"})


class FeatureAccess(str, Enum):
    LIMITED = "limited_access"
    FULL = "full_access"


@dataclass(frozen=True)
class SubscriptionState:
    """What the rest of the application needs to know about an account's plan."""

    plan: Plan = Plan.HOBBY
    billing_mode: BillingMode = BillingMode.STANDARD
    subscription_status: str | None = None
    stripe_subscription_id: str | None = None

    @classmethod
    def default(cls) -> SubscriptionState:
        return cls()

    @classmethod
    def from_account_row(cls, row: dict[str, Any]) -> SubscriptionState:
        """Create from an ``accounts`` row, coercing unexpected values to defaults."""
        return cls(
            plan=Plan.PRO if row.get("plan") == Plan.PRO.value else Plan.HOBBY,
            billing_mode=BillingMode.TRIAL
            if row.get("billing_mode") == BillingMode.TRIAL.value
            else BillingMode.STANDARD,
            subscription_status=row.get("subscription_status") or None,
            stripe_subscription_id=row.get("stripe_subscription_id") or None,
        )

    @property
    def is_active(self) -> bool:
        return self.subscription_status in ACTIVE_STATUSES

    @property
    def is_trial(self) -> bool:
        return self.billing_mode == BillingMode.TRIAL or self.subscription_status == "trialing"

    @property
    def is_comped(self) -> bool:
        """Has a subscription on file without it being active."""
        return self.stripe_subscription_id is not None and not self.is_active

    @property
    def has_pro_access(self) -> bool:
        return self.plan == Plan.PRO and (self.is_active or self.is_comped)

    def feature_access(self) -> FeatureAccess | None:
        """Access level, or None when there is no active or comped subscription."""
        if not self.is_active and not self.is_comped:
            return None
        if self.plan == Plan.PRO:
            return FeatureAccess.FULL
        return FeatureAccess.LIMITED

    def to_dict(self) -> dict[str, Any]:
        access = self.feature_access()
        return {
            "plan": self.plan.value,
            "billing_mode": self.billing_mode.value,
            "subscription_status": self.subscription_status,
            "is_active": self.is_active,
            "is_trial": self.is_trial,
            "is_comped": self.is_comped,
            "feature_access": access.value if access else None,
        }
