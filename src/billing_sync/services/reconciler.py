"""Full-resync reconciliation of one customer's billing state.

Every run re-reads the customer's complete subscription list from Stripe
and replaces the local state wholesale. No deltas from the triggering
event are applied, which makes the operation idempotent and lets
concurrent or reordered runs for the same customer converge: whichever
run finishes last wrote state derived from a full, current listing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from billing_sync.config import settings
from billing_sync.services.billing_store import BillingStore, get_billing_store
from billing_sync.services.errors import BillingSyncError
from billing_sync.services.models import (
    AccountBillingState,
    ProviderSubscription,
    SubscriptionRecord,
)
from billing_sync.services.projector import (
    build_subscription_record,
    project_account_state,
    resolve_card_details,
)
from billing_sync.services.provider import StripeGateway
from billing_sync.services.selector import STATUS_PRIORITY, select_winning_subscription


@dataclass
class ReconcileResult:
    """Outcome of one reconciliation."""

    customer_id: str
    account: AccountBillingState
    record: SubscriptionRecord | None = None
    subscriptions_seen: int = 0
    record_written: bool = False
    account_written: bool = False
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.record_written and self.account_written

    def to_dict(self) -> dict[str, Any]:
        return {
            "customer_id": self.customer_id,
            "subscription_status": self.account.subscription_status,
            "plan": self.account.plan.value,
            "billing_mode": self.account.billing_mode.value,
            "stripe_subscription_id": self.account.stripe_subscription_id,
            "subscriptions_seen": self.subscriptions_seen,
            "record_written": self.record_written,
            "account_written": self.account_written,
            "errors": list(self.errors),
        }


class Reconciler:
    """Derives local billing state from a fresh read of Stripe."""

    def __init__(
        self,
        gateway: StripeGateway,
        store: BillingStore,
        priorities: dict[str, int] | None = None,
    ) -> None:
        self.gateway = gateway
        self.store = store
        self.priorities = priorities or STATUS_PRIORITY

    async def reconcile(self, customer_id: str) -> ReconcileResult:
        """Resync one customer.

        Raises:
            CustomerNotFoundError: If Stripe does not know the customer.
            ProviderError: If Stripe cannot be read.

        Local write failures do not raise; they are logged and collected on
        the returned result. The subscription record and the account are
        written independently, so one failing does not skip the other.
        """
        await self.gateway.retrieve_customer(customer_id)
        subscriptions = await self.gateway.list_subscriptions(customer_id)

        winner = select_winning_subscription(subscriptions, self.priorities)
        account = project_account_state(winner)
        result = ReconcileResult(
            customer_id=customer_id,
            account=account,
            subscriptions_seen=len(subscriptions),
        )

        await self._write_record(result, winner)
        await self._write_account(result)

        if result.ok:
            logger.info(
                "Reconciled customer {}: status={} plan={} mode={} subscription={}",
                customer_id,
                account.subscription_status,
                account.plan.value,
                account.billing_mode.value,
                account.stripe_subscription_id,
            )
        else:
            logger.warning(
                "Partially reconciled customer {}: {}", customer_id, "; ".join(result.errors)
            )
        return result

    async def _write_record(
        self, result: ReconcileResult, winner: ProviderSubscription | None
    ) -> None:
        customer_id = result.customer_id
        try:
            if winner is None:
                await self.store.delete_subscription(customer_id)
            else:
                card = await resolve_card_details(winner, self.gateway.retrieve_payment_method)
                result.record = build_subscription_record(customer_id, winner, card)
                await self.store.upsert_subscription(result.record)
            result.record_written = True
        except BillingSyncError as e:
            logger.error("Failed to sync subscription record for {}: {}", customer_id, e)
            result.errors.append(f"subscription_record: {e}")

    async def _write_account(self, result: ReconcileResult) -> None:
        try:
            await self.store.update_account(result.customer_id, result.account)
            result.account_written = True
        except BillingSyncError as e:
            logger.error("Failed to update account for {}: {}", result.customer_id, e)
            result.errors.append(f"account: {e}")


# Global instance for dependency injection
_reconciler: Reconciler | None = None


def get_reconciler() -> Reconciler:
    """Get or create the global reconciler from settings.

    Raises:
        ConfigurationError: If Stripe or Supabase credentials are missing.
    """
    global _reconciler
    if _reconciler is None:
        gateway = StripeGateway(
            api_key=settings.require_stripe_key(),
            timeout=settings.provider_timeout_seconds,
        )
        _reconciler = Reconciler(gateway=gateway, store=get_billing_store())
    return _reconciler


def set_reconciler(reconciler: Reconciler | None) -> None:
    """Set the global reconciler (useful for testing)."""
    global _reconciler
    _reconciler = reconciler
