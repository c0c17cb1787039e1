"""Project a winning Stripe subscription onto local billing state."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from loguru import logger

from billing_sync.services.errors import ProjectionError
from billing_sync.services.models import (
    AccountBillingState,
    BillingMode,
    CardDetails,
    Plan,
    ProviderSubscription,
    SubscriptionRecord,
    epoch_to_iso,
)

# Stripe status -> local subscription_status
STATUS_VOCABULARY: dict[str, str] = {
    "active": "active",
    "past_due": "past_due",
    "canceled": "canceled",
    "trialing": "trialing",
    "incomplete": "incomplete",
    "incomplete_expired": "incomplete_expired",
    "unpaid": "unpaid",
    "paused": "paused",
}

PaymentMethodLookup = Callable[[str], Awaitable[Mapping[str, Any]]]


def map_status(status: str) -> str:
    """Map a Stripe status to the local vocabulary.

    Unknown statuses are stored verbatim rather than dropped, and flagged in
    the log so they can be alerted on.
    """
    mapped = STATUS_VOCABULARY.get(status)
    if mapped is None:
        logger.bind(unknown_status=status).warning(
            "Unknown Stripe subscription status '{}', storing it verbatim", status
        )
        return status
    return mapped


def project_account_state(subscription: ProviderSubscription | None) -> AccountBillingState:
    if subscription is None:
        return AccountBillingState.inactive()

    return AccountBillingState(
        subscription_status=map_status(subscription.status),
        # Any subscription at all means the paid tier.
        plan=Plan.PRO,
        billing_mode=BillingMode.TRIAL if subscription.status == "trialing" else BillingMode.STANDARD,
        stripe_subscription_id=subscription.id,
    )


def build_subscription_record(
    customer_id: str,
    subscription: ProviderSubscription,
    card: CardDetails | None = None,
) -> SubscriptionRecord:
    """Build the denormalized row for the ``subscriptions`` table.

    Raises:
        ProjectionError: If the subscription has no priced line item.
    """
    price_id = subscription.price_id
    if not price_id:
        raise ProjectionError(f"Subscription {subscription.id} has no price ID")

    return SubscriptionRecord(
        stripe_customer_id=customer_id,
        subscription_id=subscription.id,
        status=subscription.status,
        price_id=price_id,
        current_period_start=epoch_to_iso(subscription.current_period_start),
        current_period_end=epoch_to_iso(subscription.current_period_end),
        cancel_at_period_end=subscription.cancel_at_period_end,
        card=card or CardDetails(),
    )


async def resolve_card_details(
    subscription: ProviderSubscription,
    lookup: PaymentMethodLookup | None,
) -> CardDetails:
    """Best-effort brand/last4 for the subscription's default payment method.

    Never raises: a failed or timed-out lookup only leaves the card empty.
    """
    payment_method = subscription.default_payment_method
    if payment_method is None:
        return CardDetails()

    if isinstance(payment_method, Mapping):
        return CardDetails.from_payment_method(payment_method)

    if lookup is None:
        return CardDetails()

    try:
        return CardDetails.from_payment_method(await lookup(payment_method))
    except Exception as e:
        logger.warning(
            "Failed to retrieve payment method {} for subscription {}: {}",
            payment_method,
            subscription.id,
            e,
        )
        return CardDetails()
