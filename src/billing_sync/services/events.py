"""Classification of Stripe webhook events.

Only a closed set of event types can change a customer's billing state.
Anything else is acknowledged and ignored: Stripe retries on non-2xx
responses, and retrying an irrelevant event is pure waste.
"""

from __future__ import annotations

from enum import Enum


class EventKind(str, Enum):
    """Payload family of a billing-relevant event."""

    CHECKOUT_SESSION = "checkout_session"
    SUBSCRIPTION = "subscription"
    INVOICE = "invoice"
    PAYMENT_INTENT = "payment_intent"


CHECKOUT_COMPLETED = "checkout.session.completed"

RELEVANT_EVENT_TYPES: dict[str, EventKind] = {
    CHECKOUT_COMPLETED: EventKind.CHECKOUT_SESSION,
    "customer.subscription.created": EventKind.SUBSCRIPTION,
    "customer.subscription.updated": EventKind.SUBSCRIPTION,
    "customer.subscription.deleted": EventKind.SUBSCRIPTION,
    "customer.subscription.paused": EventKind.SUBSCRIPTION,
    "customer.subscription.resumed": EventKind.SUBSCRIPTION,
    "customer.subscription.trial_will_end": EventKind.SUBSCRIPTION,
    "customer.subscription.pending_update_applied": EventKind.SUBSCRIPTION,
    "customer.subscription.pending_update_expired": EventKind.SUBSCRIPTION,
    "invoice.paid": EventKind.INVOICE,
    "invoice.payment_failed": EventKind.INVOICE,
    "invoice.payment_action_required": EventKind.INVOICE,
    "invoice.upcoming": EventKind.INVOICE,
    "invoice.marked_uncollectible": EventKind.INVOICE,
    "invoice.payment_succeeded": EventKind.INVOICE,
    "payment_intent.succeeded": EventKind.PAYMENT_INTENT,
    "payment_intent.payment_failed": EventKind.PAYMENT_INTENT,
    "payment_intent.canceled": EventKind.PAYMENT_INTENT,
}


def classify_event(event_type: str | None) -> EventKind | None:
    """Return the payload family for a relevant event type, or None to ignore it."""
    if not event_type:
        return None
    return RELEVANT_EVENT_TYPES.get(event_type)
