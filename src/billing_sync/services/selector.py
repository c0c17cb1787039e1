"""Pick the subscription that represents a customer's billing state.

A customer can hold several subscriptions at once, for example while a
plan swap is in flight. The winner is chosen by status priority first and
creation time second, so the result does not depend on the order in which
webhooks arrived or the order Stripe lists subscriptions in.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from billing_sync.services.models import ProviderSubscription

STATUS_PRIORITY: dict[str, int] = {
    "active": 1,
    "trialing": 2,
    "past_due": 3,
    "canceled": 4,
    "unpaid": 5,
    "incomplete": 6,
    "incomplete_expired": 7,
    "paused": 8,
}

UNKNOWN_STATUS_PRIORITY = 99


def status_priority(status: str, priorities: Mapping[str, int]) -> int:
    return priorities.get(status, UNKNOWN_STATUS_PRIORITY)


def subscription_sort_key(
    subscription: ProviderSubscription,
    priorities: Mapping[str, int],
) -> tuple[int, int, str]:
    """Ascending key: lower priority number first, then newest first.

    Subscription id breaks exact ties so the ranking is a total order.
    """
    return (
        status_priority(subscription.status, priorities),
        -subscription.created,
        subscription.id,
    )


def compare_subscriptions(
    a: ProviderSubscription,
    b: ProviderSubscription,
    priorities: Mapping[str, int],
) -> int:
    """Three-way comparison; negative when ``a`` ranks ahead of ``b``."""
    key_a = subscription_sort_key(a, priorities)
    key_b = subscription_sort_key(b, priorities)
    return (key_a > key_b) - (key_a < key_b)


def rank_subscriptions(
    subscriptions: Iterable[ProviderSubscription],
    priorities: Mapping[str, int] = STATUS_PRIORITY,
) -> list[ProviderSubscription]:
    """Return subscriptions ordered best-first. The input is not modified."""
    return sorted(subscriptions, key=lambda sub: subscription_sort_key(sub, priorities))


def select_winning_subscription(
    subscriptions: Iterable[ProviderSubscription],
    priorities: Mapping[str, int] = STATUS_PRIORITY,
) -> ProviderSubscription | None:
    """Return the winning subscription, or None when there are none."""
    ranked = rank_subscriptions(subscriptions, priorities)
    return ranked[0] if ranked else None
