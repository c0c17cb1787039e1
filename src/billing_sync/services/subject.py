"""Resolve the Stripe customer a webhook event pertains to.

Payload shapes differ per event family. Each family gets its own decoder
that returns an explicit optional customer id, and dispatch is keyed by
the classified event kind rather than by probing whichever fields happen to exist.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Protocol

from billing_sync.services.events import EventKind


def object_id(value: Any) -> str | None:
    """Normalize a reference (id string or expanded object) to its id."""
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, Mapping):
        ref = value.get("id")
        if isinstance(ref, str) and ref.strip():
            return ref.strip()
    return None


class SubjectPayload(Protocol):
    @property
    def customer_id(self) -> str | None: ...


@dataclass(frozen=True)
class CheckoutSessionPayload:
    """``checkout.session.completed`` object."""

    id: str | None
    customer_id: str | None
    subscription_id: str | None

    @classmethod
    def from_object(cls, obj: Mapping[str, Any]) -> CheckoutSessionPayload:
        return cls(
            id=obj.get("id"),
            customer_id=object_id(obj.get("customer")),
            subscription_id=object_id(obj.get("subscription")),
        )


@dataclass(frozen=True)
class SubscriptionPayload:
    """``customer.subscription.*`` object."""

    id: str | None
    customer_id: str | None
    status: str | None

    @classmethod
    def from_object(cls, obj: Mapping[str, Any]) -> SubscriptionPayload:
        return cls(
            id=obj.get("id"),
            customer_id=object_id(obj.get("customer")),
            status=obj.get("status"),
        )


@dataclass(frozen=True)
class InvoicePayload:
    """``invoice.*`` object."""

    id: str | None
    customer_id: str | None

    @classmethod
    def from_object(cls, obj: Mapping[str, Any]) -> InvoicePayload:
        return cls(id=obj.get("id"), customer_id=object_id(obj.get("customer")))


@dataclass(frozen=True)
class PaymentIntentPayload:
    """``payment_intent.*`` object. Guest payments carry no customer."""

    id: str | None
    customer_id: str | None

    @classmethod
    def from_object(cls, obj: Mapping[str, Any]) -> PaymentIntentPayload:
        return cls(id=obj.get("id"), customer_id=object_id(obj.get("customer")))


DECODE_BY_KIND: dict[EventKind, Callable[[Mapping[str, Any]], SubjectPayload]] = {
    EventKind.CHECKOUT_SESSION: CheckoutSessionPayload.from_object,
    EventKind.SUBSCRIPTION: SubscriptionPayload.from_object,
    EventKind.INVOICE: InvoicePayload.from_object,
    EventKind.PAYMENT_INTENT: PaymentIntentPayload.from_object,
}


def decode_payload(kind: EventKind | None, obj: Mapping[str, Any]) -> SubjectPayload | None:
    """Decode ``data.object`` with the decoder for the event's family."""
    if kind is None:
        return None
    return DECODE_BY_KIND[kind](obj)


def resolve_customer_id(kind: EventKind | None, obj: Mapping[str, Any] | None) -> str | None:
    """Return the customer id for an event, or None when it cannot be resolved.

    A direct string ``customer`` field wins; otherwise the family decoder
    for the event kind is consulted.
    """
    if not obj:
        return None

    direct = obj.get("customer")
    if isinstance(direct, str) and direct.strip():
        return direct.strip()

    payload = decode_payload(kind, obj)
    if payload is None:
        return None
    return payload.customer_id
