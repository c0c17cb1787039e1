"""Stripe API gateway.

The Stripe SDK is synchronous. Every call runs in a worker thread and is
bounded by a timeout so a slow provider cannot hold a webhook request open
indefinitely.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any, TypeVar

import stripe
from loguru import logger

from billing_sync.services.errors import CustomerNotFoundError, ProviderError
from billing_sync.services.models import ProviderSubscription

T = TypeVar("T")

SUBSCRIPTION_PAGE_SIZE = 100


def _to_dict(obj: Any) -> dict[str, Any]:
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return dict(obj)


class StripeGateway:
    """Read-only access to the Stripe objects reconciliation needs."""

    def __init__(
        self,
        api_key: str,
        timeout: float = 10.0,
        client: Any = None,
    ) -> None:
        """Initialize the gateway.

        Args:
            api_key: Stripe secret key.
            timeout: Per-call timeout in seconds.
            client: Object exposing ``Customer``, ``Subscription`` and
                ``PaymentMethod`` resources. Defaults to the ``stripe``
                module; tests pass a mock.
        """
        self._api_key = api_key
        self.timeout = timeout
        self._stripe = client if client is not None else stripe

    async def _call(self, description: str, fn: Callable[[], T]) -> T:
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            logger.error("Stripe call timed out after {}s: {}", self.timeout, description)
            raise ProviderError(f"Timed out: {description}", cause=e) from e

    async def retrieve_customer(self, customer_id: str) -> dict[str, Any]:
        """Fetch a customer, failing loudly if Stripe does not know it.

        Raises:
            CustomerNotFoundError: If the customer is missing or deleted.
            ProviderError: On any other API failure.
        """
        try:
            customer = await self._call(
                f"retrieve customer {customer_id}",
                lambda: self._stripe.Customer.retrieve(customer_id, api_key=self._api_key),
            )
        except stripe.InvalidRequestError as e:
            if getattr(e, "code", None) == "resource_missing":
                raise CustomerNotFoundError(
                    f"Stripe customer not found: {customer_id}", customer_id=customer_id, cause=e
                ) from e
            raise ProviderError(
                f"Failed to retrieve customer {customer_id}", customer_id=customer_id, cause=e
            ) from e
        except stripe.StripeError as e:
            raise ProviderError(
                f"Failed to retrieve customer {customer_id}", customer_id=customer_id, cause=e
            ) from e

        data = _to_dict(customer)
        if data.get("deleted"):
            raise CustomerNotFoundError(
                f"Stripe customer was deleted: {customer_id}", customer_id=customer_id
            )
        return data

    async def list_subscriptions(self, customer_id: str) -> list[ProviderSubscription]:
        """List every subscription for a customer, in any status.

        Canceled subscriptions are included on purpose: a cancellation has to
        be observed to downgrade the account.
        """

        def fetch() -> list[dict[str, Any]]:
            page = self._stripe.Subscription.list(
                customer=customer_id,
                status="all",
                limit=SUBSCRIPTION_PAGE_SIZE,
                api_key=self._api_key,
            )
            return [_to_dict(sub) for sub in page.auto_paging_iter()]

        try:
            rows = await self._call(f"list subscriptions for {customer_id}", fetch)
        except stripe.StripeError as e:
            raise ProviderError(
                f"Failed to list subscriptions for {customer_id}",
                customer_id=customer_id,
                cause=e,
            ) from e

        logger.debug("Stripe returned {} subscriptions for {}", len(rows), customer_id)
        return [ProviderSubscription.from_stripe(row) for row in rows]

    async def retrieve_payment_method(self, payment_method_id: str) -> dict[str, Any]:
        try:
            payment_method = await self._call(
                f"retrieve payment method {payment_method_id}",
                lambda: self._stripe.PaymentMethod.retrieve(
                    payment_method_id, api_key=self._api_key
                ),
            )
        except stripe.StripeError as e:
            raise ProviderError(f"Failed to retrieve payment method {payment_method_id}", cause=e) from e
        return _to_dict(payment_method)
