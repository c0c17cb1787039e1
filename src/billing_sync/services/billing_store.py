"""Supabase persistence for billing state.

Two tables are touched:
- accounts: billing fields of the local account, keyed by stripe_customer_id
- subscriptions: denormalized subscription cache, unique on stripe_customer_id

Both writes are single-row operations. Concurrent upserts for the same
customer serialize on the unique constraint, so no application lock is
taken here.

The updated_at columns are left to the database default or trigger, so a
resync with no provider change sends identical rows.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Callable
from typing import Any, Protocol, TypeVar

from loguru import logger
from supabase import create_client

from billing_sync.config import settings
from billing_sync.services.account_state import SubscriptionState
from billing_sync.services.errors import ConfigurationError, StorageError
from billing_sync.services.models import AccountBillingState, SubscriptionRecord

T = TypeVar("T")

ACCOUNTS_TABLE = "accounts"
SUBSCRIPTIONS_TABLE = "subscriptions"
CUSTOMER_CONFLICT_TARGET = "stripe_customer_id"


class SupabaseClientProtocol(Protocol):
    """Protocol for the Supabase client to enable mocking/testing."""

    def table(self, table_name: str) -> Any:
        """Get a table reference."""
        ...


class BillingStore:
    """Reads and writes the local billing tables."""

    def __init__(
        self,
        url: str | None = None,
        key: str | None = None,
        client: SupabaseClientProtocol | None = None,
        timeout: float = 10.0,
    ) -> None:
        """Initialize the store.

        Args:
            url: Supabase URL. Falls back to the SUPABASE_URL env var.
            key: Supabase service role key. Falls back to SUPABASE_SERVICE_KEY.
            client: Optional pre-configured client (for testing/mocking).
            timeout: Per-operation timeout in seconds.

        Raises:
            ConfigurationError: If credentials are missing.
        """
        self.timeout = timeout
        self._client: SupabaseClientProtocol

        if client is not None:
            self._client = client
            logger.info("BillingStore initialized with custom client")
            return

        url = url or os.getenv("SUPABASE_URL")
        key = key or os.getenv("SUPABASE_SERVICE_KEY")
        if not url or not key:
            raise ConfigurationError(
                "Supabase URL and service key are required. "
                "Set SUPABASE_URL and SUPABASE_SERVICE_KEY environment variables."
            )

        self._client = create_client(url, key)
        logger.info("BillingStore initialized with Supabase")

    async def _execute(self, description: str, fn: Callable[[], T]) -> T:
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise StorageError(f"Timed out after {self.timeout}s: {description}", cause=e) from e
        except Exception as e:
            raise StorageError(f"Failed to {description}: {e}", cause=e) from e

    async def upsert_subscription(self, record: SubscriptionRecord) -> None:
        """Replace the subscription row for a customer, creating it if absent."""
        row = record.to_row()
        await self._execute(
            f"upsert subscription for {record.stripe_customer_id}",
            lambda: self._client.table(SUBSCRIPTIONS_TABLE)
            .upsert(row, on_conflict=CUSTOMER_CONFLICT_TARGET)
            .execute(),
        )
        logger.debug(
            "Upserted subscription {} for customer {}",
            record.subscription_id,
            record.stripe_customer_id,
        )

    async def delete_subscription(self, customer_id: str) -> None:
        await self._execute(
            f"delete subscription for {customer_id}",
            lambda: self._client.table(SUBSCRIPTIONS_TABLE)
            .delete()
            .eq("stripe_customer_id", customer_id)
            .execute(),
        )
        logger.debug("Deleted subscription record for customer {}", customer_id)

    async def update_account(self, customer_id: str, state: AccountBillingState) -> int:
        """Write billing fields onto the account owning ``customer_id``.

        Returns:
            Number of account rows updated.
        """
        row = state.to_row()
        response = await self._execute(
            f"update account for {customer_id}",
            lambda: self._client.table(ACCOUNTS_TABLE)
            .update(row)
            .eq("stripe_customer_id", customer_id)
            .execute(),
        )
        updated = len(response.data or [])
        if updated == 0:
            logger.warning("No account found for Stripe customer {}", customer_id)
        return updated

    async def get_subscription(self, customer_id: str) -> SubscriptionRecord | None:
        response = await self._execute(
            f"read subscription for {customer_id}",
            lambda: self._client.table(SUBSCRIPTIONS_TABLE)
            .select("*")
            .eq("stripe_customer_id", customer_id)
            .maybe_single()
            .execute(),
        )
        if response is None or not response.data:
            return None
        return SubscriptionRecord.from_row(response.data)

    async def get_account_state(self, customer_id: str) -> SubscriptionState:
        """Read the normalized subscription state for a customer's account.

        A missing account yields the default (hobby, inactive) state.
        """
        response = await self._execute(
            f"read account for {customer_id}",
            lambda: self._client.table(ACCOUNTS_TABLE)
            .select("plan, billing_mode, subscription_status, stripe_subscription_id")
            .eq("stripe_customer_id", customer_id)
            .maybe_single()
            .execute(),
        )
        if response is None or not response.data:
            return SubscriptionState.default()
        return SubscriptionState.from_account_row(response.data)


# Global instance for dependency injection
_billing_store: BillingStore | None = None


def get_billing_store() -> BillingStore:
    """Get or create the global billing store.

    Raises:
        ConfigurationError: If the store cannot be initialized.
    """
    global _billing_store
    if _billing_store is None:
        _billing_store = BillingStore(
            url=settings.supabase_url,
            key=settings.supabase_service_key,
            timeout=settings.storage_timeout_seconds,
        )
    return _billing_store


def set_billing_store(store: BillingStore | None) -> None:
    """Set the global billing store (useful for testing)."""
    global _billing_store
    _billing_store = store
