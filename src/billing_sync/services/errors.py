"""Exception hierarchy for billing state reconciliation."""

from __future__ import annotations


class BillingSyncError(Exception):
    """Base class for all billing sync errors."""

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class ConfigurationError(BillingSyncError):
    """Raised when required configuration (secrets, credentials) is missing.

    This is a process-level failure and should surface at startup rather
    than on individual webhook deliveries.
    """


class SignatureVerificationError(BillingSyncError):
    """Raised when a webhook payload cannot be verified as coming from Stripe."""


class ReconcileError(BillingSyncError):
    """Raised when a reconciliation cannot read provider state."""

    def __init__(
        self, message: str, customer_id: str | None = None, cause: Exception | None = None
    ) -> None:
        super().__init__(message, cause)
        self.customer_id = customer_id


class CustomerNotFoundError(ReconcileError):
    """Raised when the customer is unknown to (or deleted at) the provider.

    A webhook for a customer the provider does not know about indicates
    data corruption, not a normal race.
    """


class ProviderError(ReconcileError):
    """Raised when a provider API call fails or times out."""


class ProjectionError(BillingSyncError):
    """Raised when a provider subscription cannot be projected to local state."""


class StorageError(BillingSyncError):
    """Raised when a local persistence write fails."""
