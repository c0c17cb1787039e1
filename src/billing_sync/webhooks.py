"""
Stripe webhook ingestion for billing state reconciliation.

Each delivery is verified against the raw request body, classified, mapped
to a Stripe customer and then fed to a full resync of that customer.

Acknowledgment policy: once a delivery is verified, the endpoint by default
answers 200, including when the event is irrelevant, has no customer, or
the resync fails. Stripe retries non-2xx responses for days, and during a
downstream outage those retries only multiply duplicate work. Failures are
reported in the response body and logged at ERROR instead; recovery is
done by an operator (see ``billing_sync.scripts``), not by provider retries.
Setting ``ACKNOWLEDGE_RECONCILE_FAILURES=false`` restores 500 responses for
failed resyncs, handing recovery back to Stripe retries.
"""

from __future__ import annotations

from collections import Counter
from enum import Enum
from typing import Any, Optional

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse
from loguru import logger

from billing_sync.config import settings
from billing_sync.services.errors import (
    ConfigurationError,
    CustomerNotFoundError,
    ReconcileError,
    SignatureVerificationError,
)
from billing_sync.services.events import classify_event
from billing_sync.services.reconciler import Reconciler, get_reconciler
from billing_sync.services.signature import verify_event
from billing_sync.services.subject import resolve_customer_id

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


class DeliveryOutcome(str, Enum):
    """Terminal state of one webhook delivery."""

    REJECTED = "rejected"
    IGNORED = "ignored"
    NO_SUBJECT = "no_subject"
    RECONCILED = "reconciled"
    PARTIAL = "partial"
    RECONCILE_FAILED = "reconcile_failed"


# Per-outcome counts since process start, reported by the health endpoint.
delivery_outcomes: Counter[str] = Counter()


def _respond(outcome: DeliveryOutcome, body: dict[str, Any], status_code: int = 200) -> JSONResponse:
    if outcome in (DeliveryOutcome.RECONCILE_FAILED, DeliveryOutcome.PARTIAL):
        if not settings.acknowledge_reconcile_failures:
            status_code = 500
    delivery_outcomes[outcome.value] += 1
    return JSONResponse(body, status_code=status_code)


# ============================================
# DEPENDENCIES
# ============================================


def get_reconciler_dependency() -> Reconciler:
    """Dependency to get the configured Reconciler."""
    return get_reconciler()


# ============================================
# STRIPE WEBHOOK HANDLER
# ============================================


@router.post("/billing")
async def billing_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="stripe-signature"),
    reconciler: Reconciler = Depends(get_reconciler_dependency),
) -> JSONResponse:
    """
    Handle a Stripe billing webhook.

    Responses:
    - 400: missing or invalid signature, nothing else was done
    - 500: signing secret not configured (only reachable when the app was
      built with validate_config=False)
    - 200 handled=false: irrelevant event, no customer, or failed resync
    - 200 handled=true: the customer was fully resynced
    """
    # create_app checks this at startup; unvalidated apps still fail closed.
    try:
        secret = settings.require_webhook_secret()
    except ConfigurationError as e:
        logger.error("{}", e)
        return JSONResponse({"received": False, "error": str(e)}, status_code=500)

    # Raw bytes: the signature covers the exact body.
    payload = await request.body()

    try:
        event = verify_event(
            payload, stripe_signature, secret, tolerance=settings.webhook_tolerance_seconds
        )
    except SignatureVerificationError as e:
        return _respond(
            DeliveryOutcome.REJECTED,
            {"received": False, "error": f"Webhook Error: {e}"},
            status_code=400,
        )

    event_data = event.to_dict()
    event_type = event_data.get("type") or ""
    event_id = event_data.get("id")
    data = (event_data.get("data") or {}).get("object") or {}

    logger.info("Received Stripe webhook: {} (ID: {})", event_type, event_id)

    kind = classify_event(event_type)
    if kind is None:
        logger.info("Ignoring unhandled event type: {}", event_type)
        return _respond(
            DeliveryOutcome.IGNORED,
            {"received": True, "handled": False, "reason": "unhandled_event_type"},
        )

    customer_id = resolve_customer_id(kind, data)
    if not customer_id:
        logger.warning("Could not extract customer ID from event: {} ({})", event_type, event_id)
        return _respond(
            DeliveryOutcome.NO_SUBJECT,
            {"received": True, "handled": False, "reason": "no_customer_id"},
        )

    try:
        result = await reconciler.reconcile(customer_id)
    except CustomerNotFoundError as e:
        logger.error("Stripe customer {} not found for event {}: {}", customer_id, event_type, e)
        return _respond(
            DeliveryOutcome.RECONCILE_FAILED,
            {
                "received": True,
                "handled": False,
                "reason": "customer_not_found",
                "error": str(e),
            },
        )
    except ReconcileError as e:
        logger.error("Error reconciling customer {} (event: {}): {}", customer_id, event_type, e)
        return _respond(
            DeliveryOutcome.RECONCILE_FAILED,
            {"received": True, "handled": False, "reason": "reconcile_failed", "error": str(e)},
        )
    except Exception as e:
        logger.exception("Unexpected error reconciling customer {}", customer_id)
        return _respond(
            DeliveryOutcome.RECONCILE_FAILED,
            {"received": True, "handled": False, "reason": "reconcile_failed", "error": str(e)},
        )

    if not result.ok:
        return _respond(
            DeliveryOutcome.PARTIAL,
            {
                "received": True,
                "handled": False,
                "reason": "partial_sync",
                "customer_id": customer_id,
                "errors": result.errors,
            },
        )

    logger.info("Updated account for customer {} (event: {})", customer_id, event_type)
    return _respond(
        DeliveryOutcome.RECONCILED,
        {
            "received": True,
            "handled": True,
            "event_type": event_type,
            "customer_id": customer_id,
            "subscription_status": result.account.subscription_status,
        },
    )


# ============================================
# HEALTH CHECK
# ============================================


@router.get("/health")
async def webhook_health() -> JSONResponse:
    """Health check endpoint for webhook service."""
    return JSONResponse({
        "status": "healthy",
        "stripe_configured": bool(settings.stripe_secret_key),
        "webhook_secret_configured": bool(settings.stripe_webhook_secret),
        "supabase_configured": bool(settings.supabase_url and settings.supabase_service_key),
        "deliveries": dict(delivery_outcomes),
    })
