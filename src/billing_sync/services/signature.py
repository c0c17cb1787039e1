"""Stripe webhook signature verification.

Verification must run on the exact bytes received. Parsing the body first
and re-serializing it changes the byte content and breaks the signature.
"""

from __future__ import annotations

import stripe
from loguru import logger

from billing_sync.services.errors import SignatureVerificationError

DEFAULT_TOLERANCE_SECONDS = stripe.Webhook.DEFAULT_TOLERANCE


def verify_event(
    payload: bytes,
    signature: str | None,
    secret: str,
    tolerance: int = DEFAULT_TOLERANCE_SECONDS,
) -> stripe.Event:
    """Verify a webhook delivery and decode it into a Stripe event.

    Args:
        payload: Raw, unparsed request body.
        signature: Value of the ``stripe-signature`` header.
        secret: Webhook signing secret (``whsec_...``).
        tolerance: Maximum allowed age of the signature timestamp in seconds.

    Returns:
        The decoded Stripe event.

    Raises:
        SignatureVerificationError: If the header is missing or malformed,
            the signature does not match, or the body is not valid JSON.
    """
    if not signature:
        raise SignatureVerificationError("Missing stripe-signature header")

    try:
        return stripe.Webhook.construct_event(payload, signature, secret, tolerance=tolerance)
    except stripe.SignatureVerificationError as e:
        logger.warning("Invalid Stripe signature: {}", e)
        raise SignatureVerificationError("Invalid signature", cause=e) from e
    except ValueError as e:
        logger.warning("Undecodable Stripe webhook payload: {}", e)
        raise SignatureVerificationError("Invalid payload", cause=e) from e
