"""
Stripe payment provider implementation.

Implements PaymentProvider protocol using the Stripe API.
Handles webhook signature verification and event parsing.
"""
import json
import logging
from typing import Dict, Any, Optional

import stripe

from quotarelay.core.errors import AuthenticityError, RemoteSessionError
from quotarelay.features.billing.provider import VerifiedEvent


logger = logging.getLogger(__name__)


class StripeProvider:
    """Stripe implementation of PaymentProvider protocol."""

    def __init__(
        self,
        secret_key: str,
        webhook_secret: str,
        timeout: float = 10.0,
        tolerance: int = stripe.Webhook.DEFAULT_TOLERANCE,
    ):
        """
        Initialize Stripe provider.

        Args:
            secret_key: Stripe secret key
            webhook_secret: Stripe webhook signing secret
            timeout: Seconds before an outbound API call is abandoned
            tolerance: Allowed clock skew, in seconds, for webhook timestamps
        """
        if not secret_key:
            raise ValueError("STRIPE_SECRET_KEY not configured")
        if not webhook_secret:
            raise ValueError("STRIPE_WEBHOOK_SECRET not configured")

        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.tolerance = tolerance

        stripe.api_key = secret_key
        # No automatic retries on outbound calls
        stripe.max_network_retries = 0
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout)

    def create_checkout_session(
        self,
        price_id: str,
        success_url: str,
        cancel_url: str,
        customer_email: Optional[str] = None,
        client_reference_id: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> str:
        """Create Stripe checkout session."""
        params: Dict[str, Any] = {
            "payment_method_types": ["card"],
            "line_items": [{"price": price_id, "quantity": 1}],
            "mode": "subscription",
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": metadata or {},
        }
        if customer_email:
            params["customer_email"] = customer_email
        if client_reference_id:
            params["client_reference_id"] = client_reference_id

        try:
            session = stripe.checkout.Session.create(**params)
        except stripe.StripeError as e:
            message = e.user_message or str(e)
            logger.warning(
                "[stripe] checkout session creation failed",
                extra={"price_id": price_id, "stripe_error": type(e).__name__},
            )
            raise RemoteSessionError(f"Stripe checkout session creation failed: {message}") from e
        return session.url

    def verify_event(self, payload: bytes, signature: Optional[str]) -> VerifiedEvent:
        """Verify Stripe webhook signature and parse event."""
        if not signature:
            raise AuthenticityError("Missing stripe-signature header")

        try:
            stripe.Webhook.construct_event(
                payload, signature, self.webhook_secret, tolerance=self.tolerance
            )
        except ValueError as e:
            raise AuthenticityError(f"Invalid payload: {e}") from e
        except stripe.SignatureVerificationError as e:
            raise AuthenticityError(f"Invalid signature: {e}") from e

        # Signature holds, so the raw body is the authentic event
        event = json.loads(payload)
        return self._parse_event(event)

    def _parse_event(self, event: Dict[str, Any]) -> VerifiedEvent:
        if not isinstance(event, dict) or not event.get("type"):
            raise AuthenticityError("Invalid payload: not a Stripe event")
        data = event.get("data") or {}
        obj = data.get("object") if isinstance(data, dict) else None
        return VerifiedEvent(
            event_id=event.get("id") or "",
            event_type=event["type"],
            data=obj if isinstance(obj, dict) else {},
        )
