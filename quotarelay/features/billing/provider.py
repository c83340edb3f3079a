"""
Payment provider protocol.

Defines the interface for payment providers (Stripe, etc.).
This allows swapping providers without changing business logic.
"""
from typing import Protocol, Dict, Any, Optional
from dataclasses import dataclass, field


@dataclass(frozen=True)
class VerifiedEvent:
    """An event whose signature has been checked."""
    event_id: str
    event_type: str
    data: Dict[str, Any] = field(default_factory=dict)  # event.data.object


@dataclass(frozen=True)
class PaymentEvent:
    """Normalized view of a verified event; only what reconciliation needs."""
    event_id: str
    type: str
    customer_id: Optional[str]
    price_id: Optional[str]


class PaymentProvider(Protocol):
    """
    Protocol for payment providers.

    Implementations must handle:
    - Checkout session creation
    - Webhook signature verification and parsing
    """

    def create_checkout_session(
        self,
        price_id: str,
        success_url: str,
        cancel_url: str,
        customer_email: Optional[str] = None,
        client_reference_id: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> str:
        """
        Create a hosted checkout session for a subscription.

        Args:
            price_id: Provider price ID (e.g., Stripe price ID)
            success_url: URL to redirect on success
            cancel_url: URL to redirect on cancellation
            customer_email: Prefill for the checkout form (optional)
            client_reference_id: Caller's own identifier for the buyer (optional)
            metadata: Opaque metadata echoed back on completion events

        Returns:
            Checkout session URL

        Raises:
            RemoteSessionError: If the provider rejects or fails the call
        """
        ...

    def verify_event(self, payload: bytes, signature: Optional[str]) -> VerifiedEvent:
        """
        Verify webhook signature and parse event.

        Args:
            payload: Raw webhook body (for signature verification)
            signature: Value of the provider's signature header

        Returns:
            Verified event

        Raises:
            AuthenticityError: If signature invalid, stale, or payload malformed
        """
        ...
