"""
Checkout initiator.

Asks the payment provider for a hosted checkout session and returns its
redirect URL. No local state is touched.
"""
import logging
from typing import Dict, Optional
from urllib.parse import urlsplit

from quotarelay.core.errors import ValidationError
from quotarelay.features.billing.provider import PaymentProvider


logger = logging.getLogger(__name__)

# Metadata keys read back by the event reconciler
METADATA_USER_ID = "user_id"
METADATA_PRICE_ID = "price_id"


def _with_flag(base_url: str, flag: str) -> str:
    separator = "&" if urlsplit(base_url).query else "?"
    return f"{base_url}{separator}{flag}=true"


class CheckoutInitiator:
    def __init__(self, provider: PaymentProvider, public_base_url: str):
        self.provider = provider
        self.public_base_url = public_base_url

    @property
    def success_url(self) -> str:
        return _with_flag(self.public_base_url, "success")

    @property
    def cancel_url(self) -> str:
        return _with_flag(self.public_base_url, "canceled")

    def create_session(
        self,
        price_id: str,
        customer_email: Optional[str] = None,
        external_user_id: Optional[str] = None,
    ) -> str:
        """
        Start a checkout for price_id.

        The price is validated by the provider, not here. external_user_id
        rides along as session metadata and client_reference_id so the
        completion event can be attributed without a database lookup.

        Returns:
            Redirect URL of the hosted checkout page

        Raises:
            ValidationError: price_id empty
            RemoteSessionError: provider call failed (never retried)
        """
        price_id = (price_id or "").strip()
        if not price_id:
            raise ValidationError("priceId is required")

        metadata: Dict[str, str] = {METADATA_PRICE_ID: price_id}
        if external_user_id:
            metadata[METADATA_USER_ID] = external_user_id

        url = self.provider.create_checkout_session(
            price_id=price_id,
            success_url=self.success_url,
            cancel_url=self.cancel_url,
            customer_email=customer_email or None,
            client_reference_id=external_user_id or None,
            metadata=metadata,
        )
        logger.info(
            "[checkout] session created",
            extra={"price_id": price_id, "has_user_id": bool(external_user_id)},
        )
        return url
