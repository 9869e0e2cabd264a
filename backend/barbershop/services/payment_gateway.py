"""
Payment gateway capability and its Stripe implementation.

The lifecycle and payment services only depend on ``PaymentGateway``;
tests substitute an in-memory implementation.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

import stripe
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from barbershop.lib.logging import get_logger
from barbershop.lib.settings import settings

logger = get_logger(__name__)


# Transient Stripe failures worth retrying
_TRANSIENT_ERRORS = (stripe.APIConnectionError, stripe.RateLimitError)


class PaymentGatewayError(Exception):
    """Gateway call failed; nothing was charged or refunded."""

    def __init__(self, message: str, provider_code: Optional[str] = None):
        self.message = message
        self.provider_code = provider_code
        super().__init__(message)


class WebhookVerificationError(PaymentGatewayError):
    """Webhook payload could not be authenticated."""


@dataclass(frozen=True)
class PaymentIntent:
    id: str
    client_secret: Optional[str]


@dataclass(frozen=True)
class WebhookEvent:
    type: str
    payment_reference_id: Optional[str]
    payload: Dict[str, Any]


class PaymentGateway(ABC):
    """Capability required from a payment provider."""

    @abstractmethod
    def create_payment_intent(
        self,
        amount_cents: int,
        currency: str,
        metadata: Dict[str, str],
        idempotency_key: Optional[str] = None,
    ) -> PaymentIntent:
        """Create a payment the customer can complete client-side."""

    @abstractmethod
    def refund(self, payment_reference_id: str) -> None:
        """Refund a captured payment in full. Raises PaymentGatewayError."""

    @abstractmethod
    def parse_webhook(self, payload: bytes, signature: Optional[str]) -> WebhookEvent:
        """Authenticate and decode a webhook delivery."""


class StripeGateway(PaymentGateway):
    """PaymentGateway backed by Stripe PaymentIntents."""

    def __init__(self, api_key: str, webhook_secret: str = ""):
        self.api_key = api_key
        self.webhook_secret = webhook_secret

    def _require_api_key(self) -> None:
        if not self.api_key:
            raise PaymentGatewayError("Stripe API key is not configured")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        retry=retry_if_exception_type(_TRANSIENT_ERRORS),
        reraise=True,
    )
    def _create_intent(self, **params) -> Any:
        return stripe.PaymentIntent.create(api_key=self.api_key, **params)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        retry=retry_if_exception_type(_TRANSIENT_ERRORS),
        reraise=True,
    )
    def _create_refund(self, **params) -> Any:
        return stripe.Refund.create(api_key=self.api_key, **params)

    def create_payment_intent(
        self,
        amount_cents: int,
        currency: str,
        metadata: Dict[str, str],
        idempotency_key: Optional[str] = None,
    ) -> PaymentIntent:
        params = {
            "amount": amount_cents,
            "currency": currency,
            "metadata": metadata,
            "automatic_payment_methods": {"enabled": True},
        }
        if idempotency_key:
            params["idempotency_key"] = idempotency_key
        self._require_api_key()
        try:
            intent = self._create_intent(**params)
        except stripe.StripeError as e:
            logger.error(f"Stripe payment intent creation failed: {e}", exc_info=True)
            raise PaymentGatewayError(str(e), getattr(e, "code", None)) from e

        return PaymentIntent(id=intent.id, client_secret=intent.client_secret)

    def refund(self, payment_reference_id: str) -> None:
        self._require_api_key()
        try:
            # Same key on retry so a refund is never issued twice
            self._create_refund(
                payment_intent=payment_reference_id,
                idempotency_key=f"refund-{payment_reference_id}",
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe refund failed for {payment_reference_id}: {e}", exc_info=True)
            raise PaymentGatewayError(str(e), getattr(e, "code", None)) from e

        logger.info(f"Refund issued for payment {payment_reference_id}")

    def parse_webhook(self, payload: bytes, signature: Optional[str]) -> WebhookEvent:
        if not self.webhook_secret:
            raise WebhookVerificationError("Stripe webhook secret is not configured")
        if not signature:
            raise WebhookVerificationError("Missing Stripe-Signature header")
        try:
            event = stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except ValueError as e:
            raise WebhookVerificationError(f"Invalid payload: {e}") from e
        except stripe.SignatureVerificationError as e:
            raise WebhookVerificationError("Invalid signature") from e

        obj = event["data"]["object"]
        reference = obj.get("id") if event["type"].startswith("payment_intent.") else None
        return WebhookEvent(type=event["type"], payment_reference_id=reference, payload=obj)


# Singleton gateway instance
_gateway: Optional[PaymentGateway] = None


def get_payment_gateway() -> PaymentGateway:
    """Get singleton gateway instance."""
    global _gateway

    if _gateway is None:
        _gateway = StripeGateway(settings.stripe_secret_key, settings.stripe_webhook_secret)

    return _gateway
