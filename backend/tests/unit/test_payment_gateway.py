"""
Tests for the Stripe payment gateway adapter.

Stripe SDK calls are patched; no network traffic is made.
"""
import json
from types import SimpleNamespace
from unittest.mock import patch

import pytest
import stripe

from barbershop.services.payment_gateway import (
    PaymentGatewayError,
    StripeGateway,
    WebhookVerificationError,
)


@pytest.fixture
def gateway():
    return StripeGateway(api_key="sk_test_123", webhook_secret="whsec_test")


@pytest.fixture(autouse=True)
def no_retry_sleep():
    with patch("tenacity.nap.time.sleep"):
        yield


@pytest.mark.unit
def test_create_payment_intent(gateway):
    with patch("stripe.PaymentIntent.create") as create:
        create.return_value = SimpleNamespace(id="pi_1", client_secret="pi_1_secret")

        intent = gateway.create_payment_intent(
            500, "gbp", {"appointment_id": "a-1"}, idempotency_key="deposit-a-1"
        )

    assert intent.id == "pi_1"
    assert intent.client_secret == "pi_1_secret"
    kwargs = create.call_args.kwargs
    assert kwargs["amount"] == 500
    assert kwargs["currency"] == "gbp"
    assert kwargs["api_key"] == "sk_test_123"
    assert kwargs["idempotency_key"] == "deposit-a-1"


@pytest.mark.unit
def test_create_payment_intent_maps_stripe_errors(gateway):
    error = stripe.InvalidRequestError("Amount too small", param="amount", code="amount_too_small")
    with patch("stripe.PaymentIntent.create", side_effect=error):
        with pytest.raises(PaymentGatewayError) as exc_info:
            gateway.create_payment_intent(1, "gbp", {})

    assert exc_info.value.provider_code == "amount_too_small"


@pytest.mark.unit
def test_transient_errors_are_retried(gateway):
    with patch("stripe.PaymentIntent.create") as create:
        create.side_effect = [
            stripe.APIConnectionError("network down"),
            SimpleNamespace(id="pi_2", client_secret="secret"),
        ]

        intent = gateway.create_payment_intent(500, "gbp", {})

    assert intent.id == "pi_2"
    assert create.call_count == 2


@pytest.mark.unit
def test_refund_uses_reference_scoped_idempotency_key(gateway):
    with patch("stripe.Refund.create") as create:
        gateway.refund("pi_9")

    create.assert_called_once_with(
        api_key="sk_test_123", payment_intent="pi_9", idempotency_key="refund-pi_9"
    )


@pytest.mark.unit
def test_refund_failure_raises_gateway_error(gateway):
    with patch("stripe.Refund.create", side_effect=stripe.RateLimitError("slow down")) as create:
        with pytest.raises(PaymentGatewayError):
            gateway.refund("pi_9")

    assert create.call_count == 3


@pytest.mark.unit
def test_missing_api_key_fails_at_call_time():
    unconfigured = StripeGateway(api_key="")

    with pytest.raises(PaymentGatewayError):
        unconfigured.refund("pi_1")


@pytest.mark.unit
def test_parse_webhook_returns_payment_reference(gateway):
    event = {"type": "payment_intent.succeeded", "data": {"object": {"id": "pi_5", "amount": 500}}}
    payload = json.dumps(event).encode()

    with patch("stripe.Webhook.construct_event", return_value=event) as construct:
        parsed = gateway.parse_webhook(payload, "t=1,v1=abc")

    construct.assert_called_once_with(payload, "t=1,v1=abc", "whsec_test")
    assert parsed.type == "payment_intent.succeeded"
    assert parsed.payment_reference_id == "pi_5"


@pytest.mark.unit
def test_parse_webhook_ignores_reference_for_other_events(gateway):
    event = {"type": "charge.refunded", "data": {"object": {"id": "ch_1"}}}

    with patch("stripe.Webhook.construct_event", return_value=event):
        parsed = gateway.parse_webhook(b"{}", "sig")

    assert parsed.payment_reference_id is None


@pytest.mark.unit
@pytest.mark.parametrize(
    "side_effect",
    [ValueError("bad json"), stripe.SignatureVerificationError("mismatch", "sig")],
)
def test_parse_webhook_rejects_unverified_payloads(gateway, side_effect):
    with patch("stripe.Webhook.construct_event", side_effect=side_effect):
        with pytest.raises(WebhookVerificationError):
            gateway.parse_webhook(b"{}", "sig")


@pytest.mark.unit
def test_parse_webhook_requires_signature(gateway):
    with pytest.raises(WebhookVerificationError):
        gateway.parse_webhook(b"{}", None)
