"""
Payment provider adapters.

The provider is the source of truth for money. This module only knows how
to authenticate its webhooks, turn them into provider-neutral PaymentEvents,
ask for a refund and look up whether a payment settled. Everything it
raises is a BookingError: bad signatures are ValidationError, provider
failures are UpstreamError.
"""

import asyncio
import base64
import hashlib
import hmac
import json
import uuid
from abc import ABC, abstractmethod
from typing import Optional

import stripe

from venue_booking.core.exceptions import UpstreamError, ValidationError
from venue_booking.core.logging import get_logger
from venue_booking.schemas.payment import PaymentEvent, RefundResult

logger = get_logger(__name__)

MOCKPAY_SIGNATURE_HEADER = "x-mockpay-signature"
STRIPE_SIGNATURE_HEADER = "stripe-signature"

STRIPE_REFUND_REASONS = frozenset({"duplicate", "fraudulent", "requested_by_customer"})


def _payment_reference(event_type: str, obj: dict) -> Optional[str]:
    if event_type.startswith("payment_intent."):
        return obj.get("id")
    if event_type.startswith("charge.dispute."):
        return obj.get("payment_intent") or obj.get("charge")
    if event_type.startswith("charge."):
        return obj.get("payment_intent") or obj.get("id")
    if event_type.startswith("checkout.session."):
        return obj.get("payment_intent")
    return obj.get("payment_intent") or obj.get("id")


def _event_amount(event_type: str, obj: dict) -> Optional[int]:
    if event_type == "charge.refunded":
        refunds = (obj.get("refunds") or {}).get("data") or []
        if refunds:
            return refunds[0].get("amount")
        return obj.get("amount_refunded")
    if event_type == "payment_intent.refunded":
        return obj.get("amount_received") or obj.get("amount")
    if event_type.startswith("checkout.session."):
        return obj.get("amount_total")
    return obj.get("amount_received") or obj.get("amount")


def parse_provider_event(raw: dict) -> PaymentEvent:
    """Stripe-shaped `{id, type, data: {object}}` payload -> PaymentEvent."""
    if not isinstance(raw, dict):
        raise ValidationError("Webhook payload must be a JSON object")
    event_id = raw.get("id")
    event_type = raw.get("type")
    if not event_id or not event_type:
        raise ValidationError("Webhook event is missing id or type")
    obj = (raw.get("data") or {}).get("object") or {}
    return PaymentEvent(
        id=event_id,
        type=event_type,
        payment_reference=_payment_reference(event_type, obj),
        amount=_event_amount(event_type, obj),
        payload=obj,
    )


class PaymentAdapter(ABC):

    @abstractmethod
    def verify_webhook(self, payload: bytes, headers: dict) -> dict: ...

    def parse_event(self, raw: dict) -> PaymentEvent:
        return parse_provider_event(raw)

    @abstractmethod
    async def create_refund(self, charge_reference: str, amount: Optional[int], reason: str) -> RefundResult: ...

    # "succeeded" | "processing" | "requires_payment_method" | ...
    @abstractmethod
    async def retrieve_payment_status(self, reference: str) -> str: ...


class MockPay(PaymentAdapter):
    """HMAC-signed JSON webhooks and always-successful refunds, for dev and tests."""

    def __init__(self, secret: str):
        self.secret = secret

    def sign(self, payload: bytes) -> str:
        mac = hmac.new(self.secret.encode(), payload, hashlib.sha256).digest()
        return base64.b64encode(mac).decode()

    def verify_webhook(self, payload: bytes, headers: dict) -> dict:
        sig = headers.get(MOCKPAY_SIGNATURE_HEADER)
        if not sig or not hmac.compare_digest(self.sign(payload), sig):
            raise ValidationError("Invalid webhook signature")
        try:
            return json.loads(payload.decode())
        except (UnicodeDecodeError, json.JSONDecodeError):
            raise ValidationError("Invalid webhook JSON")

    async def create_refund(self, charge_reference: str, amount: Optional[int], reason: str) -> RefundResult:
        return RefundResult(refund_id=f"re_mock_{uuid.uuid4().hex[:16]}", status="succeeded", amount=amount)

    async def retrieve_payment_status(self, reference: str) -> str:
        return "succeeded"


class StripeAdapter(PaymentAdapter):

    def __init__(self, secret_key: str, webhook_secret: str):
        if not secret_key:
            raise ValueError("STRIPE_SECRET_KEY is required for the stripe payment provider")
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret

    def verify_webhook(self, payload: bytes, headers: dict) -> dict:
        sig = headers.get(STRIPE_SIGNATURE_HEADER)
        if not self.webhook_secret or not sig:
            raise ValidationError("Missing webhook signature")
        try:
            stripe.WebhookSignature.verify_header(payload.decode(), sig, self.webhook_secret)
            return json.loads(payload.decode())
        except stripe.SignatureVerificationError as e:
            logger.warning("webhook_signature_invalid", error=str(e))
            raise ValidationError("Invalid webhook signature")
        except (UnicodeDecodeError, json.JSONDecodeError):
            raise ValidationError("Invalid webhook JSON")

    async def create_refund(self, charge_reference: str, amount: Optional[int], reason: str) -> RefundResult:
        params = {"api_key": self.secret_key, "metadata": {"reason": reason}}
        if charge_reference.startswith("ch_"):
            params["charge"] = charge_reference
        else:
            params["payment_intent"] = charge_reference
        if amount is not None:
            params["amount"] = amount
        if reason in STRIPE_REFUND_REASONS:
            params["reason"] = reason
        try:
            refund = await asyncio.to_thread(stripe.Refund.create, **params)
        except stripe.StripeError as e:
            logger.error("refund_failed", payment_reference=charge_reference, error=str(e))
            raise UpstreamError(payment_reference=charge_reference)
        return RefundResult(refund_id=refund.id, status=refund.status, amount=refund.amount)

    async def retrieve_payment_status(self, reference: str) -> str:
        try:
            if reference.startswith("ch_"):
                obj = await asyncio.to_thread(stripe.Charge.retrieve, reference, api_key=self.secret_key)
            else:
                obj = await asyncio.to_thread(stripe.PaymentIntent.retrieve, reference, api_key=self.secret_key)
        except stripe.StripeError as e:
            logger.error("payment_lookup_failed", payment_reference=reference, error=str(e))
            raise UpstreamError(payment_reference=reference)
        return obj.status
