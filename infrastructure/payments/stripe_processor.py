import logging
from typing import Optional

import stripe

from use_cases.domain_models import PaymentMethod, ProcessorOutcome

log = logging.getLogger(__name__)


def intent_id_from_secret(client_secret: str) -> str:
    """`pi_123_secret_abc` -> `pi_123`."""
    intent_id, sep, _ = client_secret.partition("_secret_")
    if not sep or not intent_id:
        raise ValueError("malformed PaymentIntent client secret")
    return intent_id


class StripeCardProcessor:
    """Client-side PaymentIntent confirmation with a publishable key."""

    def __init__(self, publishable_key: Optional[str]):
        self.publishable_key = publishable_key

    def confirm_card_payment(self, client_secret: str, payment_method: PaymentMethod) -> ProcessorOutcome:
        if not self.publishable_key:
            return ProcessorOutcome(status="error", message="Payment processor is not configured.")

        try:
            intent_id = intent_id_from_secret(client_secret)
        except ValueError:
            log.error("Server issued a malformed PaymentIntent client secret")
            return ProcessorOutcome(status="error", message="Payment could not be started. Please try again.")

        try:
            intent = stripe.PaymentIntent.confirm(
                intent_id,
                client_secret=client_secret,
                payment_method=payment_method.id,
                api_key=self.publishable_key,
            )
        except stripe.CardError as e:
            log.info(f"Card declined: {e.code}")
            return ProcessorOutcome(status="declined", message=e.user_message or "Your card was declined.")
        except stripe.StripeError as e:
            log.error(f"Stripe confirmation failed: {e.user_message or e}")
            return ProcessorOutcome(status="error", message=e.user_message or "Payment processor error.")

        if intent.status == "succeeded":
            return ProcessorOutcome(status="succeeded", payment_intent_id=intent.id)
        if intent.status == "requires_action":
            return ProcessorOutcome(
                status="requires_action",
                payment_intent_id=intent.id,
                message="Additional card authentication is required. Please try again.",
            )
        return ProcessorOutcome(
            status="error", payment_intent_id=intent.id, message=f"Payment status: {intent.status}"
        )
