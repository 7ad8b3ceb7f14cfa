"""Checkout payment handshake.

intent-created -> processor-settled -> server-confirmed. Each boundary has
its own failure: intent creation fails before anything is charged, a
processor failure means the card was not charged, and a confirmation
failure after a successful charge is reported as PAYMENT_RECORDING_FAILED
so the customer is sent to support instead of being asked to pay again.
"""

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, Literal, Optional

from use_cases.domain_models import (
    Booking,
    BookingStatus,
    CheckoutRequest,
    PaymentIntent,
    PaymentMethod,
    PaymentStatus,
)
from use_cases.errors import ApiError, ErrorKind

log = logging.getLogger(__name__)

RECORDING_FAILED_MESSAGE = (
    "Your payment was received, but we could not record it against your booking. "
    "Please do not pay again; contact support and quote booking {booking_id}."
)


class HandshakePhase(str, Enum):
    INTENT_CREATED = "intent-created"
    PROCESSOR_SETTLED = "processor-settled"
    SERVER_CONFIRMED = "server-confirmed"


HandshakeStatus = Literal["OK", "FAILED", "REJECTED"]


@dataclass(frozen=True)
class HandshakeResult:
    """`phase` is the last phase completed; None when phase 1 did not complete."""

    status: HandshakeStatus
    reason: str
    phase: Optional[HandshakePhase] = None
    intent: Optional[PaymentIntent] = None
    error_kind: Optional[ErrorKind] = None

    @property
    def ok(self) -> bool:
        return self.status == "OK"

    @property
    def booking_id(self) -> Optional[str]:
        return self.intent.booking_id if self.intent else None


class PaymentHandshakeCoordinator:
    def __init__(self, api, processor, bookings=None, audit=None):
        self._api = api
        self._processor = processor
        self._bookings = bookings
        self._audit = audit
        self._creating = False
        self._settling = set()
        # client_secret -> intent, for every intent the server issued to us
        self._issued: Dict[str, PaymentIntent] = {}
        self._settled: Dict[str, PaymentIntent] = {}

    @property
    def is_submitting(self) -> bool:
        return self._creating

    def checkout(
        self,
        request: CheckoutRequest,
        payment_method: PaymentMethod,
        intent: Optional[PaymentIntent] = None,
    ) -> HandshakeResult:
        """Run all three phases. Pass back `intent` from a failed attempt to retry without a new booking."""
        if intent is None:
            created = self.create_intent(request)
            if not created.ok:
                return created
            intent = created.intent

        settled = self.settle(intent, payment_method)
        if not settled.ok:
            return settled
        return self.record(settled.intent)

    def create_intent(self, request: CheckoutRequest) -> HandshakeResult:
        """Phase 1. Creates a pending/unpaid booking server-side; never issued twice concurrently."""
        if self._creating:
            return HandshakeResult(status="REJECTED", reason="checkout_in_flight")

        self._creating = True
        try:
            body = self._api.create_payment_intent(request.to_payload())
        except ApiError as e:
            log.warning(f"Payment intent creation failed: {e.kind.value}")
            return HandshakeResult(status="FAILED", reason=e.message, error_kind=e.kind)
        finally:
            self._creating = False

        client_secret = body.get("clientSecret")
        booking_id = body.get("bookingId")
        if not client_secret or not booking_id:
            return HandshakeResult(
                status="FAILED", reason="Invalid payment intent response", error_kind=ErrorKind.UNKNOWN
            )

        intent = PaymentIntent(client_secret=client_secret, booking_id=str(booking_id))
        self._issued[client_secret] = intent
        if self._bookings is not None and self._bookings.get(intent.booking_id) is None:
            self._bookings.track(Booking(
                id=intent.booking_id,
                user_id=None,
                package_ref=request.package_id,
                status=BookingStatus.PENDING,
                payment_status=PaymentStatus.UNPAID,
            ))
        return HandshakeResult(status="OK", reason="intent_created", phase=HandshakePhase.INTENT_CREATED, intent=intent)

    def settle(self, intent: PaymentIntent, payment_method: PaymentMethod) -> HandshakeResult:
        """Phase 2. Cannot be cancelled once submitted."""
        issued = self._issued.get(intent.client_secret)
        if issued is None or issued.booking_id != intent.booking_id:
            return HandshakeResult(status="REJECTED", reason="unknown_payment_intent", intent=intent)
        if intent.client_secret in self._settled:
            return HandshakeResult(
                status="OK",
                reason="already_settled",
                phase=HandshakePhase.PROCESSOR_SETTLED,
                intent=self._settled[intent.client_secret],
            )
        if intent.client_secret in self._settling:
            return HandshakeResult(status="REJECTED", reason="settlement_in_flight", intent=intent)

        self._settling.add(intent.client_secret)
        try:
            outcome = self._processor.confirm_card_payment(intent.client_secret, payment_method)
        finally:
            self._settling.discard(intent.client_secret)

        if outcome.succeeded:
            settled = replace(issued, provider_payment_id=outcome.payment_intent_id)
            self._settled[intent.client_secret] = settled
            return HandshakeResult(
                status="OK", reason="processor_succeeded", phase=HandshakePhase.PROCESSOR_SETTLED, intent=settled
            )

        log.info(f"Processor did not settle booking {intent.booking_id}: {outcome.status}")
        kind = ErrorKind.UNKNOWN if outcome.status == "error" else ErrorKind.PAYMENT_DECLINED
        return HandshakeResult(
            status="FAILED",
            reason=outcome.message or f"Payment status: {outcome.status}",
            phase=HandshakePhase.INTENT_CREATED,
            intent=issued,
            error_kind=kind,
        )

    def record(self, intent: PaymentIntent) -> HandshakeResult:
        """Phase 3. Only runs for an intent the processor reported as succeeded."""
        settled = self._settled.get(intent.client_secret)
        if settled is None or not settled.provider_payment_id:
            return HandshakeResult(status="REJECTED", reason="payment_not_settled", intent=intent)

        try:
            body = self._api.confirm_payment(settled.provider_payment_id, settled.booking_id)
        except ApiError as e:
            log.error(
                f"Payment captured for booking {settled.booking_id} but confirmation failed: {e.kind.value}"
            )
            self._audit_action("PAYMENT_NOT_RECORDED", settled, result="error", error_kind=e.kind.value)
            return HandshakeResult(
                status="FAILED",
                reason=RECORDING_FAILED_MESSAGE.format(booking_id=settled.booking_id),
                phase=HandshakePhase.PROCESSOR_SETTLED,
                intent=settled,
                error_kind=ErrorKind.PAYMENT_RECORDING_FAILED,
            )

        self._issued.pop(settled.client_secret, None)
        self._settled.pop(settled.client_secret, None)
        self._apply_confirmation(settled, body)
        self._audit_action("PAYMENT_CONFIRMED", settled)
        return HandshakeResult(
            status="OK", reason="payment_confirmed", phase=HandshakePhase.SERVER_CONFIRMED, intent=settled
        )

    def _apply_confirmation(self, intent: PaymentIntent, body):
        if self._bookings is None:
            return
        payload = body.get("booking")
        if isinstance(payload, dict):
            try:
                self._bookings.track(Booking.from_api(payload))
                return
            except ValueError:
                log.warning("Unusable booking in payment confirmation response")
        booking = self._bookings.get(intent.booking_id)
        if booking is not None:
            self._bookings.track(
                booking.with_status(BookingStatus.CONFIRMED).with_payment_status(PaymentStatus.PAID)
            )

    def _audit_action(self, action, intent: PaymentIntent, result="success", **metadata):
        if self._audit is None:
            return
        from infrastructure.repositories.sqlite_audit_repository import AuditAction

        self._audit.log_action(
            AuditAction(action),
            target_type="payment",
            target_id=intent.booking_id,
            metadata={"booking_id": intent.booking_id, **metadata},
            result=result,
        )
