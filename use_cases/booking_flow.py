"""Booking lifecycle: legal status/payment-status moves and their execution.

Every transition is validated locally before any request is made. A valid
transition issues exactly one update call and, on success, applies the same
value to the locally held booking (no refetch). The local projection is
replaced wholesale by the next `load_*` call.
"""

import logging
from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Literal, Optional

from use_cases.domain_models import Booking, BookingStatus, PaymentStatus
from use_cases.errors import ApiError, ErrorKind

log = logging.getLogger(__name__)

Actor = Literal["customer", "admin"]

CUSTOMER_TRANSITIONS: Dict[BookingStatus, FrozenSet[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset(),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
}

ADMIN_TRANSITIONS: Dict[BookingStatus, FrozenSet[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED}),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
}

ADMIN_PAYMENT_TRANSITIONS: Dict[PaymentStatus, FrozenSet[PaymentStatus]] = {
    PaymentStatus.UNPAID: frozenset({PaymentStatus.PAID}),
    PaymentStatus.PARTIAL: frozenset({PaymentStatus.PAID}),
    PaymentStatus.PAID: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.REFUNDED: frozenset(),
}

# Booking paymentStatus -> status of the payment record on the server.
PAYMENT_RECORD_STATUS = {
    PaymentStatus.PAID: "succeeded",
    PaymentStatus.REFUNDED: "refunded",
}

TransitionStatus = Literal["APPLIED", "REJECTED", "FAILED"]


@dataclass(frozen=True)
class TransitionResult:
    """`REJECTED` means no request was made; `FAILED` means the server call failed."""

    status: TransitionStatus
    reason: str
    booking: Optional[Booking] = None
    error_kind: Optional[ErrorKind] = None

    @property
    def ok(self) -> bool:
        return self.status == "APPLIED"


def allowed_status_transitions(booking: Booking, actor: Actor) -> FrozenSet[BookingStatus]:
    table = ADMIN_TRANSITIONS if actor == "admin" else CUSTOMER_TRANSITIONS
    return table.get(booking.status, frozenset())


def payment_transition_error(booking: Booking, target: PaymentStatus) -> Optional[str]:
    """Return why an admin payment-status move is illegal, or None when it is allowed."""
    if booking.status == BookingStatus.COMPLETED:
        return "booking_completed"
    if target not in ADMIN_PAYMENT_TRANSITIONS.get(booking.payment_status, frozenset()):
        return f"illegal_payment_transition:{booking.payment_status.value}->{target.value}"
    if target == PaymentStatus.REFUNDED and booking.status != BookingStatus.CANCELLED:
        return "refund_requires_cancellation"
    if target == PaymentStatus.PAID and booking.status == BookingStatus.CANCELLED:
        return "booking_cancelled"
    return None


class BookingLifecycleController:
    """Holds the local booking projection and serializes transitions per booking id."""

    def __init__(self, api, audit=None):
        self._api = api
        self._audit = audit
        self._bookings: Dict[str, Booking] = {}
        self._in_flight = set()

    @property
    def bookings(self) -> List[Booking]:
        return list(self._bookings.values())

    def get(self, booking_id: str) -> Optional[Booking]:
        return self._bookings.get(booking_id)

    def track(self, booking: Booking) -> Booking:
        """Adopt a booking created elsewhere (e.g. by checkout) into the projection."""
        self._bookings[booking.id] = booking
        return booking

    def is_in_flight(self, booking_id: str) -> bool:
        return booking_id in self._in_flight

    def load_bookings(self) -> List[Booking]:
        """Replace the projection with the customer's bookings. Raises ApiError."""
        body = self._api.get_user_bookings()
        self._bookings = {b.id: b for b in (Booking.from_api(item) for item in body.get("data") or [])}
        return self.bookings

    def load_admin_bookings(self, page: int = 1, limit: int = 10) -> List[Booking]:
        body = self._api.get_all_bookings_admin(page=page, limit=limit)
        loaded = [Booking.from_api(item) for item in body.get("data") or []]
        self._bookings = {b.id: b for b in loaded}
        return loaded

    def load_booking(self, booking_id: str) -> Booking:
        body = self._api.get_user_booking(booking_id)
        return self.track(Booking.from_api(body.get("data") or body))

    def allowed_transitions(self, booking_id: str, actor: Actor) -> FrozenSet[BookingStatus]:
        booking = self._bookings.get(booking_id)
        if booking is None or booking_id in self._in_flight:
            return frozenset()
        return allowed_status_transitions(booking, actor)

    def cancel(self, booking_id: str) -> TransitionResult:
        """Customer-initiated cancellation."""
        return self._transition_status(
            booking_id, BookingStatus.CANCELLED, "customer", lambda: self._api.cancel_booking(booking_id)
        )

    def admin_set_status(self, booking_id: str, target: BookingStatus) -> TransitionResult:
        target = BookingStatus(target)
        return self._transition_status(
            booking_id, target, "admin", lambda: self._api.update_booking_status(booking_id, target.value)
        )

    def admin_set_payment_status(
        self, booking_id: str, target: PaymentStatus, payment_id: Optional[str] = None
    ) -> TransitionResult:
        target = PaymentStatus(target)
        booking = self._bookings.get(booking_id)
        rejection = self._precheck(booking_id, booking)
        if rejection is not None:
            return rejection

        reason = payment_transition_error(booking, target)
        if reason is not None:
            return TransitionResult(status="REJECTED", reason=reason, booking=booking)

        payment_id = payment_id or booking.payment_id
        if not payment_id:
            return TransitionResult(status="REJECTED", reason="no_payment_record", booking=booking)

        return self._execute(
            booking,
            lambda: self._api.update_payment_status(payment_id, PAYMENT_RECORD_STATUS[target]),
            booking.with_payment_status(target),
            audit_action="PAYMENT_STATUS_CHANGE",
            metadata={
                "old_payment_status": booking.payment_status.value,
                "new_payment_status": target.value,
            },
        )

    def _precheck(self, booking_id: str, booking: Optional[Booking]) -> Optional[TransitionResult]:
        if booking is None:
            return TransitionResult(status="REJECTED", reason="unknown_booking", error_kind=ErrorKind.NOT_FOUND)
        if booking_id in self._in_flight:
            return TransitionResult(status="REJECTED", reason="transition_in_flight", booking=booking)
        return None

    def _transition_status(self, booking_id, target: BookingStatus, actor: Actor, call) -> TransitionResult:
        booking = self._bookings.get(booking_id)
        rejection = self._precheck(booking_id, booking)
        if rejection is not None:
            return rejection

        if target not in allowed_status_transitions(booking, actor):
            return TransitionResult(
                status="REJECTED",
                reason=f"illegal_transition:{booking.status.value}->{target.value}",
                booking=booking,
            )

        return self._execute(
            booking,
            call,
            booking.with_status(target),
            audit_action="BOOKING_STATUS_CHANGE",
            metadata={"old_status": booking.status.value, "new_status": target.value},
        )

    def _execute(self, booking: Booking, call, updated: Booking, audit_action: str, metadata) -> TransitionResult:
        self._in_flight.add(booking.id)
        try:
            call()
        except ApiError as e:
            log.warning(f"Booking {booking.id} update failed: {e.kind.value}")
            return TransitionResult(status="FAILED", reason=e.message, booking=booking, error_kind=e.kind)
        finally:
            self._in_flight.discard(booking.id)

        self._bookings[booking.id] = updated
        if self._audit is not None:
            from infrastructure.repositories.sqlite_audit_repository import AuditAction

            self._audit.log_action(
                AuditAction(audit_action), target_type="booking", target_id=booking.id, metadata=metadata
            )
        return TransitionResult(status="APPLIED", reason="updated", booking=updated)
