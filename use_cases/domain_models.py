from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Literal, Optional, Tuple


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    UNPAID = "unpaid"
    PARTIAL = "partial"
    PAID = "paid"
    REFUNDED = "refunded"


def _ref(value: Any) -> Optional[str]:
    """Backend references arrive either as ids or as populated objects."""
    if value is None:
        return None
    if isinstance(value, dict):
        value = value.get("_id") or value.get("id")
        return str(value) if value else None
    return str(value)


@dataclass(frozen=True)
class Booking:
    """Local projection of a booking; replaced wholesale by every authoritative read."""

    id: str
    user_id: Optional[str]
    package_ref: Optional[str]
    status: BookingStatus
    payment_status: PaymentStatus
    total_amount: float = 0.0
    booking_date: Optional[str] = None
    travel_window: Tuple[Optional[str], Optional[str]] = (None, None)
    payment_id: Optional[str] = None

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "Booking":
        booking_id = _ref(payload)
        if not booking_id:
            raise ValueError("booking payload has no id")
        return cls(
            id=booking_id,
            user_id=_ref(payload.get("user") or payload.get("userId")),
            package_ref=_ref(payload.get("package") or payload.get("packageId")),
            status=BookingStatus(payload.get("status", BookingStatus.PENDING.value)),
            payment_status=PaymentStatus(payload.get("paymentStatus", PaymentStatus.UNPAID.value)),
            total_amount=float(payload.get("totalAmount") or payload.get("totalPrice") or 0),
            booking_date=payload.get("bookingDate") or payload.get("createdAt"),
            travel_window=(
                payload.get("startDate") or payload.get("travelDate"),
                payload.get("endDate"),
            ),
            payment_id=_ref(payload.get("payment")),
        )

    def with_status(self, status: BookingStatus) -> "Booking":
        return replace(self, status=status)

    def with_payment_status(self, payment_status: PaymentStatus) -> "Booking":
        return replace(self, payment_status=payment_status)


@dataclass(frozen=True)
class CheckoutRequest:
    package_id: str
    travelers: int
    customer_name: str
    customer_email: str
    customer_phone: str
    travel_date: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        payload = {
            "packageId": self.package_id,
            "travelers": self.travelers,
            "customerName": self.customer_name,
            "customerEmail": self.customer_email,
            "customerPhone": self.customer_phone,
        }
        if self.travel_date:
            payload["travelDate"] = self.travel_date
        return payload


@dataclass(frozen=True)
class PaymentIntent:
    """Handshake-scoped; never persisted."""

    client_secret: str
    booking_id: str
    provider_payment_id: Optional[str] = None


@dataclass(frozen=True)
class PaymentMethod:
    """A processor-tokenized card plus billing details."""

    id: str
    billing_details: Dict[str, Any] = field(default_factory=dict)


ProcessorStatus = Literal["succeeded", "requires_action", "declined", "error"]


@dataclass(frozen=True)
class ProcessorOutcome:
    status: ProcessorStatus
    payment_intent_id: Optional[str] = None
    message: str = ""

    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded"
