"""Application layer contracts for the session, booking and payment flows."""

from .auth_flow import AuthFlowResult, AuthFlowStatus, SessionReconciler
from .booking_flow import BookingLifecycleController, TransitionResult
from .domain_models import Booking, BookingStatus, CheckoutRequest, PaymentIntent, PaymentMethod, PaymentStatus
from .errors import ApiError, ErrorKind
from .payment_flow import HandshakePhase, HandshakeResult, PaymentHandshakeCoordinator
from .rbac_policy import ROLE_TABLE, AccessDecision, AccessOutcome, Requirement, RoleTable, decide
from .session_models import Role, Session, SessionStatus, UserSnapshot, is_admin

__all__ = [
    "AccessDecision",
    "AccessOutcome",
    "ApiError",
    "AuthFlowResult",
    "AuthFlowStatus",
    "Booking",
    "BookingLifecycleController",
    "BookingStatus",
    "CheckoutRequest",
    "ErrorKind",
    "HandshakePhase",
    "HandshakeResult",
    "PaymentHandshakeCoordinator",
    "PaymentIntent",
    "PaymentMethod",
    "PaymentStatus",
    "ROLE_TABLE",
    "Requirement",
    "Role",
    "RoleTable",
    "Session",
    "SessionReconciler",
    "SessionStatus",
    "TransitionResult",
    "UserSnapshot",
    "decide",
    "is_admin",
]
