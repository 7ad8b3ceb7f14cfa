import logging
import re
import uuid

import streamlit as st

import auth
from infrastructure.api_client import TravelApiClient
from use_cases import rbac_policy
from use_cases.auth_flow import SessionReconciler
from use_cases.booking_flow import BookingLifecycleController
from use_cases.payment_flow import PaymentHandshakeCoordinator
from use_cases.session_models import Session

log = logging.getLogger(__name__)

# Browser-session id carried in the URL so a page reload finds the same credentials.
SESSION_PARAM = "sid"
_SESSION_KEY_RE = re.compile(r"[0-9a-f]{32}")

"""
SESSION STATE CONTRACT

Keys in st.session_state owned by this module:

session_key: str | None
    browser-session id scoping the credential store
    default: None

reconciler: SessionReconciler | None
    single writer of the client session and credential store
    default: None

api_client: TravelApiClient | None
    REST client of this browser session; sends the reconciler's token
    default: None

booking_controller: BookingLifecycleController | None
    local booking projection + transition serialization
    default: None

payment_coordinator: PaymentHandshakeCoordinator | None
    checkout handshake state (issued / settled intents)
    default: None

session_restored: bool
    set once the startup refresh has run for this browser session
    default: False

redirect_to: str | None
    route the page should navigate to after a guard decision
    default: None

return_to: str | None
    originally requested path, restored after login
    default: None
"""

def init_session_state():
    if 'session_key' not in st.session_state:
        st.session_state.session_key = None
    if 'reconciler' not in st.session_state:
        st.session_state.reconciler = None
    if 'api_client' not in st.session_state:
        st.session_state.api_client = None
    if 'booking_controller' not in st.session_state:
        st.session_state.booking_controller = None
    if 'payment_coordinator' not in st.session_state:
        st.session_state.payment_coordinator = None
    if 'session_restored' not in st.session_state:
        st.session_state.session_restored = False
    if 'redirect_to' not in st.session_state:
        st.session_state.redirect_to = None
    if 'return_to' not in st.session_state:
        st.session_state.return_to = None

def get_session_key() -> str:
    """Browser-session id from the URL, minted on first visit."""
    key = st.query_params.get(SESSION_PARAM)
    if not key or not _SESSION_KEY_RE.fullmatch(key):
        key = st.session_state.get("session_key") or uuid.uuid4().hex
        st.query_params[SESSION_PARAM] = key
    st.session_state.session_key = key
    return key

def _drop_session_objects():
    reconciler = st.session_state.get("reconciler")
    if reconciler is not None:
        reconciler.close()
    st.session_state.reconciler = None
    st.session_state.api_client = None
    st.session_state.booking_controller = None
    st.session_state.payment_coordinator = None

def get_reconciler() -> SessionReconciler:
    previous_key = st.session_state.get("session_key")
    key = get_session_key()
    if previous_key is not None and previous_key != key:
        log.info("Browser session id changed; rebuilding the session")
        _drop_session_objects()

    if st.session_state.get("reconciler") is None:
        api = auth.build_api_client()
        reconciler = SessionReconciler(
            auth.get_credential_repo(key),
            api,
            audit=auth.get_audit_repo(),
        )
        api.token_provider = reconciler.current_token
        st.session_state.api_client = api
        st.session_state.reconciler = reconciler
        st.session_state.session_restored = False
    return st.session_state.reconciler

def get_api_client() -> TravelApiClient:
    get_reconciler()
    return st.session_state.api_client

def get_booking_controller() -> BookingLifecycleController:
    if st.session_state.get("booking_controller") is None:
        st.session_state.booking_controller = BookingLifecycleController(
            get_api_client(), audit=auth.get_audit_repo()
        )
    return st.session_state.booking_controller

def get_payment_coordinator() -> PaymentHandshakeCoordinator:
    if st.session_state.get("payment_coordinator") is None:
        st.session_state.payment_coordinator = PaymentHandshakeCoordinator(
            get_api_client(),
            auth.get_card_processor(),
            bookings=get_booking_controller(),
            audit=auth.get_audit_repo(),
        )
    return st.session_state.payment_coordinator

def current_session() -> Session:
    return get_reconciler().session

def guard_page(requirement: rbac_policy.Requirement, path: str) -> rbac_policy.AccessDecision:
    """Gate the current page; stops the script run on anything but Allow."""
    decision = rbac_policy.enforce(current_session(), requirement, path)
    outcome = decision.outcome

    if outcome == rbac_policy.AccessOutcome.ALLOW:
        st.session_state.redirect_to = None
        return decision

    if outcome == rbac_policy.AccessOutcome.PENDING:
        st.info("Loading your session...")
    elif outcome == rbac_policy.AccessOutcome.REDIRECT_LOGIN:
        st.session_state.return_to = path
        st.session_state.redirect_to = decision.redirect_to
    else:
        st.session_state.redirect_to = decision.redirect_to
    st.stop()
    return decision

def pop_return_path(default: str = "/") -> str:
    """Path to go back to after a successful login."""
    path = st.session_state.get("return_to") or default
    st.session_state.return_to = None
    return path

def logout():
    get_reconciler().logout()
    if st.session_state.get("booking_controller") is not None:
        st.session_state.booking_controller = None
    if st.session_state.get("payment_coordinator") is not None:
        st.session_state.payment_coordinator = None
    st.session_state.redirect_to = rbac_policy.LOGIN_PATH
    st.rerun()
