from infrastructure.api_client import TravelApiClient
from infrastructure.payments.stripe_processor import StripeCardProcessor
from infrastructure.repositories.sqlite_audit_repository import SQLiteAuditRepository
from infrastructure.repositories.sqlite_credential_repository import DEFAULT_SCOPE, SQLiteCredentialRepository
import os
import streamlit as st

DEFAULT_API_BASE_URL = "http://localhost:8000/api"
DEFAULT_SESSION_DB = "session.db"
DEFAULT_API_TIMEOUT = 10

def get_secret(key):
    try:
        value = st.secrets.get(key)
    except FileNotFoundError:
        value = None
    return value if value is not None else os.getenv(key)

def get_session_db_path():
    return get_secret("SESSION_DB") or DEFAULT_SESSION_DB

def get_api_base_url():
    return get_secret("API_BASE_URL") or DEFAULT_API_BASE_URL

def get_api_timeout():
    raw = get_secret("API_TIMEOUT")
    try:
        return float(raw) if raw else DEFAULT_API_TIMEOUT
    except (TypeError, ValueError):
        return DEFAULT_API_TIMEOUT

_audit_repo = None
_card_processor = None

def get_credential_repo(scope: str = DEFAULT_SCOPE) -> SQLiteCredentialRepository:
    """Credentials of one browser session. Never shared between scopes."""
    return SQLiteCredentialRepository(get_session_db_path(), scope=scope)

def get_audit_repo() -> SQLiteAuditRepository:
    global _audit_repo
    db_path = get_session_db_path()
    if _audit_repo is None or _audit_repo.db_path != db_path:
        _audit_repo = SQLiteAuditRepository(db_path)
    return _audit_repo

def build_api_client() -> TravelApiClient:
    """A fresh client per browser session; the caller binds its token provider."""
    return TravelApiClient(get_api_base_url(), timeout=get_api_timeout())

def get_card_processor() -> StripeCardProcessor:
    global _card_processor
    key = get_secret("STRIPE_PUBLISHABLE_KEY")
    if _card_processor is None or _card_processor.publishable_key != key:
        _card_processor = StripeCardProcessor(key)
    return _card_processor

def init_session_db():
    get_credential_repo().init_db()
