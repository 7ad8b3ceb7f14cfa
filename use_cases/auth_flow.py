"""Session reconciliation: the single writer of the client session and credential store."""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Literal, Optional

from use_cases.errors import ApiError, ErrorKind
from use_cases.session_models import Session, SessionStatus, UserSnapshot

log = logging.getLogger(__name__)

AuthFlowStatus = Literal["AUTHENTICATED", "REJECTED"]


@dataclass(frozen=True)
class AuthFlowResult:
    """Result contract for login and account operations."""

    status: AuthFlowStatus
    reason: str
    error_kind: Optional[ErrorKind] = None
    user_id: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == "AUTHENTICATED"


def _user_payload(body: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    for key in ("user", "data"):
        value = body.get(key)
        if isinstance(value, dict):
            return value
    return None


class SessionReconciler:
    """Owns the in-memory `Session` and the credential store.

    Other components only read `session` (or subscribe to changes). Every
    late-arriving server response is checked against the session generation
    so a refresh started before a logout can never resurrect the session.
    """

    def __init__(self, credentials, api, audit=None):
        self._credentials = credentials
        self._api = api
        self._audit = audit
        self._session = Session()
        self._generation = 0
        self._listeners: List[Callable[[Session], None]] = []
        self._remove_expiry_listener = api.add_session_expired_listener(self._on_session_expired)

    @property
    def session(self) -> Session:
        return self._session

    @property
    def generation(self) -> int:
        return self._generation

    def current_token(self) -> Optional[str]:
        """Bearer token for outgoing requests; None whenever the session is unauthenticated."""
        return self._session.token

    def close(self):
        """Detach from the API client. The stored credentials are left in place."""
        self._remove_expiry_listener()
        self._listeners.clear()

    def subscribe(self, listener: Callable[[Session], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set(self, session: Session):
        self._session = session
        for listener in list(self._listeners):
            try:
                listener(session)
            except Exception as e:
                log.error(f"Session listener failed: {e}", exc_info=True)

    def _audit_action(self, action, result="success", user: Optional[UserSnapshot] = None, **metadata):
        if self._audit is None:
            return
        from infrastructure.repositories.sqlite_audit_repository import AuditAction

        self._audit.log_action(
            AuditAction(action),
            target_type="session",
            actor_user_id=user.id if user else None,
            actor_role=user.role if user else None,
            metadata=metadata or None,
            result=result,
        )

    def start(self) -> Session:
        """Restore the session on process start."""
        token, cached_user = self._credentials.read()
        if token is None:
            self._set(Session())
            return self._session

        # Cached snapshot is shown right away; the refresh below overwrites it.
        self._set(Session(status=SessionStatus.AUTHENTICATING, token=token, user=cached_user))
        return self.refresh()

    def refresh(self) -> Session:
        """Ask the server who we are and reconcile with the cached snapshot."""
        if self._session.status == SessionStatus.UNAUTHENTICATED:
            return self._session

        generation = self._generation
        token = self._session.token
        try:
            body = self._api.get_me()
            payload = _user_payload(body)
            if payload is None:
                raise ApiError(ErrorKind.UNKNOWN, "Invalid user response")
            fresh_user = UserSnapshot.from_api(payload)
        except (ApiError, ValueError) as e:
            kind = e.kind if isinstance(e, ApiError) else ErrorKind.UNKNOWN
            if generation != self._generation:
                log.info("Discarding failed refresh from a superseded session")
                return self._session
            return self._refresh_failed(token, kind)

        if generation != self._generation:
            log.info("Discarding refresh result from a superseded session")
            return self._session

        self._credentials.save_user(fresh_user)
        self._set(Session(status=SessionStatus.AUTHENTICATED, token=token, user=fresh_user))
        return self._session

    def _refresh_failed(self, token: str, kind: ErrorKind) -> Session:
        cached_user = self._session.user
        if cached_user is not None:
            log.warning(f"User refresh failed ({kind.value}); keeping cached snapshot")
            self._set(Session(
                status=SessionStatus.AUTHENTICATED, token=token, user=cached_user, last_error=kind
            ))
            return self._session

        log.warning(f"User refresh failed ({kind.value}) with no cached snapshot; signing out")
        self._generation += 1
        try:
            self._credentials.clear()
        finally:
            self._set(Session(last_error=kind))
        return self._session

    def login(self, email: str, password: str) -> AuthFlowResult:
        return self._login(self._api.login, email, password, admin=False)

    def admin_login(self, email: str, password: str) -> AuthFlowResult:
        return self._login(self._api.admin_login, email, password, admin=True)

    def _login(self, call, email: str, password: str, admin: bool) -> AuthFlowResult:
        try:
            body = call(email, password)
        except ApiError as e:
            return self._login_failed(e.kind, e.message, admin)

        token = body.get("token")
        if not token:
            return self._login_failed(ErrorKind.UNKNOWN, "Invalid authentication response", admin)

        user = None
        payload = _user_payload(body)
        if payload is not None:
            try:
                user = UserSnapshot.from_api(payload)
            except ValueError:
                log.warning("Login response carried an unusable user object")

        if admin and (user is None or user.role != "admin"):
            return self._login_failed(ErrorKind.UNAUTHORIZED, "Unauthorized: User is not an admin", admin)

        self._generation += 1
        self._credentials.save(token, user, is_admin_login=admin)
        status = SessionStatus.AUTHENTICATED if user is not None else SessionStatus.AUTHENTICATING
        self._set(Session(status=status, token=token, user=user))
        self._audit_action("LOGIN_SUCCESS", user=user, admin_login=admin)

        session = self.refresh()
        if not session.is_authenticated:
            return AuthFlowResult(status="REJECTED", reason="refresh_failed", error_kind=session.last_error)
        return AuthFlowResult(status="AUTHENTICATED", reason="authenticated", user_id=session.user.id)

    def _login_failed(self, kind: ErrorKind, message: str, admin: bool) -> AuthFlowResult:
        # Stored credentials are left as they were.
        self._generation += 1
        self._set(Session(last_error=kind))
        self._audit_action("LOGIN_FAIL", result="deny", error_kind=kind.value, admin_login=admin)
        return AuthFlowResult(status="REJECTED", reason=message, error_kind=kind)

    def logout(self, error_kind: Optional[ErrorKind] = None) -> Session:
        """Clear credentials and drop to UNAUTHENTICATED, whatever the current state."""
        user = self._session.user
        self._generation += 1
        try:
            self._credentials.clear()
        finally:
            self._set(Session(last_error=error_kind))
        if error_kind == ErrorKind.SESSION_EXPIRED:
            self._audit_action("SESSION_EXPIRED", result="deny", user=user)
        else:
            self._audit_action("LOGOUT", user=user)
        return self._session

    def _on_session_expired(self):
        log.info("Server rejected the session token; signing out")
        self.logout(error_kind=ErrorKind.SESSION_EXPIRED)

    def update_profile(self, fields: Dict[str, Any]) -> AuthFlowResult:
        return self._update_user(lambda: self._api.update_profile(fields))

    def update_photo(self, filename: str, content: bytes, content_type: str = "image/jpeg") -> AuthFlowResult:
        return self._update_user(lambda: self._api.update_photo(filename, content, content_type))

    def _update_user(self, call) -> AuthFlowResult:
        if not self._session.is_authenticated:
            return AuthFlowResult(status="REJECTED", reason="auth_required", error_kind=ErrorKind.UNAUTHORIZED)

        generation = self._generation
        try:
            body = call()
        except ApiError as e:
            return AuthFlowResult(status="REJECTED", reason=e.message, error_kind=e.kind)

        if generation != self._generation:
            return AuthFlowResult(status="REJECTED", reason="session_changed", error_kind=self._session.last_error)

        session = self._session
        payload = _user_payload(body) or {}
        updated = session.user.merged(payload)
        self._credentials.save_user(updated)
        self._set(Session(status=session.status, token=session.token, user=updated))
        return AuthFlowResult(status="AUTHENTICATED", reason="updated", user_id=updated.id)

    def change_password(self, current_password: str, new_password: str) -> AuthFlowResult:
        if not self._session.is_authenticated:
            return AuthFlowResult(status="REJECTED", reason="auth_required", error_kind=ErrorKind.UNAUTHORIZED)
        try:
            self._api.change_password(current_password, new_password)
        except ApiError as e:
            return AuthFlowResult(status="REJECTED", reason=e.message, error_kind=e.kind)
        return AuthFlowResult(status="AUTHENTICATED", reason="password_changed", user_id=self._session.user.id)
