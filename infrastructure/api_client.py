import logging
from typing import Any, Callable, Dict, List, Optional

import requests

from use_cases.errors import ApiError, ErrorKind

log = logging.getLogger(__name__)

LOGIN_PATHS = ("/auth/login", "/auth/admin/login")
EXPIRED_TOKEN_MESSAGE = "jwt expired"


class TravelApiClient:
    """Thin wrapper over the booking backend's REST contract.

    The bearer token is read from `token_provider` on every request and never
    cached on the HTTP session, so a session change takes effect for the very
    next call. One client serves one browser session.
    """

    def __init__(
        self,
        base_url: str,
        token_provider: Optional[Callable[[], Optional[str]]] = None,
        timeout: float = 10,
        http: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.token_provider = token_provider
        self._http = http or requests.Session()
        self._expiry_listeners: List[Callable[[], None]] = []

    def add_session_expired_listener(self, listener: Callable[[], None]) -> Callable[[], None]:
        self._expiry_listeners.append(listener)

        def remove():
            if listener in self._expiry_listeners:
                self._expiry_listeners.remove(listener)

        return remove

    def _notify_session_expired(self):
        for listener in list(self._expiry_listeners):
            try:
                listener()
            except Exception as e:
                log.error(f"Session-expired listener failed: {e}", exc_info=True)

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        headers = kwargs.pop("headers", {})
        token = self.token_provider() if self.token_provider else None
        if token:
            headers["Authorization"] = f"Bearer {token}"

        url = f"{self.base_url}{path}"
        try:
            resp = self._http.request(method, url, headers=headers, timeout=self.timeout, **kwargs)
        except (requests.ConnectionError, requests.Timeout) as e:
            log.warning(f"{method} {path} unreachable: {e}")
            raise ApiError(ErrorKind.NETWORK_UNREACHABLE, "Network error, please check your connection") from e
        except requests.RequestException as e:
            log.error(f"{method} {path} failed before a response: {e}")
            raise ApiError(ErrorKind.UNKNOWN, str(e)) from e

        try:
            body = resp.json() if resp.content else {}
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {"data": body}

        if 200 <= resp.status_code < 300:
            return body

        error = self._classify(resp.status_code, path, body, sent_token=bool(token))
        log.info(f"{method} {path} -> HTTP {resp.status_code} ({error.kind.value})")
        if error.kind == ErrorKind.SESSION_EXPIRED:
            self._notify_session_expired()
        raise error

    @staticmethod
    def _classify(status_code: int, path: str, body: Dict[str, Any], sent_token: bool) -> ApiError:
        message = str(body.get("error") or body.get("message") or f"HTTP {status_code}")

        if status_code == 403 and message == EXPIRED_TOKEN_MESSAGE:
            return ApiError(ErrorKind.SESSION_EXPIRED, message, status_code)
        if status_code == 401:
            if sent_token and path not in LOGIN_PATHS:
                return ApiError(ErrorKind.SESSION_EXPIRED, message, status_code)
            return ApiError(ErrorKind.UNAUTHORIZED, message, status_code)
        if status_code == 403:
            return ApiError(ErrorKind.UNAUTHORIZED, message, status_code)
        if status_code in (400, 422):
            field_errors = body.get("errors") if isinstance(body.get("errors"), dict) else {}
            return ApiError(ErrorKind.VALIDATION_REJECTED, message, status_code, field_errors)
        if status_code == 402:
            return ApiError(ErrorKind.PAYMENT_DECLINED, message, status_code)
        if status_code == 404:
            return ApiError(ErrorKind.NOT_FOUND, message, status_code)
        return ApiError(ErrorKind.UNKNOWN, message, status_code)

    # Auth

    def login(self, email: str, password: str) -> Dict[str, Any]:
        return self._request("POST", "/auth/login", json={"email": email, "password": password})

    def admin_login(self, email: str, password: str) -> Dict[str, Any]:
        return self._request("POST", "/auth/admin/login", json={"email": email, "password": password})

    def get_me(self) -> Dict[str, Any]:
        return self._request("GET", "/auth/me")

    def update_profile(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("PUT", "/auth/updateprofile", json=fields)

    def update_photo(self, filename: str, content: bytes, content_type: str = "image/jpeg") -> Dict[str, Any]:
        return self._request(
            "PUT", "/auth/updatephoto", files={"profileImage": (filename, content, content_type)}
        )

    def change_password(self, current_password: str, new_password: str) -> Dict[str, Any]:
        return self._request(
            "POST",
            "/auth/changepassword",
            json={"currentPassword": current_password, "newPassword": new_password},
        )

    # Bookings

    def get_user_bookings(self) -> Dict[str, Any]:
        return self._request("GET", "/auth/bookings")

    def get_user_booking(self, booking_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/auth/bookings/{booking_id}")

    def get_all_bookings_admin(self, page: int = 1, limit: int = 10) -> Dict[str, Any]:
        return self._request("GET", "/bookings/admin/all", params={"page": page, "limit": limit})

    def cancel_booking(self, booking_id: str) -> Dict[str, Any]:
        return self._request("PUT", f"/bookings/{booking_id}/cancel")

    def update_booking_status(self, booking_id: str, status: str) -> Dict[str, Any]:
        return self._request("PUT", f"/bookings/{booking_id}", json={"status": status})

    # Payments

    def create_payment_intent(self, booking_data: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/payments/create-payment-intent", json=booking_data)

    def confirm_payment(self, payment_intent_id: str, booking_id: str) -> Dict[str, Any]:
        return self._request(
            "POST",
            "/payments/confirm",
            json={"paymentIntentId": payment_intent_id, "bookingId": booking_id},
        )

    def update_payment_status(self, payment_id: str, status: str) -> Dict[str, Any]:
        return self._request("PUT", f"/payments/{payment_id}", json={"status": status})
