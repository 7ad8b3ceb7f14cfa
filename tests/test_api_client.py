from unittest.mock import MagicMock

import pytest
import requests

from infrastructure.api_client import TravelApiClient
from use_cases.errors import ApiError, ErrorKind


def make_response(status_code=200, body=None):
    resp = MagicMock()
    resp.status_code = status_code
    resp.content = b"{}" if body is not None else b""
    resp.json.return_value = body
    return resp


@pytest.fixture
def http():
    return MagicMock()


@pytest.fixture
def token_box():
    return {"token": "tok-1"}


@pytest.fixture
def client(http, token_box):
    return TravelApiClient("http://api.local/api/", lambda: token_box["token"], timeout=3, http=http)


def test_attaches_bearer_token(client, http):
    http.request.return_value = make_response(200, {"user": {"id": "1"}})

    body = client.get_me()

    assert body == {"user": {"id": "1"}}
    method, url = http.request.call_args[0]
    assert (method, url) == ("GET", "http://api.local/api/auth/me")
    assert http.request.call_args[1]["headers"]["Authorization"] == "Bearer tok-1"
    assert http.request.call_args[1]["timeout"] == 3


def test_no_authorization_header_after_token_cleared(client, http, token_box):
    http.request.return_value = make_response(200, {})
    client.get_user_bookings()
    token_box["token"] = None

    client.get_user_bookings()

    assert "Authorization" not in http.request.call_args[1]["headers"]


def test_connection_error_is_network_unreachable(client, http):
    http.request.side_effect = requests.ConnectionError("refused")

    with pytest.raises(ApiError) as exc:
        client.get_me()

    assert exc.value.kind == ErrorKind.NETWORK_UNREACHABLE


def test_timeout_is_network_unreachable(client, http):
    http.request.side_effect = requests.Timeout("slow")

    with pytest.raises(ApiError) as exc:
        client.cancel_booking("b1")

    assert exc.value.kind == ErrorKind.NETWORK_UNREACHABLE


@pytest.mark.parametrize(
    "status_code, body, kind",
    [
        (400, {"message": "bad", "errors": {"email": "required"}}, ErrorKind.VALIDATION_REJECTED),
        (402, {"error": "card declined"}, ErrorKind.PAYMENT_DECLINED),
        (403, {"error": "not allowed"}, ErrorKind.UNAUTHORIZED),
        (404, {"message": "Booking not found"}, ErrorKind.NOT_FOUND),
        (500, {}, ErrorKind.UNKNOWN),
    ],
)
def test_status_code_mapping(client, http, status_code, body, kind):
    http.request.return_value = make_response(status_code, body)

    with pytest.raises(ApiError) as exc:
        client.update_booking_status("b1", "confirmed")

    assert exc.value.kind == kind
    assert exc.value.status_code == status_code


def test_validation_errors_carry_field_errors(client, http):
    http.request.return_value = make_response(422, {"message": "invalid", "errors": {"phone": "too short"}})

    with pytest.raises(ApiError) as exc:
        client.update_profile({"phone": "1"})

    assert exc.value.field_errors == {"phone": "too short"}
    assert exc.value.message == "invalid"


def test_bad_login_is_unauthorized_not_expired(client, http):
    http.request.return_value = make_response(401, {"error": "Invalid credentials"})
    listener = MagicMock()
    client.add_session_expired_listener(listener)

    with pytest.raises(ApiError) as exc:
        client.login("a@x.io", "wrong")

    assert exc.value.kind == ErrorKind.UNAUTHORIZED
    assert exc.value.message == "Invalid credentials"
    listener.assert_not_called()


def test_rejected_token_notifies_listeners_then_raises(client, http):
    http.request.return_value = make_response(401, {"error": "Not authorized"})
    listener = MagicMock()
    client.add_session_expired_listener(listener)

    with pytest.raises(ApiError) as exc:
        client.get_user_bookings()

    assert exc.value.kind == ErrorKind.SESSION_EXPIRED
    listener.assert_called_once_with()


def test_jwt_expired_403_is_session_expired(client, http):
    http.request.return_value = make_response(403, {"error": "jwt expired"})
    listener = MagicMock()
    client.add_session_expired_listener(listener)

    with pytest.raises(ApiError) as exc:
        client.confirm_payment("pi_1", "b1")

    assert exc.value.kind == ErrorKind.SESSION_EXPIRED
    listener.assert_called_once()


def test_401_without_token_is_unauthorized(client, http, token_box):
    token_box["token"] = None
    http.request.return_value = make_response(401, {})

    with pytest.raises(ApiError) as exc:
        client.get_me()

    assert exc.value.kind == ErrorKind.UNAUTHORIZED


def test_removed_listener_is_not_called(client, http):
    http.request.return_value = make_response(401, {})
    listener = MagicMock()
    remove = client.add_session_expired_listener(listener)
    remove()

    with pytest.raises(ApiError):
        client.get_me()

    listener.assert_not_called()


def test_payment_endpoints_send_contract_payloads(client, http):
    http.request.return_value = make_response(200, {"clientSecret": "pi_1_secret_x", "bookingId": "b1"})

    client.create_payment_intent({"packageId": "p1", "travelers": 2})
    assert http.request.call_args[0] == ("POST", "http://api.local/api/payments/create-payment-intent")
    assert http.request.call_args[1]["json"] == {"packageId": "p1", "travelers": 2}

    client.confirm_payment("pi_1", "b1")
    assert http.request.call_args[1]["json"] == {"paymentIntentId": "pi_1", "bookingId": "b1"}

    client.update_payment_status("pay1", "refunded")
    assert http.request.call_args[0] == ("PUT", "http://api.local/api/payments/pay1")
    assert http.request.call_args[1]["json"] == {"status": "refunded"}
