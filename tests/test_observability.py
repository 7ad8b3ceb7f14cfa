from unittest.mock import patch

from infrastructure import observability


def test_bearer_token_is_masked():
    assert observability._mask_string("Authorization: Bearer abc.def") == "Authorization: Bearer [REDACTED]"


def test_client_secret_is_masked():
    masked = observability._mask_string("confirm pi_3Nabc_secret_XyZ failed")
    assert "secret_XyZ" not in masked
    assert "[REDACTED]" in masked


def test_sensitive_keys_are_redacted_recursively():
    scrubbed = observability._recursive_scrub(
        {"headers": {"Authorization": "Bearer x"}, "data": [{"password": "p", "name": "Ayesha"}]}
    )
    assert scrubbed == {"headers": {"Authorization": "[REDACTED]"}, "data": [{"password": "[REDACTED]", "name": "Ayesha"}]}


def test_before_send_scrubs_frames_and_request():
    event = {
        "exception": {"values": [{"stacktrace": {"frames": [{"vars": {"token": "tok", "booking_id": "b1"}}]}}]},
        "request": {"headers": {"Authorization": "Bearer tok"}},
    }

    scrubbed = observability._scrub_sensitive_data(event, {})

    assert scrubbed["exception"]["values"][0]["stacktrace"]["frames"][0]["vars"] == {
        "token": "[REDACTED]",
        "booking_id": "b1",
    }
    assert scrubbed["request"]["headers"]["Authorization"] == "[REDACTED]"


@patch("sentry_sdk.init")
def test_setup_without_dsn_skips_sentry(mock_init, monkeypatch):
    monkeypatch.delenv("SENTRY_DSN", raising=False)
    observability.setup_observability()
    mock_init.assert_not_called()


@patch("sentry_sdk.init")
def test_setup_with_dsn_installs_scrubber(mock_init, monkeypatch):
    monkeypatch.setenv("SENTRY_DSN", "https://key@sentry.example.com/1")
    monkeypatch.setenv("SENTRY_ENV", "test")

    observability.setup_observability()

    kwargs = mock_init.call_args[1]
    assert kwargs["environment"] == "test"
    assert kwargs["send_default_pii"] is False
    assert kwargs["before_send"] is observability._scrub_sensitive_data
