from unittest.mock import MagicMock, patch

from use_cases import auth_flow, booking_flow, bootstrap, payment_flow


def test_auth_flow_contract() -> None:
    reconciler = auth_flow.SessionReconciler(MagicMock(), MagicMock())

    assert hasattr(reconciler, "start")
    result = reconciler.change_password("a", "b")
    assert isinstance(result, auth_flow.AuthFlowResult)
    assert result.status in {"AUTHENTICATED", "REJECTED"}


def test_booking_flow_contract() -> None:
    controller = booking_flow.BookingLifecycleController(MagicMock())
    result = controller.cancel("missing")
    assert isinstance(result, booking_flow.TransitionResult)
    assert result.status in {"APPLIED", "REJECTED", "FAILED"}


def test_payment_flow_contract() -> None:
    coordinator = payment_flow.PaymentHandshakeCoordinator(MagicMock(), MagicMock())
    result = coordinator.record(MagicMock(client_secret="pi_1_secret_x"))
    assert isinstance(result, payment_flow.HandshakeResult)
    assert result.status in {"OK", "FAILED", "REJECTED"}


@patch("use_cases.bootstrap.session_manager.get_reconciler")
@patch("use_cases.bootstrap.auth.init_session_db")
@patch("use_cases.bootstrap.session_manager.init_session_state")
def test_bootstrap_contract(_, __, mock_get_reconciler) -> None:
    assert hasattr(bootstrap, "run_startup")
    bootstrap.session_manager.st.session_state.clear()
    bootstrap.session_manager.st.session_state.session_restored = True
    mock_get_reconciler.return_value.session.status.value = "Unauthenticated"
    result = bootstrap.run_startup()
    assert isinstance(result, bootstrap.StartupResult)
    assert result.status in {"CONTINUE", "STOP"}
    assert isinstance(result.planned_steps, tuple)
